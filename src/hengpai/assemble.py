from __future__ import annotations

import html
import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Iterable, Sequence

from .archive import (
    EPUB_MIMETYPE,
    KIND_BINARY,
    KIND_MARKUP,
    KIND_STYLE,
    MIMETYPE_PATH,
    ArchiveEntry,
)
from .chapters import Chapter, ProgressCallback, slugify, unique_slug
from .config import ConversionConfig
from .errors import EntryProcessingFailed
from .glyphs import PageText
from .manifest import DocumentMetadata
from .restyle import restyle_markup, restyle_stylesheet

logger = logging.getLogger(__name__)

TOOL_ATTRIBUTION = "Converted to Markdown by hengpai"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
PAGE_DIR = "OEBPS"

Clock = Callable[[], datetime]


def _timestamp(clock: Clock) -> str:
    return clock().strftime(TIMESTAMP_FORMAT)


def assemble_markdown(
    metadata: DocumentMetadata,
    chapters: Sequence[Chapter],
    transforms: Sequence[str] = (),
    now: Clock = datetime.now,
) -> str:
    lines: list[str] = [f"# {metadata.title}", ""]
    if metadata.author:
        lines += [f"**Author:** {metadata.author}", ""]
    lines += [f"*Generated: {_timestamp(now)}*", "", f"> {TOOL_ATTRIBUTION}", "", "---", ""]

    lines += ["## Table of Contents", ""]
    for chapter in chapters:
        lines.append(f"- [{chapter.title}](#{chapter.anchor_slug})")
    lines += ["", "---", ""]

    for chapter in chapters:
        lines += [f"## {chapter.title} {{#{chapter.anchor_slug}}}", ""]
        body = chapter.rendered_body.strip()
        if body:
            lines += [body, ""]
        lines += ["---", ""]

    lines += [
        "## Conversion Info",
        "",
        f"- Chapters: {len(chapters)}",
        f"- Transforms: {', '.join(transforms) if transforms else 'none'}",
        f"- Completed: {_timestamp(now)}",
        "",
    ]
    return "\n".join(lines)


def _rewrite_entry(
    entry: ArchiveEntry,
    rewrite_markup: Callable[[str], str],
    rewrite_style: Callable[[str], str],
) -> ArchiveEntry:
    if not entry.is_text:
        return entry
    rewrite = rewrite_markup if entry.kind == KIND_MARKUP else rewrite_style
    try:
        return entry.with_content(rewrite(entry.text))
    except Exception as exc:
        failure = EntryProcessingFailed(entry.path, str(exc) or type(exc).__name__)
        logger.warning("Keeping original entry: %s", failure)
        return entry


def repackage_entries(
    entries: Iterable[ArchiveEntry],
    rewrite_markup: Callable[[str], str],
    rewrite_style: Callable[[str], str],
    workers: int = 1,
    progress: ProgressCallback | None = None,
) -> list[ArchiveEntry]:
    """Same paths in the same order; only markup and style content changes."""
    source = list(entries)
    total = len(source)

    def _work(entry: ArchiveEntry) -> ArchiveEntry:
        return _rewrite_entry(entry, rewrite_markup, rewrite_style)

    out: list[ArchiveEntry] = []
    if workers > 1 and total > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            for done, entry in enumerate(pool.map(_work, source), start=1):
                out.append(entry)
                if progress:
                    progress(done, total, entry.path)
        return out
    for done, entry in enumerate(source, start=1):
        out.append(_work(entry))
        if progress:
            progress(done, total, entry.path)
    return out


def pages_to_chapters(
    pages: Sequence[PageText],
    convert: Callable[[str], str] = lambda text: text,
) -> list[Chapter]:
    used: set[str] = set()
    chapters: list[Chapter] = []
    for order, page in enumerate(pages, start=1):
        title = f"Page {page.page_number}"
        body = "\n".join(convert(line) for line in page.lines)
        chapters.append(
            Chapter(
                source_path=f"page-{page.page_number}",
                order=order,
                title=title,
                anchor_slug=unique_slug(slugify(title), used),
                rendered_body=body,
            )
        )
    return chapters


_CONTAINER_XML = """<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="{opf_path}" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""

_PAGE_XHTML = """<?xml version="1.0" encoding="utf-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml" xml:lang="zh-Hant">
<head>
<title>{title}</title>
<link rel="stylesheet" type="text/css" href="style.css"/>
</head>
<body>
<h2>{title}</h2>
{paragraphs}
</body>
</html>
"""

_NAV_XHTML = """<?xml version="1.0" encoding="utf-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops" xml:lang="zh-Hant">
<head><title>{title}</title></head>
<body>
<nav epub:type="toc" id="toc">
<h1>{title}</h1>
<ol>
{items}
</ol>
</nav>
</body>
</html>
"""

_CONTENT_OPF = """<?xml version="1.0" encoding="utf-8"?>
<package xmlns="http://www.idpf.org/2007/opf" version="3.0" unique-identifier="book-id">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">
    <dc:identifier id="book-id">urn:uuid:{identifier}</dc:identifier>
    <dc:title>{title}</dc:title>
{creator}    <dc:language>zh-Hant</dc:language>
    <meta property="dcterms:modified">{modified}</meta>
  </metadata>
  <manifest>
    <item id="nav" href="nav.xhtml" media-type="application/xhtml+xml" properties="nav"/>
    <item id="css" href="style.css" media-type="text/css"/>
{items}
  </manifest>
  <spine>
{itemrefs}
  </spine>
</package>
"""


def _page_filename(page_number: int) -> str:
    return f"page-{page_number:04d}.xhtml"


def build_epub_from_pages(
    metadata: DocumentMetadata,
    pages: Sequence[PageText],
    config: ConversionConfig,
    convert: Callable[[str], str] = lambda text: text,
    now: Clock = datetime.now,
) -> list[ArchiveEntry]:
    """Minimal EPUB 3 package with one restyled XHTML document per page."""
    title = html.escape(metadata.title)
    opf_path = f"{PAGE_DIR}/content.opf"
    entries = [
        ArchiveEntry(MIMETYPE_PATH, KIND_BINARY, EPUB_MIMETYPE.encode("ascii")),
        ArchiveEntry(
            "META-INF/container.xml",
            KIND_BINARY,
            _CONTAINER_XML.format(opf_path=opf_path).encode("utf-8"),
        ),
    ]

    manifest_items: list[str] = []
    itemrefs: list[str] = []
    nav_items: list[str] = []
    page_entries: list[ArchiveEntry] = []
    for page in pages:
        name = _page_filename(page.page_number)
        item_id = f"p{page.page_number:04d}"
        page_title = f"Page {page.page_number}"
        paragraphs = "\n".join(f"<p>{html.escape(convert(line))}</p>" for line in page.lines)
        markup = _PAGE_XHTML.format(title=page_title, paragraphs=paragraphs)
        page_entries.append(
            ArchiveEntry(f"{PAGE_DIR}/{name}", KIND_MARKUP, restyle_markup(markup, config))
        )
        manifest_items.append(
            f'    <item id="{item_id}" href="{name}" media-type="application/xhtml+xml"/>'
        )
        itemrefs.append(f'    <itemref idref="{item_id}"/>')
        nav_items.append(f'<li><a href="{name}">{page_title}</a></li>')

    creator = (
        f"    <dc:creator>{html.escape(metadata.author)}</dc:creator>\n" if metadata.author else ""
    )
    opf = _CONTENT_OPF.format(
        identifier=uuid.uuid4(),
        title=title,
        creator=creator,
        modified=now().astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        items="\n".join(manifest_items),
        itemrefs="\n".join(itemrefs),
    )
    entries.append(ArchiveEntry(opf_path, KIND_BINARY, opf.encode("utf-8")))
    nav = _NAV_XHTML.format(title=title, items="\n".join(nav_items))
    entries.append(ArchiveEntry(f"{PAGE_DIR}/nav.xhtml", KIND_MARKUP, restyle_markup(nav, config)))
    entries.append(ArchiveEntry(f"{PAGE_DIR}/style.css", KIND_STYLE, restyle_stylesheet("", config)))
    entries.extend(page_entries)
    return entries
