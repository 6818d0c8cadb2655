from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Callable

from .archive import ZipArchiveStore
from .assemble import (
    assemble_markdown,
    build_epub_from_pages,
    pages_to_chapters,
    repackage_entries,
)
from .chapters import ProgressCallback, segment_chapters
from .config import OUTPUT_EPUB, OUTPUT_MARKDOWN, ConversionConfig
from .errors import (
    ConversionError,
    EntryProcessingFailed,
    MetadataUnavailable,
    SourceUnreadable,
    UnsupportedSourceFormat,
)
from .glyphs import GlyphSource, PdfGlyphSource, read_pages, reconstruct_pages
from .manifest import DEFAULT_TITLE, DocumentMetadata, resolve_metadata
from .render import html_to_markdown
from .restyle import restyle_markup, restyle_stylesheet
from .script import ScriptConverter, build_script_converter

logger = logging.getLogger(__name__)

SOURCE_ARCHIVE = "archive"
SOURCE_GLYPHS = "glyphs"
SOURCE_SUFFIXES = {".epub": SOURCE_ARCHIVE, ".pdf": SOURCE_GLYPHS}

OUTPUT_MEDIA_TYPES = {
    OUTPUT_EPUB: "application/epub+zip",
    OUTPUT_MARKDOWN: "text/markdown; charset=utf-8",
}


@dataclass(frozen=True)
class ConversionResult:
    data: bytes
    output_kind: str
    metadata: DocumentMetadata
    chapter_count: int = 0
    entry_count: int = 0

    @property
    def extension(self) -> str:
        return f".{self.output_kind}"

    @property
    def media_type(self) -> str:
        return OUTPUT_MEDIA_TYPES[self.output_kind]

    @property
    def size(self) -> int:
        return len(self.data)


def detect_source_format(path: str | Path) -> str:
    suffix = Path(path).suffix.lower()
    try:
        return SOURCE_SUFFIXES[suffix]
    except KeyError:
        raise UnsupportedSourceFormat(
            f"Unsupported input format '{suffix or Path(path).name}'. "
            f"Supported: {', '.join(sorted(SOURCE_SUFFIXES))}"
        ) from None


def applied_transforms(config: ConversionConfig, converter: ScriptConverter) -> list[str]:
    transforms = [f"simplified to traditional ({converter.name})"]
    if config.output_kind == OUTPUT_EPUB:
        transforms += [
            "horizontal writing mode",
            f"font family {config.font_families[0]}",
            f"line height {config.line_height}",
        ]
    else:
        transforms.append("markdown rendering")
    return transforms


def _convert_metadata(metadata: DocumentMetadata, convert: Callable[[str], str]) -> DocumentMetadata:
    return replace(metadata, title=convert(metadata.title), author=convert(metadata.author))


def convert_archive(
    data: bytes,
    config: ConversionConfig,
    converter: ScriptConverter | None = None,
    progress: ProgressCallback | None = None,
    now: Callable[[], datetime] = datetime.now,
) -> ConversionResult:
    converter = converter or build_script_converter()
    with ZipArchiveStore.from_bytes(data) as store:
        entries = store.list_entries()
    metadata = _convert_metadata(resolve_metadata(entries), converter.convert)
    logger.debug("Resolved metadata: %s", metadata)

    if config.output_kind == OUTPUT_MARKDOWN:
        chapters = segment_chapters(
            entries,
            render=html_to_markdown,
            prepare=converter.convert,
            workers=config.workers,
            progress=progress,
        )
        document = assemble_markdown(
            metadata, chapters, transforms=applied_transforms(config, converter), now=now
        )
        return ConversionResult(
            data=document.encode("utf-8"),
            output_kind=OUTPUT_MARKDOWN,
            metadata=metadata,
            chapter_count=len(chapters),
            entry_count=len(entries),
        )

    rewritten = repackage_entries(
        entries,
        rewrite_markup=lambda text: restyle_markup(converter.convert(text), config),
        rewrite_style=lambda text: restyle_stylesheet(converter.convert(text), config),
        workers=config.workers,
        progress=progress,
    )
    out = ZipArchiveStore.empty()
    out.write_entries(rewritten)
    return ConversionResult(
        data=out.finalize(),
        output_kind=OUTPUT_EPUB,
        metadata=metadata,
        entry_count=len(rewritten),
    )


def _glyph_metadata(source: GlyphSource) -> DocumentMetadata:
    try:
        info = source.get_document_info()
    except Exception as exc:
        logger.warning("Metadata unavailable, using defaults: %s", exc)
        return DocumentMetadata()
    if not info.get("title"):
        logger.warning("Document has no title; using '%s'", DEFAULT_TITLE)
    return DocumentMetadata(
        title=info.get("title") or DEFAULT_TITLE,
        author=info.get("author") or "",
    )


def convert_glyph_source(
    source: GlyphSource,
    config: ConversionConfig,
    converter: ScriptConverter | None = None,
    progress: ProgressCallback | None = None,
    now: Callable[[], datetime] = datetime.now,
) -> ConversionResult:
    converter = converter or build_script_converter()
    metadata = _convert_metadata(_glyph_metadata(source), converter.convert)
    try:
        pages = read_pages(source)
    except ConversionError:
        raise
    except Exception as exc:
        raise SourceUnreadable(f"Cannot read pages: {exc}") from exc
    page_texts = reconstruct_pages(pages)
    if progress:
        progress(len(page_texts), len(page_texts), "pages")

    if config.output_kind == OUTPUT_MARKDOWN:
        chapters = pages_to_chapters(page_texts, convert=converter.convert)
        document = assemble_markdown(
            metadata, chapters, transforms=applied_transforms(config, converter), now=now
        )
        return ConversionResult(
            data=document.encode("utf-8"),
            output_kind=OUTPUT_MARKDOWN,
            metadata=metadata,
            chapter_count=len(chapters),
        )

    entries = build_epub_from_pages(metadata, page_texts, config, convert=converter.convert, now=now)
    out = ZipArchiveStore.empty()
    out.write_entries(entries)
    return ConversionResult(
        data=out.finalize(),
        output_kind=OUTPUT_EPUB,
        metadata=metadata,
        chapter_count=len(page_texts),
        entry_count=len(entries),
    )


def convert_file(
    path: str | Path,
    config: ConversionConfig,
    converter: ScriptConverter | None = None,
    progress: ProgressCallback | None = None,
) -> ConversionResult:
    """Convert an ``.epub`` or ``.pdf`` file; raises ``ConversionError`` on fatal failures."""
    source_kind = detect_source_format(path)
    try:
        data = Path(path).read_bytes()
    except OSError as exc:
        raise SourceUnreadable(f"Cannot read {path}: {exc}") from exc

    if source_kind == SOURCE_ARCHIVE:
        return convert_archive(data, config, converter=converter, progress=progress)

    glyphs = PdfGlyphSource.from_bytes(data)
    try:
        return convert_glyph_source(glyphs, config, converter=converter, progress=progress)
    finally:
        glyphs.close()


__all__ = [
    "ConversionError",
    "ConversionResult",
    "EntryProcessingFailed",
    "MetadataUnavailable",
    "SourceUnreadable",
    "UnsupportedSourceFormat",
    "applied_transforms",
    "convert_archive",
    "convert_file",
    "convert_glyph_source",
    "detect_source_format",
]
