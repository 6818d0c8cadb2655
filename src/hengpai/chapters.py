from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Iterable

from bs4 import BeautifulSoup

from .archive import MARKUP_EXTS, ArchiveEntry
from .errors import EntryProcessingFailed

logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 50
TITLE_ELLIPSIS = "..."
DEFAULT_SLUG = "chapter"

# Tried in order; the first non-empty capture wins.
TITLE_PATTERNS = (
    re.compile(r"<title\b[^>]*>(.*?)</title\s*>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<h1\b[^>]*>(.*?)</h1\s*>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<h2\b[^>]*>(.*?)</h2\s*>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<h3\b[^>]*>(.*?)</h3\s*>", re.IGNORECASE | re.DOTALL),
    re.compile(
        r"<([a-z][a-z0-9]*)\b[^>]*\bclass\s*=\s*[\"'][^\"']*title[^\"']*[\"'][^>]*>(.*?)</\1\s*>",
        re.IGNORECASE | re.DOTALL,
    ),
)

_SLUG_DROP_RE = re.compile(r"[^\w\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff\s-]")

ProgressCallback = Callable[[int, int, str], None]


@dataclass(frozen=True)
class Chapter:
    source_path: str
    order: int
    title: str
    anchor_slug: str
    rendered_body: str


def is_content_path(path: str) -> bool:
    return path.lower().endswith(MARKUP_EXTS) and not path.endswith("/")


def _plain_text(fragment: str) -> str:
    text = BeautifulSoup(fragment, "html.parser").get_text(separator=" ")
    return " ".join(text.split())


def truncate_title(title: str, limit: int = TITLE_MAX_CHARS) -> str:
    if len(title) <= limit:
        return title
    return title[:limit] + TITLE_ELLIPSIS


def extract_title(markup: str) -> str | None:
    for pattern in TITLE_PATTERNS:
        for match in pattern.finditer(markup):
            captured = match.group(match.lastindex or 1)
            text = _plain_text(captured)
            if text:
                return truncate_title(text)
    return None


def slugify(title: str) -> str:
    slug = title.lower()
    slug = _SLUG_DROP_RE.sub("", slug)
    slug = re.sub(r"\s+", "-", slug.strip())
    slug = re.sub(r"-{2,}", "-", slug)
    return slug.strip("-")


def unique_slug(base: str, used: set[str]) -> str:
    base = base or DEFAULT_SLUG
    candidate = base
    suffix = 1
    while candidate in used:
        suffix += 1
        candidate = f"{base}-{suffix}"
    used.add(candidate)
    return candidate


def order_content_entries(entries: Iterable[ArchiveEntry]) -> list[ArchiveEntry]:
    """Content entries sorted by path; this order is the chapter order."""
    content = [entry for entry in entries if is_content_path(entry.path)]
    return sorted(content, key=lambda entry: entry.path.encode("utf-8"))


@dataclass(frozen=True)
class _Segment:
    title: str
    body: str


def _segment_entry(
    entry: ArchiveEntry,
    index: int,
    prepare: Callable[[str], str],
    render: Callable[[str], str],
) -> _Segment:
    try:
        markup = prepare(entry.text)
        title = extract_title(markup) or f"Chapter {index}"
        body = render(markup)
    except Exception as exc:
        failure = EntryProcessingFailed(entry.path, str(exc) or type(exc).__name__)
        logger.warning("Using placeholder chapter: %s", failure)
        return _Segment(
            title=f"Chapter {index}",
            body=f"*This section could not be converted ({entry.path}).*",
        )
    return _Segment(title=title, body=body)


def segment_chapters(
    entries: Iterable[ArchiveEntry],
    render: Callable[[str], str],
    prepare: Callable[[str], str] | None = None,
    workers: int = 1,
    progress: ProgressCallback | None = None,
) -> list[Chapter]:
    ordered = order_content_entries(entries)
    total = len(ordered)
    prep = prepare or (lambda text: text)

    def _work(item: tuple[int, ArchiveEntry]) -> _Segment:
        index, entry = item
        return _segment_entry(entry, index, prep, render)

    jobs = list(enumerate(ordered, start=1))
    segments: list[_Segment] = []
    if workers > 1 and total > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            # map() yields in submission order, keeping the sort order intact.
            for done, segment in enumerate(pool.map(_work, jobs), start=1):
                segments.append(segment)
                if progress:
                    progress(done, total, ordered[done - 1].path)
    else:
        for done, job in enumerate(jobs, start=1):
            segments.append(_work(job))
            if progress:
                progress(done, total, job[1].path)

    used: set[str] = set()
    chapters: list[Chapter] = []
    for (index, entry), segment in zip(jobs, segments):
        chapters.append(
            Chapter(
                source_path=entry.path,
                order=index,
                title=segment.title,
                anchor_slug=unique_slug(slugify(segment.title), used),
                rendered_body=segment.body,
            )
        )
    return chapters
