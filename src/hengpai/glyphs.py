"""Line reconstruction for paginated (PDF) sources.

Runs arrive in content-stream order with the y coordinate of their baseline.
A baseline jump larger than ``LINE_BREAK_THRESHOLD`` starts a new line. This is
a heuristic: multi-column pages, rotated text and irregular layouts come out
in stream order rather than true reading order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Protocol, Sequence

from .errors import SourceUnreadable

LINE_BREAK_THRESHOLD = 5.0


@dataclass(frozen=True)
class TextRun:
    text: str
    baseline_y: float


@dataclass(frozen=True)
class Page:
    page_number: int
    runs: tuple[TextRun, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PageText:
    page_number: int
    text: str

    @property
    def lines(self) -> list[str]:
        return self.text.split("\n") if self.text else []


def reconstruct_lines(
    runs: Iterable[TextRun],
    threshold: float = LINE_BREAK_THRESHOLD,
) -> list[str]:
    lines: list[str] = []
    buffer: list[str] = []
    previous_y: float | None = None

    def _flush() -> None:
        line = "".join(buffer).strip()
        if line:
            lines.append(line)
        buffer.clear()

    for run in runs:
        if previous_y is not None and abs(run.baseline_y - previous_y) > threshold:
            _flush()
        buffer.append(run.text + " ")
        previous_y = run.baseline_y
    _flush()
    return lines


def reconstruct_page(page: Page, threshold: float = LINE_BREAK_THRESHOLD) -> PageText:
    return PageText(
        page_number=page.page_number,
        text="\n".join(reconstruct_lines(page.runs, threshold)),
    )


def reconstruct_pages(
    pages: Iterable[Page],
    threshold: float = LINE_BREAK_THRESHOLD,
) -> list[PageText]:
    """Page texts in input order; page order is never re-derived."""
    return [reconstruct_page(page, threshold) for page in pages]


class GlyphSource(Protocol):
    @property
    def page_count(self) -> int: ...

    def get_page(self, number: int) -> Sequence[TextRun]: ...

    def get_document_info(self) -> dict[str, str]: ...


def read_pages(source: GlyphSource) -> list[Page]:
    return [
        Page(page_number=number, runs=tuple(source.get_page(number)))
        for number in range(1, source.page_count + 1)
    ]


class PdfGlyphSource:
    """Glyph runs from a PDF through PyMuPDF; pages are numbered from 1."""

    def __init__(self, doc: object) -> None:
        self._doc = doc

    @classmethod
    def from_bytes(cls, data: bytes) -> "PdfGlyphSource":
        try:
            import fitz  # pymupdf
        except ImportError as exc:
            raise SourceUnreadable("PDF input requires the 'pymupdf' package.") from exc
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            raise SourceUnreadable(f"Not a readable PDF document: {exc}") from exc
        return cls(doc)

    @property
    def page_count(self) -> int:
        return self._doc.page_count  # type: ignore[attr-defined]

    def get_page(self, number: int) -> list[TextRun]:
        page = self._doc[number - 1]  # type: ignore[index]
        runs: list[TextRun] = []
        for block in page.get_text("dict").get("blocks", []):
            for line in block.get("lines", []):
                for span in line.get("spans", []):
                    text = span.get("text", "")
                    if not text.strip():
                        continue
                    origin = span.get("origin") or (0.0, span.get("bbox", (0, 0, 0, 0))[3])
                    runs.append(TextRun(text=text, baseline_y=float(origin[1])))
        return runs

    def get_document_info(self) -> dict[str, str]:
        meta = self._doc.metadata or {}  # type: ignore[attr-defined]
        info: dict[str, str] = {}
        for key in ("title", "author"):
            value = (meta.get(key) or "").strip()
            if value:
                info[key] = value
        return info

    def close(self) -> None:
        self._doc.close()  # type: ignore[attr-defined]
