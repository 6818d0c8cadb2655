from __future__ import annotations

from datetime import datetime, timedelta, timezone

from hengpai.archive import KIND_BINARY, KIND_MARKUP, KIND_STYLE, ArchiveEntry
from hengpai.assemble import (
    TOOL_ATTRIBUTION,
    assemble_markdown,
    build_epub_from_pages,
    pages_to_chapters,
    repackage_entries,
)
from hengpai.chapters import Chapter
from hengpai.config import ConversionConfig
from hengpai.glyphs import PageText
from hengpai.manifest import DocumentMetadata


def _clock() -> datetime:
    return datetime(2024, 1, 2, 3, 4, 5)


def test_assemble_markdown_layout() -> None:
    chapters = [
        Chapter("a.xhtml", 1, "開始", "開始", "第一段"),
        Chapter("b.xhtml", 2, "Next", "next", ""),
    ]
    doc = assemble_markdown(
        DocumentMetadata(title="書名", author="作者"),
        chapters,
        transforms=["markdown rendering"],
        now=_clock,
    )
    lines = doc.split("\n")
    assert lines[0] == "# 書名"
    assert "**Author:** 作者" in lines
    assert "*Generated: 2024-01-02 03:04:05*" in lines
    assert f"> {TOOL_ATTRIBUTION}" in lines
    assert "- [開始](#開始)" in lines
    assert "- [Next](#next)" in lines
    assert "## 開始 {#開始}" in lines
    assert "## Next {#next}" in lines
    assert doc.index("## 開始 {#開始}") < doc.index("第一段") < doc.index("## Next {#next}")
    assert "- Chapters: 2" in lines
    assert "- Transforms: markdown rendering" in lines
    assert doc.endswith("- Completed: 2024-01-02 03:04:05\n")


def test_assemble_markdown_without_author() -> None:
    doc = assemble_markdown(DocumentMetadata(title="T"), [], now=_clock)
    assert "**Author:**" not in doc
    assert "- Chapters: 0" in doc
    assert "- Transforms: none" in doc


def test_repackage_rewrites_only_text_entries() -> None:
    entries = [
        ArchiveEntry("mimetype", KIND_BINARY, b"application/epub+zip"),
        ArchiveEntry("content.opf", KIND_BINARY, b"<package/>"),
        ArchiveEntry("ch1.xhtml", KIND_MARKUP, "<p>a</p>"),
        ArchiveEntry("style.css", KIND_STYLE, "p {}"),
        ArchiveEntry("img.png", KIND_BINARY, b"\x89PNG"),
    ]
    out = repackage_entries(
        entries,
        rewrite_markup=lambda text: text.upper(),
        rewrite_style=lambda text: text + "/* x */",
        workers=3,
    )
    assert [e.path for e in out] == [e.path for e in entries]
    assert out[0] == entries[0]
    assert out[1] == entries[1]
    assert out[2].content == "<P>A</P>"
    assert out[3].content == "p {}/* x */"
    assert out[4].data == b"\x89PNG"


def test_repackage_keeps_original_on_failure() -> None:
    entries = [
        ArchiveEntry("bad.xhtml", KIND_MARKUP, "<p>bad</p>"),
        ArchiveEntry("good.xhtml", KIND_MARKUP, "<p>good</p>"),
    ]
    calls: list[tuple[int, int, str]] = []

    def _rewrite(text: str) -> str:
        if "bad" in text:
            raise ValueError("cannot rewrite")
        return text + "!"

    out = repackage_entries(
        entries,
        rewrite_markup=_rewrite,
        rewrite_style=lambda text: text,
        progress=lambda done, total, label: calls.append((done, total, label)),
    )
    assert out[0].content == "<p>bad</p>"
    assert out[1].content == "<p>good</p>!"
    assert calls == [(1, 2, "bad.xhtml"), (2, 2, "good.xhtml")]


def test_pages_to_chapters() -> None:
    pages = [PageText(1, "这个\nline two"), PageText(2, "")]
    chapters = pages_to_chapters(pages, convert=lambda text: text.replace("这个", "這個"))
    assert [c.title for c in chapters] == ["Page 1", "Page 2"]
    assert [c.anchor_slug for c in chapters] == ["page-1", "page-2"]
    assert chapters[0].rendered_body == "這個\nline two"
    assert chapters[1].rendered_body == ""


def test_build_epub_from_pages() -> None:
    pages = [PageText(1, "a < b\nsecond"), PageText(2, "end")]
    entries = build_epub_from_pages(
        DocumentMetadata(title="Tom & Jerry", author="Hanna"),
        pages,
        ConversionConfig(line_height="1.6"),
        now=_clock,
    )
    paths = [e.path for e in entries]
    assert paths[0] == "mimetype"
    assert "META-INF/container.xml" in paths
    assert "OEBPS/content.opf" in paths
    assert "OEBPS/nav.xhtml" in paths
    assert "OEBPS/style.css" in paths
    assert paths[-2:] == ["OEBPS/page-0001.xhtml", "OEBPS/page-0002.xhtml"]

    by_path = {e.path: e for e in entries}
    opf = by_path["OEBPS/content.opf"].text
    assert "<dc:title>Tom &amp; Jerry</dc:title>" in opf
    assert "<dc:creator>Hanna</dc:creator>" in opf
    assert '<itemref idref="p0002"/>' in opf
    page = by_path["OEBPS/page-0001.xhtml"].text
    assert "<p>a &lt; b</p>" in page
    assert "<p>second</p>" in page
    assert "hengpai-typography" in page
    assert "line-height: 1.6 !important;" in page
    assert "line-height: 1.6 !important;" in by_path["OEBPS/style.css"].text


def test_modified_timestamp_is_utc() -> None:
    def _clock_east() -> datetime:
        return datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone(timedelta(hours=8)))

    entries = build_epub_from_pages(
        DocumentMetadata(title="T", author=""),
        [PageText(1, "x")],
        ConversionConfig(),
        now=_clock_east,
    )
    opf = next(e for e in entries if e.path == "OEBPS/content.opf").text
    assert "2024-01-01T19:04:05Z" in opf
