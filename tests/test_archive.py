from __future__ import annotations

import io
import zipfile

import pytest

from hengpai.archive import (
    KIND_BINARY,
    KIND_DIRECTORY,
    KIND_MARKUP,
    KIND_STYLE,
    ArchiveEntry,
    ZipArchiveStore,
    classify_path,
    decode_text,
)
from hengpai.errors import SourceUnreadable


def test_classify_path() -> None:
    assert classify_path("OEBPS/ch1.XHTML") == KIND_MARKUP
    assert classify_path("a.htm") == KIND_MARKUP
    assert classify_path("styles/main.css") == KIND_STYLE
    assert classify_path("content.opf") == KIND_BINARY
    assert classify_path("images/") == KIND_DIRECTORY


def test_decode_text_handles_legacy_encodings() -> None:
    assert decode_text("中文".encode("utf-8")) == "中文"
    assert decode_text(b"\xef\xbb\xbf" + "中文".encode("utf-8")) == "中文"
    assert decode_text("中文".encode("gb18030")) == "中文"
    assert decode_text("中文".encode("utf-16")) == "中文"


def test_store_round_trip_preserves_entries() -> None:
    buffer = io.BytesIO()
    image = bytes(range(256))
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr("mimetype", "application/epub+zip")
        zf.writestr(zipfile.ZipInfo("OEBPS/"), b"")
        zf.writestr("OEBPS/ch1.xhtml", "<p>你好</p>")
        zf.writestr("OEBPS/cover.png", image)

    with ZipArchiveStore.from_bytes(buffer.getvalue()) as store:
        entries = store.list_entries()
    assert [e.kind for e in entries] == [KIND_BINARY, KIND_DIRECTORY, KIND_MARKUP, KIND_BINARY]
    assert entries[2].text == "<p>你好</p>"
    assert entries[3].data == image

    out = ZipArchiveStore.empty()
    out.write_entries(entries)
    with zipfile.ZipFile(io.BytesIO(out.finalize())) as zf:
        assert zf.namelist() == ["mimetype", "OEBPS/", "OEBPS/ch1.xhtml", "OEBPS/cover.png"]
        assert zf.read("OEBPS/cover.png") == image
        assert zf.read("OEBPS/ch1.xhtml").decode("utf-8") == "<p>你好</p>"


def test_finalize_writes_stored_mimetype_first() -> None:
    out = ZipArchiveStore.empty()
    out.write_entry("OEBPS/ch1.xhtml", "<p>x</p>")
    out.write_entry("mimetype", "application/epub+zip")
    with zipfile.ZipFile(io.BytesIO(out.finalize())) as zf:
        infos = zf.infolist()
        assert infos[0].filename == "mimetype"
        assert infos[0].compress_type == zipfile.ZIP_STORED
        assert infos[1].compress_type == zipfile.ZIP_DEFLATED


def test_entry_with_content_keeps_path_and_kind() -> None:
    entry = ArchiveEntry.from_raw("style.css", b"p {}")
    updated = entry.with_content("p { color: red; }")
    assert (updated.path, updated.kind) == ("style.css", KIND_STYLE)
    assert updated.data == b"p { color: red; }"


def test_garbage_is_unreadable() -> None:
    with pytest.raises(SourceUnreadable):
        ZipArchiveStore.from_bytes(b"definitely not a zip")


def _patched_headers(offsets: dict[bytes, int], patch) -> bytes:
    """Build a small archive and rewrite one 16-bit field in each matching header."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_STORED) as zf:
        zf.writestr("mimetype", "application/epub+zip")
        zf.writestr("OEBPS/ch1.xhtml", "<p>x</p>")
    data = bytearray(buf.getvalue())
    for signature, offset in offsets.items():
        start = data.find(signature)
        while start != -1:
            pos = start + offset
            value = patch(int.from_bytes(data[pos : pos + 2], "little"))
            data[pos : pos + 2] = value.to_bytes(2, "little")
            start = data.find(signature, start + 1)
    return bytes(data)


def test_encrypted_member_is_unreadable() -> None:
    # General purpose flag bit 0 in the local and central headers.
    data = _patched_headers({b"PK\x03\x04": 6, b"PK\x01\x02": 8}, lambda flags: flags | 0x01)
    store = ZipArchiveStore.from_bytes(data)
    with pytest.raises(SourceUnreadable):
        store.list_entries()


def test_unsupported_compression_is_unreadable() -> None:
    data = _patched_headers({b"PK\x03\x04": 8, b"PK\x01\x02": 10}, lambda _method: 99)
    store = ZipArchiveStore.from_bytes(data)
    with pytest.raises(SourceUnreadable):
        store.read_entry("OEBPS/ch1.xhtml")
