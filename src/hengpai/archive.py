from __future__ import annotations

import io
import zipfile
from dataclasses import dataclass, replace

from .errors import SourceUnreadable

KIND_DIRECTORY = "directory"
KIND_MARKUP = "markup"
KIND_STYLE = "style"
KIND_BINARY = "binary"

MARKUP_EXTS = (".xhtml", ".html", ".htm")
STYLE_EXTS = (".css",)

MIMETYPE_PATH = "mimetype"
EPUB_MIMETYPE = "application/epub+zip"

_TEXT_ENCODINGS = ("utf-8", "gb18030", "big5")


def classify_path(path: str) -> str:
    if path.endswith("/"):
        return KIND_DIRECTORY
    lowered = path.lower()
    if lowered.endswith(MARKUP_EXTS):
        return KIND_MARKUP
    if lowered.endswith(STYLE_EXTS):
        return KIND_STYLE
    return KIND_BINARY


def decode_text(raw: bytes) -> str:
    if raw.startswith(b"\xef\xbb\xbf"):
        return raw[3:].decode("utf-8", errors="replace")
    if raw.startswith((b"\xff\xfe", b"\xfe\xff")):
        return raw.decode("utf-16", errors="replace")
    for enc in _TEXT_ENCODINGS:
        try:
            return raw.decode(enc)
        except UnicodeDecodeError:
            continue
    return raw.decode("utf-8", errors="ignore")


@dataclass(frozen=True)
class ArchiveEntry:
    path: str
    kind: str
    content: str | bytes

    @classmethod
    def from_raw(cls, path: str, raw: bytes) -> "ArchiveEntry":
        kind = classify_path(path)
        if kind == KIND_DIRECTORY:
            return cls(path=path, kind=kind, content=b"")
        if kind in (KIND_MARKUP, KIND_STYLE):
            return cls(path=path, kind=kind, content=decode_text(raw))
        return cls(path=path, kind=kind, content=raw)

    @property
    def is_text(self) -> bool:
        return self.kind in (KIND_MARKUP, KIND_STYLE)

    @property
    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        return decode_text(self.content)

    @property
    def data(self) -> bytes:
        if isinstance(self.content, bytes):
            return self.content
        return self.content.encode("utf-8")

    def with_content(self, content: str | bytes) -> "ArchiveEntry":
        return replace(self, content=content)


class ZipArchiveStore:
    """Reads entries from an EPUB (zip) container and writes a new one."""

    def __init__(self, source: zipfile.ZipFile | None = None) -> None:
        self._source = source
        self._pending: dict[str, bytes | None] = {}

    @classmethod
    def from_bytes(cls, data: bytes) -> "ZipArchiveStore":
        try:
            zf = zipfile.ZipFile(io.BytesIO(data), "r")
        except (zipfile.BadZipFile, OSError) as exc:
            raise SourceUnreadable(f"Not a readable EPUB archive: {exc}") from exc
        return cls(zf)

    @classmethod
    def empty(cls) -> "ZipArchiveStore":
        return cls(None)

    def list_entries(self) -> list[ArchiveEntry]:
        if self._source is None:
            return []
        entries: list[ArchiveEntry] = []
        for info in self._source.infolist():
            if info.is_dir():
                entries.append(ArchiveEntry(path=info.filename, kind=KIND_DIRECTORY, content=b""))
                continue
            entries.append(ArchiveEntry.from_raw(info.filename, self.read_entry(info.filename)))
        return entries

    def read_entry(self, path: str) -> bytes:
        if self._source is None:
            raise KeyError(path)
        try:
            with self._source.open(path, "r") as handle:
                return handle.read()
        # Encrypted members raise RuntimeError, unknown compression NotImplementedError.
        except (
            zipfile.BadZipFile,
            zipfile.LargeZipFile,
            OSError,
            RuntimeError,
            NotImplementedError,
        ) as exc:
            raise SourceUnreadable(f"Cannot read '{path}' from archive: {exc}") from exc

    def write_entry(self, path: str, content: str | bytes | None) -> None:
        if path.endswith("/"):
            self._pending[path] = None
            return
        if isinstance(content, str):
            content = content.encode("utf-8")
        self._pending[path] = content or b""

    def write_entries(self, entries: list[ArchiveEntry]) -> None:
        for entry in entries:
            if entry.kind == KIND_DIRECTORY:
                self.write_entry(entry.path, None)
            else:
                self.write_entry(entry.path, entry.data)

    def finalize(self) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as out:
            # EPUB readers expect an uncompressed mimetype as the first member.
            if MIMETYPE_PATH in self._pending:
                out.writestr(
                    MIMETYPE_PATH,
                    self._pending[MIMETYPE_PATH] or EPUB_MIMETYPE.encode("ascii"),
                    compress_type=zipfile.ZIP_STORED,
                )
            for path, payload in self._pending.items():
                if path == MIMETYPE_PATH:
                    continue
                if payload is None:
                    out.writestr(zipfile.ZipInfo(path), b"")
                    continue
                out.writestr(path, payload, compress_type=zipfile.ZIP_DEFLATED)
        return buffer.getvalue()

    def close(self) -> None:
        if self._source is not None:
            self._source.close()
            self._source = None

    def __enter__(self) -> "ZipArchiveStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
