from __future__ import annotations

import html
import logging
import re
import unicodedata
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Iterable

from .archive import ArchiveEntry
from .errors import MetadataUnavailable

logger = logging.getLogger(__name__)

CONTAINER_PATH = "META-INF/container.xml"
DEFAULT_TITLE = "Converted eBook"

_CONTAINER_NS = {"c": "urn:oasis:names:tc:opendocument:xmlns:container"}
_DC_NS = "http://purl.org/dc/elements/1.1/"
_FULL_PATH_RE = re.compile(r"""full-path\s*=\s*["']([^"']+)["']""", re.IGNORECASE)
_DC_FIELD_RE = {
    name: re.compile(rf"<dc:{name}\b[^>]*>(.*?)</dc:{name}\s*>", re.IGNORECASE | re.DOTALL)
    for name in ("title", "creator")
}


@dataclass(frozen=True)
class DocumentMetadata:
    title: str = DEFAULT_TITLE
    author: str = ""


def _rootfile_from_container(container_xml: str) -> str | None:
    try:
        root = ET.fromstring(container_xml)
    except ET.ParseError:
        match = _FULL_PATH_RE.search(container_xml)
        return match.group(1) if match else None
    for rf in root.findall(".//c:rootfile", _CONTAINER_NS):
        full = rf.attrib.get("full-path")
        if full:
            return full
    return None


def find_package_descriptor(entries: Iterable[ArchiveEntry]) -> str | None:
    by_path = {entry.path: entry for entry in entries}
    container = by_path.get(CONTAINER_PATH)
    if container is not None:
        full_path = _rootfile_from_container(container.text)
        if full_path and full_path in by_path:
            return full_path
        if full_path:
            logger.debug("Container points at missing descriptor %s", full_path)
    # Fallback: first *.opf found
    for path in by_path:
        if path.lower().endswith(".opf"):
            return path
    return None


def _clean_field(raw: str) -> str:
    text = unicodedata.normalize("NFC", raw)
    return " ".join(text.split())


def _fields_from_xml(opf_xml: str) -> tuple[str | None, str | None]:
    root = ET.fromstring(opf_xml)
    found: dict[str, str | None] = {"title": None, "creator": None}
    for name in found:
        for el in root.iter(f"{{{_DC_NS}}}{name}"):
            value = _clean_field("".join(el.itertext()))
            if value:
                found[name] = value
                break
    return found["title"], found["creator"]


def _fields_from_pattern(opf_text: str) -> tuple[str | None, str | None]:
    found: dict[str, str | None] = {"title": None, "creator": None}
    for name, pattern in _DC_FIELD_RE.items():
        for match in pattern.finditer(opf_text):
            value = _clean_field(html.unescape(re.sub(r"<[^>]+>", "", match.group(1))))
            if value:
                found[name] = value
                break
    return found["title"], found["creator"]


def load_descriptor_fields(entries: list[ArchiveEntry]) -> tuple[str | None, str | None]:
    descriptor_path = find_package_descriptor(entries)
    if descriptor_path is None:
        raise MetadataUnavailable("No package descriptor (.opf) found in archive")
    descriptor = next(entry for entry in entries if entry.path == descriptor_path)
    opf_text = descriptor.text
    try:
        return _fields_from_xml(opf_text)
    except ET.ParseError:
        logger.debug("Descriptor %s is not well-formed XML; using pattern match", descriptor_path)
        return _fields_from_pattern(opf_text)


def resolve_metadata(entries: Iterable[ArchiveEntry]) -> DocumentMetadata:
    """Title and author from the package descriptor; defaults when unavailable."""
    entry_list = list(entries)
    try:
        title, author = load_descriptor_fields(entry_list)
    except MetadataUnavailable as exc:
        logger.warning("Metadata unavailable, using defaults: %s", exc)
        return DocumentMetadata()
    if not title:
        logger.warning("Package descriptor has no title; using '%s'", DEFAULT_TITLE)
    return DocumentMetadata(title=title or DEFAULT_TITLE, author=author or "")
