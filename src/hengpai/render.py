from __future__ import annotations

import re
from typing import Callable

from bs4 import (
    BeautifulSoup,
    Comment,
    Declaration,
    Doctype,
    NavigableString,
    ProcessingInstruction,
    Tag,
)

# Removed before any other rule runs.
DROPPED_TAGS = ("script", "style", "meta", "link", "title", "noscript", "template")

# Unwrapped with blank lines around their content.
CONTAINER_TAGS = {
    "address",
    "article",
    "aside",
    "body",
    "center",
    "dd",
    "div",
    "dl",
    "dt",
    "figcaption",
    "figure",
    "footer",
    "form",
    "header",
    "hgroup",
    "main",
    "nav",
    "section",
}
HEADING_TAGS = {"h1": 1, "h2": 2, "h3": 3, "h4": 4, "h5": 5, "h6": 6}
INLINE_MARKERS = {
    "strong": ("**", "**"),
    "b": ("**", "**"),
    "em": ("*", "*"),
    "i": ("*", "*"),
    "cite": ("*", "*"),
    "u": ("++", "++"),
    "ins": ("++", "++"),
    "mark": ("==", "=="),
    "del": ("~~", "~~"),
    "s": ("~~", "~~"),
    "strike": ("~~", "~~"),
}
FENCE = "```"
# A link wrapping one of these keeps the block and links its first line.
LINK_BLOCK_TAGS = sorted({*HEADING_TAGS, *CONTAINER_TAGS, "p", "ul", "ol", "blockquote", "pre", "table"})

_SKIPPED_STRINGS = (Comment, Declaration, Doctype, ProcessingInstruction)
_WS_RE = re.compile(r"\s+")
_FENCE_RE = re.compile(r"`{3,}")
_HEADING_MARKER_RE = re.compile(r"(#{1,6} )?(.*)")


def _local_name(tag: Tag) -> str:
    name = (tag.name or "").lower()
    return name.split(":", 1)[-1]


def _plain_text(node: Tag) -> str:
    pieces = [str(s) for s in node.find_all(string=True) if not isinstance(s, _SKIPPED_STRINGS)]
    return _WS_RE.sub(" ", "".join(pieces)).strip()


def _wrap_inline(inner: str, opener: str, closer: str) -> str:
    core = inner.strip()
    if not core:
        return inner
    lead = " " if inner[:1].isspace() else ""
    trail = " " if inner[-1:].isspace() else ""
    core = _WS_RE.sub(" ", core)
    return f"{lead}{opener}{core}{closer}{trail}"


def _block(text: str) -> str:
    return f"\n\n{text}\n\n"


def _normalize_lines(text: str) -> str:
    """Strip every line outside fenced code and collapse blank runs."""
    out: list[str] = []
    fence: str | None = None
    blank_run = 0
    for raw in text.split("\n"):
        if fence is not None:
            out.append(raw.rstrip())
            if raw.strip() == fence:
                fence = None
            continue
        line = raw.strip()
        if not line:
            blank_run += 1
            if blank_run == 1 and out:
                out.append("")
            continue
        blank_run = 0
        if _FENCE_RE.fullmatch(line):
            fence = line
        out.append(line)
    while out and not out[-1]:
        out.pop()
    return "\n".join(out)


class MarkdownRenderer:
    """Walks a parsed document and emits Markdown for the supported tag subset."""

    def __init__(self) -> None:
        self._handlers: dict[str, Callable[[Tag], str]] = {
            "br": lambda tag: "\n",
            "hr": lambda tag: _block("---"),
            "p": self._paragraph,
            "a": self._link,
            "img": self._image,
            "image": self._image,
            "ul": self._list,
            "ol": self._list,
            "li": self._stray_item,
            "blockquote": self._quote,
            "code": self._inline_code,
            "kbd": self._inline_code,
            "pre": self._preformatted,
            "table": self._table,
        }
        for name in HEADING_TAGS:
            self._handlers[name] = self._heading
        for name in INLINE_MARKERS:
            self._handlers[name] = self._inline
        for name in CONTAINER_TAGS:
            self._handlers[name] = self._container

    def render(self, html: str) -> str:
        soup = BeautifulSoup(html, "html.parser")
        for tag in soup.find_all(list(DROPPED_TAGS)):
            tag.decompose()
        head = soup.find("head")
        if head is not None:
            head.decompose()
        root = soup.body or soup
        return _normalize_lines(self._children(root))

    def _children(self, node: Tag) -> str:
        return "".join(self._node(child) for child in node.children)

    def _node(self, node: object) -> str:
        if isinstance(node, _SKIPPED_STRINGS):
            return ""
        if isinstance(node, NavigableString):
            return _WS_RE.sub(" ", str(node))
        if not isinstance(node, Tag):
            return ""
        handler = self._handlers.get(_local_name(node))
        if handler is None:
            return self._children(node)
        return handler(node)

    def _container(self, tag: Tag) -> str:
        return _block(self._children(tag))

    def _heading(self, tag: Tag) -> str:
        level = HEADING_TAGS[_local_name(tag)]
        text = _WS_RE.sub(" ", self._children(tag)).strip()
        if not text:
            return ""
        return _block(f"{'#' * level} {text}")

    def _paragraph(self, tag: Tag) -> str:
        return _block(self._children(tag).strip())

    def _inline(self, tag: Tag) -> str:
        opener, closer = INLINE_MARKERS[_local_name(tag)]
        return _wrap_inline(self._children(tag), opener, closer)

    def _link(self, tag: Tag) -> str:
        href = (tag.get("href") or "").strip()
        rendered = self._children(tag)
        if tag.find(LINK_BLOCK_TAGS) is not None:
            return self._block_link(rendered, href)
        label = _WS_RE.sub(" ", rendered).strip()
        if not label:
            return ""
        if not href:
            return label
        return f"[{label}]({href})"

    @staticmethod
    def _block_link(rendered: str, href: str) -> str:
        lines = _normalize_lines(rendered).split("\n")
        for index, line in enumerate(lines):
            if not line:
                continue
            if href:
                marker, text = _HEADING_MARKER_RE.fullmatch(line).groups()
                lines[index] = f"{marker or ''}[{text}]({href})"
            return _block("\n".join(lines))
        return ""

    def _image(self, tag: Tag) -> str:
        alt = _WS_RE.sub(" ", tag.get("alt") or "").strip()
        src = (tag.get("src") or tag.get("xlink:href") or tag.get("href") or "").strip()
        if not src:
            return alt
        return f"![{alt}]({src})"

    @staticmethod
    def _item_text(item: Tag) -> str:
        # Strings belonging to nested items are emitted on their own lines.
        pieces = [
            str(s)
            for s in item.find_all(string=True)
            if not isinstance(s, _SKIPPED_STRINGS) and s.find_parent("li") is item
        ]
        return _WS_RE.sub(" ", "".join(pieces)).strip()

    def _list(self, tag: Tag) -> str:
        ordered = _local_name(tag) == "ol"
        lines: list[str] = []
        for item in tag.find_all("li"):
            text = self._item_text(item)
            if not text:
                continue
            marker = f"{len(lines) + 1}." if ordered else "-"
            lines.append(f"{marker} {text}")
        if not lines:
            return ""
        return _block("\n".join(lines))

    def _stray_item(self, tag: Tag) -> str:
        text = _plain_text(tag)
        return f"\n- {text}\n" if text else ""

    def _quote(self, tag: Tag) -> str:
        inner = _normalize_lines(self._children(tag))
        if not inner:
            return ""
        quoted = [f"> {line}" if line else ">" for line in inner.split("\n")]
        return _block("\n".join(quoted))

    def _inline_code(self, tag: Tag) -> str:
        text = _WS_RE.sub(" ", tag.get_text()).strip()
        if not text:
            return ""
        fence = "``" if "`" in text else "`"
        pad = " " if fence == "``" else ""
        return f"{fence}{pad}{text}{pad}{fence}"

    def _preformatted(self, tag: Tag) -> str:
        text = tag.get_text().strip("\n")
        if not text.strip():
            return ""
        # The fence must outlast any backtick run in the body.
        longest = max((len(run) for run in _FENCE_RE.findall(text)), default=0)
        fence = FENCE if longest < len(FENCE) else "`" * (longest + 1)
        return _block(f"{fence}\n{text}\n{fence}")

    def _table(self, tag: Tag) -> str:
        rows: list[list[str]] = []
        for row in tag.find_all("tr"):
            if row.find_parent("table") is not tag:
                continue
            cells = [
                _plain_text(cell).replace("|", "\\|")
                for cell in row.find_all(["td", "th"], recursive=False)
            ]
            if cells:
                rows.append(cells)
        if not rows:
            return ""
        lines = [f"| {' | '.join(rows[0])} |"]
        # Separator always follows the first row; header cells are not detected.
        lines.append(f"| {' | '.join('---' for _ in rows[0])} |")
        lines.extend(f"| {' | '.join(cells)} |" for cells in rows[1:])
        return _block("\n".join(lines))


_RENDERER = MarkdownRenderer()


def html_to_markdown(html: str) -> str:
    """Render markup to Markdown.

    Nested lists are flattened to one line per item and every table gets a
    header separator under its first row.
    """
    return _RENDERER.render(html).strip()
