from __future__ import annotations

import re
from typing import Callable

from .config import ConversionConfig

STYLE_BLOCK_ID = "hengpai-typography"
CSS_BLOCK_BEGIN = "/* hengpai:begin */"
CSS_BLOCK_END = "/* hengpai:end */"

HORIZONTAL_DECLARATIONS = "writing-mode: horizontal-tb; direction: ltr;"

_VALUE_END = r"[^;\"'{}<>]*"
_VERTICAL_WRITING_RE = re.compile(
    rf"(?:-(?:webkit|epub|ms)-)?writing-mode\s*:\s*(?:vertical|sideways|tb){_VALUE_END};?",
    re.IGNORECASE,
)
_TEXT_ORIENTATION_RE = re.compile(
    rf"(?:-(?:webkit|epub)-)?text-orientation\s*:{_VALUE_END};?",
    re.IGNORECASE,
)
_INJECTED_STYLE_RE = re.compile(
    rf"<style\b[^>]*\bid\s*=\s*[\"']{STYLE_BLOCK_ID}[\"'][^>]*>.*?</style\s*>\n?",
    re.IGNORECASE | re.DOTALL,
)
_INJECTED_CSS_RE = re.compile(
    rf"\s*{re.escape(CSS_BLOCK_BEGIN)}.*?{re.escape(CSS_BLOCK_END)}\n?",
    re.DOTALL,
)
_XML_ENCODING_RE = re.compile(r"(<\?xml\b[^>]*?\bencoding\s*=\s*)([\"'])[^\"']*\2", re.IGNORECASE)
# Covers <meta charset="x"> and the charset inside an http-equiv content value.
_META_CHARSET_RE = re.compile(r"""(<meta\b[^>]*?\bcharset\s*=\s*)(["']?)[\w.:-]+\2""", re.IGNORECASE)
_CSS_CHARSET_RE = re.compile(r"""(@charset\s+)(["'])[^"']*\2""", re.IGNORECASE)
_HORIZONTAL_PROPS_RE = re.compile(r"(?:^|;)\s*(?:-webkit-)?(?:writing-mode|direction)\s*:[^;]*", re.IGNORECASE)
_STYLE_ATTR_RE = re.compile(r"""(\sstyle\s*=\s*)(["'])(.*?)\2""", re.IGNORECASE | re.DOTALL)


def declare_utf8(text: str) -> str:
    """Entries are always written back as UTF-8; make their declarations agree."""
    text = _XML_ENCODING_RE.sub(r"\1\2utf-8\2", text, count=1)
    text = _META_CHARSET_RE.sub(r"\1\2utf-8\2", text)
    return _CSS_CHARSET_RE.sub(r"\1\2utf-8\2", text)


def strip_vertical_writing(text: str) -> str:
    """Remove vertical writing-mode and text-orientation declarations."""
    text = _VERTICAL_WRITING_RE.sub("", text)
    return _TEXT_ORIENTATION_RE.sub("", text)


def _typography_rules(config: ConversionConfig, indent: str = "    ") -> str:
    fonts = config.font_family_css
    lh = config.line_height
    return (
        "html, body {\n"
        f"{indent}writing-mode: horizontal-tb !important;\n"
        f"{indent}direction: ltr !important;\n"
        f"{indent}font-family: {fonts} !important;\n"
        f"{indent}line-height: {lh} !important;\n"
        "}\n"
        "p, div, span, h1, h2, h3, h4, h5, h6, li, td, th {\n"
        f"{indent}font-family: {fonts} !important;\n"
        f"{indent}line-height: {lh} !important;\n"
        "}\n"
        "* {\n"
        f"{indent}font-family: {fonts} !important;\n"
        f"{indent}line-height: {lh} !important;\n"
        "}\n"
    )


def typography_style_block(config: ConversionConfig) -> str:
    return f'<style type="text/css" id="{STYLE_BLOCK_ID}">\n{_typography_rules(config)}</style>'


def _merge_horizontal_style(existing: str) -> str:
    kept = _HORIZONTAL_PROPS_RE.sub("", existing).strip().strip(";").strip()
    if kept:
        return f"{kept}; {HORIZONTAL_DECLARATIONS}"
    return HORIZONTAL_DECLARATIONS


def _force_horizontal_attr(markup: str, tag: str) -> str:
    opener = re.compile(rf"<{tag}(?=[\s>/])([^>]*)>", re.IGNORECASE)
    match = opener.search(markup)
    if match is None:
        return markup
    attrs = match.group(1)
    self_closing = attrs.rstrip().endswith("/")
    if self_closing:
        attrs = attrs.rstrip()[:-1]
    style_match = _STYLE_ATTR_RE.search(attrs)
    if style_match:
        merged = _merge_horizontal_style(style_match.group(3))
        quote = style_match.group(2)
        attrs = (
            attrs[: style_match.start()]
            + f"{style_match.group(1)}{quote}{merged}{quote}"
            + attrs[style_match.end():]
        )
    else:
        attrs = f'{attrs} style="{HORIZONTAL_DECLARATIONS}"'
    closing = "/>" if self_closing else ">"
    return markup[: match.start()] + f"<{tag}{attrs}{closing}" + markup[match.end():]


def _insert_before_head_end(markup: str, block: str) -> str | None:
    match = re.search(r"</head\s*>", markup, re.IGNORECASE)
    if match is None:
        return None
    return markup[: match.start()] + block + "\n" + markup[match.start():]


def _insert_before_root(markup: str, block: str) -> str | None:
    match = re.search(r"<html(?=[\s>])", markup, re.IGNORECASE)
    if match is None:
        return None
    return markup[: match.start()] + block + "\n" + markup[match.start():]


def _prepend(markup: str, block: str) -> str | None:
    return block + "\n" + markup


_STYLE_INSERTION_STRATEGIES: tuple[Callable[[str, str], str | None], ...] = (
    _insert_before_head_end,
    _insert_before_root,
    _prepend,
)


def inject_style_block(markup: str, block: str) -> str:
    markup = _INJECTED_STYLE_RE.sub("", markup)
    for strategy in _STYLE_INSERTION_STRATEGIES:
        result = strategy(markup, block)
        if result is not None:
            return result
    return markup


def restyle_markup(markup: str, config: ConversionConfig) -> str:
    """Force horizontal layout and inject the font/line-height block.

    Rewriting already rewritten markup yields the same text.
    """
    content = strip_vertical_writing(declare_utf8(markup))
    content = _force_horizontal_attr(content, "html")
    content = _force_horizontal_attr(content, "body")
    return inject_style_block(content, typography_style_block(config))


def restyle_stylesheet(css: str, config: ConversionConfig) -> str:
    content = _INJECTED_CSS_RE.sub("", declare_utf8(css))
    content = strip_vertical_writing(content).rstrip()
    block = f"{CSS_BLOCK_BEGIN}\n{_typography_rules(config)}{CSS_BLOCK_END}\n"
    if content:
        return f"{content}\n\n{block}"
    return block
