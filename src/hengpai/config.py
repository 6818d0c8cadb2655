from __future__ import annotations

import os
import re
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Mapping

import tomllib

CONFIG_ENV = "HENGPAI_CONFIG"
CONFIG_TABLE = "hengpai"

OUTPUT_EPUB = "epub"
OUTPUT_MARKDOWN = "md"
OUTPUT_KINDS = (OUTPUT_EPUB, OUTPUT_MARKDOWN)

SCRIPT_TRADITIONAL = "traditional"

DEFAULT_LINE_HEIGHT = "1.2"
DEFAULT_FONT_FAMILIES = (
    "Microsoft JhengHei",
    "微軟正黑體",
    "PingFang TC",
    "Helvetica Neue",
    "Arial",
    "sans-serif",
)
# Generic families must not be quoted in CSS.
_GENERIC_FONT_FAMILIES = {"serif", "sans-serif", "monospace", "cursive", "fantasy", "system-ui"}
# Characters that would end the quoted name or the declaration.
_UNSAFE_FONT_NAME_RE = re.compile(r"""["'\\;{}<>\r\n]""")


def _is_positive_decimal(value: str) -> bool:
    try:
        number = Decimal(value)
    except InvalidOperation:
        return False
    return number.is_finite() and number > 0


@dataclass(frozen=True)
class ConversionConfig:
    output_kind: str = OUTPUT_EPUB
    line_height: str = DEFAULT_LINE_HEIGHT
    script_target: str = SCRIPT_TRADITIONAL
    font_families: tuple[str, ...] = field(default=DEFAULT_FONT_FAMILIES)
    workers: int = 1

    def __post_init__(self) -> None:
        if self.output_kind not in OUTPUT_KINDS:
            raise ValueError(
                f"Unsupported output format '{self.output_kind}'. "
                f"Supported: {', '.join(OUTPUT_KINDS)}"
            )
        line_height = str(self.line_height).strip()
        if not _is_positive_decimal(line_height):
            raise ValueError(f"Line height must be a positive decimal: {self.line_height!r}")
        object.__setattr__(self, "line_height", line_height)
        if self.script_target != SCRIPT_TRADITIONAL:
            raise ValueError(
                f"Unsupported script target '{self.script_target}'; only "
                f"'{SCRIPT_TRADITIONAL}' is available."
            )
        families = tuple(name.strip() for name in self.font_families if name and name.strip())
        if not families:
            raise ValueError("At least one font family is required.")
        for name in families:
            if _UNSAFE_FONT_NAME_RE.search(name):
                raise ValueError(f"Font family name contains CSS syntax: {name!r}")
        object.__setattr__(self, "font_families", families)
        if self.workers < 1:
            raise ValueError(f"Worker count must be at least 1: {self.workers}")

    @property
    def font_family_css(self) -> str:
        parts: list[str] = []
        for name in self.font_families:
            if name.lower() in _GENERIC_FONT_FAMILIES:
                parts.append(name)
            else:
                parts.append(f'"{name}"')
        return ", ".join(parts)

    def with_overrides(self, **overrides: object) -> "ConversionConfig":
        values = {key: value for key, value in overrides.items() if value is not None}
        if not values:
            return self
        return replace(self, **values)


def _config_from_mapping(payload: Mapping[str, object]) -> ConversionConfig:
    kwargs: dict[str, object] = {}
    output_kind = payload.get("format")
    if isinstance(output_kind, str):
        kwargs["output_kind"] = output_kind.strip().lower()
    line_height = payload.get("line_height")
    if isinstance(line_height, (int, float, str)) and not isinstance(line_height, bool):
        kwargs["line_height"] = str(line_height)
    fonts = payload.get("font_families")
    if isinstance(fonts, list):
        kwargs["font_families"] = tuple(str(name) for name in fonts)
    workers = payload.get("workers")
    if isinstance(workers, int) and not isinstance(workers, bool):
        kwargs["workers"] = workers
    return ConversionConfig(**kwargs)  # type: ignore[arg-type]


def resolve_config_path(path: Path | None = None) -> Path | None:
    if path is not None:
        return path
    env_path = os.environ.get(CONFIG_ENV)
    if env_path:
        return Path(env_path).expanduser()
    return None


def load_config(path: Path | None = None) -> ConversionConfig:
    """Load a ``[hengpai]`` table from a TOML file, or return the defaults."""
    config_path = resolve_config_path(path)
    if config_path is None:
        return ConversionConfig()
    try:
        with config_path.open("rb") as fh:
            data = tomllib.load(fh)
    except FileNotFoundError as exc:
        raise FileNotFoundError(f"Config file not found: {config_path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid TOML in {config_path}: {exc}") from exc
    table = data.get(CONFIG_TABLE, {})
    if not isinstance(table, Mapping):
        raise ValueError(f"[{CONFIG_TABLE}] in {config_path} must be a table.")
    return _config_from_mapping(table)
