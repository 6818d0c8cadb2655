from __future__ import annotations

import logging
import re
from typing import Protocol

logger = logging.getLogger(__name__)

# Last-resort simplified -> traditional table. No character is both a key and a
# value, so applying the table twice is the same as applying it once.
FALLBACK_S2T_MAP: dict[str, str] = {
    "这": "這",
    "个": "個",
    "说": "說",
    "时": "時",
    "会": "會",
    "来": "來",
    "对": "對",
    "们": "們",
    "国": "國",
    "经": "經",
    "过": "過",
    "现": "現",
    "发": "發",
    "应": "應",
    "样": "樣",
    "还": "還",
    "没": "沒",
    "问": "問",
    "题": "題",
    "间": "間",
    "关": "關",
    "系": "係",
    "实": "實",
    "际": "際",
    "认": "認",
    "为": "為",
    "学": "學",
    "习": "習",
    "电": "電",
    "脑": "腦",
    "网": "網",
    "络": "絡",
    "计": "計",
    "机": "機",
    "数": "數",
    "据": "據",
    "库": "庫",
    "软": "軟",
    "设": "設",
    "语": "語",
    "术": "術",
    "书": "書",
    "见": "見",
    "长": "長",
    "东": "東",
    "车": "車",
    "门": "門",
    "马": "馬",
    "鸟": "鳥",
    "页": "頁",
}
_FALLBACK_PATTERN = re.compile("|".join(map(re.escape, FALLBACK_S2T_MAP)))

OPENCC_PROFILE = "s2tw"


def basic_simplified_to_traditional(text: str) -> str:
    if not text:
        return text
    return _FALLBACK_PATTERN.sub(lambda m: FALLBACK_S2T_MAP[m.group(0)], text)


class ScriptConverter(Protocol):
    name: str

    def convert(self, text: str) -> str: ...


class ScriptConverterUnavailableError(RuntimeError):
    """Raised when the external script conversion engine cannot be loaded."""


class FallbackScriptConverter:
    name = "fallback-table"

    def convert(self, text: str) -> str:
        return basic_simplified_to_traditional(text)


class OpenCCScriptConverter:
    """Simplified -> Taiwan traditional conversion through OpenCC."""

    name = "opencc"

    def __init__(self, profile: str = OPENCC_PROFILE) -> None:
        try:
            import opencc  # type: ignore
        except ImportError as exc:
            raise ScriptConverterUnavailableError(
                "External script conversion requires the 'opencc' package."
            ) from exc
        try:
            self._converter = opencc.OpenCC(profile)
        except Exception as exc:
            raise ScriptConverterUnavailableError(
                f"Failed to load OpenCC profile '{profile}': {exc}"
            ) from exc
        self.profile = profile

    def convert(self, text: str) -> str:
        return self._converter.convert(text)


class GuardedScriptConverter:
    """Delegates to ``primary`` and uses ``fallback`` when it raises."""

    def __init__(self, primary: ScriptConverter, fallback: ScriptConverter | None = None) -> None:
        self.primary = primary
        self.fallback = fallback or FallbackScriptConverter()
        self.name = primary.name

    def convert(self, text: str) -> str:
        try:
            return self.primary.convert(text)
        except Exception as exc:
            logger.warning(
                "%s conversion failed, using %s: %s", self.primary.name, self.fallback.name, exc
            )
            return self.fallback.convert(text)


def build_script_converter(prefer_external: bool = True) -> ScriptConverter:
    if not prefer_external:
        return FallbackScriptConverter()
    try:
        primary = OpenCCScriptConverter()
    except ScriptConverterUnavailableError as exc:
        logger.warning("%s Falling back to the built-in character table.", exc)
        return FallbackScriptConverter()
    return GuardedScriptConverter(primary)
