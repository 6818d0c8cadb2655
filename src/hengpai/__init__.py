from .config import ConversionConfig, load_config
from .core import ConversionResult, convert_archive, convert_file, convert_glyph_source
from .errors import (
    ConversionError,
    EntryProcessingFailed,
    MetadataUnavailable,
    SourceUnreadable,
    UnsupportedSourceFormat,
)
from .glyphs import reconstruct_pages
from .render import html_to_markdown
from .restyle import restyle_markup, restyle_stylesheet
from .script import build_script_converter

__all__ = [
    "ConversionConfig",
    "load_config",
    "ConversionResult",
    "convert_archive",
    "convert_file",
    "convert_glyph_source",
    "ConversionError",
    "EntryProcessingFailed",
    "MetadataUnavailable",
    "SourceUnreadable",
    "UnsupportedSourceFormat",
    "reconstruct_pages",
    "html_to_markdown",
    "restyle_markup",
    "restyle_stylesheet",
    "build_script_converter",
]
