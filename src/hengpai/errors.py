from __future__ import annotations


class ConversionError(RuntimeError):
    """Base class for conversion failures."""


class MetadataUnavailable(ConversionError):
    """Raised when the package descriptor or its metadata cannot be read."""


class EntryProcessingFailed(ConversionError):
    """Raised when a single archive entry cannot be converted."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


class SourceUnreadable(ConversionError):
    """Raised when the input document cannot be opened at all."""


class UnsupportedSourceFormat(ConversionError):
    """Raised when the input is neither an EPUB archive nor a PDF."""
