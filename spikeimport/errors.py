"""Exception types raised while importing spike sorting output."""

from __future__ import annotations


class SpikeImportError(Exception):
    """Base class for all import failures."""


class UnsupportedFormatError(SpikeImportError, ValueError):
    """The requested format name is not known to the registry."""

    def __init__(self, format_name: str):
        self.format_name = format_name
        super().__init__(f"Unsupported spike sorting format: {format_name!r}")


class FormatNotImplementedError(SpikeImportError, NotImplementedError):
    """The format is recognized but no adapter has been written for it."""

    def __init__(self, format_name: str):
        self.format_name = format_name
        super().__init__(f"{format_name} output format not implemented yet")


class MissingSourceFileError(SpikeImportError, FileNotFoundError):
    """A file required by an adapter does not exist."""

    def __init__(self, file, message: str = ""):
        self.file = str(file)
        super().__init__(message or f"Required source file not found: {self.file}")


class MissingMetadataError(SpikeImportError, ValueError):
    """Session metadata lacks a field the import needs."""

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Session metadata is missing required field: {field}")


class FilterFieldMissingError(SpikeImportError, LookupError):
    """A unit filter names a field that no unit in the collection carries."""

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"The filtered field does not exist in the collection: {field}")
