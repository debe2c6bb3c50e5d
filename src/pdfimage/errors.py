"""Exception hierarchy for the import pipeline."""

from __future__ import annotations


class ImageError(Exception):
    """Base class for every error raised by pdfimage."""


class NotFoundError(ImageError, LookupError):
    """Unknown cache key, or a source file/URL that does not exist."""


class ReadError(ImageError):
    """The source bytes could not be read."""


class DecodeError(ImageError):
    """The bytes do not parse as a supported raster format."""


class EncodeError(ImageError):
    """The target encoder rejected the requested parameters."""
