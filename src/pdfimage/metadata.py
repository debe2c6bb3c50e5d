"""Metadata extraction: header-level facts about an image record's raw bytes."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pdfimage.models import COLOR_SPACE_BY_CHANNELS, LOSSLESS_FORMATS, NATIVE_FORMATS, ImageFormat

if TYPE_CHECKING:
    from pdfimage.codec.raster import RasterBackend
    from pdfimage.models import ImageRecord


def extract_metadata(record: ImageRecord, backend: RasterBackend) -> ImageRecord:
    """Refresh dimensions, format, depth and color space from ``record.raw``.

    Records with no bytes are returned untouched. Bit depth and channel
    count keep their previous values when the header does not report them,
    and so does the color space for channel counts other than 1, 3 or 4.

    Raises:
        DecodeError: If the header cannot be parsed at all.
    """
    if not record.raw:
        return record

    info = backend.probe(record.raw)
    record.width = info.width
    record.height = info.height
    record.format = info.format
    record.native = info.format in NATIVE_FORMATS
    record.target_format = ImageFormat.PNG if info.format in LOSSLESS_FORMATS else ImageFormat.JPEG
    if info.bits is not None:
        record.bits = info.bits
    if info.channels is not None:
        record.channels = info.channels
    record.color_space = COLOR_SPACE_BY_CHANNELS.get(record.channels, record.color_space)
    return record
