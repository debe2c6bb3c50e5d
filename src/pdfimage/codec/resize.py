"""Resize/recode engine: resample a record into PNG or JPEG at exact dimensions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pdfimage.errors import EncodeError
from pdfimage.metadata import extract_metadata
from pdfimage.models import ImageFormat

if TYPE_CHECKING:
    from pdfimage.codec.raster import RGB, RasterBackend
    from pdfimage.models import ImageRecord

logger = logging.getLogger(__name__)

# single-band sources, including 16-bit and 32-bit depths, resample as 8-bit gray
_GRAY_MODES = frozenset({"1", "L", "I;16", "I;16L", "I;16B", "I;16N", "I", "F"})


def resize(
    record: ImageRecord,
    width: int,
    height: int,
    backend: RasterBackend,
    preserve_alpha: bool = True,
    quality: int = 100,
    matte: RGB = (0, 0, 0),
) -> ImageRecord:
    """Re-encode ``record.raw`` at ``width`` x ``height`` in its target format.

    With ``preserve_alpha`` the alpha channel is kept per pixel (straight,
    not premultiplied); otherwise it is blended over the opaque ``matte``.
    A transparent palette color survives as the tRNS key of the PNG output.
    JPEG output never carries alpha.

    The record is updated in place and returned: new ``raw``, refreshed
    metadata, ``recoded`` set and link-only state cleared.

    Raises:
        DecodeError: If the current bytes cannot be decoded.
        EncodeError: If the dimensions are not positive or the encoder fails.
    """
    if width <= 0 or height <= 0:
        raise EncodeError(f"Invalid target size {width}x{height}")

    target_format = record.target_format
    source = backend.decode(record.raw)
    to_png = target_format is ImageFormat.PNG
    transparent = backend.transparent_color(source) if to_png else None

    if backend.has_alpha(source):
        canvas = backend.resample(backend.convert(source, "RGBA"), width, height)
        if transparent is not None:
            canvas = backend.composite(canvas, transparent)
        elif not (preserve_alpha and to_png):
            canvas = backend.composite(canvas, matte)
    else:
        canvas = backend.resample(backend.convert(source, _opaque_mode(source.mode, target_format)), width, height)

    if to_png:
        record.raw = backend.encode_png(canvas, transparency=transparent)
    else:
        record.raw = backend.encode_jpeg(canvas, quality)

    record.source.embed = True
    record.recoded = True
    extract_metadata(record, backend)
    record.target_format = target_format
    logger.debug("Recoded %s to %dx%d %s", record.key or "<unkeyed>", width, height, target_format)
    return record


def _opaque_mode(mode: str, target_format: ImageFormat) -> str:
    if mode in _GRAY_MODES:
        return "L"
    if mode == "CMYK" and target_format is ImageFormat.JPEG:
        return "CMYK"
    return "RGB"
