"""Alpha-mask extractor: turn an image's alpha channel into a grayscale soft mask."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from pdfimage.metadata import extract_metadata
from pdfimage.models import ColorSpace, ImageRecord, SourceRef

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from pdfimage.codec.raster import RasterBackend

logger = logging.getLogger(__name__)

GAMMA = 2.2

# Alpha is handled on a 7-bit scale where 0 is opaque and 127 is transparent.
ALPHA_MAX = 127


def alpha_to_gray(alpha: int) -> int:
    """Map a 7-bit inverted alpha value to a gamma-corrected gray level."""
    return round(((ALPHA_MAX - alpha) / ALPHA_MAX) ** GAMMA * 255)


GRAY_BY_ALPHA: NDArray[np.uint8] = np.array([alpha_to_gray(alpha) for alpha in range(ALPHA_MAX + 1)], dtype=np.uint8)


def to_seven_bit_alpha(alpha: NDArray[np.uint8]) -> NDArray[np.uint8]:
    """Convert 8-bit alpha (255 = opaque) to the 7-bit inverted scale."""
    return (ALPHA_MAX - (alpha >> 1)).astype(np.uint8)


def extract_alpha_mask(record: ImageRecord, backend: RasterBackend) -> ImageRecord:
    """Build a new DeviceGray PNG record from the alpha channel of ``record``.

    The input record is left untouched.

    Raises:
        DecodeError: If ``record.raw`` cannot be decoded.
    """
    source = backend.decode(record.raw)
    levels = GRAY_BY_ALPHA[to_seven_bit_alpha(backend.alpha_values(source))]
    canvas = backend.grayscale_canvas(levels)

    mask = ImageRecord(
        key=record.key,
        defprint=record.defprint,
        source=SourceRef(kind=record.source.kind, location=record.source.location),
        target_format=record.target_format,
    )
    # index n of the palette is gray n, so the L conversion is exact
    mask.raw = backend.encode_png(backend.convert(canvas, "L"))
    mask.recoded = True
    extract_metadata(mask, backend)
    mask.target_format = record.target_format
    mask.color_space = ColorSpace.GRAY
    logger.debug("Extracted %dx%d alpha mask for %s", mask.width, mask.height, record.key or "<unkeyed>")
    return mask
