"""Per-format finalizers: turn a PNG or JPEG record into PDF stream data.

A finalizer fills ``data``, ``filter`` and ``parms`` (plus palette,
transparency keys and ICC profile where present). When the bytes cannot
be streamed as they are it sets ``needs_recode``; when the image carries a
real alpha channel it sets ``split_alpha`` and leaves ``data`` empty.
"""

from __future__ import annotations

import io
import logging
import struct
import zlib
from typing import Protocol

from PIL import Image, UnidentifiedImageError

from pdfimage.errors import DecodeError
from pdfimage.models import ColorSpace, ImageFormat, ImageRecord

logger = logging.getLogger(__name__)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

_CHANNELS_BY_JPEG_MODE: dict[str, int] = {"L": 1, "RGB": 3, "YCbCr": 3, "CMYK": 4}

# PNG color types
_GRAY = 0
_TRUECOLOR = 2
_INDEXED = 3
_GRAY_ALPHA = 4
_TRUECOLOR_ALPHA = 6


class Finalizer(Protocol):
    """Protocol for format-specific stream producers."""

    def finalize(self, record: ImageRecord) -> ImageRecord:
        """Populate the PDF stream fields of ``record`` in place and return it."""
        ...


def _reset(record: ImageRecord) -> None:
    record.data = b""
    record.parms = ""
    record.palette = b""
    record.trns = ()
    record.needs_recode = False
    record.split_alpha = False


class JpegFinalizer:
    """JPEG bytes are embedded unchanged behind DCTDecode."""

    def finalize(self, record: ImageRecord) -> ImageRecord:
        _reset(record)
        try:
            with Image.open(io.BytesIO(record.raw)) as image:
                pillow_format = image.format
                mode = image.mode
                icc = image.info.get("icc_profile") or b""
                adobe = "adobe" in image.info
        except (UnidentifiedImageError, OSError) as exc:
            logger.warning("JPEG stream for %s is unreadable, requesting recode: %s", record.key, exc)
            record.needs_recode = True
            return record

        channels = _CHANNELS_BY_JPEG_MODE.get(mode)
        if pillow_format not in ("JPEG", "MPO") or channels is None:
            record.needs_recode = True
            return record

        record.bits = 8
        record.channels = channels
        record.color_space = {1: ColorSpace.GRAY, 3: ColorSpace.RGB, 4: ColorSpace.CMYK}[channels]
        record.icc = icc
        if channels == 4 and adobe:
            # Adobe writes CMYK JPEGs with inverted components
            record.parms = "/Decode [1 0 1 0 1 0 1 0]"
        record.filter = "DCTDecode"
        record.data = record.raw
        return record


class PngFinalizer:
    """Streams PNG IDAT data directly behind FlateDecode with the PNG predictor."""

    def finalize(self, record: ImageRecord) -> ImageRecord:
        _reset(record)
        raw = record.raw
        if raw[:8] != PNG_SIGNATURE:
            raise DecodeError(f"Not a PNG stream: {record.key or '<unkeyed>'}")

        header: tuple[int, ...] | None = None
        palette = b""
        trns = b""
        icc = b""
        idat: list[bytes] = []

        offset = 8
        while offset + 8 <= len(raw):
            length, chunk_type = struct.unpack(">I4s", raw[offset : offset + 8])
            body = raw[offset + 8 : offset + 8 + length]
            offset += length + 12
            if chunk_type == b"IHDR":
                header = struct.unpack(">IIBBBBB", body)
            elif chunk_type == b"PLTE":
                palette = body
            elif chunk_type == b"tRNS":
                trns = body
            elif chunk_type == b"iCCP":
                icc = _decompress_icc(body)
            elif chunk_type == b"IDAT":
                idat.append(body)
            elif chunk_type == b"IEND":
                break

        if header is None:
            raise DecodeError(f"PNG stream has no IHDR chunk: {record.key or '<unkeyed>'}")
        width, _height, bits, color_type, compression, filter_method, interlace = header

        if compression != 0 or filter_method != 0 or interlace != 0 or bits > 8:
            record.needs_recode = True
            return record
        if color_type in (_GRAY_ALPHA, _TRUECOLOR_ALPHA):
            record.split_alpha = True
            return record

        if color_type == _GRAY:
            colors = 1
            record.color_space = ColorSpace.GRAY
            record.trns = _sample_keys(trns)
        elif color_type == _TRUECOLOR:
            colors = 3
            record.color_space = ColorSpace.RGB
            record.trns = _sample_keys(trns)
        elif color_type == _INDEXED:
            if not palette:
                raise DecodeError(f"Indexed PNG without palette: {record.key or '<unkeyed>'}")
            colors = 1
            record.color_space = ColorSpace.INDEXED
            record.palette = palette
            record.trns = tuple(trns)
        else:
            raise DecodeError(f"Unknown PNG color type {color_type}")

        record.bits = bits
        record.channels = colors
        record.icc = icc
        record.filter = "FlateDecode"
        record.parms = f"/DecodeParms << /Predictor 15 /Colors {colors} /BitsPerComponent {bits} /Columns {width} >>"
        record.data = b"".join(idat)
        return record


def _sample_keys(trns: bytes) -> tuple[int, ...]:
    # gray and truecolor tRNS chunks hold 16-bit samples
    return tuple(value for (value,) in struct.iter_unpack(">H", trns[: len(trns) - len(trns) % 2]))


def _decompress_icc(body: bytes) -> bytes:
    _name, _, rest = body.partition(b"\x00")
    try:
        return zlib.decompress(rest[1:])
    except zlib.error as exc:
        raise DecodeError(f"Corrupt iCCP chunk: {exc}") from exc


FINALIZERS: dict[ImageFormat, Finalizer] = {
    ImageFormat.PNG: PngFinalizer(),
    ImageFormat.JPEG: JpegFinalizer(),
}


def get_finalizer(image_format: ImageFormat) -> Finalizer:
    try:
        return FINALIZERS[image_format]
    except KeyError:
        raise DecodeError(f"No finalizer for target format: {image_format}") from None
