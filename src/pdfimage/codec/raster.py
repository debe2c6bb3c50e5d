"""Raster primitive: header probe, decode, resample and encode.

The import pipeline never touches Pillow directly; it goes through a
``RasterBackend`` so codec behaviour can be mocked in tests or swapped.

Pillow has no reader for WBMP, IFF or SWC. WBMP is small enough to parse
here. IFF and SWC headers are sniffed for dimensions only, so their
metadata is reported but decoding them raises ``DecodeError``.
"""

from __future__ import annotations

import io
import logging
import struct
import zlib
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import numpy as np
from PIL import Image, UnidentifiedImageError

from pdfimage.errors import DecodeError, EncodeError
from pdfimage.models import ImageFormat

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)

RGB = tuple[int, int, int]

# ---------------------------------------------------------------------------
# Protocol (kept for test mocking)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RasterInfo:
    """Header-level facts about an encoded image."""

    width: int
    height: int
    format: ImageFormat
    bits: int | None = None
    channels: int | None = None


class RasterBackend(Protocol):
    """Protocol for the raster codec used by the resize and alpha engines."""

    def probe(self, data: bytes) -> RasterInfo:
        """Read dimensions and format from the header without decoding pixels."""
        ...

    def decode(self, data: bytes) -> Image.Image:
        """Fully decode an encoded image."""
        ...

    def has_alpha(self, image: Image.Image) -> bool:
        """Return True if the image carries an alpha channel or a transparent color."""
        ...

    def convert(self, image: Image.Image, mode: str) -> Image.Image:
        """Convert to another pixel mode."""
        ...

    def resample(self, image: Image.Image, width: int, height: int) -> Image.Image:
        """Resample to exactly ``width`` x ``height`` with an area-averaging filter."""
        ...

    def composite(self, image: Image.Image, background: RGB) -> Image.Image:
        """Blend the alpha channel away over an opaque background color."""
        ...

    def transparent_color(self, image: Image.Image) -> RGB | None:
        """Return the RGB of the transparent palette entry, if valid."""
        ...

    def alpha_values(self, image: Image.Image) -> NDArray[np.uint8]:
        """Return the HxW 8-bit alpha plane (255 = opaque)."""
        ...

    def grayscale_canvas(self, indices: NDArray[np.uint8]) -> Image.Image:
        """Build a palette image over a 256-entry grayscale ramp."""
        ...

    def encode_png(self, image: Image.Image, transparency: RGB | None = None) -> bytes:
        """Encode as non-interlaced PNG at maximum compression."""
        ...

    def encode_jpeg(self, image: Image.Image, quality: int) -> bytes:
        """Encode as baseline JPEG."""
        ...


# ---------------------------------------------------------------------------
# Pillow tables
# ---------------------------------------------------------------------------

_FORMAT_BY_PILLOW_NAME: dict[str, ImageFormat] = {
    "PNG": ImageFormat.PNG,
    "JPEG": ImageFormat.JPEG,
    "MPO": ImageFormat.JPEG,
    "GIF": ImageFormat.GIF,
    "BMP": ImageFormat.BMP,
    "DIB": ImageFormat.BMP,
    "TIFF": ImageFormat.TIFF_II,
    "PSD": ImageFormat.PSD,
    "ICO": ImageFormat.ICO,
    "XBM": ImageFormat.XBM,
}

# mode -> (bits per component, color channels); alpha bands are not counted
_DEPTH_BY_MODE: dict[str, tuple[int, int]] = {
    "1": (1, 1),
    "L": (8, 1),
    "LA": (8, 1),
    "La": (8, 1),
    "P": (8, 3),
    "PA": (8, 3),
    "RGB": (8, 3),
    "RGBA": (8, 3),
    "RGBa": (8, 3),
    "RGBX": (8, 3),
    "YCbCr": (8, 3),
    "LAB": (8, 3),
    "HSV": (8, 3),
    "CMYK": (8, 4),
    "I;16": (16, 1),
    "I;16L": (16, 1),
    "I;16B": (16, 1),
    "I": (32, 1),
    "F": (32, 1),
}

_ALPHA_MODES = frozenset({"RGBA", "RGBa", "LA", "La", "PA"})

_GRAYSCALE_PALETTE = bytes(level for n in range(256) for level in (n, n, n))

_PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

# 16-bit and 32-bit single-band modes; Pillow clips rather than scales them to L
_HIGH_DEPTH_MODES = frozenset({"I;16", "I;16L", "I;16B", "I;16N", "I", "F"})

_IFF_FORMS = (b"ILBM", b"PBM ")


# ---------------------------------------------------------------------------
# Header sniffers for formats Pillow cannot open
# ---------------------------------------------------------------------------


def _parse_wbmp(data: bytes) -> tuple[int, int, bytes] | None:
    """Split a type 0 WBMP into (width, height, packed rows).

    The format has no magic number, so the payload length must match the
    declared size exactly.
    """
    if len(data) < 5 or data[0] != 0 or data[1] != 0:
        return None
    pos = 2
    dims: list[int] = []
    for _ in range(2):
        value = 0
        for _ in range(4):
            if pos >= len(data):
                return None
            byte = data[pos]
            pos += 1
            value = (value << 7) | (byte & 0x7F)
            if not byte & 0x80:
                break
        else:
            return None
        dims.append(value)
    width, height = dims
    if width <= 0 or height <= 0:
        return None
    payload = data[pos:]
    if len(payload) != (width + 7) // 8 * height:
        return None
    return width, height, payload


def _sniff_iff(data: bytes) -> RasterInfo | None:
    if data[:4] != b"FORM" or data[8:12] not in _IFF_FORMS:
        return None
    pos = 12
    while pos + 8 <= len(data):
        chunk_id = data[pos : pos + 4]
        (length,) = struct.unpack(">I", data[pos + 4 : pos + 8])
        if chunk_id == b"BMHD" and length >= 9 and pos + 17 <= len(data):
            width, height = struct.unpack(">HH", data[pos + 8 : pos + 12])
            planes = data[pos + 16]
            return RasterInfo(width=width, height=height, format=ImageFormat.IFF, bits=planes)
        pos += 8 + length + (length & 1)
    return None


def _sniff_swc(data: bytes) -> RasterInfo | None:
    if data[:3] != b"CWS" or len(data) < 9:
        return None
    try:
        # the frame RECT is at most 17 bytes
        head = zlib.decompressobj().decompress(data[8:], 17)
    except zlib.error:
        return None
    if not head:
        return None
    bits = int.from_bytes(head, "big")
    total = len(head) * 8
    nbits = bits >> (total - 5)
    if 5 + 4 * nbits > total:
        return None
    values = []
    offset = total - 5
    for _ in range(4):
        offset -= nbits
        value = (bits >> offset) & ((1 << nbits) - 1) if nbits else 0
        if nbits and value >> (nbits - 1):
            value -= 1 << nbits
        values.append(value)
    x_min, x_max, y_min, y_max = values
    # twips
    return RasterInfo(width=(x_max - x_min) // 20, height=(y_max - y_min) // 20, format=ImageFormat.SWC)


def _to_eight_bit(image: Image.Image) -> Image.Image:
    """Scale a 16-bit or 32-bit single-band image down to mode L."""
    values = np.asarray(image)
    if image.mode == "F":
        if values.size and float(values.max()) <= 1.0:
            values = values * 255.0
        scaled = np.clip(np.rint(values), 0, 255)
    elif image.mode == "I":
        scaled = np.clip(values, 0, 65535) >> 8
    else:
        scaled = values.astype(np.uint32) >> 8
    return Image.fromarray(scaled.astype(np.uint8))


# ---------------------------------------------------------------------------
# Concrete implementation
# ---------------------------------------------------------------------------


class PillowRaster:
    """RasterBackend implemented on Pillow."""

    def __init__(self, max_image_pixels: int = 89_478_485) -> None:
        self._max_image_pixels = max_image_pixels

    # -- Header -------------------------------------------------------------

    def probe(self, data: bytes) -> RasterInfo:
        wbmp = _parse_wbmp(data)
        if wbmp is not None:
            return RasterInfo(width=wbmp[0], height=wbmp[1], format=ImageFormat.WBMP, bits=1, channels=1)
        sniffed = _sniff_iff(data) or _sniff_swc(data)
        if sniffed is not None:
            return sniffed
        try:
            with Image.open(io.BytesIO(data)) as image:
                pillow_format = image.format or ""
                width, height = image.size
                mode = image.mode
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
            raise DecodeError(f"Unrecognized image header: {exc}") from exc

        image_format = _FORMAT_BY_PILLOW_NAME.get(pillow_format, ImageFormat.UNSUPPORTED)
        if image_format is ImageFormat.TIFF_II and data[:2] == b"MM":
            image_format = ImageFormat.TIFF_MM

        bits, channels = _DEPTH_BY_MODE.get(mode, (None, None))
        if image_format is ImageFormat.PNG and data[:8] == _PNG_SIGNATURE and len(data) > 24:
            # IHDR is always the first chunk; its bit depth byte follows width and height
            bits = data[24]
        return RasterInfo(width=width, height=height, format=image_format, bits=bits, channels=channels)

    # -- Pixels -------------------------------------------------------------

    def decode(self, data: bytes) -> Image.Image:
        wbmp = _parse_wbmp(data)
        if wbmp is not None:
            width, height, payload = wbmp
            if width * height > self._max_image_pixels:
                raise DecodeError(f"Image too large: {width}x{height} (max {self._max_image_pixels:,} pixels)")
            return Image.frombytes("1", (width, height), payload, "raw", "1")
        try:
            image = Image.open(io.BytesIO(data))
            if image.width * image.height > self._max_image_pixels:
                raise DecodeError(
                    f"Image too large: {image.width}x{image.height} (max {self._max_image_pixels:,} pixels)"
                )
            image.load()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
            raise DecodeError(f"Cannot decode image: {exc}") from exc
        return image

    def has_alpha(self, image: Image.Image) -> bool:
        return image.mode in _ALPHA_MODES or "transparency" in image.info

    def convert(self, image: Image.Image, mode: str) -> Image.Image:
        if image.mode == mode:
            return image
        if image.mode in _HIGH_DEPTH_MODES:
            image = _to_eight_bit(image)
            if mode == "L":
                return image
        return image.convert(mode)

    def resample(self, image: Image.Image, width: int, height: int) -> Image.Image:
        if width <= image.width and height <= image.height:
            method = Image.Resampling.BOX
        else:
            method = Image.Resampling.BILINEAR
        return image.resize((width, height), method)

    def composite(self, image: Image.Image, background: RGB) -> Image.Image:
        rgba = self.convert(image, "RGBA")
        canvas = Image.new("RGBA", rgba.size, (*background, 255))
        return Image.alpha_composite(canvas, rgba).convert("RGB")

    def transparent_color(self, image: Image.Image) -> RGB | None:
        if image.mode != "P":
            return None
        index = image.info.get("transparency")
        palette = image.getpalette()
        if not isinstance(index, int) or not palette:
            return None
        if not 0 <= index < len(palette) // 3:
            return None
        red, green, blue = palette[index * 3 : index * 3 + 3]
        return (red, green, blue)

    def alpha_values(self, image: Image.Image) -> NDArray[np.uint8]:
        return np.asarray(self.convert(image, "RGBA").getchannel("A"), dtype=np.uint8)

    def grayscale_canvas(self, indices: NDArray[np.uint8]) -> Image.Image:
        height, width = indices.shape
        canvas = Image.frombytes("P", (width, height), np.ascontiguousarray(indices, dtype=np.uint8).tobytes())
        canvas.putpalette(_GRAYSCALE_PALETTE)
        return canvas

    # -- Encoders -----------------------------------------------------------

    def encode_png(self, image: Image.Image, transparency: RGB | None = None) -> bytes:
        params: dict[str, object] = {"compress_level": 9}
        if transparency is not None:
            params["transparency"] = transparency
        return self._save(image, "PNG", **params)

    def encode_jpeg(self, image: Image.Image, quality: int) -> bytes:
        if image.mode not in ("L", "RGB", "CMYK"):
            image = self.convert(image, "RGB")
        return self._save(image, "JPEG", quality=quality)

    @staticmethod
    def _save(image: Image.Image, image_format: str, **params: object) -> bytes:
        if image.width <= 0 or image.height <= 0:
            raise EncodeError(f"Cannot encode {image.width}x{image.height} image as {image_format}")
        buffer = io.BytesIO()
        try:
            image.save(buffer, format=image_format, **params)
        except (OSError, ValueError, SystemError) as exc:
            raise EncodeError(f"{image_format} encoder failed: {exc}") from exc
        logger.debug("Encoded %dx%d %s image (%d bytes)", image.width, image.height, image_format, buffer.tell())
        return buffer.getvalue()
