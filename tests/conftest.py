"""Shared image fixtures generated with Pillow."""

from __future__ import annotations

import io
import struct
import zlib

import pytest
from PIL import Image

from pdfimage.codec.raster import PillowRaster
from pdfimage.errors import NotFoundError


def encode(image: Image.Image, image_format: str, **params: object) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format=image_format, **params)
    return buffer.getvalue()


def decode(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


def big_endian_tiff(width: int, height: int, level: int) -> bytes:
    """Uncompressed 8-bit grayscale TIFF in Motorola byte order."""
    short = [(256, width), (257, height), (258, 8), (259, 1), (262, 1), (277, 1), (278, height)]
    long = [(273, 8 + 2 + 9 * 12 + 4), (279, width * height)]
    entries = [struct.pack(">HHIH2x", tag, 3, 1, value) for tag, value in short]
    entries += [struct.pack(">HHII", tag, 4, 1, value) for tag, value in long]
    entries.sort()
    ifd = struct.pack(">H", len(entries)) + b"".join(entries) + struct.pack(">I", 0)
    return b"MM\x00\x2a" + struct.pack(">I", 8) + ifd + bytes([level]) * (width * height)


def iff_ilbm(width: int, height: int, planes: int = 8) -> bytes:
    """IFF ILBM container holding only its bitmap header."""
    bmhd = struct.pack(">HHhhBBBBHBBhh", width, height, 0, 0, planes, 0, 0, 0, 0, 1, 1, width, height)
    body = b"ILBM" + b"BMHD" + struct.pack(">I", len(bmhd)) + bmhd
    return b"FORM" + struct.pack(">I", len(body)) + body


def compressed_swf(width: int, height: int) -> bytes:
    """Zlib-compressed Flash header whose frame spans width x height pixels."""
    nbits = 15
    rect = nbits
    for value in (0, width * 20, 0, height * 20):
        rect = (rect << nbits) | value
    size = 5 + 4 * nbits
    padded = -size % 8
    body = (rect << padded).to_bytes((size + padded) // 8, "big") + b"\x00\x18\x01\x00"
    return b"CWS\x0a" + struct.pack("<I", 8 + len(body)) + zlib.compress(body)


class DictReader:
    """ReferenceReader serving bytes from memory."""

    def __init__(self, files: dict[str, bytes]) -> None:
        self.files = files
        self.calls: list[str] = []

    def read_bytes(self, location: str) -> bytes:
        self.calls.append(location)
        try:
            return self.files[location]
        except KeyError:
            raise NotFoundError(f"Image file not found: {location}") from None


@pytest.fixture()
def backend() -> PillowRaster:
    return PillowRaster()


@pytest.fixture()
def rgb_png() -> bytes:
    """Opaque 200x100 RGB PNG."""
    return encode(Image.new("RGB", (200, 100), (10, 120, 200)), "PNG")


@pytest.fixture()
def rgba_png() -> bytes:
    """40x20 RGBA PNG: left half fully transparent, right half opaque red."""
    image = Image.new("RGBA", (40, 20), (255, 0, 0, 255))
    image.paste((0, 0, 255, 0), (0, 0, 20, 20))
    return encode(image, "PNG")


@pytest.fixture()
def bmp_bytes() -> bytes:
    return encode(Image.new("RGB", (30, 20), (0, 200, 0)), "BMP")


@pytest.fixture()
def jpeg_bytes() -> bytes:
    return encode(Image.new("RGB", (64, 48), (200, 50, 50)), "JPEG", quality=90)


@pytest.fixture()
def transparent_gif() -> bytes:
    """16x16 GIF whose palette entry 0 (magenta) is the transparent color."""
    image = Image.new("P", (16, 16), 0)
    image.putpalette([255, 0, 255, 0, 128, 0] + [0, 0, 0] * 254)
    image.paste(1, (4, 4, 12, 12))
    return encode(image, "GIF", transparency=0, optimize=False)


@pytest.fixture()
def gray16_png() -> bytes:
    """10x10 16-bit grayscale PNG at mid gray (32768)."""
    return encode(Image.new("I;16", (10, 10), 32768), "PNG")


@pytest.fixture()
def wbmp_bytes() -> bytes:
    """8x2 WBMP: a white row above a black row."""
    return b"\x00\x00\x08\x02\xff\x00"
