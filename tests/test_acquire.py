"""Tests for raw acquisition and the default file/URL reader."""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest
from conftest import DictReader

from pdfimage.acquire import FileReader, acquire, inline
from pdfimage.codec.raster import PillowRaster
from pdfimage.errors import NotFoundError, ReadError
from pdfimage.models import ImageFormat, ImageRecord, SourceKind

# ---------------------------------------------------------------------------
# acquire()
# ---------------------------------------------------------------------------


class TestAcquire:
    def test_empty_reference_returns_defaults(self, backend: PillowRaster) -> None:
        reader = DictReader({})

        record = acquire("", reader, backend)

        assert record == ImageRecord()
        assert reader.calls == []

    def test_inline_bytes(self, rgb_png: bytes, backend: PillowRaster) -> None:
        record = acquire(inline(rgb_png), DictReader({}), backend)

        assert record.raw == rgb_png
        assert record.source.kind is SourceKind.INLINE
        assert record.source.location == ""
        assert (record.width, record.height) == (200, 100)

    def test_inline_string(self, rgb_png: bytes, backend: PillowRaster) -> None:
        record = acquire("@" + rgb_png.decode("latin-1"), DictReader({}), backend)

        assert record.raw == rgb_png
        assert record.format is ImageFormat.PNG

    def test_local_path(self, jpeg_bytes: bytes, backend: PillowRaster) -> None:
        reader = DictReader({"images/photo.jpg": jpeg_bytes})

        record = acquire("images/photo.jpg", reader, backend)

        assert reader.calls == ["images/photo.jpg"]
        assert record.source.kind is SourceKind.LOCAL
        assert record.source.location == "images/photo.jpg"
        assert record.embed is True
        assert record.format is ImageFormat.JPEG

    def test_link_only_url(self, rgb_png: bytes, backend: PillowRaster) -> None:
        reader = DictReader({"https://example.com/logo.png": rgb_png})

        record = acquire("*https://example.com/logo.png", reader, backend)

        assert reader.calls == ["https://example.com/logo.png"]
        assert record.source.kind is SourceKind.REMOTE
        assert record.source.location == "https://example.com/logo.png"
        assert record.embed is False

    def test_reader_errors_propagate(self, backend: PillowRaster) -> None:
        with pytest.raises(NotFoundError):
            acquire("missing.png", DictReader({}), backend)


# ---------------------------------------------------------------------------
# FileReader
# ---------------------------------------------------------------------------


def _client(status_code: int, content: bytes = b"") -> httpx.Client:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, content=content)

    return httpx.Client(transport=httpx.MockTransport(handler))


class TestFileReader:
    def test_reads_local_file(self, tmp_path: Path, rgb_png: bytes) -> None:
        path = tmp_path / "image.png"
        path.write_bytes(rgb_png)

        assert FileReader().read_bytes(str(path)) == rgb_png

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(NotFoundError, match="not found"):
            FileReader().read_bytes(str(tmp_path / "nope.png"))

    def test_file_too_large(self, tmp_path: Path, rgb_png: bytes) -> None:
        path = tmp_path / "image.png"
        path.write_bytes(rgb_png)

        with pytest.raises(ReadError, match="too large"):
            FileReader(max_file_size=10).read_bytes(str(path))

    def test_fetches_url(self, rgb_png: bytes) -> None:
        reader = FileReader(client=_client(200, rgb_png))

        assert reader.read_bytes("https://example.com/a.png") == rgb_png

    def test_url_not_found(self) -> None:
        reader = FileReader(client=_client(404))

        with pytest.raises(NotFoundError):
            reader.read_bytes("https://example.com/a.png")

    def test_url_server_error(self) -> None:
        reader = FileReader(client=_client(500))

        with pytest.raises(ReadError):
            reader.read_bytes("http://example.com/a.png")

    def test_remote_too_large(self) -> None:
        reader = FileReader(max_file_size=4, client=_client(200, b"0123456789"))

        with pytest.raises(ReadError, match="too large"):
            reader.read_bytes("https://example.com/a.png")
