"""Raw acquisition: resolve an image reference into bytes plus provenance."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import httpx

from pdfimage.errors import NotFoundError, ReadError
from pdfimage.metadata import extract_metadata
from pdfimage.models import ImageRecord, SourceKind

if TYPE_CHECKING:
    from pdfimage.codec.raster import RasterBackend

logger = logging.getLogger(__name__)

# Reference prefixes: literal image data, and a URL/path to link without embedding.
INLINE_MARKER = "@"
LINK_MARKER = "*"

_REMOTE_SCHEMES = ("http://", "https://")


class ReferenceReader(Protocol):
    """Protocol for fetching the bytes behind a path or URL."""

    def read_bytes(self, location: str) -> bytes:
        """Return the full content at ``location``.

        Raises:
            NotFoundError: If nothing exists at ``location``.
            ReadError: If the content exists but cannot be read.
        """
        ...


class FileReader:
    """Reads local files directly and remote URLs over HTTP."""

    def __init__(
        self,
        timeout: float = 10.0,
        max_file_size: int = 52_428_800,
        client: httpx.Client | None = None,
    ) -> None:
        self._timeout = timeout
        self._max_file_size = max_file_size
        self._client = client

    def read_bytes(self, location: str) -> bytes:
        if is_remote(location):
            return self._fetch(location)
        return self._read_file(Path(location))

    def _read_file(self, path: Path) -> bytes:
        try:
            size = path.stat().st_size
            if size > self._max_file_size:
                raise ReadError(f"File too large: {path} ({size:,} bytes, max {self._max_file_size:,})")
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise NotFoundError(f"Image file not found: {path}") from exc
        except OSError as exc:
            raise ReadError(f"Cannot read image file {path}: {exc}") from exc

    def _fetch(self, url: str) -> bytes:
        client = self._client or httpx.Client(timeout=self._timeout, follow_redirects=True)
        try:
            response = client.get(url)
            if response.status_code == httpx.codes.NOT_FOUND:
                raise NotFoundError(f"Image URL not found: {url}")
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ReadError(f"Cannot fetch image URL {url}: {exc}") from exc
        finally:
            if self._client is None:
                client.close()

        content = response.content
        if len(content) > self._max_file_size:
            raise ReadError(f"Remote image too large: {url} ({len(content):,} bytes, max {self._max_file_size:,})")
        logger.debug("Fetched %s (%d bytes)", url, len(content))
        return content


def is_remote(location: str) -> bool:
    return location.lower().startswith(_REMOTE_SCHEMES)


def inline(data: bytes) -> bytes:
    """Wrap literal image bytes as an inline reference."""
    return INLINE_MARKER.encode() + data


def acquire(reference: str | bytes, reader: ReferenceReader, backend: RasterBackend) -> ImageRecord:
    """Resolve ``reference`` into a record with raw bytes and header metadata.

    ``reference`` is a file path, a URL, an ``@`` followed by the image data,
    or a path/URL prefixed with ``*`` to mark it as link-only. An empty
    reference yields the all-defaults record.
    """
    record = ImageRecord()
    if not reference:
        return record

    if isinstance(reference, bytes):
        if reference.startswith(INLINE_MARKER.encode()):
            record.raw = reference[1:]
            record.source.kind = SourceKind.INLINE
            return extract_metadata(record, backend)
        # Latin-1 maps every byte to one code point, so non-UTF-8 paths survive
        reference = reference.decode("latin-1")

    if reference.startswith(INLINE_MARKER):
        record.raw = reference[1:].encode("latin-1")
        record.source.kind = SourceKind.INLINE
        return extract_metadata(record, backend)

    if reference.startswith(LINK_MARKER):
        record.source.embed = False
        reference = reference[1:]

    record.source.kind = SourceKind.REMOTE if is_remote(reference) else SourceKind.LOCAL
    record.source.location = reference
    record.raw = reader.read_bytes(reference)
    return extract_metadata(record, backend)
