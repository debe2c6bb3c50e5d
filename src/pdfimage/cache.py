"""Content-addressed cache of imported image records."""

from __future__ import annotations

import base64
import hashlib
import logging
import threading
from concurrent.futures import Future
from typing import TYPE_CHECKING

from pdfimage.errors import NotFoundError

if TYPE_CHECKING:
    from collections.abc import Callable

    from pdfimage.models import ImageRecord

logger = logging.getLogger(__name__)


def derive_key(reference: str | bytes, width: int, height: int, quality: int) -> str:
    """Hash an import request into a URL-safe, unpadded cache key."""
    if isinstance(reference, str):
        reference = reference.encode("utf-8", "surrogatepass")
    digest = hashlib.md5(reference + f"{width}{height}{quality}".encode(), usedforsecurity=False).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


class ImageCache:
    """Append-only record store for one document build session.

    A record is built at most once per key: while one thread is building,
    other callers asking for the same key wait for its result.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, ImageRecord] = {}
        self._pending: dict[str, Future[ImageRecord]] = {}

    # -- Public API ---------------------------------------------------------

    def get(self, key: str) -> ImageRecord:
        """Return the record stored under ``key``."""
        with self._lock:
            record = self._records.get(key)
        if record is None:
            raise NotFoundError(f"Unknown image key: {key}")
        return record

    def get_or_build(self, key: str, build: Callable[[], ImageRecord]) -> ImageRecord:
        """Return the cached record for ``key``, building it on a miss.

        The built record is frozen before it is stored. Exceptions raised
        by ``build`` reach every waiting caller and leave no entry behind.
        """
        with self._lock:
            cached = self._records.get(key)
            if cached is not None:
                logger.debug("Cache hit for %s", key)
                return cached
            pending = self._pending.get(key)
            owner = pending is None
            if pending is None:
                pending = Future()
                self._pending[key] = pending

        if not owner:
            logger.debug("Waiting for in-flight import of %s", key)
            return pending.result()

        try:
            record = build()
        except BaseException as exc:
            with self._lock:
                del self._pending[key]
            pending.set_exception(exc)
            raise

        record.freeze()
        with self._lock:
            self._records[key] = record
            del self._pending[key]
        pending.set_result(record)
        return record

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._records.keys())

    def clear(self) -> None:
        """Drop every record at the end of a build session."""
        with self._lock:
            self._records.clear()
            logger.info("Image cache cleared")

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
