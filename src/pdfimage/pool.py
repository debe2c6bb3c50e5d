"""Async import layer.

Architecture:
    async host -> asyncio.Semaphore(N) -> ThreadPoolExecutor(N) -> ImageImporter

Decode, resample and encode are CPU-bound, so imports run off the event
loop. Requests beyond the semaphore limit queue with a timeout.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pdfimage.config import Settings
    from pdfimage.importer import ImageImporter
    from pdfimage.models import ImageRecord

logger = logging.getLogger(__name__)


class ImportPool:
    """Manages the semaphore and thread pool for image imports."""

    def __init__(self, importer: ImageImporter, settings: Settings) -> None:
        self._importer = importer
        self._timeout = settings.queue_timeout
        self._semaphore = asyncio.Semaphore(settings.max_concurrent)
        self._executor = ThreadPoolExecutor(
            max_workers=settings.max_concurrent,
            thread_name_prefix="image-import",
        )
        self._active_count: int = 0
        self._queue_depth: int = 0
        self._counter_lock = threading.Lock()

    async def run_import(
        self,
        reference: str | bytes,
        width: int | None = None,
        height: int | None = None,
        quality: int | None = None,
        default_for_print: bool = False,
    ) -> ImageRecord:
        """Run ``ImageImporter.import_image`` in the thread pool.

        Raises:
            TimeoutError: If no slot frees up within the queue timeout.
        """
        with self._counter_lock:
            self._queue_depth += 1
        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout=self._timeout)
        except TimeoutError:
            logger.warning("Import queue full, gave up after %.1fs", self._timeout)
            raise
        finally:
            with self._counter_lock:
                self._queue_depth -= 1

        with self._counter_lock:
            self._active_count += 1
        try:
            loop = asyncio.get_running_loop()
            job = partial(
                self._importer.import_image,
                reference,
                width=width,
                height=height,
                quality=quality,
                default_for_print=default_for_print,
            )
            return await loop.run_in_executor(self._executor, job)
        finally:
            self._semaphore.release()
            with self._counter_lock:
                self._active_count -= 1

    @property
    def active_count(self) -> int:
        """Number of imports currently running."""
        with self._counter_lock:
            return self._active_count

    @property
    def queue_depth(self) -> int:
        """Number of imports waiting for a slot."""
        with self._counter_lock:
            return self._queue_depth

    def shutdown(self) -> None:
        """Shut down the thread pool executor."""
        self._executor.shutdown(wait=True)
