"""Import orchestrator: acquire, inspect, recode, finalize and cache images."""

from __future__ import annotations

import copy
import logging
from typing import TYPE_CHECKING

from PIL import ImageColor

from pdfimage.acquire import FileReader, acquire
from pdfimage.cache import ImageCache, derive_key
from pdfimage.codec.alpha import extract_alpha_mask
from pdfimage.codec.raster import PillowRaster
from pdfimage.codec.resize import resize
from pdfimage.config import get_settings
from pdfimage.errors import DecodeError
from pdfimage.finalizers import get_finalizer

if TYPE_CHECKING:
    from pdfimage.acquire import ReferenceReader
    from pdfimage.codec.raster import RGB, RasterBackend
    from pdfimage.config import Settings
    from pdfimage.finalizers import Finalizer
    from pdfimage.models import ImageRecord

logger = logging.getLogger(__name__)


class ImageImporter:
    """Turns image references into cached, PDF-ready image records.

    One importer (and its cache) is meant to live for one document build.
    """

    def __init__(
        self,
        reader: ReferenceReader,
        backend: RasterBackend,
        cache: ImageCache | None = None,
        matte: RGB = (0, 0, 0),
        default_quality: int = 100,
    ) -> None:
        self._reader = reader
        self._backend = backend
        self._cache = cache if cache is not None else ImageCache()
        self._matte = matte
        self._default_quality = default_quality

    @property
    def cache(self) -> ImageCache:
        return self._cache

    # -- Public API ---------------------------------------------------------

    def import_image(
        self,
        reference: str | bytes,
        width: int | None = None,
        height: int | None = None,
        quality: int | None = None,
        default_for_print: bool = False,
    ) -> ImageRecord:
        """Import an image, resized to ``width`` x ``height`` when given.

        Args:
            reference: File path, URL, ``@`` followed by the image data, or a
                path/URL prefixed with ``*`` to link it without embedding.
            width: Target width in pixels, None to keep the natural width.
            height: Target height in pixels, None to keep the natural height.
            quality: JPEG quality, clamped to 0-100; None uses the
                importer default.
            default_for_print: Mark the image as the default print choice
                when used as an alternate image.

        Returns:
            The finalized record; repeated calls return the cached instance.

        Raises:
            NotFoundError, ReadError: If the source cannot be read.
            DecodeError: If the bytes are not a supported raster image.
            EncodeError: If the image cannot be encoded at the requested size.
        """
        if quality is None:
            quality = self._default_quality
        quality = max(0, min(100, quality))
        key = derive_key(reference, width or 0, height or 0, quality)
        return self._cache.get_or_build(
            key,
            lambda: self._build(key, reference, width, height, quality, default_for_print),
        )

    def get_by_key(self, key: str) -> ImageRecord:
        """Return a previously imported record.

        Raises:
            NotFoundError: If no import produced ``key``.
        """
        return self._cache.get(key)

    # -- Internal -----------------------------------------------------------

    def _build(
        self,
        key: str,
        reference: str | bytes,
        width: int | None,
        height: int | None,
        quality: int,
        defprint: bool,
    ) -> ImageRecord:
        record = acquire(reference, self._reader, self._backend)
        record.key = key
        record.defprint = defprint
        if not record.raw:
            return record

        width = max(0, record.width if width is None else width)
        height = max(0, record.height if height is None else height)

        if not record.native or width != record.width or height != record.height:
            record = self._resize(record, width, height, True, quality)

        finalizer = get_finalizer(record.target_format)
        record = self._finalize_with_retry(finalizer, record, width, height, quality)

        if record.split_alpha:
            plain = self._resize(copy.deepcopy(record), width, height, False, quality)
            record.plain = finalizer.finalize(plain)
            mask = extract_alpha_mask(record, self._backend)
            record.mask = finalizer.finalize(mask)

        logger.info(
            "Imported %s: %s %dx%d (recoded=%s, split_alpha=%s)",
            key,
            record.format,
            record.width,
            record.height,
            record.recoded,
            record.split_alpha,
        )
        return record

    def _finalize_with_retry(
        self,
        finalizer: Finalizer,
        record: ImageRecord,
        width: int,
        height: int,
        quality: int,
    ) -> ImageRecord:
        try:
            record = finalizer.finalize(record)
        except DecodeError as exc:
            logger.warning("Finalizer rejected %s, recoding: %s", record.key, exc)
            record.needs_recode = True
        if record.needs_recode:
            logger.warning("Recoding %s for the %s finalizer", record.key, record.target_format)
            record = self._resize(record, width, height, True, quality)
            record = finalizer.finalize(record)
        return record

    def _resize(self, record: ImageRecord, width: int, height: int, preserve_alpha: bool, quality: int) -> ImageRecord:
        return resize(
            record,
            width,
            height,
            self._backend,
            preserve_alpha=preserve_alpha,
            quality=quality,
            matte=self._matte,
        )


def create_importer(
    settings: Settings | None = None,
    reader: ReferenceReader | None = None,
    backend: RasterBackend | None = None,
) -> ImageImporter:
    """Create an importer wired from settings with the default collaborators."""
    settings = settings or get_settings()
    if reader is None:
        reader = FileReader(timeout=settings.fetch_timeout, max_file_size=settings.max_file_size)
    if backend is None:
        backend = PillowRaster(max_image_pixels=settings.max_image_pixels)
    matte = ImageColor.getrgb(settings.matte_color)[:3]
    return ImageImporter(
        reader=reader,
        backend=backend,
        matte=(matte[0], matte[1], matte[2]),
        default_quality=settings.default_quality,
    )
