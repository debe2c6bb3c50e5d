"""Tests for cache key derivation and the in-flight aware image cache."""

from __future__ import annotations

import base64
import hashlib
import threading
from dataclasses import FrozenInstanceError

import pytest

from pdfimage.cache import ImageCache, derive_key
from pdfimage.errors import NotFoundError
from pdfimage.models import ImageRecord


class TestDeriveKey:
    def test_deterministic(self) -> None:
        assert derive_key("photo.png", 50, 40, 90) == derive_key("photo.png", 50, 40, 90)

    def test_md5_of_concatenation(self) -> None:
        digest = hashlib.md5(b"photo.png504090").digest()
        expected = base64.b64encode(digest).decode().rstrip("=").replace("+", "-").replace("/", "_")

        assert derive_key("photo.png", 50, 40, 90) == expected

    def test_url_safe_without_padding(self) -> None:
        key = derive_key(b"@\xff\xfe\xfd", 0, 0, 100)

        assert len(key) == 22
        assert not set(key) & {"+", "/", "="}

    @pytest.mark.parametrize(
        "args",
        [
            ("other.png", 50, 40, 90),
            ("photo.png", 51, 40, 90),
            ("photo.png", 50, 41, 90),
            ("photo.png", 50, 40, 91),
        ],
    )
    def test_sensitive_to_every_input(self, args: tuple[str, int, int, int]) -> None:
        assert derive_key(*args) != derive_key("photo.png", 50, 40, 90)


class TestImageCache:
    def test_unknown_key(self) -> None:
        with pytest.raises(NotFoundError, match="Unknown image key"):
            ImageCache().get("nonexistent")

    def test_builds_once(self) -> None:
        cache = ImageCache()
        calls: list[int] = []

        def build() -> ImageRecord:
            calls.append(1)
            return ImageRecord(key="k")

        first = cache.get_or_build("k", build)
        second = cache.get_or_build("k", build)

        assert first is second
        assert calls == [1]
        assert cache.get("k") is first
        assert "k" in cache
        assert len(cache) == 1

    def test_failed_build_leaves_no_entry(self) -> None:
        cache = ImageCache()

        def build() -> ImageRecord:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            cache.get_or_build("k", build)

        assert "k" not in cache
        assert cache.get_or_build("k", lambda: ImageRecord(key="k")).key == "k"

    def test_concurrent_requests_share_one_build(self) -> None:
        cache = ImageCache()
        started = threading.Event()
        release = threading.Event()
        calls: list[int] = []
        results: list[ImageRecord] = []

        def build() -> ImageRecord:
            calls.append(1)
            started.set()
            release.wait(timeout=5)
            return ImageRecord(key="k")

        def worker() -> None:
            results.append(cache.get_or_build("k", build))

        threads = [threading.Thread(target=worker)]
        threads[0].start()
        assert started.wait(timeout=5)
        threads += [threading.Thread(target=worker) for _ in range(3)]
        for thread in threads[1:]:
            thread.start()
        release.set()
        for thread in threads:
            thread.join(timeout=5)

        assert calls == [1]
        assert len(results) == 4
        assert all(result is results[0] for result in results)

    def test_clear(self) -> None:
        cache = ImageCache()
        cache.get_or_build("k", ImageRecord)

        cache.clear()

        assert cache.keys() == []

    def test_stored_record_is_read_only(self) -> None:
        cache = ImageCache()
        mask = ImageRecord(key="k-mask")

        record = cache.get_or_build("k", lambda: ImageRecord(key="k", mask=mask))

        with pytest.raises(FrozenInstanceError):
            record.width = 1
        with pytest.raises(FrozenInstanceError):
            record.source.embed = False
        with pytest.raises(FrozenInstanceError):
            mask.height = 1
        assert cache.get("k").width == 0
