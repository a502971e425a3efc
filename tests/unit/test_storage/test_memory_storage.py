"""Tests for the in-memory object storage and key helpers."""

from __future__ import annotations

import pytest

from sanctuary.storage.base import StorageError, media_key, screenshot_key
from sanctuary.storage.memory import MemoryStorage


class TestKeys:
    def test_media_key_is_namespaced_per_user(self) -> None:
        key = media_key("u1", "webm")
        user, name = key.split("/")
        assert user == "u1"
        assert name.endswith(".webm")

    def test_media_keys_are_unique(self) -> None:
        assert media_key("u1") != media_key("u1")

    def test_screenshot_key(self) -> None:
        key = screenshot_key("u1")
        assert key.startswith("u1/screenshots/")
        assert key.endswith(".png")


class TestMemoryStorage:
    @pytest.mark.asyncio
    async def test_upload_and_sign(self) -> None:
        storage = MemoryStorage(bucket="lib")
        await storage.upload("u1/a.mp4", b"data", "video/mp4")
        url = await storage.create_signed_url("u1/a.mp4", 300)
        assert url == "memory://lib/u1/a.mp4?expires_in=300"
        assert storage.objects["u1/a.mp4"].content_type == "video/mp4"

    @pytest.mark.asyncio
    async def test_no_overwrite(self) -> None:
        storage = MemoryStorage()
        await storage.upload("k", b"1", "video/mp4")
        with pytest.raises(StorageError):
            await storage.upload("k", b"2", "video/mp4")

    @pytest.mark.asyncio
    async def test_sign_missing_key(self) -> None:
        storage = MemoryStorage()
        with pytest.raises(StorageError) as exc_info:
            await storage.create_signed_url("missing", 60)
        assert exc_info.value.backend == "memory"
