"""Tests for the fallback acquisition pipeline."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from sanctuary.browser.base import BrowserError
from sanctuary.browser.browserless import BrowserlessBrowser
from sanctuary.config.settings import FallbackConfig
from sanctuary.domain.models import (
    Downloaded,
    Error,
    Profile,
    ScrapedElement,
    ScreenshotOnly,
    Unavailable,
)
from sanctuary.fallback.service import FallbackService, is_media_candidate, media_extension
from sanctuary.ledger.memory import MemoryLedger
from sanctuary.storage.base import StorageError
from sanctuary.storage.memory import MemoryStorage

MEDIA_URL = "https://cdn.example.com/video.mp4"


def _downloads(status: int = 200, size: int = 5000) -> tuple[httpx.AsyncClient, list[httpx.Request]]:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status, content=b"\x00" * size)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), requests


def _service(browser, storage, ledger, http_client=None, config=None) -> FallbackService:
    client = http_client or _downloads()[0]
    return FallbackService(browser=browser, storage=storage, ledger=ledger, config=config, http_client=client)


class TestMediaCandidates:
    @pytest.mark.parametrize(
        "value",
        ["https://cdn.example.com/a.MP4", "/clip.webm?x=1", "https://example.com/video/123"],
    )
    def test_candidates(self, value: str) -> None:
        assert is_media_candidate(value)

    def test_non_candidates(self) -> None:
        assert not is_media_candidate("https://example.com/page.html")
        assert not is_media_candidate("Some page title")

    def test_extension(self) -> None:
        assert media_extension("https://cdn.example.com/a.webm") == "webm"
        assert media_extension("https://cdn.example.com/a.mov") == "mp4"


class TestValidation:
    @pytest.mark.asyncio
    async def test_missing_fields(self, mock_browser: AsyncMock, storage: MemoryStorage, ledger: MemoryLedger) -> None:
        outcome = await _service(mock_browser, storage, ledger).acquire("", "u1")
        assert isinstance(outcome, Error)
        assert outcome.code == "invalid_request"

    @pytest.mark.asyncio
    async def test_unknown_profile(self, mock_browser: AsyncMock, storage: MemoryStorage, ledger: MemoryLedger) -> None:
        outcome = await _service(mock_browser, storage, ledger).acquire(MEDIA_URL, "nobody")
        assert isinstance(outcome, Error)
        assert outcome.code == "profile_not_found"
        mock_browser.scrape.assert_not_called()

    @pytest.mark.asyncio
    async def test_not_configured(self, storage: MemoryStorage, ledger: MemoryLedger) -> None:
        service = _service(None, storage, ledger)
        assert service.is_configured is False
        outcome = await service.acquire("https://example.com/watch", "u1")
        assert isinstance(outcome, Error)
        assert outcome.code == "not_configured"


class TestQuotaGate:
    @pytest.mark.asyncio
    async def test_exhausted_quota_makes_no_browser_calls(
        self, mock_browser: AsyncMock, storage: MemoryStorage, exhausted_profile: Profile
    ) -> None:
        ledger = MemoryLedger()
        ledger.save_profile(exhausted_profile)
        client, downloads = _downloads()

        outcome = await _service(mock_browser, storage, ledger, client).acquire(
            "https://example.com/watch", "u1", claimed_remaining_seconds=600
        )

        assert isinstance(outcome, Unavailable)
        assert outcome.reason == "quota_exhausted"
        assert outcome.remaining_seconds == 0
        mock_browser.scrape.assert_not_called()
        mock_browser.screenshot.assert_not_called()
        assert downloads == []
        assert storage.objects == {}

    @pytest.mark.asyncio
    async def test_server_allowance_wins_over_client_claim(
        self, mock_browser: AsyncMock, storage: MemoryStorage, ledger: MemoryLedger
    ) -> None:
        ledger.save_profile(Profile(user_id="u1", current_day=7))
        outcome = await _service(mock_browser, storage, ledger).acquire(
            "https://example.com/watch", "u1", claimed_remaining_seconds=3600
        )
        assert isinstance(outcome, Unavailable)
        assert outcome.reason == "quota_exhausted"


class TestDownloadPath:
    @pytest.mark.asyncio
    async def test_scraped_media_is_downloaded_and_signed(
        self, mock_browser: AsyncMock, storage: MemoryStorage, ledger: MemoryLedger
    ) -> None:
        mock_browser.scrape.return_value = [ScrapedElement(selector="video source", values=[MEDIA_URL])]
        client, downloads = _downloads(size=5000)

        outcome = await _service(mock_browser, storage, ledger, client).acquire("https://example.com/watch", "u1")

        assert isinstance(outcome, Downloaded)
        assert outcome.expires_in_seconds >= 300
        assert outcome.remaining_seconds == 3600
        assert str(downloads[0].url) == MEDIA_URL
        assert "User-Agent" in downloads[0].headers
        (key, stored), = storage.objects.items()
        assert key.startswith("u1/") and key.endswith(".mp4")
        assert stored.content_type == "video/mp4"
        assert len(stored.data) == 5000
        assert outcome.play_url == f"memory://private-library/{key}?expires_in=3600"
        mock_browser.screenshot.assert_not_called()

    @pytest.mark.asyncio
    async def test_short_allowance_still_gets_five_minute_link(
        self, mock_browser: AsyncMock, storage: MemoryStorage, ledger: MemoryLedger
    ) -> None:
        ledger.save_profile(Profile(user_id="u1", current_day=1, total_watch_time_today_seconds=3590))
        mock_browser.scrape.return_value = [ScrapedElement(selector="video", values=[MEDIA_URL])]

        outcome = await _service(mock_browser, storage, ledger).acquire("https://example.com/watch", "u1")

        assert isinstance(outcome, Downloaded)
        assert outcome.remaining_seconds == 10
        assert outcome.expires_in_seconds == 300

    @pytest.mark.asyncio
    async def test_relative_media_url_is_resolved(
        self, mock_browser: AsyncMock, storage: MemoryStorage, ledger: MemoryLedger
    ) -> None:
        mock_browser.scrape.return_value = [ScrapedElement(selector="video", values=["/media/clip.webm"])]
        client, downloads = _downloads()

        outcome = await _service(mock_browser, storage, ledger, client).acquire("https://example.com/watch", "u1")

        assert isinstance(outcome, Downloaded)
        assert str(downloads[0].url) == "https://example.com/media/clip.webm"
        (key,) = storage.objects
        assert key.endswith(".webm")

    @pytest.mark.asyncio
    async def test_blob_urls_are_skipped(
        self, mock_browser: AsyncMock, storage: MemoryStorage, ledger: MemoryLedger
    ) -> None:
        mock_browser.scrape.return_value = [
            ScrapedElement(selector="video", values=["blob:https://example.com/5f1c-video"])
        ]
        client, downloads = _downloads()

        outcome = await _service(mock_browser, storage, ledger, client).acquire("https://example.com/watch", "u1")

        assert isinstance(outcome, ScreenshotOnly)
        assert downloads == []

    @pytest.mark.asyncio
    async def test_tiny_payload_falls_through_to_screenshot(
        self, mock_browser: AsyncMock, storage: MemoryStorage, ledger: MemoryLedger
    ) -> None:
        mock_browser.scrape.return_value = [ScrapedElement(selector="video", values=[MEDIA_URL])]
        client, _ = _downloads(size=1000)

        outcome = await _service(mock_browser, storage, ledger, client).acquire("https://example.com/watch", "u1")

        assert isinstance(outcome, ScreenshotOnly)
        mock_browser.screenshot.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_download_error_status_falls_through(
        self, mock_browser: AsyncMock, storage: MemoryStorage, ledger: MemoryLedger
    ) -> None:
        mock_browser.scrape.return_value = [ScrapedElement(selector="video", values=[MEDIA_URL])]
        client, _ = _downloads(status=403)

        outcome = await _service(mock_browser, storage, ledger, client).acquire("https://example.com/watch", "u1")

        assert isinstance(outcome, ScreenshotOnly)

    @pytest.mark.asyncio
    async def test_unparseable_media_value_is_skipped(
        self, mock_browser: AsyncMock, storage: MemoryStorage, ledger: MemoryLedger
    ) -> None:
        mock_browser.scrape.return_value = [
            ScrapedElement(selector="video", values=["http://[video", "https://cdn.example.com/ok.mp4"])
        ]
        client, downloads = _downloads()

        outcome = await _service(mock_browser, storage, ledger, client).acquire("https://example.com/watch", "u1")

        assert isinstance(outcome, Downloaded)
        assert [str(r.url) for r in downloads] == ["https://cdn.example.com/ok.mp4"]

    @pytest.mark.asyncio
    async def test_only_unparseable_media_falls_through(
        self, mock_browser: AsyncMock, storage: MemoryStorage, ledger: MemoryLedger
    ) -> None:
        mock_browser.scrape.return_value = [ScrapedElement(selector="video", values=["http://[video"])]
        client, downloads = _downloads()

        outcome = await _service(mock_browser, storage, ledger, client).acquire("https://example.com/watch", "u1")

        assert isinstance(outcome, ScreenshotOnly)
        assert downloads == []

    @pytest.mark.asyncio
    async def test_invalid_download_url_falls_through(
        self, mock_browser: AsyncMock, storage: MemoryStorage, ledger: MemoryLedger
    ) -> None:
        http = MagicMock()
        http.stream.side_effect = httpx.InvalidURL("Invalid URL")
        mock_browser.scrape.return_value = [ScrapedElement(selector="video", values=[MEDIA_URL])]

        outcome = await _service(mock_browser, storage, ledger, http).acquire("https://example.com/watch", "u1")

        assert isinstance(outcome, ScreenshotOnly)

    @pytest.mark.asyncio
    async def test_oversized_download_is_abandoned(
        self, mock_browser: AsyncMock, storage: MemoryStorage, ledger: MemoryLedger
    ) -> None:
        mock_browser.scrape.return_value = [ScrapedElement(selector="video", values=[MEDIA_URL])]
        client, downloads = _downloads(size=5000)
        config = FallbackConfig(max_payload_bytes=4096)

        outcome = await _service(mock_browser, storage, ledger, client, config).acquire(
            "https://example.com/watch", "u1"
        )

        assert isinstance(outcome, ScreenshotOnly)
        assert len(downloads) == 1
        assert all(not key.endswith(".mp4") for key in storage.objects)

    @pytest.mark.asyncio
    async def test_undeclared_length_is_capped_while_streaming(
        self, mock_browser: AsyncMock, storage: MemoryStorage, ledger: MemoryLedger
    ) -> None:
        async def body():
            for _ in range(10):
                yield b"\x00" * 1024

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=body())

        mock_browser.scrape.return_value = [ScrapedElement(selector="video", values=[MEDIA_URL])]
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        config = FallbackConfig(max_payload_bytes=4096)

        outcome = await _service(mock_browser, storage, ledger, client, config).acquire(
            "https://example.com/watch", "u1"
        )

        assert isinstance(outcome, ScreenshotOnly)


class TestScreenshotPath:
    @pytest.mark.asyncio
    async def test_no_media_takes_one_screenshot(
        self, mock_browser: AsyncMock, storage: MemoryStorage, ledger: MemoryLedger
    ) -> None:
        mock_browser.scrape.return_value = [ScrapedElement(selector="title", values=["Just a page"])]

        outcome = await _service(mock_browser, storage, ledger).acquire("https://example.com/watch", "u1")

        assert isinstance(outcome, ScreenshotOnly)
        mock_browser.screenshot.assert_awaited_once_with("https://example.com/watch")
        (key, stored), = storage.objects.items()
        assert key.startswith("u1/screenshots/")
        assert stored.content_type == "image/png"
        assert outcome.screenshot_url.endswith("expires_in=3600")

    @pytest.mark.asyncio
    async def test_scrape_failure_still_tries_screenshot(
        self, mock_browser: AsyncMock, storage: MemoryStorage, ledger: MemoryLedger
    ) -> None:
        mock_browser.scrape.side_effect = BrowserError("502", action="scrape", status_code=502)

        outcome = await _service(mock_browser, storage, ledger).acquire("https://example.com/watch", "u1")

        assert isinstance(outcome, ScreenshotOnly)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "scrape_body",
        [[], {"data": ["oops"]}, {"data": [{"selector": "video", "results": [{"text": 5}]}]}],
    )
    async def test_odd_scrape_body_still_tries_screenshot(
        self, scrape_body, storage: MemoryStorage, ledger: MemoryLedger
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/scrape":
                return httpx.Response(200, json=scrape_body)
            return httpx.Response(200, content=b"\x89PNG\r\n\x1a\n" + b"\x00" * 64)

        browser = BrowserlessBrowser(
            api_key="test-token",
            base_url="https://browserless.test",
            transport=httpx.MockTransport(handler),
        )
        try:
            outcome = await _service(browser, storage, ledger).acquire("https://example.com/watch", "u1")
        finally:
            await browser.disconnect()

        assert isinstance(outcome, ScreenshotOnly)
        (key,) = storage.objects
        assert key.startswith("u1/screenshots/")

    @pytest.mark.asyncio
    async def test_everything_failing_is_protected(
        self, mock_browser: AsyncMock, storage: MemoryStorage, ledger: MemoryLedger
    ) -> None:
        mock_browser.screenshot.side_effect = BrowserError("blocked", action="screenshot")

        outcome = await _service(mock_browser, storage, ledger).acquire("https://example.com/watch", "u1")

        assert isinstance(outcome, Unavailable)
        assert outcome.reason == "protected"
        assert outcome.remaining_seconds == 3600
        assert "60 minutes" in outcome.message

    @pytest.mark.asyncio
    async def test_browser_timeout_is_handled(self, storage: MemoryStorage, ledger: MemoryLedger) -> None:
        browser = AsyncMock()

        async def hang(*args, **kwargs):
            await asyncio.sleep(10)

        browser.scrape.side_effect = hang
        browser.screenshot.side_effect = hang
        service = FallbackService(
            browser=browser, storage=storage, ledger=ledger, browser_timeout=0.01, http_client=_downloads()[0]
        )

        outcome = await service.acquire("https://example.com/watch", "u1")

        assert isinstance(outcome, Unavailable)
        assert outcome.reason == "protected"

    @pytest.mark.asyncio
    async def test_storage_failure_is_protected(self, mock_browser: AsyncMock, ledger: MemoryLedger) -> None:
        storage = AsyncMock()
        storage.upload.side_effect = StorageError("bucket missing", backend="supabase")

        outcome = await _service(mock_browser, storage, ledger).acquire("https://example.com/watch", "u1")

        assert isinstance(outcome, Unavailable)
        assert outcome.reason == "protected"
