"""Fallback acquisition for content that refused to embed.

Steps run strictly in order and the first one that produces something
playable wins:

    quota re-check -> scrape for a media URL -> download + store
    -> screenshot + store -> unavailable

Upstream failures (browser, download, storage, timeouts) are logged and
fall through to the next step. Only a missing browser credential is
reported as an error, and that is decided once, at construction.
"""

from __future__ import annotations

import asyncio
import logging
from urllib.parse import urljoin, urlsplit

import httpx

from sanctuary import quota
from sanctuary.browser.base import VIDEO_SOURCE_SELECTORS, BrowserError, HeadlessBrowser
from sanctuary.config.settings import FallbackConfig
from sanctuary.domain.models import (
    Downloaded,
    Error,
    FallbackOutcome,
    ScreenshotOnly,
    Unavailable,
)
from sanctuary.fallback import messages
from sanctuary.ledger.base import ProfileNotFoundError, SessionLedger
from sanctuary.storage.base import ObjectStorage, StorageError, media_key, screenshot_key

logger = logging.getLogger(__name__)

MEDIA_EXTENSIONS = (".mp4", ".webm", ".mov", ".m4v", ".ogv")


def is_media_candidate(value: str) -> bool:
    """Whether a scraped value looks like it points at a video."""
    lower = value.lower()
    return any(ext in lower for ext in MEDIA_EXTENSIONS) or "video" in lower


def media_extension(media_url: str) -> str:
    return "webm" if urlsplit(media_url).path.lower().endswith(".webm") else "mp4"


class FallbackService:
    """Server-authoritative fallback pipeline for one request at a time.

    Holds no per-request state; a single instance serves concurrent
    requests.
    """

    def __init__(
        self,
        browser: HeadlessBrowser | None,
        storage: ObjectStorage,
        ledger: SessionLedger,
        config: FallbackConfig | None = None,
        browser_timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._browser = browser
        self._storage = storage
        self._ledger = ledger
        self._config = config or FallbackConfig()
        self._browser_timeout = browser_timeout
        self._http = http_client or httpx.AsyncClient(
            timeout=self._config.download_timeout,
            follow_redirects=True,
        )
        if browser is None:
            logger.error("Headless browser is not configured; fallback requests will be refused")

    @property
    def is_configured(self) -> bool:
        return self._browser is not None

    async def aclose(self) -> None:
        await self._http.aclose()

    async def acquire(
        self,
        url: str,
        user_id: str,
        claimed_remaining_seconds: int | None = None,
    ) -> FallbackOutcome:
        """Try to deliver ``url`` to ``user_id`` without direct embedding.

        ``claimed_remaining_seconds`` is what the client believes it has
        left; it is only logged. The allowance is recomputed from the
        stored profile.

        Raises:
            LedgerError: If the profile store itself is unavailable.
        """
        if not url or not user_id:
            return Error(code="invalid_request", message=messages.MSG_INVALID_REQUEST)

        try:
            profile = await asyncio.to_thread(self._ledger.get_profile, user_id)
        except ProfileNotFoundError:
            logger.info("Fallback requested for unknown user %s", user_id)
            return Error(code="profile_not_found", message=messages.MSG_PROFILE_NOT_FOUND)

        remaining = quota.remaining_seconds(profile.current_day, profile.total_watch_time_today_seconds)
        if claimed_remaining_seconds is not None and claimed_remaining_seconds != remaining:
            logger.debug(
                "Client claimed %ds remaining for %s, server has %ds",
                claimed_remaining_seconds, user_id, remaining,
            )
        if remaining <= 0:
            return Unavailable(
                reason="quota_exhausted",
                remaining_seconds=0,
                message=messages.MSG_ALLOWANCE_USED,
            )

        if self._browser is None:
            logger.error("Fallback refused for %s: headless browser credential missing", user_id)
            return Error(code="not_configured", message=messages.MSG_NOT_CONFIGURED)

        logger.info("Fallback requested for %s (%ds remaining)", url, remaining)

        media_url = await self._find_media_url(url)
        if media_url is not None:
            outcome = await self._download(media_url, user_id, remaining)
            if outcome is not None:
                return outcome

        outcome = await self._capture_screenshot(url, user_id, remaining)
        if outcome is not None:
            return outcome

        logger.info("All fallback steps exhausted for %s", url)
        return Unavailable(
            reason="protected",
            remaining_seconds=remaining,
            message=messages.protected(remaining),
        )

    async def _find_media_url(self, page_url: str) -> str | None:
        try:
            elements = await asyncio.wait_for(
                self._browser.scrape(page_url, VIDEO_SOURCE_SELECTORS),
                timeout=self._browser_timeout,
            )
        except (BrowserError, asyncio.TimeoutError) as e:
            logger.warning("Scrape of %s failed: %s", page_url, str(e) or "timed out")
            return None

        for element in elements:
            for value in element.values:
                if not is_media_candidate(value):
                    continue
                try:
                    candidate = urljoin(page_url, value)
                    scheme = urlsplit(candidate).scheme
                except ValueError as e:
                    logger.debug("Skipping unparseable media value %r: %s", value, e)
                    continue
                if scheme in ("http", "https"):
                    logger.info("Found media URL: %s", candidate)
                    return candidate
        logger.info("No media URL found on %s", page_url)
        return None

    async def _download(self, media_url: str, user_id: str, remaining: int) -> Downloaded | None:
        try:
            payload = await self._fetch_media(media_url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("Download of %s failed: %s", media_url, e)
            return None
        if payload is None:
            return None
        if len(payload) <= self._config.min_payload_bytes:
            logger.warning("Download of %s too small (%d bytes), likely an error page", media_url, len(payload))
            return None

        ext = media_extension(media_url)
        key = media_key(user_id, ext)
        expires_in = max(remaining, self._config.min_signed_url_seconds)
        try:
            await self._storage.upload(key, payload, f"video/{ext}")
            play_url = await self._storage.create_signed_url(key, expires_in)
        except StorageError as e:
            logger.warning("Storing %s failed: %s", key, e)
            return None

        logger.info("Stored %s (%d bytes), signed for %ds", key, len(payload), expires_in)
        return Downloaded(
            play_url=play_url,
            expires_in_seconds=expires_in,
            remaining_seconds=remaining,
            message=messages.downloaded(remaining),
        )

    async def _fetch_media(self, media_url: str) -> bytes | None:
        """Stream ``media_url`` into memory, giving up past ``max_payload_bytes``."""
        limit = self._config.max_payload_bytes
        async with self._http.stream("GET", media_url, headers={"User-Agent": self._config.user_agent}) as resp:
            if resp.is_error:
                logger.warning("Download of %s returned %d", media_url, resp.status_code)
                return None
            declared = resp.headers.get("Content-Length")
            if declared is not None and declared.isdigit() and int(declared) > limit:
                logger.warning("Download of %s declares %s bytes, over the %d limit", media_url, declared, limit)
                return None
            chunks = bytearray()
            async for chunk in resp.aiter_bytes():
                chunks.extend(chunk)
                if len(chunks) > limit:
                    logger.warning("Download of %s exceeded %d bytes, abandoning", media_url, limit)
                    return None
        return bytes(chunks)

    async def _capture_screenshot(self, page_url: str, user_id: str, remaining: int) -> ScreenshotOnly | None:
        try:
            image = await asyncio.wait_for(
                self._browser.screenshot(page_url),
                timeout=self._browser_timeout,
            )
        except (BrowserError, asyncio.TimeoutError) as e:
            logger.warning("Screenshot of %s failed: %s", page_url, str(e) or "timed out")
            return None

        key = screenshot_key(user_id)
        try:
            await self._storage.upload(key, image, "image/png")
            screenshot_url = await self._storage.create_signed_url(key, remaining)
        except StorageError as e:
            logger.warning("Storing screenshot %s failed: %s", key, e)
            return None

        return ScreenshotOnly(
            screenshot_url=screenshot_url,
            remaining_seconds=remaining,
            message=messages.screenshot_only(remaining),
        )
