"""Embeddable-player URL resolution and load checks for common video platforms.

Malformed or unrecognised URLs fail open: the input string is returned
unchanged so the caller always has something to attempt.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable
from urllib.parse import parse_qs, urlsplit

import httpx

logger = logging.getLogger(__name__)

YOUTUBE_HOSTS = ("youtube.com", "youtu.be")
VIMEO_HOSTS = ("vimeo.com",)
DAILYMOTION_HOSTS = ("dailymotion.com",)

KNOWN_EMBED_HOSTS = YOUTUBE_HOSTS + VIMEO_HOSTS + DAILYMOTION_HOSTS


def _hostname(url: str) -> str | None:
    try:
        return urlsplit(url).hostname
    except ValueError:
        return None


def _host_matches(host: str, domains: tuple[str, ...]) -> bool:
    return any(domain in host for domain in domains)


def _last_segment(path: str) -> str:
    return path.rstrip("/").split("/")[-1] if path.strip("/") else ""


def resolve_embed_url(url: str) -> str:
    """Rewrite a watch-page URL to the platform's embeddable player URL."""
    try:
        parts = urlsplit(url)
        host = parts.hostname
    except ValueError:
        logger.debug("Unparseable URL, using as-is: %s", url)
        return url
    if not host:
        return url

    if _host_matches(host, YOUTUBE_HOSTS):
        if "youtu.be" in host:
            video_id = parts.path.lstrip("/").split("/")[0]
        else:
            video_id = parse_qs(parts.query).get("v", [""])[0]
        if video_id:
            return f"https://www.youtube.com/embed/{video_id}?autoplay=1&rel=0"

    if _host_matches(host, VIMEO_HOSTS):
        video_id = _last_segment(parts.path)
        if video_id:
            return f"https://player.vimeo.com/video/{video_id}?autoplay=1"

    if _host_matches(host, DAILYMOTION_HOSTS):
        video_id = _last_segment(parts.path).replace("video/", "")
        if video_id:
            return f"https://www.dailymotion.com/embed/video/{video_id}?autoplay=1"

    return url


def is_known_embeddable(url: str) -> bool:
    """True if the URL's host belongs to a platform with a known player."""
    host = _hostname(url)
    return bool(host) and _host_matches(host, KNOWN_EMBED_HOSTS)


class EmbedWatchdog:
    """Decides whether an embedded frame failed to render.

    Cross-origin frames cannot be inspected reliably, so failure is a
    heuristic: the embed failed if no load signal arrived before the
    deadline, or the load signal reported an empty document.
    """

    def __init__(
        self,
        timeout: float = 8.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._timeout = timeout
        self._clock = clock
        self._started_at = clock()
        self._loaded = False
        self._empty = False

    def mark_loaded(self, document_empty: bool = False) -> None:
        """Record the frame's load signal. Signals after the deadline are ignored."""
        if self._loaded or self.deadline_passed:
            return
        self._loaded = True
        self._empty = document_empty

    @property
    def deadline_passed(self) -> bool:
        return self._clock() - self._started_at >= self._timeout

    @property
    def has_failed(self) -> bool:
        if self._loaded:
            return self._empty
        return self.deadline_passed


def _refuses_framing(headers: httpx.Headers) -> bool:
    if headers.get("X-Frame-Options", "").strip().lower() in ("deny", "sameorigin"):
        return True
    for directive in headers.get("Content-Security-Policy", "").split(";"):
        name, _, sources = directive.strip().partition(" ")
        if name.lower() == "frame-ancestors" and sources.strip() in ("'none'", "'self'"):
            return True
    return False


async def check_embed(url: str, client: httpx.AsyncClient, timeout: float = 8.0) -> bool:
    """Fetch ``url`` as a player frame would and report whether it would render.

    The page fails when it does not answer within ``timeout``, answers
    with an error status, forbids being framed, or comes back empty.
    """
    watchdog = EmbedWatchdog(timeout=timeout)
    try:
        resp = await asyncio.wait_for(client.get(url), timeout=timeout)
    except (httpx.HTTPError, httpx.InvalidURL, asyncio.TimeoutError) as e:
        logger.info("Embed %s did not load: %s", url, str(e) or "timed out")
        return False
    if resp.is_error:
        logger.info("Embed %s returned %d", url, resp.status_code)
        return False
    if _refuses_framing(resp.headers):
        logger.info("Embed %s refuses to be framed", url)
        return False
    watchdog.mark_loaded(document_empty=not resp.content.strip())
    return not watchdog.has_failed
