"""Browserless headless-browser backend.

Talks to the Browserless REST API (``/scrape``, ``/screenshot``,
``/content``) over HTTP, authenticating with a token query parameter.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from pydantic import ValidationError

from sanctuary.browser.base import DEFAULT_PAGE_SELECTORS, BrowserError, HeadlessBrowser
from sanctuary.domain.models import ScrapedElement, ScrapeSelector

logger = logging.getLogger(__name__)

WAIT_FOR_SELECTOR_TIMEOUT_MS = 10000


class BrowserlessBrowser(HeadlessBrowser):
    """Remote Chrome via the Browserless API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://production-sfo.browserless.io",
        timeout: float = 30.0,
        navigation_timeout_ms: int = 30000,
        wait_for_ms: int = 3000,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._navigation_timeout_ms = navigation_timeout_ms
        self._wait_for_ms = wait_for_ms
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
            headers={"Cache-Control": "no-cache"},
        )
        logger.info("Browserless client ready (%s)", self._base_url)

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Browserless client closed")

    async def scrape(
        self,
        url: str,
        selectors: tuple[ScrapeSelector, ...] | list[ScrapeSelector] | None = None,
        wait_for: str | None = None,
    ) -> list[ScrapedElement]:
        """Scrape selector values; attribute values first, then element text."""
        selectors = list(selectors) if selectors else list(DEFAULT_PAGE_SELECTORS)
        body: dict[str, Any] = {
            "url": url,
            "elements": [{"selector": s.selector} for s in selectors],
            "gotoOptions": self._goto_options(),
            "waitForTimeout": self._wait_for_ms,
        }
        if wait_for:
            body["waitForSelector"] = {"selector": wait_for, "timeout": WAIT_FOR_SELECTOR_TIMEOUT_MS}

        resp = await self._post("scrape", body)
        try:
            payload = resp.json()
        except ValueError as e:
            raise BrowserError(f"Malformed scrape response: {e}", action="scrape") from e

        properties = {s.selector: s.property for s in selectors}
        try:
            elements = _parse_elements(payload, properties)
        except (AttributeError, TypeError, ValidationError) as e:
            raise BrowserError(f"Unexpected scrape response shape: {e}", action="scrape") from e
        logger.debug("Scraped %d selector groups from %s", len(elements), url)
        return elements

    async def screenshot(self, url: str) -> bytes:
        body = {
            "url": url,
            "options": {"type": "png", "fullPage": False},
            "gotoOptions": self._goto_options(),
        }
        resp = await self._post("screenshot", body)
        logger.debug("Screenshot of %s: %d bytes", url, len(resp.content))
        return resp.content

    async def content(self, url: str) -> str:
        body = {"url": url, "gotoOptions": self._goto_options()}
        resp = await self._post("content", body)
        return resp.text

    def _goto_options(self) -> dict[str, Any]:
        return {"waitUntil": "networkidle2", "timeout": self._navigation_timeout_ms}

    async def _post(self, action: str, body: dict[str, Any]) -> httpx.Response:
        """POST to a Browserless action endpoint, raising BrowserError on failure."""
        await self.connect()
        try:
            resp = await self._client.post(f"/{action}", params={"token": self._api_key}, json=body)
        except httpx.HTTPError as e:
            raise BrowserError(f"Browserless {action} request failed: {e}", action=action) from e
        if resp.is_error:
            logger.warning("Browserless %s error: %d - %s", action, resp.status_code, resp.text[:200])
            raise BrowserError(
                f"Browserless API error: {resp.status_code}",
                action=action,
                status_code=resp.status_code,
            )
        return resp


def _parse_elements(payload: Any, properties: dict[str, str | None]) -> list[ScrapedElement]:
    """Read a Browserless ``{"data": [{"selector", "results"}]}`` body into elements."""
    if not isinstance(payload, dict):
        raise TypeError(f"expected an object, got {type(payload).__name__}")
    data = payload.get("data") or []
    if not isinstance(data, list):
        raise TypeError(f"expected a list under 'data', got {type(data).__name__}")
    elements = []
    for item in data:
        selector = item.get("selector", "")
        values = _extract_values(item.get("results") or [], properties.get(selector))
        elements.append(ScrapedElement(selector=selector, values=values))
    return elements


def _extract_values(results: list[dict], prop: str | None) -> list[str]:
    if not isinstance(results, list):
        raise TypeError(f"expected a list of results, got {type(results).__name__}")
    values: list[str] = []
    for result in results:
        if prop:
            for attr in result.get("attributes") or []:
                if attr.get("name") == prop and attr.get("value"):
                    values.append(attr["value"])
        text = (result.get("text") or "").strip()
        if text:
            values.append(text)
    return values
