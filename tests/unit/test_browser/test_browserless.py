"""Tests for the Browserless headless-browser backend."""

from __future__ import annotations

import json

import httpx
import pytest

from sanctuary.browser.base import VIDEO_SOURCE_SELECTORS, BrowserError
from sanctuary.browser.browserless import BrowserlessBrowser
from sanctuary.domain.models import ScrapeSelector


def _browser(handler) -> BrowserlessBrowser:
    return BrowserlessBrowser(
        api_key="test-token",
        base_url="https://browserless.test/",
        transport=httpx.MockTransport(handler),
    )


class TestBrowserlessBrowser:
    def test_init_defaults(self) -> None:
        browser = BrowserlessBrowser(api_key="k")
        assert browser._base_url == "https://production-sfo.browserless.io"
        assert browser._timeout == 30.0

    @pytest.mark.asyncio
    async def test_scrape_sends_selectors_and_token(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"data": []})

        async with _browser(handler) as browser:
            await browser.scrape("https://example.com/v", VIDEO_SOURCE_SELECTORS, wait_for="video")

        request = seen[0]
        assert request.url.path == "/scrape"
        assert request.url.params["token"] == "test-token"
        body = json.loads(request.content)
        assert body["url"] == "https://example.com/v"
        assert [e["selector"] for e in body["elements"]] == [s.selector for s in VIDEO_SOURCE_SELECTORS]
        assert body["gotoOptions"] == {"waitUntil": "networkidle2", "timeout": 30000}
        assert body["waitForSelector"] == {"selector": "video", "timeout": 10000}

    @pytest.mark.asyncio
    async def test_scrape_extracts_attribute_then_text(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "data": [
                        {
                            "selector": "video source",
                            "results": [
                                {
                                    "attributes": [
                                        {"name": "type", "value": "video/mp4"},
                                        {"name": "src", "value": "/media/clip.mp4"},
                                    ],
                                    "text": "",
                                }
                            ],
                        },
                        {
                            "selector": "title",
                            "results": [{"attributes": [], "text": "  A page  "}],
                        },
                    ]
                },
            )

        selectors = [
            ScrapeSelector(selector="video source", property="src"),
            ScrapeSelector(selector="title"),
        ]
        async with _browser(handler) as browser:
            elements = await browser.scrape("https://example.com", selectors)

        assert elements[0].selector == "video source"
        assert elements[0].values == ["/media/clip.mp4"]
        assert elements[1].values == ["A page"]

    @pytest.mark.asyncio
    async def test_scrape_defaults_to_page_selectors(self) -> None:
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"data": []})

        async with _browser(handler) as browser:
            await browser.scrape("https://example.com")

        selectors = [e["selector"] for e in bodies[0]["elements"]]
        assert "video" in selectors and "iframe" in selectors
        assert "waitForSelector" not in bodies[0]

    @pytest.mark.asyncio
    async def test_http_error_raises_browser_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, text="rate limited")

        async with _browser(handler) as browser:
            with pytest.raises(BrowserError) as exc_info:
                await browser.screenshot("https://example.com")
        assert exc_info.value.status_code == 429
        assert exc_info.value.action == "screenshot"

    @pytest.mark.asyncio
    async def test_transport_error_raises_browser_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        async with _browser(handler) as browser:
            with pytest.raises(BrowserError):
                await browser.content("https://example.com")

    @pytest.mark.asyncio
    async def test_malformed_scrape_json(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>not json</html>")

        async with _browser(handler) as browser:
            with pytest.raises(BrowserError):
                await browser.scrape("https://example.com")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            [],
            {"data": ["oops"]},
            {"data": {"selector": "video"}},
            {"data": [{"selector": "video", "results": "nope"}]},
            {"data": [{"selector": "video", "results": [{"text": 5}]}]},
            {"data": [{"selector": "video", "results": [{"attributes": ["src"]}]}]},
        ],
    )
    async def test_unexpected_scrape_shape_raises_browser_error(self, payload) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=payload)

        selectors = [ScrapeSelector(selector="video", property="src")]
        async with _browser(handler) as browser:
            with pytest.raises(BrowserError) as exc_info:
                await browser.scrape("https://example.com", selectors)
        assert exc_info.value.action == "scrape"

    @pytest.mark.asyncio
    async def test_screenshot_requests_viewport_png(self) -> None:
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, content=b"\x89PNGdata")

        async with _browser(handler) as browser:
            png = await browser.screenshot("https://example.com")

        assert png == b"\x89PNGdata"
        assert bodies[0]["options"] == {"type": "png", "fullPage": False}

    @pytest.mark.asyncio
    async def test_content_returns_html(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/content"
            return httpx.Response(200, text="<html><body>hi</body></html>")

        async with _browser(handler) as browser:
            html = await browser.content("https://example.com")
        assert "hi" in html

    @pytest.mark.asyncio
    async def test_disconnect_is_repeatable(self) -> None:
        browser = _browser(lambda request: httpx.Response(200, json={"data": []}))
        await browser.connect()
        await browser.disconnect()
        await browser.disconnect()
        assert browser._client is None
