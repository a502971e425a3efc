"""Abstract base class for headless-browser capabilities.

The fallback service only needs three things from a remote browser:
scrape selected element values, take a viewport screenshot, and fetch the
rendered HTML. Implementations translate those into their service's API.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from sanctuary.domain.models import ScrapedElement, ScrapeSelector

logger = logging.getLogger(__name__)

# Elements most likely to carry a direct media source.
VIDEO_SOURCE_SELECTORS: tuple[ScrapeSelector, ...] = (
    ScrapeSelector(selector="video source", property="src"),
    ScrapeSelector(selector="video", property="src"),
    ScrapeSelector(selector='source[type*="video"]', property="src"),
    ScrapeSelector(selector="[data-video-url]", property="data-video-url"),
    ScrapeSelector(selector='meta[property="og:video"]', property="content"),
    ScrapeSelector(selector='meta[property="og:video:url"]', property="content"),
)

# General page overview used when a caller supplies no selectors.
DEFAULT_PAGE_SELECTORS: tuple[ScrapeSelector, ...] = (
    ScrapeSelector(selector="video"),
    ScrapeSelector(selector="iframe"),
    ScrapeSelector(selector="title"),
    ScrapeSelector(selector="meta[name='description']", property="content"),
    ScrapeSelector(selector="a[href*='video']", property="href"),
    ScrapeSelector(selector="img", property="src"),
)


class HeadlessBrowser(ABC):
    """Abstract interface for a remote headless browser.

    Example usage::

        async with BrowserlessBrowser(api_key="...") as browser:
            elements = await browser.scrape(url, VIDEO_SOURCE_SELECTORS)
            png = await browser.screenshot(url)
    """

    @abstractmethod
    async def connect(self) -> None:
        """Prepare the underlying client. Must be safe to call repeatedly."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Release the underlying client. Must be safe to call repeatedly."""
        ...

    @abstractmethod
    async def scrape(
        self,
        url: str,
        selectors: tuple[ScrapeSelector, ...] | list[ScrapeSelector] | None = None,
        wait_for: str | None = None,
    ) -> list[ScrapedElement]:
        """Load ``url`` and return the values matched by each selector.

        Args:
            url: Page to load.
            selectors: Selector/attribute pairs to read. Implementations
                       fall back to DEFAULT_PAGE_SELECTORS when None.
            wait_for: Optional CSS selector to wait for before scraping.

        Raises:
            BrowserError: If the service is unreachable or answers non-2xx.
        """
        ...

    @abstractmethod
    async def screenshot(self, url: str) -> bytes:
        """Return a PNG of the page's first viewport (not the full page).

        Raises:
            BrowserError: If the screenshot cannot be taken.
        """
        ...

    @abstractmethod
    async def content(self, url: str) -> str:
        """Return the page's rendered HTML.

        Raises:
            BrowserError: If the page cannot be fetched.
        """
        ...

    async def __aenter__(self) -> HeadlessBrowser:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        await self.disconnect()


class BrowserError(Exception):
    """Raised when a headless-browser call fails."""

    def __init__(self, message: str, action: str = "", status_code: int | None = None) -> None:
        super().__init__(message)
        self.action = action
        self.status_code = status_code
