"""Headless-browser module for sanctuary.

Public API:
    HeadlessBrowser -- Abstract base class
    BrowserError -- Raised on any failed browser call
    BrowserlessBrowser -- Browserless REST implementation
"""

from sanctuary.browser.base import (
    DEFAULT_PAGE_SELECTORS,
    VIDEO_SOURCE_SELECTORS,
    BrowserError,
    HeadlessBrowser,
)

__all__ = [
    "DEFAULT_PAGE_SELECTORS",
    "VIDEO_SOURCE_SELECTORS",
    "BrowserError",
    "BrowserlessBrowser",
    "HeadlessBrowser",
]


def __getattr__(name: str) -> type:
    """Lazy import for concrete implementations that require external deps."""
    if name == "BrowserlessBrowser":
        from sanctuary.browser.browserless import BrowserlessBrowser
        return BrowserlessBrowser
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
