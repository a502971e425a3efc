"""Domain models for sanctuary.

This package contains all core data structures, enumerations, and value
objects used throughout the system. All models use Pydantic v2 for
validation and serialization.
"""

from sanctuary.domain.models import (
    BrowserAction,
    ContentItem,
    Downloaded,
    EndReason,
    Error,
    FallbackOutcome,
    LowTimeWarning,
    Profile,
    ScrapedElement,
    ScrapeSelector,
    ScreenshotOnly,
    SessionEnded,
    TimerEvent,
    TimerState,
    TimeUpdate,
    Unavailable,
    ViewingSession,
)

__all__ = [
    "BrowserAction",
    "ContentItem",
    "Downloaded",
    "EndReason",
    "Error",
    "FallbackOutcome",
    "LowTimeWarning",
    "Profile",
    "ScrapedElement",
    "ScrapeSelector",
    "ScreenshotOnly",
    "SessionEnded",
    "TimerEvent",
    "TimerState",
    "TimeUpdate",
    "Unavailable",
    "ViewingSession",
]
