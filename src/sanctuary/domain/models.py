"""Core domain models for the sanctuary system.

These models represent the data flowing through the viewing pipeline:
the user's program profile, viewing-session records, content descriptors
returned by search, the events a session timer emits, and the tagged
outcome of a fallback acquisition.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class TimerState(str, enum.Enum):
    """Lifecycle state of a single viewing session timer."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    ENDED = "ended"


class EndReason(str, enum.Enum):
    """Why a viewing session ended."""

    USER_CLOSED = "user_closed"
    AUTO_STOPPED = "auto_stopped"  # Countdown reached zero


class BrowserAction(str, enum.Enum):
    """Capabilities offered by the headless-browser service."""

    SCRAPE = "scrape"
    SCREENSHOT = "screenshot"
    CONTENT = "content"


# ---------------------------------------------------------------------------
# Profile / Ledger Models
# ---------------------------------------------------------------------------


class Profile(BaseModel):
    """Per-user program state used to compute the daily allowance."""

    user_id: str = Field(description="Owner of the profile")
    current_day: int = Field(default=1, description="Program day; clamped to 1..7 by the quota calculator")
    total_watch_time_today_seconds: int = Field(
        default=0, ge=0, description="Cumulative viewing seconds recorded today"
    )


class ViewingSession(BaseModel):
    """One playback attempt, from creation to end."""

    id: str
    user_id: str
    search_query: str = ""
    started_at: datetime = Field(default_factory=utcnow)
    duration_seconds: int = Field(default=0, ge=0)
    ended_at: datetime | None = None
    was_auto_stopped: bool = False
    usage_recorded: bool = Field(default=False, description="Duration already added to the daily total")

    @property
    def is_active(self) -> bool:
        return self.ended_at is None


# ---------------------------------------------------------------------------
# Content Models
# ---------------------------------------------------------------------------


class ContentItem(BaseModel):
    """A content descriptor produced by search or saved by the user."""

    model_config = ConfigDict(frozen=True)

    title: str
    url: str
    platform: str = ""
    thumbnail: str | None = None
    description: str = ""
    duration_label: str = Field(default="", description="Human-readable length, e.g. '12:30'")


class ScrapeSelector(BaseModel):
    """A CSS selector plus the attribute to read from each match."""

    model_config = ConfigDict(frozen=True)

    selector: str
    property: str | None = Field(default=None, description="Attribute to extract; element text if None")


class ScrapedElement(BaseModel):
    """Scraped values for one selector."""

    selector: str
    values: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Timer Events (discriminated union)
# ---------------------------------------------------------------------------


class TimeUpdate(BaseModel):
    """Emitted after every tick with the new elapsed total."""

    model_config = ConfigDict(frozen=True)

    event_type: Literal["time_update"] = "time_update"
    elapsed_seconds: int
    remaining_seconds: int


class LowTimeWarning(BaseModel):
    """Emitted once, when the countdown reaches the warning threshold."""

    model_config = ConfigDict(frozen=True)

    event_type: Literal["low_time_warning"] = "low_time_warning"
    remaining_seconds: int


class SessionEnded(BaseModel):
    """Terminal event; emitted exactly once per timer."""

    model_config = ConfigDict(frozen=True)

    event_type: Literal["session_ended"] = "session_ended"
    reason: EndReason
    elapsed_seconds: int

    @property
    def was_auto_stopped(self) -> bool:
        return self.reason is EndReason.AUTO_STOPPED


TimerEvent = Annotated[
    Union[TimeUpdate, LowTimeWarning, SessionEnded],
    Field(discriminator="event_type"),
]


# ---------------------------------------------------------------------------
# Fallback Outcomes (discriminated union)
# ---------------------------------------------------------------------------


class Downloaded(BaseModel):
    """The media was fetched, stored, and is playable through a signed URL."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["downloaded"] = "downloaded"
    play_url: str
    expires_in_seconds: int
    remaining_seconds: int
    message: str


class ScreenshotOnly(BaseModel):
    """Only a static preview of the page could be captured."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["screenshot_only"] = "screenshot_only"
    screenshot_url: str
    remaining_seconds: int
    message: str


class Unavailable(BaseModel):
    """Nothing could be delivered; the user's quota was not consumed."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["unavailable"] = "unavailable"
    reason: Literal["quota_exhausted", "protected"]
    remaining_seconds: int
    message: str


class Error(BaseModel):
    """The request could not be processed at all."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["error"] = "error"
    code: Literal["not_configured", "invalid_request", "profile_not_found"]
    message: str


FallbackOutcome = Annotated[
    Union[Downloaded, ScreenshotOnly, Unavailable, Error],
    Field(discriminator="kind"),
]
