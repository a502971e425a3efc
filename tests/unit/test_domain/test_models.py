"""Tests for domain models."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import TypeAdapter, ValidationError

from sanctuary.domain.models import (
    ContentItem,
    Downloaded,
    EndReason,
    Error,
    FallbackOutcome,
    LowTimeWarning,
    Profile,
    SessionEnded,
    TimerEvent,
    ViewingSession,
)


class TestLedgerModels:
    def test_profile_rejects_negative_usage(self) -> None:
        with pytest.raises(ValidationError):
            Profile(user_id="u1", total_watch_time_today_seconds=-1)

    def test_session_active_until_ended(self) -> None:
        session = ViewingSession(id="s1", user_id="u1")
        assert session.is_active
        ended = session.model_copy(update={"ended_at": datetime.now(timezone.utc)})
        assert not ended.is_active


class TestContentItem:
    def test_frozen(self) -> None:
        item = ContentItem(title="Waves", url="https://youtu.be/abc", platform="youtube")
        with pytest.raises(ValidationError):
            item.title = "Other"  # type: ignore[misc]


class TestUnions:
    def test_timer_event_discriminator(self) -> None:
        adapter = TypeAdapter(TimerEvent)
        event = adapter.validate_python({"event_type": "low_time_warning", "remaining_seconds": 60})
        assert event == LowTimeWarning(remaining_seconds=60)

    def test_session_ended_flag(self) -> None:
        assert SessionEnded(reason=EndReason.AUTO_STOPPED, elapsed_seconds=3).was_auto_stopped
        assert not SessionEnded(reason=EndReason.USER_CLOSED, elapsed_seconds=3).was_auto_stopped

    def test_fallback_outcome_discriminator(self) -> None:
        adapter = TypeAdapter(FallbackOutcome)
        outcome = adapter.validate_python(
            {
                "kind": "downloaded",
                "play_url": "https://x/y.mp4",
                "expires_in_seconds": 300,
                "remaining_seconds": 10,
                "message": "ok",
            }
        )
        assert isinstance(outcome, Downloaded)
        with pytest.raises(ValidationError):
            adapter.validate_python({"kind": "error", "code": "teapot", "message": "?"})
        assert isinstance(
            adapter.validate_python({"kind": "error", "code": "not_configured", "message": "?"}), Error
        )
