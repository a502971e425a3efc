"""Shared test fixtures for the sanctuary test suite.

Provides common fixtures used across unit tests: sample profiles,
in-memory ledger and storage, and a mock headless browser.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from sanctuary.browser.base import HeadlessBrowser
from sanctuary.domain.models import Profile
from sanctuary.ledger.memory import MemoryLedger
from sanctuary.storage.memory import MemoryStorage


# ---------------------------------------------------------------------------
# Profile Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def day_one_profile() -> Profile:
    """A fresh user on day 1 with the full hour available."""
    return Profile(user_id="u1", current_day=1, total_watch_time_today_seconds=0)


@pytest.fixture
def exhausted_profile() -> Profile:
    """A user on day 7, where the allowance is zero."""
    return Profile(user_id="u1", current_day=7, total_watch_time_today_seconds=0)


# ---------------------------------------------------------------------------
# Collaborator Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def ledger(day_one_profile: Profile) -> MemoryLedger:
    """An in-memory ledger holding the day-one profile."""
    ledger = MemoryLedger()
    ledger.save_profile(day_one_profile)
    return ledger


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def mock_browser() -> AsyncMock:
    """A mock HeadlessBrowser; scrape finds nothing and screenshot returns PNG bytes."""
    browser = AsyncMock(spec=HeadlessBrowser)
    browser.scrape.return_value = []
    browser.screenshot.return_value = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
    browser.content.return_value = "<html></html>"
    return browser
