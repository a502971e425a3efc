"""Daily viewing allowance schedule.

The single source of truth for the day -> minutes schedule. Both the
session gate (ledger tracker) and the server-authoritative re-check in the
fallback service go through these functions.
"""

from __future__ import annotations

import math

# Day-based viewing limits in minutes
DAILY_LIMITS: dict[int, int] = {
    1: 60,
    2: 40,
    3: 20,
    4: 10,
    5: 5,
    6: 2,
    7: 0,
}

FIRST_DAY = min(DAILY_LIMITS)
FINAL_DAY = max(DAILY_LIMITS)


def clamp_day(day: int) -> int:
    """Clamp a program day into the schedule's range."""
    return max(FIRST_DAY, min(FINAL_DAY, day))


def allowed_minutes(day: int) -> int:
    """Minutes of viewing allowed on the given program day."""
    return DAILY_LIMITS[clamp_day(day)]


def remaining_seconds(day: int, used_seconds_today: int) -> int:
    """Seconds of viewing left today, never negative."""
    return max(0, allowed_minutes(day) * 60 - used_seconds_today)


def remaining_minutes(day: int, used_seconds_today: int) -> int:
    """Remaining allowance rounded up to whole minutes, for display."""
    return math.ceil(remaining_seconds(day, used_seconds_today) / 60)


def is_program_complete(day: int) -> bool:
    return day >= FINAL_DAY


def format_time(seconds: int) -> str:
    """Format a second count as ``MM:SS``."""
    mins, secs = divmod(max(0, seconds), 60)
    return f"{mins:02d}:{secs:02d}"


def format_minutes(minutes: int) -> str:
    """Format a minute count as ``1h 20m``, ``1h`` or ``45m``."""
    if minutes >= 60:
        hours, mins = divmod(minutes, 60)
        return f"{hours}h {mins}m" if mins > 0 else f"{hours}h"
    return f"{minutes}m"


def describe_remaining(seconds: int) -> str:
    """Plain-language remaining time for user-facing copy."""
    if seconds >= 60:
        minutes = math.ceil(seconds / 60)
        return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"
    return f"{seconds} second" if seconds == 1 else f"{seconds} seconds"
