"""Tests for the daily allowance schedule."""

from __future__ import annotations

import pytest

from sanctuary import quota


class TestAllowedMinutes:
    def test_schedule_is_non_increasing(self) -> None:
        for day in range(1, 7):
            assert quota.allowed_minutes(day) >= quota.allowed_minutes(day + 1)

    def test_final_day_is_zero(self) -> None:
        assert quota.allowed_minutes(7) == 0

    def test_low_days_clamp_to_day_one(self) -> None:
        assert quota.allowed_minutes(0) == quota.allowed_minutes(1) == 60
        assert quota.allowed_minutes(-5) == 60

    def test_high_days_clamp_to_final_day(self) -> None:
        assert quota.allowed_minutes(8) == quota.allowed_minutes(7)
        assert quota.allowed_minutes(100) == 0

    @pytest.mark.parametrize(
        "day,expected",
        [(1, 60), (2, 40), (3, 20), (4, 10), (5, 5), (6, 2), (7, 0)],
    )
    def test_table_values(self, day: int, expected: int) -> None:
        assert quota.allowed_minutes(day) == expected


class TestRemaining:
    def test_remaining_seconds(self) -> None:
        assert quota.remaining_seconds(1, 0) == 3600
        assert quota.remaining_seconds(2, 600) == 1800

    def test_remaining_never_negative(self) -> None:
        assert quota.remaining_seconds(6, 500) == 0
        assert quota.remaining_seconds(7, 0) == 0

    def test_remaining_minutes_rounds_up(self) -> None:
        assert quota.remaining_minutes(5, 299) == 1
        assert quota.remaining_minutes(5, 240) == 1
        assert quota.remaining_minutes(5, 239) == 2
        assert quota.remaining_minutes(5, 300) == 0

    def test_program_complete(self) -> None:
        assert quota.is_program_complete(7) is True
        assert quota.is_program_complete(9) is True
        assert quota.is_program_complete(6) is False


class TestFormatting:
    def test_format_time(self) -> None:
        assert quota.format_time(0) == "00:00"
        assert quota.format_time(61) == "01:01"
        assert quota.format_time(3600) == "60:00"

    def test_format_time_clamps_negative(self) -> None:
        assert quota.format_time(-3) == "00:00"

    def test_format_minutes(self) -> None:
        assert quota.format_minutes(45) == "45m"
        assert quota.format_minutes(60) == "1h"
        assert quota.format_minutes(80) == "1h 20m"

    def test_describe_remaining(self) -> None:
        assert quota.describe_remaining(600) == "10 minutes"
        assert quota.describe_remaining(60) == "1 minute"
        assert quota.describe_remaining(61) == "2 minutes"
        assert quota.describe_remaining(30) == "30 seconds"
        assert quota.describe_remaining(1) == "1 second"
