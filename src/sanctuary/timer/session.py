"""Countdown state machine for a single viewing session.

The timer is driven externally: something calls :meth:`SessionTimer.tick`
once per second while the session is running (see
:class:`~sanctuary.timer.runner.TimerRunner`). It keeps the accounting
invariant ``elapsed + remaining == initial_remaining`` and notifies
subscribers through typed events.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable

from sanctuary.domain.models import (
    EndReason,
    LowTimeWarning,
    SessionEnded,
    TimerEvent,
    TimerState,
    TimeUpdate,
)

logger = logging.getLogger(__name__)

TimerListener = Callable[[TimerEvent], None]

LOW_TIME_SECONDS = 120


class PlaybackControl(ABC):
    """Media playback that must pause and resume in lockstep with the timer."""

    @abstractmethod
    def pause(self) -> None: ...

    @abstractmethod
    def resume(self) -> None: ...


class SessionTimer:
    """Idle -> Running <-> Paused -> Ended(reason).

    Example usage::

        timer = SessionTimer(initial_remaining_seconds=600)
        timer.subscribe(print)
        timer.start()
        timer.tick()
    """

    def __init__(
        self,
        initial_remaining_seconds: int,
        warning_threshold: int = 60,
        playback: PlaybackControl | None = None,
    ) -> None:
        self._initial = initial_remaining_seconds
        self._warning_threshold = warning_threshold
        self._playback = playback
        self._state = TimerState.IDLE
        self._elapsed = 0
        self._remaining = max(0, initial_remaining_seconds)
        self._warned = False
        self._end_reason: EndReason | None = None
        self._listeners: list[TimerListener] = []

    # -- observation -------------------------------------------------------

    @property
    def state(self) -> TimerState:
        return self._state

    @property
    def elapsed_seconds(self) -> int:
        return self._elapsed

    @property
    def remaining_seconds(self) -> int:
        return self._remaining

    @property
    def initial_remaining_seconds(self) -> int:
        return self._initial

    @property
    def end_reason(self) -> EndReason | None:
        return self._end_reason

    @property
    def warning_shown(self) -> bool:
        return self._warned

    @property
    def is_low_time(self) -> bool:
        return self._remaining < LOW_TIME_SECONDS

    @property
    def progress_percent(self) -> float:
        """Share of the session's budget already used, 0-100."""
        if self._initial <= 0:
            return 100.0
        return (self._initial - self._remaining) / self._initial * 100

    def subscribe(self, listener: TimerListener) -> None:
        self._listeners.append(listener)

    # -- transitions -------------------------------------------------------

    def start(self) -> None:
        """Begin counting down.

        A timer started with no remaining budget ends immediately as
        auto-stopped without ever entering ``RUNNING``.

        Raises:
            RuntimeError: If the timer has already been started.
        """
        if self._state is not TimerState.IDLE:
            raise RuntimeError(f"Timer already started (state={self._state.value})")
        if self._initial <= 0:
            logger.info("Timer started with no remaining budget, stopping")
            self._end(EndReason.AUTO_STOPPED)
            return
        self._state = TimerState.RUNNING
        logger.debug("Timer running with %d seconds", self._initial)

    def tick(self) -> None:
        """Account for one elapsed second. Ignored unless running."""
        if self._state is not TimerState.RUNNING:
            return
        self._elapsed += 1
        self._remaining = max(0, self._remaining - 1)
        self._emit(TimeUpdate(elapsed_seconds=self._elapsed, remaining_seconds=self._remaining))

        if self._remaining == self._warning_threshold and not self._warned:
            self._warned = True
            logger.info("Low-time warning at %d seconds remaining", self._remaining)
            self._emit(LowTimeWarning(remaining_seconds=self._remaining))

        if self._remaining <= 0:
            logger.info("Daily allowance reached after %d seconds, auto-stopping", self._elapsed)
            self._end(EndReason.AUTO_STOPPED)

    def pause(self) -> None:
        if self._state is not TimerState.RUNNING:
            return
        self._state = TimerState.PAUSED
        if self._playback is not None:
            self._playback.pause()
        logger.debug("Timer paused at %d remaining", self._remaining)

    def resume(self) -> None:
        if self._state is not TimerState.PAUSED:
            return
        self._state = TimerState.RUNNING
        if self._playback is not None:
            self._playback.resume()
        logger.debug("Timer resumed at %d remaining", self._remaining)

    def close(self) -> None:
        """End the session at the user's request. Safe to call repeatedly."""
        if self._state is TimerState.ENDED:
            return
        self._end(EndReason.USER_CLOSED)

    def _end(self, reason: EndReason) -> None:
        self._state = TimerState.ENDED
        self._end_reason = reason
        if self._playback is not None and reason is EndReason.AUTO_STOPPED:
            self._playback.pause()
        self._emit(SessionEnded(reason=reason, elapsed_seconds=self._elapsed))

    def _emit(self, event: TimerEvent) -> None:
        for listener in list(self._listeners):
            listener(event)
