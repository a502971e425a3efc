"""Glue between the quota gate, the session timer, and the ledger.

``ViewingSessionTracker.begin`` is the only way a timer gets created for a
real session: it checks the server-side allowance, opens the ledger
record first (no record, no playback), and wires the timer's events so
elapsed time is persisted periodically and usage is recorded at the end.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sanctuary import quota
from sanctuary.domain.models import SessionEnded, TimerEvent, TimeUpdate
from sanctuary.ledger.base import LedgerError, SessionClosedError, SessionLedger
from sanctuary.timer.session import PlaybackControl, SessionTimer

logger = logging.getLogger(__name__)


class SessionRecorder:
    """Timer listener that writes a session's progress to the ledger.

    Ledger failures are logged and remembered, never raised into the
    timer; ``finalize()`` can be called again to retry the end-of-session
    writes that did not complete.
    """

    def __init__(
        self,
        ledger: SessionLedger,
        session_id: str,
        user_id: str,
        persist_interval: int = 30,
    ) -> None:
        self._ledger = ledger
        self._session_id = session_id
        self._user_id = user_id
        self._persist_interval = persist_interval
        self._ended: SessionEnded | None = None
        self._ended_at: datetime | None = None
        self._steps_done: set[str] = set()
        self.last_error: LedgerError | None = None

    @property
    def is_finalized(self) -> bool:
        return self._steps_done == {"duration", "end", "usage"}

    def __call__(self, event: TimerEvent) -> None:
        if isinstance(event, TimeUpdate):
            if event.elapsed_seconds % self._persist_interval == 0:
                self._persist(event.elapsed_seconds)
        elif isinstance(event, SessionEnded):
            self._ended = event
            self._ended_at = datetime.now(timezone.utc)
            self.finalize()

    def finalize(self) -> bool:
        """Write final duration, end the session, then add usage. Returns success."""
        if self._ended is None:
            raise RuntimeError("Session has not ended yet")
        elapsed = self._ended.elapsed_seconds
        try:
            if "duration" not in self._steps_done:
                self._ledger.update_duration(self._session_id, elapsed)
                self._steps_done.add("duration")
            if "end" not in self._steps_done:
                self._ledger.end_session(self._session_id, self._ended_at, self._ended.was_auto_stopped)
                self._steps_done.add("end")
            if "usage" not in self._steps_done:
                total = self._ledger.record_session_usage(self._session_id)
                self._steps_done.add("usage")
                logger.info(
                    "Session %s ended (%s) after %ds; %s has used %ds today",
                    self._session_id, self._ended.reason.value, elapsed, self._user_id, total,
                )
        except LedgerError as e:
            self.last_error = e
            logger.warning("Could not finalize session %s: %s", self._session_id, e)
            return False
        self.last_error = None
        return True

    def _persist(self, elapsed: int) -> None:
        try:
            self._ledger.update_duration(self._session_id, elapsed)
        except LedgerError as e:
            self.last_error = e
            logger.warning("Could not persist duration for %s: %s", self._session_id, e)


class TrackedSession:
    """A ledger-backed session: its id, timer, and recorder."""

    def __init__(self, session_id: str, user_id: str, timer: SessionTimer, recorder: SessionRecorder) -> None:
        self.session_id = session_id
        self.user_id = user_id
        self.timer = timer
        self.recorder = recorder


class ViewingSessionTracker:
    """Starts viewing sessions against the ledger."""

    def __init__(
        self,
        ledger: SessionLedger,
        persist_interval: int = 30,
        warning_threshold: int = 60,
    ) -> None:
        self._ledger = ledger
        self._persist_interval = persist_interval
        self._warning_threshold = warning_threshold

    @property
    def ledger(self) -> SessionLedger:
        return self._ledger

    def remaining_seconds(self, user_id: str) -> int:
        """Server-side remaining allowance for today.

        Raises:
            ProfileNotFoundError: If the user has no profile.
        """
        profile = self._ledger.get_profile(user_id)
        return quota.remaining_seconds(profile.current_day, profile.total_watch_time_today_seconds)

    def begin(
        self,
        user_id: str,
        search_query: str = "",
        playback: PlaybackControl | None = None,
    ) -> TrackedSession | None:
        """Open a session if the user has time left today.

        Returns None when today's allowance is used up. The timer is
        returned un-started; the host starts it once playback is ready.

        Raises:
            LedgerError: If the profile could not be read or the session
                         could not be recorded. No timer is created.
        """
        remaining = self.remaining_seconds(user_id)
        if remaining <= 0:
            logger.info("No allowance left today for %s", user_id)
            return None

        session_id = self._ledger.create_session(user_id, search_query)
        timer = SessionTimer(
            initial_remaining_seconds=remaining,
            warning_threshold=self._warning_threshold,
            playback=playback,
        )
        recorder = SessionRecorder(self._ledger, session_id, user_id, self._persist_interval)
        timer.subscribe(recorder)
        logger.info("Session %s opened for %s with %ds available", session_id, user_id, remaining)
        return TrackedSession(session_id, user_id, timer, recorder)

    def record_end(self, session_id: str, elapsed_seconds: int, was_auto_stopped: bool) -> int:
        """End a session reported by a remote client and add its usage.

        A session that ended but whose usage was never added (the earlier
        call failed part way) only has its usage recorded, so the client
        can safely retry. Returns the user's new usage total.

        Raises:
            SessionNotFoundError: Unknown session.
            SessionClosedError: The session was already ended and counted.
        """
        session = self._ledger.get_session(session_id)
        if session.is_active:
            self._ledger.update_duration(session_id, elapsed_seconds)
            self._ledger.end_session(session_id, datetime.now(timezone.utc), was_auto_stopped)
        elif session.usage_recorded:
            raise SessionClosedError(session_id)
        else:
            logger.info("Session %s already ended; recording its usage again after a failure", session_id)
        return self._ledger.record_session_usage(session_id)
