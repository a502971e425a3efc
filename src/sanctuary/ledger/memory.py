"""In-process ledger for local runs and tests."""

from __future__ import annotations

import logging
import threading
import uuid
from collections import defaultdict
from datetime import datetime

from sanctuary.domain.models import Profile, ViewingSession
from sanctuary.ledger.base import (
    ProfileNotFoundError,
    SessionActiveError,
    SessionClosedError,
    SessionLedger,
    SessionNotFoundError,
)

logger = logging.getLogger(__name__)


class MemoryLedger(SessionLedger):
    """Dict-backed ledger. Usage increments are serialized per user."""

    def __init__(self) -> None:
        self._profiles: dict[str, Profile] = {}
        self._sessions: dict[str, ViewingSession] = {}
        self._lock = threading.Lock()
        self._user_locks: defaultdict[str, threading.RLock] = defaultdict(threading.RLock)

    def get_profile(self, user_id: str) -> Profile:
        profile = self._profiles.get(user_id)
        if profile is None:
            raise ProfileNotFoundError(user_id)
        return profile.model_copy()

    def save_profile(self, profile: Profile) -> None:
        with self._user_lock(profile.user_id):
            self._profiles[profile.user_id] = profile.model_copy()

    def create_session(self, user_id: str, search_query: str = "") -> str:
        session = ViewingSession(id=uuid.uuid4().hex, user_id=user_id, search_query=search_query)
        with self._lock:
            self._sessions[session.id] = session
        logger.debug("Created session %s for %s", session.id, user_id)
        return session.id

    def get_session(self, session_id: str) -> ViewingSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session.model_copy()

    def update_duration(self, session_id: str, elapsed_seconds: int) -> None:
        with self._lock:
            session = self._open_session(session_id)
            if elapsed_seconds > session.duration_seconds:
                session.duration_seconds = elapsed_seconds

    def end_session(self, session_id: str, ended_at: datetime, was_auto_stopped: bool) -> None:
        with self._lock:
            session = self._open_session(session_id)
            session.ended_at = ended_at
            session.was_auto_stopped = was_auto_stopped

    def accumulate_daily_usage(self, user_id: str, delta_seconds: int) -> int:
        with self._user_lock(user_id):
            profile = self._profiles.get(user_id)
            if profile is None:
                raise ProfileNotFoundError(user_id)
            profile.total_watch_time_today_seconds += max(0, delta_seconds)
            return profile.total_watch_time_today_seconds

    def record_session_usage(self, session_id: str) -> int:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        with self._user_lock(session.user_id):
            if session.ended_at is None:
                raise SessionActiveError(session_id)
            if session.usage_recorded:
                return self.get_profile(session.user_id).total_watch_time_today_seconds
            total = self.accumulate_daily_usage(session.user_id, session.duration_seconds)
            session.usage_recorded = True
        logger.debug("Recorded %ds of usage from session %s", session.duration_seconds, session_id)
        return total

    def _open_session(self, session_id: str) -> ViewingSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        if session.ended_at is not None:
            raise SessionClosedError(session_id)
        return session

    def _user_lock(self, user_id: str) -> threading.RLock:
        with self._lock:
            return self._user_locks[user_id]
