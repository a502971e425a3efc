"""Abstract base class for the viewing-session ledger.

The ledger records each viewing session's lifecycle and the per-user
daily usage total that gates the next session. Writes after a session has
ended are rejected, and stored durations never move backwards.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime

from sanctuary.domain.models import Profile, ViewingSession

logger = logging.getLogger(__name__)


class SessionLedger(ABC):
    """Persistence contract for profiles and viewing sessions."""

    @abstractmethod
    def get_profile(self, user_id: str) -> Profile:
        """Load a user's profile.

        Raises:
            ProfileNotFoundError: If the user has no profile.
        """
        ...

    @abstractmethod
    def save_profile(self, profile: Profile) -> None:
        """Create or replace a profile."""
        ...

    @abstractmethod
    def create_session(self, user_id: str, search_query: str = "") -> str:
        """Open a new session and return its id.

        Raises:
            LedgerError: If the session could not be recorded.
        """
        ...

    @abstractmethod
    def get_session(self, session_id: str) -> ViewingSession:
        """Raises SessionNotFoundError for unknown ids."""
        ...

    @abstractmethod
    def update_duration(self, session_id: str, elapsed_seconds: int) -> None:
        """Record elapsed time. Lower values than the stored one are ignored.

        Raises:
            SessionNotFoundError: Unknown session.
            SessionClosedError: The session has already ended.
        """
        ...

    @abstractmethod
    def end_session(self, session_id: str, ended_at: datetime, was_auto_stopped: bool) -> None:
        """Terminal write; the session accepts no further updates.

        Raises:
            SessionNotFoundError: Unknown session.
            SessionClosedError: The session has already ended.
        """
        ...

    @abstractmethod
    def accumulate_daily_usage(self, user_id: str, delta_seconds: int) -> int:
        """Atomically add to the user's usage today and return the new total.

        Raises:
            ProfileNotFoundError: If the user has no profile.
        """
        ...

    @abstractmethod
    def record_session_usage(self, session_id: str) -> int:
        """Add an ended session's duration to its owner's usage, exactly once.

        The session is flagged ``usage_recorded`` in the same write as the
        increment, so a retry after a failure here neither loses nor
        double-counts the time. Calling it again returns the current total.

        Raises:
            SessionNotFoundError: Unknown session.
            SessionActiveError: The session has not ended yet.
            ProfileNotFoundError: The owner has no profile.
        """
        ...


class LedgerError(Exception):
    """Raised when a ledger read or write fails."""


class ProfileNotFoundError(LedgerError):
    def __init__(self, user_id: str) -> None:
        super().__init__(f"No profile for user {user_id}")
        self.user_id = user_id


class SessionNotFoundError(LedgerError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"No viewing session {session_id}")
        self.session_id = session_id


class SessionClosedError(LedgerError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Viewing session {session_id} has already ended")
        self.session_id = session_id


class SessionActiveError(LedgerError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Viewing session {session_id} has not ended")
        self.session_id = session_id
