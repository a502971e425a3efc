"""Viewing-session ledger module for sanctuary.

Public API:
    SessionLedger -- Abstract base class
    MemoryLedger -- In-process implementation
    SqlSessionLedger -- SQLAlchemy implementation
    ViewingSessionTracker -- Quota gate + timer/ledger wiring
"""

from sanctuary.ledger.base import (
    LedgerError,
    ProfileNotFoundError,
    SessionActiveError,
    SessionClosedError,
    SessionLedger,
    SessionNotFoundError,
)
from sanctuary.ledger.memory import MemoryLedger
from sanctuary.ledger.tracker import SessionRecorder, TrackedSession, ViewingSessionTracker

__all__ = [
    "LedgerError",
    "MemoryLedger",
    "ProfileNotFoundError",
    "SessionActiveError",
    "SessionClosedError",
    "SessionLedger",
    "SessionNotFoundError",
    "SessionRecorder",
    "SqlSessionLedger",
    "TrackedSession",
    "ViewingSessionTracker",
]


def __getattr__(name: str) -> type:
    """Lazy import for concrete implementations that require external deps."""
    if name == "SqlSessionLedger":
        from sanctuary.ledger.sql import SqlSessionLedger
        return SqlSessionLedger
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
