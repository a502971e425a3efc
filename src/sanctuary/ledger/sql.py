"""SQLAlchemy-backed ledger.

Tables:
    profiles          -- one row per user: program day + usage today
    viewing_sessions  -- one row per playback attempt

Usage increments are a single ``UPDATE ... SET total = total + :delta`` so
concurrent session ends for the same user cannot lose each other's writes.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Callable, TypeVar

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    String,
    Text,
    case,
    create_engine,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import func

from sanctuary.domain.models import Profile, ViewingSession
from sanctuary.ledger.base import (
    LedgerError,
    ProfileNotFoundError,
    SessionActiveError,
    SessionClosedError,
    SessionLedger,
    SessionNotFoundError,
)

logger = logging.getLogger(__name__)

Base = declarative_base()

T = TypeVar("T")


class ProfileRow(Base):
    __tablename__ = "profiles"

    user_id = Column(String(64), primary_key=True)
    current_day = Column(Integer, nullable=False, default=1)
    total_watch_time_today = Column(Integer, nullable=False, default=0)  # seconds
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class ViewingSessionRow(Base):
    __tablename__ = "viewing_sessions"

    id = Column(String(32), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    search_query = Column(Text, nullable=False, default="")
    started_at = Column(DateTime(timezone=True), nullable=False)
    duration_seconds = Column(Integer, nullable=False, default=0)
    ended_at = Column(DateTime(timezone=True), nullable=True)  # null while active
    was_auto_stopped = Column(Boolean, nullable=False, default=False)
    usage_recorded = Column(Boolean, nullable=False, default=False)


def make_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if database_url.startswith("sqlite"):
        return create_engine(database_url, echo=echo, connect_args={"check_same_thread": False})
    return create_engine(database_url, echo=echo, pool_pre_ping=True, pool_recycle=300)


class SqlSessionLedger(SessionLedger):
    """Ledger stored in any SQLAlchemy-supported database."""

    def __init__(self, engine: Engine, create_tables: bool = True) -> None:
        self._engine = engine
        self._sessionmaker = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        if create_tables:
            Base.metadata.create_all(engine)

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> SqlSessionLedger:
        return cls(make_engine(database_url, echo=echo))

    def get_profile(self, user_id: str) -> Profile:
        def op(db: Session) -> Profile:
            row = db.get(ProfileRow, user_id)
            if row is None:
                raise ProfileNotFoundError(user_id)
            return Profile(
                user_id=row.user_id,
                current_day=row.current_day,
                total_watch_time_today_seconds=row.total_watch_time_today,
            )

        return self._run(op)

    def save_profile(self, profile: Profile) -> None:
        def op(db: Session) -> None:
            row = db.get(ProfileRow, profile.user_id)
            if row is None:
                row = ProfileRow(user_id=profile.user_id)
                db.add(row)
            row.current_day = profile.current_day
            row.total_watch_time_today = profile.total_watch_time_today_seconds
            db.commit()

        self._run(op)

    def create_session(self, user_id: str, search_query: str = "") -> str:
        session = ViewingSession(id=uuid.uuid4().hex, user_id=user_id, search_query=search_query)

        def op(db: Session) -> str:
            db.add(
                ViewingSessionRow(
                    id=session.id,
                    user_id=user_id,
                    search_query=search_query,
                    started_at=session.started_at,
                    duration_seconds=0,
                    was_auto_stopped=False,
                    usage_recorded=False,
                )
            )
            db.commit()
            return session.id

        session_id = self._run(op)
        logger.debug("Created session %s for %s", session_id, user_id)
        return session_id

    def get_session(self, session_id: str) -> ViewingSession:
        def op(db: Session) -> ViewingSession:
            row = db.get(ViewingSessionRow, session_id)
            if row is None:
                raise SessionNotFoundError(session_id)
            return _to_session(row)

        return self._run(op)

    def update_duration(self, session_id: str, elapsed_seconds: int) -> None:
        stmt = (
            update(ViewingSessionRow)
            .where(ViewingSessionRow.id == session_id, ViewingSessionRow.ended_at.is_(None))
            .values(
                duration_seconds=case(
                    (ViewingSessionRow.duration_seconds < elapsed_seconds, elapsed_seconds),
                    else_=ViewingSessionRow.duration_seconds,
                )
            )
            .execution_options(synchronize_session=False)
        )
        self._update_open_session(session_id, stmt)

    def end_session(self, session_id: str, ended_at: datetime, was_auto_stopped: bool) -> None:
        stmt = (
            update(ViewingSessionRow)
            .where(ViewingSessionRow.id == session_id, ViewingSessionRow.ended_at.is_(None))
            .values(ended_at=ended_at, was_auto_stopped=was_auto_stopped)
            .execution_options(synchronize_session=False)
        )
        self._update_open_session(session_id, stmt)

    def accumulate_daily_usage(self, user_id: str, delta_seconds: int) -> int:
        delta = max(0, delta_seconds)

        def op(db: Session) -> int:
            result = db.execute(
                update(ProfileRow)
                .where(ProfileRow.user_id == user_id)
                .values(total_watch_time_today=ProfileRow.total_watch_time_today + delta)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                db.rollback()
                raise ProfileNotFoundError(user_id)
            db.commit()
            return db.execute(
                select(ProfileRow.total_watch_time_today).where(ProfileRow.user_id == user_id)
            ).scalar_one()

        return self._run(op)

    def record_session_usage(self, session_id: str) -> int:
        def op(db: Session) -> int:
            row = db.get(ViewingSessionRow, session_id)
            if row is None:
                raise SessionNotFoundError(session_id)
            if row.ended_at is None:
                raise SessionActiveError(session_id)
            user_id, delta = row.user_id, max(0, row.duration_seconds)

            # Flag and increment commit together; a lost race matches no row.
            claimed = db.execute(
                update(ViewingSessionRow)
                .where(ViewingSessionRow.id == session_id, ViewingSessionRow.usage_recorded.is_(False))
                .values(usage_recorded=True)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount == 1:
                result = db.execute(
                    update(ProfileRow)
                    .where(ProfileRow.user_id == user_id)
                    .values(total_watch_time_today=ProfileRow.total_watch_time_today + delta)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    db.rollback()
                    raise ProfileNotFoundError(user_id)
                logger.debug("Recorded %ds of usage from session %s", delta, session_id)
            db.commit()
            total = db.execute(
                select(ProfileRow.total_watch_time_today).where(ProfileRow.user_id == user_id)
            ).scalar_one_or_none()
            if total is None:
                raise ProfileNotFoundError(user_id)
            return total

        return self._run(op)

    def _update_open_session(self, session_id: str, stmt) -> None:
        """Execute a guarded update; diagnose why it matched nothing."""

        def op(db: Session) -> None:
            result = db.execute(stmt)
            if result.rowcount == 0:
                db.rollback()
                if db.get(ViewingSessionRow, session_id) is None:
                    raise SessionNotFoundError(session_id)
                raise SessionClosedError(session_id)
            db.commit()

        self._run(op)

    def _run(self, op: Callable[[Session], T]) -> T:
        db = self._sessionmaker()
        try:
            return op(db)
        except SQLAlchemyError as e:
            db.rollback()
            raise LedgerError(f"Ledger database error: {e}") from e
        finally:
            db.close()


def _to_session(row: ViewingSessionRow) -> ViewingSession:
    return ViewingSession(
        id=row.id,
        user_id=row.user_id,
        search_query=row.search_query or "",
        started_at=row.started_at,
        duration_seconds=row.duration_seconds,
        ended_at=row.ended_at,
        was_auto_stopped=bool(row.was_auto_stopped),
        usage_recorded=bool(row.usage_recorded),
    )
