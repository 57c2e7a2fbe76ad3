"""Active-editing session tracking for the focused note.

A session starts with the first edit after a note is opened and ends on an
explicit end, on close, or when a timeout check finds it idle or too long.
Edits after the end are counted as annotations; an ended session never
reopens.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Iterator

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _minutes_between(start: datetime, end: datetime) -> int:
    return max(0, int((end - start).total_seconds() // 60))


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class SessionError(RuntimeError):
    """Base class for session tracking errors."""


class SessionLockError(SessionError):
    """Raised when the session guard cannot be acquired; indicates a local bug."""


class SessionState(str, Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"
    ENDED = "ended"


@dataclass(frozen=True, slots=True)
class SessionConfig:
    inactivity_timeout_minutes: int = 15
    max_duration_minutes: int = 120


@dataclass(slots=True)
class Session:
    """Editing session for a single note."""

    note_path: str
    state: SessionState = SessionState.INACTIVE
    started_at: datetime | None = None
    ended_at: datetime | None = None
    last_edit_at: datetime | None = None
    duration_minutes: int = 0
    annotation_count: int = 0
    last_annotation_at: datetime | None = None

    @classmethod
    def from_ended(
        cls,
        note_path: str,
        *,
        started_at: datetime,
        ended_at: datetime,
        duration_minutes: int,
        annotation_count: int = 0,
        last_annotation_at: datetime | None = None,
    ) -> "Session":
        """Restore a finished session, e.g. from sidecar metadata."""

        return cls(
            note_path=note_path,
            state=SessionState.ENDED,
            started_at=started_at,
            ended_at=ended_at,
            last_edit_at=ended_at,
            duration_minutes=duration_minutes,
            annotation_count=annotation_count,
            last_annotation_at=last_annotation_at,
        )

    @property
    def is_active(self) -> bool:
        return self.state is SessionState.ACTIVE

    @property
    def has_ended(self) -> bool:
        return self.state is SessionState.ENDED

    def record_edit(self, now: datetime | None = None) -> None:
        now = now or _utcnow()
        if self.state is SessionState.INACTIVE:
            self.state = SessionState.ACTIVE
            self.started_at = now
            self.last_edit_at = now
            logger.info("Session started", extra={"note": self.note_path})
        elif self.state is SessionState.ACTIVE:
            self.last_edit_at = now
        else:
            self.annotation_count += 1
            self.last_annotation_at = now
            logger.debug(
                "Annotation recorded",
                extra={"note": self.note_path, "annotation_count": self.annotation_count},
            )

    def end(self, now: datetime | None = None) -> bool:
        """End an active session; returns ``False`` (no-op) from any other state."""

        if self.state is not SessionState.ACTIVE:
            return False
        now = now or _utcnow()
        self.state = SessionState.ENDED
        self.ended_at = now
        if self.started_at is not None:
            self.duration_minutes = _minutes_between(self.started_at, now)
        logger.info(
            "Session ended",
            extra={"note": self.note_path, "duration_minutes": self.duration_minutes},
        )
        return True

    def check_timeouts(self, config: SessionConfig, now: datetime | None = None) -> bool:
        """End the session when either threshold is reached; returns whether it ended."""

        if self.state is not SessionState.ACTIVE:
            return False
        now = now or _utcnow()

        if self.started_at is not None and now - self.started_at >= timedelta(
            minutes=config.max_duration_minutes
        ):
            logger.info("Session reached max duration", extra={"note": self.note_path})
            return self.end(now)

        if self.last_edit_at is not None and now - self.last_edit_at >= timedelta(
            minutes=config.inactivity_timeout_minutes
        ):
            logger.info("Session ended due to inactivity", extra={"note": self.note_path})
            return self.end(now)

        return False

    def current_duration_minutes(self, now: datetime | None = None) -> int:
        if self.state is SessionState.ACTIVE:
            if self.started_at is None:
                return 0
            return _minutes_between(self.started_at, now or _utcnow())
        if self.state is SessionState.ENDED:
            return self.duration_minutes
        return 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "note_path": self.note_path,
            "state": self.state.value,
            "started_at": _iso(self.started_at),
            "ended_at": _iso(self.ended_at),
            "last_edit_at": _iso(self.last_edit_at),
            "duration_minutes": self.duration_minutes,
            "annotation_count": self.annotation_count,
            "last_annotation_at": _iso(self.last_annotation_at),
        }


@dataclass(frozen=True, slots=True)
class SessionInfo:
    """Display projection of the current session."""

    note_path: str
    state: SessionState
    duration_minutes: int
    annotation_count: int
    started_at: datetime | None
    ended_at: datetime | None

    def as_dict(self) -> dict[str, Any]:
        return {
            "note_path": self.note_path,
            "state": self.state.value,
            "duration_minutes": self.duration_minutes,
            "annotation_count": self.annotation_count,
            "started_at": _iso(self.started_at),
            "ended_at": _iso(self.ended_at),
        }


class SessionManager:
    """Owns the single live session under one lock.

    Every accessor returns a copy; the live ``Session`` never leaves the
    guard.
    """

    def __init__(
        self,
        config: SessionConfig | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
        lock_timeout: float = 1.0,
    ) -> None:
        self._config = config or SessionConfig()
        self._clock = clock or _utcnow
        self._lock_timeout = lock_timeout
        self._lock = threading.Lock()
        self._current: Session | None = None

    @contextmanager
    def _guard(self) -> Iterator[None]:
        if not self._lock.acquire(timeout=self._lock_timeout):
            raise SessionLockError("Session state lock unavailable")
        try:
            yield
        finally:
            self._lock.release()

    @property
    def config(self) -> SessionConfig:
        return self._config

    def update_config(self, inactivity_timeout_minutes: int, max_duration_minutes: int) -> None:
        with self._guard():
            self._config = SessionConfig(
                inactivity_timeout_minutes=inactivity_timeout_minutes,
                max_duration_minutes=max_duration_minutes,
            )
        logger.info(
            "Session config updated",
            extra={"inactivity": inactivity_timeout_minutes, "max": max_duration_minutes},
        )

    def open_note(self, note_path: str, existing: Session | None = None) -> Session | None:
        """Focus ``note_path``; returns the previous session if it had to be ended.

        An active session on the previously focused note is ended first so
        its trailing edits can still be persisted by the caller.
        """

        with self._guard():
            flushed: Session | None = None
            previous = self._current
            if previous is not None and previous.is_active:
                previous.end(self._clock())
                flushed = replace(previous)
            self._current = replace(existing) if existing is not None else Session(note_path)
        logger.debug("Tracking session", extra={"note": note_path})
        return flushed

    def close_note(self) -> Session | None:
        with self._guard():
            session = self._current
            if session is not None and session.is_active:
                session.end(self._clock())
            self._current = None
        return session

    def record_edit(self) -> SessionInfo | None:
        with self._guard():
            if self._current is None:
                return None
            now = self._clock()
            self._current.record_edit(now)
            return self._info(now)

    def end_session(self) -> Session | None:
        with self._guard():
            if self._current is None:
                return None
            self._current.end(self._clock())
            return replace(self._current)

    def check_timeouts(self) -> Session | None:
        """Return a copy of the session if this check ended it."""

        with self._guard():
            if self._current is None:
                return None
            if self._current.check_timeouts(self._config, self._clock()):
                return replace(self._current)
        return None

    def get_session(self) -> Session | None:
        with self._guard():
            return replace(self._current) if self._current is not None else None

    def get_session_info(self) -> SessionInfo | None:
        with self._guard():
            if self._current is None:
                return None
            return self._info(self._clock())

    def _info(self, now: datetime) -> SessionInfo:
        session = self._current
        assert session is not None
        return SessionInfo(
            note_path=session.note_path,
            state=session.state,
            duration_minutes=session.current_duration_minutes(now),
            annotation_count=session.annotation_count,
            started_at=session.started_at,
            ended_at=session.ended_at,
        )


__all__ = [
    "Session",
    "SessionConfig",
    "SessionError",
    "SessionInfo",
    "SessionLockError",
    "SessionManager",
    "SessionState",
]
