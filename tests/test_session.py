from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

import pytest

from chronicle_mcp.session import (
    Session,
    SessionConfig,
    SessionLockError,
    SessionManager,
    SessionState,
)

T0 = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def test_first_edit_starts_session() -> None:
    session = Session("/ws/a.md")
    assert session.state is SessionState.INACTIVE

    session.record_edit(T0)

    assert session.state is SessionState.ACTIVE
    assert session.started_at == T0
    assert session.last_edit_at == T0


def test_edits_after_end_are_annotations() -> None:
    session = Session("/ws/a.md")
    session.record_edit(T0)
    assert session.end(T0 + timedelta(minutes=42))

    session.record_edit(T0 + timedelta(minutes=50))
    session.record_edit(T0 + timedelta(minutes=55))

    assert session.state is SessionState.ENDED
    assert session.duration_minutes == 42
    assert session.annotation_count == 2
    assert session.last_annotation_at == T0 + timedelta(minutes=55)


def test_immediate_end_has_zero_duration() -> None:
    session = Session("/ws/a.md")
    session.record_edit(T0)
    session.end(T0)
    session.record_edit(T0)

    assert session.duration_minutes == 0
    assert session.state is SessionState.ENDED
    assert session.annotation_count == 1


def test_end_is_noop_unless_active() -> None:
    session = Session("/ws/a.md")
    assert not session.end(T0)
    assert session.state is SessionState.INACTIVE

    session.record_edit(T0)
    session.end(T0 + timedelta(minutes=5))
    assert not session.end(T0 + timedelta(minutes=9))
    assert session.ended_at == T0 + timedelta(minutes=5)


def test_inactivity_timeout_ends_session() -> None:
    config = SessionConfig(inactivity_timeout_minutes=15, max_duration_minutes=120)
    session = Session("/ws/a.md")
    session.record_edit(T0)
    session.record_edit(T0 + timedelta(minutes=10))

    assert not session.check_timeouts(config, T0 + timedelta(minutes=24))
    assert session.check_timeouts(config, T0 + timedelta(minutes=25))
    assert session.duration_minutes == 25


def test_max_duration_ends_even_when_busy() -> None:
    config = SessionConfig(inactivity_timeout_minutes=15, max_duration_minutes=30)
    session = Session("/ws/a.md")
    for minute in range(0, 30, 5):
        session.record_edit(T0 + timedelta(minutes=minute))

    assert session.check_timeouts(config, T0 + timedelta(minutes=30))
    assert session.state is SessionState.ENDED


def test_zero_timeout_ends_on_first_check() -> None:
    config = SessionConfig(inactivity_timeout_minutes=0, max_duration_minutes=120)
    session = Session("/ws/a.md")
    session.record_edit(T0)

    assert session.check_timeouts(config, T0)


def test_timeouts_ignore_inactive_and_ended() -> None:
    config = SessionConfig(inactivity_timeout_minutes=0, max_duration_minutes=0)
    session = Session("/ws/a.md")
    assert not session.check_timeouts(config, T0)

    ended = Session.from_ended("/ws/a.md", started_at=T0, ended_at=T0, duration_minutes=3)
    assert not ended.check_timeouts(config, T0 + timedelta(hours=5))


def test_current_duration_by_state() -> None:
    session = Session("/ws/a.md")
    assert session.current_duration_minutes(T0) == 0
    session.record_edit(T0)
    assert session.current_duration_minutes(T0 + timedelta(minutes=7, seconds=59)) == 7
    session.end(T0 + timedelta(minutes=9))
    assert session.current_duration_minutes(T0 + timedelta(hours=3)) == 9


def test_manager_tracks_edits_and_returns_copies() -> None:
    clock = Clock()
    manager = SessionManager(clock=clock)
    manager.open_note("/ws/a.md")

    info = manager.record_edit()
    clock.advance(minutes=3)
    copy = manager.get_session()
    copy.annotation_count = 99

    assert info is not None and info.state is SessionState.ACTIVE
    assert manager.get_session().annotation_count == 0
    assert manager.get_session_info().duration_minutes == 3


def test_manager_without_note_is_a_noop() -> None:
    manager = SessionManager()

    assert manager.record_edit() is None
    assert manager.end_session() is None
    assert manager.check_timeouts() is None
    assert manager.get_session_info() is None


def test_switching_notes_flushes_active_session() -> None:
    clock = Clock()
    manager = SessionManager(clock=clock)
    manager.open_note("/ws/a.md")
    manager.record_edit()
    clock.advance(minutes=12)

    flushed = manager.open_note("/ws/b.md")

    assert flushed is not None
    assert flushed.note_path == "/ws/a.md"
    assert flushed.state is SessionState.ENDED
    assert flushed.duration_minutes == 12
    assert manager.get_session().note_path == "/ws/b.md"
    assert manager.get_session().state is SessionState.INACTIVE


def test_opening_with_existing_session_counts_annotations() -> None:
    existing = Session.from_ended("/ws/a.md", started_at=T0, ended_at=T0 + timedelta(minutes=20), duration_minutes=20)
    manager = SessionManager(clock=Clock(T0 + timedelta(days=1)))

    assert manager.open_note("/ws/a.md", existing) is None
    manager.record_edit()

    session = manager.get_session()
    assert session.state is SessionState.ENDED
    assert session.annotation_count == 1
    assert existing.annotation_count == 0


def test_manager_check_timeouts_returns_ended_session_once() -> None:
    clock = Clock()
    manager = SessionManager(SessionConfig(inactivity_timeout_minutes=15), clock=clock)
    manager.open_note("/ws/a.md")
    manager.record_edit()
    clock.advance(minutes=15)

    ended = manager.check_timeouts()

    assert ended is not None and ended.duration_minutes == 15
    assert manager.check_timeouts() is None


def test_update_config_applies_to_next_check() -> None:
    clock = Clock()
    manager = SessionManager(clock=clock)
    manager.open_note("/ws/a.md")
    manager.record_edit()
    clock.advance(minutes=2)
    assert manager.check_timeouts() is None

    manager.update_config(1, 120)

    assert manager.config.inactivity_timeout_minutes == 1
    assert manager.check_timeouts() is not None


def test_close_note_ends_and_clears() -> None:
    clock = Clock()
    manager = SessionManager(clock=clock)
    manager.open_note("/ws/a.md")
    manager.record_edit()
    clock.advance(minutes=4)

    closed = manager.close_note()

    assert closed is not None and closed.state is SessionState.ENDED
    assert closed.duration_minutes == 4
    assert manager.get_session() is None


def test_lock_timeout_raises() -> None:
    manager = SessionManager(lock_timeout=0.05)
    holder = threading.Event()
    release = threading.Event()

    def hold() -> None:
        with manager._guard():
            holder.set()
            release.wait(2)

    thread = threading.Thread(target=hold)
    thread.start()
    holder.wait(2)
    try:
        with pytest.raises(SessionLockError):
            manager.get_session()
    finally:
        release.set()
        thread.join()
