"""Per-note sidecar metadata stored under ``.meta/`` next to the note."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from ..storage import StorageError, read_text, write_text
from .tracker import Session

logger = logging.getLogger(__name__)

META_DIR = ".meta"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionMeta(BaseModel):
    started_at: datetime
    ended_at: datetime | None = None
    duration_minutes: int = 0
    annotation_count: int = 0
    last_annotation_at: datetime | None = None


class FileMeta(BaseModel):
    name: str
    raw_path: str | None = None
    created_at: datetime
    updated_at: datetime


class NoteMeta(BaseModel):
    """Full sidecar document for one note."""

    id: str
    version: int = 1
    file: FileMeta
    session: SessionMeta | None = None

    @classmethod
    def new(cls, note_path: Path, now: datetime | None = None) -> "NoteMeta":
        now = now or _utcnow()
        name = Path(note_path).name or "untitled"
        stem = name[:-3] if name.endswith(".md") else name
        return cls(
            id=f"{stem}-{now.strftime('%Y%m%d%H%M%S')}",
            file=FileMeta(name=name, created_at=now, updated_at=now),
        )

    def touch(self, now: datetime | None = None) -> None:
        self.file.updated_at = now or _utcnow()


def meta_path(note_path: Path | str) -> Path:
    """``/ws/notes/a.md`` -> ``/ws/notes/.meta/a.json``."""

    note = Path(note_path)
    stem = note.stem or "untitled"
    return note.parent / META_DIR / f"{stem}.json"


def load_metadata(note_path: Path | str) -> NoteMeta | None:
    path = meta_path(note_path)
    if not path.exists():
        return None
    content = read_text(path)
    try:
        meta = NoteMeta.model_validate_json(content)
    except ValidationError as exc:
        raise StorageError(f"Failed to parse metadata {path}: {exc}") from exc
    logger.debug("Loaded metadata", extra={"note": str(note_path)})
    return meta


def save_metadata(note_path: Path | str, meta: NoteMeta) -> Path:
    path = meta_path(note_path)
    write_text(path, meta.model_dump_json(indent=2))
    logger.debug("Saved metadata", extra={"note": str(note_path), "path": str(path)})
    return path


def load_session_metadata(note_path: Path | str) -> Session | None:
    """Restore the note's last finished session, if one was recorded."""

    meta = load_metadata(note_path)
    if meta is None or meta.session is None:
        return None
    stored = meta.session
    return Session.from_ended(
        str(note_path),
        started_at=stored.started_at,
        ended_at=stored.ended_at or stored.started_at,
        duration_minutes=stored.duration_minutes,
        annotation_count=stored.annotation_count,
        last_annotation_at=stored.last_annotation_at,
    )


def save_session_metadata(note_path: Path | str, session: Session) -> Path:
    """Record a finished session in the note's sidecar.

    The session block is only written once the session has both a start and
    an end; the file timestamp is refreshed either way.
    """

    note = Path(note_path)
    meta = load_metadata(note) or NoteMeta.new(note)
    if session.started_at is not None and session.ended_at is not None:
        meta.session = SessionMeta(
            started_at=session.started_at,
            ended_at=session.ended_at,
            duration_minutes=session.duration_minutes,
            annotation_count=session.annotation_count,
            last_annotation_at=session.last_annotation_at,
        )
    meta.touch()
    return save_metadata(note, meta)


__all__ = [
    "FileMeta",
    "META_DIR",
    "NoteMeta",
    "SessionMeta",
    "load_metadata",
    "load_session_metadata",
    "meta_path",
    "save_metadata",
    "save_session_metadata",
]
