"""Session tracking and sidecar persistence."""

from .metadata import (
    NoteMeta,
    SessionMeta,
    load_metadata,
    load_session_metadata,
    meta_path,
    save_metadata,
    save_session_metadata,
)
from .tracker import (
    Session,
    SessionConfig,
    SessionError,
    SessionInfo,
    SessionLockError,
    SessionManager,
    SessionState,
)

__all__ = [
    "NoteMeta",
    "Session",
    "SessionConfig",
    "SessionError",
    "SessionInfo",
    "SessionLockError",
    "SessionManager",
    "SessionMeta",
    "SessionState",
    "load_metadata",
    "load_session_metadata",
    "meta_path",
    "save_metadata",
    "save_session_metadata",
]
