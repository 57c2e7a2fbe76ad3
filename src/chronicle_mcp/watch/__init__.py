"""Filesystem observation of background agent output."""

from .classify import INDEX_FILES, IndexKind, classify_change, scan_indexes
from .observer import ChronicleEventHandler, ChronicleWatcher, WatchHandle, WatcherError

__all__ = [
    "ChronicleEventHandler",
    "ChronicleWatcher",
    "INDEX_FILES",
    "IndexKind",
    "WatchHandle",
    "WatcherError",
    "classify_change",
    "scan_indexes",
]
