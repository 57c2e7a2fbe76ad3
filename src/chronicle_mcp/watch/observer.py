"""watchdog-based observer for agent output under ``.chronicle/``."""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Any, Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..events import EventBridge
from ..workspace import chronicle_dir
from .classify import classify_change

logger = logging.getLogger(__name__)


class WatcherError(RuntimeError):
    """Raised when a workspace watch cannot be started."""


class ChronicleEventHandler(FileSystemEventHandler):
    """Publish one notification per created, modified or moved index file."""

    def __init__(self, base_dir: Path, bridge: EventBridge) -> None:
        super().__init__()
        self._base_dir = Path(base_dir)
        self._bridge = bridge

    def on_created(self, event: FileSystemEvent) -> None:
        self._handle(event, event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._handle(event, event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        # Agents that write via rename land here with the final name.
        self._handle(event, getattr(event, "dest_path", "") or event.src_path)

    def _handle(self, event: FileSystemEvent, raw_path: Any) -> None:
        if event.is_directory:
            return
        path = Path(os.fsdecode(raw_path))
        kind = classify_change(path, self._base_dir)
        if kind is None:
            return
        logger.debug("Index changed", extra={"kind": kind.value, "path": str(path)})
        self._bridge.emit(kind.event, path=str(path))


class WatchHandle:
    """Owned lifecycle of one active watch; stop it explicitly or use it as a context manager."""

    def __init__(self, owner: "ChronicleWatcher", workspace: Path, observer: Any) -> None:
        self._owner = owner
        self.workspace = workspace
        self._observer = observer
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def stop(self, timeout: float = 5.0) -> None:
        if not self._active:
            return
        self._active = False
        self._observer.stop()
        self._observer.join(timeout)
        self._owner._release(self)
        logger.info("Stopped filesystem watcher", extra={"workspace": str(self.workspace)})

    def __enter__(self) -> "WatchHandle":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()


class ChronicleWatcher:
    """Holds at most one active workspace watch."""

    def __init__(self, observer_factory: Callable[[], Any] | None = None) -> None:
        self._observer_factory = observer_factory or Observer
        self._lock = threading.RLock()
        self._handle: WatchHandle | None = None

    @property
    def handle(self) -> WatchHandle | None:
        with self._lock:
            return self._handle

    def start(self, workspace: Path | str, bridge: EventBridge, *, replace: bool = False) -> WatchHandle:
        """Watch ``<workspace>/.chronicle`` recursively.

        An active watch must be stopped through its handle first, or
        replaced explicitly with ``replace=True``.
        """

        base = chronicle_dir(workspace)
        if not base.is_dir():
            raise WatcherError("Chronicle directory does not exist")
        base = base.resolve()

        with self._lock:
            current = self._handle
            if current is not None and current.active:
                if not replace:
                    raise WatcherError(
                        f"Already watching {current.workspace}; stop that handle or pass replace=True"
                    )
                current.stop()

            observer = self._observer_factory()
            observer.schedule(ChronicleEventHandler(base, bridge), str(base), recursive=True)
            try:
                observer.start()
            except OSError as exc:
                raise WatcherError(f"Failed to watch .chronicle/: {exc}") from exc

            handle = WatchHandle(self, Path(workspace), observer)
            self._handle = handle

        logger.info("Started filesystem watcher", extra={"path": str(base)})
        return handle

    def stop(self) -> None:
        handle = self.handle
        if handle is not None:
            handle.stop()

    def _release(self, handle: WatchHandle) -> None:
        with self._lock:
            if self._handle is handle:
                self._handle = None


__all__ = ["ChronicleEventHandler", "ChronicleWatcher", "WatchHandle", "WatcherError"]
