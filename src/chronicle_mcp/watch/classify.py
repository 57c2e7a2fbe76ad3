"""Mapping of changed paths under ``.chronicle/`` to notification kinds."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from ..events import EventKind
from ..storage import list_entries
from ..workspace import PROCESSED_DIR, chronicle_dir


class IndexKind(str, Enum):
    TAGS = "tags"
    ACTIONS = "actions"
    LINKS = "links"
    PROCESSED = "processed"

    @property
    def event(self) -> EventKind:
        return _EVENTS[self]


INDEX_FILES: dict[str, IndexKind] = {
    "tags.json": IndexKind.TAGS,
    "actions.json": IndexKind.ACTIONS,
    "links.json": IndexKind.LINKS,
}

_EVENTS: dict[IndexKind, EventKind] = {
    IndexKind.TAGS: EventKind.TAGS_UPDATED,
    IndexKind.ACTIONS: EventKind.ACTIONS_UPDATED,
    IndexKind.LINKS: EventKind.LINKS_UPDATED,
    IndexKind.PROCESSED: EventKind.PROCESSED_UPDATED,
}


def classify_change(path: Path | str, base_dir: Path | str) -> IndexKind | None:
    """Classify a changed path; ``base_dir`` is the watched ``.chronicle`` directory.

    Named index files win over location, so ``processed/tags.json`` is still a
    tags change.
    """

    changed = Path(path)
    kind = INDEX_FILES.get(changed.name)
    if kind is not None:
        return kind

    processed = Path(base_dir) / PROCESSED_DIR
    if changed != processed and processed in changed.parents:
        return IndexKind.PROCESSED
    return None


def scan_indexes(workspace: Path | str) -> dict[IndexKind, Path]:
    """Return the named index files that currently exist in the workspace."""

    found: dict[IndexKind, Path] = {}
    for entry in list_entries(chronicle_dir(workspace)):
        kind = INDEX_FILES.get(entry.name)
        if kind is not None and entry.is_file():
            found[kind] = entry
    return found


__all__ = ["INDEX_FILES", "IndexKind", "classify_change", "scan_indexes"]
