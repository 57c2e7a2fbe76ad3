"""Semantic commits for sessions, annotations and processing output."""

from __future__ import annotations

from pathlib import Path

from .. import workspace as layout
from ..session.metadata import meta_path
from ..watch.classify import INDEX_FILES
from .repo import CommitType, GitRepository


def commit_session(workspace: Path | str, note_path: Path | str, title: str, duration_minutes: int) -> str:
    """Commit a note and its sidecar after a session ends."""

    repo = GitRepository.open(workspace)
    note = Path(note_path)
    return repo.commit_files(
        [note, meta_path(note)],
        CommitType.SESSION,
        title,
        f"{duration_minutes}m",
    )


def commit_annotations(
    workspace: Path | str, note_path: Path | str, title: str, annotation_count: int
) -> str:
    """Commit edits made after the note's session had ended."""

    repo = GitRepository.open(workspace)
    note = Path(note_path)
    noun = "annotation" if annotation_count == 1 else "annotations"
    return repo.commit_files(
        [note, meta_path(note)],
        CommitType.ANNOTATE,
        title,
        f"{annotation_count} {noun}",
    )


def commit_processing(workspace: Path | str, note_path: Path | str, title: str) -> str:
    """Commit a note's processed output together with the agent index files."""

    repo = GitRepository.open(workspace)
    note = Path(note_path)
    base = layout.chronicle_dir(workspace)
    files = [layout.processed_path(workspace, note.stem), *(base / name for name in INDEX_FILES)]
    return repo.commit_files(files, CommitType.PROCESS, title, "processed")


def commit_snapshot(workspace: Path | str, title: str) -> str:
    return GitRepository.open(workspace).commit_snapshot(title)


__all__ = ["commit_annotations", "commit_processing", "commit_session", "commit_snapshot"]
