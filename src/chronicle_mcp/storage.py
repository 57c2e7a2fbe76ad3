"""Plain file helpers shared by the workspace-facing components."""

from __future__ import annotations

import os
from pathlib import Path


class StorageError(RuntimeError):
    """Raised when a workspace file cannot be read, written or resolved."""


def read_text(path: Path) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise StorageError(f"Failed to read file {path}: {exc}") from exc


def write_text(path: Path, content: str) -> None:
    """Write ``content`` atomically, creating parent directories as needed."""

    target = Path(path)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        temp_path = target.with_name(target.name + ".tmp")
        temp_path.write_text(content, encoding="utf-8")
        os.replace(temp_path, target)
    except OSError as exc:
        raise StorageError(f"Failed to write file {target}: {exc}") from exc


def list_entries(directory: Path) -> list[Path]:
    """Return the sorted entries of ``directory``; a missing directory is empty."""

    base = Path(directory)
    if not base.is_dir():
        return []
    try:
        return sorted(base.iterdir())
    except OSError as exc:
        raise StorageError(f"Failed to list {base}: {exc}") from exc


def validate_workspace_path(workspace: Path, target: Path) -> Path:
    """Resolve ``target`` against ``workspace`` and reject paths escaping it."""

    try:
        root = Path(workspace).resolve(strict=True)
    except OSError as exc:
        raise StorageError(f"Invalid workspace path: {exc}") from exc

    candidate = Path(target)
    if not candidate.is_absolute():
        candidate = root / candidate

    if candidate.exists():
        resolved = candidate.resolve()
    else:
        try:
            parent = candidate.parent.resolve(strict=True)
        except OSError as exc:
            raise StorageError(f"Invalid parent path: {exc}") from exc
        resolved = parent / candidate.name

    if resolved != root and root not in resolved.parents:
        raise StorageError("Path is outside workspace boundary")
    return resolved


__all__ = ["StorageError", "list_entries", "read_text", "validate_workspace_path", "write_text"]
