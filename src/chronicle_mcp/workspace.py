"""Layout of the ``.chronicle/`` directory inside a note workspace."""

from __future__ import annotations

import logging
from pathlib import Path

from .storage import StorageError, write_text

logger = logging.getLogger(__name__)

CHRONICLE_DIR = ".chronicle"
PROMPTS_DIR = "prompts"
COMMANDS_DIR = "commands"
DIGESTS_DIR = "digests"
PROCESSED_DIR = "processed"
PIPELINE_FILE = "pipeline.yaml"

SUBDIRS = (PROMPTS_DIR, PROCESSED_DIR, DIGESTS_DIR, COMMANDS_DIR)

INDEX_DEFAULTS: dict[str, str] = {
    "tags.json": "{}",
    "actions.json": "[]",
    "links.json": "{}",
    "agent-runs.json": "{}",
    "state.json": "{}",
}


def chronicle_dir(workspace: Path | str) -> Path:
    return Path(workspace) / CHRONICLE_DIR


def prompt_path(workspace: Path | str, name: str) -> Path:
    return chronicle_dir(workspace) / PROMPTS_DIR / f"{name}.md"


def command_path(workspace: Path | str, filename: str) -> Path:
    return chronicle_dir(workspace) / COMMANDS_DIR / filename


def digests_dir(workspace: Path | str) -> Path:
    return chronicle_dir(workspace) / DIGESTS_DIR


def processed_path(workspace: Path | str, note_name: str) -> Path:
    return chronicle_dir(workspace) / PROCESSED_DIR / f"{note_name}.json"


def init_workspace(workspace: Path | str) -> Path:
    """Create ``.chronicle/`` and its default index files without overwriting anything."""

    base = chronicle_dir(workspace)
    try:
        for subdir in SUBDIRS:
            (base / subdir).mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise StorageError(f"Failed to create {base}: {exc}") from exc

    for filename, default in INDEX_DEFAULTS.items():
        target = base / filename
        if not target.exists():
            write_text(target, default)

    logger.info("Initialized chronicle directory", extra={"path": str(base)})
    return base


__all__ = [
    "CHRONICLE_DIR",
    "INDEX_DEFAULTS",
    "PIPELINE_FILE",
    "PROCESSED_DIR",
    "chronicle_dir",
    "command_path",
    "digests_dir",
    "init_workspace",
    "processed_path",
    "prompt_path",
]
