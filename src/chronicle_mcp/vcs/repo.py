"""Workspace git repository driven through the ``git`` CLI."""

from __future__ import annotations

import logging
import os
import subprocess
from enum import Enum
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

AUTHOR_NAME = "Chronicle"
AUTHOR_EMAIL = "chronicle@localhost"
INITIAL_MESSAGE = "Initial commit: Chronicle workspace"

DEFAULT_GITIGNORE = """# Chronicle app state (not content)
.chronicle/state.json

# OS files
.DS_Store
Thumbs.db

# Editor backups
*~
*.swp
*.swo

# Temporary files
*.tmp
*.temp
"""


class RepositoryError(RuntimeError):
    """Raised when a git operation fails; callers decide whether to retry."""


class CommitType(str, Enum):
    SESSION = "session"
    PROCESS = "process"
    ANNOTATE = "annotate"
    SNAPSHOT = "snapshot"


def _git_env() -> dict[str, str]:
    env = dict(os.environ)
    env.update(
        {
            "GIT_AUTHOR_NAME": AUTHOR_NAME,
            "GIT_AUTHOR_EMAIL": AUTHOR_EMAIL,
            "GIT_COMMITTER_NAME": AUTHOR_NAME,
            "GIT_COMMITTER_EMAIL": AUTHOR_EMAIL,
            "GIT_TERMINAL_PROMPT": "0",
        }
    )
    return env


def run_git(root: Path, *args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
    cmd = ["git", "-c", "commit.gpgsign=false", "-c", "core.quotepath=false", *args]
    try:
        process = subprocess.run(
            cmd,
            cwd=str(root),
            capture_output=True,
            text=True,
            env=_git_env(),
        )
    except FileNotFoundError as exc:
        raise RepositoryError("git executable not found on PATH") from exc
    except OSError as exc:
        raise RepositoryError(f"Git operation failed: {exc}") from exc

    if check and process.returncode != 0:
        detail = process.stderr.strip() or process.stdout.strip()
        raise RepositoryError(f"Git operation failed (git {args[0]}): {detail}")
    return process


def is_git_repo(path: Path | str) -> bool:
    return (Path(path) / ".git").exists()


class GitRepository:
    """A git repository rooted at the note workspace."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    @classmethod
    def open(cls, path: Path | str) -> "GitRepository":
        if not is_git_repo(path):
            raise RepositoryError(f"Repository not found at {path}")
        return cls(Path(path))

    @classmethod
    def init_or_open(cls, path: Path | str) -> "GitRepository":
        """Open an existing repository untouched, or initialize one with an ignore file."""

        root = Path(path)
        if is_git_repo(root):
            logger.info("Opening existing git repository", extra={"path": str(root)})
            return cls(root)

        logger.info("Initializing git repository", extra={"path": str(root)})
        repo = cls(root)
        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise RepositoryError(f"Cannot create workspace {root}: {exc}") from exc
        run_git(root, "-c", "init.defaultBranch=main", "init", "-q")

        gitignore = root / ".gitignore"
        if not gitignore.exists():
            try:
                gitignore.write_text(DEFAULT_GITIGNORE, encoding="utf-8")
            except OSError as exc:
                raise RepositoryError(f"Cannot write {gitignore}: {exc}") from exc
        run_git(root, "add", "--", ".gitignore")
        run_git(root, "commit", "-q", "--no-verify", "-m", INITIAL_MESSAGE)
        logger.info("Created initial commit", extra={"path": str(root)})
        return repo

    def head(self) -> str | None:
        """Full hash of the branch tip, or ``None`` for a repository without commits."""

        process = run_git(self.root, "rev-parse", "--verify", "-q", "HEAD", check=False)
        if process.returncode != 0:
            return None
        return process.stdout.strip()

    def _relative(self, file_path: Path | str) -> Path:
        path = Path(file_path)
        if path.is_absolute():
            try:
                return path.relative_to(self.root)
            except ValueError:
                try:
                    return path.resolve().relative_to(self.root.resolve())
                except ValueError as exc:
                    raise RepositoryError(f"{path} is outside the repository") from exc
        return path

    def _commit(self, message: str) -> str:
        run_git(self.root, "commit", "-q", "--no-verify", "--allow-empty", "-m", message)
        head = self.head()
        if head is None:  # pragma: no cover - commit just succeeded
            raise RepositoryError("Commit did not produce a HEAD")
        return head[:7]

    def commit_files(
        self,
        files: Iterable[Path | str],
        commit_type: CommitType,
        title: str,
        detail: str,
    ) -> str:
        """Stage the given files that exist on disk and commit them.

        Missing paths are skipped, never staged as deletions. Returns the
        7-character short hash.
        """

        staged: list[str] = []
        for file_path in files:
            relative = self._relative(file_path)
            if (self.root / relative).exists():
                staged.append(relative.as_posix())
        if staged:
            run_git(self.root, "add", "-f", "--", *staged)
            logger.debug("Staged files", extra={"files": staged})

        message = f"{CommitType(commit_type).value}: {title} ({detail})"
        short_id = self._commit(message)
        logger.info("Created commit", extra={"commit": short_id, "commit_message": message})
        return short_id

    def commit_snapshot(self, title: str) -> str:
        """Stage the whole working tree and commit it on top of the current tip."""

        if self.head() is None:
            raise RepositoryError("Cannot snapshot a repository without commits")
        run_git(self.root, "add", "-A")
        message = f"{CommitType.SNAPSHOT.value}: {title}"
        short_id = self._commit(message)
        logger.info("Created snapshot commit", extra={"commit": short_id, "commit_message": message})
        return short_id

    def uncommitted_files(self) -> list[str]:
        """Absolute paths of new, modified or deleted files (staged or not)."""

        process = run_git(self.root, "status", "--porcelain=v1", "-z", "--untracked-files=all")
        files: list[str] = []
        entries = process.stdout.split("\0")
        index = 0
        while index < len(entries):
            entry = entries[index]
            index += 1
            if len(entry) < 4:
                continue
            status, path = entry[:2], entry[3:]
            if "R" in status or "C" in status:
                # Renames carry the original path as the next entry.
                index += 1
            files.append(str(self.root / path))
        return files

    def has_changes(self) -> bool:
        return bool(self.uncommitted_files())


__all__ = [
    "CommitType",
    "DEFAULT_GITIGNORE",
    "GitRepository",
    "RepositoryError",
    "is_git_repo",
    "run_git",
]
