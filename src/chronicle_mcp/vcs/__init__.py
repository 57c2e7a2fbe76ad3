"""Semantic commit layer over the workspace git repository."""

from .repo import CommitType, DEFAULT_GITIGNORE, GitRepository, RepositoryError, is_git_repo
from .semantic import commit_annotations, commit_processing, commit_session, commit_snapshot

__all__ = [
    "CommitType",
    "DEFAULT_GITIGNORE",
    "GitRepository",
    "RepositoryError",
    "commit_annotations",
    "commit_processing",
    "commit_session",
    "commit_snapshot",
    "is_git_repo",
]
