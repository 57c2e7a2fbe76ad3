"""Pipeline definition and prompt template loading."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import ValidationError

from .. import workspace as layout
from ..storage import StorageError, read_text
from .models import DEFAULT_PIPELINE, PipelineSpec


class PipelineError(RuntimeError):
    """Base class for pipeline errors."""


class PipelineConfigError(PipelineError):
    """Raised when a workspace pipeline override cannot be parsed."""


class PromptTemplateError(PipelineError):
    """Raised when a stage's prompt template cannot be read."""


class PipelineLoader:
    """Loads the stage list for a workspace.

    ``.chronicle/pipeline.yaml`` overrides the built-in tagger, actions,
    context-updater sequence when present.
    """

    def __init__(self, workspace: Path) -> None:
        self._workspace = Path(workspace)

    @property
    def config_path(self) -> Path:
        return layout.chronicle_dir(self._workspace) / layout.PIPELINE_FILE

    def load(self) -> PipelineSpec:
        path = self.config_path
        if not path.exists():
            return DEFAULT_PIPELINE

        try:
            document = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise PipelineConfigError(f"Failed to parse pipeline definition in {path}: {exc}") from exc

        if document is None:
            return DEFAULT_PIPELINE

        try:
            return PipelineSpec.model_validate(document)
        except ValidationError as exc:
            raise PipelineConfigError(f"Pipeline validation error in {path}: {exc}") from exc


def read_prompt(workspace: Path, name: str) -> str:
    """Read ``.chronicle/prompts/<name>.md``."""

    try:
        return read_text(layout.prompt_path(workspace, name))
    except StorageError as exc:
        raise PromptTemplateError(f"Failed to read {name} prompt: {exc}") from exc


def read_command(workspace: Path, filename: str) -> str:
    """Read a custom command template from ``.chronicle/commands/``."""

    if not filename or Path(filename).name != filename or filename in {".", ".."}:
        raise PromptTemplateError(f"Invalid command name: {filename}")
    path = layout.command_path(workspace, filename)
    try:
        return read_text(path)
    except StorageError as exc:
        raise PromptTemplateError(f"Failed to read command: {exc}") from exc


__all__ = [
    "PipelineConfigError",
    "PipelineError",
    "PipelineLoader",
    "PromptTemplateError",
    "read_command",
    "read_prompt",
]
