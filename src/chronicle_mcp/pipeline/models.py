"""Stage definitions and run records for the agent pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from ..claude import TaskResult


class StageSpec(BaseModel):
    """A named pipeline stage backed by one prompt template."""

    name: str = Field(..., description="Stable stage name, used as the task label.")
    prompt: str | None = Field(
        default=None,
        description="Prompt template name under .chronicle/prompts/ (defaults to the stage name).",
    )
    max_turns: int = Field(default=15, description="Turn budget passed to the tool.")

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Stage name must not be empty")
        return normalized

    @field_validator("max_turns")
    @classmethod
    def _validate_turns(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_turns must be >= 1")
        return value

    @property
    def template(self) -> str:
        return self.prompt or self.name


class PipelineSpec(BaseModel):
    """Ordered stage list; order is meaningful because later stages read earlier indexes."""

    stages: list[StageSpec] = Field(default_factory=list)

    @field_validator("stages")
    @classmethod
    def _validate_stages(cls, value: list[StageSpec]) -> list[StageSpec]:
        if not value:
            raise ValueError("A pipeline needs at least one stage")
        names = [stage.name for stage in value]
        if len(names) != len(set(names)):
            raise ValueError("Stage names must be unique")
        return value


DEFAULT_PIPELINE = PipelineSpec(
    stages=[
        StageSpec(name="tagger", max_turns=15),
        StageSpec(name="actions", max_turns=15),
        StageSpec(name="context-updater", max_turns=15),
    ]
)


class StageStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(slots=True)
class StageOutcome:
    name: str
    status: StageStatus
    reason: str | None = None
    result: TaskResult | None = None

    @property
    def ok(self) -> bool:
        return self.status is StageStatus.SUCCEEDED

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "reason": self.reason,
            "result": self.result.as_dict() if self.result else None,
        }


@dataclass(slots=True)
class PipelineRun:
    """Per-stage outcomes of one pipeline execution."""

    stages: list[StageOutcome] = field(default_factory=list)

    @property
    def attempted(self) -> list[StageOutcome]:
        return [stage for stage in self.stages if stage.status is not StageStatus.SKIPPED]

    @property
    def outcome(self) -> StageOutcome | None:
        """The last attempted stage; it decides the pipeline's overall result."""

        attempted = self.attempted
        return attempted[-1] if attempted else None

    @property
    def ok(self) -> bool:
        outcome = self.outcome
        return outcome is not None and outcome.ok

    @property
    def error(self) -> str | None:
        outcome = self.outcome
        if outcome is None or outcome.ok:
            return None
        return outcome.reason

    def as_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "error": self.error,
            "stages": [stage.as_dict() for stage in self.stages],
        }


__all__ = [
    "DEFAULT_PIPELINE",
    "PipelineRun",
    "PipelineSpec",
    "StageOutcome",
    "StageSpec",
    "StageStatus",
]
