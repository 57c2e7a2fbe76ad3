"""Agent pipeline definitions and orchestration."""

from .loader import (
    PipelineConfigError,
    PipelineError,
    PipelineLoader,
    PromptTemplateError,
    read_command,
    read_prompt,
)
from .models import DEFAULT_PIPELINE, PipelineRun, PipelineSpec, StageOutcome, StageSpec, StageStatus
from .orchestrator import AgentOrchestrator, DigestInfo

__all__ = [
    "AgentOrchestrator",
    "DEFAULT_PIPELINE",
    "DigestInfo",
    "PipelineConfigError",
    "PipelineError",
    "PipelineLoader",
    "PipelineRun",
    "PipelineSpec",
    "PromptTemplateError",
    "StageOutcome",
    "StageSpec",
    "StageStatus",
    "read_command",
    "read_prompt",
]
