"""Claude Code CLI orchestration utilities."""

from .runner import (
    FakeTaskRunner,
    Task,
    TaskResult,
    TaskRunner,
    TaskRunnerError,
    TaskTimeoutError,
    ToolNotInstalledError,
    ToolStartError,
    build_task,
)

__all__ = [
    "FakeTaskRunner",
    "Task",
    "TaskResult",
    "TaskRunner",
    "TaskRunnerError",
    "TaskTimeoutError",
    "ToolNotInstalledError",
    "ToolStartError",
    "build_task",
]
