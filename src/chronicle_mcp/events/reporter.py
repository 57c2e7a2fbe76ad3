"""Per-task lifecycle reporting on top of the event bridge."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .bridge import EventBridge
from .models import EventKind

if TYPE_CHECKING:  # pragma: no cover
    from ..claude.runner import TaskResult


class TaskReporter:
    """Publishes one task's events in order: started, output lines, one terminal event."""

    def __init__(self, bridge: EventBridge, task: str, *, note: str | None = None) -> None:
        self._bridge = bridge
        self.task = task
        self.note = note
        self._started = False
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    def started(self) -> None:
        if self._started:
            return
        self._started = True
        self._bridge.emit(EventKind.TASK_STARTED, task=self.task, note=self.note)

    def line(self, line: str, is_stderr: bool) -> None:
        if self._finished:
            raise RuntimeError(f"Task '{self.task}' already reported a terminal event")
        self.started()
        self._bridge.emit(
            EventKind.OUTPUT_LINE,
            task=self.task,
            note=self.note,
            line=line,
            is_stderr=is_stderr,
        )

    def completed(self, result: "TaskResult") -> None:
        self._finish(EventKind.TASK_COMPLETED, result=result.as_dict())

    def error(self, message: str) -> None:
        self._finish(EventKind.TASK_ERROR, error=message)

    def report(self, result: "TaskResult", *, failure_message: str) -> None:
        """Emit ``completed`` for a successful result, ``error`` otherwise."""

        if result.success:
            self.completed(result)
        else:
            self.error(result.error or failure_message)

    def _finish(self, kind: EventKind, **payload: object) -> None:
        if self._finished:
            raise RuntimeError(f"Task '{self.task}' already reported a terminal event")
        self.started()
        self._finished = True
        self._bridge.emit(kind, task=self.task, note=self.note, **payload)


__all__ = ["TaskReporter"]
