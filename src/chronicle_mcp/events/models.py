"""Notification models published through the event bridge."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EventKind(str, Enum):
    """Closed vocabulary of notifications consumed by the UI layer."""

    TASK_STARTED = "claude:task-started"
    OUTPUT_LINE = "claude:output-line"
    TASK_COMPLETED = "claude:task-completed"
    TASK_ERROR = "claude:task-error"
    AGENTS_STARTED = "claude:agents-started"
    AGENTS_COMPLETED = "claude:agents-completed"
    TAGS_UPDATED = "chronicle:tags-updated"
    ACTIONS_UPDATED = "chronicle:actions-updated"
    LINKS_UPDATED = "chronicle:links-updated"
    PROCESSED_UPDATED = "chronicle:processed-updated"

    @property
    def is_terminal(self) -> bool:
        return self in {EventKind.TASK_COMPLETED, EventKind.TASK_ERROR}


class Notification(BaseModel):
    """A single best-effort notification."""

    model_config = ConfigDict(frozen=True)

    kind: EventKind
    task: str | None = Field(default=None, description="Task label the event belongs to.")
    note: str | None = Field(default=None, description="Note path the task concerns, if any.")
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_message(self) -> dict[str, Any]:
        """Render the notification as a JSON-friendly event envelope."""

        return {
            "event": self.kind.value,
            "task": self.task,
            "note": self.note,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }


__all__ = ["EventKind", "Notification"]
