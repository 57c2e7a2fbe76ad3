"""Configuration management for Chronicle MCP."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ALLOWED_TOOLS = "Read,Write,Edit,Glob,Grep"


class ChronicleSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    claude_path: str | None = Field(default=None, validation_alias="CLAUDE_PATH")
    workspace_path: Path = Field(default=Path("."), validation_alias="CHRONICLE_WORKSPACE")
    allowed_tools: str = Field(
        default=DEFAULT_ALLOWED_TOOLS, validation_alias="CHRONICLE_ALLOWED_TOOLS"
    )
    task_timeout_seconds: float = Field(default=900.0, validation_alias="CHRONICLE_TASK_TIMEOUT")
    inactivity_timeout_minutes: int = Field(
        default=15, validation_alias="CHRONICLE_INACTIVITY_TIMEOUT"
    )
    max_session_minutes: int = Field(default=120, validation_alias="CHRONICLE_MAX_SESSION")
    event_history_size: int = Field(default=200, validation_alias="CHRONICLE_EVENT_HISTORY")
    log_level: str = Field(default="INFO", validation_alias="CHRONICLE_LOG_LEVEL")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "CHRONICLE_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("allowed_tools", mode="before")
    @classmethod
    def _parse_allowed_tools(cls, value):
        if value is None or value == "":
            return DEFAULT_ALLOWED_TOOLS
        if isinstance(value, (list, tuple)):
            return ",".join(str(item).strip() for item in value if str(item).strip())
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(",") if part.strip()]
            return ",".join(parts) or DEFAULT_ALLOWED_TOOLS
        raise TypeError("CHRONICLE_ALLOWED_TOOLS must be a list or a comma-separated string")

    @field_validator(
        "task_timeout_seconds",
        "inactivity_timeout_minutes",
        "max_session_minutes",
    )
    @classmethod
    def _validate_non_negative(cls, value):
        if value < 0:
            raise ValueError("Timeouts must be >= 0")
        return value

    @field_validator("event_history_size")
    @classmethod
    def _validate_history_size(cls, value: int) -> int:
        if value < 1:
            raise ValueError("CHRONICLE_EVENT_HISTORY must be >= 1")
        return value

    @property
    def task_timeout(self) -> float | None:
        """Deadline for a single tool invocation; ``None`` when disabled."""

        return self.task_timeout_seconds or None


@lru_cache(maxsize=1)
def get_settings() -> ChronicleSettings:
    """Return cached settings instance."""

    settings = ChronicleSettings()
    settings.workspace_path = settings.workspace_path.expanduser().resolve()
    return settings


__all__ = ["ChronicleSettings", "DEFAULT_ALLOWED_TOOLS", "get_settings"]
