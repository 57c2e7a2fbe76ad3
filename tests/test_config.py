from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from chronicle_mcp.config import DEFAULT_ALLOWED_TOOLS, ChronicleSettings, get_settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in (
        "CLAUDE_PATH",
        "CHRONICLE_WORKSPACE",
        "CHRONICLE_ALLOWED_TOOLS",
        "CHRONICLE_TASK_TIMEOUT",
        "CHRONICLE_INACTIVITY_TIMEOUT",
        "CHRONICLE_MAX_SESSION",
        "CHRONICLE_EVENT_HISTORY",
        "CHRONICLE_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()


def test_defaults() -> None:
    settings = ChronicleSettings()

    assert settings.claude_path is None
    assert settings.allowed_tools == DEFAULT_ALLOWED_TOOLS
    assert settings.task_timeout == 900.0
    assert settings.inactivity_timeout_minutes == 15
    assert settings.max_session_minutes == 120
    assert settings.log_level == "INFO"


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("CHRONICLE_WORKSPACE", str(tmp_path))
    monkeypatch.setenv("CHRONICLE_ALLOWED_TOOLS", " Read , Glob ,")
    monkeypatch.setenv("CHRONICLE_TASK_TIMEOUT", "0")
    monkeypatch.setenv("CHRONICLE_LOG_LEVEL", "debug")

    settings = get_settings()

    assert settings.workspace_path == tmp_path.resolve()
    assert settings.allowed_tools == "Read,Glob"
    assert settings.task_timeout is None
    assert settings.log_level == "DEBUG"


def test_invalid_values_are_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHRONICLE_LOG_LEVEL", "chatty")
    with pytest.raises(ValidationError):
        ChronicleSettings()

    monkeypatch.delenv("CHRONICLE_LOG_LEVEL")
    monkeypatch.setenv("CHRONICLE_INACTIVITY_TIMEOUT", "-1")
    with pytest.raises(ValidationError):
        ChronicleSettings()
