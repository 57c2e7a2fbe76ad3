from __future__ import annotations

import importlib.util
import json
from pathlib import Path

import pytest

from chronicle_mcp.workspace import init_workspace


def _load_diag():
    module_path = Path(__file__).resolve().parents[1] / "scripts" / "chronicle_diag.py"
    spec = importlib.util.spec_from_file_location("chronicle_diag_test_module", module_path)
    assert spec and spec.loader
    diag = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(diag)
    return diag


def _script(tmp_path: Path, body: str) -> Path:
    script = tmp_path / "claude"
    script.write_text("#!/bin/sh\n" + body, encoding="utf-8")
    script.chmod(0o755)
    return script


def test_check_reports_missing_claude(tmp_path: Path, monkeypatch, capsys) -> None:
    diag = _load_diag()
    monkeypatch.setenv("CLAUDE_PATH", str(tmp_path / "missing"))

    with pytest.raises(SystemExit):
        diag.main(["--workspace", str(tmp_path), "check"])

    payload = json.loads(capsys.readouterr().out)
    assert payload["claude"]["installed"] is False
    assert "not installed" in payload["claude"]["error"]
    assert payload["workspace"]["exists"] is True


def test_check_passes_with_working_binary(tmp_path: Path, monkeypatch, capsys) -> None:
    diag = _load_diag()
    monkeypatch.setenv("CLAUDE_PATH", str(_script(tmp_path, "echo 'claude 9.9'\n")))

    diag.main(["--workspace", str(tmp_path), "check"])

    payload = json.loads(capsys.readouterr().out)
    assert payload["claude"] == {"installed": True, "version": "claude 9.9", "error": None}
    assert payload["workspace"]["initialized"] is False


def test_status_lists_pipeline_and_digests(tmp_path: Path, capsys) -> None:
    diag = _load_diag()
    init_workspace(tmp_path)
    (tmp_path / ".chronicle" / "digests" / "2025-03-10-daily.md").write_text("# Monday", encoding="utf-8")

    diag.main(["--workspace", str(tmp_path), "status", "--limit", "5"])

    payload = json.loads(capsys.readouterr().out)
    assert payload["pipeline"]["stages"] == ["tagger", "actions", "context-updater"]
    assert [d["title"] for d in payload["digests"]] == ["Monday"]
    assert set(payload["indexes"]) == {"tags", "actions", "links"}
    assert payload["repository"]["present"] is False


def test_status_reports_bad_pipeline(tmp_path: Path, capsys) -> None:
    diag = _load_diag()
    init_workspace(tmp_path)
    (tmp_path / ".chronicle" / "pipeline.yaml").write_text("stages: [", encoding="utf-8")

    diag.main(["--workspace", str(tmp_path), "status"])

    payload = json.loads(capsys.readouterr().out)
    assert payload["pipeline"]["stages"] == []
    assert "Failed to parse pipeline" in payload["pipeline"]["error"]


def test_watch_requires_initialized_workspace(tmp_path: Path, capsys) -> None:
    diag = _load_diag()

    with pytest.raises(SystemExit):
        diag.main(["--workspace", str(tmp_path), "watch", "--seconds", "0.1"])

    assert "Cannot watch workspace" in capsys.readouterr().out


def test_watch_runs_for_bounded_time(tmp_path: Path, capsys) -> None:
    diag = _load_diag()
    init_workspace(tmp_path)

    diag.main(["--workspace", str(tmp_path), "watch", "--seconds", "0.2"])


def test_no_command_prints_help(capsys) -> None:
    diag = _load_diag()

    diag.main([])

    assert "Chronicle MCP diagnostics" in capsys.readouterr().out
