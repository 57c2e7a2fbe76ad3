from __future__ import annotations

import asyncio
import shutil
from pathlib import Path

import pytest

from chronicle_mcp.claude import FakeTaskRunner, TaskResult
from chronicle_mcp.config import ChronicleSettings
from chronicle_mcp.events import EventBridge, EventKind
from chronicle_mcp.session import SessionManager, SessionState, meta_path
from chronicle_mcp.storage import StorageError
from chronicle_mcp.tools import register_tools
from chronicle_mcp.watch import ChronicleWatcher
from chronicle_mcp.workspace import init_workspace


class StubTool:
    def __init__(self, fn, name):
        self.fn = fn
        self.name = name


class StubServer:
    def __init__(self) -> None:
        self._tools: dict[str, StubTool] = {}

    def tool(self, *args, **kwargs):
        provided_name = None
        if args and isinstance(args[0], str):
            provided_name = args[0]
        provided_name = kwargs.get("name", provided_name)

        def decorator(fn):
            tool_name = provided_name or fn.__name__
            tool = StubTool(fn, tool_name)
            self._tools[tool_name] = tool
            return tool

        return decorator


class StubObserver:
    def schedule(self, handler, path, recursive=False):
        self.path = path

    def start(self) -> None:
        pass

    def stop(self) -> None:
        pass

    def join(self, timeout=None) -> None:
        pass


class StubLogger:
    def __init__(self) -> None:
        self.records: list[tuple[str, str, dict]] = []

    def info(self, message, extra=None):
        self.records.append(("info", message, extra or {}))

    def debug(self, message, extra=None):
        self.records.append(("debug", message, extra or {}))


class StubContext:
    def __init__(self) -> None:
        self.logger = StubLogger()


def ok(output: str = "done") -> TaskResult:
    return TaskResult(success=True, output=output, error=None, duration_ms=3, returncode=0)


@pytest.fixture()
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    root = tmp_path / "notes"
    root.mkdir()
    monkeypatch.setenv("CHRONICLE_WORKSPACE", str(root))
    return root.resolve()


def _register(responses=None):
    server = StubServer()
    runner = FakeTaskRunner(responses or [])
    bridge = EventBridge()
    handles = register_tools(
        server,
        settings=ChronicleSettings(),
        runner=runner,
        bridge=bridge,
        sessions=SessionManager(),
        watcher=ChronicleWatcher(observer_factory=StubObserver),
    )
    return server._tools, handles, runner


def test_all_tools_are_registered(workspace: Path) -> None:
    tools, handles, _ = _register()

    assert set(tools) == {
        "run_claude_task",
        "process_note",
        "run_agent",
        "run_background_agents",
        "generate_digest",
        "list_digests",
        "run_custom_command",
        "check_claude_installed",
        "start_session_tracking",
        "stop_session_tracking",
        "record_edit",
        "end_session",
        "check_session_timeouts",
        "get_session_info",
        "update_session_config",
        "load_session_metadata",
        "save_session_metadata",
        "commit_session",
        "commit_annotations",
        "commit_processing",
        "commit_snapshot",
        "init_workspace",
        "start_watcher",
        "stop_watcher",
    }
    assert handles.run_claude_task is tools["run_claude_task"]
    assert handles.orchestrator.workspace.resolve() == workspace


def test_run_claude_task_returns_result_and_logs(workspace: Path) -> None:
    tools, handles, runner = _register([ok("hello")])
    context = StubContext()

    payload = asyncio.run(tools["run_claude_task"].fn(prompt="summarize", max_turns=4, context=context))

    assert payload["success"] is True
    assert payload["output"] == "hello"
    assert runner.invocations[0].max_turns == 4
    assert Path(runner.invocations[0].cwd).resolve() == workspace
    assert context.logger.records[0][1] == "Ran task"
    kinds = [n.kind for n in handles.bridge.recent()]
    assert kinds == [EventKind.TASK_STARTED, EventKind.OUTPUT_LINE, EventKind.TASK_COMPLETED]


def test_process_note_rejects_paths_outside_workspace(workspace: Path, tmp_path: Path) -> None:
    tools, _, runner = _register([ok()])

    with pytest.raises(StorageError):
        asyncio.run(tools["process_note"].fn(note_path=str(tmp_path / "elsewhere.md")))
    assert runner.invocations == []


def test_background_agents_report_per_stage(workspace: Path) -> None:
    init_workspace(workspace)
    prompts = workspace / ".chronicle" / "prompts"
    for name in ("tagger", "actions", "context-updater"):
        (prompts / f"{name}.md").write_text(name, encoding="utf-8")
    tools, _, _ = _register([ok(), ok(), ok()])

    payload = asyncio.run(tools["run_background_agents"].fn())

    assert payload["ok"] is True
    assert [stage["status"] for stage in payload["stages"]] == ["succeeded"] * 3


def test_session_tools_track_and_persist(workspace: Path) -> None:
    tools, handles, _ = _register()
    note = workspace / "idea.md"
    note.write_text("# Idea", encoding="utf-8")

    started = asyncio.run(tools["start_session_tracking"].fn(note_path="idea.md"))
    edited = tools["record_edit"].fn()
    ended = tools["end_session"].fn()
    saved = asyncio.run(tools["save_session_metadata"].fn(note_path=str(note)))

    assert started["session"]["state"] == "inactive"
    assert started["flushed"] is None
    assert edited["state"] == "active"
    assert ended["state"] == "ended"
    assert Path(saved["path"]) == meta_path(note)

    loaded = asyncio.run(tools["load_session_metadata"].fn(note_path=str(note)))
    assert loaded["state"] == SessionState.ENDED.value

    restarted = asyncio.run(tools["start_session_tracking"].fn(note_path=str(note)))
    assert restarted["session"]["state"] == "ended"
    tools["record_edit"].fn()
    assert handles.sessions.get_session().annotation_count == 1


def test_switching_notes_returns_flushed_session(workspace: Path) -> None:
    tools, _, _ = _register()
    (workspace / "a.md").write_text("a", encoding="utf-8")
    (workspace / "b.md").write_text("b", encoding="utf-8")

    asyncio.run(tools["start_session_tracking"].fn(note_path="a.md"))
    tools["record_edit"].fn()
    switched = asyncio.run(tools["start_session_tracking"].fn(note_path="b.md"))

    assert switched["flushed"]["state"] == "ended"
    assert switched["flushed"]["note_path"] == str(workspace / "a.md")


def test_save_metadata_requires_tracked_note(workspace: Path) -> None:
    tools, _, _ = _register()

    with pytest.raises(ValueError):
        asyncio.run(tools["save_session_metadata"].fn(note_path="idea.md"))


def test_update_session_config(workspace: Path) -> None:
    tools, handles, _ = _register()

    tools["update_session_config"].fn(inactivity_timeout_minutes=0, max_duration_minutes=60)

    assert handles.sessions.config.inactivity_timeout_minutes == 0
    with pytest.raises(ValueError):
        tools["update_session_config"].fn(inactivity_timeout_minutes=-1, max_duration_minutes=60)


def test_watcher_tools(workspace: Path) -> None:
    init_workspace(workspace)
    tools, handles, _ = _register()

    started = tools["start_watcher"].fn()

    assert started["indexes"] == ["actions", "links", "tags"]
    assert handles.watcher.handle is not None
    assert tools["stop_watcher"].fn() is True
    assert tools["stop_watcher"].fn() is False


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
def test_init_and_commit_tools(workspace: Path) -> None:
    tools, _, _ = _register()
    info = asyncio.run(tools["init_workspace"].fn())
    (workspace / "idea.md").write_text("# Idea", encoding="utf-8")

    commit_id = asyncio.run(
        tools["commit_session"].fn(note_path="idea.md", title="Idea", duration_minutes=12)
    )
    snapshot_id = asyncio.run(tools["commit_snapshot"].fn(title="All"))

    assert (workspace / ".chronicle" / "tags.json").exists()
    assert info["head"] is not None and len(info["head"]) == 7
    assert len(commit_id) == 7
    assert len(snapshot_id) == 7 and snapshot_id != commit_id


def test_list_digests_tool(workspace: Path) -> None:
    digests = workspace / ".chronicle" / "digests"
    digests.mkdir(parents=True)
    (digests / "2025-03-10-daily.md").write_text("# Monday", encoding="utf-8")
    tools, _, _ = _register()

    listed = tools["list_digests"].fn()

    assert [d["title"] for d in listed] == ["Monday"]


def test_check_claude_installed_uses_runner(workspace: Path) -> None:
    tools, _, runner = _register([ok("claude 1.0")])

    assert asyncio.run(tools["check_claude_installed"].fn()) is True
    assert runner.invocations[0].arguments == ("--version",)
