"""Tool registration for Chronicle MCP."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from fastmcp import Context, FastMCP

from ..claude import TaskResult, TaskRunner
from ..config import ChronicleSettings
from ..events import EventBridge
from ..pipeline import AgentOrchestrator
from ..session import (
    SessionManager,
    load_session_metadata,
    save_session_metadata,
)
from ..storage import validate_workspace_path
from ..vcs import (
    GitRepository,
    commit_annotations,
    commit_processing,
    commit_session,
    commit_snapshot,
)
from ..watch import ChronicleWatcher, scan_indexes
from ..workspace import init_workspace

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolHandles:
    run_claude_task: Any
    process_note: Any
    run_agent: Any
    run_background_agents: Any
    generate_digest: Any
    list_digests: Any
    run_custom_command: Any
    check_claude_installed: Any
    start_session_tracking: Any
    stop_session_tracking: Any
    record_edit: Any
    end_session: Any
    check_session_timeouts: Any
    get_session_info: Any
    update_session_config: Any
    load_session_metadata: Any
    save_session_metadata: Any
    commit_session: Any
    commit_annotations: Any
    commit_processing: Any
    commit_snapshot: Any
    init_workspace: Any
    start_watcher: Any
    stop_watcher: Any
    orchestrator: AgentOrchestrator
    sessions: SessionManager
    bridge: EventBridge
    watcher: ChronicleWatcher


def _result_payload(result: TaskResult) -> dict[str, Any]:
    return result.as_dict()


def register_tools(
    server: FastMCP,
    *,
    settings: ChronicleSettings,
    runner: TaskRunner,
    bridge: EventBridge,
    sessions: SessionManager,
    watcher: ChronicleWatcher,
) -> ToolHandles:
    """Register Chronicle's MCP tools on the server."""

    workspace = Path(settings.workspace_path)
    orchestrator = AgentOrchestrator(
        runner,
        bridge,
        workspace,
        allowed_tools=settings.allowed_tools,
    )

    def _note(note_path: str) -> Path:
        return validate_workspace_path(workspace, Path(note_path))

    async def _run_claude_task(
        prompt: str,
        max_turns: int | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Run an arbitrary prompt through Claude Code in the workspace."""

        result = await orchestrator.run_task(prompt, max_turns=max_turns)
        _emit_log(context, "info", "Ran task", extra={"success": result.success})
        return _result_payload(result)

    async def _process_note(note_path: str, context: Context | None = None) -> dict[str, Any]:
        """Process a note with the workspace's process prompt."""

        note = _note(note_path)
        result = await orchestrator.process_note(str(note))
        _emit_log(context, "info", "Processed note", extra={"note": str(note), "success": result.success})
        return _result_payload(result)

    async def _run_agent(agent_name: str, context: Context | None = None) -> dict[str, Any]:
        result = await orchestrator.run_agent(agent_name)
        _emit_log(context, "info", "Ran agent", extra={"agent": agent_name, "success": result.success})
        return _result_payload(result)

    async def _run_background_agents(context: Context | None = None) -> dict[str, Any]:
        run = await orchestrator.run_agents()
        _emit_log(
            context,
            "info" if run.ok else "warning",
            "Background agents finished",
            extra={"ok": run.ok, "error": run.error},
        )
        return run.as_dict()

    async def _generate_digest(
        range_name: str,
        from_date: str | None = None,
        to_date: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        result = await orchestrator.generate_digest(range_name, from_date=from_date, to_date=to_date)
        _emit_log(context, "info", "Generated digest", extra={"range": range_name, "success": result.success})
        return _result_payload(result)

    def _list_digests(context: Context | None = None) -> list[dict[str, Any]]:
        digests = [digest.as_dict() for digest in orchestrator.list_digests()]
        _emit_log(context, "debug", "Listed digests", extra={"count": len(digests)})
        return digests

    async def _run_custom_command(
        command_filename: str,
        params: dict[str, str] | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        result = await orchestrator.run_custom_command(command_filename, params)
        _emit_log(
            context,
            "info",
            "Ran custom command",
            extra={"command": command_filename, "success": result.success},
        )
        return _result_payload(result)

    async def _check_claude_installed(context: Context | None = None) -> bool:
        installed = await runner.check_installed()
        _emit_log(context, "debug", "Checked Claude Code installation", extra={"installed": installed})
        return installed

    tool_run_task = server.tool(
        name="run_claude_task",
        description="Run an arbitrary prompt with Claude Code in the workspace, streaming output as events.",
    )(_run_claude_task)
    tool_process = server.tool(
        name="process_note",
        description="Process a note using .chronicle/prompts/process.md.",
    )(_process_note)
    tool_agent = server.tool(
        name="run_agent",
        description="Run one named agent using .chronicle/prompts/<name>.md.",
    )(_run_agent)
    tool_agents = server.tool(
        name="run_background_agents",
        description="Run the background agents in order (tagger, actions, context-updater by default).",
    )(_run_background_agents)
    tool_digest = server.tool(
        name="generate_digest",
        description="Generate a daily, weekly, monthly or custom-range digest.",
    )(_generate_digest)
    tool_list_digests = server.tool(
        name="list_digests",
        description="List generated digests, newest first.",
    )(_list_digests)
    tool_command = server.tool(
        name="run_custom_command",
        description="Run a .chronicle/commands/ template with {{param}} substitution.",
    )(_run_custom_command)
    tool_check = server.tool(
        name="check_claude_installed",
        description="Check whether the Claude Code CLI is installed.",
    )(_check_claude_installed)

    async def _start_session_tracking(note_path: str, context: Context | None = None) -> dict[str, Any]:
        """Focus a note, restoring its last finished session from the sidecar."""

        note = _note(note_path)

        def _open():
            existing = load_session_metadata(note)
            return sessions.open_note(str(note), existing)

        flushed = await asyncio.to_thread(_open)
        info = sessions.get_session_info()
        _emit_log(context, "debug", "Started session tracking", extra={"note": str(note)})
        return {
            "session": info.as_dict() if info else None,
            "flushed": flushed.as_dict() if flushed else None,
        }

    def _stop_session_tracking(context: Context | None = None) -> dict[str, Any] | None:
        session = sessions.close_note()
        _emit_log(context, "debug", "Stopped session tracking")
        return session.as_dict() if session else None

    def _record_edit(context: Context | None = None) -> dict[str, Any] | None:
        info = sessions.record_edit()
        return info.as_dict() if info else None

    def _end_session(context: Context | None = None) -> dict[str, Any] | None:
        session = sessions.end_session()
        _emit_log(context, "info", "Ended session", extra={"ended": session is not None})
        return session.as_dict() if session else None

    def _check_session_timeouts(context: Context | None = None) -> dict[str, Any] | None:
        session = sessions.check_timeouts()
        if session is not None:
            _emit_log(context, "info", "Session ended by timeout", extra={"note": session.note_path})
        return session.as_dict() if session else None

    def _get_session_info(context: Context | None = None) -> dict[str, Any] | None:
        info = sessions.get_session_info()
        return info.as_dict() if info else None

    def _update_session_config(
        inactivity_timeout_minutes: int,
        max_duration_minutes: int,
        context: Context | None = None,
    ) -> dict[str, int]:
        if inactivity_timeout_minutes < 0 or max_duration_minutes < 0:
            raise ValueError("Session timeouts must be >= 0")
        sessions.update_config(inactivity_timeout_minutes, max_duration_minutes)
        return {
            "inactivity_timeout_minutes": inactivity_timeout_minutes,
            "max_duration_minutes": max_duration_minutes,
        }

    async def _load_session_metadata(note_path: str, context: Context | None = None) -> dict[str, Any] | None:
        note = _note(note_path)
        session = await asyncio.to_thread(load_session_metadata, note)
        return session.as_dict() if session else None

    async def _save_session_metadata(note_path: str, context: Context | None = None) -> dict[str, Any]:
        """Persist the current session of ``note_path`` to its sidecar."""

        note = _note(note_path)
        session = sessions.get_session()
        if session is None or Path(session.note_path) != note:
            raise ValueError(f"No tracked session for {note_path}")
        path = await asyncio.to_thread(save_session_metadata, note, session)
        _emit_log(context, "debug", "Saved session metadata", extra={"path": str(path)})
        return {"path": str(path), "session": session.as_dict()}

    tool_start_session = server.tool(
        name="start_session_tracking",
        description="Start tracking editing time for a note; ends and returns any active session on the previous note.",
    )(_start_session_tracking)
    tool_stop_session = server.tool(
        name="stop_session_tracking",
        description="Stop tracking the current note, ending its session if active.",
    )(_stop_session_tracking)
    tool_record_edit = server.tool(
        name="record_edit",
        description="Record an edit to the current note.",
    )(_record_edit)
    tool_end_session = server.tool(
        name="end_session",
        description="Manually end the current session.",
    )(_end_session)
    tool_check_timeouts = server.tool(
        name="check_session_timeouts",
        description="End the current session if it is idle or too long; returns it when ended.",
    )(_check_session_timeouts)
    tool_session_info = server.tool(
        name="get_session_info",
        description="Return the current session state and duration.",
    )(_get_session_info)
    tool_session_config = server.tool(
        name="update_session_config",
        description="Update the inactivity timeout and maximum session duration (minutes).",
    )(_update_session_config)
    tool_load_meta = server.tool(
        name="load_session_metadata",
        description="Load the last finished session recorded for a note.",
    )(_load_session_metadata)
    tool_save_meta = server.tool(
        name="save_session_metadata",
        description="Save the current session of a note to its .meta sidecar.",
    )(_save_session_metadata)

    async def _commit_session(
        note_path: str,
        title: str,
        duration_minutes: int,
        context: Context | None = None,
    ) -> str:
        note = _note(note_path)
        commit_id = await asyncio.to_thread(commit_session, workspace, note, title, duration_minutes)
        _emit_log(context, "info", "Committed session", extra={"commit": commit_id})
        return commit_id

    async def _commit_annotations(
        note_path: str,
        title: str,
        annotation_count: int,
        context: Context | None = None,
    ) -> str:
        note = _note(note_path)
        commit_id = await asyncio.to_thread(
            commit_annotations, workspace, note, title, annotation_count
        )
        _emit_log(context, "info", "Committed annotations", extra={"commit": commit_id})
        return commit_id

    async def _commit_processing(note_path: str, title: str, context: Context | None = None) -> str:
        note = _note(note_path)
        commit_id = await asyncio.to_thread(commit_processing, workspace, note, title)
        _emit_log(context, "info", "Committed processing output", extra={"commit": commit_id})
        return commit_id

    async def _commit_snapshot(title: str, context: Context | None = None) -> str:
        commit_id = await asyncio.to_thread(commit_snapshot, workspace, title)
        _emit_log(context, "info", "Committed snapshot", extra={"commit": commit_id})
        return commit_id

    async def _init_workspace(context: Context | None = None) -> dict[str, Any]:
        """Create .chronicle/ and open or initialize the git repository."""

        def _init():
            base = init_workspace(workspace)
            repo = GitRepository.init_or_open(workspace)
            return base, repo.head()

        base, head = await asyncio.to_thread(_init)
        _emit_log(context, "info", "Initialized workspace", extra={"path": str(workspace)})
        return {"chronicle_dir": str(base), "head": head[:7] if head else None}

    tool_commit_session = server.tool(
        name="commit_session",
        description="Commit a note and its sidecar with a 'session: <title> (<n>m)' message.",
    )(_commit_session)
    tool_commit_annotations = server.tool(
        name="commit_annotations",
        description="Commit post-session edits with an 'annotate: <title> (<n> annotations)' message.",
    )(_commit_annotations)
    tool_commit_processing = server.tool(
        name="commit_processing",
        description="Commit a note's processed output and the agent indexes as 'process: <title> (processed)'.",
    )(_commit_processing)
    tool_commit_snapshot = server.tool(
        name="commit_snapshot",
        description="Stage the whole workspace and commit it as 'snapshot: <title>'.",
    )(_commit_snapshot)
    tool_init = server.tool(
        name="init_workspace",
        description="Create .chronicle/ defaults and initialize or open the workspace git repository.",
    )(_init_workspace)

    def _start_watcher(replace: bool = False, context: Context | None = None) -> dict[str, Any]:
        handle = watcher.start(workspace, bridge, replace=replace)
        indexes = scan_indexes(workspace)
        _emit_log(context, "info", "Watching workspace", extra={"workspace": str(handle.workspace)})
        return {
            "workspace": str(handle.workspace),
            "indexes": sorted(kind.value for kind in indexes),
        }

    def _stop_watcher(context: Context | None = None) -> bool:
        was_active = watcher.handle is not None
        watcher.stop()
        return was_active

    tool_start_watcher = server.tool(
        name="start_watcher",
        description="Watch .chronicle/ for index updates from background agents.",
    )(_start_watcher)
    tool_stop_watcher = server.tool(
        name="stop_watcher",
        description="Stop the active .chronicle/ watcher.",
    )(_stop_watcher)

    return ToolHandles(
        run_claude_task=tool_run_task,
        process_note=tool_process,
        run_agent=tool_agent,
        run_background_agents=tool_agents,
        generate_digest=tool_digest,
        list_digests=tool_list_digests,
        run_custom_command=tool_command,
        check_claude_installed=tool_check,
        start_session_tracking=tool_start_session,
        stop_session_tracking=tool_stop_session,
        record_edit=tool_record_edit,
        end_session=tool_end_session,
        check_session_timeouts=tool_check_timeouts,
        get_session_info=tool_session_info,
        update_session_config=tool_session_config,
        load_session_metadata=tool_load_meta,
        save_session_metadata=tool_save_meta,
        commit_session=tool_commit_session,
        commit_annotations=tool_commit_annotations,
        commit_processing=tool_commit_processing,
        commit_snapshot=tool_commit_snapshot,
        init_workspace=tool_init,
        start_watcher=tool_start_watcher,
        stop_watcher=tool_stop_watcher,
        orchestrator=orchestrator,
        sessions=sessions,
        bridge=bridge,
        watcher=watcher,
    )


__all__ = ["register_tools", "ToolHandles"]


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)
