"""FastMCP server bootstrap for Chronicle."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from fastmcp import Context, FastMCP

from . import __version__
from .claude import TaskRunner, TaskRunnerError
from .config import ChronicleSettings, get_settings
from .events import EventBridge
from .session import SessionConfig, SessionManager
from .tools import register_tools
from .vcs import is_git_repo
from .watch import ChronicleWatcher, scan_indexes
from .workspace import chronicle_dir


def configure_logging(level: str) -> None:
    """Configure root logging for the Chronicle server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def _run_sync(coro):
    """Execute an async coroutine on a dedicated event loop."""

    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def probe_claude(runner: TaskRunner) -> dict:
    metadata = {"available": False, "version": None, "error": None}
    try:
        result = _run_sync(runner.version())
    except TaskRunnerError as exc:
        metadata["error"] = str(exc)
        return metadata

    if result.success:
        metadata["available"] = True
        metadata["version"] = result.output.strip() or None
    else:
        metadata["error"] = (result.error or "").strip() or (
            f"claude --version exited with code {result.returncode}"
        )
    return metadata


def create_server(
    settings: Optional[ChronicleSettings] = None,
    runner: TaskRunner | None = None,
    *,
    watcher: ChronicleWatcher | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server with tools and the status resource."""

    settings = settings or get_settings()
    runner = runner or TaskRunner(settings.claude_path, timeout=settings.task_timeout)
    claude_metadata = probe_claude(runner)

    bridge = EventBridge(history_size=settings.event_history_size)
    sessions = SessionManager(
        SessionConfig(
            inactivity_timeout_minutes=settings.inactivity_timeout_minutes,
            max_duration_minutes=settings.max_session_minutes,
        )
    )
    watcher = watcher or ChronicleWatcher()

    server = FastMCP(
        name="Chronicle MCP",
        version=__version__,
        instructions=(
            "Chronicle runs Claude Code agents over a notes workspace, tracks editing "
            "sessions and records them as semantic git commits. Use the provided tools "
            "to run agents, follow sessions and commit work."
        ),
    )

    handles = register_tools(
        server,
        settings=settings,
        runner=runner,
        bridge=bridge,
        sessions=sessions,
        watcher=watcher,
    )

    def status_payload(request_id: str | None = None) -> dict:
        """Summarize tool availability, session, watcher and notification state."""

        workspace = settings.workspace_path
        info = sessions.get_session_info()
        handle = watcher.handle
        recent = bridge.recent(10)

        kind_counts: dict[str, int] = {}
        for notification in bridge.recent():
            kind_counts[notification.kind.value] = kind_counts.get(notification.kind.value, 0) + 1

        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "claude": {
                "path": settings.claude_path,
                "allowed_tools": settings.allowed_tools,
                "timeout_seconds": settings.task_timeout,
                **claude_metadata,
            },
            "workspace": {
                "path": str(workspace),
                "initialized": chronicle_dir(workspace).is_dir(),
                "git": is_git_repo(workspace),
                "indexes": sorted(kind.value for kind in scan_indexes(workspace)),
            },
            "session": {
                "current": info.as_dict() if info else None,
                "inactivity_timeout_minutes": sessions.config.inactivity_timeout_minutes,
                "max_duration_minutes": sessions.config.max_duration_minutes,
            },
            "watcher": {
                "active": handle is not None and handle.active,
                "workspace": str(handle.workspace) if handle else None,
            },
            "notifications": {
                "subscribers": bridge.subscriber_count,
                "by_kind": kind_counts,
                "recent": [notification.to_message() for notification in recent],
            },
            "request_id": request_id,
        }
        return payload

    @server.resource(
        "resource://chronicle/status",
        name="chronicle_status",
        title="Chronicle MCP Status",
        description="Provides the current runtime status for the Chronicle MCP server.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    def status_resource(context: Context) -> str:
        """Return a JSON string summarizing basic runtime state."""

        return json.dumps(status_payload(getattr(context, "request_id", None)))

    setattr(server, "runner", runner)
    setattr(server, "claude_metadata", claude_metadata)
    setattr(server, "bridge", bridge)
    setattr(server, "sessions", sessions)
    setattr(server, "watcher", watcher)
    setattr(server, "tool_handles", handles)
    setattr(server, "status_payload", status_payload)
    return server


def main() -> None:
    """Entry point for running the Chronicle MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching Chronicle MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "workspace": str(settings.workspace_path),
            "claude_available": getattr(server, "claude_metadata", {}).get("available"),
        },
    )
    try:
        server.run()
    finally:
        getattr(server, "watcher").stop()


if __name__ == "__main__":
    main()
