"""Chronicle MCP diagnostics CLI."""

from __future__ import annotations

import argparse
import asyncio
import json
import shutil
import time
from pathlib import Path

from chronicle_mcp.claude import TaskRunner, TaskRunnerError
from chronicle_mcp.config import ChronicleSettings
from chronicle_mcp.events import EventBridge
from chronicle_mcp.pipeline import AgentOrchestrator, PipelineConfigError, PipelineLoader
from chronicle_mcp.storage import StorageError
from chronicle_mcp.vcs import GitRepository, RepositoryError, is_git_repo
from chronicle_mcp.watch import ChronicleWatcher, WatcherError, scan_indexes
from chronicle_mcp.workspace import chronicle_dir


def load_settings(args: argparse.Namespace) -> ChronicleSettings:
    settings = ChronicleSettings()
    workspace = getattr(args, "workspace", None)
    if workspace:
        settings.workspace_path = Path(workspace)
    settings.workspace_path = settings.workspace_path.expanduser().resolve()
    return settings


def cmd_check(args: argparse.Namespace) -> None:
    settings = load_settings(args)
    runner = TaskRunner(settings.claude_path)
    report: dict = {"claude": {"installed": False, "version": None, "error": None}}
    try:
        result = asyncio.run(runner.version())
        report["claude"]["installed"] = result.success
        report["claude"]["version"] = result.output.strip() or None
        if not result.success:
            report["claude"]["error"] = (result.error or "").strip() or None
    except TaskRunnerError as exc:
        report["claude"]["error"] = str(exc)

    report["git"] = {"installed": shutil.which("git") is not None}
    report["workspace"] = {
        "path": str(settings.workspace_path),
        "exists": settings.workspace_path.is_dir(),
        "initialized": chronicle_dir(settings.workspace_path).is_dir(),
        "repository": is_git_repo(settings.workspace_path),
    }

    print(json.dumps(report, indent=2))
    if not report["claude"]["installed"] or not report["workspace"]["exists"]:
        raise SystemExit(1)


def cmd_status(args: argparse.Namespace) -> None:
    settings = load_settings(args)
    workspace = settings.workspace_path
    if not workspace.is_dir():
        print(f"Workspace not found: {workspace}")
        raise SystemExit(1)

    try:
        pipeline = PipelineLoader(workspace).load()
        stages = [stage.name for stage in pipeline.stages]
        pipeline_error = None
    except PipelineConfigError as exc:
        stages = []
        pipeline_error = str(exc)

    orchestrator = AgentOrchestrator(
        TaskRunner(settings.claude_path), EventBridge(), workspace
    )
    try:
        digests = [digest.as_dict() for digest in orchestrator.list_digests()]
        indexes = {kind.value: str(path) for kind, path in scan_indexes(workspace).items()}
    except StorageError as exc:
        print(f"Workspace unreadable: {exc}")
        raise SystemExit(1)

    repository: dict = {"present": is_git_repo(workspace), "head": None, "uncommitted": []}
    if repository["present"]:
        try:
            repo = GitRepository.open(workspace)
            head = repo.head()
            repository["head"] = head[:7] if head else None
            repository["uncommitted"] = repo.uncommitted_files()
        except RepositoryError as exc:
            repository["error"] = str(exc)

    payload = {
        "workspace": str(workspace),
        "pipeline": {"stages": stages, "error": pipeline_error},
        "indexes": indexes,
        "digests": digests[: args.limit] if args.limit else digests,
        "repository": repository,
    }
    print(json.dumps(payload, indent=2))


def cmd_watch(args: argparse.Namespace) -> None:
    settings = load_settings(args)
    bridge = EventBridge(history_size=settings.event_history_size)
    bridge.subscribe(lambda notification: print(json.dumps(notification.to_message()), flush=True))

    watcher = ChronicleWatcher()
    try:
        handle = watcher.start(settings.workspace_path, bridge)
    except WatcherError as exc:
        print(f"Cannot watch workspace: {exc}")
        raise SystemExit(1)

    deadline = time.monotonic() + args.seconds if args.seconds else None
    with handle:
        try:
            while deadline is None or time.monotonic() < deadline:
                time.sleep(0.2)
        except KeyboardInterrupt:
            pass


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Chronicle MCP diagnostics")
    parser.add_argument("--workspace", help="Override CHRONICLE_WORKSPACE")
    sub = parser.add_subparsers(dest="cmd")

    p_check = sub.add_parser("check", help="Check Claude Code, git and the workspace")
    p_check.set_defaults(func=cmd_check)

    p_status = sub.add_parser("status", help="Show pipeline, indexes, digests and repository state")
    p_status.add_argument(
        "--limit",
        type=int,
        default=None,
        help="If provided, show only the newest N digests",
    )
    p_status.set_defaults(func=cmd_status)

    p_watch = sub.add_parser("watch", help="Print index notifications as JSON lines")
    p_watch.add_argument(
        "--seconds",
        type=float,
        default=None,
        help="Stop after this many seconds instead of waiting for Ctrl-C",
    )
    p_watch.set_defaults(func=cmd_watch)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
