"""Agent orchestration: single tasks and the sequenced background pipeline."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Callable

from .. import workspace as layout
from ..claude import TaskResult, TaskRunner, TaskRunnerError, build_task
from ..config import DEFAULT_ALLOWED_TOOLS
from ..events import EventBridge, EventKind, TaskReporter
from ..storage import StorageError, list_entries
from .loader import PipelineError, PipelineLoader, read_command, read_prompt
from .models import PipelineRun, StageOutcome, StageSpec, StageStatus

logger = logging.getLogger(__name__)

PROCESS_TURNS = 10
AGENT_TURNS = 15
DIGEST_RANGES = {"daily": 0, "weekly": 7, "monthly": 30}


@dataclass(slots=True)
class DigestInfo:
    filename: str
    title: str
    path: str
    modified_at: int

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class AgentOrchestrator:
    """Runs Claude Code tasks for one workspace and reports them on the bridge."""

    def __init__(
        self,
        runner: TaskRunner,
        bridge: EventBridge,
        workspace: Path,
        *,
        allowed_tools: str = DEFAULT_ALLOWED_TOOLS,
        today: Callable[[], date] | None = None,
    ) -> None:
        self._runner = runner
        self._bridge = bridge
        self._workspace = Path(workspace)
        self._allowed_tools = allowed_tools
        self._today = today or date.today
        self._loader = PipelineLoader(self._workspace)

    @property
    def workspace(self) -> Path:
        return self._workspace

    async def _execute(
        self,
        name: str,
        build_prompt: Callable[[], str],
        *,
        note: str | None = None,
        max_turns: int | None = None,
    ) -> TaskResult:
        reporter = TaskReporter(self._bridge, name, note=note)
        reporter.started()
        try:
            prompt = build_prompt()
            task = build_task(
                prompt,
                self._workspace,
                name=name,
                note=note,
                max_turns=max_turns,
                allowed_tools=self._allowed_tools,
            )
            result = await self._runner.run(task, on_line=reporter.line)
        except (PipelineError, TaskRunnerError) as exc:
            logger.warning("Task failed", extra={"task": name, "error": str(exc)})
            reporter.error(str(exc))
            raise
        except asyncio.CancelledError:
            reporter.error("Task cancelled")
            raise
        except Exception as exc:
            logger.exception("Task raised unexpectedly", extra={"task": name})
            reporter.error(str(exc) or type(exc).__name__)
            raise

        reporter.report(result, failure_message=f"{name} failed")
        return result

    async def run_task(self, prompt: str, *, max_turns: int | None = None) -> TaskResult:
        """Run an arbitrary prompt."""

        return await self._execute("task", lambda: prompt, max_turns=max_turns)

    async def process_note(self, note_path: str) -> TaskResult:
        """Process a note with the workspace's ``process`` template."""

        def _prompt() -> str:
            template = read_prompt(self._workspace, "process")
            return f"{template}\n\nProcess this note: {note_path}"

        return await self._execute("process", _prompt, note=note_path, max_turns=PROCESS_TURNS)

    async def run_agent(self, name: str, *, max_turns: int = AGENT_TURNS) -> TaskResult:
        """Run one named agent from its prompt template."""

        return await self._execute(
            name, lambda: read_prompt(self._workspace, name), max_turns=max_turns
        )

    async def _run_stage(self, stage: StageSpec) -> StageOutcome:
        try:
            result = await self._execute(
                stage.name,
                lambda: read_prompt(self._workspace, stage.template),
                max_turns=stage.max_turns,
            )
        except (PipelineError, TaskRunnerError) as exc:
            return StageOutcome(stage.name, StageStatus.FAILED, reason=str(exc))

        if result.success:
            return StageOutcome(stage.name, StageStatus.SUCCEEDED, result=result)
        reason = result.error or f"{stage.name} exited with status {result.returncode}"
        return StageOutcome(stage.name, StageStatus.FAILED, reason=reason, result=result)

    async def run_agents(self) -> PipelineRun:
        """Run the background agents in order.

        When the first stage cannot run at all (its template is unreadable or
        the tool fails to start or times out) the remaining stages are
        skipped. A non-zero exit, in any stage, is reported and the next stage
        still runs; the last attempted stage decides the overall result.
        """

        run = PipelineRun()
        self._bridge.emit(EventKind.AGENTS_STARTED)
        try:
            spec = self._loader.load()
            aborted = False
            for index, stage in enumerate(spec.stages):
                if aborted:
                    run.stages.append(StageOutcome(stage.name, StageStatus.SKIPPED))
                    continue
                outcome = await self._run_stage(stage)
                run.stages.append(outcome)
                if index == 0 and not outcome.ok and outcome.result is None:
                    logger.warning(
                        "First pipeline stage could not run; skipping the rest",
                        extra={"stage": stage.name, "reason": outcome.reason},
                    )
                    aborted = True
        finally:
            self._bridge.emit(
                EventKind.AGENTS_COMPLETED,
                stages=[{"name": s.name, "status": s.status.value} for s in run.stages],
            )
        return run

    def _digest_period(
        self, range_name: str, from_date: str | None, to_date: str | None
    ) -> tuple[str, str]:
        today = self._today()
        if range_name in DIGEST_RANGES:
            start = today - timedelta(days=DIGEST_RANGES[range_name])
            return start.isoformat(), today.isoformat()
        if range_name == "custom":
            return from_date or today.isoformat(), to_date or today.isoformat()
        raise ValueError(f"Unknown range: {range_name}")

    async def generate_digest(
        self,
        range_name: str,
        *,
        from_date: str | None = None,
        to_date: str | None = None,
    ) -> TaskResult:
        """Ask the tool to write a digest for a time range into ``.chronicle/digests/``."""

        start, end = self._digest_period(range_name, from_date, to_date)
        output_path = layout.digests_dir(self._workspace) / f"{start}-{range_name}.md"
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to create digests dir: {exc}") from exc

        def _prompt() -> str:
            base = read_prompt(self._workspace, "digest")
            return (
                f"{base}\n\nGenerate a {range_name} digest for the period {start} to {end}.\n"
                f"Workspace: {self._workspace}\nWrite output to: {output_path}"
            )

        return await self._execute("digest", _prompt, max_turns=AGENT_TURNS)

    def list_digests(self) -> list[DigestInfo]:
        digests: list[DigestInfo] = []
        for path in list_entries(layout.digests_dir(self._workspace)):
            if path.suffix != ".md" or not path.is_file():
                continue
            try:
                content = path.read_text(encoding="utf-8")
                modified = int(path.stat().st_mtime)
            except OSError as exc:
                raise StorageError(f"Failed to read digest {path}: {exc}") from exc
            title = next(
                (line[2:].strip() for line in content.splitlines() if line.startswith("# ")),
                path.name,
            )
            digests.append(
                DigestInfo(filename=path.name, title=title, path=str(path), modified_at=modified)
            )
        digests.sort(key=lambda item: item.modified_at, reverse=True)
        return digests

    async def run_custom_command(
        self, filename: str, params: dict[str, str] | None = None
    ) -> TaskResult:
        """Run a ``.chronicle/commands/`` template with ``{{name}}`` substitution."""

        def _prompt() -> str:
            prompt = read_command(self._workspace, filename)
            for key, value in (params or {}).items():
                prompt = prompt.replace("{{" + key + "}}", value)
            if "{{date}}" in prompt:
                prompt = prompt.replace("{{date}}", self._today().isoformat())
            return f"Working directory: {self._workspace}\n\n{prompt}"

        return await self._execute(f"command:{filename}", _prompt, max_turns=AGENT_TURNS)


__all__ = ["AgentOrchestrator", "DigestInfo"]
