"""Async runner for the Claude Code CLI with live line streaming."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import subprocess
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Iterable

from ..config import DEFAULT_ALLOWED_TOOLS
from .utils import build_arguments, platform_command, sanitize_environment

logger = logging.getLogger(__name__)

DEFAULT_BINARY = "claude"
INSTALL_HINT = "Claude Code is not installed. Install it from https://claude.ai/download"

# asyncio's default 64 KiB line limit is too small for tool output.
_STREAM_LIMIT = 1024 * 1024

LineCallback = Callable[[str, bool], None]

_UNSET: Any = object()


class TaskRunnerError(RuntimeError):
    """Base class for task runner errors."""


class ToolNotInstalledError(TaskRunnerError):
    """Raised when the Claude Code executable cannot be located."""

    def __init__(self, message: str = INSTALL_HINT) -> None:
        super().__init__(message)


class ToolStartError(TaskRunnerError):
    """Raised when the executable exists but the process could not be spawned."""


class TaskTimeoutError(TaskRunnerError):
    """Raised when a task exceeds its deadline; the child has been killed."""


@dataclass(frozen=True, slots=True)
class Task:
    """One invocation of the external tool."""

    arguments: tuple[str, ...]
    cwd: Path
    name: str = "task"
    note: str | None = None
    max_turns: int | None = None
    binary: str = DEFAULT_BINARY


@dataclass(frozen=True, slots=True)
class TaskResult:
    """Holds the outcome of a tool invocation."""

    success: bool
    output: str
    error: str | None
    duration_ms: int
    returncode: int | None = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def build_task(
    prompt: str,
    workspace: Path | str,
    *,
    name: str = "task",
    note: str | None = None,
    max_turns: int | None = None,
    allowed_tools: str = DEFAULT_ALLOWED_TOOLS,
) -> Task:
    """Create a fresh ``claude -p`` task rooted at ``workspace``."""

    return Task(
        arguments=build_arguments(prompt, allowed_tools=allowed_tools, max_turns=max_turns),
        cwd=Path(workspace),
        name=name,
        note=note,
        max_turns=max_turns,
    )


async def _drain(
    stream: asyncio.StreamReader,
    is_stderr: bool,
    on_line: LineCallback | None,
) -> str:
    lines: list[str] = []
    pending = bytearray()
    while True:
        try:
            raw = await stream.readuntil(b"\n")
        except asyncio.IncompleteReadError as exc:
            raw = exc.partial
        except asyncio.LimitOverrunError as exc:
            # Line longer than the buffer limit: move the buffered part aside.
            pending += await stream.read(exc.consumed)
            continue
        if pending:
            raw = bytes(pending) + raw
            pending.clear()
        if not raw:
            break
        line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
        if on_line is not None:
            on_line(line, is_stderr)
        lines.append(line)
    return "\n".join(lines)


class TaskRunner:
    """Execute Claude Code tasks asynchronously.

    The runner enforces an optional deadline per invocation. When the
    deadline passes, or the awaiting coroutine is cancelled, the child is
    killed and reaped before the error propagates.
    """

    def __init__(
        self,
        executable: Path | str | None = None,
        *,
        timeout: float | None = None,
    ) -> None:
        self._explicit = Path(executable) if executable else None
        self._timeout = timeout

    @property
    def timeout(self) -> float | None:
        return self._timeout

    def resolve_executable(self, binary: str = DEFAULT_BINARY) -> str:
        if self._explicit is not None:
            if self._explicit.is_file():
                return str(self._explicit)
            raise ToolNotInstalledError(f"{INSTALL_HINT} (no executable at {self._explicit})")

        found = shutil.which(binary)
        if found is None:
            raise ToolNotInstalledError()
        return found

    async def run(
        self,
        task: Task,
        *,
        on_line: LineCallback | None = None,
        timeout: float | None = _UNSET,
    ) -> TaskResult:
        """Run ``task`` to completion, streaming each output line to ``on_line``."""

        deadline = self._timeout if timeout is _UNSET else timeout
        executable = self.resolve_executable(task.binary)
        if not Path(task.cwd).is_dir():
            raise ToolStartError(f"Failed to start Claude Code: workspace {task.cwd} does not exist")

        cmd = platform_command(executable, task.arguments)
        kwargs: dict[str, Any] = {}
        if os.name == "nt":
            kwargs["creationflags"] = getattr(subprocess, "CREATE_NO_WINDOW", 0)

        started = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(task.cwd),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=sanitize_environment(),
                limit=_STREAM_LIMIT,
                **kwargs,
            )
        except FileNotFoundError as exc:
            raise ToolNotInstalledError() from exc
        except OSError as exc:
            raise ToolStartError(f"Failed to start Claude Code: {exc}") from exc

        logger.debug("Spawned task", extra={"task": task.name, "pid": process.pid})

        assert process.stdout is not None and process.stderr is not None
        readers = [
            asyncio.create_task(_drain(process.stdout, False, on_line)),
            asyncio.create_task(_drain(process.stderr, True, on_line)),
        ]

        async def _collect() -> tuple[int, float, str, str]:
            returncode = await process.wait()
            elapsed = time.monotonic() - started
            stdout_text, stderr_text = await asyncio.gather(*readers)
            return returncode, elapsed, stdout_text, stderr_text

        try:
            returncode, elapsed, stdout_text, stderr_text = await asyncio.wait_for(
                _collect(), deadline
            )
        except asyncio.TimeoutError as exc:
            await _kill(process, readers)
            logger.warning("Task exceeded deadline", extra={"task": task.name, "timeout": deadline})
            raise TaskTimeoutError(
                f"Claude Code task '{task.name}' timed out after {deadline:g}s"
            ) from exc
        except BaseException:
            await _kill(process, readers)
            raise

        result = TaskResult(
            success=returncode == 0,
            output=stdout_text,
            error=stderr_text or None,
            duration_ms=int(elapsed * 1000),
            returncode=returncode,
        )
        logger.info(
            "Task finished",
            extra={"task": task.name, "returncode": returncode, "duration_ms": result.duration_ms},
        )
        return result

    async def version(self) -> TaskResult:
        task = Task(arguments=("--version",), cwd=Path.cwd(), name="version")
        return await self.run(task, timeout=30.0)

    async def check_installed(self) -> bool:
        """Return whether ``claude --version`` runs successfully."""

        try:
            result = await self.version()
        except TaskRunnerError:
            return False
        return result.success


async def _kill(process: asyncio.subprocess.Process, readers: list[asyncio.Task]) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()
    for reader in readers:
        reader.cancel()
    await asyncio.gather(*readers, return_exceptions=True)


class FakeTaskRunner(TaskRunner):
    """Test double that replays scripted results.

    Each response is either a :class:`TaskResult`, whose ``output`` and
    ``error`` lines are streamed to ``on_line``, or an exception to raise.
    """

    def __init__(self, responses: Iterable[TaskResult | BaseException] | None = None) -> None:
        super().__init__(Path("/tmp/fake-claude"))
        self._responses = list(responses or [])
        self._invocations: list[Task] = []

    def resolve_executable(self, binary: str = DEFAULT_BINARY) -> str:
        return str(self._explicit)

    async def run(  # type: ignore[override]
        self,
        task: Task,
        *,
        on_line: LineCallback | None = None,
        timeout: float | None = _UNSET,
    ) -> TaskResult:
        self._invocations.append(task)
        response: TaskResult | BaseException
        if self._responses:
            response = self._responses.pop(0)
        else:
            response = TaskResult(success=True, output="", error=None, duration_ms=0, returncode=0)
        if isinstance(response, BaseException):
            raise response
        if on_line is not None:
            for line in response.output.splitlines():
                on_line(line, False)
            for line in (response.error or "").splitlines():
                on_line(line, True)
        return response

    @property
    def invocations(self) -> list[Task]:
        return self._invocations


__all__ = [
    "DEFAULT_BINARY",
    "FakeTaskRunner",
    "INSTALL_HINT",
    "LineCallback",
    "Task",
    "TaskResult",
    "TaskRunner",
    "TaskRunnerError",
    "TaskTimeoutError",
    "ToolNotInstalledError",
    "ToolStartError",
    "build_task",
]
