"""Utility helpers for the Claude Code runner."""

from __future__ import annotations

import os
from typing import Mapping, Sequence

from ..config import DEFAULT_ALLOWED_TOOLS

_SANITIZED_VARS = {
    "PYTHONHOME",
    "PYTHONPATH",
    "VIRTUAL_ENV",
    "PIP_RESPECT_VIRTUALENV",
}


def sanitize_environment(additional: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return a sanitized environment suitable for subprocess execution."""

    env = dict(os.environ)
    for key in _SANITIZED_VARS:
        env.pop(key, None)
    if additional:
        env.update(additional)
    return env


def build_arguments(
    prompt: str,
    *,
    allowed_tools: str = DEFAULT_ALLOWED_TOOLS,
    max_turns: int | None = None,
) -> tuple[str, ...]:
    """Build the non-interactive ``claude -p`` argument list."""

    args = ["-p", prompt, "--output-format", "text", "--allowedTools", allowed_tools]
    if max_turns is not None:
        args.extend(["--max-turns", str(max_turns)])
    return tuple(args)


def platform_command(executable: str, arguments: Sequence[str]) -> list[str]:
    """Wrap the command for the platform shell where required.

    On Windows the CLI is installed as a ``.cmd`` shim that only resolves
    through ``cmd /c``.
    """

    if os.name == "nt":
        return ["cmd", "/c", executable, *arguments]
    return [executable, *arguments]


__all__ = ["build_arguments", "platform_command", "sanitize_environment"]
