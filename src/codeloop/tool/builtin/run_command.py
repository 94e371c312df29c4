"""Run command tool: one-shot shell execution in the project root.

Each call spawns ``/bin/sh -c <command>`` in its own process group so a
timeout can kill the whole tree. Commands matching the blocklist are refused
before anything is spawned.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import signal
from typing import TYPE_CHECKING, ClassVar

from pydantic import BaseModel, Field

from codeloop.tool.base import BaseTool, ToolError, ToolOk, ToolResult
from codeloop.tool.truncation import sanitize_binary_output, strip_ansi

if TYPE_CHECKING:
    from codeloop.workspace import ProjectContext

logger = logging.getLogger(__name__)

DANGEROUS_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"rm\s+(-[a-zA-Z]*\s+)*/"),  # rm on absolute paths
    re.compile(r"curl\s.*\|\s*(sh|bash)"),
    re.compile(r"wget\s.*\|\s*(sh|bash)"),
    re.compile(r">\s*/etc/"),
    re.compile(r"curl\s+.*-d\s+.*\$\("),
    re.compile(r"169\.254\.169\.254"),  # cloud metadata endpoint
    re.compile(r"/proc/|/sys/"),
)

# Grace on top of the command's own timeout before the dispatcher gives up.
_TIMEOUT_GRACE = 5.0


def blocked_reason(command: str) -> str | None:
    """Return why ``command`` is refused, or None if it may run."""
    for pattern in DANGEROUS_PATTERNS:
        if pattern.search(command):
            return f"Command blocked by security policy: matches {pattern.pattern}"
    return None


class RunCommandParams(BaseModel):
    command: str = Field(min_length=1, description="The shell command to execute.")
    timeout: float = Field(
        default=60, gt=0, description="Timeout in seconds (default: 60)."
    )


class RunCommandTool(BaseTool[RunCommandParams]):
    name: ClassVar[str] = "run_command"
    description: ClassVar[str] = (
        "Execute a shell command in the project directory. Use for running builds, "
        "tests, installing packages, git operations, etc. Returns the exit code, "
        "stdout and stderr."
    )
    param_model: ClassVar[type[BaseModel]] = RunCommandParams
    mutates: ClassVar[bool] = True

    def timeout_hint(self, params: RunCommandParams) -> float | None:
        return params.timeout + _TIMEOUT_GRACE

    async def execute(self, params: RunCommandParams, context: ProjectContext) -> ToolResult:
        blocked = blocked_reason(params.command)
        if blocked:
            logger.warning("Blocked command in %s: %s", context.project_id, params.command)
            return ToolError(error=blocked, brief=f"Blocked: {params.command[:50]}")

        if not context.root.is_dir():
            return ToolError(error=f"Project directory does not exist: {context.root}")

        process = await asyncio.create_subprocess_shell(
            params.command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=context.root,
            preexec_fn=os.setpgrp,  # New process group
            env={**os.environ, "TERM": "dumb"},  # Reduce ANSI output
        )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=params.timeout
            )
        except asyncio.TimeoutError:
            _kill_group(process)
            await process.wait()
            return ToolError(
                error="timeout",
                detail=f"Command timed out after {params.timeout:g}s: {params.command}",
                brief=f"Timeout: {params.command[:50]}",
            )
        except asyncio.CancelledError:
            _kill_group(process)
            raise

        exit_code = process.returncode or 0
        out = _clean(stdout)
        err = _clean(stderr)

        lines = [f"Command: {params.command}", f"Exit code: {exit_code}"]
        if out:
            lines.append(f"\nStdout:\n{out}")
        if err:
            lines.append(f"\nStderr:\n{err}")
        output = "\n".join(lines)
        brief = f"exit={exit_code}: {params.command[:50]}"

        if exit_code != 0:
            return ToolError(error=f"Exit code {exit_code}", output=output, brief=brief)
        return ToolOk(output=output, brief=brief)


def _clean(raw: bytes | None) -> str:
    if not raw:
        return ""
    return sanitize_binary_output(strip_ansi(raw.decode("utf-8", errors="replace"))).strip()


def _kill_group(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None or not process.pid:
        return
    try:
        os.killpg(os.getpgid(process.pid), signal.SIGKILL)
    except ProcessLookupError:
        pass
