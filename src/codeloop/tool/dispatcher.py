"""Tool dispatcher: resolve, validate, gate, and invoke a tool under a timeout.

Invariants:
    - Unknown tools and invalid input never reach a tool implementation.
    - Every outcome is a ``ToolResult``; nothing raises past ``execute``.
    - Mutating tools of the same project run one at a time, in the order
      their calls were dispatched. Read-only tools run concurrently.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from pydantic import BaseModel

from codeloop.errors import ToolValidationError
from codeloop.tool.base import BaseTool, ToolError, ToolResult
from codeloop.tool.registry import ToolRegistry
from codeloop.workspace import ProjectContext

logger = logging.getLogger(__name__)

DEFAULT_TOOL_TIMEOUT = 60.0
READ_ONLY_MODES = frozenset({"plan"})


class ToolDispatcher:
    def __init__(
        self,
        registry: ToolRegistry,
        default_timeout: float = DEFAULT_TOOL_TIMEOUT,
        enforce_mode_gates: bool = True,
        read_only_modes: frozenset[str] = READ_ONLY_MODES,
    ) -> None:
        self._registry = registry
        self._default_timeout = default_timeout
        self._enforce_mode_gates = enforce_mode_gates
        self._read_only_modes = read_only_modes
        self._write_locks: dict[str, asyncio.Lock] = {}

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    def check(
        self, tool_name: str, raw_input: Any, context: ProjectContext
    ) -> ToolResult | None:
        """Run every pre-invocation check. ``None`` means the call may proceed."""
        admitted = self._admit(tool_name, raw_input, context)
        return admitted if isinstance(admitted, ToolResult) else None

    def _admit(
        self, tool_name: str, raw_input: Any, context: ProjectContext
    ) -> tuple[BaseTool, BaseModel] | ToolResult:
        """The tool and its parsed params, or the rejection."""
        tool = self._registry.get(tool_name)
        if tool is None:
            return ToolError(
                error="unknown tool",
                detail=(
                    f"Unknown tool: {tool_name}. "
                    f"Available tools: {', '.join(self._registry.names())}"
                ),
            )
        try:
            params = self._validate(tool, raw_input)
        except ToolValidationError as e:
            return ToolError(error=f"validation:{e.field}", detail=str(e))
        return self._mode_gate(tool, context) or (tool, params)

    async def execute(
        self,
        tool_name: str,
        raw_input: Any,
        context: ProjectContext,
        timeout: float | None = None,
    ) -> ToolResult:
        """Execute one tool call and normalize the outcome."""
        admitted = self._admit(tool_name, raw_input, context)
        if isinstance(admitted, ToolResult):
            logger.info("Tool %s rejected: %s", tool_name, admitted.error)
            return admitted
        tool, params = admitted

        limit = self._default_timeout if timeout is None else timeout
        hint = tool.timeout_hint(params)
        if hint is not None:
            limit = max(limit, hint)

        logger.debug("Executing %s for project %s", tool_name, context.project_id)
        t0 = time.monotonic()
        try:
            if tool.mutates:
                async with self._lock_for(context.project_id):
                    result = await asyncio.wait_for(tool.run(params, context), limit)
            else:
                result = await asyncio.wait_for(tool.run(params, context), limit)
        except asyncio.TimeoutError:
            logger.warning("Tool %s timed out after %.1fs", tool_name, limit)
            return ToolError(
                error="timeout",
                detail=f"{tool_name} did not finish within {limit:g}s",
                brief=f"Timeout: {tool_name}",
            )

        logger.debug(
            "Tool %s: %.2fs -> %s",
            tool_name,
            time.monotonic() - t0,
            "ok" if result.success else result.error,
        )
        return result

    def _validate(self, tool: BaseTool, raw_input: Any) -> BaseModel:
        if not isinstance(raw_input, dict):
            raise ToolValidationError(
                tool.name, "input", "Tool input must be a JSON object"
            )
        definition = self._registry.definition(tool.name)
        for field_name in definition.required if definition else ():
            if raw_input.get(field_name) is None:
                raise ToolValidationError(
                    tool.name, field_name, f"Missing required field: {field_name}"
                )
        return tool.validate(raw_input)

    def _mode_gate(self, tool: BaseTool, context: ProjectContext) -> ToolResult | None:
        if (
            self._enforce_mode_gates
            and tool.mutates
            and context.mode in self._read_only_modes
        ):
            return ToolError(
                error=f"mode:{context.mode}",
                detail=(
                    f"{tool.name} is not available in {context.mode} mode. "
                    "Describe the change in your plan instead."
                ),
            )
        return None

    def _lock_for(self, project_id: str) -> asyncio.Lock:
        lock = self._write_locks.get(project_id)
        if lock is None:
            lock = self._write_locks[project_id] = asyncio.Lock()
        return lock
