"""Tests for codeloop.tool.dispatcher."""

from __future__ import annotations

import asyncio
from typing import ClassVar

from pydantic import BaseModel, Field

from codeloop.tool import ToolDispatcher, ToolOk, ToolRegistry, create_registry
from codeloop.tool.base import BaseTool, ToolResult
from codeloop.workspace import ProjectContext


class SleepParams(BaseModel):
    seconds: float = Field(default=0.0, ge=0)
    label: str = ""


class SleepTool(BaseTool[SleepParams]):
    """Sleeps, recording when it started and finished."""

    name: ClassVar[str] = "sleep"
    description: ClassVar[str] = "Sleep for a while."
    param_model: ClassVar[type[BaseModel]] = SleepParams

    def __init__(self) -> None:
        self.log: list[str] = []

    async def execute(self, params: SleepParams, context: ProjectContext) -> ToolResult:
        self.log.append(f"start:{params.label}")
        await asyncio.sleep(params.seconds)
        self.log.append(f"end:{params.label}")
        return ToolOk(output=f"slept {params.seconds}")


class MutatingSleepTool(SleepTool):
    name: ClassVar[str] = "mutating_sleep"
    mutates: ClassVar[bool] = True


class PatientSleepTool(SleepTool):
    name: ClassVar[str] = "patient_sleep"

    def timeout_hint(self, params: SleepParams) -> float | None:
        return params.seconds + 1.0


def _dispatcher(*tools: BaseTool, **kwargs) -> ToolDispatcher:
    registry = ToolRegistry()
    registry.register_many(list(tools))
    return ToolDispatcher(registry, **kwargs)


# ---------------------------------------------------------------------------
# Pre-invocation checks
# ---------------------------------------------------------------------------


class TestChecks:
    async def test_unknown_tool(self, context: ProjectContext) -> None:
        result = await _dispatcher(SleepTool()).execute("nope", {}, context)
        assert result.success is False
        assert result.error == "unknown tool"
        assert "Available tools: sleep" in result.detail

    async def test_input_must_be_object(self, context: ProjectContext) -> None:
        tool = SleepTool()
        result = await _dispatcher(tool).execute("sleep", None, context)
        assert result.error == "validation:input"
        assert tool.log == []

    async def test_missing_required_field(self, context: ProjectContext) -> None:
        dispatcher = ToolDispatcher(create_registry())
        result = await dispatcher.execute("read_file", {}, context)
        assert result.success is False
        assert result.error == "validation:file_path"

    async def test_null_required_field(self, context: ProjectContext) -> None:
        dispatcher = ToolDispatcher(create_registry())
        result = await dispatcher.execute("read_file", {"file_path": None}, context)
        assert result.error == "validation:file_path"

    async def test_type_error(self, context: ProjectContext) -> None:
        tool = SleepTool()
        result = await _dispatcher(tool).execute("sleep", {"seconds": "soon"}, context)
        assert result.error == "validation:seconds"
        assert tool.log == []

    def test_check_passes(self, context: ProjectContext) -> None:
        assert _dispatcher(SleepTool()).check("sleep", {}, context) is None


# ---------------------------------------------------------------------------
# Mode gate
# ---------------------------------------------------------------------------


class TestModeGate:
    async def test_plan_mode_rejects_mutating_tool(self, context: ProjectContext) -> None:
        context.mode = "plan"
        dispatcher = ToolDispatcher(create_registry())
        result = await dispatcher.execute(
            "write_file", {"file_path": "a.txt", "content": "x", "description": "d"}, context
        )
        assert result.success is False
        assert result.error == "mode:plan"
        assert not (context.root / "a.txt").exists()

    async def test_plan_mode_allows_read_only_tool(self, context: ProjectContext) -> None:
        context.mode = "plan"
        dispatcher = ToolDispatcher(create_registry())
        result = await dispatcher.execute("list_directory", {}, context)
        assert result.success is True

    async def test_gate_disabled(self, context: ProjectContext) -> None:
        context.mode = "plan"
        dispatcher = ToolDispatcher(create_registry(), enforce_mode_gates=False)
        result = await dispatcher.execute(
            "write_file", {"file_path": "a.txt", "content": "x", "description": "d"}, context
        )
        assert result.success is True
        assert (context.root / "a.txt").read_text() == "x"


# ---------------------------------------------------------------------------
# Timeouts
# ---------------------------------------------------------------------------


class TestTimeouts:
    async def test_timeout(self, context: ProjectContext) -> None:
        dispatcher = _dispatcher(SleepTool(), default_timeout=0.05)
        result = await dispatcher.execute("sleep", {"seconds": 1.0}, context)
        assert result.success is False
        assert result.error == "timeout"
        assert "did not finish within 0.05s" in result.detail

    async def test_explicit_timeout_overrides_default(self, context: ProjectContext) -> None:
        dispatcher = _dispatcher(SleepTool(), default_timeout=10)
        result = await dispatcher.execute("sleep", {"seconds": 1.0}, context, timeout=0.05)
        assert result.error == "timeout"

    async def test_timeout_hint_extends_limit(self, context: ProjectContext) -> None:
        dispatcher = _dispatcher(PatientSleepTool(), default_timeout=0.01)
        result = await dispatcher.execute("patient_sleep", {"seconds": 0.1}, context)
        assert result.success is True


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestConcurrency:
    async def test_mutating_tools_serialized_in_call_order(
        self, context: ProjectContext
    ) -> None:
        tool = MutatingSleepTool()
        dispatcher = _dispatcher(tool)
        await asyncio.gather(
            dispatcher.execute("mutating_sleep", {"seconds": 0.05, "label": "a"}, context),
            dispatcher.execute("mutating_sleep", {"seconds": 0.0, "label": "b"}, context),
        )
        assert tool.log == ["start:a", "end:a", "start:b", "end:b"]

    async def test_read_only_tools_run_concurrently(self, context: ProjectContext) -> None:
        tool = SleepTool()
        dispatcher = _dispatcher(tool)
        await asyncio.gather(
            dispatcher.execute("sleep", {"seconds": 0.05, "label": "a"}, context),
            dispatcher.execute("sleep", {"seconds": 0.0, "label": "b"}, context),
        )
        assert tool.log == ["start:a", "start:b", "end:b", "end:a"]

    async def test_locks_are_per_project(
        self, context: ProjectContext, project_root
    ) -> None:
        tool = MutatingSleepTool()
        dispatcher = _dispatcher(tool)
        other = ProjectContext(project_id="other", root=project_root)
        await asyncio.gather(
            dispatcher.execute("mutating_sleep", {"seconds": 0.05, "label": "a"}, context),
            dispatcher.execute("mutating_sleep", {"seconds": 0.0, "label": "b"}, other),
        )
        assert tool.log.index("end:b") < tool.log.index("end:a")
