"""Base tool classes with Pydantic parameter validation."""

from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from codeloop.errors import ToolExecutionError, ToolValidationError
from codeloop.tool.truncation import truncate_output

if TYPE_CHECKING:
    from codeloop.workspace import ProjectContext

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


@dataclass
class ToolResult:
    """Normalized outcome of a tool call.

    ``error`` is a short machine-readable reason ("timeout",
    "validation:file_path", ...) or a one-line message from the tool;
    ``detail`` carries the longer explanation shown to the model.
    """

    success: bool = True
    output: str = ""
    error: str | None = None
    detail: str = ""
    brief: str = ""  # Short description for UI display
    files_created: list[str] = field(default_factory=list)
    files_modified: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)

    def to_content(self) -> str:
        """Plain-text form sent back to the model as the tool result."""
        if self.success:
            return self.output or "(no output)"
        lines = [f"Error: {self.error or 'unknown error'}"]
        if self.detail:
            lines.append(self.detail)
        if self.output:
            lines.append(self.output)
        return "\n".join(lines)


@dataclass
class ToolOk(ToolResult):
    """Successful tool result."""

    success: bool = True


@dataclass
class ToolError(ToolResult):
    """Failed tool result."""

    success: bool = False


@dataclass(frozen=True)
class ToolDefinition:
    """Immutable description of a tool as shown to the model."""

    name: str
    description: str
    input_schema: dict[str, Any]
    required: tuple[str, ...] = ()

    def to_openai_spec(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": copy.deepcopy(self.input_schema),
            },
        }


class BaseTool(ABC, Generic[T]):
    """Base class for all tools.

    Each tool declares its parameters as a Pydantic model (the type parameter
    T) and receives the project context on every call, so one instance can
    serve every project.

    Usage:
        class MyParams(BaseModel):
            path: str
            offset: int = 0

        class MyTool(BaseTool[MyParams]):
            name = "my_tool"
            description = "Does something useful"
            param_model = MyParams

            async def execute(self, params: MyParams, context: ProjectContext) -> ToolResult:
                return ToolOk(output="done")
    """

    name: ClassVar[str]
    description: ClassVar[str]
    param_model: ClassVar[type[BaseModel]]
    mutates: ClassVar[bool] = False  # Writes files or runs arbitrary commands

    def definition(self) -> ToolDefinition:
        schema = _json_schema(self.param_model)
        return ToolDefinition(
            name=self.name,
            description=self.description,
            input_schema=schema,
            required=tuple(schema.get("required", [])),
        )

    def validate(self, arguments: dict[str, Any]) -> T:
        """Parse arguments into the parameter model.

        Raises:
            ToolValidationError: with the first offending field.
        """
        try:
            return self.param_model.model_validate(arguments)  # type: ignore[return-value]
        except ValidationError as e:
            errors = e.errors()
            loc = errors[0].get("loc", ()) if errors else ()
            field_name = str(loc[0]) if loc else "input"
            raise ToolValidationError(self.name, field_name, str(e)) from e

    def timeout_hint(self, params: T) -> float | None:
        """Seconds this call legitimately needs, if more than the default."""
        return None

    async def run(self, params: T, context: ProjectContext) -> ToolResult:
        """Execute with validated params; never raises, output is truncated."""
        try:
            result = await self.execute(params, context)
        except ToolExecutionError as e:
            return ToolError(error=str(e))
        except Exception as e:
            logger.error("Tool %s execution error: %s", self.name, e, exc_info=True)
            return ToolError(error="execution", detail=f"Error executing {self.name}: {e}")

        result.output = truncate_output(result.output)
        return result

    @abstractmethod
    async def execute(self, params: T, context: ProjectContext) -> ToolResult:
        """Execute the tool with validated parameters."""
        ...


def _json_schema(model: type[BaseModel]) -> dict[str, Any]:
    """Pydantic JSON schema with ``$ref``s inlined and titles stripped."""
    schema = model.model_json_schema()
    defs = schema.pop("$defs", {})

    def _inline(node: Any) -> Any:
        if isinstance(node, dict):
            ref = node.get("$ref")
            if isinstance(ref, str) and ref.startswith("#/$defs/"):
                return _inline(defs[ref.split("/")[-1]])
            return {
                k: _inline(v)
                for k, v in node.items()
                if not (k == "title" and isinstance(v, str))
            }
        if isinstance(node, list):
            return [_inline(v) for v in node]
        return node

    return _inline(schema)
