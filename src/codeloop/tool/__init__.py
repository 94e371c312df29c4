"""Tool system: base classes, registry, dispatcher and built-in tools."""

from codeloop.tool.base import BaseTool, ToolDefinition, ToolError, ToolOk, ToolResult
from codeloop.tool.dispatcher import ToolDispatcher
from codeloop.tool.registry import ToolRegistry
from codeloop.tool.truncation import truncate_output
from codeloop.tool.builtin import INTERRUPTING_TOOL, TERMINAL_TOOL, default_tools


def create_registry(tools: list[BaseTool] | None = None) -> ToolRegistry:
    """Registry holding ``tools``, or every built-in tool."""
    registry = ToolRegistry()
    registry.register_many(default_tools() if tools is None else tools)
    return registry


__all__ = [
    "INTERRUPTING_TOOL",
    "TERMINAL_TOOL",
    "BaseTool",
    "ToolDefinition",
    "ToolDispatcher",
    "ToolError",
    "ToolOk",
    "ToolRegistry",
    "ToolResult",
    "create_registry",
    "default_tools",
    "truncate_output",
]
