"""Tool registry: ordered catalog of tools, looked up by name."""

from __future__ import annotations

import logging
from typing import Any

from codeloop.tool.base import BaseTool, ToolDefinition

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Registry of available tools.

    Registration order is preserved and is the order definitions are shown to
    the model. Definitions are built once, at registration.
    """

    def __init__(self) -> None:
        self._tools: dict[str, BaseTool] = {}
        self._definitions: dict[str, ToolDefinition] = {}

    def register(self, tool: BaseTool) -> None:
        """Register a tool instance."""
        if tool.name in self._tools:
            logger.warning("Tool %s already registered, overwriting", tool.name)
        self._tools[tool.name] = tool
        self._definitions[tool.name] = tool.definition()

    def register_many(self, tools: list[BaseTool]) -> None:
        for tool in tools:
            self.register(tool)

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def definition(self, name: str) -> ToolDefinition | None:
        return self._definitions.get(name)

    def definitions(self, names: list[str] | None = None) -> list[ToolDefinition]:
        """Tool definitions in registration order, optionally filtered by name."""
        if names is None:
            return list(self._definitions.values())
        return [d for d in self._definitions.values() if d.name in names]

    def get_specs(self, names: list[str] | None = None) -> list[dict[str, Any]]:
        """OpenAI function specs for the model gateway."""
        return [d.to_openai_spec() for d in self.definitions(names)]

    def names(self) -> list[str]:
        return list(self._tools)

    def subset(self, names: list[str]) -> ToolRegistry:
        """Create a new registry with only the specified tools."""
        reg = ToolRegistry()
        for name in names:
            tool = self._tools.get(name)
            if tool:
                reg.register(tool)
            else:
                logger.warning("Tool %s not found in registry", name)
        return reg

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools
