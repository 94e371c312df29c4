"""Todo write tool."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, ClassVar

from pydantic import BaseModel, Field

from codeloop.tool.base import BaseTool, ToolOk, ToolResult
from codeloop.workspace import Todo

if TYPE_CHECKING:
    from codeloop.workspace import ProjectContext


class TodoWriteParams(BaseModel):
    todos: list[Todo] = Field(description="Array of todo items.")


class TodoWriteTool(BaseTool[TodoWriteParams]):
    """Replace the project's task list.

    The list lives in the injected ``TodoStore``, not in history; the
    orchestrator reads ``data["todos"]`` to emit ``todo_update``.
    """

    name: ClassVar[str] = "todo_write"
    description: ClassVar[str] = (
        "Update the task list for tracking progress. Use this to show the user what "
        "you are working on. Each todo has content (imperative form), status, and "
        "activeForm (present continuous)."
    )
    param_model: ClassVar[type[BaseModel]] = TodoWriteParams

    async def execute(self, params: TodoWriteParams, context: ProjectContext) -> ToolResult:
        summary = context.todos.write(context.project_id, params.todos)
        todos = [t.to_dict() for t in params.todos]
        message = (
            f"Updated {summary['total']} todo(s): {summary['completed']} completed, "
            f"{summary['in_progress']} in progress, {summary['pending']} pending"
        )
        return ToolOk(
            output=json.dumps({"message": message, "summary": summary}, indent=2),
            brief=message,
            data={"todos": todos, "summary": summary},
        )
