"""Per-project todo lists.

The store is an explicit map owned by the host process and injected into the
orchestrator. An entry is created on the first write and removed when the
session ends.
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

TodoStatus = Literal["pending", "in_progress", "completed"]


class Todo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: str = Field(
        min_length=1,
        description='Task description in imperative form (e.g., "Run tests").',
    )
    status: TodoStatus = Field(description="Current status of the task.")
    active_form: str = Field(
        alias="activeForm",
        min_length=1,
        description='Task description in present continuous form (e.g., "Running tests").',
    )

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class TodoStore:
    """Todo lists keyed by project id."""

    def __init__(self) -> None:
        self._todos: dict[str, list[Todo]] = {}

    def write(self, project_id: str, todos: list[Todo]) -> dict[str, int]:
        """Replace the project's list. Returns counts by status."""
        self._todos[project_id] = list(todos)
        summary = {
            "total": len(todos),
            "completed": sum(1 for t in todos if t.status == "completed"),
            "in_progress": sum(1 for t in todos if t.status == "in_progress"),
            "pending": sum(1 for t in todos if t.status == "pending"),
        }
        logger.debug("Todos for %s: %s", project_id, summary)
        return summary

    def get(self, project_id: str) -> list[Todo]:
        return list(self._todos.get(project_id, []))

    def clear(self, project_id: str) -> None:
        self._todos.pop(project_id, None)

    def projects(self) -> list[str]:
        return list(self._todos)

    def __contains__(self, project_id: str) -> bool:
        return project_id in self._todos
