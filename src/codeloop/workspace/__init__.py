"""Workspace: project roots, sandboxes and per-project state."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from codeloop.workspace.paths import (
    EXCLUDED_DIRS,
    PathEscapeError,
    is_inside,
    relative_path,
    resolve_path,
    walk_files,
)
from codeloop.workspace.sandbox import LocalSandbox, Sandbox, SandboxInfo
from codeloop.workspace.todo import Todo, TodoStore


@dataclass
class ProjectContext:
    """Everything a tool needs to know about the project it acts on."""

    project_id: str
    root: Path
    mode: str = "fast"
    todos: TodoStore = field(default_factory=TodoStore)
    sandbox: SandboxInfo | None = None

    def resolve(self, user_path: str) -> Path:
        return resolve_path(self.root, user_path)

    def relative(self, path: Path) -> str:
        return relative_path(self.root, path)


__all__ = [
    "EXCLUDED_DIRS",
    "LocalSandbox",
    "PathEscapeError",
    "ProjectContext",
    "Sandbox",
    "SandboxInfo",
    "Todo",
    "TodoStore",
    "is_inside",
    "relative_path",
    "resolve_path",
    "walk_files",
]
