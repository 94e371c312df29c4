"""List directory tool."""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

from pydantic import BaseModel, Field

from codeloop.tool.base import BaseTool, ToolError, ToolOk, ToolResult
from codeloop.workspace import EXCLUDED_DIRS, PathEscapeError, is_inside, walk_files

if TYPE_CHECKING:
    from codeloop.workspace import ProjectContext


class ListDirectoryParams(BaseModel):
    path: str = Field(
        default="",
        description="The directory path to list (relative to project root, defaults to root).",
    )
    recursive: bool = Field(
        default=False,
        description="If true, list all files recursively. Use with caution on large directories.",
    )


class ListDirectoryTool(BaseTool[ListDirectoryParams]):
    name: ClassVar[str] = "list_directory"
    description: ClassVar[str] = (
        "List files and directories in the specified path. Returns a list of "
        "entries with their names and types."
    )
    param_model: ClassVar[type[BaseModel]] = ListDirectoryParams

    async def execute(self, params: ListDirectoryParams, context: ProjectContext) -> ToolResult:
        try:
            directory = context.resolve(params.path)
        except PathEscapeError as e:
            return ToolError(error=str(e))

        if not directory.is_dir():
            return ToolError(error=f"Directory not found: {params.path or '/'}")

        if params.recursive:
            files = walk_files(context.root, directory)
            return ToolOk(
                output=f"Found {len(files)} file(s):\n\n" + "\n".join(files),
                brief=f"Listed {len(files)} files",
            )

        entries = sorted(
            (
                e
                for e in directory.iterdir()
                if e.name not in EXCLUDED_DIRS
                and not (e.is_symlink() and not is_inside(context.root, e))
            ),
            key=lambda e: (not e.is_dir(), e.name),
        )
        formatted = [
            f"{'[DIR] ' if e.is_dir() else '[FILE]'} {context.relative(e)}" for e in entries
        ]
        return ToolOk(
            output=f"Contents of {params.path or '/'}:\n\n" + "\n".join(formatted),
            brief=f"Listed {len(entries)} entries",
        )
