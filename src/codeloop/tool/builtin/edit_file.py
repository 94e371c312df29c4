"""Edit file tool: exact string replacement."""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

import aiofiles
from pydantic import BaseModel, Field

from codeloop.tool.base import BaseTool, ToolError, ToolOk, ToolResult
from codeloop.workspace import PathEscapeError

if TYPE_CHECKING:
    from codeloop.workspace import ProjectContext


class EditFileParams(BaseModel):
    file_path: str = Field(description="The path to the file to edit (relative to project root).")
    old_string: str = Field(
        min_length=1, description="The exact string to find and replace (must match exactly)."
    )
    new_string: str = Field(description="The new string to replace with.")


class EditFileTool(BaseTool[EditFileParams]):
    name: ClassVar[str] = "edit_file"
    description: ClassVar[str] = (
        "Replace a specific string in a file with new content. The old_string must "
        "match exactly (including whitespace). Only the first occurrence is replaced; "
        "for multiple replacements, call this tool multiple times."
    )
    param_model: ClassVar[type[BaseModel]] = EditFileParams
    mutates: ClassVar[bool] = True

    async def execute(self, params: EditFileParams, context: ProjectContext) -> ToolResult:
        try:
            path = context.resolve(params.file_path)
        except PathEscapeError as e:
            return ToolError(error=str(e))

        if not path.is_file():
            return ToolError(error=f"File not found: {params.file_path}")

        async with aiofiles.open(path, "rb") as f:
            raw = await f.read()
        if b"\x00" in raw[:8192]:
            return ToolError(error="Cannot edit binary files")

        content = raw.decode("utf-8", errors="replace")
        if params.old_string not in content:
            return ToolError(
                error="String not found in file",
                detail="Make sure old_string matches exactly (including whitespace).",
            )

        updated = content.replace(params.old_string, params.new_string, 1)
        async with aiofiles.open(path, "w", encoding="utf-8") as f:
            await f.write(updated)

        rel = context.relative(path)
        removed = "\n".join(f"- {line}" for line in params.old_string.split("\n"))
        added = "\n".join(f"+ {line}" for line in params.new_string.split("\n"))
        return ToolOk(
            output=f"Edit {path.name}\n└─ File modified\n\n{removed}\n{added}",
            brief=f"Edited {rel}",
            files_modified=[rel],
        )
