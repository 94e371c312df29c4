"""Write file tool."""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

import aiofiles
from pydantic import BaseModel, Field

from codeloop.tool.base import BaseTool, ToolError, ToolOk, ToolResult
from codeloop.workspace import PathEscapeError

if TYPE_CHECKING:
    from codeloop.workspace import ProjectContext


class WriteFileParams(BaseModel):
    file_path: str = Field(description="The path to the file to write (relative to project root).")
    content: str = Field(description="The content to write to the file.")
    description: str = Field(
        description="Brief description of what this file is for or what changes are being made."
    )


class WriteFileTool(BaseTool[WriteFileParams]):
    """Write content to a file, creating directories as needed."""

    name: ClassVar[str] = "write_file"
    description: ClassVar[str] = (
        "Write content to a file at the specified path. Creates parent directories "
        "if needed. Use this to create new files or overwrite existing ones."
    )
    param_model: ClassVar[type[BaseModel]] = WriteFileParams
    mutates: ClassVar[bool] = True

    async def execute(self, params: WriteFileParams, context: ProjectContext) -> ToolResult:
        try:
            path = context.resolve(params.file_path)
        except PathEscapeError as e:
            return ToolError(error=str(e))

        if path.is_dir():
            return ToolError(error=f"{params.file_path} is a directory")

        existed = path.exists()
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, "w", encoding="utf-8") as f:
            await f.write(params.content)

        rel = context.relative(path)
        lines = params.content.count("\n") + 1
        return ToolOk(
            output=f"File written successfully: {rel} ({lines} lines)\n{params.description}",
            brief=f"Wrote {rel}",
            files_created=[] if existed else [rel],
            files_modified=[rel] if existed else [],
        )
