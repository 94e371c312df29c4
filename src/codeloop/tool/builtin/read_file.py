"""Read file tool."""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

import aiofiles
from pydantic import BaseModel, Field

from codeloop.tool.base import BaseTool, ToolError, ToolOk, ToolResult
from codeloop.workspace import PathEscapeError

if TYPE_CHECKING:
    from codeloop.workspace import ProjectContext

_BINARY_SNIFF_BYTES = 8192


class ReadFileParams(BaseModel):
    file_path: str = Field(description="The path to the file to read (relative to project root).")
    offset: int = Field(default=0, ge=0, description="Line number to start reading from (0-indexed).")
    limit: int = Field(default=2000, ge=1, description="Maximum number of lines to read.")


class ReadFileTool(BaseTool[ReadFileParams]):
    """Read a text file; binary files are reported, not dumped."""

    name: ClassVar[str] = "read_file"
    description: ClassVar[str] = (
        "Read the contents of a file at the specified path. Returns the file content "
        "as a string. Use offset and limit for large files."
    )
    param_model: ClassVar[type[BaseModel]] = ReadFileParams

    async def execute(self, params: ReadFileParams, context: ProjectContext) -> ToolResult:
        try:
            path = context.resolve(params.file_path)
        except PathEscapeError as e:
            return ToolError(error=str(e))

        if not path.exists():
            return ToolError(error=f"File not found: {params.file_path}")
        if path.is_dir():
            return ToolError(
                error=f"{params.file_path} is a directory. Use list_directory instead."
            )

        async with aiofiles.open(path, "rb") as f:
            raw = await f.read()

        if b"\x00" in raw[:_BINARY_SNIFF_BYTES]:
            return ToolOk(
                output=(
                    f"Binary file: {params.file_path} ({len(raw) / 1024:.1f}KB)\n"
                    "[Binary content not displayed]"
                ),
                brief=f"Binary {params.file_path}",
            )

        all_lines = raw.decode("utf-8", errors="replace").splitlines(keepends=True)
        total = len(all_lines)
        start = min(params.offset, total)
        end = min(start + params.limit, total)

        body = "".join(all_lines[start:end])
        output = f"File: {params.file_path}\n\n{body}"
        if end < total:
            output += f"\n\n[{total - end} more lines. Use offset={end} to continue.]"

        return ToolOk(
            output=output,
            brief=f"Read {params.file_path} ({end - start}/{total} lines)",
        )
