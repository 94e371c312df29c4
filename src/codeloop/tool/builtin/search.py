"""Code search tools: glob by file name, grep by content.

Both are read-only and deterministic: results are sorted, build and
dependency directories are skipped, and repeated calls on an unchanged tree
return identical output.
"""

from __future__ import annotations

import asyncio
import fnmatch
import re
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar

from pydantic import BaseModel, Field

from codeloop.tool.base import BaseTool, ToolError, ToolOk, ToolResult
from codeloop.workspace import EXCLUDED_DIRS, PathEscapeError, is_inside, walk_files

if TYPE_CHECKING:
    from codeloop.workspace import ProjectContext

MAX_GLOB_RESULTS = 200
MAX_GREP_MATCHES = 50
MAX_LINE_CHARS = 500


class GlobSearchParams(BaseModel):
    pattern: str = Field(
        min_length=1,
        description='Glob pattern to match (e.g., "**/*.ts", "src/**/*.json").',
    )
    path: str = Field(
        default="",
        description="Base path to search from (relative to project root, defaults to root).",
    )


class GlobSearchTool(BaseTool[GlobSearchParams]):
    name: ClassVar[str] = "glob_search"
    description: ClassVar[str] = (
        'Search for files matching a glob pattern (e.g., "**/*.ts", "src/**/*.tsx"). '
        "Fast for finding files by name or extension."
    )
    param_model: ClassVar[type[BaseModel]] = GlobSearchParams

    async def execute(self, params: GlobSearchParams, context: ProjectContext) -> ToolResult:
        try:
            base = context.resolve(params.path)
        except PathEscapeError as e:
            return ToolError(error=str(e))
        if not base.is_dir():
            return ToolError(error=f"Directory not found: {params.path or '/'}")

        matches = await asyncio.to_thread(_glob, context.root, base, params.pattern)
        if not matches:
            return ToolOk(
                output=f"No files found matching pattern: {params.pattern}",
                brief="0 files",
            )

        shown = matches[:MAX_GLOB_RESULTS]
        output = f"Found {len(matches)} file(s) matching pattern: {params.pattern}\n\n"
        output += "\n".join(shown)
        if len(matches) > len(shown):
            output += f"\n\n[{len(matches) - len(shown)} more files not shown]"
        return ToolOk(output=output, brief=f"{len(matches)} files")


def _glob(root: Path, base: Path, pattern: str) -> list[str]:
    root = root.resolve()
    results: list[str] = []
    for path in base.glob(pattern):
        rel_parts = path.relative_to(base).parts
        if any(part in EXCLUDED_DIRS for part in rel_parts) or not path.is_file():
            continue
        if not is_inside(root, path):
            continue
        results.append(path.resolve().relative_to(root).as_posix())
    return sorted(set(results))


class GrepSearchParams(BaseModel):
    pattern: str = Field(min_length=1, description="Text pattern to search for (supports regex).")
    path: str = Field(
        default="",
        description="Base path to search from (relative to project root, defaults to root).",
    )
    include: str | None = Field(
        default=None,
        description='File pattern to include (e.g., "*.ts" to search only TypeScript files).',
    )


class GrepSearchTool(BaseTool[GrepSearchParams]):
    """Regex search over file contents.

    Output lines are ``path:line:text``, at most 50 of them, in path order.
    Binary files are skipped.
    """

    name: ClassVar[str] = "grep_search"
    description: ClassVar[str] = (
        "Search for text patterns in files. Returns file paths, line numbers, and "
        "matching content. Use this to find code patterns, function calls, etc."
    )
    param_model: ClassVar[type[BaseModel]] = GrepSearchParams

    async def execute(self, params: GrepSearchParams, context: ProjectContext) -> ToolResult:
        try:
            regex = re.compile(params.pattern)
        except re.error as e:
            return ToolError(error=f"Invalid regex pattern: {e}")
        try:
            base = context.resolve(params.path)
        except PathEscapeError as e:
            return ToolError(error=str(e))
        if not base.exists():
            return ToolError(error=f"Path not found: {params.path}")

        matches = await asyncio.to_thread(_grep, context.root, base, regex, params.include)
        if not matches:
            return ToolOk(
                output=f"No matches found for pattern: {params.pattern}",
                brief="0 matches",
            )

        header = f"Found {len(matches)} match(es) for pattern: {params.pattern}\n\n"
        return ToolOk(output=header + "\n".join(matches), brief=f"{len(matches)} matches")


def _grep(root: Path, base: Path, regex: re.Pattern[str], include: str | None) -> list[str]:
    root = root.resolve()
    if base.is_file():
        candidates = [base.resolve().relative_to(root).as_posix()]
    else:
        candidates = walk_files(root, base)

    matches: list[str] = []
    for rel in candidates:
        if include and not fnmatch.fnmatch(Path(rel).name, include):
            continue
        try:
            raw = (root / rel).read_bytes()
        except OSError:
            continue
        if b"\x00" in raw[:8192]:
            continue
        for lineno, line in enumerate(raw.decode("utf-8", errors="replace").splitlines(), 1):
            if regex.search(line):
                matches.append(f"{rel}:{lineno}:{line[:MAX_LINE_CHARS]}")
                if len(matches) >= MAX_GREP_MATCHES:
                    return matches
    return matches
