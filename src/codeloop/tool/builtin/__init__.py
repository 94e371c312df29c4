"""Built-in project tools."""

from codeloop.tool.builtin.control import (
    INTERRUPTING_TOOL,
    TERMINAL_TOOL,
    AskUserQuestionTool,
    SignalCompletionTool,
)
from codeloop.tool.builtin.edit_file import EditFileTool
from codeloop.tool.builtin.list_directory import ListDirectoryTool
from codeloop.tool.builtin.read_file import ReadFileTool
from codeloop.tool.builtin.run_command import RunCommandTool
from codeloop.tool.builtin.search import GlobSearchTool, GrepSearchTool
from codeloop.tool.builtin.todo_write import TodoWriteTool
from codeloop.tool.builtin.write_file import WriteFileTool


def default_tools() -> list:
    """One instance of every built-in tool, in the order shown to the model."""
    return [
        WriteFileTool(),
        ReadFileTool(),
        EditFileTool(),
        ListDirectoryTool(),
        RunCommandTool(),
        GlobSearchTool(),
        GrepSearchTool(),
        TodoWriteTool(),
        AskUserQuestionTool(),
        SignalCompletionTool(),
    ]


__all__ = [
    "INTERRUPTING_TOOL",
    "TERMINAL_TOOL",
    "AskUserQuestionTool",
    "EditFileTool",
    "GlobSearchTool",
    "GrepSearchTool",
    "ListDirectoryTool",
    "ReadFileTool",
    "RunCommandTool",
    "SignalCompletionTool",
    "TodoWriteTool",
    "WriteFileTool",
    "default_tools",
]
