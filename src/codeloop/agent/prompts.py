"""System prompt assembly."""

from __future__ import annotations

from codeloop.agent.mode import ModeProfile
from codeloop.workspace import SandboxInfo

COMMON_INSTRUCTIONS = """You are an AI coding assistant with access to a development environment. You can read and write files, run commands, search code, and more.

## Guidelines

- Be concise and efficient
- Always read files before editing them
- When making changes, explain what you're doing
- If you encounter errors, debug them systematically
- Use the todo_write tool to track progress on multi-step tasks
- Use ask_user_question when you need clarification; the session pauses until the user answers
- Use signal_completion when the task is fully complete

## Available Tools

You have access to tools for:
- File operations (read, write, edit, list)
- Code search (glob patterns, grep)
- Command execution (run tests, install deps, build)
- Task tracking (todo list)
- User interaction (ask questions)

All paths are relative to the project root."""


def build_system_prompt(
    mode: ModeProfile,
    files: list[str],
    sandbox: SandboxInfo | None = None,
    max_files: int = 200,
) -> str:
    """Common instructions, then the mode section, project files and environment."""
    sections = [COMMON_INSTRUCTIONS]
    if mode.instructions:
        sections.append(mode.instructions)

    if files and max_files > 0:
        listing = "\n".join(files[:max_files])
        section = (
            "## Project Files\n\nThe project contains the following files:\n"
            f"```\n{listing}\n```"
        )
        if len(files) > max_files:
            section += f"\n(Showing first {max_files} of {len(files)} files)"
        sections.append(section)

    if sandbox is not None:
        env = [
            "## Environment\n",
            "You have access to a workspace with:",
            f"- Project directory: {sandbox.root}",
        ]
        if sandbox.project_type:
            env.append(f"- Project type: {sandbox.project_type}")
            env.append(f"- Package manager: {sandbox.package_manager or 'npm'}")
        sections.append("\n".join(env))

    return "\n\n".join(sections) + "\n"
