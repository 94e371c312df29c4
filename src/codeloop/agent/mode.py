"""Agent modes: loaded from YAML frontmatter in markdown files.

A mode changes how the agent is instructed and what a finished run reports.
Three modes are built in; a ``modes_dir`` can override them or add more:

    ---
    name: plan
    description: Plan only, no changes
    read_only: true
    expects_plan: true
    ---

    You are in PLAN mode. Your goal is to create a detailed plan...
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import Any

import yaml

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModeProfile:
    """How the agent behaves in one mode.

    ``read_only`` modes get mutating tools rejected by the dispatcher;
    ``expects_plan`` modes report the model's plan on completion.
    """

    name: str
    description: str = ""
    read_only: bool = False
    expects_plan: bool = False
    instructions: str = ""

    @classmethod
    def from_markdown(cls, path: str) -> ModeProfile:
        """Load a mode definition from a markdown file with YAML frontmatter."""
        with open(path, "r") as f:
            content = f.read()

        config, body = _parse_frontmatter(content)
        name = config.get("name") or os.path.splitext(os.path.basename(path))[0]
        return cls(
            name=str(name),
            description=str(config.get("description", "")),
            read_only=bool(config.get("read_only", False)),
            expects_plan=bool(config.get("expects_plan", False)),
            instructions=body.strip(),
        )


FAST = ModeProfile(
    name="fast",
    description="Get to a working result quickly",
    instructions="""## Mode: Fast

You are in FAST mode. Prioritize speed and efficiency:
- Get to the solution quickly
- Don't overthink - make reasonable assumptions
- Skip verbose explanations
- Use the most direct approach""",
)

PLAN = ModeProfile(
    name="plan",
    description="Produce a plan without changing the project",
    read_only=True,
    expects_plan=True,
    instructions="""## Mode: Plan

You are in PLAN mode. Your goal is to create a detailed plan:
- Analyze the request thoroughly
- Break down into clear steps
- Use todo_write to create a structured plan
- Don't execute yet - just plan; file writes and commands are disabled
- Ask clarifying questions if needed
- When the plan is ready, call signal_completion with the plan in `plan`""",
)

EXECUTE = ModeProfile(
    name="execute",
    description="Carry out a plan step by step",
    instructions="""## Mode: Execute

You are in EXECUTE mode. Follow plans carefully:
- Execute each step methodically
- Update the todo list as you progress
- Verify each step before moving to the next
- Handle errors gracefully and adapt
- Provide detailed progress updates""",
)

BUILTIN_MODES: dict[str, ModeProfile] = {m.name: m for m in (FAST, PLAN, EXECUTE)}


def _parse_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Parse YAML frontmatter from markdown content.

    Returns (config_dict, body_text).
    """
    pattern = re.compile(r"^---\s*\n(.*?)\n---\s*\n(.*)", re.DOTALL)
    match = pattern.match(content)

    if not match:
        return {}, content

    try:
        config = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as e:
        logger.warning("Invalid mode frontmatter: %s", e)
        config = {}

    if not isinstance(config, dict):
        config = {}
    return config, match.group(2)


def discover_modes(search_dirs: list[str]) -> dict[str, ModeProfile]:
    """Built-in modes, overridden by ``*.md`` definitions found in ``search_dirs``."""
    modes = dict(BUILTIN_MODES)
    for dir_path in search_dirs:
        if not os.path.isdir(dir_path):
            continue
        for fname in sorted(os.listdir(dir_path)):
            if not fname.endswith(".md"):
                continue
            full_path = os.path.join(dir_path, fname)
            try:
                mode = ModeProfile.from_markdown(full_path)
            except OSError as e:
                logger.warning("Could not read mode file %s: %s", full_path, e)
                continue
            modes[mode.name] = mode
    return modes


def read_only_modes(modes: dict[str, ModeProfile]) -> frozenset[str]:
    return frozenset(name for name, mode in modes.items() if mode.read_only)
