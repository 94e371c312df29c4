"""Agent system: modes, prompts, safety policies and the orchestrator."""

from codeloop.agent.loop import Orchestrator, format_answers
from codeloop.agent.mode import BUILTIN_MODES, ModeProfile, discover_modes
from codeloop.agent.policy import IterationCap, StuckLoopGuard
from codeloop.agent.prompts import build_system_prompt

__all__ = [
    "BUILTIN_MODES",
    "IterationCap",
    "ModeProfile",
    "Orchestrator",
    "StuckLoopGuard",
    "build_system_prompt",
    "discover_modes",
    "format_answers",
]
