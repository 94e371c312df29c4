"""Configuration: Pydantic models for codeloop settings."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Literal

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field


class LLMConfig(BaseModel):
    """LLM provider configuration.

    ``model`` is either a short alias ("claude-sonnet-4", "gemini-3-flash",
    "llama-3.3-70b") or a litellm id with provider prefix:
        "anthropic/claude-sonnet-4-5-20250929"
        "gemini/gemini-3-flash-preview"
        "openai/gpt-4o"

    API keys are read from env vars automatically by litellm
    (ANTHROPIC_API_KEY, GEMINI_API_KEY, OPENAI_API_KEY, GROQ_API_KEY).
    """

    model: str = Field(default="claude-sonnet-4")
    temperature: float | None = Field(default=None)
    max_tokens: int | None = Field(default=None)
    context_window: int = Field(default=200_000)
    reasoning_effort: Literal["low", "medium", "high"] | None = Field(
        default=None,
        description=(
            "Enables thinking/reasoning tokens on supported models "
            "(Anthropic, DeepSeek, Gemini, etc.)."
        ),
    )
    prompt_caching: bool = Field(
        default=True, description="Mark the system prompt as cacheable"
    )


class LoopConfig(BaseModel):
    """Agent loop limits and timeouts."""

    max_iterations: int = Field(default=50, ge=1, description="Model turns per session")
    stuck_threshold: int = Field(
        default=5,
        ge=2,
        description="Consecutive iterations using only the same tool before stopping",
    )
    tool_timeout: float = Field(default=60.0, gt=0, description="Seconds per tool call")
    model_retry_attempts: int = Field(
        default=3, ge=1, description="Attempts per model turn on transient failures"
    )
    retry_min_wait: float = Field(default=1.0, ge=0)
    retry_max_wait: float = Field(default=30.0, ge=0)
    enforce_mode_gates: bool = Field(
        default=True, description="Reject mutating tools in read-only modes"
    )
    event_buffer: int = Field(default=256, ge=1, description="Wire queue size per subscriber")


class WorkspaceConfig(BaseModel):
    projects_root: str = Field(
        default="~/.codeloop/projects", description="Parent directory of project roots"
    )
    session_dir: str = Field(
        default="~/.codeloop/sessions", description="Directory for session data"
    )
    max_listed_files: int = Field(
        default=200, ge=0, description="Project files listed in the system prompt"
    )

    def projects_path(self) -> Path:
        return Path(self.projects_root).expanduser()

    def sessions_path(self) -> Path:
        return Path(self.session_dir).expanduser()


class CodeloopConfig(BaseModel):
    """Top-level codeloop configuration."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    loop: LoopConfig = Field(default_factory=LoopConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    modes_dir: str | None = Field(
        default=None, description="Directory of markdown mode definitions"
    )

    @classmethod
    def load(cls, config_path: str | None = None) -> CodeloopConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            CODELOOP_MODEL             - Override model (alias or litellm id)
            CODELOOP_MAX_ITERATIONS    - Override the iteration cap
            CODELOOP_TOOL_TIMEOUT      - Override the per-tool timeout (seconds)
            CODELOOP_REASONING_EFFORT  - Reasoning effort (low/medium/high)
            CODELOOP_PROJECTS_ROOT     - Parent directory of project roots
            CODELOOP_SESSION_DIR       - Directory for session files

        Raises:
            pydantic.ValidationError: on invalid values.
        """
        # .env values take precedence over stale shell exports
        load_dotenv(find_dotenv(usecwd=True), override=True)

        config_data: dict[str, Any] = {}
        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        llm = config_data.get("llm", {})
        loop = config_data.get("loop", {})
        workspace = config_data.get("workspace", {})

        env_model = os.environ.get("CODELOOP_MODEL")
        if env_model:
            llm["model"] = env_model

        env_reasoning_effort = os.environ.get("CODELOOP_REASONING_EFFORT")
        if env_reasoning_effort:
            llm["reasoning_effort"] = env_reasoning_effort.lower()

        env_max_iterations = os.environ.get("CODELOOP_MAX_ITERATIONS")
        if env_max_iterations:
            loop["max_iterations"] = env_max_iterations

        env_tool_timeout = os.environ.get("CODELOOP_TOOL_TIMEOUT")
        if env_tool_timeout:
            loop["tool_timeout"] = env_tool_timeout

        env_projects_root = os.environ.get("CODELOOP_PROJECTS_ROOT")
        if env_projects_root:
            workspace["projects_root"] = env_projects_root

        env_session_dir = os.environ.get("CODELOOP_SESSION_DIR")
        if env_session_dir:
            workspace["session_dir"] = env_session_dir

        for key, section in (("llm", llm), ("loop", loop), ("workspace", workspace)):
            if section:
                config_data[key] = section

        return cls.model_validate(config_data)
