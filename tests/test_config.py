"""Tests for codeloop.config."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from codeloop.config import CodeloopConfig, LoopConfig

_ENV_VARS = (
    "CODELOOP_MODEL",
    "CODELOOP_MAX_ITERATIONS",
    "CODELOOP_TOOL_TIMEOUT",
    "CODELOOP_REASONING_EFFORT",
    "CODELOOP_PROJECTS_ROOT",
    "CODELOOP_SESSION_DIR",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    # Keep a developer's .env out of the picture
    monkeypatch.chdir(tmp_path)
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    def test_loop_defaults(self) -> None:
        loop = LoopConfig()
        assert loop.max_iterations == 50
        assert loop.stuck_threshold == 5
        assert loop.tool_timeout == 60.0
        assert loop.enforce_mode_gates is True

    def test_load_without_file(self) -> None:
        config = CodeloopConfig.load()
        assert config.llm.model == "claude-sonnet-4"
        assert config.workspace.max_listed_files == 200
        assert config.modes_dir is None

    def test_validation(self) -> None:
        with pytest.raises(ValidationError):
            LoopConfig(max_iterations=0)
        with pytest.raises(ValidationError):
            LoopConfig(stuck_threshold=1)


class TestLoad:
    def test_file(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text(
            json.dumps(
                {
                    "llm": {"model": "gemini-3-flash", "temperature": 0.2},
                    "loop": {"max_iterations": 7},
                    "modes_dir": "modes",
                }
            )
        )
        config = CodeloopConfig.load(str(path))
        assert config.llm.model == "gemini-3-flash"
        assert config.llm.temperature == 0.2
        assert config.loop.max_iterations == 7
        assert config.modes_dir == "modes"

    def test_env_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"llm": {"model": "from-file"}, "loop": {"max_iterations": 7}}))
        monkeypatch.setenv("CODELOOP_MODEL", "from-env")
        monkeypatch.setenv("CODELOOP_MAX_ITERATIONS", "12")
        monkeypatch.setenv("CODELOOP_TOOL_TIMEOUT", "2.5")
        monkeypatch.setenv("CODELOOP_REASONING_EFFORT", "HIGH")
        monkeypatch.setenv("CODELOOP_PROJECTS_ROOT", str(tmp_path / "p"))

        config = CodeloopConfig.load(str(path))
        assert config.llm.model == "from-env"
        assert config.llm.reasoning_effort == "high"
        assert config.loop.max_iterations == 12
        assert config.loop.tool_timeout == 2.5
        assert config.workspace.projects_path() == tmp_path / "p"

    def test_dotenv_overrides_stale_export(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("CODELOOP_MODEL", "stale")
        (tmp_path / ".env").write_text("CODELOOP_MODEL=from-dotenv\n")
        config = CodeloopConfig.load()
        assert config.llm.model == "from-dotenv"

    def test_invalid_env_value(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CODELOOP_MAX_ITERATIONS", "lots")
        with pytest.raises(ValidationError):
            CodeloopConfig.load()

    def test_expands_user(self) -> None:
        config = CodeloopConfig.load()
        assert "~" not in str(config.workspace.sessions_path())
