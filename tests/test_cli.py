"""Tests for codeloop.cli."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from codeloop.agent import Orchestrator
from codeloop.cli import _drive, app
from codeloop.config import CodeloopConfig
from codeloop.session import Session
from codeloop.workspace import LocalSandbox
from conftest import ScriptedProvider, text_turn, tool_turn

runner = CliRunner()


class TestToolsCommand:
    def test_lists_tools(self) -> None:
        result = runner.invoke(app, ["tools"])
        assert result.exit_code == 0
        assert "write_file" in result.output
        assert "required: file_path, content, description" in result.output

    def test_json(self) -> None:
        result = runner.invoke(app, ["tools", "--json"])
        assert result.exit_code == 0
        specs = json.loads(result.output)
        assert specs[0]["type"] == "function"
        assert "signal_completion" in [s["function"]["name"] for s in specs]


class TestResumeCommand:
    def test_nothing_to_resume(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("CODELOOP_SESSION_DIR", str(tmp_path / "sessions"))
        monkeypatch.setenv("CODELOOP_PROJECTS_ROOT", str(tmp_path / "projects"))
        result = runner.invoke(app, ["resume", "demo", "--answer", "yes"])
        assert result.exit_code == 1
        assert "No saved session" in result.output


# ---------------------------------------------------------------------------
# Interactive driver
# ---------------------------------------------------------------------------


class TestDrive:
    async def test_answers_questions_until_done(
        self, sandbox: LocalSandbox, capsys: pytest.CaptureFixture[str]
    ) -> None:
        provider = ScriptedProvider(
            [
                tool_turn(("q1", "ask_user_question", {"questions": ["Which name?"]})),
                text_turn("Named it Bob"),
            ]
        )
        orch = Orchestrator(Session(project_id="demo"), provider, sandbox)

        with patch("typer.prompt", return_value="Bob") as prompt:
            status = await _drive(orch, orch.run("name it"), CodeloopConfig())

        assert status == "completed"
        prompt.assert_called_once_with("Which name?")
        out = capsys.readouterr().out
        assert "--- The agent has questions ---" in out
        assert "Named it Bob" in out
        assert orch.session.history[2].tool_result.content.endswith("A: Bob")

    async def test_stops_on_budget(
        self, sandbox: LocalSandbox, capsys: pytest.CaptureFixture[str]
    ) -> None:
        provider = ScriptedProvider([tool_turn(("c", "list_directory", {}))], repeat_last=True)
        config = CodeloopConfig.model_validate({"loop": {"max_iterations": 2}})
        orch = Orchestrator(Session(project_id="demo"), provider, sandbox, config=config.loop)

        status = await _drive(orch, orch.run("look"), config)

        assert status == "budget_exceeded"
        assert "Budget exceeded" in capsys.readouterr().out
