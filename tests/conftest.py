"""Shared fixtures: a scripted model backend and a throwaway project sandbox."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import pytest

from codeloop.llm.provider import ProviderConfig
from codeloop.session.wire import AgentEvent, EventType
from codeloop.workspace import LocalSandbox, ProjectContext, TodoStore


# ---------------------------------------------------------------------------
# Chunk builders
# ---------------------------------------------------------------------------


def usage_chunk(prompt: int = 10, completion: int = 5) -> dict[str, Any]:
    return {
        "id": "chunk",
        "finish_reason": None,
        "delta": {},
        "usage": {
            "prompt_tokens": prompt,
            "completion_tokens": completion,
            "cached_tokens": 0,
            "total_tokens": prompt + completion,
        },
    }


def text_turn(*pieces: str) -> list[dict[str, Any]]:
    """A turn that only streams text."""
    chunks = [{"id": "chunk", "finish_reason": None, "delta": {"content": p}} for p in pieces]
    chunks.append({"id": "chunk", "finish_reason": "stop", "delta": {}})
    chunks.append(usage_chunk())
    return chunks


def tool_turn(*calls: tuple[str, str, dict[str, Any] | str], text: str = "") -> list[dict[str, Any]]:
    """A turn requesting ``(call_id, name, arguments)`` tool calls.

    Arguments are split in two fragments to exercise buffering.
    """
    chunks: list[dict[str, Any]] = []
    if text:
        chunks.append({"id": "chunk", "finish_reason": None, "delta": {"content": text}})
    for index, (call_id, name, arguments) in enumerate(calls):
        raw = arguments if isinstance(arguments, str) else json.dumps(arguments)
        half = len(raw) // 2
        chunks.append(
            {
                "id": "chunk",
                "finish_reason": None,
                "delta": {
                    "tool_calls": [
                        {
                            "index": index,
                            "id": call_id,
                            "function": {"name": name, "arguments": raw[:half]},
                        }
                    ]
                },
            }
        )
        chunks.append(
            {
                "id": "chunk",
                "finish_reason": None,
                "delta": {
                    "tool_calls": [
                        {"index": index, "id": None, "function": {"name": None, "arguments": raw[half:]}}
                    ]
                },
            }
        )
    chunks.append({"id": "chunk", "finish_reason": "tool_calls", "delta": {}})
    chunks.append(usage_chunk())
    return chunks


# ---------------------------------------------------------------------------
# Scripted provider
# ---------------------------------------------------------------------------


class ScriptedProvider:
    """ChatProvider that replays one scripted turn per ``stream`` call.

    A turn is a list of chunk dicts, or an exception raised when the turn
    starts. An exception inside a chunk list is raised mid-stream. With
    ``repeat_last`` the final turn is replayed forever.
    """

    def __init__(
        self,
        turns: list[list[dict[str, Any]] | Exception],
        repeat_last: bool = False,
        model: str = "test/scripted",
    ) -> None:
        self._turns = list(turns)
        self._repeat_last = repeat_last
        self._config = ProviderConfig(model=model)
        self.calls: list[dict[str, Any]] = []

    @property
    def config(self) -> ProviderConfig:
        return self._config

    async def stream(
        self,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        cache_system: bool = False,
    ) -> AsyncIterator[dict[str, Any]]:
        self.calls.append(
            {"system": system, "messages": messages, "tools": tools, "cache_system": cache_system}
        )
        if not self._turns:
            raise AssertionError("ScriptedProvider ran out of turns")
        turn = self._turns[0] if self._repeat_last and len(self._turns) == 1 else self._turns.pop(0)
        if isinstance(turn, Exception):
            raise turn
        for chunk in turn:
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def projects_root(tmp_path: Path) -> Path:
    root = tmp_path / "projects"
    root.mkdir()
    return root


@pytest.fixture
def sandbox(projects_root: Path) -> LocalSandbox:
    return LocalSandbox(projects_root)


@pytest.fixture
def project_root(projects_root: Path) -> Path:
    root = projects_root / "demo"
    root.mkdir()
    return root


@pytest.fixture
def context(project_root: Path) -> ProjectContext:
    return ProjectContext(project_id="demo", root=project_root, todos=TodoStore())


async def collect(events: AsyncIterator[AgentEvent]) -> list[AgentEvent]:
    return [event async for event in events]


def types(events: list[AgentEvent]) -> list[EventType]:
    return [e.type for e in events]
