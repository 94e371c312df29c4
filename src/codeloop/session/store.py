"""Session persistence: where sessions live between ``run`` and ``resume``.

``JsonlSessionStore`` keeps one JSONL file per project: the first line is
the session header (``{"_type": "session", ...}``), each following line is
one history message.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, Protocol

import aiofiles

from codeloop.llm.message import (
    ContentPart,
    ImagePart,
    Message,
    TextPart,
    ThinkingPart,
    ToolCallPart,
    ToolResultPart,
)
from codeloop.session.state import Session

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    """Persistence seam for sessions, keyed by project id."""

    async def load(self, project_id: str) -> Session | None: ...

    async def save(self, session: Session) -> None: ...

    async def delete(self, project_id: str) -> None: ...


class MemorySessionStore:
    """In-process store. Sessions are deep-copied in and out."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    async def load(self, project_id: str) -> Session | None:
        session = self._sessions.get(project_id)
        return copy.deepcopy(session) if session is not None else None

    async def save(self, session: Session) -> None:
        self._sessions[session.project_id] = copy.deepcopy(session)

    async def delete(self, project_id: str) -> None:
        self._sessions.pop(project_id, None)

    def __contains__(self, project_id: str) -> bool:
        return project_id in self._sessions


class JsonlSessionStore:
    """One ``<project_id>.jsonl`` file per project under ``directory``."""

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory).expanduser()
        self.directory.mkdir(parents=True, exist_ok=True)

    def path_for(self, project_id: str) -> Path:
        return self.directory / f"{project_id}.jsonl"

    async def load(self, project_id: str) -> Session | None:
        path = self.path_for(project_id)
        if not path.exists():
            return None

        header: dict[str, Any] | None = None
        history: list[Message] = []
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            async for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    data = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("Skipping malformed JSONL line in %s", path)
                    continue

                if data.get("_type") == "session":
                    header = data
                elif "role" in data:
                    history.append(message_from_dict(data))

        if header is None:
            logger.warning("Session file %s has no header, ignoring", path)
            return None
        return Session.from_metadata(header, history)

    async def save(self, session: Session) -> None:
        """Rewrite the project's file from the in-memory session."""
        path = self.path_for(session.project_id)
        tmp = path.with_suffix(".jsonl.tmp")
        async with aiofiles.open(tmp, "w", encoding="utf-8") as f:
            header = {"_type": "session", **session.metadata()}
            await f.write(json.dumps(header, ensure_ascii=False) + "\n")
            for msg in session.history:
                await f.write(json.dumps(message_to_dict(msg), ensure_ascii=False) + "\n")
        tmp.replace(path)
        logger.debug(
            "Saved session %s (%d messages) to %s", session.id, len(session.history), path
        )

    async def delete(self, project_id: str) -> None:
        self.path_for(project_id).unlink(missing_ok=True)


def message_to_dict(msg: Message) -> dict[str, Any]:
    """Serialize a Message to a dict for JSONL storage."""
    result: dict[str, Any] = {"role": msg.role, "timestamp": msg.timestamp}

    text_parts = [p for p in msg.parts if isinstance(p, TextPart)]
    image_parts = [p for p in msg.parts if isinstance(p, ImagePart)]
    tc_parts = [p for p in msg.parts if isinstance(p, ToolCallPart)]
    tr_parts = [p for p in msg.parts if isinstance(p, ToolResultPart)]
    thinking_parts = [p for p in msg.parts if isinstance(p, ThinkingPart)]

    if text_parts:
        result["content"] = "".join(p.text for p in text_parts)

    if image_parts:
        result["images"] = [{"data": p.data, "media_type": p.media_type} for p in image_parts]

    if tc_parts:
        result["tool_calls"] = [
            {"id": p.id, "name": p.name, "arguments": p.arguments} for p in tc_parts
        ]

    if tr_parts:
        p = tr_parts[0]
        result["tool_call_id"] = p.tool_call_id
        result["content"] = p.content
        result["is_error"] = p.is_error

    if thinking_parts:
        result["thinking"] = "".join(p.thinking for p in thinking_parts)
        # Preserve signature for Anthropic round-tripping
        sig = next((p.signature for p in thinking_parts if p.signature), "")
        if sig:
            result["thinking_signature"] = sig

    return result


def message_from_dict(data: dict[str, Any]) -> Message:
    """Deserialize a dict from JSONL to a Message."""
    role = data["role"]
    parts: list[ContentPart] = []

    if role == "tool":
        parts.append(
            ToolResultPart(
                tool_call_id=data.get("tool_call_id", ""),
                content=data.get("content", ""),
                is_error=data.get("is_error", False),
            )
        )
    else:
        # Thinking parts come first (matches Anthropic message ordering)
        if data.get("thinking"):
            parts.append(
                ThinkingPart(
                    thinking=data["thinking"],
                    signature=data.get("thinking_signature", ""),
                )
            )
        if data.get("content") or role == "user":
            parts.append(TextPart(text=data.get("content", "")))
        for img in data.get("images", []):
            parts.append(
                ImagePart(data=img.get("data", ""), media_type=img.get("media_type", "image/jpeg"))
            )
        for tc in data.get("tool_calls", []):
            parts.append(
                ToolCallPart(
                    id=tc.get("id", ""),
                    name=tc.get("name", ""),
                    arguments=tc.get("arguments", ""),
                )
            )

    msg = Message(role=role, parts=parts)
    if "timestamp" in data:
        msg.timestamp = data["timestamp"]
    return msg
