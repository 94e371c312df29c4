"""Session state: one conversation with the agent about one project."""

from __future__ import annotations

import enum
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from codeloop.llm.message import Message
from codeloop.llm.usage import UsageLedger


class SessionStatus(enum.Enum):
    INIT = "init"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    BUDGET_EXCEEDED = "budget_exceeded"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_final(self) -> bool:
        """True for statuses a run can never leave."""
        return self in _FINAL_STATUSES


_FINAL_STATUSES = frozenset(
    {
        SessionStatus.COMPLETED,
        SessionStatus.BUDGET_EXCEEDED,
        SessionStatus.ERROR,
        SessionStatus.CANCELLED,
    }
)


@dataclass
class Session:
    """Mutable state of one agent session.

    ``history`` is append-only. ``iteration`` counts model turns of the
    current run; ``resume`` continues the count, a new ``run`` restarts it.
    """

    project_id: str
    mode: str = "fast"
    model: str = ""
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    iteration: int = 0
    status: SessionStatus = SessionStatus.INIT
    history: list[Message] = field(default_factory=list)
    usage: UsageLedger = field(default_factory=UsageLedger)
    system_prompt: str = ""
    pending_tool_call_id: str | None = None
    pending_questions: list[str] = field(default_factory=list)
    files_created: list[str] = field(default_factory=list)
    files_modified: list[str] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def append(self, message: Message) -> None:
        self.history.append(message)
        self.updated_at = time.time()

    def record_files(self, created: list[str], modified: list[str]) -> None:
        """Aggregate a tool's side effects.

        A path created during the session stays in ``files_created`` even if
        it is edited afterwards.
        """
        for path in created:
            if path not in self.files_created:
                self.files_created.append(path)
            if path in self.files_modified:
                self.files_modified.remove(path)
        for path in modified:
            if path not in self.files_created and path not in self.files_modified:
                self.files_modified.append(path)

    def set_pending(self, tool_call_id: str, questions: list[str]) -> None:
        self.pending_tool_call_id = tool_call_id
        self.pending_questions = list(questions)

    def clear_pending(self) -> None:
        self.pending_tool_call_id = None
        self.pending_questions = []

    def metadata(self) -> dict[str, Any]:
        """Everything but the history, as JSON-safe data."""
        return {
            "id": self.id,
            "project_id": self.project_id,
            "mode": self.mode,
            "model": self.model,
            "iteration": self.iteration,
            "status": self.status.value,
            "usage": self.usage.to_dict(),
            "system_prompt": self.system_prompt,
            "pending_tool_call_id": self.pending_tool_call_id,
            "pending_questions": self.pending_questions,
            "files_created": self.files_created,
            "files_modified": self.files_modified,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_metadata(
        cls, data: dict[str, Any], history: list[Message] | None = None
    ) -> Session:
        return cls(
            project_id=data["project_id"],
            mode=data.get("mode", "fast"),
            model=data.get("model", ""),
            id=data.get("id") or uuid.uuid4().hex[:12],
            iteration=data.get("iteration", 0),
            status=SessionStatus(data.get("status", SessionStatus.INIT.value)),
            history=list(history or []),
            usage=UsageLedger.from_dict(data.get("usage") or {}),
            system_prompt=data.get("system_prompt", ""),
            pending_tool_call_id=data.get("pending_tool_call_id"),
            pending_questions=list(data.get("pending_questions") or []),
            files_created=list(data.get("files_created") or []),
            files_modified=list(data.get("files_modified") or []),
            created_at=data.get("created_at", time.time()),
            updated_at=data.get("updated_at", time.time()),
        )
