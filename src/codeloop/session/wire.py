"""Event stream: typed agent events and the channel that carries them.

The orchestrator yields ``AgentEvent``s from an async generator. ``Wire``
fans them out to any number of subscribers (CLI renderer, websocket bridge,
log writer) through bounded queues, so a slow consumer applies backpressure
instead of growing memory without limit.
"""

from __future__ import annotations

import asyncio
import enum
import json
import logging
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_BUFFER = 256


class EventType(enum.Enum):
    START = "start"
    ITERATION_START = "iteration_start"
    THINKING = "thinking"
    TEXT_DELTA = "text_delta"
    TOOL_START = "tool_start"
    TOOL_INPUT = "tool_input"
    TOOL_COMPLETE = "tool_complete"
    TOOL_ERROR = "tool_error"
    TODO_UPDATE = "todo_update"
    USAGE = "usage"
    ASK_USER_QUESTION = "ask_user_question"
    COMPLETE = "complete"
    BUDGET_EXCEEDED = "budget_exceeded"
    ERROR = "error"
    FATAL_ERROR = "fatal_error"
    DONE = "done"


# Events that end a run's state machine (``done`` follows each of them)
TERMINAL_EVENTS = frozenset(
    {
        EventType.ASK_USER_QUESTION,
        EventType.COMPLETE,
        EventType.BUDGET_EXCEEDED,
        EventType.FATAL_ERROR,
    }
)


def _event_id() -> str:
    return f"evt_{uuid.uuid4().hex[:16]}"


@dataclass
class AgentEvent:
    """One event of a run. Tool events reuse the tool-call id as ``id``."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    iteration: int | None = None
    id: str = field(default_factory=_event_id)

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENTS

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "id": self.id,
            "iteration": self.iteration,
            **self.data,
        }


def encode_event(event: AgentEvent) -> str:
    """One JSON line, no trailing newline."""
    return json.dumps(event.to_dict(), ensure_ascii=False, default=str)


def decode_event(line: str | dict[str, Any]) -> AgentEvent | None:
    """Parse an encoded event. Unknown type tags yield ``None``."""
    data = json.loads(line) if isinstance(line, str) else dict(line)
    try:
        event_type = EventType(data.pop("type", None))
    except ValueError:
        logger.debug("Ignoring event of unknown type: %r", data)
        return None
    event_id = data.pop("id", None) or _event_id()
    iteration = data.pop("iteration", None)
    return AgentEvent(type=event_type, data=data, iteration=iteration, id=event_id)


class Wire:
    """Async message bus: orchestrator -> subscribers.

    Single-producer, multi-consumer broadcast. Each subscriber owns a queue
    of at most ``buffer`` events; ``send`` waits while any queue is full.
    ``None`` on a queue means the wire is closed.
    """

    def __init__(self, buffer: int = DEFAULT_BUFFER) -> None:
        self._buffer = buffer
        self._subscribers: list[asyncio.Queue[AgentEvent | None]] = []
        self._closed: bool = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, event: AgentEvent) -> None:
        """Deliver an event to every subscriber. Dropped after ``close()``."""
        if self._closed:
            return
        for q in list(self._subscribers):
            await q.put(event)

    def subscribe(self) -> asyncio.Queue[AgentEvent | None]:
        """Subscribe to events. Returns a queue to read from."""
        q: asyncio.Queue[AgentEvent | None] = asyncio.Queue(maxsize=self._buffer)
        if self._closed:
            q.put_nowait(None)
        else:
            self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        """Unsubscribe from events."""
        if q in self._subscribers:
            self._subscribers.remove(q)

    def close(self) -> None:
        """Signal all subscribers that the wire is closing.

        A full queue loses its oldest pending event to make room for the
        close marker.
        """
        if self._closed:
            return
        self._closed = True
        for q in self._subscribers:
            if q.full():
                q.get_nowait()
            q.put_nowait(None)
        self._subscribers.clear()


async def consume(queue: asyncio.Queue[AgentEvent | None]) -> AsyncIterator[AgentEvent]:
    """Iterate a subscription until the wire closes."""
    while True:
        event = await queue.get()
        if event is None:
            return
        yield event


async def pump(
    events: AsyncIterator[AgentEvent], wire: Wire, close: bool = True
) -> AgentEvent | None:
    """Forward a run's events into ``wire``. Returns the last terminal event."""
    terminal: AgentEvent | None = None
    try:
        async for event in events:
            if event.is_terminal:
                terminal = event
            await wire.send(event)
    finally:
        if close:
            wire.close()
    return terminal
