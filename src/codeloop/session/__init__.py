"""Session state, persistence and the event stream."""

from codeloop.session.state import Session, SessionStatus
from codeloop.session.store import JsonlSessionStore, MemorySessionStore, SessionStore
from codeloop.session.wire import (
    TERMINAL_EVENTS,
    AgentEvent,
    EventType,
    Wire,
    consume,
    decode_event,
    encode_event,
    pump,
)

__all__ = [
    "TERMINAL_EVENTS",
    "AgentEvent",
    "EventType",
    "JsonlSessionStore",
    "MemorySessionStore",
    "Session",
    "SessionStatus",
    "SessionStore",
    "Wire",
    "consume",
    "decode_event",
    "encode_event",
    "pump",
]
