"""Tests for codeloop.session.wire (AgentEvent, Wire, encode/decode, pump)."""

from __future__ import annotations

import asyncio
import json

import pytest

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


# ---------------------------------------------------------------------------
# EventType
# ---------------------------------------------------------------------------


class TestEventType:
    def test_values_are_lowercase(self) -> None:
        for e in EventType:
            assert e.value == e.name.lower()

    def test_terminal_events(self) -> None:
        assert {e.value for e in TERMINAL_EVENTS} == {
            "ask_user_question",
            "complete",
            "budget_exceeded",
            "fatal_error",
        }
        assert EventType.DONE not in TERMINAL_EVENTS
        assert EventType.ERROR not in TERMINAL_EVENTS


# ---------------------------------------------------------------------------
# AgentEvent and the JSON codec
# ---------------------------------------------------------------------------


class TestAgentEvent:
    def test_defaults(self) -> None:
        event = AgentEvent(type=EventType.TEXT_DELTA)
        assert event.data == {}
        assert event.iteration is None
        assert event.id.startswith("evt_")

    def test_ids_unique(self) -> None:
        assert AgentEvent(type=EventType.DONE).id != AgentEvent(type=EventType.DONE).id

    def test_to_dict_flattens_data(self) -> None:
        event = AgentEvent(type=EventType.TEXT_DELTA, data={"text": "hi"}, iteration=2, id="e1")
        assert event.to_dict() == {"type": "text_delta", "id": "e1", "iteration": 2, "text": "hi"}


class TestCodec:
    def test_encode_is_one_json_line(self) -> None:
        event = AgentEvent(type=EventType.COMPLETE, data={"summary": "ok\nyes"}, iteration=3)
        line = encode_event(event)
        assert "\n" not in line
        assert json.loads(line)["summary"] == "ok\nyes"

    def test_decode_round_trip(self) -> None:
        event = AgentEvent(type=EventType.TOOL_START, data={"name": "read_file"}, iteration=1)
        decoded = decode_event(encode_event(event))
        assert decoded == event

    def test_decode_dict(self) -> None:
        decoded = decode_event({"type": "done", "status": "completed"})
        assert decoded is not None
        assert decoded.type is EventType.DONE
        assert decoded.data == {"status": "completed"}

    def test_unknown_type_ignored(self) -> None:
        assert decode_event('{"type": "telemetry", "x": 1}') is None


# ---------------------------------------------------------------------------
# Wire: basic send/subscribe
# ---------------------------------------------------------------------------


class TestWire:
    async def test_send_to_subscriber(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        await wire.send(AgentEvent(type=EventType.TEXT_DELTA, data={"text": "hi"}))
        event = q.get_nowait()
        assert event is not None
        assert event.data["text"] == "hi"

    async def test_send_to_multiple_subscribers(self) -> None:
        wire = Wire()
        q1 = wire.subscribe()
        q2 = wire.subscribe()
        await wire.send(AgentEvent(type=EventType.USAGE))
        e1 = q1.get_nowait()
        e2 = q2.get_nowait()
        assert e1 is e2

    async def test_unsubscribe(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        wire.unsubscribe(q)
        await wire.send(AgentEvent(type=EventType.TEXT_DELTA))
        assert q.empty()

    def test_unsubscribe_nonexistent_is_safe(self) -> None:
        wire = Wire()
        q: asyncio.Queue[AgentEvent | None] = asyncio.Queue()
        wire.unsubscribe(q)  # Should not raise

    async def test_backpressure(self) -> None:
        wire = Wire(buffer=1)
        q = wire.subscribe()
        await wire.send(AgentEvent(type=EventType.TEXT_DELTA, data={"text": "a"}))
        blocked = asyncio.create_task(
            wire.send(AgentEvent(type=EventType.TEXT_DELTA, data={"text": "b"}))
        )
        await asyncio.sleep(0.01)
        assert not blocked.done()
        assert q.get_nowait().data["text"] == "a"
        await asyncio.wait_for(blocked, 1)
        assert q.get_nowait().data["text"] == "b"


# ---------------------------------------------------------------------------
# Wire: closed-state guard
# ---------------------------------------------------------------------------


class TestWireClosedGuard:
    async def test_send_after_close_is_dropped(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        wire.close()
        assert q.get_nowait() is None
        await wire.send(AgentEvent(type=EventType.TEXT_DELTA, data={"text": "too late"}))
        assert q.empty()

    def test_close_sends_sentinel_to_all_subscribers(self) -> None:
        wire = Wire()
        queues = [wire.subscribe() for _ in range(3)]
        wire.close()
        assert all(q.get_nowait() is None for q in queues)
        assert wire.closed is True

    def test_close_idempotent(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        wire.close()
        wire.close()
        assert q.get_nowait() is None
        assert q.empty()

    async def test_close_on_full_queue_drops_oldest(self) -> None:
        wire = Wire(buffer=2)
        q = wire.subscribe()
        await wire.send(AgentEvent(type=EventType.TEXT_DELTA, data={"text": "a"}))
        await wire.send(AgentEvent(type=EventType.TEXT_DELTA, data={"text": "b"}))
        wire.close()
        assert q.get_nowait().data["text"] == "b"
        assert q.get_nowait() is None

    def test_subscribe_after_close(self) -> None:
        wire = Wire()
        wire.close()
        q = wire.subscribe()
        assert q.get_nowait() is None


# ---------------------------------------------------------------------------
# consume / pump
# ---------------------------------------------------------------------------


async def _events(*event_types: EventType):
    for event_type in event_types:
        yield AgentEvent(type=event_type)


class TestPump:
    async def test_pump_forwards_and_closes(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        received: list[EventType] = []

        async def reader() -> None:
            async for event in consume(q):
                received.append(event.type)

        task = asyncio.create_task(reader())
        terminal = await pump(
            _events(EventType.START, EventType.COMPLETE, EventType.DONE), wire
        )
        await asyncio.wait_for(task, 1)

        assert terminal is not None and terminal.type is EventType.COMPLETE
        assert received == [EventType.START, EventType.COMPLETE, EventType.DONE]
        assert wire.closed

    async def test_pump_without_terminal(self) -> None:
        wire = Wire()
        terminal = await pump(_events(EventType.START), wire, close=False)
        assert terminal is None
        assert not wire.closed

    async def test_pump_closes_on_error(self) -> None:
        async def failing():
            yield AgentEvent(type=EventType.START)
            raise RuntimeError("boom")

        wire = Wire()
        with pytest.raises(RuntimeError):
            await pump(failing(), wire)
        assert wire.closed
