"""Model gateway: one streaming chat turn as an ordered stream of typed events."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from codeloop.errors import MalformedResponseError
from codeloop.llm.message import (
    ContentPart,
    Message,
    TextPart,
    ThinkingPart,
    TokenUsage,
    ToolCall,
    ToolCallPart,
    parse_arguments,
)
from codeloop.llm.provider import ChatProvider

logger = logging.getLogger(__name__)

# Tool specs in OpenAI function format
ToolSpec = dict[str, Any]


@dataclass
class TextDelta:
    text: str


@dataclass
class ThinkingDelta:
    text: str


@dataclass
class ToolCallRequest:
    """A fully-buffered tool call. Emitted after the last content delta."""

    call: ToolCall
    arguments: str = ""


@dataclass
class EndOfTurn:
    """Always the last event of a turn, exactly once."""

    usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: str | None = None
    message: Message = field(default_factory=lambda: Message(role="assistant"))

    @property
    def tool_calls(self) -> list[ToolCall]:
        return self.message.tool_calls


GatewayEvent = TextDelta | ThinkingDelta | ToolCallRequest | EndOfTurn


async def stream_chat(
    provider: ChatProvider,
    system_prompt: str,
    history: list[Message],
    tool_defs: list[ToolSpec] | None = None,
    caching_hint: bool = False,
) -> AsyncIterator[GatewayEvent]:
    """Stream one model turn.

    Text and thinking deltas are yielded in arrival order. Tool-call argument
    fragments are buffered until the backend finishes, then each call is
    yielded as a ``ToolCallRequest``, followed by a single ``EndOfTurn``.

    Raises:
        MalformedResponseError: a tool call arrived without a name.
        ModelProviderError / TransientNetworkError: from the provider.
    """
    api_messages = [m.to_openai_dict() for m in history]

    text_buffer = ""
    thinking_buffer = ""
    thinking_signature = ""  # last signature seen (Anthropic-only)
    tool_call_buffers: dict[int, dict[str, str]] = {}  # index -> {id, name, arguments}
    usage = TokenUsage()
    finish_reason = None

    async for chunk in provider.stream(
        system_prompt, api_messages, tool_defs or None, caching_hint
    ):
        fr = chunk.get("finish_reason")
        if fr:
            finish_reason = fr

        delta = chunk.get("delta") or {}

        reasoning = delta.get("reasoning_content")
        if reasoning:
            thinking_buffer += reasoning
            yield ThinkingDelta(text=reasoning)

        # Anthropic thinking blocks carry the signature we must send back
        for block in delta.get("thinking_blocks") or []:
            if not isinstance(block, dict):
                continue
            if block.get("signature"):
                thinking_signature = block["signature"]
            thinking_text = block.get("thinking", "")
            if thinking_text and thinking_text not in thinking_buffer:
                thinking_buffer += thinking_text
                yield ThinkingDelta(text=thinking_text)

        content = delta.get("content")
        if content:
            text_buffer += content
            yield TextDelta(text=content)

        for tc_delta in delta.get("tool_calls") or []:
            idx = tc_delta.get("index") or 0
            buf = tool_call_buffers.setdefault(
                idx, {"id": "", "name": "", "arguments": ""}
            )
            if tc_delta.get("id"):
                buf["id"] = tc_delta["id"]
            func = tc_delta.get("function") or {}
            if func.get("name"):
                buf["name"] = func["name"]
            if func.get("arguments"):
                buf["arguments"] += func["arguments"]

        if chunk.get("usage"):
            u = chunk["usage"]
            usage = TokenUsage(
                input_tokens=u.get("prompt_tokens", 0),
                output_tokens=u.get("completion_tokens", 0),
                cached_tokens=u.get("cached_tokens", 0),
                total_tokens=u.get("total_tokens", 0),
            )

        # Let transport consumers run between deltas
        await asyncio.sleep(0)

    parts: list[ContentPart] = []

    # Thinking parts come first (matches Anthropic message ordering)
    if thinking_buffer:
        parts.append(ThinkingPart(thinking=thinking_buffer, signature=thinking_signature))
    if text_buffer:
        parts.append(TextPart(text=text_buffer))

    requests: list[ToolCallRequest] = []
    for idx in sorted(tool_call_buffers):
        buf = tool_call_buffers[idx]
        if not buf["name"]:
            raise MalformedResponseError(
                f"Tool call at index {idx} has no name", model=provider.config.model
            )
        call_id = buf["id"] or f"call_{uuid.uuid4().hex[:24]}"
        parts.append(ToolCallPart(id=call_id, name=buf["name"], arguments=buf["arguments"]))
        requests.append(
            ToolCallRequest(
                call=ToolCall(
                    id=call_id,
                    name=buf["name"],
                    input=parse_arguments(buf["name"], buf["arguments"]),
                ),
                arguments=buf["arguments"],
            )
        )

    for request in requests:
        yield request

    yield EndOfTurn(
        usage=usage,
        finish_reason=finish_reason,
        message=Message(role="assistant", parts=parts),
    )
