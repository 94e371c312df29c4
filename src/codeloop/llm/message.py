"""Message types for the conversation history."""

from __future__ import annotations

import enum
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Literal

logger = logging.getLogger(__name__)


@dataclass
class TextPart:
    """A text content part."""

    type: Literal["text"] = "text"
    text: str = ""


@dataclass
class ImagePart:
    """An inline base64 image attached to a user prompt."""

    type: Literal["image"] = "image"
    data: str = ""  # base64, no data: prefix
    media_type: str = "image/jpeg"


@dataclass
class ToolCallPart:
    """A tool call content part."""

    type: Literal["tool_call"] = "tool_call"
    id: str = ""
    name: str = ""
    arguments: str = ""  # JSON string


@dataclass
class ToolResultPart:
    """A tool result content part."""

    type: Literal["tool_result"] = "tool_result"
    tool_call_id: str = ""
    content: str = ""
    is_error: bool = False


@dataclass
class ThinkingPart:
    """A thinking/reasoning content part.

    ``signature`` is only populated by Anthropic models and must be sent back
    unchanged in multi-turn conversations.
    """

    type: Literal["thinking"] = "thinking"
    thinking: str = ""
    signature: str = ""


ContentPart = TextPart | ImagePart | ToolCallPart | ToolResultPart | ThinkingPart


class ToolCallState(enum.Enum):
    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class ToolCall:
    """A complete tool call extracted from a model response.

    ``input`` is ``None`` when the model produced arguments that are not a
    JSON object; the dispatcher reports that as a validation failure.
    """

    id: str
    name: str
    input: dict[str, Any] | None
    state: ToolCallState = ToolCallState.PENDING


@dataclass
class TokenUsage:
    """Token usage stats from one or more LLM calls."""

    input_tokens: int = 0
    output_tokens: int = 0
    cached_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            cached_tokens=self.cached_tokens + other.cached_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "input": self.input_tokens,
            "output": self.output_tokens,
            "cached": self.cached_tokens,
            "total": self.total_tokens,
        }


def parse_arguments(name: str, arguments: str) -> dict[str, Any] | None:
    """Decode a tool call's JSON arguments. Empty means ``{}``."""
    if not arguments:
        return {}
    try:
        value = json.loads(arguments)
    except json.JSONDecodeError:
        logger.warning(
            "Failed to parse tool call arguments for %s: %s", name, arguments[:200]
        )
        return None
    return value if isinstance(value, dict) else None


@dataclass
class Message:
    """A conversation message with typed content parts."""

    role: Literal["user", "assistant", "tool"]
    parts: list[ContentPart] = field(default_factory=list)
    timestamp: float = field(default_factory=time.time)

    @property
    def text(self) -> str:
        """Get concatenated text content."""
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))

    @property
    def thinking(self) -> str:
        return "".join(p.thinking for p in self.parts if isinstance(p, ThinkingPart))

    @property
    def tool_calls(self) -> list[ToolCall]:
        """Get all tool calls in this message."""
        return [
            ToolCall(id=p.id, name=p.name, input=parse_arguments(p.name, p.arguments))
            for p in self.parts
            if isinstance(p, ToolCallPart)
        ]

    @property
    def tool_result(self) -> ToolResultPart | None:
        for p in self.parts:
            if isinstance(p, ToolResultPart):
                return p
        return None

    # --- Convenience constructors ---

    @classmethod
    def user(cls, text: str, images: list[ImagePart] | None = None) -> Message:
        parts: list[ContentPart] = [TextPart(text=text)]
        if images:
            parts.extend(images)
        return cls(role="user", parts=parts)

    @classmethod
    def assistant(
        cls, text: str = "", tool_calls: list[ToolCallPart] | None = None
    ) -> Message:
        parts: list[ContentPart] = []
        if text:
            parts.append(TextPart(text=text))
        if tool_calls:
            parts.extend(tool_calls)
        return cls(role="assistant", parts=parts)

    @classmethod
    def tool_result_message(
        cls, tool_call_id: str, content: str, is_error: bool = False
    ) -> Message:
        return cls(
            role="tool",
            parts=[
                ToolResultPart(
                    tool_call_id=tool_call_id, content=content, is_error=is_error
                )
            ],
        )

    def to_openai_dict(self) -> dict[str, Any]:
        """Convert to the OpenAI chat format that litellm accepts for every backend.

        Assistant thinking blocks are included as ``thinking_blocks`` /
        ``reasoning_content`` so litellm can round-trip them to Anthropic.
        """
        if self.role == "tool":
            part = self.tool_result
            if part is None:
                return {"role": "tool", "content": ""}
            return {
                "role": "tool",
                "tool_call_id": part.tool_call_id,
                "content": part.content,
            }

        if self.role == "assistant":
            result: dict[str, Any] = {"role": "assistant", "content": self.text or None}
            tc_parts = [p for p in self.parts if isinstance(p, ToolCallPart)]
            thinking_parts = [
                p for p in self.parts if isinstance(p, ThinkingPart) and p.thinking
            ]

            if tc_parts:
                result["tool_calls"] = [
                    {
                        "id": p.id,
                        "type": "function",
                        "function": {"name": p.name, "arguments": p.arguments or "{}"},
                    }
                    for p in tc_parts
                ]

            if thinking_parts:
                result["thinking_blocks"] = [
                    {"type": "thinking", "thinking": p.thinking, "signature": p.signature}
                    for p in thinking_parts
                ]
                result["reasoning_content"] = "".join(p.thinking for p in thinking_parts)

            return result

        images = [p for p in self.parts if isinstance(p, ImagePart)]
        if not images:
            return {"role": "user", "content": self.text}

        content: list[dict[str, Any]] = [{"type": "text", "text": self.text}]
        for img in images:
            content.append(
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{img.media_type};base64,{img.data}"},
                }
            )
        return {"role": "user", "content": content}
