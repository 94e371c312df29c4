"""LLM abstraction layer: unified via litellm with streaming."""

from codeloop.llm.message import (
    ContentPart,
    ImagePart,
    Message,
    TextPart,
    ThinkingPart,
    TokenUsage,
    ToolCall,
    ToolCallPart,
    ToolCallState,
    ToolResultPart,
)
from codeloop.llm.provider import (
    MODEL_ALIASES,
    ChatProvider,
    LiteLLMProvider,
    ProviderConfig,
    create_provider,
    resolve_model,
)
from codeloop.llm.streaming import (
    EndOfTurn,
    GatewayEvent,
    TextDelta,
    ThinkingDelta,
    ToolCallRequest,
    stream_chat,
)
from codeloop.llm.usage import UsageLedger, estimate_cost_usd

__all__ = [
    "ContentPart",
    "ImagePart",
    "Message",
    "TextPart",
    "ThinkingPart",
    "TokenUsage",
    "ToolCall",
    "ToolCallPart",
    "ToolCallState",
    "ToolResultPart",
    "MODEL_ALIASES",
    "ChatProvider",
    "LiteLLMProvider",
    "ProviderConfig",
    "create_provider",
    "resolve_model",
    "EndOfTurn",
    "GatewayEvent",
    "TextDelta",
    "ThinkingDelta",
    "ToolCallRequest",
    "stream_chat",
    "UsageLedger",
    "estimate_cost_usd",
]
