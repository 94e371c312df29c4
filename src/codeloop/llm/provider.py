"""LLM provider abstraction: unified via litellm.

litellm handles all provider-specific details (Anthropic, OpenAI, Gemini,
Groq, ...) and normalizes streaming to OpenAI-format chunks. We convert those
to a plain chunk dict consumed by ``streaming.stream_chat``:

    {
        "id": str,
        "finish_reason": str | None,
        "delta": {
            "content": str | None,
            "reasoning_content": str | None,
            "thinking_blocks": [...] | None,
            "tool_calls": [...] | None,   # OpenAI-style tool call deltas
        },
        "usage": {
            "prompt_tokens": int,
            "completion_tokens": int,
            "cached_tokens": int,
            "total_tokens": int,
        } | None,
    }

Providers never retry. Failures are mapped onto the ``codeloop.errors``
taxonomy and the call site decides what to retry (see ``transient_retry``).
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from codeloop.errors import (
    CodeloopError,
    ContextLengthExceededError,
    ModelProviderError,
    ProviderAuthError,
    TransientNetworkError,
)

if TYPE_CHECKING:
    from litellm import ModelResponseStream

logger = logging.getLogger(__name__)

# Short model ids used by clients, mapped to litellm's provider-prefixed names.
MODEL_ALIASES: dict[str, str] = {
    "claude-sonnet-4": "anthropic/claude-sonnet-4-20250514",
    "claude-4-5-sonnet": "anthropic/claude-sonnet-4-5-20250929",
    "claude-4-5-opus": "anthropic/claude-opus-4-20250514",
    "claude-haiku-3.5": "anthropic/claude-3-5-haiku-20241022",
    "gemini-3-flash": "gemini/gemini-3-flash-preview",
    "gemini-3-pro": "gemini/gemini-3-pro-preview",
    "gemini-2.5-flash": "gemini/gemini-2.5-flash",
    "llama-3.3-70b": "groq/llama-3.3-70b-versatile",
}


def resolve_model(model: str) -> str:
    """Map a short model id to a litellm model string; unknown ids pass through."""
    return MODEL_ALIASES.get(model, model)


@dataclass
class ProviderConfig:
    """Configuration for an LLM provider."""

    model: str
    temperature: float | None = None
    max_tokens: int | None = None
    context_window: int = 200_000
    reasoning_effort: str | None = None  # "low", "medium", or "high"


@runtime_checkable
class ChatProvider(Protocol):
    """Protocol for LLM backends."""

    @property
    def config(self) -> ProviderConfig: ...

    def stream(
        self,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        cache_system: bool = False,
    ) -> AsyncIterator[dict[str, Any]]:
        """Stream a chat completion. Yields normalized chunk dicts."""
        ...


# ---------------------------------------------------------------------------
# litellm provider
# ---------------------------------------------------------------------------


@dataclass
class LiteLLMProvider:
    """Unified LLM provider using litellm.

    litellm detects the backend from the model string prefix
    (e.g. "anthropic/claude-...", "gemini/gemini-...", "groq/llama-...")
    and reads API keys from environment variables.
    """

    _config: ProviderConfig

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
        """Stream from litellm, yielding normalized chunk dicts."""
        import litellm

        kwargs: dict[str, Any] = {
            "model": self._config.model,
            "messages": [_system_message(system, cache_system), *messages],
            "stream": True,
            "stream_options": {"include_usage": True},
        }

        if tools:
            kwargs["tools"] = tools

        if self._config.temperature is not None:
            kwargs["temperature"] = self._config.temperature

        if self._config.max_tokens is not None:
            kwargs["max_tokens"] = self._config.max_tokens

        if self._config.reasoning_effort:
            # Lets litellm patch missing thinking blocks on earlier assistant
            # turns. Global side-effect on litellm's module state.
            litellm.modify_params = True
            kwargs["reasoning_effort"] = self._config.reasoning_effort

        try:
            response = await litellm.acompletion(**kwargs)
            async for chunk in response:  # type: ignore[union-attr]
                yield _chunk_to_dict(chunk)
        except CodeloopError:
            raise
        except Exception as e:
            raise classify_provider_error(e, self._config.model) from e


def _system_message(system: str, cache_system: bool) -> dict[str, Any]:
    if not cache_system:
        return {"role": "system", "content": system}
    return {
        "role": "system",
        "content": [
            {"type": "text", "text": system, "cache_control": {"type": "ephemeral"}}
        ],
    }


def classify_provider_error(exc: Exception, model: str = "") -> CodeloopError:
    """Map a backend exception onto the codeloop error taxonomy."""
    import litellm

    provider = model.split("/")[0] if "/" in model else ""
    message = f"{type(exc).__name__}: {exc}"

    if isinstance(exc, litellm.ContextWindowExceededError):
        return ContextLengthExceededError(message, provider=provider, model=model)
    if isinstance(
        exc,
        (
            litellm.AuthenticationError,
            litellm.PermissionDeniedError,
            litellm.RateLimitError,
        ),
    ):
        return ProviderAuthError(message, provider=provider, model=model)
    if isinstance(
        exc,
        (
            litellm.APIConnectionError,
            litellm.Timeout,
            litellm.ServiceUnavailableError,
            litellm.InternalServerError,
            ConnectionError,
            TimeoutError,
            OSError,
        ),
    ):
        return TransientNetworkError(message)
    return ModelProviderError(message, provider=provider, model=model)


def transient_retry(
    attempts: int = 3, min_wait: float = 1.0, max_wait: float = 30.0
) -> AsyncRetrying:
    """Retry policy for transient backend failures, applied at the call site."""
    return AsyncRetrying(
        retry=retry_if_exception_type(TransientNetworkError),
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=min_wait, min=min_wait, max=max_wait),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


def _chunk_to_dict(chunk: ModelResponseStream) -> dict[str, Any]:
    """Convert a litellm ModelResponseStream chunk to our normalized dict.

    litellm chunks have the same shape as OpenAI ChatCompletionChunk objects:
      chunk.id, chunk.choices[0].delta.{content, tool_calls},
      chunk.choices[0].finish_reason, chunk.usage
    """
    result: dict[str, Any] = {"id": getattr(chunk, "id", "")}

    choices = getattr(chunk, "choices", None)
    if choices:
        choice = choices[0]
        delta = choice.delta
        result["finish_reason"] = choice.finish_reason
        result["delta"] = {}

        if delta.content is not None:
            result["delta"]["content"] = delta.content

        # Thinking / reasoning content (Anthropic extended thinking, DeepSeek, etc.)
        reasoning = getattr(delta, "reasoning_content", None)
        if reasoning is not None:
            result["delta"]["reasoning_content"] = reasoning

        thinking_blocks = getattr(delta, "thinking_blocks", None)
        if thinking_blocks:
            result["delta"]["thinking_blocks"] = thinking_blocks

        if delta.tool_calls:
            result["delta"]["tool_calls"] = [
                {
                    "index": tc.index,
                    "id": tc.id,
                    "function": {
                        "name": tc.function.name if tc.function else None,
                        "arguments": tc.function.arguments if tc.function else None,
                    },
                }
                for tc in delta.tool_calls
            ]
    else:
        result["finish_reason"] = None
        result["delta"] = {}

    usage = getattr(chunk, "usage", None)
    if usage:
        result["usage"] = {
            "prompt_tokens": getattr(usage, "prompt_tokens", 0) or 0,
            "completion_tokens": getattr(usage, "completion_tokens", 0) or 0,
            "cached_tokens": _cached_tokens(usage),
            "total_tokens": getattr(usage, "total_tokens", 0) or 0,
        }

    return result


def _cached_tokens(usage: Any) -> int:
    """Prompt-cache hits; Anthropic and OpenAI report them in different fields."""
    cached = getattr(usage, "cache_read_input_tokens", None)
    if cached:
        return int(cached)
    details = getattr(usage, "prompt_tokens_details", None)
    return int(getattr(details, "cached_tokens", 0) or 0) if details else 0


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_provider(
    model: str,
    temperature: float | None = None,
    max_tokens: int | None = None,
    context_window: int = 200_000,
    reasoning_effort: str | None = None,
) -> ChatProvider:
    """Create a LiteLLM provider.

    Args:
        model: Short id from ``MODEL_ALIASES`` or a litellm model name with
            provider prefix (e.g. "anthropic/claude-sonnet-4-20250514").
        temperature: Sampling temperature.
        max_tokens: Max output tokens.
        context_window: Context window size.
        reasoning_effort: "low", "medium", "high", or ``None`` to disable.
    """
    config = ProviderConfig(
        model=resolve_model(model),
        temperature=temperature,
        max_tokens=max_tokens,
        context_window=context_window,
        reasoning_effort=reasoning_effort,
    )
    return LiteLLMProvider(_config=config)
