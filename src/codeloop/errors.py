"""Error hierarchy for the agent loop.

Only ``ToolFailure`` subclasses are recovered locally (they are turned into
tool results and fed back to the model). Everything else ends the run.
"""

from __future__ import annotations


class CodeloopError(Exception):
    """Base class for all codeloop errors."""

    classification: str = "internal"


# ---------------------------------------------------------------------------
# Recoverable: fed back into the conversation as tool_error
# ---------------------------------------------------------------------------


class ToolFailure(CodeloopError):
    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(message)
        self.tool_name = tool_name


class ToolValidationError(ToolFailure):
    def __init__(self, tool_name: str, field: str, message: str = "") -> None:
        super().__init__(tool_name, message or f"Invalid input for {tool_name}: {field}")
        self.field = field


class ToolExecutionError(ToolFailure):
    """Timeout or runtime failure inside a tool implementation."""


# ---------------------------------------------------------------------------
# Model provider: fatal
# ---------------------------------------------------------------------------


class ModelProviderError(CodeloopError):
    classification = "provider"

    def __init__(self, message: str, provider: str = "", model: str = "") -> None:
        super().__init__(message)
        self.provider = provider
        self.model = model


class ProviderAuthError(ModelProviderError):
    """Authentication, permission, quota or rate-limit failure."""

    classification = "auth"


class ContextLengthExceededError(ModelProviderError):
    classification = "context_length"


class MalformedResponseError(ModelProviderError):
    classification = "malformed_response"


class TransientNetworkError(CodeloopError):
    """Connection reset, timeout, overloaded backend. Retried by the caller."""

    classification = "transient"


# ---------------------------------------------------------------------------
# Budget: terminal, reported distinctly from generic errors
# ---------------------------------------------------------------------------


class BudgetExceeded(CodeloopError):
    classification = "budget"

    def __init__(self, message: str, iteration: int) -> None:
        super().__init__(message)
        self.iteration = iteration


class IterationLimitExceeded(BudgetExceeded):
    classification = "iteration_limit"


class StuckLoopDetected(BudgetExceeded):
    classification = "stuck_loop"

    def __init__(self, tool_name: str, count: int, iteration: int) -> None:
        super().__init__(
            f"Agent appears stuck in a loop calling {tool_name} "
            f"({count} consecutive iterations). Stopping.",
            iteration,
        )
        self.tool_name = tool_name
        self.count = count


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class UserCancelled(CodeloopError):
    classification = "cancelled"


class InvalidStateError(CodeloopError):
    """Operation not allowed in the session's current status."""


class SessionBusyError(CodeloopError):
    """A run is already in flight for this session."""
