"""Usage accounting: token counts and estimated cost per session."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from codeloop.llm.message import TokenUsage

logger = logging.getLogger(__name__)


def estimate_cost_usd(model: str, usage: TokenUsage) -> float:
    """Estimate the USD cost of one turn from litellm's pricing table.

    Cached prompt tokens are billed at the cache-read rate where litellm knows
    it. Models missing from the table cost 0.
    """
    import litellm

    try:
        prompt_cost, completion_cost = litellm.cost_per_token(
            model=model,
            prompt_tokens=usage.input_tokens,
            completion_tokens=usage.output_tokens,
            cache_read_input_tokens=usage.cached_tokens,
        )
    except Exception as e:
        logger.debug("No pricing for model %s: %s", model, e)
        return 0.0
    return float(prompt_cost) + float(completion_cost)


@dataclass
class UsageLedger:
    """Aggregated usage for a session, accumulated at every end of turn."""

    tokens: TokenUsage = field(default_factory=TokenUsage)
    cost_usd: float = 0.0
    turns: int = 0

    def record(self, model: str, usage: TokenUsage) -> None:
        self.tokens = self.tokens + usage
        self.cost_usd += estimate_cost_usd(model, usage)
        self.turns += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.tokens.to_dict(),
            "cost_usd": round(self.cost_usd, 6),
            "turns": self.turns,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UsageLedger:
        return cls(
            tokens=TokenUsage(
                input_tokens=data.get("input", 0),
                output_tokens=data.get("output", 0),
                cached_tokens=data.get("cached", 0),
                total_tokens=data.get("total", 0),
            ),
            cost_usd=data.get("cost_usd", 0.0),
            turns=data.get("turns", 0),
        )
