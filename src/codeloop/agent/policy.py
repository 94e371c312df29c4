"""Safety policies checked after every iteration."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from codeloop.errors import IterationLimitExceeded, StuckLoopDetected

logger = logging.getLogger(__name__)


@dataclass
class IterationCap:
    """Hard bound on model turns per session."""

    max_iterations: int = 50

    def check(self, iteration: int) -> None:
        """Raise once ``iteration`` has reached the cap."""
        if iteration >= self.max_iterations:
            logger.warning("Iteration cap reached (%d)", self.max_iterations)
            raise IterationLimitExceeded(
                f"Reached the maximum of {self.max_iterations} iterations",
                iteration,
            )

    def exhausted(self, iteration: int) -> bool:
        return iteration >= self.max_iterations


@dataclass
class StuckLoopGuard:
    """Detects an agent calling the same single tool turn after turn.

    An iteration counts towards the streak only when exactly one distinct
    tool name was used in it. Any other iteration resets the streak.
    """

    threshold: int = 5
    _tool: str | None = field(default=None, init=False)
    _streak: int = field(default=0, init=False)

    @property
    def streak(self) -> int:
        return self._streak

    def observe(self, iteration: int, tool_names: list[str]) -> None:
        """Record the tools used in ``iteration``.

        Raises:
            StuckLoopDetected: the streak reached the threshold.
        """
        distinct = set(tool_names)
        if len(distinct) != 1:
            self.reset()
            return

        (name,) = distinct
        if name == self._tool:
            self._streak += 1
        else:
            self._tool = name
            self._streak = 1

        if self._streak >= self.threshold:
            logger.warning(
                "Stuck loop: %s was the only tool for %d iterations", name, self._streak
            )
            raise StuckLoopDetected(name, self._streak, iteration)

    def reset(self) -> None:
        self._tool = None
        self._streak = 0
