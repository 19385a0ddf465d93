from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional


logger = logging.getLogger("backend")

Action = Callable[[], Awaitable[Any]]
Compensation = Callable[[Any], Awaitable[None]]


@dataclass
class _Step:
    name: str
    action: Action
    compensation: Optional[Compensation] = None


@dataclass
class CompensatingSteps:
    """Run dependent writes in order and undo completed ones on failure.

    Each step's action result is passed to its compensation. When a step
    fails, compensations of the steps that already completed run in reverse
    order; a failing compensation is logged and the remaining ones still run.
    The original failure is re-raised afterwards.
    """

    steps: List[_Step] = field(default_factory=list)

    def add(self, name: str, action: Action, compensation: Optional[Compensation] = None) -> "CompensatingSteps":
        self.steps.append(_Step(name, action, compensation))
        return self

    async def run(self) -> List[Any]:
        completed: List[tuple[_Step, Any]] = []
        for step in self.steps:
            try:
                result = await step.action()
            except Exception:
                logger.warning("Step %r failed; compensating %d completed step(s)", step.name, len(completed))
                await self._compensate(completed)
                raise
            completed.append((step, result))
        return [result for _, result in completed]

    @staticmethod
    async def _compensate(completed: List[tuple[_Step, Any]]) -> None:
        for step, result in reversed(completed):
            if step.compensation is None:
                continue
            try:
                await step.compensation(result)
            except Exception:
                logger.exception("Compensation for step %r failed", step.name)
