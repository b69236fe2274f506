"""Sequential steps with compensations undone in reverse on failure."""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

from loguru import logger

Step = Callable[[], Awaitable[Any]]


@dataclass
class SagaStep:
    """One action and the compensation that undoes it."""

    name: str
    action: Step
    compensation: Optional[Step] = None


@dataclass
class Saga:
    """
    Ordered list of steps run one after another.

    When a step fails, the compensations of the steps that already
    completed run in reverse order and the original error is re-raised.
    A failing compensation is logged and the unwinding goes on.
    """

    name: str
    steps: List[SagaStep] = field(default_factory=list)

    def add_step(
        self,
        name: str,
        action: Step,
        compensation: Optional[Step] = None,
    ) -> "Saga":
        self.steps.append(SagaStep(name, action, compensation))
        return self

    async def execute(self) -> List[Any]:
        """
        Run every step.

        Returns:
            The result of each action, in order.
        """
        completed: List[SagaStep] = []
        results: List[Any] = []
        for step in self.steps:
            try:
                results.append(await step.action())
            except Exception as err:
                logger.warning(f"{self.name}: step '{step.name}' failed: {err}")
                await self._compensate(completed)
                raise
            completed.append(step)
        return results

    async def _compensate(self, completed: List[SagaStep]) -> None:
        for step in reversed(completed):
            if step.compensation is None:
                continue
            try:
                await step.compensation()
            except Exception as err:
                logger.error(
                    f"{self.name}: compensation of '{step.name}' failed: {err}",
                )
            else:
                logger.info(f"{self.name}: compensated '{step.name}'")
