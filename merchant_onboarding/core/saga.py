"""
Step log for multi-step, non-atomic workflows.

Steps run in order against a shared context. The first failing step stops the
run and its error is re-raised to the caller: steps that already completed
stay committed unless they registered a compensating action. The log of
completed steps is kept and logged so partial application can be diagnosed.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog

logger = structlog.get_logger(__name__)

ForwardAction = Callable[[Dict[str, Any]], Awaitable[Any]]
CompensatingAction = Callable[[Dict[str, Any], Any], Awaitable[None]]


class SagaState(Enum):
    """Saga execution states."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    COMPENSATING = "compensating"
    COMPENSATED = "compensated"
    FAILED = "failed"


class StepStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    COMPENSATED = "compensated"


class SagaStep:
    """
    A single step of a saga.

    Args:
        name: Step name, used as the context key of its result
        forward_action: Async function receiving the shared context
        compensating_action: Async function receiving the context and the
            step result; None when the step cannot be undone
    """

    def __init__(
        self,
        name: str,
        forward_action: ForwardAction,
        compensating_action: Optional[CompensatingAction] = None,
    ):
        self.name = name
        self.forward_action = forward_action
        self.compensating_action = compensating_action
        self.status = StepStatus.PENDING
        self.result: Optional[Any] = None
        self.error: Optional[str] = None

    async def execute(self, context: Dict[str, Any]) -> Any:
        logger.debug("saga_step_executing", step=self.name)

        try:
            self.result = await self.forward_action(context)
        except Exception as e:
            self.status = StepStatus.FAILED
            self.error = str(e)
            logger.error("saga_step_failed", step=self.name, error=str(e))
            raise

        self.status = StepStatus.COMPLETED
        logger.debug("saga_step_completed", step=self.name)
        return self.result

    async def compensate(self, context: Dict[str, Any]) -> None:
        if self.compensating_action is None or self.status != StepStatus.COMPLETED:
            return

        logger.info("saga_step_compensating", step=self.name)

        try:
            await self.compensating_action(context, self.result)
        except Exception as e:
            # Left for manual repair; the original failure is what the caller sees
            logger.error("saga_step_compensation_failed", step=self.name, error=str(e))
            return

        self.status = StepStatus.COMPENSATED


class Saga:
    """
    Ordered, fail-fast sequence of steps.

    Unlike a transaction, a failed saga leaves every completed step without a
    compensating action in place. ``completed_steps`` reports which ones.
    """

    def __init__(self, name: str, context: Optional[Dict[str, Any]] = None):
        self.saga_id = str(uuid.uuid4())
        self.name = name
        self.steps: List[SagaStep] = []
        self.state = SagaState.PENDING
        self.context: Dict[str, Any] = context if context is not None else {}
        self.created_at = datetime.now(timezone.utc)
        self.completed_at: Optional[datetime] = None

    def add_step(
        self,
        name: str,
        forward_action: ForwardAction,
        compensating_action: Optional[CompensatingAction] = None,
    ) -> "Saga":
        """
        Add a step to the saga.

        Returns:
            Saga: Self for method chaining
        """
        self.steps.append(SagaStep(name, forward_action, compensating_action))
        return self

    @property
    def completed_steps(self) -> List[str]:
        return [step.name for step in self.steps if step.status == StepStatus.COMPLETED]

    async def execute(self) -> Dict[str, Any]:
        """
        Run every step in order.

        Returns:
            Dict[str, Any]: Shared context, holding ``<step>_result`` entries

        Raises:
            Exception: The error of the first failing step, after compensation
        """
        logger.info("saga_execution_started", saga_id=self.saga_id, name=self.name)
        self.state = SagaState.IN_PROGRESS

        for step in self.steps:
            try:
                result = await step.execute(self.context)
            except Exception as e:
                logger.error(
                    "saga_execution_failed",
                    saga_id=self.saga_id,
                    name=self.name,
                    failed_step=step.name,
                    completed_steps=self.completed_steps,
                    error=str(e),
                )
                await self._compensate()
                self.completed_at = datetime.now(timezone.utc)
                raise

            self.context[f"{step.name}_result"] = result

        self.state = SagaState.COMPLETED
        self.completed_at = datetime.now(timezone.utc)
        logger.info(
            "saga_completed_successfully",
            saga_id=self.saga_id,
            name=self.name,
            steps_completed=len(self.steps),
        )
        return self.context

    async def _compensate(self) -> None:
        compensable = [
            step
            for step in self.steps
            if step.status == StepStatus.COMPLETED and step.compensating_action is not None
        ]
        if not compensable:
            self.state = SagaState.FAILED
            return

        self.state = SagaState.COMPENSATING
        for step in reversed(compensable):
            await step.compensate(self.context)
        self.state = SagaState.COMPENSATED
