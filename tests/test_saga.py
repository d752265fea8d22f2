"""
Unit tests for the step log.
"""
from typing import Any, Dict, List

import pytest

from merchant_onboarding.core.saga import Saga, SagaState, StepStatus


def step(log: List[str], name: str, fail: bool = False):
    async def action(ctx: Dict[str, Any]) -> str:
        if fail:
            raise RuntimeError(f"{name} failed")
        log.append(name)
        return name.upper()

    return action


class TestSaga:
    """Test suite for Saga."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_steps_run_in_order(self) -> None:
        log: List[str] = []
        saga = Saga("ordered", {"merchant_id": "m"}).add_step("a", step(log, "a")).add_step("b", step(log, "b"))

        context = await saga.execute()

        assert log == ["a", "b"]
        assert context["a_result"] == "A"
        assert context["merchant_id"] == "m"
        assert saga.state == SagaState.COMPLETED

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failure_stops_run_and_keeps_completed_steps(self) -> None:
        log: List[str] = []
        saga = (
            Saga("partial")
            .add_step("a", step(log, "a"))
            .add_step("b", step(log, "b", fail=True))
            .add_step("c", step(log, "c"))
        )

        with pytest.raises(RuntimeError, match="b failed"):
            await saga.execute()

        assert log == ["a"]
        assert saga.completed_steps == ["a"]
        assert saga.steps[1].status == StepStatus.FAILED
        assert saga.steps[2].status == StepStatus.PENDING
        assert saga.state == SagaState.FAILED

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_registered_compensation_runs(self) -> None:
        log: List[str] = []

        async def undo(ctx: Dict[str, Any], result: Any) -> None:
            log.append(f"undo {result}")

        saga = (
            Saga("compensated")
            .add_step("a", step(log, "a"), undo)
            .add_step("b", step(log, "b", fail=True))
        )

        with pytest.raises(RuntimeError):
            await saga.execute()

        assert log == ["a", "undo A"]
        assert saga.steps[0].status == StepStatus.COMPENSATED
        assert saga.state == SagaState.COMPENSATED
