"""
Unit tests for log context binding.
"""
from typing import Any, Dict, List, Optional

import pytest
import structlog

from merchant_onboarding.config import Settings
from merchant_onboarding.core.models import Merchant, MerchantStatus
from merchant_onboarding.core.onboarding import OnboardingService
from merchant_onboarding.monitoring.logging import app_context_processor, log_operation

from .conftest import InMemoryMerchantRepository


class TestLogOperation:
    """Test suite for the log_operation decorator."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_binds_operation_and_merchant_id(self) -> None:
        @log_operation
        async def change_status(merchant_id: str, status: int) -> Dict[str, Any]:
            return structlog.contextvars.get_contextvars()

        before = structlog.contextvars.get_contextvars()
        context = await change_status("m-1", status=2)

        assert context == {"operation": "change_status", "merchant_id": "m-1"}
        assert structlog.contextvars.get_contextvars() == before

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_merchant_id_omitted_when_absent(self) -> None:
        @log_operation
        async def list_all(merchant_id: Optional[str] = None) -> Dict[str, Any]:
            return structlog.contextvars.get_contextvars()

        assert await list_all() == {"operation": "list_all"}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_context_unbound_after_failure(self) -> None:
        @log_operation
        async def failing(merchant_id: str) -> None:
            raise RuntimeError("boom")

        before = structlog.contextvars.get_contextvars()
        with pytest.raises(RuntimeError):
            await failing("m-1")

        assert structlog.contextvars.get_contextvars() == before

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_service_calls_run_with_merchant_context(
        self,
        onboarding_service: OnboardingService,
        merchants: InMemoryMerchantRepository,
        merchant: Merchant,
    ) -> None:
        await merchants.insert(merchant)
        seen: List[Dict[str, Any]] = []
        get_by_id = merchants.get_by_id

        async def recording_get_by_id(merchant_id: str) -> Optional[Merchant]:
            seen.append(structlog.contextvars.get_contextvars())
            return await get_by_id(merchant_id)

        merchants.get_by_id = recording_get_by_id  # type: ignore[method-assign]

        await onboarding_service.change_merchant_status(merchant.id, MerchantStatus.AGREEMENT_REQUESTED)

        assert seen == [{"operation": "change_merchant_status", "merchant_id": merchant.id}]


class TestAppContextProcessor:
    """Test suite for the application context processor."""

    @pytest.mark.unit
    def test_adds_name_and_environment(self) -> None:
        processor = app_context_processor(Settings(app_name="onboarding", app_env="staging"))

        event = processor(None, "info", {"event": "merchant_status_changed"})

        assert event == {
            "event": "merchant_status_changed",
            "app_name": "onboarding",
            "app_env": "staging",
        }

    @pytest.mark.unit
    def test_keeps_fields_set_by_the_event(self) -> None:
        processor = app_context_processor(Settings(app_env="staging"))

        event = processor(None, "info", {"event": "x", "app_env": "override"})

        assert event["app_env"] == "override"
