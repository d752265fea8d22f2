"""
API tests running the FastAPI app against in-memory services.
"""
from decimal import Decimal
from typing import Any, AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from merchant_onboarding.api.dependencies import (
    get_health_check,
    get_onboarding_service,
    get_payout_cost_service,
    get_system_fee_service,
)
from merchant_onboarding.api.main import app
from merchant_onboarding.core.models import Merchant, MerchantStatus, PaymentMethod, new_id
from merchant_onboarding.core.onboarding import OnboardingService
from merchant_onboarding.core.payout_costs import PayoutCostService
from merchant_onboarding.core.system_fees import SystemFeeService

from .conftest import InMemoryMerchantRepository


@pytest.fixture
def health_check() -> MagicMock:
    check = MagicMock()
    check.check_all = AsyncMock(return_value={"status": "healthy", "checks": {}})
    check.liveness = AsyncMock(return_value={"status": "alive", "message": "Application is running"})
    check.readiness = AsyncMock(return_value={"status": "unhealthy", "checks": {}})
    return check


@pytest_asyncio.fixture
async def client(
    onboarding_service: OnboardingService,
    system_fee_service: SystemFeeService,
    payout_cost_service: PayoutCostService,
    health_check: MagicMock,
) -> AsyncGenerator[AsyncClient, Any]:
    """Create test HTTP client."""
    app.dependency_overrides[get_onboarding_service] = lambda: onboarding_service
    app.dependency_overrides[get_system_fee_service] = lambda: system_fee_service
    app.dependency_overrides[get_payout_cost_service] = lambda: payout_cost_service
    app.dependency_overrides[get_health_check] = lambda: health_check

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


class TestMerchantEndpoints:
    """Merchant status, tariff and notification endpoints."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_change_status(
        self, client: AsyncClient, merchants: InMemoryMerchantRepository, merchant: Merchant
    ) -> None:
        await merchants.insert(merchant)

        response = await client.patch(
            f"/merchants/{merchant.id}/status", json={"status": MerchantStatus.AGREEMENT_REQUESTED}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == 200
        assert data["item"]["status"] == MerchantStatus.AGREEMENT_REQUESTED
        assert response.headers["X-Request-ID"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_rejected_status_change_uses_response_status(
        self, client: AsyncClient, merchants: InMemoryMerchantRepository, merchant: Merchant
    ) -> None:
        await merchants.insert(merchant)

        response = await client.patch(
            f"/merchants/{merchant.id}/status", json={"status": MerchantStatus.AGREEMENT_SIGNED}
        )

        assert response.status_code == 400
        assert response.json()["message"]["code"] == "mr000029"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_merchant_is_404(self, client: AsyncClient) -> None:
        response = await client.patch(f"/merchants/{new_id()}/data", json={"has_psp_signature": True})

        assert response.status_code == 404
        assert response.json()["message"]["code"] == "mr000009"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_set_tariffs_and_list_costs(
        self, client: AsyncClient, merchants: InMemoryMerchantRepository, merchant: Merchant
    ) -> None:
        await merchants.insert(merchant)

        response = await client.post(
            f"/merchants/{merchant.id}/tariffs",
            json={"region": "CIS", "payout_currency": "usd", "amount_from": "0.75", "amount_to": "5"},
        )
        assert response.status_code == 200
        assert response.json()["item"]["banking"]["currency"] == "USD"

        costs = await client.get(f"/merchants/{merchant.id}/costs/payment_channel")
        assert len(costs.json()["item"]) == 2

        money_back = await client.get(f"/merchants/{merchant.id}/costs/money_back")
        assert len(money_back.json()["item"]) == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_notification_lifecycle(
        self, client: AsyncClient, merchants: InMemoryMerchantRepository, merchant: Merchant
    ) -> None:
        await merchants.insert(merchant)

        created = await client.post(
            f"/merchants/{merchant.id}/notifications", json={"title": "Hi", "message": "Welcome"}
        )
        notification_id = created.json()["item"]["id"]

        listed = await client.get(f"/merchants/{merchant.id}/notifications", params={"is_system": True})
        assert listed.json()["item"]["count"] == 1

        read = await client.put(f"/merchants/{merchant.id}/notifications/{notification_id}/read")
        assert read.status_code == 200
        assert read.json()["is_read"] is True

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_notification_is_404(self, client: AsyncClient) -> None:
        response = await client.get(f"/merchants/{new_id()}/notifications/{new_id()}")

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "mr000015"


class TestTariffAndFeeEndpoints:
    """Tariff lookup, system fee and payout cost endpoints."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_tariff_lookup(self, client: AsyncClient) -> None:
        response = await client.get(
            "/tariff_rates", params={"region": "CIS", "payout_currency": "USD", "amount_from": "0.75", "amount_to": "5"}
        )

        assert response.status_code == 200
        assert len(response.json()["item"][0]["payment"]) == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_system_fees_for_payment(
        self, client: AsyncClient, bank_card_method: PaymentMethod
    ) -> None:
        added = await client.post(
            "/system_fees",
            json={
                "method_id": bank_card_method.id,
                "region": "EU",
                "card_brand": "VISA",
                "fees": [
                    {"min_amounts": {"EUR": "0"}, "transaction_cost": {"percent": "3", "fix_amount": "0.1"}},
                    {"min_amounts": {"EUR": "100"}, "transaction_cost": {"percent": "2", "fix_amount": "0.1"}},
                ],
            },
        )
        assert added.status_code == 200

        matched = await client.get(
            "/system_fees/payment",
            params={
                "method_id": bank_card_method.id,
                "region": "EU",
                "card_brand": "VISA",
                "currency": "EUR",
                "amount": "150",
            },
        )
        assert matched.status_code == 200
        assert Decimal(matched.json()["transaction_cost"]["percent"]) == Decimal("2")

        unmatched = await client.get(
            "/system_fees/payment",
            params={"method_id": bank_card_method.id, "region": "EU", "card_brand": "VISA", "currency": "USD", "amount": "150"},
        )
        assert unmatched.status_code == 404
        assert unmatched.json()["detail"]["code"] == "sf000005"

        active = await client.get("/system_fees")
        assert len(active.json()) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_payout_cost_system(self, client: AsyncClient) -> None:
        missing = await client.get("/payout_cost_system")
        assert missing.status_code == 404

        stored = await client.put("/payout_cost_system", json={"fix_amount": "25", "fix_amount_currency": "EUR"})
        assert stored.status_code == 200

        current = await client.get("/payout_cost_system")
        assert current.json()["item"]["fix_amount_currency"] == "EUR"


class TestMonitoringEndpoints:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_readiness_unhealthy_is_503(self, client: AsyncClient) -> None:
        response = await client.get("/health/ready")

        assert response.status_code == 503

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_metrics_endpoint(self, client: AsyncClient) -> None:
        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "text/plain" in response.headers["content-type"]
