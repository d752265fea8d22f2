"""
Unit tests for the report service client.
"""
import json
from decimal import Decimal

import httpx
import pytest

from merchant_onboarding.core.errors import ErrorCode, OnboardingError, ResponseStatus
from merchant_onboarding.core.models import Merchant, MerchantTariff, TariffFixedCost
from merchant_onboarding.integrations.reporter import ReporterClient, amount_in_words


def reporter(handler) -> ReporterClient:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ReporterClient(
        base_url="http://reporter.test/",
        timeout=1.0,
        dashboard_projects_url="https://dashboard.test/projects",
        client=client,
    )


@pytest.fixture
def tariffed_merchant(merchant: Merchant, cis_tariff) -> Merchant:
    merchant.banking.currency = "USD"
    merchant.agreement_number = "0101-001"
    merchant.tariff = MerchantTariff(
        region="CIS",
        payout_currency="USD",
        payment=cis_tariff.payment,
        payout=TariffFixedCost(fixed_fee=Decimal("25"), fixed_fee_currency="EUR"),
    )
    return merchant


class TestAmountInWords:
    @pytest.mark.unit
    def test_whole_units_with_digits(self) -> None:
        assert amount_in_words(Decimal("25.90"), "EUR") == "twenty-five (25) EUR"


class TestReporterClient:
    """Test suite for ReporterClient."""

    @pytest.mark.unit
    def test_disabled_without_url(self) -> None:
        assert ReporterClient(base_url="").enabled is False

    @pytest.mark.unit
    def test_agreement_params(self, tariffed_merchant: Merchant) -> None:
        params = reporter(lambda request: httpx.Response(200)).agreement_params(tariffed_merchant)

        assert params["number"] == "0101-001"
        assert params["legal_name"] == "Unit Test LLC"
        assert params["address"] == "Lenina 1, Moscow, RU, 190000"
        assert params["payout_cost"] == "twenty-five (25) EUR"
        assert params["minimal_payout_limit"] == "one thousand (1000) USD"
        assert params["home_region"] == "CIS"
        assert len(params["ps_rate"]) == 3
        assert params["projects_link"] == "https://dashboard.test/projects"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_create_agreement_posts_report_request(self, tariffed_merchant: Merchant) -> None:
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"status": 200})

        await reporter(handler).create_agreement(tariffed_merchant)

        assert len(requests) == 1
        assert str(requests[0].url) == "http://reporter.test/api/v1/report_file"
        body = json.loads(requests[0].content)
        assert body["merchant_id"] == tariffed_merchant.id
        assert body["report_type"] == "agreement"
        assert body["file_type"] == "pdf"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_rejection_carries_service_message(self, tariffed_merchant: Merchant) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={"status": 400, "message": {"code": "rp000004", "message": "template not found"}},
            )

        with pytest.raises(OnboardingError) as exc_info:
            await reporter(handler).create_agreement(tariffed_merchant)

        assert exc_info.value.message.code == "rp000004"
        assert exc_info.value.message.message == "template not found"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_transport_failure_is_system_error(self, tariffed_merchant: Merchant) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(OnboardingError) as exc_info:
            await reporter(handler).create_agreement(tariffed_merchant)

        assert exc_info.value.code == ErrorCode.MERCHANT_UNKNOWN
        assert exc_info.value.status == ResponseStatus.SYSTEM_ERROR
        assert exc_info.value.message is None
