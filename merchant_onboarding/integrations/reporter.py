"""
Report service client used to generate merchant license agreements.

The service renders an agreement file from merchant parameters. A response
with a non-OK status carries the service's own error message, which is passed
on to the caller unchanged.
"""
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx
import structlog
from num2words import num2words

from merchant_onboarding.config import get_settings
from merchant_onboarding.core.errors import (
    ErrorCode,
    ErrorMessage,
    OnboardingError,
    ResponseStatus,
)
from merchant_onboarding.core.models import Merchant

logger = structlog.get_logger(__name__)

REPORT_FILE_PATH = "/api/v1/report_file"
REPORT_TYPE_AGREEMENT = "agreement"
OUTPUT_EXTENSION_PDF = "pdf"


def amount_in_words(amount: Decimal, currency: str) -> str:
    """Render an amount as ``"<words> (<digits>) <currency>"``, whole units only."""
    whole = int(amount)
    return f"{num2words(whole)} ({whole}) {currency}"


class ReporterClient:
    """
    HTTP client of the report service.

    Args:
        base_url: Report service base URL
        timeout: Request timeout in seconds
        dashboard_projects_url: Link rendered into the agreement
        client: Optional preconfigured httpx client (created per call otherwise)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        dashboard_projects_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url if base_url is not None else settings.reporter_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.reporter_timeout_seconds
        self.dashboard_projects_url = (
            dashboard_projects_url
            if dashboard_projects_url is not None
            else settings.dashboard_projects_url
        )
        self.client = client

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def agreement_params(self, merchant: Merchant) -> Dict[str, Any]:
        """Build the agreement template parameters of a merchant."""
        tariff = merchant.tariff
        payout_fee = Decimal("0")
        payout_fee_currency = merchant.payout_currency
        if tariff is not None and tariff.payout is not None:
            payout_fee = tariff.payout.fixed_fee
            payout_fee_currency = tariff.payout.fixed_fee_currency or payout_fee_currency

        company = merchant.company
        authorized = merchant.authorized

        return {
            "number": merchant.agreement_number,
            "legal_name": company.name if company else "",
            "address": company.full_address() if company else "",
            "registration_number": company.registration_number if company else "",
            "payout_cost": amount_in_words(payout_fee, payout_fee_currency),
            "minimal_payout_limit": amount_in_words(
                merchant.minimal_payout_limit, merchant.payout_currency
            ),
            "payout_currency": merchant.payout_currency,
            "ps_rate": [
                tier.model_dump(mode="json") for tier in (tariff.payment if tariff else [])
            ],
            "home_region": tariff.region if tariff else "",
            "merchant_authorized_name": authorized.name if authorized else "",
            "merchant_authorized_position": authorized.position if authorized else "",
            "projects_link": self.dashboard_projects_url,
        }

    async def create_agreement(self, merchant: Merchant) -> None:
        """
        Request agreement file generation for a merchant.

        Raises:
            OnboardingError: With the service's message if it answers with a
                non-OK status, with a generic message if the call itself fails
        """
        request = {
            "user_id": merchant.user_id,
            "merchant_id": merchant.id,
            "report_type": REPORT_TYPE_AGREEMENT,
            "file_type": OUTPUT_EXTENSION_PDF,
            "params": self.agreement_params(merchant),
            "send_notification": False,
        }

        try:
            body = await self._post(REPORT_FILE_PATH, request)
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                "reporter_call_failed",
                method="create_file",
                merchant_id=merchant.id,
                error=str(e),
            )
            raise OnboardingError(ErrorCode.MERCHANT_UNKNOWN, ResponseStatus.SYSTEM_ERROR) from e

        status = body.get("status", ResponseStatus.SYSTEM_ERROR)
        if status != ResponseStatus.OK:
            message = body.get("message") or {}
            logger.error(
                "reporter_call_rejected",
                method="create_file",
                merchant_id=merchant.id,
                status=status,
                error=message,
            )
            raise OnboardingError(
                ErrorCode.MERCHANT_UNKNOWN,
                ResponseStatus.SYSTEM_ERROR,
                message=ErrorMessage(
                    code=str(message.get("code", "")), message=str(message.get("message", ""))
                ),
            )

        logger.info("merchant_agreement_requested", merchant_id=merchant.id)

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if self.client is not None:
            response = await self.client.post(f"{self.base_url}{path}", json=payload)
            response.raise_for_status()
            return response.json()

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(f"{self.base_url}{path}", json=payload)
            response.raise_for_status()
            return response.json()
