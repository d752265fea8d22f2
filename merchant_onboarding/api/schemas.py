"""
Pydantic schemas for API request/response models.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from merchant_onboarding.core.models import FeeTier


class ChangeMerchantStatusRequest(BaseModel):
    """Request schema for a merchant status change."""

    status: int = Field(..., description="Requested merchant status code")
    message: Optional[str] = Field(
        default=None, description="Notification message replacing the status default"
    )

    model_config = {
        "json_schema_extra": {
            "examples": [{"status": 1, "message": None}]
        }
    }


class ChangeMerchantDataRequest(BaseModel):
    """Request schema for agreement and signature data updates."""

    has_psp_signature: bool = Field(default=False, description="Platform signed the agreement")
    has_merchant_signature: bool = Field(default=False, description="Merchant signed the agreement")
    agreement_type: Optional[int] = Field(
        default=None, ge=0, description="Agreement type (1 paper, 2 e-signature)"
    )


class SetMerchantTariffRatesRequest(BaseModel):
    """Request schema for merchant tariff materialization."""

    region: str = Field(..., min_length=1, description="Tariff region (e.g., CIS)")
    payout_currency: str = Field(..., min_length=3, max_length=3, description="Payout currency")
    amount_from: Optional[Decimal] = Field(default=None, description="Lower bound of the amount range")
    amount_to: Optional[Decimal] = Field(default=None, description="Upper bound of the amount range")

    @field_validator("payout_currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Validate currency format."""
        return v.upper()

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"region": "CIS", "payout_currency": "USD", "amount_from": "0.75", "amount_to": "5"}
            ]
        }
    }


class CreateNotificationRequest(BaseModel):
    """Request schema for a merchant notification."""

    title: str = Field(default="", description="Notification title")
    message: str = Field(default="", description="Notification text")
    user_id: Optional[str] = Field(
        default=None, description="Author (system notification when omitted)"
    )


class AddSystemFeesRequestSchema(BaseModel):
    """Request schema for a new system fee record."""

    method_id: str = Field(..., description="Payment method identifier")
    region: str = Field(default="", description="Region (empty for all regions)")
    card_brand: str = Field(default="", description="Card brand, bank card methods only")
    fees: List[FeeTier] = Field(default_factory=list, description="Fee tiers")
    user_id: str = Field(default="", description="Author")


class SetPayoutCostSystemRequest(BaseModel):
    fix_amount: Decimal = Field(..., description="Fixed payout cost")
    fix_amount_currency: str = Field(..., description="Currency of the fixed payout cost")


class OnboardingResponseSchema(BaseModel):
    """Categorized operation response."""

    status: int = Field(..., description="Response status (200, 400, 403, 404, 500)")
    message: Optional[Dict[str, str]] = Field(default=None, description="Error code and message")
    item: Optional[Any] = Field(default=None, description="Operation result")


class HealthCheckResponse(BaseModel):
    """Response schema for health checks."""

    status: str = Field(..., description="Overall health status")
    checks: Optional[Dict[str, Any]] = Field(default=None, description="Individual checks")
    message: Optional[str] = Field(default=None, description="Status message")
