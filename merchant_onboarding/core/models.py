"""
Domain models of the onboarding core.

Merchants, tariff templates, materialized merchant costs, system fees and
notifications. Money amounts are ``Decimal``; percents on tariff templates are
human percents (``4.5`` means 4.5%), percents on materialized merchant costs
are fractions (``0.045``).
"""
import uuid
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import IntEnum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def is_valid_id(value: Optional[str]) -> bool:
    """Check that an identifier is a well-formed UUID string."""
    if not value:
        return False
    try:
        uuid.UUID(value)
    except (ValueError, AttributeError, TypeError):
        return False
    return True


def format_amount(value: Decimal, precision: int = 2) -> Decimal:
    """Round an amount to the canonical precision."""
    return Decimal(value).quantize(Decimal(1).scaleb(-precision), rounding=ROUND_HALF_UP)


def agreement_number(merchant_id: str, now: Optional[datetime] = None) -> str:
    """Agreement number: ``MMDD-NNN``, the suffix derived from the merchant id."""
    now = now or datetime.now(timezone.utc)
    suffix = int(uuid.UUID(merchant_id).hex[-6:], 16) % 1000
    return f"{now:%m%d}-{suffix:03d}"


class MerchantStatus(IntEnum):
    """Merchant onboarding lifecycle states."""

    DRAFT = 0
    AGREEMENT_REQUESTED = 1
    ON_REVIEW = 2
    AGREEMENT_SIGNING = 3
    AGREEMENT_SIGNED = 4
    DELETED = 5
    REJECTED = 6


class AgreementType(IntEnum):
    NONE = 0
    PAPER = 1
    E_SIGN = 2


# Tariff templates

class TariffPaymentTier(BaseModel):
    """Payment fee tier of a tariff template, valid for amounts in [min_amount, max_amount)."""

    method_name: str
    payout_currency: str
    min_amount: Decimal
    max_amount: Decimal
    country: str = ""
    position: int = 0
    method_percent_fee: Decimal = Decimal("0")
    method_fixed_fee: Decimal = Decimal("0")
    method_fixed_fee_currency: str = ""
    ps_percent_fee: Decimal = Decimal("0")
    ps_fixed_fee: Decimal = Decimal("0")
    ps_fixed_fee_currency: str = ""


class TariffMoneyBackTier(BaseModel):
    method_name: str
    country: str = ""
    undo_reason: str = "reversal"
    days_from: int = 0
    days_to: int = 0
    payment_stage: int = 1
    percent_fee: Decimal = Decimal("0")
    fixed_fee: Decimal = Decimal("0")
    fixed_fee_currency: str = ""
    is_paid_by_merchant: bool = False


class TariffFixedCost(BaseModel):
    fixed_fee: Decimal = Decimal("0")
    fixed_fee_currency: str = ""
    is_paid_by_merchant: bool = True


class TariffRate(BaseModel):
    """Region-scoped generic tariff template."""

    id: str = Field(default_factory=new_id)
    region: str
    payment: List[TariffPaymentTier] = Field(default_factory=list)
    money_back: List[TariffMoneyBackTier] = Field(default_factory=list)
    payout: Optional[TariffFixedCost] = None
    chargeback: Optional[TariffFixedCost] = None


# Merchant

class MerchantBanking(BaseModel):
    currency: str = ""
    name: str = ""
    address: str = ""
    account_number: str = ""
    swift: str = ""
    details: str = ""


class MerchantCompany(BaseModel):
    name: str = ""
    country: str = ""
    address: str = ""
    city: str = ""
    zip: str = ""
    registration_number: str = ""

    def full_address(self) -> str:
        return ", ".join(part for part in (self.address, self.city, self.country, self.zip) if part)


class MerchantAuthorizedContact(BaseModel):
    name: str = ""
    email: str = ""
    position: str = ""


class MerchantPaymentMethodCommission(BaseModel):
    fee: Decimal = Decimal("0")
    per_transaction_fee: Decimal = Decimal("0")
    per_transaction_currency: str = ""


class MerchantPaymentMethodIntegration(BaseModel):
    terminal_id: str = ""
    terminal_password: str = ""
    terminal_callback_password: str = ""
    integrated: bool = False


class MerchantPaymentMethodSettings(BaseModel):
    """Per-method commission and integration settings of a merchant."""

    payment_method_id: str
    name: str = ""
    commission: MerchantPaymentMethodCommission = Field(
        default_factory=MerchantPaymentMethodCommission
    )
    integration: MerchantPaymentMethodIntegration = Field(
        default_factory=MerchantPaymentMethodIntegration
    )
    is_active: bool = True


class MerchantTariff(BaseModel):
    """Tariff tiers the merchant costs were materialized from."""

    region: str
    payout_currency: str
    payment: List[TariffPaymentTier] = Field(default_factory=list)
    money_back: List[TariffMoneyBackTier] = Field(default_factory=list)
    payout: Optional[TariffFixedCost] = None
    chargeback: Optional[TariffFixedCost] = None


class Merchant(BaseModel):
    """
    Merchant account under onboarding.

    ``status`` is kept as a plain integer: records written by other services
    may carry codes this core has no name for.
    """

    id: str = Field(default_factory=new_id)
    name: str = ""
    user_id: str = ""
    status: int = MerchantStatus.DRAFT
    status_last_updated_at: Optional[datetime] = None
    agreement_type: int = AgreementType.NONE
    agreement_number: str = ""
    has_merchant_signature: bool = False
    has_psp_signature: bool = False
    is_signed: bool = False
    received_date: Optional[datetime] = None
    company: Optional[MerchantCompany] = None
    authorized: Optional[MerchantAuthorizedContact] = None
    banking: Optional[MerchantBanking] = None
    payment_methods: Dict[str, MerchantPaymentMethodSettings] = Field(default_factory=dict)
    tariff: Optional[MerchantTariff] = None
    minimal_payout_limit: Decimal = Decimal("0")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def payout_currency(self) -> str:
        if self.banking is None:
            return ""
        return self.banking.currency

    def is_fully_signed(self) -> bool:
        return self.has_merchant_signature and self.has_psp_signature

    def changes_allowed(self) -> bool:
        """Onboarding data (and tariffs) may only change while in draft."""
        return self.status == MerchantStatus.DRAFT

    def can_change_status_to_signing(self) -> bool:
        """An agreement type must be chosen and the document not yet fully signed."""
        return self.agreement_type != AgreementType.NONE and not self.is_fully_signed()

    def has_tariff(self) -> bool:
        return self.tariff is not None and len(self.tariff.payment) > 0

    def is_data_complete(self) -> bool:
        return (
            self.company is not None
            and bool(self.company.name and self.company.country)
            and self.authorized is not None
            and bool(self.authorized.name)
            and bool(self.payout_currency)
            and self.has_tariff()
        )

    def reset_agreement(self) -> None:
        """Forget the agreement type and every signature."""
        self.agreement_type = AgreementType.NONE
        self.has_merchant_signature = False
        self.has_psp_signature = False
        self.is_signed = False


# Materialized merchant costs

class MerchantPaymentChannelCost(BaseModel):
    id: str = Field(default_factory=new_id)
    merchant_id: str
    name: str
    payout_currency: str
    min_amount: Decimal
    max_amount: Decimal
    region: str
    country: str = ""
    method_percent: Decimal = Decimal("0")
    method_fix_amount: Decimal = Decimal("0")
    method_fix_amount_currency: str = ""
    ps_percent: Decimal = Decimal("0")
    ps_fixed_fee: Decimal = Decimal("0")
    ps_fixed_fee_currency: str = ""
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class MerchantMoneyBackCost(BaseModel):
    id: str = Field(default_factory=new_id)
    merchant_id: str
    name: str
    payout_currency: str
    undo_reason: str
    region: str
    country: str = ""
    days_from: int = 0
    days_to: int = 0
    payment_stage: int = 1
    percent: Decimal = Decimal("0")
    fix_amount: Decimal = Decimal("0")
    fix_amount_currency: str = ""
    is_paid_by_merchant: bool = False
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# System fees

class PaymentMethod(BaseModel):
    id: str
    name: str
    group_alias: str = ""
    is_active: bool = True

    def is_bank_card(self, bank_card_group_alias: str = "BANKCARD") -> bool:
        return self.group_alias == bank_card_group_alias


class FeeAmount(BaseModel):
    percent: Decimal = Decimal("0")
    fix_amount: Decimal = Decimal("0")


class FeeTier(BaseModel):
    """One tier of a system fee set, selected by its per-currency minimum amount."""

    min_amounts: Dict[str, Decimal] = Field(default_factory=dict)
    transaction_cost: FeeAmount = Field(default_factory=FeeAmount)
    authorization_fee: FeeAmount = Field(default_factory=FeeAmount)


class SystemFees(BaseModel):
    id: str = Field(default_factory=new_id)
    method_id: str
    region: str = ""
    card_brand: str = ""
    fees: List[FeeTier] = Field(default_factory=list)
    user_id: str = ""
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class FeeSet(BaseModel):
    """Fee tier selected for a single payment."""

    min_amounts: Dict[str, Decimal]
    transaction_cost: FeeAmount
    authorization_fee: FeeAmount


class PayoutCostSystem(BaseModel):
    id: str = Field(default_factory=new_id)
    fix_amount: Decimal
    fix_amount_currency: str
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)


# Notifications

class NotificationStatusChange(BaseModel):
    from_status: int
    to_status: int


class Notification(BaseModel):
    id: str = Field(default_factory=new_id)
    merchant_id: str
    user_id: Optional[str] = None
    title: str = ""
    message: str
    is_system: bool = False
    is_read: bool = False
    statuses: Optional[NotificationStatusChange] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class NotificationPage(BaseModel):
    count: int = 0
    items: List[Notification] = Field(default_factory=list)
