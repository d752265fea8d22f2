"""
System fee table.

Fee records are versioned per (method, region, card brand): writing a new
record deactivates the active one and the cache entry of the key is replaced.
"""
from decimal import Decimal
from typing import List, Optional, Protocol

import structlog
from pydantic import BaseModel, Field, TypeAdapter

from ..cache.access import InvalidatedCache
from ..cache.backend import CacheBackend, CacheError
from ..cache.keys import system_fees_key
from ..config import Settings, get_settings
from ..monitoring.metrics import metrics
from .errors import (
    DEFAULT_ERROR_REGISTRY,
    ErrorCode,
    ErrorRegistry,
    OnboardingError,
    OnboardingResponse,
    ResponseStatus,
    StorageError,
)
from .fee_matcher import match_fee_tier
from .models import FeeAmount, FeeSet, FeeTier, PaymentMethod, SystemFees, format_amount, is_valid_id

logger = structlog.get_logger(__name__)

SYSTEM_FEES_ADAPTER = TypeAdapter(SystemFees)


class SystemFeesRepository(Protocol):
    async def get_active(self, method_id: str, region: str, card_brand: str) -> Optional[SystemFees]:
        ...

    async def deactivate(self, method_id: str, region: str, card_brand: str) -> int:
        ...

    async def insert(self, fees: SystemFees) -> None:
        ...

    async def find_active(self) -> List[SystemFees]:
        ...


class PaymentMethodRepository(Protocol):
    async def get_by_id(self, method_id: str) -> Optional[PaymentMethod]:
        ...


class AddSystemFeesRequest(BaseModel):
    method_id: str
    region: str = ""
    card_brand: str = ""
    fees: List[FeeTier] = Field(default_factory=list)
    user_id: str = ""


class SystemFeeService:
    """Write and read paths of the system fee table."""

    def __init__(
        self,
        repository: SystemFeesRepository,
        payment_methods: PaymentMethodRepository,
        cache: CacheBackend,
        settings: Optional[Settings] = None,
        registry: ErrorRegistry = DEFAULT_ERROR_REGISTRY,
    ):
        self.repository = repository
        self.payment_methods = payment_methods
        self.settings = settings or get_settings()
        self.registry = registry
        self.cache: InvalidatedCache[SystemFees] = InvalidatedCache(cache, SYSTEM_FEES_ADAPTER)

    async def add_system_fees(self, request: AddSystemFeesRequest) -> OnboardingResponse:
        """
        Store a new active fee record for a (method, region, card brand) key.

        Returns:
            OnboardingResponse: Created record, or the categorized error
        """
        try:
            fees = await self._add_system_fees(request)
        except OnboardingError as e:
            logger.warning(
                "system_fees_add_rejected",
                method_id=request.method_id,
                region=request.region,
                card_brand=request.card_brand,
                error_code=e.code.value,
            )
            metrics.record_system_fees_write(e.status)
            return OnboardingResponse.from_error(e, self.registry)
        except (StorageError, CacheError) as e:
            logger.error(
                "system_fees_add_failed",
                method_id=request.method_id,
                region=request.region,
                card_brand=request.card_brand,
                error=str(e),
            )
            metrics.record_system_fees_write(ResponseStatus.SYSTEM_ERROR)
            return OnboardingResponse.from_error(
                OnboardingError(ErrorCode.SYSTEM_FEE_UNKNOWN, ResponseStatus.SYSTEM_ERROR),
                self.registry,
            )

        metrics.record_system_fees_write(ResponseStatus.OK)
        return OnboardingResponse.ok(fees)

    async def _add_system_fees(self, request: AddSystemFeesRequest) -> SystemFees:
        if request.region and request.region not in self.settings.system_fee_regions:
            raise OnboardingError(ErrorCode.SYSTEM_FEE_REGION_INVALID)

        method = None
        if is_valid_id(request.method_id):
            method = await self.payment_methods.get_by_id(request.method_id)
        if method is None:
            raise OnboardingError(ErrorCode.SYSTEM_FEE_PAYMENT_METHOD_NOT_FOUND, ResponseStatus.NOT_FOUND)

        if method.is_bank_card(self.settings.bank_card_group_alias):
            if not request.card_brand:
                raise OnboardingError(ErrorCode.SYSTEM_FEE_CARD_BRAND_REQUIRED)
            if request.card_brand not in self.settings.card_brands:
                raise OnboardingError(ErrorCode.SYSTEM_FEE_CARD_BRAND_INVALID)
        elif request.card_brand:
            raise OnboardingError(ErrorCode.SYSTEM_FEE_CARD_BRAND_NOT_ALLOWED)

        if not request.fees:
            raise OnboardingError(ErrorCode.SYSTEM_FEE_REQUIRED_FEE_SET)

        fees = SystemFees(
            method_id=request.method_id,
            region=request.region,
            card_brand=request.card_brand,
            fees=[self._normalize(tier) for tier in request.fees],
            user_id=request.user_id,
        )

        await self.repository.deactivate(fees.method_id, fees.region, fees.card_brand)
        await self.repository.insert(fees)
        await self.cache.put(system_fees_key(fees.method_id, fees.region, fees.card_brand), fees)

        logger.info(
            "system_fees_added",
            system_fees_id=fees.id,
            method_id=fees.method_id,
            region=fees.region,
            card_brand=fees.card_brand,
            tiers=len(fees.fees),
        )
        return fees

    def _normalize(self, tier: FeeTier) -> FeeTier:
        precision = self.settings.amount_precision

        def amount(value: FeeAmount) -> FeeAmount:
            return FeeAmount(
                percent=format_amount(value.percent, precision),
                fix_amount=format_amount(value.fix_amount, precision),
            )

        return FeeTier(
            min_amounts={
                currency: format_amount(value, precision)
                for currency, value in tier.min_amounts.items()
            },
            transaction_cost=amount(tier.transaction_cost),
            authorization_fee=amount(tier.authorization_fee),
        )

    async def find(self, method_id: str, region: str, card_brand: str) -> SystemFees:
        """
        Get the active fee record of a key, cache first.

        Raises:
            OnboardingError: If no active record exists
            StorageError: If the store lookup fails
            CacheError: If the cache cannot be read or populated
        """
        key = system_fees_key(method_id, region, card_brand)
        fees = await self.cache.get(key)
        if fees is not None:
            return fees

        fees = await self.repository.get_active(method_id, region, card_brand)
        if fees is None:
            raise OnboardingError(ErrorCode.SYSTEM_FEE_NOT_FOUND, ResponseStatus.NOT_FOUND)

        await self.cache.put(key, fees)
        return fees

    async def get_for_payment(
        self, method_id: str, region: str, card_brand: str, currency: str, amount: Decimal
    ) -> FeeSet:
        """
        Price a payment authorization.

        Errors are raised to the caller rather than returned as a response.

        Raises:
            OnboardingError: If no fee record or no qualifying tier exists
        """
        try:
            fees = await self.find(method_id, region, card_brand)
        except OnboardingError:
            metrics.record_fee_match("not_found")
            raise

        try:
            fee_set = match_fee_tier(fees.fees, currency, amount)
        except OnboardingError:
            metrics.record_fee_match("no_min_amount")
            logger.info(
                "system_fees_min_amount_not_matched",
                system_fees_id=fees.id,
                currency=currency,
                amount=str(amount),
            )
            raise

        metrics.record_fee_match("matched")
        return fee_set

    async def list_active(self) -> List[SystemFees]:
        return await self.repository.find_active()
