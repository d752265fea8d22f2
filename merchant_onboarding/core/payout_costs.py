"""Platform-wide payout cost setting, a single active record."""
from decimal import Decimal
from typing import Optional, Protocol

import structlog
from pydantic import TypeAdapter

from ..cache.access import InvalidatedCache
from ..cache.backend import CacheBackend, CacheError
from ..cache.keys import PAYOUT_COST_SYSTEM_KEY
from .errors import (
    DEFAULT_ERROR_REGISTRY,
    ErrorCode,
    ErrorRegistry,
    OnboardingError,
    OnboardingResponse,
    ResponseStatus,
    StorageError,
)
from .models import PayoutCostSystem, format_amount

logger = structlog.get_logger(__name__)

PAYOUT_COST_SYSTEM_ADAPTER = TypeAdapter(PayoutCostSystem)


class PayoutCostSystemRepository(Protocol):
    async def get_active(self) -> Optional[PayoutCostSystem]:
        ...

    async def deactivate_all(self) -> int:
        ...

    async def insert(self, record: PayoutCostSystem) -> None:
        ...


class PayoutCostService:
    """Write-through cached payout cost setting under a singleton key."""

    def __init__(
        self,
        repository: PayoutCostSystemRepository,
        cache: CacheBackend,
        registry: ErrorRegistry = DEFAULT_ERROR_REGISTRY,
    ):
        self.repository = repository
        self.cache: InvalidatedCache[PayoutCostSystem] = InvalidatedCache(
            cache, PAYOUT_COST_SYSTEM_ADAPTER
        )
        self.registry = registry

    async def set_payout_cost_system(
        self, fix_amount: Decimal, fix_amount_currency: str
    ) -> OnboardingResponse:
        """
        Replace the active payout cost setting.

        Returns:
            OnboardingResponse: New record, or the categorized error
        """
        if fix_amount < 0 or len(fix_amount_currency) != 3:
            return OnboardingResponse.from_error(
                OnboardingError(ErrorCode.PAYOUT_COST_SYSTEM_BAD_DATA), self.registry
            )

        record = PayoutCostSystem(
            fix_amount=format_amount(fix_amount),
            fix_amount_currency=fix_amount_currency.upper(),
        )

        try:
            await self.repository.deactivate_all()
            await self.repository.insert(record)
            await self.cache.put(PAYOUT_COST_SYSTEM_KEY, record)
        except (StorageError, CacheError) as e:
            logger.error("payout_cost_system_set_failed", error=str(e))
            return OnboardingResponse.from_error(
                OnboardingError(ErrorCode.PAYOUT_COST_SYSTEM_UNKNOWN, ResponseStatus.SYSTEM_ERROR),
                self.registry,
            )

        logger.info(
            "payout_cost_system_set",
            payout_cost_system_id=record.id,
            fix_amount=str(record.fix_amount),
            currency=record.fix_amount_currency,
        )
        return OnboardingResponse.ok(record)

    async def get_payout_cost_system(self) -> OnboardingResponse:
        try:
            record = await self.cache.get(PAYOUT_COST_SYSTEM_KEY)
            if record is None:
                record = await self.repository.get_active()
                if record is not None:
                    await self.cache.put(PAYOUT_COST_SYSTEM_KEY, record)
        except (StorageError, CacheError) as e:
            logger.error("payout_cost_system_get_failed", error=str(e))
            return OnboardingResponse.from_error(
                OnboardingError(ErrorCode.PAYOUT_COST_SYSTEM_UNKNOWN, ResponseStatus.SYSTEM_ERROR),
                self.registry,
            )

        if record is None:
            return OnboardingResponse.from_error(
                OnboardingError(ErrorCode.PAYOUT_COST_SYSTEM_NOT_FOUND, ResponseStatus.NOT_FOUND),
                self.registry,
            )
        return OnboardingResponse.ok(record)
