"""
Merchant cost materialization.

Turns a resolved tariff template into merchant-owned cost records. The write
sequence is not atomic: it runs as a fail-fast saga without compensation, so
a failure after the first insert leaves the earlier steps committed. The
existing-costs guard keeps such a merchant from being materialized twice.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol

import structlog

from ..cache.access import invalidate_keys
from ..cache.backend import CacheBackend, CacheError
from ..cache.keys import money_back_cost_merchant_all_key, payment_channel_cost_merchant_all_key
from ..monitoring.metrics import metrics
from .errors import ErrorCode, OnboardingError, ResponseStatus, StorageError
from .models import (
    Merchant,
    MerchantBanking,
    MerchantMoneyBackCost,
    MerchantPaymentChannelCost,
    MerchantTariff,
    TariffRate,
    agreement_number,
    utcnow,
)
from .saga import Saga
from .tariff_resolver import TariffFilter, TariffResolver

logger = structlog.get_logger(__name__)

HUNDRED = Decimal("100")


class MerchantRepository(Protocol):
    async def get_by_id(self, merchant_id: str) -> Optional[Merchant]:
        ...

    async def update(self, merchant: Merchant) -> None:
        ...


class MerchantCostRepository(Protocol):
    async def insert_many(self, costs: List[Any]) -> None:
        ...

    async def count_by_merchant(self, merchant_id: str) -> int:
        ...

    async def find_by_merchant(self, merchant_id: str) -> List[Any]:
        ...


class AgreementGenerator(Protocol):
    @property
    def enabled(self) -> bool:
        ...

    async def create_agreement(self, merchant: Merchant) -> None:
        ...


@dataclass
class MaterializationResult:
    merchant: Merchant
    payment_costs: List[MerchantPaymentChannelCost] = field(default_factory=list)
    money_back_costs: List[MerchantMoneyBackCost] = field(default_factory=list)


def build_payment_costs(
    merchant_id: str, template: TariffRate, payout_currency: str
) -> List[MerchantPaymentChannelCost]:
    """One cost record per payment tier, percents converted to fractions."""
    return [
        MerchantPaymentChannelCost(
            merchant_id=merchant_id,
            name=tier.method_name,
            payout_currency=payout_currency,
            min_amount=tier.min_amount,
            max_amount=tier.max_amount,
            region=template.region,
            country=tier.country,
            method_percent=tier.method_percent_fee / HUNDRED,
            method_fix_amount=tier.method_fixed_fee,
            method_fix_amount_currency=tier.method_fixed_fee_currency,
            ps_percent=tier.ps_percent_fee / HUNDRED,
            ps_fixed_fee=tier.ps_fixed_fee,
            ps_fixed_fee_currency=tier.ps_fixed_fee_currency,
        )
        for tier in template.payment
    ]


def build_money_back_costs(
    merchant_id: str, template: TariffRate, payout_currency: str
) -> List[MerchantMoneyBackCost]:
    """Two cost records per money back tier: paid by the merchant and paid by the platform."""
    costs = []
    for tier in template.money_back:
        for is_paid_by_merchant in (True, False):
            costs.append(
                MerchantMoneyBackCost(
                    merchant_id=merchant_id,
                    name=tier.method_name,
                    payout_currency=payout_currency,
                    undo_reason=tier.undo_reason,
                    region=template.region,
                    country=tier.country,
                    days_from=tier.days_from,
                    days_to=tier.days_to,
                    payment_stage=tier.payment_stage,
                    percent=tier.percent_fee / HUNDRED,
                    fix_amount=tier.fixed_fee,
                    fix_amount_currency=tier.fixed_fee_currency,
                    is_paid_by_merchant=is_paid_by_merchant,
                )
            )
    return costs


class MerchantCostMaterializer:
    """
    One-time conversion of a tariff template into merchant cost records.

    Args:
        resolver: Tariff template lookup
        merchants: Merchant store
        payment_costs: Merchant payment channel cost store
        money_back_costs: Merchant money back cost store
        cache: Cache holding the merchant cost lists
        agreement_generator: Optional agreement file generator
    """

    def __init__(
        self,
        resolver: TariffResolver,
        merchants: MerchantRepository,
        payment_costs: MerchantCostRepository,
        money_back_costs: MerchantCostRepository,
        cache: CacheBackend,
        agreement_generator: Optional[AgreementGenerator] = None,
    ):
        self.resolver = resolver
        self.merchants = merchants
        self.payment_costs = payment_costs
        self.money_back_costs = money_back_costs
        self.cache = cache
        self.agreement_generator = agreement_generator

    async def materialize(self, merchant: Merchant, tariff_filter: TariffFilter) -> MaterializationResult:
        """
        Materialize the tariff matching a filter for a merchant.

        Args:
            merchant: Loaded merchant (left unmodified)
            tariff_filter: Region, payout currency and amount range

        Returns:
            MaterializationResult: Persisted merchant and created cost records

        Raises:
            OnboardingError: On guard violations, missing tariffs, store or
                cache failures and agreement generation failures
        """
        try:
            await self._check_guards(merchant, tariff_filter)
            template = await self._resolve(merchant, tariff_filter)
        except OnboardingError as e:
            metrics.record_materialization("rejected")
            logger.info(
                "merchant_tariff_materialization_rejected",
                merchant_id=merchant.id,
                error_code=e.code.value,
            )
            raise

        payout_currency = tariff_filter.currency
        result = MaterializationResult(
            merchant=merchant.model_copy(deep=True),
            payment_costs=build_payment_costs(merchant.id, template, payout_currency),
            money_back_costs=build_money_back_costs(merchant.id, template, payout_currency),
        )

        saga = self._build_saga(result, template, payout_currency)
        try:
            await saga.execute()
        except (StorageError, CacheError) as e:
            metrics.record_materialization("failed")
            logger.error(
                "merchant_tariff_materialization_failed",
                merchant_id=merchant.id,
                completed_steps=saga.completed_steps,
                error=str(e),
                collection=getattr(e, "collection", None),
                key=getattr(e, "key", None),
            )
            raise OnboardingError(ErrorCode.MERCHANT_UNKNOWN, ResponseStatus.SYSTEM_ERROR) from e
        except OnboardingError:
            metrics.record_materialization("failed")
            logger.error(
                "merchant_tariff_materialization_failed",
                merchant_id=merchant.id,
                completed_steps=saga.completed_steps,
            )
            raise

        metrics.record_materialization(
            "success", len(result.payment_costs), len(result.money_back_costs)
        )
        logger.info(
            "merchant_tariff_materialized",
            merchant_id=merchant.id,
            region=template.region,
            payout_currency=payout_currency,
            payment_costs=len(result.payment_costs),
            money_back_costs=len(result.money_back_costs),
        )
        return result

    async def _check_guards(self, merchant: Merchant, tariff_filter: TariffFilter) -> None:
        if merchant.has_tariff():
            raise OnboardingError(ErrorCode.MERCHANT_TARIFF_ALREADY_EXISTS)

        try:
            existing = await self.payment_costs.count_by_merchant(merchant.id)
        except StorageError as e:
            logger.error(
                "merchant_costs_count_failed",
                merchant_id=merchant.id,
                collection=e.collection,
                error=str(e),
            )
            raise OnboardingError(ErrorCode.MERCHANT_UNKNOWN, ResponseStatus.SYSTEM_ERROR) from e

        if existing > 0:
            raise OnboardingError(ErrorCode.MERCHANT_TARIFF_ALREADY_EXISTS)

        if not merchant.changes_allowed():
            raise OnboardingError(ErrorCode.MERCHANT_CHANGE_NOT_ALLOWED)

        if not tariff_filter.currency:
            raise OnboardingError(ErrorCode.MERCHANT_PAYOUT_CURRENCY_MISSED)

    async def _resolve(self, merchant: Merchant, tariff_filter: TariffFilter) -> TariffRate:
        try:
            templates = await self.resolver.resolve(tariff_filter)
        except (StorageError, CacheError) as e:
            logger.error(
                "merchant_tariffs_resolve_failed",
                merchant_id=merchant.id,
                region=tariff_filter.region,
                error=str(e),
            )
            raise OnboardingError(ErrorCode.MERCHANT_TARIFFS_NOT_FOUND, ResponseStatus.NOT_FOUND) from e

        if not templates:
            raise OnboardingError(ErrorCode.MERCHANT_TARIFFS_NOT_FOUND, ResponseStatus.NOT_FOUND)

        if len(templates) > 1:
            logger.warning(
                "merchant_tariffs_ambiguous",
                merchant_id=merchant.id,
                region=tariff_filter.region,
                templates=len(templates),
            )
        return templates[0]

    def _build_saga(
        self, result: MaterializationResult, template: TariffRate, payout_currency: str
    ) -> Saga:
        merchant = result.merchant

        async def insert_payment_costs(ctx: Dict[str, Any]) -> int:
            if result.payment_costs:
                await self.payment_costs.insert_many(result.payment_costs)
            return len(result.payment_costs)

        async def insert_money_back_costs(ctx: Dict[str, Any]) -> int:
            if result.money_back_costs:
                await self.money_back_costs.insert_many(result.money_back_costs)
            return len(result.money_back_costs)

        async def invalidate_cost_lists(ctx: Dict[str, Any]) -> None:
            await invalidate_keys(
                self.cache,
                payment_channel_cost_merchant_all_key(merchant.id),
                money_back_cost_merchant_all_key(merchant.id),
            )

        async def update_merchant(ctx: Dict[str, Any]) -> None:
            if merchant.banking is None:
                merchant.banking = MerchantBanking()
            merchant.banking.currency = payout_currency
            merchant.tariff = MerchantTariff(
                region=template.region,
                payout_currency=payout_currency,
                payment=template.payment,
                money_back=template.money_back,
                payout=template.payout,
                chargeback=template.chargeback,
            )
            merchant.updated_at = utcnow()
            await self.merchants.update(merchant)

        async def generate_agreement(ctx: Dict[str, Any]) -> bool:
            generator = self.agreement_generator
            if generator is None or not generator.enabled or not merchant.is_data_complete():
                return False

            if not merchant.agreement_number:
                merchant.agreement_number = agreement_number(merchant.id)
                await self.merchants.update(merchant)

            await generator.create_agreement(merchant)
            return True

        return (
            Saga("merchant_tariff_materialization", {"merchant_id": merchant.id})
            .add_step("insert_payment_costs", insert_payment_costs)
            .add_step("insert_money_back_costs", insert_money_back_costs)
            .add_step("invalidate_cost_lists", invalidate_cost_lists)
            .add_step("update_merchant", update_merchant)
            .add_step("generate_agreement", generate_agreement)
        )
