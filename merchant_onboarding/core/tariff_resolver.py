"""
Tariff template lookup.

A lookup is described by a ``TariffFilter``. Its normalized JSON form is the
cache key payload, so semantically identical lookups share one cache slot.
"""
import json
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol

import structlog
from pydantic import TypeAdapter

from ..cache.access import ReadThroughCache
from ..cache.backend import CacheBackend
from ..cache.keys import tariff_rates_key
from ..monitoring.metrics import metrics
from .models import TariffPaymentTier, TariffRate

logger = structlog.get_logger(__name__)

TARIFF_RATES_ADAPTER = TypeAdapter(List[TariffRate])


class TariffRateRepository(Protocol):
    async def find_by_region(self, region: str) -> List[TariffRate]:
        ...


def canonical_amount(value: Decimal) -> str:
    """Exact plain-notation form of an amount; trailing zeros do not change it."""
    return format(value.normalize(), "f")


@dataclass(frozen=True)
class TariffFilter:
    """
    Tariff lookup criteria.

    The region always applies. The payout currency applies when given. The
    amount range applies only when both bounds are given, ``amount_from`` is
    not negative and ``amount_to`` is greater than ``amount_from``; any other
    combination skips range filtering entirely.
    """

    region: str
    payout_currency: Optional[str] = None
    amount_from: Optional[Decimal] = None
    amount_to: Optional[Decimal] = None

    @property
    def currency(self) -> Optional[str]:
        if not self.payout_currency:
            return None
        return self.payout_currency.upper()

    @property
    def has_amount_range(self) -> bool:
        return (
            self.amount_from is not None
            and self.amount_to is not None
            and self.amount_from >= 0
            and self.amount_to > self.amount_from
        )

    def matches_payment_tier(self, tier: TariffPaymentTier) -> bool:
        """Check a tier against the currency and the [amount_from, amount_to) range."""
        if self.currency is not None and tier.payout_currency.upper() != self.currency:
            return False

        if self.has_amount_range:
            return tier.min_amount < self.amount_to and tier.max_amount > self.amount_from

        return True

    def apply(self, templates: List[TariffRate]) -> List[TariffRate]:
        """Narrow templates to matching payment tiers, dropping templates left without any."""
        result = []
        for template in templates:
            if template.region != self.region:
                continue

            tiers = [tier for tier in template.payment if self.matches_payment_tier(tier)]
            if not tiers:
                continue

            result.append(template.model_copy(update={"payment": tiers}))
        return result

    def cache_payload(self) -> str:
        """Deterministic JSON of the criteria that actually take effect."""
        payload: Dict[str, Any] = {"region": self.region}
        if self.currency is not None:
            payload["payout_currency"] = self.currency
        if self.has_amount_range:
            payload["amount_from"] = canonical_amount(self.amount_from)
            payload["amount_to"] = canonical_amount(self.amount_to)
        return json.dumps(payload, sort_keys=True, separators=(",", ":"))


class TariffResolver:
    """
    Cache-backed tariff template lookup.

    Results, including empty ones, are cached read-through; this path never
    invalidates them.
    """

    def __init__(self, repository: TariffRateRepository, cache: CacheBackend, ttl: int = 0):
        self.repository = repository
        self.cache = ReadThroughCache(cache, TARIFF_RATES_ADAPTER, ttl)

    async def resolve(self, tariff_filter: TariffFilter) -> List[TariffRate]:
        """
        Resolve the tariff templates matching a filter.

        Returns:
            List[TariffRate]: Matching templates, possibly empty

        Raises:
            StorageError: If the template store lookup fails after a miss
            CacheError: If the cache cannot be read or populated
        """
        key = tariff_rates_key(tariff_filter.cache_payload())

        async def load() -> List[TariffRate]:
            templates = await self.repository.find_by_region(tariff_filter.region)
            return tariff_filter.apply(templates)

        rates, hit = await self.cache.get_or_load(key, load)
        metrics.record_tariff_lookup(hit)

        logger.debug(
            "tariff_rates_resolved",
            region=tariff_filter.region,
            payout_currency=tariff_filter.currency,
            cache_hit=hit,
            templates=len(rates),
        )
        return rates
