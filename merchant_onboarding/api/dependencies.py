"""
Service wiring for the API.

Each provider builds its service once per process. Tests replace them through
``app.dependency_overrides``.
"""
from functools import lru_cache

from merchant_onboarding.cache.backend import RedisCache
from merchant_onboarding.config import get_settings
from merchant_onboarding.core.onboarding import OnboardingService
from merchant_onboarding.core.payout_costs import PayoutCostService
from merchant_onboarding.core.system_fees import SystemFeeService
from merchant_onboarding.database.repositories import (
    MerchantMoneyBackCostRepository,
    MerchantPaymentChannelCostRepository,
    MerchantRepository,
    NotificationRepository,
    PaymentMethodRepository,
    PayoutCostSystemRepository,
    SystemFeesRepository,
    TariffRateRepository,
)
from merchant_onboarding.integrations.reporter import ReporterClient
from merchant_onboarding.monitoring.health import HealthCheck


@lru_cache()
def get_cache() -> RedisCache:
    return RedisCache.from_url(get_settings().redis_url)


@lru_cache()
def get_onboarding_service() -> OnboardingService:
    settings = get_settings()
    return OnboardingService(
        merchants=MerchantRepository(),
        notifications=NotificationRepository(),
        tariff_rates=TariffRateRepository(),
        payment_costs=MerchantPaymentChannelCostRepository(),
        money_back_costs=MerchantMoneyBackCostRepository(),
        cache=get_cache(),
        settings=settings,
        agreement_generator=ReporterClient() if settings.agreement_generation_enabled else None,
    )


@lru_cache()
def get_system_fee_service() -> SystemFeeService:
    return SystemFeeService(
        repository=SystemFeesRepository(),
        payment_methods=PaymentMethodRepository(),
        cache=get_cache(),
        settings=get_settings(),
    )


@lru_cache()
def get_payout_cost_service() -> PayoutCostService:
    return PayoutCostService(repository=PayoutCostSystemRepository(), cache=get_cache())


@lru_cache()
def get_health_check() -> HealthCheck:
    return HealthCheck(cache=get_cache())
