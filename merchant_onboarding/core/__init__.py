"""Core onboarding logic: status state machine, tariffs, costs and fees."""
from .errors import (
    DEFAULT_ERROR_REGISTRY,
    ErrorCode,
    ErrorRegistry,
    NotificationNotFoundError,
    OnboardingError,
    OnboardingResponse,
    ResponseStatus,
    StorageError,
)
from .fee_matcher import match_fee_tier
from .materializer import MerchantCostMaterializer
from .notifications import NotificationLog
from .onboarding import OnboardingService
from .payout_costs import PayoutCostService
from .state_machine import MerchantStateMachine
from .system_fees import SystemFeeService
from .tariff_resolver import TariffFilter, TariffResolver

__all__ = [
    "DEFAULT_ERROR_REGISTRY",
    "ErrorCode",
    "ErrorRegistry",
    "MerchantCostMaterializer",
    "MerchantStateMachine",
    "NotificationLog",
    "NotificationNotFoundError",
    "OnboardingError",
    "OnboardingResponse",
    "OnboardingService",
    "PayoutCostService",
    "ResponseStatus",
    "StorageError",
    "SystemFeeService",
    "TariffFilter",
    "TariffResolver",
    "match_fee_tier",
]
