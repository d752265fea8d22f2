"""Payment-time selection of a system fee tier."""
from decimal import Decimal
from typing import List

from .errors import ErrorCode, OnboardingError, ResponseStatus
from .models import FeeSet, FeeTier


def match_fee_tier(tiers: List[FeeTier], currency: str, amount: Decimal) -> FeeSet:
    """
    Select the tier with the highest minimum amount not above the payment amount.

    Tiers without a minimum for the currency never match. Among tiers with the
    same threshold the one listed first wins.

    Args:
        tiers: Fee tiers of the active system fee record
        currency: Payment currency
        amount: Payment amount

    Returns:
        FeeSet: Costs of the selected tier

    Raises:
        OnboardingError: If no tier qualifies
    """
    matched = [
        (index, tier.min_amounts[currency])
        for index, tier in enumerate(tiers)
        if currency in tier.min_amounts and tier.min_amounts[currency] <= amount
    ]
    if not matched:
        raise OnboardingError(
            ErrorCode.SYSTEM_FEE_MATCHED_MIN_AMOUNT_NOT_FOUND, ResponseStatus.NOT_FOUND
        )

    # sorted() is stable with reverse=True, equal thresholds keep tier order
    index, _ = sorted(matched, key=lambda item: item[1], reverse=True)[0]
    tier = tiers[index]
    return FeeSet(
        min_amounts=tier.min_amounts,
        transaction_cost=tier.transaction_cost,
        authorization_fee=tier.authorization_fee,
    )
