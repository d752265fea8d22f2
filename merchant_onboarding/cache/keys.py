"""Cache key shapes shared with every consumer of the cache."""
import hashlib

TARIFF_RATES_KEY = "onboarding_tariff_rates:{digest}"
SYSTEM_FEES_KEY = "system_fees:m:{method_id}:r:{region}:cb:{card_brand}"
PAYOUT_COST_SYSTEM_KEY = "pcs:current"
PAYMENT_CHANNEL_COST_MERCHANT_ALL_KEY = "pccm:all:m:{merchant_id}"
MONEY_BACK_COST_MERCHANT_ALL_KEY = "pucm:all:m:{merchant_id}"


def tariff_rates_key(normalized_payload: str) -> str:
    """Key of a tariff lookup: md5 hex digest of the normalized request."""
    digest = hashlib.md5(normalized_payload.encode("utf-8")).hexdigest()
    return TARIFF_RATES_KEY.format(digest=digest)


def system_fees_key(method_id: str, region: str, card_brand: str) -> str:
    return SYSTEM_FEES_KEY.format(method_id=method_id, region=region, card_brand=card_brand)


def payment_channel_cost_merchant_all_key(merchant_id: str) -> str:
    return PAYMENT_CHANNEL_COST_MERCHANT_ALL_KEY.format(merchant_id=merchant_id)


def money_back_cost_merchant_all_key(merchant_id: str) -> str:
    return MONEY_BACK_COST_MERCHANT_ALL_KEY.format(merchant_id=merchant_id)
