"""
Categorized errors and responses for onboarding operations.

Operations never raise transport faults for business failures: they return an
``OnboardingResponse`` carrying a ``ResponseStatus`` and a structured message
looked up in an ``ErrorRegistry``. The registry is immutable and injected, so
an alternate (e.g. localized) registry can be used without global mutation.
"""
from enum import Enum, IntEnum
from types import MappingProxyType
from typing import Any, Dict, Generic, Mapping, Optional, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class ResponseStatus(IntEnum):
    """Outcome category of an operation."""

    OK = 200
    BAD_DATA = 400
    FORBIDDEN = 403
    NOT_FOUND = 404
    SYSTEM_ERROR = 500


class ErrorCode(str, Enum):
    """Stable identifiers of every business error."""

    MERCHANT_CHANGE_NOT_ALLOWED = "mr000001"
    MERCHANT_UNKNOWN = "mr000008"
    MERCHANT_NOT_FOUND = "mr000009"
    MERCHANT_BAD_DATA = "mr000010"
    NOTIFICATION_MERCHANT_ID_INCORRECT = "mr000012"
    NOTIFICATION_MESSAGE_EMPTY = "mr000014"
    NOTIFICATION_NOT_FOUND = "mr000015"
    MERCHANT_TARIFF_ALREADY_EXISTS = "mr000020"
    MERCHANT_STATUS_CHANGE_NOT_POSSIBLE = "mr000021"
    MERCHANT_NOTIFICATION_SETTING_NOT_FOUND = "mr000022"
    MERCHANT_TARIFFS_NOT_FOUND = "mr000023"
    MERCHANT_PAYOUT_CURRENCY_MISSED = "mr000024"
    MERCHANT_AGREEMENT_REQUEST_NOT_ALLOWED = "mr000026"
    MERCHANT_ON_REVIEW_NOT_ALLOWED = "mr000027"
    MERCHANT_SIGNING_IMPOSSIBLE = "mr000028"
    MERCHANT_DOCUMENT_CANT_BE_SIGNED = "mr000029"

    SYSTEM_FEE_CARD_BRAND_REQUIRED = "sf000001"
    SYSTEM_FEE_CARD_BRAND_NOT_ALLOWED = "sf000002"
    SYSTEM_FEE_CARD_BRAND_INVALID = "sf000003"
    SYSTEM_FEE_NOT_FOUND = "sf000004"
    SYSTEM_FEE_MATCHED_MIN_AMOUNT_NOT_FOUND = "sf000005"
    SYSTEM_FEE_REGION_INVALID = "sf000006"
    SYSTEM_FEE_REQUIRED_FEE_SET = "sf000007"
    SYSTEM_FEE_PAYMENT_METHOD_NOT_FOUND = "sf000008"
    SYSTEM_FEE_UNKNOWN = "sf000009"

    PAYOUT_COST_SYSTEM_NOT_FOUND = "pcs000001"
    PAYOUT_COST_SYSTEM_BAD_DATA = "pcs000002"
    PAYOUT_COST_SYSTEM_UNKNOWN = "pcs000003"


class ErrorMessage(BaseModel):
    """Structured message returned to callers."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str


DEFAULT_MESSAGES: Dict[ErrorCode, str] = {
    ErrorCode.MERCHANT_CHANGE_NOT_ALLOWED: "merchant data changing not allowed",
    ErrorCode.MERCHANT_UNKNOWN: "request processing failed. try request later",
    ErrorCode.MERCHANT_NOT_FOUND: "merchant with specified identifier not found",
    ErrorCode.MERCHANT_BAD_DATA: "request data is incorrect",
    ErrorCode.NOTIFICATION_MERCHANT_ID_INCORRECT: "merchant identifier incorrect, notification can't be saved",
    ErrorCode.NOTIFICATION_MESSAGE_EMPTY: "notification message can't be empty",
    ErrorCode.NOTIFICATION_NOT_FOUND: "notification not found",
    ErrorCode.MERCHANT_TARIFF_ALREADY_EXISTS: "merchant tariffs already sets",
    ErrorCode.MERCHANT_STATUS_CHANGE_NOT_POSSIBLE: "change status not possible by merchant flow",
    ErrorCode.MERCHANT_NOTIFICATION_SETTING_NOT_FOUND: "setting for create notification for status change not found",
    ErrorCode.MERCHANT_TARIFFS_NOT_FOUND: "tariffs for merchant not found",
    ErrorCode.MERCHANT_PAYOUT_CURRENCY_MISSED: "merchant don't have payout currency",
    ErrorCode.MERCHANT_AGREEMENT_REQUEST_NOT_ALLOWED: "agreement request not allowed from current merchant status",
    ErrorCode.MERCHANT_ON_REVIEW_NOT_ALLOWED: "merchant can't be sent to review from current status",
    ErrorCode.MERCHANT_SIGNING_IMPOSSIBLE: "agreement signing impossible for merchant",
    ErrorCode.MERCHANT_DOCUMENT_CANT_BE_SIGNED: "document can't be marked as signed",
    ErrorCode.SYSTEM_FEE_CARD_BRAND_REQUIRED: "card brand required for this method",
    ErrorCode.SYSTEM_FEE_CARD_BRAND_NOT_ALLOWED: "card brand not allowed for this method",
    ErrorCode.SYSTEM_FEE_CARD_BRAND_INVALID: "card brand invalid or not supported",
    ErrorCode.SYSTEM_FEE_NOT_FOUND: "system fee not found",
    ErrorCode.SYSTEM_FEE_MATCHED_MIN_AMOUNT_NOT_FOUND: "system fee matched min amount not found",
    ErrorCode.SYSTEM_FEE_REGION_INVALID: "system fee region invalid",
    ErrorCode.SYSTEM_FEE_REQUIRED_FEE_SET: "system fees require at least one fee set in request",
    ErrorCode.SYSTEM_FEE_PAYMENT_METHOD_NOT_FOUND: "payment method for system fee not found",
    ErrorCode.SYSTEM_FEE_UNKNOWN: "system fee request processing failed. try request later",
    ErrorCode.PAYOUT_COST_SYSTEM_NOT_FOUND: "payout cost setting for system not found",
    ErrorCode.PAYOUT_COST_SYSTEM_BAD_DATA: "payout cost setting data is incorrect",
    ErrorCode.PAYOUT_COST_SYSTEM_UNKNOWN: "can't set payout cost setting for system",
}


class ErrorRegistry:
    """Read-only lookup table from ``ErrorCode`` to ``ErrorMessage``."""

    def __init__(self, messages: Mapping[ErrorCode, str]):
        missing = [code.name for code in ErrorCode if code not in messages]
        if missing:
            raise ValueError(f"Error registry misses messages for: {', '.join(missing)}")
        self._messages = MappingProxyType(
            {code: ErrorMessage(code=code.value, message=messages[code]) for code in ErrorCode}
        )

    def __getitem__(self, code: ErrorCode) -> ErrorMessage:
        return self._messages[code]

    def with_overrides(self, overrides: Mapping[ErrorCode, str]) -> "ErrorRegistry":
        """Return a new registry with some messages replaced."""
        messages = {code: item.message for code, item in self._messages.items()}
        messages.update(overrides)
        return ErrorRegistry(messages)


DEFAULT_ERROR_REGISTRY = ErrorRegistry(DEFAULT_MESSAGES)


class OnboardingError(Exception):
    """
    Business failure raised inside the core and converted to a response.

    Args:
        code: Error identifier
        status: Response category
        message: Message to return instead of the registry entry, used when a
            collaborator's own message is surfaced
    """

    def __init__(
        self,
        code: ErrorCode,
        status: ResponseStatus = ResponseStatus.BAD_DATA,
        message: Optional[ErrorMessage] = None,
    ):
        super().__init__(message.message if message else code.value)
        self.code = code
        self.status = status
        self.message = message

    def to_message(self, registry: ErrorRegistry) -> ErrorMessage:
        return self.message or registry[self.code]


class NotificationNotFoundError(OnboardingError):
    """Raised (not returned) by notification read helpers."""

    def __init__(self) -> None:
        super().__init__(ErrorCode.NOTIFICATION_NOT_FOUND, ResponseStatus.NOT_FOUND)


class OnboardingResponse(BaseModel, Generic[T]):
    """Response envelope of every categorized operation."""

    status: ResponseStatus = ResponseStatus.OK
    message: Optional[ErrorMessage] = None
    item: Optional[T] = None

    @classmethod
    def ok(cls, item: Any = None) -> "OnboardingResponse":
        return cls(status=ResponseStatus.OK, item=item)

    @classmethod
    def from_error(cls, error: OnboardingError, registry: ErrorRegistry) -> "OnboardingResponse":
        return cls(status=error.status, message=error.to_message(registry))

    @property
    def is_ok(self) -> bool:
        return self.status == ResponseStatus.OK


class StorageError(Exception):
    """
    Raised by repositories when a store query fails.

    Args:
        message: Error description
        collection: Collection (table) the query ran against
        query: Short description of the query and its parameters
    """

    def __init__(self, message: str, collection: str, query: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.collection = collection
        self.query = query or {}
