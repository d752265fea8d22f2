"""
Merchant onboarding status state machine.

Draft -> AgreementRequested -> OnReview -> AgreementSigning -> AgreementSigned,
with Rejected and Deleted as side branches and Draft as the restart path.

Every target status has a guard; every registered status has a notification
setting (title and default message). Signature completion is a separate named
edge, evaluated after any signature flag mutation.
"""
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, Mapping, NamedTuple, Optional, Tuple

import structlog

from .errors import ErrorCode, OnboardingError, ResponseStatus
from .models import Merchant, MerchantStatus, utcnow

logger = structlog.get_logger(__name__)

STATUS_CHANGED = "status_changed"
SIGNATURE_COMPLETED = "signature_completed"

DELETABLE_STATUSES = frozenset(
    {MerchantStatus.DRAFT, MerchantStatus.AGREEMENT_SIGNING, MerchantStatus.REJECTED}
)
REJECTABLE_STATUSES = frozenset({MerchantStatus.AGREEMENT_SIGNING})


class StatusNotificationSetting(NamedTuple):
    title: str
    message: str


DEFAULT_STATUS_NOTIFICATIONS: Mapping[int, StatusNotificationSetting] = MappingProxyType(
    {
        MerchantStatus.DRAFT: StatusNotificationSetting(
            "Onboarding restarted",
            "Your license agreement request was returned to draft. Please review your "
            "onboarding data and request the agreement again.",
        ),
        MerchantStatus.AGREEMENT_REQUESTED: StatusNotificationSetting(
            "License agreement requested",
            "We've got your license agreement request. Our onboarding manager will "
            "review your data shortly.",
        ),
        MerchantStatus.ON_REVIEW: StatusNotificationSetting(
            "Onboarding data on review",
            "Your onboarding data is being reviewed by our onboarding manager.",
        ),
        MerchantStatus.AGREEMENT_SIGNING: StatusNotificationSetting(
            "License agreement signing",
            "We've got your license agreement signing request. If we will need your further "
            "assistance, processing this request, our onboarding manager will contact you directly.",
        ),
        MerchantStatus.AGREEMENT_SIGNED: StatusNotificationSetting(
            "License agreement signed",
            "Your license agreement signing request is confirmed and document is signed by "
            "the platform. Let us have productive cooperation!",
        ),
        MerchantStatus.DELETED: StatusNotificationSetting(
            "License agreement terminated",
            "Sorry, but while processing your license agreement signing request we encountered "
            "insuperable obstacles which lead to termination of our deal.",
        ),
        MerchantStatus.REJECTED: StatusNotificationSetting(
            "License agreement rejected",
            "Your license agreement signing request was confirmed as SPAM and will be no "
            "longer processed.",
        ),
    }
)


@dataclass(frozen=True)
class AppliedTransition:
    """A validated status change and the notification it produces."""

    name: str
    from_status: int
    to_status: int
    title: str
    message: str


Guard = Callable[[Merchant], Optional[ErrorCode]]


def _require_draft(merchant: Merchant) -> Optional[ErrorCode]:
    if merchant.status != MerchantStatus.DRAFT:
        return ErrorCode.MERCHANT_AGREEMENT_REQUEST_NOT_ALLOWED
    return None


def _require_agreement_requested(merchant: Merchant) -> Optional[ErrorCode]:
    if merchant.status != MerchantStatus.AGREEMENT_REQUESTED:
        return ErrorCode.MERCHANT_ON_REVIEW_NOT_ALLOWED
    return None


def _require_signing_possible(merchant: Merchant) -> Optional[ErrorCode]:
    if not merchant.can_change_status_to_signing():
        return ErrorCode.MERCHANT_SIGNING_IMPOSSIBLE
    return None


def _require_signing_completed(merchant: Merchant) -> Optional[ErrorCode]:
    if merchant.status != MerchantStatus.AGREEMENT_SIGNING or not merchant.is_fully_signed():
        return ErrorCode.MERCHANT_DOCUMENT_CANT_BE_SIGNED
    return None


def _require_deletable(merchant: Merchant) -> Optional[ErrorCode]:
    if merchant.status not in DELETABLE_STATUSES:
        return ErrorCode.MERCHANT_STATUS_CHANGE_NOT_POSSIBLE
    return None


def _require_rejectable(merchant: Merchant) -> Optional[ErrorCode]:
    if merchant.status not in REJECTABLE_STATUSES:
        return ErrorCode.MERCHANT_STATUS_CHANGE_NOT_POSSIBLE
    return None


GUARDS: Mapping[int, Guard] = MappingProxyType(
    {
        MerchantStatus.AGREEMENT_REQUESTED: _require_draft,
        MerchantStatus.ON_REVIEW: _require_agreement_requested,
        MerchantStatus.AGREEMENT_SIGNING: _require_signing_possible,
        MerchantStatus.AGREEMENT_SIGNED: _require_signing_completed,
        MerchantStatus.DELETED: _require_deletable,
        MerchantStatus.REJECTED: _require_rejectable,
    }
)


class MerchantStateMachine:
    """
    Validates and applies merchant status transitions.

    Transitions never mutate the merchant passed in: a changed copy is
    returned, so a failed persistence step leaves the caller's object intact.
    """

    def __init__(
        self,
        notification_settings: Mapping[int, StatusNotificationSetting] = DEFAULT_STATUS_NOTIFICATIONS,
        guards: Mapping[int, Guard] = GUARDS,
    ):
        self.notification_settings = notification_settings
        self.guards = guards

    def notification_setting(self, status: int) -> StatusNotificationSetting:
        """
        Get the notification title and message registered for a status.

        Raises:
            OnboardingError: If nothing is registered for the status
        """
        setting = self.notification_settings.get(status)
        if setting is None:
            logger.error("merchant_notification_setting_not_found", status=status)
            raise OnboardingError(
                ErrorCode.MERCHANT_NOTIFICATION_SETTING_NOT_FOUND, ResponseStatus.SYSTEM_ERROR
            )
        return setting

    def change_status(self, merchant: Merchant, target: int) -> Tuple[Merchant, AppliedTransition]:
        """
        Validate a requested status change and apply it to a copy of the merchant.

        Args:
            merchant: Current merchant
            target: Requested status

        Returns:
            Tuple[Merchant, AppliedTransition]: Updated merchant and the transition

        Raises:
            OnboardingError: If a guard rejects the change or the target has no
                notification setting
        """
        guard = self.guards.get(target)
        if guard is not None:
            error = guard(merchant)
            if error is not None:
                logger.info(
                    "merchant_status_change_rejected",
                    merchant_id=merchant.id,
                    from_status=merchant.status,
                    to_status=target,
                    error_code=error.value,
                )
                raise OnboardingError(error, ResponseStatus.BAD_DATA)

        setting = self.notification_setting(target)
        updated = merchant.model_copy(deep=True)
        transition = self._apply(updated, STATUS_CHANGED, target, setting)
        return updated, transition

    def update_signatures(
        self,
        merchant: Merchant,
        has_psp_signature: bool,
        has_merchant_signature: bool,
        agreement_type: Optional[int] = None,
    ) -> Tuple[Merchant, Optional[AppliedTransition]]:
        """
        Apply signature data and evaluate the signature completion edge.

        Signature flags only ever go from false to true here; resetting them is
        the job of the restart-to-draft transition.

        Returns:
            Tuple[Merchant, Optional[AppliedTransition]]: Updated merchant and
                the automatic transition, if one fired
        """
        updated = merchant.model_copy(deep=True)

        if agreement_type:
            updated.agreement_type = agreement_type

        if has_psp_signature and not updated.has_psp_signature:
            updated.has_psp_signature = True

        if has_merchant_signature and not updated.has_merchant_signature:
            updated.has_merchant_signature = True
            updated.received_date = utcnow()

        updated.is_signed = updated.is_fully_signed()
        updated.updated_at = utcnow()

        return updated, self.complete_signature(updated)

    def complete_signature(self, merchant: Merchant) -> Optional[AppliedTransition]:
        """
        Fire AgreementSigning -> AgreementSigned once both parties have signed.

        Mutates the given merchant when the edge fires.
        """
        if _require_signing_completed(merchant) is not None:
            return None

        setting = self.notification_setting(MerchantStatus.AGREEMENT_SIGNED)
        return self._apply(merchant, SIGNATURE_COMPLETED, MerchantStatus.AGREEMENT_SIGNED, setting)

    @staticmethod
    def _apply(
        merchant: Merchant, name: str, target: int, setting: StatusNotificationSetting
    ) -> AppliedTransition:
        transition = AppliedTransition(
            name=name,
            from_status=merchant.status,
            to_status=target,
            title=setting.title,
            message=setting.message,
        )

        if target == MerchantStatus.DRAFT:
            merchant.reset_agreement()

        now = utcnow()
        merchant.status = target
        merchant.status_last_updated_at = now
        merchant.updated_at = now
        return transition
