"""
Merchant onboarding operations.

Every operation returns an ``OnboardingResponse`` except the notification read
helpers ``get_notification`` and ``mark_notification_as_read``, which raise
``NotificationNotFoundError`` to their caller.
"""
from decimal import Decimal
from typing import Any, List, Optional

import structlog
from pydantic import TypeAdapter

from ..cache.access import ReadThroughCache
from ..cache.backend import CacheBackend, CacheError
from ..cache.keys import money_back_cost_merchant_all_key, payment_channel_cost_merchant_all_key
from ..config import Settings, get_settings
from ..monitoring.logging import log_operation
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
from .materializer import AgreementGenerator, MerchantCostMaterializer, MerchantCostRepository, MerchantRepository
from .models import (
    Merchant,
    MerchantMoneyBackCost,
    MerchantPaymentChannelCost,
    Notification,
    NotificationPage,
    NotificationStatusChange,
    is_valid_id,
)
from .notifications import NotificationLog, NotificationRepository
from .state_machine import AppliedTransition, MerchantStateMachine
from .tariff_resolver import TariffFilter, TariffRateRepository, TariffResolver

logger = structlog.get_logger(__name__)

PAYMENT_CHANNEL_COSTS_ADAPTER = TypeAdapter(List[MerchantPaymentChannelCost])
MONEY_BACK_COSTS_ADAPTER = TypeAdapter(List[MerchantMoneyBackCost])


class OnboardingService:
    """
    Merchant status, tariff and notification operations.

    Args:
        merchants: Merchant store
        notifications: Notification store
        tariff_rates: Tariff template store
        payment_costs: Merchant payment channel cost store
        money_back_costs: Merchant money back cost store
        cache: Cache backend shared by tariff lookups and cost lists
        settings: Application settings (loaded from the environment if omitted)
        registry: Error message registry
        agreement_generator: Optional agreement file generator
        state_machine: Status state machine
    """

    def __init__(
        self,
        merchants: MerchantRepository,
        notifications: NotificationRepository,
        tariff_rates: TariffRateRepository,
        payment_costs: MerchantCostRepository,
        money_back_costs: MerchantCostRepository,
        cache: CacheBackend,
        settings: Optional[Settings] = None,
        registry: ErrorRegistry = DEFAULT_ERROR_REGISTRY,
        agreement_generator: Optional[AgreementGenerator] = None,
        state_machine: Optional[MerchantStateMachine] = None,
    ):
        self.settings = settings or get_settings()
        self.registry = registry
        self.merchants = merchants
        self.payment_costs = payment_costs
        self.money_back_costs = money_back_costs
        self.state_machine = state_machine or MerchantStateMachine()
        self.notification_log = NotificationLog(notifications)
        self.resolver = TariffResolver(tariff_rates, cache, self.settings.tariff_cache_ttl)
        self.materializer = MerchantCostMaterializer(
            self.resolver,
            merchants,
            payment_costs,
            money_back_costs,
            cache,
            agreement_generator,
        )
        self.payment_cost_lists: ReadThroughCache[List[MerchantPaymentChannelCost]] = ReadThroughCache(
            cache, PAYMENT_CHANNEL_COSTS_ADAPTER, self.settings.merchant_costs_cache_ttl
        )
        self.money_back_cost_lists: ReadThroughCache[List[MerchantMoneyBackCost]] = ReadThroughCache(
            cache, MONEY_BACK_COSTS_ADAPTER, self.settings.merchant_costs_cache_ttl
        )

    def _error(self, event: str, error: OnboardingError, **context: Any) -> OnboardingResponse:
        log = logger.error if error.status == ResponseStatus.SYSTEM_ERROR else logger.info
        log(event, error_code=error.code.value, status=int(error.status), **context)
        return OnboardingResponse.from_error(error, self.registry)

    async def _get_merchant(self, merchant_id: str) -> Merchant:
        if not is_valid_id(merchant_id):
            raise OnboardingError(ErrorCode.MERCHANT_BAD_DATA)

        try:
            merchant = await self.merchants.get_by_id(merchant_id)
        except StorageError as e:
            logger.error(
                "merchant_query_failed",
                merchant_id=merchant_id,
                collection=e.collection,
                error=str(e),
            )
            raise OnboardingError(ErrorCode.MERCHANT_UNKNOWN, ResponseStatus.SYSTEM_ERROR) from e

        if merchant is None:
            raise OnboardingError(ErrorCode.MERCHANT_NOT_FOUND, ResponseStatus.NOT_FOUND)
        return merchant

    async def _commit(
        self,
        merchant: Merchant,
        transition: Optional[AppliedTransition],
        message: Optional[str] = None,
    ) -> None:
        """Append the transition notification, then persist the merchant."""
        try:
            if transition is not None:
                await self.notification_log.append(
                    merchant.id,
                    transition.title,
                    message or transition.message,
                    statuses=NotificationStatusChange(
                        from_status=transition.from_status, to_status=transition.to_status
                    ),
                )
            await self.merchants.update(merchant)
        except StorageError as e:
            logger.error(
                "merchant_commit_failed",
                merchant_id=merchant.id,
                collection=e.collection,
                query=e.query,
                error=str(e),
            )
            raise OnboardingError(ErrorCode.MERCHANT_UNKNOWN, ResponseStatus.SYSTEM_ERROR) from e

        if transition is not None:
            metrics.record_transition(transition.from_status, transition.to_status)
            logger.info(
                "merchant_status_changed",
                merchant_id=merchant.id,
                transition=transition.name,
                from_status=transition.from_status,
                to_status=transition.to_status,
            )

    @log_operation
    async def change_merchant_status(
        self, merchant_id: str, status: int, message: Optional[str] = None
    ) -> OnboardingResponse:
        """
        Move a merchant to another onboarding status.

        Args:
            merchant_id: Merchant identifier
            status: Requested status
            message: Notification message replacing the status default

        Returns:
            OnboardingResponse: Updated merchant, or the categorized error
        """
        try:
            merchant = await self._get_merchant(merchant_id)
            updated, transition = self.state_machine.change_status(merchant, status)
            await self._commit(updated, transition, message)
        except OnboardingError as e:
            if e.status == ResponseStatus.BAD_DATA:
                metrics.record_rejected_transition(e.code.value)
            return self._error(
                "merchant_status_change_failed", e, merchant_id=merchant_id, to_status=status
            )

        return OnboardingResponse.ok(updated)

    @log_operation
    async def change_merchant_data(
        self,
        merchant_id: str,
        has_psp_signature: bool,
        has_merchant_signature: bool,
        agreement_type: Optional[int] = None,
    ) -> OnboardingResponse:
        """
        Update agreement and signature data of a merchant.

        Completing both signatures while in agreement signing moves the
        merchant to agreement signed.
        """
        try:
            merchant = await self._get_merchant(merchant_id)
            updated, transition = self.state_machine.update_signatures(
                merchant, has_psp_signature, has_merchant_signature, agreement_type
            )
            self.state_machine.notification_setting(updated.status)
            await self._commit(updated, transition)
        except OnboardingError as e:
            return self._error("merchant_data_change_failed", e, merchant_id=merchant_id)

        return OnboardingResponse.ok(updated)

    @log_operation
    async def get_merchant_tariff_rates(
        self,
        region: str,
        payout_currency: Optional[str] = None,
        amount_from: Optional[Decimal] = None,
        amount_to: Optional[Decimal] = None,
    ) -> OnboardingResponse:
        """
        Look up tariff templates. An empty list is a valid answer.
        """
        tariff_filter = TariffFilter(region, payout_currency, amount_from, amount_to)
        try:
            rates = await self.resolver.resolve(tariff_filter)
        except (StorageError, CacheError) as e:
            logger.error("tariff_rates_lookup_failed", region=region, error=str(e))
            return self._error(
                "tariff_rates_lookup_failed",
                OnboardingError(ErrorCode.MERCHANT_UNKNOWN, ResponseStatus.SYSTEM_ERROR),
                region=region,
            )

        return OnboardingResponse.ok(rates)

    @log_operation
    async def set_merchant_tariff_rates(
        self,
        merchant_id: str,
        region: str,
        payout_currency: str,
        amount_from: Optional[Decimal] = None,
        amount_to: Optional[Decimal] = None,
    ) -> OnboardingResponse:
        """
        Materialize tariff costs for a merchant.

        Returns:
            OnboardingResponse: Updated merchant, or the categorized error
        """
        try:
            merchant = await self._get_merchant(merchant_id)
            result = await self.materializer.materialize(
                merchant, TariffFilter(region, payout_currency, amount_from, amount_to)
            )
        except OnboardingError as e:
            return self._error("merchant_tariff_rates_set_failed", e, merchant_id=merchant_id)

        return OnboardingResponse.ok(result.merchant)

    @log_operation
    async def list_merchant_payment_channel_costs(self, merchant_id: str) -> OnboardingResponse:
        return await self._list_costs(
            merchant_id,
            self.payment_cost_lists,
            payment_channel_cost_merchant_all_key(merchant_id),
            self.payment_costs,
        )

    @log_operation
    async def list_merchant_money_back_costs(self, merchant_id: str) -> OnboardingResponse:
        return await self._list_costs(
            merchant_id,
            self.money_back_cost_lists,
            money_back_cost_merchant_all_key(merchant_id),
            self.money_back_costs,
        )

    async def _list_costs(
        self,
        merchant_id: str,
        cache: ReadThroughCache,
        key: str,
        repository: MerchantCostRepository,
    ) -> OnboardingResponse:
        if not is_valid_id(merchant_id):
            return self._error(
                "merchant_costs_list_failed",
                OnboardingError(ErrorCode.MERCHANT_BAD_DATA),
                merchant_id=merchant_id,
            )

        async def load() -> List[Any]:
            return await repository.find_by_merchant(merchant_id)

        try:
            costs, _ = await cache.get_or_load(key, load)
        except (StorageError, CacheError) as e:
            logger.error("merchant_costs_query_failed", merchant_id=merchant_id, key=key, error=str(e))
            return self._error(
                "merchant_costs_list_failed",
                OnboardingError(ErrorCode.MERCHANT_UNKNOWN, ResponseStatus.SYSTEM_ERROR),
                merchant_id=merchant_id,
            )

        return OnboardingResponse.ok(costs)

    @log_operation
    async def create_notification(
        self,
        merchant_id: str,
        title: str,
        message: str,
        user_id: Optional[str] = None,
    ) -> OnboardingResponse:
        """
        Add a notification to a merchant.

        A notification without a user id is recorded as system-authored.
        """
        try:
            if not is_valid_id(merchant_id):
                raise OnboardingError(ErrorCode.NOTIFICATION_MERCHANT_ID_INCORRECT)
            if not message:
                raise OnboardingError(ErrorCode.NOTIFICATION_MESSAGE_EMPTY)

            await self._get_merchant(merchant_id)
            notification = await self.notification_log.append(
                merchant_id, title, message, user_id=user_id
            )
        except OnboardingError as e:
            return self._error("notification_create_failed", e, merchant_id=merchant_id)
        except StorageError as e:
            return self._error(
                "notification_create_failed",
                OnboardingError(ErrorCode.MERCHANT_UNKNOWN, ResponseStatus.SYSTEM_ERROR),
                merchant_id=merchant_id,
                collection=e.collection,
            )

        return OnboardingResponse.ok(notification)

    @log_operation
    async def get_notification(self, merchant_id: str, notification_id: str) -> Notification:
        """
        Get a notification of a merchant.

        Raises:
            NotificationNotFoundError: If the notification does not exist
        """
        return await self.notification_log.get(merchant_id, notification_id)

    @log_operation
    async def mark_notification_as_read(self, merchant_id: str, notification_id: str) -> Notification:
        """
        Mark a notification as read.

        Raises:
            NotificationNotFoundError: If the notification does not exist
        """
        return await self.notification_log.mark_as_read(merchant_id, notification_id)

    @log_operation
    async def list_notifications(
        self,
        merchant_id: Optional[str] = None,
        user_id: Optional[str] = None,
        is_system: Optional[bool] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> OnboardingResponse:
        try:
            count, items = await self.notification_log.list(
                merchant_id, user_id, is_system, limit, offset
            )
        except StorageError as e:
            return self._error(
                "notifications_list_failed",
                OnboardingError(ErrorCode.MERCHANT_UNKNOWN, ResponseStatus.SYSTEM_ERROR),
                merchant_id=merchant_id,
                collection=e.collection,
            )

        return OnboardingResponse.ok(NotificationPage(count=count, items=items))
