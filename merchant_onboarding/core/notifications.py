"""Append-only per-merchant notification history."""
from typing import List, Optional, Protocol, Tuple

import structlog

from .errors import ErrorCode, NotificationNotFoundError, OnboardingError, ResponseStatus
from .models import Notification, NotificationStatusChange, is_valid_id, utcnow

logger = structlog.get_logger(__name__)


class NotificationRepository(Protocol):
    async def insert(self, notification: Notification) -> None:
        ...

    async def get_by_id(self, notification_id: str) -> Optional[Notification]:
        ...

    async def update(self, notification: Notification) -> None:
        ...

    async def find(
        self,
        merchant_id: Optional[str],
        user_id: Optional[str],
        is_system: Optional[bool],
        limit: int,
        offset: int,
    ) -> List[Notification]:
        ...

    async def count(
        self, merchant_id: Optional[str], user_id: Optional[str], is_system: Optional[bool]
    ) -> int:
        ...


class NotificationLog:
    """
    Notification records of merchants.

    Records are only ever appended and marked as read. A notification without
    a user id is system-authored.
    """

    def __init__(self, repository: NotificationRepository):
        self.repository = repository

    async def append(
        self,
        merchant_id: str,
        title: str,
        message: str,
        user_id: Optional[str] = None,
        statuses: Optional[NotificationStatusChange] = None,
    ) -> Notification:
        """
        Validate and store a new notification.

        Raises:
            OnboardingError: If the merchant id is malformed or the message empty
            StorageError: If the insert fails
        """
        if not is_valid_id(merchant_id):
            raise OnboardingError(ErrorCode.NOTIFICATION_MERCHANT_ID_INCORRECT)

        if not message:
            raise OnboardingError(ErrorCode.NOTIFICATION_MESSAGE_EMPTY)

        notification = Notification(
            merchant_id=merchant_id,
            user_id=user_id or None,
            title=title,
            message=message,
            is_system=not user_id,
            statuses=statuses,
        )
        await self.repository.insert(notification)

        logger.info(
            "notification_appended",
            notification_id=notification.id,
            merchant_id=merchant_id,
            is_system=notification.is_system,
            has_status_change=statuses is not None,
        )
        return notification

    async def get(self, merchant_id: str, notification_id: str) -> Notification:
        """
        Get a notification of a merchant.

        Raises:
            NotificationNotFoundError: If no such notification belongs to the merchant
        """
        notification = None
        if is_valid_id(notification_id):
            notification = await self.repository.get_by_id(notification_id)

        if notification is None or notification.merchant_id != merchant_id:
            raise NotificationNotFoundError()
        return notification

    async def list(
        self,
        merchant_id: Optional[str] = None,
        user_id: Optional[str] = None,
        is_system: Optional[bool] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> Tuple[int, List[Notification]]:
        """Count matching notifications and return one page of them."""
        count = await self.repository.count(merchant_id, user_id, is_system)
        if count == 0:
            return 0, []

        items = await self.repository.find(merchant_id, user_id, is_system, limit, offset)
        return count, items

    async def mark_as_read(self, merchant_id: str, notification_id: str) -> Notification:
        notification = await self.get(merchant_id, notification_id)
        if notification.is_read:
            return notification

        notification.is_read = True
        notification.updated_at = utcnow()
        await self.repository.update(notification)
        return notification
