"""
Repositories over the onboarding tables.

Repositories are the only code touching database sessions. Every failing
query is logged with its collection and parameters and raised as
``StorageError``; nothing is retried.
"""
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from merchant_onboarding.core.errors import StorageError
from merchant_onboarding.core.models import (
    Merchant,
    MerchantMoneyBackCost,
    MerchantPaymentChannelCost,
    Notification,
    PaymentMethod,
    PayoutCostSystem,
    SystemFees,
    TariffRate,
)
from merchant_onboarding.database.connection import get_session_factory
from merchant_onboarding.database.models import (
    MerchantMoneyBackCostRecord,
    MerchantPaymentChannelCostRecord,
    MerchantRecord,
    NotificationRecord,
    PaymentMethodRecord,
    PayoutCostSystemRecord,
    SystemFeesRecord,
    TariffRateRecord,
)

logger = structlog.get_logger(__name__)


class _Repository:
    collection = ""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self.session_factory = session_factory or get_session_factory()

    @asynccontextmanager
    async def _session(self, operation: str, **query: Any) -> AsyncIterator[AsyncSession]:
        """Open a session in a transaction, converting database errors to ``StorageError``."""
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as e:
            logger.error(
                "storage_query_failed",
                collection=self.collection,
                operation=operation,
                query=query,
                error=str(e),
            )
            raise StorageError(
                f"{self.collection} {operation} failed: {e}",
                self.collection,
                {"operation": operation, **query},
            ) from e


class MerchantRepository(_Repository):
    collection = "merchants"

    async def get_by_id(self, merchant_id: str) -> Optional[Merchant]:
        async with self._session("get_by_id", id=merchant_id) as session:
            record = await session.get(MerchantRecord, merchant_id)
        if record is None:
            return None
        return Merchant.model_validate(record.document)

    async def insert(self, merchant: Merchant) -> None:
        async with self._session("insert", id=merchant.id) as session:
            session.add(self._record(merchant))

    async def update(self, merchant: Merchant) -> None:
        """Write the merchant as a whole; the last writer wins."""
        async with self._session("update", id=merchant.id, status=merchant.status) as session:
            await session.merge(self._record(merchant))

    @staticmethod
    def _record(merchant: Merchant) -> MerchantRecord:
        return MerchantRecord(
            id=merchant.id,
            user_id=merchant.user_id,
            status=merchant.status,
            document=merchant.model_dump(mode="json"),
            created_at=merchant.created_at,
            updated_at=merchant.updated_at,
        )


class NotificationRepository(_Repository):
    collection = "notifications"

    async def insert(self, notification: Notification) -> None:
        async with self._session(
            "insert", id=notification.id, merchant_id=notification.merchant_id
        ) as session:
            session.add(self._record(notification))

    async def get_by_id(self, notification_id: str) -> Optional[Notification]:
        async with self._session("get_by_id", id=notification_id) as session:
            record = await session.get(NotificationRecord, notification_id)
        if record is None:
            return None
        return Notification.model_validate(record.document)

    async def update(self, notification: Notification) -> None:
        async with self._session("update", id=notification.id) as session:
            await session.merge(self._record(notification))

    @staticmethod
    def _filtered(
        statement: Any,
        merchant_id: Optional[str],
        user_id: Optional[str],
        is_system: Optional[bool],
    ) -> Any:
        if merchant_id:
            statement = statement.where(NotificationRecord.merchant_id == merchant_id)
        if user_id:
            statement = statement.where(NotificationRecord.user_id == user_id)
        if is_system is not None:
            statement = statement.where(NotificationRecord.is_system.is_(is_system))
        return statement

    async def find(
        self,
        merchant_id: Optional[str],
        user_id: Optional[str],
        is_system: Optional[bool],
        limit: int,
        offset: int,
    ) -> List[Notification]:
        statement = self._filtered(select(NotificationRecord), merchant_id, user_id, is_system)
        statement = statement.order_by(NotificationRecord.created_at.desc()).limit(limit).offset(offset)

        async with self._session(
            "find", merchant_id=merchant_id, user_id=user_id, limit=limit, offset=offset
        ) as session:
            records = (await session.scalars(statement)).all()
        return [Notification.model_validate(record.document) for record in records]

    async def count(
        self, merchant_id: Optional[str], user_id: Optional[str], is_system: Optional[bool]
    ) -> int:
        statement = self._filtered(
            select(func.count()).select_from(NotificationRecord), merchant_id, user_id, is_system
        )
        async with self._session("count", merchant_id=merchant_id, user_id=user_id) as session:
            return (await session.scalar(statement)) or 0

    @staticmethod
    def _record(notification: Notification) -> NotificationRecord:
        return NotificationRecord(
            id=notification.id,
            merchant_id=notification.merchant_id,
            user_id=notification.user_id,
            is_system=notification.is_system,
            is_read=notification.is_read,
            document=notification.model_dump(mode="json"),
            created_at=notification.created_at,
        )


class TariffRateRepository(_Repository):
    collection = "merchant_tariff_rates"

    async def find_by_region(self, region: str) -> List[TariffRate]:
        statement = select(TariffRateRecord).where(TariffRateRecord.region == region)
        async with self._session("find_by_region", region=region) as session:
            records = (await session.scalars(statement)).all()
        return [TariffRate.model_validate(record.document) for record in records]

    async def insert(self, rate: TariffRate) -> None:
        async with self._session("insert", id=rate.id, region=rate.region) as session:
            session.add(
                TariffRateRecord(id=rate.id, region=rate.region, document=rate.model_dump(mode="json"))
            )


class MerchantPaymentChannelCostRepository(_Repository):
    collection = "payment_channel_cost_merchant"
    record_class: Any = MerchantPaymentChannelCostRecord
    model_class: Any = MerchantPaymentChannelCost

    async def insert_many(self, costs: List[Any]) -> None:
        merchant_ids = sorted({cost.merchant_id for cost in costs})
        async with self._session("insert_many", merchant_ids=merchant_ids, count=len(costs)) as session:
            session.add_all(
                [
                    self.record_class(
                        id=cost.id,
                        merchant_id=cost.merchant_id,
                        is_active=cost.is_active,
                        document=cost.model_dump(mode="json"),
                        created_at=cost.created_at,
                    )
                    for cost in costs
                ]
            )

    async def count_by_merchant(self, merchant_id: str) -> int:
        statement = (
            select(func.count())
            .select_from(self.record_class)
            .where(self.record_class.merchant_id == merchant_id, self.record_class.is_active.is_(True))
        )
        async with self._session("count_by_merchant", merchant_id=merchant_id) as session:
            return (await session.scalar(statement)) or 0

    async def find_by_merchant(self, merchant_id: str) -> List[Any]:
        statement = select(self.record_class).where(
            self.record_class.merchant_id == merchant_id, self.record_class.is_active.is_(True)
        )
        async with self._session("find_by_merchant", merchant_id=merchant_id) as session:
            records = (await session.scalars(statement)).all()
        return [self.model_class.model_validate(record.document) for record in records]


class MerchantMoneyBackCostRepository(MerchantPaymentChannelCostRepository):
    collection = "money_back_cost_merchant"
    record_class = MerchantMoneyBackCostRecord
    model_class = MerchantMoneyBackCost


class SystemFeesRepository(_Repository):
    collection = "system_fees"

    @staticmethod
    def _model(record: SystemFeesRecord) -> SystemFees:
        # is_active only lives in the column once a record is deactivated
        return SystemFees.model_validate({**record.document, "is_active": record.is_active})

    async def get_active(self, method_id: str, region: str, card_brand: str) -> Optional[SystemFees]:
        statement = (
            select(SystemFeesRecord)
            .where(
                SystemFeesRecord.method_id == method_id,
                SystemFeesRecord.region == region,
                SystemFeesRecord.card_brand == card_brand,
                SystemFeesRecord.is_active.is_(True),
            )
            .order_by(SystemFeesRecord.created_at.desc())
            .limit(1)
        )
        async with self._session(
            "get_active", method_id=method_id, region=region, card_brand=card_brand
        ) as session:
            record = await session.scalar(statement)
        return self._model(record) if record is not None else None

    async def deactivate(self, method_id: str, region: str, card_brand: str) -> int:
        statement = (
            update(SystemFeesRecord)
            .where(
                SystemFeesRecord.method_id == method_id,
                SystemFeesRecord.region == region,
                SystemFeesRecord.card_brand == card_brand,
                SystemFeesRecord.is_active.is_(True),
            )
            .values(is_active=False)
        )
        async with self._session(
            "deactivate", method_id=method_id, region=region, card_brand=card_brand
        ) as session:
            result = await session.execute(statement)
        return result.rowcount

    async def insert(self, fees: SystemFees) -> None:
        async with self._session("insert", id=fees.id, method_id=fees.method_id) as session:
            session.add(
                SystemFeesRecord(
                    id=fees.id,
                    method_id=fees.method_id,
                    region=fees.region,
                    card_brand=fees.card_brand,
                    is_active=fees.is_active,
                    document=fees.model_dump(mode="json"),
                    created_at=fees.created_at,
                )
            )

    async def find_active(self) -> List[SystemFees]:
        statement = select(SystemFeesRecord).where(SystemFeesRecord.is_active.is_(True))
        async with self._session("find_active") as session:
            records = (await session.scalars(statement)).all()
        return [self._model(record) for record in records]


class PaymentMethodRepository(_Repository):
    collection = "payment_methods"

    async def get_by_id(self, method_id: str) -> Optional[PaymentMethod]:
        async with self._session("get_by_id", id=method_id) as session:
            record = await session.get(PaymentMethodRecord, method_id)
        if record is None:
            return None
        return PaymentMethod(
            id=record.id,
            name=record.name,
            group_alias=record.group_alias,
            is_active=record.is_active,
        )

    async def insert(self, method: PaymentMethod) -> None:
        async with self._session("insert", id=method.id) as session:
            session.add(
                PaymentMethodRecord(
                    id=method.id,
                    name=method.name,
                    group_alias=method.group_alias,
                    is_active=method.is_active,
                )
            )


class PayoutCostSystemRepository(_Repository):
    collection = "payout_cost_system"

    async def get_active(self) -> Optional[PayoutCostSystem]:
        statement = (
            select(PayoutCostSystemRecord)
            .where(PayoutCostSystemRecord.is_active.is_(True))
            .order_by(PayoutCostSystemRecord.created_at.desc())
            .limit(1)
        )
        async with self._session("get_active") as session:
            record = await session.scalar(statement)
        if record is None:
            return None
        return PayoutCostSystem.model_validate(record.document)

    async def deactivate_all(self) -> int:
        statement = (
            update(PayoutCostSystemRecord)
            .where(PayoutCostSystemRecord.is_active.is_(True))
            .values(is_active=False)
        )
        async with self._session("deactivate_all") as session:
            result = await session.execute(statement)
        return result.rowcount

    async def insert(self, record: PayoutCostSystem) -> None:
        async with self._session("insert", id=record.id) as session:
            session.add(
                PayoutCostSystemRecord(
                    id=record.id,
                    is_active=record.is_active,
                    document=record.model_dump(mode="json"),
                    created_at=record.created_at,
                )
            )
