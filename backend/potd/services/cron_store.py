"""
Store contract used by the cron engine, and its SQLAlchemy implementation.

SqlCronStore opens a short-lived session per operation: subscriptions processed concurrently
within a batch never share a session, and each write commits on its own.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date, datetime, timezone
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from potd.models.delivery import Delivery
from potd.models.problem import Problem
from potd.models.subscriber import Subscriber
from potd.models.subscription import Subscription
from potd.models.subscription_progress import SubscriptionProgress
from potd.schemas.cron import (
    DeliveryRecord,
    DeliveryStatus,
    ProblemRecord,
    ProgressRecord,
    SubscriptionRecord,
)

logger = logging.getLogger(__name__)


class CronStore(Protocol):
    async def list_active_subscriptions(self) -> list[SubscriptionRecord]: ...

    async def list_active_problems(self, problem_list_id: int | None = None) -> list[ProblemRecord]: ...

    async def batch_get_progress(self, subscription_ids: Sequence[int]) -> dict[int, ProgressRecord]: ...

    async def batch_get_deliveries(
        self, subscription_ids: Sequence[int], day: date
    ) -> dict[int, DeliveryRecord]: ...

    async def upsert_progress(self, subscription_id: int, index: int, total_sent: int) -> None: ...

    async def upsert_delivery(
        self, subscription: SubscriptionRecord, day: date, problem_id: int, status: DeliveryStatus
    ) -> None: ...

    async def update_delivery_status(
        self,
        subscription_id: int,
        day: date,
        status: DeliveryStatus,
        *,
        only_if: DeliveryStatus | None = None,
    ) -> bool: ...


class SqlCronStore:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def list_active_subscriptions(self) -> list[SubscriptionRecord]:
        """Active subscriptions of active subscribers, with subscriber and problem list loaded."""
        async with self._session_maker() as session:
            r = await session.execute(
                select(Subscription)
                .join(Subscription.subscriber)
                .where(
                    Subscription.is_active.is_(True),
                    Subscriber.is_active.is_(True),
                )
                .options(selectinload(Subscription.subscriber), selectinload(Subscription.problem_list))
                .order_by(Subscription.id)
            )
            return [SubscriptionRecord.model_validate(row) for row in r.scalars().all()]

    async def list_active_problems(self, problem_list_id: int | None = None) -> list[ProblemRecord]:
        """Active problems ordered by week hint (nulls last), then creation order."""
        stmt = select(Problem).where(Problem.active.is_(True))
        if problem_list_id is not None:
            stmt = stmt.where(Problem.problem_list_id == problem_list_id)
        stmt = stmt.order_by(Problem.week.asc().nulls_last(), Problem.created_at.asc(), Problem.id.asc())
        async with self._session_maker() as session:
            r = await session.execute(stmt)
            return [ProblemRecord.model_validate(row) for row in r.scalars().all()]

    async def batch_get_progress(self, subscription_ids: Sequence[int]) -> dict[int, ProgressRecord]:
        if not subscription_ids:
            return {}
        async with self._session_maker() as session:
            r = await session.execute(
                select(SubscriptionProgress).where(SubscriptionProgress.subscription_id.in_(list(subscription_ids)))
            )
            return {row.subscription_id: ProgressRecord.model_validate(row) for row in r.scalars().all()}

    async def batch_get_deliveries(
        self, subscription_ids: Sequence[int], day: date
    ) -> dict[int, DeliveryRecord]:
        if not subscription_ids:
            return {}
        async with self._session_maker() as session:
            r = await session.execute(
                select(Delivery).where(
                    Delivery.subscription_id.in_(list(subscription_ids)),
                    Delivery.send_date == day,
                )
            )
            return {row.subscription_id: DeliveryRecord.model_validate(row) for row in r.scalars().all()}

    async def upsert_progress(self, subscription_id: int, index: int, total_sent: int) -> None:
        async with self._session_maker() as session:
            r = await session.execute(
                select(SubscriptionProgress).where(SubscriptionProgress.subscription_id == subscription_id)
            )
            row = r.scalar_one_or_none()
            if row:
                row.current_problem_index = index
                row.total_problems_sent = total_sent
                row.updated_at = datetime.now(timezone.utc)
            else:
                session.add(
                    SubscriptionProgress(
                        subscription_id=subscription_id,
                        current_problem_index=index,
                        total_problems_sent=total_sent,
                    )
                )
            await session.commit()

    async def upsert_delivery(
        self, subscription: SubscriptionRecord, day: date, problem_id: int, status: DeliveryStatus
    ) -> None:
        async with self._session_maker() as session:
            r = await session.execute(
                select(Delivery).where(
                    Delivery.subscription_id == subscription.id,
                    Delivery.send_date == day,
                )
            )
            row = r.scalar_one_or_none()
            if row:
                row.status = status.value
                row.problem_id = problem_id
            else:
                session.add(
                    Delivery(
                        subscriber_id=subscription.subscriber_id,
                        subscription_id=subscription.id,
                        problem_list_id=subscription.problem_list_id,
                        problem_id=problem_id,
                        send_date=day,
                        status=status.value,
                    )
                )
            await session.commit()

    async def update_delivery_status(
        self,
        subscription_id: int,
        day: date,
        status: DeliveryStatus,
        *,
        only_if: DeliveryStatus | None = None,
    ) -> bool:
        """Set status on the (subscription, day) record; with only_if, only when it currently has that status."""
        stmt = update(Delivery).where(
            Delivery.subscription_id == subscription_id,
            Delivery.send_date == day,
        )
        if only_if is not None:
            stmt = stmt.where(Delivery.status == only_if.value)
        stmt = stmt.values(status=status.value, updated_at=datetime.now(timezone.utc))
        async with self._session_maker() as session:
            r = await session.execute(stmt)
            await session.commit()
            return (r.rowcount or 0) > 0
