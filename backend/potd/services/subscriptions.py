"""Subscribe / unsubscribe: subscribers are soft-deactivated, never deleted, and progress survives resubscribes."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from potd.models.problem_list import ProblemList
from potd.models.subscriber import Subscriber
from potd.models.subscription import Subscription
from potd.services.frequency import FREQUENCY_DAYS

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(email: str | None) -> bool:
    if not email or not email.strip():
        return False
    value = email.strip()
    if value.count("@") != 1:
        return False
    local, domain = value.split("@")
    if not local or not domain:
        return False
    last_dot = domain.rfind(".")
    if last_dot == -1 or last_dot == len(domain) - 1:
        return False
    if ".." in value:
        return False
    return bool(_EMAIL_RE.match(value))


def validate_subscribe_request(
    email: str | None,
    frequency: str | None,
    consent: bool,
    problem_list_ids: Sequence[int] | None = None,
) -> list[str]:
    """Return human-readable validation errors; empty list means valid."""
    errors: list[str] = []
    if not is_valid_email(email):
        errors.append("Please enter a valid email address.")
    if not frequency or frequency not in FREQUENCY_DAYS:
        errors.append("Please choose a frequency (2x, 3x or 5x).")
    if not consent:
        errors.append("Consent to store your email address is required.")
    if problem_list_ids is not None and len(problem_list_ids) == 0:
        errors.append("Please choose at least one problem list.")
    return errors


@dataclass
class SubscribeResult:
    subscriber: Subscriber
    subscriptions: list[Subscription]
    resubscribed: bool


async def _default_problem_list_ids(session: AsyncSession) -> list[int]:
    r = await session.execute(
        select(ProblemList.id).where(ProblemList.is_active.is_(True)).order_by(ProblemList.id).limit(1)
    )
    return [row[0] for row in r.all()]


async def subscribe(
    session: AsyncSession,
    email: str,
    frequency: str,
    problem_list_ids: Sequence[int] | None = None,
) -> SubscribeResult:
    """
    Create or reactivate the subscriber (by lower-cased email) and one subscription per problem list.
    Reactivated subscriptions keep their progress row. Raises ValueError for unknown/inactive lists.
    """
    now = datetime.now(timezone.utc)
    normalized = email.strip().lower()
    list_ids = list(dict.fromkeys(problem_list_ids or [])) or await _default_problem_list_ids(session)
    if not list_ids:
        raise ValueError("No active problem lists available")

    r = await session.execute(
        select(ProblemList.id).where(ProblemList.id.in_(list_ids), ProblemList.is_active.is_(True))
    )
    found = {row[0] for row in r.all()}
    missing = [i for i in list_ids if i not in found]
    if missing:
        raise ValueError(f"Unknown or inactive problem list(s): {missing}")

    r = await session.execute(select(Subscriber).where(Subscriber.email == normalized))
    subscriber = r.scalar_one_or_none()
    resubscribed = False
    if subscriber is None:
        subscriber = Subscriber(email=normalized, frequency=frequency, is_active=True)
        session.add(subscriber)
        await session.flush()
    else:
        if not subscriber.is_active:
            subscriber.is_active = True
            subscriber.resubscribe_count += 1
            subscriber.last_resubscribed_at = now
            resubscribed = True
        subscriber.frequency = frequency

    r = await session.execute(
        select(Subscription).where(
            Subscription.subscriber_id == subscriber.id,
            Subscription.problem_list_id.in_(list_ids),
        )
    )
    existing = {s.problem_list_id: s for s in r.scalars().all()}
    subscriptions: list[Subscription] = []
    for list_id in list_ids:
        sub = existing.get(list_id)
        if sub is None:
            sub = Subscription(
                subscriber_id=subscriber.id,
                problem_list_id=list_id,
                frequency=frequency,
                is_active=True,
            )
            session.add(sub)
        else:
            if not sub.is_active:
                sub.is_active = True
                sub.resubscribe_count += 1
                sub.last_resubscribed_at = now
                resubscribed = True
            sub.frequency = frequency
        subscriptions.append(sub)
    await session.flush()
    logger.info(
        "Subscribe: subscriber_id=%s lists=%s frequency=%s resubscribed=%s",
        subscriber.id,
        list_ids,
        frequency,
        resubscribed,
    )
    return SubscribeResult(subscriber=subscriber, subscriptions=subscriptions, resubscribed=resubscribed)


async def unsubscribe_subscription(session: AsyncSession, subscription_id: int) -> Subscription | None:
    """Deactivate one active subscription. Returns None if it does not exist or is already inactive."""
    r = await session.execute(
        select(Subscription)
        .where(Subscription.id == subscription_id, Subscription.is_active.is_(True))
        .options(selectinload(Subscription.subscriber), selectinload(Subscription.problem_list))
    )
    sub = r.scalar_one_or_none()
    if sub is None:
        return None
    sub.is_active = False
    sub.last_unsubscribed_at = datetime.now(timezone.utc)
    await session.flush()
    logger.info("Unsubscribe: subscription_id=%s deactivated", subscription_id)
    return sub


async def unsubscribe_by_token(session: AsyncSession, token: str) -> Subscriber | None:
    """Legacy all-or-nothing path: deactivate the subscriber and every one of their subscriptions."""
    if not token or not token.strip():
        return None
    r = await session.execute(select(Subscriber).where(Subscriber.unsubscribe_token == token.strip()))
    subscriber = r.scalar_one_or_none()
    if subscriber is None:
        return None
    now = datetime.now(timezone.utc)
    subscriber.is_active = False
    subscriber.last_unsubscribed_at = now
    await session.execute(
        update(Subscription)
        .where(Subscription.subscriber_id == subscriber.id, Subscription.is_active.is_(True))
        .values(is_active=False, last_unsubscribed_at=now, updated_at=now)
    )
    await session.flush()
    logger.info("Unsubscribe: subscriber_id=%s deactivated with all subscriptions", subscriber.id)
    return subscriber


async def subscriber_stats(session: AsyncSession) -> dict:
    """Active subscription counts, total and per frequency."""
    r = await session.execute(
        select(Subscription.frequency, func.count(Subscription.id))
        .join(Subscription.subscriber)
        .where(Subscription.is_active.is_(True), Subscriber.is_active.is_(True))
        .group_by(Subscription.frequency)
    )
    by_frequency = {tag: 0 for tag in FREQUENCY_DAYS}
    for frequency, count in r.all():
        by_frequency[frequency] = count
    return {"total": sum(by_frequency.values()), "frequency": by_frequency}
