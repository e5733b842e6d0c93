"""Tests for SqlCronStore on SQLite, plus one engine run end to end through it."""

from datetime import date

import pytest
from sqlalchemy import select

from potd.models import Delivery, Problem, Subscriber, SubscriptionProgress
from potd.schemas.cron import DeliveryStatus
from potd.services.cron_engine import CronEngine
from potd.services.cron_store import SqlCronStore

from conftest import MONDAY, RecordingTransport, add_subscription

MON = date(2026, 3, 2)


@pytest.mark.asyncio
async def test_list_active_subscriptions_excludes_inactive(session_maker, catalog):
    active = await add_subscription(session_maker, "a@example.com", "5x", catalog["basic"])
    await add_subscription(session_maker, "b@example.com", "5x", catalog["basic"], active=False)
    gone = await add_subscription(session_maker, "c@example.com", "3x", catalog["advanced"])
    async with session_maker() as session:
        subscriber = (await session.execute(select(Subscriber).where(Subscriber.email == "c@example.com"))).scalar_one()
        subscriber.is_active = False
        await session.commit()

    subs = await SqlCronStore(session_maker).list_active_subscriptions()

    assert [s.id for s in subs] == [active]
    assert gone not in [s.id for s in subs]
    assert subs[0].subscriber.email == "a@example.com"
    assert subs[0].problem_list.name == "basic"


@pytest.mark.asyncio
async def test_list_active_problems_ordered_by_week_then_creation(session_maker, catalog):
    async with session_maker() as session:
        session.add(Problem(problem_list_id=catalog["basic"], title="No week", url="https://judge.example/9", difficulty="easy"))
        session.add(Problem(problem_list_id=catalog["basic"], title="Hidden", url="https://judge.example/8", difficulty="easy", week=0, active=False))
        await session.commit()

    store = SqlCronStore(session_maker)
    basic = await store.list_active_problems(catalog["basic"])
    assert [p.title for p in basic] == ["Two Sum", "Valid Parentheses", "Merge Intervals", "No week"]
    assert len(await store.list_active_problems()) == 5


@pytest.mark.asyncio
async def test_progress_and_delivery_upserts(session_maker, catalog):
    sub_id = await add_subscription(session_maker, "a@example.com", "5x", catalog["basic"])
    store = SqlCronStore(session_maker)
    (sub,) = await store.list_active_subscriptions()

    assert await store.batch_get_progress([sub_id]) == {}
    await store.upsert_progress(sub_id, 1, 1)
    await store.upsert_progress(sub_id, 2, 2)
    progress = await store.batch_get_progress([sub_id])
    assert progress[sub_id].current_problem_index == 2
    assert progress[sub_id].total_problems_sent == 2

    await store.upsert_delivery(sub, MON, 1, DeliveryStatus.QUEUED)
    await store.upsert_delivery(sub, MON, 2, DeliveryStatus.SENT)
    deliveries = await store.batch_get_deliveries([sub_id], MON)
    assert deliveries[sub_id].status == DeliveryStatus.SENT
    assert await store.batch_get_deliveries([sub_id], date(2026, 3, 3)) == {}

    async with session_maker() as session:
        rows = (await session.execute(select(Delivery))).scalars().all()
    assert len(rows) == 1
    assert rows[0].problem_id == 2


@pytest.mark.asyncio
async def test_conditional_status_update(session_maker, catalog):
    sub_id = await add_subscription(session_maker, "a@example.com", "5x", catalog["basic"])
    store = SqlCronStore(session_maker)
    (sub,) = await store.list_active_subscriptions()
    await store.upsert_delivery(sub, MON, 1, DeliveryStatus.SENT)

    changed = await store.update_delivery_status(sub_id, MON, DeliveryStatus.FAILED, only_if=DeliveryStatus.QUEUED)
    assert changed is False
    assert (await store.batch_get_deliveries([sub_id], MON))[sub_id].status == DeliveryStatus.SENT

    await store.update_delivery_status(sub_id, MON, DeliveryStatus.QUEUED)
    changed = await store.update_delivery_status(sub_id, MON, DeliveryStatus.FAILED, only_if=DeliveryStatus.QUEUED)
    assert changed is True
    assert (await store.batch_get_deliveries([sub_id], MON))[sub_id].status == DeliveryStatus.FAILED


@pytest.mark.asyncio
async def test_empty_id_lists_skip_queries(session_maker):
    store = SqlCronStore(session_maker)
    assert await store.batch_get_progress([]) == {}
    assert await store.batch_get_deliveries([], MON) == {}


@pytest.mark.asyncio
async def test_engine_run_against_database_is_idempotent(session_maker, catalog, cron_logger):
    a = await add_subscription(session_maker, "a@example.com", "5x", catalog["basic"])
    b = await add_subscription(session_maker, "b@example.com", "3x", catalog["advanced"])
    await add_subscription(session_maker, "c@example.com", "2x", catalog["basic"])
    transport = RecordingTransport()
    engine = CronEngine(
        SqlCronStore(session_maker),
        transport,
        batch_size=1,
        batch_delay_seconds=0.0,
        send_timeout_seconds=5.0,
        tz_name="Asia/Seoul",
    )

    first = await engine.run(cron_logger=cron_logger, clock_override=MONDAY)
    second = await engine.run(cron_logger=cron_logger, clock_override=MONDAY)

    assert first.summary.newly_sent == 2
    assert second.summary.newly_sent == 0
    assert second.summary.already_sent == 2
    assert len(transport.sent) == 2
    titles = {m.to: m.problem_title for m in transport.sent}
    assert titles == {"a@example.com": "Two Sum", "b@example.com": "Median of Two Arrays"}

    async with session_maker() as session:
        progress = {
            p.subscription_id: p
            for p in (await session.execute(select(SubscriptionProgress))).scalars().all()
        }
        deliveries = (await session.execute(select(Delivery))).scalars().all()
    assert progress[a].current_problem_index == 1
    assert progress[b].total_problems_sent == 1
    assert sorted((d.subscription_id, d.status) for d in deliveries) == [(a, "sent"), (b, "sent")]
