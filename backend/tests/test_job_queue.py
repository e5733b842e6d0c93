"""Tests for the daily-send job queue."""

import asyncio
from datetime import date
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select

from potd.models import CronJob
from potd.schemas.cron import RunResult, RunSummary
from potd.services import job_queue
from potd.services.job_queue import enqueue_send_today_job, process_next_job


def _result() -> RunResult:
    return RunResult(ok=True, summary=RunSummary(date=date(2026, 3, 2), day_of_week="Monday"))


class NoSleep:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.mark.asyncio
async def test_enqueue_creates_pending_job(session_maker):
    job_id = await enqueue_send_today_job(session_maker)
    async with session_maker() as session:
        job = await session.get(CronJob, job_id)
    assert job.status == "pending"
    assert job.type == "send-daily-email"
    assert job.retry_count == 0


@pytest.mark.asyncio
async def test_enqueue_retries_then_raises():
    broken = MagicMock(side_effect=ConnectionError("db unreachable"))
    sleep = NoSleep()
    with pytest.raises(RuntimeError, match="after 3 attempts"):
        await enqueue_send_today_job(broken, sleep=sleep)
    assert broken.call_count == 3
    assert sleep.calls == [1, 2]


@pytest.mark.asyncio
async def test_process_empty_queue(session_maker):
    called = False

    async def run():
        nonlocal called
        called = True
        return _result()

    async with session_maker() as session:
        job, result = await process_next_job(session, run)
    assert (job, result) == (None, None)
    assert not called


@pytest.mark.asyncio
async def test_process_completes_oldest_job(session_maker):
    first = await enqueue_send_today_job(session_maker)
    second = await enqueue_send_today_job(session_maker)

    async def run():
        return _result()

    async with session_maker() as session:
        job, result = await process_next_job(session, run)
    assert job.id == first
    assert result.ok

    async with session_maker() as session:
        statuses = {j.id: j.status for j in (await session.execute(select(CronJob))).scalars().all()}
    assert statuses == {first: "completed", second: "pending"}


@pytest.mark.asyncio
async def test_failed_job_is_requeued_until_retries_run_out(session_maker):
    job_id = await enqueue_send_today_job(session_maker)

    async def run():
        raise RuntimeError("engine blew up")

    for _ in range(3):
        async with session_maker() as session:
            with pytest.raises(RuntimeError):
                await process_next_job(session, run)

    async with session_maker() as session:
        job = await session.get(CronJob, job_id)
    assert job.status == "pending"
    assert job.retry_count == 3

    async with session_maker() as session:
        with pytest.raises(RuntimeError):
            await process_next_job(session, run)
    async with session_maker() as session:
        job = await session.get(CronJob, job_id)
    assert job.status == "failed"
    assert job.error_message == "engine blew up"


@pytest.mark.asyncio
async def test_concurrent_workers_run_one_job_once(session_maker, monkeypatch):
    job_id = await enqueue_send_today_job(session_maker)
    both_selected = asyncio.Event()
    selected = 0

    async def select_then_wait(session):
        nonlocal selected
        job = await original_select(session)
        selected += 1
        if selected == 2:
            both_selected.set()
        await both_selected.wait()
        return job

    original_select = job_queue.get_next_pending_job
    monkeypatch.setattr(job_queue, "get_next_pending_job", select_then_wait)
    runs = 0

    async def run():
        nonlocal runs
        runs += 1
        return _result()

    async def worker():
        async with session_maker() as session:
            return await process_next_job(session, run)

    first, second = await asyncio.gather(worker(), worker())

    assert runs == 1
    winners = [job for job, _ in (first, second) if job is not None]
    assert [job.id for job in winners] == [job_id]
    assert (None, None) in (first, second)
    async with session_maker() as session:
        job = await session.get(CronJob, job_id)
    assert job.status == "completed"
    assert job.started_at is not None
