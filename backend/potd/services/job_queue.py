"""
Queue for the daily send job (cron_jobs table). The cron trigger enqueues; a worker claims the
oldest pending job, runs the engine, and marks it completed, or failed and re-queued while retries remain.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from potd.config import settings
from potd.models.cron_job import CronJob
from potd.schemas.cron import RunResult

logger = logging.getLogger(__name__)

JOB_TYPE_SEND_DAILY = "send-daily-email"
ENQUEUE_ATTEMPTS = 3


async def enqueue_send_today_job(
    session_maker: async_sessionmaker[AsyncSession],
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> int:
    """Insert a pending job, retrying with 1s/2s backoff. Raises RuntimeError when every attempt fails."""
    last_error: Exception | None = None
    for attempt in range(1, ENQUEUE_ATTEMPTS + 1):
        try:
            async with session_maker() as session:
                job = CronJob(
                    type=JOB_TYPE_SEND_DAILY,
                    status="pending",
                    retry_count=0,
                    max_retries=settings.job_max_retries,
                )
                session.add(job)
                await session.commit()
                logger.info("Daily email job %s queued", job.id)
                return job.id
        except Exception as e:
            last_error = e
            logger.warning("Failed to enqueue job (attempt %s/%s): %s", attempt, ENQUEUE_ATTEMPTS, e)
            if attempt < ENQUEUE_ATTEMPTS:
                await sleep(2 ** (attempt - 1))
    raise RuntimeError(f"Failed to enqueue job after {ENQUEUE_ATTEMPTS} attempts: {last_error}") from last_error


async def get_next_pending_job(session: AsyncSession) -> CronJob | None:
    r = await session.execute(
        select(CronJob)
        .where(CronJob.status == "pending", CronJob.type == JOB_TYPE_SEND_DAILY)
        .order_by(CronJob.created_at, CronJob.id)
        .limit(1)
    )
    return r.scalar_one_or_none()


async def update_job_status(
    session: AsyncSession,
    job: CronJob,
    status: str,
    error_message: str | None = None,
) -> None:
    now = datetime.now(timezone.utc)
    job.status = status
    if status in ("completed", "failed"):
        job.completed_at = now
        if error_message:
            job.error_message = error_message[:500]
    await session.flush()


async def claim_job(session: AsyncSession, job: CronJob) -> bool:
    """Flip job pending -> processing only if it is still pending. Returns False when another worker got it."""
    r = await session.execute(
        update(CronJob)
        .where(CronJob.id == job.id, CronJob.status == "pending")
        .values(status="processing", started_at=datetime.now(timezone.utc))
    )
    await session.commit()
    if r.rowcount != 1:
        return False
    await session.refresh(job)
    return True


async def retry_failed_job(session: AsyncSession, job: CronJob) -> bool:
    """Put a failed job back to pending if it has retries left. Returns True when re-queued."""
    if job.retry_count >= job.max_retries:
        return False
    job.status = "pending"
    job.retry_count += 1
    job.error_message = None
    await session.flush()
    return True


async def process_next_job(
    session: AsyncSession,
    run: Callable[[], Awaitable[RunResult]],
) -> tuple[CronJob | None, RunResult | None]:
    """
    Claim and run one pending job. Returns (None, None) when the queue is empty,
    (job, result) on success. On failure the job is marked failed (and maybe re-queued) before re-raising.
    """
    job = await get_next_pending_job(session)
    if job is None:
        return None, None
    if not await claim_job(session, job):
        logger.info("Job %s already claimed by another worker", job.id)
        return None, None
    logger.info("Processing job %s: %s", job.id, job.type)
    try:
        result = await run()
    except Exception as e:
        logger.exception("Job %s failed: %s", job.id, e)
        await update_job_status(session, job, "failed", str(e))
        if await retry_failed_job(session, job):
            logger.info("Job %s queued for retry (%s/%s)", job.id, job.retry_count, job.max_retries)
        await session.commit()
        raise
    await update_job_status(session, job, "completed")
    await session.commit()
    logger.info("Job %s completed", job.id)
    return job, result
