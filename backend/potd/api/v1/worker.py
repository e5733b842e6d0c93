"""Queue worker: process the next pending daily-send job."""

import logging
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from potd.api.deps import get_session_maker, require_worker_secret
from potd.config import settings
from potd.services.cron_engine import run_send_today
from potd.services.cron_logger import ProductionCronLogger
from potd.services.cron_store import SqlCronStore
from potd.services.job_queue import process_next_job

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/worker", tags=["worker"])


@router.post(
    "/process",
    summary="Process the next queued daily send",
    dependencies=[Depends(require_worker_secret)],
    responses={401: {"description": "Bad or missing x-worker-secret"}},
)
async def process_job(
    session_maker: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_maker)],
):
    store = SqlCronStore(session_maker)

    async def run():
        return await run_send_today(
            dry_run=False,
            cron_logger=ProductionCronLogger(),
            clock_override=settings.clock_override,
            store=store,
        )

    timestamp = datetime.now(timezone.utc).isoformat()
    async with session_maker() as session:
        try:
            job, result = await process_next_job(session, run)
        except Exception:
            return JSONResponse(
                status_code=500,
                content={"ok": False, "error": "Job processing failed", "timestamp": timestamp},
            )
    if job is None:
        return {"ok": True, "message": "No pending jobs", "timestamp": timestamp}
    return {
        "ok": True,
        "message": "Job processed",
        "job_id": job.id,
        "result": result.model_dump(mode="json"),
        "timestamp": timestamp,
    }
