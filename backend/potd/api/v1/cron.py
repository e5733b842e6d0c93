"""Cron trigger: enqueue the daily job, or run the send engine inline (live or dry run)."""

import logging
from datetime import date, datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from potd.api.deps import get_session_maker, require_cron_secret
from potd.config import settings
from potd.services.cron_engine import CronRunError, run_send_today
from potd.services.cron_store import SqlCronStore
from potd.services.job_queue import enqueue_send_today_job

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/send-today", summary="Cron endpoint health")
async def send_today_info() -> dict:
    return {
        "ok": True,
        "message": "Use POST with the x-cron-secret header to queue the daily send.",
        "timestamp": _now_iso(),
    }


@router.post(
    "/send-today",
    summary="Queue the daily send job",
    status_code=202,
    dependencies=[Depends(require_cron_secret)],
    responses={401: {"description": "Bad or missing x-cron-secret"}},
)
async def queue_send_today(
    session_maker: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_maker)],
):
    try:
        job_id = await enqueue_send_today_job(session_maker)
    except RuntimeError as e:
        logger.error("Failed to queue cron job: %s", e)
        return JSONResponse(status_code=500, content={"ok": False, "error": "Failed to queue job"})
    return {"ok": True, "message": "Daily email job queued", "job_id": job_id, "timestamp": _now_iso()}


@router.post(
    "/run",
    summary="Run the daily send now",
    dependencies=[Depends(require_cron_secret)],
    responses={401: {"description": "Bad or missing x-cron-secret"}, 500: {"description": "Run-fatal error"}},
)
async def run_now(
    session_maker: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_maker)],
    dry_run: bool = Query(False, description="Simulate sends; no store changes"),
    day: date | None = Query(None, alias="date", description="Pretend today is this date (not in production)"),
):
    clock_override = settings.clock_override
    if day is not None and settings.app_env != "production":
        clock_override = day.isoformat()
    try:
        result = await run_send_today(
            dry_run=dry_run,
            clock_override=clock_override,
            store=SqlCronStore(session_maker),
        )
    except CronRunError:
        return JSONResponse(status_code=500, content={"ok": False, "error": "Daily send failed"})
    return result.model_dump(mode="json")
