"""FastAPI dependencies: shared-secret auth for cron/worker callers, session factory."""

from fastapi import HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from potd.config import settings
from potd.core.auth import verify_shared_secret
from potd.db.session import async_session_maker


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Session factory for work that opens its own sessions (engine store, job queue)."""
    return async_session_maker


async def require_cron_secret(request: Request) -> None:
    if not verify_shared_secret(request.headers.get("x-cron-secret"), settings.cron_secret):
        raise HTTPException(status_code=401, detail="Unauthorized")


async def require_worker_secret(request: Request) -> None:
    if not verify_shared_secret(request.headers.get("x-worker-secret"), settings.worker_secret):
        raise HTTPException(status_code=401, detail="Unauthorized")
