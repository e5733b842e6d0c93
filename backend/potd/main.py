import logging
import sys
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from starlette.middleware.base import BaseHTTPMiddleware
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from potd.api.v1 import cron, problems, subscriptions, worker

# Send app loggers (cron runs, sends) to stdout
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stdout,
)
logging.getLogger("potd").setLevel(logging.DEBUG)
from potd.config import settings
from potd.core.rate_limit import limiter
from potd.db.session import init_db
from potd.services.http_client import email_client_session
from prometheus_client import make_asgi_app

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


async def scheduled_send_today():
    """Weekday cron: run the daily send in-process (live)."""
    from potd.services.cron_engine import CronRunError, run_send_today

    try:
        result = await run_send_today(dry_run=False, clock_override=settings.clock_override)
        logger.info("Scheduled send-today finished: %s", result.summary.model_dump(mode="json"))
    except CronRunError as e:
        logger.error("Scheduled send-today aborted: %s", e)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings.validate_production_config()
    await init_db()

    async with email_client_session():
        if settings.cron_scheduler_enabled:
            scheduler.add_job(
                scheduled_send_today,
                "cron",
                day_of_week="mon-fri",
                hour=settings.cron_send_hour,
                minute=settings.cron_send_minute,
                timezone=settings.civil_timezone,
                id="send_today",
                replace_existing=True,
            )
            scheduler.start()
        yield
        if scheduler.running:
            scheduler.shutdown()


app = FastAPI(
    title="Problem of the Day API",
    description="Daily coding-problem emails: subscriptions, cron trigger, queue worker",
    version="0.1.0",
    lifespan=lifespan,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(GZipMiddleware, minimum_size=500)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()] if settings.cors_origins else ["*"]
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(cron.router, prefix="/api/v1")
app.include_router(worker.router, prefix="/api/v1")
app.include_router(subscriptions.router, prefix="/api/v1")
app.include_router(problems.router, prefix="/api/v1")

metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


@app.get("/health")
@limiter.exempt
def health(request: Request):
    return {"status": "ok"}
