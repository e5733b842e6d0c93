"""Pooled httpx client for the email provider, opened for the life of the app or of one script run."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx

from potd.config import settings

_email_client: httpx.AsyncClient | None = None


def build_email_client() -> httpx.AsyncClient:
    """One batch of concurrent sends fits in the pool; request timeout is the per-attempt budget."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.resend_request_timeout_seconds),
        limits=httpx.Limits(
            max_connections=settings.cron_batch_size,
            max_keepalive_connections=settings.cron_batch_size,
        ),
        headers={"User-Agent": "potd-mailer"},
    )


def email_client() -> httpx.AsyncClient:
    if _email_client is None:
        raise RuntimeError("Email HTTP client is not open; run the send inside email_client_session()")
    return _email_client


@asynccontextmanager
async def email_client_session() -> AsyncIterator[httpx.AsyncClient]:
    """Open the shared client, or reuse it when a session is already open (nested callers)."""
    global _email_client
    if _email_client is not None:
        yield _email_client
        return
    _email_client = build_email_client()
    try:
        yield _email_client
    finally:
        await _email_client.aclose()
        _email_client = None
