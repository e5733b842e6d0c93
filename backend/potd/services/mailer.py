"""Problem-of-the-day email: HTML rendering, Resend transport with retries, dry-run transport."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol
from urllib.parse import urlencode

import httpx
from jinja2 import Environment, select_autoescape
from pydantic import BaseModel

from potd.config import settings
from potd.services.cron_logger import CronLogger
from potd.services.http_client import email_client

logger = logging.getLogger(__name__)

DIFFICULTY_COLORS = {
    "easy": "#10B981",
    "medium": "#F59E0B",
    "hard": "#EF4444",
}
DEFAULT_DIFFICULTY_COLOR = "#6B7280"

_env = Environment(autoescape=select_autoescape(default=True, default_for_string=True))

PROBLEM_EMAIL_TEMPLATE = _env.from_string(
    """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1.0" />
  <title>{{ subject }}</title>
</head>
<body style="margin:0;padding:0;background:#F3F4F6;font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;">
  <div style="max-width:600px;margin:0 auto;background:#FFFFFF;border-radius:8px;overflow:hidden;">
    <div style="background:#1E40AF;padding:24px;text-align:center;">
      <h1 style="margin:0;color:#FFFFFF;font-size:22px;">Today's problem</h1>
    </div>
    <div style="padding:32px 24px;">
      <h2 style="margin:0 0 12px 0;font-size:20px;color:#111827;">{{ title }}</h2>
      <span style="display:inline-block;padding:4px 10px;border-radius:12px;color:#FFFFFF;font-size:12px;background:{{ difficulty_color }};">{{ difficulty }}</span>
      <p style="margin:24px 0;">
        <a href="{{ url }}" style="display:inline-block;background:#2563EB;color:#FFFFFF;padding:12px 24px;border-radius:6px;text-decoration:none;">Solve it</a>
      </p>
    </div>
    <div style="padding:16px 24px;border-top:1px solid #E5E7EB;font-size:12px;color:#6B7280;text-align:center;">
      <a href="{{ unsubscribe_url }}" style="color:#6B7280;">Unsubscribe</a>
      {% if unsubscribe_all_url %}&middot; <a href="{{ unsubscribe_all_url }}" style="color:#6B7280;">Unsubscribe from all lists</a>{% endif %}
    </div>
  </div>
</body>
</html>
"""
)


class EmailMessage(BaseModel):
    to: str
    subject: str
    problem_title: str
    difficulty: str
    url: str
    unsubscribe_url: str
    unsubscribe_all_url: str | None = None
    # Same key for every attempt at one subscription's email on one day
    idempotency_key: str | None = None


class SendResult(BaseModel):
    success: bool
    message_id: str | None = None
    error: str | None = None


class EmailTransport(Protocol):
    async def send(self, message: EmailMessage) -> SendResult: ...


def build_subject(problem_title: str) -> str:
    prefix = (settings.email_subject_prefix or "").strip()
    subject = f"Today's problem: {problem_title}"
    return f"{prefix} {subject}" if prefix else subject


def build_unsubscribe_url(subscription_id: int, base_url: str | None = None) -> str:
    """One-click unsubscribe link for a single subscription."""
    base = (base_url or settings.base_url).rstrip("/")
    return f"{base}/api/v1/unsubscribe?{urlencode({'subscription_id': subscription_id})}"


def build_legacy_unsubscribe_url(token: str, base_url: str | None = None) -> str:
    """Subscriber-wide unsubscribe link (deactivates every subscription)."""
    base = (base_url or settings.base_url).rstrip("/")
    return f"{base}/api/v1/unsubscribe?{urlencode({'token': token})}"


def render_problem_email(message: EmailMessage) -> str:
    return PROBLEM_EMAIL_TEMPLATE.render(
        subject=message.subject,
        title=message.problem_title,
        difficulty=message.difficulty,
        difficulty_color=DIFFICULTY_COLORS.get(message.difficulty.lower(), DEFAULT_DIFFICULTY_COLOR),
        url=message.url,
        unsubscribe_url=message.unsubscribe_url,
        unsubscribe_all_url=message.unsubscribe_all_url,
    )


class ResendTransport:
    """Send through the Resend HTTP API. Never raises: failures come back as SendResult(success=False)."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        api_url: str | None = None,
        from_email: str | None = None,
        reply_to: str | None = None,
        max_retries: int | None = None,
        request_timeout: float | None = None,
        backoff_seconds: float = 1.0,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api_key = api_key if api_key is not None else settings.resend_api_key
        self.api_url = api_url or settings.resend_api_url
        self.from_email = from_email or settings.email_from
        self.reply_to = reply_to if reply_to is not None else settings.support_email
        self.max_retries = max(1, max_retries if max_retries is not None else settings.send_max_retries)
        self.request_timeout = (
            request_timeout if request_timeout is not None else settings.resend_request_timeout_seconds
        )
        self.backoff_seconds = backoff_seconds
        self._client = client
        self._sleep = sleep

    def _payload(self, message: EmailMessage) -> dict:
        payload = {
            "from": self.from_email,
            "to": [message.to],
            "subject": message.subject,
            "html": render_problem_email(message),
            "headers": {
                "List-Unsubscribe": f"<{message.unsubscribe_url}>",
                "List-Unsubscribe-Post": "List-Unsubscribe=One-Click",
            },
        }
        if self.reply_to:
            payload["reply_to"] = self.reply_to
        return payload

    async def send(self, message: EmailMessage) -> SendResult:
        """
        Post once per attempt with a per-request timeout. Only 429, 5xx and transport errors are
        retried; the Idempotency-Key lets Resend drop a retry of a message it already accepted.
        """
        client = self._client or email_client()
        payload = self._payload(message)
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if message.idempotency_key:
            headers["Idempotency-Key"] = message.idempotency_key
        error = "unknown error"
        for attempt in range(1, self.max_retries + 1):
            try:
                resp = await client.post(self.api_url, json=payload, headers=headers, timeout=self.request_timeout)
            except httpx.TransportError as e:
                error = str(e) or e.__class__.__name__
            else:
                if resp.status_code == 429 or resp.status_code >= 500:
                    error = f"Resend returned HTTP {resp.status_code}"
                elif resp.is_error:
                    logger.error("Email rejected for %s: HTTP %s %s", message.to, resp.status_code, resp.text[:200])
                    return SendResult(success=False, error=f"Resend rejected the message: HTTP {resp.status_code}")
                else:
                    return SendResult(success=True, message_id=_message_id(resp))
            logger.warning("Email send failed for %s (attempt %s/%s): %s", message.to, attempt, self.max_retries, error)
            if attempt < self.max_retries:
                await self._sleep(self.backoff_seconds * 2 ** (attempt - 1))
        logger.error("Email send gave up for %s after %s attempts", message.to, self.max_retries)
        return SendResult(success=False, error=error)


def _message_id(resp: httpx.Response) -> str | None:
    try:
        data = resp.json() if resp.content else {}
    except ValueError:
        return None
    return data.get("id") if isinstance(data, dict) else None


class DryRunTransport:
    """Logs the message instead of sending it. No network I/O."""

    def __init__(self, cron_logger: CronLogger, *, fail: bool = False):
        self._logger = cron_logger
        self.fail = fail

    async def send(self, message: EmailMessage) -> SendResult:
        self._logger.test(
            f"Simulated email to={message.to} subject={message.subject!r} "
            f"difficulty={message.difficulty} url={message.url} unsubscribe={message.unsubscribe_url}"
        )
        if self.fail:
            return SendResult(success=False, error="dry-run transport configured to fail")
        return SendResult(success=True, message_id="dry-run")
