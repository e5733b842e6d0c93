"""Public subscription endpoints: subscribe, one-click unsubscribe, stats (development only)."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse
from jinja2 import Environment, select_autoescape
from sqlalchemy.ext.asyncio import AsyncSession

from potd.config import settings
from potd.core.rate_limit import limiter
from potd.db.session import get_db
from potd.schemas.subscription import SubscribeRequest, SubscriptionOut
from potd.services.subscriptions import (
    subscribe,
    subscriber_stats,
    unsubscribe_by_token,
    unsubscribe_subscription,
    validate_subscribe_request,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["subscriptions"])

_env = Environment(autoescape=select_autoescape(default=True, default_for_string=True))
UNSUBSCRIBE_PAGE = _env.from_string(
    """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Unsubscribe - Problem of the Day</title>
</head>
<body style="font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;background:#0A0A23;color:#FFFFFF;display:flex;align-items:center;justify-content:center;min-height:100vh;margin:0;">
  <div style="background:#1A1A2E;border-radius:12px;padding:40px;text-align:center;max-width:500px;">
    <h1>{{ "Unsubscribed" if success else "Something went wrong" }}</h1>
    <p style="color:#A0AEC0;">{{ message }}</p>
    <a href="/" style="display:inline-block;background:{{ "#10B981" if success else "#EF4444" }};color:#FFFFFF;padding:12px 24px;border-radius:6px;text-decoration:none;">Back to home</a>
  </div>
</body>
</html>
"""
)


def _unsubscribe_page(message: str, success: bool, status_code: int) -> HTMLResponse:
    return HTMLResponse(UNSUBSCRIBE_PAGE.render(message=message, success=success), status_code=status_code)


@router.post(
    "/subscribe",
    summary="Subscribe to one or more problem lists",
    responses={400: {"description": "Validation error"}, 429: {"description": "Too many requests"}},
)
@limiter.limit(settings.subscribe_rate_limit)
async def subscribe_endpoint(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db)],
    body: SubscribeRequest,
):
    errors = validate_subscribe_request(body.email, body.frequency, body.consent, body.problem_list_ids)
    if errors:
        return JSONResponse(status_code=400, content={"ok": False, "error": errors[0]})
    try:
        result = await subscribe(session, body.email, body.frequency, body.problem_list_ids)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"ok": False, "error": str(e)})
    return {
        "ok": True,
        "email": result.subscriber.email,
        "resubscribed": result.resubscribed,
        "subscriptions": [SubscriptionOut.model_validate(s).model_dump() for s in result.subscriptions],
    }


@router.get("/unsubscribe", response_class=HTMLResponse, summary="One-click unsubscribe")
async def unsubscribe_endpoint(
    session: Annotated[AsyncSession, Depends(get_db)],
    subscription_id: int | None = Query(None),
    token: str | None = Query(None, description="Legacy subscriber-wide token"),
):
    if subscription_id is None and not token:
        return _unsubscribe_page("This unsubscribe link is not valid.", False, 400)
    if subscription_id is not None:
        sub = await unsubscribe_subscription(session, subscription_id)
        if sub is None:
            return _unsubscribe_page("We could not find that subscription.", False, 404)
        return _unsubscribe_page(f"You have been unsubscribed from the {sub.problem_list.name} list.", True, 200)
    subscriber = await unsubscribe_by_token(session, token)
    if subscriber is None:
        return _unsubscribe_page("We could not find that subscription.", False, 404)
    return _unsubscribe_page("You have been unsubscribed.", True, 200)


@router.get(
    "/subscribers/stats",
    summary="Active subscription counts (development only)",
    responses={403: {"description": "Only available in development"}},
)
async def stats(session: Annotated[AsyncSession, Depends(get_db)]) -> dict:
    if settings.app_env == "production":
        raise HTTPException(status_code=403, detail="Stats endpoint only available in development")
    return {"ok": True, "stats": await subscriber_stats(session)}
