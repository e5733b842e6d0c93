"""HTTP rate limiting (slowapi). The public subscribe endpoint gets its own tighter limit."""

from slowapi import Limiter
from slowapi.util import get_remote_address


def client_ip(request) -> str:
    """First hop of X-Forwarded-For when behind a proxy, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded.strip():
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


limiter = Limiter(key_func=client_ip, default_limits=["200/minute"])
