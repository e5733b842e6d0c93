"""Shared-secret checks for machine callers (cron trigger, queue worker)."""

import secrets


def verify_shared_secret(provided: str | None, expected: str) -> bool:
    """Constant-time comparison. An unset expected secret never matches."""
    if not expected or not provided:
        return False
    return secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))
