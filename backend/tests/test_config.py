"""Tests for settings validation."""

import pytest

from potd.config import Settings


def test_default_retry_budget_fits_send_timeout():
    s = Settings(_env_file=None)
    assert s.worst_case_send_seconds == 18.0
    assert s.worst_case_send_seconds <= s.send_timeout_seconds
    s.validate_production_config()


def test_retry_budget_over_send_timeout_is_rejected():
    s = Settings(
        _env_file=None,
        send_timeout_seconds=10,
        send_max_retries=3,
        resend_request_timeout_seconds=5,
    )
    with pytest.raises(RuntimeError, match="exceeds SEND_TIMEOUT_SECONDS"):
        s.validate_production_config()


def test_production_requires_secrets():
    s = Settings(_env_file=None, app_env="production", cron_secret="c", worker_secret="", resend_api_key="k")
    with pytest.raises(RuntimeError, match="WORKER_SECRET"):
        s.validate_production_config()


def test_clock_override_ignored_in_production():
    assert Settings(_env_file=None, test_date="2026-03-02").clock_override == "2026-03-02"
    assert Settings(_env_file=None, app_env="production", test_date="2026-03-02").clock_override is None
