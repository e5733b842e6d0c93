"""Tests for production vs dry-run cron loggers."""

import logging

from potd.services.cron_logger import DryRunCronLogger, ProductionCronLogger, logger_for


def test_production_logger_silences_test_channel(caplog):
    caplog.set_level(logging.DEBUG, logger="potd.cron")
    log = ProductionCronLogger()
    log.info("starting")
    log.test("simulated detail")
    messages = [r.getMessage() for r in caplog.records]
    assert "starting" in messages
    assert not any("simulated detail" in m for m in messages)


def test_dry_run_logger_prefixes_everything(caplog):
    caplog.set_level(logging.DEBUG, logger="potd.cron")
    log = DryRunCronLogger()
    log.info("starting")
    log.warn("odd frequency")
    log.test("simulated detail")
    messages = [r.getMessage() for r in caplog.records]
    assert "[dry-run] starting" in messages
    assert "[dry-run] odd frequency" in messages
    assert "[dry-run:test] simulated detail" in messages


def test_error_with_exception_cause_keeps_traceback(caplog):
    caplog.set_level(logging.DEBUG, logger="potd.cron")
    try:
        raise RuntimeError("db down")
    except RuntimeError as e:
        ProductionCronLogger().error("Failed to fetch subscriptions:", e)
    (record,) = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert "db down" in record.getMessage()
    assert record.exc_info is not None


def test_logger_for():
    assert isinstance(logger_for(True), DryRunCronLogger)
    assert isinstance(logger_for(False), ProductionCronLogger)
