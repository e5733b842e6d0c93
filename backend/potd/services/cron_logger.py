"""Logger capability injected into the cron engine: production runs vs dry runs."""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger("potd.cron")


class CronLogger(Protocol):
    def info(self, message: str) -> None: ...

    def warn(self, message: str) -> None: ...

    def error(self, message: str, cause: object | None = None) -> None: ...

    def test(self, message: str) -> None: ...


def _log_error(log: logging.Logger, message: str, cause: object | None) -> None:
    if cause is None:
        log.error(message)
    elif isinstance(cause, BaseException):
        log.error("%s %s", message, cause, exc_info=cause)
    else:
        log.error("%s %s", message, cause)


class ProductionCronLogger:
    """Real sends. The test channel is silent."""

    def __init__(self, log: logging.Logger | None = None):
        self._log = log or logger

    def info(self, message: str) -> None:
        self._log.info(message)

    def warn(self, message: str) -> None:
        self._log.warning(message)

    def error(self, message: str, cause: object | None = None) -> None:
        _log_error(self._log, message, cause)

    def test(self, message: str) -> None:
        pass


class DryRunCronLogger:
    """Dry runs: everything is tagged, and the test channel is printed."""

    def __init__(self, log: logging.Logger | None = None):
        self._log = log or logger

    def info(self, message: str) -> None:
        self._log.info("[dry-run] %s", message)

    def warn(self, message: str) -> None:
        self._log.warning("[dry-run] %s", message)

    def error(self, message: str, cause: object | None = None) -> None:
        _log_error(self._log, f"[dry-run] {message}", cause)

    def test(self, message: str) -> None:
        self._log.info("[dry-run:test] %s", message)


def logger_for(dry_run: bool) -> CronLogger:
    return DryRunCronLogger() if dry_run else ProductionCronLogger()
