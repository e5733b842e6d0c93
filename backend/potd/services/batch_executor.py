"""
Rate-limited batch executor: run an async task per item in fixed-size batches.
Items within a batch run concurrently; batches run strictly one after another with a delay between them.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def partition(items: Sequence[T], batch_size: int) -> list[list[T]]:
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")
    return [list(items[i : i + batch_size]) for i in range(0, len(items), batch_size)]


class BatchExecutor:
    def __init__(
        self,
        batch_size: int = 10,
        delay_seconds: float = 5.0,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_batch_start: Callable[[int, int, int], None] | None = None,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.batch_size = batch_size
        self.delay_seconds = max(0.0, delay_seconds)
        self._sleep = sleep
        self._on_batch_start = on_batch_start

    async def run(
        self,
        items: Sequence[T],
        task: Callable[[T], Awaitable[R]],
        on_error: Callable[[T, BaseException], R],
    ) -> list[R]:
        """
        Run task for every item and return one result per item, in input order.
        A task that raises is settled through on_error; it never aborts the batch or the run.
        """
        batches = partition(items, self.batch_size)
        results: list[R] = []
        for number, batch in enumerate(batches, start=1):
            if self._on_batch_start is not None:
                self._on_batch_start(number, len(batches), len(batch))
            settled = await asyncio.gather(*(task(item) for item in batch), return_exceptions=True)
            for item, outcome in zip(batch, settled):
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, Exception):
                        raise outcome
                    results.append(on_error(item, outcome))
                else:
                    results.append(outcome)
            if number < len(batches) and self.delay_seconds > 0:
                logger.debug("Batch %s/%s done; sleeping %.1fs", number, len(batches), self.delay_seconds)
                await self._sleep(self.delay_seconds)
        return results
