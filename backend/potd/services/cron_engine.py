"""
Daily send engine: pick due subscriptions, choose each one's next problem, send at most one
email per subscription per civil day, and track delivery/progress so a re-run is safe.

Run-fatal errors (loading subscriptions, problems, progress or deliveries; empty catalogue)
raise CronRunError. Anything that goes wrong for a single subscription is counted as a
failure and the run carries on.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import date

from prometheus_client import Counter

from potd.config import settings
from potd.schemas.cron import (
    DeliveryRecord,
    DeliveryStatus,
    ProblemRecord,
    ProgressRecord,
    RunResult,
    RunSummary,
    SubscriptionOutcome,
    SubscriptionRecord,
)
from potd.services.batch_executor import BatchExecutor
from potd.services.clock import CivilClock
from potd.services.cron_logger import CronLogger, logger_for
from potd.services.cron_store import CronStore
from potd.services.frequency import WEEKEND_DAYS, count_by_frequency, filter_due
from potd.services.mailer import (
    DryRunTransport,
    EmailMessage,
    EmailTransport,
    ResendTransport,
    SendResult,
    build_legacy_unsubscribe_url,
    build_subject,
    build_unsubscribe_url,
)
from potd.services.problem_selector import EmptyProblemListError, group_by_list, select_problem

CRON_RUNS = Counter("potd_cron_runs_total", "Completed send-today runs", ["dry_run"])
CRON_DELIVERIES = Counter("potd_cron_deliveries_total", "Per-subscription outcomes of send-today runs", ["outcome"])


class CronRunError(RuntimeError):
    """The run could not start dispatching (store unreachable, empty catalogue)."""


@dataclass(frozen=True)
class _RunContext:
    day: date
    dry_run: bool
    logger: CronLogger
    problems_by_list: dict[int, list[ProblemRecord]]
    progress: dict[int, ProgressRecord]
    deliveries: dict[int, DeliveryRecord]


def summarize(
    outcomes: Iterable[SubscriptionOutcome],
    *,
    day: date,
    day_name: str,
    dry_run: bool,
) -> RunSummary:
    summary = RunSummary(date=day, day_of_week=day_name, dry_run=dry_run)
    for outcome in outcomes:
        summary.total_due += 1
        if outcome.success:
            summary.succeeded += 1
            if outcome.already_sent:
                summary.already_sent += 1
            else:
                summary.newly_sent += 1
        else:
            summary.failed += 1
    return summary


class CronEngine:
    def __init__(
        self,
        store: CronStore,
        transport: EmailTransport | None = None,
        *,
        batch_size: int | None = None,
        batch_delay_seconds: float | None = None,
        send_timeout_seconds: float | None = None,
        tz_name: str | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.transport = transport
        self.batch_size = batch_size or settings.cron_batch_size
        self.batch_delay_seconds = (
            batch_delay_seconds if batch_delay_seconds is not None else settings.cron_batch_delay_seconds
        )
        self.send_timeout_seconds = (
            send_timeout_seconds if send_timeout_seconds is not None else settings.send_timeout_seconds
        )
        self.tz_name = tz_name or settings.civil_timezone
        self._sleep = sleep

    def _transport_for(self, dry_run: bool, log: CronLogger) -> EmailTransport:
        if self.transport is not None:
            return self.transport
        return DryRunTransport(log) if dry_run else ResendTransport()

    async def run(
        self,
        *,
        dry_run: bool = False,
        cron_logger: CronLogger | None = None,
        clock_override: str | None = None,
    ) -> RunResult:
        log = cron_logger or logger_for(dry_run)
        clock = CivilClock(self.tz_name, clock_override)
        today = clock.today()
        dow = clock.day_of_week()
        name = clock.day_name()

        def empty() -> RunResult:
            return RunResult(ok=True, summary=RunSummary(date=today, day_of_week=name, dry_run=dry_run))

        log.info(f"Send-today run starting: {today.isoformat()} ({name}){' [clock override]' if clock.is_overridden else ''}")

        if dow in WEEKEND_DAYS:
            log.info(f"No emails are sent on weekends ({name})")
            return empty()

        try:
            subscriptions = await self.store.list_active_subscriptions()
        except Exception as e:
            log.error("Failed to fetch subscriptions:", e)
            raise CronRunError("Failed to fetch subscriptions") from e

        if not subscriptions:
            log.info("No active subscriptions found")
            return empty()

        log.info(f"Active subscriptions: {len(subscriptions)}")
        for tag, count in count_by_frequency(subscriptions).items():
            log.info(f"  - {tag}: {count}")

        due = filter_due(subscriptions, dow, warn=log.warn)
        if not due:
            log.info(f"Subscriptions due today ({name}): 0")
            return empty()
        log.info(f"Subscriptions due today ({name}): {len(due)}")

        try:
            problems = await self.store.list_active_problems()
        except Exception as e:
            log.error("Failed to fetch problems:", e)
            raise CronRunError("Failed to fetch problems") from e
        if not problems:
            log.error("No active problems in the catalogue")
            raise CronRunError("No active problems")
        log.info(f"Active problems: {len(problems)}")

        due_ids = [s.id for s in due]
        try:
            progress = await self.store.batch_get_progress(due_ids)
            deliveries = await self.store.batch_get_deliveries(due_ids, today)
        except Exception as e:
            log.error("Failed to fetch progress/delivery state:", e)
            raise CronRunError("Failed to fetch subscription progress or deliveries") from e
        log.info(f"Loaded state: progress {len(progress)}, deliveries today {len(deliveries)}")

        ctx = _RunContext(
            day=today,
            dry_run=dry_run,
            logger=log,
            problems_by_list=group_by_list(problems),
            progress=progress,
            deliveries=deliveries,
        )
        transport = self._transport_for(dry_run, log)

        def on_batch_start(number: int, total: int, size: int) -> None:
            log.info(f"Batch {number}/{total}: {size} subscriptions")

        def on_error(sub: SubscriptionRecord, exc: BaseException) -> SubscriptionOutcome:
            log.error(f"Unhandled error for {sub.subscriber.email}:", exc)
            return SubscriptionOutcome(subscription_id=sub.id, email=sub.subscriber.email, success=False, error=str(exc))

        executor = BatchExecutor(
            self.batch_size,
            self.batch_delay_seconds,
            sleep=self._sleep,
            on_batch_start=on_batch_start,
        )
        log.info(f"Dispatching (batch size {self.batch_size}, delay {self.batch_delay_seconds}s)")
        started = time.perf_counter()
        outcomes = await executor.run(due, lambda sub: self._process_subscription(sub, ctx, transport), on_error)
        elapsed = time.perf_counter() - started

        summary = summarize(outcomes, day=today, day_name=name, dry_run=dry_run)
        failed_emails = [o.email for o in outcomes if not o.success]
        if failed_emails:
            log.error(f"Failed deliveries ({len(failed_emails)}):")
            for email in failed_emails:
                log.error(f"  - {email}")
        log.info(
            f"Run finished in {elapsed:.2f}s: succeeded {summary.succeeded} "
            f"(new {summary.newly_sent}, already sent {summary.already_sent}), failed {summary.failed}"
        )
        if dry_run:
            log.test("Dry run complete; no store changes were made")

        CRON_RUNS.labels(dry_run=str(dry_run).lower()).inc()
        CRON_DELIVERIES.labels(outcome="sent").inc(summary.newly_sent)
        CRON_DELIVERIES.labels(outcome="already_sent").inc(summary.already_sent)
        CRON_DELIVERIES.labels(outcome="failed").inc(summary.failed)
        return RunResult(ok=True, summary=summary)

    async def _send(self, transport: EmailTransport, message: EmailMessage) -> SendResult:
        try:
            return await asyncio.wait_for(transport.send(message), timeout=self.send_timeout_seconds)
        except asyncio.TimeoutError:
            return SendResult(success=False, error=f"send timed out after {self.send_timeout_seconds}s")

    async def _process_subscription(
        self,
        sub: SubscriptionRecord,
        ctx: _RunContext,
        transport: EmailTransport,
    ) -> SubscriptionOutcome:
        log = ctx.logger
        email = sub.subscriber.email
        label = f"{email} ({sub.problem_list.name})"

        def outcome(success: bool, *, already_sent: bool = False, error: str | None = None) -> SubscriptionOutcome:
            return SubscriptionOutcome(
                subscription_id=sub.id, email=email, success=success, already_sent=already_sent, error=error
            )

        # Dry runs always simulate a send, so they never consult today's delivery record.
        delivery = None if ctx.dry_run else ctx.deliveries.get(sub.id)
        if delivery is not None and delivery.status == DeliveryStatus.SENT:
            log.info(f"Already sent today, skipping: {label}")
            return outcome(True, already_sent=True)

        marked_queued = False
        try:
            if delivery is not None:
                log.info(f"Retrying delivery in state {delivery.status.value}: {label}")

            progress = ctx.progress.get(sub.id)
            index = progress.current_problem_index if progress else 0
            if progress is None and ctx.dry_run:
                log.test(f"New subscription {label}: starting at problem 0")

            try:
                problem, next_index = select_problem(ctx.problems_by_list.get(sub.problem_list_id, []), index)
            except EmptyProblemListError:
                log.error(f"No active problems in list {sub.problem_list.name} for {email}")
                return outcome(False, error="empty problem list")

            week = f" (week {problem.week})" if problem.week is not None else ""
            log.info(f"Problem #{index + 1} for {label}: {problem.title}{week}")

            if not ctx.dry_run and delivery is not None:
                # Mark intent before the send; a crash from here on leaves "queued", which the next run retries.
                if delivery.status == DeliveryStatus.FAILED:
                    claimed = await self.store.update_delivery_status(
                        sub.id, ctx.day, DeliveryStatus.QUEUED, only_if=DeliveryStatus.FAILED
                    )
                    if not claimed:
                        log.info(f"Delivery changed by another run since it was read, skipping: {label}")
                        return outcome(True, already_sent=True)
                marked_queued = True

            message = EmailMessage(
                to=email,
                subject=build_subject(problem.title),
                problem_title=problem.title,
                difficulty=problem.difficulty,
                url=problem.url,
                unsubscribe_url=build_unsubscribe_url(sub.id),
                unsubscribe_all_url=build_legacy_unsubscribe_url(sub.subscriber.unsubscribe_token),
                idempotency_key=f"potd-{sub.id}-{ctx.day.isoformat()}",
            )
            result = await self._send(transport, message)

            if not result.success:
                log.error(f"Email send failed: {label}", result.error or "unknown error")
                if marked_queued:
                    await self._mark_failed_if_queued(sub, ctx)
                return outcome(False, error=result.error)

            log.info(f"Email sent: {label}")
            if ctx.dry_run:
                log.test(f"Skipping delivery/progress update for {label}")
            else:
                await self._record_success(sub, ctx, problem, progress, next_index)
            return outcome(True)
        except Exception as e:
            log.error(f"Error while processing {label}:", e)
            if not ctx.dry_run:
                await self._mark_failed_if_queued(sub, ctx)
            return outcome(False, error=str(e))

    async def _record_success(
        self,
        sub: SubscriptionRecord,
        ctx: _RunContext,
        problem: ProblemRecord,
        progress: ProgressRecord | None,
        next_index: int,
    ) -> None:
        """Persist a confirmed send. Failures here are logged; the email is never resent because of them."""
        log = ctx.logger
        label = f"{sub.subscriber.email} ({sub.problem_list.name})"
        try:
            await self.store.upsert_delivery(sub, ctx.day, problem.id, DeliveryStatus.SENT)
        except Exception as e:
            log.error(f"Delivery state update failed after a successful send: {label}", e)
        total_sent = (progress.total_problems_sent if progress else 0) + 1
        try:
            await self.store.upsert_progress(sub.id, next_index, total_sent)
            log.info(f"Progress advanced for {label}: next index {next_index}")
        except Exception as e:
            log.error(f"Progress update failed after a successful send: {label}", e)

    async def _mark_failed_if_queued(self, sub: SubscriptionRecord, ctx: _RunContext) -> None:
        try:
            if await self.store.update_delivery_status(
                sub.id, ctx.day, DeliveryStatus.FAILED, only_if=DeliveryStatus.QUEUED
            ):
                ctx.logger.info(f"Delivery marked failed: {sub.subscriber.email} ({sub.problem_list.name})")
        except Exception as e:
            ctx.logger.error(f"Could not mark delivery failed for {sub.subscriber.email}:", e)


async def run_send_today(
    *,
    dry_run: bool = False,
    cron_logger: CronLogger | None = None,
    clock_override: str | None = None,
    store: CronStore | None = None,
    transport: EmailTransport | None = None,
    **engine_kwargs,
) -> RunResult:
    """Entry point used by the HTTP adapters, the queue worker, the scheduler and the CLI."""
    if store is None:
        from potd.db.session import async_session_maker
        from potd.services.cron_store import SqlCronStore

        store = SqlCronStore(async_session_maker)
    engine = CronEngine(store, transport, **engine_kwargs)
    return await engine.run(dry_run=dry_run, cron_logger=cron_logger, clock_override=clock_override)
