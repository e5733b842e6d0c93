"""Pytest configuration and shared fixtures: in-memory store/transport fakes and a SQLite-backed database."""

import asyncio
import os
from datetime import date

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Configure before potd imports so settings/engine pick these up
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("WORKER_SECRET", "test-worker-secret")
os.environ.setdefault("RESEND_API_KEY", "re_test")
os.environ.setdefault("BASE_URL", "https://potd.example")
os.environ.setdefault("CRON_BATCH_DELAY_SECONDS", "0")
os.environ.setdefault("CRON_SCHEDULER_ENABLED", "false")
os.environ.setdefault("TEST_DATE", "")

import potd.models  # noqa: E402,F401
from potd.api.deps import get_session_maker  # noqa: E402
from potd.core.rate_limit import limiter  # noqa: E402
from potd.db.base import Base  # noqa: E402
from potd.db.session import get_db  # noqa: E402
from potd.main import app  # noqa: E402
from potd.models import Problem, ProblemList, Subscriber, Subscription  # noqa: E402
from potd.schemas.cron import (  # noqa: E402
    DeliveryRecord,
    DeliveryStatus,
    ProblemListRecord,
    ProblemRecord,
    ProgressRecord,
    SubscriberRecord,
    SubscriptionRecord,
)
from potd.services.mailer import EmailMessage, SendResult  # noqa: E402

MONDAY = "2026-03-02"
TUESDAY = "2026-03-03"
WEDNESDAY = "2026-03-04"
SATURDAY = "2026-03-07"
SUNDAY = "2026-03-08"


def make_subscription(
    sub_id: int,
    frequency: str = "5x",
    *,
    problem_list_id: int = 1,
    email: str | None = None,
) -> SubscriptionRecord:
    return SubscriptionRecord(
        id=sub_id,
        subscriber_id=1000 + sub_id,
        problem_list_id=problem_list_id,
        frequency=frequency,
        subscriber=SubscriberRecord(
            id=1000 + sub_id,
            email=email or f"user{sub_id}@example.com",
            unsubscribe_token=f"token-{sub_id}",
        ),
        problem_list=ProblemListRecord(id=problem_list_id, name=f"list-{problem_list_id}"),
    )


def make_problems(count: int, *, problem_list_id: int = 1, start_id: int = 1) -> list[ProblemRecord]:
    return [
        ProblemRecord(
            id=start_id + i,
            problem_list_id=problem_list_id,
            title=f"Problem {start_id + i}",
            url=f"https://judge.example/p/{start_id + i}",
            difficulty="easy",
            week=i + 1,
        )
        for i in range(count)
    ]


class FakeCronStore:
    """In-memory CronStore. Methods named in fail_on raise RuntimeError."""

    def __init__(self, subscriptions=(), problems=(), progress=None):
        self.subscriptions: list[SubscriptionRecord] = list(subscriptions)
        self.problems: list[ProblemRecord] = list(problems)
        self.progress: dict[int, ProgressRecord] = dict(progress or {})
        self.deliveries: dict[tuple[int, date], DeliveryRecord] = {}
        self.fail_on: set[str] = set()
        self.calls: list[str] = []

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            raise RuntimeError(f"{name} failed")

    @property
    def write_calls(self) -> list[str]:
        return [c for c in self.calls if c.startswith(("upsert_", "update_"))]

    def set_delivery(self, sub_id: int, day: date, status: DeliveryStatus) -> None:
        self.deliveries[(sub_id, day)] = DeliveryRecord(subscription_id=sub_id, send_date=day, status=status)

    def delivery_status(self, sub_id: int, day: date) -> DeliveryStatus | None:
        rec = self.deliveries.get((sub_id, day))
        return rec.status if rec else None

    async def list_active_subscriptions(self):
        self._call("list_active_subscriptions")
        return list(self.subscriptions)

    async def list_active_problems(self, problem_list_id=None):
        self._call("list_active_problems")
        return [p for p in self.problems if problem_list_id is None or p.problem_list_id == problem_list_id]

    async def batch_get_progress(self, subscription_ids):
        self._call("batch_get_progress")
        return {i: self.progress[i] for i in subscription_ids if i in self.progress}

    async def batch_get_deliveries(self, subscription_ids, day):
        self._call("batch_get_deliveries")
        wanted = set(subscription_ids)
        return {sid: rec for (sid, d), rec in self.deliveries.items() if d == day and sid in wanted}

    async def upsert_progress(self, subscription_id, index, total_sent):
        self._call("upsert_progress")
        self.progress[subscription_id] = ProgressRecord(
            subscription_id=subscription_id, current_problem_index=index, total_problems_sent=total_sent
        )

    async def upsert_delivery(self, subscription, day, problem_id, status):
        self._call("upsert_delivery")
        self.set_delivery(subscription.id, day, status)

    async def update_delivery_status(self, subscription_id, day, status, *, only_if=None):
        self._call("update_delivery_status")
        rec = self.deliveries.get((subscription_id, day))
        if rec is None or (only_if is not None and rec.status != only_if):
            return False
        self.set_delivery(subscription_id, day, status)
        return True


class RecordingTransport:
    """Email transport double: records messages, fails or raises for chosen recipients."""

    def __init__(self, *, fail_for=(), raise_for=(), hang_for=()):
        self.sent: list[EmailMessage] = []
        self.fail_for = set(fail_for)
        self.raise_for = set(raise_for)
        self.hang_for = set(hang_for)

    async def send(self, message: EmailMessage) -> SendResult:
        self.sent.append(message)
        if message.to in self.raise_for:
            raise RuntimeError(f"transport exploded for {message.to}")
        if message.to in self.hang_for:
            await asyncio.sleep(3600)
        if message.to in self.fail_for:
            return SendResult(success=False, error="provider rejected")
        return SendResult(success=True, message_id=f"msg-{len(self.sent)}")

    def recipients(self) -> list[str]:
        return [m.to for m in self.sent]


class RecordingCronLogger:
    def __init__(self):
        self.records: list[tuple[str, str]] = []

    def info(self, message):
        self.records.append(("info", message))

    def warn(self, message):
        self.records.append(("warn", message))

    def error(self, message, cause=None):
        self.records.append(("error", message if cause is None else f"{message} {cause}"))

    def test(self, message):
        self.records.append(("test", message))

    def messages(self, level: str) -> list[str]:
        return [m for lvl, m in self.records if lvl == level]


@pytest.fixture
def cron_logger():
    return RecordingCronLogger()


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    """File-backed SQLite database with all tables; each session gets its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'potd.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def catalog(session_maker):
    """Two problem lists: 'basic' with three problems, 'advanced' with one. Returns their ids."""
    async with session_maker() as session:
        basic = ProblemList(name="basic", is_active=True)
        advanced = ProblemList(name="advanced", is_active=True)
        session.add_all([basic, advanced])
        await session.flush()
        session.add_all(
            [
                Problem(problem_list_id=basic.id, title="Two Sum", url="https://judge.example/1", difficulty="easy", week=1),
                Problem(problem_list_id=basic.id, title="Valid Parentheses", url="https://judge.example/2", difficulty="easy", week=2),
                Problem(problem_list_id=basic.id, title="Merge Intervals", url="https://judge.example/3", difficulty="medium", week=3),
                Problem(problem_list_id=advanced.id, title="Median of Two Arrays", url="https://judge.example/4", difficulty="hard", week=1),
            ]
        )
        await session.commit()
        return {"basic": basic.id, "advanced": advanced.id}


async def add_subscription(session_maker, email: str, frequency: str, problem_list_id: int, *, active: bool = True) -> int:
    async with session_maker() as session:
        subscriber = Subscriber(email=email, frequency=frequency, is_active=True)
        session.add(subscriber)
        await session.flush()
        sub = Subscription(
            subscriber_id=subscriber.id,
            problem_list_id=problem_list_id,
            frequency=frequency,
            is_active=active,
        )
        session.add(sub)
        await session.commit()
        return sub.id


@pytest_asyncio.fixture
async def client(session_maker):
    """AsyncClient against the app with the database dependencies pointed at the SQLite test DB."""

    async def _get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_maker] = lambda: session_maker
    limiter.enabled = False
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
    limiter.enabled = True
