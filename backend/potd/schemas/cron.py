"""Typed records the cron engine works on, and the run result it returns.

Store adapters validate ORM rows into these models; the engine never sees raw rows.
"""

from datetime import date
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class DeliveryStatus(str, Enum):
    QUEUED = "queued"
    SENT = "sent"
    FAILED = "failed"


class Frequency(str, Enum):
    TWICE = "2x"
    THRICE = "3x"
    WEEKDAYS = "5x"


class _Record(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)


class SubscriberRecord(_Record):
    id: int
    email: str
    unsubscribe_token: str


class ProblemListRecord(_Record):
    id: int
    name: str


class SubscriptionRecord(_Record):
    id: int
    subscriber_id: int
    problem_list_id: int
    frequency: str  # kept as str: unknown values are filtered with a warning, not rejected here
    subscriber: SubscriberRecord
    problem_list: ProblemListRecord


class ProblemRecord(_Record):
    id: int
    problem_list_id: int
    title: str
    url: str
    difficulty: str
    week: int | None = None


class ProgressRecord(_Record):
    subscription_id: int
    current_problem_index: int = Field(ge=0)
    total_problems_sent: int = Field(ge=0)


class DeliveryRecord(_Record):
    subscription_id: int
    send_date: date
    status: DeliveryStatus


class SubscriptionOutcome(BaseModel):
    """Result of processing one subscription for one day."""

    subscription_id: int
    email: str
    success: bool
    already_sent: bool = False
    error: str | None = None


class RunSummary(BaseModel):
    date: date
    day_of_week: str
    total_due: int = 0
    succeeded: int = 0
    failed: int = 0
    newly_sent: int = 0
    already_sent: int = 0
    dry_run: bool = False


class RunResult(BaseModel):
    ok: bool
    summary: RunSummary
