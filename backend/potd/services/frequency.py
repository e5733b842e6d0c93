"""Weekly frequency rules: which weekdays (0=Sunday..6=Saturday) each frequency tag is due on."""

import logging
from collections.abc import Iterable

from potd.schemas.cron import Frequency, SubscriptionRecord

logger = logging.getLogger(__name__)

FREQUENCY_DAYS: dict[str, frozenset[int]] = {
    Frequency.TWICE.value: frozenset({2, 4}),  # Tue, Thu
    Frequency.THRICE.value: frozenset({1, 3, 5}),  # Mon, Wed, Fri
    Frequency.WEEKDAYS.value: frozenset({1, 2, 3, 4, 5}),
}

WEEKEND_DAYS = frozenset({0, 6})


def due_days(frequency: str) -> frozenset[int] | None:
    """Weekdays the frequency is due on, or None for an unknown tag."""
    return FREQUENCY_DAYS.get(frequency)


def is_due(frequency: str, day_of_week: int) -> bool:
    days = due_days(frequency)
    return days is not None and day_of_week in days


def filter_due(
    subscriptions: Iterable[SubscriptionRecord],
    day_of_week: int,
    warn=None,
) -> list[SubscriptionRecord]:
    """
    Keep subscriptions whose frequency matches day_of_week.
    Unknown frequencies are dropped with a warning (through warn, or the module logger).
    """
    warn = warn or logger.warning
    due: list[SubscriptionRecord] = []
    for sub in subscriptions:
        if due_days(sub.frequency) is None:
            warn(f"Unknown frequency {sub.frequency!r} for subscription_id={sub.id}; skipping")
        elif is_due(sub.frequency, day_of_week):
            due.append(sub)
    return due


def count_by_frequency(subscriptions: Iterable[SubscriptionRecord]) -> dict[str, int]:
    counts = {tag: 0 for tag in FREQUENCY_DAYS}
    for sub in subscriptions:
        if sub.frequency in counts:
            counts[sub.frequency] += 1
    return counts
