"""Tests for frequency rules and due filtering."""

import pytest

from potd.services.frequency import FREQUENCY_DAYS, count_by_frequency, filter_due, is_due

from conftest import make_subscription

DAY_INDEXES = range(7)


@pytest.mark.parametrize("dow", DAY_INDEXES)
def test_five_times_due_exactly_on_weekdays(dow):
    assert is_due("5x", dow) == (1 <= dow <= 5)


@pytest.mark.parametrize("dow", DAY_INDEXES)
def test_three_times_due_mon_wed_fri(dow):
    assert is_due("3x", dow) == (dow in (1, 3, 5))


@pytest.mark.parametrize("dow", DAY_INDEXES)
def test_twice_due_tue_thu(dow):
    assert is_due("2x", dow) == (dow in (2, 4))


@pytest.mark.parametrize("dow", [0, 6])
def test_nothing_due_on_weekends(dow):
    assert not any(is_due(tag, dow) for tag in FREQUENCY_DAYS)


def test_unknown_frequency_is_never_due():
    assert not is_due("7x", 1)
    assert not is_due("", 3)


def test_filter_due_keeps_order_and_warns_on_unknown():
    subs = [
        make_subscription(1, "5x"),
        make_subscription(2, "daily"),
        make_subscription(3, "3x"),
        make_subscription(4, "2x"),
    ]
    warnings: list[str] = []
    due = filter_due(subs, 1, warn=warnings.append)
    assert [s.id for s in due] == [1, 3]
    assert len(warnings) == 1
    assert "daily" in warnings[0]
    assert "subscription_id=2" in warnings[0]


def test_filter_due_wednesday_matches_scenario():
    subs = [make_subscription(1, "5x"), make_subscription(2, "3x"), make_subscription(3, "2x")]
    assert [s.id for s in filter_due(subs, 3)] == [1, 2]


@pytest.mark.parametrize("dow", DAY_INDEXES)
def test_filter_due_agrees_with_is_due(dow):
    subs = [make_subscription(i, tag) for i, tag in enumerate(["5x", "3x", "2x"], start=1)]
    assert [s.id for s in filter_due(subs, dow)] == [s.id for s in subs if is_due(s.frequency, dow)]


def test_count_by_frequency_ignores_unknown_tags():
    subs = [make_subscription(1, "5x"), make_subscription(2, "5x"), make_subscription(3, "bogus")]
    assert count_by_frequency(subs) == {"2x": 0, "3x": 0, "5x": 2}
