"""Pick the next problem for a subscription from its list and stored progress index."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable

from potd.schemas.cron import ProblemRecord


class EmptyProblemListError(LookupError):
    """The subscription's problem list has no active problems."""


def group_by_list(problems: Iterable[ProblemRecord]) -> dict[int, list[ProblemRecord]]:
    """Group problems by problem_list_id, preserving input order (week, then creation)."""
    grouped: dict[int, list[ProblemRecord]] = defaultdict(list)
    for problem in problems:
        grouped[problem.problem_list_id].append(problem)
    return dict(grouped)


def select_problem(problems: list[ProblemRecord], index: int) -> tuple[ProblemRecord, int]:
    """
    Return (problems[index mod len], index + 1).
    The index keeps growing past the list length; only the selection wraps.
    """
    if index < 0:
        raise ValueError(f"problem index must be non-negative, got {index}")
    if not problems:
        raise EmptyProblemListError("no active problems for this problem list")
    return problems[index % len(problems)], index + 1
