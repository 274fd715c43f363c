"""
Positive-label lookup for lookback windows.

The label of a window asks one question: did the user have a qualifying
positive event in ``(lo, hi]``? Answering it per window by rescanning sessions
would cost O(sessions) per window, so the qualifying instants are collected
once per user into a sorted list and each window does a binary search.
"""

from __future__ import annotations

from bisect import bisect_right
from datetime import datetime
from typing import Iterable, Optional

from ml_windowing.models.session import Session


def collect_positive_label_times(
    sessions: Iterable[Session],
    range_start: datetime,
    range_end: datetime,
) -> list[datetime]:
    """Collect the qualifying positive-event instants of one user.

    Only instants inside ``[range_start, range_end]`` are kept. Sessions
    without a positive label contribute nothing. Several sessions may share an
    instant; duplicates are kept.

    Args:
        sessions:    The user's sessions (any order).
        range_start: Inclusive lower bound.
        range_end:   Inclusive upper bound.

    Returns:
        Qualifying instants sorted ascending.
    """
    times = [
        instant
        for instant in (s.positive_label_instant for s in sessions)
        if instant is not None and range_start <= instant <= range_end
    ]
    times.sort()
    return times


def first_instant_in_interval(
    sorted_instants: list[datetime],
    lo: datetime,
    hi: datetime,
) -> Optional[datetime]:
    """Return the smallest instant ``t`` with ``lo < t <= hi``, or ``None``.

    Args:
        sorted_instants: Instants sorted ascending (as returned by
                         ``collect_positive_label_times()``).
        lo: Exclusive lower bound.
        hi: Inclusive upper bound.
    """
    i = bisect_right(sorted_instants, lo)
    if i < len(sorted_instants) and sorted_instants[i] <= hi:
        return sorted_instants[i]
    return None
