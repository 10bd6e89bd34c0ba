"""Daily streak rule.

A streak grows by at most one per UTC calendar day and falls back to one as
soon as a whole day is skipped.
"""

import datetime as dt
import numbers
from typing import Any, Optional, Union

DAY_SECONDS = 86400

Timestamp = Union[dt.datetime, str]


def _as_utc(value: Timestamp) -> dt.datetime:
    if isinstance(value, str):
        value = dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def start_of_day(value: Timestamp) -> dt.datetime:
    """UTC midnight of the calendar day ``value`` falls on."""
    ts = _as_utc(value)
    return dt.datetime(ts.year, ts.month, ts.day, tzinfo=dt.timezone.utc)


def day_gap(previous: Timestamp, now: Timestamp) -> int:
    delta = start_of_day(now) - start_of_day(previous)
    return round(delta.total_seconds() / DAY_SECONDS)


def _as_count(value: Any) -> int:
    # bool is an int subclass but never a count
    if isinstance(value, bool):
        return 0
    if isinstance(value, numbers.Integral):
        return int(value)
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return 0


def next_streak(previous_count: Optional[int], previous_activity: Optional[Timestamp], now: Timestamp) -> int:
    """Return the streak after an activity at ``now``.

    ``previous_count`` and ``previous_activity`` come from the stored pairing
    row and may both be missing for a pair that never exchanged anything.
    Same-day repeats keep the count, the next day adds one, anything else
    (a missed day or a clock going backwards) starts again at one.
    """
    if not previous_activity:
        return 1

    current = _as_count(previous_count)
    gap = day_gap(previous_activity, now)

    if gap == 0:
        return current if current > 0 else 1
    if gap == 1:
        return current + 1
    return 1
