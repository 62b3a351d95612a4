"""Countdown helpers for a running attempt.

The deadline is fixed once, when the attempt is created (end_time).  These
functions only compare it with a caller-supplied `now`; they never read the
clock themselves.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from exam_service.models.attempt import Attempt


def remaining(attempt: Attempt, now: datetime) -> timedelta:
    return max(timedelta(0), attempt.end_time - now)


def is_expired(attempt: Attempt, now: datetime) -> bool:
    return now > attempt.end_time
