"""Inactivity rules shared by the sync and inactivity-check jobs."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Final, Iterable, Optional

from ..database.models import InactivityStatus, SubmissionRecord
from ..utils.date_utils import utc_now


DEFAULT_THRESHOLD_DAYS: Final[int] = 7


def last_submission_at(submissions: Iterable[SubmissionRecord]) -> Optional[datetime]:
    """Return the newest submission time, whatever its verdict."""
    return max((submission.submitted_at for submission in submissions), default=None)


def is_inactive(
    submissions: Iterable[SubmissionRecord],
    threshold_days: int = DEFAULT_THRESHOLD_DAYS,
    now: Optional[datetime] = None,
) -> bool:
    """True when there are no submissions or the newest is older than the threshold.

    Any verdict counts as activity.
    """
    if threshold_days <= 0:
        raise ValueError("Inactivity threshold must be positive")

    newest: Optional[datetime] = last_submission_at(submissions)
    if newest is None:
        return True

    now = now or utc_now()
    return newest < now - timedelta(days=threshold_days)


def apply_inactivity(
    current: InactivityStatus,
    inactive: bool,
    now: Optional[datetime] = None,
) -> InactivityStatus:
    """Return the status after a fresh inactivity evaluation.

    Becoming inactive stamps ``inactive_since``; becoming active clears it;
    an unchanged state keeps the existing stamp.
    """
    if inactive == current.is_inactive:
        return current
    if inactive:
        return InactivityStatus(is_inactive=True, inactive_since=now or utc_now())
    return InactivityStatus(is_inactive=False, inactive_since=None)
