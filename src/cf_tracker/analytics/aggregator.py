"""Problem-solving statistics derived from a student's submissions."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, Final, Iterable, List, Optional, Sequence

from ..database.models import (
    ContestRecord,
    PeriodStats,
    ProblemStatistics,
    RatingBucket,
    SolvedProblem,
    SubmissionRecord,
)
from ..utils.date_utils import utc_now


BUCKET_WIDTH: Final[int] = 100
TRAILING_WINDOWS: Final[tuple[int, int, int]] = (7, 30, 90)


@dataclass(frozen=True)
class PeriodSummary:
    """Problem-solving summary restricted to a trailing window."""
    days: int
    solved: int
    average_per_day: float
    average_rating: float
    hardest_problem: Optional[SolvedProblem]
    solved_by_rating: tuple[RatingBucket, ...]


@dataclass(frozen=True)
class HeatmapDay:
    """Submission counts for one UTC calendar day."""
    day: date
    total: int
    accepted: int


def unique_accepted(submissions: Iterable[SubmissionRecord]) -> List[SubmissionRecord]:
    """Return the earliest accepted submission of each problem, in solve order.

    Ordering is by ``(submitted_at, submission_id)`` so the result does not
    depend on the order the API returned submissions in.
    """
    accepted = sorted(
        (submission for submission in submissions if submission.is_accepted),
        key=lambda submission: (submission.submitted_at, submission.submission_id),
    )

    first_solves: Dict[str, SubmissionRecord] = {}
    for submission in accepted:
        first_solves.setdefault(submission.problem_id, submission)
    return list(first_solves.values())


def rating_distribution(solved: Iterable[SubmissionRecord]) -> tuple[RatingBucket, ...]:
    """Count rated problems in 100-point buckets, ascending by lower bound."""
    counts: Counter[int] = Counter(
        (submission.problem_rating // BUCKET_WIDTH) * BUCKET_WIDTH
        for submission in solved
        if submission.problem_rating is not None
    )
    return tuple(
        RatingBucket(lower=lower, upper=lower + BUCKET_WIDTH, count=counts[lower])
        for lower in sorted(counts)
    )


def hardest_problem(solved: Iterable[SubmissionRecord]) -> Optional[SolvedProblem]:
    """Return the highest-rated problem; on ties the earlier solve wins."""
    hardest: Optional[SubmissionRecord] = None
    for submission in solved:
        if submission.problem_rating is None:
            continue
        if hardest is None or submission.problem_rating > (hardest.problem_rating or 0):
            hardest = submission

    if hardest is None or hardest.problem_rating is None:
        return None
    return SolvedProblem(
        problem_id=hardest.problem_id,
        problem_name=hardest.problem_name,
        rating=hardest.problem_rating,
        solved_at=hardest.submitted_at,
    )


def average_rating(solved: Iterable[SubmissionRecord]) -> float:
    ratings: List[int] = [s.problem_rating for s in solved if s.problem_rating is not None]
    if not ratings:
        return 0.0
    return sum(ratings) / len(ratings)


def _in_window(moment: datetime, days: int, now: datetime) -> bool:
    return now - timedelta(days=days) <= moment <= now


def _period_stats(solved: Sequence[SubmissionRecord], days: int, now: datetime) -> PeriodStats:
    count: int = sum(1 for submission in solved if _in_window(submission.submitted_at, days, now))
    return PeriodStats(days=days, solved=count, average_per_day=count / days)


def compute_statistics(
    submissions: Sequence[SubmissionRecord],
    now: Optional[datetime] = None,
) -> ProblemStatistics:
    """Compute the statistics block stored with an aggregate record.

    Args:
        submissions: Normalized submissions in any order.
        now: Anchor for the trailing 7/30/90-day windows. Defaults to the current time.

    Returns:
        ProblemStatistics. The same input and ``now`` always give an equal result.
    """
    now = now or utc_now()
    solved: List[SubmissionRecord] = unique_accepted(submissions)
    last_7, last_30, last_90 = (_period_stats(solved, days, now) for days in TRAILING_WINDOWS)

    return ProblemStatistics(
        total_solved=len(solved),
        solved_by_rating=rating_distribution(solved),
        hardest_problem=hardest_problem(solved),
        average_rating=average_rating(solved),
        last_7_days=last_7,
        last_30_days=last_30,
        last_90_days=last_90,
    )


def summarize_period(
    submissions: Sequence[SubmissionRecord],
    days: int,
    now: Optional[datetime] = None,
) -> PeriodSummary:
    """Summarize problems first solved within the trailing ``days`` window."""
    if days <= 0:
        raise ValueError("Period length must be positive")

    now = now or utc_now()
    solved: List[SubmissionRecord] = [
        submission
        for submission in unique_accepted(submissions)
        if _in_window(submission.submitted_at, days, now)
    ]

    return PeriodSummary(
        days=days,
        solved=len(solved),
        average_per_day=len(solved) / days,
        average_rating=average_rating(solved),
        hardest_problem=hardest_problem(solved),
        solved_by_rating=rating_distribution(solved),
    )


def build_submission_heatmap(
    submissions: Iterable[SubmissionRecord],
    days: int = 365,
    now: Optional[datetime] = None,
) -> List[HeatmapDay]:
    """Group submissions of the trailing window by UTC date, ascending.

    Days without submissions are omitted.
    """
    if days <= 0:
        raise ValueError("Heatmap length must be positive")

    now = now or utc_now()
    totals: Counter[date] = Counter()
    accepted: Counter[date] = Counter()

    for submission in submissions:
        if not _in_window(submission.submitted_at, days, now):
            continue
        day: date = submission.submitted_at.date()
        totals[day] += 1
        if submission.is_accepted:
            accepted[day] += 1

    return [HeatmapDay(day=day, total=totals[day], accepted=accepted[day]) for day in sorted(totals)]


def filter_contests(
    contests: Iterable[ContestRecord],
    days: int,
    now: Optional[datetime] = None,
) -> List[ContestRecord]:
    """Return contests within the trailing ``days`` window, newest first."""
    if days <= 0:
        raise ValueError("Period length must be positive")

    now = now or utc_now()
    return sorted(
        (contest for contest in contests if _in_window(contest.date, days, now)),
        key=lambda contest: contest.date,
        reverse=True,
    )
