"""Normalization of raw Codeforces API payloads into tracker records.

Both functions are pure and idempotent: already-normalized items (record
instances, or dicts in the internal shape) pass through unchanged.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Union

from ..database.models import ContestRecord, SubmissionRecord
from ..utils.date_utils import from_timestamp


SubmissionInput = Union[SubmissionRecord, Dict[str, Any]]
ContestInput = Union[ContestRecord, Dict[str, Any]]


def normalize_submissions(raw: Iterable[SubmissionInput]) -> List[SubmissionRecord]:
    """Map ``user.status`` entries to SubmissionRecord values, preserving order."""
    return [_normalize_submission(item) for item in raw]


def normalize_contests(raw: Iterable[ContestInput]) -> List[ContestRecord]:
    """Map ``user.rating`` entries to ContestRecord values, preserving order."""
    return [_normalize_contest(item) for item in raw]


def _normalize_submission(item: SubmissionInput) -> SubmissionRecord:
    if isinstance(item, SubmissionRecord):
        return item
    if "submission_id" in item:
        return SubmissionRecord.from_dict(item)

    problem: Dict[str, Any] = item.get("problem") or {}
    contest_id = problem.get("contestId", item.get("contestId"))
    index: str = str(problem.get("index", ""))
    rating = problem.get("rating")

    return SubmissionRecord(
        submission_id=int(item["id"]),
        problem_id=f"{contest_id}{index}" if contest_id is not None else index,
        problem_name=str(problem.get("name", "")),
        contest_id=int(contest_id) if contest_id is not None else None,
        problem_rating=int(rating) if rating is not None else None,
        verdict=str(item.get("verdict") or "TESTING"),
        language=str(item.get("programmingLanguage", "")),
        submitted_at=from_timestamp(item["creationTimeSeconds"]),
        tags=tuple(problem.get("tags") or ()),
    )


def _normalize_contest(item: ContestInput) -> ContestRecord:
    if isinstance(item, ContestRecord):
        return item
    if "contest_id" in item:
        return ContestRecord.from_dict(item)

    old_rating: int = int(item.get("oldRating", 0))
    new_rating: int = int(item.get("newRating", 0))

    return ContestRecord(
        contest_id=int(item["contestId"]),
        contest_name=str(item.get("contestName", "")),
        rank=item.get("rank"),
        old_rating=old_rating,
        new_rating=new_rating,
        rating_change=new_rating - old_rating,
        date=from_timestamp(item["ratingUpdateTimeSeconds"]),
        # user.rating carries no per-problem results
        unsolved_problems=0,
    )
