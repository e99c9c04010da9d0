"""Batch synchronization of students' Codeforces data."""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Optional, Set

from loguru import logger

from ..analytics.aggregator import compute_statistics
from ..analytics.inactivity import DEFAULT_THRESHOLD_DAYS, apply_inactivity, is_inactive, last_submission_at
from ..codeforces.client import CodeforcesClient
from ..codeforces.transformer import normalize_contests, normalize_submissions
from ..config.logging_config import LoggedOperation, StructuredLogger
from ..database.models import AggregateRecord, InactivityStatus, Student, StudentHandle
from ..database.operations import (
    DATABASE_PATH,
    get_student,
    list_student_handles,
    update_student_sync_snapshot,
    upsert_aggregate_record,
)
from ..utils.date_utils import from_timestamp, utc_now


class StudentSyncError(Exception):
    """Raised when a single student's data cannot be synchronized."""
    pass


@dataclass(frozen=True)
class SyncResult:
    """Outcome counters of a bulk sync run."""
    processed: int
    succeeded: int
    failed: int
    batches: int
    message: str


class StudentLockRegistry:
    """Per-student locks so two syncs of the same student never interleave."""

    def __init__(self) -> None:
        self._locks: Dict[int, threading.Lock] = {}
        self._guard: threading.Lock = threading.Lock()

    def _lock_for(self, student_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(student_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[student_id] = lock
            return lock

    @contextmanager
    def hold(self, student_id: int) -> Generator[None, None, None]:
        """Block until the student's lock is free and hold it for the block."""
        lock: threading.Lock = self._lock_for(student_id)
        with lock:
            yield

    def discard(self, student_id: int) -> bool:
        """Drop a student's lock unless a sync is holding it.

        Returns:
            False if the lock is held and was kept.
        """
        with self._guard:
            lock = self._locks.get(student_id)
            if lock is not None and lock.locked():
                logger.debug(f"Keeping lock of student {student_id}, a sync is in progress")
                return False
            self._locks.pop(student_id, None)
        return True

    def tracked_students(self) -> List[int]:
        with self._guard:
            return sorted(self._locks)


def summarize_user_info(info: Dict[str, Any]) -> Dict[str, Any]:
    """Keep the ``user.info`` fields shown on a student's profile."""
    registered: Optional[int] = info.get("registrationTimeSeconds")
    return {
        "rating": info.get("rating"),
        "max_rating": info.get("maxRating"),
        "rank": info.get("rank"),
        "max_rank": info.get("maxRank"),
        "contribution": info.get("contribution"),
        "avatar": info.get("titlePhoto") or info.get("avatar"),
        "registered_at": from_timestamp(registered).isoformat() if registered else None,
    }


class SyncOrchestrator:
    """Pulls Codeforces data for students and stores the derived records."""

    def __init__(
        self,
        client: CodeforcesClient,
        db_path: Path = DATABASE_PATH,
        inactivity_threshold_days: int = DEFAULT_THRESHOLD_DAYS,
        batch_delay_seconds: float = 5.0,
        lock_registry: Optional[StudentLockRegistry] = None,
        structured_logger: Optional[StructuredLogger] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client: CodeforcesClient = client
        self.db_path: Path = db_path
        self.inactivity_threshold_days: int = inactivity_threshold_days
        self.batch_delay_seconds: float = batch_delay_seconds
        self.locks: StudentLockRegistry = lock_registry or StudentLockRegistry()
        self.structured_logger: Optional[StructuredLogger] = structured_logger
        self._sleep: Callable[[float], None] = sleep

    def sync_student(
        self,
        student_id: int,
        handle: str,
        now: Optional[datetime] = None,
        threshold_days: Optional[int] = None,
    ) -> AggregateRecord:
        """Fetch, normalize and store one student's Codeforces data.

        The student's lock is held for the whole sync, so a manual refresh
        waits for a running scheduled sync of the same student.

        Args:
            student_id: Database ID of the student.
            handle: Codeforces handle to fetch.
            now: Reference time for statistics and inactivity. Defaults to now.
            threshold_days: Inactivity threshold; defaults to the orchestrator's.

        Returns:
            The stored AggregateRecord.

        Raises:
            StudentSyncError: If Codeforces has no user info for the handle.
            StudentNotFoundError: If the student does not exist.
            CodeforcesAPIError: If the API keeps failing.
            DatabaseError: If storing the results fails.
        """
        with self.locks.hold(student_id):
            student: Student = get_student(student_id, self.db_path)
            logger.info(f"Syncing Codeforces data for {handle}")

            with ThreadPoolExecutor(max_workers=3, thread_name_prefix="cf-fetch") as pool:
                info_future: Future = pool.submit(self.client.fetch_user_info, handle)
                submissions_future: Future = pool.submit(self.client.fetch_submissions, handle)
                contests_future: Future = pool.submit(self.client.fetch_contests, handle)
                info: Optional[Dict[str, Any]] = info_future.result()
                raw_submissions: List[Dict[str, Any]] = submissions_future.result()
                raw_contests: List[Dict[str, Any]] = contests_future.result()

            if not info:
                raise StudentSyncError(f"No user info found for handle {handle}")

            moment: datetime = now or utc_now()
            submissions = normalize_submissions(raw_submissions)
            contests = normalize_contests(raw_contests)

            record = AggregateRecord(
                student_id=student_id,
                handle=handle,
                contests=tuple(contests),
                submissions=tuple(submissions),
                statistics=compute_statistics(submissions, now=moment),
                user_info=summarize_user_info(info),
                last_updated=moment,
                last_submission_at=last_submission_at(submissions),
            )
            upsert_aggregate_record(record, self.db_path)

            current_rating: int = int(info.get("rating") or 0)
            max_rating: int = int(info.get("maxRating") or current_rating)
            inactivity: InactivityStatus = apply_inactivity(
                student.inactivity,
                is_inactive(submissions, threshold_days or self.inactivity_threshold_days, now=moment),
                now=moment,
            )
            update_student_sync_snapshot(
                student_id, current_rating, max_rating, moment, inactivity, self.db_path
            )

            if self.structured_logger is not None:
                self.structured_logger.log_sync_operation(
                    handle, True, len(submissions), len(contests), student_id=student_id
                )
            logger.info(
                f"Synced {handle}: {record.statistics.total_solved} solved, "
                f"{len(contests)} contests, rating {current_rating}"
            )
            return record

    def forget_student(self, student_id: int) -> None:
        """Release bookkeeping for a deleted student."""
        self.locks.discard(student_id)

    def _prune_locks(self, current_ids: Set[int]) -> None:
        for student_id in self.locks.tracked_students():
            if student_id not in current_ids:
                self.locks.discard(student_id)

    def sync_all(self, batch_size: int = 50, threshold_days: Optional[int] = None) -> SyncResult:
        """Sync every student in sequential batches of concurrent syncs.

        Per-student failures are logged and counted. Failure to load the
        student list propagates.

        Args:
            batch_size: Number of students synced concurrently per batch.
            threshold_days: Inactivity threshold; defaults to the orchestrator's.

        Returns:
            SyncResult with processed, succeeded and failed counts.
        """
        if batch_size <= 0:
            raise ValueError("Batch size must be positive")

        with LoggedOperation(self.structured_logger, "codeforces_sync", batch_size=batch_size):
            students: List[StudentHandle] = list_student_handles(self.db_path)
            batches: List[List[StudentHandle]] = [
                students[start:start + batch_size] for start in range(0, len(students), batch_size)
            ]
            logger.info(f"Starting Codeforces sync for {len(students)} students in {len(batches)} batches")
            self._prune_locks({student.id for student in students})

            succeeded: int = 0
            failed: int = 0

            for index, batch in enumerate(batches, 1):
                logger.info(f"Processing batch {index}/{len(batches)} ({len(batch)} students)")

                with ThreadPoolExecutor(max_workers=len(batch), thread_name_prefix="cf-sync") as pool:
                    futures: List[tuple[StudentHandle, Future]] = [
                        (student, pool.submit(
                            self.sync_student, student.id, student.handle, None, threshold_days
                        ))
                        for student in batch
                    ]

                    for student, future in futures:
                        try:
                            future.result()
                            succeeded += 1
                        except Exception as e:
                            failed += 1
                            logger.error(f"Failed to sync student {student.handle}: {e}")
                            if self.structured_logger is not None:
                                self.structured_logger.log_sync_operation(
                                    student.handle, False, error=str(e), student_id=student.id
                                )

                if index < len(batches):
                    logger.debug(f"Waiting {self.batch_delay_seconds}s before next batch")
                    self._sleep(self.batch_delay_seconds)

            processed: int = succeeded + failed
            message: str = (
                f"Synced data for {processed} students ({succeeded} succeeded, {failed} failed)"
            )
            logger.info(message)
            return SyncResult(
                processed=processed,
                succeeded=succeeded,
                failed=failed,
                batches=len(batches),
                message=message,
            )
