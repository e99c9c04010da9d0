"""Batch job re-deriving every student's inactivity flag from stored data."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from loguru import logger

from ..analytics.inactivity import DEFAULT_THRESHOLD_DAYS, apply_inactivity, is_inactive
from ..config.logging_config import LoggedOperation, StructuredLogger
from ..database.models import AggregateRecord, InactivityStatus, Student
from ..database.operations import (
    DATABASE_PATH,
    get_aggregate_record,
    list_students,
    update_student_inactivity,
)
from ..utils.date_utils import utc_now


@dataclass(frozen=True)
class InactivityCheckResult:
    total: int
    inactive: int
    active: int
    status_changed: int
    skipped: int
    errors: int
    duration_ms: int

    @property
    def message(self) -> str:
        return (
            f"Checked {self.total} students ({self.inactive} inactive, {self.active} active, "
            f"{self.status_changed} status changes)"
        )


class InactivityChecker:
    """Flags students whose stored submissions show no recent activity."""

    def __init__(
        self,
        db_path: Path = DATABASE_PATH,
        structured_logger: Optional[StructuredLogger] = None,
    ) -> None:
        self.db_path: Path = db_path
        self.structured_logger: Optional[StructuredLogger] = structured_logger

    def check_all(
        self,
        threshold_days: int = DEFAULT_THRESHOLD_DAYS,
        now: Optional[datetime] = None,
    ) -> InactivityCheckResult:
        """Re-evaluate and persist the inactivity flag of every student.

        Students that were never synced are skipped. A failure for one
        student is logged and counted without stopping the run.
        """
        if threshold_days <= 0:
            raise ValueError("Inactivity threshold must be positive")

        start: float = time.monotonic()
        moment: datetime = now or utc_now()

        inactive_count: int = 0
        active_count: int = 0
        changed_count: int = 0
        skipped_count: int = 0
        error_count: int = 0

        with LoggedOperation(self.structured_logger, "inactivity_check", threshold_days=threshold_days):
            students: List[Student] = list_students(db_path=self.db_path)
            logger.info(f"Checking {len(students)} students for inactivity (threshold {threshold_days} days)")

            for student in students:
                try:
                    record: Optional[AggregateRecord] = get_aggregate_record(student.id, self.db_path)
                    if record is None:
                        logger.warning(f"No Codeforces data found for student {student.id} ({student.handle})")
                        skipped_count += 1
                        continue

                    inactive: bool = is_inactive(record.submissions, threshold_days, now=moment)
                    status: InactivityStatus = apply_inactivity(student.inactivity, inactive, now=moment)

                    if status != student.inactivity:
                        update_student_inactivity(student.id, status, self.db_path)
                        changed_count += 1
                        logger.info(
                            f"Student {student.name} ({student.handle}) is now "
                            f"{'inactive' if inactive else 'active'}"
                        )

                    if inactive:
                        inactive_count += 1
                    else:
                        active_count += 1

                except Exception as e:
                    error_count += 1
                    logger.error(f"Error checking inactivity for student {student.id}: {e}")

        result = InactivityCheckResult(
            total=len(students),
            inactive=inactive_count,
            active=active_count,
            status_changed=changed_count,
            skipped=skipped_count,
            errors=error_count,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        logger.info(f"Inactivity check completed in {result.duration_ms}ms: {result.message}")
        return result
