"""Database models for the Codeforces progress tracker."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Final, Optional

from ..utils.date_utils import format_datetime, parse_datetime


MAX_JOB_HISTORY: Final[int] = 10


@dataclass(frozen=True)
class InactivityStatus:
    """Inactivity flag of a student.

    ``inactive_since`` is set exactly when ``is_inactive`` is true.
    """
    is_inactive: bool = False
    inactive_since: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.is_inactive != (self.inactive_since is not None):
            raise ValueError("inactive_since must be set if and only if is_inactive is true")


@dataclass(frozen=True)
class ReminderSettings:
    """Per-student reminder preferences and counters."""
    enabled: bool = True
    count: int = 0
    last_sent_at: Optional[datetime] = None


@dataclass(frozen=True)
class Student:
    """Model representing a tracked student.

    Immutable dataclass to prevent accidental mutation of database records.
    """
    id: int | None
    name: str
    email: str
    handle: str
    phone_number: Optional[str] = None
    current_rating: int = 0
    max_rating: int = 0
    last_synced_at: Optional[datetime] = None
    inactivity: InactivityStatus = field(default_factory=InactivityStatus)
    reminders: ReminderSettings = field(default_factory=ReminderSettings)
    notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class StudentHandle:
    """Minimal projection of a student used by bulk sync."""
    id: int
    handle: str


@dataclass(frozen=True)
class SubmissionRecord:
    """A normalized Codeforces submission."""
    submission_id: int
    problem_id: str
    problem_name: str
    contest_id: Optional[int]
    problem_rating: Optional[int]
    verdict: str
    language: str
    submitted_at: datetime
    tags: tuple[str, ...] = ()

    @property
    def is_accepted(self) -> bool:
        return self.verdict == "OK"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "submission_id": self.submission_id,
            "problem_id": self.problem_id,
            "problem_name": self.problem_name,
            "contest_id": self.contest_id,
            "problem_rating": self.problem_rating,
            "verdict": self.verdict,
            "language": self.language,
            "submitted_at": format_datetime(self.submitted_at),
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SubmissionRecord:
        submitted_at = data["submitted_at"]
        if not isinstance(submitted_at, datetime):
            submitted_at = parse_datetime(submitted_at)
        return cls(
            submission_id=int(data["submission_id"]),
            problem_id=str(data["problem_id"]),
            problem_name=str(data.get("problem_name") or ""),
            contest_id=data.get("contest_id"),
            problem_rating=data.get("problem_rating"),
            verdict=str(data.get("verdict") or ""),
            language=str(data.get("language") or ""),
            submitted_at=submitted_at,
            tags=tuple(data.get("tags") or ()),
        )


@dataclass(frozen=True)
class ContestRecord:
    """A normalized rated contest participation."""
    contest_id: int
    contest_name: str
    rank: Optional[int]
    old_rating: int
    new_rating: int
    rating_change: int
    date: datetime
    unsolved_problems: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contest_id": self.contest_id,
            "contest_name": self.contest_name,
            "rank": self.rank,
            "old_rating": self.old_rating,
            "new_rating": self.new_rating,
            "rating_change": self.rating_change,
            "date": format_datetime(self.date),
            "unsolved_problems": self.unsolved_problems,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ContestRecord:
        date = data["date"]
        if not isinstance(date, datetime):
            date = parse_datetime(date)
        return cls(
            contest_id=int(data["contest_id"]),
            contest_name=str(data.get("contest_name") or ""),
            rank=data.get("rank"),
            old_rating=int(data.get("old_rating") or 0),
            new_rating=int(data.get("new_rating") or 0),
            rating_change=int(data.get("rating_change") or 0),
            date=date,
            unsolved_problems=int(data.get("unsolved_problems") or 0),
        )


@dataclass(frozen=True)
class SolvedProblem:
    """A uniquely solved problem, as reported in statistics."""
    problem_id: str
    problem_name: str
    rating: int
    solved_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "problem_id": self.problem_id,
            "problem_name": self.problem_name,
            "rating": self.rating,
            "solved_at": format_datetime(self.solved_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SolvedProblem:
        return cls(
            problem_id=str(data["problem_id"]),
            problem_name=str(data.get("problem_name") or ""),
            rating=int(data["rating"]),
            solved_at=parse_datetime(data["solved_at"]),
        )


@dataclass(frozen=True)
class RatingBucket:
    """Count of solved problems rated in ``[lower, upper)``."""
    lower: int
    upper: int
    count: int

    @property
    def label(self) -> str:
        return f"{self.lower}-{self.upper}"


@dataclass(frozen=True)
class PeriodStats:
    """Solved count and per-day rate over a trailing window."""
    days: int
    solved: int = 0
    average_per_day: float = 0.0


@dataclass(frozen=True)
class ProblemStatistics:
    """Derived statistics block of an aggregate record."""
    total_solved: int = 0
    solved_by_rating: tuple[RatingBucket, ...] = ()
    hardest_problem: Optional[SolvedProblem] = None
    average_rating: float = 0.0
    last_7_days: PeriodStats = PeriodStats(days=7)
    last_30_days: PeriodStats = PeriodStats(days=30)
    last_90_days: PeriodStats = PeriodStats(days=90)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_solved": self.total_solved,
            "solved_by_rating": [
                [bucket.lower, bucket.upper, bucket.count] for bucket in self.solved_by_rating
            ],
            "hardest_problem": self.hardest_problem.to_dict() if self.hardest_problem else None,
            "average_rating": self.average_rating,
            "periods": [
                [period.days, period.solved, period.average_per_day]
                for period in (self.last_7_days, self.last_30_days, self.last_90_days)
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ProblemStatistics:
        periods = [PeriodStats(int(d), int(s), float(a)) for d, s, a in data.get("periods", [])]
        by_days = {period.days: period for period in periods}
        hardest = data.get("hardest_problem")
        return cls(
            total_solved=int(data.get("total_solved", 0)),
            solved_by_rating=tuple(
                RatingBucket(int(lower), int(upper), int(count))
                for lower, upper, count in data.get("solved_by_rating", [])
            ),
            hardest_problem=SolvedProblem.from_dict(hardest) if hardest else None,
            average_rating=float(data.get("average_rating", 0.0)),
            last_7_days=by_days.get(7, PeriodStats(days=7)),
            last_30_days=by_days.get(30, PeriodStats(days=30)),
            last_90_days=by_days.get(90, PeriodStats(days=90)),
        )


@dataclass(frozen=True)
class AggregateRecord:
    """Codeforces data owned by exactly one student; replaced on every sync."""
    student_id: int
    handle: str
    contests: tuple[ContestRecord, ...]
    submissions: tuple[SubmissionRecord, ...]
    statistics: ProblemStatistics
    user_info: Dict[str, Any]
    last_updated: datetime
    last_submission_at: Optional[datetime] = None


class JobKind(Enum):
    """The three scheduled job types."""
    CODEFORCES_SYNC = "codeforces-sync"
    INACTIVITY_CHECK = "inactivity-check"
    EMAIL_REMINDER = "email-reminder"


@dataclass(frozen=True)
class JobConfig:
    """Job-specific configuration; each job reads the fields it needs."""
    batch_size: int = 50
    inactivity_threshold_days: int = 7
    reminder_template: str = "inactivity_reminder"
    reminder_subject: str = "Reminder: Get back to problem solving!"
    reminder_cooldown_days: int = 3
    max_reminder_count: Optional[int] = None

    def __post_init__(self) -> None:
        if self.batch_size <= 0:
            raise ValueError("Batch size must be positive")
        if self.inactivity_threshold_days <= 0:
            raise ValueError("Inactivity threshold must be positive")
        if self.reminder_cooldown_days < 0:
            raise ValueError("Reminder cooldown cannot be negative")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_size": self.batch_size,
            "inactivity_threshold_days": self.inactivity_threshold_days,
            "reminder_template": self.reminder_template,
            "reminder_subject": self.reminder_subject,
            "reminder_cooldown_days": self.reminder_cooldown_days,
            "max_reminder_count": self.max_reminder_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> JobConfig:
        known = {key: value for key, value in data.items() if key in cls.__dataclass_fields__}
        return cls(**known)


@dataclass(frozen=True)
class JobRunEntry:
    """One execution of a scheduled job."""
    run_at: datetime
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    processed_count: int = 0
    duration_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_at": format_datetime(self.run_at),
            "success": self.success,
            "message": self.message,
            "error": self.error,
            "processed_count": self.processed_count,
            "duration_ms": self.duration_ms,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> JobRunEntry:
        return cls(
            run_at=parse_datetime(data["run_at"]),
            success=bool(data["success"]),
            message=data.get("message"),
            error=data.get("error"),
            processed_count=int(data.get("processed_count") or 0),
            duration_ms=int(data.get("duration_ms") or 0),
        )


@dataclass(frozen=True)
class ScheduledJob:
    """Persisted configuration and run history of one scheduled job."""
    name: JobKind
    schedule: str
    enabled: bool = True
    timezone: str = "Asia/Kolkata"
    config: JobConfig = field(default_factory=JobConfig)
    last_run_at: Optional[datetime] = None
    next_run_at: Optional[datetime] = None
    last_status: Optional[JobRunEntry] = None
    history: tuple[JobRunEntry, ...] = ()

    def with_run(self, entry: JobRunEntry) -> ScheduledJob:
        """Return a copy recording ``entry``, keeping the newest MAX_JOB_HISTORY runs."""
        history = (self.history + (entry,))[-MAX_JOB_HISTORY:]
        return replace(self, last_run_at=entry.run_at, last_status=entry, history=history)


class EmailType(Enum):
    INACTIVITY_REMINDER = "inactivity_reminder"
    WELCOME = "welcome"
    NOTIFICATION = "notification"
    OTHER = "other"


class EmailStatus(Enum):
    SENT = "sent"
    FAILED = "failed"


@dataclass(frozen=True)
class InactivityContext:
    """Inactivity details captured with a reminder email."""
    days_inactive: int
    reminder_number: int
    last_synced_at: Optional[datetime] = None


@dataclass(frozen=True)
class EmailAuditRecord:
    """Append-only log entry for an email sent to a student."""
    id: int | None
    student_id: int
    recipient_email: str
    email_type: EmailType
    subject: str
    content: str
    template: str
    status: EmailStatus
    sent_at: datetime
    inactivity: Optional[InactivityContext] = None


def create_tables_sql() -> tuple[str, str, str, str]:
    """Return SQL statements for creating the database tables.

    Returns:
        A tuple of (students, aggregate_records, scheduled_jobs, email_logs) DDL.
    """
    students_table_sql: Final[str] = """
    CREATE TABLE IF NOT EXISTS students (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        email TEXT UNIQUE NOT NULL,
        phone_number TEXT,
        handle TEXT UNIQUE NOT NULL,
        current_rating INTEGER NOT NULL DEFAULT 0,
        max_rating INTEGER NOT NULL DEFAULT 0,
        last_synced_at TIMESTAMP,
        is_inactive INTEGER NOT NULL DEFAULT 0,
        inactive_since TIMESTAMP,
        reminders_enabled INTEGER NOT NULL DEFAULT 1,
        reminder_count INTEGER NOT NULL DEFAULT 0,
        reminder_last_sent_at TIMESTAMP,
        notes TEXT NOT NULL DEFAULT '',
        created_at TIMESTAMP NOT NULL,
        updated_at TIMESTAMP NOT NULL
    )
    """

    aggregate_records_table_sql: Final[str] = """
    CREATE TABLE IF NOT EXISTS aggregate_records (
        student_id INTEGER PRIMARY KEY,
        handle TEXT NOT NULL,
        contests_json TEXT NOT NULL,
        submissions_json TEXT NOT NULL,
        statistics_json TEXT NOT NULL,
        user_info_json TEXT NOT NULL,
        last_updated TIMESTAMP NOT NULL,
        last_submission_at TIMESTAMP,
        FOREIGN KEY (student_id) REFERENCES students (id) ON DELETE CASCADE
    )
    """

    scheduled_jobs_table_sql: Final[str] = """
    CREATE TABLE IF NOT EXISTS scheduled_jobs (
        name TEXT PRIMARY KEY,
        schedule TEXT NOT NULL,
        enabled INTEGER NOT NULL DEFAULT 1,
        timezone TEXT NOT NULL,
        config_json TEXT NOT NULL,
        last_run_at TIMESTAMP,
        next_run_at TIMESTAMP,
        last_status_json TEXT,
        history_json TEXT NOT NULL DEFAULT '[]'
    )
    """

    email_logs_table_sql: Final[str] = """
    CREATE TABLE IF NOT EXISTS email_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        student_id INTEGER NOT NULL,
        recipient_email TEXT NOT NULL,
        email_type TEXT NOT NULL,
        subject TEXT NOT NULL,
        content TEXT NOT NULL,
        template TEXT NOT NULL,
        status TEXT NOT NULL,
        sent_at TIMESTAMP NOT NULL,
        days_inactive INTEGER,
        reminder_number INTEGER,
        last_synced_at TIMESTAMP,
        FOREIGN KEY (student_id) REFERENCES students (id) ON DELETE CASCADE
    )
    """

    return (
        students_table_sql,
        aggregate_records_table_sql,
        scheduled_jobs_table_sql,
        email_logs_table_sql,
    )
