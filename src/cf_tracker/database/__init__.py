"""Database package for the Codeforces progress tracker."""

from .models import (
    AggregateRecord,
    ContestRecord,
    EmailAuditRecord,
    EmailStatus,
    EmailType,
    InactivityContext,
    InactivityStatus,
    JobConfig,
    JobKind,
    JobRunEntry,
    MAX_JOB_HISTORY,
    PeriodStats,
    ProblemStatistics,
    RatingBucket,
    ReminderSettings,
    ScheduledJob,
    SolvedProblem,
    Student,
    StudentHandle,
    SubmissionRecord,
)
from .operations import (
    DatabaseError,
    DuplicateStudentError,
    JobNotFoundError,
    StudentNotFoundError,
    get_db_connection,
    initialize_database,
)

__all__ = [
    # Models
    "AggregateRecord",
    "ContestRecord",
    "EmailAuditRecord",
    "EmailStatus",
    "EmailType",
    "InactivityContext",
    "InactivityStatus",
    "JobConfig",
    "JobKind",
    "JobRunEntry",
    "MAX_JOB_HISTORY",
    "PeriodStats",
    "ProblemStatistics",
    "RatingBucket",
    "ReminderSettings",
    "ScheduledJob",
    "SolvedProblem",
    "Student",
    "StudentHandle",
    "SubmissionRecord",
    # Exceptions
    "DatabaseError",
    "DuplicateStudentError",
    "JobNotFoundError",
    "StudentNotFoundError",
    # Connection helpers
    "get_db_connection",
    "initialize_database",
]
