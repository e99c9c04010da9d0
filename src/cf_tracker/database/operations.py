"""Database operations for the Codeforces progress tracker."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Final, Generator, Iterable, Optional

from loguru import logger

from ..utils.date_utils import format_datetime, parse_datetime, utc_now
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
    ProblemStatistics,
    ReminderSettings,
    ScheduledJob,
    Student,
    StudentHandle,
    SubmissionRecord,
    create_tables_sql,
)


DATABASE_PATH: Final[Path] = Path("data/cf_tracker.db")

# Columns a caller may change through update_student().
UPDATABLE_STUDENT_COLUMNS: Final[frozenset[str]] = frozenset(
    {"name", "email", "phone_number", "handle", "current_rating", "max_rating", "notes"}
)


class DatabaseError(Exception):
    """Base exception for database operations."""
    pass


class StudentNotFoundError(DatabaseError):
    """Raised when a student cannot be found."""
    pass


class DuplicateStudentError(DatabaseError):
    """Raised when a student's email or handle is already registered."""
    pass


class JobNotFoundError(DatabaseError):
    """Raised when a scheduled job row does not exist."""
    pass


@contextmanager
def get_db_connection(db_path: Path = DATABASE_PATH) -> Generator[sqlite3.Connection, None, None]:
    """Context manager for database connections with proper cleanup.

    Every call opens its own connection, so worker threads never share one.

    Args:
        db_path: Path to the SQLite database file.

    Yields:
        A configured SQLite connection with row factory and foreign keys enabled.

    Raises:
        DatabaseError: If database connection or operations fail.
    """
    db_connection: sqlite3.Connection | None = None
    try:
        db_connection = sqlite3.connect(str(db_path), timeout=30.0)
        db_connection.row_factory = sqlite3.Row
        db_connection.execute("PRAGMA foreign_keys = ON")
        yield db_connection
    except DatabaseError:
        if db_connection is not None:
            db_connection.rollback()
        raise
    except sqlite3.Error as e:
        logger.error(f"Database error occurred: {e}")
        if db_connection is not None:
            db_connection.rollback()
        raise DatabaseError(f"Database operation failed: {e}") from e
    except Exception as e:
        logger.error(f"Unexpected error with database connection: {e}")
        if db_connection is not None:
            db_connection.rollback()
        raise DatabaseError(f"Unexpected database error: {e}") from e
    finally:
        if db_connection is not None:
            db_connection.close()


def initialize_database(db_path: Path = DATABASE_PATH) -> None:
    """Create database tables and indexes if they don't exist.

    Raises:
        DatabaseError: If table creation fails.
    """
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        with get_db_connection(db_path) as db_connection:
            for statement in create_tables_sql():
                db_connection.execute(statement)
            db_connection.execute(
                "CREATE INDEX IF NOT EXISTS idx_email_logs_student_sent "
                "ON email_logs (student_id, sent_at)"
            )
            db_connection.execute(
                "CREATE INDEX IF NOT EXISTS idx_email_logs_type_sent "
                "ON email_logs (email_type, sent_at)"
            )
            db_connection.commit()
            logger.info(f"Database tables initialized at {db_path}")

    except DatabaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise DatabaseError(f"Database initialization failed: {e}") from e


# ---------------------------------------------------------------------------
# Students
# ---------------------------------------------------------------------------

def _row_to_student(row: sqlite3.Row) -> Student:
    inactive_since: Optional[datetime] = parse_datetime(row["inactive_since"])
    return Student(
        id=int(row["id"]),
        name=str(row["name"]),
        email=str(row["email"]),
        handle=str(row["handle"]),
        phone_number=row["phone_number"],
        current_rating=int(row["current_rating"]),
        max_rating=int(row["max_rating"]),
        last_synced_at=parse_datetime(row["last_synced_at"]),
        inactivity=InactivityStatus(
            is_inactive=bool(row["is_inactive"]) and inactive_since is not None,
            inactive_since=inactive_since if row["is_inactive"] else None,
        ),
        reminders=ReminderSettings(
            enabled=bool(row["reminders_enabled"]),
            count=int(row["reminder_count"]),
            last_sent_at=parse_datetime(row["reminder_last_sent_at"]),
        ),
        notes=str(row["notes"] or ""),
        created_at=parse_datetime(row["created_at"]),
        updated_at=parse_datetime(row["updated_at"]),
    )


def create_student(
    name: str,
    email: str,
    handle: str,
    phone_number: Optional[str] = None,
    notes: str = "",
    current_rating: int = 0,
    max_rating: int = 0,
    db_path: Path = DATABASE_PATH,
) -> Student:
    """Insert a new student.

    ``email`` and ``handle`` are expected to be normalized by the caller.

    Returns:
        The stored Student.

    Raises:
        DuplicateStudentError: If the email or handle is already registered.
        DatabaseError: If the database operation fails.
    """
    if not name.strip():
        raise ValueError("Student name cannot be empty")

    now: Optional[str] = format_datetime(utc_now())
    try:
        with get_db_connection(db_path) as db_connection:
            try:
                cursor: sqlite3.Cursor = db_connection.execute(
                    """INSERT INTO students (name, email, phone_number, handle, current_rating,
                                             max_rating, notes, created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (name.strip(), email, phone_number, handle, current_rating,
                     max_rating, notes, now, now),
                )
            except sqlite3.IntegrityError as e:
                field_name = "handle" if "handle" in str(e) else "email"
                raise DuplicateStudentError(
                    f"A student with this {field_name} already exists"
                ) from e

            student_id: int | None = cursor.lastrowid
            if student_id is None:
                raise DatabaseError("Failed to get last row ID after insert")
            db_connection.commit()

            row = db_connection.execute(
                "SELECT * FROM students WHERE id = ?", (student_id,)
            ).fetchone()
            logger.info(f"Created student {handle} (ID: {student_id})")
            return _row_to_student(row)

    except DatabaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to create student {handle}: {e}")
        raise DatabaseError(f"Failed to create student {handle}: {e}") from e


def get_student(student_id: int, db_path: Path = DATABASE_PATH) -> Student:
    """Return a student by ID.

    Raises:
        StudentNotFoundError: If no such student exists.
    """
    with get_db_connection(db_path) as db_connection:
        row: sqlite3.Row | None = db_connection.execute(
            "SELECT * FROM students WHERE id = ?", (student_id,)
        ).fetchone()
        if row is None:
            raise StudentNotFoundError(f"Student not found with ID: {student_id}")
        return _row_to_student(row)


def get_student_by_handle(handle: str, db_path: Path = DATABASE_PATH) -> Optional[Student]:
    """Return the student registered with ``handle`` (case-insensitive), if any."""
    with get_db_connection(db_path) as db_connection:
        row: sqlite3.Row | None = db_connection.execute(
            "SELECT * FROM students WHERE handle = ?", (handle.strip().lower(),)
        ).fetchone()
        return _row_to_student(row) if row is not None else None


def list_students(
    name: Optional[str] = None,
    handle: Optional[str] = None,
    inactive_only: bool = False,
    db_path: Path = DATABASE_PATH,
) -> list[Student]:
    """Return students matching optional substring filters, ordered by name."""
    clauses: list[str] = []
    params: list[Any] = []
    if name:
        clauses.append("name LIKE ?")
        params.append(f"%{name}%")
    if handle:
        clauses.append("handle LIKE ?")
        params.append(f"%{handle.lower()}%")
    if inactive_only:
        clauses.append("is_inactive = 1")

    query: str = "SELECT * FROM students"
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    query += " ORDER BY name ASC, id ASC"

    with get_db_connection(db_path) as db_connection:
        rows: list[sqlite3.Row] = db_connection.execute(query, params).fetchall()
        return [_row_to_student(row) for row in rows]


def list_student_handles(db_path: Path = DATABASE_PATH) -> list[StudentHandle]:
    """Return ``(id, handle)`` pairs for every student, ordered by ID."""
    try:
        with get_db_connection(db_path) as db_connection:
            rows: list[sqlite3.Row] = db_connection.execute(
                "SELECT id, handle FROM students ORDER BY id ASC"
            ).fetchall()
            return [StudentHandle(id=int(row["id"]), handle=str(row["handle"])) for row in rows]

    except DatabaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to list student handles: {e}")
        raise DatabaseError(f"Failed to list student handles: {e}") from e


def list_inactive_students(db_path: Path = DATABASE_PATH) -> list[Student]:
    """Return students currently flagged inactive."""
    return list_students(inactive_only=True, db_path=db_path)


def update_student(student_id: int, db_path: Path = DATABASE_PATH, **fields: Any) -> Student:
    """Update editable columns of a student.

    Raises:
        StudentNotFoundError: If no such student exists.
        DuplicateStudentError: If a new email or handle collides.
        ValueError: If an unknown column is passed.
    """
    unknown = set(fields) - UPDATABLE_STUDENT_COLUMNS
    if unknown:
        raise ValueError(f"Cannot update student columns: {', '.join(sorted(unknown))}")
    if not fields:
        return get_student(student_id, db_path)

    assignments: str = ", ".join(f"{column} = ?" for column in fields)
    params: list[Any] = list(fields.values()) + [format_datetime(utc_now()), student_id]

    with get_db_connection(db_path) as db_connection:
        try:
            cursor: sqlite3.Cursor = db_connection.execute(
                f"UPDATE students SET {assignments}, updated_at = ? WHERE id = ?", params
            )
        except sqlite3.IntegrityError as e:
            field_name = "handle" if "handle" in str(e) else "email"
            raise DuplicateStudentError(f"A student with this {field_name} already exists") from e
        if cursor.rowcount == 0:
            raise StudentNotFoundError(f"Student not found with ID: {student_id}")
        db_connection.commit()
        row = db_connection.execute("SELECT * FROM students WHERE id = ?", (student_id,)).fetchone()
        return _row_to_student(row)


def update_student_sync_snapshot(
    student_id: int,
    current_rating: int,
    max_rating: int,
    synced_at: datetime,
    inactivity: InactivityStatus,
    db_path: Path = DATABASE_PATH,
) -> None:
    """Store the rating snapshot, sync time and inactivity flag after a sync.

    Raises:
        StudentNotFoundError: If the student was deleted meanwhile.
    """
    with get_db_connection(db_path) as db_connection:
        cursor: sqlite3.Cursor = db_connection.execute(
            """UPDATE students
               SET current_rating = ?, max_rating = ?, last_synced_at = ?,
                   is_inactive = ?, inactive_since = ?, updated_at = ?
               WHERE id = ?""",
            (current_rating, max_rating, format_datetime(synced_at),
             int(inactivity.is_inactive), format_datetime(inactivity.inactive_since),
             format_datetime(utc_now()), student_id),
        )
        if cursor.rowcount == 0:
            raise StudentNotFoundError(f"Student not found with ID: {student_id}")
        db_connection.commit()


def update_student_inactivity(
    student_id: int,
    inactivity: InactivityStatus,
    db_path: Path = DATABASE_PATH,
) -> None:
    """Persist a student's inactivity flag."""
    with get_db_connection(db_path) as db_connection:
        cursor: sqlite3.Cursor = db_connection.execute(
            "UPDATE students SET is_inactive = ?, inactive_since = ?, updated_at = ? WHERE id = ?",
            (int(inactivity.is_inactive), format_datetime(inactivity.inactive_since),
             format_datetime(utc_now()), student_id),
        )
        if cursor.rowcount == 0:
            raise StudentNotFoundError(f"Student not found with ID: {student_id}")
        db_connection.commit()


def clear_student_sync(student_id: int, db_path: Path = DATABASE_PATH) -> None:
    """Drop a student's aggregate record and mark the data as not yet synced."""
    with get_db_connection(db_path) as db_connection:
        db_connection.execute("DELETE FROM aggregate_records WHERE student_id = ?", (student_id,))
        db_connection.execute(
            "UPDATE students SET last_synced_at = NULL, updated_at = ? WHERE id = ?",
            (format_datetime(utc_now()), student_id),
        )
        db_connection.commit()


def set_reminders_enabled(student_id: int, enabled: bool, db_path: Path = DATABASE_PATH) -> Student:
    """Enable or disable reminder emails for a student."""
    with get_db_connection(db_path) as db_connection:
        cursor: sqlite3.Cursor = db_connection.execute(
            "UPDATE students SET reminders_enabled = ?, updated_at = ? WHERE id = ?",
            (int(enabled), format_datetime(utc_now()), student_id),
        )
        if cursor.rowcount == 0:
            raise StudentNotFoundError(f"Student not found with ID: {student_id}")
        db_connection.commit()
        row = db_connection.execute("SELECT * FROM students WHERE id = ?", (student_id,)).fetchone()
        return _row_to_student(row)


def record_reminder_sent(student_id: int, sent_at: datetime, db_path: Path = DATABASE_PATH) -> None:
    """Increment a student's reminder counter and set its last-sent time."""
    with get_db_connection(db_path) as db_connection:
        cursor: sqlite3.Cursor = db_connection.execute(
            """UPDATE students
               SET reminder_count = reminder_count + 1, reminder_last_sent_at = ?, updated_at = ?
               WHERE id = ?""",
            (format_datetime(sent_at), format_datetime(utc_now()), student_id),
        )
        if cursor.rowcount == 0:
            raise StudentNotFoundError(f"Student not found with ID: {student_id}")
        db_connection.commit()


def count_students_with_reminders_disabled(db_path: Path = DATABASE_PATH) -> int:
    with get_db_connection(db_path) as db_connection:
        row = db_connection.execute(
            "SELECT COUNT(*) AS total FROM students WHERE reminders_enabled = 0"
        ).fetchone()
        return int(row["total"])


def delete_student(student_id: int, db_path: Path = DATABASE_PATH) -> None:
    """Delete a student together with its aggregate record and email logs.

    Raises:
        StudentNotFoundError: If no such student exists.
    """
    with get_db_connection(db_path) as db_connection:
        db_connection.execute("DELETE FROM aggregate_records WHERE student_id = ?", (student_id,))
        db_connection.execute("DELETE FROM email_logs WHERE student_id = ?", (student_id,))
        cursor: sqlite3.Cursor = db_connection.execute(
            "DELETE FROM students WHERE id = ?", (student_id,)
        )
        if cursor.rowcount == 0:
            raise StudentNotFoundError(f"Student not found with ID: {student_id}")
        db_connection.commit()
        logger.info(f"Deleted student ID {student_id} with its Codeforces data and email logs")


# ---------------------------------------------------------------------------
# Aggregate records
# ---------------------------------------------------------------------------

def upsert_aggregate_record(record: AggregateRecord, db_path: Path = DATABASE_PATH) -> None:
    """Insert or fully replace a student's aggregate record.

    Raises:
        DatabaseError: If the database operation fails.
    """
    try:
        with get_db_connection(db_path) as db_connection:
            db_connection.execute(
                """INSERT INTO aggregate_records (student_id, handle, contests_json, submissions_json,
                                                  statistics_json, user_info_json, last_updated,
                                                  last_submission_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(student_id) DO UPDATE SET
                       handle = excluded.handle,
                       contests_json = excluded.contests_json,
                       submissions_json = excluded.submissions_json,
                       statistics_json = excluded.statistics_json,
                       user_info_json = excluded.user_info_json,
                       last_updated = excluded.last_updated,
                       last_submission_at = excluded.last_submission_at""",
                (
                    record.student_id,
                    record.handle,
                    json.dumps([contest.to_dict() for contest in record.contests]),
                    json.dumps([submission.to_dict() for submission in record.submissions]),
                    json.dumps(record.statistics.to_dict()),
                    json.dumps(record.user_info),
                    format_datetime(record.last_updated),
                    format_datetime(record.last_submission_at),
                ),
            )
            db_connection.commit()
            logger.debug(
                f"Stored aggregate record for {record.handle} "
                f"({len(record.submissions)} submissions, {len(record.contests)} contests)"
            )

    except DatabaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to store aggregate record for {record.handle}: {e}")
        raise DatabaseError(f"Failed to store aggregate record for {record.handle}: {e}") from e


def get_aggregate_record(student_id: int, db_path: Path = DATABASE_PATH) -> Optional[AggregateRecord]:
    """Return a student's aggregate record, or None if never synced."""
    with get_db_connection(db_path) as db_connection:
        row: sqlite3.Row | None = db_connection.execute(
            "SELECT * FROM aggregate_records WHERE student_id = ?", (student_id,)
        ).fetchone()
        if row is None:
            return None

        return AggregateRecord(
            student_id=int(row["student_id"]),
            handle=str(row["handle"]),
            contests=tuple(ContestRecord.from_dict(item) for item in json.loads(row["contests_json"])),
            submissions=tuple(
                SubmissionRecord.from_dict(item) for item in json.loads(row["submissions_json"])
            ),
            statistics=ProblemStatistics.from_dict(json.loads(row["statistics_json"])),
            user_info=json.loads(row["user_info_json"]),
            last_updated=parse_datetime(row["last_updated"]),
            last_submission_at=parse_datetime(row["last_submission_at"]),
        )


# ---------------------------------------------------------------------------
# Scheduled jobs
# ---------------------------------------------------------------------------

def _row_to_job(row: sqlite3.Row) -> ScheduledJob:
    last_status_json: Optional[str] = row["last_status_json"]
    return ScheduledJob(
        name=JobKind(row["name"]),
        schedule=str(row["schedule"]),
        enabled=bool(row["enabled"]),
        timezone=str(row["timezone"]),
        config=JobConfig.from_dict(json.loads(row["config_json"])),
        last_run_at=parse_datetime(row["last_run_at"]),
        next_run_at=parse_datetime(row["next_run_at"]),
        last_status=JobRunEntry.from_dict(json.loads(last_status_json)) if last_status_json else None,
        history=tuple(JobRunEntry.from_dict(item) for item in json.loads(row["history_json"])),
    )


def _job_params(job: ScheduledJob) -> tuple[Any, ...]:
    return (
        job.name.value,
        job.schedule,
        int(job.enabled),
        job.timezone,
        json.dumps(job.config.to_dict()),
        format_datetime(job.last_run_at),
        format_datetime(job.next_run_at),
        json.dumps(job.last_status.to_dict()) if job.last_status else None,
        json.dumps([entry.to_dict() for entry in job.history]),
    )


def ensure_default_jobs(jobs: Iterable[ScheduledJob], db_path: Path = DATABASE_PATH) -> int:
    """Insert job rows that do not exist yet; existing rows are left untouched.

    Returns:
        Number of rows created.
    """
    created: int = 0
    with get_db_connection(db_path) as db_connection:
        for job in jobs:
            cursor: sqlite3.Cursor = db_connection.execute(
                """INSERT OR IGNORE INTO scheduled_jobs
                   (name, schedule, enabled, timezone, config_json, last_run_at, next_run_at,
                    last_status_json, history_json)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                _job_params(job),
            )
            created += cursor.rowcount
        db_connection.commit()
    if created:
        logger.info(f"Created {created} default scheduled jobs")
    return created


def get_scheduled_job(kind: JobKind, db_path: Path = DATABASE_PATH) -> ScheduledJob:
    """Return a scheduled job row.

    Raises:
        JobNotFoundError: If the job row does not exist.
    """
    with get_db_connection(db_path) as db_connection:
        row: sqlite3.Row | None = db_connection.execute(
            "SELECT * FROM scheduled_jobs WHERE name = ?", (kind.value,)
        ).fetchone()
        if row is None:
            raise JobNotFoundError(f"Job not found: {kind.value}")
        return _row_to_job(row)


def list_scheduled_jobs(db_path: Path = DATABASE_PATH) -> list[ScheduledJob]:
    with get_db_connection(db_path) as db_connection:
        rows: list[sqlite3.Row] = db_connection.execute(
            "SELECT * FROM scheduled_jobs ORDER BY name ASC"
        ).fetchall()
        return [_row_to_job(row) for row in rows]


def save_scheduled_job(job: ScheduledJob, db_path: Path = DATABASE_PATH) -> None:
    """Write every column of a job row."""
    with get_db_connection(db_path) as db_connection:
        db_connection.execute(
            """INSERT OR REPLACE INTO scheduled_jobs
               (name, schedule, enabled, timezone, config_json, last_run_at, next_run_at,
                last_status_json, history_json)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            _job_params(job),
        )
        db_connection.commit()


def set_job_next_run(kind: JobKind, next_run_at: Optional[datetime], db_path: Path = DATABASE_PATH) -> None:
    with get_db_connection(db_path) as db_connection:
        db_connection.execute(
            "UPDATE scheduled_jobs SET next_run_at = ? WHERE name = ?",
            (format_datetime(next_run_at), kind.value),
        )
        db_connection.commit()


def record_job_run(
    kind: JobKind,
    entry: JobRunEntry,
    next_run_at: Optional[datetime] = None,
    db_path: Path = DATABASE_PATH,
) -> ScheduledJob:
    """Append a run to a job's bounded history and update its last status.

    The read-modify-write happens inside one immediate transaction, so
    concurrent runs of the same job cannot drop each other's entries.

    Raises:
        JobNotFoundError: If the job row does not exist.
    """
    with get_db_connection(db_path) as db_connection:
        db_connection.execute("BEGIN IMMEDIATE")
        row: sqlite3.Row | None = db_connection.execute(
            "SELECT * FROM scheduled_jobs WHERE name = ?", (kind.value,)
        ).fetchone()
        if row is None:
            raise JobNotFoundError(f"Job not found: {kind.value}")

        job: ScheduledJob = _row_to_job(row).with_run(entry)
        db_connection.execute(
            """UPDATE scheduled_jobs
               SET last_run_at = ?, next_run_at = COALESCE(?, next_run_at),
                   last_status_json = ?, history_json = ?
               WHERE name = ?""",
            (
                format_datetime(job.last_run_at),
                format_datetime(next_run_at),
                json.dumps(entry.to_dict()),
                json.dumps([item.to_dict() for item in job.history]),
                kind.value,
            ),
        )
        db_connection.commit()
        return job


def delete_all_scheduled_jobs(db_path: Path = DATABASE_PATH) -> None:
    with get_db_connection(db_path) as db_connection:
        db_connection.execute("DELETE FROM scheduled_jobs")
        db_connection.commit()


# ---------------------------------------------------------------------------
# Email audit log
# ---------------------------------------------------------------------------

def _row_to_email_log(row: sqlite3.Row) -> EmailAuditRecord:
    inactivity: Optional[InactivityContext] = None
    if row["days_inactive"] is not None:
        inactivity = InactivityContext(
            days_inactive=int(row["days_inactive"]),
            reminder_number=int(row["reminder_number"] or 0),
            last_synced_at=parse_datetime(row["last_synced_at"]),
        )
    return EmailAuditRecord(
        id=int(row["id"]),
        student_id=int(row["student_id"]),
        recipient_email=str(row["recipient_email"]),
        email_type=EmailType(row["email_type"]),
        subject=str(row["subject"]),
        content=str(row["content"]),
        template=str(row["template"]),
        status=EmailStatus(row["status"]),
        sent_at=parse_datetime(row["sent_at"]),
        inactivity=inactivity,
    )


def insert_email_log(record: EmailAuditRecord, db_path: Path = DATABASE_PATH) -> int:
    """Append an email audit record.

    Returns:
        The database ID of the audit record.

    Raises:
        DatabaseError: If the database operation fails.
        ValueError: If the subject is empty.
    """
    if not record.subject.strip():
        raise ValueError("Email subject cannot be empty")

    inactivity: Optional[InactivityContext] = record.inactivity
    try:
        with get_db_connection(db_path) as db_connection:
            cursor: sqlite3.Cursor = db_connection.execute(
                """INSERT INTO email_logs (student_id, recipient_email, email_type, subject, content,
                                           template, status, sent_at, days_inactive,
                                           reminder_number, last_synced_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    record.student_id,
                    record.recipient_email,
                    record.email_type.value,
                    record.subject,
                    record.content,
                    record.template,
                    record.status.value,
                    format_datetime(record.sent_at),
                    inactivity.days_inactive if inactivity else None,
                    inactivity.reminder_number if inactivity else None,
                    format_datetime(inactivity.last_synced_at) if inactivity else None,
                ),
            )
            log_id: int | None = cursor.lastrowid
            if log_id is None:
                raise DatabaseError("Failed to get last row ID after insert")
            db_connection.commit()
            logger.debug(f"Recorded {record.email_type.value} email for student ID {record.student_id}")
            return log_id

    except DatabaseError:
        raise
    except Exception as e:
        logger.error(f"Failed to record email for student ID {record.student_id}: {e}")
        raise DatabaseError(f"Failed to record email for student ID {record.student_id}: {e}") from e


def has_recent_email(
    student_id: int,
    email_type: EmailType,
    since: datetime,
    db_path: Path = DATABASE_PATH,
) -> bool:
    """Return True if a successfully sent email of ``email_type`` exists at or after ``since``."""
    with get_db_connection(db_path) as db_connection:
        row: sqlite3.Row | None = db_connection.execute(
            """SELECT 1 FROM email_logs
               WHERE student_id = ? AND email_type = ? AND status = ? AND sent_at >= ?
               LIMIT 1""",
            (student_id, email_type.value, EmailStatus.SENT.value, format_datetime(since)),
        ).fetchone()
        return row is not None


def list_email_logs(
    student_id: Optional[int] = None,
    email_type: Optional[EmailType] = None,
    limit: Optional[int] = None,
    db_path: Path = DATABASE_PATH,
) -> list[EmailAuditRecord]:
    """Return audit records, newest first."""
    if limit is not None and limit <= 0:
        raise ValueError("Limit must be positive when provided")

    clauses: list[str] = []
    params: list[Any] = []
    if student_id is not None:
        clauses.append("student_id = ?")
        params.append(student_id)
    if email_type is not None:
        clauses.append("email_type = ?")
        params.append(email_type.value)

    query: str = "SELECT * FROM email_logs"
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    query += " ORDER BY sent_at DESC, id DESC"
    if limit is not None:
        query += " LIMIT ?"
        params.append(limit)

    with get_db_connection(db_path) as db_connection:
        return [_row_to_email_log(row) for row in db_connection.execute(query, params).fetchall()]


def count_email_logs(
    email_type: EmailType,
    since: Optional[datetime] = None,
    db_path: Path = DATABASE_PATH,
) -> int:
    query: str = "SELECT COUNT(*) AS total FROM email_logs WHERE email_type = ? AND status = ?"
    params: list[Any] = [email_type.value, EmailStatus.SENT.value]
    if since is not None:
        query += " AND sent_at >= ?"
        params.append(format_datetime(since))
    with get_db_connection(db_path) as db_connection:
        return int(db_connection.execute(query, params).fetchone()["total"])


def count_students_emailed(email_type: EmailType, db_path: Path = DATABASE_PATH) -> int:
    with get_db_connection(db_path) as db_connection:
        row = db_connection.execute(
            """SELECT COUNT(DISTINCT student_id) AS total FROM email_logs
               WHERE email_type = ? AND status = ?""",
            (email_type.value, EmailStatus.SENT.value),
        ).fetchone()
        return int(row["total"])


def daily_email_counts(
    email_type: EmailType,
    since: datetime,
    db_path: Path = DATABASE_PATH,
) -> list[tuple[str, int]]:
    """Return ``(YYYY-MM-DD, count)`` pairs of sent emails since ``since``, ascending."""
    with get_db_connection(db_path) as db_connection:
        rows: list[sqlite3.Row] = db_connection.execute(
            """SELECT substr(sent_at, 1, 10) AS day, COUNT(*) AS total FROM email_logs
               WHERE email_type = ? AND status = ? AND sent_at >= ?
               GROUP BY day ORDER BY day ASC""",
            (email_type.value, EmailStatus.SENT.value, format_datetime(since)),
        ).fetchall()
        return [(str(row["day"]), int(row["total"])) for row in rows]
