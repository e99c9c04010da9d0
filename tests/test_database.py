"""Tests for database operations."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from loguru import logger

from cf_tracker.analytics.aggregator import compute_statistics
from cf_tracker.database.models import (
    MAX_JOB_HISTORY,
    AggregateRecord,
    EmailAuditRecord,
    EmailStatus,
    EmailType,
    InactivityContext,
    InactivityStatus,
    JobConfig,
    JobKind,
    JobRunEntry,
    ScheduledJob,
    SubmissionRecord,
)
from cf_tracker.database.operations import (
    DuplicateStudentError,
    JobNotFoundError,
    StudentNotFoundError,
    clear_student_sync,
    count_email_logs,
    create_student,
    daily_email_counts,
    delete_student,
    ensure_default_jobs,
    get_aggregate_record,
    get_scheduled_job,
    get_student,
    get_student_by_handle,
    has_recent_email,
    initialize_database,
    insert_email_log,
    list_email_logs,
    list_student_handles,
    list_students,
    record_job_run,
    record_reminder_sent,
    update_student,
    update_student_sync_snapshot,
    upsert_aggregate_record,
)

# Configure loguru for testing
logger.remove()
logger.add("test_database.log", level="DEBUG")

NOW: datetime = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def create_test_database(tmp_path: Path) -> Path:
    db_path: Path = tmp_path / "data" / "tracker.db"
    initialize_database(db_path)
    return db_path


def make_aggregate(student_id: int, handle: str) -> AggregateRecord:
    submissions = (
        SubmissionRecord(
            submission_id=1,
            problem_id="4A",
            problem_name="Watermelon",
            contest_id=4,
            problem_rating=800,
            verdict="OK",
            language="Python 3",
            submitted_at=NOW - timedelta(days=1),
            tags=("math",),
        ),
    )
    return AggregateRecord(
        student_id=student_id,
        handle=handle,
        contests=(),
        submissions=submissions,
        statistics=compute_statistics(submissions, now=NOW),
        user_info={"rating": 1200, "rank": "pupil"},
        last_updated=NOW,
        last_submission_at=NOW - timedelta(days=1),
    )


def make_email(student_id: int, sent_at: datetime, email_type: EmailType = EmailType.INACTIVITY_REMINDER) -> EmailAuditRecord:
    return EmailAuditRecord(
        id=None,
        student_id=student_id,
        recipient_email="alice@example.com",
        email_type=email_type,
        subject="Reminder: Get back to problem solving!",
        content="<p>Hello</p>",
        template="inactivity_reminder",
        status=EmailStatus.SENT,
        sent_at=sent_at,
        inactivity=InactivityContext(days_inactive=9, reminder_number=1),
    )


def test_create_and_get_student(tmp_path: Path) -> None:
    db_path = create_test_database(tmp_path)

    student = create_student("Alice", "alice@example.com", "alice_cf", current_rating=1200,
                             max_rating=1350, db_path=db_path)

    assert student.id is not None
    loaded = get_student(student.id, db_path)
    assert loaded.name == "Alice"
    assert loaded.current_rating == 1200
    assert loaded.reminders.enabled
    assert loaded.reminders.count == 0
    assert not loaded.inactivity.is_inactive
    assert get_student_by_handle("ALICE_CF", db_path) == loaded

    with pytest.raises(StudentNotFoundError):
        get_student(9999, db_path)


def test_duplicate_handle_and_email_rejected(tmp_path: Path) -> None:
    db_path = create_test_database(tmp_path)
    create_student("Alice", "alice@example.com", "alice_cf", db_path=db_path)

    with pytest.raises(DuplicateStudentError):
        create_student("Other", "other@example.com", "alice_cf", db_path=db_path)
    with pytest.raises(DuplicateStudentError):
        create_student("Other", "alice@example.com", "other_cf", db_path=db_path)


def test_list_and_update_students(tmp_path: Path) -> None:
    db_path = create_test_database(tmp_path)
    bob = create_student("Bob", "bob@example.com", "bob_cf", db_path=db_path)
    create_student("Alice", "alice@example.com", "alice_cf", db_path=db_path)

    assert [s.name for s in list_students(db_path=db_path)] == ["Alice", "Bob"]
    assert [s.handle for s in list_students(handle="BOB", db_path=db_path)] == ["bob_cf"]
    assert [h.handle for h in list_student_handles(db_path)] == ["bob_cf", "alice_cf"]

    updated = update_student(bob.id, db_path=db_path, name="Robert", notes="prefers evenings")
    assert updated.name == "Robert"
    assert updated.notes == "prefers evenings"

    with pytest.raises(ValueError):
        update_student(bob.id, db_path=db_path, reminder_count=5)
    with pytest.raises(StudentNotFoundError):
        update_student(9999, db_path=db_path, name="Ghost")


def test_sync_snapshot_and_inactive_filter(tmp_path: Path) -> None:
    db_path = create_test_database(tmp_path)
    student = create_student("Alice", "alice@example.com", "alice_cf", db_path=db_path)

    update_student_sync_snapshot(
        student.id, 1500, 1600, NOW, InactivityStatus(True, NOW - timedelta(days=2)), db_path
    )

    loaded = get_student(student.id, db_path)
    assert loaded.last_synced_at == NOW
    assert loaded.max_rating == 1600
    assert loaded.inactivity.inactive_since == NOW - timedelta(days=2)
    assert [s.id for s in list_students(inactive_only=True, db_path=db_path)] == [student.id]


def test_aggregate_record_is_replaced_not_duplicated(tmp_path: Path) -> None:
    db_path = create_test_database(tmp_path)
    student = create_student("Alice", "alice@example.com", "alice_cf", db_path=db_path)
    record = make_aggregate(student.id, "alice_cf")

    upsert_aggregate_record(record, db_path)
    upsert_aggregate_record(record, db_path)

    loaded = get_aggregate_record(student.id, db_path)
    assert loaded == record

    clear_student_sync(student.id, db_path)
    assert get_aggregate_record(student.id, db_path) is None
    assert get_student(student.id, db_path).last_synced_at is None


def test_delete_student_cascades(tmp_path: Path) -> None:
    db_path = create_test_database(tmp_path)
    student = create_student("Alice", "alice@example.com", "alice_cf", db_path=db_path)
    upsert_aggregate_record(make_aggregate(student.id, "alice_cf"), db_path)
    insert_email_log(make_email(student.id, NOW), db_path)

    delete_student(student.id, db_path)

    assert get_aggregate_record(student.id, db_path) is None
    assert list_email_logs(student_id=student.id, db_path=db_path) == []
    with pytest.raises(StudentNotFoundError):
        delete_student(student.id, db_path)


def test_email_log_queries(tmp_path: Path) -> None:
    db_path = create_test_database(tmp_path)
    student = create_student("Alice", "alice@example.com", "alice_cf", db_path=db_path)
    insert_email_log(make_email(student.id, NOW - timedelta(days=4)), db_path)
    latest_id = insert_email_log(make_email(student.id, NOW - timedelta(days=1)), db_path)
    insert_email_log(make_email(student.id, NOW, EmailType.OTHER), db_path)

    assert has_recent_email(student.id, EmailType.INACTIVITY_REMINDER, NOW - timedelta(days=3), db_path)
    assert not has_recent_email(student.id, EmailType.INACTIVITY_REMINDER, NOW - timedelta(hours=12), db_path)

    logs = list_email_logs(student_id=student.id, email_type=EmailType.INACTIVITY_REMINDER, db_path=db_path)
    assert [log.id for log in logs][0] == latest_id
    assert logs[0].inactivity == InactivityContext(days_inactive=9, reminder_number=1)
    assert len(list_email_logs(student_id=student.id, limit=1, db_path=db_path)) == 1

    assert count_email_logs(EmailType.INACTIVITY_REMINDER, db_path=db_path) == 2
    assert count_email_logs(EmailType.INACTIVITY_REMINDER, NOW - timedelta(days=2), db_path) == 1
    assert daily_email_counts(EmailType.INACTIVITY_REMINDER, NOW - timedelta(days=30), db_path) == [
        ("2024-05-28", 1),
        ("2024-05-31", 1),
    ]


def test_record_reminder_sent(tmp_path: Path) -> None:
    db_path = create_test_database(tmp_path)
    student = create_student("Alice", "alice@example.com", "alice_cf", db_path=db_path)

    record_reminder_sent(student.id, NOW, db_path)
    record_reminder_sent(student.id, NOW + timedelta(days=4), db_path)

    reminders = get_student(student.id, db_path).reminders
    assert reminders.count == 2
    assert reminders.last_sent_at == NOW + timedelta(days=4)


def test_ensure_default_jobs_keeps_existing_rows(tmp_path: Path) -> None:
    db_path = create_test_database(tmp_path)
    job = ScheduledJob(JobKind.CODEFORCES_SYNC, "0 2 * * *", config=JobConfig(batch_size=20))

    assert ensure_default_jobs([job], db_path) == 1
    assert ensure_default_jobs([ScheduledJob(JobKind.CODEFORCES_SYNC, "0 5 * * *")], db_path) == 0

    stored = get_scheduled_job(JobKind.CODEFORCES_SYNC, db_path)
    assert stored.schedule == "0 2 * * *"
    assert stored.config.batch_size == 20

    with pytest.raises(JobNotFoundError):
        get_scheduled_job(JobKind.EMAIL_REMINDER, db_path)


def test_job_history_is_bounded(tmp_path: Path) -> None:
    db_path = create_test_database(tmp_path)
    ensure_default_jobs([ScheduledJob(JobKind.INACTIVITY_CHECK, "0 3 * * *")], db_path)

    for minute in range(MAX_JOB_HISTORY + 3):
        record_job_run(
            JobKind.INACTIVITY_CHECK,
            JobRunEntry(run_at=NOW + timedelta(minutes=minute), success=minute % 2 == 0,
                        message=f"run {minute}", processed_count=minute),
            db_path=db_path,
        )

    job = get_scheduled_job(JobKind.INACTIVITY_CHECK, db_path)
    assert len(job.history) == MAX_JOB_HISTORY
    assert job.history[0].message == "run 3"
    assert job.last_status == job.history[-1]
    assert job.last_run_at == NOW + timedelta(minutes=MAX_JOB_HISTORY + 2)
