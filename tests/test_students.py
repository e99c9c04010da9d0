"""Tests for roster management."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from unittest.mock import MagicMock, Mock

import pytest
from loguru import logger

from cf_tracker.analytics.aggregator import compute_statistics
from cf_tracker.codeforces.client import CodeforcesAPIError, CodeforcesClient
from cf_tracker.database.models import AggregateRecord
from cf_tracker.database.operations import (
    DuplicateStudentError,
    StudentNotFoundError,
    get_aggregate_record,
    initialize_database,
    upsert_aggregate_record,
)
from cf_tracker.jobs.data_sync import StudentSyncError, SyncOrchestrator
from cf_tracker.students.service import InvalidHandleError, StudentCreate, StudentService, StudentUpdate

# Configure loguru for testing
logger.remove()
logger.add("test_students.log", level="DEBUG")

NOW: datetime = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def create_service(tmp_path: Path, user_info: Optional[dict] = None) -> tuple[StudentService, Mock, Mock]:
    db_path: Path = tmp_path / "tracker.db"
    initialize_database(db_path)
    client = MagicMock(spec=CodeforcesClient)
    client.fetch_user_info.return_value = (
        user_info if user_info is not None else {"handle": "alice_cf", "rating": 1350, "maxRating": 1420}
    )
    orchestrator = MagicMock(spec=SyncOrchestrator)
    return StudentService(client, orchestrator, db_path=db_path), client, orchestrator


def store_aggregate(service: StudentService, student_id: int, handle: str) -> None:
    upsert_aggregate_record(
        AggregateRecord(
            student_id=student_id,
            handle=handle,
            contests=(),
            submissions=(),
            statistics=compute_statistics((), now=NOW),
            user_info={"rating": 1350},
            last_updated=NOW,
            last_submission_at=None,
        ),
        service.db_path,
    )


def test_create_student_uses_codeforces_ratings(tmp_path: Path) -> None:
    service, client, orchestrator = create_service(tmp_path)

    student = service.create_student(StudentCreate("Alice", " Alice@Example.com ", " Alice_CF "))

    assert student.handle == "alice_cf"
    assert student.email == "alice@example.com"
    assert student.current_rating == 1350
    assert student.max_rating == 1420
    client.fetch_user_info.assert_called_once_with("alice_cf")
    orchestrator.sync_student.assert_called_once_with(student.id, "alice_cf")


def test_create_student_rejects_duplicate_handle(tmp_path: Path) -> None:
    service, client, _ = create_service(tmp_path)
    service.create_student(StudentCreate("Alice", "alice@example.com", "alice_cf"), sync_now=False)
    client.fetch_user_info.reset_mock()

    with pytest.raises(DuplicateStudentError):
        service.create_student(StudentCreate("Other", "other@example.com", "ALICE_CF"))
    client.fetch_user_info.assert_not_called()


def test_create_student_rejects_unknown_handle(tmp_path: Path) -> None:
    service, client, orchestrator = create_service(tmp_path)
    client.fetch_user_info.return_value = None

    with pytest.raises(InvalidHandleError):
        service.create_student(StudentCreate("Ghost", "ghost@example.com", "nobody_xyz"))

    assert service.list_students() == []
    orchestrator.sync_student.assert_not_called()


def test_create_student_survives_codeforces_outage(tmp_path: Path) -> None:
    service, client, orchestrator = create_service(tmp_path)
    client.fetch_user_info.side_effect = CodeforcesAPIError("Codeforces user.info failed after 4 attempts")
    orchestrator.sync_student.side_effect = CodeforcesAPIError("still down")

    student = service.create_student(StudentCreate("Alice", "alice@example.com", "alice_cf"))

    assert student.id is not None
    assert student.current_rating == 0
    assert student.last_synced_at is None


def test_create_student_validation() -> None:
    with pytest.raises(ValueError):
        StudentCreate(" ", "alice@example.com", "alice_cf")
    with pytest.raises(ValueError):
        StudentCreate("Alice", "not-an-email", "alice_cf")
    with pytest.raises(ValueError):
        StudentCreate("Alice", "alice@example.com", "a b")
    with pytest.raises(ValueError):
        StudentUpdate(handle="x")


def test_handle_change_clears_data_and_resyncs(tmp_path: Path) -> None:
    service, client, orchestrator = create_service(tmp_path)
    student = service.create_student(StudentCreate("Alice", "alice@example.com", "alice_cf"), sync_now=False)
    store_aggregate(service, student.id, "alice_cf")

    updated = service.update_student(student.id, StudentUpdate(handle="Alice_New"))

    assert updated.handle == "alice_new"
    assert get_aggregate_record(student.id, service.db_path) is None
    client.fetch_user_info.assert_called_with("alice_new")
    orchestrator.sync_student.assert_called_once_with(student.id, "alice_new")


def test_update_without_handle_change_keeps_data(tmp_path: Path) -> None:
    service, client, orchestrator = create_service(tmp_path)
    student = service.create_student(StudentCreate("Alice", "alice@example.com", "alice_cf"), sync_now=False)
    store_aggregate(service, student.id, "alice_cf")
    client.fetch_user_info.reset_mock()

    updated = service.update_student(student.id, StudentUpdate(name="Alice Smith", handle="ALICE_CF"))

    assert updated.name == "Alice Smith"
    assert get_aggregate_record(student.id, service.db_path) is not None
    client.fetch_user_info.assert_not_called()
    orchestrator.sync_student.assert_not_called()


def test_update_to_unknown_handle_changes_nothing(tmp_path: Path) -> None:
    service, client, _ = create_service(tmp_path)
    student = service.create_student(StudentCreate("Alice", "alice@example.com", "alice_cf"), sync_now=False)
    client.fetch_user_info.return_value = None

    with pytest.raises(InvalidHandleError):
        service.update_student(student.id, StudentUpdate(name="Renamed", handle="nobody_xyz"))

    assert service.get_student(student.id).name == "Alice"


def test_delete_and_profile(tmp_path: Path) -> None:
    service, _, orchestrator = create_service(tmp_path)
    student = service.create_student(StudentCreate("Alice", "alice@example.com", "alice_cf"), sync_now=False)

    profile_student, record = service.get_profile(student.id)
    assert profile_student == student
    assert record is None

    store_aggregate(service, student.id, "alice_cf")
    assert service.get_profile(student.id)[1] is not None

    service.delete_student(student.id)
    orchestrator.forget_student.assert_called_once_with(student.id)
    with pytest.raises(StudentNotFoundError):
        service.get_profile(student.id)


def test_reminder_toggle_and_email_history(tmp_path: Path) -> None:
    service, _, _ = create_service(tmp_path)
    student = service.create_student(StudentCreate("Alice", "alice@example.com", "alice_cf"), sync_now=False)

    assert not service.set_reminders_enabled(student.id, False).reminders.enabled
    assert service.set_reminders_enabled(student.id, True).reminders.enabled
    assert service.get_email_history(student.id) == []

    with pytest.raises(StudentNotFoundError):
        service.get_email_history(9999)


def test_refresh_student_propagates_errors(tmp_path: Path) -> None:
    service, _, orchestrator = create_service(tmp_path)
    student = service.create_student(StudentCreate("Alice", "alice@example.com", "alice_cf"), sync_now=False)
    orchestrator.sync_student.side_effect = StudentSyncError("No user info found for handle alice_cf")

    with pytest.raises(StudentSyncError):
        service.refresh_student(student.id)
    orchestrator.sync_student.assert_called_once_with(student.id, "alice_cf")
