"""Tests for the Codeforces sync orchestrator."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import Mock

import pytest
from loguru import logger

from cf_tracker.codeforces.client import CodeforcesAPIError
from cf_tracker.database.models import InactivityStatus
from cf_tracker.database.operations import (
    create_student,
    delete_student,
    get_aggregate_record,
    get_student,
    initialize_database,
    update_student_sync_snapshot,
)
from cf_tracker.jobs.data_sync import StudentLockRegistry, StudentSyncError, SyncOrchestrator

# Configure loguru for testing
logger.remove()
logger.add("test_data_sync.log", level="DEBUG")


def raw_submission(submission_id: int, submitted_at: datetime, index: str = "A") -> Dict[str, Any]:
    return {
        "id": submission_id,
        "creationTimeSeconds": int(submitted_at.timestamp()),
        "verdict": "OK",
        "programmingLanguage": "GNU C++17",
        "problem": {"contestId": 100, "index": index, "name": f"Problem {index}", "rating": 1100},
    }


class FakeClient:
    """Stands in for CodeforcesClient; per-handle data, optional failing handles."""

    def __init__(
        self,
        submissions: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        failing: tuple[str, ...] = (),
    ) -> None:
        self.submissions: Dict[str, List[Dict[str, Any]]] = submissions or {}
        self.failing: tuple[str, ...] = failing
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def fetch_user_info(self, handle: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            self.calls.append(handle)
        if handle in self.failing:
            raise CodeforcesAPIError("Codeforces user.info failed after 4 attempts")
        if handle == "ghost":
            return None
        return {"handle": handle, "rating": 1500, "maxRating": 1700, "rank": "specialist"}

    def fetch_submissions(self, handle: str) -> List[Dict[str, Any]]:
        return list(self.submissions.get(handle, []))

    def fetch_contests(self, handle: str) -> List[Dict[str, Any]]:
        return [{
            "contestId": 100, "contestName": "Round 100", "rank": 42, "oldRating": 1450,
            "newRating": 1500, "ratingUpdateTimeSeconds": 1700000000,
        }]


def create_test_database(tmp_path: Path) -> Path:
    db_path: Path = tmp_path / "tracker.db"
    initialize_database(db_path)
    return db_path


def add_students(db_path: Path, count: int) -> List[int]:
    return [
        create_student(f"Student {n}", f"student{n}@example.com", f"handle_{n}", db_path=db_path).id
        for n in range(count)
    ]


def test_sync_student_stores_record_and_snapshot(tmp_path: Path) -> None:
    db_path = create_test_database(tmp_path)
    [student_id] = add_students(db_path, 1)
    now = datetime.now(timezone.utc)
    client = FakeClient({"handle_0": [
        raw_submission(2, now - timedelta(days=1), "B"),
        raw_submission(1, now - timedelta(days=2), "A"),
    ]})
    orchestrator = SyncOrchestrator(client, db_path=db_path, sleep=lambda _: None)

    record = orchestrator.sync_student(student_id, "handle_0", now=now)

    assert record.statistics.total_solved == 2
    assert record.user_info["rank"] == "specialist"
    assert get_aggregate_record(student_id, db_path) == record

    student = get_student(student_id, db_path)
    assert student.current_rating == 1500
    assert student.max_rating == 1700
    assert student.last_synced_at == now
    assert not student.inactivity.is_inactive


def test_sync_flips_inactive_student_back_to_active(tmp_path: Path) -> None:
    db_path = create_test_database(tmp_path)
    [student_id] = add_students(db_path, 1)
    now = datetime.now(timezone.utc)
    update_student_sync_snapshot(
        student_id, 1400, 1400, now - timedelta(days=1),
        InactivityStatus(True, now - timedelta(days=10)), db_path,
    )
    client = FakeClient({"handle_0": [raw_submission(1, now - timedelta(hours=1))]})

    SyncOrchestrator(client, db_path=db_path).sync_student(student_id, "handle_0", now=now)

    assert get_student(student_id, db_path).inactivity == InactivityStatus(False, None)


def test_sync_marks_student_without_recent_submissions_inactive(tmp_path: Path) -> None:
    db_path = create_test_database(tmp_path)
    [student_id] = add_students(db_path, 1)
    now = datetime.now(timezone.utc)
    client = FakeClient({"handle_0": [raw_submission(1, now - timedelta(days=10))]})
    orchestrator = SyncOrchestrator(client, db_path=db_path)

    orchestrator.sync_student(student_id, "handle_0", now=now)
    assert get_student(student_id, db_path).inactivity == InactivityStatus(True, now)

    orchestrator.sync_student(student_id, "handle_0", now=now, threshold_days=14)
    assert not get_student(student_id, db_path).inactivity.is_inactive


def test_sync_student_without_user_info_fails(tmp_path: Path) -> None:
    db_path = create_test_database(tmp_path)
    student_id = create_student("Ghost", "ghost@example.com", "ghost", db_path=db_path).id

    with pytest.raises(StudentSyncError):
        SyncOrchestrator(FakeClient(), db_path=db_path).sync_student(student_id, "ghost")

    assert get_aggregate_record(student_id, db_path) is None


def test_sync_all_batches_and_isolates_failures(tmp_path: Path) -> None:
    db_path = create_test_database(tmp_path)
    student_ids = add_students(db_path, 7)
    sleep = Mock()
    client = FakeClient(failing=("handle_3",))
    orchestrator = SyncOrchestrator(client, db_path=db_path, batch_delay_seconds=5.0, sleep=sleep)

    result = orchestrator.sync_all(batch_size=3)

    assert result.batches == 3
    assert result.processed == 7
    assert result.succeeded == 6
    assert result.failed == 1
    assert result.message == "Synced data for 7 students (6 succeeded, 1 failed)"
    assert sleep.call_count == 2
    sleep.assert_called_with(5.0)
    assert sorted(client.calls) == sorted(f"handle_{n}" for n in range(7))

    synced = [sid for sid in student_ids if get_aggregate_record(sid, db_path) is not None]
    assert len(synced) == 6
    assert get_student(student_ids[3], db_path).last_synced_at is None


def test_sync_all_with_no_students(tmp_path: Path) -> None:
    db_path = create_test_database(tmp_path)
    sleep = Mock()

    result = SyncOrchestrator(FakeClient(), db_path=db_path, sleep=sleep).sync_all(batch_size=50)

    assert result.processed == 0
    assert result.batches == 0
    sleep.assert_not_called()


def test_sync_all_rejects_bad_batch_size(tmp_path: Path) -> None:
    db_path = create_test_database(tmp_path)
    with pytest.raises(ValueError):
        SyncOrchestrator(FakeClient(), db_path=db_path).sync_all(batch_size=0)


def test_student_lock_registry() -> None:
    locks = StudentLockRegistry()

    with locks.hold(1):
        with locks.hold(2):
            pass
        assert locks.tracked_students() == [1, 2]
        assert not locks.discard(1)
        assert locks.discard(2)
        assert locks.tracked_students() == [1]

    assert locks.discard(1)
    assert locks.discard(99)
    assert locks.tracked_students() == []


def test_sync_all_prunes_locks_of_deleted_students(tmp_path: Path) -> None:
    db_path = create_test_database(tmp_path)
    first, second = add_students(db_path, 2)
    orchestrator = SyncOrchestrator(FakeClient(), db_path=db_path, sleep=lambda _: None)

    orchestrator.sync_all(batch_size=10)
    assert orchestrator.locks.tracked_students() == sorted([first, second])

    delete_student(second, db_path)
    orchestrator.sync_all(batch_size=10)
    assert orchestrator.locks.tracked_students() == [first]

    orchestrator.forget_student(first)
    assert orchestrator.locks.tracked_students() == []


def test_sync_waits_for_held_student_lock(tmp_path: Path) -> None:
    db_path = create_test_database(tmp_path)
    [student_id] = add_students(db_path, 1)
    locks = StudentLockRegistry()
    orchestrator = SyncOrchestrator(FakeClient(), db_path=db_path, lock_registry=locks)
    finished = threading.Event()

    def run_sync() -> None:
        orchestrator.sync_student(student_id, "handle_0")
        finished.set()

    with locks.hold(student_id):
        worker = threading.Thread(target=run_sync)
        worker.start()
        assert not finished.wait(timeout=0.2)

    worker.join(timeout=5)
    assert finished.is_set()
