"""Roster management: adding, editing and removing tracked students."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from ..codeforces.client import CodeforcesAPIError, CodeforcesClient
from ..database import operations as db
from ..database.models import AggregateRecord, EmailAuditRecord, Student
from ..database.operations import DATABASE_PATH, DuplicateStudentError
from ..jobs.data_sync import SyncOrchestrator
from ..utils.validation_utils import (
    normalize_email,
    normalize_handle,
    validate_email,
    validate_handle_format,
)


class InvalidHandleError(Exception):
    """Raised when a Codeforces handle does not exist."""
    pass


@dataclass(frozen=True)
class StudentCreate:
    name: str
    email: str
    handle: str
    phone_number: Optional[str] = None
    notes: str = ""

    def __post_init__(self) -> None:
        if not self.name.strip():
            raise ValueError("Name cannot be empty")
        if not validate_email(self.email.strip()):
            raise ValueError(f"Invalid email address: {self.email}")
        if not validate_handle_format(self.handle):
            raise ValueError(f"Invalid Codeforces handle format: {self.handle}")


@dataclass(frozen=True)
class StudentUpdate:
    """Partial update; None leaves a field unchanged."""
    name: Optional[str] = None
    email: Optional[str] = None
    handle: Optional[str] = None
    phone_number: Optional[str] = None
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        if self.name is not None and not self.name.strip():
            raise ValueError("Name cannot be empty")
        if self.email is not None and not validate_email(self.email.strip()):
            raise ValueError(f"Invalid email address: {self.email}")
        if self.handle is not None and not validate_handle_format(self.handle):
            raise ValueError(f"Invalid Codeforces handle format: {self.handle}")


class StudentService:
    """Keeps student rows and their Codeforces data consistent."""

    def __init__(
        self,
        client: CodeforcesClient,
        orchestrator: SyncOrchestrator,
        db_path: Path = DATABASE_PATH,
    ) -> None:
        self.client: CodeforcesClient = client
        self.orchestrator: SyncOrchestrator = orchestrator
        self.db_path: Path = db_path

    def create_student(self, data: StudentCreate, sync_now: bool = True) -> Student:
        """Register a student after checking the handle exists on Codeforces.

        If Codeforces is unreachable the student is still created, with a
        zero rating snapshot until the next sync.

        Raises:
            DuplicateStudentError: If the email or handle is already registered.
            InvalidHandleError: If Codeforces reports the handle does not exist.
        """
        handle: str = normalize_handle(data.handle)
        email: str = normalize_email(data.email)

        if db.get_student_by_handle(handle, self.db_path) is not None:
            raise DuplicateStudentError(f"A student with handle {handle} already exists")

        info: Optional[Dict[str, Any]] = self._lookup_handle(handle)
        current_rating: int = int(info.get("rating") or 0) if info else 0
        max_rating: int = int(info.get("maxRating") or current_rating) if info else 0

        student: Student = db.create_student(
            name=data.name,
            email=email,
            handle=handle,
            phone_number=data.phone_number,
            notes=data.notes,
            current_rating=current_rating,
            max_rating=max_rating,
            db_path=self.db_path,
        )

        if sync_now:
            self._sync_quietly(student)
            student = db.get_student(student.id, self.db_path)
        return student

    def update_student(self, student_id: int, data: StudentUpdate) -> Student:
        """Update a student; a changed handle drops old data and triggers a resync.

        Raises:
            StudentNotFoundError: If the student does not exist.
            InvalidHandleError: If a new handle does not exist on Codeforces.
            DuplicateStudentError: If the new email or handle is taken.
        """
        current: Student = db.get_student(student_id, self.db_path)
        fields: Dict[str, Any] = {}

        if data.name is not None:
            fields["name"] = data.name.strip()
        if data.email is not None:
            fields["email"] = normalize_email(data.email)
        if data.phone_number is not None:
            fields["phone_number"] = data.phone_number
        if data.notes is not None:
            fields["notes"] = data.notes

        handle_changed: bool = False
        if data.handle is not None and normalize_handle(data.handle) != current.handle:
            new_handle: str = normalize_handle(data.handle)
            self._lookup_handle(new_handle)
            fields["handle"] = new_handle
            handle_changed = True

        updated: Student = db.update_student(student_id, db_path=self.db_path, **fields)

        if handle_changed:
            logger.info(f"Handle of student {student_id} changed from {current.handle} to {updated.handle}")
            db.clear_student_sync(student_id, self.db_path)
            self._sync_quietly(updated)
            updated = db.get_student(student_id, self.db_path)
        return updated

    def delete_student(self, student_id: int) -> None:
        db.delete_student(student_id, self.db_path)
        self.orchestrator.forget_student(student_id)

    def get_student(self, student_id: int) -> Student:
        return db.get_student(student_id, self.db_path)

    def get_profile(self, student_id: int) -> Tuple[Student, Optional[AggregateRecord]]:
        """Return a student together with its stored Codeforces data, if any."""
        student: Student = db.get_student(student_id, self.db_path)
        return student, db.get_aggregate_record(student_id, self.db_path)

    def list_students(
        self,
        name: Optional[str] = None,
        handle: Optional[str] = None,
        inactive_only: bool = False,
    ) -> List[Student]:
        return db.list_students(name=name, handle=handle, inactive_only=inactive_only, db_path=self.db_path)

    def set_reminders_enabled(self, student_id: int, enabled: bool) -> Student:
        student: Student = db.set_reminders_enabled(student_id, enabled, self.db_path)
        logger.info(f"Email reminders {'enabled' if enabled else 'disabled'} for {student.name}")
        return student

    def refresh_student(self, student_id: int) -> AggregateRecord:
        """Sync one student now. Errors propagate to the caller."""
        student: Student = db.get_student(student_id, self.db_path)
        return self.orchestrator.sync_student(student.id, student.handle)

    def get_email_history(self, student_id: int, limit: Optional[int] = None) -> List[EmailAuditRecord]:
        db.get_student(student_id, self.db_path)
        return db.list_email_logs(student_id=student_id, limit=limit, db_path=self.db_path)

    def _lookup_handle(self, handle: str) -> Optional[Dict[str, Any]]:
        try:
            info: Optional[Dict[str, Any]] = self.client.fetch_user_info(handle)
        except CodeforcesAPIError as e:
            logger.warning(f"Could not verify handle {handle}, Codeforces unavailable: {e}")
            return None

        if info is None:
            raise InvalidHandleError(f"Codeforces handle not found: {handle}")
        return info

    def _sync_quietly(self, student: Student) -> None:
        try:
            self.orchestrator.sync_student(student.id, student.handle)
        except Exception as e:
            logger.warning(f"Initial sync for {student.handle} failed, will retry on next scheduled sync: {e}")
