"""Inactivity reminder emails."""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional

from loguru import logger

from ..config.logging_config import LoggedOperation, StructuredLogger
from ..database.models import (
    EmailAuditRecord,
    EmailStatus,
    EmailType,
    InactivityContext,
    JobConfig,
    Student,
)
from ..database.operations import (
    DATABASE_PATH,
    count_email_logs,
    count_students_emailed,
    count_students_with_reminders_disabled,
    daily_email_counts,
    get_student,
    has_recent_email,
    insert_email_log,
    list_inactive_students,
    record_reminder_sent,
)
from ..email.service import EmailError, EmailService
from ..email.templates import DEFAULT_TEMPLATE, ReminderContext, ReminderTemplateManager
from ..utils.date_utils import days_since, utc_now


TEST_SUBJECT_PREFIX: str = "[TEST] "
TEST_REMINDER_DAYS: int = 7


@dataclass(frozen=True)
class ReminderConfig:
    """Options of one reminder run."""
    template: str = DEFAULT_TEMPLATE
    subject: str = "Reminder: Get back to problem solving!"
    inactivity_threshold_days: int = 7
    cooldown_days: int = 3
    max_reminder_count: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.subject.strip():
            raise ValueError("Reminder subject cannot be empty")
        if self.cooldown_days < 0:
            raise ValueError("Cooldown cannot be negative")
        if self.max_reminder_count is not None and self.max_reminder_count < 0:
            raise ValueError("Max reminder count cannot be negative")

    @classmethod
    def from_job_config(cls, config: JobConfig) -> ReminderConfig:
        return cls(
            template=config.reminder_template,
            subject=config.reminder_subject,
            inactivity_threshold_days=config.inactivity_threshold_days,
            cooldown_days=config.reminder_cooldown_days,
            max_reminder_count=config.max_reminder_count,
        )


@dataclass(frozen=True)
class ReminderResult:
    total: int
    sent: int
    skipped: int
    errors: int
    duration_ms: int

    @property
    def message(self) -> str:
        return f"Sent {self.sent} reminders ({self.skipped} skipped, {self.errors} errors)"


@dataclass(frozen=True)
class ReminderStatistics:
    total_reminders: int
    recent_reminders: int
    unique_students_reminded: int
    opted_out_students: int
    daily_counts: List[tuple[str, int]]


class ReminderDispatcher:
    """Emails inactive students and keeps the audit log."""

    def __init__(
        self,
        email_service: Optional[EmailService],
        template_manager: ReminderTemplateManager,
        db_path: Path = DATABASE_PATH,
        client_url: str = "http://localhost:3000",
        structured_logger: Optional[StructuredLogger] = None,
    ) -> None:
        self.email_service: Optional[EmailService] = email_service
        self.template_manager: ReminderTemplateManager = template_manager
        self.db_path: Path = db_path
        self.client_url: str = client_url
        self.structured_logger: Optional[StructuredLogger] = structured_logger

    def send_reminders(self, config: ReminderConfig, now: Optional[datetime] = None) -> ReminderResult:
        """Send a reminder to every eligible inactive student.

        A student is skipped when reminders are disabled, the reminder cap is
        reached, or a reminder was sent within the cooldown window. Render and
        send failures are counted as errors and do not stop the run.

        Args:
            config: Template, subject and eligibility options.
            now: Reference time. Defaults to the current time.

        Returns:
            ReminderResult with sent, skipped and error counts.

        Raises:
            EmailError: If no email service is configured.
            DatabaseError: If the inactive students cannot be loaded.
        """
        if self.email_service is None:
            raise EmailError("Email service is not configured (set EMAIL_USER and EMAIL_PASS)")

        start: float = time.monotonic()
        moment: datetime = now or utc_now()
        cooldown_start: datetime = moment - timedelta(days=config.cooldown_days)

        sent: int = 0
        skipped: int = 0
        errors: int = 0

        with LoggedOperation(self.structured_logger, "email_reminders", template=config.template):
            students: List[Student] = list_inactive_students(self.db_path)
            logger.info(f"Found {len(students)} inactive students")

            for student in students:
                try:
                    if not student.reminders.enabled:
                        logger.debug(f"Skipping reminder for {student.name}: reminders disabled")
                        skipped += 1
                        continue

                    if (
                        config.max_reminder_count is not None
                        and student.reminders.count >= config.max_reminder_count
                    ):
                        logger.debug(f"Skipping reminder for {student.name}: reminder limit reached")
                        skipped += 1
                        continue

                    if has_recent_email(student.id, EmailType.INACTIVITY_REMINDER, cooldown_start, self.db_path):
                        logger.debug(f"Skipping reminder for {student.name}: recent reminder already sent")
                        skipped += 1
                        continue

                    inactive_since: Optional[datetime] = student.inactivity.inactive_since
                    days: int = (
                        days_since(inactive_since, moment)
                        if inactive_since is not None
                        else config.inactivity_threshold_days
                    )

                    self._deliver(student, days, config.template, config.subject, moment)
                    sent += 1

                except Exception as e:
                    errors += 1
                    logger.error(f"Failed to send reminder to {student.name} ({student.email}): {e}")
                    if self.structured_logger is not None:
                        self.structured_logger.log_email_operation(
                            "inactivity_reminder", student.email, False, error=str(e)
                        )

        result = ReminderResult(
            total=len(students),
            sent=sent,
            skipped=skipped,
            errors=errors,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        logger.info(f"Email reminder job completed in {result.duration_ms}ms: {result.message}")
        return result

    def send_test_reminder(self, student_id: int, now: Optional[datetime] = None) -> EmailAuditRecord:
        """Send a ``[TEST]`` reminder to one student regardless of inactivity.

        The audit record is stored as type ``other`` and the student's reminder
        counter is left unchanged, so cooldowns are unaffected.

        Raises:
            StudentNotFoundError: If the student does not exist.
            EmailError: If sending fails or no email service is configured.
        """
        if self.email_service is None:
            raise EmailError("Email service is not configured (set EMAIL_USER and EMAIL_PASS)")

        student: Student = get_student(student_id, self.db_path)
        record: EmailAuditRecord = self._deliver(
            student,
            TEST_REMINDER_DAYS,
            DEFAULT_TEMPLATE,
            f"{TEST_SUBJECT_PREFIX}Reminder: Get back to problem solving!",
            now or utc_now(),
            email_type=EmailType.OTHER,
        )
        logger.info(f"Sent test reminder to {student.name} ({student.email})")
        return record

    def get_reminder_statistics(self, now: Optional[datetime] = None) -> ReminderStatistics:
        """Summarize reminders sent so far, with daily counts for the last 30 days."""
        since: datetime = (now or utc_now()) - timedelta(days=30)
        return ReminderStatistics(
            total_reminders=count_email_logs(EmailType.INACTIVITY_REMINDER, db_path=self.db_path),
            recent_reminders=count_email_logs(EmailType.INACTIVITY_REMINDER, since, self.db_path),
            unique_students_reminded=count_students_emailed(EmailType.INACTIVITY_REMINDER, self.db_path),
            opted_out_students=count_students_with_reminders_disabled(self.db_path),
            daily_counts=daily_email_counts(EmailType.INACTIVITY_REMINDER, since, self.db_path),
        )

    def _deliver(
        self,
        student: Student,
        days: int,
        template: str,
        subject: str,
        now: datetime,
        email_type: EmailType = EmailType.INACTIVITY_REMINDER,
    ) -> EmailAuditRecord:
        """Render, send and audit one reminder. Nothing is recorded if sending fails."""
        if self.email_service is None:
            raise EmailError("Email service is not configured")
        reminder_number: int = student.reminders.count + 1
        context = ReminderContext(
            student=student,
            days=days,
            reminder_number=reminder_number,
            subject=subject,
            send_timestamp=now,
            client_url=self.client_url,
        )

        html_content: str = self.template_manager.render(template, context, "html")
        text_content: str = self.template_manager.render(template, context, "text")

        self.email_service.send_email(student.email, subject, text_content, html_content)

        record = EmailAuditRecord(
            id=None,
            student_id=student.id,
            recipient_email=student.email,
            email_type=email_type,
            subject=subject,
            content=html_content,
            template=template,
            status=EmailStatus.SENT,
            sent_at=now,
            inactivity=InactivityContext(
                days_inactive=days,
                reminder_number=reminder_number,
                last_synced_at=student.last_synced_at,
            ),
        )
        log_id: int = insert_email_log(record, self.db_path)

        if email_type is EmailType.INACTIVITY_REMINDER:
            record_reminder_sent(student.id, now, self.db_path)

        if self.structured_logger is not None:
            self.structured_logger.log_email_operation(
                email_type.value, student.email, True, reminder_number=reminder_number
            )
        logger.info(f"Sent {email_type.value} email to {student.name} ({student.email})")

        return replace(record, id=log_id)
