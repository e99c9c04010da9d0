"""Tests for reminder templates, SMTP delivery and the reminder job."""

from __future__ import annotations

import smtplib
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional
from unittest.mock import MagicMock, Mock, patch

import pytest
from loguru import logger

from cf_tracker.config.settings import SmtpSettings
from cf_tracker.database.models import (
    EmailAuditRecord,
    EmailStatus,
    EmailType,
    InactivityContext,
    InactivityStatus,
    Student,
)
from cf_tracker.database.operations import (
    create_student,
    get_student,
    initialize_database,
    insert_email_log,
    list_email_logs,
    set_reminders_enabled,
    update_student_inactivity,
)
from cf_tracker.email.service import AuthenticationError, EmailConfig, EmailError, EmailService
from cf_tracker.email.templates import (
    ReminderContext,
    ReminderTemplateManager,
    SimpleTemplateEngine,
    TemplateNotFoundError,
)
from cf_tracker.jobs.email_reminder import ReminderConfig, ReminderDispatcher

# Configure loguru for testing
logger.remove()
logger.add("test_email_system.log", level="DEBUG")

NOW: datetime = datetime(2024, 6, 1, 10, 0, tzinfo=timezone.utc)


def make_student(**overrides: object) -> Student:
    values = dict(id=7, name="Alice", email="alice@example.com", handle="alice_cf",
                  current_rating=1350, max_rating=1420)
    values.update(overrides)
    return Student(**values)


def make_email_config(use_ssl: bool = False) -> EmailConfig:
    return EmailConfig(
        smtp_server="smtp.example.com",
        smtp_port=465 if use_ssl else 587,
        username="tracker@example.com",
        password="app-password",
        from_email="tracker@example.com",
        from_name="Student Progress Tracker",
        use_ssl=use_ssl,
    )


def test_template_engine_substitutes_and_keeps_unknown() -> None:
    engine = SimpleTemplateEngine()

    rendered = engine.render("Hi {{name}}, {{ stats.solved }} solved. {{missing}}",
                             {"name": "Alice", "stats": {"solved": 12}})

    assert rendered == "Hi Alice, 12 solved. {{ missing }}"


def test_builtin_reminder_renders_student_details() -> None:
    manager = ReminderTemplateManager()
    context = ReminderContext(
        student=make_student(),
        days=9,
        reminder_number=2,
        subject="Reminder: Get back to problem solving!",
        send_timestamp=NOW,
        client_url="https://tracker.example.com/",
    )

    html = manager.render("inactivity_reminder", context, "html")
    text = manager.render("default", context, "text")

    assert "Hello Alice" in html
    assert "<strong>9 days</strong>" in html
    assert "https://tracker.example.com/unsubscribe?id=7" in html
    assert "reminder #2" in html
    assert text.startswith("Hi Alice,\n\nWe noticed you haven't solved any Codeforces problems in the last 9 days.")
    assert "1350" in text and "1420" in text
    assert "{{" not in html and "{{" not in text


def test_unknown_template_and_format() -> None:
    manager = ReminderTemplateManager()
    context = ReminderContext(make_student(), 7, 1, "Subject", NOW)

    with pytest.raises(TemplateNotFoundError):
        manager.render("welcome_back", context)
    with pytest.raises(ValueError):
        manager.render("inactivity_reminder", context, "pdf")


def test_custom_templates_override_builtin(tmp_path: Path) -> None:
    (tmp_path / "inactivity_reminder.html").write_text("<p>Custom {{handle}} {{days}}</p>", encoding="utf-8")
    (tmp_path / "gentle.html").write_text("<p>Gentle {{name}}</p>", encoding="utf-8")
    (tmp_path / "gentle.text").write_text("Gentle {{name}}", encoding="utf-8")
    manager = ReminderTemplateManager(tmp_path)
    context = ReminderContext(make_student(), 8, 1, "Subject", NOW)

    assert manager.render("inactivity_reminder", context, "html") == "<p>Custom alice_cf 8</p>"
    assert manager.render("inactivity_reminder", context, "text").startswith("Hi Alice,")
    assert manager.render("gentle", context, "text") == "Gentle Alice"
    assert manager.available_templates() == ["gentle", "inactivity_reminder"]


def test_create_custom_template_files(tmp_path: Path) -> None:
    target = tmp_path / "templates"
    ReminderTemplateManager().create_custom_template_files(target)

    assert (target / "inactivity_reminder.html").exists()
    assert "{{unsubscribe_link}}" in (target / "inactivity_reminder.text").read_text(encoding="utf-8")


def test_email_config_validation() -> None:
    with pytest.raises(ValueError):
        EmailConfig("", 587, "user", "pass", "a@example.com", "Tracker")
    with pytest.raises(ValueError):
        EmailConfig("smtp.example.com", 70000, "user", "pass", "a@example.com", "Tracker")
    with pytest.raises(ValueError):
        EmailConfig.from_settings(SmtpSettings())

    config = EmailConfig.from_settings(SmtpSettings(username="u@example.com", password="secret", use_ssl=True))
    assert config.use_ssl
    assert config.smtp_server == "smtp.gmail.com"


def test_send_email_uses_starttls() -> None:
    with patch("cf_tracker.email.service.smtplib.SMTP") as smtp_class:
        server = smtp_class.return_value
        EmailService(make_email_config()).send_email(
            "alice@example.com", "Subject", "plain body", "<p>html body</p>"
        )

    server.starttls.assert_called_once()
    server.login.assert_called_once_with("tracker@example.com", "app-password")
    from_addr, to_addrs, message = server.sendmail.call_args.args
    assert from_addr == "tracker@example.com"
    assert to_addrs == ["alice@example.com"]
    assert "multipart/alternative" in message
    server.quit.assert_called_once()


def test_send_email_over_ssl() -> None:
    with patch("cf_tracker.email.service.smtplib.SMTP_SSL") as ssl_class, \
            patch("cf_tracker.email.service.smtplib.SMTP") as plain_class:
        EmailService(make_email_config(use_ssl=True)).send_email(
            "alice@example.com", "Subject", "plain", "<p>html</p>"
        )

    ssl_class.return_value.sendmail.assert_called_once()
    plain_class.assert_not_called()


def test_send_failure_closes_connection() -> None:
    with patch("cf_tracker.email.service.smtplib.SMTP") as smtp_class:
        server = smtp_class.return_value
        server.sendmail.side_effect = smtplib.SMTPRecipientsRefused({"alice@example.com": (550, b"no")})

        with pytest.raises(EmailError):
            EmailService(make_email_config()).send_email("alice@example.com", "S", "t", "<p>h</p>")

    server.quit.assert_called_once()


def test_authentication_failure() -> None:
    with patch("cf_tracker.email.service.smtplib.SMTP") as smtp_class:
        smtp_class.return_value.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
        service = EmailService(make_email_config())

        with pytest.raises(AuthenticationError):
            service.send_email("alice@example.com", "S", "t", "<p>h</p>")
        assert not service.test_connection()


def test_send_email_rejects_bad_input() -> None:
    service = EmailService(make_email_config())
    with pytest.raises(ValueError):
        service.send_email("not-an-address", "S", "t", "h")
    with pytest.raises(ValueError):
        service.send_email("alice@example.com", " ", "t", "h")


# ---------------------------------------------------------------------------
# Reminder job
# ---------------------------------------------------------------------------

def create_test_database(tmp_path: Path) -> Path:
    db_path: Path = tmp_path / "tracker.db"
    initialize_database(db_path)
    return db_path


def add_inactive_student(db_path: Path, handle: str, inactive_days: int = 10) -> Student:
    student = create_student(handle.title(), f"{handle}@example.com", handle, db_path=db_path)
    update_student_inactivity(
        student.id, InactivityStatus(True, NOW - timedelta(days=inactive_days)), db_path
    )
    return get_student(student.id, db_path)


def log_reminder(db_path: Path, student: Student, sent_at: datetime) -> None:
    insert_email_log(
        EmailAuditRecord(
            id=None,
            student_id=student.id,
            recipient_email=student.email,
            email_type=EmailType.INACTIVITY_REMINDER,
            subject="Reminder",
            content="<p>earlier</p>",
            template="inactivity_reminder",
            status=EmailStatus.SENT,
            sent_at=sent_at,
            inactivity=InactivityContext(days_inactive=5, reminder_number=1),
        ),
        db_path,
    )


def make_dispatcher(db_path: Path, email_service: Optional[Mock] = None) -> tuple[ReminderDispatcher, Mock]:
    service = email_service if email_service is not None else MagicMock(spec=EmailService)
    dispatcher = ReminderDispatcher(
        service, ReminderTemplateManager(), db_path=db_path, client_url="https://tracker.example.com"
    )
    return dispatcher, service


def test_cooldown_skips_recently_reminded_students(tmp_path: Path) -> None:
    db_path = create_test_database(tmp_path)
    recent = add_inactive_student(db_path, "recent")
    older = add_inactive_student(db_path, "older")
    log_reminder(db_path, recent, NOW - timedelta(days=1))
    log_reminder(db_path, older, NOW - timedelta(days=4))
    dispatcher, service = make_dispatcher(db_path)

    result = dispatcher.send_reminders(ReminderConfig(cooldown_days=3), now=NOW)

    assert result.total == 2
    assert result.sent == 1
    assert result.skipped == 1
    assert result.errors == 0
    assert service.send_email.call_args.args[0] == "older@example.com"


def test_reminder_is_audited_and_counted(tmp_path: Path) -> None:
    db_path = create_test_database(tmp_path)
    student = add_inactive_student(db_path, "alice_cf", inactive_days=9)
    dispatcher, service = make_dispatcher(db_path)

    dispatcher.send_reminders(ReminderConfig(subject="Time to practice"), now=NOW)

    to_email, subject, text_content, html_content = service.send_email.call_args.args
    assert subject == "Time to practice"
    assert "in the last 9 days" in text_content

    [log] = list_email_logs(student_id=student.id, db_path=db_path)
    assert log.email_type is EmailType.INACTIVITY_REMINDER
    assert log.status is EmailStatus.SENT
    assert log.content == html_content
    assert log.inactivity == InactivityContext(days_inactive=9, reminder_number=1)

    reminders = get_student(student.id, db_path).reminders
    assert reminders.count == 1
    assert reminders.last_sent_at == NOW


def test_opted_out_and_capped_students_are_skipped(tmp_path: Path) -> None:
    db_path = create_test_database(tmp_path)
    opted_out = add_inactive_student(db_path, "quiet")
    set_reminders_enabled(opted_out.id, False, db_path)
    add_inactive_student(db_path, "eager")
    dispatcher, service = make_dispatcher(db_path)

    first = dispatcher.send_reminders(ReminderConfig(cooldown_days=0, max_reminder_count=1), now=NOW)
    second = dispatcher.send_reminders(
        ReminderConfig(cooldown_days=0, max_reminder_count=1), now=NOW + timedelta(days=5)
    )

    assert (first.sent, first.skipped) == (1, 1)
    assert (second.sent, second.skipped) == (0, 2)
    assert service.send_email.call_count == 1


def test_send_failure_is_counted_not_logged(tmp_path: Path) -> None:
    db_path = create_test_database(tmp_path)
    student = add_inactive_student(db_path, "alice_cf")
    service = MagicMock(spec=EmailService)
    service.send_email.side_effect = EmailError("Email sending failed: 550")
    dispatcher, _ = make_dispatcher(db_path, service)

    result = dispatcher.send_reminders(ReminderConfig(), now=NOW)

    assert result.errors == 1
    assert result.sent == 0
    assert list_email_logs(student_id=student.id, db_path=db_path) == []
    assert get_student(student.id, db_path).reminders.count == 0


def test_active_students_get_no_reminder(tmp_path: Path) -> None:
    db_path = create_test_database(tmp_path)
    create_student("Bob", "bob@example.com", "bob_cf", db_path=db_path)
    dispatcher, service = make_dispatcher(db_path)

    result = dispatcher.send_reminders(ReminderConfig(), now=NOW)

    assert result.total == 0
    service.send_email.assert_not_called()


def test_reminders_require_email_service(tmp_path: Path) -> None:
    db_path = create_test_database(tmp_path)
    dispatcher = ReminderDispatcher(None, ReminderTemplateManager(), db_path=db_path)

    with pytest.raises(EmailError):
        dispatcher.send_reminders(ReminderConfig(), now=NOW)


def test_test_reminder_leaves_counter_alone(tmp_path: Path) -> None:
    db_path = create_test_database(tmp_path)
    student = create_student("Bob", "bob@example.com", "bob_cf", db_path=db_path)
    dispatcher, service = make_dispatcher(db_path)

    record = dispatcher.send_test_reminder(student.id, now=NOW)

    assert record.id is not None
    assert record.email_type is EmailType.OTHER
    assert record.subject.startswith("[TEST] ")
    assert service.send_email.call_args.args[1].startswith("[TEST] ")
    assert get_student(student.id, db_path).reminders.count == 0

    # test emails never count towards the reminder cooldown
    update_student_inactivity(student.id, InactivityStatus(True, NOW - timedelta(days=8)), db_path)
    assert dispatcher.send_reminders(ReminderConfig(), now=NOW).sent == 1


def test_reminder_statistics(tmp_path: Path) -> None:
    db_path = create_test_database(tmp_path)
    alice = add_inactive_student(db_path, "alice_cf")
    bob = add_inactive_student(db_path, "bob_cf")
    set_reminders_enabled(bob.id, False, db_path)
    log_reminder(db_path, alice, NOW - timedelta(days=40))
    log_reminder(db_path, alice, NOW - timedelta(days=2))
    log_reminder(db_path, bob, NOW - timedelta(days=1))
    dispatcher, _ = make_dispatcher(db_path)

    stats = dispatcher.get_reminder_statistics(now=NOW)

    assert stats.total_reminders == 3
    assert stats.recent_reminders == 2
    assert stats.unique_students_reminded == 2
    assert stats.opted_out_students == 1
    assert stats.daily_counts == [("2024-05-30", 1), ("2024-05-31", 1)]
