"""
Command Line Interface for the Codeforces Progress Tracker

Manage students, run jobs by hand and inspect the scheduler from a terminal.
"""

from __future__ import annotations

import json
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional

import typer
from rich import print as rich_print
from rich.console import Console
from rich.table import Table

from .analytics.aggregator import TRAILING_WINDOWS, build_submission_heatmap, filter_contests, summarize_period
from .codeforces.client import CodeforcesAPIError
from .config.settings import SettingsError
from .database.models import JobConfig, JobKind, Student
from .database.operations import DatabaseError, DuplicateStudentError, JobNotFoundError, StudentNotFoundError
from .email.service import EmailError
from .email.templates import TEMPLATE_ALIASES, TemplateError
from .jobs.email_reminder import ReminderConfig
from .main import TrackerApplication
from .scheduler.scheduler import JobUpdate, SchedulerError
from .students.service import InvalidHandleError, StudentCreate, StudentUpdate
from .utils.date_utils import days_since

# Initialize CLI app
app = typer.Typer(
    name="cf-tracker",
    help="Codeforces Progress Tracker - Sync student activity and nudge inactive students by email",
    add_completion=False,
    rich_markup_mode="rich",
)
student_app = typer.Typer(help="Manage tracked students", rich_markup_mode="rich")
jobs_app = typer.Typer(help="Inspect and control scheduled jobs", rich_markup_mode="rich")
stats_app = typer.Typer(help="Reporting commands", rich_markup_mode="rich")
app.add_typer(student_app, name="student")
app.add_typer(jobs_app, name="jobs")
app.add_typer(stats_app, name="stats")

# Initialize console for rich output
console = Console()

# Global state, set by the root callback
env_file: Optional[Path] = None
_application: Optional[TrackerApplication] = None

EXPECTED_ERRORS = (
    CodeforcesAPIError,
    DatabaseError,
    EmailError,
    InvalidHandleError,
    SchedulerError,
    TemplateError,
    ValueError,
)


def get_application() -> TrackerApplication:
    """Build the application once per invocation, with the schema in place."""
    global _application

    if _application is None:
        try:
            _application = TrackerApplication.from_environment(env_file)
            _application.initialize()
        except (SettingsError, DatabaseError) as e:
            rich_print(f"[red]Failed to load configuration: {e}[/red]")
            raise typer.Exit(1)
    return _application


def fail(message: str) -> NoReturn:
    rich_print(f"[red]{message}[/red]")
    raise typer.Exit(1)


def format_moment(moment: Optional[datetime]) -> str:
    return moment.strftime("%Y-%m-%d %H:%M") if moment else "Never"


def student_status(student: Student) -> str:
    if student.last_synced_at is None:
        return "[yellow]Not synced[/yellow]"
    if student.inactivity.is_inactive:
        return "[red]Inactive[/red]"
    return "[green]Active[/green]"


def require_template(application: TrackerApplication, template: Optional[str]) -> None:
    if template is None or template in TEMPLATE_ALIASES:
        return
    available: List[str] = application.template_manager.available_templates()
    if template not in available:
        fail(f"Unknown template '{template}'. Available: {', '.join(available)}")


@app.callback()
def root(
    env: Optional[Path] = typer.Option(None, "--env-file", "-e", help="Load settings from this .env file"),
) -> None:
    global env_file
    env_file = env


@app.command()
def init(
    templates: Optional[Path] = typer.Option(
        None, "--templates", "-t", help="Also write editable reminder templates to this directory"
    ),
) -> None:
    """Create the database and the default scheduled jobs."""
    application = get_application()
    rich_print(f"[green]Database ready at {application.settings.database_path}[/green]")

    if application.email_service is None:
        rich_print("[yellow]SMTP not configured; set EMAIL_USER and EMAIL_PASS to send reminders.[/yellow]")
    elif application.email_service.test_connection():
        rich_print("[green]SMTP connection verified[/green]")
    else:
        rich_print("[red]SMTP connection failed; check the EMAIL_* settings and the log.[/red]")

    if templates is not None:
        application.template_manager.create_custom_template_files(templates)
        rich_print(f"[green]Reminder templates written to {templates}[/green]")
        rich_print("[cyan]Set EMAIL_TEMPLATES_DIR to use them.[/cyan]")


@app.command()
def sync(
    batch_size: Optional[int] = typer.Option(None, "--batch-size", "-b", help="Students synced concurrently"),
) -> None:
    """Sync Codeforces data for every student now."""
    rich_print("\n[bold blue]Codeforces Sync[/bold blue]")
    application = get_application()
    config: JobConfig = application.scheduler.get_job(JobKind.CODEFORCES_SYNC).config

    try:
        result = application.orchestrator.sync_all(
            batch_size=batch_size or config.batch_size,
            threshold_days=config.inactivity_threshold_days,
        )
    except EXPECTED_ERRORS as e:
        fail(f"Sync failed: {e}")

    table = Table(title="Sync Results", show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Students", str(result.processed))
    table.add_row("Succeeded", str(result.succeeded))
    table.add_row("Failed", str(result.failed))
    table.add_row("Batches", str(result.batches))
    console.print(table)


@app.command("check-inactivity")
def check_inactivity(
    threshold: Optional[int] = typer.Option(None, "--threshold", "-t", help="Days without submissions"),
) -> None:
    """Re-evaluate every student's inactivity flag from stored data."""
    application = get_application()
    config: JobConfig = application.scheduler.get_job(JobKind.INACTIVITY_CHECK).config

    try:
        result = application.inactivity_checker.check_all(threshold or config.inactivity_threshold_days)
    except EXPECTED_ERRORS as e:
        fail(f"Inactivity check failed: {e}")

    rich_print(f"[green]{result.message}[/green]")


@app.command("send-reminders")
def send_reminders(
    template: Optional[str] = typer.Option(None, "--template", help="Template name"),
    subject: Optional[str] = typer.Option(None, "--subject", help="Email subject"),
) -> None:
    """Email every eligible inactive student now."""
    application = get_application()
    require_template(application, template)
    job_config: JobConfig = application.scheduler.get_job(JobKind.EMAIL_REMINDER).config

    try:
        config: ReminderConfig = replace(
            ReminderConfig.from_job_config(job_config),
            template=template or job_config.reminder_template,
            subject=subject or job_config.reminder_subject,
        )
        result = application.dispatcher.send_reminders(config)
    except EXPECTED_ERRORS as e:
        fail(f"Sending reminders failed: {e}")

    rich_print(f"[green]{result.message}[/green]")


@app.command("test-reminder")
def test_reminder(student_id: int = typer.Argument(..., help="Student ID")) -> None:
    """Send a [TEST] reminder to one student."""
    application = get_application()
    try:
        record = application.dispatcher.send_test_reminder(student_id)
    except StudentNotFoundError:
        fail(f"Student {student_id} not found")
    except EXPECTED_ERRORS as e:
        fail(f"Test reminder failed: {e}")

    rich_print(f"[green]Test reminder sent to {record.recipient_email}[/green]")


@app.command()
def run() -> None:
    """Run the scheduler in the foreground until interrupted."""
    rich_print("[bold blue]Starting scheduler...[/bold blue]")
    get_application().run_forever()
    rich_print("[green]Scheduler stopped.[/green]")


@app.command()
def health(
    as_json: bool = typer.Option(False, "--json", help="Print the raw report as JSON"),
) -> None:
    """Show resource usage and recent job health."""
    report: Dict[str, Any] = get_application().get_health_status()

    if as_json:
        console.print_json(json.dumps(report, default=str))
        return

    status = "[green]HEALTHY[/green]" if report.get("is_healthy") else "[red]UNHEALTHY[/red]"
    rich_print(f"\n[bold]System status:[/bold] {status}")

    metrics: Dict[str, Any] = report.get("system_metrics", {})
    if metrics:
        rich_print(f"  CPU: {metrics['cpu_percent']:.1f}%")
        rich_print(f"  Memory: {metrics['memory_percent']:.1f}%")
        rich_print(f"  Disk: {metrics['disk_usage_percent']:.1f}%")

    for warning in report.get("warnings", []):
        rich_print(f"[yellow]Warning: {warning}[/yellow]")
    for error in report.get("errors", []):
        rich_print(f"[red]Error: {error}[/red]")
    if "error" in report:
        rich_print(f"[red]Error: {report['error']}[/red]")


@student_app.command("add")
def student_add(
    name: str = typer.Option(..., "--name", "-n", help="Full name"),
    email: str = typer.Option(..., "--email", help="Email address"),
    handle: str = typer.Option(..., "--handle", "-h", help="Codeforces handle"),
    phone: Optional[str] = typer.Option(None, "--phone", help="Phone number"),
    notes: str = typer.Option("", "--notes", help="Free-form notes"),
    no_sync: bool = typer.Option(False, "--no-sync", help="Skip the initial Codeforces sync"),
) -> None:
    """Register a student and pull their Codeforces data."""
    application = get_application()
    try:
        student = application.students.create_student(
            StudentCreate(name=name, email=email, handle=handle, phone_number=phone, notes=notes),
            sync_now=not no_sync,
        )
    except DuplicateStudentError as e:
        fail(str(e))
    except EXPECTED_ERRORS as e:
        fail(f"Could not add student: {e}")

    rich_print(f"[green]Added {student.name} ({student.handle}) with ID {student.id}[/green]")


@student_app.command("list")
def student_list(
    name: Optional[str] = typer.Option(None, "--name", help="Filter by name"),
    handle: Optional[str] = typer.Option(None, "--handle", help="Filter by handle"),
    inactive: bool = typer.Option(False, "--inactive", help="Only inactive students"),
) -> None:
    """List tracked students."""
    students: List[Student] = get_application().students.list_students(name, handle, inactive)
    if not students:
        rich_print("[yellow]No students found.[/yellow]")
        return

    table = Table(title=f"Students ({len(students)})", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Handle", style="green")
    table.add_column("Rating", justify="right")
    table.add_column("Max", justify="right")
    table.add_column("Status")
    table.add_column("Reminders", justify="right")
    table.add_column("Last Synced")

    for student in students:
        table.add_row(
            str(student.id),
            student.name,
            student.handle,
            str(student.current_rating),
            str(student.max_rating),
            student_status(student),
            str(student.reminders.count) if student.reminders.enabled else "off",
            format_moment(student.last_synced_at),
        )
    console.print(table)


@student_app.command("show")
def student_show(
    student_id: int = typer.Argument(..., help="Student ID"),
    days: int = typer.Option(30, "--days", "-d", help="Trailing window for the problem summary"),
    contest_days: int = typer.Option(365, "--contest-days", help="Trailing window for contest history"),
) -> None:
    """Show a student's profile, problem summary and contest history."""
    if days not in TRAILING_WINDOWS:
        fail(f"--days must be one of {', '.join(str(d) for d in TRAILING_WINDOWS)}")

    try:
        student, record = get_application().students.get_profile(student_id)
    except StudentNotFoundError:
        fail(f"Student {student_id} not found")

    rich_print(f"\n[bold blue]{student.name}[/bold blue] ([green]{student.handle}[/green])")
    rich_print(f"  Email: {student.email}")
    if student.phone_number:
        rich_print(f"  Phone: {student.phone_number}")
    rich_print(f"  Rating: {student.current_rating} (max {student.max_rating})")
    rich_print(f"  Status: {student_status(student)}")
    if student.inactivity.inactive_since:
        rich_print(f"  Inactive for {days_since(student.inactivity.inactive_since)} days")
    rich_print(f"  Reminders: {'enabled' if student.reminders.enabled else 'disabled'}, "
               f"{student.reminders.count} sent, last {format_moment(student.reminders.last_sent_at)}")
    rich_print(f"  Last synced: {format_moment(student.last_synced_at)}")

    if record is None:
        rich_print("\n[yellow]No Codeforces data yet. Run 'cf-tracker student refresh'.[/yellow]")
        return

    summary = summarize_period(record.submissions, days)
    table = Table(title=f"Problems, last {days} days", show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Solved", str(summary.solved))
    table.add_row("Average per day", f"{summary.average_per_day:.2f}")
    table.add_row("Average rating", f"{summary.average_rating:.0f}")
    hardest = summary.hardest_problem
    table.add_row("Hardest", f"{hardest.problem_name} ({hardest.rating})" if hardest else "-")
    for bucket in summary.solved_by_rating:
        table.add_row(f"Rating {bucket.label}", str(bucket.count))
    table.add_row("Total solved (all time)", str(record.statistics.total_solved))
    console.print(table)

    contests = filter_contests(record.contests, contest_days)
    if contests:
        contest_table = Table(
            title=f"Contests, last {contest_days} days", show_header=True, header_style="bold magenta"
        )
        contest_table.add_column("Date")
        contest_table.add_column("Contest", style="cyan")
        contest_table.add_column("Rank", justify="right")
        contest_table.add_column("Rating", justify="right")
        contest_table.add_column("Change", justify="right")
        for contest in contests:
            change = f"[green]+{contest.rating_change}[/green]" if contest.rating_change >= 0 \
                else f"[red]{contest.rating_change}[/red]"
            contest_table.add_row(
                contest.date.strftime("%Y-%m-%d"),
                contest.contest_name,
                str(contest.rank) if contest.rank is not None else "-",
                str(contest.new_rating),
                change,
            )
        console.print(contest_table)


@student_app.command("heatmap")
def student_heatmap(
    student_id: int = typer.Argument(..., help="Student ID"),
    days: int = typer.Option(365, "--days", "-d", help="Trailing window in days"),
) -> None:
    """Show a student's submissions per day."""
    try:
        _, record = get_application().students.get_profile(student_id)
        heatmap = build_submission_heatmap(record.submissions if record else (), days)
    except StudentNotFoundError:
        fail(f"Student {student_id} not found")
    except ValueError as e:
        fail(str(e))

    if not heatmap:
        rich_print(f"[yellow]No submissions in the last {days} days.[/yellow]")
        return

    table = Table(title=f"Submissions, last {days} days", show_header=True, header_style="bold magenta")
    table.add_column("Date")
    table.add_column("Submissions", justify="right")
    table.add_column("Accepted", justify="right", style="green")
    for entry in heatmap:
        table.add_row(entry.day.isoformat(), str(entry.total), str(entry.accepted))
    console.print(table)
    rich_print(f"Active on {len(heatmap)} of the last {days} days")


@student_app.command("check-handle")
def student_check_handle(handle: str = typer.Argument(..., help="Codeforces handle")) -> None:
    """Check that a handle exists on Codeforces."""
    if get_application().client.validate_handle(handle):
        rich_print(f"[green]{handle} exists on Codeforces[/green]")
        return
    fail(f"{handle} was not found on Codeforces, or Codeforces is unreachable")


@student_app.command("update")
def student_update(
    student_id: int = typer.Argument(..., help="Student ID"),
    name: Optional[str] = typer.Option(None, "--name", "-n"),
    email: Optional[str] = typer.Option(None, "--email"),
    handle: Optional[str] = typer.Option(None, "--handle", "-h", help="New handle; triggers a resync"),
    phone: Optional[str] = typer.Option(None, "--phone"),
    notes: Optional[str] = typer.Option(None, "--notes"),
) -> None:
    """Edit a student."""
    application = get_application()
    try:
        student = application.students.update_student(
            student_id,
            StudentUpdate(name=name, email=email, handle=handle, phone_number=phone, notes=notes),
        )
    except StudentNotFoundError:
        fail(f"Student {student_id} not found")
    except DuplicateStudentError as e:
        fail(str(e))
    except EXPECTED_ERRORS as e:
        fail(f"Could not update student: {e}")

    rich_print(f"[green]Updated {student.name} ({student.handle})[/green]")


@student_app.command("remove")
def student_remove(
    student_id: int = typer.Argument(..., help="Student ID"),
    confirm: bool = typer.Option(False, "--confirm", help="Skip confirmation prompt"),
) -> None:
    """Delete a student with all their Codeforces data and email history."""
    application = get_application()
    try:
        student = application.students.get_student(student_id)
    except StudentNotFoundError:
        fail(f"Student {student_id} not found")

    if not confirm and not typer.confirm(f"Delete {student.name} ({student.handle}) and all their data?"):
        rich_print("[yellow]Cancelled.[/yellow]")
        return

    application.students.delete_student(student_id)
    rich_print(f"[green]Deleted {student.name}[/green]")


@student_app.command("reminders")
def student_reminders(
    student_id: int = typer.Argument(..., help="Student ID"),
    enable: bool = typer.Option(..., "--enable/--disable", help="Turn reminders on or off"),
) -> None:
    """Enable or disable inactivity reminders for a student."""
    try:
        student = get_application().students.set_reminders_enabled(student_id, enable)
    except StudentNotFoundError:
        fail(f"Student {student_id} not found")

    rich_print(f"[green]Reminders {'enabled' if enable else 'disabled'} for {student.name}[/green]")


@student_app.command("refresh")
def student_refresh(student_id: int = typer.Argument(..., help="Student ID")) -> None:
    """Sync one student's Codeforces data now."""
    application = get_application()
    try:
        record = application.students.refresh_student(student_id)
    except StudentNotFoundError:
        fail(f"Student {student_id} not found")
    except Exception as e:
        fail(f"Sync failed: {e}")

    rich_print(
        f"[green]Synced {record.handle}: {record.statistics.total_solved} solved, "
        f"{len(record.contests)} contests[/green]"
    )


@student_app.command("history")
def student_history(
    student_id: int = typer.Argument(..., help="Student ID"),
    limit: int = typer.Option(20, "--limit", "-l", help="Maximum emails shown"),
) -> None:
    """Show emails sent to a student, newest first."""
    try:
        records = get_application().students.get_email_history(student_id, limit)
    except StudentNotFoundError:
        fail(f"Student {student_id} not found")

    if not records:
        rich_print("[yellow]No emails sent yet.[/yellow]")
        return

    table = Table(title=f"Emails to student {student_id}", show_header=True, header_style="bold magenta")
    table.add_column("Sent At")
    table.add_column("Type", style="cyan")
    table.add_column("Subject")
    table.add_column("Days Inactive", justify="right")
    table.add_column("Reminder #", justify="right")
    for record in records:
        table.add_row(
            format_moment(record.sent_at),
            record.email_type.value,
            record.subject,
            str(record.inactivity.days_inactive) if record.inactivity else "-",
            str(record.inactivity.reminder_number) if record.inactivity else "-",
        )
    console.print(table)


@jobs_app.command("list")
def jobs_list() -> None:
    """Show every scheduled job with its last and next run."""
    application = get_application()
    statuses = application.scheduler.get_all_job_status()
    metrics = application.monitor.get_execution_metrics()

    table = Table(title="Scheduled Jobs", show_header=True, header_style="bold magenta")
    table.add_column("Job", style="cyan")
    table.add_column("Enabled")
    table.add_column("Schedule", style="green")
    table.add_column("Timezone")
    table.add_column("Last Run")
    table.add_column("Result")
    table.add_column("Success Rate", justify="right")
    table.add_column("Next Run")

    for status in statuses:
        if status.last_status is None:
            result = "-"
        elif status.last_status.success:
            result = "[green]OK[/green]"
        else:
            result = "[red]FAILED[/red]"
        job_metrics = metrics.get(status.name)
        rate = f"{job_metrics.success_rate:.0%} of {job_metrics.total_runs}" \
            if job_metrics and job_metrics.total_runs else "-"
        table.add_row(
            status.name.value,
            "yes" if status.enabled else "no",
            status.schedule,
            status.timezone,
            format_moment(status.last_run_at),
            result,
            rate,
            format_moment(status.next_run_at),
        )
    console.print(table)


@jobs_app.command("show")
def jobs_show(kind: JobKind = typer.Argument(..., help="Job name")) -> None:
    """Show a job's configuration."""
    try:
        job = get_application().scheduler.get_job(kind)
    except JobNotFoundError:
        fail(f"Job {kind.value} not found")

    rich_print(f"\n[bold blue]{job.name.value}[/bold blue]")
    rich_print(f"  Schedule: {job.schedule} ({job.timezone})")
    rich_print(f"  Enabled: {job.enabled}")
    rich_print(f"  Next run: {format_moment(job.next_run_at)}")
    for key, value in job.config.to_dict().items():
        rich_print(f"  {key}: {value}")


@jobs_app.command("update")
def jobs_update(
    kind: JobKind = typer.Argument(..., help="Job name"),
    schedule: Optional[str] = typer.Option(None, "--schedule", "-s", help="5-field cron expression"),
    enabled: Optional[bool] = typer.Option(None, "--enable/--disable"),
    timezone: Optional[str] = typer.Option(None, "--timezone", "-z"),
    batch_size: Optional[int] = typer.Option(None, "--batch-size"),
    threshold: Optional[int] = typer.Option(None, "--threshold", help="Inactivity threshold in days"),
    template: Optional[str] = typer.Option(None, "--template"),
    subject: Optional[str] = typer.Option(None, "--subject"),
    cooldown: Optional[int] = typer.Option(None, "--cooldown", help="Days between reminders"),
    max_reminders: Optional[int] = typer.Option(None, "--max-reminders"),
) -> None:
    """Change a job's schedule, enabled flag or configuration."""
    application = get_application()
    require_template(application, template)
    try:
        current = application.scheduler.get_job(kind)
        overrides: Dict[str, Any] = {
            key: value
            for key, value in {
                "batch_size": batch_size,
                "inactivity_threshold_days": threshold,
                "reminder_template": template,
                "reminder_subject": subject,
                "reminder_cooldown_days": cooldown,
                "max_reminder_count": max_reminders,
            }.items()
            if value is not None
        }
        config: Optional[JobConfig] = replace(current.config, **overrides) if overrides else None
        job = application.scheduler.update_job(
            kind, JobUpdate(schedule=schedule, enabled=enabled, timezone=timezone, config=config)
        )
    except JobNotFoundError:
        fail(f"Job {kind.value} not found")
    except EXPECTED_ERRORS as e:
        fail(f"Could not update job: {e}")

    rich_print(f"[green]Updated {job.name.value}: '{job.schedule}' ({job.timezone}), "
               f"{'enabled' if job.enabled else 'disabled'}[/green]")


@jobs_app.command("trigger")
def jobs_trigger(kind: JobKind = typer.Argument(..., help="Job name")) -> None:
    """Run a job now, outside its schedule."""
    rich_print(f"[yellow]Running {kind.value}...[/yellow]")
    try:
        entry = get_application().scheduler.trigger_job(kind)
    except Exception as e:
        fail(f"Job {kind.value} failed: {e}")

    rich_print(f"[green]{entry.message} ({entry.duration_ms}ms)[/green]")


@jobs_app.command("history")
def jobs_history(kind: JobKind = typer.Argument(..., help="Job name")) -> None:
    """Show a job's most recent runs."""
    entries = get_application().scheduler.list_history(kind)
    if not entries:
        rich_print(f"[yellow]{kind.value} has not run yet.[/yellow]")
        return

    table = Table(title=f"{kind.value} history", show_header=True, header_style="bold magenta")
    table.add_column("Run At")
    table.add_column("Result")
    table.add_column("Processed", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Details")
    for entry in entries:
        table.add_row(
            format_moment(entry.run_at),
            "[green]OK[/green]" if entry.success else "[red]FAILED[/red]",
            str(entry.processed_count),
            f"{entry.duration_ms}ms",
            entry.message if entry.success else (entry.error or ""),
        )
    console.print(table)


@jobs_app.command("reset")
def jobs_reset(
    confirm: bool = typer.Option(False, "--confirm", help="Skip confirmation prompt"),
) -> None:
    """Restore every job to its defaults and drop run history."""
    if not confirm and not typer.confirm("Reset all jobs to their defaults?"):
        rich_print("[yellow]Reset cancelled.[/yellow]")
        return

    jobs = get_application().scheduler.reset_all_jobs()
    rich_print(f"[green]Reset {len(jobs)} jobs to defaults.[/green]")


@stats_app.command("reminders")
def stats_reminders() -> None:
    """Summarize inactivity reminders sent."""
    stats = get_application().dispatcher.get_reminder_statistics()

    table = Table(title="Reminder Statistics", show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Total reminders", str(stats.total_reminders))
    table.add_row("Last 30 days", str(stats.recent_reminders))
    table.add_row("Students reminded", str(stats.unique_students_reminded))
    table.add_row("Opted out", str(stats.opted_out_students))
    console.print(table)

    if stats.daily_counts:
        rich_print("\n[bold]Daily counts:[/bold]")
        for day, count in stats.daily_counts:
            rich_print(f"  - {day}: {count}")


def main() -> None:
    """Main entry point for the CLI application."""
    app()


if __name__ == "__main__":
    main()
