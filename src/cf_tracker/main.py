"""
Main Application Entry Point for the Codeforces Progress Tracker

Wires the API client, sync, inactivity and reminder jobs into the scheduler.
"""

from __future__ import annotations

import sys
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from apscheduler.schedulers.base import BaseScheduler
from loguru import logger

from .codeforces.client import CodeforcesClient
from .config.logging_config import LoggingConfig, StructuredLogger, setup_logging
from .config.settings import Settings, load_settings
from .database.models import JobConfig, JobKind
from .database.operations import DatabaseError, ensure_default_jobs, initialize_database
from .email.service import EmailConfig, EmailService
from .email.templates import ReminderTemplateManager
from .jobs.data_sync import StudentLockRegistry, SyncOrchestrator
from .jobs.email_reminder import ReminderConfig, ReminderDispatcher
from .jobs.inactivity_check import InactivityChecker
from .scheduler.monitor import JobMonitor
from .scheduler.scheduler import JobOutcome, JobScheduler, default_jobs
from .students.service import StudentService


class TrackerApplication:
    """Main application class that coordinates all components."""

    def __init__(
        self,
        settings: Settings,
        structured_logger: Optional[StructuredLogger] = None,
        client: Optional[CodeforcesClient] = None,
        email_service: Optional[EmailService] = None,
        apscheduler: Optional[BaseScheduler] = None,
        reconcile_interval_seconds: float = 30.0,
    ) -> None:
        """Build every service from settings.

        Args:
            settings: Loaded application settings.
            structured_logger: Logger for operation tracking, if configured.
            client: Codeforces client. Built from settings if None.
            email_service: SMTP service. Built from settings when SMTP
                credentials are present, otherwise reminders are disabled.
            apscheduler: APScheduler instance driving the cron triggers.
            reconcile_interval_seconds: How often a running scheduler reloads
                job rows changed by other processes.
        """
        self.settings: Settings = settings
        self.structured_logger: Optional[StructuredLogger] = structured_logger
        db_path: Path = settings.database_path

        self.client: CodeforcesClient = client or CodeforcesClient(
            settings.codeforces_api_url,
            call_delay_seconds=settings.api_call_delay_seconds,
            retry_delay_seconds=settings.api_retry_delay_seconds,
            max_retries=settings.api_max_retries,
            timeout_seconds=settings.api_timeout_seconds,
        )
        self.locks: StudentLockRegistry = StudentLockRegistry()
        self.orchestrator: SyncOrchestrator = SyncOrchestrator(
            self.client,
            db_path=db_path,
            inactivity_threshold_days=settings.jobs.inactivity_threshold_days,
            batch_delay_seconds=settings.batch_delay_seconds,
            lock_registry=self.locks,
            structured_logger=structured_logger,
        )
        self.inactivity_checker: InactivityChecker = InactivityChecker(db_path, structured_logger)

        if email_service is None and settings.smtp.is_configured:
            email_service = EmailService(EmailConfig.from_settings(settings.smtp))
        elif email_service is None:
            logger.warning("SMTP credentials not set; email reminders are disabled")
        self.email_service: Optional[EmailService] = email_service

        self.template_manager: ReminderTemplateManager = ReminderTemplateManager(
            settings.templates_directory
        )
        self.dispatcher: ReminderDispatcher = ReminderDispatcher(
            email_service,
            self.template_manager,
            db_path=db_path,
            client_url=settings.client_url,
            structured_logger=structured_logger,
        )
        self.students: StudentService = StudentService(self.client, self.orchestrator, db_path)

        self.scheduler: JobScheduler = JobScheduler(
            {
                JobKind.CODEFORCES_SYNC: self._run_sync,
                JobKind.INACTIVITY_CHECK: self._run_inactivity_check,
                JobKind.EMAIL_REMINDER: self._run_reminders,
            },
            defaults=settings.jobs,
            db_path=db_path,
            scheduler=apscheduler,
        )
        self.monitor: JobMonitor = JobMonitor(db_path, structured_logger)
        self.reconcile_interval_seconds: float = reconcile_interval_seconds
        self._stop_event: threading.Event = threading.Event()

    @classmethod
    def from_environment(cls, env_file: Optional[Path] = None) -> TrackerApplication:
        """Load settings from the environment and set up logging."""
        settings: Settings = load_settings(env_file)
        structured_logger: StructuredLogger = setup_logging(
            LoggingConfig(log_file=settings.log_file, log_level=settings.log_level)
        )
        return cls(settings, structured_logger=structured_logger)

    def initialize(self) -> None:
        """Create the database schema and the default job rows."""
        self.settings.database_path.parent.mkdir(parents=True, exist_ok=True)
        initialize_database(self.settings.database_path)
        created: int = ensure_default_jobs(default_jobs(self.settings.jobs), self.settings.database_path)
        logger.info(f"Application initialized ({created} default jobs created)")

    def run_forever(self) -> None:
        """Start the scheduler and block until interrupted or stopped."""
        self.initialize()
        self.scheduler.start()
        logger.info("Tracker running; press Ctrl+C to stop")
        try:
            while not self._stop_event.wait(timeout=self.reconcile_interval_seconds):
                self.reconcile_jobs()
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt, stopping scheduler...")
        finally:
            self.stop()

    def reconcile_jobs(self) -> None:
        """Apply job changes made by other processes to the running scheduler."""
        try:
            changed: List[JobKind] = self.scheduler.reconcile()
        except DatabaseError as e:
            logger.error(f"Could not reload scheduled jobs: {e}")
            return
        if changed:
            logger.info(f"Reloaded jobs changed elsewhere: {', '.join(kind.value for kind in changed)}")

    def stop(self) -> None:
        """Stop the scheduler if it is running."""
        self._stop_event.set()
        if self.scheduler.is_running:
            self.scheduler.shutdown(wait=False)
        logger.info("Codeforces Progress Tracker stopped")

    def get_health_status(self) -> Dict[str, Any]:
        try:
            report = self.monitor.export_health_report("dict")
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return {"is_healthy": False, "error": str(e)}
        report["scheduler_running"] = self.scheduler.is_running
        return report

    def _run_sync(self, config: JobConfig) -> JobOutcome:
        result = self.orchestrator.sync_all(
            batch_size=config.batch_size, threshold_days=config.inactivity_threshold_days
        )
        return JobOutcome(result.message, result.processed)

    def _run_inactivity_check(self, config: JobConfig) -> JobOutcome:
        result = self.inactivity_checker.check_all(config.inactivity_threshold_days)
        return JobOutcome(result.message, result.total)

    def _run_reminders(self, config: JobConfig) -> JobOutcome:
        result = self.dispatcher.send_reminders(ReminderConfig.from_job_config(config))
        return JobOutcome(result.message, result.sent)


def main() -> int:
    """Run the tracker in the foreground with its schedules active."""
    try:
        app = TrackerApplication.from_environment()
    except Exception as e:
        logger.error(f"Failed to start application: {e}")
        return 1

    app.run_forever()
    return 0


if __name__ == "__main__":
    sys.exit(main())
