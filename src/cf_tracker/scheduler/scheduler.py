"""
Cron scheduler for the tracker's background jobs.

Job rows live in the database; APScheduler only holds the live triggers.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger

from ..config.settings import JobDefaults
from ..database.models import JobConfig, JobKind, JobRunEntry, ScheduledJob
from ..database.operations import (
    DATABASE_PATH,
    delete_all_scheduled_jobs,
    ensure_default_jobs,
    get_scheduled_job,
    list_scheduled_jobs,
    record_job_run,
    save_scheduled_job,
    set_job_next_run,
)
from ..utils.date_utils import utc_now


class SchedulerError(Exception):
    """Base exception for scheduler operations."""
    pass


class InvalidScheduleError(SchedulerError):
    """Raised when a cron expression or timezone is invalid."""
    pass


@dataclass(frozen=True)
class JobOutcome:
    """What a job handler reports back after a successful run."""
    message: str
    processed_count: int = 0


JobHandler = Callable[[JobConfig], JobOutcome]


@dataclass(frozen=True)
class JobUpdate:
    """Partial update of a job; None leaves a field unchanged."""
    schedule: Optional[str] = None
    enabled: Optional[bool] = None
    timezone: Optional[str] = None
    config: Optional[JobConfig] = None


@dataclass(frozen=True)
class JobStatusSummary:
    name: JobKind
    enabled: bool
    schedule: str
    timezone: str
    registered: bool
    last_run_at: Optional[datetime]
    next_run_at: Optional[datetime]
    last_status: Optional[JobRunEntry]


def build_trigger(schedule: str, timezone: str) -> CronTrigger:
    """Parse a 5-field cron expression.

    Raises:
        InvalidScheduleError: If the expression or timezone is invalid.
    """
    try:
        return CronTrigger.from_crontab(schedule, timezone=timezone)
    except (ValueError, KeyError, TypeError) as e:
        raise InvalidScheduleError(f"Invalid schedule '{schedule}' ({timezone}): {e}") from e


def next_fire_time(trigger: CronTrigger) -> Optional[datetime]:
    return trigger.get_next_fire_time(None, datetime.now(trigger.timezone))


def default_jobs(defaults: JobDefaults) -> List[ScheduledJob]:
    """Job rows created on first boot."""
    config = JobConfig(
        batch_size=defaults.sync_batch_size,
        inactivity_threshold_days=defaults.inactivity_threshold_days,
        reminder_template=defaults.reminder_template,
        reminder_subject=defaults.reminder_subject,
        reminder_cooldown_days=defaults.reminder_cooldown_days,
        max_reminder_count=defaults.max_reminder_count,
    )
    return [
        ScheduledJob(JobKind.CODEFORCES_SYNC, defaults.sync_schedule, defaults.sync_enabled,
                     defaults.timezone, config),
        ScheduledJob(JobKind.INACTIVITY_CHECK, defaults.inactivity_schedule, defaults.inactivity_enabled,
                     defaults.timezone, config),
        ScheduledJob(JobKind.EMAIL_REMINDER, defaults.reminder_schedule, defaults.reminder_enabled,
                     defaults.timezone, config),
    ]


class JobRegistry:
    """Live APScheduler job handles keyed by job kind.

    Each handle is stored with the ``(schedule, timezone)`` pair it was
    registered under, so stale registrations can be detected.
    """

    def __init__(self) -> None:
        self._handles: Dict[JobKind, Job] = {}
        self._schedules: Dict[JobKind, Tuple[str, str]] = {}
        self._lock: threading.Lock = threading.Lock()

    def swap(self, kind: JobKind, handle: Job, schedule: Tuple[str, str]) -> None:
        """Point ``kind`` at a handle that already replaced the old one in APScheduler.

        The old handle is dropped without ``Job.remove()``: it shares its
        id with the new job, so removing it would unschedule the new one.
        """
        with self._lock:
            self._handles[kind] = handle
            self._schedules[kind] = schedule

    def schedule_of(self, kind: JobKind) -> Optional[Tuple[str, str]]:
        with self._lock:
            return self._schedules.get(kind)

    def remove(self, kind: JobKind) -> bool:
        """Deregister a job. Returns False if it was not registered."""
        with self._lock:
            handle: Optional[Job] = self._handles.pop(kind, None)
            self._schedules.pop(kind, None)
        if handle is None:
            return False
        try:
            handle.remove()
        except JobLookupError:
            logger.debug(f"Job {kind.value} was already gone from the scheduler")
        return True

    def contains(self, kind: JobKind) -> bool:
        with self._lock:
            return kind in self._handles

    def clear(self) -> None:
        for kind in self.names():
            self.remove(kind)

    def names(self) -> List[JobKind]:
        with self._lock:
            return list(self._handles)


class JobScheduler:
    """Runs the tracker jobs on their cron schedules and records every run."""

    def __init__(
        self,
        handlers: Mapping[JobKind, JobHandler],
        defaults: Optional[JobDefaults] = None,
        db_path: Path = DATABASE_PATH,
        scheduler: Optional[BaseScheduler] = None,
    ) -> None:
        missing: List[str] = sorted(kind.value for kind in JobKind if kind not in handlers)
        if missing:
            raise SchedulerError(f"No handler registered for jobs: {', '.join(missing)}")

        self.handlers: Dict[JobKind, JobHandler] = dict(handlers)
        self.defaults: JobDefaults = defaults or JobDefaults()
        self.db_path: Path = db_path
        self.registry: JobRegistry = JobRegistry()
        self._scheduler: BaseScheduler = scheduler or BackgroundScheduler(daemon=True)
        self._run_locks: Dict[JobKind, threading.Lock] = {kind: threading.Lock() for kind in JobKind}
        self._running: bool = False

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Create missing job rows, register enabled jobs and start firing."""
        if self._running:
            logger.warning("Scheduler is already running")
            return

        ensure_default_jobs(default_jobs(self.defaults), self.db_path)
        self._register_enabled_jobs()
        self._scheduler.start()
        self._running = True
        logger.info(f"Scheduler started with {len(self.registry.names())} active jobs")

    def shutdown(self, wait: bool = True) -> None:
        if not self._running:
            logger.warning("Scheduler is not running")
            return

        self.registry.clear()
        self._scheduler.shutdown(wait=wait)
        self._running = False
        logger.info("Scheduler stopped")

    def get_job(self, kind: JobKind) -> ScheduledJob:
        return get_scheduled_job(kind, self.db_path)

    def update_job(self, kind: JobKind, update: JobUpdate) -> ScheduledJob:
        """Change a job's schedule, timezone, enabled flag or config.

        Raises:
            InvalidScheduleError: If the new schedule or timezone is invalid.
            JobNotFoundError: If the job row does not exist.
        """
        job: ScheduledJob = get_scheduled_job(kind, self.db_path)
        updated: ScheduledJob = replace(
            job,
            schedule=update.schedule if update.schedule is not None else job.schedule,
            enabled=update.enabled if update.enabled is not None else job.enabled,
            timezone=update.timezone if update.timezone is not None else job.timezone,
            config=update.config if update.config is not None else job.config,
        )

        trigger: CronTrigger = build_trigger(updated.schedule, updated.timezone)
        updated = replace(updated, next_run_at=next_fire_time(trigger) if updated.enabled else None)
        save_scheduled_job(updated, self.db_path)

        if self._running:
            self._sync_registration(updated)

        logger.info(
            f"Updated job {kind.value}: schedule={updated.schedule}, "
            f"enabled={updated.enabled}, timezone={updated.timezone}"
        )
        return updated

    def trigger_job(self, kind: JobKind) -> JobRunEntry:
        """Run a job now, outside its schedule. Handler errors are re-raised after recording."""
        logger.info(f"Manually triggering job {kind.value}")
        return self._execute(kind)

    def list_history(self, kind: JobKind) -> List[JobRunEntry]:
        """Return the retained runs of a job, newest first."""
        return list(reversed(get_scheduled_job(kind, self.db_path).history))

    def get_all_job_status(self) -> List[JobStatusSummary]:
        return [
            JobStatusSummary(
                name=job.name,
                enabled=job.enabled,
                schedule=job.schedule,
                timezone=job.timezone,
                registered=self.registry.contains(job.name),
                last_run_at=job.last_run_at,
                next_run_at=job.next_run_at,
                last_status=job.last_status,
            )
            for job in list_scheduled_jobs(self.db_path)
        ]

    def reset_all_jobs(self) -> List[ScheduledJob]:
        """Restore every job to its defaults, dropping run history."""
        self.registry.clear()
        delete_all_scheduled_jobs(self.db_path)
        ensure_default_jobs(default_jobs(self.defaults), self.db_path)
        if self._running:
            self._register_enabled_jobs()
        logger.info("All scheduled jobs reset to defaults")
        return list_scheduled_jobs(self.db_path)

    def reconcile(self) -> List[JobKind]:
        """Bring live registrations in line with the stored job rows.

        Picks up changes written by another process, such as
        ``cf-tracker jobs update`` run against a live ``cf-tracker run``.

        Returns:
            The jobs whose registration changed.
        """
        if not self._running:
            return []
        return [job.name for job in list_scheduled_jobs(self.db_path) if self._sync_registration(job)]

    def _register_enabled_jobs(self) -> None:
        for job in list_scheduled_jobs(self.db_path):
            if not job.enabled:
                logger.info(f"Skipping disabled job: {job.name.value}")
                continue
            try:
                self._register(job)
            except InvalidScheduleError as e:
                logger.error(f"Cannot schedule job {job.name.value}: {e}")

    def _sync_registration(self, job: ScheduledJob) -> bool:
        """Register, re-register or deregister ``job`` to match its row. Returns True on change."""
        registered: Optional[Tuple[str, str]] = self.registry.schedule_of(job.name)

        if not job.enabled:
            if registered is None:
                return False
            self.registry.remove(job.name)
            logger.info(f"Deregistered disabled job {job.name.value}")
            return True

        if registered == (job.schedule, job.timezone):
            return False
        try:
            self._register(job)
        except InvalidScheduleError as e:
            logger.error(f"Cannot schedule job {job.name.value}: {e}")
            return False
        return True

    def _register(self, job: ScheduledJob) -> None:
        trigger: CronTrigger = build_trigger(job.schedule, job.timezone)
        handle: Job = self._scheduler.add_job(
            self._run_scheduled,
            trigger=trigger,
            args=[job.name],
            id=job.name.value,
            name=job.name.value,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.registry.swap(job.name, handle, (job.schedule, job.timezone))
        set_job_next_run(job.name, next_fire_time(trigger), self.db_path)
        logger.info(f"Scheduled job {job.name.value} with cron '{job.schedule}' ({job.timezone})")

    def _run_scheduled(self, kind: JobKind) -> None:
        try:
            job: ScheduledJob = get_scheduled_job(kind, self.db_path)
            if not job.enabled or self.registry.schedule_of(kind) != (job.schedule, job.timezone):
                self._sync_registration(job)
                logger.info(f"Skipped run of {kind.value}: job was disabled or rescheduled")
                return

            logger.info(f"Running scheduled job {kind.value}")
            self._execute(kind)
        except Exception as e:
            logger.warning(f"Scheduled run of {kind.value} ended with an error: {e}")

    def _execute(self, kind: JobKind) -> JobRunEntry:
        with self._run_locks[kind]:
            job: ScheduledJob = get_scheduled_job(kind, self.db_path)
            run_at: datetime = utc_now()
            start: float = time.monotonic()

            try:
                outcome: JobOutcome = self.handlers[kind](job.config)
            except Exception as e:
                entry = JobRunEntry(
                    run_at=run_at,
                    success=False,
                    error=str(e),
                    duration_ms=int((time.monotonic() - start) * 1000),
                )
                self._record(job, entry)
                logger.error(f"Job {kind.value} failed after {entry.duration_ms}ms: {e}")
                raise

            entry = JobRunEntry(
                run_at=run_at,
                success=True,
                message=outcome.message,
                processed_count=outcome.processed_count,
                duration_ms=int((time.monotonic() - start) * 1000),
            )
            self._record(job, entry)
            logger.info(f"Job {kind.value} completed in {entry.duration_ms}ms: {outcome.message}")
            return entry

    def _record(self, job: ScheduledJob, entry: JobRunEntry) -> None:
        next_run: Optional[datetime] = None
        if job.enabled:
            try:
                next_run = next_fire_time(build_trigger(job.schedule, job.timezone))
            except InvalidScheduleError:
                next_run = None
        record_job_run(job.name, entry, next_run, self.db_path)
