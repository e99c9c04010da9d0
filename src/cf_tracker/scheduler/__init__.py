"""Scheduling and monitoring of the tracker's background jobs."""

from .monitor import ExecutionMetrics, HealthStatus, JobMonitor, SystemMetrics, compute_metrics
from .scheduler import (
    InvalidScheduleError,
    JobHandler,
    JobOutcome,
    JobRegistry,
    JobScheduler,
    JobStatusSummary,
    JobUpdate,
    SchedulerError,
    build_trigger,
    default_jobs,
)

__all__ = [
    "ExecutionMetrics",
    "HealthStatus",
    "JobMonitor",
    "SystemMetrics",
    "compute_metrics",
    "InvalidScheduleError",
    "JobHandler",
    "JobOutcome",
    "JobRegistry",
    "JobScheduler",
    "JobStatusSummary",
    "JobUpdate",
    "SchedulerError",
    "build_trigger",
    "default_jobs",
]
