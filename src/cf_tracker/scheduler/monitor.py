"""
Health checks and execution metrics for the scheduled jobs.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import psutil
from loguru import logger

from ..config.logging_config import LoggedOperation, StructuredLogger
from ..database.models import JobKind, ScheduledJob
from ..database.operations import DATABASE_PATH, list_scheduled_jobs
from ..utils.date_utils import format_datetime, utc_now


@dataclass(frozen=True)
class SystemMetrics:
    """System resource metrics."""
    cpu_percent: float
    memory_percent: float
    disk_usage_percent: float
    available_memory_gb: float
    disk_free_gb: float


@dataclass(frozen=True)
class ExecutionMetrics:
    """Run metrics of one job computed from its retained history."""
    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    average_duration_ms: float = 0.0
    last_error: Optional[str] = None

    @property
    def success_rate(self) -> float:
        if self.total_runs == 0:
            return 0.0
        return self.successful_runs / self.total_runs


@dataclass(frozen=True)
class HealthStatus:
    """Overall tracker health status."""
    is_healthy: bool
    timestamp: datetime
    system_metrics: SystemMetrics
    job_metrics: Dict[JobKind, ExecutionMetrics]
    warnings: List[str]
    errors: List[str]


def compute_metrics(job: ScheduledJob) -> ExecutionMetrics:
    history = job.history
    if not history:
        return ExecutionMetrics()

    failures = [entry for entry in history if not entry.success]
    return ExecutionMetrics(
        total_runs=len(history),
        successful_runs=len(history) - len(failures),
        failed_runs=len(failures),
        average_duration_ms=sum(entry.duration_ms for entry in history) / len(history),
        last_error=failures[-1].error if failures else None,
    )


class JobMonitor:
    def __init__(
        self,
        db_path: Path = DATABASE_PATH,
        structured_logger: Optional[StructuredLogger] = None,
    ) -> None:
        self.db_path: Path = db_path
        self.structured_logger: Optional[StructuredLogger] = structured_logger

    def get_execution_metrics(self) -> Dict[JobKind, ExecutionMetrics]:
        """Metrics for every job, from the persisted run history."""
        return {job.name: compute_metrics(job) for job in list_scheduled_jobs(self.db_path)}

    def get_system_metrics(self) -> SystemMetrics:
        """Get current system resource metrics for the database volume."""
        memory = psutil.virtual_memory()
        disk_root: Path = self.db_path.parent if self.db_path.parent.exists() else Path.cwd()
        disk = psutil.disk_usage(str(disk_root))

        return SystemMetrics(
            cpu_percent=psutil.cpu_percent(interval=None),
            memory_percent=memory.percent,
            disk_usage_percent=(disk.used / disk.total) * 100 if disk.total else 0.0,
            available_memory_gb=memory.available / (1024**3),
            disk_free_gb=disk.free / (1024**3),
        )

    def perform_health_check(self) -> HealthStatus:
        """Check resources, the database file and the last run of every enabled job."""
        with LoggedOperation(self.structured_logger, "health_check"):
            warnings: List[str] = []
            errors: List[str] = []

            system_metrics: SystemMetrics = self.get_system_metrics()
            if system_metrics.memory_percent > 85:
                warnings.append(f"High memory usage: {system_metrics.memory_percent:.1f}%")
            if system_metrics.disk_usage_percent > 90:
                errors.append(f"Critical disk usage: {system_metrics.disk_usage_percent:.1f}%")
            elif system_metrics.disk_usage_percent > 80:
                warnings.append(f"High disk usage: {system_metrics.disk_usage_percent:.1f}%")

            job_metrics: Dict[JobKind, ExecutionMetrics] = {}
            if not self.db_path.exists():
                errors.append(f"Database file not found: {self.db_path}")
            else:
                for job in list_scheduled_jobs(self.db_path):
                    job_metrics[job.name] = compute_metrics(job)
                    if job.enabled and job.last_status is not None and not job.last_status.success:
                        warnings.append(f"Last run of {job.name.value} failed: {job.last_status.error}")

            health_status = HealthStatus(
                is_healthy=not errors,
                timestamp=utc_now(),
                system_metrics=system_metrics,
                job_metrics=job_metrics,
                warnings=warnings,
                errors=errors,
            )
            logger.info(
                f"Health check completed - Status: {'HEALTHY' if health_status.is_healthy else 'UNHEALTHY'}"
            )
            return health_status

    def export_health_report(self, format: str = "json") -> Union[str, Dict[str, Any]]:
        health_status: HealthStatus = self.perform_health_check()
        report: Dict[str, Any] = {
            "is_healthy": health_status.is_healthy,
            "timestamp": format_datetime(health_status.timestamp),
            "system_metrics": health_status.system_metrics.__dict__,
            "jobs": {
                kind.value: {
                    "total_runs": metrics.total_runs,
                    "successful_runs": metrics.successful_runs,
                    "failed_runs": metrics.failed_runs,
                    "success_rate": metrics.success_rate,
                    "average_duration_ms": metrics.average_duration_ms,
                    "last_error": metrics.last_error,
                }
                for kind, metrics in health_status.job_metrics.items()
            },
            "warnings": health_status.warnings,
            "errors": health_status.errors,
        }

        if format.lower() == "json":
            return json.dumps(report, indent=2)
        if format.lower() == "dict":
            return report
        raise ValueError(f"Unsupported format: {format}")
