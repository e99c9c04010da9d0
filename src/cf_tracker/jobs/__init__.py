"""Batch jobs run by the scheduler and the CLI."""

from .data_sync import StudentLockRegistry, StudentSyncError, SyncOrchestrator, SyncResult
from .email_reminder import ReminderConfig, ReminderDispatcher, ReminderResult, ReminderStatistics
from .inactivity_check import InactivityCheckResult, InactivityChecker

__all__ = [
    "StudentLockRegistry",
    "StudentSyncError",
    "SyncOrchestrator",
    "SyncResult",
    "ReminderConfig",
    "ReminderDispatcher",
    "ReminderResult",
    "ReminderStatistics",
    "InactivityCheckResult",
    "InactivityChecker",
]
