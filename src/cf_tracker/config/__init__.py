"""Configuration package for the Codeforces progress tracker."""

from .logging_config import setup_logging, LoggingConfig, StructuredLogger, LoggedOperation
from .settings import Settings, SmtpSettings, JobDefaults, SettingsError, load_settings

__all__ = [
    # Logging
    "setup_logging",
    "LoggingConfig",
    "StructuredLogger",
    "LoggedOperation",
    # Settings
    "Settings",
    "SmtpSettings",
    "JobDefaults",
    "SettingsError",
    "load_settings",
]
