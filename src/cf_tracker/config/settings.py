"""Centralized settings management for the Codeforces progress tracker."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv
from loguru import logger


class SettingsError(Exception):
    """Raised when configuration values are missing or invalid."""
    pass


@dataclass(frozen=True)
class SmtpSettings:
    """SMTP transport settings."""
    host: str = "smtp.gmail.com"
    port: int = 587
    username: str = ""
    password: str = ""
    from_email: str = "noreply@studentprogress.com"
    from_name: str = "Student Progress Tracker"
    use_ssl: bool = False
    timeout_seconds: int = 30

    @property
    def is_configured(self) -> bool:
        return bool(self.username and self.password)


@dataclass(frozen=True)
class JobDefaults:
    """Defaults used when scheduled job rows are created on first boot."""
    timezone: str = "Asia/Kolkata"
    sync_schedule: str = "0 2 * * *"
    sync_enabled: bool = True
    sync_batch_size: int = 50
    inactivity_schedule: str = "0 3 * * *"
    inactivity_enabled: bool = True
    inactivity_threshold_days: int = 7
    reminder_schedule: str = "0 10 * * *"
    reminder_enabled: bool = True
    reminder_template: str = "inactivity_reminder"
    reminder_subject: str = "Reminder: Get back to problem solving!"
    reminder_cooldown_days: int = 3
    max_reminder_count: Optional[int] = None


@dataclass(frozen=True)
class Settings:
    """Centralized application settings."""

    # Paths
    database_path: Path = Path("data/cf_tracker.db")
    templates_directory: Optional[Path] = None

    # Codeforces API
    codeforces_api_url: str = "https://codeforces.com/api"
    api_call_delay_seconds: float = 0.5
    api_retry_delay_seconds: float = 2.0
    api_max_retries: int = 3
    api_timeout_seconds: float = 10.0
    batch_delay_seconds: float = 5.0

    # Email
    smtp: SmtpSettings = field(default_factory=SmtpSettings)
    client_url: str = "http://localhost:3000"

    # Scheduling
    jobs: JobDefaults = field(default_factory=JobDefaults)

    # Logging
    log_level: str = "INFO"
    log_file: Path = Path("logs/cf_tracker.log")

    def __post_init__(self) -> None:
        """Validate settings after initialization."""
        if self.api_max_retries < 0:
            raise SettingsError("CODEFORCES_MAX_RETRIES cannot be negative")
        if self.api_timeout_seconds <= 0:
            raise SettingsError("CODEFORCES_TIMEOUT must be positive")
        if self.jobs.sync_batch_size <= 0:
            raise SettingsError("CODEFORCES_SYNC_BATCH_SIZE must be positive")
        if self.jobs.inactivity_threshold_days <= 0:
            raise SettingsError("INACTIVITY_THRESHOLD_DAYS must be positive")
        if self.jobs.reminder_cooldown_days < 0:
            raise SettingsError("REMINDER_FREQUENCY_DAYS cannot be negative")
        if not (1 <= self.smtp.port <= 65535):
            raise SettingsError("EMAIL_PORT must be between 1 and 65535")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> Settings:
        """Build settings from environment variables.

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.

        Returns:
            Settings instance.

        Raises:
            SettingsError: If a value cannot be parsed.
        """
        env: Mapping[str, str] = os.environ if environ is None else environ

        try:
            templates_dir: Optional[str] = env.get("EMAIL_TEMPLATES_DIR")
            max_reminders: Optional[str] = env.get("MAX_REMINDER_COUNT")

            smtp = SmtpSettings(
                host=env.get("EMAIL_HOST", "smtp.gmail.com"),
                port=int(env.get("EMAIL_PORT", "587")),
                username=env.get("EMAIL_USER", ""),
                password=env.get("EMAIL_PASS", ""),
                from_email=env.get("EMAIL_FROM", "noreply@studentprogress.com"),
                from_name=env.get("EMAIL_FROM_NAME", "Student Progress Tracker"),
                use_ssl=_parse_bool(env.get("EMAIL_SECURE"), False),
            )

            jobs = JobDefaults(
                timezone=env.get("CRON_TIMEZONE", "Asia/Kolkata"),
                sync_schedule=env.get("CODEFORCES_SYNC_SCHEDULE", "0 2 * * *"),
                sync_enabled=_parse_bool(env.get("CODEFORCES_SYNC_ENABLED"), True),
                sync_batch_size=int(env.get("CODEFORCES_SYNC_BATCH_SIZE", "50")),
                inactivity_schedule=env.get("INACTIVITY_CHECK_SCHEDULE", "0 3 * * *"),
                inactivity_enabled=_parse_bool(env.get("INACTIVITY_CHECK_ENABLED"), True),
                inactivity_threshold_days=int(env.get("INACTIVITY_THRESHOLD_DAYS", "7")),
                reminder_schedule=env.get("EMAIL_REMINDER_SCHEDULE", "0 10 * * *"),
                reminder_enabled=_parse_bool(env.get("EMAIL_REMINDER_ENABLED"), True),
                reminder_template=env.get("EMAIL_REMINDER_TEMPLATE", "inactivity_reminder"),
                reminder_subject=env.get(
                    "EMAIL_REMINDER_SUBJECT", "Reminder: Get back to problem solving!"
                ),
                reminder_cooldown_days=int(env.get("REMINDER_FREQUENCY_DAYS", "3")),
                max_reminder_count=int(max_reminders) if max_reminders else None,
            )

            return cls(
                database_path=Path(env.get("DATABASE_PATH", "data/cf_tracker.db")),
                templates_directory=Path(templates_dir) if templates_dir else None,
                codeforces_api_url=env.get("CODEFORCES_API_BASE_URL", "https://codeforces.com/api"),
                api_call_delay_seconds=float(env.get("CODEFORCES_API_CALL_DELAY", "0.5")),
                api_retry_delay_seconds=float(env.get("CODEFORCES_RETRY_DELAY", "2")),
                api_max_retries=int(env.get("CODEFORCES_MAX_RETRIES", "3")),
                api_timeout_seconds=float(env.get("CODEFORCES_TIMEOUT", "10")),
                batch_delay_seconds=float(env.get("CODEFORCES_BATCH_DELAY", "5")),
                smtp=smtp,
                client_url=env.get("CLIENT_URL", "http://localhost:3000"),
                jobs=jobs,
                log_level=env.get("LOG_LEVEL", "INFO"),
                log_file=Path(env.get("LOG_FILE", "logs/cf_tracker.log")),
            )

        except ValueError as e:
            raise SettingsError(f"Invalid configuration value: {e}") from e


def _parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_settings(env_file: Optional[Path] = None) -> Settings:
    """Load application settings from the environment.

    Args:
        env_file: Optional ``.env`` file loaded before reading the environment.
            Variables already set in the process environment win.

    Returns:
        Loaded Settings instance.

    Raises:
        SettingsError: If loading fails.
    """
    if env_file is not None:
        if not env_file.exists():
            raise SettingsError(f"Environment file not found: {env_file}")
        load_dotenv(env_file, override=False)
    else:
        load_dotenv(override=False)

    settings: Settings = Settings.from_env()
    logger.info(f"Settings loaded (database: {settings.database_path})")
    return settings
