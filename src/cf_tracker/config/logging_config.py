"""Loguru sinks for the tracker and helpers that attach structured fields
to operation, sync and email records."""

from __future__ import annotations

import sys
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import Any, List, Optional, Union

from loguru import logger


LOG_LEVELS: tuple[str, ...] = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")

CONSOLE_FORMAT: str = (
    "<green>{time:HH:mm:ss}</green> <level>{level: <8}</level> "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> {message}"
)
FILE_FORMAT: str = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS ZZ} {level: <8} [{thread.name}] {name}:{function}:{line} "
    "{message} {extra}"
)


@dataclass(frozen=True)
class LoggingConfig:
    """Where and how verbosely the tracker logs."""

    log_file: Path = Path("logs/cf_tracker.log")
    log_level: str = "INFO"
    console: bool = True
    console_level: str = "INFO"
    error_log: bool = True

    # loguru rotation settings, shared by the main and error files
    rotation: str = "10 MB"
    retention: int = 10
    compression: str = "zip"

    slow_operation_seconds: float = 300.0

    def __post_init__(self) -> None:
        for label, level in (("log level", self.log_level), ("console log level", self.console_level)):
            if level.upper() not in LOG_LEVELS:
                raise ValueError(f"Unknown {label}: {level}")
        if self.retention < 1:
            raise ValueError("At least one rotated log file must be retained")
        if self.slow_operation_seconds <= 0:
            raise ValueError("slow_operation_seconds must be positive")

    @property
    def error_log_file(self) -> Path:
        return self.log_file.with_name(f"{self.log_file.stem}.errors{self.log_file.suffix}")


class StructuredLogger:
    """Writes tracker events with their details bound as loguru ``extra`` fields.

    Creating an instance replaces every existing loguru sink with the ones
    described by ``config``.
    """

    def __init__(self, config: LoggingConfig) -> None:
        self.config: LoggingConfig = config
        self.sink_ids: List[int] = []
        self._install_sinks()

    def _install_sinks(self) -> None:
        logger.remove()
        rotating: dict[str, Any] = {
            "rotation": self.config.rotation,
            "retention": self.config.retention,
            "compression": self.config.compression,
            "enqueue": True,
        }

        if self.config.console:
            self.sink_ids.append(
                logger.add(
                    sys.stderr,
                    level=self.config.console_level.upper(),
                    format=CONSOLE_FORMAT,
                    colorize=True,
                    enqueue=True,
                )
            )

        self.sink_ids.append(
            logger.add(
                str(self.config.log_file),
                level=self.config.log_level.upper(),
                format=FILE_FORMAT,
                **rotating,
            )
        )

        if self.config.error_log:
            self.sink_ids.append(
                logger.add(
                    str(self.config.error_log_file),
                    level="ERROR",
                    format=FILE_FORMAT,
                    backtrace=True,
                    diagnose=False,
                    **rotating,
                )
            )

    def log_operation_start(self, operation: str, **context: Any) -> str:
        """Log that ``operation`` began and return the ID tying its records together."""
        operation_id: str = f"{operation}-{uuid.uuid4().hex[:12]}"
        logger.bind(operation_id=operation_id, operation=operation, **context).info(
            f"Started {operation}"
        )
        return operation_id

    def log_operation_end(
        self,
        operation_id: str,
        operation: str,
        success: bool = True,
        error: Optional[BaseException] = None,
        **context: Any,
    ) -> None:
        bound = logger.bind(operation_id=operation_id, operation=operation, success=success, **context)
        if success:
            bound.success(f"Finished {operation}")
        else:
            bound.bind(error_type=type(error).__name__ if error else None).error(
                f"{operation} failed: {error}"
            )

    def log_performance_metric(
        self,
        metric_name: str,
        value: Union[int, float],
        unit: str = "",
        **context: Any,
    ) -> None:
        """Record a measurement; ``*_duration_seconds`` metrics over the slow threshold also warn."""
        bound = logger.bind(metric=metric_name, value=value, unit=unit, **context)
        bound.debug(f"{metric_name} = {value} {unit}".rstrip())

        if metric_name.endswith("_duration_seconds") and value > self.config.slow_operation_seconds:
            bound.warning(
                f"{metric_name} took {value:.1f}s, over the {self.config.slow_operation_seconds:.0f}s threshold"
            )

    def log_sync_operation(
        self,
        handle: str,
        success: bool,
        submissions_count: int = 0,
        contests_count: int = 0,
        error: Optional[str] = None,
        **context: Any,
    ) -> None:
        bound = logger.bind(
            sync_handle=handle,
            submissions=submissions_count,
            contests=contests_count,
            **context,
        )
        if success:
            bound.info(f"Stored {submissions_count} submissions and {contests_count} contests for {handle}")
        else:
            bound.error(f"Sync of {handle} failed: {error}")

    def log_email_operation(
        self,
        operation: str,
        recipient: str,
        success: bool,
        error: Optional[str] = None,
        **context: Any,
    ) -> None:
        bound = logger.bind(email_operation=operation, recipient=recipient, **context)
        if success:
            bound.info(f"Sent {operation} email to {recipient}")
        else:
            bound.error(f"Could not send {operation} email to {recipient}: {error}")


def setup_logging(config: Optional[LoggingConfig] = None) -> StructuredLogger:
    """Install the tracker's log sinks.

    Args:
        config: Sink configuration; defaults to ``LoggingConfig()``.

    Returns:
        The StructuredLogger owning the new sinks.
    """
    config = config or LoggingConfig()
    config.log_file.parent.mkdir(parents=True, exist_ok=True)

    structured_logger = StructuredLogger(config)
    logger.bind(log_file=str(config.log_file), log_level=config.log_level).info(
        "Logging configured"
    )
    return structured_logger


class LoggedOperation:
    """Times a block and logs when it starts and how it ended.

    With no StructuredLogger only plain start and finish lines are written.
    Exceptions are never suppressed.
    """

    def __init__(
        self,
        structured_logger: Optional[StructuredLogger],
        operation_name: str,
        **context: Any,
    ) -> None:
        self.structured_logger: Optional[StructuredLogger] = structured_logger
        self.operation_name: str = operation_name
        self.context: dict[str, Any] = context
        self.operation_id: Optional[str] = None
        self._started: Optional[float] = None

    def __enter__(self) -> LoggedOperation:
        self._started = time.monotonic()
        if self.structured_logger is None:
            logger.info(f"Starting {self.operation_name}")
        else:
            self.operation_id = self.structured_logger.log_operation_start(
                self.operation_name, **self.context
            )
        return self

    def __exit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        elapsed: float = time.monotonic() - self._started if self._started is not None else 0.0

        if self.structured_logger is None or self.operation_id is None:
            if exc_val is None:
                logger.info(f"Finished {self.operation_name} in {elapsed:.2f}s")
            else:
                logger.error(f"{self.operation_name} failed after {elapsed:.2f}s: {exc_val}")
            return

        self.structured_logger.log_performance_metric(
            f"{self.operation_name}_duration_seconds", elapsed, "s", operation_id=self.operation_id
        )
        self.structured_logger.log_operation_end(
            self.operation_id,
            self.operation_name,
            success=exc_val is None,
            error=exc_val,
            duration_seconds=round(elapsed, 3),
            **self.context,
        )
