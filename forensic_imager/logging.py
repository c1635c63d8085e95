from __future__ import annotations

import os
import sys
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from loguru import Logger

from loguru import logger

from forensic_imager.config import settings

DEFAULT_LOG_FILE = Path(settings.DEFAULT_LOG_FILE)
DEFAULT_LOG_DIR = Path(
    os.environ.get(
        "FORENSIC_IMAGER_LOG_DIR",
        Path.home() / ".local" / "state" / "forensic-imager" / "logs",
    )
)

REDACTED = "***"

# Secrets registered here are masked in every sink.
_secrets: set[str] = set()

RUN_LOG_FORMAT = "[{time:YYYY-MM-DD HH:mm:ss}] {message}"


def register_secret(value: str | None) -> None:
    """Mask ``value`` wherever it would appear in a log message."""
    if value:
        _secrets.add(value)


def clear_secrets() -> None:
    _secrets.clear()


def _redact(record) -> bool:
    """Replace registered secrets in the message before any sink sees it."""
    message = record["message"]
    for secret in _secrets:
        if secret in message:
            message = message.replace(secret, REDACTED)
    record["message"] = message
    return True


def _should_log_progress(record) -> bool:
    """Progress lines go to the console but stay out of the run log."""
    tags = record["extra"].get("tags", [])
    if "progress" in tags:
        return record["level"].no >= logger.level("WARNING").no
    return True


def _run_log_filter(record) -> bool:
    return _redact(record) and _should_log_progress(record)


def setup_logging(
    log_file: Path | str | None = None,
    *,
    debug: bool = False,
    trace: bool = False,
    log_dir: Path | None = None,
    console=None,
    file_sink: bool = True,
) -> Logger:
    """
    Setup logging for an imaging run.

    Sinks:
    - Console (stdout): every operator-facing message, timestamped.
    - Run log: append-only audit trail at ``log_file`` (no rotation or
      retention; it is the only persisted record of the run).
    - debug.log: DEBUG+ diagnostics when --debug or --trace is enabled.

    Args:
        log_file: Path of the run log (defaults to /var/log/forensic-imager.log)
        debug: Enable DEBUG level logging
        trace: Enable TRACE level logging (very verbose)
        log_dir: Directory for debug.log (defaults to ~/.local/state/forensic-imager/logs)
        console: Stream for the console sink (defaults to sys.stdout)
        file_sink: Write the run log (disable when the path is not writable)
    """
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "APP"})

    if trace:
        console_level = "TRACE"
    elif debug:
        console_level = "DEBUG"
    else:
        console_level = "INFO"

    # SINK 1: Console - the operator watches the run here
    logger.add(
        console or sys.stdout,
        level=console_level,
        backtrace=False,
        diagnose=False,
        filter=_redact,
        colorize=False,
        format=RUN_LOG_FORMAT,
    )

    # SINK 2: Run log - append-only audit trail
    if file_sink:
        log_file = Path(log_file or DEFAULT_LOG_FILE)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level="INFO",
            mode="a",
            backtrace=False,
            diagnose=False,
            filter=_run_log_filter,
            format=RUN_LOG_FORMAT,
        )

    # SINK 3: Debug Log - Detailed diagnostics (DEBUG+ when debug=True)
    if debug or trace:
        log_dir = log_dir or DEFAULT_LOG_DIR
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_dir / "debug.log",
            level="TRACE" if trace else "DEBUG",
            rotation="10 MB",
            retention="3 days",
            compression="zip",
            backtrace=True,
            diagnose=False,
            filter=_redact,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{extra[source]: <15} | "
                "{extra[job_id]: <15} | "
                "{extra[tags]} | "
                "{message}"
            ),
        )

    return logger


def get_logger(
    *,
    job_id: str | None = None,
    tags: Iterable[str] | None = None,
    source: str | None = None,
) -> Logger:
    """
    Get a logger with bound context.

    Args:
        job_id: Job identifier for tracking operations
        tags: Tags for filtering (e.g., ["digest", "progress"])
        source: Source component (e.g., "pipeline", "gpio")

    Returns:
        Logger with bound context
    """
    extras: dict[str, object] = {}
    if job_id is not None:
        extras["job_id"] = job_id
    if tags is not None:
        extras["tags"] = list(tags)
    if source is not None:
        extras["source"] = source
    return logger.bind(**extras)


def new_job_id(operation: str) -> str:
    return f"{operation}-{uuid.uuid4().hex[:8]}"


@contextmanager
def operation_context(operation: str, *, log: Logger | None = None, **details):
    """
    Context manager for tracking long-running operations with automatic timing.

    Logs operation completion and failure with duration tracking at DEBUG
    level; the caller owns the operator-facing messages.

    Example:
        with operation_context("digest", device="/dev/sda") as log:
            log.debug("Reading device")
    """
    log = log or get_logger(source=operation, tags=[operation])
    start_time = time.monotonic()
    log.debug(f"{operation.capitalize()} started", **details)
    try:
        yield log
    except Exception as e:
        duration = time.monotonic() - start_time
        log.debug(
            f"{operation.capitalize()} failed after {duration:.2f}s",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
    duration = time.monotonic() - start_time
    log.debug(f"{operation.capitalize()} completed in {duration:.2f}s")


class ThrottledLogger:
    """
    Logger wrapper that throttles high-frequency log events.

    Useful for progress updates that should only be emitted at intervals.
    """

    def __init__(self, log: Logger, interval_seconds: float = 5.0, clock=time.monotonic):
        """
        Initialize throttled logger.

        Args:
            log: Base logger to wrap
            interval_seconds: Minimum seconds between log emissions
            clock: Time source (monotonic seconds)
        """
        self.log = log
        self.interval = interval_seconds
        self.clock = clock
        self.last_log_time: dict[str, float] = {}

    def debug(self, key: str, message: str, **kwargs) -> None:
        """Log at DEBUG level, throttled by key."""
        self._throttled_log("DEBUG", key, message, **kwargs)

    def info(self, key: str, message: str, **kwargs) -> None:
        """Log at INFO level, throttled by key."""
        self._throttled_log("INFO", key, message, **kwargs)

    def _throttled_log(self, level: str, key: str, message: str, **kwargs) -> bool:
        now = self.clock()
        last_time = self.last_log_time.get(key)

        if last_time is None or now - last_time >= self.interval:
            log_method = getattr(self.log, level.lower())
            log_method(message, **kwargs)
            self.last_log_time[key] = now
            return True
        return False
