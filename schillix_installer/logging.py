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

DEFAULT_LOG_DIR = Path(
    os.environ.get(
        "SCHILLIX_INSTALL_LOG_DIR",
        Path.home() / ".local" / "state" / "schillix-install" / "logs",
    )
)


def _should_log_entry(record) -> bool:
    """Filter per-entry copy logs - only show in TRACE mode."""
    tags = record["extra"].get("tags", [])

    # Errors for a single entry are always interesting
    if record["level"].no >= logger.level("WARNING").no:
        return True

    if "entry" in tags:
        return record["level"].no <= logger.level("TRACE").no

    return True


def _should_log_command_output(record) -> bool:
    """Filter raw stdout/stderr dumps of external tools unless debugging."""
    message = record["message"]

    if message.startswith(("stdout:", "stderr:")):
        return record["level"].no <= logger.level("DEBUG").no

    return True


def _combined_filter(record) -> bool:
    """Combined filter for all log suppression rules."""
    return _should_log_entry(record) and _should_log_command_output(record)


def setup_logging(
    *,
    debug: bool = False,
    trace: bool = False,
    log_dir: Path | None = None,
) -> Logger:
    """
    Setup multi-tier logging with separate sinks for different log levels.

    Logging Tiers:
    - CRITICAL/ERROR: Stage failures, the disk may be half provisioned
    - SUCCESS/INFO: Stage progress and results
    - DEBUG: External command lines and their output
    - TRACE: Every replicated file, directory and symlink

    Log Files:
    - operations.log: INFO+ events (7 day retention)
    - debug.log: DEBUG+ events when --debug is enabled (3 day retention)
    - trace.log: TRACE+ events when --trace is enabled (1 day retention)
    - structured.jsonl: Structured JSON logs for analysis (7 day retention)

    Args:
        debug: Enable DEBUG level logging
        trace: Enable TRACE level logging (very verbose)
        log_dir: Custom log directory (defaults to ~/.local/state/schillix-install/logs)
    """
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "APP"})

    if trace:
        console_level = "TRACE"
    elif debug:
        console_level = "DEBUG"
    else:
        console_level = "INFO"

    # SINK 1: Console (stderr) - User-facing, filtered
    logger.add(
        sys.stderr,
        level=console_level,
        enqueue=True,
        backtrace=False,
        diagnose=False,
        filter=_combined_filter,
        colorize=True,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[source]: <10}</cyan> | "
            "{message}"
        ),
    )

    log_dir = log_dir or DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    # SINK 2: Operations Log - Important events only (INFO+)
    logger.add(
        log_dir / "operations.log",
        level="INFO",
        rotation="5 MB",
        retention="7 days",
        compression="zip",
        enqueue=True,
        backtrace=False,
        diagnose=False,
        format=(
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{extra[source]: <10} | "
            "{extra[job_id]: <24} | "
            "{message}"
        ),
    )

    # SINK 3: Debug Log - Command lines and tool output
    if debug or trace:
        logger.add(
            log_dir / "debug.log",
            level="DEBUG",
            rotation="10 MB",
            retention="3 days",
            compression="zip",
            enqueue=True,
            backtrace=True,
            diagnose=True,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{extra[source]: <10} | "
                "{extra[job_id]: <24} | "
                "{extra[tags]} | "
                "{message}"
            ),
        )

    # SINK 4: Trace Log - One line per replicated entry
    if trace:
        logger.add(
            log_dir / "trace.log",
            level="TRACE",
            rotation="50 MB",
            retention="1 day",
            compression="zip",
            enqueue=True,
            backtrace=False,
            diagnose=False,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{extra[source]: <10} | "
                "{message}"
            ),
        )

    # SINK 5: Structured JSON Log - For analysis tools (INFO+)
    logger.add(
        log_dir / "structured.jsonl",
        level="INFO",
        rotation="10 MB",
        retention="7 days",
        compression="zip",
        enqueue=True,
        serialize=True,
        format="{message}",
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
        tags: Tags for filtering (e.g., ["zfs", "storage"])
        source: Source component (e.g., "disk", "pool", "copy")

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


@contextmanager
def operation_context(operation: str, **details):
    """
    Context manager for tracking long-running operations with automatic timing.

    Logs operation start, completion and failure with the elapsed time.

    Args:
        operation: Operation name (e.g., "partition", "replicate")
        **details: Operation-specific details to log

    Yields:
        Logger bound with job_id and operation context

    Example:
        with operation_context("partition", disk="c0t0d0") as log:
            log.debug("Writing msdos label")
    """
    job_id = f"{operation}-{uuid.uuid4().hex[:8]}"

    with logger.contextualize(job_id=job_id, operation=operation, **details):
        start_time = time.time()
        log = get_logger(job_id=job_id, tags=[operation], source="pipeline")

        log.info(f"{operation.capitalize()} started", **details)

        try:
            yield log
            duration = time.time() - start_time
            log.success(
                f"{operation.capitalize()} completed", duration_seconds=round(duration, 2)
            )
        except Exception as e:
            duration = time.time() - start_time
            log.error(
                f"{operation.capitalize()} failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(duration, 2),
            )
            raise


class LoggerFactory:
    """
    Factory for creating domain-specific loggers with automatic context.
    """

    @staticmethod
    def for_disk() -> Logger:
        """Logger for disk validation, partitioning and slicing."""
        return get_logger(tags=["disk", "storage"], source="disk")

    @staticmethod
    def for_pool() -> Logger:
        """Logger for zpool and dataset management."""
        return get_logger(tags=["zfs", "storage"], source="pool")

    @staticmethod
    def for_copy(job_id: str | None = None) -> Logger:
        """Logger for live image replication."""
        if job_id is None:
            job_id = f"copy-{uuid.uuid4().hex[:8]}"
        return get_logger(job_id=job_id, tags=["copy"], source="copy")

    @staticmethod
    def for_entry() -> Logger:
        """Logger for individual replicated entries (TRACE only on console)."""
        return get_logger(tags=["copy", "entry"], source="copy")

    @staticmethod
    def for_pipeline() -> Logger:
        """Logger for stage sequencing."""
        return get_logger(tags=["pipeline"], source="pipeline")

    @staticmethod
    def for_boot() -> Logger:
        """Logger for boot loader and boot archive setup."""
        return get_logger(tags=["boot"], source="boot")

    @staticmethod
    def for_system() -> Logger:
        """Logger for system operations (startup, config, commands)."""
        return get_logger(tags=["system"], source="system")


class ThrottledLogger:
    """
    Logger wrapper that throttles high-frequency log events.

    Used for replication progress, which would otherwise emit one line per
    file of the live image.
    """

    def __init__(self, log: Logger, interval_seconds: float = 5.0):
        self.log = log
        self.interval = interval_seconds
        self.last_log_time: dict[str, float] = {}

    def debug(self, key: str, message: str, **kwargs) -> None:
        """Log at DEBUG level, throttled by key."""
        self._throttled_log("DEBUG", key, message, **kwargs)

    def info(self, key: str, message: str, **kwargs) -> None:
        """Log at INFO level, throttled by key."""
        self._throttled_log("INFO", key, message, **kwargs)

    def _throttled_log(self, level: str, key: str, message: str, **kwargs) -> None:
        now = time.time()
        last_time = self.last_log_time.get(key, 0)

        if now - last_time >= self.interval:
            log_method = getattr(self.log, level.lower())
            log_method(message, **kwargs)
            self.last_log_time[key] = now


class EventLogger:
    """
    Structured event logger using standardized schemas.
    """

    @staticmethod
    def log_stage_started(log: Logger, stage: str, index: int, total: int) -> None:
        """Log pipeline stage start."""
        log.info(
            f"[{index}/{total}] {stage}",
            event_type="stage_started",
            stage=stage,
            stage_index=index,
            stage_total=total,
        )

    @staticmethod
    def log_stage_failed(log: Logger, stage: str, description: str) -> None:
        """Log the stage that stopped the pipeline."""
        log.bind(event_type="stage_failed", stage=stage).error(f"Stage {stage} failed: {description}")

    @staticmethod
    def log_replication_summary(
        log: Logger, files: int, directories: int, symlinks: int, generated: int, bytes_copied: int
    ) -> None:
        """Log totals at the end of a replication run."""
        log.info(
            f"Replicated {files} files, {directories} directories, {symlinks} symlinks "
            f"({generated} generated)",
            event_type="replication_summary",
            files=files,
            directories=directories,
            symlinks=symlinks,
            generated=generated,
            bytes_copied=bytes_copied,
        )
