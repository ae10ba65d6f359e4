from __future__ import annotations

import os
import re
import sys
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Sequence

if TYPE_CHECKING:
    from loguru import Logger

from loguru import logger

DEFAULT_LOG_DIR = Path(
    os.environ.get(
        "MSSQL_RESTORE_LOG_DIR",
        Path.home() / ".local" / "state" / "mssql-restore" / "logs",
    )
)

_PASSWORD_FLAG = re.compile(r"(-P\s*)(\S+)")


def redact_command(command: Sequence[str] | str) -> str:
    """Render a command for logging with any ``-P`` password value masked."""
    if not isinstance(command, str):
        command = " ".join(str(part) for part in command)
    return _PASSWORD_FLAG.sub(r"\1****", command)


def _should_log_progress(record) -> bool:
    """Filter per-percent restore progress lines - only show in DEBUG mode."""
    tags = record["extra"].get("tags", [])
    if "progress" in tags:
        return record["level"].no >= logger.level("DEBUG").no
    return True


def _should_log_query_text(record) -> bool:
    """Full query bodies are TRACE-only unless something went wrong."""
    if record["level"].no >= logger.level("WARNING").no:
        return True
    if "query" in record["extra"].get("tags", []):
        return record["level"].no <= logger.level("TRACE").no
    return True


def _combined_filter(record) -> bool:
    """Combined filter for all log suppression rules."""
    return _should_log_progress(record) and _should_log_query_text(record)


def setup_logging(
    *,
    debug: bool = False,
    trace: bool = False,
    log_dir: Path | None = None,
    file_sinks: bool = True,
) -> Logger:
    """
    Setup multi-tier logging with separate sinks for different log levels.

    Log Files:
    - operations.log: INFO+ events (7 day retention)
    - debug.log: DEBUG+ events when --debug is enabled (3 day retention)
    - structured.jsonl: Structured JSON logs for analysis (7 day retention)

    Args:
        debug: Enable DEBUG level logging
        trace: Enable TRACE level logging (includes full query text)
        log_dir: Custom log directory (defaults to ~/.local/state/mssql-restore/logs)
        file_sinks: Disable to log to stderr only (used by --dry-run)
    """
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "APP"})

    if trace:
        console_level = "TRACE"
    elif debug:
        console_level = "DEBUG"
    else:
        console_level = "INFO"

    # SINK 1: Console (stderr)
    logger.add(
        sys.stderr,
        level=console_level,
        backtrace=False,
        diagnose=False,
        filter=_combined_filter,
        colorize=True,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[source]: <10}</cyan> | "
            "<blue>{extra[job_id]: <16}</blue> | "
            "{message}"
        ),
    )

    if not file_sinks:
        return logger

    log_dir = log_dir or DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    # SINK 2: Operations Log (INFO+)
    logger.add(
        log_dir / "operations.log",
        level="INFO",
        rotation="5 MB",
        retention="7 days",
        compression="zip",
        backtrace=False,
        diagnose=False,
        format=(
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{extra[source]: <10} | "
            "{extra[job_id]: <16} | "
            "{message}"
        ),
    )

    # SINK 3: Debug Log (DEBUG+ when debug=True)
    if debug or trace:
        logger.add(
            log_dir / "debug.log",
            level="TRACE" if trace else "DEBUG",
            rotation="10 MB",
            retention="3 days",
            compression="zip",
            backtrace=True,
            diagnose=False,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{extra[source]: <10} | "
                "{extra[job_id]: <16} | "
                "{extra[tags]} | "
                "{message}"
            ),
        )

    # SINK 4: Structured JSON Log (INFO+)
    logger.add(
        log_dir / "structured.jsonl",
        level="INFO",
        rotation="10 MB",
        retention="7 days",
        compression="zip",
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
        job_id: Job identifier for tracking a restore attempt
        tags: Tags for filtering (e.g., ["restore", "engine"])
        source: Source component (e.g., "manifest", "fetch")

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


def new_job_id(operation: str = "restore") -> str:
    return f"{operation}-{uuid.uuid4().hex[:8]}"


@contextmanager
def operation_context(operation: str, job_id: str | None = None, **details):
    """
    Context manager for tracking a pipeline stage with automatic timing.

    Logs the stage start, completion and failure with its duration.

    Example:
        with operation_context("restore", target="SalesDev") as log:
            log.debug("Building relocation plan")
    """
    job_id = job_id or new_job_id(operation)

    with logger.contextualize(job_id=job_id, operation=operation, **details):
        start_time = time.time()
        log = logger.bind(source=operation, job_id=job_id, tags=[operation])

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

    Each factory method returns a logger pre-configured with appropriate
    source and tags for the pipeline stage.
    """

    @staticmethod
    def for_restore(job_id: str | None = None, **details) -> Logger:
        """Logger for the restore pipeline."""
        if job_id is None:
            job_id = new_job_id("restore")
        return logger.bind(
            job_id=job_id, source="restore", tags=["restore", "engine"], **details
        )

    @staticmethod
    def for_manifest(job_id: str | None = None) -> Logger:
        """Logger for backup manifest introspection."""
        extras: dict[str, object] = {"source": "manifest", "tags": ["manifest"]}
        if job_id is not None:
            extras["job_id"] = job_id
        return logger.bind(**extras)

    @staticmethod
    def for_fetch() -> Logger:
        """Logger for backup download/transfer."""
        return logger.bind(source="fetch", tags=["fetch", "transfer"])

    @staticmethod
    def for_engine() -> Logger:
        """Logger for query execution against the database engine."""
        return logger.bind(source="engine", tags=["engine"])


class ThrottledLogger:
    """
    Logger wrapper that throttles high-frequency log events.

    Used for download progress, which would otherwise log every chunk.
    """

    def __init__(self, log: Logger, interval_seconds: float = 5.0):
        self.log = log
        self.interval = interval_seconds
        self.last_log_time: dict[str, float] = {}

    def info(self, key: str, message: str, **kwargs) -> None:
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

    Provides methods for logging the restore pipeline's events with
    consistent structure and fields.
    """

    @staticmethod
    def log_manifest_resolved(log: Logger, manifest, **extra) -> None:
        """Log the discovered file inventory of a backup."""
        files = ", ".join(
            f"{entry.logical_name} ({entry.file_kind.value}: {entry.original_physical_path})"
            for entry in manifest.entries
        )
        log.bind(
            event_type="manifest_resolved",
            file_count=len(manifest.entries),
            default_storage_directory=manifest.default_storage_directory,
            **extra,
        ).info(f"Manifest: {files}")

    @staticmethod
    def log_restore_planned(log: Logger, plan, command: str, **extra) -> None:
        """Log the relocation plan and the final restore instruction."""
        log.bind(
            event_type="restore_planned",
            target_database=plan.target_database_name,
            storage_directory=plan.storage_directory,
            moves={move.logical_name: move.new_physical_path for move in plan.moves},
            **extra,
        ).info(f"Restore instruction: {command}")

    @staticmethod
    def log_restore_finished(log: Logger, result, **extra) -> None:
        """Log the outcome of a restore attempt."""
        level = "info" if result.succeeded else "error"
        bound = log.bind(
            event_type="restore_finished",
            status=result.status.value,
            files_restored=result.files_restored,
            exit_code=result.exit_code,
            error_detail=result.error_detail,
            post_step_error=result.post_step_error,
            **extra,
        )
        getattr(bound, level)(f"Restore {result.status.value} for {result.target_database}")
