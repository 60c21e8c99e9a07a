"""Structured logging configuration for judgelink.

Provides JSON-formatted logs for production and human-readable
logs for development.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .config import get_settings

# Attributes present on every LogRecord; anything else came in via ``extra=``
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = value

        if record.funcName:
            log_data["function"] = record.funcName
        if record.lineno:
            log_data["line"] = record.lineno

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable log formatter for development."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def setup_logging() -> None:
    """Configure logging based on settings."""
    settings = get_settings()

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    if settings.log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(TextFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    # Suppress noisy loggers
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("asyncpg").setLevel(logging.WARNING)
    logging.getLogger("celery").setLevel(logging.WARNING)
    logging.getLogger("kombu").setLevel(logging.WARNING)

    logger = get_logger(__name__)
    logger.info(
        "Logging initialized",
        extra={
            "environment": settings.environment,
            "log_level": settings.log_level,
            "log_format": settings.log_format,
        },
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


class LoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds context to all log messages."""

    def process(
        self, msg: str, kwargs: dict[str, Any]
    ) -> tuple[str, dict[str, Any]]:
        """Process the logging message and add extra context."""
        extra = kwargs.get("extra", {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs


def get_context_logger(name: str, **context: Any) -> LoggerAdapter:
    """Get a logger with additional context.

    Args:
        name: Logger name
        **context: Context fields to add to all log messages

    Returns:
        Logger adapter with context

    Usage:
        logger = get_context_logger(__name__, run_id="abc123")
        logger.info("Flushing batch")  # Includes run_id
    """
    return LoggerAdapter(get_logger(name), context)


# =========================
# Convenience functions
# =========================


def log_linking_start(run_id: str, unlinked_cases: int, dry_run: bool = False) -> None:
    """Log the start of a linking run."""
    logger = get_logger("judgelink.linking")
    logger.info(
        f"Starting case-judge linking ({unlinked_cases} unlinked cases)",
        extra={
            "run_id": run_id,
            "unlinked_cases": unlinked_cases,
            "dry_run": dry_run,
            "event": "linking_start",
        },
    )


def log_linking_complete(
    run_id: str,
    newly_linked: int,
    unmatched: int,
    failed: int,
    duration_seconds: float,
) -> None:
    """Log the completion of a linking run."""
    logger = get_logger("judgelink.linking")
    logger.info(
        f"Completed case-judge linking: {newly_linked} linked, "
        f"{unmatched} unmatched, {failed} failed",
        extra={
            "run_id": run_id,
            "newly_linked": newly_linked,
            "unmatched": unmatched,
            "failed": failed,
            "duration_seconds": duration_seconds,
            "event": "linking_complete",
        },
    )


def log_flush_batch(
    run_id: str,
    batch_number: int,
    records_in_batch: int,
    attempts: int,
    succeeded: bool,
) -> None:
    """Log the outcome of a bulk update flush.

    Args:
        run_id: Linking run identifier
        batch_number: Batch sequence number
        records_in_batch: Updates carried by the batch
        attempts: Attempts used (1 means no retry was needed)
        succeeded: Whether the batch was written
    """
    logger = get_logger("judgelink.linking")
    level = logging.INFO if succeeded else logging.ERROR
    outcome = "flushed" if succeeded else "FAILED"
    logger.log(
        level,
        f"Batch {batch_number} {outcome}: {records_in_batch} cases "
        f"after {attempts} attempt(s)",
        extra={
            "run_id": run_id,
            "batch_number": batch_number,
            "records_in_batch": records_in_batch,
            "attempts": attempts,
            "succeeded": succeeded,
            "event": "flush_batch",
        },
    )


def log_linking_progress(
    run_id: str,
    records_processed: int,
    records_total: int | None = None,
    eta_seconds: float | None = None,
) -> None:
    """Log linking progress update.

    Args:
        run_id: Linking run identifier
        records_processed: Cases resolved so far
        records_total: Unlinked cases at the start of the run (if known)
        eta_seconds: Estimated seconds remaining
    """
    logger = get_logger("judgelink.linking")
    if records_total:
        percent = records_processed / records_total * 100
        message = f"Progress: {records_processed}/{records_total} cases ({percent:.2f}%)"
        if eta_seconds is not None:
            message += f" - ETA: {round(eta_seconds / 60)} minutes"
    else:
        message = f"Progress: {records_processed} cases"
    logger.info(
        message,
        extra={
            "run_id": run_id,
            "records_processed": records_processed,
            "records_total": records_total,
            "eta_seconds": eta_seconds,
            "event": "linking_progress",
        },
    )


def log_resolution_event(
    strategy: str | None,
    case_id: str,
    judge_id: str | None,
    raw_name: str | None,
) -> None:
    """Log a single case resolution.

    Args:
        strategy: Winning strategy (None when unmatched)
        case_id: Case being resolved
        judge_id: Matched judge ID (if found)
        raw_name: Judge name the decision was based on
    """
    logger = get_logger("judgelink.resolution")
    logger.debug(
        f"Resolution {strategy or 'unmatched'}: {raw_name!r} -> {judge_id or 'no match'}",
        extra={
            "strategy": strategy,
            "case_id": case_id,
            "judge_id": judge_id,
            "raw_name": raw_name,
            "event": "case_resolution",
        },
    )


def log_integrity_check(
    check: str,
    passed: bool,
    details: dict[str, Any] | None = None,
) -> None:
    """Log an integrity check outcome.

    Args:
        check: Check name
        passed: Whether the check found no problems
        details: Measurement details
    """
    logger = get_logger("judgelink.integrity")
    level = logging.INFO if passed else logging.WARNING
    logger.log(
        level,
        f"Integrity {check}: {'ok' if passed else 'issues found'}",
        extra={
            "check": check,
            "passed": passed,
            "details": details,
            "event": "integrity_check",
        },
    )
