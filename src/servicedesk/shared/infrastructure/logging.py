"""
Structured Logging
==================

JSON logs for the API, the tick loop and the job handlers.

Every record carries ``timestamp``, ``environment`` and, inside a request,
``correlation_id``. Job handlers log ``job_id``/``job_type``/``ticket_id``
as extras so one ticket's breach, escalation and notification trail can
be followed in the aggregator.

Usage:
    from servicedesk.shared.infrastructure.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Job executed", extra=job.log_fields())
"""

import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, MutableMapping, Optional

from pythonjsonlogger import jsonlogger

REDACTED = "***REDACTED***"

# Matched against lower-cased extra keys
_SENSITIVE_MARKERS = ("password", "secret", "api_key", "authorization")

NOISY_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "apscheduler": logging.WARNING,
    "httpx": logging.WARNING,
    "watchdog": logging.WARNING,
}


def is_sensitive_key(key: str) -> bool:
    """Credentials, plus anything ending in ``token`` (survey links are bearer URLs)."""
    lowered = key.lower()
    return lowered.endswith("token") or any(marker in lowered for marker in _SENSITIVE_MARKERS)


def redact(fields: MutableMapping[str, Any]) -> None:
    for key, value in list(fields.items()):
        if isinstance(value, str) and is_sensitive_key(key):
            fields[key] = REDACTED


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that stamps environment and time and redacts secrets."""

    def __init__(self, *args: Any, environment: str = "unknown", **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._environment = environment

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        log_record["environment"] = self._environment
        redact(log_record)


class ContextLogger(logging.LoggerAdapter):
    """
    Adapter that merges bound context into each call's ``extra``.

    The stdlib adapter replaces ``extra`` outright; here call-site fields
    win over bound ones and both reach the formatter.
    """

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]):
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def setup_logging(level: str = "INFO", environment: str = "development") -> None:
    """
    Route all logging to stdout as JSON.

    Args:
        level: Root level name (DEBUG, INFO, WARNING, ERROR)
        environment: Stamped on every record
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(CustomJsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        environment=environment,
    ))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    for name, noisy_level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(noisy_level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_context_logger(
    name: str,
    correlation_id: Optional[str] = None,
    **context: Any
) -> logging.LoggerAdapter:
    """
    Logger with fields bound for a request or a job.

    Args:
        name: Logger name
        correlation_id: Request correlation ID, if any
        **context: Further fields, e.g. ``ticket_id``
    """
    bound: dict[str, Any] = dict(context)
    if correlation_id:
        bound["correlation_id"] = correlation_id
    return ContextLogger(get_logger(name), bound)


@contextmanager
def log_latency(
    logger: logging.Logger,
    operation: str,
    slow_ms: Optional[float] = None,
    **extra_context: Any
):
    """
    Log how long the wrapped block took.

    Logged at INFO, or WARNING once ``slow_ms`` is exceeded.

    Usage:
        with log_latency(logger, "scheduler_tick", slow_ms=5000, due_jobs=len(due)):
            ...
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        level = logging.WARNING if slow_ms is not None and latency_ms > slow_ms else logging.INFO
        logger.log(
            level,
            f"{operation} completed",
            extra={"operation": operation, "latency_ms": latency_ms, **extra_context},
        )
