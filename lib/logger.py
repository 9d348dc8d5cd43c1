# =============================================================================
# lib/logger.py - Structured Logging
# =============================================================================
# Process-wide logging setup for the Codionix API.
#
# - Console output everywhere, plus logs/error.log and logs/combined.log
# - JSON lines in production, a compact human-readable line elsewhere
# - The request correlation ID is stamped onto every record via a ContextVar
#
# Usage:
#   from lib.logger import setup_logging, track_operation
#
#   setup_logging(settings)
#   logger.info("Project created", extra={"project_id": project.id})
#
#   tracker = track_operation("project.create", user_id=user_id)
#   ...
#   tracker.success(project_id=project.id)
# =============================================================================

import json
import logging
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Correlation ID of the request currently being handled (None outside requests)
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

LEVEL_MAP = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

SLOW_QUERY_MS = 1000

# Attributes every LogRecord carries; anything else came in through `extra=`
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "asctime", "correlation_id", "taskName"}


def get_correlation_id() -> str | None:
    """Return the correlation ID bound to the current context."""
    return correlation_id_var.get()


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


# =============================================================================
# Filters & Formatters
# =============================================================================

class CorrelationFilter(logging.Filter):
    """Attach the current correlation ID to each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "correlation_id", None):
            record.correlation_id = correlation_id_var.get()
        return True


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line for log aggregation.

    Context passed through `extra=` is emitted at the top level next to the
    standard fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        correlation_id = getattr(record, "correlation_id", None)
        if correlation_id:
            payload["correlation_id"] = correlation_id
        payload.update(_extra_fields(record))
        if record.exc_info:
            payload["stack"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class ConsoleFormatter(logging.Formatter):
    """
    Compact development format:

        10:42:07 [INFO] [CID:1a2b3c4d] [project.create] (12ms) Project created {"project_id": "..."}
    """

    def format(self, record: logging.LogRecord) -> str:
        extra = _extra_fields(record)
        parts = [
            datetime.fromtimestamp(record.created).strftime("%H:%M:%S"),
            f"[{record.levelname}]",
        ]

        correlation_id = getattr(record, "correlation_id", None)
        if correlation_id:
            parts.append(f"[CID:{correlation_id[:8]}]")
        error_id = extra.pop("error_id", None)
        if error_id:
            parts.append(f"[EID:{str(error_id)[:8]}]")
        operation = extra.pop("operation", None)
        if operation:
            parts.append(f"[{operation}]")
        duration = extra.pop("duration", None)
        if duration is not None:
            parts.append(f"({duration}ms)")
        user_id = extra.pop("user_id", None)
        if user_id:
            parts.append(f"[User:{str(user_id)[:8]}]")

        parts.append(record.getMessage())
        if extra:
            parts.append(json.dumps(extra, default=str))

        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


# =============================================================================
# Setup
# =============================================================================

def setup_logging(settings) -> None:
    """
    Configure the root logger from application settings.

    Safe to call more than once; previously installed handlers are replaced.
    """
    level = LEVEL_MAP.get(settings.LOG_LEVEL, logging.INFO)
    formatter: logging.Formatter = JsonFormatter() if settings.is_production else ConsoleFormatter()
    correlation_filter = CorrelationFilter()

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_codionix", False):
            root.removeHandler(handler)
            handler.close()

    handlers: list[logging.Handler] = []

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    handlers.append(console)

    if not settings.is_test:
        log_dir = Path(settings.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)

        error_file = RotatingFileHandler(
            log_dir / "error.log", maxBytes=5 * 1024 * 1024, backupCount=5, encoding="utf-8"
        )
        error_file.setLevel(logging.ERROR)
        handlers.append(error_file)

        combined_file = RotatingFileHandler(
            log_dir / "combined.log", maxBytes=5 * 1024 * 1024, backupCount=5, encoding="utf-8"
        )
        combined_file.setLevel(level)
        handlers.append(combined_file)

    for handler in handlers:
        # File logs are always machine-parseable
        handler.setFormatter(formatter if handler is console else JsonFormatter())
        handler.addFilter(correlation_filter)
        handler._codionix = True
        root.addHandler(handler)

    root.setLevel(level)

    # Uvicorn's access log duplicates the correlation middleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    logger.debug(f"Logging configured (level={settings.LOG_LEVEL}, env={settings.ENVIRONMENT})")


# =============================================================================
# Helpers
# =============================================================================

class OperationTracker:
    """
    Times a named operation and logs its outcome.

    Returned by track_operation(); call exactly one of success()/failure(),
    optionally preceded by warn().
    """

    def __init__(self, operation: str, context: dict[str, Any], log: logging.Logger | None = None):
        self.operation = operation
        self.context = context
        self._log = log or logger
        self._start = time.perf_counter()

    @property
    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self._start) * 1000)

    def _extra(self, meta: dict[str, Any]) -> dict[str, Any]:
        return {**self.context, **meta, "operation": self.operation, "duration": self.elapsed_ms}

    def success(self, **meta: Any) -> None:
        self._log.info(f"{self.operation} completed", extra=self._extra(meta))

    def failure(self, exc: BaseException, **meta: Any) -> None:
        extra = self._extra(meta)
        extra["error"] = str(exc)
        extra["error_type"] = type(exc).__name__
        self._log.error(f"{self.operation} failed", extra=extra)

    def warn(self, message: str, **meta: Any) -> None:
        self._log.warning(message, extra=self._extra(meta))


def track_operation(operation: str, log: logging.Logger | None = None, **context: Any) -> OperationTracker:
    """Start timing `operation`; context is attached to every log line it emits."""
    return OperationTracker(operation, context, log)


def log_query(
    operation: str,
    model: str | None,
    duration_ms: int,
    success: bool,
    **meta: Any,
) -> None:
    """Log a database query; slow or failed queries are raised to warning."""
    extra = {**meta, "operation": f"db.{operation}", "duration": duration_ms, "model": model}
    if not success:
        logger.warning(f"Query failed: {operation}", extra=extra)
    elif duration_ms > SLOW_QUERY_MS:
        logger.warning(f"Slow query: {operation}", extra=extra)
    else:
        logger.debug(f"Query: {operation}", extra=extra)


def log_external_call(
    service: str,
    operation: str,
    duration_ms: int,
    success: bool,
    **meta: Any,
) -> None:
    """Log a call to an external service (SMTP, third-party APIs)."""
    extra = {**meta, "operation": f"{service}.{operation}", "duration": duration_ms, "service": service}
    if success:
        logger.info(f"External call succeeded: {service}.{operation}", extra=extra)
    else:
        logger.error(f"External call failed: {service}.{operation}", extra=extra)
