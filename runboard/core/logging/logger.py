"""
Runboard Logging Subsystem

Purpose
-------
Single structured logging stack for the ranking engine:

- JSON records for aggregation, coloured or plain text for local work.
- ContextVar-backed `LogContext` so async call chains carry actor, scope and
  event identifiers into every record they emit.
- Correlation / request IDs for end-to-end tracing of one submission.
- QueueHandler + QueueListener so formatting and file I/O never run on the
  event loop thread.
- Bounded queue; records are dropped (and counted) instead of blocking when a
  log storm fills it.

Responsibilities
----------------
- Configure the root logger once per process.
- Enrich records with the context fields:
  - actor_id, scope, event_id
  - correlation_id, request_id
  - component, operation
- Merge `extra={...}` fields into the JSON payload.
- Expose `get_logger()`, `LogContext`, `set_log_context()`,
  `clear_log_context()` and `get_logging_health()`.

Non-Responsibilities
--------------------
- Shipping logs anywhere beyond stdout and the optional local file.
- Metrics (see `runboard.core.redis.metrics`).

Dependencies
------------
- runboard.core.config.config.Config (level, JSON / colour flags, logs dir)
"""

from __future__ import annotations

import atexit
import json
import logging
import queue
import sys
import uuid
from contextvars import ContextVar, Token
from dataclasses import dataclass
from datetime import datetime, timezone
from logging import Logger
from logging.handlers import (
    QueueHandler,
    QueueListener,
    TimedRotatingFileHandler,
)
from pathlib import Path
from typing import Any, Dict, List, Optional

from runboard.core.config.config import Config


# ============================================================================
# Operation Context (ContextVars)
# ============================================================================

_log_context: ContextVar[Dict[str, Any]] = ContextVar(
    "runboard_log_context",
    default={},
)

# Fields every record carries; "N/A" when unset
CONTEXT_FIELDS = (
    "actor_id",
    "scope",
    "event_id",
    "correlation_id",
    "request_id",
    "component",
    "operation",
)

_UNSET = "N/A"


# ============================================================================
# Config / Environment
# ============================================================================


@dataclass(frozen=True, slots=True)
class LoggerConfig:
    """Formatting and sink settings for the logging subsystem."""

    CONSOLE_FORMAT: str = "%(asctime)s | %(levelname)-8s | %(name)-36s | %(message)s"
    DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"

    FILE_BASENAME: str = "runboard.json.log"
    FILE_BACKUP_COUNT: int = 2

    QUEUE_MAX_SIZE: int = 10_000

    @property
    def environment(self) -> str:
        return str(Config.ENVIRONMENT).lower()

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def logs_dir(self) -> Path:
        return Path(Config.LOGS_DIR).resolve()

    @property
    def log_level(self) -> int:
        level_name = Config.LOG_LEVEL if isinstance(Config.LOG_LEVEL, str) else "INFO"
        return getattr(logging, level_name.upper(), logging.INFO)

    @property
    def use_json(self) -> bool:
        if Config.LOG_JSON is None:
            return self.is_production
        return bool(Config.LOG_JSON)

    @property
    def use_colors(self) -> bool:
        if self.use_json:
            return False
        return bool(Config.LOG_COLORS) and sys.stdout.isatty()

    @property
    def file_enabled(self) -> bool:
        return bool(Config.LOG_FILE_ENABLED)


LOGGER_CONFIG = LoggerConfig()


# ============================================================================
# Logging Metrics / Health
# ============================================================================


@dataclass(slots=True)
class LoggingMetrics:
    records_enqueued: int = 0
    records_dropped: int = 0
    listener_errors: int = 0


@dataclass(frozen=True, slots=True)
class LoggingHealth:
    initialized: bool
    queue_size: int
    queue_max_size: int
    records_enqueued: int
    records_dropped: int
    listener_errors: int
    file_enabled: bool


_logging_metrics: LoggingMetrics = LoggingMetrics()
_log_queue: Optional["queue.Queue[logging.LogRecord]"] = None
_queue_listener: Optional[QueueListener] = None
_shutdown_registered = False

_INITIALIZED_FLAG = "_runboard_logging_initialized"


# ============================================================================
# Filters & Formatters
# ============================================================================


class ContextFilter(logging.Filter):
    """Copy the active LogContext onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context = _log_context.get({})

        for field in ("actor_id", "scope", "event_id", "operation"):
            if not hasattr(record, field):
                setattr(record, field, context.get(field) or _UNSET)

        correlation_id = (
            context.get("correlation_id") or context.get("request_id") or _UNSET
        )
        record.correlation_id = correlation_id
        record.request_id = context.get("request_id") or correlation_id

        # e.g. "runboard.modules.leaderboard" unless the context names one
        record.component = context.get("component") or ".".join(
            record.name.split(".")[:3]
        )
        return True


class ColoredFormatter(logging.Formatter):
    COLORS: Dict[str, str] = {
        "DEBUG": "\033[90m",
        "INFO": "\033[94m",
        "WARNING": "\033[93m",
        "ERROR": "\033[91m",
        "CRITICAL": "\033[91m\033[1m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        original = record.levelname
        color = self.COLORS.get(original)
        if color:
            record.levelname = f"{color}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


class JSONFormatter(logging.Formatter):
    """One JSON object per record; `extra` fields land under "extra"."""

    STANDARD_ATTRS = frozenset(
        logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
    ) | {"message", "asctime", "taskName"}

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value not in (None, _UNSET):
                payload[field] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in self.STANDARD_ATTRS
            and key not in CONTEXT_FIELDS
            and not key.startswith("_")
        }
        if extra:
            payload["extra"] = extra

        return json.dumps(payload, ensure_ascii=False, default=str)


# ============================================================================
# Queue Handler & Listener
# ============================================================================


class RunboardQueueHandler(QueueHandler):
    def enqueue(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        _logging_metrics.records_enqueued += 1
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            _logging_metrics.records_dropped += 1
            sys.stderr.write("Runboard logging queue full; dropping log record.\n")


class RunboardQueueListener(QueueListener):
    def handleError(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        _logging_metrics.listener_errors += 1
        sys.stderr.write("Runboard logging handler failed to emit a record.\n")


# ============================================================================
# Global Setup
# ============================================================================


def _build_console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(LOGGER_CONFIG.log_level)

    if LOGGER_CONFIG.use_json:
        formatter: logging.Formatter = JSONFormatter()
    elif LOGGER_CONFIG.use_colors:
        formatter = ColoredFormatter(
            fmt=LOGGER_CONFIG.CONSOLE_FORMAT, datefmt=LOGGER_CONFIG.DATE_FORMAT
        )
    else:
        formatter = logging.Formatter(
            fmt=LOGGER_CONFIG.CONSOLE_FORMAT, datefmt=LOGGER_CONFIG.DATE_FORMAT
        )

    handler.setFormatter(formatter)
    return handler


def _build_file_handler() -> logging.Handler:
    LOGGER_CONFIG.logs_dir.mkdir(parents=True, exist_ok=True)

    handler = TimedRotatingFileHandler(
        filename=str(LOGGER_CONFIG.logs_dir / LOGGER_CONFIG.FILE_BASENAME),
        when="midnight",
        backupCount=LOGGER_CONFIG.FILE_BACKUP_COUNT,
        encoding="utf-8",
        utc=True,
    )
    handler.setLevel(LOGGER_CONFIG.log_level)
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging() -> None:
    """Install the queue-backed handler stack on the root logger (idempotent)."""
    global _queue_listener, _logging_metrics, _log_queue, _shutdown_registered

    root = logging.getLogger()
    if getattr(root, _INITIALIZED_FLAG, False):
        return

    _logging_metrics = LoggingMetrics()

    root.setLevel(LOGGER_CONFIG.log_level)
    root.handlers.clear()
    root.filters.clear()

    sinks: List[logging.Handler] = [_build_console_handler()]
    if LOGGER_CONFIG.file_enabled:
        sinks.append(_build_file_handler())

    _log_queue = queue.Queue(LOGGER_CONFIG.QUEUE_MAX_SIZE)
    _queue_listener = RunboardQueueListener(
        _log_queue, *sinks, respect_handler_level=True
    )
    _queue_listener.start()
    if not _shutdown_registered:
        # Drain queued records before the interpreter exits
        atexit.register(shutdown_logging)
        _shutdown_registered = True

    queue_handler = RunboardQueueHandler(_log_queue)
    queue_handler.setLevel(LOGGER_CONFIG.log_level)
    # Enrich before the record is handed to the listener thread
    queue_handler.addFilter(ContextFilter())
    root.addHandler(queue_handler)

    for noisy in ("redis", "asyncio", "testcontainers", "urllib3", "docker"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    setattr(root, _INITIALIZED_FLAG, True)

    logging.getLogger(__name__).info(
        "Logging initialized",
        extra={
            "environment": LOGGER_CONFIG.environment,
            "log_level": logging.getLevelName(LOGGER_CONFIG.log_level),
            "json": LOGGER_CONFIG.use_json,
            "colors": LOGGER_CONFIG.use_colors,
            "file_enabled": LOGGER_CONFIG.file_enabled,
            "queue_max_size": LOGGER_CONFIG.QUEUE_MAX_SIZE,
        },
    )


def shutdown_logging() -> None:
    """Stop the listener, flush and detach handlers."""
    global _queue_listener, _log_queue

    root = logging.getLogger()
    if not getattr(root, _INITIALIZED_FLAG, False):
        return

    logging.getLogger(__name__).info("Shutting down logging subsystem")

    if _queue_listener is not None:
        _queue_listener.stop()
        _queue_listener = None

    for handler in list(root.handlers):
        handler.flush()
        handler.close()
        root.removeHandler(handler)

    setattr(root, _INITIALIZED_FLAG, False)
    _log_queue = None


def get_logging_health() -> LoggingHealth:
    queue_size = _log_queue.qsize() if _log_queue is not None else 0
    max_size = _log_queue.maxsize if _log_queue is not None else 0

    return LoggingHealth(
        initialized=bool(getattr(logging.getLogger(), _INITIALIZED_FLAG, False)),
        queue_size=queue_size,
        queue_max_size=max_size,
        records_enqueued=_logging_metrics.records_enqueued,
        records_dropped=_logging_metrics.records_dropped,
        listener_errors=_logging_metrics.listener_errors,
        file_enabled=LOGGER_CONFIG.file_enabled,
    )


# ============================================================================
# Public API
# ============================================================================


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


def _new_correlation_id() -> str:
    return uuid.uuid4().hex[:12]


class LogContext:
    """
    Scoped log context usable as a sync or async context manager.

    Example
    -------
    >>> async with LogContext(actor_id="u1", event_id="evt-9", operation="submit"):
    ...     logger.info("Applying distance")
    """

    def __init__(
        self,
        actor_id: Optional[str] = None,
        scope: Optional[str] = None,
        event_id: Optional[str] = None,
        component: Optional[str] = None,
        operation: Optional[str] = None,
        correlation_id: Optional[str] = None,
        request_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        effective = correlation_id or request_id or _new_correlation_id()

        # Nested contexts inherit what they do not set themselves
        self.context: Dict[str, Any] = {
            **_log_context.get({}),
            **{
                key: value
                for key, value in {
                    "actor_id": actor_id,
                    "scope": scope,
                    "event_id": event_id,
                    "component": component,
                    "operation": operation,
                }.items()
                if value is not None
            },
            "correlation_id": effective,
            "request_id": request_id or effective,
            **extra,
        }
        self._token: Optional[Token[Dict[str, Any]]] = None

    def __enter__(self) -> "LogContext":
        self._token = _log_context.set(self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


def set_log_context(**fields: Any) -> None:
    """Merge `fields` into the current context; None values are ignored."""
    current = _log_context.get({}).copy()
    current.update({key: value for key, value in fields.items() if value is not None})
    if "request_id" in current and "correlation_id" not in current:
        current["correlation_id"] = current["request_id"]
    _log_context.set(current)


def get_log_context() -> Dict[str, Any]:
    return dict(_log_context.get({}))


def clear_log_context() -> None:
    _log_context.set({})


# Initialize logging automatically
setup_logging()
