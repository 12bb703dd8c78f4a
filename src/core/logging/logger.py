"""
Economy engine logging subsystem.

Purpose
-------
Single logging setup for the engine. Every economy operation (shop roll,
craft, listing buy...) logs through the standard library loggers returned by
`get_logger(__name__)`; this module decides where those records go and what
they carry.

- Records are handed to a bounded queue and written by a QueueListener
  thread, so services never block on I/O. On overflow the record is dropped
  and counted.
- `ContextFilter` stamps each record with the operation context held in a
  ContextVar (`LogContext`, `set_log_context`).
- `JSONFormatter` groups economy fields: `*_id` references under `refs`,
  `*_silver` amounts under `amounts`, everything else under `extra`.

Outputs
-------
- stdout: JSON when `LOG_JSON` is set (default in production), plain text
  otherwise.
- `logs/economy_daily.json.log`: rotating JSON file, skipped in testing.
"""

from __future__ import annotations

import json
import logging
import queue
import sys
import uuid
from contextvars import ContextVar, Token
from dataclasses import dataclass
from datetime import datetime, timezone
from logging import Logger
from logging.handlers import QueueHandler, QueueListener, TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional

from src.core.config.config import Config

_request_context: ContextVar[Dict[str, Any]] = ContextVar("request_context", default={})

_INITIALIZED_FLAG = "_economy_logging_initialized"


# ============================================================================
# Settings
# ============================================================================


@dataclass(frozen=True)
class LoggerConfig:
    """Logging settings resolved from `Config` at setup time."""

    level: int
    json_console: bool
    file_enabled: bool
    logs_dir: Path
    queue_max_size: int = 10_000
    file_name: str = "economy_daily.json.log"
    file_backups: int = 1
    text_format: str = (
        "%(asctime)s | %(levelname)-8s | %(component)-12s "
        "| [%(user_id)s:%(operation)s] | %(message)s"
    )
    date_format: str = "%Y-%m-%d %H:%M:%S"

    @classmethod
    def from_config(cls) -> "LoggerConfig":
        return cls(
            level=getattr(logging, str(Config.LOG_LEVEL).upper(), logging.INFO),
            json_console=bool(Config.LOG_JSON),
            file_enabled=not Config.is_testing(),
            logs_dir=Path(Config.LOGS_DIR).resolve(),
        )


@dataclass(frozen=True)
class LoggingHealth:
    initialized: bool
    queue_size: int
    queue_max_size: int
    records_dropped: int


# ============================================================================
# Filter & Formatter
# ============================================================================


def _component_for(logger_name: str) -> str:
    """`src.modules.marketplace.service` -> `marketplace`; `src.core.database.service` -> `database`."""
    parts = logger_name.split(".")
    if len(parts) >= 3 and parts[0] == "src" and parts[1] in ("modules", "core"):
        return parts[2]
    return parts[-1]


class ContextFilter(logging.Filter):
    """
    Stamp records with the active operation context.

    Values passed explicitly through `extra=` win over the context, so a
    service logging `extra={"user_id": seller_id}` keeps the seller id.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context: Dict[str, Any] = _request_context.get({})

        if not hasattr(record, "user_id"):
            record.user_id = context.get("user_id", "N/A")
        if not hasattr(record, "operation"):
            record.operation = context.get("operation") or "N/A"

        correlation_id = context.get("correlation_id") or context.get("request_id") or "N/A"
        record.correlation_id = correlation_id
        record.request_id = context.get("request_id", correlation_id)
        record.component = context.get("component") or _component_for(record.name)
        return True


class JSONFormatter(logging.Formatter):
    # Attributes every LogRecord carries; anything else arrived through `extra=`.
    RECORD_ATTRS = frozenset(
        logging.LogRecord("", 0, "", 0, "", (), None).__dict__
    ) | {"message", "asctime", "taskName"}

    CONTEXT_ATTRS = ("user_id", "correlation_id", "request_id", "component", "operation")

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }

        for attr in self.CONTEXT_ATTRS:
            value = getattr(record, attr, None)
            if value not in (None, "N/A"):
                log_data[attr] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        refs: Dict[str, Any] = {}
        amounts: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in record.__dict__.items():
            if key in self.RECORD_ATTRS or key in self.CONTEXT_ATTRS or key.startswith("_"):
                continue
            if key.endswith("_id"):
                refs[key] = value
            elif key.endswith("_silver"):
                amounts[key] = value
            else:
                extra[key] = value

        for name, group in (("refs", refs), ("amounts", amounts), ("extra", extra)):
            if group:
                log_data[name] = group

        return json.dumps(log_data, ensure_ascii=False, default=str)


# ============================================================================
# Queue plumbing
# ============================================================================


class DroppingQueueHandler(QueueHandler):
    """QueueHandler that drops (and counts) records when the queue is full."""

    dropped: int = 0

    def enqueue(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            DroppingQueueHandler.dropped += 1


_queue_listener: Optional[QueueListener] = None
_log_queue: Optional["queue.Queue[logging.LogRecord]"] = None


def _build_handlers(settings: LoggerConfig) -> List[logging.Handler]:
    console = logging.StreamHandler(sys.stdout)
    if settings.json_console:
        console.setFormatter(JSONFormatter())
    else:
        console.setFormatter(
            logging.Formatter(fmt=settings.text_format, datefmt=settings.date_format)
        )
    handlers: List[logging.Handler] = [console]

    if settings.file_enabled:
        settings.logs_dir.mkdir(parents=True, exist_ok=True)
        daily = TimedRotatingFileHandler(
            filename=str(settings.logs_dir / settings.file_name),
            when="midnight",
            backupCount=settings.file_backups,
            encoding="utf-8",
            utc=True,
        )
        daily.setFormatter(JSONFormatter())
        handlers.append(daily)

    for handler in handlers:
        handler.setLevel(settings.level)
    return handlers


# ============================================================================
# Setup / teardown
# ============================================================================


def setup_logging() -> None:
    global _queue_listener, _log_queue

    root = logging.getLogger()
    if getattr(root, _INITIALIZED_FLAG, False):
        return

    settings = LoggerConfig.from_config()
    DroppingQueueHandler.dropped = 0

    root.setLevel(settings.level)
    for handler in list(root.handlers):
        if isinstance(handler, QueueHandler):
            root.removeHandler(handler)

    _log_queue = queue.Queue(settings.queue_max_size)
    _queue_listener = QueueListener(
        _log_queue, *_build_handlers(settings), respect_handler_level=True
    )
    _queue_listener.start()

    queue_handler = DroppingQueueHandler(_log_queue)
    queue_handler.setLevel(settings.level)
    queue_handler.addFilter(ContextFilter())
    root.addHandler(queue_handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if Config.DATABASE_ECHO else logging.WARNING
    )

    setattr(root, _INITIALIZED_FLAG, True)
    logging.getLogger(__name__).info(
        "Logging initialized",
        extra={
            "environment": str(Config.ENVIRONMENT).lower(),
            "log_level": logging.getLevelName(settings.level),
            "json": settings.json_console,
            "file": settings.file_enabled,
        },
    )


def shutdown_logging() -> None:
    """Flush the queue and detach the handlers; safe to call twice."""
    global _queue_listener, _log_queue

    root = logging.getLogger()
    if not getattr(root, _INITIALIZED_FLAG, False):
        return

    for handler in list(root.handlers):
        if isinstance(handler, DroppingQueueHandler):
            root.removeHandler(handler)

    if _queue_listener is not None:
        _queue_listener.stop()
        for handler in _queue_listener.handlers:
            handler.close()
        _queue_listener = None

    setattr(root, _INITIALIZED_FLAG, False)
    _log_queue = None


def get_logging_health() -> LoggingHealth:
    return LoggingHealth(
        initialized=bool(getattr(logging.getLogger(), _INITIALIZED_FLAG, False)),
        queue_size=_log_queue.qsize() if _log_queue is not None else 0,
        queue_max_size=_log_queue.maxsize if _log_queue is not None else 0,
        records_dropped=DroppingQueueHandler.dropped,
    )


# ============================================================================
# Public API
# ============================================================================


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


class LogContext:
    """
    Scope operation context for every record logged inside the block.

    >>> async with LogContext(user_id=42, operation="marketplace.buy"):
    ...     await marketplace.buy_listing(42, 7)
    """

    def __init__(
        self,
        user_id: Optional[int] = None,
        component: Optional[str] = None,
        operation: Optional[str] = None,
        correlation_id: Optional[str] = None,
        request_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        effective = correlation_id or request_id or uuid.uuid4().hex[:8]
        self.context: Dict[str, Any] = {
            "user_id": str(user_id) if user_id is not None else "N/A",
            "component": component,
            "operation": operation,
            "correlation_id": effective,
            "request_id": request_id or effective,
            **extra,
        }
        self._token: Optional[Token[Dict[str, Any]]] = None

    def __enter__(self) -> "LogContext":
        self._token = _request_context.set(self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _request_context.reset(self._token)
            self._token = None

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


def get_log_context() -> Dict[str, Any]:
    return dict(_request_context.get({}))


def set_log_context(
    user_id: Optional[int] = None,
    component: Optional[str] = None,
    operation: Optional[str] = None,
    correlation_id: Optional[str] = None,
    request_id: Optional[str] = None,
    **extra: Any,
) -> None:
    """Merge fields into the current context (outside any `LogContext` block)."""
    current = dict(_request_context.get({}))

    if user_id is not None:
        current["user_id"] = str(user_id)
    if component is not None:
        current["component"] = component
    if operation is not None:
        current["operation"] = operation
    if correlation_id:
        current["correlation_id"] = correlation_id
    if request_id:
        current["request_id"] = request_id
        current.setdefault("correlation_id", request_id)

    current.update(extra)
    _request_context.set(current)


def clear_log_context() -> None:
    _request_context.set({})


setup_logging()
