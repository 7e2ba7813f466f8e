"""
Meridian - Logging Configuration
================================

Every log line can carry the ids of the request, the operation and the
environment it belongs to. The ids live in context variables, so they follow
the code through threads started by FastAPI and through asyncio tasks in
health sweeps.

Usage:
    from meridian.observability import setup_logging, get_logger, OperationContext

    setup_logging(level="INFO", json_format=True)
    logger = get_logger(__name__)

    with OperationContext(correlation_id="req-123", environment_id=env.id):
        logger.info("Scan started")
"""

import contextvars
import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any
from uuid import uuid4

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar("correlation_id", default=None)
_operation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar("operation_id", default=None)
_environment_id: contextvars.ContextVar[str | None] = contextvars.ContextVar("environment_id", default=None)
_extra_context: contextvars.ContextVar[dict[str, Any] | None] = contextvars.ContextVar("extra_context", default=None)

# Chatty libraries that only log at WARNING and above
QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "alembic.runtime.migration", "watchdog")


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> contextvars.Token:
    return _correlation_id.set(correlation_id)


def get_operation_id() -> str | None:
    return _operation_id.get()


def set_operation_id(operation_id: str | None) -> contextvars.Token:
    return _operation_id.set(operation_id)


def get_environment_id() -> str | None:
    return _environment_id.get()


def set_environment_id(environment_id: str | None) -> contextvars.Token:
    return _environment_id.set(str(environment_id) if environment_id else None)


def generate_correlation_id() -> str:
    return f"corr-{uuid4().hex[:12]}"


def generate_operation_id() -> str:
    return f"op-{uuid4().hex[:12]}"


def current_ids() -> dict[str, str]:
    """The ids set in the current context, without the unset ones."""
    ids = {
        "correlation_id": _correlation_id.get(),
        "operation_id": _operation_id.get(),
        "environment_id": _environment_id.get(),
    }
    return {key: value for key, value in ids.items() if value}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OperationContext:
    """
    Scope ids (and any extra keyword context) to a block.

    Ids that are not given are inherited from the enclosing context. With
    auto_generate_correlation a fresh correlation id is made only when none
    is set yet; auto_generate_operation always makes a new operation id.
    """

    def __init__(self, correlation_id: str | None = None, operation_id: str | None = None,
                 environment_id: Any = None, auto_generate_correlation: bool = False,
                 auto_generate_operation: bool = False, **extra_context):
        self.correlation_id = correlation_id
        self.operation_id = operation_id
        self.environment_id = str(environment_id) if environment_id else None
        self.auto_generate_correlation = auto_generate_correlation
        self.auto_generate_operation = auto_generate_operation
        self.extra_context = extra_context
        self._tokens: list[contextvars.Token] = []

    def __enter__(self):
        correlation_id = self.correlation_id
        if correlation_id is None and self.auto_generate_correlation and not get_correlation_id():
            correlation_id = generate_correlation_id()
        operation_id = self.operation_id
        if operation_id is None and self.auto_generate_operation:
            operation_id = generate_operation_id()

        for var, value in ((_correlation_id, correlation_id), (_operation_id, operation_id),
                           (_environment_id, self.environment_id)):
            if value:
                self._tokens.append(var.set(value))
        if self.extra_context:
            self._tokens.append(_extra_context.set({**(_extra_context.get() or {}), **self.extra_context}))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        while self._tokens:
            token = self._tokens.pop()
            token.var.reset(token)
        return False


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def __init__(self, include_timestamp: bool = True, include_location: bool = True,
                 include_context: bool = True, extra_fields: dict[str, Any] | None = None):
        super().__init__()
        self.include_timestamp = include_timestamp
        self.include_location = include_location
        self.include_context = include_context
        self.extra_fields = extra_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }
        if self.include_timestamp:
            payload["timestamp"] = _utcnow().isoformat(timespec="milliseconds").replace("+00:00", "Z")
        if self.include_location:
            payload["location"] = {"file": record.filename, "line": record.lineno, "function": record.funcName}
        if self.include_context:
            payload.update(current_ids())
            if extra := _extra_context.get():
                payload["context"] = extra
        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc, tb = record.exc_info
            payload["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc),
                "traceback": traceback.format_exception(exc_type, exc, tb),
            }
        if hasattr(record, "extra_data"):
            payload["data"] = record.extra_data
        payload.update(self.extra_fields)
        return json.dumps(payload, default=str)


class ContextFormatter(logging.Formatter):
    """Readable lines prefixed with ``[correlation] [operation] [env:xxxxxxxx]``."""

    DEFAULT_FORMAT = "%(asctime)s %(levelname)-8s %(context)s%(name)s - %(message)s"

    def __init__(self, fmt: str | None = None, datefmt: str | None = None):
        super().__init__(fmt=fmt or self.DEFAULT_FORMAT, datefmt=datefmt or "%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        ids = current_ids()
        parts = [f"[{ids[key]}]" for key in ("correlation_id", "operation_id") if key in ids]
        if "environment_id" in ids:
            parts.append(f"[env:{ids['environment_id'][:8]}]")
        record.context = "".join(f"{part} " for part in parts)
        return super().format(record)


def setup_logging(level: str = "INFO", json_format: bool = False, log_to_console: bool = True,
                  log_to_file: bool = False, log_file_path: str | None = None,
                  max_file_size_mb: int = 10, backup_count: int = 5, include_location: bool = True,
                  extra_fields: dict[str, Any] | None = None) -> None:
    """Replace the root handlers with console and/or rotating-file handlers."""
    if json_format:
        formatter: logging.Formatter = StructuredFormatter(include_location=include_location,
                                                           extra_fields=extra_fields)
    else:
        formatter = ContextFormatter()

    handlers: list[logging.Handler] = []
    if log_to_console:
        handlers.append(logging.StreamHandler(sys.stdout))
    if log_to_file:
        log_path = Path(log_file_path or "./logs/meridian.log")
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(log_path, maxBytes=max_file_size_mb * 1024 * 1024,
                                            backupCount=backup_count))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper()))
    root.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_logging_from_settings(settings=None) -> None:
    """Configure logging from LOG_LEVEL / LOG_JSON / LOG_FILE; JSON lines also carry the deployment name."""
    if settings is None:
        from ..config import get_settings
        settings = get_settings()
    extra_fields = {"service": getattr(settings, "APP_NAME", "meridian")}
    if deployment := getattr(settings, "ENVIRONMENT", None):
        extra_fields["deployment"] = deployment
    setup_logging(
        level=settings.LOG_LEVEL,
        json_format=settings.LOG_JSON,
        log_to_file=bool(settings.LOG_FILE),
        log_file_path=settings.LOG_FILE,
        extra_fields=extra_fields,
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class OperationLogger:
    """
    Log the start and the outcome of a named operation.

    Runs the block inside an OperationContext with a fresh operation id. The
    correlation id of the surrounding request is reused when there is one.
    Exceptions are logged with their traceback and re-raised.
    """

    def __init__(self, logger: logging.Logger, operation_name: str, correlation_id: str | None = None,
                 operation_id: str | None = None, environment_id: Any = None, **context_data):
        self.logger = logger
        self.operation_name = operation_name
        self.correlation_id = correlation_id or get_correlation_id() or generate_correlation_id()
        self.operation_id = operation_id or generate_operation_id()
        self.environment_id = environment_id
        self.context_data = context_data
        self.start_time: datetime | None = None
        self._context: OperationContext | None = None

    @property
    def duration_ms(self) -> int:
        if self.start_time is None:
            return 0
        return int((_utcnow() - self.start_time).total_seconds() * 1000)

    def _event(self, event: str, **data) -> dict[str, Any]:
        return {"extra_data": {"event": event, "operation": self.operation_name, **data}}

    def __enter__(self):
        self._context = OperationContext(correlation_id=self.correlation_id, operation_id=self.operation_id,
                                         environment_id=self.environment_id, **self.context_data)
        self._context.__enter__()
        self.start_time = _utcnow()
        self.logger.info(f"Starting operation: {self.operation_name}",
                         extra=self._event("operation_start", **self.context_data))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration_ms = self.duration_ms
        try:
            if exc_type is None:
                self.logger.info(f"Completed operation: {self.operation_name} (duration: {duration_ms}ms)",
                                 extra=self._event("operation_success", duration_ms=duration_ms))
            else:
                self.logger.error(
                    f"Failed operation: {self.operation_name} (duration: {duration_ms}ms) - {exc_val}",
                    exc_info=(exc_type, exc_val, exc_tb),
                    extra=self._event("operation_failed", duration_ms=duration_ms, error_type=exc_type.__name__),
                )
        finally:
            if self._context is not None:
                self._context.__exit__(exc_type, exc_val, exc_tb)
        return False


def log_exception(logger: logging.Logger, message: str, exception: BaseException | None = None, **kwargs) -> None:
    """Log at ERROR with the traceback of ``exception`` (or of the one being handled)."""
    exc_info: Any = (type(exception), exception, exception.__traceback__) if exception else True
    logger.error(message, exc_info=exc_info, extra={"extra_data": kwargs} if kwargs else None)
