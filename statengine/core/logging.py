# Statify Engine - Structured Logging
# JSON/text logging with request correlation and execution timing

from __future__ import annotations

import json
import logging
import sys
import time
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Callable, Optional, ParamSpec, TypeVar
from uuid import uuid4

from pydantic import BaseModel

# Type variables for decorator typing
P = ParamSpec("P")
T = TypeVar("T")

# Context variables for request tracking (thread-safe)
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
procedure_ctx: ContextVar[Optional[str]] = ContextVar("procedure", default=None)


class LogContext(BaseModel):
    """Structured log context for correlation and debugging."""

    request_id: Optional[str] = None
    procedure: Optional[str] = None
    component: Optional[str] = None
    operation: Optional[str] = None
    duration_ms: Optional[float] = None
    extra: dict[str, Any] = {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, excluding None values."""
        return {k: v for k, v in self.model_dump().items() if v is not None and v != {}}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter for production environments.

    One JSON object per line, suitable for log aggregation.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": _utcnow().isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if request_id := request_id_ctx.get():
            log_data["request_id"] = request_id
        if procedure := procedure_ctx.get():
            log_data["procedure"] = procedure

        if isinstance(getattr(record, "context", None), LogContext):
            log_data["context"] = record.context.to_dict()

        if getattr(record, "extra_data", None):
            log_data["extra"] = record.extra_data

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info) if record.exc_info[0] else None
            }

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter for development environments."""

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m"
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.COLORS["RESET"])
        reset = self.COLORS["RESET"]

        timestamp = _utcnow().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]

        context_parts = []
        if request_id := request_id_ctx.get():
            context_parts.append(f"req:{request_id[:8]}")
        if procedure := procedure_ctx.get():
            context_parts.append(f"proc:{procedure}")

        context_str = f" [{' '.join(context_parts)}]" if context_parts else ""

        formatted = (
            f"{timestamp} | "
            f"{color}{record.levelname:8}{reset} | "
            f"{record.name}"
            f"{context_str} | "
            f"{record.getMessage()}"
        )

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            formatted += " | " + " ".join(f"{k}={v}" for k, v in extra_data.items())

        if record.exc_info:
            formatted += "\n" + "".join(traceback.format_exception(*record.exc_info))

        return formatted


class StructuredLogger:
    """
    Structured logger with context propagation.

    Wraps a stdlib logger; keyword arguments passed to the level methods
    are attached to the record as ``extra_data``.
    """

    def __init__(
        self,
        name: str,
        level: int = logging.INFO,
        use_json: bool = False
    ) -> None:
        self._logger = logging.getLogger(name)
        self._logger.setLevel(level)
        self._logger.propagate = False

        self._logger.handlers.clear()

        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter() if use_json else TextFormatter())
        self._logger.addHandler(handler)

    @property
    def name(self) -> str:
        return self._logger.name

    def _log(
        self,
        level: int,
        message: str,
        context: Optional[LogContext] = None,
        **extra: Any
    ) -> None:
        """Internal logging method with context support."""
        if not self._logger.isEnabledFor(level):
            return
        record = self._logger.makeRecord(
            name=self._logger.name,
            level=level,
            fn="",
            lno=0,
            msg=message,
            args=(),
            exc_info=None
        )

        if context:
            record.context = context
        if extra:
            record.extra_data = extra

        self._logger.handle(record)

    def debug(self, message: str, context: Optional[LogContext] = None, **extra: Any) -> None:
        self._log(logging.DEBUG, message, context, **extra)

    def info(self, message: str, context: Optional[LogContext] = None, **extra: Any) -> None:
        self._log(logging.INFO, message, context, **extra)

    def warning(self, message: str, context: Optional[LogContext] = None, **extra: Any) -> None:
        self._log(logging.WARNING, message, context, **extra)

    def error(
        self,
        message: str,
        context: Optional[LogContext] = None,
        exc_info: bool = False,
        **extra: Any
    ) -> None:
        if exc_info:
            self._logger.error(message, exc_info=True, extra={"context": context, "extra_data": extra})
        else:
            self._log(logging.ERROR, message, context, **extra)

    def exception(self, message: str, context: Optional[LogContext] = None, **extra: Any) -> None:
        """Log exception with full traceback."""
        self._logger.exception(message, extra={"context": context, "extra_data": extra})


def log_execution_time(
    logger: Optional[StructuredLogger] = None,
    operation_name: Optional[str] = None,
    warn_threshold_ms: float = 1000.0
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """
    Decorator for logging function execution time.

    Args:
        logger: Logger instance (uses the function's module logger if None)
        operation_name: Custom operation name (uses function name if None)
        warn_threshold_ms: Durations above this are logged as warnings
    """
    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        _operation = operation_name or func.__name__

        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            _logger = logger or get_logger(func.__module__)
            start_time = time.perf_counter()

            context = LogContext(
                operation=_operation,
                request_id=request_id_ctx.get(),
                procedure=procedure_ctx.get(),
            )

            _logger.debug(f"Starting {_operation}", context=context)

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                duration_ms = (time.perf_counter() - start_time) * 1000
                context.duration_ms = round(duration_ms, 2)
                _logger.error(
                    f"Failed {_operation} after {duration_ms:.2f}ms: {e}",
                    context=context,
                    exc_info=True
                )
                raise

            duration_ms = (time.perf_counter() - start_time) * 1000
            context.duration_ms = round(duration_ms, 2)

            log_method = _logger.warning if duration_ms > warn_threshold_ms else _logger.debug
            log_method(f"Completed {_operation} in {duration_ms:.2f}ms", context=context)

            return result

        return wrapper
    return decorator


def set_request_context(
    request_id: Optional[str] = None,
    procedure: Optional[str] = None,
) -> None:
    """Set request context for all logs in the current context."""
    if request_id:
        request_id_ctx.set(request_id)
    if procedure:
        procedure_ctx.set(procedure)


def clear_request_context() -> None:
    """Clear request context after request completion."""
    request_id_ctx.set(None)
    procedure_ctx.set(None)


def generate_request_id() -> str:
    """Generate unique request ID for correlation."""
    return str(uuid4())


_LOGGERS: dict[str, StructuredLogger] = {}


def get_logger(
    name: str,
    use_json: Optional[bool] = None,
    level: Optional[int] = None
) -> StructuredLogger:
    """
    Factory function for creating structured loggers.

    Format and level default to the engine settings; loggers are cached
    per name so handlers are attached once.
    """
    if name in _LOGGERS and use_json is None and level is None:
        return _LOGGERS[name]

    from statengine.core.config import get_settings

    cfg = get_settings()
    if use_json is None:
        use_json = cfg.log_format == "json"
    if level is None:
        level = logging.getLevelName(cfg.log_level.value)

    logger = StructuredLogger(name=name, level=level, use_json=use_json)
    _LOGGERS[name] = logger
    return logger
