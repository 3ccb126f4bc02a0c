"""
TRADE-UP Observability Framework

Structured logging with correlation ids for the escrow components.

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                    Escrow Components                     │
    │  logger.info("deposit accepted", index=3, depositor=x)  │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │                     TradeUpLogger                        │
    │   layer, operation, error code, correlation id, context │
    └───────────────────────┬─────────────────────────────────┘
                            │
    ┌───────────────────────▼─────────────────────────────────┐
    │                       Handlers                           │
    │        StructuredHandler (json) │ StreamHandler (text)   │
    └─────────────────────────────────────────────────────────┘

Copyright (c) 2024 Momentum. All rights reserved.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import time
import traceback
import uuid
import weakref
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import wraps
from typing import Any, Callable, Dict, Optional, TypeVar

# Context variable for operation-scoped correlation
correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)


class EscrowLayer(Enum):
    """TRADE-UP components, used to categorize log output."""
    LEDGER = "ledger"
    STATUS = "status"
    GATE = "gate"
    REDEMPTION = "redemption"
    CUSTODY = "custody"
    CONFIG = "config"
    CLI = "cli"


@dataclass
class LogEvent:
    """Structured log event."""
    timestamp: str
    level: str
    logger: str
    message: str
    correlation_id: str = ""
    layer: str = ""
    operation: str = ""
    duration_ms: Optional[float] = None
    error_code: str = ""
    context: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, excluding empty values."""
        d = asdict(self)
        return {k: v for k, v in d.items() if v is not None and v != "" and v != {}}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class StructuredHandler(logging.Handler):
    """Logging handler that outputs structured JSON."""

    def __init__(self, stream: Any = None):
        super().__init__()
        self.stream = stream or sys.stderr

    def emit(self, record: logging.LogRecord) -> None:
        try:
            event = LogEvent(
                timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                level=record.levelname.lower(),
                logger=record.name,
                message=record.getMessage(),
                correlation_id=correlation_id_var.get(),
                layer=getattr(record, "layer", ""),
                operation=getattr(record, "operation", ""),
                duration_ms=getattr(record, "duration_ms", None),
                error_code=getattr(record, "error_code", ""),
                context=getattr(record, "context", {}),
            )

            if record.exc_info:
                event.exception = "".join(traceback.format_exception(*record.exc_info))

            self.stream.write(event.to_json() + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)


class _TextHandler(logging.StreamHandler):
    """Plain-text handler; marks itself so it is installed once per logger."""

    def __init__(self, stream: Any = None):
        super().__init__(stream or sys.stderr)
        self.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s [%(name)s] %(message)s %(context)s"
        ))


def _make_handler(log_format: str) -> logging.Handler:
    handler: logging.Handler = _TextHandler() if log_format == "text" else StructuredHandler()
    handler.tradeup_managed = True
    return handler


# Every TradeUpLogger, so configuration loaded later can be re-applied
_loggers: "weakref.WeakSet[TradeUpLogger]" = weakref.WeakSet()


class TradeUpLogger:
    """
    Structured logger for TRADE-UP components.

    Automatically includes the correlation id and layer in every record.
    Level and format come from the observability configuration unless given
    explicitly, and are re-read by configure().
    """

    def __init__(
        self,
        name: str,
        layer: EscrowLayer,
        level: Optional[str] = None,
        log_format: Optional[str] = None,
    ):
        self.name = name
        self.layer = layer
        self._logger = logging.getLogger(f"tradeup.{layer.value}.{name}")
        self._level = level
        self._log_format = log_format
        self.configure()
        _loggers.add(self)

    def configure(self) -> None:
        """Apply the current observability configuration."""
        from tradeup.config import ConfigValidationError, get_config

        observability = get_config().observability
        level = self._level or observability.log_level.get()
        log_format = self._log_format or observability.log_format.get()
        numeric_level = getattr(logging, str(level).upper(), None)
        if not isinstance(numeric_level, int):
            raise ConfigValidationError(f"Invalid log level: {level}")
        self._logger.setLevel(numeric_level)

        wanted = _TextHandler if log_format == "text" else StructuredHandler
        managed = [h for h in self._logger.handlers if getattr(h, "tradeup_managed", False)]
        if any(type(h) is wanted for h in managed):
            return
        for handler in managed:
            self._logger.removeHandler(handler)
            handler.close()
        self._logger.addHandler(_make_handler(log_format))

    def _log(
        self,
        level: int,
        message: str,
        operation: str = "",
        error_code: str = "",
        duration_ms: Optional[float] = None,
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        extra = {
            "layer": self.layer.value,
            "operation": operation,
            "error_code": error_code,
            "duration_ms": duration_ms,
            "context": context,
        }
        self._logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, **context: Any) -> None:
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(logging.WARNING, message, **context)

    def error(
        self,
        message: str,
        error_code: str = "",
        exc_info: bool = False,
        **context: Any,
    ) -> None:
        self._log(logging.ERROR, message, error_code=error_code, exc_info=exc_info, **context)

    def operation(
        self,
        name: str,
        duration_ms: float,
        success: bool = True,
        **context: Any,
    ) -> None:
        """Log an operation completion."""
        level = logging.DEBUG if success else logging.WARNING
        status = "completed" if success else "failed"
        self._log(
            level,
            f"Operation {name} {status}",
            operation=name,
            duration_ms=duration_ms,
            **context,
        )


def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return f"corr-{uuid.uuid4().hex[:12]}"


def set_correlation_id(correlation_id: str) -> contextvars.Token:
    """Set the correlation ID for the current context."""
    return correlation_id_var.set(correlation_id)


def get_correlation_id() -> str:
    """Get the current correlation ID, creating one if unset."""
    cid = correlation_id_var.get()
    if not cid:
        cid = generate_correlation_id()
        correlation_id_var.set(cid)
    return cid


def get_logger(name: str, layer: EscrowLayer) -> TradeUpLogger:
    """Get a logger for a TRADE-UP component."""
    return TradeUpLogger(name, layer)


def configure_logging() -> None:
    """Re-apply the observability configuration to every TRADE-UP logger."""
    for logger in list(_loggers):
        logger.configure()


T = TypeVar("T")


def timed_operation(
    logger: TradeUpLogger,
    operation_name: str,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator for timing and logging operations."""
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            start = time.monotonic()
            success = True
            try:
                return func(*args, **kwargs)
            except Exception:
                success = False
                raise
            finally:
                duration_ms = (time.monotonic() - start) * 1000
                logger.operation(operation_name, duration_ms, success)
        return wrapper
    return decorator
