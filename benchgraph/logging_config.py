"""Logging setup for benchgraph.

All modules obtain their logger through :func:`get_logger`:

    from benchgraph.logging_config import get_logger

    logger = get_logger(__name__)

Structured context can be attached to every record emitted inside a block:

    with LogContext(operation="order_commits", graph_id=5):
        logger.info("Ordering commits")

Two output formats are supported: ``human`` (default) and ``json`` (one JSON
object per line, suitable for log shippers).
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

ROOT_LOGGER_NAME = "benchgraph"

HUMAN_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s%(context)s"

_log_context: ContextVar[Dict[str, Any]] = ContextVar("benchgraph_log_context", default={})


class ContextFilter(logging.Filter):
    """Attach the current log context to each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = _log_context.get()
        record.context_fields = dict(context)
        if context:
            rendered = " ".join(f"{k}={v}" for k, v in context.items())
            record.context = f" [{rendered}]"
        else:
            record.context = ""
        return True


class JSONFormatter(logging.Formatter):
    """Render log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(getattr(record, "context_fields", {}))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def get_logger(name: str) -> logging.Logger:
    """Get a logger below the ``benchgraph`` namespace.

    Args:
        name: Usually ``__name__`` of the calling module

    Returns:
        Configured logger instance
    """
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Configure handlers for the ``benchgraph`` logger hierarchy.

    Calling this again replaces the previously installed handlers.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Emit JSON lines instead of human readable text
        log_file: Optional path of a file that receives the same records
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level.upper())

    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter: logging.Formatter
    if json_output:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(HUMAN_FORMAT)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    context_filter = ContextFilter()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        root.addHandler(handler)

    root.propagate = False


def set_context(**fields: Any) -> None:
    """Add fields to the log context of the current task."""
    context = dict(_log_context.get())
    context.update(fields)
    _log_context.set(context)


def clear_context() -> None:
    """Remove all fields from the log context of the current task."""
    _log_context.set({})


def get_context() -> Dict[str, Any]:
    return dict(_log_context.get())


class LogContext:
    """Context manager that scopes log context fields to a block.

    Example:
        with LogContext(operation="fetch", resource="commits"):
            logger.info("Requesting commits")
    """

    def __init__(self, **fields: Any):
        self.fields = fields
        self._token = None

    def __enter__(self) -> "LogContext":
        context = dict(_log_context.get())
        context.update(self.fields)
        self._token = _log_context.set(context)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None
