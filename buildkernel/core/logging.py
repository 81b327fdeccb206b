"""
Structured logging for the buildkernel.

This module provides utilities for structured logging, including:
- JSON logging formatter
- Context-aware logging that follows asyncio tasks
- Log enrichment with the module and phase being executed
"""

import logging
import json
import sys
import traceback
from contextvars import ContextVar
from typing import Dict, Any, Optional
from contextlib import contextmanager

# Context variable so that each asyncio task sees its own logging context
_context: ContextVar[Optional[Dict[str, Any]]] = ContextVar("buildkernel_log_context", default=None)


def get_context() -> Dict[str, Any]:
    """Get the current logging context.

    Returns:
        The current logging context
    """
    data = _context.get()
    if data is None:
        data = {}
        _context.set(data)
    return data


def set_context(key: str, value: Any) -> None:
    """Set a value in the logging context.

    Args:
        key: The key to set
        value: The value to set
    """
    _context.set({**get_context(), key: value})


def clear_context() -> None:
    """Clear the logging context."""
    _context.set({})


@contextmanager
def logging_context(**kwargs):
    """Context manager for adding context to logs.

    Args:
        **kwargs: Key-value pairs to add to the context
    """
    token = _context.set({**get_context(), **kwargs})
    try:
        yield
    finally:
        _context.reset(token)


class StructuredLogRecord(logging.LogRecord):
    """Log record that includes structured data."""

    def __init__(self, *args, **kwargs):
        """Initialize the log record."""
        super().__init__(*args, **kwargs)

        # Add the context to the record
        self.context = get_context().copy()


class JsonFormatter(logging.Formatter):
    """Formatter that outputs JSON strings."""

    def __init__(self, include_context: bool = True, include_stack_info: bool = True):
        """Initialize the formatter.

        Args:
            include_context: Whether to include the context in the output
            include_stack_info: Whether to include stack info in the output
        """
        super().__init__()
        self.include_context = include_context
        self.include_stack_info = include_stack_info

    def format(self, record: logging.LogRecord) -> str:
        """Format the record as JSON.

        Args:
            record: The log record to format

        Returns:
            The formatted log record
        """
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
            "process": record.process,
            "thread": record.thread,
        }

        if self.include_context and hasattr(record, "context"):
            log_data["context"] = record.context

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        if self.include_stack_info and record.stack_info:
            log_data["stack_info"] = record.stack_info

        return json.dumps(log_data, default=str)


def configure_logging(
    level: int = logging.INFO,
    json_format: bool = False,
    include_context: bool = True,
    include_stack_info: bool = True,
    log_file: Optional[str] = None
) -> None:
    """Configure logging for the buildkernel.

    Args:
        level: The logging level
        json_format: Whether to use JSON formatting
        include_context: Whether to include context in JSON output
        include_stack_info: Whether to include stack info in JSON output
        log_file: Optional file to log to
    """
    logging.setLogRecordFactory(StructuredLogRecord)

    handlers = [logging.StreamHandler(sys.stdout)]

    if log_file:
        handlers.append(logging.FileHandler(log_file))

    if json_format:
        formatter = JsonFormatter(
            include_context=include_context,
            include_stack_info=include_stack_info
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove any existing handlers
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name.

    Args:
        name: The name of the logger

    Returns:
        The logger
    """
    return logging.getLogger(name)
