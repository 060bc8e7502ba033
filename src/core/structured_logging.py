#!/usr/bin/env -S python3 -B -u
"""
Structured Logging for RTC Emulator

Every lab component logs through a StructuredLogger bound to the global
verbosity selected with -v on the command line:

    0   errors only
    1   lab progress, warnings and rollback steps
    2   every external command and its outcome
    3   command output, timestamps and JSON context

Keyword arguments passed to a log call are appended to the message as
key=value pairs from verbosity 2 on, and as one JSON object at verbosity 3.
All lab logging goes to stderr so command results on stdout stay parseable.
"""

import json
import logging as std_logging
import sys
import time
from contextlib import contextmanager
from typing import Any, Dict, Tuple

TRACE = 5
std_logging.addLevelName(TRACE, 'TRACE')

# Lowest verbosity at which each level is emitted
MIN_VERBOSITY = {
    std_logging.ERROR: 0,
    std_logging.WARNING: 1,
    std_logging.INFO: 1,
    std_logging.DEBUG: 2,
    TRACE: 3,
}

# (minimum verbosity, format), most detailed first
FORMATS = (
    (3, '%(asctime)s [%(name)s] %(levelname)s: %(message)s'),
    (2, '[%(name)s] %(levelname)s: %(message)s'),
    (0, '%(message)s'),
)

_loggers: Dict[Tuple[str, int], 'StructuredLogger'] = {}


class StructuredLogger:
    """Verbosity-gated wrapper around one named standard logger."""

    def __init__(self, name: str, verbose_level: int = 0):
        self.name = name
        self.verbose_level = max(verbose_level, 0)
        self.logger = std_logging.getLogger(name)

        self.logger.setLevel(TRACE)
        self.logger.propagate = False
        self.logger.handlers.clear()

        handler = std_logging.StreamHandler(sys.stderr)
        handler.setFormatter(std_logging.Formatter(self.line_format(), datefmt='%Y-%m-%d %H:%M:%S'))
        self.logger.addHandler(handler)

    def line_format(self) -> str:
        return next(fmt for threshold, fmt in FORMATS if self.verbose_level >= threshold)

    def enabled(self, level: int) -> bool:
        return self.verbose_level >= MIN_VERBOSITY[level]

    def _emit(self, level: int, message: str, context: Dict[str, Any]) -> None:
        if not self.enabled(level):
            return
        if context and self.verbose_level >= 2:
            message = f"{message} | {self._format_context(context)}"
        self.logger.log(level, message)

    def _format_context(self, context: Dict[str, Any]) -> str:
        if self.verbose_level >= 3:
            return json.dumps(context, default=str)
        return " ".join(f"{k}={v}" for k, v in context.items())

    def error(self, message: str, **context: Any) -> None:
        self._emit(std_logging.ERROR, message, context)

    def warning(self, message: str, **context: Any) -> None:
        self._emit(std_logging.WARNING, message, context)

    def info(self, message: str, **context: Any) -> None:
        self._emit(std_logging.INFO, message, context)

    def debug(self, message: str, **context: Any) -> None:
        self._emit(std_logging.DEBUG, message, context)

    def trace(self, message: str, **context: Any) -> None:
        self._emit(TRACE, message, context)

    @contextmanager
    def timer(self, operation: str):
        """Log start and wall time of the enclosed block at debug level."""
        started = time.monotonic()
        self.debug(f"{operation}: started")
        try:
            yield
        finally:
            self.debug(f"{operation}: finished", elapsed_ms=f"{(time.monotonic() - started) * 1000:.2f}")


def get_logger(name: str, verbose_level: int = 0) -> StructuredLogger:
    """Return the cached logger for name at the given verbosity."""
    key = (name, verbose_level)
    if key not in _loggers:
        _loggers[key] = StructuredLogger(name, verbose_level)
    return _loggers[key]


def setup_logging(verbose_level: int = 0) -> None:
    """
    Setup logging for the entire application.

    Args:
        verbose_level: Global verbosity level (0-3)
    """
    root_logger = std_logging.getLogger()
    root_logger.setLevel(std_logging.DEBUG if verbose_level >= 3 else std_logging.WARNING)

    # cmd2 logs its own startup noise through the root hierarchy
    std_logging.getLogger('cmd2').setLevel(std_logging.ERROR)
