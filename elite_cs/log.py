"""Process-wide logger with a replaceable handler."""

from __future__ import annotations

import sys
import threading
from abc import ABC, abstractmethod
from enum import IntEnum


class LogLevel(IntEnum):
    """Severity of a log message; NONE silences everything."""

    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3
    FATAL = 4
    NONE = 5


class LogHandler(ABC):
    """Receives the messages that pass the logger's level."""

    @abstractmethod
    def log(self, file: str, line: int, level: LogLevel, message: str) -> None:
        """Handle one formatted message."""


class _StderrHandler(LogHandler):
    def log(self, file: str, line: int, level: LogLevel, message: str) -> None:
        print(f"[{LogLevel(level).name}] {file}:{line}: {message}", file=sys.stderr)


class Logger:
    """Holds the active handler and the minimum level."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handler: LogHandler = _StderrHandler()
        self._level = LogLevel.INFO

    @property
    def level(self) -> LogLevel:
        return self._level

    def register_handler(self, handler: LogHandler) -> None:
        if handler is None:
            raise ValueError("handler must not be None")
        with self._lock:
            self._handler = handler

    def unregister_handler(self) -> None:
        with self._lock:
            self._handler = _StderrHandler()

    def set_level(self, level: LogLevel) -> None:
        self._level = LogLevel(level)

    def log(self, file: str, line: int, level: LogLevel, message: str) -> None:
        with self._lock:
            self._handler.log(file, line, LogLevel(level), message)


_logger = Logger()


def get_logger() -> Logger:
    return _logger


def register_log_handler(handler: LogHandler) -> None:
    _logger.register_handler(handler)


def unregister_log_handler() -> None:
    """Drop the registered handler and go back to writing on standard error."""
    _logger.register_handler(_StderrHandler())


def set_log_level(level: LogLevel) -> None:
    _logger.set_level(level)


def log(file: str, line: int, level: LogLevel, fmt: str, *args: object) -> None:
    """Format with printf-style arguments and pass on if the level allows."""
    if LogLevel(level) < _logger.level:
        return
    message = fmt % args if args else fmt
    _logger.log(file, line, level, message)