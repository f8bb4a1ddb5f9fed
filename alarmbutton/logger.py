"""Console logging with a global logger and context-scoped names and fields."""

from __future__ import annotations

import contextlib
import contextvars
import enum
import json
import logging
import sys
from collections.abc import Iterator
from datetime import datetime
from typing import Any


class Level(enum.IntEnum):
    """Log levels understood by the alarm tools."""

    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARN = logging.WARNING
    ERROR = logging.ERROR
    DPANIC = 45
    PANIC = 48
    FATAL = logging.CRITICAL


_LEVEL_NAMES = {
    "debug": Level.DEBUG,
    "info": Level.INFO,
    "warn": Level.WARN,
    "error": Level.ERROR,
    "dpanic": Level.DPANIC,
    "panic": Level.PANIC,
    "fatal": Level.FATAL,
}

_COLORS = {
    Level.DEBUG: 35,
    Level.INFO: 34,
    Level.WARN: 33,
    Level.ERROR: 31,
    Level.DPANIC: 31,
    Level.PANIC: 31,
    Level.FATAL: 31,
}


class _StdoutHandler(logging.Handler):
    """Writes to whatever ``sys.stdout`` is at the time of writing."""

    terminator = "\n"

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
            stream = sys.stdout
            stream.write(message + self.terminator)
            stream.flush()
        except Exception:
            self.handleError(record)

    def flush(self) -> None:
        self.acquire()
        try:
            stream = sys.stdout
            if stream is not None and hasattr(stream, "flush"):
                stream.flush()
        finally:
            self.release()


class _ConsoleFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        moment = datetime.fromtimestamp(record.created).astimezone()
        stamp = moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}"
        stamp += moment.strftime("%z")
        try:
            level_value = Level(record.levelno)
            level_text = f"\x1b[{_COLORS[level_value]}m{level_value.name}\x1b[0m"
        except ValueError:
            level_text = record.levelname
        line = ", ".join((stamp, level_text, record.getMessage()))
        fields = getattr(record, "alarm_fields", None)
        if fields:
            line += ", " + json.dumps(fields, default=str, ensure_ascii=False)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class _ScopedLogger(logging.LoggerAdapter):
    """A logger carrying a dotted scope name and structured fields."""

    def __init__(self, logger: logging.Logger, name: str = "", fields: dict[str, Any] | None = None):
        super().__init__(logger, {})
        self._scope = name
        self.fields = dict(fields or {})

    @property
    def name(self) -> str:
        return self._scope

    def process(self, msg, kwargs):
        fields = {**self.fields, **kwargs.pop("fields", {})}
        extra = dict(kwargs.get("extra") or {})
        extra["alarm_fields"] = fields
        kwargs["extra"] = extra
        return msg, kwargs


class _Registry:
    """Holds the process-wide logger and the default level."""

    def __init__(self) -> None:
        self.level: Level = Level.INFO
        self.logger: logging.Logger | None = None


_registry = _Registry()
_current: contextvars.ContextVar[_ScopedLogger | None] = contextvars.ContextVar(
    "alarmbutton_logger", default=None
)


def _follow_default_level(record: logging.LogRecord) -> bool:
    return record.levelno >= _registry.level


def parse_log_level(text: str) -> Level:
    """Convert a level name such as ``"warn"`` into a :class:`Level`."""
    try:
        return _LEVEL_NAMES[text.strip().lower()]
    except KeyError:
        raise ValueError(f"unknown log level: {text!r}") from None


def new_logger(level: int | None = None) -> logging.Logger:
    """Create a console logger; without a level it follows the global default level."""
    log = logging.Logger("alarmbutton")
    log.propagate = False
    handler = _StdoutHandler()
    handler.setFormatter(_ConsoleFormatter())
    log.addHandler(handler)
    if level is None:
        log.addFilter(_follow_default_level)
    else:
        log.setLevel(Level(level))
    return log


def with_level(logger: logging.Logger, level: int) -> logging.Logger:
    """Return a logger sharing ``logger``'s output but filtering at ``level``."""
    derived = logging.Logger(logger.name)
    derived.propagate = False
    for handler in logger.handlers:
        derived.addHandler(handler)
    derived.setLevel(Level(level))
    return derived


_registry.logger = new_logger()


def get_logger() -> logging.Logger:
    """Return the global logger."""
    assert _registry.logger is not None
    return _registry.logger


def set_logger(logger: logging.Logger) -> None:
    """Replace the global logger."""
    if not isinstance(logger, logging.Logger):
        raise TypeError(f"expected a logging.Logger, got {type(logger).__name__}")
    _registry.logger = logger


def set_level(level: int) -> None:
    """Set the default level followed by loggers created without one."""
    _registry.level = Level(level)
    for handler in get_logger().handlers:
        handler.flush()


def level() -> Level:
    """Return the current default level."""
    return _registry.level


def current() -> _ScopedLogger:
    """Return the logger of the current scope, or the global one."""
    scoped = _current.get()
    return scoped if scoped is not None else _ScopedLogger(get_logger())


@contextlib.contextmanager
def named(name: str) -> Iterator[_ScopedLogger]:
    """Within the block, log under ``name`` appended to the current scope name."""
    parent = current()
    full_name = f"{parent.name}.{name}" if parent.name else name
    child = _ScopedLogger(parent.logger, full_name, parent.fields)
    token = _current.set(child)
    try:
        yield child
    finally:
        _current.reset(token)


@contextlib.contextmanager
def bound(**kwargs: Any) -> Iterator[_ScopedLogger]:
    """Within the block, attach ``kwargs`` as fields to every message."""
    parent = current()
    child = _ScopedLogger(parent.logger, parent.name, {**parent.fields, **kwargs})
    token = _current.set(child)
    try:
        yield child
    finally:
        _current.reset(token)


def debug_kv(message: str, **kwargs: Any) -> None:
    """Log ``message`` with fields at debug level."""
    current().log(Level.DEBUG, message, fields=kwargs)


def info_kv(message: str, **kwargs: Any) -> None:
    """Log ``message`` with fields at info level."""
    current().log(Level.INFO, message, fields=kwargs)


def warn_kv(message: str, **kwargs: Any) -> None:
    """Log ``message`` with fields at warning level."""
    current().log(Level.WARN, message, fields=kwargs)


def error_kv(message: str, **kwargs: Any) -> None:
    """Log ``message`` with fields at error level."""
    current().log(Level.ERROR, message, fields=kwargs)