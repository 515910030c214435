"""Structured terminal logging for agent-sync.

Every line is prefixed with ``[agent-sync] HH:MM:SS`` and error lines carry an
``ERROR:`` marker. Watchers log from several threads at once, so writes are
serialized.
"""

from __future__ import annotations

import datetime as dt
import os
import sys
import threading
from enum import IntEnum

from rich.console import Console
from rich.text import Text


class LogLevel(IntEnum):
    TRACE = 10
    DEBUG = 20
    INFO = 30
    SUCCESS = 35
    WARNING = 40
    ERROR = 50


LOG_PREFIX = "[agent-sync]"
LEVEL_NAMES = ("trace", "debug", "info", "success", "warning", "error")

_LEVEL_BY_NAME = {
    "trace": LogLevel.TRACE,
    "debug": LogLevel.DEBUG,
    "info": LogLevel.INFO,
    "success": LogLevel.SUCCESS,
    "warning": LogLevel.WARNING,
    "warn": LogLevel.WARNING,
    "error": LogLevel.ERROR,
}
_DEFAULT_LEVEL = LogLevel.INFO
_configured_level = None
_no_color_override: bool | None = None
_write_lock = threading.Lock()


def _normalize_level(value: str | None) -> LogLevel:
    if value is None:
        return _DEFAULT_LEVEL
    normalized = value.strip().lower()
    if not normalized:
        return _DEFAULT_LEVEL
    return _LEVEL_BY_NAME.get(normalized, _DEFAULT_LEVEL)


def is_level_name(value: str) -> bool:
    return value.strip().lower() in _LEVEL_BY_NAME


def configured_level() -> LogLevel:
    global _configured_level
    if _configured_level is None:
        _configured_level = _normalize_level(os.environ.get("AGENT_SYNC_LOG_LEVEL"))
    return _configured_level


def set_level(value: str | None) -> None:
    """Set the active log level."""
    global _configured_level
    _configured_level = _normalize_level(value)


def set_no_color(value: bool) -> None:
    """Force colour off (``True``) or defer to the environment (``False``)."""
    global _no_color_override
    _no_color_override = True if value else None


def is_enabled(level: LogLevel) -> bool:
    return level >= configured_level()


def _no_color() -> bool:
    if _no_color_override is not None:
        return _no_color_override
    return bool(os.environ.get("NO_COLOR") or os.environ.get("AGENT_SYNC_NO_COLOR"))


def env_overrides() -> dict[str, str]:
    """Return environment variables that reproduce the active log settings."""
    env = {"AGENT_SYNC_LOG_LEVEL": configured_level().name.lower()}
    if _no_color():
        env["AGENT_SYNC_NO_COLOR"] = "1"
    return env


def _console(*, stderr: bool) -> Console:
    return Console(
        file=sys.stderr if stderr else sys.stdout,
        soft_wrap=True,
        highlight=False,
        no_color=_no_color(),
    )


def _default_style(level: LogLevel) -> str:
    if level is LogLevel.TRACE:
        return "dim"
    if level is LogLevel.DEBUG:
        return "cyan"
    if level is LogLevel.SUCCESS:
        return "green"
    if level is LogLevel.WARNING:
        return "yellow"
    if level is LogLevel.ERROR:
        return "bold red"
    return ""


def format_line(level: LogLevel, message: str, *, now: dt.datetime | None = None) -> str:
    """Render the plain text of a log line.

    Example:
        >>> format_line(LogLevel.ERROR, "boom", now=dt.datetime(2026, 1, 2, 3, 4, 5))
        '[agent-sync] 03:04:05 ERROR: boom'
    """
    stamp = (now or dt.datetime.now()).strftime("%H:%M:%S")
    marker = "ERROR: " if level is LogLevel.ERROR else ""
    return f"{LOG_PREFIX} {stamp} {marker}{message}"


def emit(
    level: LogLevel,
    message: str,
    *,
    style: str | None = None,
    stderr: bool | None = None,
) -> None:
    if not is_enabled(level):
        return
    target_stderr = stderr if stderr is not None else level >= LogLevel.WARNING
    text = Text(format_line(level, message), style=style or _default_style(level))
    with _write_lock:
        _console(stderr=target_stderr).print(text)


def trace(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.TRACE, message, style=style, stderr=False)


def debug(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.DEBUG, message, style=style, stderr=False)


def info(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.INFO, message, style=style, stderr=False)


def success(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.SUCCESS, message, style=style, stderr=False)


def warning(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.WARNING, message, style=style, stderr=True)


def error(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.ERROR, message, style=style, stderr=True)
