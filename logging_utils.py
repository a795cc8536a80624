"""Tagged logging for the control surface.

Every component logs through ``log_event`` so console output reads uniformly:

    [WARNING][Bridge] Command failed | seq=12 value=40 error=Camera in use
"""
from __future__ import annotations

import logging
from typing import Any

LOGGER_NAME = "intensitycontrol"
_LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}


class _TagFormatter(logging.Formatter):
    """Falls back to the logger name when a record carries no tag."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "tag"):
            record.tag = record.name.rsplit(".", 1)[-1]
        return super().format(record)


def _level_value(level: str | int | None) -> int:
    if isinstance(level, int):
        return level
    name = str(level or "INFO").upper()
    name = _LEVEL_ALIASES.get(name, name)
    value = logging.getLevelName(name)
    return value if isinstance(value, int) else logging.INFO


_logger = logging.getLogger(LOGGER_NAME)
if not _logger.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(_TagFormatter("[%(levelname)s][%(tag)s] %(message)s"))
    _logger.addHandler(_handler)
    _logger.setLevel(logging.INFO)
    _logger.propagate = False


def log_event(level: str, tag: str, message: str, /, **fields: Any) -> None:
    """Log ``message`` under ``tag``; keyword fields are appended as key=value pairs."""
    if fields:
        message = message + " | " + " ".join(f"{k}={v}" for k, v in fields.items())
    _logger.log(_level_value(level), message, extra={"tag": tag})


def set_log_level(level: str | int | None) -> None:
    """Set global log level (DEBUG/INFO/WARNING/ERROR, WARN accepted)."""
    _logger.setLevel(_level_value(level))


def get_log_level() -> str:
    return logging.getLevelName(_logger.level)
