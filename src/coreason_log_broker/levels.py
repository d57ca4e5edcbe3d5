# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_log_broker

import sys
from typing import Dict, Optional, Tuple, Union

from coreason_log_broker.schemas import LogLevel

_BACKEND_LEVELS: Dict[LogLevel, str] = {
    LogLevel.TRACE: "TRACE",
    LogLevel.DEBUG: "DEBUG",
    LogLevel.INFO: "INFO",
    LogLevel.WARN: "WARNING",
    LogLevel.ERROR: "ERROR",
    LogLevel.FATAL: "CRITICAL",
}

# Severity numbers of loguru's built-in levels
_BACKEND_NUMBERS: Dict[str, int] = {
    "TRACE": 5,
    "DEBUG": 10,
    "INFO": 20,
    "SUCCESS": 25,
    "WARNING": 30,
    "ERROR": 40,
    "CRITICAL": 50,
}

_FROM_BACKEND: Dict[str, LogLevel] = {name: level for level, name in _BACKEND_LEVELS.items()}
_FROM_BACKEND["SUCCESS"] = LogLevel.INFO


def to_backend_level(level: Union[LogLevel, int], fallback: LogLevel = LogLevel.TRACE) -> Optional[str]:
    """Converts an ordinal severity into the loguru level name.

    Args:
        level: The severity to convert.
        fallback: Level used when the ordinal is out of range (the session minimum).

    Returns:
        The loguru level name, or None for OFF.
    """
    if not LogLevel.TRACE <= int(level) <= LogLevel.OFF:
        level = fallback
    return _BACKEND_LEVELS.get(LogLevel(level))


def to_log_level(level: Union[str, int], fallback: LogLevel = LogLevel.TRACE) -> LogLevel:
    """Converts a loguru level name or severity number back into the ordinal scale.

    Unknown names and numbers map to ``fallback``.
    """
    if isinstance(level, str):
        return _FROM_BACKEND.get(level.strip().upper(), fallback)
    for name, number in _BACKEND_NUMBERS.items():
        if number == level:
            return _FROM_BACKEND[name]
    return fallback


def backend_level_no(level: LogLevel) -> int:
    """Returns the loguru severity number for a level. OFF sorts above every real level."""
    name = _BACKEND_LEVELS.get(level)
    if name is None:
        return sys.maxsize
    return _BACKEND_NUMBERS[name]


def clamp_window(
    min_level: LogLevel,
    max_level: LogLevel,
    session_min: LogLevel,
    session_max: LogLevel,
) -> Tuple[LogLevel, LogLevel]:
    """Clamps a requested (min, max) window into the session window.

    Returns (OFF, OFF) when the session is disabled, when either requested bound is OFF,
    or when the clamped window is empty.
    """
    if LogLevel.OFF in (min_level, max_level, session_min, session_max):
        return LogLevel.OFF, LogLevel.OFF

    low = max(LogLevel.coerce(min_level), session_min)
    high = min(LogLevel.coerce(max_level), session_max)
    if low > high:
        return LogLevel.OFF, LogLevel.OFF
    return low, high
