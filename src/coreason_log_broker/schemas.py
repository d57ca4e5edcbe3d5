# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_log_broker

from datetime import datetime
from enum import Enum, IntEnum
from pathlib import Path
from typing import Any, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# strftime form of the MMddyyyy-HHmmss token embedded in log file names
LOGGER_TIME_FORMAT = "%m%d%Y-%H%M%S"
LOGGER_TIME_PLACEHOLDER = "$LOGGER_TIME"

DEFAULT_SET_SIZE = 15
DEFAULT_TRIGGER_COUNT = 20
DEFAULT_CLEANUP_COUNT = 50
DEFAULT_FILE_FILTER = "*.*"
ARCHIVE_FOLDER_NAME = "LogArchives"


class LogLevel(IntEnum):
    """Ordinal severity scale. OFF is the sentinel for disabled logging."""

    TRACE = 0
    DEBUG = 1
    INFO = 2
    WARN = 3
    ERROR = 4
    FATAL = 5
    OFF = 6

    @classmethod
    def coerce(cls, value: Any) -> "LogLevel":
        """Parses a level from a member, a name (or common alias) or an ordinal.

        Ordinals outside the scale are clamped: below zero becomes TRACE, above OFF becomes FATAL.
        """
        if isinstance(value, LogLevel):
            return value
        if isinstance(value, str):
            key = value.strip().upper()
            if key.lstrip("-").isdigit():
                return cls.coerce(int(key))
            key = _LEVEL_ALIASES.get(key, key)
            try:
                return cls[key]
            except KeyError:
                raise ValueError(f"Unknown log level: {value}") from None
        if isinstance(value, int):
            if value < cls.TRACE:
                return cls.TRACE
            if value > cls.OFF:
                return cls.FATAL
            return cls(value)
        raise ValueError(f"Unsupported log level value: {value!r}")


_LEVEL_ALIASES = {
    "WARNING": "WARN",
    "CRITICAL": "FATAL",
    "NOLOGGING": "OFF",
    "NONE": "OFF",
    "TRACELOG": "TRACE",
    "DEBUGLOG": "DEBUG",
    "INFOLOG": "INFO",
    "WARNLOG": "WARN",
    "ERRORLOG": "ERROR",
    "FATALLOG": "FATAL",
}


class LoggerType(str, Enum):
    """Which master sinks a logger is attached to when it is opened."""

    UNIVERSAL = "universal"
    CONSOLE = "console"
    FILE = "file"


class SinkKind(str, Enum):
    """Kind of output destination behind a sink."""

    CONSOLE = "console"
    FILE = "file"


class CompressionStyle(str, Enum):
    """Container format for log archives."""

    ZIP = "zip"
    GZIP = "gzip"

    @property
    def extension(self) -> str:
        return "gz" if self is CompressionStyle.GZIP else "zip"


class CompressionLevel(str, Enum):
    """Compression effort used for archive entries."""

    OPTIMAL = "optimal"
    FASTEST = "fastest"
    SMALLEST_SIZE = "smallest_size"
    NO_COMPRESSION = "no_compression"


class SinkFormat(BaseModel):
    """Base message template shared by every sink kind. Fields are loguru format fragments."""

    model_config = ConfigDict(frozen=True)

    logger_message: str = "{message}"
    logger_level: str = "{level}"
    logger_name: str = "{extra[logger_class]}"

    @property
    def format_string(self) -> str:
        return f"[{self.logger_name}][{self.logger_level}] ::: {self.logger_message}"


class ConsoleSinkFormat(SinkFormat):
    """Template used by console sinks."""

    logger_level: str = "<level>{level}</level>"
    logger_calling_method: str = "{function}"

    @property
    def format_string(self) -> str:
        return f"[{self.logger_level}][{self.logger_name}][{self.logger_calling_method}] ::: {self.logger_message}"


class FileSinkFormat(SinkFormat):
    """Template used by file sinks."""

    logger_date: str = "{time:MM-DD-YYYY HH:mm:ss}"
    logger_calling_class: str = "{name}"
    logger_calling_method: str = "{function}"

    @property
    def format_string(self) -> str:
        return (
            f"[{self.logger_date}][{self.logger_level}][{self.logger_calling_class}]"
            f"[{self.logger_calling_method}] ::: {self.logger_message}"
        )


class Sink(BaseModel):
    """A named output destination plus its message template. Identity is the name."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Unique sink name")
    kind: SinkKind = Field(..., description="Console or file output")
    destination: Optional[Path] = Field(None, description="Output file for file sinks")
    template: str = Field(..., min_length=1, description="loguru format string")
    protected: bool = Field(False, description="Only the owning master logger may retract this sink")

    @model_validator(mode="after")
    def _check_destination(self) -> "Sink":
        if self.kind is SinkKind.FILE and self.destination is None:
            raise ValueError(f"File sink '{self.name}' requires a destination path")
        return self


class RoutingRule(BaseModel):
    """Binds a logger name pattern and a severity window to one sink."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Unique rule name")
    name_pattern: str = Field(..., description="Glob matched against the record's logger name")
    min_level: LogLevel
    max_level: LogLevel
    sink_name: str = Field(..., description="Name of the sink this rule routes to")


class TargetDiff(BaseModel):
    """Sinks and rules added to or removed from one logger by a single mutation."""

    model_config = ConfigDict(frozen=True)

    added_sinks: Tuple[Sink, ...] = ()
    added_rules: Tuple[RoutingRule, ...] = ()
    removed_sinks: Tuple[Sink, ...] = ()
    removed_rules: Tuple[RoutingRule, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.added_sinks or self.added_rules or self.removed_sinks or self.removed_rules)


class SessionConfig(BaseModel):
    """Input record used to initialize a logging session."""

    name: Optional[str] = Field(None, description="Session (broker) name. Defaults to the program name")
    file_path: Optional[str] = Field(None, description="Folder, file name or full path of the log file")
    file_name: Optional[str] = Field(None, description="Log file name. May contain $LOGGER_TIME")
    min_level: LogLevel = Field(LogLevel.DEBUG, description="Lowest severity written")
    max_level: LogLevel = Field(LogLevel.FATAL, description="Highest severity written")

    @field_validator("min_level", "max_level", mode="before")
    @classmethod
    def _parse_level(cls, value: Any) -> LogLevel:
        return LogLevel.coerce(value)


class SessionState(BaseModel):
    """Resolved session values. Replaced wholesale on every initialization."""

    model_config = ConfigDict(frozen=True)

    broker_name: str
    log_file_name: Optional[str] = None
    log_file_path: Optional[Path] = None
    log_file_folder: Optional[Path] = None
    min_level: LogLevel = LogLevel.OFF
    max_level: LogLevel = LogLevel.OFF
    logging_enabled: bool = False
    created_at: datetime


class ArchiveConfig(BaseModel):
    """Configuration for one archive session. Zero or blank values fall back to defaults."""

    search_path: Optional[str] = Field(None, description="Folder scanned for log files")
    archive_path: Optional[str] = Field(None, description="Folder receiving the containers")
    file_filter: str = Field(DEFAULT_FILE_FILTER, description="Glob selecting the files to archive")
    set_size: int = Field(DEFAULT_SET_SIZE, description="Files per container")
    trigger_count: int = Field(DEFAULT_TRIGGER_COUNT, description="Files present before archiving runs")
    cleanup_count: int = Field(DEFAULT_CLEANUP_COUNT, description="Containers kept by the retention policy")
    compression_level: CompressionLevel = Field(CompressionLevel.OPTIMAL, description="Entry compression effort")
    compression_style: CompressionStyle = Field(CompressionStyle.ZIP, description="Container format")


class BrokerManifest(BaseModel):
    """Root configuration document for a broker process."""

    session: SessionConfig = Field(default_factory=SessionConfig, description="Logging session configuration")
    archive: Optional[ArchiveConfig] = Field(None, description="Log archive configuration")
