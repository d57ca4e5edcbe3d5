# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_log_broker

import os
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from coreason_log_broker.backend import LoguruBackend
from coreason_log_broker.broker_logger import BrokerLogger
from coreason_log_broker.levels import to_backend_level
from coreason_log_broker.registry import LoggerRegistry
from coreason_log_broker.schemas import (
    LOGGER_TIME_FORMAT,
    LOGGER_TIME_PLACEHOLDER,
    ConsoleSinkFormat,
    FileSinkFormat,
    LoggerType,
    LogLevel,
    SessionConfig,
    SessionState,
    Sink,
    SinkKind,
)
from utils.logger import logger

DEFAULT_BROKER_NAME = "CoreasonLogBroker"
_SEPARATOR = "-" * 100


def _default_broker_name() -> str:
    stem = Path(sys.argv[0]).stem if sys.argv and sys.argv[0] else ""
    return stem.replace(" ", "") or DEFAULT_BROKER_NAME


def _compose_file_name(config: SessionConfig, broker_name: str, token: str) -> str:
    if not config.file_name or not config.file_name.strip():
        return f"{broker_name}_Logging_{token}.log"
    supplied = Path(config.file_name.strip()).name
    stem, suffix = os.path.splitext(supplied)
    return f"{stem.replace(LOGGER_TIME_PLACEHOLDER, token)}{suffix}"


def resolve_session(
    config: Optional[SessionConfig],
    created_at: datetime,
    base_dir: Optional[Path] = None,
) -> SessionState:
    """Normalizes a session configuration into resolved session values.

    ``file_path`` may name a directory, a bare file name, a relative path or a full path.
    Relative values resolve against ``base_dir`` (the working directory by default). A path
    naming an existing file or carrying an extension is used as the log file; anything else is
    treated as a directory receiving a composed file name.

    Args:
        config: The requested configuration. None builds a disabled session.
        created_at: Session creation time used for the file name token.
        base_dir: Directory relative paths resolve against.

    Returns:
        SessionState: The resolved values.

    Raises:
        ValueError: If the path cannot be used for a log file.
    """
    if config is None:
        return SessionState(broker_name=_default_broker_name(), created_at=created_at)

    broker_name = config.name.strip() if config.name and config.name.strip() else _default_broker_name()
    enabled = LogLevel.OFF not in (config.min_level, config.max_level)
    if not enabled:
        return SessionState(broker_name=broker_name, created_at=created_at)

    min_level, max_level = config.min_level, config.max_level
    if min_level > max_level:
        min_level, max_level = max_level, min_level

    token = created_at.strftime(LOGGER_TIME_FORMAT)
    raw_path = (config.file_path or "").strip()
    base = Path(base_dir) if base_dir is not None else Path.cwd()
    candidate = Path(raw_path).expanduser()
    if not candidate.is_absolute():
        candidate = base / candidate
    candidate = Path(os.path.abspath(candidate))
    ends_with_separator = raw_path.endswith(("/", "\\"))

    if candidate.exists() and not (candidate.is_file() or candidate.is_dir()):
        raise ValueError(f"Log file path is neither a file nor a directory: {raw_path}")
    if candidate.is_file() and ends_with_separator:
        raise ValueError(f"Log file path names a file but ends with a separator: {raw_path}")

    if not raw_path or candidate.is_dir() or ends_with_separator or not candidate.suffix:
        log_file_name = _compose_file_name(config, broker_name, token)
        log_file_path = candidate / log_file_name
    else:
        log_file_name = candidate.name.replace(LOGGER_TIME_PLACEHOLDER, token)
        log_file_path = candidate.with_name(log_file_name)

    log_file_folder = log_file_path.parent
    try:
        log_file_folder.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ValueError(f"Unable to create log folder {log_file_folder}: {e}") from e

    return SessionState(
        broker_name=broker_name,
        log_file_name=log_file_name,
        log_file_path=log_file_path,
        log_file_folder=log_file_folder,
        min_level=min_level,
        max_level=max_level,
        logging_enabled=True,
        created_at=created_at,
    )


class LogBroker:
    """A logging session: resolved settings, the master logger and the shared sink registry.

    Pass the broker explicitly to everything that logs through it. Re-initialization swaps the
    master logger and moves other loggers off the old master sinks; callers must not run it
    concurrently with logging.
    """

    def __init__(self, backend: Optional[LoguruBackend] = None):
        self.backend = backend or LoguruBackend()
        self.registry = LoggerRegistry(self.backend)
        self.default_console_format = ConsoleSinkFormat()
        self.default_file_format = FileSinkFormat()
        self._state: Optional[SessionState] = None
        self._master: Optional[BrokerLogger] = None
        self._master_console: Optional[Sink] = None
        self._master_file: Optional[Sink] = None
        self._logged_exceptions: List[BaseException] = []

    def __enter__(self) -> "LogBroker":
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.shutdown()

    # ------------------------------------------------------------------
    # Accessors

    @property
    def initialized(self) -> bool:
        return self._state is not None

    @property
    def state(self) -> Optional[SessionState]:
        return self._state

    @property
    def broker_name(self) -> Optional[str]:
        return self._state.broker_name if self._state else None

    @property
    def log_file_name(self) -> Optional[str]:
        return self._state.log_file_name if self._state else None

    @property
    def log_file_path(self) -> Optional[Path]:
        return self._state.log_file_path if self._state else None

    @property
    def log_file_folder(self) -> Optional[Path]:
        return self._state.log_file_folder if self._state else None

    @property
    def min_level(self) -> LogLevel:
        return self._state.min_level if self._state else LogLevel.OFF

    @property
    def max_level(self) -> LogLevel:
        return self._state.max_level if self._state else LogLevel.OFF

    @property
    def logging_enabled(self) -> bool:
        return bool(self._state and self._state.logging_enabled)

    @property
    def master_logger(self) -> Optional[BrokerLogger]:
        return self._master

    @property
    def master_console_sink(self) -> Optional[Sink]:
        return self._master_console

    @property
    def master_file_sink(self) -> Optional[Sink]:
        return self._master_file

    @property
    def logged_exceptions(self) -> List[BaseException]:
        return list(self._logged_exceptions)

    @property
    def logging_subfolders(self) -> List[Path]:
        folder = self.log_file_folder
        if folder is None or not folder.is_dir():
            return []
        return sorted(child for child in folder.iterdir() if child.is_dir())

    def record_exception(self, exc: BaseException) -> None:
        self._logged_exceptions.append(exc)

    # ------------------------------------------------------------------
    # Lifecycle

    def initialize(self, config: Optional[SessionConfig] = None, base_dir: Optional[Path] = None) -> bool:
        """Builds (or rebuilds) the logging session.

        Args:
            config: Session settings. None builds a disabled session.
            base_dir: Directory relative log paths resolve against.

        Returns:
            bool: True once the session is ready.

        Raises:
            ValueError: If the log file path cannot be used.
        """
        state = resolve_session(config, datetime.now(), base_dir)

        holders = self._detach_master_holders()
        if self._master is not None:
            self.registry.destroy(self._master)
            self._master = None

        self._state = state
        self._master_console, self._master_file = self._build_master_sinks(state)

        master = BrokerLogger(self, LoggerType.UNIVERSAL, f"{state.broker_name}_LogBrokerLogger")
        self._attach_master_sinks(master)
        self.registry.register(master, protected=True)
        self._master = master

        for holder, kinds in holders:
            for kind in kinds:
                sink = self._master_console if kind is SinkKind.CONSOLE else self._master_file
                if sink is not None:
                    self.registry.register_target(holder, sink)
        self.registry.reapply_levels(state.min_level, state.max_level)

        master.write_log(f"MASTER LOGGER {master.logger_name} HAS BEEN SPAWNED CORRECTLY!", LogLevel.INFO)
        master.write_log("LOGGER BROKER BUILT AND SESSION MAIN LOGGER HAS BEEN BOOTED CORRECTLY!", LogLevel.INFO)
        master.write_log(f"SHOWING BROKER STATUS INFORMATION BELOW. HAPPY LOGGING!\n\n{self.describe()}", LogLevel.TRACE)
        logger.info(f"Log broker {state.broker_name} initialized (logging enabled: {state.logging_enabled})")
        return self.initialized

    def open_logger(
        self,
        logger_type: LoggerType = LoggerType.UNIVERSAL,
        name: Optional[str] = None,
        min_level: LogLevel = LogLevel.TRACE,
        max_level: LogLevel = LogLevel.FATAL,
    ) -> BrokerLogger:
        """Builds a logger, attaches the master sinks implied by its type and registers it.

        Raises:
            RuntimeError: If the broker has not been initialized.
        """
        opened = BrokerLogger(self, logger_type, name, min_level, max_level)
        self._attach_master_sinks(opened)
        self.registry.register(opened)

        opened.write_log(f"LOGGER '{opened.logger_name}' HAS BEEN SPAWNED CORRECTLY!", LogLevel.INFO)
        opened.write_log(f"\\__ TIME CREATED:   {opened.created_at:%m/%d/%Y %H:%M:%S}", LogLevel.TRACE)
        opened.write_log(f"\\__ LOGGER ID:      {opened.logger_id}", LogLevel.TRACE)
        opened.write_log(f"\\__ IS UNIVERSAL:   {'YES' if opened.is_universal else 'NO'}", LogLevel.TRACE)
        opened.write_log(f"\\__ RULE COUNT:     {len(opened.rules)} RULES", LogLevel.TRACE)
        opened.write_log(f"\\__ SINK COUNT:     {len(opened.sinks)} SINKS", LogLevel.TRACE)
        opened.write_log(f"\\__ LOGGER STRING:  {opened}", LogLevel.TRACE)
        return opened

    def set_log_levels(self, min_level: LogLevel, max_level: LogLevel) -> None:
        """Replaces the session window and re-applies it to every live routing rule."""
        if self._state is None:
            raise RuntimeError("Please initialize the log broker before changing its levels")

        min_level, max_level = LogLevel.coerce(min_level), LogLevel.coerce(max_level)
        if min_level > max_level:
            min_level, max_level = max_level, min_level
        enabled = LogLevel.OFF not in (min_level, max_level)
        if not enabled:
            min_level = max_level = LogLevel.OFF

        self._state = self._state.model_copy(
            update={"min_level": min_level, "max_level": max_level, "logging_enabled": enabled}
        )
        if self._master is not None:
            self._master.write_log(
                f"CONFIGURED NEW LOGGING LEVELS! MIN LEVEL: {min_level.name} | MAX LEVEL: {max_level.name}",
                LogLevel.INFO,
            )
        self.registry.reapply_levels(min_level, max_level)
        logger.info(f"Log levels for {self.broker_name} set to {min_level.name}..{max_level.name}")

    def shutdown(self) -> None:
        """Destroys every logger, the master included, and removes every installed handler."""
        for pooled in self.registry.loggers:
            if pooled is not self._master:
                pooled.close()
        if self._master is not None:
            self.registry.destroy(self._master)
            self._master = None
        self.backend.close()
        self._master_console = None
        self._master_file = None

    def describe(self) -> str:
        """Builds a multi-line status banner for the session."""
        if self._state is None:
            return "Log Broker Information - Not Configured!"

        state = self._state
        subfolders = self.logging_subfolders
        child_folders = (
            "No Child Directories"
            if not subfolders
            else "\n" + "\n".join(f"\t\t\\__ {folder}" for folder in sorted(subfolders, key=lambda f: len(str(f))))
        )
        loggers = self.registry.loggers
        sinks = self.registry.sinks
        rules = self.registry.rules
        session_json = state.model_dump_json(indent=4).replace("\n", "\n\t\t")

        return (
            f"Log Broker Information - '{state.broker_name}'\n"
            f"\t\\__ Broker Status:  {'Log Broker Ready!' if self.initialized else 'Not Configured!'}\n"
            f"\t\\__ Creation Time:  {state.created_at:%m/%d/%Y %H:%M}\n"
            f"\t\\__ Logging State:  {'Logging Currently ON' if state.logging_enabled else 'Logging Currently OFF'}\n"
            f"\t\\__ Min Log Level:  {state.min_level.name} (Backend: {to_backend_level(state.min_level)})\n"
            f"\t\\__ Max Log Level:  {state.max_level.name} (Backend: {to_backend_level(state.max_level)})\n"
            f"\t\\__ Log File Name:  {state.log_file_name}\n"
            f"\t\\__ Log File Path:  {state.log_file_path}\n"
            f"\t\\__ Child Folders:  {child_folders}\n"
            f"\t{_SEPARATOR}\n"
            f"\t\\__ Loggers Built:  {_plural(len(loggers), 'Logger')} Constructed\n"
            f"\t\\__ Master Logger:  {self._master.logger_name if self._master else 'No Master Built'}\n"
            f"\t{_SEPARATOR}\n"
            f"\t\\__ Sinks Built:    {_plural(len(sinks), 'Logging Sink')} Constructed\n"
            f"\t\\__ Rules Defined:  {_plural(len(rules), 'Logging Rule')} Defined\n"
            f"\t\\__ Logged Errors:  {_plural(len(self._logged_exceptions), 'Exception')} Logged\n"
            f"\t{_SEPARATOR}\n"
            f"\t\\__ Session (JSON):\n\t\t{session_json}\n"
            f"\t{_SEPARATOR}\n"
        )

    # ------------------------------------------------------------------
    # Internals

    def _build_master_sinks(self, state: SessionState) -> Tuple[Optional[Sink], Optional[Sink]]:
        if not state.logging_enabled:
            return None, None
        console = Sink(
            name=f"Master_{state.broker_name}_ConsoleSink",
            kind=SinkKind.CONSOLE,
            template=self.default_console_format.format_string,
            protected=True,
        )
        file = Sink(
            name=f"Master_{state.broker_name}_FileSink",
            kind=SinkKind.FILE,
            destination=state.log_file_path,
            template=self.default_file_format.format_string,
            protected=True,
        )
        return console, file

    def _attach_master_sinks(self, target: BrokerLogger) -> None:
        if target.is_file_logger and self._master_file is not None:
            target.attach_target(self._master_file)
        if target.is_console_logger and self._master_console is not None:
            target.attach_target(self._master_console)

    def _detach_master_holders(self) -> List[Tuple[BrokerLogger, List[SinkKind]]]:
        """Detaches the current master sinks from every non-master logger holding them."""
        holders: List[Tuple[BrokerLogger, List[SinkKind]]] = []
        master_sinks = [sink for sink in (self._master_console, self._master_file) if sink is not None]
        if not master_sinks:
            return holders

        for pooled in self.registry.loggers:
            if pooled is self._master:
                continue
            kinds = []
            for sink in master_sinks:
                if pooled.holds_sink(sink.name):
                    self.registry.remove_target(pooled, sink)
                    kinds.append(sink.kind)
            if kinds:
                holders.append((pooled, kinds))
        return holders


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"
