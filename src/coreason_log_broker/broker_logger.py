# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_log_broker

import inspect
import json
import threading
import traceback
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from pydantic import BaseModel

from coreason_log_broker.levels import clamp_window
from coreason_log_broker.schemas import (
    ConsoleSinkFormat,
    FileSinkFormat,
    LoggerType,
    LogLevel,
    RoutingRule,
    Sink,
    SinkKind,
    TargetDiff,
)

if TYPE_CHECKING:
    from coreason_log_broker.broker import LogBroker

_PACKAGE = __name__.split(".")[0]


class BrokerLogger:
    """A logger instance bound to one broker session.

    The logger owns a set of sinks and one routing rule per sink. Rules match the logger's
    upper-case id, so records written here reach exactly the sinks this logger holds.
    Mutations of the owned collections return a TargetDiff which the broker's registry applies
    to the shared backend configuration.

    Use ``LogBroker.open_logger`` to build one; release it with ``close()`` or a ``with`` block.
    """

    def __init__(
        self,
        broker: "LogBroker",
        logger_type: LoggerType = LoggerType.UNIVERSAL,
        name: Optional[str] = None,
        min_level: LogLevel = LogLevel.TRACE,
        max_level: LogLevel = LogLevel.FATAL,
    ):
        """Initializes the logger identity and its severity window.

        Args:
            broker: The initialized broker session this logger writes through.
            logger_type: Which master sinks the logger is attached to.
            name: Display name. Defaults to the calling class or module.
            min_level: Requested lowest severity.
            max_level: Requested highest severity.

        Raises:
            RuntimeError: If the broker has not been initialized.
        """
        if not broker.initialized:
            raise RuntimeError("Please initialize the log broker before spawning loggers")

        self._broker = broker
        self.logger_type = LoggerType(logger_type)
        self.logger_id = str(uuid.uuid4()).upper()
        self.logger_class = name.strip() if name and name.strip() else _calling_class()
        self.logger_name = f"{self.logger_class}_{self.logger_id}"
        self.created_at = datetime.now()

        self.requested_min_level = LogLevel.coerce(min_level)
        self.requested_max_level = LogLevel.coerce(max_level)
        self.min_level, self.max_level = clamp_window(
            self.requested_min_level, self.requested_max_level, broker.min_level, broker.max_level
        )

        self.console_format: Optional[ConsoleSinkFormat] = None
        self.file_format: Optional[FileSinkFormat] = None

        self._sinks: Dict[str, Sink] = {}
        self._rules: Dict[str, RoutingRule] = {}
        self._lock = threading.Lock()
        self._closed = False

    def __str__(self) -> str:
        return (
            f"{self.logger_name} ({self.logger_type.value}) - "
            f"{len(self._rules)} Rules and {len(self._sinks)} Sinks"
        )

    def __enter__(self) -> "BrokerLogger":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    @property
    def broker(self) -> "LogBroker":
        return self._broker

    @property
    def sinks(self) -> List[Sink]:
        with self._lock:
            return list(self._sinks.values())

    @property
    def rules(self) -> List[RoutingRule]:
        with self._lock:
            return list(self._rules.values())

    @property
    def logging_enabled(self) -> bool:
        return not self._closed and LogLevel.OFF not in (self.min_level, self.max_level)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_universal(self) -> bool:
        return self.logger_type is LoggerType.UNIVERSAL

    @property
    def is_file_logger(self) -> bool:
        return self.logger_type in (LoggerType.UNIVERSAL, LoggerType.FILE)

    @property
    def is_console_logger(self) -> bool:
        return self.logger_type in (LoggerType.UNIVERSAL, LoggerType.CONSOLE)

    def holds_sink(self, name: str) -> bool:
        with self._lock:
            return name in self._sinks

    def rule_name_for(self, sink_name: str) -> str:
        return f"{self.logger_id}_{sink_name}"

    # ------------------------------------------------------------------
    # Target management

    def register_target(self, sink: Sink) -> bool:
        """Attaches a sink to this logger and publishes it to the shared configuration.

        Returns:
            bool: False if a sink with the same name was already attached.
        """
        return self._broker.registry.register_target(self, sink)

    def remove_target(self, sink: Union[Sink, str]) -> bool:
        """Detaches a sink (and its rule) from this logger.

        Returns:
            bool: False if the sink was not attached.
        """
        return self._broker.registry.remove_target(self, sink)

    def attach_target(self, sink: Sink) -> Optional[TargetDiff]:
        """Adds the sink and its routing rule to the owned collections.

        Returns the diff describing the change, or None if the sink name is already held.
        Non-protected sinks take this logger's format override when one is set.
        """
        with self._lock:
            if sink.name in self._sinks:
                return None

            if not sink.protected:
                override = self.console_format if sink.kind is SinkKind.CONSOLE else self.file_format
                if override is not None:
                    sink = sink.model_copy(update={"template": override.format_string})

            rule = self._build_rule(sink.name)
            self._sinks[sink.name] = sink
            self._rules[rule.name] = rule
            return TargetDiff(added_sinks=(sink,), added_rules=(rule,))

    def detach_target(self, sink: Union[Sink, str]) -> Optional[TargetDiff]:
        """Removes the named sink and every rule routing to it. None if nothing matched."""
        sink_name = sink.name if isinstance(sink, Sink) else sink
        with self._lock:
            removed_rules = tuple(rule for rule in self._rules.values() if rule.sink_name == sink_name)
            removed_sink = self._sinks.pop(sink_name, None)
            if removed_sink is None and not removed_rules:
                return None

            for rule in removed_rules:
                del self._rules[rule.name]
            return TargetDiff(
                removed_sinks=(removed_sink,) if removed_sink is not None else (),
                removed_rules=removed_rules,
            )

    def release_all(self) -> TargetDiff:
        """Empties the owned collections and returns everything that was removed."""
        with self._lock:
            diff = TargetDiff(removed_sinks=tuple(self._sinks.values()), removed_rules=tuple(self._rules.values()))
            self._sinks.clear()
            self._rules.clear()
            return diff

    def apply_session_window(self, session_min: LogLevel, session_max: LogLevel) -> TargetDiff:
        """Re-clamps the requested window into a new session window and rebuilds the rules."""
        with self._lock:
            self.min_level, self.max_level = clamp_window(
                self.requested_min_level, self.requested_max_level, session_min, session_max
            )
            removed = tuple(self._rules.values())
            rebuilt = tuple(self._build_rule(rule.sink_name) for rule in removed)
            self._rules = {rule.name: rule for rule in rebuilt}
            return TargetDiff(added_rules=rebuilt, removed_rules=removed)

    def _build_rule(self, sink_name: str) -> RoutingRule:
        return RoutingRule(
            name=self.rule_name_for(sink_name),
            name_pattern=f"*{self.logger_id}*",
            min_level=self.min_level,
            max_level=self.max_level,
            sink_name=sink_name,
        )

    # ------------------------------------------------------------------
    # Writing

    def write_log(self, message: str, level: LogLevel = LogLevel.DEBUG) -> None:
        """Writes a message. Multi-line messages are written one record per line."""
        if not self.logging_enabled:
            return
        lines = str(message).splitlines() or [""]
        for line in lines:
            self._emit(level, line)

    def write_exception(
        self,
        exc: Optional[BaseException],
        level: LogLevel = LogLevel.ERROR,
        message: Optional[str] = None,
    ) -> None:
        """Writes an exception, its stack and its chained causes.

        Args:
            exc: The exception to describe. None is ignored.
            level: Severity for every record written.
            message: Optional leading message written before the details.
        """
        if exc is None or not self.logging_enabled:
            return
        self._broker.record_exception(exc)
        self._write_exception(exc, level, message)

    def _write_exception(self, exc: BaseException, level: LogLevel, message: Optional[str]) -> None:
        frames = traceback.extract_tb(exc.__traceback__)
        origin = frames[-1].name if frames else type(exc).__name__

        if message:
            self._emit(level, message, depth=1)
        self._emit(level, f"EXCEPTION THROWN FROM {origin}. DETAILS ARE SHOWN BELOW", depth=1)
        self._emit(level, f"\tEX MESSAGE {exc}", depth=1)
        self._emit(level, f"\tEX TYPE    {type(exc).__name__}", depth=1)
        if frames:
            stack = "".join(traceback.format_list(frames)).rstrip().replace("\n", "\n\t")
            self._emit(level, f"\tEX STACK\n\t{stack}", depth=1)
        else:
            self._emit(level, "FURTHER DIAGNOSTIC INFO IS NOT AVAILABLE AT THIS TIME.", depth=1)

        inner = exc.__cause__ or exc.__context__
        if inner is not None:
            self._emit(level, "EXCEPTION CONTAINS CHILD EXCEPTION! LOGGING IT NOW", depth=1)
            self._write_exception(inner, level, f"{type(exc).__name__} -- INNER EXCEPTION")

    def write_object_json(self, obj: Any, indent: bool = True, level: LogLevel = LogLevel.DEBUG) -> None:
        """Writes an object serialized as JSON. Indented output is written one record per line."""
        if not self.logging_enabled:
            return
        if isinstance(obj, BaseModel):
            obj = obj.model_dump(mode="json")
        serialized = json.dumps(obj, indent=4 if indent else None, default=str)
        for line in serialized.splitlines():
            self._emit(level, line)

    def _emit(
        self,
        level: LogLevel,
        message: str,
        exception: Optional[BaseException] = None,
        depth: int = 0,
    ) -> None:
        scope = {
            "logger_name": self.logger_name,
            "logger_class": self.logger_class,
            "logger_id": self.logger_id,
        }
        # depth 2 is the caller of the public write method
        self._broker.backend.log(LogLevel.coerce(level), scope, message, exception=exception, depth=depth + 2)

    # ------------------------------------------------------------------
    # Release

    def close(self) -> None:
        """Retracts this logger from the broker. Safe to call more than once."""
        if self._closed:
            return
        self._broker.registry.destroy(self)

    def mark_closed(self) -> None:
        self._closed = True


def _calling_class() -> str:
    """Name of the first class (or module) on the stack outside this package."""
    frame = inspect.currentframe()
    try:
        while frame is not None:
            module = frame.f_globals.get("__name__", "")
            if module.split(".")[0] != _PACKAGE:
                instance = frame.f_locals.get("self")
                if instance is not None:
                    return type(instance).__name__
                return module.split(".")[-1] or frame.f_code.co_name
            frame = frame.f_back
        return _PACKAGE
    finally:
        del frame
