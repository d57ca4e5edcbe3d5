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
from fnmatch import fnmatchcase
from functools import partial
from typing import Any, Dict, List, Optional, Tuple, Union

from coreason_log_broker.levels import backend_level_no, to_backend_level
from coreason_log_broker.schemas import LogLevel, RoutingRule, Sink, SinkKind
from utils.logger import logger

# (name pattern, lowest severity number, highest severity number)
_Route = Tuple[str, int, int]


class LoguruBackend:
    """Owns the loguru handlers that carry broker records.

    Every sink maps to exactly one loguru handler. The handler's filter accepts a record only
    when a routing rule bound to that sink matches the record's ``logger_name`` extra and its
    severity window contains the record's level. Records without a ``logger_name`` (the
    library's own diagnostics) never reach these handlers.

    Mutations are expected to be serialized by the caller (the registry's configuration lock).
    The route table is swapped as a whole on every change, so filters running on other threads
    always see a consistent snapshot.
    """

    def __init__(self) -> None:
        self._sinks: Dict[str, Sink] = {}
        self._handler_ids: Dict[str, int] = {}
        self._rules: Dict[str, RoutingRule] = {}
        self._routes: Dict[str, Tuple[_Route, ...]] = {}

    @property
    def sinks(self) -> List[Sink]:
        return list(self._sinks.values())

    @property
    def rules(self) -> List[RoutingRule]:
        return list(self._rules.values())

    def find_sink(self, name: str) -> Optional[Sink]:
        return self._sinks.get(name)

    def find_rule(self, name: str) -> Optional[RoutingRule]:
        return self._rules.get(name)

    def add_sink(self, sink: Sink) -> bool:
        """Installs a loguru handler for the sink unless one with the same name exists.

        Returns:
            bool: True if a handler was added.
        """
        if sink.name in self._sinks:
            return False

        route = partial(self._route, sink.name)
        if sink.kind is SinkKind.CONSOLE:
            handler_id = logger.add(
                sys.stderr,
                level=0,
                format=sink.template,
                filter=route,
                colorize=None,
                backtrace=False,
                diagnose=False,
            )
        else:
            handler_id = logger.add(
                str(sink.destination),
                level=0,
                format=sink.template,
                filter=route,
                colorize=False,
                backtrace=False,
                diagnose=False,
                encoding="utf-8",
            )

        self._sinks[sink.name] = sink
        self._handler_ids[sink.name] = handler_id
        self._rebuild_routes()
        return True

    def remove_sink(self, name: str) -> bool:
        """Removes the sink's handler, closing its file. Rules pointing at it stay inert until removed."""
        sink = self._sinks.pop(name, None)
        if sink is None:
            return False

        handler_id = self._handler_ids.pop(name)
        try:
            logger.remove(handler_id)
        except ValueError:
            logger.warning(f"Handler for sink {name} was already removed from loguru")
        self._rebuild_routes()
        return True

    def add_rule(self, rule: RoutingRule) -> bool:
        if rule.name in self._rules:
            return False
        self._rules[rule.name] = rule
        self._rebuild_routes()
        return True

    def remove_rule(self, name: str) -> bool:
        if self._rules.pop(name, None) is None:
            return False
        self._rebuild_routes()
        return True

    def log(
        self,
        level: LogLevel,
        scope_properties: Dict[str, Any],
        message: str,
        exception: Optional[Union[BaseException, bool]] = None,
        depth: int = 0,
    ) -> None:
        """Emits one record carrying the scope properties as loguru extras.

        Args:
            level: Severity of the record. OFF records are dropped.
            scope_properties: Values bound to the record (logger_name is used for routing).
            message: Already formatted message text.
            exception: Exception (or True for the active one) attached to the record.
            depth: Extra stack frames between the caller of interest and this method.
        """
        backend_level = to_backend_level(level)
        if backend_level is None:
            return
        logger.bind(**scope_properties).opt(depth=depth + 1, exception=exception).log(backend_level, message)

    def close(self) -> None:
        """Removes every handler this backend installed."""
        for name in list(self._sinks):
            self.remove_sink(name)
        self._rules.clear()
        self._routes = {}

    def _rebuild_routes(self) -> None:
        routes: Dict[str, List[_Route]] = {name: [] for name in self._sinks}
        for rule in self._rules.values():
            if rule.sink_name not in routes or LogLevel.OFF in (rule.min_level, rule.max_level):
                continue
            routes[rule.sink_name].append(
                (rule.name_pattern, backend_level_no(rule.min_level), backend_level_no(rule.max_level))
            )
        self._routes = {name: tuple(entries) for name, entries in routes.items()}

    def _route(self, sink_name: str, record: Dict[str, Any]) -> bool:
        logger_name = record["extra"].get("logger_name")
        if logger_name is None:
            return False

        level_no = record["level"].no
        for pattern, low, high in self._routes.get(sink_name, ()):
            if low <= level_no <= high and fnmatchcase(logger_name, pattern):
                return True
        return False
