# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_log_broker

import re
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Set, Union

from coreason_log_broker.backend import LoguruBackend
from coreason_log_broker.broker_logger import BrokerLogger
from coreason_log_broker.schemas import LoggerType, LogLevel, RoutingRule, Sink, TargetDiff
from utils.logger import logger

_TYPE_ORDER = {LoggerType.UNIVERSAL: 0, LoggerType.CONSOLE: 1, LoggerType.FILE: 2}


class LoggerRegistry:
    """Pool of live loggers and the gateway to the shared sink/rule configuration.

    Two plain locks guard the state: the pool lock, then the configuration lock. Every
    mutation takes both, always in that order, so concurrent open/close calls can never
    leave duplicate sinks behind or interleave half-applied diffs.
    """

    def __init__(self, backend: LoguruBackend):
        self._backend = backend
        self._pool: List[BrokerLogger] = []
        self._pool_lock = threading.Lock()
        self._config_lock = threading.Lock()
        self._protected_id: Optional[str] = None
        # Entries published without an owning logger; logger teardown never retracts them
        self._unowned_sinks: Set[str] = set()
        self._unowned_rules: Set[str] = set()

    @contextmanager
    def _locked(self) -> Iterator[None]:
        with self._pool_lock:
            with self._config_lock:
                yield

    @property
    def loggers(self) -> List[BrokerLogger]:
        with self._pool_lock:
            return list(self._pool)

    @property
    def sinks(self) -> List[Sink]:
        with self._config_lock:
            return self._backend.sinks

    @property
    def rules(self) -> List[RoutingRule]:
        with self._config_lock:
            return self._backend.rules

    def register(self, broker_logger: BrokerLogger, protected: bool = False) -> bool:
        """Inserts a logger into the pool and merges its sinks and rules into the backend.

        A pooled logger with the same id or name is replaced in place. Sinks and rules that
        already exist by name are left untouched.

        Args:
            broker_logger: The logger to register.
            protected: Marks the logger as the session master. Its protected sinks are only
                retracted by its own teardown.

        Returns:
            bool: True if the logger is in the pool afterwards.
        """
        with self._locked():
            matches = [
                index
                for index, pooled in enumerate(self._pool)
                if pooled.logger_id == broker_logger.logger_id or pooled.logger_name == broker_logger.logger_name
            ]
            if matches:
                self._pool[matches[0]] = broker_logger
                for index in reversed(matches[1:]):
                    del self._pool[index]
            else:
                self._pool.append(broker_logger)

            if protected:
                self._protected_id = broker_logger.logger_id

            self._merge(
                TargetDiff(added_sinks=tuple(broker_logger.sinks), added_rules=tuple(broker_logger.rules)),
                broker_logger,
            )
            return broker_logger in self._pool

    def destroy(self, broker_logger: BrokerLogger) -> bool:
        """Removes a logger from the pool and retracts its configuration.

        Rules owned by the logger are removed unless they were published without an owner. A
        sink is kept when another pooled logger still holds it, when it was published without
        an owner, or when it is protected and the logger is not the session master. Calling
        this again for the same logger is a no-op returning True.

        Returns:
            bool: True if no trace of the logger remains in the pool or the configuration.
        """
        with self._locked():
            diff = broker_logger.release_all()
            self._pool = [
                pooled
                for pooled in self._pool
                if pooled.logger_id != broker_logger.logger_id and pooled.logger_name != broker_logger.logger_name
            ]

            is_master = broker_logger.logger_id == self._protected_id
            self._retract(diff, broker_logger)

            if is_master:
                self._protected_id = None
            broker_logger.mark_closed()

            logger.debug(f"Destroyed logger {broker_logger.logger_name}")
            return broker_logger not in self._pool and not any(
                self._backend.find_rule(rule.name)
                for rule in diff.removed_rules
                if rule.name not in self._unowned_rules
            )

    def apply(self, diff: TargetDiff, owner: Optional[BrokerLogger] = None) -> None:
        """Applies a TargetDiff to the shared configuration under both locks.

        Entries added without an ``owner`` belong to the shared configuration itself: closing a
        logger that attached the same names leaves them in place. Only another ownerless diff
        removes them.
        """
        with self._locked():
            self._apply(diff, owner)

    def register_target(self, broker_logger: BrokerLogger, sink: Sink) -> bool:
        with self._locked():
            diff = broker_logger.attach_target(sink)
            if diff is None:
                return False
            self._apply(diff, broker_logger)
            return True

    def remove_target(self, broker_logger: BrokerLogger, sink: Union[Sink, str]) -> bool:
        with self._locked():
            diff = broker_logger.detach_target(sink)
            if diff is None:
                return False
            self._apply(diff, broker_logger)
            return True

    def reapply_levels(self, session_min: LogLevel, session_max: LogLevel) -> None:
        """Re-clamps every pooled logger into a new session window and swaps its rules."""
        with self._locked():
            for pooled in self._pool:
                diff = pooled.apply_session_window(session_min, session_max)
                for rule in diff.removed_rules:
                    self._backend.remove_rule(rule.name)
                for rule in diff.added_rules:
                    self._backend.add_rule(rule)

    def find_loggers(
        self,
        logger_type: Optional[LoggerType] = None,
        name: Optional[str] = None,
        use_regex: bool = False,
        predicate: Optional[Callable[[BrokerLogger], bool]] = None,
    ) -> List[BrokerLogger]:
        """Queries the pool.

        Args:
            logger_type: Keep loggers of this type.
            name: Keep loggers whose name contains this text (or matches it as a regex).
            use_regex: Treat ``name`` as a regular expression.
            predicate: Keep loggers for which this returns True. Results are then ordered by
                logger type and id.

        Returns:
            List[BrokerLogger]: The matching loggers.
        """
        found = self.loggers
        if logger_type is not None:
            found = [pooled for pooled in found if pooled.logger_type is LoggerType(logger_type)]
        if name is not None:
            if use_regex:
                pattern = re.compile(name)
                found = [pooled for pooled in found if pattern.search(pooled.logger_name)]
            else:
                found = [pooled for pooled in found if name in pooled.logger_name]
        if predicate is not None:
            found = sorted(
                (pooled for pooled in found if predicate(pooled)),
                key=lambda pooled: (_TYPE_ORDER[pooled.logger_type], pooled.logger_id),
            )
        return found

    def _merge(self, diff: TargetDiff, owner: Optional[BrokerLogger]) -> None:
        for sink in diff.added_sinks:
            self._backend.add_sink(sink)
            if owner is None:
                self._unowned_sinks.add(sink.name)
        for rule in diff.added_rules:
            self._backend.add_rule(rule)
            if owner is None:
                self._unowned_rules.add(rule.name)

    def _apply(self, diff: TargetDiff, owner: Optional[BrokerLogger]) -> None:
        self._retract(diff, owner)
        self._merge(diff, owner)

    def _retract(self, diff: TargetDiff, owner: Optional[BrokerLogger]) -> None:
        is_master = owner is not None and owner.logger_id == self._protected_id
        for rule in diff.removed_rules:
            if owner is not None and rule.name in self._unowned_rules:
                continue
            self._unowned_rules.discard(rule.name)
            self._backend.remove_rule(rule.name)
        for sink in diff.removed_sinks:
            if owner is not None and sink.name in self._unowned_sinks:
                continue
            if sink.protected and not is_master:
                continue
            if not is_master and self._held_elsewhere(sink.name):
                continue
            self._unowned_sinks.discard(sink.name)
            self._backend.remove_sink(sink.name)

    def _held_elsewhere(self, sink_name: str) -> bool:
        return any(pooled.holds_sink(sink_name) for pooled in self._pool)
