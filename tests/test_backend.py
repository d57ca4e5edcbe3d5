# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_log_broker

from pathlib import Path
from typing import Iterator

import pytest

from coreason_log_broker.backend import LoguruBackend
from coreason_log_broker.schemas import LogLevel, RoutingRule, Sink, SinkKind
from utils.logger import logger


@pytest.fixture
def backend() -> Iterator[LoguruBackend]:
    instance = LoguruBackend()
    yield instance
    instance.close()


@pytest.fixture
def file_sink(tmp_path: Path) -> Sink:
    return Sink(name="Audit", kind=SinkKind.FILE, destination=tmp_path / "audit.log", template="{message}")


def _rule(pattern: str, low: LogLevel = LogLevel.INFO, high: LogLevel = LogLevel.ERROR) -> RoutingRule:
    return RoutingRule(name=f"{pattern}_Audit", name_pattern=pattern, min_level=low, max_level=high, sink_name="Audit")


def _scope(logger_name: str) -> dict:
    return {"logger_name": logger_name, "logger_class": "BackendTests", "logger_id": logger_name}


def test_add_sink_is_add_if_absent(backend: LoguruBackend, file_sink: Sink) -> None:
    assert backend.add_sink(file_sink) is True
    assert backend.add_sink(file_sink) is False
    assert [sink.name for sink in backend.sinks] == ["Audit"]
    assert backend.find_sink("Audit") == file_sink


def test_remove_sink_twice(backend: LoguruBackend, file_sink: Sink) -> None:
    backend.add_sink(file_sink)
    assert backend.remove_sink("Audit") is True
    assert backend.remove_sink("Audit") is False
    assert backend.find_sink("Audit") is None


def test_rules_are_add_if_absent(backend: LoguruBackend) -> None:
    rule = _rule("*ABC*")
    assert backend.add_rule(rule) is True
    assert backend.add_rule(rule) is False
    assert backend.find_rule(rule.name) == rule
    assert backend.remove_rule(rule.name) is True
    assert backend.remove_rule(rule.name) is False


def test_records_follow_routing_rules(backend: LoguruBackend, file_sink: Sink) -> None:
    backend.add_sink(file_sink)
    backend.add_rule(_rule("*ABC*"))

    backend.log(LogLevel.INFO, _scope("Worker_ABC"), "routed message")
    backend.log(LogLevel.INFO, _scope("Worker_DEF"), "foreign message")
    backend.log(LogLevel.FATAL, _scope("Worker_ABC"), "above the window")
    backend.log(LogLevel.DEBUG, _scope("Worker_ABC"), "below the window")
    backend.log(LogLevel.OFF, _scope("Worker_ABC"), "never written")
    logger.info("diagnostic message")
    backend.close()

    content = file_sink.destination.read_text(encoding="utf-8")  # type: ignore[union-attr]
    assert "routed message" in content
    assert "foreign message" not in content
    assert "above the window" not in content
    assert "below the window" not in content
    assert "never written" not in content
    assert "diagnostic message" not in content


def test_disabled_rule_routes_nothing(backend: LoguruBackend, file_sink: Sink) -> None:
    backend.add_sink(file_sink)
    backend.add_rule(_rule("*ABC*", LogLevel.OFF, LogLevel.OFF))
    backend.log(LogLevel.ERROR, _scope("Worker_ABC"), "muted")
    backend.close()

    assert "muted" not in file_sink.destination.read_text(encoding="utf-8")  # type: ignore[union-attr]


def test_exception_is_rendered(backend: LoguruBackend, file_sink: Sink) -> None:
    backend.add_sink(file_sink)
    backend.add_rule(_rule("*ABC*"))
    try:
        raise KeyError("missing-key")
    except KeyError as e:
        backend.log(LogLevel.ERROR, _scope("Worker_ABC"), "lookup failed", exception=e)
    backend.close()

    content = file_sink.destination.read_text(encoding="utf-8")  # type: ignore[union-attr]
    assert "lookup failed" in content
    assert "missing-key" in content


def test_close_removes_everything(backend: LoguruBackend, file_sink: Sink) -> None:
    backend.add_sink(file_sink)
    backend.add_rule(_rule("*ABC*"))
    backend.close()
    assert backend.sinks == []
    assert backend.rules == []
