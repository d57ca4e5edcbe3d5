# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_log_broker

import threading
from pathlib import Path
from typing import List

from coreason_log_broker.broker import LogBroker
from coreason_log_broker.schemas import LoggerType, LogLevel, Sink, SinkKind, TargetDiff


def _sink_names(broker: LogBroker) -> List[str]:
    return sorted(sink.name for sink in broker.registry.sinks)


def _rule_names(broker: LogBroker) -> List[str]:
    return sorted(rule.name for rule in broker.registry.rules)


def _shared_sink(tmp_path: Path) -> Sink:
    return Sink(
        name="SharedAudit",
        kind=SinkKind.FILE,
        destination=tmp_path / "shared.log",
        template="{extra[logger_class]} ::: {message}",
    )


def test_register_then_destroy_restores_configuration(broker: LogBroker) -> None:
    sinks_before = _sink_names(broker)
    rules_before = _rule_names(broker)

    with broker.open_logger(LoggerType.UNIVERSAL, "Scoped") as scoped:
        assert len(_rule_names(broker)) == len(rules_before) + 2
        assert scoped in broker.registry.loggers

    assert _sink_names(broker) == sinks_before
    assert _rule_names(broker) == rules_before
    assert scoped.closed
    assert scoped not in broker.registry.loggers


def test_master_sinks_survive_other_loggers(broker: LogBroker) -> None:
    master_sinks = {broker.master_console_sink.name, broker.master_file_sink.name}  # type: ignore[union-attr]
    worker = broker.open_logger(LoggerType.FILE, "Worker")
    assert worker.holds_sink(broker.master_file_sink.name)  # type: ignore[union-attr]
    assert not worker.holds_sink(broker.master_console_sink.name)  # type: ignore[union-attr]

    assert worker.remove_target(broker.master_file_sink) is True  # type: ignore[arg-type]
    worker.close()
    assert master_sinks.issubset(set(_sink_names(broker)))


def test_shared_sink_name_is_held_once(broker: LogBroker, tmp_path: Path) -> None:
    first = broker.open_logger(LoggerType.CONSOLE, "First")
    second = broker.open_logger(LoggerType.CONSOLE, "Second")

    assert first.register_target(_shared_sink(tmp_path)) is True
    assert second.register_target(_shared_sink(tmp_path)) is True
    assert first.register_target(_shared_sink(tmp_path)) is False
    assert _sink_names(broker).count("SharedAudit") == 1

    first.close()
    assert "SharedAudit" in _sink_names(broker)
    second.close()
    assert "SharedAudit" not in _sink_names(broker)


def test_custom_sink_only_receives_its_logger(broker: LogBroker, tmp_path: Path) -> None:
    owner = broker.open_logger(LoggerType.CONSOLE, "Owner")
    bystander = broker.open_logger(LoggerType.CONSOLE, "Bystander")
    owner.register_target(_shared_sink(tmp_path))

    owner.write_log("owner record", LogLevel.INFO)
    bystander.write_log("bystander record", LogLevel.INFO)
    owner.close()
    bystander.close()

    content = (tmp_path / "shared.log").read_text(encoding="utf-8")
    assert "Owner ::: owner record" in content
    assert "bystander record" not in content


def test_remove_target_reports_missing(broker: LogBroker) -> None:
    worker = broker.open_logger(LoggerType.CONSOLE, "Worker")
    assert worker.remove_target("NoSuchSink") is False
    worker.close()


def test_register_replaces_in_place(broker: LogBroker) -> None:
    worker = broker.open_logger(LoggerType.UNIVERSAL, "Worker")
    pool_size = len(broker.registry.loggers)

    assert broker.registry.register(worker) is True
    assert len(broker.registry.loggers) == pool_size
    assert broker.registry.find_loggers(name=worker.logger_name) == [worker]
    worker.close()


def test_destroy_is_idempotent(broker: LogBroker) -> None:
    worker = broker.open_logger(LoggerType.UNIVERSAL, "Worker")
    assert broker.registry.destroy(worker) is True
    assert broker.registry.destroy(worker) is True
    worker.close()
    assert worker not in broker.registry.loggers


def test_apply_diff(broker: LogBroker, tmp_path: Path) -> None:
    sink = _shared_sink(tmp_path)
    broker.registry.apply(TargetDiff(added_sinks=(sink,)))
    assert "SharedAudit" in _sink_names(broker)
    broker.registry.apply(TargetDiff(removed_sinks=(sink,)))
    assert "SharedAudit" not in _sink_names(broker)


def test_find_loggers(broker: LogBroker) -> None:
    console = broker.open_logger(LoggerType.CONSOLE, "ConsoleWorker")
    file = broker.open_logger(LoggerType.FILE, "FileWorker")

    assert broker.registry.find_loggers(logger_type=LoggerType.CONSOLE) == [console]
    assert broker.registry.find_loggers(name="FileWorker") == [file]
    assert broker.registry.find_loggers(name=r"^(Console|File)Worker_", use_regex=True) == [console, file]

    ordered = broker.registry.find_loggers(predicate=lambda pooled: True)
    assert ordered[0] is broker.master_logger
    assert ordered[1:] == [console, file]

    console.close()
    file.close()


def test_concurrent_open_and_close(broker: LogBroker) -> None:
    sinks_before = _sink_names(broker)
    rules_before = _rule_names(broker)
    errors: List[BaseException] = []

    def churn(index: int) -> None:
        try:
            for attempt in range(15):
                with broker.open_logger(LoggerType.UNIVERSAL, f"Thread{index}") as worker:
                    worker.write_log(f"thread {index} attempt {attempt}", LogLevel.DEBUG)
        except Exception as e:  # pragma: no cover
            errors.append(e)

    threads = [threading.Thread(target=churn, args=(index,)) for index in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert broker.registry.loggers == [broker.master_logger]
    assert _sink_names(broker) == sinks_before
    assert _rule_names(broker) == rules_before


def test_destroy_leaves_ownerless_sinks_in_place(broker: LogBroker, tmp_path: Path) -> None:
    preexisting = Sink(
        name="Preexisting",
        kind=SinkKind.FILE,
        destination=tmp_path / "preexisting.log",
        template="{message}",
    )
    broker.registry.apply(TargetDiff(added_sinks=(preexisting,)))
    sinks_before = _sink_names(broker)
    rules_before = _rule_names(broker)

    worker = broker.open_logger(LoggerType.CONSOLE, "Worker")
    assert worker.register_target(preexisting) is True
    worker.close()

    assert _sink_names(broker) == sinks_before
    assert _rule_names(broker) == rules_before

    broker.registry.apply(TargetDiff(removed_sinks=(preexisting,)))
    assert "Preexisting" not in _sink_names(broker)


def test_remove_target_leaves_ownerless_sinks_in_place(broker: LogBroker, tmp_path: Path) -> None:
    sink = _shared_sink(tmp_path)
    broker.registry.apply(TargetDiff(added_sinks=(sink,)))

    with broker.open_logger(LoggerType.CONSOLE, "Worker") as worker:
        worker.register_target(sink)
        assert worker.remove_target(sink) is True
        assert "SharedAudit" in _sink_names(broker)
        assert not worker.holds_sink("SharedAudit")
