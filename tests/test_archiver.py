# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_log_broker

import zipfile
from datetime import datetime
from pathlib import Path
from typing import Iterator, List
from unittest.mock import patch

import pytest
from conftest import make_log_files

from coreason_log_broker.archiver.events import ArchiveCompletedEvent, ArchiveEventType
from coreason_log_broker.archiver.main import ARCHIVER_LOGGER_NAME, LogArchiver
from coreason_log_broker.broker import LogBroker
from coreason_log_broker.schemas import ArchiveConfig, LogLevel


@pytest.fixture
def archiver(broker: LogBroker) -> Iterator[LogArchiver]:
    with LogArchiver(broker) as instance:
        yield instance


def _config(tmp_path: Path, **overrides: object) -> ArchiveConfig:
    values = {
        "search_path": str(tmp_path / "source"),
        "archive_path": str(tmp_path / "archives"),
        "file_filter": "*.log",
    }
    values.update(overrides)
    return ArchiveConfig(**values)  # type: ignore[arg-type]


def test_archiver_requires_initialized_broker() -> None:
    with pytest.raises(RuntimeError):
        LogArchiver(LogBroker())


def test_archiver_opens_its_own_logger(archiver: LogArchiver, broker: LogBroker) -> None:
    assert archiver.log.logger_class == ARCHIVER_LOGGER_NAME
    assert broker.registry.find_loggers(name=ARCHIVER_LOGGER_NAME) == [archiver.log]


def test_operations_before_initialize_raise(archiver: LogArchiver) -> None:
    with pytest.raises(RuntimeError):
        archiver.archive_log_files()
    with pytest.raises(RuntimeError):
        archiver.cleanup_archive_history()
    with pytest.raises(RuntimeError):
        archiver.cleanup_subdirectories()


def test_missing_search_path_leaves_archiver_uninitialized(archiver: LogArchiver, tmp_path: Path) -> None:
    assert archiver.initialize(_config(tmp_path, search_path=str(tmp_path / "missing"))) is False
    assert not archiver.initialized
    with pytest.raises(RuntimeError):
        archiver.archive_log_files()


def test_initialize_and_archive(archiver: LogArchiver, tmp_path: Path) -> None:
    files = make_log_files(tmp_path / "source", 47)

    assert archiver.initialize(_config(tmp_path)) is True
    assert len(archiver.archive_sets) == 3
    assert archiver.archive_log_files() is True

    assert all(path.exists() for path in archiver.output_files)
    assert len([path for path in files if path.exists()]) == 2
    assert archiver.cleanup_archive_history() is True


def test_should_archive_uses_trigger_count(archiver: LogArchiver, tmp_path: Path) -> None:
    make_log_files(tmp_path / "source", 19)
    assert archiver.should_archive(_config(tmp_path)) is False
    make_log_files(tmp_path / "source", 1, prefix="Extra")
    assert archiver.should_archive(_config(tmp_path)) is True


def test_run_below_trigger_does_nothing(archiver: LogArchiver, tmp_path: Path) -> None:
    files = make_log_files(tmp_path / "source", 10)
    assert archiver.run(_config(tmp_path, set_size=5)) is True
    assert all(path.exists() for path in files)
    assert not (tmp_path / "archives").exists()


def test_run_archives_and_publishes_events(archiver: LogArchiver, tmp_path: Path) -> None:
    completed: List[ArchiveCompletedEvent] = []
    archiver.subscribe(ArchiveEventType.ARCHIVE_COMPLETED, completed.append)  # type: ignore[arg-type]
    files = make_log_files(tmp_path / "source", 22)

    assert archiver.run(_config(tmp_path, set_size=10)) is True

    assert len(completed) == 2
    assert [path for path in files if path.exists()] == files[20:]
    assert len(list((tmp_path / "archives").glob("*.zip"))) == 2


def test_describe(archiver: LogArchiver, tmp_path: Path) -> None:
    assert "Not Configured!" in archiver.describe()
    make_log_files(tmp_path / "source", 3)
    archiver.initialize(_config(tmp_path))
    banner = archiver.describe()
    assert "Archiver Ready!" in banner
    assert "0 Sets Built" in banner
    assert "zip (optimal)" in banner


def test_close_releases_logger(broker: LogBroker) -> None:
    instance = LogArchiver(broker)
    instance.close()
    assert instance.log.closed
    assert broker.registry.find_loggers(name=ARCHIVER_LOGGER_NAME) == []


def test_sets_with_identical_tokens_get_distinct_containers(archiver: LogArchiver, tmp_path: Path) -> None:
    source = tmp_path / "source"
    source.mkdir()
    files = []
    for index in range(30):
        path = source / f"plain_{index:02d}.log"
        path.write_text(f"plain record {index}\n")
        files.append(path)

    with patch("coreason_log_broker.archiver.builder.creation_time", return_value=1_760_000_000.0):
        assert archiver.initialize(_config(tmp_path, set_size=15)) is True

    names = [archive_set.container_name for archive_set in archiver.archive_sets]
    assert len(set(names)) == 2
    assert names[1] == names[0].replace(".zip", "_1.zip")

    assert archiver.archive_log_files() is True
    assert not any(path.exists() for path in files)
    for container_path in archiver.output_files:
        with zipfile.ZipFile(container_path) as container:
            assert len(container.namelist()) == 15


def test_active_session_log_is_never_archived(archiver: LogArchiver, broker: LogBroker) -> None:
    log_folder = broker.log_file_folder
    active = broker.log_file_path
    assert log_folder is not None and active is not None and active.exists()
    make_log_files(log_folder, 14)

    assert archiver.initialize(ArchiveConfig(set_size=15)) is True
    assert archiver.archive_sets == []

    make_log_files(log_folder, 1, prefix="Late", start=datetime(2025, 2, 1, 8, 0, 0))
    assert archiver.initialize(ArchiveConfig(set_size=15)) is True
    assert len(archiver.archive_sets) == 1
    assert active not in archiver.archive_sets[0].files
    assert archiver.archive_log_files() is True

    assert active.exists()
    archiver.log.write_log("RECORD WRITTEN AFTER THE ARCHIVE RUN", LogLevel.INFO)
    assert "RECORD WRITTEN AFTER THE ARCHIVE RUN" in active.read_text(encoding="utf-8")
