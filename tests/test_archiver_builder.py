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
from conftest import BROKER_NAME, make_log_files

from coreason_log_broker.archiver.builder import (
    TIMESTAMP_PATTERN,
    ArchiveSetBuilder,
    resolve_archive_config,
)
from coreason_log_broker.broker import LogBroker
from coreason_log_broker.broker_logger import BrokerLogger
from coreason_log_broker.schemas import ArchiveConfig, CompressionStyle, LoggerType, Sink, SinkKind


@pytest.fixture
def builder_log(broker: LogBroker) -> Iterator[BrokerLogger]:
    with broker.open_logger(LoggerType.FILE, "BuilderTests") as log:
        yield log


@pytest.fixture
def builder(builder_log: BrokerLogger) -> ArchiveSetBuilder:
    return ArchiveSetBuilder(BROKER_NAME, builder_log)


def _config(tmp_path: Path, **overrides: object) -> ArchiveConfig:
    values = {
        "search_path": str(tmp_path / "source"),
        "archive_path": str(tmp_path / "archives"),
        "file_filter": "*.log",
        "set_size": 15,
    }
    values.update(overrides)
    return ArchiveConfig(**values)  # type: ignore[arg-type]


def test_resolve_defaults_for_blank_and_zero_values(broker: LogBroker) -> None:
    config = ArchiveConfig(file_filter="  ", set_size=0, trigger_count=-4, cleanup_count=0)
    resolved = resolve_archive_config(config, broker.state)

    assert resolved.file_filter == "*.*"
    assert (resolved.set_size, resolved.trigger_count, resolved.cleanup_count) == (15, 20, 50)
    assert resolved.search_path == str(broker.log_file_folder.resolve())  # type: ignore[union-attr]
    assert resolved.archive_path == str(broker.log_file_folder.resolve() / "LogArchives")  # type: ignore[union-attr]


def test_resolve_equal_paths_forces_archive_subfolder(tmp_path: Path) -> None:
    config = ArchiveConfig(search_path=str(tmp_path), archive_path=str(tmp_path))
    resolved = resolve_archive_config(config, None)
    assert Path(resolved.archive_path) == tmp_path.resolve() / "LogArchives"  # type: ignore[arg-type]


def test_resolve_keeps_distinct_paths(tmp_path: Path) -> None:
    resolved = resolve_archive_config(_config(tmp_path), None)
    assert Path(resolved.archive_path) == (tmp_path / "archives").resolve()  # type: ignore[arg-type]
    assert resolved.set_size == 15


def test_forty_seven_files_make_three_sets(builder: ArchiveSetBuilder, tmp_path: Path) -> None:
    files = make_log_files(tmp_path / "source", 47)
    sets = builder.build_sets(_config(tmp_path))
    try:
        assert len(sets) == 3
        assert [len(archive_set.files) for archive_set in sets] == [15, 15, 15]
        assert sets[0].files == tuple(files[:15])
        assert sets[2].files == tuple(files[30:45])
        assert all(archive_set.is_open for archive_set in sets)
        assert all(archive_set.container_path.exists() for archive_set in sets)
    finally:
        for archive_set in sets:
            archive_set.close()


def test_container_names_carry_first_and_last_token(builder: ArchiveSetBuilder, tmp_path: Path) -> None:
    files = make_log_files(tmp_path / "source", 30)
    sets = builder.build_sets(_config(tmp_path))
    try:
        names = [archive_set.container_name for archive_set in sets]
        assert len(set(names)) == 2
        first_token = TIMESTAMP_PATTERN.search(files[0].name).group(0)  # type: ignore[union-attr]
        last_token = TIMESTAMP_PATTERN.search(files[14].name).group(0)  # type: ignore[union-attr]
        assert names[0] == f"{BROKER_NAME}_{first_token}_{last_token}.zip"
    finally:
        for archive_set in sets:
            archive_set.close()


def test_gzip_style_uses_gz_extension(builder: ArchiveSetBuilder, tmp_path: Path) -> None:
    make_log_files(tmp_path / "source", 15)
    sets = builder.build_sets(_config(tmp_path, compression_style=CompressionStyle.GZIP))
    try:
        assert sets[0].container_name.endswith(".gz")
    finally:
        sets[0].close()


def test_fewer_files_than_set_size_build_nothing(builder: ArchiveSetBuilder, tmp_path: Path) -> None:
    make_log_files(tmp_path / "source", 14)
    assert builder.build_sets(_config(tmp_path)) == []


def test_missing_search_path_builds_nothing(builder: ArchiveSetBuilder, tmp_path: Path) -> None:
    assert builder.build_sets(_config(tmp_path, search_path=str(tmp_path / "missing"))) == []
    assert builder.list_candidates(_config(tmp_path, search_path=str(tmp_path / "missing"))) == []


def test_existing_container_is_replaced(builder: ArchiveSetBuilder, tmp_path: Path) -> None:
    make_log_files(tmp_path / "source", 15)
    first = builder.build_sets(_config(tmp_path))
    first[0].close()
    stale = first[0].container_path
    stale.write_bytes(b"stale content")

    second = builder.build_sets(_config(tmp_path))
    try:
        assert second[0].container_path == stale
        assert stale.read_bytes() != b"stale content"
    finally:
        second[0].close()


def test_file_without_token_uses_creation_time(builder: ArchiveSetBuilder, tmp_path: Path) -> None:
    plain = tmp_path / "plain.log"
    plain.write_text("no timestamp here")
    token = builder.timestamp_token(plain)
    assert TIMESTAMP_PATTERN.fullmatch(token)


def test_open_file_sinks_are_not_candidates(builder: ArchiveSetBuilder, broker: LogBroker, tmp_path: Path) -> None:
    files = make_log_files(tmp_path / "source", 3)
    audit_sink = Sink(name="AuditSink", kind=SinkKind.FILE, destination=files[1], template="{message}")

    with broker.open_logger(LoggerType.CONSOLE, "Audit") as audit:
        assert audit.register_target(audit_sink) is True
        assert set(builder.list_candidates(_config(tmp_path))) == {files[0], files[2]}

    assert set(builder.list_candidates(_config(tmp_path))) == set(files)
