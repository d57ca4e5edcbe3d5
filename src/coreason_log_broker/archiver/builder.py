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
import re
from datetime import datetime
from itertools import groupby
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Set, Tuple

from coreason_log_broker.archiver.containers import ArchiveContainer, open_container
from coreason_log_broker.broker_logger import BrokerLogger
from coreason_log_broker.schemas import (
    ARCHIVE_FOLDER_NAME,
    DEFAULT_CLEANUP_COUNT,
    DEFAULT_FILE_FILTER,
    DEFAULT_SET_SIZE,
    DEFAULT_TRIGGER_COUNT,
    LOGGER_TIME_FORMAT,
    ArchiveConfig,
    CompressionLevel,
    CompressionStyle,
    LogLevel,
    SessionState,
    SinkKind,
)

if TYPE_CHECKING:
    from coreason_log_broker.broker import LogBroker

# MMddyyyy-HHmmss token embedded in log file names
TIMESTAMP_PATTERN = re.compile(r"(\d{2})(\d{2})(\d{4})-(\d{6})")


def creation_time(path: Path) -> float:
    """Birth time where the platform reports one, otherwise the inode change time."""
    stat = path.stat()
    return getattr(stat, "st_birthtime", stat.st_ctime)


def modified_time(path: Path) -> float:
    return path.stat().st_mtime


def live_log_files(broker: "LogBroker") -> Set[Path]:
    """Files the broker still writes to: the session log and every registered file sink."""
    live = [sink.destination for sink in broker.registry.sinks if sink.kind is SinkKind.FILE and sink.destination]
    if broker.log_file_path is not None:
        live.append(broker.log_file_path)
    return {Path(path).resolve() for path in live}


def resolve_archive_config(config: Optional[ArchiveConfig], session: Optional[SessionState]) -> ArchiveConfig:
    """Fills defaults into an archive configuration.

    Zero, negative or blank values take the defaults. Blank paths fall back to the session log
    folder. When the search and archive paths are the same folder, containers go to a
    ``LogArchives`` subfolder so they are never picked up as sources.

    Args:
        config: The requested configuration, possibly None.
        session: The broker session supplying the default folder.

    Returns:
        ArchiveConfig: A fully populated configuration with absolute paths.
    """
    config = config or ArchiveConfig()
    session_folder = session.log_file_folder if session is not None else None
    fallback = str(session_folder) if session_folder is not None else os.getcwd()

    search_path = Path((config.search_path or "").strip() or fallback).expanduser().resolve()
    archive_path = Path((config.archive_path or "").strip() or fallback).expanduser().resolve()
    if search_path == archive_path:
        archive_path = archive_path / ARCHIVE_FOLDER_NAME

    return ArchiveConfig(
        search_path=str(search_path),
        archive_path=str(archive_path),
        file_filter=config.file_filter.strip() or DEFAULT_FILE_FILTER,
        set_size=config.set_size if config.set_size > 0 else DEFAULT_SET_SIZE,
        trigger_count=config.trigger_count if config.trigger_count > 0 else DEFAULT_TRIGGER_COUNT,
        cleanup_count=config.cleanup_count if config.cleanup_count > 0 else DEFAULT_CLEANUP_COUNT,
        compression_level=config.compression_level,
        compression_style=config.compression_style,
    )


class ArchiveSet:
    """An ordered group of source files bound for one container.

    The container is created lazily by ``open()`` and written by the compression engine.
    """

    def __init__(
        self,
        files: Tuple[Path, ...],
        container_path: Path,
        style: CompressionStyle = CompressionStyle.ZIP,
        level: CompressionLevel = CompressionLevel.OPTIMAL,
    ):
        self.files = tuple(files)
        self.container_path = container_path
        self.style = style
        self.level = level
        self._container: Optional[ArchiveContainer] = None

    def __repr__(self) -> str:
        return f"ArchiveSet({self.container_name!r}, files={len(self.files)})"

    @property
    def container_name(self) -> str:
        return self.container_path.name

    @property
    def is_open(self) -> bool:
        return self._container is not None

    def open(self) -> ArchiveContainer:
        if self._container is None:
            self._container = open_container(self.container_path, self.style, self.level)
        return self._container

    def close(self) -> None:
        if self._container is not None:
            self._container.close()
            self._container = None

    def discard(self) -> None:
        """Closes the container and removes it if nothing was written into it."""
        if self._container is None:
            return
        written = self._container.entry_count
        self.close()
        if not written and self.container_path.exists():
            self.container_path.unlink()


class ArchiveSetBuilder:
    """Partitions matching log files into fixed-size chronological sets."""

    def __init__(self, broker_name: str, log: BrokerLogger):
        self.broker_name = broker_name
        self.log = log

    def list_candidates(self, config: ArchiveConfig) -> List[Path]:
        """Files matching the filter in the search folder, oldest first (ties broken by name).

        Files still open in one of the broker's sinks are never candidates.
        """
        search_path = Path(config.search_path or "")
        if not search_path.is_dir():
            return []
        live = live_log_files(self.log.broker)
        files = [path for path in search_path.glob(config.file_filter) if path.is_file() and path.resolve() not in live]
        return sorted(files, key=lambda path: (creation_time(path), path.name))

    def build_sets(self, config: ArchiveConfig) -> List[ArchiveSet]:
        """Builds and opens one ArchiveSet per full group of ``set_size`` files.

        A trailing partial group is left in place for a later run. An existing container with
        the same name is replaced.

        Returns:
            List[ArchiveSet]: The opened sets, empty when the search folder does not exist.
        """
        search_path = Path(config.search_path or "")
        if not search_path.is_dir():
            self.log.write_log(f"SEARCH PATH {search_path} DOES NOT EXIST! NO SETS CAN BE BUILT", LogLevel.WARN)
            return []

        candidates = self.list_candidates(config)
        self.log.write_log(f"FOUND {len(candidates)} FILES MATCHING {config.file_filter} IN {search_path}", LogLevel.INFO)

        archive_path = Path(config.archive_path or "")
        archive_sets: List[ArchiveSet] = []
        claimed: Set[str] = set()
        for _, group in groupby(enumerate(candidates), key=lambda pair: pair[0] // config.set_size):
            files = tuple(path for _, path in group)
            if len(files) < config.set_size:
                self.log.write_log(f"LEAVING {len(files)} FILES FOR A LATER ARCHIVE RUN", LogLevel.TRACE)
                continue

            container_path = archive_path / self._claim_name(files, config.compression_style, claimed)

            archive_path.mkdir(parents=True, exist_ok=True)
            if container_path.exists():
                self.log.write_log(f"REPLACING EXISTING ARCHIVE {container_path.name}", LogLevel.WARN)
                container_path.unlink()

            archive_set = ArchiveSet(files, container_path, config.compression_style, config.compression_level)
            archive_set.open()
            archive_sets.append(archive_set)
            self.log.write_log(f"BUILT ARCHIVE SET {archive_set.container_name} ({len(files)} FILES)", LogLevel.TRACE)

        return archive_sets

    def _claim_name(self, files: Tuple[Path, ...], style: CompressionStyle, claimed: Set[str]) -> str:
        """Container name for a set, numbered when an earlier set of this run took the same name."""
        stem = f"{self.broker_name}_{self.timestamp_token(files[0])}_{self.timestamp_token(files[-1])}"
        name = f"{stem}.{style.extension}"
        counter = 1
        while name in claimed:
            name = f"{stem}_{counter}.{style.extension}"
            counter += 1
        if counter > 1:
            self.log.write_log(f"CONTAINER NAME {stem} IS ALREADY TAKEN IN THIS RUN. USING {name}", LogLevel.WARN)
        claimed.add(name)
        return name

    def timestamp_token(self, path: Path) -> str:
        """The MMddyyyy-HHmmss token from a file name, or the file's creation time in that form."""
        match = TIMESTAMP_PATTERN.search(path.name)
        if match:
            return match.group(0)
        token = datetime.fromtimestamp(creation_time(path)).strftime(LOGGER_TIME_FORMAT)
        self.log.write_log(
            f"FILE {path.name} HAS NO TIMESTAMP TOKEN! USING ITS CREATION TIME {token} INSTEAD", LogLevel.WARN
        )
        return token
