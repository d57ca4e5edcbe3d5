# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_log_broker

import time
from datetime import timedelta
from typing import Iterable

from coreason_log_broker.archiver.builder import ArchiveSet
from coreason_log_broker.archiver.events import (
    ArchiveCompletedEvent,
    ArchiveEventDispatcher,
    FileAddedEvent,
    FileFailedEvent,
)
from coreason_log_broker.broker_logger import BrokerLogger
from coreason_log_broker.schemas import LogLevel


class CompressionEngine:
    """Writes archive sets into their containers and removes the archived sources."""

    def __init__(self, log: BrokerLogger, events: ArchiveEventDispatcher):
        self.log = log
        self.events = events

    def archive_sets(self, archive_sets: Iterable[ArchiveSet]) -> bool:
        """
        Archives every set in order.

        Returns:
            bool: True if every file was archived and every container exists.
        """
        archive_sets = list(archive_sets)
        started = time.perf_counter()
        self.log.write_log(f"ARCHIVING {len(archive_sets)} SETS NOW...", LogLevel.INFO)

        results = [self.archive_set(archive_set) for archive_set in archive_sets]
        all_exist = all(archive_set.container_path.exists() for archive_set in archive_sets)

        elapsed = time.perf_counter() - started
        self.log.write_log(f"ARCHIVED {len(archive_sets)} SETS IN {elapsed:.3f} SECONDS", LogLevel.INFO)
        return all(results) and all_exist

    def archive_set(self, archive_set: ArchiveSet) -> bool:
        """
        Writes one set into its container.

        Each source is added under its bare file name and deleted once written. A file that
        cannot be read or removed is reported through a FileFailedEvent and skipped.

        Returns:
            bool: True if every file of the set was archived.
        """
        started = time.perf_counter()
        total = len(archive_set.files)
        succeeded = True
        container = archive_set.open()

        try:
            for source in archive_set.files:
                try:
                    container.add_file(source, source.name)
                    self.events.emit(
                        FileAddedEvent(
                            container_name=archive_set.container_name,
                            container_path=archive_set.container_path,
                            file_name=source.name,
                            files_remaining=total - container.entry_count,
                            percent_done=container.entry_count / total * 100 if total else 100.0,
                        )
                    )
                    source.unlink()
                except OSError as e:
                    succeeded = False
                    self.log.write_exception(e, LogLevel.ERROR, f"FAILED TO ARCHIVE FILE {source.name}!")
                    self.events.emit(
                        FileFailedEvent(container_name=archive_set.container_name, file_name=source.name, error=e)
                    )
        finally:
            archive_set.close()

        byte_size = archive_set.container_path.stat().st_size if archive_set.container_path.exists() else 0
        self.events.emit(
            ArchiveCompletedEvent(
                container_name=archive_set.container_name,
                container_path=archive_set.container_path,
                byte_size=byte_size,
                elapsed=timedelta(seconds=time.perf_counter() - started),
            )
        )
        self.log.write_log(
            f"ARCHIVE {archive_set.container_name} CLOSED ({byte_size} BYTES, {container.entry_count}/{total} FILES)",
            LogLevel.DEBUG,
        )
        return succeeded
