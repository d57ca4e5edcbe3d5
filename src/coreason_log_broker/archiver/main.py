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
from typing import Any, List, Optional

from coreason_log_broker.archiver.builder import ArchiveSet, ArchiveSetBuilder, resolve_archive_config
from coreason_log_broker.archiver.compressor import CompressionEngine
from coreason_log_broker.archiver.events import ArchiveEventCallback, ArchiveEventDispatcher, ArchiveEventType
from coreason_log_broker.archiver.retention import SUBFOLDER_FILTER, RetentionPolicy
from coreason_log_broker.broker import LogBroker
from coreason_log_broker.schemas import ArchiveConfig, LoggerType, LogLevel

ARCHIVER_LOGGER_NAME = "LogArchiverLogger"
_SEPARATOR = "-" * 100


class LogArchiver:
    """The Log Archiver.

    Orchestrates one archive session against a broker: builds the file sets, compresses them,
    then applies the retention policy. Progress is published through ``subscribe``.
    """

    def __init__(self, broker: LogBroker):
        """Initializes the archiver and opens its own logger on the broker.

        Args:
            broker: An initialized broker session.

        Raises:
            RuntimeError: If the broker has not been initialized.
        """
        self.broker = broker
        self.log = broker.open_logger(LoggerType.UNIVERSAL, ARCHIVER_LOGGER_NAME)
        broker_name = broker.broker_name or ""
        self.events = ArchiveEventDispatcher()
        self.builder = ArchiveSetBuilder(broker_name, self.log)
        self.engine = CompressionEngine(self.log, self.events)
        self.retention = RetentionPolicy(broker_name, self.log)

        self.config: Optional[ArchiveConfig] = None
        self.archive_sets: List[ArchiveSet] = []
        self.initialized = False

    def __enter__(self) -> "LogArchiver":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    @property
    def output_files(self) -> List[Path]:
        return [archive_set.container_path for archive_set in self.archive_sets]

    def subscribe(self, event_type: ArchiveEventType, callback: ArchiveEventCallback) -> None:
        self.events.subscribe(event_type, callback)

    def unsubscribe(self, event_type: ArchiveEventType, callback: ArchiveEventCallback) -> bool:
        return self.events.unsubscribe(event_type, callback)

    def resolve_config(self, config: Optional[ArchiveConfig] = None) -> ArchiveConfig:
        return resolve_archive_config(config, self.broker.state)

    def should_archive(self, config: Optional[ArchiveConfig] = None) -> bool:
        """Whether at least ``trigger_count`` files match the filter in the search folder."""
        resolved = self.resolve_config(config)
        matching = len(self.builder.list_candidates(resolved))
        self.log.write_log(f"{matching} FILES FOUND. TRIGGER COUNT IS {resolved.trigger_count}", LogLevel.TRACE)
        return matching >= resolved.trigger_count

    def initialize(self, config: Optional[ArchiveConfig] = None, build_sets: bool = True) -> bool:
        """Resolves the configuration and builds the archive sets.

        Args:
            config: The requested archive configuration. Missing values take defaults.
            build_sets: Build and open the archive sets. Retention-only sessions skip this.

        Returns:
            bool: False when the search folder does not exist. True otherwise, even when no
            full set could be built.
        """
        self._discard_open_sets()
        self.config = self.resolve_config(config)
        if not Path(self.config.search_path or "").is_dir():
            self.log.write_log(f"CAN NOT ARCHIVE FROM MISSING FOLDER {self.config.search_path}", LogLevel.WARN)
            self.initialized = False
            return False

        self.archive_sets = self.builder.build_sets(self.config) if build_sets else []
        self.initialized = True
        self.log.write_log(f"ARCHIVER INITIALIZED WITH {len(self.archive_sets)} SETS", LogLevel.INFO)
        return True

    def archive_log_files(self) -> bool:
        """Compresses every built set.

        Raises:
            RuntimeError: If the archiver has not been initialized.
        """
        self._require_initialized("archive log files")
        return self.engine.archive_sets(self.archive_sets)

    def archive_set(self, archive_set: ArchiveSet) -> bool:
        self._require_initialized("archive log files")
        return self.engine.archive_set(archive_set)

    def cleanup_archive_history(self) -> bool:
        config = self._require_initialized("clean up archives")
        return self.retention.cleanup_archive_history(config)

    def cleanup_subdirectories(self, folder_filter: str = SUBFOLDER_FILTER) -> bool:
        config = self._require_initialized("clean up log folders")
        return self.retention.cleanup_subdirectories(self.broker.log_file_folder, config, folder_filter)

    def run(self, config: Optional[ArchiveConfig] = None) -> bool:
        """Runs a full archive session when the trigger count is reached.

        Returns:
            bool: True if nothing needed archiving or every step succeeded.
        """
        if not self.should_archive(config):
            self.log.write_log("ARCHIVE TRIGGER NOT REACHED. SKIPPING ARCHIVE RUN", LogLevel.DEBUG)
            return True
        if not self.initialize(config):
            return False

        archived = self.archive_log_files()
        cleaned = self.cleanup_archive_history()
        return archived and cleaned

    def describe(self) -> str:
        """Builds a multi-line status banner for the archive session."""
        config = self.config
        compression = f"{config.compression_style.value} ({config.compression_level.value})" if config else "Not Set"
        return (
            f"Log Archiver Information - '{self.builder.broker_name}'\n"
            f"\t\\__ Archiver State:  {'Archiver Ready!' if self.initialized else 'Not Configured!'}\n"
            f"\t\\__ Search Path:     {config.search_path if config else 'Not Set'}\n"
            f"\t\\__ Archive Path:    {config.archive_path if config else 'Not Set'}\n"
            f"\t\\__ File Filter:     {config.file_filter if config else 'Not Set'}\n"
            f"\t\\__ Set Size:        {config.set_size if config else 'Not Set'}\n"
            f"\t\\__ Trigger Count:   {config.trigger_count if config else 'Not Set'}\n"
            f"\t\\__ Cleanup Count:   {config.cleanup_count if config else 'Not Set'}\n"
            f"\t\\__ Compression:     {compression}\n"
            f"\t{_SEPARATOR}\n"
            f"\t\\__ Archive Sets:    {len(self.archive_sets)} Set{'' if len(self.archive_sets) == 1 else 's'} Built\n"
            f"\t{_SEPARATOR}\n"
        )

    def close(self) -> None:
        """Closes any unwritten containers and releases the archiver's logger."""
        self._discard_open_sets()
        self.log.close()

    def _discard_open_sets(self) -> None:
        for archive_set in self.archive_sets:
            archive_set.discard()

    def _require_initialized(self, action: str) -> ArchiveConfig:
        if not self.initialized or self.config is None:
            raise RuntimeError(f"Please initialize the log archiver before trying to {action}")
        return self.config
