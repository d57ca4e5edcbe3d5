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
from typing import List, Optional

from coreason_log_broker.archiver.builder import creation_time, live_log_files, modified_time
from coreason_log_broker.broker_logger import BrokerLogger
from coreason_log_broker.schemas import ArchiveConfig, LogLevel

SUBFOLDER_FILTER = "*Logs"


class RetentionPolicy:
    """Count-based pruning of old archives and of crowded log subfolders."""

    def __init__(self, broker_name: str, log: BrokerLogger):
        self.broker_name = broker_name
        self.log = log

    def located_archives(self, config: ArchiveConfig) -> List[Path]:
        """Containers of this broker under the archive folder, most recently modified first."""
        archive_path = Path(config.archive_path or "")
        if not archive_path.is_dir():
            return []
        pattern = f"{self.broker_name}_*.{config.compression_style.extension}"
        located = [path for path in archive_path.rglob(pattern) if path.is_file()]
        return sorted(located, key=modified_time, reverse=True)

    def cleanup_archive_history(self, config: ArchiveConfig) -> bool:
        """Keeps the ``cleanup_count`` most recent containers and deletes the rest.

        Returns:
            bool: False if any container could not be deleted.
        """
        located = self.located_archives(config)
        if len(located) < config.cleanup_count:
            self.log.write_log(
                f"ONLY {len(located)} ARCHIVES FOUND (LIMIT {config.cleanup_count}). NO CLEANUP NEEDED", LogLevel.TRACE
            )
            return True

        expired = located[config.cleanup_count :]
        self.log.write_log(f"REMOVING {len(expired)} EXPIRED ARCHIVES FROM {config.archive_path}", LogLevel.INFO)

        succeeded = True
        for archive in expired:
            try:
                archive.unlink()
            except OSError as e:
                succeeded = False
                self.log.write_exception(e, LogLevel.ERROR, f"FAILED TO REMOVE ARCHIVE {archive.name}!")
        return succeeded

    def cleanup_subdirectories(
        self,
        log_folder: Optional[Path],
        config: ArchiveConfig,
        folder_filter: str = SUBFOLDER_FILTER,
    ) -> bool:
        """Trims subfolders of the log folder that hold too many files.

        Folders matching ``folder_filter`` with at least ``trigger_count`` files lose their
        oldest ``cleanup_count`` files. Files still open in a broker sink are never counted or
        removed. Files that cannot be removed are logged and skipped.

        Returns:
            bool: Always True once every folder has been visited.
        """
        if log_folder is None or not log_folder.is_dir():
            return True

        live = live_log_files(self.log.broker)
        for folder in sorted(child for child in log_folder.glob(folder_filter) if child.is_dir()):
            files = [path for path in folder.iterdir() if path.is_file() and path.resolve() not in live]
            if len(files) < config.trigger_count:
                self.log.write_log(f"SKIPPING {folder.name}, ONLY {len(files)} FILES", LogLevel.TRACE)
                continue

            oldest = sorted(files, key=lambda path: (creation_time(path), path.name))[: config.cleanup_count]
            self.log.write_log(f"REMOVING {len(oldest)} OLD FILES FROM {folder.name}", LogLevel.INFO)
            for path in oldest:
                try:
                    path.unlink()
                except OSError as e:
                    self.log.write_exception(e, LogLevel.WARN, f"FAILED TO REMOVE {path.name} FROM {folder.name}")
        return True
