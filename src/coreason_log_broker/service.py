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
from typing import Any, Optional

import aiofiles
import anyio
import yaml
from anyio import to_thread

from coreason_log_broker.archiver.main import LogArchiver
from coreason_log_broker.broker import LogBroker
from coreason_log_broker.config import parse_manifest
from coreason_log_broker.schemas import ArchiveConfig, BrokerManifest, SessionConfig
from utils.logger import logger

COMMANDS = ("archive", "cleanup", "status")


class LogArchiveServiceAsync:
    """Async Core Service for the Log Broker.

    Owns a broker session and runs archive sessions against it. Every blocking step runs in a
    worker thread, and each archive set is its own step so cancellation lands between sets.
    """

    def __init__(self, broker: Optional[LogBroker] = None):
        """Initializes the service.

        Args:
            broker: Optional external broker. If None, one will be created and shut down on exit.
        """
        self._internal_broker = broker is None
        self.broker = broker or LogBroker()

    async def __aenter__(self) -> "LogArchiveServiceAsync":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._internal_broker:
            await to_thread.run_sync(self.broker.shutdown)

    async def load_manifest(self, manifest_path: Path) -> BrokerManifest:
        """Loads and validates the Broker Manifest asynchronously.

        Args:
            manifest_path: Path to the YAML file.

        Returns:
            BrokerManifest: The validated manifest.
        """
        if not await to_thread.run_sync(manifest_path.exists):
            raise FileNotFoundError(f"Manifest file not found: {manifest_path}")

        logger.info(f"Loading manifest from {manifest_path}")
        async with aiofiles.open(manifest_path, "r", encoding="utf-8") as f:
            content = await f.read()
            # safe_load is CPU bound
            data = await to_thread.run_sync(yaml.safe_load, content)

        return parse_manifest(data)

    async def initialize_session(self, session: Optional[SessionConfig]) -> bool:
        return await to_thread.run_sync(self.broker.initialize, session)

    async def archive(self, config: Optional[ArchiveConfig] = None) -> bool:
        """Builds, compresses and prunes one archive session.

        Returns:
            bool: True if every set was archived and retention succeeded.
        """
        archiver = await to_thread.run_sync(LogArchiver, self.broker)
        try:
            if not await to_thread.run_sync(archiver.initialize, config):
                logger.warning("Archive search folder is missing. Nothing to archive.")
                return False

            logger.info(f"Archiving {len(archiver.archive_sets)} sets")
            succeeded = True
            for archive_set in archiver.archive_sets:
                succeeded = await to_thread.run_sync(archiver.archive_set, archive_set) and succeeded

            cleaned = await to_thread.run_sync(archiver.cleanup_archive_history)
            return succeeded and cleaned
        except Exception as e:
            logger.exception("Archive session failed.")
            raise e
        finally:
            await to_thread.run_sync(archiver.close)

    async def cleanup(self, config: Optional[ArchiveConfig] = None) -> bool:
        """Applies the retention policy to old archives and crowded log subfolders."""
        archiver = await to_thread.run_sync(LogArchiver, self.broker)
        try:
            if not await to_thread.run_sync(archiver.initialize, config, False):
                return False
            history = await to_thread.run_sync(archiver.cleanup_archive_history)
            subfolders = await to_thread.run_sync(archiver.cleanup_subdirectories)
            return history and subfolders
        finally:
            await to_thread.run_sync(archiver.close)

    async def status(self) -> str:
        return await to_thread.run_sync(self.broker.describe)

    async def run_manifest(self, manifest_path: Path, command: str = "archive") -> bool:
        """Loads a manifest, initializes the session and runs one command against it."""
        if command not in COMMANDS:
            raise ValueError(f"Unsupported command: {command}")

        logger.info(f"Running '{command}' for {manifest_path}")
        manifest = await self.load_manifest(manifest_path)
        if not await self.initialize_session(manifest.session):
            raise RuntimeError(f"Failed to initialize the log broker from {manifest_path}")

        if command == "archive":
            return await self.archive(manifest.archive)
        if command == "cleanup":
            return await self.cleanup(manifest.archive)

        logger.info(f"Broker status:\n{await self.status()}")
        return True


class LogArchiveService:
    """Sync Facade for the Log Broker Service.

    Wraps the Async Core Service to provide synchronous access.
    """

    def __init__(self, broker: Optional[LogBroker] = None):
        self._async = LogArchiveServiceAsync(broker)

    @property
    def broker(self) -> LogBroker:
        return self._async.broker

    def __enter__(self) -> "LogArchiveService":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        anyio.run(self._async.__aexit__, exc_type, exc_val, exc_tb)

    def load_manifest(self, manifest_path: Path | str) -> BrokerManifest:
        return anyio.run(self._async.load_manifest, Path(manifest_path))

    def initialize_session(self, session: Optional[SessionConfig]) -> bool:
        return anyio.run(self._async.initialize_session, session)

    def archive(self, config: Optional[ArchiveConfig] = None) -> bool:
        return anyio.run(self._async.archive, config)

    def cleanup(self, config: Optional[ArchiveConfig] = None) -> bool:
        return anyio.run(self._async.cleanup, config)

    def status(self) -> str:
        return anyio.run(self._async.status)

    def run_manifest(self, manifest_path: Path | str, command: str = "archive") -> bool:
        """Runs one command from a manifest synchronously."""
        return anyio.run(self._async.run_manifest, Path(manifest_path), command)
