# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_log_broker

from .builder import ArchiveSet, ArchiveSetBuilder, resolve_archive_config
from .compressor import CompressionEngine
from .events import (
    ArchiveCompletedEvent,
    ArchiveEventDispatcher,
    ArchiveEventType,
    FileAddedEvent,
    FileFailedEvent,
)
from .main import LogArchiver
from .retention import RetentionPolicy

__all__ = [
    "ArchiveSet",
    "ArchiveSetBuilder",
    "resolve_archive_config",
    "CompressionEngine",
    "ArchiveEventType",
    "ArchiveEventDispatcher",
    "FileAddedEvent",
    "ArchiveCompletedEvent",
    "FileFailedEvent",
    "LogArchiver",
    "RetentionPolicy",
]
