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
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Callable, ClassVar, Dict, List, Union

from pydantic import BaseModel, ConfigDict, Field

from utils.logger import logger


class ArchiveEventType(str, Enum):
    FILE_ADDED = "file_added"
    ARCHIVE_COMPLETED = "archive_completed"
    FILE_FAILED = "file_failed"


class FileAddedEvent(BaseModel):
    """Raised after one source file has been written into a container."""

    model_config = ConfigDict(frozen=True)
    event_type: ClassVar[ArchiveEventType] = ArchiveEventType.FILE_ADDED

    container_name: str
    container_path: Path
    file_name: str
    files_remaining: int = Field(..., ge=0)
    percent_done: float = Field(..., ge=0.0, le=100.0)


class ArchiveCompletedEvent(BaseModel):
    """Raised after a container has been closed."""

    model_config = ConfigDict(frozen=True)
    event_type: ClassVar[ArchiveEventType] = ArchiveEventType.ARCHIVE_COMPLETED

    container_name: str
    container_path: Path
    byte_size: int = Field(..., ge=0)
    elapsed: timedelta


class FileFailedEvent(BaseModel):
    """Raised when a source file could not be archived or removed."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)
    event_type: ClassVar[ArchiveEventType] = ArchiveEventType.FILE_FAILED

    container_name: str
    file_name: str
    error: BaseException


ArchiveEvent = Union[FileAddedEvent, ArchiveCompletedEvent, FileFailedEvent]
ArchiveEventCallback = Callable[[ArchiveEvent], None]


class ArchiveEventDispatcher:
    """Fans archive progress events out to subscribed callbacks.

    Callbacks run synchronously on the archiving thread. A failing callback is logged and
    does not interrupt the archive run.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[ArchiveEventType, List[ArchiveEventCallback]] = {kind: [] for kind in ArchiveEventType}
        self._lock = threading.Lock()

    def subscribe(self, event_type: ArchiveEventType, callback: ArchiveEventCallback) -> None:
        with self._lock:
            self._subscribers[ArchiveEventType(event_type)].append(callback)

    def unsubscribe(self, event_type: ArchiveEventType, callback: ArchiveEventCallback) -> bool:
        with self._lock:
            callbacks = self._subscribers[ArchiveEventType(event_type)]
            if callback not in callbacks:
                return False
            callbacks.remove(callback)
            return True

    def emit(self, event: ArchiveEvent) -> None:
        with self._lock:
            callbacks = list(self._subscribers[event.event_type])
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception(f"Archive event subscriber failed while handling {event.event_type.value}")
