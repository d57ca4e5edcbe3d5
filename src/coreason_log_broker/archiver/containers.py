# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_log_broker

import tarfile
import zipfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Type

from coreason_log_broker.schemas import CompressionLevel, CompressionStyle

_ZIP_LEVELS = {
    CompressionLevel.OPTIMAL: 6,
    CompressionLevel.FASTEST: 1,
    CompressionLevel.SMALLEST_SIZE: 9,
}

_GZIP_LEVELS = {
    CompressionLevel.OPTIMAL: 6,
    CompressionLevel.FASTEST: 1,
    CompressionLevel.SMALLEST_SIZE: 9,
    CompressionLevel.NO_COMPRESSION: 0,
}


class ArchiveContainer(ABC):
    """
    Abstract base for a multi-entry archive file that is written once and then closed.
    """

    def __init__(self, path: Path, level: CompressionLevel):
        self.path = path
        self.level = level
        self._entries = 0

    @property
    def entry_count(self) -> int:
        return self._entries

    def add_file(self, source: Path, arcname: str) -> None:
        """
        Writes one file into the container under the given entry name.

        Raises:
            OSError: If the source cannot be read or the container cannot be written.
        """
        self._write(source, arcname)
        self._entries += 1

    @abstractmethod
    def _write(self, source: Path, arcname: str) -> None:
        pass  # pragma: no cover

    @abstractmethod
    def close(self) -> None:
        pass  # pragma: no cover


class ZipContainer(ArchiveContainer):
    """Zip archive using DEFLATE, or STORED entries when compression is disabled."""

    def __init__(self, path: Path, level: CompressionLevel):
        super().__init__(path, level)
        if level is CompressionLevel.NO_COMPRESSION:
            self._zip = zipfile.ZipFile(path, "w", compression=zipfile.ZIP_STORED)
        else:
            self._zip = zipfile.ZipFile(
                path, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=_ZIP_LEVELS[level]
            )

    def _write(self, source: Path, arcname: str) -> None:
        self._zip.write(source, arcname=arcname)

    def close(self) -> None:
        self._zip.close()


class GzipContainer(ArchiveContainer):
    """Gzip-compressed tar stream, so a single .gz holds every file of the set."""

    def __init__(self, path: Path, level: CompressionLevel):
        super().__init__(path, level)
        self._tar = tarfile.open(path, "w:gz", compresslevel=_GZIP_LEVELS[level])

    def _write(self, source: Path, arcname: str) -> None:
        self._tar.add(str(source), arcname=arcname, recursive=False)

    def close(self) -> None:
        self._tar.close()


_CONTAINERS: Dict[CompressionStyle, Type[ArchiveContainer]] = {
    CompressionStyle.ZIP: ZipContainer,
    CompressionStyle.GZIP: GzipContainer,
}


def open_container(path: Path, style: CompressionStyle, level: CompressionLevel) -> ArchiveContainer:
    """
    Creates an empty container of the requested style at ``path``.

    Raises:
        ValueError: If the style is not supported.
    """
    container_cls = _CONTAINERS.get(CompressionStyle(style))
    if not container_cls:
        raise ValueError(f"Unsupported compression style: {style}")
    return container_cls(path, CompressionLevel(level))
