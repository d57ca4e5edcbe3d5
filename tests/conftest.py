import os
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterator, List

import pytest

from coreason_log_broker.broker import LogBroker
from coreason_log_broker.schemas import LOGGER_TIME_FORMAT, LogLevel, SessionConfig

BROKER_NAME = "BrokerTests"


@pytest.fixture
def broker(tmp_path: Path) -> Iterator[LogBroker]:
    """An initialized broker writing under tmp_path/logs. Shut down after each test."""
    session = LogBroker()
    session.initialize(
        SessionConfig(
            name=BROKER_NAME,
            file_path=str(tmp_path / "logs"),
            min_level=LogLevel.TRACE,
            max_level=LogLevel.FATAL,
        )
    )
    yield session
    session.shutdown()


def make_log_files(
    folder: Path,
    count: int,
    prefix: str = BROKER_NAME,
    start: datetime = datetime(2025, 1, 1, 8, 0, 0),
) -> List[Path]:
    """Creates ``count`` timestamped log files, oldest first, one minute apart."""
    folder.mkdir(parents=True, exist_ok=True)
    created = []
    for index in range(count):
        stamp = start + timedelta(minutes=index)
        path = folder / f"{prefix}_Logging_{stamp.strftime(LOGGER_TIME_FORMAT)}.log"
        path.write_text(f"log line {index}\n" * 20)
        epoch = stamp.timestamp()
        os.utime(path, (epoch, epoch))
        created.append(path)
    return created
