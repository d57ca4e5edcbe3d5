# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_log_broker

"""coreason-log-broker: session logging with shared sinks and log archiving.

A broker session owns the master sinks and a registry that lets many logger instances
share and mutate one loguru configuration safely. The archiver partitions rotated log
files into chronological sets, compresses them into zip or gz containers and prunes old
containers by count.
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .archiver.main import LogArchiver
from .broker import LogBroker
from .broker_logger import BrokerLogger
from .service import LogArchiveService, LogArchiveServiceAsync

__all__ = ["LogBroker", "BrokerLogger", "LogArchiver", "LogArchiveServiceAsync", "LogArchiveService"]
