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
import sys
from pathlib import Path
from typing import Any, Dict

from loguru import logger

# Diagnostics directory for the library itself, separate from broker session logs
LOG_DIR = Path(os.environ.get("COREASON_LOG_BROKER_DIAGNOSTICS", "logs"))
LOG_DIR.mkdir(parents=True, exist_ok=True)
LOG_FILE = LOG_DIR / "log_broker.log"


def _is_diagnostic(record: Dict[str, Any]) -> bool:
    """Records bound to a broker logger carry a logger_name and are routed by the broker's own handlers."""
    return "logger_name" not in record["extra"]


# Configure logger
logger.remove()

# Console Sink (Stderr, Human-readable)
logger.add(sys.stderr, level="INFO", filter=_is_diagnostic)

# File Sink (JSON, Rotated, Retained)
logger.add(
    LOG_FILE,
    level="INFO",
    rotation="500 MB",
    retention="10 days",
    serialize=True,
    filter=_is_diagnostic,
)

__all__ = ["logger"]
