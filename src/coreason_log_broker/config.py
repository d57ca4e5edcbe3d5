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
from typing import Any, Dict, Optional, Union

import yaml

from coreason_log_broker.schemas import BrokerManifest
from utils.logger import logger


def parse_manifest(data: Optional[Dict[str, Any]]) -> BrokerManifest:
    """Validates parsed YAML content. An empty document yields the default manifest."""
    return BrokerManifest(**(data or {}))


def load_manifest(manifest_path: Union[str, Path]) -> BrokerManifest:
    """
    Loads and validates the Broker Manifest from a YAML file.

    Args:
        manifest_path: Path to the YAML file.

    Returns:
        Validated BrokerManifest object.

    Raises:
        FileNotFoundError: If the manifest does not exist.
    """
    path = Path(manifest_path)
    if not path.exists():
        raise FileNotFoundError(f"Manifest file not found: {manifest_path}")

    logger.info(f"Loading manifest from {manifest_path}")
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    return parse_manifest(data)
