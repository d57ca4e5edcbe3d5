# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_log_broker

import argparse
import sys

from coreason_log_broker.config import load_manifest
from coreason_log_broker.service import COMMANDS, LogArchiveService
from utils.logger import logger


def run_command(command: str, manifest_path: str) -> bool:
    """
    Runs one broker command from a manifest.

    1. Load Manifest
    2. Initialize the logging session
    3. Archive, clean up, or report status

    Args:
        command: One of archive, cleanup or status.
        manifest_path: Path to the Broker Manifest YAML.

    Returns:
        True if the command succeeded.
    """
    logger.info(f"Starting '{command}' for {manifest_path}")

    try:
        with LogArchiveService() as service:
            if command == "status":
                manifest = load_manifest(manifest_path)
                service.initialize_session(manifest.session)
                print(service.status())
                return True
            return service.run_manifest(manifest_path, command)

    except Exception as e:
        logger.exception(f"Log broker command '{command}' failed.")
        raise e


def main() -> None:
    parser = argparse.ArgumentParser(description="Coreason Log Broker - session logging and log archives")
    parser.add_argument("--manifest", type=str, required=True, help="Path to the Broker Manifest YAML")
    parser.add_argument("command", nargs="?", choices=COMMANDS, default="archive", help="Action to run")
    args = parser.parse_args()

    succeeded = run_command(args.command, args.manifest)
    sys.exit(0 if succeeded else 1)


if __name__ == "__main__":
    main()
