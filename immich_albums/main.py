#!/usr/bin/env python3
# Copyright (c) 2025 Luc Vincent. All Rights Reserved.
"""
Immich Albums - Service entry point.
Loads configuration and runs album syncs on a fixed interval.
"""

import argparse
import logging
import os
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

# Initialize logging early
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)

LOG_DIR_ENV = 'IMMICH_ALBUMS_LOG_DIR'
DEFAULT_LOG_DIR = '/var/log/immich-albums'


def setup_file_logging(log_dir: str) -> None:
    """Set up file logging in addition to console."""
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(log_path / 'immich-albums.log')
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))
    logging.getLogger().addHandler(file_handler)


def format_interval(hours: int) -> str:
    """Format hours as human-readable string."""
    days, hours = divmod(hours, 24)
    parts = []
    if days > 0:
        parts.append(f"{days} day{'s' if days != 1 else ''}")
    if hours > 0 or not parts:
        parts.append(f"{hours} hour{'s' if hours != 1 else ''}")
    return ", ".join(parts)


class ImmichAlbumsApp:
    """Long-running sync service."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize the service.

        Args:
            config_path: Path to configuration file.
        """
        self.config_path = config_path
        self.config = None
        self.sync_service = None

        # Doubles as the cancel token of the running sync
        self._shutdown_event = threading.Event()

        # Set up signal handlers
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals."""
        logger.info(f"Received signal {signum}, initiating shutdown...")
        self.stop()

    def _load_config(self) -> bool:
        """Load and validate configuration."""
        from .config import load_config, validate_config

        try:
            self.config = load_config(self.config_path)
        except Exception as e:
            logger.error(f"Failed to load configuration: {e}")
            return False

        errors = validate_config(self.config)
        for error in errors:
            logger.warning(f"Config warning: {error}")

        logger.info(f"Configuration loaded from: {self.config.config_path or 'defaults'}")
        return True

    def _init_sync_service(self) -> bool:
        """Initialize the sync service."""
        from .sync import SyncService

        try:
            self.sync_service = SyncService(self.config)
            logger.info(f"Sync service initialized: {self.config.sync.folder_path or '(no folder)'}")
            return True
        except Exception as e:
            logger.error(f"Failed to initialize sync service: {e}")
            return False

    def _sync_once(self) -> None:
        from .sync import run_sync_safely

        run_sync_safely(self.sync_service, cancel_event=self._shutdown_event)

    def run(self, once: bool = False) -> int:
        """
        Run the service.

        Args:
            once: Run a single sync and exit.

        Returns:
            Exit code (0 for success).
        """
        logger.info("Starting Immich Albums...")

        if not self._load_config():
            return 1

        log_dir = os.environ.get(LOG_DIR_ENV, DEFAULT_LOG_DIR)
        try:
            setup_file_logging(log_dir)
        except Exception as e:
            logger.warning(f"Could not set up file logging: {e}")

        if not self._init_sync_service():
            return 1

        if once:
            self._sync_once()
            return 0

        interval_hours = self.config.sync.interval_hours

        if self.config.sync.sync_on_start:
            logger.info("Running sync on start")
            self._sync_once()

        if interval_hours <= 0:
            logger.info("Automatic sync disabled (interval=0)")
            return 0

        interval = interval_hours * 3600
        interval_str = format_interval(interval_hours)

        logger.info(f"Sync loop started (interval: {interval_str})")
        while not self._shutdown_event.is_set():
            if self._shutdown_event.wait(interval):
                break
            logger.info("Starting scheduled album sync...")
            self._sync_once()

        logger.info("Immich Albums stopped")
        return 0

    def stop(self) -> None:
        """Stop the service and cancel any running sync."""
        logger.info("Stopping Immich Albums...")
        self._shutdown_event.set()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Immich Albums - mirror Immich albums as symlinks",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        '-c', '--config',
        help='Path to configuration file'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )

    parser.add_argument(
        '--once',
        action='store_true',
        help='Run a single sync and exit'
    )

    parser.add_argument(
        '--version',
        action='store_true',
        help='Show version and exit'
    )

    args = parser.parse_args()

    if args.version:
        from . import __version__
        print(f"Immich Albums {__version__}")
        return 0

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    app = ImmichAlbumsApp(config_path=args.config)
    return app.run(once=args.once)


if __name__ == "__main__":
    sys.exit(main())
