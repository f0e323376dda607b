# Copyright (c) 2025 Luc Vincent. All Rights Reserved.
"""
Sync service: connects to Immich and runs one full reconciliation.
"""

import logging
import os
import threading
from typing import Callable, Optional

from .config import ImmichAlbumsConfig
from .converter import ImageConverter, create_converter
from .errors import ConnectionFailure, SyncError
from .immich_client import ImmichClient
from .progress import ProgressTracker, SyncSummary
from .reconciler import TreeReconciler

logger = logging.getLogger(__name__)


class SyncService:
    """
    Runs album syncs for a given configuration.

    Handles:
    - Pre-flight checks (token, sync folder)
    - Connection test and album listing
    - Delegating to TreeReconciler
    - Preventing concurrent syncs in the same process
    """

    def __init__(
        self,
        config: ImmichAlbumsConfig,
        client_factory: Optional[Callable[[ImmichAlbumsConfig], ImmichClient]] = None,
        converter: Optional[ImageConverter] = None
    ):
        """
        Args:
            config: Configuration for every run of this service.
            client_factory: Builds an Immich client; defaults to ImmichClient.
            converter: Image converter; defaults to the configured tool.
        """
        self.config = config
        self._client_factory = client_factory or _default_client
        self._converter = converter
        self._sync_lock = threading.Lock()

    @property
    def converter(self) -> ImageConverter:
        if self._converter is None:
            self._converter = create_converter(self.config.conversion)
        return self._converter

    def sync(
        self,
        cancel_event: Optional[threading.Event] = None,
        progress_callback: Optional[Callable[[float], None]] = None
    ) -> Optional[SyncSummary]:
        """
        Run one sync.

        Args:
            cancel_event: Set to abort the run (checked per album and while
                converters run).
            progress_callback: Receives progress percentages (0-100).

        Returns:
            Run summary, or None if the run was skipped (not configured or
            another sync is in progress).

        Raises:
            ConnectionFailure: If Immich cannot be reached or listed.
            SyncCancelled: If the run was cancelled.
        """
        # Prevent concurrent syncs
        if not self._sync_lock.acquire(blocking=False):
            logger.warning("Sync already in progress, skipping")
            return None

        try:
            return self._do_sync(cancel_event, progress_callback)
        finally:
            self._sync_lock.release()

    def _do_sync(
        self,
        cancel_event: Optional[threading.Event],
        progress_callback: Optional[Callable[[float], None]]
    ) -> Optional[SyncSummary]:
        """Internal sync implementation."""
        if not self.config.immich.api_token:
            logger.error("Immich API token not configured")
            return None

        sync_root = self.config.sync.folder_path
        if not sync_root:
            logger.error("Sync folder path not configured")
            return None

        os.makedirs(sync_root, exist_ok=True)
        progress = ProgressTracker(progress_callback)

        logger.info("Starting album sync...")
        with self._client_factory(self.config) as client:
            if not client.test_connection():
                raise ConnectionFailure(f"Cannot connect to Immich API at {self.config.immich.url}")
            progress.connected()

            albums = client.list_albums(self.config.immich.include_shared_albums)
            logger.info(f"Found {len(albums)} albums to sync")
            progress.listed()

            reconciler = TreeReconciler.from_config(
                self.config,
                self.converter,
                cancel_event=cancel_event,
                progress=progress,
            )
            summary = reconciler.run(albums, detail_loader=client.get_album_detail)

        return summary


def _default_client(config: ImmichAlbumsConfig) -> ImmichClient:
    return ImmichClient(
        config.immich.url,
        config.immich.api_token,
        timeout=config.immich.timeout_seconds,
    )


def run_sync_safely(service: SyncService, cancel_event: Optional[threading.Event] = None) -> Optional[SyncSummary]:
    """
    Run a sync from a background loop, logging instead of raising.

    Returns:
        The summary, or None if the run was skipped or aborted.
    """
    try:
        return service.sync(cancel_event=cancel_event)
    except SyncError as e:
        logger.error(f"Sync aborted: {e}")
    except Exception as e:
        logger.error(f"Sync error: {e}")
    return None
