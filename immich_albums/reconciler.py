# Copyright (c) 2025 Luc Vincent. All Rights Reserved.
"""
Reconciliation of the local album tree with the Immich album set.

Layout produced under the sync root::

    <sync root>/<sanitized album name>/<file name>

Each file is either a symlink to the original (host-mapped) asset or a JPEG
converted from HEIC. Every decision is keyed by file name, so repeated runs
converge on the same tree and a run with no remote changes touches nothing.
"""

import logging
import os
import shutil
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional, Set, Tuple

from .config import ImmichAlbumsConfig
from .converter import ImageConverter
from .errors import (
    ConversionFailure,
    FilesystemFailure,
    SourceMissing,
    SyncCancelled,
    SyncError,
)
from .immich_client import RemoteAlbum, RemoteAsset
from .naming import NameResolver, needs_conversion
from .paths import PathMappingRule, album_folder_name, translate_path
from .progress import ProgressTracker, SyncSummary

logger = logging.getLogger(__name__)


class AssetAction(Enum):
    """What happened to one asset during reconciliation."""
    LINKED = "linked"
    CONVERTED = "converted"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclass
class AssetOutcome:
    """Result of reconciling a single asset."""
    action: AssetAction
    filename: Optional[str] = None  # Resolved name, None if it never got that far
    rotated: bool = False
    error: Optional[str] = None


def list_album_files(album_dir: str) -> Set[str]:
    """
    Names of every entry in an album directory.

    Includes dangling symlinks and stray subdirectories. Returns an empty
    set if the directory does not exist.
    """
    names: Set[str] = set()
    if not os.path.isdir(album_dir):
        return names

    with os.scandir(album_dir) as entries:
        for entry in entries:
            names.add(entry.name)
    return names


def remove_entry(path: str) -> None:
    """Delete a file, symlink or real directory at path."""
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    else:
        os.remove(path)


class AlbumReconciler:
    """
    Brings one album directory in line with one Immich album.

    Per asset: map the path, pick a file name, then link or convert. Files
    in the directory that no asset claimed are deleted afterwards. Errors
    are isolated per asset and per file.
    """

    def __init__(
        self,
        sync_root: str,
        path_mappings: Iterable[PathMappingRule],
        converter: ImageConverter,
        cancel_event: Optional[threading.Event] = None
    ):
        self.sync_root = sync_root
        self.path_mappings = list(path_mappings)
        self.converter = converter
        self.cancel_event = cancel_event

    def reconcile(self, album: RemoteAlbum, folder_name: str) -> SyncSummary:
        """
        Reconcile ``album`` into ``<sync_root>/<folder_name>``.

        Returns:
            Counters for this album (``albums`` is left at 0).

        Raises:
            SyncCancelled: If cancelled during a conversion.
        """
        summary = SyncSummary()
        album_dir = os.path.join(self.sync_root, folder_name)

        try:
            os.makedirs(album_dir, exist_ok=True)
            existing = list_album_files(album_dir)
        except OSError as e:
            logger.error(f"Cannot prepare album directory {album_dir}: {e}")
            summary.errors += 1
            return summary

        to_delete = set(existing)
        resolver = NameResolver()

        for asset in album.assets:
            outcome = self.reconcile_asset(asset, album_dir, resolver)

            if outcome.filename:
                to_delete.discard(outcome.filename)

            if outcome.action == AssetAction.LINKED:
                summary.links_created += 1
            elif outcome.action == AssetAction.CONVERTED:
                summary.converted += 1
                if outcome.rotated:
                    summary.rotated += 1
            elif outcome.action == AssetAction.UNCHANGED:
                summary.unchanged += 1
            else:
                summary.errors += 1

        for orphan in sorted(to_delete):
            orphan_path = os.path.join(album_dir, orphan)
            try:
                remove_entry(orphan_path)
                summary.files_removed += 1
                logger.debug(f"Removed orphan: {orphan_path}")
            except OSError as e:
                logger.warning(f"Failed to remove orphan {orphan_path}: {e}")
                summary.errors += 1

        logger.info(
            f"Album '{album.name}' -> {folder_name}: {summary.links_created} linked, "
            f"{summary.converted} converted, {summary.unchanged} unchanged, "
            f"{summary.files_removed} removed, {summary.errors} errors"
        )
        return summary

    def reconcile_asset(self, asset: RemoteAsset, album_dir: str, resolver: NameResolver) -> AssetOutcome:
        """
        Link or convert one asset into album_dir.

        Never raises for per-asset problems; they come back as a FAILED
        outcome. Cancellation still propagates.
        """
        filename = None
        try:
            host_path = translate_path(asset.original_path, self.path_mappings)
            if not os.path.exists(host_path):
                raise SourceMissing(f"Source file not found: {host_path}")

            display_name = asset.display_name
            convert = needs_conversion(display_name)
            filename = resolver.resolve(display_name, convert, asset.asset_id)
            dest_path = os.path.join(album_dir, filename)

            if convert:
                return self._convert(host_path, dest_path, filename)
            return self._link(host_path, dest_path, filename)

        except SyncCancelled:
            raise
        except SyncError as e:
            logger.warning(f"Asset {asset.asset_id} skipped: {e}")
            return AssetOutcome(AssetAction.FAILED, filename=filename, error=str(e))
        except Exception as e:
            logger.error(f"Unexpected error for asset {asset.asset_id} ({asset.original_path}): {e}")
            return AssetOutcome(AssetAction.FAILED, filename=filename, error=str(e))

    def _link(self, host_path: str, dest_path: str, filename: str) -> AssetOutcome:
        """Ensure dest_path is a symlink to host_path."""
        if os.path.lexists(dest_path):
            if os.path.islink(dest_path) and os.readlink(dest_path) == host_path:
                return AssetOutcome(AssetAction.UNCHANGED, filename=filename)
            try:
                remove_entry(dest_path)
            except OSError as e:
                raise FilesystemFailure(f"Cannot replace {dest_path}: {e}") from e

        try:
            os.symlink(host_path, dest_path)
        except OSError as e:
            raise FilesystemFailure(f"Failed to create symlink {dest_path} -> {host_path}: {e}") from e

        logger.debug(f"Linked {dest_path} -> {host_path}")
        return AssetOutcome(AssetAction.LINKED, filename=filename)

    def _convert(self, host_path: str, dest_path: str, filename: str) -> AssetOutcome:
        """Ensure dest_path holds an up-to-date JPEG conversion of host_path."""
        if os.path.isfile(dest_path) and not os.path.islink(dest_path):
            if os.stat(dest_path).st_mtime_ns >= os.stat(host_path).st_mtime_ns:
                return AssetOutcome(AssetAction.UNCHANGED, filename=filename)
        elif os.path.lexists(dest_path):
            # A link or directory left where the converted file belongs
            try:
                remove_entry(dest_path)
            except OSError as e:
                raise FilesystemFailure(f"Cannot replace {dest_path}: {e}") from e

        result = self.converter.convert(host_path, dest_path, self.cancel_event)
        if not result.converted:
            raise ConversionFailure(f"HEIC conversion failed for {host_path}")

        logger.debug(f"Converted {host_path} -> {dest_path} (orientation {result.orientation})")
        return AssetOutcome(AssetAction.CONVERTED, filename=filename, rotated=result.rotated)


class TreeReconciler:
    """
    Reconciles every album under the sync root, then prunes folders of
    albums that no longer exist (or are now empty).
    """

    def __init__(
        self,
        sync_root: str,
        path_mappings: Iterable[PathMappingRule],
        converter: ImageConverter,
        cancel_event: Optional[threading.Event] = None,
        progress: Optional[ProgressTracker] = None
    ):
        self.sync_root = sync_root
        self.cancel_event = cancel_event
        self.progress = progress or ProgressTracker()
        self.album_reconciler = AlbumReconciler(sync_root, path_mappings, converter, cancel_event)

    @classmethod
    def from_config(
        cls,
        config: ImmichAlbumsConfig,
        converter: ImageConverter,
        cancel_event: Optional[threading.Event] = None,
        progress: Optional[ProgressTracker] = None
    ) -> "TreeReconciler":
        return cls(
            sync_root=config.sync.folder_path,
            path_mappings=config.path_mappings,
            converter=converter,
            cancel_event=cancel_event,
            progress=progress,
        )

    def _check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise SyncCancelled("Sync cancelled")

    def run(
        self,
        albums: List[RemoteAlbum],
        detail_loader: Optional[Callable[[str], Optional[RemoteAlbum]]] = None
    ) -> SyncSummary:
        """
        Reconcile all albums sequentially and prune stale folders.

        Args:
            albums: Albums to mirror. When detail_loader is given these are
                listing entries and assets are fetched per album; otherwise
                their ``assets`` are used as-is.
            detail_loader: Fetches an album with its assets by id (None if
                the album is gone).

        Returns:
            Summary of the run.

        Raises:
            SyncCancelled: If the run is cancelled.
        """
        os.makedirs(self.sync_root, exist_ok=True)

        summary = SyncSummary()
        live: Set[str] = set()

        for index, album in enumerate(albums):
            self._check_cancelled()
            self._sync_album(album, detail_loader, live, summary)
            self.progress.album_done(index, len(albums))

        summary.directories_removed, prune_errors = self.prune(live)
        summary.errors += prune_errors
        summary.albums = len(live)

        self.progress.done()
        logger.info(f"Sync complete: {summary.describe()}")
        return summary

    def _sync_album(
        self,
        album: RemoteAlbum,
        detail_loader: Optional[Callable[[str], Optional[RemoteAlbum]]],
        live: Set[str],
        summary: SyncSummary
    ) -> None:
        detail: Optional[RemoteAlbum] = album
        if detail_loader is not None:
            try:
                detail = detail_loader(album.album_id)
            except SyncCancelled:
                raise
            except Exception as e:
                logger.error(f"Failed to fetch album '{album.name}' ({album.album_id}): {e}")
                summary.errors += 1
                self._keep_existing_folder(album, live)
                return

        if detail is None or not detail.assets:
            logger.debug(f"Skipping empty album: {album.name}")
            return

        folder_name = album_folder_name(detail.name, detail.album_id, live)
        live.add(folder_name)
        summary.merge(self.album_reconciler.reconcile(detail, folder_name))

    def _keep_existing_folder(self, album: RemoteAlbum, live: Set[str]) -> None:
        """Protect an album's folder from pruning when its details could not be fetched."""
        folder_name = album_folder_name(album.name, album.album_id, live)
        if os.path.isdir(os.path.join(self.sync_root, folder_name)):
            live.add(folder_name)
            logger.info(f"Keeping existing folder '{folder_name}' until album can be fetched")

    def prune(self, live: Set[str]) -> Tuple[int, int]:
        """
        Recursively delete sync-root subdirectories not in ``live``.

        Returns:
            (directories removed, failures)
        """
        removed = 0
        failures = 0

        if not os.path.isdir(self.sync_root):
            return removed, failures

        with os.scandir(self.sync_root) as entries:
            stale = [
                entry.path for entry in entries
                if entry.is_dir(follow_symlinks=False) and entry.name not in live
            ]

        for path in sorted(stale):
            try:
                shutil.rmtree(path)
                removed += 1
                logger.info(f"Removed orphan album directory: {os.path.basename(path)}")
            except OSError as e:
                logger.warning(f"Failed to remove orphan directory {path}: {e}")
                failures += 1

        return removed, failures
