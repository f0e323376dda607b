# Copyright (c) 2025 Luc Vincent. All Rights Reserved.
"""
Progress reporting and run summary counters.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

# Progress milestones (percent)
PROGRESS_CONNECTED = 5.0
PROGRESS_LISTED = 10.0
PROGRESS_ALBUMS_SPAN = 80.0
PROGRESS_DONE = 100.0


@dataclass
class SyncSummary:
    """Aggregate counters for one sync run."""
    albums: int = 0
    links_created: int = 0
    converted: int = 0
    rotated: int = 0
    unchanged: int = 0
    errors: int = 0
    files_removed: int = 0
    directories_removed: int = 0

    def to_dict(self) -> dict:
        return {
            "albums": self.albums,
            "links_created": self.links_created,
            "converted": self.converted,
            "rotated": self.rotated,
            "unchanged": self.unchanged,
            "errors": self.errors,
            "files_removed": self.files_removed,
            "directories_removed": self.directories_removed,
        }

    def merge(self, other: "SyncSummary") -> None:
        """Add another summary's file counters into this one (albums excluded)."""
        self.links_created += other.links_created
        self.converted += other.converted
        self.rotated += other.rotated
        self.unchanged += other.unchanged
        self.errors += other.errors
        self.files_removed += other.files_removed
        self.directories_removed += other.directories_removed

    def describe(self) -> str:
        return (
            f"{self.albums} albums, {self.links_created} symlinks, "
            f"{self.converted} HEIC->JPEG ({self.rotated} auto-rotated), "
            f"{self.unchanged} unchanged, {self.errors} errors"
        )


class ProgressTracker:
    """
    Reports sync progress as a percentage that never goes backwards.

    Args:
        callback: Optional callable receiving the new percentage.
    """

    def __init__(self, callback: Optional[Callable[[float], None]] = None):
        self._callback = callback
        self.value = 0.0

    def report(self, value: float) -> None:
        """Report a new progress value; lower values than the last one are ignored."""
        value = max(0.0, min(PROGRESS_DONE, value))
        if value < self.value:
            return
        self.value = value
        if self._callback:
            try:
                self._callback(value)
            except Exception as e:
                logger.debug(f"Progress callback failed: {e}")

    def connected(self) -> None:
        self.report(PROGRESS_CONNECTED)

    def listed(self) -> None:
        self.report(PROGRESS_LISTED)

    def album_done(self, index: int, total: int) -> None:
        """Report that album ``index`` (0-based) of ``total`` has been processed."""
        if total <= 0:
            return
        self.report(PROGRESS_LISTED + PROGRESS_ALBUMS_SPAN * (index + 1) / total)

    def done(self) -> None:
        self.report(PROGRESS_DONE)
