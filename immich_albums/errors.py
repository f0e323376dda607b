# Copyright (c) 2025 Luc Vincent. All Rights Reserved.
"""
Error types for Immich Albums.

Only ConnectionFailure and SyncCancelled abort a sync run. The others are
raised at asset or directory scope and turned into counted outcomes by the
reconciler.
"""


class SyncError(Exception):
    """Base exception for sync problems."""


class ConnectionFailure(SyncError):
    """Raised when the Immich server cannot be reached or listed."""


class MappingFailure(SyncError):
    """Raised when no path mapping rule matches a remote path."""


class SourceMissing(SyncError):
    """Raised when a mapped host file does not exist."""


class ConversionFailure(SyncError):
    """Raised when the transcoder fails or produces no output."""


class FilesystemFailure(SyncError):
    """Raised when a symlink, delete or mkdir operation fails."""


class SyncCancelled(SyncError):
    """Raised when a run is cancelled (shutdown signal or timeout)."""
