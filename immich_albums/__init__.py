# Copyright (c) 2025 Luc Vincent. All Rights Reserved.
# Immich Albums - symlink mirror of Immich albums for photo-library viewers
"""
Immich Albums mirrors Immich photo albums into a local directory tree of
symbolic links (with HEIC to JPEG conversion) so Jellyfin and similar
viewers can browse them without duplicating storage.
"""

__version__ = "1.0.0"
__author__ = "Immich Albums"
