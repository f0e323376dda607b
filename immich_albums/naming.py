# Copyright (c) 2025 Luc Vincent. All Rights Reserved.
"""
File naming inside an album directory.
"""

import os
from typing import Set

# Formats most viewers cannot display; these get transcoded
CONVERTIBLE_EXTENSIONS = {'.heic', '.heif'}
TARGET_EXTENSION = ".jpg"


def needs_conversion(filename: str) -> bool:
    """True when the file's extension is one we transcode (case-insensitive)."""
    return os.path.splitext(filename)[1].lower() in CONVERTIBLE_EXTENSIONS


class NameResolver:
    """
    Produces unique filenames within one album directory.

    Immich happily returns several assets with the same original filename
    (burst shots, re-imports), so later duplicates get a short asset-id
    suffix.
    """

    def __init__(self):
        self.used: Set[str] = set()

    def resolve(self, desired_name: str, is_converted: bool, asset_id: str) -> str:
        """
        Compute the final on-disk filename for an asset.

        Args:
            desired_name: Display filename (e.g. "IMG_0001.HEIC").
            is_converted: Whether the asset will be transcoded.
            asset_id: Immich asset id, used to disambiguate duplicates.

        Returns:
            Filename not yet used in this directory.
        """
        return resolve_name(desired_name, is_converted, asset_id, self.used)


def resolve_name(desired_name: str, is_converted: bool, asset_id: str,
                 already_used: Set[str]) -> str:
    """Functional form of NameResolver.resolve; records the result in already_used."""
    final_name = desired_name
    if is_converted:
        final_name = os.path.splitext(final_name)[0] + TARGET_EXTENSION

    if final_name in already_used:
        stem, ext = os.path.splitext(final_name)
        final_name = f"{stem}_{asset_id[:8]}{ext}"

    already_used.add(final_name)
    return final_name
