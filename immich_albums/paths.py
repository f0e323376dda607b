# Copyright (c) 2025 Luc Vincent. All Rights Reserved.
"""
Path helpers: container-to-host path mapping and album folder naming.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Set

from .errors import MappingFailure

logger = logging.getLogger(__name__)

# Characters rejected in folder names on at least one platform we serve,
# plus quotes, which several viewers and shell-based tools choke on.
ILLEGAL_NAME_CHARS = frozenset('<>:"/\\|?*\'') | frozenset(chr(c) for c in range(32))

MAX_FOLDER_NAME_LENGTH = 200


@dataclass(frozen=True)
class PathMappingRule:
    """
    Rewrites a path as seen inside the Immich container into a host path.

    A path matches when it starts with ``container_prefix`` (plain string
    comparison, no normalization).
    """
    container_prefix: str
    host_prefix: str

    def matches(self, remote_path: str) -> bool:
        return bool(self.container_prefix) and remote_path.startswith(self.container_prefix)

    def apply(self, remote_path: str) -> str:
        return self.host_prefix + remote_path[len(self.container_prefix):]


def translate_path(remote_path: str, rules: Iterable[PathMappingRule]) -> str:
    """
    Map a remote (container) path to a host path.

    The first rule whose container prefix matches wins.

    Args:
        remote_path: Absolute path reported by Immich.
        rules: Ordered mapping rules.

    Returns:
        The host path.

    Raises:
        MappingFailure: If the path is empty or no rule matches.
    """
    if not remote_path:
        raise MappingFailure("Empty source path")

    for rule in rules:
        if rule.matches(remote_path):
            return rule.apply(remote_path)

    raise MappingFailure(f"No path mapping matches {remote_path}")


def sanitize_folder_name(name: str) -> str:
    """
    Make an album name safe to use as a directory name.

    Strips illegal characters, trims leading/trailing dots and spaces and
    truncates to MAX_FOLDER_NAME_LENGTH. May return an empty string.
    """
    if not name or not name.strip():
        return ""

    result = "".join(c for c in name if c not in ILLEGAL_NAME_CHARS)
    result = result.strip(". ")

    if len(result) > MAX_FOLDER_NAME_LENGTH:
        result = result[:MAX_FOLDER_NAME_LENGTH]

    return result


def album_folder_name(album_name: str, album_id: str, taken: Set[str]) -> str:
    """
    Pick the directory name for an album.

    Falls back to ``album-<id prefix>`` when the sanitized name is empty, and
    suffixes the id prefix when another album of this run already claimed
    the same folder.

    Args:
        album_name: Display name from Immich.
        album_id: Stable album identifier.
        taken: Folder names already used this run.
    """
    folder = sanitize_folder_name(album_name)
    if not folder:
        folder = f"album-{album_id[:8]}"

    if folder in taken:
        deduped = f"{folder[:MAX_FOLDER_NAME_LENGTH - 11]} ({album_id[:8]})"
        logger.warning(f"Album folder '{folder}' already used this run, using '{deduped}'")
        folder = deduped

    return folder
