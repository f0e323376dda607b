# Copyright (c) 2025 Luc Vincent. All Rights Reserved.
"""
Immich API client.
Lists albums and fetches album details (with assets) over the REST API.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

import requests

from .errors import ConnectionFailure

logger = logging.getLogger(__name__)


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an Immich ISO-8601 timestamp ("...Z" suffix allowed)."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        logger.debug(f"Unparseable timestamp: {value!r}")
        return None


@dataclass
class RemoteAsset:
    """One asset of an Immich album."""
    asset_id: str
    original_path: str               # Path inside the Immich container
    original_file_name: str = ""     # Display filename, may be empty
    asset_type: str = "IMAGE"        # "IMAGE", "VIDEO", ...
    file_created_at: Optional[datetime] = None  # Informational only

    @property
    def display_name(self) -> str:
        """Filename to use on disk before collision handling."""
        return self.original_file_name or os.path.basename(self.original_path)

    @classmethod
    def from_dict(cls, data: dict) -> "RemoteAsset":
        return cls(
            asset_id=data.get("id", ""),
            original_path=data.get("originalPath", "") or "",
            original_file_name=data.get("originalFileName", "") or "",
            asset_type=data.get("type", "IMAGE") or "IMAGE",
            file_created_at=_parse_timestamp(data.get("fileCreatedAt")),
        )


@dataclass
class RemoteAlbum:
    """An Immich album. ``assets`` is only populated by get_album_detail."""
    album_id: str
    name: str
    asset_count: int = 0
    shared: bool = False
    updated_at: Optional[datetime] = None
    assets: List[RemoteAsset] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "RemoteAlbum":
        return cls(
            album_id=data.get("id", ""),
            name=data.get("albumName", "") or "",
            asset_count=data.get("assetCount", 0) or 0,
            shared=bool(data.get("shared", False)),
            updated_at=_parse_timestamp(data.get("updatedAt")),
            assets=[RemoteAsset.from_dict(a) for a in data.get("assets") or []],
        )


class ImmichClient:
    """
    Thin wrapper around the Immich REST API.

    Authenticates with an API key sent in the ``x-api-key`` header.
    """

    def __init__(self, base_url: str, api_token: str, timeout: int = 30):
        """
        Initialize the client.

        Args:
            base_url: Immich server URL, e.g. "http://localhost:2283".
            api_token: Immich API key.
            timeout: Per-request timeout in seconds.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers.update({
            "x-api-key": api_token,
            "Accept": "application/json",
        })

    def __enter__(self) -> "ImmichClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self._session.close()

    def _get(self, path: str, params: Optional[dict] = None) -> requests.Response:
        return self._session.get(f"{self.base_url}{path}", params=params, timeout=self.timeout)

    def test_connection(self) -> bool:
        """Ping the server. Returns False instead of raising on any failure."""
        try:
            response = self._get("/api/server/ping")
            return response.ok
        except requests.RequestException as e:
            logger.error(f"Failed to connect to Immich API: {e}")
            return False

    def list_albums(self, include_shared: bool) -> List[RemoteAlbum]:
        """
        List albums (without assets).

        Owned albums come first; shared albums are appended unless already
        present.

        Raises:
            ConnectionFailure: If a listing request fails.
        """
        try:
            response = self._get("/api/albums")
            response.raise_for_status()
            albums = [RemoteAlbum.from_dict(a) for a in response.json() or []]

            if include_shared:
                response = self._get("/api/albums", params={"shared": "true"})
                response.raise_for_status()
                known_ids = {a.album_id for a in albums}
                for data in response.json() or []:
                    album = RemoteAlbum.from_dict(data)
                    if album.album_id not in known_ids:
                        albums.append(album)
                        known_ids.add(album.album_id)
        except (requests.RequestException, ValueError) as e:
            raise ConnectionFailure(f"Failed to list albums from {self.base_url}: {e}") from e

        logger.info(f"Fetched {len(albums)} albums from Immich")
        return albums

    def get_album_detail(self, album_id: str) -> Optional[RemoteAlbum]:
        """
        Fetch one album including its assets.

        Returns:
            The album, or None if Immich no longer knows it.

        Raises:
            requests.RequestException: On transport or server errors.
        """
        response = self._get(f"/api/albums/{album_id}")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        data = response.json()
        if not data:
            return None
        return RemoteAlbum.from_dict(data)
