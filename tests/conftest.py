# Copyright (c) 2025-2026 Luc Vincent. All Rights Reserved.
"""
Pytest configuration and shared fixtures for Immich Albums tests.
"""

import os
import tempfile
from pathlib import Path

import pytest


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_config_dict(temp_dir):
    """Return a minimal valid config dictionary."""
    return {
        "immich": {
            "url": "http://immich.local:2283",
            "api_token": "test-token",
            "include_shared_albums": True,
            "timeout_seconds": 30
        },
        "sync": {
            "folder_path": str(temp_dir / "albums"),
            "interval_hours": 6,
            "sync_on_start": True
        },
        "path_mappings": [
            {"container": "/usr/src/app/upload", "host": str(temp_dir / "library")}
        ],
        "conversion": {
            "tool": "sips",
            "quality": 85,
            "timeout_seconds": 300
        }
    }


@pytest.fixture
def sample_config_yaml(temp_dir, sample_config_dict):
    """Create a temporary config.yaml file."""
    import yaml
    config_path = temp_dir / "config.yaml"
    with open(config_path, 'w') as f:
        yaml.dump(sample_config_dict, f)
    return config_path


class FakeConverter:
    """
    Stand-in for an external transcoder.

    Writes a small file at the destination and reports the orientation
    configured for the source filename (1 by default).
    """

    def __init__(self, orientations=None, failing=None):
        self.orientations = orientations or {}
        self.failing = set(failing or [])
        self.calls = []

    def convert(self, source_path, dest_path, cancel_event=None):
        from immich_albums.converter import ConversionResult, rotation_for_orientation

        self.calls.append((source_path, dest_path))
        name = os.path.basename(source_path)
        if name in self.failing:
            return ConversionResult(converted=False)

        with open(dest_path, 'wb') as f:
            f.write(b"\xff\xd8\xff\xe0fake-jpeg")

        orientation = self.orientations.get(name, 1)
        return ConversionResult(
            converted=True,
            rotated=rotation_for_orientation(orientation) != 0,
            orientation=orientation,
        )


class FakeImmichClient:
    """In-memory Immich client keyed by album id."""

    def __init__(self, albums=None, reachable=True, failing_details=None):
        self.albums = {album.album_id: album for album in albums or []}
        self.reachable = reachable
        self.failing_details = set(failing_details or [])
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.closed = True

    def test_connection(self):
        return self.reachable

    def list_albums(self, include_shared):
        from immich_albums.immich_client import RemoteAlbum

        return [
            RemoteAlbum(album_id=a.album_id, name=a.name, asset_count=len(a.assets))
            for a in self.albums.values()
        ]

    def get_album_detail(self, album_id):
        if album_id in self.failing_details:
            raise RuntimeError("HTTP 500")
        return self.albums.get(album_id)


@pytest.fixture
def fake_converter():
    """Converter that never shells out."""
    return FakeConverter()


@pytest.fixture
def library(temp_dir):
    """Host-side library directory plus a helper to create source files in it."""
    root = temp_dir / "library"
    root.mkdir()

    def add(relative_path, content=b"data"):
        path = root / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path

    add.root = root
    return add


@pytest.fixture
def mappings(temp_dir):
    """Single container -> host rule pointing at the library fixture."""
    from immich_albums.paths import PathMappingRule
    return [PathMappingRule("/usr/src/app/upload", str(temp_dir / "library"))]


@pytest.fixture
def make_album():
    """Build a RemoteAlbum from (asset_id, container path) pairs."""
    from immich_albums.immich_client import RemoteAlbum, RemoteAsset

    def build(album_id, name, assets):
        return RemoteAlbum(
            album_id=album_id,
            name=name,
            asset_count=len(assets),
            assets=[
                RemoteAsset(asset_id=asset_id, original_path=path)
                for asset_id, path in assets
            ],
        )

    return build


@pytest.fixture
def client_factory():
    """Build a FakeImmichClient; pass the result to SyncService as its factory."""
    def build(albums=None, reachable=True, failing_details=None):
        return FakeImmichClient(albums, reachable=reachable, failing_details=failing_details)

    return build
