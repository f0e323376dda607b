# Copyright (c) 2025 Luc Vincent. All Rights Reserved.
"""
Tests for the sync service.
"""

import os
import threading
from unittest.mock import MagicMock

import pytest

UPLOAD = "/usr/src/app/upload"


@pytest.fixture
def config(sample_config_yaml, monkeypatch):
    from immich_albums.config import load_config

    monkeypatch.delenv("IMMICH_API_TOKEN", raising=False)
    monkeypatch.delenv("IMMICH_API_URL", raising=False)
    return load_config(str(sample_config_yaml))


@pytest.fixture
def album(library, make_album):
    library("IMG_0001.jpg")
    library("IMG_0002.HEIC")
    return make_album("album-trip-0001", "Trip", [
        ("aaaaaaaa-0001", f"{UPLOAD}/IMG_0001.jpg"),
        ("bbbbbbbb-0002", f"{UPLOAD}/IMG_0002.HEIC"),
    ])


class TestSyncService:
    """Test a full sync against a fake Immich server."""

    def test_full_sync(self, config, album, client_factory, fake_converter):
        from immich_albums.sync import SyncService

        client = client_factory([album])
        service = SyncService(config, client_factory=lambda cfg: client, converter=fake_converter)

        summary = service.sync()

        assert summary.albums == 1
        assert summary.links_created == 1
        assert summary.converted == 1
        assert client.closed
        assert sorted(os.listdir(os.path.join(config.sync.folder_path, "Trip"))) == ["IMG_0001.jpg", "IMG_0002.jpg"]

    def test_progress_sequence(self, config, album, client_factory, fake_converter):
        from immich_albums.sync import SyncService

        values = []
        service = SyncService(config, client_factory=lambda cfg: client_factory([album]), converter=fake_converter)

        service.sync(progress_callback=values.append)

        assert values == [5.0, 10.0, 90.0, 100.0]

    def test_connection_failure(self, config, client_factory, fake_converter):
        """An unreachable server aborts before touching the tree."""
        from immich_albums.errors import ConnectionFailure
        from immich_albums.sync import SyncService

        service = SyncService(
            config,
            client_factory=lambda cfg: client_factory(reachable=False),
            converter=fake_converter,
        )

        with pytest.raises(ConnectionFailure):
            service.sync()

        assert os.listdir(config.sync.folder_path) == []

    def test_missing_token_skips(self, config, fake_converter):
        from immich_albums.sync import SyncService

        config.immich.api_token = ""
        factory = MagicMock()

        assert SyncService(config, client_factory=factory, converter=fake_converter).sync() is None
        factory.assert_not_called()

    def test_missing_folder_skips(self, config, fake_converter):
        from immich_albums.sync import SyncService

        config.sync.folder_path = ""
        factory = MagicMock()

        assert SyncService(config, client_factory=factory, converter=fake_converter).sync() is None
        factory.assert_not_called()

    def test_concurrent_sync_skipped(self, config, album, client_factory, fake_converter):
        """A second sync while one is running returns immediately."""
        from immich_albums.sync import SyncService

        started = threading.Event()
        release = threading.Event()
        results = []

        def slow_factory(cfg):
            started.set()
            release.wait(5)
            return client_factory([album])

        service = SyncService(config, client_factory=slow_factory, converter=fake_converter)
        worker = threading.Thread(target=lambda: results.append(service.sync()))
        worker.start()
        started.wait(5)

        assert service.sync() is None

        release.set()
        worker.join(5)
        assert results[0].albums == 1

    def test_detail_failure_counted(self, config, album, client_factory, fake_converter):
        from immich_albums.sync import SyncService

        client = client_factory([album], failing_details=[album.album_id])
        service = SyncService(config, client_factory=lambda cfg: client, converter=fake_converter)

        summary = service.sync()

        assert summary.errors == 1
        assert summary.albums == 0

    def test_converter_built_from_config(self, config):
        from immich_albums.converter import SipsConverter
        from immich_albums.sync import SyncService

        assert isinstance(SyncService(config).converter, SipsConverter)


class TestRunSyncSafely:
    """Test the background-loop wrapper."""

    def test_logs_instead_of_raising(self, config, client_factory, fake_converter):
        from immich_albums.sync import SyncService, run_sync_safely

        service = SyncService(
            config,
            client_factory=lambda cfg: client_factory(reachable=False),
            converter=fake_converter,
        )

        assert run_sync_safely(service) is None

    def test_cancelled_run(self, config, album, client_factory, fake_converter):
        from immich_albums.sync import SyncService, run_sync_safely

        cancel_event = threading.Event()
        cancel_event.set()
        service = SyncService(config, client_factory=lambda cfg: client_factory([album]), converter=fake_converter)

        assert run_sync_safely(service, cancel_event) is None
        assert fake_converter.calls == []
