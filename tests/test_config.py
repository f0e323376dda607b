# Copyright (c) 2025 Luc Vincent. All Rights Reserved.
"""
Tests for configuration loading and validation.
"""

import pytest
import yaml
from pathlib import Path


def _write(path, data):
    with open(path, 'w') as f:
        yaml.dump(data, f)
    return str(path)


@pytest.fixture(autouse=True)
def clear_env(monkeypatch):
    """Keep the developer's environment out of config tests."""
    monkeypatch.delenv("IMMICH_API_TOKEN", raising=False)
    monkeypatch.delenv("IMMICH_API_URL", raising=False)


class TestConfigValidation:
    """Test config validation logic."""

    def test_valid_config_passes(self, sample_config_yaml):
        """Valid config should load without errors."""
        from immich_albums.config import load_config, validate_config

        config = load_config(str(sample_config_yaml))
        errors = validate_config(config)

        assert len(errors) == 0, f"Unexpected errors: {errors}"

    def test_missing_token(self, temp_dir, sample_config_dict):
        """Missing API token should produce error."""
        from immich_albums.config import load_config, validate_config

        sample_config_dict["immich"]["api_token"] = ""
        config = load_config(_write(temp_dir / "config.yaml", sample_config_dict))

        assert any("token" in e for e in validate_config(config))

    def test_missing_folder(self, temp_dir, sample_config_dict):
        """Missing sync folder should produce error."""
        from immich_albums.config import load_config, validate_config

        del sample_config_dict["sync"]["folder_path"]
        config = load_config(_write(temp_dir / "config.yaml", sample_config_dict))

        assert "Sync folder path not configured." in validate_config(config)

    def test_no_path_mappings(self, temp_dir, sample_config_dict):
        """A config without mapping rules should be flagged."""
        from immich_albums.config import load_config, validate_config

        sample_config_dict["path_mappings"] = []
        config = load_config(_write(temp_dir / "config.yaml", sample_config_dict))

        assert any("No path mappings" in e for e in validate_config(config))

    def test_empty_prefix(self, temp_dir, sample_config_dict):
        """Rules with an empty container prefix never match and are reported."""
        from immich_albums.config import load_config, validate_config

        sample_config_dict["path_mappings"].append({"container": "", "host": "/mnt/x"})
        config = load_config(_write(temp_dir / "config.yaml", sample_config_dict))

        assert "Path mapping 2 has an empty container prefix." in validate_config(config)

    def test_invalid_tool(self, temp_dir, sample_config_dict):
        """Unknown conversion tool should produce error."""
        from immich_albums.config import load_config, validate_config

        sample_config_dict["conversion"]["tool"] = "gimp"
        config = load_config(_write(temp_dir / "config.yaml", sample_config_dict))

        assert any("Invalid conversion tool" in e for e in validate_config(config))

    def test_quality_bounds(self, temp_dir, sample_config_dict):
        """JPEG quality outside 1-100 should produce error."""
        from immich_albums.config import load_config, validate_config

        for quality in [0, 101]:
            sample_config_dict["conversion"]["quality"] = quality
            config = load_config(_write(temp_dir / "config.yaml", sample_config_dict))

            assert any("quality" in e for e in validate_config(config)), f"Quality {quality} should be invalid"

    def test_bad_url(self, temp_dir, sample_config_dict):
        """URL without scheme should produce error."""
        from immich_albums.config import load_config, validate_config

        sample_config_dict["immich"]["url"] = "immich.local:2283"
        config = load_config(_write(temp_dir / "config.yaml", sample_config_dict))

        assert any("http" in e for e in validate_config(config))


class TestConfigLoading:
    """Test file discovery, parsing and environment overrides."""

    def test_path_mappings_keep_order(self, temp_dir, sample_config_dict):
        """Mapping rules should load in file order."""
        from immich_albums.config import load_config
        from immich_albums.paths import PathMappingRule

        sample_config_dict["path_mappings"] = [
            {"container": "/data/a", "host": "/mnt/a"},
            ["/data", "/mnt/data"],
        ]
        config = load_config(_write(temp_dir / "config.yaml", sample_config_dict))

        assert config.path_mappings == [
            PathMappingRule("/data/a", "/mnt/a"),
            PathMappingRule("/data", "/mnt/data"),
        ]

    def test_malformed_mapping_ignored(self, temp_dir, sample_config_dict):
        """Entries that are neither a mapping nor a pair are skipped."""
        from immich_albums.config import load_config

        sample_config_dict["path_mappings"].append("not-a-rule")
        config = load_config(_write(temp_dir / "config.yaml", sample_config_dict))

        assert len(config.path_mappings) == 1

    def test_unknown_keys_ignored(self, temp_dir, sample_config_dict):
        """Unknown keys should not break loading."""
        from immich_albums.config import load_config

        sample_config_dict["sync"]["color"] = "blue"
        config = load_config(_write(temp_dir / "config.yaml", sample_config_dict))

        assert config.sync.interval_hours == 6

    def test_missing_file_uses_defaults(self, temp_dir):
        """Nonexistent config path should fall back to defaults."""
        from immich_albums.config import load_config

        config = load_config(str(temp_dir / "missing.yaml"))

        assert config.config_path is None
        assert config.immich.url == "http://localhost:2283"
        assert config.path_mappings == []

    def test_env_overrides(self, temp_dir, sample_config_dict, monkeypatch):
        """Environment variables should win over the file."""
        from immich_albums.config import load_config

        monkeypatch.setenv("IMMICH_API_TOKEN", "env-token")
        monkeypatch.setenv("IMMICH_API_URL", "https://photos.example.com")
        config = load_config(_write(temp_dir / "config.yaml", sample_config_dict))

        assert config.immich.api_token == "env-token"
        assert config.immich.url == "https://photos.example.com"

    def test_folder_path_expanded(self, temp_dir, sample_config_dict):
        """A leading ~ in the sync folder should be expanded."""
        from immich_albums.config import load_config

        sample_config_dict["sync"]["folder_path"] = "~/Albums"
        config = load_config(_write(temp_dir / "config.yaml", sample_config_dict))

        assert config.sync.folder_path == str(Path.home() / "Albums")

    def test_save_roundtrip(self, temp_dir, sample_config_yaml):
        """Saved config should load back with the same values."""
        from immich_albums.config import load_config, save_config

        config = load_config(str(sample_config_yaml))
        saved_path = save_config(config, str(temp_dir / "out" / "config.yaml"))

        with open(saved_path) as f:
            data = yaml.safe_load(f)

        assert "config_path" not in data
        assert data["path_mappings"][0]["container"] == "/usr/src/app/upload"
        assert load_config(saved_path).path_mappings == config.path_mappings


class TestConfigDefaults:
    """Test that config defaults are applied correctly."""

    def test_conversion_defaults(self):
        """Conversion config should have correct defaults."""
        from immich_albums.config import ConversionConfig

        config = ConversionConfig()

        assert config.tool == "sips"
        assert config.quality == 85
        assert config.timeout_seconds == 300

    def test_sync_defaults(self):
        """Sync config should have correct defaults."""
        from immich_albums.config import SyncConfig

        config = SyncConfig()

        assert config.folder_path == ""
        assert config.interval_hours == 6
        assert config.sync_on_start == True
