# Copyright (c) 2025 Luc Vincent. All Rights Reserved.
"""
Configuration management for Immich Albums.
Handles loading, validation, and defaults for all settings.
"""

import os
import yaml
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field
import logging

from .paths import PathMappingRule

logger = logging.getLogger(__name__)

# Default paths
DEFAULT_CONFIG_PATHS = [
    "/etc/immich-albums/config.yaml",
    os.path.expanduser("~/.config/immich-albums/config.yaml"),
    "./config.yaml",
]

# Environment overrides for secrets and deployment-specific values
ENV_API_TOKEN = "IMMICH_API_TOKEN"
ENV_API_URL = "IMMICH_API_URL"

CONVERSION_TOOLS = ["sips", "imagemagick"]


@dataclass
class ImmichConfig:
    """Immich server connection settings."""
    url: str = "http://localhost:2283"
    api_token: str = ""
    include_shared_albums: bool = True
    timeout_seconds: int = 30


@dataclass
class SyncConfig:
    """Sync settings."""
    folder_path: str = ""
    interval_hours: int = 6
    sync_on_start: bool = True


@dataclass
class ConversionConfig:
    """HEIC conversion settings."""
    tool: str = "sips"  # sips, imagemagick
    quality: int = 85
    timeout_seconds: int = 300


@dataclass
class ImmichAlbumsConfig:
    """Main configuration class."""
    immich: ImmichConfig = field(default_factory=ImmichConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    path_mappings: List[PathMappingRule] = field(default_factory=list)
    conversion: ConversionConfig = field(default_factory=ConversionConfig)

    # Runtime state (not persisted)
    config_path: Optional[str] = None


def _dict_to_dataclass(data: Dict[str, Any], cls: type) -> Any:
    """Convert a dictionary to a dataclass instance, ignoring unknown keys."""
    if data is None:
        return cls()

    field_names = set(cls.__dataclass_fields__)
    kwargs = {key: value for key, value in data.items() if key in field_names}
    return cls(**kwargs)


def _parse_path_mappings(entries: Any) -> List[PathMappingRule]:
    """
    Parse the ordered path mapping list.

    Accepts either ``{container: ..., host: ...}`` mappings or two-item
    lists. Order is preserved because the first matching rule wins.
    """
    rules: List[PathMappingRule] = []
    for entry in entries or []:
        if isinstance(entry, dict):
            rules.append(PathMappingRule(
                container_prefix=str(entry.get('container', '') or ''),
                host_prefix=str(entry.get('host', '') or ''),
            ))
        elif isinstance(entry, (list, tuple)) and len(entry) == 2:
            rules.append(PathMappingRule(
                container_prefix=str(entry[0]),
                host_prefix=str(entry[1]),
            ))
        else:
            logger.warning(f"Ignoring malformed path mapping: {entry!r}")
    return rules


def load_config(config_path: Optional[str] = None) -> ImmichAlbumsConfig:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Path to config file. If None, searches default locations.

    Returns:
        ImmichAlbumsConfig instance with loaded or default values.
    """
    # Find config file
    if config_path:
        paths_to_try = [config_path]
    else:
        paths_to_try = DEFAULT_CONFIG_PATHS

    config_data = {}
    found_path = None

    for path in paths_to_try:
        expanded_path = os.path.expanduser(path)
        if os.path.exists(expanded_path):
            try:
                with open(expanded_path, 'r') as f:
                    config_data = yaml.safe_load(f) or {}
                found_path = expanded_path
                logger.info(f"Loaded config from {expanded_path}")
                break
            except Exception as e:
                logger.warning(f"Failed to load config from {expanded_path}: {e}")

    if not found_path:
        logger.info("No config file found, using defaults")

    config = ImmichAlbumsConfig(
        immich=_dict_to_dataclass(config_data.get('immich'), ImmichConfig),
        sync=_dict_to_dataclass(config_data.get('sync'), SyncConfig),
        path_mappings=_parse_path_mappings(config_data.get('path_mappings')),
        conversion=_dict_to_dataclass(config_data.get('conversion'), ConversionConfig),
        config_path=found_path,
    )

    # Environment wins over the file so tokens can stay out of YAML
    if os.environ.get(ENV_API_TOKEN):
        config.immich.api_token = os.environ[ENV_API_TOKEN]
    if os.environ.get(ENV_API_URL):
        config.immich.url = os.environ[ENV_API_URL]

    # Expand sync folder path
    if config.sync.folder_path:
        config.sync.folder_path = os.path.expanduser(config.sync.folder_path)

    return config


def save_config(config: ImmichAlbumsConfig, config_path: Optional[str] = None) -> str:
    """
    Save configuration to a YAML file.

    Args:
        config: Configuration to save.
        config_path: Path to save to. If None, uses config.config_path or default.

    Returns:
        Path where config was saved.
    """
    if config_path is None:
        config_path = config.config_path or DEFAULT_CONFIG_PATHS[0]

    config_path = os.path.expanduser(config_path)

    # Ensure directory exists
    parent = os.path.dirname(config_path)
    if parent:
        os.makedirs(parent, exist_ok=True)

    data = config_to_dict(config)

    with open(config_path, 'w') as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    logger.info(f"Saved config to {config_path}")
    return config_path


def config_to_dict(config: ImmichAlbumsConfig) -> Dict[str, Any]:
    """Convert config to dictionary for serialization."""
    def dataclass_to_dict(obj: Any) -> Any:
        if isinstance(obj, PathMappingRule):
            return {"container": obj.container_prefix, "host": obj.host_prefix}
        if hasattr(obj, '__dataclass_fields__'):
            result = {}
            for field_name in obj.__dataclass_fields__:
                if field_name == 'config_path':
                    continue  # Skip runtime state
                result[field_name] = dataclass_to_dict(getattr(obj, field_name))
            return result
        elif isinstance(obj, list):
            return [dataclass_to_dict(item) for item in obj]
        elif isinstance(obj, dict):
            return {k: dataclass_to_dict(v) for k, v in obj.items()}
        else:
            return obj

    return dataclass_to_dict(config)


def validate_config(config: ImmichAlbumsConfig) -> List[str]:
    """
    Validate configuration and return list of errors.

    Returns:
        List of error messages. Empty if valid.
    """
    errors = []

    # Check Immich connection
    if not config.immich.api_token:
        errors.append(f"Immich API token not configured (set immich.api_token or {ENV_API_TOKEN}).")

    url = config.immich.url or ""
    if not (url.startswith('http://') or url.startswith('https://')):
        errors.append("Immich URL must start with http:// or https://")

    if config.immich.timeout_seconds <= 0:
        errors.append("Immich timeout_seconds must be positive")

    # Check sync settings
    if not config.sync.folder_path:
        errors.append("Sync folder path not configured.")

    if config.sync.interval_hours < 0:
        errors.append("Sync interval_hours must be 0 (disabled) or greater")

    # Check path mappings
    if not config.path_mappings:
        errors.append("No path mappings configured. Add at least one container -> host mapping.")

    for i, rule in enumerate(config.path_mappings):
        if not rule.container_prefix:
            errors.append(f"Path mapping {i+1} has an empty container prefix.")
        if not rule.host_prefix:
            errors.append(f"Path mapping {i+1} has an empty host prefix.")

    # Check conversion settings
    if config.conversion.tool not in CONVERSION_TOOLS:
        errors.append(f"Invalid conversion tool. Must be one of: {CONVERSION_TOOLS}")

    if not (1 <= config.conversion.quality <= 100):
        errors.append("Conversion quality must be between 1 and 100")

    if config.conversion.timeout_seconds <= 0:
        errors.append("Conversion timeout_seconds must be positive")

    return errors
