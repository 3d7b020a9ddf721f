"""
Configuration management and loading.

Handles storage location, default bottle settings, remote sync and
logging options read from a YAML file.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from gas_bottle_tracker.storage.db import DEFAULT_DB_PATH
from gas_bottle_tracker.storage.models import DEFAULT_BOTTLE_PRICE, DEFAULT_BOTTLE_WEIGHT


class RemoteBackend(Enum):
    """Supported remote document stores."""
    FIRESTORE = "firestore"
    MEMORY = "memory"


LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass(frozen=True)
class StorageConfig:
    """Location of the durable local store."""
    path: str = DEFAULT_DB_PATH

    def __post_init__(self):
        """Validate path is not empty."""
        if not self.path or not self.path.strip():
            raise ValueError("storage path cannot be empty")


@dataclass(frozen=True)
class DefaultsConfig:
    """Bottle settings used on first run."""
    bottle_weight: float = DEFAULT_BOTTLE_WEIGHT
    bottle_price: float = DEFAULT_BOTTLE_PRICE

    def __post_init__(self):
        """Validate default bottle values."""
        if self.bottle_weight <= 0:
            raise ValueError("bottle_weight must be > 0")
        if self.bottle_price < 0:
            raise ValueError("bottle_price must be >= 0")


@dataclass(frozen=True)
class RemoteConfig:
    """Remote sync configuration."""
    enabled: bool = False
    backend: RemoteBackend = RemoteBackend.FIRESTORE
    project: Optional[str] = None
    collection: str = "users"

    def __post_init__(self):
        """Validate collection name."""
        if not self.collection or "/" in self.collection:
            raise ValueError("remote collection must be a non-empty name without '/'")


@dataclass(frozen=True)
class TrackerConfig:
    """Complete tracker configuration."""
    storage: StorageConfig = field(default_factory=StorageConfig)
    defaults: DefaultsConfig = field(default_factory=DefaultsConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    log_level: int = logging.WARNING


def default_config() -> TrackerConfig:
    return TrackerConfig()


def load_config(path: str) -> TrackerConfig:
    """Load and validate tracker configuration from YAML file.

    Every section is optional, but unknown keys and wrong types are
    rejected rather than silently ignored.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated TrackerConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return default_config()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a mapping")

    allowed_top_keys = {'storage', 'defaults', 'remote', 'logging'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    storage_data = _section(raw_config, 'storage', {'path'})
    storage = StorageConfig(path=str(storage_data.get('path', DEFAULT_DB_PATH)))

    defaults_data = _section(raw_config, 'defaults', {'bottle_weight', 'bottle_price'})
    defaults = DefaultsConfig(
        bottle_weight=_number(defaults_data, 'bottle_weight', DEFAULT_BOTTLE_WEIGHT, 'defaults'),
        bottle_price=_number(defaults_data, 'bottle_price', DEFAULT_BOTTLE_PRICE, 'defaults')
    )

    remote = _parse_remote_config(
        _section(raw_config, 'remote', {'enabled', 'backend', 'project', 'collection'})
    )

    logging_data = _section(raw_config, 'logging', {'level'})
    level_name = logging_data.get('level', 'warning')
    if not isinstance(level_name, str) or level_name.lower() not in LOG_LEVELS:
        raise ValueError(f"'logging.level' must be one of: {sorted(LOG_LEVELS)}")

    return TrackerConfig(
        storage=storage,
        defaults=defaults,
        remote=remote,
        log_level=LOG_LEVELS[level_name.lower()]
    )


def _section(raw_config: Dict, name: str, allowed_keys: set) -> Dict[str, Any]:
    """Return a validated config section, or {} when absent."""
    data = raw_config.get(name)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {name}: {unknown_keys}")
    return data


def _number(data: Dict, key: str, default: float, path: str) -> float:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{key}' in {path} must be a number")
    return float(value)


def _parse_remote_config(data: Dict) -> RemoteConfig:
    """Parse and validate the remote section.

    Args:
        data: Remote configuration data

    Returns:
        Validated RemoteConfig

    Raises:
        ValueError: If configuration is invalid
    """
    enabled = data.get('enabled', False)
    if not isinstance(enabled, bool):
        raise ValueError("'enabled' in remote must be true or false")

    backend_str = data.get('backend', RemoteBackend.FIRESTORE.value)
    if not isinstance(backend_str, str):
        raise ValueError("'backend' in remote must be a string")
    try:
        backend = RemoteBackend(backend_str.lower())
    except ValueError:
        valid_backends = [backend.value for backend in RemoteBackend]
        raise ValueError(f"'backend' in remote must be one of: {valid_backends}")

    project = data.get('project')
    if project is not None and not isinstance(project, str):
        raise ValueError("'project' in remote must be a string")

    collection = data.get('collection', 'users')
    if not isinstance(collection, str):
        raise ValueError("'collection' in remote must be a string")

    return RemoteConfig(
        enabled=enabled,
        backend=backend,
        project=project,
        collection=collection
    )
