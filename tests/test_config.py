"""
Unit tests for configuration loading and validation.

Tests strict validation and error handling for tracker configs.
"""

import logging
import os
import tempfile

import pytest
import yaml

from gas_bottle_tracker.config.loader import (
    load_config,
    default_config,
    DefaultsConfig,
    RemoteBackend,
    RemoteConfig,
    StorageConfig
)


class TestConfigLoading:
    """Test configuration loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data: dict, filename: str = "config.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def test_valid_config_loads_correctly(self):
        """Test that a valid configuration loads correctly."""
        config_data = {
            "storage": {"path": "data/tracker.db"},
            "defaults": {"bottle_weight": 19, "bottle_price": 42.5},
            "remote": {
                "enabled": True,
                "backend": "firestore",
                "project": "gas-tracker",
                "collection": "households"
            },
            "logging": {"level": "debug"}
        }

        config = load_config(self._write_config(config_data))

        assert config.storage.path == "data/tracker.db"
        assert config.defaults.bottle_weight == 19.0
        assert config.defaults.bottle_price == 42.5
        assert config.remote.enabled is True
        assert config.remote.backend == RemoteBackend.FIRESTORE
        assert config.remote.project == "gas-tracker"
        assert config.remote.collection == "households"
        assert config.log_level == logging.DEBUG

    def test_partial_config_uses_defaults(self):
        """Test that missing sections fall back to defaults."""
        config = load_config(self._write_config({"remote": {"enabled": True, "backend": "memory"}}))

        assert config.storage == StorageConfig()
        assert config.defaults == DefaultsConfig()
        assert config.remote.backend == RemoteBackend.MEMORY
        assert config.log_level == logging.WARNING

    def test_empty_file_returns_defaults(self):
        """Test that an empty file is a default configuration."""
        config_path = os.path.join(self.temp_dir, "empty.yaml")
        with open(config_path, 'w', encoding='utf-8') as f:
            f.write("")

        assert load_config(config_path) == default_config()

    def test_missing_file_raises_error(self):
        """Test that a missing config file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            load_config(os.path.join(self.temp_dir, "missing.yaml"))

    def test_invalid_yaml_raises_error(self):
        """Test that invalid YAML raises YAMLError."""
        config_path = os.path.join(self.temp_dir, "bad.yaml")
        with open(config_path, 'w', encoding='utf-8') as f:
            f.write("storage: [unclosed")

        with pytest.raises(yaml.YAMLError):
            load_config(config_path)

    def test_non_mapping_rejected(self):
        """Test that a top-level list is rejected."""
        with pytest.raises(ValueError, match="must be a mapping"):
            load_config(self._write_config(["storage"]))

    def test_unknown_top_level_key_rejected(self):
        """Test that unknown top-level keys are rejected."""
        with pytest.raises(ValueError, match="Unknown configuration keys"):
            load_config(self._write_config({"budget": {"daily": 10}}))

    def test_unknown_section_key_rejected(self):
        """Test that unknown keys inside a section are rejected."""
        with pytest.raises(ValueError, match="Unknown keys in defaults"):
            load_config(self._write_config({"defaults": {"bottle_size": 47}}))

    def test_section_must_be_dictionary(self):
        """Test that sections must be mappings."""
        with pytest.raises(ValueError, match="'storage' must be a dictionary"):
            load_config(self._write_config({"storage": "tracker.db"}))

    def test_non_numeric_default_rejected(self):
        """Test that bottle defaults must be numbers."""
        with pytest.raises(ValueError, match="'bottle_price' in defaults must be a number"):
            load_config(self._write_config({"defaults": {"bottle_price": "cheap"}}))

    def test_zero_weight_rejected(self):
        """Test that bottle weight must be positive."""
        with pytest.raises(ValueError, match="bottle_weight must be > 0"):
            load_config(self._write_config({"defaults": {"bottle_weight": 0}}))

    def test_invalid_backend_rejected(self):
        """Test that unknown backends are rejected."""
        with pytest.raises(ValueError, match="must be one of"):
            load_config(self._write_config({"remote": {"backend": "couchdb"}}))

    def test_enabled_must_be_boolean(self):
        """Test that the enabled flag must be a boolean."""
        with pytest.raises(ValueError, match="must be true or false"):
            load_config(self._write_config({"remote": {"enabled": "yes please"}}))

    def test_invalid_log_level_rejected(self):
        """Test that unknown log levels are rejected."""
        with pytest.raises(ValueError, match="'logging.level' must be one of"):
            load_config(self._write_config({"logging": {"level": "verbose"}}))


class TestConfigModels:
    """Test configuration model validation."""

    def test_empty_storage_path_rejected(self):
        with pytest.raises(ValueError, match="storage path cannot be empty"):
            StorageConfig(path="  ")

    def test_negative_price_rejected(self):
        with pytest.raises(ValueError, match="bottle_price must be >= 0"):
            DefaultsConfig(bottle_price=-1)

    def test_collection_with_slash_rejected(self):
        with pytest.raises(ValueError, match="remote collection"):
            RemoteConfig(collection="users/nested")
