"""Unit tests for the applytrack configuration system.

Tests cover defaults, field validation, loading from missing/invalid
files, migration of older config versions, saving and singleton behavior.
"""

import json
import stat

import pytest
from pydantic import ValidationError

from applytrack.config import (
    CONFIG_VERSION,
    ApplytrackConfig,
    SyncConfig,
    _upgrade,
    get_config,
    load_config,
    reset_config,
    save_config,
    validate_path,
)
from applytrack.errors import ConfigurationError, ErrorCode


@pytest.fixture(autouse=True)
def clean_config():
    """Reset the config singleton around each test."""
    reset_config()
    yield
    reset_config()


class TestSyncConfig:
    """Tests for SyncConfig model."""

    def test_default_values(self):
        """Defaults match the documented sync behavior."""
        config = SyncConfig()
        assert config.sync_interval_seconds == 30.0
        assert config.batch_size == 5
        assert config.batch_delay_seconds == 0.1
        assert config.default_max_retries == 3
        assert config.retry_base_delay_seconds == 1.0
        assert config.retry_max_delay_seconds == 30.0
        assert config.request_timeout_seconds == 10.0
        assert config.retention_hours == 24.0
        assert config.storage_backend == "json"
        assert config.storage_key == "offline_sync_queue"
        assert config.probe_url is None

    def test_timeout_can_be_disabled(self):
        """request_timeout_seconds accepts None."""
        assert SyncConfig(request_timeout_seconds=None).request_timeout_seconds is None

    @pytest.mark.parametrize(
        "field,value",
        [
            ("batch_size", 0),
            ("default_max_retries", 0),
            ("sync_interval_seconds", 0),
            ("batch_delay_seconds", -1),
            ("storage_backend", "redis"),
        ],
    )
    def test_rejects_invalid_values(self, field, value):
        """Out-of-range values fail validation."""
        with pytest.raises(ValidationError):
            SyncConfig(**{field: value})


class TestLoadConfig:
    """Tests for load_config."""

    def test_missing_file_returns_defaults(self, tmp_path):
        """No file means default config."""
        config = load_config(tmp_path / "missing.json")
        assert config == ApplytrackConfig()

    def test_invalid_json_returns_defaults(self, tmp_path):
        """Corrupted JSON falls back to defaults."""
        path = tmp_path / "config.json"
        path.write_text("{broken")
        assert load_config(path) == ApplytrackConfig()

    def test_non_utf8_returns_defaults(self, tmp_path):
        """Undecodable bytes fall back to defaults."""
        path = tmp_path / "config.json"
        path.write_bytes(b"\xff\xfe{}")
        assert load_config(path) == ApplytrackConfig()

    def test_non_object_returns_defaults(self, tmp_path):
        """A JSON array is not a config."""
        path = tmp_path / "config.json"
        path.write_text("[1, 2]")
        assert load_config(path) == ApplytrackConfig()

    def test_validation_failure_returns_defaults(self, tmp_path):
        """Invalid values fall back to defaults."""
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"config_version": CONFIG_VERSION, "sync": {"batch_size": 0}}))
        assert load_config(path).sync.batch_size == 5

    def test_loads_values(self, tmp_path):
        """Stored values are applied."""
        path = tmp_path / "config.json"
        path.write_text(
            json.dumps(
                {
                    "config_version": CONFIG_VERSION,
                    "log_level": "DEBUG",
                    "sync": {"batch_size": 10, "base_url": "https://tracker.example.test"},
                }
            )
        )

        config = load_config(path)

        assert config.log_level == "DEBUG"
        assert config.sync.batch_size == 10
        assert config.sync.base_url == "https://tracker.example.test"


class TestMigration:
    """Tests for config version migration."""

    def test_v1_flat_settings_move_into_sync(self, tmp_path):
        """v1 queue settings are preserved under the sync section."""
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"offline_queue_path": "/tmp/q.json", "sync_interval": 60}))

        config = load_config(path)

        assert config.config_version == CONFIG_VERSION
        assert config.sync.queue_path == "/tmp/q.json"
        assert config.sync.sync_interval_seconds == 60

    def test_migrated_config_is_persisted(self, tmp_path):
        """Migration is written back so it only runs once."""
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"sync_interval": 45}))

        load_config(path)

        data = json.loads(path.read_text())
        assert data["config_version"] == CONFIG_VERSION
        assert data["sync"]["sync_interval_seconds"] == 45
        assert "sync_interval" not in data

    def test_unknown_version_is_migration_failure(self):
        """A non-integer config_version cannot be upgraded."""
        with pytest.raises(ConfigurationError) as exc_info:
            _upgrade({"config_version": "two"})
        assert exc_info.value.code == ErrorCode.CFG_MIGRATION_FAILED

    def test_failed_step_is_migration_failure(self):
        """A v1 file whose sync section is not an object cannot be upgraded."""
        with pytest.raises(ConfigurationError) as exc_info:
            _upgrade({"sync": "oops", "sync_interval": 60})
        assert exc_info.value.code == ErrorCode.CFG_MIGRATION_FAILED

    def test_failed_migration_returns_defaults_and_keeps_file(self, tmp_path):
        """The unreadable file is left as it was for the user to fix."""
        path = tmp_path / "config.json"
        original = json.dumps({"sync": "oops", "sync_interval": 60})
        path.write_text(original)

        assert load_config(path) == ApplytrackConfig()
        assert path.read_text() == original


class TestSaveConfig:
    """Tests for save_config."""

    def test_save_and_reload(self, tmp_path):
        """Saved config loads back unchanged."""
        path = tmp_path / "nested" / "config.json"
        config = ApplytrackConfig(sync=SyncConfig(batch_size=8))

        assert save_config(config, path) is True
        assert load_config(path) == config

    def test_owner_only_permissions(self, tmp_path):
        """The config file is readable by its owner only."""
        path = tmp_path / "config.json"
        save_config(ApplytrackConfig(), path)
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_save_failure_returns_false(self, tmp_path):
        """Unwritable locations are reported, not raised."""
        blocker = tmp_path / "blocker"
        blocker.write_text("file")
        assert save_config(ApplytrackConfig(), blocker / "config.json") is False


class TestSingleton:
    """Tests for get_config/reset_config."""

    def test_get_config_is_cached(self, monkeypatch, tmp_path):
        """get_config returns the same instance until reset."""
        monkeypatch.setattr("applytrack.config.CONFIG_PATH", tmp_path / "config.json")

        first = get_config()
        assert get_config() is first

        reset_config()
        assert get_config() is not first


class TestValidatePath:
    """Tests for validate_path."""

    def test_rejects_traversal(self):
        """Parent-directory segments are refused."""
        with pytest.raises(ValueError, match="traversal"):
            validate_path("../etc/passwd")

    def test_rejects_null_byte(self):
        """Null bytes are refused."""
        with pytest.raises(ValueError, match="Null byte"):
            validate_path("queue\x00.json")

    def test_resolves_path(self, tmp_path):
        """Valid paths are resolved."""
        assert validate_path(tmp_path / "q.json") == (tmp_path / "q.json").resolve()
