"""applytrack configuration.

Settings live in ~/.applytrack/config.json and are validated with
Pydantic. A missing, unreadable or invalid file never stops the app: the
defaults are used instead and the problem is logged. Files written by
older releases are upgraded in place, keeping every value they set.

The sync engine itself never reads this module's shared instance; the CLI
(or an embedding app) hands it a ``SyncConfig``.

Usage:
    from applytrack.config import get_config, save_config

    config = get_config()
    config.sync.base_url = "https://tracker.example.com"
    save_config(config)
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from applytrack.errors import ConfigurationError, ErrorCode
from applytrack.utils.atomic_write import atomic_write_text

logger = logging.getLogger(__name__)

APP_DIR = Path.home() / ".applytrack"
CONFIG_PATH = APP_DIR / "config.json"
DEFAULT_QUEUE_PATH = APP_DIR / "offline_sync_queue.json"

# Bumped whenever a stored setting moves or is renamed
CONFIG_VERSION = 2


def validate_path(path: str | Path, description: str = "path") -> Path:
    """Resolve a user-supplied file location, refusing traversal and null bytes.

    Raises:
        ValueError: If the path contains a ".." segment or a null byte.
    """
    raw = str(path)
    if "\x00" in raw:
        raise ValueError(f"Null byte detected in {description}")
    if ".." in PurePosixPath(raw).parts or ".." in PureWindowsPath(raw).parts:
        raise ValueError(f"Path traversal detected in {description}: {raw}")
    return Path(raw).expanduser().resolve()


class SyncConfig(BaseModel):
    """Offline action sync configuration.

    Attributes:
        sync_interval_seconds: Period of the background sync timer.
        batch_size: Number of actions dispatched concurrently per batch.
        batch_delay_seconds: Pause between consecutive batches.
        default_max_retries: Retry budget for drafts that don't set one.
        retry_base_delay_seconds: Base of the exponential retry backoff.
        retry_max_delay_seconds: Cap of the exponential retry backoff.
        request_timeout_seconds: Per-request timeout (None disables it).
        retention_hours: Queued actions older than this are dropped on load.
        base_url: Base URL that relative action endpoints resolve against.
        storage_backend: Where the queue is persisted.
        queue_path: File used by the "json" and "sqlite" backends.
        storage_key: Record key the queue is stored under.
        beacon_timeout_seconds: Timeout for best-effort flushes on teardown.
        probe_url: Optional health URL polled to detect connectivity.
        probe_interval_seconds: Seconds between connectivity probes.
    """

    sync_interval_seconds: float = Field(default=30.0, gt=0, le=3600)
    batch_size: int = Field(default=5, ge=1, le=100)
    batch_delay_seconds: float = Field(default=0.1, ge=0, le=60)
    default_max_retries: int = Field(default=3, ge=1, le=100)
    retry_base_delay_seconds: float = Field(default=1.0, ge=0, le=3600)
    retry_max_delay_seconds: float = Field(default=30.0, ge=0, le=86400)
    request_timeout_seconds: float | None = Field(default=10.0, gt=0, le=600)
    retention_hours: float = Field(default=24.0, gt=0, le=24 * 30)
    base_url: str = ""
    storage_backend: Literal["json", "sqlite", "memory"] = "json"
    queue_path: str = str(DEFAULT_QUEUE_PATH)
    storage_key: str = Field(default="offline_sync_queue", min_length=1)
    beacon_timeout_seconds: float = Field(default=2.0, gt=0, le=30)
    probe_url: str | None = None
    probe_interval_seconds: float = Field(default=30.0, gt=0, le=3600)


class ApplytrackConfig(BaseModel):
    """applytrack configuration schema.

    Attributes:
        config_version: Schema version of the stored file.
        log_level: Root log level used by the CLI.
        sync: Offline action sync configuration.
    """

    config_version: int = CONFIG_VERSION
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    sync: SyncConfig = Field(default_factory=SyncConfig)


_config: ApplytrackConfig | None = None
_config_lock = threading.Lock()


def _v1_flat_queue_settings(data: dict[str, Any]) -> dict[str, Any]:
    """v1 kept queue settings at the top level; v2 nests them under "sync"."""
    sync = data.setdefault("sync", {})
    for old_key, new_key in (
        ("offline_queue_path", "queue_path"),
        ("sync_interval", "sync_interval_seconds"),
    ):
        if old_key in data:
            sync.setdefault(new_key, data.pop(old_key))
    return data


# (version produced, upgrade step), applied in order
_UPGRADES: list[tuple[int, Callable[[dict[str, Any]], dict[str, Any]]]] = [
    (2, _v1_flat_queue_settings),
]


def _upgrade(data: dict[str, Any]) -> tuple[dict[str, Any], bool]:
    """Bring raw config data up to CONFIG_VERSION.

    Returns:
        The upgraded data and whether any step ran.

    Raises:
        ConfigurationError: CFG_MIGRATION_FAILED if the stored version is not
            an integer or an upgrade step cannot handle the stored shape.
    """
    stored = data.get("config_version", 1)
    if isinstance(stored, bool) or not isinstance(stored, int):
        raise ConfigurationError(
            f"Unknown config_version {stored!r}",
            config_key="config_version",
            code=ErrorCode.CFG_MIGRATION_FAILED,
        )

    upgraded = False
    for version, step in _UPGRADES:
        if stored < version:
            logger.info(f"Upgrading config from v{stored} to v{version}")
            try:
                data = step(data)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                raise ConfigurationError(
                    f"Upgrade to config v{version} failed: {e}",
                    code=ErrorCode.CFG_MIGRATION_FAILED,
                    cause=e,
                ) from e
            stored = version
            upgraded = True
    data["config_version"] = CONFIG_VERSION
    return data, upgraded


def _read_raw(path: Path) -> dict[str, Any] | None:
    """Parse the config file, or None (with a warning) if it can't be used."""
    try:
        data = json.loads(path.read_text())
    except ValueError as e:
        # JSONDecodeError or UnicodeDecodeError
        logger.warning(f"Config file {path} is not valid JSON ({e}), using defaults")
        return None
    except OSError as e:
        logger.warning(f"Cannot read config file {path} ({e}), using defaults")
        return None

    if not isinstance(data, dict):
        logger.warning(f"Config file {path} does not hold an object, using defaults")
        return None
    return data


def load_config(config_path: Path | None = None) -> ApplytrackConfig:
    """Load settings, falling back to defaults on any problem.

    Older files are upgraded and written back once, so the upgrade does
    not repeat on every start.

    Args:
        config_path: Config file location. Defaults to ~/.applytrack/config.json.
    """
    path = config_path or CONFIG_PATH
    if not path.exists():
        logger.debug(f"No config file at {path}, using defaults")
        return ApplytrackConfig()

    data = _read_raw(path)
    if data is None:
        return ApplytrackConfig()

    try:
        data, upgraded = _upgrade(data)
    except ConfigurationError as e:
        logger.warning(f"Config file {path} could not be upgraded, using defaults: {e}")
        return ApplytrackConfig()

    try:
        config = ApplytrackConfig.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Config file {path} failed validation, using defaults: {e}")
        return ApplytrackConfig()

    if upgraded:
        save_config(config, path)
    return config


def save_config(config: ApplytrackConfig, config_path: Path | None = None) -> bool:
    """Write settings atomically, readable by the owner only.

    Returns:
        True on success; False if the file could not be written (logged).
    """
    path = config_path or CONFIG_PATH
    try:
        # base_url and probe_url may embed credentials
        atomic_write_text(path, json.dumps(config.model_dump(), indent=2), mode=0o600)
    except OSError as e:
        logger.error(f"Failed to save config to {path}: {e}")
        return False

    logger.debug(f"Saved config to {path}")
    return True


def get_config() -> ApplytrackConfig:
    """Shared configuration, loaded from CONFIG_PATH on first use."""
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:
                _config = load_config()
    return _config


def reset_config() -> None:
    """Forget the shared configuration so the next get_config() reloads it."""
    global _config
    with _config_lock:
        _config = None
