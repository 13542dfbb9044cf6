"""
Configuration

Settings for an upgrade run, loaded from an optional YAML file and
overridden from the command line.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 5
DEFAULT_CACHE_DIR = "/tmp/pkg_zone"
DEFAULT_EXTENSION = "tgz"
DEFAULT_TIMEOUT = 30.0
DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_INSTALLURL = "/etc/installurl"


class ConfigError(Exception):
    """Raised for unreadable or invalid configuration."""


@dataclass(frozen=True)
class UpgradeConfig:
    """
    Settings for an upgrade run.

    Attributes:
        workers: Number of concurrent download workers
        cache_dir: Directory archives are downloaded into
        extension: Archive filename extension
        timeout: Per-request network timeout in seconds
        chunk_size: Streaming chunk size in bytes
        installurl_path: File holding the mirror URL
        mirror: Mirror URL, overriding installurl_path
        release: OS release, overriding uname -r
        arch: Architecture, overriding uname -p
        assume_yes: Skip the confirmation prompt
        strict: Abort on malformed identifiers instead of skipping them, and
            reject comparing versions with differing component counts
            (ComponentMismatchError) instead of padding them with zeros
    """

    workers: int = DEFAULT_WORKERS
    cache_dir: Path = Path(DEFAULT_CACHE_DIR)
    extension: str = DEFAULT_EXTENSION
    timeout: float = DEFAULT_TIMEOUT
    chunk_size: int = DEFAULT_CHUNK_SIZE
    installurl_path: Path = Path(DEFAULT_INSTALLURL)
    mirror: str | None = None
    release: str | None = None
    arch: str | None = None
    assume_yes: bool = False
    strict: bool = False

    def __post_init__(self) -> None:
        """Normalize paths and validate values."""
        object.__setattr__(self, "cache_dir", Path(self.cache_dir))
        object.__setattr__(self, "installurl_path", Path(self.installurl_path))
        validate_config(self)


def validate_config(config: UpgradeConfig) -> None:
    """
    Validate configuration values.

    Raises:
        ConfigError: If a value is out of range
    """
    if isinstance(config.workers, bool) or not isinstance(config.workers, int) \
            or config.workers < 1:
        raise ConfigError(f"workers must be a positive integer, got {config.workers!r}")
    if isinstance(config.chunk_size, bool) or not isinstance(config.chunk_size, int) \
            or config.chunk_size < 1:
        raise ConfigError(f"chunk_size must be a positive integer, got {config.chunk_size!r}")
    if isinstance(config.timeout, bool) or not isinstance(config.timeout, (int, float)) \
            or config.timeout <= 0:
        raise ConfigError(f"timeout must be positive, got {config.timeout!r}")
    if not config.extension or "/" in config.extension:
        raise ConfigError(f"invalid archive extension {config.extension!r}")


def _build(values: dict[str, Any]) -> UpgradeConfig:
    known = {f.name for f in fields(UpgradeConfig)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")
    try:
        return UpgradeConfig(**values)
    except TypeError as e:
        raise ConfigError(str(e)) from e


def load_config(path: str | Path | None = None) -> UpgradeConfig:
    """
    Load configuration from a YAML file.

    Args:
        path: Path to the YAML file, or None for defaults

    Returns:
        UpgradeConfig

    Raises:
        ConfigError: If the file is missing, malformed or has unknown keys
    """
    if path is None:
        return UpgradeConfig()

    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a mapping")

    logger.debug(f"Loaded configuration from {config_path}")
    return _build(data)


def apply_overrides(config: UpgradeConfig, **overrides: Any) -> UpgradeConfig:
    """
    Return a copy of config with the given values replaced.

    None values are ignored so unset command line flags keep the
    file or default value.
    """
    values = {k: v for k, v in overrides.items() if v is not None}
    known = {f.name for f in fields(UpgradeConfig)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")
    return replace(config, **values)
