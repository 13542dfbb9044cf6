"""
Tests for configuration loading.
"""

from pathlib import Path

import pytest

from pkg_upgrade.config import (
    ConfigError,
    UpgradeConfig,
    apply_overrides,
    load_config,
)


class TestUpgradeConfig:
    """Tests for UpgradeConfig dataclass."""

    def test_defaults(self):
        config = UpgradeConfig()
        assert config.workers == 5
        assert config.cache_dir == Path("/tmp/pkg_zone")
        assert config.extension == "tgz"
        assert config.installurl_path == Path("/etc/installurl")
        assert config.mirror is None
        assert config.assume_yes is False

    def test_paths_normalized(self):
        config = UpgradeConfig(cache_dir="/var/cache/pkg")
        assert isinstance(config.cache_dir, Path)

    @pytest.mark.parametrize(
        "values",
        [
            {"workers": 0},
            {"workers": "5"},
            {"workers": True},
            {"chunk_size": True},
            {"timeout": True},
            {"timeout": 0},
            {"chunk_size": -1},
            {"extension": ""},
        ],
    )
    def test_invalid(self, values):
        with pytest.raises(ConfigError):
            UpgradeConfig(**values)


class TestLoadConfig:
    """Tests for load_config function."""

    def test_no_path(self):
        assert load_config(None) == UpgradeConfig()

    def test_load_yaml(self, temp_dir):
        path = temp_dir / "pkg-upgrade.yaml"
        path.write_text(
            "workers: 8\n"
            "cache_dir: /var/cache/pkg_zone\n"
            "mirror: https://cdn.openbsd.org/pub/OpenBSD\n"
        )
        config = load_config(path)
        assert config.workers == 8
        assert config.cache_dir == Path("/var/cache/pkg_zone")
        assert config.mirror == "https://cdn.openbsd.org/pub/OpenBSD"

    def test_empty_file(self, temp_dir):
        path = temp_dir / "empty.yaml"
        path.write_text("")
        assert load_config(path) == UpgradeConfig()

    def test_missing_file(self, temp_dir):
        with pytest.raises(ConfigError, match="not found"):
            load_config(temp_dir / "missing.yaml")

    def test_invalid_yaml(self, temp_dir):
        path = temp_dir / "bad.yaml"
        path.write_text("workers: [1, 2\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    def test_not_a_mapping(self, temp_dir):
        path = temp_dir / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_unknown_key(self, temp_dir):
        path = temp_dir / "unknown.yaml"
        path.write_text("concurrency: 4\n")
        with pytest.raises(ConfigError, match="concurrency"):
            load_config(path)

    def test_boolean_workers_in_yaml(self, temp_dir):
        path = temp_dir / "bool.yaml"
        path.write_text("workers: true\n")
        with pytest.raises(ConfigError, match="workers"):
            load_config(path)


class TestApplyOverrides:
    """Tests for apply_overrides function."""

    def test_override(self):
        config = apply_overrides(UpgradeConfig(workers=8), workers=2, cache_dir="/tmp/x")
        assert config.workers == 2
        assert config.cache_dir == Path("/tmp/x")

    def test_none_ignored(self):
        config = apply_overrides(UpgradeConfig(workers=8), workers=None, mirror=None)
        assert config.workers == 8

    def test_override_validated(self):
        with pytest.raises(ConfigError):
            apply_overrides(UpgradeConfig(), workers=0)
