"""
Upgrade Calculator

Main module for computing available package upgrades by comparing
installed packages against the packages published on the mirror.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .pkg_utils import Package, compare_versions, is_newer

logger = logging.getLogger(__name__)


@dataclass
class PackageUpgrade:
    """Represents an available package upgrade."""

    installed: Package
    available: Package

    @property
    def name(self) -> str:
        """Return package name."""
        return self.installed.name

    @property
    def flavour(self) -> str:
        """Return package flavour."""
        return self.installed.flavour

    @property
    def installed_version(self) -> str:
        """Return installed version string."""
        return self.installed.version.string

    @property
    def available_version(self) -> str:
        """Return available version string."""
        return self.available.version.string

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "flavour": self.flavour,
            "installed": {
                "identifier": self.installed.identifier,
                "version": self.installed_version,
            },
            "available": {
                "identifier": self.available.identifier,
                "version": self.available_version,
            },
        }


@dataclass
class UpgradeResult:
    """Results of upgrade computation for one run."""

    index_url: str
    computed_at: str
    installed_count: int = 0
    remote_count: int = 0
    upgrades: list[PackageUpgrade] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def upgrade_count(self) -> int:
        """Return number of available upgrades."""
        return len(self.upgrades)

    @property
    def candidates(self) -> list[Package]:
        """Return the remote packages to download."""
        return [u.available for u in self.upgrades]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "index_url": self.index_url,
            "computed_at": self.computed_at,
            "installed_count": self.installed_count,
            "remote_count": self.remote_count,
            "upgrade_count": self.upgrade_count,
            "upgrades": [u.to_dict() for u in self.upgrades],
            "errors": self.errors,
        }

    def to_json(self, indent: int = 2) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)


def package_key(package: Package) -> str:
    """Return the identity key used to match installed and remote packages."""
    return package.key


def index_remote(remote: Iterable[Package]) -> dict[str, Package]:
    """
    Map identity keys to remote packages.

    When the listing holds more than one version of the same package the
    newest one is kept; equal versions keep the later entry.

    Args:
        remote: Remote packages

    Returns:
        Dict mapping identity key to package
    """
    by_key: dict[str, Package] = {}
    for pkg in remote:
        key = package_key(pkg)
        current = by_key.get(key)
        if current is not None:
            if compare_versions(pkg.version, current.version) < 0:
                logger.debug(
                    f"Duplicate remote package {key}: keeping "
                    f"{current.identifier} over {pkg.identifier}"
                )
                continue
            logger.debug(
                f"Duplicate remote package {key}: replacing "
                f"{current.identifier} with {pkg.identifier}"
            )
        by_key[key] = pkg
    return by_key


def find_upgrades(
    installed: Iterable[Package],
    remote: Iterable[Package],
    strict: bool = False,
) -> list[PackageUpgrade]:
    """
    Pair installed packages with newer remote packages.

    Args:
        installed: Installed packages
        remote: Remote packages
        strict: Raise on versions with differing component counts

    Returns:
        Upgrades in the order of the installed packages
    """
    by_key = index_remote(remote)

    upgrades = []
    for pkg in installed:
        available = by_key.get(package_key(pkg))

        # Locally built or dropped upstream
        if available is None:
            continue

        if is_newer(pkg.version, available.version, strict=strict):
            upgrades.append(PackageUpgrade(installed=pkg, available=available))

    return upgrades


def upgradable_packages(
    installed: Iterable[Package], remote: Iterable[Package]
) -> list[Package]:
    """
    Return the remote packages that are newer than their installed version.

    Args:
        installed: Installed packages
        remote: Remote packages

    Returns:
        Remote packages, in the order of the installed packages
    """
    return [u.available for u in find_upgrades(installed, remote)]


class UpgradeCalculator:
    """
    Computes available package upgrades.

    Compares the installed packages against the packages available
    in the mirror's package directory.
    """

    def __init__(
        self,
        installed: Iterable[Package],
        remote: Iterable[Package],
        index_url: str = "",
        strict: bool = False,
    ):
        """
        Initialize the upgrade calculator.

        Args:
            installed: Installed packages
            remote: Packages listed in the mirror
            index_url: URL the remote packages were listed from
            strict: Raise on versions with differing component counts
        """
        self.installed = list(installed)
        self.remote = list(remote)
        self.index_url = index_url
        self.strict = strict

    def compute_upgrades(self) -> UpgradeResult:
        """
        Compute available upgrades.

        Returns:
            UpgradeResult with available upgrades
        """
        now = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

        result = UpgradeResult(
            index_url=self.index_url,
            computed_at=now,
            installed_count=len(self.installed),
            remote_count=len(self.remote),
        )

        if not self.installed:
            result.errors.append("No installed packages found")
            return result

        if not self.remote:
            result.errors.append("No packages found in mirror index")
            return result

        result.upgrades = find_upgrades(
            self.installed, self.remote, strict=self.strict
        )
        return result

    def generate_summary(self, result: UpgradeResult) -> dict[str, Any]:
        """
        Generate a summary of an upgrade computation.

        Args:
            result: UpgradeResult to summarise

        Returns:
            Summary dictionary
        """
        matched = set(index_remote(self.remote))
        return {
            "generated_at": result.computed_at,
            "index_url": result.index_url,
            "installed_packages": result.installed_count,
            "remote_packages": result.remote_count,
            "unmatched_packages": sum(
                1 for p in self.installed if package_key(p) not in matched
            ),
            "total_upgrades": result.upgrade_count,
            "upgrades": [
                {
                    "name": u.name,
                    "installed": u.installed_version,
                    "available": u.available_version,
                }
                for u in result.upgrades
            ],
        }
