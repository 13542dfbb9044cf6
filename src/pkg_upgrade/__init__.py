"""
Package Upgrade Module

Provides functionality for finding installed packages with newer versions
on the package mirror and downloading them into a local cache.
"""

from .calculator import UpgradeCalculator, upgradable_packages
from .downloader import DownloadScheduler, download_packages
from .pkg_utils import (
    Package,
    PackageVersion,
    ParseError,
    is_newer,
    parse_package,
    parse_version,
)

__all__ = [
    "UpgradeCalculator",
    "upgradable_packages",
    "DownloadScheduler",
    "download_packages",
    "Package",
    "PackageVersion",
    "ParseError",
    "is_newer",
    "parse_package",
    "parse_version",
]

__version__ = "1.0.0"
