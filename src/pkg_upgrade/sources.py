"""
Package Sources

Discovers the package mirror and lists remote and installed packages.
"""

from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path

import requests

from .config import DEFAULT_EXTENSION, DEFAULT_INSTALLURL, DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)


class SourceError(RuntimeError):
    """Raised when the mirror or package lists cannot be determined."""


def _run(*command: str) -> str:
    try:
        result = subprocess.run(
            command, capture_output=True, text=True, check=True
        )
    except (OSError, subprocess.CalledProcessError) as e:
        raise SourceError(f"Failed to run {' '.join(command)}: {e}") from e
    return result.stdout


def get_mirror(path: str | Path = DEFAULT_INSTALLURL) -> str:
    """
    Read the mirror URL.

    Args:
        path: File holding the mirror URL

    Returns:
        Mirror URL without trailing slash
    """
    try:
        url = Path(path).read_text().strip()
    except OSError as e:
        raise SourceError(f"Failed to read mirror from {path}: {e}") from e
    if not url:
        raise SourceError(f"No mirror configured in {path}")
    return url.rstrip("/")


def get_release() -> str:
    """Return the OS release (uname -r)."""
    return _run("uname", "-r").strip()


def get_arch() -> str:
    """Return the processor architecture (uname -p)."""
    return _run("uname", "-p").strip()


def package_index_url(mirror: str, release: str, arch: str) -> str:
    """
    Build the package directory URL.

    Example:
        ("https://cdn.openbsd.org/pub/OpenBSD", "7.4", "amd64")
        -> "https://cdn.openbsd.org/pub/OpenBSD/7.4/packages/amd64"
    """
    return f"{mirror.rstrip('/')}/{release}/packages/{arch}"


def extract_identifiers(document: str, extension: str = DEFAULT_EXTENSION) -> list[str]:
    """
    Extract quoted archive names from a directory listing.

    Args:
        document: Listing body (HTML or plain text)
        extension: Archive extension to strip

    Returns:
        Identifiers in document order
    """
    pattern = re.compile(r"""['"]([^'"]*?)\.%s['"]""" % re.escape(extension))
    return pattern.findall(document)


def fetch_package_index(
    url: str,
    session: requests.Session | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    extension: str = DEFAULT_EXTENSION,
) -> list[str]:
    """
    Fetch the mirror's package directory and list the identifiers in it.

    Raises:
        SourceError: If the index cannot be fetched
    """
    logger.info(f"Fetching package index {url}")
    get = session.get if session is not None else requests.get
    try:
        resp = get(url, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise SourceError(f"Failed to fetch package index: {e}") from e

    identifiers = extract_identifiers(resp.text, extension)
    logger.info(f"{len(identifiers)} remote packages")
    return identifiers


def parse_pkg_info(output: str) -> list[str]:
    """
    Parse pkg_info output into identifiers.

    Each line starts with an identifier followed by its description.
    Listing stops at the first line without a description.

    Example:
        "bash-5.2.15 GNU Bourne Again Shell" -> ["bash-5.2.15"]
    """
    identifiers = []
    for line in output.splitlines():
        fields = line.split()
        if len(fields) < 2:
            break
        identifiers.append(fields[0])
    return identifiers


def installed_identifiers() -> list[str]:
    """
    List installed packages with pkg_info.

    Raises:
        SourceError: If pkg_info cannot be run
    """
    identifiers = parse_pkg_info(_run("pkg_info"))
    logger.info(f"{len(identifiers)} installed packages")
    return identifiers
