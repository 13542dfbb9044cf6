"""
Package Utilities

Provides utilities for parsing and comparing binary package identifiers.
Handles the name-version[-flavour] identifier format and the version
ranking rules of the package tools (scheme, dotted version, suffix,
packaging revision).
"""

import logging
import re
from dataclasses import dataclass
from functools import total_ordering
from itertools import zip_longest
from typing import Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Ranked lowest to highest; "" is a stable release.
SUFFIXES = ("alpha", "beta", "rc", "pre", "", "pl")

KEY_SEPARATOR = "--"

_TAIL_PATTERN = re.compile(
    r"""
    ^(?P<rest>.*?)
    (?:(?P<suffix>alpha|beta|rc|pre|pl)(?P<suffix_version>\d*))?
    (?:p(?P<revision>\d+))?
    (?:[vV](?P<scheme>\d+))?
    $
    """,
    re.VERBOSE | re.ASCII,
)

_COMPONENT_PATTERN = re.compile(r"^(\d*)(.*)$", re.ASCII | re.DOTALL)


class ParseError(ValueError):
    """Raised when an identifier or version string cannot be parsed."""

    def __init__(self, identifier: str, reason: str):
        super().__init__(f"{identifier!r}: {reason}")
        self.identifier = identifier
        self.reason = reason


class ComponentMismatchError(ValueError):
    """Raised when strictly comparing versions of different lengths."""


@total_ordering
@dataclass(frozen=True)
class PackageVersion:
    """
    Represents a parsed package version.

    Attributes:
        string: Original version string
        components: Dot-separated components with tokens stripped from the tail
        suffix: Release suffix (alpha, beta, rc, pre, pl or "")
        suffix_version: Counter attached to the suffix (default: 0)
        revision: Packaging revision from pN (default: -1)
        scheme: Version scheme from vN (default: -1)
    """

    string: str
    components: Tuple[str, ...]
    suffix: str = ""
    suffix_version: int = 0
    revision: int = -1
    scheme: int = -1

    def __str__(self) -> str:
        return self.string

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, PackageVersion):
            return NotImplemented
        return compare_versions(self, other) < 0


@dataclass(frozen=True)
class Package:
    """
    A single package archive.

    Attributes:
        identifier: Raw identifier, used as the cache filename stem
        name: Package base name (may contain hyphens)
        version: Parsed version
        flavour: Build variant tag (may be empty)
    """

    identifier: str
    name: str
    version: PackageVersion
    flavour: str = ""

    @property
    def key(self) -> str:
        """Return the identity key shared by all versions of this package."""
        return f"{self.name}{KEY_SEPARATOR}{self.flavour}"

    def filename(self, extension: str = "tgz") -> str:
        """Return the archive filename."""
        return f"{self.identifier}.{extension}"

    def __str__(self) -> str:
        return self.identifier


@dataclass
class ParseResult:
    """Outcome of parsing one identifier: a package or an error."""

    identifier: str
    package: Optional[Package] = None
    error: Optional[ParseError] = None

    @property
    def ok(self) -> bool:
        return self.package is not None


def _to_int(identifier: str, token: str, what: str) -> int:
    try:
        return int(token)
    except ValueError:
        raise ParseError(identifier, f"invalid {what} {token!r}") from None


def parse_version(version: str) -> PackageVersion:
    """
    Parse a version field into a PackageVersion.

    Only the tail (the text after the last dot) carries tokens. They are
    consumed in the order suffix, revision, scheme, and whatever is left
    becomes the final component.

    Examples:
        "1.2.3p4"   -> components ("1", "2", "3"), revision 4
        "2.0rc1"    -> components ("2", "0"), suffix "rc", suffix_version 1
        "1.0p2v1"   -> components ("1", "0"), revision 2, scheme 1

    Args:
        version: Version field of an identifier

    Returns:
        PackageVersion

    Raises:
        ParseError: If the version is empty or a token is not numeric
    """
    if not version:
        raise ParseError(version, "empty version")

    *head, tail = version.split(".")
    match = _TAIL_PATTERN.match(tail)
    if match is None:
        raise ParseError(version, f"unrecognised version tail {tail!r}")

    suffix = match.group("suffix") or ""
    suffix_version = 0
    if match.group("suffix_version"):
        suffix_version = _to_int(
            version, match.group("suffix_version"), "suffix version"
        )

    revision = -1
    if match.group("revision") is not None:
        revision = _to_int(version, match.group("revision"), "revision")

    scheme = -1
    if match.group("scheme") is not None:
        scheme = _to_int(version, match.group("scheme"), "scheme")

    return PackageVersion(
        string=version,
        components=tuple(head) + (match.group("rest"),),
        suffix=suffix,
        suffix_version=suffix_version,
        revision=revision,
        scheme=scheme,
    )


def parse_package(identifier: str) -> Package:
    """
    Parse a package identifier into a Package.

    The version is the first hyphen-separated field starting with a digit.
    Fields before it form the name, fields after it the flavour.

    Examples:
        "bash-5.1.8"              -> name "bash", version "5.1.8"
        "py3-lxml-4.9.2p0"        -> name "py3-lxml", version "4.9.2p0"
        "vim-9.0.2p0-gtk3-perl"   -> name "vim", flavour "gtk3-perl"

    Raises:
        ParseError: If no field starts with a digit or the name is empty
    """
    fields = identifier.split("-")
    for idx, field in enumerate(fields):
        if field[:1].isdigit() and field[:1].isascii():
            break
    else:
        raise ParseError(identifier, "no version field")

    if idx == 0:
        raise ParseError(identifier, "missing package name")

    try:
        version = parse_version(fields[idx])
    except ParseError as e:
        raise ParseError(identifier, e.reason) from None

    return Package(
        identifier=identifier,
        name="-".join(fields[:idx]),
        version=version,
        flavour="-".join(fields[idx + 1:]),
    )


def try_parse_package(identifier: str) -> ParseResult:
    """Parse an identifier without raising."""
    try:
        return ParseResult(identifier, package=parse_package(identifier))
    except ParseError as e:
        return ParseResult(identifier, error=e)


def parse_packages(
    identifiers: Iterable[str], strict: bool = False
) -> List[Package]:
    """
    Parse many identifiers.

    Args:
        identifiers: Raw identifiers
        strict: Raise on the first malformed identifier instead of skipping it

    Returns:
        Parsed packages, in input order
    """
    packages = []
    for identifier in identifiers:
        result = try_parse_package(identifier)
        if result.ok:
            packages.append(result.package)
        elif strict:
            raise result.error
        else:
            logger.warning(f"Skipping malformed package {result.error}")
    return packages


def split_component(component: str) -> Tuple[int, str]:
    """
    Split a version component into its number and trailing letters.

    Examples:
        "12"  -> (12, "")
        "3a"  -> (3, "a")
        ""    -> (0, "")
    """
    numeric, letters = _COMPONENT_PATTERN.match(component).groups()
    return (int(numeric) if numeric else 0), letters


def suffix_rank(suffix: str) -> int:
    """Return the rank of a release suffix."""
    try:
        return SUFFIXES.index(suffix)
    except ValueError:
        raise ValueError(f"Unknown version suffix: {suffix!r}") from None


def _cmp(a, b) -> int:
    return (a > b) - (a < b)


def _compare_components(
    installed: Tuple[str, ...], remote: Tuple[str, ...], strict: bool
) -> int:
    if strict and len(installed) != len(remote):
        raise ComponentMismatchError(
            f"Cannot compare {'.'.join(installed)!r} "
            f"with {'.'.join(remote)!r}: component counts differ"
        )

    # Missing trailing components count as "0"
    for i_part, r_part in zip_longest(installed, remote, fillvalue="0"):
        i_num, i_letters = split_component(i_part)
        r_num, r_letters = split_component(r_part)

        result = _cmp(i_num, r_num) or _cmp(i_letters, r_letters)
        if result:
            return result

    return 0


def compare_versions(
    installed: PackageVersion, remote: PackageVersion, strict: bool = False
) -> int:
    """
    Order two versions.

    Fields are checked in order of priority: scheme, dotted components,
    suffix rank, suffix version, revision. The first field that differs
    decides. Used for sorting and for picking the newest of duplicate
    remote packages; upgrade decisions go through is_newer.

    Args:
        installed: Installed package version
        remote: Remote package version
        strict: Raise ComponentMismatchError on differing component counts

    Returns:
        -1 if installed < remote (update available)
         0 if installed == remote
         1 if installed > remote
    """
    return (
        _cmp(installed.scheme, remote.scheme)
        or _compare_components(installed.components, remote.components, strict)
        or _cmp(suffix_rank(installed.suffix), suffix_rank(remote.suffix))
        or _cmp(installed.suffix_version, remote.suffix_version)
        or _cmp(installed.revision, remote.revision)
    )


def is_newer(
    installed: PackageVersion, remote: PackageVersion, strict: bool = False
) -> bool:
    """
    Check if the remote version is strictly newer than the installed one.

    Each field only ever declares the remote newer; a field where the
    remote is equal or lower moves on to the next one. Fields are checked
    in order: scheme, each dotted component (number, then letters), suffix
    rank, then suffix version while ranks tie, then revision while the
    suffix is tied too.

    Args:
        installed: Installed package version
        remote: Remote package version
        strict: Raise ComponentMismatchError on differing component counts

    Returns:
        True if remote should replace installed
    """
    if remote.scheme > installed.scheme:
        return True

    i_parts, r_parts = installed.components, remote.components
    if strict and len(i_parts) != len(r_parts):
        raise ComponentMismatchError(
            f"Cannot compare {'.'.join(i_parts)!r} "
            f"with {'.'.join(r_parts)!r}: component counts differ"
        )

    # Missing trailing components count as "0"
    for i_part, r_part in zip_longest(i_parts, r_parts, fillvalue="0"):
        i_num, i_letters = split_component(i_part)
        r_num, r_letters = split_component(r_part)

        if r_num > i_num:
            return True
        if r_num == i_num and r_letters > i_letters:
            return True

    i_rank, r_rank = suffix_rank(installed.suffix), suffix_rank(remote.suffix)
    if r_rank > i_rank:
        return True
    if r_rank != i_rank:
        return False

    if remote.suffix_version > installed.suffix_version:
        return True
    if remote.suffix_version != installed.suffix_version:
        return False

    return remote.revision > installed.revision


def format_upgrade(installed: Package, available: Package) -> str:
    """
    Format an upgrade as "name old -> new".

    Args:
        installed: Installed package
        available: Newer remote package

    Returns:
        Formatted string
    """
    return f"{installed.name} {installed.version} -> {available.version}"
