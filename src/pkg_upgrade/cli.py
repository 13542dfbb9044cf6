"""
Command line interface for pkg-upgrade.

Usage:
    pkg-upgrade [--config pkg-upgrade.yaml] [--workers 5] [--cache-dir /tmp/pkg_zone] [--yes]
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable

import requests

from .calculator import PackageUpgrade, UpgradeCalculator
from .config import ConfigError, UpgradeConfig, apply_overrides, load_config
from .downloader import DownloadScheduler
from .pkg_utils import ComponentMismatchError, ParseError, parse_packages
from .sources import (
    SourceError,
    fetch_package_index,
    get_arch,
    get_mirror,
    get_release,
    installed_identifiers,
    package_index_url,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_PARSE_ERROR = 2
EXIT_INTERRUPTED = 130

BOLD = "\u001b[1m"
RESET = "\u001b[0m"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pkg-upgrade",
        description="Download newer versions of installed packages from the mirror",
    )
    parser.add_argument('--config', '-c', type=Path,
                        help='Path to a YAML configuration file')
    parser.add_argument('--workers', '-w', type=int,
                        help='Number of concurrent downloads (default: 5)')
    parser.add_argument('--cache-dir', type=Path,
                        help='Package cache directory (default: /tmp/pkg_zone)')
    parser.add_argument('--mirror', help='Mirror URL (default: read /etc/installurl)')
    parser.add_argument('--release', help='OS release (default: uname -r)')
    parser.add_argument('--arch', help='Architecture (default: uname -p)')
    parser.add_argument('--yes', '-y', dest='assume_yes', action='store_true', default=None,
                        help='Do not ask for confirmation')
    parser.add_argument('--strict', action='store_true', default=None,
                        help='Abort on malformed package names and on versions with differing '
                             'component counts instead of skipping or zero-padding them')
    parser.add_argument('--dry-run', '-n', action='store_true',
                        help='Only list upgrades, do not download')
    parser.add_argument('--json', action='store_true',
                        help='Print the upgrade list as JSON')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable debug logging')
    return parser


def resolve_config(args: argparse.Namespace) -> UpgradeConfig:
    """Merge the configuration file with command line flags."""
    config = load_config(args.config)
    return apply_overrides(
        config,
        workers=args.workers,
        cache_dir=args.cache_dir,
        mirror=args.mirror,
        release=args.release,
        arch=args.arch,
        assume_yes=args.assume_yes,
        strict=args.strict,
    )


def resolve_index_url(config: UpgradeConfig) -> str:
    """Build the package directory URL, probing the system where needed."""
    mirror = config.mirror or get_mirror(config.installurl_path)
    release = config.release or get_release()
    arch = config.arch or get_arch()
    return package_index_url(mirror, release, arch)


def format_upgrade_table(upgrades: list[PackageUpgrade], color: bool = True) -> str:
    """
    Format upgrades as aligned "name  old -> new" lines.

    Args:
        upgrades: Upgrades to list
        color: Print package names in bold

    Returns:
        Table text
    """
    if not upgrades:
        return ""
    width = max(len(u.name) for u in upgrades)
    bold, reset = (BOLD, RESET) if color else ("", "")
    lines = []
    for u in upgrades:
        spaces = " " * (width - len(u.name) + 2)
        lines.append(
            f"{bold}{u.name}{reset}{spaces}{u.installed_version} -> {u.available_version}"
        )
    return "\n".join(lines)


def confirm_upgrade(
    upgrades: list[PackageUpgrade],
    input_fn: Callable[[str], str] = input,
    out=None,
) -> bool:
    """
    Show the upgrade list and ask for confirmation.

    Returns:
        False if the answer starts with n or N
    """
    out = out or sys.stdout
    s = "" if len(upgrades) == 1 else "s"
    message = f"{len(upgrades)} package{s} will be upgraded, proceed?"
    print(file=out)
    print(message, file=out)
    print("=" * len(message), end="\n\n", file=out)
    print(format_upgrade_table(upgrades, color=out.isatty()), file=out)

    try:
        answer = input_fn("\nContinue? [Y/n]: ")
    except EOFError:
        return False
    return not answer.strip().lower().startswith("n")


def run(config: UpgradeConfig, dry_run: bool = False, as_json: bool = False,
        session: requests.Session | None = None,
        input_fn: Callable[[str], str] = input) -> int:
    """
    Run a full upgrade check and download.

    Returns:
        Process exit code
    """
    if session is None:
        with requests.Session() as session:
            return run(config, dry_run=dry_run, as_json=as_json,
                       session=session, input_fn=input_fn)

    index_url = resolve_index_url(config)
    logger.info(f"Using package directory {index_url}")

    remote = parse_packages(
        fetch_package_index(index_url, session=session,
                            timeout=config.timeout, extension=config.extension),
        strict=config.strict,
    )
    installed = parse_packages(installed_identifiers(), strict=config.strict)

    calc = UpgradeCalculator(installed, remote, index_url=index_url, strict=config.strict)
    result = calc.compute_upgrades()
    for error in result.errors:
        logger.warning(error)

    if as_json:
        print(result.to_json())

    if not result.upgrades:
        if not as_json:
            print("All packages are up to date")
        return EXIT_OK

    if dry_run:
        if not as_json:
            print(format_upgrade_table(result.upgrades, color=sys.stdout.isatty()))
        return EXIT_OK

    if not config.assume_yes and not confirm_upgrade(result.upgrades, input_fn=input_fn):
        print("Aborted")
        return EXIT_OK

    scheduler = DownloadScheduler(config, session=session)
    try:
        report = scheduler.run(index_url, result.candidates)
    except KeyboardInterrupt:
        scheduler.cancel()
        raise

    for outcome in report.failed:
        print(f"Failed: {outcome.identifier}: {outcome.error}", file=sys.stderr)
    print(
        f"{len(report.downloaded)} downloaded, {len(report.cached)} cached, "
        f"{len(report.failed)} failed in {config.cache_dir}"
    )
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = resolve_config(args)
        return run(config, dry_run=args.dry_run, as_json=args.json)
    except ConfigError as e:
        print(f"Config Error: {e}", file=sys.stderr)
        return EXIT_FATAL
    except SourceError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FATAL
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FATAL
    except (ParseError, ComponentMismatchError) as e:
        print(f"Parse Error: {e}", file=sys.stderr)
        return EXIT_PARSE_ERROR
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return EXIT_INTERRUPTED


if __name__ == '__main__':
    sys.exit(main())
