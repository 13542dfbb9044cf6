"""
Package Downloader

Downloads package archives into a local cache with a fixed pool of
worker threads. A dispatcher thread feeds every candidate into a shared
queue; each worker takes packages off the queue until it is closed.
"""

from __future__ import annotations

import logging
import os
import queue
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable

import requests

from .config import UpgradeConfig
from .pkg_utils import Package

logger = logging.getLogger(__name__)

_CLOSED = object()


class DownloadStatus(str, Enum):
    """Outcome of one package download."""

    DOWNLOADED = "downloaded"
    CACHED = "cached"
    FAILED = "failed"
    CANCELLED = "cancelled"


class DownloadCancelled(Exception):
    """Raised inside a transfer when the run is cancelled."""


@dataclass
class DownloadOutcome:
    """Result of downloading a single package."""

    identifier: str
    path: Path
    status: DownloadStatus
    error: str | None = None
    bytes_written: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "identifier": self.identifier,
            "path": str(self.path),
            "status": self.status.value,
            "error": self.error,
            "bytes_written": self.bytes_written,
        }


@dataclass
class DownloadReport:
    """Outcomes of a download run."""

    outcomes: list[DownloadOutcome] = field(default_factory=list)

    def _with_status(self, status: DownloadStatus) -> list[DownloadOutcome]:
        return [o for o in self.outcomes if o.status is status]

    @property
    def downloaded(self) -> list[DownloadOutcome]:
        return self._with_status(DownloadStatus.DOWNLOADED)

    @property
    def cached(self) -> list[DownloadOutcome]:
        return self._with_status(DownloadStatus.CACHED)

    @property
    def failed(self) -> list[DownloadOutcome]:
        return self._with_status(DownloadStatus.FAILED)

    @property
    def cancelled(self) -> list[DownloadOutcome]:
        return self._with_status(DownloadStatus.CANCELLED)

    @property
    def ok(self) -> bool:
        """Return True if no download failed or was cancelled."""
        return not self.failed and not self.cancelled

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total": len(self.outcomes),
            "downloaded": len(self.downloaded),
            "cached": len(self.cached),
            "failed": len(self.failed),
            "cancelled": len(self.cancelled),
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


def cache_path(cache_dir: str | Path, package: Package, extension: str = "tgz") -> Path:
    """Return the cache location of a package archive."""
    return Path(cache_dir) / package.filename(extension)


def package_url(base_url: str, package: Package, extension: str = "tgz") -> str:
    """Return the download URL of a package archive."""
    return f"{base_url.rstrip('/')}/{package.filename(extension)}"


class DownloadScheduler:
    """
    Downloads packages into the cache with bounded concurrency.

    At most ``config.workers`` transfers are in flight at once. Failures
    are recorded per package and never stop the other workers.
    """

    def __init__(
        self,
        config: UpgradeConfig | None = None,
        session: requests.Session | None = None,
        cancel_event: threading.Event | None = None,
    ):
        """
        Initialize the scheduler.

        Args:
            config: Run configuration (worker count, cache directory, ...)
            session: HTTP session shared by the workers
            cancel_event: Event that stops the run when set
        """
        self.config = config or UpgradeConfig()
        self.session = session or requests.Session()
        self.cancel_event = cancel_event or threading.Event()
        self._lock = threading.Lock()

    def cancel(self) -> None:
        """Stop dispatching and abort in-flight transfers."""
        self.cancel_event.set()

    def run(self, base_url: str, candidates: Iterable[Package]) -> DownloadReport:
        """
        Download every candidate that is not already cached.

        Returns only after all candidates were handled and every worker
        has exited.

        Args:
            base_url: Directory URL the archives are fetched from
            candidates: Packages to download

        Returns:
            DownloadReport with one outcome per candidate

        Raises:
            OSError: If the cache directory cannot be created
        """
        candidates = list(candidates)
        cache_dir = self.config.cache_dir
        cache_dir.mkdir(mode=0o700, parents=True, exist_ok=True)

        report = DownloadReport()
        work: queue.Queue = queue.Queue()
        workers = self.config.workers

        def dispatch() -> None:
            for pkg in candidates:
                if self.cancel_event.is_set():
                    self._record(report, self._cancelled(pkg))
                    continue
                logger.debug(f"Queueing {pkg.identifier}")
                work.put(pkg)
            for _ in range(workers):
                work.put(_CLOSED)

        def worker() -> None:
            logger.debug("Starting download worker")
            while True:
                pkg = work.get()
                if pkg is _CLOSED:
                    break
                if self.cancel_event.is_set():
                    outcome = self._cancelled(pkg)
                else:
                    outcome = self.download_package(base_url, pkg)
                self._record(report, outcome)
            logger.debug("Stopping download worker")

        threads = [threading.Thread(target=dispatch, name="pkg-dispatch")]
        threads.extend(
            threading.Thread(target=worker, name=f"pkg-worker-{i}")
            for i in range(workers)
        )

        logger.info(
            f"Downloading {len(candidates)} packages with {workers} workers"
        )
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        # Outcomes arrive in completion order
        order = {pkg.identifier: i for i, pkg in enumerate(candidates)}
        report.outcomes.sort(key=lambda o: order.get(o.identifier, len(order)))

        logger.info(
            f"Downloads finished: {len(report.downloaded)} downloaded, "
            f"{len(report.cached)} cached, {len(report.failed)} failed"
        )
        return report

    def _record(self, report: DownloadReport, outcome: DownloadOutcome) -> None:
        with self._lock:
            report.outcomes.append(outcome)

    def _cancelled(self, pkg: Package) -> DownloadOutcome:
        return DownloadOutcome(
            identifier=pkg.identifier,
            path=cache_path(self.config.cache_dir, pkg, self.config.extension),
            status=DownloadStatus.CANCELLED,
        )

    def download_package(self, base_url: str, pkg: Package) -> DownloadOutcome:
        """
        Download a single package unless it is already cached.

        Args:
            base_url: Directory URL the archive is fetched from
            pkg: Package to download

        Returns:
            DownloadOutcome for the package
        """
        extension = self.config.extension
        target = cache_path(self.config.cache_dir, pkg, extension)

        if target.exists():
            logger.info(f"{pkg.identifier} already downloaded, skipping")
            return DownloadOutcome(pkg.identifier, target, DownloadStatus.CACHED)

        url = package_url(base_url, pkg, extension)
        partial = target.with_name(target.name + ".part")

        logger.info(f"Downloading {pkg.identifier}")
        try:
            written = self._fetch(url, partial)
            os.replace(partial, target)
        except DownloadCancelled:
            _remove(partial)
            logger.warning(f"Download of {pkg.identifier} cancelled")
            return DownloadOutcome(pkg.identifier, target, DownloadStatus.CANCELLED)
        except (requests.RequestException, OSError) as e:
            _remove(partial)
            logger.error(f"Error downloading {pkg.identifier}: {e}")
            return DownloadOutcome(
                pkg.identifier, target, DownloadStatus.FAILED, error=str(e)
            )

        logger.info(f"Finished downloading {pkg.identifier} ({written} bytes)")
        return DownloadOutcome(
            pkg.identifier, target, DownloadStatus.DOWNLOADED, bytes_written=written
        )

    def _fetch(self, url: str, destination: Path) -> int:
        written = 0
        with self.session.get(url, stream=True, timeout=self.config.timeout) as resp:
            resp.raise_for_status()
            with open(destination, "wb") as f:
                for chunk in resp.iter_content(chunk_size=self.config.chunk_size):
                    if self.cancel_event.is_set():
                        raise DownloadCancelled(url)
                    if chunk:
                        f.write(chunk)
                        written += len(chunk)
        return written


def _remove(path: Path) -> None:
    path.unlink(missing_ok=True)


def download_packages(
    base_url: str,
    cache_dir: str | Path,
    workers: int,
    candidates: Iterable[Package],
    session: requests.Session | None = None,
) -> DownloadReport:
    """
    Download candidates into cache_dir using the given number of workers.

    Args:
        base_url: Directory URL the archives are fetched from
        cache_dir: Cache directory (created if missing)
        workers: Number of concurrent workers
        candidates: Packages to download
        session: Optional HTTP session

    Returns:
        DownloadReport
    """
    config = UpgradeConfig(workers=workers, cache_dir=Path(cache_dir))
    if session is None:
        with requests.Session() as http:
            return DownloadScheduler(config, session=http).run(base_url, candidates)
    return DownloadScheduler(config, session=session).run(base_url, candidates)
