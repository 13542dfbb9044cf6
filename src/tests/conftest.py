"""
Pytest configuration and fixtures for pkg-upgrade tests.
"""

import threading
from pathlib import Path
from tempfile import TemporaryDirectory

import pytest
import requests

from pkg_upgrade.pkg_utils import parse_package


@pytest.fixture
def temp_dir():
    """Provide a temporary directory for tests."""
    with TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def installed_identifiers():
    """Provide identifiers as listed by pkg_info."""
    return [
        "bash-5.2.15",
        "curl-8.4.0",
        "python-3.10.13p0",
        "vim-9.0.2p0-gtk3",
        "local-tool-1.0",
    ]


@pytest.fixture
def remote_identifiers():
    """Provide identifiers as listed on the mirror."""
    return [
        "bash-5.2.21",  # Newer than installed
        "curl-8.4.0",  # Same as installed
        "python-3.10.13p1",  # New packaging revision
        "vim-9.0.2p0-gtk3",  # Same as installed
        "vim-9.0.2p1",  # Different flavour
        "zsh-5.9",  # Not installed
    ]


@pytest.fixture
def installed_packages(installed_identifiers):
    return [parse_package(s) for s in installed_identifiers]


@pytest.fixture
def remote_packages(remote_identifiers):
    return [parse_package(s) for s in remote_identifiers]


@pytest.fixture
def sample_index_html(remote_identifiers):
    """Provide a mirror directory listing."""
    rows = "\n".join(
        f'<a href="{s}.tgz">{s}.tgz</a>  15-Jan-2024 10:00  1M'
        for s in remote_identifiers
    )
    return (
        "<html><head><title>Index of /pub/OpenBSD/7.4/packages/amd64/</title>"
        "</head><body><pre>\n"
        '<a href="../">../</a>\n'
        '<a href="SHA256.sig">SHA256.sig</a>\n'
        f"{rows}\n"
        "</pre></body></html>"
    )


class FakeResponse:
    """Minimal streaming response."""

    def __init__(self, url, body=b"", status_code=200, error=None):
        self.url = url
        self.body = body
        self.status_code = status_code
        self.error = error
        self.text = body.decode() if isinstance(body, bytes) else body

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error for url: {self.url}")

    def iter_content(self, chunk_size=1):
        data = self.body
        for i in range(0, len(data), chunk_size):
            if self.error is not None and i > 0:
                raise self.error
            yield data[i:i + chunk_size]


class FakeSession:
    """
    Stand-in for requests.Session.

    Serves bodies from a URL -> bytes mapping. URLs listed in ``failures``
    raise the mapped exception instead.
    """

    def __init__(self, files=None, failures=None, statuses=None):
        self.files = files or {}
        self.failures = failures or {}
        self.statuses = statuses or {}
        self.requests = []
        self._lock = threading.Lock()

    def get(self, url, stream=False, timeout=None):
        with self._lock:
            self.requests.append(url)
        if url in self.failures:
            raise self.failures[url]
        if url in self.statuses:
            return FakeResponse(url, b"not found", status_code=self.statuses[url])
        if url not in self.files:
            return FakeResponse(url, b"not found", status_code=404)
        return FakeResponse(url, self.files[url])


@pytest.fixture
def fake_session():
    """Provide a factory for fake HTTP sessions."""
    return FakeSession
