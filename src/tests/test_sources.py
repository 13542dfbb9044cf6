"""
Tests for mirror discovery and package listing.
"""

import subprocess
from unittest.mock import MagicMock, patch

import pytest
import requests

from pkg_upgrade.sources import (
    SourceError,
    extract_identifiers,
    fetch_package_index,
    get_arch,
    get_mirror,
    get_release,
    installed_identifiers,
    package_index_url,
    parse_pkg_info,
)

PKG_INFO_OUTPUT = """\
bash-5.2.15         GNU Bourne Again Shell
curl-8.4.0          transfer files with FTP, HTTP, HTTPS, etc.
vim-9.0.2p0-gtk3    vi clone, many additional features
quirks-6.160        exceptions to pkg_add rules and cache

"""


class TestMirror:
    """Tests for mirror discovery."""

    def test_get_mirror(self, temp_dir):
        path = temp_dir / "installurl"
        path.write_text("https://cdn.openbsd.org/pub/OpenBSD/\n")
        assert get_mirror(path) == "https://cdn.openbsd.org/pub/OpenBSD"

    def test_get_mirror_missing(self, temp_dir):
        with pytest.raises(SourceError):
            get_mirror(temp_dir / "installurl")

    def test_get_mirror_empty(self, temp_dir):
        path = temp_dir / "installurl"
        path.write_text("\n")
        with pytest.raises(SourceError):
            get_mirror(path)

    def test_package_index_url(self):
        url = package_index_url("https://cdn.openbsd.org/pub/OpenBSD/", "7.4", "amd64")
        assert url == "https://cdn.openbsd.org/pub/OpenBSD/7.4/packages/amd64"

    @patch("pkg_upgrade.sources.subprocess.run")
    def test_release_and_arch(self, mock_run):
        mock_run.side_effect = [
            MagicMock(stdout="7.4\n"),
            MagicMock(stdout="amd64\n"),
        ]
        assert get_release() == "7.4"
        assert get_arch() == "amd64"
        assert mock_run.call_args_list[0].args[0] == ("uname", "-r")
        assert mock_run.call_args_list[1].args[0] == ("uname", "-p")

    @patch("pkg_upgrade.sources.subprocess.run")
    def test_command_failure(self, mock_run):
        mock_run.side_effect = subprocess.CalledProcessError(1, ["uname", "-r"])
        with pytest.raises(SourceError):
            get_release()


class TestPackageIndex:
    """Tests for the remote package listing."""

    def test_extract_identifiers(self, sample_index_html, remote_identifiers):
        assert extract_identifiers(sample_index_html) == remote_identifiers

    def test_extract_single_quotes(self):
        assert extract_identifiers("<a href='zsh-5.9.tgz'>") == ["zsh-5.9"]

    def test_extract_other_extension(self):
        document = '"foo-1.0.tgz" "bar-2.0.tar.xz"'
        assert extract_identifiers(document, "tar.xz") == ["bar-2.0"]

    def test_fetch_package_index(self, fake_session, sample_index_html, remote_identifiers):
        url = "https://mirror.example/7.4/packages/amd64"
        session = fake_session({url: sample_index_html.encode()})
        assert fetch_package_index(url, session=session) == remote_identifiers

    def test_fetch_package_index_error(self, fake_session):
        url = "https://mirror.example/7.4/packages/amd64"
        session = fake_session(failures={url: requests.ConnectionError("refused")})
        with pytest.raises(SourceError):
            fetch_package_index(url, session=session)

    def test_fetch_package_index_not_found(self, fake_session):
        with pytest.raises(SourceError):
            fetch_package_index("https://mirror.example/missing", session=fake_session())

    @patch("pkg_upgrade.sources.requests.get")
    def test_fetch_package_index_without_session(self, mock_get, sample_index_html,
                                                 remote_identifiers):
        mock_get.return_value = MagicMock(text=sample_index_html)
        url = "https://mirror.example/7.4/packages/amd64"

        assert fetch_package_index(url, timeout=5) == remote_identifiers
        mock_get.assert_called_once_with(url, timeout=5)


class TestInstalledPackages:
    """Tests for the installed package listing."""

    def test_parse_pkg_info(self):
        assert parse_pkg_info(PKG_INFO_OUTPUT) == [
            "bash-5.2.15",
            "curl-8.4.0",
            "vim-9.0.2p0-gtk3",
            "quirks-6.160",
        ]

    def test_parse_pkg_info_stops_at_single_field(self):
        output = "bash-5.2.15 shell\nterminator\ncurl-8.4.0 transfer\n"
        assert parse_pkg_info(output) == ["bash-5.2.15"]

    @patch("pkg_upgrade.sources.subprocess.run")
    def test_installed_identifiers(self, mock_run):
        mock_run.return_value = MagicMock(stdout=PKG_INFO_OUTPUT)
        assert len(installed_identifiers()) == 4

    @patch("pkg_upgrade.sources.subprocess.run")
    def test_pkg_info_missing(self, mock_run):
        mock_run.side_effect = FileNotFoundError("pkg_info")
        with pytest.raises(SourceError):
            installed_identifiers()
