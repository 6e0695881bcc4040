"""Tests for the version registry, platform mapping and release lookups."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from npl_lsm.binary.versions import VersionRegistry, binary_name_for_platform, download_base_url
from npl_lsm.exceptions import UnsupportedPlatformError


class TestBinaryNameForPlatform:
    """Tests for OS/architecture to asset name mapping."""

    @pytest.mark.parametrize(
        ("system", "machine", "expected"),
        [
            ("Windows", "AMD64", "language-server-windows-x86_64.exe"),
            ("Darwin", "x86_64", "language-server-macos-x86_64"),
            ("Darwin", "arm64", "language-server-macos-aarch64"),
            ("Linux", "x86_64", "language-server-linux-x86_64"),
            ("Linux", "aarch64", "language-server-linux-aarch64"),
        ],
    )
    def test_supported_platforms(self, system: str, machine: str, expected: str) -> None:
        """Given a supported pair, returns the published asset name."""
        # Act & Assert
        assert binary_name_for_platform(system, machine) == expected

    @pytest.mark.parametrize(
        ("system", "machine"),
        [("FreeBSD", "x86_64"), ("Linux", "ppc64le"), ("Windows", "arm64")],
    )
    def test_unsupported_platform_names_os_and_arch(self, system: str, machine: str) -> None:
        """Given an unsupported pair, error message names both values."""
        # Act
        with pytest.raises(UnsupportedPlatformError) as exc_info:
            binary_name_for_platform(system, machine)

        # Assert
        assert system in str(exc_info.value)
        assert machine in str(exc_info.value)
        assert exc_info.value.platform_pair == f"{system}/{machine}"


class TestDownloadBaseUrl:
    def test_concrete_version(self) -> None:
        assert (
            download_base_url("acme/server", "2024.1.3")
            == "https://github.com/acme/server/releases/download/2024.1.3"
        )

    def test_latest_alias(self) -> None:
        expected = "https://github.com/acme/server/releases/latest/download"
        assert download_base_url("acme/server", "latest") == expected


class TestRegistryPersistence:
    """Tests for reading and writing server-versions.json."""

    def test_missing_file_loads_empty(self, registry: VersionRegistry) -> None:
        """Given no registry file, load returns no records."""
        # Act & Assert
        assert registry.load() == []

    def test_add_record_appends_with_camel_case_keys(self, registry: VersionRegistry) -> None:
        """Given a new version, one record is appended using file-format keys."""
        # Act
        registry.add_version_record("1.0.0", release_date="2024-01-01T00:00:00Z")

        # Assert
        data = json.loads(registry.versions_file.read_text())
        assert data == [
            {
                "version": "1.0.0",
                "installedPath": str(registry.server_path("1.0.0")),
                "releaseDate": "2024-01-01T00:00:00Z",
            }
        ]

    def test_add_record_updates_existing_version(self, registry: VersionRegistry, tmp_path: Path) -> None:
        """Given an existing version, the record is updated rather than duplicated."""
        # Arrange
        registry.add_version_record("1.0.0", release_date="2024-01-01T00:00:00Z")
        new_path = tmp_path / "elsewhere"

        # Act
        registry.add_version_record("1.0.0", installed_path=new_path)

        # Assert
        records = registry.load()
        assert len(records) == 1
        assert records[0].installed_path == str(new_path)
        assert records[0].release_date == "2024-01-01T00:00:00Z"

    def test_new_record_without_date_is_stamped_now(self, registry: VersionRegistry) -> None:
        """Given no release date, a new record gets the current UTC time."""
        # Arrange
        before = datetime.now(timezone.utc)

        # Act
        record = registry.add_version_record("1.0.0")

        # Assert
        stamped = datetime.fromisoformat(record.release_date.replace("Z", "+00:00"))
        assert stamped >= before.replace(microsecond=0)
        assert registry.load()[0].release_date == record.release_date

    def test_corrupt_file_loads_empty(self, registry: VersionRegistry) -> None:
        """Given unparsable JSON, load logs and returns no records."""
        # Arrange
        registry.bin_dir.mkdir(parents=True)
        registry.versions_file.write_text("{not json")

        # Act & Assert
        assert registry.load() == []

    def test_duplicate_versions_collapse(self, registry: VersionRegistry) -> None:
        """Given a hand-edited file with duplicates, last entry wins."""
        # Arrange
        registry.bin_dir.mkdir(parents=True)
        registry.versions_file.write_text(
            json.dumps(
                [
                    {"version": "1.0.0", "installedPath": "/a"},
                    {"version": "1.0.0", "installedPath": "/b"},
                ]
            )
        )

        # Act
        records = registry.load()

        # Assert
        assert [(r.version, r.installed_path) for r in records] == [("1.0.0", "/b")]

    def test_reset_forgets_everything(self, registry: VersionRegistry, install_binary) -> None:
        # Arrange
        install_binary("1.0.0")

        # Act
        registry.reset()

        # Assert
        assert registry.load() == []


class TestInstalledLookup:
    """Tests for the file system being the ground truth."""

    def test_record_without_file_is_not_installed(self, registry: VersionRegistry, install_binary) -> None:
        """Given a record whose binary was deleted, it is not reported as installed."""
        # Arrange
        install_binary("1.0.0")
        gone = install_binary("1.1.0")
        gone.unlink()

        # Act
        installed = registry.installed_records()

        # Assert
        assert [r.version for r in installed] == ["1.0.0"]
        assert registry.find_installed("1.1.0") is None

    def test_latest_installed_by_release_date(self, registry: VersionRegistry, install_binary) -> None:
        """Given several installed versions, the newest release date wins."""
        # Arrange
        install_binary("2024.2.0", release_date="2024-06-01T00:00:00Z")
        install_binary("2024.10.0", release_date="2024-10-01T00:00:00Z")
        install_binary("2024.9.0", release_date="2024-09-01T00:00:00Z")

        # Act
        latest = registry.find_latest_installed()

        # Assert
        assert latest is not None
        assert latest.version == "2024.10.0"

    def test_latest_installed_none_when_empty(self, registry: VersionRegistry) -> None:
        assert registry.find_latest_installed() is None


class TestReleaseIndex:
    """Tests for release lookups against the GitHub API."""

    async def test_fetch_latest_release(self, registry: VersionRegistry, release_index) -> None:
        """Given published releases, returns the newest tag and date."""
        # Arrange
        release_index.publish("1.0.0", "2024-01-01T00:00:00Z")
        release_index.publish("1.1.0", "2024-02-01T00:00:00Z")

        # Act
        latest = await registry.fetch_latest_release()

        # Assert
        assert latest is not None
        assert latest.version == "1.1.0"
        assert latest.published_at == "2024-02-01T00:00:00Z"

    async def test_fetch_latest_release_failure_returns_none(
        self, registry: VersionRegistry, release_index
    ) -> None:
        """Given a failing API, returns None instead of raising."""
        # Arrange
        release_index.api_status = 503

        # Act & Assert
        assert await registry.fetch_latest_release() is None

    async def test_fetch_all_releases(self, registry: VersionRegistry, release_index) -> None:
        # Arrange
        release_index.publish("1.0.0")
        release_index.publish("1.1.0")

        # Act
        releases = await registry.fetch_all_releases()

        # Assert
        assert [r.version for r in releases] == ["1.1.0", "1.0.0"]

    async def test_fetch_all_releases_failure_returns_empty(
        self, registry: VersionRegistry, release_index
    ) -> None:
        # Arrange
        release_index.api_status = 500

        # Act & Assert
        assert await registry.fetch_all_releases() == []

    async def test_requests_send_user_agent(self, registry: VersionRegistry, release_index) -> None:
        """GitHub requires a User-Agent header on API requests."""
        # Arrange
        release_index.publish("1.0.0")

        # Act
        await registry.fetch_latest_release()

        # Assert
        assert release_index.requests[0].headers["User-Agent"].startswith("npl-lsm/")


class TestCheckForUpdates:
    """Tests for update detection."""

    async def test_update_when_latest_not_installed(
        self, registry: VersionRegistry, release_index, install_binary
    ) -> None:
        """Given an installed older version, reports the newer release."""
        # Arrange
        install_binary("1.0.0")
        release_index.publish("1.1.0")

        # Act
        result = await registry.check_for_updates()

        # Assert
        assert result.has_update is True
        assert result.latest_version == "1.1.0"

    async def test_no_update_when_latest_installed(
        self, registry: VersionRegistry, release_index, install_binary
    ) -> None:
        # Arrange
        install_binary("1.1.0")
        release_index.publish("1.1.0")

        # Act
        result = await registry.check_for_updates()

        # Assert
        assert result.has_update is False

    async def test_deleted_binary_counts_as_not_installed(
        self, registry: VersionRegistry, release_index, install_binary
    ) -> None:
        """Given a record for the latest version whose file is gone, an update is reported."""
        # Arrange
        install_binary("1.1.0").unlink()
        release_index.publish("1.1.0")

        # Act
        result = await registry.check_for_updates()

        # Assert
        assert result.has_update is True

    async def test_no_update_when_fetch_fails(
        self, registry: VersionRegistry, release_index, install_binary
    ) -> None:
        """Given an unreachable release index, reports no update."""
        # Arrange
        install_binary("1.0.0")
        release_index.api_status = 500

        # Act
        result = await registry.check_for_updates()

        # Assert
        assert result.has_update is False
        assert result.latest_version is None
