"""Version registry for downloaded language server binaries.

The registry is a JSON array of VersionRecord objects stored at
<root>/bin/server-versions.json, rewritten wholesale on every mutation.
It is a cache over the binary directory: a record whose file is gone is
treated as not installed.

Release information comes from the GitHub releases API of the configured
repository. Release lookups never raise; an unreachable index means
"no releases".
"""

from __future__ import annotations

__all__ = [
    "VersionRegistry",
    "binary_name_for_platform",
    "download_base_url",
]

import json
import logging
import platform
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx
from pydantic import ValidationError

from npl_lsm.config import ServerSettings
from npl_lsm.constants import (
    BIN_DIR_NAME,
    GITHUB_API_ACCEPT,
    GITHUB_API_BASE_URL,
    GITHUB_DOWNLOAD_BASE_URL,
    LATEST_VERSION,
    SUPPORTED_PLATFORMS,
    VERSIONS_FILENAME,
)
from npl_lsm.exceptions import UnsupportedPlatformError
from npl_lsm.models import RemoteRelease, UpdateCheckResult, VersionRecord
from npl_lsm.telemetry.system import get_system_logger, log_operation_failure
from npl_lsm.utils.file_helpers import read_json_file, write_json_file
from npl_lsm.utils.http import HttpClientFactory, create_httpx_client_factory

_OS_ALIASES: dict[str, str] = {
    "linux": "linux",
    "darwin": "macos",
    "macos": "macos",
    "windows": "windows",
    "win32": "windows",
}

_ARCH_ALIASES: dict[str, str] = {
    "x86_64": "x64",
    "amd64": "x64",
    "x64": "x64",
    "arm64": "arm64",
    "aarch64": "arm64",
}


def binary_name_for_platform(system: str | None = None, machine: str | None = None) -> str:
    """Map an OS/architecture pair to the published binary name.

    Args:
        system: OS name (defaults to platform.system()).
        machine: CPU architecture (defaults to platform.machine()).

    Returns:
        Release asset name, e.g. "language-server-linux-x86_64".

    Raises:
        UnsupportedPlatformError: For any pair outside the supported set.
    """
    system = system if system is not None else platform.system()
    machine = machine if machine is not None else platform.machine()

    key = (_OS_ALIASES.get(system.lower(), ""), _ARCH_ALIASES.get(machine.lower(), ""))
    try:
        return SUPPORTED_PLATFORMS[key]
    except KeyError:
        raise UnsupportedPlatformError(system, machine) from None


def download_base_url(repo: str, version: str) -> str:
    """Build the release download base URL for a version.

    Args:
        repo: GitHub owner/repo.
        version: Release tag, or "latest" for the latest-release alias.

    Returns:
        URL to which the binary name is appended.
    """
    if version and version != LATEST_VERSION:
        return f"{GITHUB_DOWNLOAD_BASE_URL}/{repo}/releases/download/{version}"
    return f"{GITHUB_DOWNLOAD_BASE_URL}/{repo}/releases/latest/download"


def _parse_release(payload: Any) -> RemoteRelease | None:
    if not isinstance(payload, dict):
        return None
    tag = payload.get("tag_name")
    if not isinstance(tag, str) or not tag:
        return None
    published = payload.get("published_at")
    return RemoteRelease(version=tag, published_at=published if isinstance(published, str) else None)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _release_sort_key(record: VersionRecord) -> tuple[float, str]:
    timestamp = 0.0
    if record.release_date:
        try:
            timestamp = datetime.fromisoformat(record.release_date.replace("Z", "+00:00")).timestamp()
        except ValueError:
            pass
    return (timestamp, record.version)


class VersionRegistry:
    """Persisted record of installed server versions plus release lookups.

    Not safe for concurrent writers: every mutation is read-modify-write of
    the whole file.
    """

    def __init__(
        self,
        root_path: Path,
        settings: ServerSettings | None = None,
        client_factory: HttpClientFactory | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.root_path = Path(root_path)
        self.settings = settings or ServerSettings()
        self._client_factory = client_factory or create_httpx_client_factory(
            default_timeout=self.settings.http_timeout_seconds
        )
        self._logger = logger or get_system_logger()

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    @property
    def bin_dir(self) -> Path:
        """Directory holding binaries and the registry file."""
        return self.root_path / BIN_DIR_NAME

    @property
    def versions_file(self) -> Path:
        """Path of the registry JSON file."""
        return self.bin_dir / VERSIONS_FILENAME

    def server_path(self, version: str) -> Path:
        """Local install path for a concrete version tag."""
        return self.bin_dir / f"{binary_name_for_platform()}-{version}"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> list[VersionRecord]:
        """Read all records.

        Returns:
            Records in file order; empty if the file is missing or unusable.
        """
        path = self.versions_file
        if not path.exists():
            return []

        try:
            data = read_json_file(path)
            if not isinstance(data, list):
                raise ValueError(f"expected a JSON array, got {type(data).__name__}")
            records = [VersionRecord.model_validate(item) for item in data]
        except (OSError, json.JSONDecodeError, ValidationError, ValueError) as e:
            log_operation_failure(
                self._logger,
                "versions_load_failed",
                "Failed to load versions data",
                e,
                versions_file=path,
            )
            return []

        # Last entry wins if the file was edited into duplicates
        deduplicated: dict[str, VersionRecord] = {}
        for record in records:
            deduplicated[record.version] = record
        return list(deduplicated.values())

    def save(self, records: list[VersionRecord]) -> None:
        """Overwrite the registry file with records.

        Raises:
            OSError: If the directory or file cannot be written.
        """
        write_json_file(self.versions_file, [record.to_json_dict() for record in records])

    def reset(self) -> None:
        """Forget every record."""
        self.save([])

    def add_version_record(
        self,
        version: str,
        release_date: str | None = None,
        installed_path: Path | None = None,
        download_url: str | None = None,
    ) -> VersionRecord:
        """Append a record or update the existing one for version.

        Args:
            version: Concrete version tag.
            release_date: ISO 8601 publish date. A new record without one is
                stamped with the current time, so a version installed now
                ranks above older dated installs.
            installed_path: Install location (defaults to server_path(version)).
            download_url: URL the binary came from.

        Returns:
            The stored record.
        """
        records = self.load()
        path = str(installed_path or self.server_path(version))

        for index, record in enumerate(records):
            if record.version == version:
                update: dict[str, Any] = {"installed_path": path}
                if release_date:
                    update["release_date"] = release_date
                if download_url:
                    update["download_url"] = download_url
                records[index] = record.model_copy(update=update)
                stored = records[index]
                break
        else:
            stored = VersionRecord(
                version=version,
                installed_path=path,
                release_date=release_date or _utc_now_iso(),
                download_url=download_url,
            )
            records.append(stored)

        self.save(records)
        self._logger.info(
            {
                "event": "version_recorded",
                "message": f"Recorded server version {version} at {path}",
                "details": {"version": version, "installed_path": path},
            }
        )
        return stored

    def installed_records(self) -> list[VersionRecord]:
        """Records whose binary still exists on disk."""
        return [record for record in self.load() if record.is_installed()]

    def find_latest_installed(self) -> VersionRecord | None:
        """Newest installed record by release date, then version string."""
        installed = self.installed_records()
        if not installed:
            return None
        return max(installed, key=_release_sort_key)

    def find_installed(self, version: str) -> VersionRecord | None:
        """Installed record for an exact version, if present on disk."""
        for record in self.installed_records():
            if record.version == version:
                return record
        return None

    # ------------------------------------------------------------------
    # Selection & release index
    # ------------------------------------------------------------------

    def resolve_selected_version(self) -> str:
        """Configured version, or "latest" when none is configured."""
        return self.settings.version or LATEST_VERSION

    async def _get_json(self, path: str) -> Any:
        url = f"{GITHUB_API_BASE_URL}/repos/{self.settings.github_repo}{path}"
        async with self._client_factory(
            headers={"Accept": GITHUB_API_ACCEPT},
            follow_redirects=True,
        ) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.json()

    async def fetch_latest_release(self) -> RemoteRelease | None:
        """Most recent published release, or None on any failure."""
        try:
            release = _parse_release(await self._get_json("/releases/latest"))
        except (httpx.HTTPError, ValueError) as e:
            log_operation_failure(
                self._logger,
                "release_fetch_failed",
                "Failed to fetch latest release",
                e,
                repo=self.settings.github_repo,
            )
            return None

        if release is None:
            self._logger.warning(
                {
                    "event": "release_parse_failed",
                    "message": "Latest release response carried no tag",
                    "details": {"repo": self.settings.github_repo},
                }
            )
        return release

    async def fetch_all_releases(self) -> list[RemoteRelease]:
        """All published releases (newest first), or [] on any failure."""
        try:
            payload = await self._get_json("/releases")
        except (httpx.HTTPError, ValueError) as e:
            log_operation_failure(
                self._logger,
                "release_list_failed",
                "Failed to fetch releases",
                e,
                repo=self.settings.github_repo,
            )
            return []

        if not isinstance(payload, list):
            return []
        releases = [_parse_release(item) for item in payload]
        return [release for release in releases if release is not None]

    async def check_for_updates(self) -> UpdateCheckResult:
        """Compare installed versions against the latest release.

        Returns:
            has_update is True only when a remote release exists and no
            installed record carries its version.
        """
        latest = await self.fetch_latest_release()
        if latest is None:
            return UpdateCheckResult(has_update=False, latest_version=None)

        installed_versions = {record.version for record in self.installed_records()}
        return UpdateCheckResult(
            has_update=latest.version not in installed_versions,
            latest_version=latest.version,
            published_at=latest.published_at,
        )
