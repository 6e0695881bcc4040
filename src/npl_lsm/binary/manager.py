"""Binary manager: guarantees a validated, executable server binary on disk.

Combines the version registry (what is installed, what is published) with
the download engine (how to fetch it). Also prunes binaries the registry no
longer tracks.
"""

from __future__ import annotations

__all__ = ["BinaryManager", "validate_server_binary"]

import asyncio
import logging
import os
from pathlib import Path

from npl_lsm.binary.download import DownloadEngine
from npl_lsm.binary.versions import VersionRegistry, binary_name_for_platform, download_base_url
from npl_lsm.constants import LATEST_VERSION
from npl_lsm.exceptions import (
    BinaryNotFoundError,
    OperationCancelledError,
    ReleaseResolutionError,
    ServerBinaryDownloadError,
    UnsupportedPlatformError,
)
from npl_lsm.models import DownloadProgress, ProgressCallback
from npl_lsm.telemetry.system import get_system_logger, log_operation_failure
from npl_lsm.utils.file_helpers import is_owner_executable, make_executable


def validate_server_binary(path: Path, logger: logging.Logger | None = None) -> None:
    """Ensure the binary exists and is executable by its owner.

    Adds execute permission only when the owner execute bit is missing, so
    repeated calls on an executable file change nothing.

    Args:
        path: Binary to check.
        logger: Optional logger for the permission change.

    Raises:
        BinaryNotFoundError: If the file cannot be stat'ed or made executable.
    """
    try:
        stats = os.stat(path)
    except OSError as e:
        raise BinaryNotFoundError(path) from e

    if is_owner_executable(stats.st_mode):
        return

    try:
        make_executable(Path(path), stats.st_mode)
    except OSError as e:
        raise BinaryNotFoundError(path) from e

    (logger or get_system_logger()).info(
        {
            "event": "binary_made_executable",
            "message": f"Set executable permissions on {path}",
        }
    )


class BinaryManager:
    """Obtains, validates and prunes language server binaries."""

    def __init__(
        self,
        registry: VersionRegistry,
        downloader: DownloadEngine,
        logger: logging.Logger | None = None,
    ) -> None:
        self.registry = registry
        self.downloader = downloader
        self._logger = logger or get_system_logger()

    async def download_server_binary(
        self,
        progress: ProgressCallback | None = None,
        version: str | None = None,
        cancel_event: asyncio.Event | None = None,
        *,
        release_date: str | None = None,
    ) -> Path:
        """Return the path of an installed binary, downloading it if needed.

        Args:
            progress: Optional progress sink.
            version: Version tag or "latest" (defaults to the selected version).
            cancel_event: Optional cancel signal passed to the download.
            release_date: Publish date to record for a concrete version tag.

        Returns:
            Path of the validated binary.

        Raises:
            ServerBinaryDownloadError: Any failure, with a readable message.
            OperationCancelledError: cancel_event was set.
        """
        try:
            return await self._obtain_binary(progress, version, cancel_event, release_date)
        except (OperationCancelledError, asyncio.CancelledError):
            raise
        except UnsupportedPlatformError as e:
            self._logger.error(
                {
                    "event": "binary_platform_unsupported",
                    "message": str(e),
                    "details": {"platform": e.platform_pair},
                }
            )
            raise ServerBinaryDownloadError(
                f"Failed to download server binary: unsupported platform {e.platform_pair}. "
                "No NPL language server build is published for this operating system and architecture.",
                platform_incompatible=True,
            ) from e
        except Exception as e:
            log_operation_failure(
                self._logger,
                "binary_download_failed",
                "Error downloading server binary",
                e,
                level=logging.ERROR,
            )
            raise ServerBinaryDownloadError(f"Failed to download server binary: {e}") from e

    async def _obtain_binary(
        self,
        progress: ProgressCallback | None,
        version: str | None,
        cancel_event: asyncio.Event | None,
        release_date: str | None = None,
    ) -> Path:
        selected = version or self.registry.resolve_selected_version()
        _report(progress, f"Preparing to download server binary ({selected})...", 5)

        target_version = selected
        if target_version == LATEST_VERSION:
            latest = await self.registry.fetch_latest_release()
            if latest is None:
                raise ReleaseResolutionError("Failed to fetch latest version information")
            target_version = latest.version
            release_date = latest.published_at
            _report(progress, f"Latest version is {target_version}", 5)

        existing = self.registry.find_installed(target_version)
        if existing is not None and existing.installed_path:
            _report(progress, f"Using existing binary version {target_version}", 100)
            self._logger.info(
                {
                    "event": "binary_cache_hit",
                    "message": f"Using existing server binary {existing.installed_path}",
                    "details": {"version": target_version},
                }
            )
            return Path(existing.installed_path)

        binary_name = binary_name_for_platform()
        _report(progress, f"Determined binary for platform: {binary_name}", 10)

        base_url = download_base_url(self.registry.settings.github_repo, target_version)
        download_url = f"{base_url}/{binary_name}"
        server_path = self.registry.server_path(target_version)

        _report(progress, "Starting download...", 5)
        server_path.parent.mkdir(parents=True, exist_ok=True)
        self.delete_file_if_exists(server_path)

        self._logger.info(
            {
                "event": "binary_download_started",
                "message": f"Downloading server {target_version} from {download_url}",
                "details": {"version": target_version, "url": download_url, "target": str(server_path)},
            }
        )
        await self.downloader.download_file(download_url, server_path, progress, cancel_event)

        validate_server_binary(server_path, self._logger)

        self.registry.add_version_record(
            target_version,
            release_date=release_date,
            installed_path=server_path,
            download_url=download_url,
        )
        return server_path

    def validate_server_binary(self, path: Path) -> None:
        """See module-level validate_server_binary."""
        validate_server_binary(path, self._logger)

    def clean_unused_binaries(self) -> list[Path]:
        """Delete files in the binary directory that no record references.

        The registry file and subdirectories are left alone.

        Returns:
            Paths that were removed; [] if the directory cannot be listed.
        """
        tracked = {record.installed_path for record in self.registry.load() if record.installed_path}
        removed: list[Path] = []

        try:
            entries = sorted(self.registry.bin_dir.iterdir())
            for entry in entries:
                if entry.name == self.registry.versions_file.name or entry.is_dir():
                    continue
                if str(entry) in tracked:
                    continue
                self.delete_file_if_exists(entry)
                if not entry.exists():
                    removed.append(entry)
        except OSError as e:
            log_operation_failure(
                self._logger,
                "clean_binaries_failed",
                "Error cleaning binaries",
                e,
                bin_dir=self.registry.bin_dir,
            )
            return []

        if removed:
            self._logger.info(
                {
                    "event": "binaries_cleaned",
                    "message": f"Removed {len(removed)} untracked file(s) from {self.registry.bin_dir}",
                }
            )
        return removed

    def clean_all_binaries(self) -> list[Path]:
        """Remove untracked files, every recorded binary, and reset the registry.

        Returns:
            All paths that were removed.
        """
        removed = self.clean_unused_binaries()
        for record in self.registry.load():
            if not record.installed_path:
                continue
            path = Path(record.installed_path)
            if path.exists():
                self.delete_file_if_exists(path)
                if not path.exists():
                    removed.append(path)
        self.registry.reset()
        self._logger.info(
            {
                "event": "binaries_reset",
                "message": f"Cleaned server files in {self.registry.bin_dir}",
            }
        )
        return removed

    def delete_file_if_exists(self, path: Path) -> None:
        """Delete path if present; errors are logged, never raised."""
        try:
            Path(path).unlink(missing_ok=True)
        except OSError as e:
            log_operation_failure(self._logger, "delete_failed", f"Failed to delete file {path}", e)


def _report(progress: ProgressCallback | None, message: str, increment: int) -> None:
    if progress:
        progress(DownloadProgress(message=message, increment=increment))
