"""Server update manager.

Checks the release index for a newer server, asks the decision sink before
downloading it, and picks the binary the connection path should run.
"""

from __future__ import annotations

__all__ = ["ServerUpdateManager"]

import asyncio
import logging
from pathlib import Path

from npl_lsm.binary.manager import BinaryManager
from npl_lsm.exceptions import BinaryNotFoundError
from npl_lsm.models import DecisionCallback, ProgressCallback
from npl_lsm.telemetry.system import get_system_logger, log_operation_failure


class ServerUpdateManager:
    """Applies updates on request and resolves the binary to launch."""

    def __init__(
        self,
        binary_manager: BinaryManager,
        decision: DecisionCallback | None = None,
        progress: ProgressCallback | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.binary_manager = binary_manager
        self.registry = binary_manager.registry
        self._decision = decision
        self._progress = progress
        self._logger = logger or get_system_logger()

    async def check_for_updates(self) -> bool:
        """Check for a new release and install it if the user agrees.

        Returns:
            True if an update was downloaded; False otherwise, including
            on any failure (never raises).
        """
        try:
            self._logger.info(
                {"event": "update_check_started", "message": "Checking for language server updates..."}
            )
            result = await self.registry.check_for_updates()

            if not (result.has_update and result.latest_version):
                self._logger.info({"event": "update_not_available", "message": "No updates available"})
                return False

            version = result.latest_version
            self._logger.info(
                {
                    "event": "update_available",
                    "message": f"New version available: {version}",
                    "details": {"version": version},
                }
            )

            if self._decision is None or not await self._decision(version):
                self._logger.info(
                    {
                        "event": "update_declined",
                        "message": f"Update to {version} declined",
                        "details": {"version": version},
                    }
                )
                return False

            path = await self.binary_manager.download_server_binary(
                self._progress, version, release_date=result.published_at
            )
            self._logger.info(
                {
                    "event": "update_installed",
                    "message": f"Successfully updated to version {version} at {path}",
                    "details": {"version": version, "path": str(path)},
                }
            )
            return True
        except Exception as e:
            log_operation_failure(self._logger, "update_check_failed", "Error checking for updates", e)
            return False

    async def get_latest_server_binary(self, cancel_event: asyncio.Event | None = None) -> Path:
        """Binary the connection path should launch.

        With at least one installed binary: run an update check, then return
        the freshest installed binary. With none: download the selected
        version directly, without asking.

        Raises:
            BinaryNotFoundError: Installed binaries vanished during the update check.
            ServerBinaryDownloadError: First-time download failed.
            OperationCancelledError: cancel_event was set during the download.
        """
        installed = self.registry.installed_records()
        self._logger.info(
            {
                "event": "installed_versions_scanned",
                "message": f"Found {len(installed)} installed server version(s)",
                "details": {"versions": ", ".join(record.version for record in installed)},
            }
        )

        if installed:
            updated = await self.check_for_updates()
            self._logger.info(
                {
                    "event": "update_check_completed",
                    "message": f"Update check completed, updated: {updated}",
                }
            )
            latest = self.registry.find_latest_installed()
            if latest is None or not latest.installed_path:
                raise BinaryNotFoundError(self.registry.bin_dir)
            self._logger.info(
                {
                    "event": "binary_selected",
                    "message": f"Using existing server binary at: {latest.installed_path}",
                }
            )
            return Path(latest.installed_path)

        self._logger.info(
            {
                "event": "binary_missing",
                "message": "No language server binary found, downloading automatically...",
            }
        )
        path = await self.binary_manager.download_server_binary(self._progress, cancel_event=cancel_event)
        self._logger.info({"event": "binary_downloaded", "message": f"Downloaded server binary at: {path}"})
        return path
