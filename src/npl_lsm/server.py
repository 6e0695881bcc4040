"""Server connection orchestrator.

Answers one question for the editor integration: "give me a stream to a
language server". Reuses a server already listening on the TCP port when
there is one; otherwise makes sure a binary is installed (updating it if the
user agrees) and starts it over stdio.

Example usage:
    manager = create_server_manager(decision=ask_user)
    streams = await manager.get_server_connection()
    ...
    await manager.stop()
"""

from __future__ import annotations

__all__ = ["ServerManager", "create_server_manager"]

import asyncio
import logging
from pathlib import Path

from npl_lsm.binary import BinaryManager, DownloadEngine, ServerUpdateManager, VersionRegistry
from npl_lsm.config import ServerSettings, get_root_path, load_settings
from npl_lsm.connection import TcpConnectionManager
from npl_lsm.exceptions import OperationCancelledError
from npl_lsm.models import DecisionCallback, ProgressCallback, StreamPair
from npl_lsm.process import ServerProcessManager
from npl_lsm.telemetry.system import get_system_logger
from npl_lsm.utils.http import HttpClientFactory, create_httpx_client_factory


class ServerManager:
    """Chooses between an existing TCP server and a spawned stdio server."""

    def __init__(
        self,
        tcp: TcpConnectionManager,
        updates: ServerUpdateManager,
        process: ServerProcessManager,
        logger: logging.Logger | None = None,
    ) -> None:
        self.tcp = tcp
        self.updates = updates
        self.process = process
        self._logger = logger or get_system_logger()
        self._update_task: asyncio.Task[bool] | None = None

    @property
    def registry(self) -> VersionRegistry:
        return self.updates.registry

    @property
    def binary_manager(self) -> BinaryManager:
        return self.updates.binary_manager

    async def get_server_connection(self, cancel_event: asyncio.Event | None = None) -> StreamPair:
        """Return a stream pair to a ready language server.

        The TCP probe runs first and completes before any spawn is attempted.

        Args:
            cancel_event: Optional signal checked between steps and passed to
                the download and the handshake.

        Raises:
            ServerBinaryDownloadError: No binary could be obtained.
            BinaryNotFoundError: Installed binary vanished.
            ServerProcessError: The spawned server did not become ready.
            OperationCancelledError: cancel_event was set.
        """
        existing = await self.tcp.connect_to_existing_server()
        if existing is not None:
            self._logger.info({"event": "server_reused", "message": "Using existing TCP server"})
            if self.registry.installed_records():
                self._schedule_update_check()
            return existing

        _check_cancelled(cancel_event)
        binary_path = await self.updates.get_latest_server_binary(cancel_event)

        _check_cancelled(cancel_event)
        self._logger.info(
            {
                "event": "server_spawning",
                "message": f"Starting language server from {binary_path}",
                "details": {"path": str(binary_path)},
            }
        )
        return await self.process.start_server(binary_path, cancel_event)

    async def stop(self) -> None:
        """Cancel a pending background update check and stop the server process."""
        task = self._update_task
        self._update_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self.process.stop_server()

    def _schedule_update_check(self) -> None:
        if self._update_task is not None and not self._update_task.done():
            return
        self._logger.info(
            {"event": "update_check_scheduled", "message": "Checking for server updates in the background"}
        )
        self._update_task = asyncio.create_task(self.updates.check_for_updates())


def _check_cancelled(cancel_event: asyncio.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError("Server connection cancelled")


def create_server_manager(
    root_path: Path | None = None,
    settings: ServerSettings | None = None,
    progress: ProgressCallback | None = None,
    decision: DecisionCallback | None = None,
    logger: logging.Logger | None = None,
    client_factory: HttpClientFactory | None = None,
    root_uri: str | None = None,
) -> ServerManager:
    """Wire every collaborator of the server manager.

    Args:
        root_path: Storage root (defaults to the configured or platform data dir).
        settings: Settings (defaults to load_settings()).
        progress: Download progress sink.
        decision: Yes/no sink consulted before applying an update.
        logger: Logger shared by all managers.
        client_factory: httpx client factory (tests inject a MockTransport here).
        root_uri: Workspace URI sent as rootUri in the initialize request.

    Returns:
        Ready-to-use ServerManager.
    """
    settings = settings or load_settings()
    root = Path(root_path) if root_path is not None else get_root_path(settings)
    client_factory = client_factory or create_httpx_client_factory(
        default_timeout=settings.http_timeout_seconds
    )

    registry = VersionRegistry(root, settings, client_factory, logger)
    binary_manager = BinaryManager(registry, DownloadEngine(client_factory, logger), logger)
    return ServerManager(
        tcp=TcpConnectionManager(settings, logger),
        updates=ServerUpdateManager(binary_manager, decision, progress, logger),
        process=ServerProcessManager(logger, start_timeout=settings.start_timeout_seconds, root_uri=root_uri),
        logger=logger,
    )
