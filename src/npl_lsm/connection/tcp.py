"""TCP connection to an already running language server.

A developer may run the server by hand (e.g. under a debugger) listening on
a local port. Before spawning anything, the connection path probes that
port; a refused or timed-out connect simply means "no existing server".
"""

from __future__ import annotations

__all__ = ["TcpConnectionManager"]

import asyncio
import logging
import os

from npl_lsm.config import ServerSettings
from npl_lsm.constants import DEFAULT_SERVER_PORT, SERVER_HOST, SERVER_PORT_ENV_VAR
from npl_lsm.models import StreamPair
from npl_lsm.telemetry.system import get_system_logger


def _valid_port(value: object) -> int | None:
    try:
        port = int(str(value).strip())
    except ValueError:
        return None
    return port if 0 < port < 65536 else None


class TcpConnectionManager:
    """Probes localhost:<port> for a running server."""

    def __init__(
        self,
        settings: ServerSettings | None = None,
        logger: logging.Logger | None = None,
        host: str = SERVER_HOST,
    ) -> None:
        self.settings = settings or ServerSettings()
        self.host = host
        self._logger = logger or get_system_logger()

    def get_server_port(self) -> int:
        """Port from NPL_SERVER_PORT, then config, else the default (5007).

        Invalid or out-of-range values are logged and skipped.
        """
        env_port = os.environ.get(SERVER_PORT_ENV_VAR)
        if env_port:
            port = _valid_port(env_port)
            if port is not None:
                self._logger.info(
                    {
                        "event": "server_port_selected",
                        "message": f"Using port from environment variable: {port}",
                    }
                )
                return port
            self._logger.warning(
                {
                    "event": "server_port_invalid",
                    "message": f"Invalid port in environment variable: {env_port}, ignoring",
                }
            )

        if self.settings.port is not None:
            port = _valid_port(self.settings.port)
            if port is not None:
                self._logger.info(
                    {"event": "server_port_selected", "message": f"Using port from settings: {port}"}
                )
                return port
            self._logger.warning(
                {
                    "event": "server_port_invalid",
                    "message": f"Invalid port in settings: {self.settings.port}, using default",
                }
            )

        return DEFAULT_SERVER_PORT

    async def connect_to_existing_server(self) -> StreamPair | None:
        """Connect to a server already listening on the configured port.

        Returns:
            Stream pair over the socket, or None if nothing answered in time.
        """
        port = self.get_server_port()
        timeout = self.settings.connect_timeout_seconds

        try:
            reader, writer = await asyncio.wait_for(asyncio.open_connection(self.host, port), timeout=timeout)
        except asyncio.TimeoutError:
            self._logger.info(
                {
                    "event": "tcp_probe_timeout",
                    "message": f"Connection attempt timed out after {timeout:g}s",
                    "details": {"host": self.host, "port": port},
                }
            )
            return None
        except OSError as e:
            self._logger.info(
                {
                    "event": "tcp_probe_failed",
                    "message": f"Failed to connect to existing TCP server: {e}",
                    "error_type": type(e).__name__,
                    "details": {"host": self.host, "port": port},
                }
            )
            return None

        self._logger.info(
            {
                "event": "tcp_connected",
                "message": f"Connected to existing TCP server on port {port}",
                "details": {"host": self.host, "port": port},
            }
        )
        return StreamPair(reader=reader, writer=writer, transport="tcp")
