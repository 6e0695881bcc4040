"""Custom exceptions for npl-lsm.

This module contains all custom exceptions used throughout the package.
Exceptions are organized by the operation they make impossible:

Validation Failures:
    - UnsupportedPlatformError: No server binary is published for this OS/arch
    - BinaryNotFoundError: Binary missing or inaccessible after download

Release Resolution:
    - ReleaseResolutionError: "latest" could not be resolved to a tag

Network/Transfer Failures (partial files are removed before raising):
    - DownloadError: Base for download failures
    - HttpStatusError: Non-200, non-redirect response
    - RedirectError: Redirect without a Location header
    - TooManyRedirectsError: Redirect chain exceeded the hop limit
    - ServerBinaryDownloadError: Human-readable wrapper raised by BinaryManager

Process Failures:
    - ServerProcessError: Base for child process failures
    - SpawnError: Executable could not be started
    - PrematureExitError: Process exited before the handshake completed
    - InitializationTimeoutError: Handshake did not complete in time
    - HandshakeError: Server answered initialize with an error

Other:
    - OperationCancelledError: Caller set the cancel signal
    - ConfigurationError: Config file invalid (strict load only)

Transient conditions (no releases, no running server, failed update check)
are not exceptions: they return None, [] or False and are logged.

Usage:
    from npl_lsm.exceptions import HttpStatusError, SpawnError
"""

from __future__ import annotations

__all__ = [
    "BinaryNotFoundError",
    "ConfigurationError",
    "DownloadError",
    "HandshakeError",
    "HttpStatusError",
    "InitializationTimeoutError",
    "OperationCancelledError",
    "PrematureExitError",
    "RedirectError",
    "ReleaseResolutionError",
    "ServerBinaryDownloadError",
    "ServerManagerError",
    "ServerProcessError",
    "SpawnError",
    "TooManyRedirectsError",
    "UnsupportedPlatformError",
]

from typing import Any


class ServerManagerError(Exception):
    """Base exception for all npl-lsm failures."""


# =============================================================================
# Validation Failures
# =============================================================================


class UnsupportedPlatformError(ServerManagerError):
    """No language server binary is published for this platform.

    Attributes:
        system: Operating system name as reported (e.g., "Linux", "FreeBSD").
        machine: CPU architecture as reported (e.g., "x86_64", "ppc64le").
    """

    def __init__(self, system: str, machine: str) -> None:
        self.system = system
        self.machine = machine
        super().__init__(
            f"Unsupported platform: {system}/{machine}. Supported platforms: "
            "windows/x64, macos/x64, macos/arm64, linux/x64, linux/arm64"
        )

    @property
    def platform_pair(self) -> str:
        """Offending platform in os/arch form."""
        return f"{self.system}/{self.machine}"


class BinaryNotFoundError(ServerManagerError):
    """Server binary is missing or cannot be stat'ed."""

    def __init__(self, path: Any) -> None:
        self.path = str(path)
        super().__init__(f"Server binary not found or inaccessible at {self.path}")


class ReleaseResolutionError(ServerManagerError):
    """The "latest" alias could not be resolved via the release index."""


# =============================================================================
# Network/Transfer Failures
# =============================================================================


class DownloadError(ServerManagerError):
    """Base exception for download failures.

    Attributes:
        url: URL of the request that failed.
    """

    def __init__(self, message: str, url: str) -> None:
        self.url = url
        super().__init__(message)


class HttpStatusError(DownloadError):
    """Download endpoint answered with a non-200, non-redirect status."""

    def __init__(self, status_code: int, url: str) -> None:
        self.status_code = status_code
        super().__init__(f"Failed to download, status code: {status_code} ({url})", url)


class RedirectError(DownloadError):
    """Redirect response carried no Location header."""

    def __init__(self, status_code: int, url: str) -> None:
        self.status_code = status_code
        super().__init__(f"Redirect ({status_code}) with no location header from {url}", url)


class TooManyRedirectsError(DownloadError):
    """Redirect chain exceeded the hop limit."""

    def __init__(self, max_redirects: int, url: str) -> None:
        self.max_redirects = max_redirects
        super().__init__(f"Exceeded {max_redirects} redirects while downloading {url}", url)


class ServerBinaryDownloadError(ServerManagerError):
    """Obtaining the server binary failed.

    Raised by BinaryManager with a human-readable message. The underlying
    error is chained as __cause__.

    Attributes:
        platform_incompatible: True when the proximate cause was platform resolution.
    """

    def __init__(self, message: str, *, platform_incompatible: bool = False) -> None:
        self.platform_incompatible = platform_incompatible
        super().__init__(message)


# =============================================================================
# Process Failures
# =============================================================================


class ServerProcessError(ServerManagerError):
    """Base exception for language server child process failures."""


class SpawnError(ServerProcessError):
    """The server executable could not be started."""

    def __init__(self, path: Any, reason: str) -> None:
        self.path = str(path)
        super().__init__(f"Failed to start server process {self.path}: {reason}")


class PrematureExitError(ServerProcessError):
    """Server process exited before the handshake completed.

    Attributes:
        returncode: Exit code, or None when killed by a signal.
        signal: Signal number that terminated the process, if any.
    """

    def __init__(self, returncode: int | None, signal: int | None = None) -> None:
        self.returncode = returncode
        self.signal = signal
        if signal is not None:
            detail = f"signal {signal}"
        else:
            detail = f"code {returncode}"
        super().__init__(f"Server process exited prematurely with {detail} before initialization")


class InitializationTimeoutError(ServerProcessError, TimeoutError):
    """Server did not complete the handshake within the start budget."""

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Timeout waiting for server to start after {timeout_seconds:g}s")


class HandshakeError(ServerProcessError):
    """Server answered the initialize request with a JSON-RPC error."""


# =============================================================================
# Other
# =============================================================================


class OperationCancelledError(ServerManagerError):
    """The caller's cancel signal was set while an operation was in flight."""


class ConfigurationError(ServerManagerError):
    """Configuration is invalid.

    Raised when:
    - Config file contains invalid JSON
    - Config file fails Pydantic validation
    - Config file cannot be read
    """
