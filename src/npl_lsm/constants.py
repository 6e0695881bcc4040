"""Application-wide constants for npl-lsm.

Constants that define application behavior.
For user-configurable settings, see config.py.
"""

import os

__all__ = [
    # Application identity
    "APP_NAME",
    "DEFAULT_DATA_DIR",
    # Release index
    "GITHUB_API_BASE_URL",
    "GITHUB_DOWNLOAD_BASE_URL",
    "DEFAULT_GITHUB_REPO",
    "GITHUB_API_ACCEPT",
    "LATEST_VERSION",
    "DEFAULT_HTTP_TIMEOUT_SECONDS",
    # Binary directory
    "BIN_DIR_NAME",
    "VERSIONS_FILENAME",
    "BINARY_BASE_NAME",
    "SUPPORTED_PLATFORMS",
    # Download engine
    "REDIRECT_STATUS_CODES",
    "MAX_REDIRECTS",
    "PROGRESS_REPORT_STEP_PERCENT",
    "DOWNLOAD_CHUNK_SIZE",
    # TCP connection
    "DEFAULT_SERVER_PORT",
    "SERVER_HOST",
    "SOCKET_CONNECT_TIMEOUT_SECONDS",
    "SERVER_PORT_ENV_VAR",
    "SERVER_VERSION_ENV_VAR",
    # Server process
    "SERVER_STDIO_FLAG",
    "SERVER_START_TIMEOUT_SECONDS",
    "SERVER_STOP_TIMEOUT_SECONDS",
    "INITIALIZE_REQUEST_ID",
    "CLIENT_NAME",
    # Transport errors
    "TRANSPORT_ERRORS",
]

import httpx
from platformdirs import user_data_dir

# ============================================================================
# Application Identity
# ============================================================================

# Application name used for directory names, logger names, User-Agent, etc.
APP_NAME: str = "npl-lsm"

# Default tool-managed storage root. The binary directory lives under it.
# - macOS: ~/Library/Application Support/npl-lsm
# - Linux: ~/.local/share/npl-lsm
# - Windows: %LOCALAPPDATA%\npl-lsm
DEFAULT_DATA_DIR: str = os.path.realpath(user_data_dir(APP_NAME))

# ============================================================================
# Release Index
# ============================================================================

GITHUB_API_BASE_URL: str = "https://api.github.com"
GITHUB_DOWNLOAD_BASE_URL: str = "https://github.com"

# owner/repo publishing the language server binaries
DEFAULT_GITHUB_REPO: str = "NoumenaDigital/npl-language-server"

GITHUB_API_ACCEPT: str = "application/vnd.github.v3+json"

# Sentinel version meaning "whatever the release index says is newest"
LATEST_VERSION: str = "latest"

# Timeout for release index and download requests (seconds)
DEFAULT_HTTP_TIMEOUT_SECONDS: float = 30.0

# ============================================================================
# Binary Directory
# ============================================================================

BIN_DIR_NAME: str = "bin"
VERSIONS_FILENAME: str = "server-versions.json"
BINARY_BASE_NAME: str = "language-server"

# (normalized os, normalized arch) -> release asset name
SUPPORTED_PLATFORMS: dict[tuple[str, str], str] = {
    ("windows", "x64"): f"{BINARY_BASE_NAME}-windows-x86_64.exe",
    ("macos", "x64"): f"{BINARY_BASE_NAME}-macos-x86_64",
    ("macos", "arm64"): f"{BINARY_BASE_NAME}-macos-aarch64",
    ("linux", "x64"): f"{BINARY_BASE_NAME}-linux-x86_64",
    ("linux", "arm64"): f"{BINARY_BASE_NAME}-linux-aarch64",
}

# ============================================================================
# Download Engine
# ============================================================================

REDIRECT_STATUS_CODES: frozenset[int] = frozenset({301, 302, 303, 307, 308})

# GitHub release assets redirect once or twice (github.com -> objects host)
MAX_REDIRECTS: int = 5

# Progress events are throttled to one per this many percentage points
PROGRESS_REPORT_STEP_PERCENT: int = 5

DOWNLOAD_CHUNK_SIZE: int = 64 * 1024

# ============================================================================
# TCP Connection (existing server)
# ============================================================================

DEFAULT_SERVER_PORT: int = 5007
SERVER_HOST: str = "localhost"
SOCKET_CONNECT_TIMEOUT_SECONDS: float = 5.0

SERVER_PORT_ENV_VAR: str = "NPL_SERVER_PORT"
SERVER_VERSION_ENV_VAR: str = "NPL_SERVER_VERSION"

# ============================================================================
# Server Process
# ============================================================================

SERVER_STDIO_FLAG: str = "--stdio"

# Budget for spawn + initialize handshake (seconds)
SERVER_START_TIMEOUT_SECONDS: float = 15.0

# Grace period between terminate and kill when stopping (seconds)
SERVER_STOP_TIMEOUT_SECONDS: float = 2.0

INITIALIZE_REQUEST_ID: int = 1
CLIENT_NAME: str = APP_NAME

# ============================================================================
# Transport Error Detection
# ============================================================================

# Network-level failures while talking to the release index or download host
TRANSPORT_ERRORS: tuple[type[Exception], ...] = (
    httpx.NetworkError,
    httpx.TimeoutException,
    httpx.ProtocolError,
    ConnectionError,
)
