"""Data model for the server binary lifecycle.

VersionRecord is persisted (server-versions.json); everything else is
transient and passed between managers or to external collaborators.
"""

from __future__ import annotations

__all__ = [
    "DecisionCallback",
    "DownloadProgress",
    "ProcessState",
    "ProgressCallback",
    "RemoteRelease",
    "StreamPair",
    "UpdateCheckResult",
    "VersionRecord",
]

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Literal, NamedTuple

from pydantic import BaseModel, ConfigDict, Field


class VersionRecord(BaseModel):
    """One installed (or previously installed) server version.

    Serialized with camelCase keys. A record whose installed_path no longer
    exists on disk is treated as not installed: the file system is the
    ground truth and the registry is a cache.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    version: str
    installed_path: str | None = Field(default=None, alias="installedPath")
    release_date: str | None = Field(default=None, alias="releaseDate")
    download_url: str | None = Field(default=None, alias="downloadUrl")

    def is_installed(self) -> bool:
        """True when installed_path is set and exists on disk."""
        return bool(self.installed_path) and Path(self.installed_path).exists()

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize with file-format keys, omitting unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


@dataclass(frozen=True)
class RemoteRelease:
    """A published release from the remote release index."""

    version: str
    published_at: str | None = None


@dataclass(frozen=True)
class DownloadProgress:
    """Progress event handed to a progress sink.

    Attributes:
        message: Human-readable status line.
        increment: Percentage points gained since the previous event.
        total: Expected byte count (0 when the server sent no Content-Length).
        current: Bytes received so far.
    """

    message: str | None = None
    increment: int | None = None
    total: int | None = None
    current: int | None = None


ProgressCallback = Callable[[DownloadProgress], None]

# Yes/no prompt used before applying an update; receives the new version
DecisionCallback = Callable[[str], Awaitable[bool]]


class UpdateCheckResult(NamedTuple):
    """Outcome of comparing installed versions with the release index."""

    has_update: bool
    latest_version: str | None
    published_at: str | None = None


class ProcessState(str, Enum):
    """Lifecycle states of the tracked server process."""

    SPAWNED = "spawned"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    EXITED = "exited"
    STOPPED = "stopped"


@dataclass
class StreamPair:
    """Duplex channel handed to the external protocol client.

    For TCP both directions share one socket; for stdio the reader is the
    process stdout and the writer its stdin.

    Attributes:
        reader: Incoming byte stream.
        writer: Outgoing byte stream.
        transport: "tcp" or "stdio".
        capabilities: Server capabilities from the stdio handshake, if any.
    """

    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter
    transport: Literal["tcp", "stdio"]
    capabilities: dict[str, Any] | None = field(default=None)

    async def close(self) -> None:
        """Close the write side (and the socket, for TCP)."""
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except (ConnectionError, OSError):
            pass  # Peer already gone
