"""Minimal JSON-RPC framing for the startup handshake.

Only what is needed to detect that a freshly spawned server is ready:
Content-Length framing, the initialize request, the initialized
notification, and readiness detection. The full language server protocol is
the job of the protocol client that receives the stream pair.
"""

from __future__ import annotations

__all__ = [
    "FramingError",
    "build_initialize_request",
    "build_initialized_notification",
    "build_null_response",
    "encode_message",
    "is_protocol_text",
    "read_message",
    "ready_capabilities",
]

import asyncio
import json
import os
from typing import Any

from npl_lsm.constants import CLIENT_NAME

_CONTENT_LENGTH = "content-length"

# Headers are ASCII lines; anything longer is treated as stray output
_MAX_HEADER_LINE = 8192


class FramingError(ValueError):
    """A frame could not be decoded into a JSON object."""


def encode_message(message: dict[str, Any]) -> bytes:
    """Frame a JSON-RPC message as Content-Length: N\\r\\n\\r\\n<json>."""
    body = json.dumps(message, separators=(",", ":")).encode("utf-8")
    return f"Content-Length: {len(body)}\r\n\r\n".encode("ascii") + body


async def read_message(reader: asyncio.StreamReader) -> dict[str, Any]:
    """Read one framed message.

    Header lines other than Content-Length are ignored, so stray text the
    server prints before its first frame does not break the handshake.
    Lines longer than the reader's buffer limit are discarded the same way.

    Raises:
        asyncio.IncompleteReadError: Stream closed mid-frame or before one.
        FramingError: Invalid Content-Length, or body is not a JSON object.
    """
    content_length: int | None = None
    while True:
        try:
            line = await reader.readuntil(b"\n")
        except asyncio.LimitOverrunError as e:
            # Drop the overlong part; the rest of the line is skipped as stray text
            await reader.readexactly(e.consumed)
            continue
        text = line[:_MAX_HEADER_LINE].decode("utf-8", errors="replace").strip()
        if not text:
            if content_length is not None:
                break
            continue
        name, sep, value = text.partition(":")
        if sep and name.strip().lower() == _CONTENT_LENGTH:
            content_length = _parse_content_length(value)

    body = await reader.readexactly(content_length)
    try:
        message = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise FramingError(f"Invalid JSON-RPC frame: {e}") from e
    if not isinstance(message, dict):
        raise FramingError("JSON-RPC frame is not an object")
    return message


def _parse_content_length(value: str) -> int:
    try:
        length = int(value.strip())
    except ValueError:
        raise FramingError(f"Invalid Content-Length: {value.strip()!r}") from None
    if length < 0:
        raise FramingError(f"Invalid Content-Length: {length}")
    return length


def build_initialize_request(request_id: int, root_uri: str | None = None) -> dict[str, Any]:
    """initialize request carrying this process id and no client capabilities."""
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": "initialize",
        "params": {
            "processId": os.getpid(),
            "clientInfo": {"name": CLIENT_NAME},
            "rootUri": root_uri,
            "capabilities": {},
        },
    }


def build_initialized_notification() -> dict[str, Any]:
    return {"jsonrpc": "2.0", "method": "initialized", "params": {}}


def build_null_response(request: dict[str, Any]) -> dict[str, Any]:
    """Placeholder answer to a server-to-client request seen during the handshake."""
    result: Any = None
    if request.get("method") == "workspace/configuration":
        items = request.get("params", {}).get("items", [])
        result = [{} for _ in items] or [{}]
    return {"jsonrpc": "2.0", "id": request.get("id"), "result": result}


def ready_capabilities(message: dict[str, Any], request_id: int) -> dict[str, Any] | None:
    """Return server capabilities if message signals readiness, else None.

    Ready means either an "initialized" notification, or a response to the
    initialize request whose result carries "capabilities".
    """
    if message.get("method") == "initialized" and "id" not in message:
        return {}
    if message.get("id") == request_id and "method" not in message:
        result = message.get("result")
        if isinstance(result, dict) and isinstance(result.get("capabilities"), dict):
            return result["capabilities"]
    return None


def is_protocol_text(text: str) -> bool:
    """True if text looks like JSON-RPC traffic rather than a log line."""
    stripped = text.strip()
    return stripped.startswith("Content-Length:") or ('"jsonrpc"' in stripped and '"method"' in stripped)
