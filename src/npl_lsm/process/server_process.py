"""Language server child process lifecycle.

Spawns `<binary> --stdio`, performs the initialize handshake under a time
budget, and stops the process on request. At most one process is tracked
per manager; starting a new one stops the previous one first.

State machine:
    SPAWNED -> INITIALIZING -> READY -> EXITED | STOPPED
                            -> FAILED (premature exit, handshake error, cancel)
                            -> TIMED_OUT (no readiness within the budget)

Stdout is read with exact Content-Length framing during the handshake, so
the stream handed back to the caller starts at the first byte after it.
Stderr is drained for the lifetime of the process and logged line by line.
"""

from __future__ import annotations

__all__ = ["ServerProcessManager"]

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from npl_lsm.binary.manager import validate_server_binary
from npl_lsm.constants import (
    INITIALIZE_REQUEST_ID,
    SERVER_START_TIMEOUT_SECONDS,
    SERVER_STDIO_FLAG,
    SERVER_STOP_TIMEOUT_SECONDS,
)
from npl_lsm.exceptions import (
    HandshakeError,
    InitializationTimeoutError,
    OperationCancelledError,
    PrematureExitError,
    SpawnError,
)
from npl_lsm.models import ProcessState, StreamPair
from npl_lsm.process.protocol import (
    FramingError,
    build_initialize_request,
    build_initialized_notification,
    build_null_response,
    encode_message,
    is_protocol_text,
    read_message,
    ready_capabilities,
)
from npl_lsm.telemetry.system import get_system_logger, log_operation_failure

# Substrings that promote a stderr line to error level
_STDERR_ERROR_MARKERS = ("error:", "exception:", "failed:")

_STDERR_CHUNK_SIZE = 64 * 1024

# Unterminated output beyond this is logged as its own line
_STDERR_MAX_LINE = 64 * 1024


class ServerProcessManager:
    """Owns the stdio language server process."""

    def __init__(
        self,
        logger: logging.Logger | None = None,
        start_timeout: float = SERVER_START_TIMEOUT_SECONDS,
        stop_timeout: float = SERVER_STOP_TIMEOUT_SECONDS,
        root_uri: str | None = None,
    ) -> None:
        self._logger = logger or get_system_logger()
        self.start_timeout = start_timeout
        self.stop_timeout = stop_timeout
        self.root_uri = root_uri

        self._process: asyncio.subprocess.Process | None = None
        self._state: ProcessState | None = None
        self._stderr_task: asyncio.Task[None] | None = None
        self._exit_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> ProcessState | None:
        """Current lifecycle state, None before the first start."""
        return self._state

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def start_server(
        self,
        binary_path: Path,
        cancel_event: asyncio.Event | None = None,
    ) -> StreamPair:
        """Spawn the server and wait until it reports readiness.

        Args:
            binary_path: Validated (or to-be-validated) server executable.
            cancel_event: Optional signal; when set the start is aborted.

        Returns:
            Stdio stream pair positioned after the handshake, with the
            server's capabilities.

        Raises:
            BinaryNotFoundError: Binary missing or not executable.
            SpawnError: The OS refused to start the executable.
            PrematureExitError: Process exited before readiness.
            InitializationTimeoutError: No readiness within start_timeout.
            HandshakeError: initialize answered with an error.
            OperationCancelledError: cancel_event was set.
        """
        await self.stop_server()

        binary_path = Path(binary_path)
        validate_server_binary(binary_path, self._logger)

        self._logger.info(
            {
                "event": "server_process_starting",
                "message": f"Starting server process: {binary_path} {SERVER_STDIO_FLAG}",
                "details": {"path": str(binary_path)},
            }
        )
        try:
            process = await asyncio.create_subprocess_exec(
                str(binary_path),
                SERVER_STDIO_FLAG,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            self._state = ProcessState.FAILED
            log_operation_failure(
                self._logger, "server_spawn_failed", "Failed to start server process", e, logging.ERROR
            )
            raise SpawnError(binary_path, str(e)) from e

        self._process = process
        self._state = ProcessState.SPAWNED
        self._stderr_task = asyncio.create_task(self._pump_stderr(process))

        try:
            capabilities = await self._await_ready(process, cancel_event)
        except BaseException as e:
            if self._state not in (ProcessState.TIMED_OUT, ProcessState.FAILED):
                self._state = ProcessState.FAILED
            if not isinstance(e, asyncio.CancelledError):
                log_operation_failure(
                    self._logger, "server_start_failed", "Server failed to start", e, logging.ERROR
                )
            await self._discard(process)
            raise

        self._state = ProcessState.READY
        self._exit_task = asyncio.create_task(self._watch_exit(process))
        self._logger.info(
            {
                "event": "server_process_ready",
                "message": "Server started successfully",
                "details": {"pid": process.pid},
            }
        )

        assert process.stdout is not None and process.stdin is not None
        return StreamPair(
            reader=process.stdout,
            writer=process.stdin,
            transport="stdio",
            capabilities=capabilities,
        )

    async def stop_server(self) -> None:
        """Stop the tracked process, if any.

        Sends terminate, waits up to stop_timeout, then kills. Errors are
        logged and swallowed; afterwards no process is tracked.
        """
        process = self._process
        if process is None:
            return
        self._process = None

        await self._cancel_task(self._exit_task)
        self._exit_task = None

        if process.returncode is None:
            self._logger.info(
                {
                    "event": "server_process_stopping",
                    "message": "Stopping server process",
                    "details": {"pid": process.pid},
                }
            )
            try:
                process.terminate()
                await asyncio.wait_for(process.wait(), timeout=self.stop_timeout)
            except asyncio.TimeoutError:
                await self._kill(process)
            except (ProcessLookupError, OSError) as e:
                log_operation_failure(self._logger, "server_stop_failed", "Error stopping server", e)

        await self._finish_stderr()
        self._state = ProcessState.STOPPED

    # -------------------------------------------------------------------------
    # Handshake
    # -------------------------------------------------------------------------

    async def _await_ready(
        self,
        process: asyncio.subprocess.Process,
        cancel_event: asyncio.Event | None,
    ) -> dict[str, Any]:
        self._state = ProcessState.INITIALIZING

        handshake = asyncio.create_task(self._handshake(process))
        exited = asyncio.create_task(process.wait())
        waiters: set[asyncio.Task[Any]] = {handshake, exited}
        cancelled: asyncio.Task[Any] | None = None
        if cancel_event is not None:
            cancelled = asyncio.create_task(cancel_event.wait())
            waiters.add(cancelled)

        try:
            done, _pending = await asyncio.wait(
                waiters,
                timeout=self.start_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )

            if handshake in done:
                try:
                    return handshake.result()
                except (asyncio.IncompleteReadError, ConnectionError):
                    # Stdout closed or stdin broken: the process is going away
                    returncode = await self._returncode_after_close(process)
                    if returncode is None:
                        raise HandshakeError("Server closed its output before initialization") from None
                    raise _premature_exit(returncode) from None
                except (ValueError, asyncio.LimitOverrunError) as e:
                    raise HandshakeError(f"Unreadable server output during initialization: {e}") from e

            if exited in done:
                raise _premature_exit(process.returncode)

            if cancelled is not None and cancelled in done:
                self._logger.info({"event": "server_start_cancelled", "message": "Server start cancelled"})
                raise OperationCancelledError("Server start cancelled")

            self._state = ProcessState.TIMED_OUT
            raise InitializationTimeoutError(self.start_timeout)
        finally:
            for task in waiters:
                await self._cancel_task(task)

    async def _handshake(self, process: asyncio.subprocess.Process) -> dict[str, Any]:
        assert process.stdin is not None and process.stdout is not None

        process.stdin.write(encode_message(build_initialize_request(INITIALIZE_REQUEST_ID, self.root_uri)))
        await process.stdin.drain()

        while True:
            try:
                message = await read_message(process.stdout)
            except FramingError as e:
                self._logger.warning({"event": "server_stdout_unparsed", "message": f"Server stdout: {e}"})
                continue

            self._logger.info(
                {
                    "event": "server_stdout",
                    "message": f"Server stdout: {json.dumps(message, separators=(',', ':'))}",
                }
            )

            if message.get("id") == INITIALIZE_REQUEST_ID and "error" in message:
                error = message["error"] if isinstance(message["error"], dict) else {}
                raise HandshakeError(f"Server rejected initialize: {error.get('message', message['error'])}")

            capabilities = ready_capabilities(message, INITIALIZE_REQUEST_ID)
            if capabilities is not None:
                process.stdin.write(encode_message(build_initialized_notification()))
                await process.stdin.drain()
                return capabilities

            if "method" in message and "id" in message:
                process.stdin.write(encode_message(build_null_response(message)))
                await process.stdin.drain()

    async def _returncode_after_close(self, process: asyncio.subprocess.Process) -> int | None:
        try:
            return await asyncio.wait_for(process.wait(), timeout=self.stop_timeout)
        except asyncio.TimeoutError:
            return None

    # -------------------------------------------------------------------------
    # Background tasks
    # -------------------------------------------------------------------------

    async def _pump_stderr(self, process: asyncio.subprocess.Process) -> None:
        # Chunked reads: a line of any length must not stop the drain
        assert process.stderr is not None
        warned_protocol = False
        pending = b""
        try:
            while True:
                chunk = await process.stderr.read(_STDERR_CHUNK_SIZE)
                if not chunk:
                    break
                *lines, pending = (pending + chunk).split(b"\n")
                if len(pending) >= _STDERR_MAX_LINE:
                    lines.append(pending)
                    pending = b""
                for raw in lines:
                    warned_protocol = self._log_stderr_line(raw, warned_protocol)
            if pending:
                self._log_stderr_line(pending, warned_protocol)
        except OSError as e:
            log_operation_failure(self._logger, "server_stderr_failed", "Stopped reading server stderr", e)

    def _log_stderr_line(self, raw: bytes, warned_protocol: bool) -> bool:
        """Log one stderr line; returns whether the protocol warning has been issued."""
        line = raw.decode("utf-8", errors="replace").rstrip()
        if not line:
            return warned_protocol
        if is_protocol_text(line) and not warned_protocol:
            warned_protocol = True
            self._logger.warning(
                {
                    "event": "server_stderr_protocol",
                    "message": "Server wrote protocol messages to stderr (expected --stdio mode)",
                }
            )
        lowered = line.lower()
        if any(marker in lowered for marker in _STDERR_ERROR_MARKERS):
            self._logger.error({"event": "server_stderr", "message": f"Server error: {line}"})
        else:
            self._logger.info({"event": "server_stderr", "message": f"Server stderr: {line}"})
        return warned_protocol

    async def _watch_exit(self, process: asyncio.subprocess.Process) -> None:
        returncode = await process.wait()
        self._logger.info(
            {
                "event": "server_process_exited",
                "message": f"Server process exited with code {returncode}",
                "details": {"pid": process.pid, "returncode": returncode},
            }
        )
        if self._process is process:
            self._process = None
            self._state = ProcessState.EXITED

    async def _discard(self, process: asyncio.subprocess.Process) -> None:
        """Kill a process that failed to start and forget it."""
        await self._kill(process)
        if self._process is process:
            self._process = None
        await self._finish_stderr()

    async def _kill(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        try:
            process.kill()
            await asyncio.wait_for(process.wait(), timeout=self.stop_timeout)
        except asyncio.TimeoutError:
            self._logger.warning(
                {
                    "event": "server_kill_timeout",
                    "message": f"Server process {process.pid} did not exit after kill",
                }
            )
        except (ProcessLookupError, OSError) as e:
            log_operation_failure(self._logger, "server_kill_failed", "Error killing server", e)

    async def _finish_stderr(self) -> None:
        # Let the pump drain what a dead process left behind, then give up
        task = self._stderr_task
        self._stderr_task = None
        if task is None:
            return
        await asyncio.wait({task}, timeout=self.stop_timeout)
        await self._cancel_task(task)

    @staticmethod
    async def _cancel_task(task: asyncio.Task[Any] | None) -> None:
        if task is None:
            return
        if task.done():
            if not task.cancelled():
                task.exception()  # Mark retrieved; the winner was already handled
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


def _premature_exit(returncode: int | None) -> PrematureExitError:
    if returncode is not None and returncode < 0:
        return PrematureExitError(None, signal=-returncode)
    return PrematureExitError(returncode)
