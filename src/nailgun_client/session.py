"""Nailgun session.

A session is one command invocation over one connection:

    send request  ->  relay stdin  ||  demultiplex response  ->  close

The stdin relay only writes and the demultiplexer only reads, so they run
as two concurrent tasks on the same connection. The demultiplexer reaching
a terminal state ends the session: the relay is cancelled, and once both
tasks have stopped the connection is closed exactly once.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, BinaryIO, ClassVar

from .config import ClientConfig
from .connection import open_connection
from .demux import ResponseDemultiplexer
from .errors import LocalInputError, NailgunError, SessionTimeoutError, TransportError
from .protocol import ChunkWriter, RequestEncoder
from .relay import InputSource, StdinRelay
from .stdio import ensure_binary_stream

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Session lifecycle."""

    READY = "ready"
    RUNNING = "running"
    CLOSED = "closed"


@dataclass
class ExitResult:
    """The outcome of a session."""

    FATAL_EXIT_CODE: ClassVar[int] = 2

    exit_code: int | None = None
    """Exit code reported by the server, None if no exit chunk arrived"""
    error: NailgunError | None = None
    """Fatal error that ended the session"""
    input_error: LocalInputError | None = None
    """Failure reading local input; reported alongside the exit code"""

    @property
    def ok(self) -> bool:
        """True if the server reported an exit status."""
        return self.error is None and self.exit_code is not None

    @property
    def process_exit_code(self) -> int:
        """The exit code the invoking process should terminate with."""
        if self.ok:
            return self.exit_code  # type: ignore[return-value]
        return self.FATAL_EXIT_CODE


class NailgunSession:
    """Runs one command over an already open connection.

    Usage:
        reader, writer = await open_connection(config)
        async with NailgunSession(reader, writer, stdin=source) as session:
            result = await session.run("com.example.Main", ["--flag"], env, cwd)

    Args:
        reader: Read half of the connection
        writer: Write half of the connection
        stdin: Local input to forward (None: send no input)
        stdout: Sink for the command's standard output (default: sys.stdout.buffer)
        stderr: Sink for the command's standard error (default: sys.stderr.buffer)
        config: Buffer sizes and stdin behaviour
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        stdin: InputSource | None = None,
        stdout: BinaryIO | None = None,
        stderr: BinaryIO | None = None,
        config: ClientConfig | None = None,
    ):
        self.config = config or ClientConfig()
        self._reader = reader
        self._writer = writer
        self._chunk_writer = ChunkWriter(writer)
        self._stdin = stdin
        self._stdout = ensure_binary_stream(stdout, 1)
        self._stderr = ensure_binary_stream(stderr, 2)
        self._state = SessionState.READY
        self._closed = False

    @property
    def state(self) -> SessionState:
        return self._state

    async def run(
        self,
        command: str,
        arguments: Sequence[str] = (),
        environment: Mapping[str, str] | None = None,
        working_directory: str | None = None,
        timeout: float | None = None,
    ) -> ExitResult:
        """Send the command and relay its I/O until the server reports an exit status.

        Fatal errors are returned in the ExitResult, never raised. The
        connection is closed when this returns.

        Raises:
            RuntimeError: If the session has already run
            Exception: Anything outside the NailgunError hierarchy raised by the
                stdin source or the output sinks is re-raised unchanged, after
                the connection has been closed.
        """
        if self._state != SessionState.READY:
            raise RuntimeError("A session can only run a single command")
        self._state = SessionState.RUNNING
        if timeout is None:
            timeout = self.config.timeout

        try:
            encoder = RequestEncoder(command, arguments, environment, working_directory)
            try:
                await encoder.send(self._chunk_writer)
            except TransportError as e:
                logger.debug(f"Sending request failed: {e}")
                return ExitResult(error=e)

            logger.debug("Request sent, relaying response")
            return await self._exchange(timeout)
        finally:
            await self.close()

    async def _exchange(self, timeout: float | None) -> ExitResult:
        """Run the stdin relay and the demultiplexer until the response ends."""
        start_signal = asyncio.Event() if self.config.wait_for_start_input else None
        demux = ResponseDemultiplexer(
            self._reader,
            self._stdout,
            self._stderr,
            buffer_size=self.config.read_buffer_size,
            on_start_input=start_signal.set if start_signal is not None else None,
        )
        demux_task = asyncio.create_task(demux.run(), name="nailgun-demux")

        relay: StdinRelay | None = None
        relay_task: asyncio.Task[None] | None = None
        if self._stdin is not None and self.config.forward_stdin:
            relay = StdinRelay(
                self._stdin,
                self._chunk_writer,
                block_size=self.config.stdin_block_size,
                start_signal=start_signal,
            )
            relay_task = asyncio.create_task(relay.run(), name="nailgun-stdin")

        result = ExitResult()
        relay_error: NailgunError | None = None
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        pending: set[asyncio.Task[Any]] = {demux_task}
        if relay_task is not None:
            pending.add(relay_task)

        try:
            while not demux_task.done():
                remaining = None if deadline is None else max(0.0, deadline - loop.time())
                done, pending = await asyncio.wait(
                    pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )
                if not done and timeout is not None:
                    result.error = SessionTimeoutError(timeout)
                    break
                if relay_task is not None and relay_task in done:
                    # A failed stdin write does not end the response: the server
                    # may already have sent its output and exit status.
                    relay_error = self._relay_outcome(relay_task, result)
                    if relay_error is not None:
                        logger.debug(f"Stdin relay failed, still reading response: {relay_error}")
        finally:
            if relay is not None:
                relay.cancel()
            await self._stop(relay_task)
            await self._stop(demux_task)

        if demux_task.done() and not demux_task.cancelled() and result.error is None:
            error = demux_task.exception()
            if error is None:
                result.exit_code = demux_task.result()
            elif isinstance(error, NailgunError):
                result.error = error
            else:
                raise error

        # The relay failed first; a timeout is still reported as such
        if relay_error is not None and result.exit_code is None and not isinstance(
            result.error, SessionTimeoutError
        ):
            result.error = relay_error

        if relay_task is not None and result.input_error is None:
            self._relay_outcome(relay_task, result)

        if result.error is not None:
            logger.debug(f"Session failed: {result.error}")
        return result

    def _relay_outcome(self, task: asyncio.Task[None], result: ExitResult) -> NailgunError | None:
        """Record a finished relay's local input error; return a fatal error, if any."""
        if not task.done() or task.cancelled():
            return None
        error = task.exception()
        if error is None:
            return None
        if isinstance(error, LocalInputError):
            if result.input_error is None:
                logger.warning(f"{error}")
                result.input_error = error
            return None
        if isinstance(error, NailgunError):
            return error
        raise error

    @staticmethod
    async def _stop(task: asyncio.Task[Any] | None) -> None:
        """Cancel a task that is still running and wait until it has finished."""
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError, NailgunError):
            await task

    async def close(self) -> None:
        """Close the connection. Safe to call more than once; closes only once."""
        if self._closed:
            return
        self._closed = True
        self._state = SessionState.CLOSED
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (ConnectionError, OSError) as e:
            logger.debug(f"Error while closing connection: {e}")

    async def __aenter__(self) -> NailgunSession:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


async def run_command(
    command: str,
    arguments: Sequence[str] = (),
    environment: Mapping[str, str] | None = None,
    working_directory: str | None = None,
    config: ClientConfig | None = None,
    stdin: InputSource | None = None,
    stdout: BinaryIO | None = None,
    stderr: BinaryIO | None = None,
) -> ExitResult:
    """Connect to the server and run one command.

    Raises:
        ConnectError: If no connection could be established. Every error
            after that is returned in the ExitResult.
    """
    config = config or ClientConfig()
    reader, writer = await open_connection(config)
    session = NailgunSession(reader, writer, stdin=stdin, stdout=stdout, stderr=stderr, config=config)
    return await session.run(command, arguments, environment, working_directory)
