"""Response demultiplexer.

Reads the server's response stream and routes each chunk:

    1 -> output sink
    2 -> error sink
    S -> start-input signal (must be empty)
    X -> exit status, ends the response

Anything else is a protocol violation. Payloads of output chunks are
forwarded piecewise as they arrive, so a long-running command's output is
never buffered in full.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable
from typing import BinaryIO, Protocol

from .errors import LocalOutputError, ProtocolError, TransportError
from .protocol import HEADER_SIZE, ChunkHeader, ChunkType, decode_header

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 16384

_EXIT_CODE = re.compile(rb"-?[0-9]+")


class ChunkSource(Protocol):
    """The read half of a connection, as provided by asyncio.StreamReader."""

    async def read(self, n: int = -1) -> bytes: ...

    async def readexactly(self, n: int) -> bytes: ...


def parse_exit_code(payload: bytes) -> int:
    """Parse the payload of an exit chunk.

    Accepts an optional leading minus sign followed by ASCII digits. Surrounding
    whitespace and a leading plus sign are rejected.

    Raises:
        ProtocolError: If the payload is not a decimal integer.
    """
    if not _EXIT_CODE.fullmatch(payload):
        raise ProtocolError(
            f"Invalid exit status payload {payload[:32]!r}",
            chunk_type=ChunkType.EXIT.value,
        )
    return int(payload)


class ResponseDemultiplexer:
    """Routes the server's response chunks until the exit status arrives.

    Args:
        reader: Read half of the connection
        stdout: Sink for standard output chunks
        stderr: Sink for standard error chunks
        buffer_size: Largest single read from the connection
        on_start_input: Called whenever a start-input chunk arrives
    """

    def __init__(
        self,
        reader: ChunkSource,
        stdout: BinaryIO,
        stderr: BinaryIO,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        on_start_input: Callable[[], None] | None = None,
    ):
        if buffer_size <= 0:
            raise ValueError("buffer_size must be positive")
        self._reader = reader
        self._stdout = stdout
        self._stderr = stderr
        self._buffer_size = buffer_size
        self._on_start_input = on_start_input

        self.chunks_received = 0
        self.start_input_count = 0

    async def run(self) -> int:
        """Demultiplex the response.

        Returns:
            The exit code reported by the server

        Raises:
            TransportError: If the connection fails or ends early
            ProtocolError: If the server violates the protocol
            LocalOutputError: If a sink cannot be written
        """
        while True:
            header = decode_header(await self._read_exactly(HEADER_SIZE, "chunk header"))
            self.chunks_received += 1
            logger.debug(f"Received chunk {header.type!r} ({header.length} bytes)")

            chunk_type = header.chunk_type()
            if chunk_type is ChunkType.STDOUT:
                await self._forward(header, self._stdout)
            elif chunk_type is ChunkType.STDERR:
                await self._forward(header, self._stderr)
            elif chunk_type is ChunkType.START_INPUT:
                self._start_input(header)
            elif chunk_type is ChunkType.EXIT:
                payload = await self._read_exactly(header.length, "exit status")
                exit_code = parse_exit_code(payload)
                logger.debug(f"Server reported exit code {exit_code}")
                return exit_code
            else:
                raise ProtocolError(
                    f"Unexpected chunk type {header.type!r}", chunk_type=header.type
                )

    def _start_input(self, header: ChunkHeader) -> None:
        if header.length != 0:
            raise ProtocolError(
                f"Expected 0 length for start-input chunk, got {header.length}",
                chunk_type=header.type,
            )
        self.start_input_count += 1
        if self._on_start_input is not None:
            self._on_start_input()

    async def _forward(self, header: ChunkHeader, sink: BinaryIO) -> None:
        """Copy a chunk's payload to the sink, one read at a time."""
        remaining = header.length
        while remaining > 0:
            try:
                data = await self._reader.read(min(remaining, self._buffer_size))
            except (ConnectionError, OSError) as e:
                raise TransportError(f"Failed to read {header.type!r} chunk: {e}", e) from e
            if not data:
                raise TransportError(
                    f"Connection closed with {remaining} byte(s) of {header.type!r} chunk unread"
                )
            try:
                sink.write(data)
                sink.flush()
            except (OSError, ValueError) as e:
                raise LocalOutputError(f"Failed to write forwarded output: {e}", e) from e
            remaining -= len(data)

    async def _read_exactly(self, count: int, what: str) -> bytes:
        try:
            return await self._reader.readexactly(count)
        except asyncio.IncompleteReadError as e:
            raise TransportError(
                f"Unexpected short read of {what}: got {len(e.partial)} of {count} byte(s)", e
            ) from e
        except (ConnectionError, OSError) as e:
            raise TransportError(f"Failed to read {what}: {e}", e) from e
