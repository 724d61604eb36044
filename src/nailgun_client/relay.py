"""Stdin relay.

Forwards the local input stream to the server while the response is being
drained:

    0 <block> 0 <block> ... .

Each non-empty block becomes one stdin chunk and end-of-input becomes a
single empty end marker. The relay is cancelled by the session as soon as
the server reports an exit status.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol, runtime_checkable

from .errors import LocalInputError, TransportError
from .protocol import ChunkType, ChunkWriter

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_SIZE = 8192


@runtime_checkable
class InputSource(Protocol):
    """Anything the relay can read local input from.

    asyncio.StreamReader satisfies this protocol. An empty result means
    end of input.
    """

    async def read(self, n: int = -1) -> bytes: ...


class StdinRelay:
    """Streams an InputSource to the server as stdin chunks.

    Args:
        source: Local input to forward
        writer: Chunk writer for the connection
        block_size: Maximum payload of a single stdin chunk
        start_signal: If given, nothing is sent until this event is set
            (the server's start-input chunk)
    """

    def __init__(
        self,
        source: InputSource,
        writer: ChunkWriter,
        block_size: int = DEFAULT_BLOCK_SIZE,
        start_signal: asyncio.Event | None = None,
    ):
        if block_size <= 0:
            raise ValueError("block_size must be positive")
        self._source = source
        self._writer = writer
        self._block_size = block_size
        self._start_signal = start_signal
        self._cancelled = False

        self.blocks_sent = 0
        self.bytes_sent = 0
        self.eof_sent = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Stop forwarding. No further chunks are sent after this call."""
        self._cancelled = True

    async def run(self) -> None:
        """Forward input until end-of-input or cancellation.

        Raises:
            LocalInputError: If reading the local input fails. The end marker
                is still sent so that the server does not wait for input forever.
            TransportError: If writing to the connection fails before the
                relay was cancelled.
        """
        if self._start_signal is not None:
            await self._start_signal.wait()

        while not self._cancelled:
            try:
                block = await self._source.read(self._block_size)
            except (OSError, ValueError) as e:
                if self._cancelled:
                    return
                logger.debug(f"Reading local input failed: {e}")
                await self._send_eof()
                raise LocalInputError(f"Failed to read standard input: {e}", e) from e

            if self._cancelled:
                return

            if not block:
                await self._send_eof()
                return

            if not await self._send(ChunkType.STDIN, block):
                return
            self.blocks_sent += 1
            self.bytes_sent += len(block)

    async def _send_eof(self) -> None:
        if await self._send(ChunkType.STDIN_EOF, b""):
            self.eof_sent = True
            logger.debug(f"Standard input finished after {self.bytes_sent} bytes")

    async def _send(self, chunk_type: ChunkType, payload: bytes) -> bool:
        """Send one chunk. Returns False if the relay was cancelled meanwhile."""
        if self._cancelled:
            return False
        try:
            await self._writer.send(chunk_type, payload)
        except TransportError:
            if self._cancelled:
                logger.debug("Ignoring write failure after stdin relay was cancelled")
                return False
            raise
        return True
