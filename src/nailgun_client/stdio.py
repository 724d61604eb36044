"""Local standard streams.

Adapts the process's stdin/stdout/stderr for a session:
- stdin becomes an InputSource the relay can await without blocking the loop
- stdout/stderr default to the binary buffers of the standard streams
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import BinaryIO

logger = logging.getLogger(__name__)


def ensure_binary_stream(stream: BinaryIO | None, default_fd: int) -> BinaryIO:
    """Return stream, or the binary buffer of the given standard stream.

    Args:
        stream: Provided stream or None
        default_fd: File descriptor for default (0=stdin, 1=stdout, 2=stderr)
    """
    if stream is not None:
        return stream

    # Get raw binary stream, bypassing any text wrapper
    if default_fd == 0:
        return sys.stdin.buffer
    elif default_fd == 1:
        return sys.stdout.buffer
    else:
        return sys.stderr.buffer


class EmptyInput:
    """An input source that is already at end-of-input."""

    async def read(self, n: int = -1) -> bytes:
        return b""

    def close(self) -> None:
        pass


class FileInput:
    """Reads a blocking binary stream in the default executor.

    Used for regular files, which the event loop cannot watch. Reads from
    a regular file always complete, so the worker thread never hangs.
    """

    def __init__(self, stream: BinaryIO):
        self._stream = stream

    async def read(self, n: int = -1) -> bytes:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._stream.read, n)

    def close(self) -> None:
        pass


class PipeInput:
    """Reads a pipe, socket or terminal through the event loop."""

    def __init__(self, reader: asyncio.StreamReader, transport: asyncio.BaseTransport):
        self._reader = reader
        self._transport = transport

    async def read(self, n: int = -1) -> bytes:
        return await self._reader.read(n)

    def close(self) -> None:
        self._transport.close()


async def open_stdin(stream: BinaryIO | None = None) -> EmptyInput | FileInput | PipeInput:
    """Attach the local input stream to the running event loop.

    Pipes, sockets and terminals are read without blocking via
    connect_read_pipe, so a pending read can be abandoned when the session
    ends. Anything else falls back to executor reads.
    """
    if stream is None:
        if sys.stdin is None:
            return EmptyInput()
        stream = sys.stdin.buffer

    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    try:
        transport, _ = await loop.connect_read_pipe(lambda: protocol, stream)
    except (ValueError, OSError, NotImplementedError) as e:
        logger.debug(f"Reading standard input via executor: {e}")
        return FileInput(stream)
    return PipeInput(reader, transport)
