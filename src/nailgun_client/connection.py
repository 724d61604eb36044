"""Connection establishment.

Opens the socket a session runs over, either TCP (host:port) or a local
domain socket ("local:/path"). A freshly started server may not be
accepting yet, so connecting is retried a bounded number of times.
"""

from __future__ import annotations

import asyncio
import logging
import sys

from .config import AddressFamily, ClientConfig, ServerAddress
from .errors import ConnectError

logger = logging.getLogger(__name__)

StreamPair = tuple[asyncio.StreamReader, asyncio.StreamWriter]


async def _dial(address: ServerAddress, limit: int) -> StreamPair:
    if address.family == AddressFamily.LOCAL:
        if sys.platform == "win32":
            raise OSError("Local domain sockets are not supported on this platform")
        return await asyncio.open_unix_connection(address.path, limit=limit)
    return await asyncio.open_connection(address.host, address.port, limit=limit)


async def open_connection(config: ClientConfig) -> StreamPair:
    """Connect to the server described by config.

    Returns:
        The (reader, writer) pair of the new connection

    Raises:
        ConnectError: If every attempt failed
    """
    address = config.address
    limit = max(config.read_buffer_size, 2**16)
    delay = config.connect_delay
    last_error: OSError | None = None

    for attempt in range(1, config.connect_attempts + 1):
        try:
            streams = await _dial(address, limit)
        except OSError as e:
            last_error = e
            logger.debug(
                f"Connection attempt {attempt}/{config.connect_attempts} to {address} failed: {e}"
            )
            if attempt < config.connect_attempts:
                await asyncio.sleep(delay)
                delay = min(delay * config.connect_backoff, config.max_connect_delay)
            continue

        logger.debug(f"Connected to {address} (attempt {attempt})")
        return streams

    raise ConnectError(str(address), config.connect_attempts, last_error)
