"""Chunk framing for the Nailgun wire protocol.

Every frame on the socket, in both directions, has the same layout:

    length (4 bytes, big-endian, unsigned) | type (1 byte, ASCII) | payload

Wire example (a single argument "--help"):
    00 00 00 06 41 2d 2d 68 65 6c 70
    \\_________/ |  \\_______________/
      length=6  'A'    payload
"""

from __future__ import annotations

import asyncio
import logging
import struct
from enum import Enum
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, field_validator

from ..errors import TransportError

logger = logging.getLogger(__name__)

HEADER = struct.Struct(">Ic")
HEADER_SIZE = HEADER.size  # 5

MAX_PAYLOAD_LENGTH = 0xFFFFFFFF


class ChunkType(str, Enum):
    """All chunk tags known to the protocol."""

    # Request phase (client -> server)
    ARGUMENT = "A"
    ENVIRONMENT = "E"
    DIRECTORY = "D"
    COMMAND = "C"

    # Input stream (client -> server)
    STDIN = "0"
    STDIN_EOF = "."

    # Response stream (server -> client)
    STDOUT = "1"
    STDERR = "2"
    START_INPUT = "S"
    EXIT = "X"

    @property
    def tag(self) -> bytes:
        """The single wire byte for this chunk type."""
        return self.value.encode("ascii")


class ChunkHeader(NamedTuple):
    """A decoded frame header.

    `type` is the raw one-character tag, so that tags outside ChunkType
    can still be reported.
    """

    length: int
    type: str

    def chunk_type(self) -> ChunkType | None:
        """Return the known ChunkType for this header, or None."""
        try:
            return ChunkType(self.type)
        except ValueError:
            return None


def encode_chunk(chunk_type: ChunkType, payload: bytes = b"") -> bytes:
    """Encode a (type, payload) pair into a complete wire frame."""
    if len(payload) > MAX_PAYLOAD_LENGTH:
        raise ValueError(
            f"Chunk payload of {len(payload)} bytes exceeds the 32-bit length field"
        )
    return HEADER.pack(len(payload), chunk_type.tag) + payload


def decode_header(header: bytes) -> ChunkHeader:
    """Decode exactly HEADER_SIZE bytes into a ChunkHeader."""
    if len(header) != HEADER_SIZE:
        raise ValueError(f"Chunk header must be {HEADER_SIZE} bytes, got {len(header)}")
    length, tag = HEADER.unpack(header)
    return ChunkHeader(length, tag.decode("latin-1"))


class Chunk(BaseModel):
    """One frame of the protocol: a tag and its payload."""

    model_config = ConfigDict(frozen=True)

    type: ChunkType
    payload: bytes = b""

    @field_validator("payload")
    @classmethod
    def _fits_length_field(cls, value: bytes) -> bytes:
        if len(value) > MAX_PAYLOAD_LENGTH:
            raise ValueError("payload exceeds the 32-bit length field")
        return value

    @property
    def length(self) -> int:
        return len(self.payload)

    def to_bytes(self) -> bytes:
        """Serialize this chunk to its wire frame."""
        return encode_chunk(self.type, self.payload)

    @classmethod
    def text(cls, chunk_type: ChunkType, value: str) -> Chunk:
        """Create a chunk whose payload is an OS string.

        Uses surrogateescape so that undecodable environment entries and
        paths survive unchanged.
        """
        return cls(type=chunk_type, payload=value.encode("utf-8", "surrogateescape"))


class ChunkWriter:
    """Writes whole frames to the write half of a connection.

    Each frame goes to the transport in a single write, so a frame is never
    split. Only one task writes at a time: the request, then the stdin relay.
    """

    def __init__(self, writer: asyncio.StreamWriter) -> None:
        self._writer = writer

    async def send(self, chunk_type: ChunkType, payload: bytes = b"") -> None:
        """Send one frame and wait until the transport has accepted it."""
        frame = encode_chunk(chunk_type, payload)
        try:
            self._writer.write(frame)
            await self._writer.drain()
        except (ConnectionError, OSError) as e:
            raise TransportError(f"Failed to send {chunk_type.name} chunk: {e}", e) from e
        logger.debug(f"Sent chunk {chunk_type.value!r} ({len(payload)} bytes)")

    async def send_chunk(self, chunk: Chunk) -> None:
        await self.send(chunk.type, chunk.payload)
