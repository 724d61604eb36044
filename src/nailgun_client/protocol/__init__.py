"""Nailgun wire protocol.

Defines the chunk framing used in both directions and the encoding of
the request phase:
- Chunks: length-prefixed, type-tagged frames
- Request: arguments, environment, working directory, then command
"""

from .chunks import (
    HEADER_SIZE,
    MAX_PAYLOAD_LENGTH,
    Chunk,
    ChunkHeader,
    ChunkType,
    ChunkWriter,
    decode_header,
    encode_chunk,
)
from .request import FILE_SEPARATOR_VAR, PATH_SEPARATOR_VAR, RequestEncoder, quote_char

__all__ = [
    "HEADER_SIZE",
    "MAX_PAYLOAD_LENGTH",
    "Chunk",
    "ChunkHeader",
    "ChunkType",
    "ChunkWriter",
    "decode_header",
    "encode_chunk",
    "FILE_SEPARATOR_VAR",
    "PATH_SEPARATOR_VAR",
    "RequestEncoder",
    "quote_char",
]
