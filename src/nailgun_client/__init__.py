"""Nailgun client - run commands on a long-lived Nailgun server.

Components:
- protocol: chunk framing and request encoding
- relay: forwards local stdin to the server
- demux: routes the server's stdout/stderr/exit chunks
- session: one command invocation over one connection
- connection: connection establishment with bounded retry
"""

__version__ = "0.1.0"

from .config import ClientConfig
from .connection import open_connection
from .demux import ResponseDemultiplexer, parse_exit_code
from .errors import (
    ConnectError,
    LocalInputError,
    LocalOutputError,
    NailgunError,
    ProtocolError,
    SessionTimeoutError,
    TransportError,
)
from .protocol import Chunk, ChunkType, RequestEncoder, decode_header, encode_chunk
from .relay import StdinRelay
from .session import ExitResult, NailgunSession, run_command

__all__ = [
    "__version__",
    # Session
    "NailgunSession",
    "ExitResult",
    "run_command",
    "open_connection",
    "ClientConfig",
    # Engine
    "Chunk",
    "ChunkType",
    "encode_chunk",
    "decode_header",
    "RequestEncoder",
    "StdinRelay",
    "ResponseDemultiplexer",
    "parse_exit_code",
    # Errors
    "NailgunError",
    "TransportError",
    "ConnectError",
    "ProtocolError",
    "LocalInputError",
    "LocalOutputError",
    "SessionTimeoutError",
]
