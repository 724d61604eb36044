"""Client configuration.

Settings come from, in increasing precedence: the defaults below, the
NAILGUN_SERVER / NAILGUN_PORT environment variables, and explicit options.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

DEFAULT_SERVER = "127.0.0.1"
DEFAULT_PORT = 2113

SERVER_ENV = "NAILGUN_SERVER"
PORT_ENV = "NAILGUN_PORT"

LOCAL_PREFIX = "local:"


class AddressFamily(str, Enum):
    """How the server is reached."""

    TCP = "tcp"
    LOCAL = "local"  # Unix domain socket


@dataclass(frozen=True)
class ServerAddress:
    """A resolved server address."""

    family: AddressFamily
    host: str | None = None
    port: int | None = None
    path: str | None = None

    def __str__(self) -> str:
        if self.family == AddressFamily.LOCAL:
            return f"{LOCAL_PREFIX}{self.path}"
        return f"{self.host}:{self.port}"


def parse_port(value: str | int) -> int:
    """Parse and validate a TCP port."""
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid port {value!r}: must be an integer") from None
    if not 0 < port < 65536:
        raise ValueError(f"Invalid port {port}: must be between 1 and 65535")
    return port


@dataclass
class ClientConfig:
    """Configuration for one Nailgun client invocation."""

    # Server location ("host" or "local:/path/to/socket")
    server: str = DEFAULT_SERVER
    port: int = DEFAULT_PORT

    # Connection establishment
    connect_attempts: int = 10
    connect_delay: float = 0.05
    connect_backoff: float = 1.0
    max_connect_delay: float = 2.0

    # Overall deadline for the exchange (None = wait forever)
    timeout: float | None = None

    # I/O
    read_buffer_size: int = 16384
    stdin_block_size: int = 8192
    forward_stdin: bool = True
    wait_for_start_input: bool = False

    def __post_init__(self) -> None:
        self.port = parse_port(self.port)
        if self.connect_attempts < 1:
            raise ValueError("connect_attempts must be at least 1")
        if self.connect_delay < 0 or self.max_connect_delay < 0:
            raise ValueError("connect delays must not be negative")
        if self.connect_backoff < 1.0:
            raise ValueError("connect_backoff must be at least 1.0")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.read_buffer_size <= 0 or self.stdin_block_size <= 0:
            raise ValueError("buffer sizes must be positive")
        if self.server.startswith(LOCAL_PREFIX) and not self.server[len(LOCAL_PREFIX) :]:
            raise ValueError(f"Missing socket path in server address {self.server!r}")

    @property
    def address(self) -> ServerAddress:
        if self.server.startswith(LOCAL_PREFIX):
            return ServerAddress(AddressFamily.LOCAL, path=self.server[len(LOCAL_PREFIX) :])
        return ServerAddress(AddressFamily.TCP, host=self.server, port=self.port)

    @classmethod
    def from_env(cls, environ: Mapping[str, str], **overrides: object) -> ClientConfig:
        """Build a config from an environment snapshot.

        Empty variables are treated as unset. Keyword overrides take
        precedence over the environment.
        """
        values: dict[str, object] = {}
        if environ.get(SERVER_ENV):
            values["server"] = environ[SERVER_ENV]
        if environ.get(PORT_ENV):
            values["port"] = parse_port(environ[PORT_ENV])
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)  # type: ignore[arg-type]
