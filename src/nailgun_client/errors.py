"""Error taxonomy for the Nailgun client.

Every failure the protocol engine reports is a NailgunError. Callers that need
to tell "the server misbehaved" from "the network failed" check for
ProtocolError versus TransportError.
"""

from __future__ import annotations


class NailgunError(Exception):
    """Base class for all errors reported by the client."""

    pass


class TransportError(NailgunError):
    """The connection failed: refused, reset, short read or short write."""

    def __init__(self, message: str, detail: BaseException | None = None) -> None:
        super().__init__(message)
        self.detail = detail


class ConnectError(TransportError):
    """No connection could be established after all attempts."""

    def __init__(
        self,
        address: str,
        attempts: int,
        detail: BaseException | None = None,
    ) -> None:
        super().__init__(
            f"Unable to connect to nailgun server at {address} after {attempts} attempt(s): {detail}",
            detail,
        )
        self.address = address
        self.attempts = attempts


class ProtocolError(NailgunError):
    """The server sent something the protocol does not allow."""

    def __init__(self, message: str, chunk_type: str | None = None) -> None:
        super().__init__(message)
        self.chunk_type = chunk_type


class LocalInputError(NailgunError):
    """Reading the local input stream failed."""

    def __init__(self, message: str, detail: BaseException | None = None) -> None:
        super().__init__(message)
        self.detail = detail


class LocalOutputError(NailgunError):
    """Writing forwarded output to a local sink failed."""

    def __init__(self, message: str, detail: BaseException | None = None) -> None:
        super().__init__(message)
        self.detail = detail


class SessionTimeoutError(NailgunError):
    """The overall session deadline elapsed before the exit chunk arrived."""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"No exit status received within {timeout:g}s")
        self.timeout = timeout
