"""Request encoding.

A request is the fixed sequence of chunks the client sends before the
server starts the command:

    A* (arguments)  E* (environment)  E E (separators)  D (cwd)  C (command)

The server begins execution when it receives the C chunk, so it is
always sent last.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping, Sequence

from .chunks import Chunk, ChunkType, ChunkWriter

logger = logging.getLogger(__name__)

FILE_SEPARATOR_VAR = "NAILGUN_FILESEPARATOR"
PATH_SEPARATOR_VAR = "NAILGUN_PATHSEPARATOR"


def quote_char(char: str) -> str:
    """Quote a single character as a single-quoted literal, e.g. ':' -> "':'"."""
    if len(char) != 1:
        raise ValueError(f"Expected a single character, got {char!r}")
    escaped = char.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


class RequestEncoder:
    """Builds and sends the request phase of one Nailgun invocation.

    Args:
        command: The command (or main class) the server should run
        arguments: Arguments forwarded to the command, in order. The program
            name and the command name are not included.
        environment: Snapshot of the environment to forward
        working_directory: Directory the command runs in; made absolute
        file_separator: Separator between path components (default: os.sep)
        path_separator: Separator between search path entries (default: os.pathsep)
    """

    def __init__(
        self,
        command: str,
        arguments: Sequence[str] = (),
        environment: Mapping[str, str] | None = None,
        working_directory: str | None = None,
        file_separator: str = os.sep,
        path_separator: str = os.pathsep,
    ):
        if not command:
            raise ValueError("A command is required")
        self.command = command
        self.arguments = list(arguments)
        self.environment = dict(environment or {})
        self.working_directory = os.path.abspath(working_directory or os.getcwd())
        self.file_separator = file_separator
        self.path_separator = path_separator

    def argument_chunks(self) -> list[Chunk]:
        return [Chunk.text(ChunkType.ARGUMENT, arg) for arg in self.arguments]

    def environment_chunks(self) -> list[Chunk]:
        """One chunk per environment entry, then the two separator entries."""
        chunks = [
            Chunk.text(ChunkType.ENVIRONMENT, f"{name}={value}")
            for name, value in self.environment.items()
        ]
        chunks.append(
            Chunk.text(
                ChunkType.ENVIRONMENT,
                f"{FILE_SEPARATOR_VAR}={quote_char(self.file_separator)}",
            )
        )
        chunks.append(
            Chunk.text(
                ChunkType.ENVIRONMENT,
                f"{PATH_SEPARATOR_VAR}={quote_char(self.path_separator)}",
            )
        )
        return chunks

    def chunks(self) -> list[Chunk]:
        """The complete request, in wire order."""
        return [
            *self.argument_chunks(),
            *self.environment_chunks(),
            Chunk.text(ChunkType.DIRECTORY, self.working_directory),
            Chunk.text(ChunkType.COMMAND, self.command),
        ]

    async def send(self, writer: ChunkWriter) -> None:
        """Send the request.

        Raises:
            TransportError: If any write fails. The request is not resumable;
                the connection must be discarded.
        """
        chunks = self.chunks()
        logger.debug(
            f"Sending request for {self.command!r}: {len(self.arguments)} argument(s), "
            f"{len(self.environment)} environment variable(s), cwd={self.working_directory}"
        )
        for chunk in chunks:
            await writer.send_chunk(chunk)
