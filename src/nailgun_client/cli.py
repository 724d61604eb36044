"""Nailgun client CLI.

Runs a command on a Nailgun server as though it ran locally: arguments,
environment, working directory and stdin are forwarded; the command's
stdout, stderr and exit status are relayed back.

Usage:
    ng com.example.Main arg1 arg2         # Run on 127.0.0.1:2113
    ng --port 2114 com.example.Main       # Custom port
    ng --server local:/tmp/ng.sock Main   # Unix domain socket
    NAILGUN_SERVER=10.0.0.5 ng Main       # Server from environment
    ng --no-stdin Main < /dev/null        # Do not forward stdin

Exit status:
    The command's exit status, 1 if the server could not be reached,
    2 if communication with the server failed.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys

import click

from . import __version__
from .config import DEFAULT_PORT, DEFAULT_SERVER, PORT_ENV, SERVER_ENV, ClientConfig
from .errors import ConnectError
from .session import ExitResult, run_command
from .stdio import open_stdin

CONNECT_FAILED_EXIT_CODE = 1


def _configure_logging(verbose: bool) -> None:
    """Log to stderr only; stdout carries the command's output."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )


async def _run(config: ClientConfig, command: str, arguments: list[str]) -> ExitResult:
    stdin = await open_stdin() if config.forward_stdin else None
    try:
        return await run_command(
            command,
            arguments,
            environment=dict(os.environ),
            working_directory=os.getcwd(),
            config=config,
            stdin=stdin,
        )
    finally:
        if stdin is not None:
            stdin.close()


@click.command(
    context_settings={
        "ignore_unknown_options": True,
        "allow_interspersed_args": False,
        "help_option_names": ["-h", "--help"],
    }
)
@click.option(
    "--server",
    envvar=SERVER_ENV,
    default=DEFAULT_SERVER,
    show_default=True,
    help=f"Server host, or local:<path> for a unix socket [env: {SERVER_ENV}]",
)
@click.option(
    "--port",
    envvar=PORT_ENV,
    type=click.IntRange(1, 65535),
    default=DEFAULT_PORT,
    show_default=True,
    help=f"Server TCP port [env: {PORT_ENV}]",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Give up if the command has not exited after this many seconds",
)
@click.option(
    "--connect-attempts",
    type=click.IntRange(min=1),
    default=10,
    show_default=True,
    help="Connection attempts before giving up",
)
@click.option("--no-stdin", is_flag=True, help="Do not forward standard input")
@click.option(
    "--wait-for-start-input",
    is_flag=True,
    help="Only forward standard input once the server asks for it",
)
@click.option("--verbose", "-v", is_flag=True, help="Log protocol activity to stderr")
@click.version_option(__version__, prog_name="ng")
@click.argument("command")
@click.argument("arguments", nargs=-1, type=click.UNPROCESSED)
def main(
    server: str,
    port: int,
    timeout: float | None,
    connect_attempts: int,
    no_stdin: bool,
    wait_for_start_input: bool,
    verbose: bool,
    command: str,
    arguments: tuple[str, ...],
) -> None:
    """Run COMMAND with ARGUMENTS on a Nailgun server."""
    _configure_logging(verbose)

    try:
        config = ClientConfig(
            server=server,
            port=port,
            timeout=timeout,
            connect_attempts=connect_attempts,
            forward_stdin=not no_stdin,
            wait_for_start_input=wait_for_start_input,
        )
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    try:
        result = asyncio.run(_run(config, command, list(arguments)))
    except ConnectError as e:
        click.echo(f"{e}", err=True)
        sys.exit(CONNECT_FAILED_EXIT_CODE)

    if result.input_error is not None:
        click.echo(f"Warning: {result.input_error}", err=True)
    if result.error is not None:
        click.echo(f"Error communicating with background process: {result.error}", err=True)

    sys.exit(result.process_exit_code)


if __name__ == "__main__":
    main()
