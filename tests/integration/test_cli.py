"""Tests for the ng command line."""

from __future__ import annotations

import os

import pytest
from click.testing import CliRunner
from fake_server import FakeNailgunServer

from nailgun_client.cli import main


@pytest.fixture
def server():
    with FakeNailgunServer() as server:
        yield server


def invoke(server: FakeNailgunServer, *args: str, **kwargs):
    runner = CliRunner()
    return runner.invoke(main, ["--port", str(server.port), *args], **kwargs)


class TestCli:
    """Tests for running commands through the CLI."""

    def test_exit_status_propagates(self, server) -> None:
        result = invoke(server, "exit", "7")
        assert result.exit_code == 7

    def test_output_and_arguments(self, server) -> None:
        """Options after the command belong to the command, not to ng."""
        result = invoke(server, "print", "--verbose", "-x", "plain")

        assert result.exit_code == 0
        assert "--verbose\n-x\nplain\n" in result.output
        assert server.requests[0].arguments == ["--verbose", "-x", "plain"]

    def test_stdin_forwarded(self, server) -> None:
        result = invoke(server, "echo", input="piped input\n")

        assert result.exit_code == 0
        assert "piped input\n" in result.output
        assert server.requests[0].stdin == b"piped input\n"

    def test_no_stdin(self, server) -> None:
        result = invoke(server, "--no-stdin", "exit", "0", input="ignored")

        assert result.exit_code == 0
        assert server.requests[0].stdin == b""
        assert not server.requests[0].stdin_closed

    def test_environment_and_directory_forwarded(self, server, tmp_path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("NG_TEST_VALUE", "forwarded")

        result = invoke(server, "exit", "0")

        assert result.exit_code == 0
        (request,) = server.requests
        assert request.environment["NG_TEST_VALUE"] == "forwarded"
        assert request.working_directory == os.getcwd()

    def test_port_from_environment(self, server) -> None:
        result = CliRunner().invoke(main, ["exit", "3"], env={"NAILGUN_PORT": str(server.port)})
        assert result.exit_code == 3

    def test_protocol_error_exits_2(self, server) -> None:
        result = invoke(server, "bad")

        assert result.exit_code == 2
        assert "Error communicating with background process" in result.output

    def test_timeout_exits_2(self, server) -> None:
        result = invoke(server, "--timeout", "0.2", "--no-stdin", "hang")

        assert result.exit_code == 2
        assert "No exit status received" in result.output


class TestCliErrors:
    """Tests for failures before any command runs."""

    def test_connect_failure_exits_1(self) -> None:
        with FakeNailgunServer() as server:
            port = server.port

        result = CliRunner().invoke(main, ["--port", str(port), "--connect-attempts", "1", "exit", "0"])

        assert result.exit_code == 1
        assert f"127.0.0.1:{port}" in result.output

    def test_missing_command_is_usage_error(self) -> None:
        result = CliRunner().invoke(main, [])
        assert result.exit_code == 2
        assert "COMMAND" in result.output

    def test_invalid_port(self) -> None:
        result = CliRunner().invoke(main, ["--port", "70000", "exit", "0"])
        assert result.exit_code == 2

    def test_empty_local_socket_path(self) -> None:
        result = CliRunner().invoke(main, ["--server", "local:", "exit", "0"])
        assert result.exit_code == 2
        assert "socket path" in result.output

    def test_version(self) -> None:
        result = CliRunner().invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "ng, version 0.1.0" in result.output
