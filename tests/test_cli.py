"""Tests for wsconsole.cli module."""

import pytest
from click.testing import CliRunner

from wsconsole import __version__
from wsconsole.cli import cli
from wsconsole.config import Mode


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def session(mocker):
    """Patch out the network session; asyncio.run returns exit code 0."""
    run_session = mocker.patch("wsconsole.cli.run_session", new=mocker.Mock(return_value="coro"))
    run = mocker.patch("wsconsole.cli.asyncio.run", return_value=0)
    return run_session, run


class TestModeFlags:
    """Tests for mutually exclusive modes."""

    def test_both_modes_exit_non_zero(self, runner, session):
        """Test no session is started when both modes are given."""
        run_session, _ = session
        result = runner.invoke(cli, ["--listen", "8080", "--connect", "ws://a"])
        assert result.exit_code != 0
        assert "mutually exclusive" in result.output
        run_session.assert_not_called()

    def test_no_mode_exit_non_zero(self, runner, session):
        run_session, _ = session
        result = runner.invoke(cli, [])
        assert result.exit_code != 0
        assert "required" in result.output
        run_session.assert_not_called()

    def test_connect_runs_client_session(self, runner, session):
        run_session, run = session
        result = runner.invoke(cli, ["-c", "ws://example.com:9000/x", "-o", "http://me"])
        assert result.exit_code == 0
        config = run_session.call_args.args[0]
        assert config.mode is Mode.CLIENT
        assert config.port == 9000
        assert config.origin == "http://me"
        run.assert_called_once_with("coro")

    def test_listen_runs_server_session(self, runner, session):
        run_session, _ = session
        result = runner.invoke(cli, ["-l", "9001", "--host", "127.0.0.1", "--path", "/ws"])
        assert result.exit_code == 0
        config = run_session.call_args.args[0]
        assert config.mode is Mode.SERVER
        assert (config.host, config.port, config.path) == ("127.0.0.1", 9001, "/ws")

    def test_session_exit_code_propagates(self, runner, session):
        _, run = session
        run.return_value = 1
        result = runner.invoke(cli, ["-c", "ws://a"])
        assert result.exit_code == 1


class TestTlsFlags:
    """Tests for certificate flags."""

    def test_cert_without_key(self, runner, session, tls_files):
        run_session, _ = session
        cert, _, _ = tls_files
        result = runner.invoke(cli, ["-l", "8443", "--cert", cert])
        assert result.exit_code != 0
        assert "--cert and --key must be given together" in result.output
        run_session.assert_not_called()

    def test_unreadable_key(self, runner, session, tls_files, tmp_path):
        run_session, _ = session
        cert, _, _ = tls_files
        result = runner.invoke(
            cli, ["-l", "8443", "--cert", cert, "--key", str(tmp_path / "missing")]
        )
        assert result.exit_code != 0
        assert "Unable to read private key" in result.output
        run_session.assert_not_called()

    def test_full_tls_flags(self, runner, session, tls_files):
        run_session, _ = session
        cert, key, ca = tls_files
        result = runner.invoke(
            cli,
            [
                "-l", "8443", "--cert", cert, "--key", key, "--ca", ca,
                "--cipher", "HIGH", "--honor-cipher-order",
                "--request-client-cert", "--reject-unverified",
            ],
        )
        assert result.exit_code == 0
        tls = run_session.call_args.args[0].tls
        assert tls.cipher_list == "HIGH"
        assert tls.honor_cipher_order
        assert tls.request_peer_certificate
        assert tls.reject_unverified_peers


class TestExtraFlags:
    def test_headers_and_auth(self, runner, session):
        run_session, _ = session
        result = runner.invoke(
            cli,
            ["-c", "ws://a", "-H", "X-A: 1", "-H", "X-B: 2", "--auth", "u:p", "-s", "chat"],
        )
        assert result.exit_code == 0
        config = run_session.call_args.args[0]
        names = [name for name, _ in config.request_headers()]
        assert names == ["Sec-WebSocket-Protocol", "X-A", "X-B", "Authorization"]

    def test_malformed_header(self, runner, session):
        result = runner.invoke(cli, ["-c", "ws://a", "-H", "broken"])
        assert result.exit_code != 0

    def test_no_color(self, runner, session):
        run_session, _ = session
        runner.invoke(cli, ["-c", "ws://a", "--no-color"])
        assert run_session.call_args.kwargs["color"] is False

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output
