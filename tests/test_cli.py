"""Tests for the idlink CLI."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import httpx
from click.testing import CliRunner

from idlink import __version__
from idlink.cli import main


def mock_http_client(get=None, post=None) -> MagicMock:
    client = MagicMock()
    client.__enter__ = MagicMock(return_value=client)
    client.__exit__ = MagicMock(return_value=False)
    if get is not None:
        client.get = get
    if post is not None:
        client.post = post
    return client


def json_response(payload, status: int = 200) -> MagicMock:
    response = MagicMock()
    response.status_code = status
    response.json.return_value = payload
    return response


class TestCLIBasics:
    """Basic CLI tests."""

    def test_help(self):
        """Test --help lists the commands."""
        runner = CliRunner()
        result = runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        for command in ("version", "providers", "status", "reload"):
            assert command in result.output

    def test_version_command(self):
        """Test version command."""
        runner = CliRunner()
        result = runner.invoke(main, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.output


class TestProvidersCommand:
    """Tests for the providers command."""

    def test_lists_configured_providers(self, tmp_path):
        """Test usable and incomplete providers are shown."""
        path = tmp_path / "idlink.yaml"
        path.write_text(
            "host: example.org\n"
            "providers:\n"
            "  google:\n"
            "    enabled: true\n"
            "    client_id: gid\n"
            "    client_secret: gsecret\n"
            "  discord:\n"
            "    enabled: true\n"
        )
        runner = CliRunner()
        result = runner.invoke(main, ["providers", "--config", str(path), "--json"])

        assert result.exit_code == 0
        rows = {row["id"]: row for row in json.loads(result.output)}
        assert rows["google"]["usable"] is True
        assert rows["google"]["callback"] == "http://example.org/auth/google"
        assert rows["discord"]["usable"] is False
        assert rows["discord"]["credentials"] is False

    def test_no_providers(self, tmp_path):
        """Test the empty case."""
        path = tmp_path / "idlink.yaml"
        path.write_text("host: example.org\n")
        runner = CliRunner()
        result = runner.invoke(main, ["providers", "--config", str(path)])

        assert result.exit_code == 0
        assert "No providers configured" in result.output


class TestStatusCommand:
    """Tests for the status command."""

    def test_status_healthy(self):
        """Test health and providers are shown."""

        def get(url):
            if url.endswith("/health"):
                return json_response({"status": "healthy"})
            return json_response({"services": [{"id": "google"}, {"id": "twitch"}]})

        client = mock_http_client(get=MagicMock(side_effect=get))
        with patch("idlink.cli.httpx.Client", return_value=client):
            runner = CliRunner()
            result = runner.invoke(main, ["status", "--server", "http://gw:8080/"])

        assert result.exit_code == 0
        assert "healthy" in result.output
        assert "google, twitch" in result.output
        client.get.assert_any_call("http://gw:8080/health")

    def test_status_unreachable(self):
        """Test connection errors exit non-zero."""
        client = mock_http_client(get=MagicMock(side_effect=httpx.ConnectError("refused")))
        with patch("idlink.cli.httpx.Client", return_value=client):
            runner = CliRunner()
            result = runner.invoke(main, ["status"])

        assert result.exit_code == 1
        assert "Error connecting to server" in result.output


class TestReloadCommand:
    """Tests for the reload command."""

    def test_reload_sends_token(self):
        """Test the management token is sent and results are printed."""
        post = MagicMock(
            return_value=json_response({"success": True, "providers": {"google": True, "vk": False}})
        )
        client = mock_http_client(post=post)
        with patch("idlink.cli.httpx.Client", return_value=client):
            runner = CliRunner()
            result = runner.invoke(main, ["reload", "--token", "s3cret"])

        assert result.exit_code == 0
        post.assert_called_once_with(
            "http://localhost:8080/admin/reload", headers={"X-Manage-Token": "s3cret"}
        )
        assert "google: usable" in result.output
        assert "vk: inert" in result.output

    def test_reload_unauthorized(self):
        """Test a rejected token exits non-zero."""
        client = mock_http_client(post=MagicMock(return_value=json_response({}, status=401)))
        with patch("idlink.cli.httpx.Client", return_value=client):
            runner = CliRunner()
            result = runner.invoke(main, ["reload", "--token", "wrong"])

        assert result.exit_code == 1
        assert "Unauthorized" in result.output

    def test_reload_token_from_env(self):
        """Test the token can come from IDLINK_MANAGE_TOKEN."""
        post = MagicMock(return_value=json_response({"success": True, "providers": {}}))
        client = mock_http_client(post=post)
        with patch("idlink.cli.httpx.Client", return_value=client):
            runner = CliRunner()
            result = runner.invoke(main, ["reload"], env={"IDLINK_MANAGE_TOKEN": "from-env"})

        assert result.exit_code == 0
        assert post.call_args.kwargs["headers"] == {"X-Manage-Token": "from-env"}


class TestServerCommand:
    """Tests for the idlink-server entry point."""

    def test_help(self):
        """Test the server command documents its options."""
        from idlink.server.main import main as server_main

        runner = CliRunner()
        result = runner.invoke(server_main, ["--help"])

        assert result.exit_code == 0
        assert "--config" in result.output
        assert "--bind" in result.output

    def test_runs_with_config(self, tmp_path):
        """Test options are applied before the server starts."""
        from idlink.server import main as server_module

        path = tmp_path / "idlink.yaml"
        path.write_text("host: example.org\n")
        runner = CliRunner()
        with patch.object(server_module, "run_server", MagicMock()) as run_server, patch.object(
            server_module.asyncio, "run"
        ) as run:
            result = runner.invoke(
                server_module.main, ["--config", str(path), "--bind", "127.0.0.1:9000"]
            )

        assert result.exit_code == 0, result.output
        config, config_path = run_server.call_args.args
        assert config.host == "example.org"
        assert config.bind == "127.0.0.1:9000"
        assert config_path == str(path)
        run.assert_called_once()
