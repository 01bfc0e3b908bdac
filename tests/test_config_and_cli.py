"""
Tests for settings loading and the CLI entrypoint.
"""

import httpx
import pytest
from rich.layout import Layout
from typer.testing import CliRunner

from flag_client import sse_manager
from flag_client.sse_manager import SSEManager
from flag_client.transport import HttpxTransport
from flag_client.visualizer import Visualizer
from flag_shared.config import DEFAULT_BASE_URL, Settings
from flag_shared.errors import DecodingError
from flag_shared.models import FlagEvent
from runner import app


runner = CliRunner()


class TestSettings:
    """Test cases for environment-backed settings."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("FLAG_STREAM_API_KEY", raising=False)
        monkeypatch.delenv("FLAG_STREAM_BASE_URL", raising=False)

        settings = Settings(_env_file=None)

        assert settings.BASE_URL == DEFAULT_BASE_URL
        assert settings.API_KEY is None
        assert settings.READ_TIMEOUT_S == 60.0

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("FLAG_STREAM_API_KEY", "env-key")
        monkeypatch.setenv("FLAG_STREAM_BASE_URL", "http://localhost:8088/")
        monkeypatch.setenv("FLAG_STREAM_READ_TIMEOUT_S", "15")

        settings = Settings(_env_file=None)

        assert settings.API_KEY == "env-key"
        assert settings.BASE_URL == "http://localhost:8088/"
        assert settings.READ_TIMEOUT_S == 15.0


class TestCLI:
    """Test cases for the typer app."""

    def test_url_command(self):
        result = runner.invoke(app, ["url", "--api-key", "abc", "--base-url", "https://realtime.flagsmith.com/"])

        assert result.exit_code == 0
        assert "https://realtime.flagsmith.com/sse/environments/abc/stream" in result.output

    def test_url_command_without_key(self):
        result = runner.invoke(app, ["url", "--api-key", ""])

        assert result.exit_code == 1

    def test_url_command_with_bad_base_url(self):
        result = runner.invoke(app, ["url", "--api-key", "abc", "--base-url", "ftp://example.com"])

        assert result.exit_code == 1


class TestListen:
    """Test cases for the listen command and the dashboard."""

    @pytest.fixture(autouse=True)
    def mock_stream(self, monkeypatch):
        """Point every manager the CLI builds at an in-memory endpoint."""
        requests = []

        def respond(request):
            requests.append(request)
            return httpx.Response(200, content=iter([b'data:{"updated_at": 1.5}\n', b"data:oops\n"]))

        monkeypatch.setattr(
            sse_manager, "HttpxTransport",
            lambda: HttpxTransport(client=httpx.Client(transport=httpx.MockTransport(respond))),
        )
        monkeypatch.setattr("runner.configure_logging", lambda level: None)
        return requests

    def test_listen_plain(self, mock_stream):
        result = runner.invoke(app, ["listen", "--plain", "--duration", "0.2", "--api-key", "abc"])

        assert result.exit_code == 0
        assert "flags updated_at=1.5" in result.output
        assert str(mock_stream[0].url) == "https://realtime.flagsmith.com/sse/environments/abc/stream"

    def test_listen_plain_without_key(self, mock_stream):
        result = runner.invoke(app, ["listen", "--plain", "--duration", "0.2", "--api-key", ""])

        assert result.exit_code == 0
        assert "MissingAPIKeyError" in result.output
        assert mock_stream == []

    def test_listen_dashboard(self, mock_stream):
        result = runner.invoke(app, ["listen", "--duration", "0.2", "--api-key", "abc"])

        assert result.exit_code == 0
        assert len(mock_stream) >= 1


class TestVisualizer:
    """Test cases for the dashboard's event handling and layout."""

    def test_on_event_and_layout(self, transport):
        manager = SSEManager(transport=transport, api_key="abc")
        visualizer = Visualizer(manager)

        visualizer.on_event(FlagEvent(updated_at=1726225560.0))
        visualizer.on_event(DecodingError(ValueError("bad payload")))

        assert len(visualizer.recent_events) == 1
        assert visualizer.recent_events[0][2] == "1726225560.000"
        assert "DecodingError" in visualizer.errors[0]
        assert isinstance(visualizer.generate_layout(), Layout)

    def test_run_stops_manager(self, transport):
        manager = SSEManager(transport=transport, api_key="abc")

        Visualizer(manager).run(0.05)

        assert manager.is_active is False
        assert transport.last.resumed is True
        assert transport.last.cancel_count == 1
