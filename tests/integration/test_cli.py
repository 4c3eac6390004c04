"""Integration tests for CLI commands."""

from unittest.mock import AsyncMock, patch

import pytest
import yaml
from click.testing import CliRunner

from healthcheck import __version__
from healthcheck.cli import main
from healthcheck.core.models import NotificationKind, Outcome
from healthcheck.health.alerts import NotificationDispatcher, NotificationHandler


class RecordingHandler(NotificationHandler):
    """Handler that remembers what it was sent."""

    def __init__(self, result=True):
        self.result = result
        self.sent = []

    async def send(self, notification):
        self.sent.append(notification)
        return self.result


@pytest.fixture
def runner():
    """Create CLI test runner."""
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    """Write a configuration file with three services."""
    path = tmp_path / "healthcheck.yaml"
    path.write_text(yaml.safe_dump({
        "telegram_token": "bot-token",
        "telegram_chat_id": 7,
        "services": {
            "web": {
                "name": "Website",
                "description": "Landing page",
                "check": {"http": {"url": "https://example.com"}},
            },
            "cert": {
                "name": "Certificate",
                "check": {"certificate": {"host": "example.com"}},
            },
            "db": {
                "name": "database",
                "enabled": False,
                "check": {"tcpPing": {"host": "db.local", "port": 5432}},
            },
        },
    }))
    return path


class TestCLIBasics:
    """Basic CLI tests."""

    def test_help(self, runner):
        """Test --help shows usage."""
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "Service health monitor" in result.output

    def test_version(self, runner):
        """Test --version shows version."""
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_missing_config(self, runner, tmp_path):
        """A missing config file is reported as an error."""
        result = runner.invoke(main, ["-c", str(tmp_path / "nope.yaml"), "services"])
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_config_from_env(self, runner, config_file):
        """HEALTHCHECK_CONFIG selects the config file."""
        result = runner.invoke(main, ["services"], env={"HEALTHCHECK_CONFIG": str(config_file)})
        assert result.exit_code == 0
        assert "Website" in result.output


class TestTestServiceCommand:
    """Tests for the test-service command."""

    def run(self, runner, config_file, outcome, service_id="web"):
        with patch("healthcheck.cli.run_check", AsyncMock(return_value=outcome)) as mock_run:
            result = runner.invoke(main, ["-c", str(config_file), "test-service", service_id])
        return result, mock_run

    def test_pass(self, runner, config_file):
        """Passing checks exit 0."""
        result, mock_run = self.run(runner, config_file, Outcome.success())
        assert result.exit_code == 0
        assert "Testing service: Website" in result.output
        assert "✓ Service check PASSED" in result.output
        assert mock_run.call_args[0][1].name == "Website"

    def test_fail(self, runner, config_file):
        """Failing checks exit 1 with the reason."""
        result, _ = self.run(runner, config_file, Outcome.failure("Unexpected status: 503"))
        assert result.exit_code == 1
        assert "✗ Service check FAILED: Unexpected status: 503" in result.output

    def test_unknown(self, runner, config_file):
        """Unknown outcomes exit 2."""
        result, _ = self.run(runner, config_file, Outcome.unknown())
        assert result.exit_code == 2
        assert "UNKNOWN" in result.output

    def test_not_found(self, runner, config_file):
        """Unknown service identifiers exit 3."""
        result, mock_run = self.run(runner, config_file, Outcome.success(), service_id="nope")
        assert result.exit_code == 3
        assert "Service with ID 'nope' not found" in result.output
        mock_run.assert_not_called()

    def test_disabled_service_still_runs(self, runner, config_file):
        """Disabled services can be tested by hand."""
        result, _ = self.run(runner, config_file, Outcome.success(), service_id="db")
        assert result.exit_code == 0
        assert "disabled" in result.output


class TestNotifyCommand:
    """Tests for the notify command."""

    def test_error_message(self, runner, config_file):
        """Error messages are sent as alerts from the CLI."""
        handler = RecordingHandler()
        with patch("healthcheck.cli.build_dispatcher", return_value=NotificationDispatcher([handler])):
            result = runner.invoke(main, ["-c", str(config_file), "notify", "error", "disk full"])

        assert result.exit_code == 0
        assert "Error message sent" in result.output
        assert handler.sent[0].kind == NotificationKind.ALERT
        assert handler.sent[0].service_name == "CLI"
        assert handler.sent[0].message == "disk full"

    def test_success_message(self, runner, config_file):
        """Success messages are sent as recoveries."""
        handler = RecordingHandler()
        with patch("healthcheck.cli.build_dispatcher", return_value=NotificationDispatcher([handler])):
            result = runner.invoke(main, ["-c", str(config_file), "notify", "success", "all good"])

        assert result.exit_code == 0
        assert "Success message sent" in result.output
        assert handler.sent[0].kind == NotificationKind.RECOVERY

    def test_delivery_failure(self, runner, config_file):
        """Undelivered messages exit 1."""
        handler = RecordingHandler(result=False)
        with patch("healthcheck.cli.build_dispatcher", return_value=NotificationDispatcher([handler])):
            result = runner.invoke(main, ["-c", str(config_file), "notify", "error", "x"])

        assert result.exit_code == 1
        assert "Failed to send notification" in result.output

    def test_no_channel(self, runner, config_file):
        """Without handlers nothing is sent."""
        with patch("healthcheck.cli.build_dispatcher", return_value=NotificationDispatcher()):
            result = runner.invoke(main, ["-c", str(config_file), "notify", "error", "x"])

        assert result.exit_code == 1
        assert "No notification channel configured" in result.output

    def test_invalid_type(self, runner, config_file):
        """Only success and error are accepted."""
        result = runner.invoke(main, ["-c", str(config_file), "notify", "info", "x"])
        assert result.exit_code != 0


class TestServicesCommand:
    """Tests for the services command."""

    def test_list_all(self, runner, config_file):
        """All services are listed with their check type."""
        result = runner.invoke(main, ["-c", str(config_file), "services"])
        assert result.exit_code == 0
        assert "Website" in result.output
        assert "certificate" in result.output
        assert "db.local:5432" in result.output

    def test_list_enabled(self, runner, config_file):
        """--enabled hides disabled services."""
        result = runner.invoke(main, ["-c", str(config_file), "services", "--enabled"])
        assert result.exit_code == 0
        assert "Website" in result.output
        assert "database" not in result.output

    def test_empty(self, runner, tmp_path):
        """An empty service list is reported."""
        path = tmp_path / "empty.yaml"
        path.write_text("services: {}\n")
        result = runner.invoke(main, ["-c", str(path), "services"])
        assert result.exit_code == 0
        assert "No services configured" in result.output


class TestValidateCommand:
    """Tests for the validate command."""

    def test_valid(self, runner, config_file):
        """Valid files report the service counts."""
        result = runner.invoke(main, ["-c", str(config_file), "validate"])
        assert result.exit_code == 0
        assert "Configuration OK: 3 services (2 enabled)" in result.output

    def test_invalid(self, runner, tmp_path):
        """Invalid files exit 1 with the problem."""
        path = tmp_path / "bad.yaml"
        path.write_text("rereport: 0\n")
        result = runner.invoke(main, ["-c", str(path), "validate"])
        assert result.exit_code == 1
        assert "rereport" in result.output

    def test_telegram_warning(self, runner, tmp_path):
        """Missing Telegram settings produce a warning."""
        path = tmp_path / "plain.yaml"
        path.write_text("services: {}\n")
        result = runner.invoke(main, ["-c", str(path), "validate"])
        assert result.exit_code == 0
        assert "Telegram is not configured" in result.output
