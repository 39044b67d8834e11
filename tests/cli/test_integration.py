"""Integration tests for the CLI — end-to-end command execution."""

from importlib.metadata import PackageNotFoundError
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from src.cli.config import TaurusConfig
from src.cli.factory import get_engine
from src.cli.main import app
from src.cli.protocol import AuthInitResult, TaurusClientError
from tests.helpers.fake_backend import FakeBackend, network_error

runner = CliRunner()


@pytest.fixture
def cli_backend(tmp_path):
    """Patch the CLI so every command talks to one in-memory backend."""
    backend = FakeBackend()
    config = TaurusConfig(
        auth={"token": "tok-secret-9876", "user_id": "user-1"},
        polling={"max_attempts": 3, "interval_ms": 1},
        storage={"hints_file": str(tmp_path / "hints.json")},
    )

    def _engine(cfg, navigate=None):
        return get_engine(cfg, navigate=navigate, client=backend)

    with patch("src.cli.main.load_config_or_default", return_value=config), \
         patch("src.cli.main.get_engine", side_effect=_engine):
        yield backend


class TestCLICommands:
    """Tests for CLI command invocation."""

    def test_version(self):
        """Version command prints version string."""
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "Taurus" in result.stdout

    def test_version_when_not_installed(self):
        """An uninstalled checkout reports an unknown version."""
        with patch("importlib.metadata.version", side_effect=PackageNotFoundError("taurus-client")):
            result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "vunknown" in result.stdout

    def test_help(self):
        """Help shows available commands."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("chat", "send", "provider", "files", "interact"):
            assert command in result.stdout

    def test_config_validate_no_file(self):
        """Config validate fails when no config file exists."""
        result = runner.invoke(app, ["config", "validate"])
        assert result.exit_code == 1

    def test_config_validate_with_file(self, tmp_path):
        """Config validate succeeds with valid YAML."""
        config_file = tmp_path / "taurus.yaml"
        config_file.write_text("backend:\n  base_url: http://pi.local:5000\n")
        result = runner.invoke(app, ["config", "validate", "--config", str(config_file)])
        assert result.exit_code == 0
        assert "valid" in result.stdout.lower()

    def test_config_validate_rejects_bad_values(self, tmp_path):
        config_file = tmp_path / "taurus.yaml"
        config_file.write_text("polling:\n  max_attempts: 0\n")
        result = runner.invoke(app, ["config", "validate", "--config", str(config_file)])
        assert result.exit_code == 1

    def test_config_show_masks_token(self, tmp_path):
        config_file = tmp_path / "taurus.yaml"
        config_file.write_text("auth:\n  token: super-secret-token-1234\n")
        result = runner.invoke(app, ["--config", str(config_file), "config", "show"])
        assert result.exit_code == 0
        assert "super-secret" not in result.stdout
        assert "***1234" in result.stdout

    def test_suggest_lists_cards(self):
        result = runner.invoke(app, ["suggest"])
        assert result.exit_code == 0
        assert "dijkstra" in result.stdout


class TestChatCommands:
    """Chat commands against the fake backend."""

    def test_chat_list(self, cli_backend):
        cli_backend.add_session("s-older", title="Older", age_minutes=10)
        cli_backend.add_session("s-newer", title="Newer", age_minutes=1)
        result = runner.invoke(app, ["chat", "list", "--json"])
        assert result.exit_code == 0
        assert result.stdout.index("s-newer") < result.stdout.index("s-older")

    def test_chat_list_failure_exits_nonzero(self, cli_backend):
        cli_backend.fail["list_sessions"] = network_error()
        result = runner.invoke(app, ["chat", "list"])
        assert result.exit_code == 1
        assert "Failed to fetch chats" in result.stdout

    def test_chat_new_and_delete(self, cli_backend):
        result = runner.invoke(app, ["chat", "new", "--title", "Planning"])
        assert result.exit_code == 0
        [session_id] = cli_backend.sessions
        assert cli_backend.sessions[session_id].title == "Planning"

        result = runner.invoke(app, ["chat", "delete", session_id])
        assert result.exit_code == 0
        assert "Chat deleted successfully" in result.stdout
        assert cli_backend.sessions == {}

    def test_chat_show_unknown(self, cli_backend):
        result = runner.invoke(app, ["chat", "show", "missing"])
        assert result.exit_code == 1


class TestSendCommand:
    """The send command end to end."""

    def test_send_prints_reply(self, cli_backend):
        result = runner.invoke(app, ["send", "Hello there"])
        assert result.exit_code == 0
        assert cli_backend.reply_text in result.stdout
        [(_, args)] = [c for c in cli_backend.calls if c[0] == "send_message"]
        assert args[2] == "m1"

    def test_send_timeout_exits_nonzero(self, cli_backend):
        cli_backend.replies_after = None
        result = runner.invoke(app, ["send", "Hello", "--json"])
        assert result.exit_code == 1
        assert '"outcome": "timeout"' in result.stdout

    def test_send_to_existing_session(self, cli_backend):
        cli_backend.add_session("s1")
        result = runner.invoke(app, ["send", "More please", "--session", "s1", "--model", "m2"])
        assert result.exit_code == 0
        assert ("send_message", ("s1", "More please", "m2", None)) in cli_backend.calls


class TestProviderCommands:
    """Provider commands against the fake backend."""

    def test_connect_prints_auth_url(self, cli_backend):
        cli_backend.auth_results["github"] = AuthInitResult(
            success=True, auth_required=True, auth_url="https://github.example/authorize"
        )
        result = runner.invoke(app, ["provider", "connect", "github", "--no-browser"])
        assert result.exit_code == 0
        assert "https://github.example/authorize" in result.stdout

    def test_unknown_provider(self, cli_backend):
        result = runner.invoke(app, ["provider", "connect", "dropbox"])
        assert result.exit_code != 0

    def test_callback_marks_connected(self, cli_backend, tmp_path):
        cli_backend.authorized["gdrive"] = True
        result = runner.invoke(app, [
            "provider", "callback", "http://app/chat?connection=gdrive&status=success",
        ])
        assert result.exit_code == 0
        assert "Successfully connected to Google Drive" in result.stdout
        assert "gdrive_connected" in (tmp_path / "hints.json").read_text()

    def test_disconnect_backend_failure_still_succeeds(self, cli_backend):
        cli_backend.fail["disconnect_provider"] = TaurusClientError("oops", 500)
        result = runner.invoke(app, ["provider", "disconnect", "gdocs"])
        assert result.exit_code == 0
        assert "please verify manually" in result.stdout

    def test_status_json(self, cli_backend):
        cli_backend.authorized["gsheets"] = True
        result = runner.invoke(app, ["provider", "status", "--json"])
        assert result.exit_code == 0
        assert '"gsheets"' in result.stdout


class TestFileCommands:
    """File commands against the fake backend."""

    def test_upload_and_remove(self, cli_backend, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("hello")
        result = runner.invoke(app, ["files", "upload", "s1", str(path)])
        assert result.exit_code == 0
        assert "Successfully uploaded 1 file(s)" in result.stdout

        result = runner.invoke(app, ["files", "remove", "s1", "file-notes.txt"])
        assert result.exit_code == 0
        assert "File removed" in result.stdout

    def test_remove_failure(self, cli_backend):
        cli_backend.fail["remove_file"] = TaurusClientError("nope", 404)
        result = runner.invoke(app, ["files", "remove", "s1", "f1"])
        assert result.exit_code == 1

    def test_list(self, cli_backend, tmp_path):
        path = tmp_path / "a.txt"
        path.write_text("x")
        runner.invoke(app, ["files", "upload", "s1", str(path)])
        result = runner.invoke(app, ["files", "list", "s1", "--json"])
        assert result.exit_code == 0
        assert "file-a.txt" in result.stdout
