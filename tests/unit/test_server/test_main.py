"""
Unit Tests for Server Main Entry Point

Tests for configuration loading, command line parsing, and error handling.
"""

import json
import os
import signal
from unittest.mock import Mock, patch

import pytest

from lan_chat.server.main import (
    EXIT_CONFIG_ERROR,
    EXIT_OK,
    EXIT_SERVER_ERROR,
    EXIT_UNEXPECTED,
    apply_command_line_args,
    build_parser,
    install_signal_handlers,
    load_server_config,
    main,
)
from lan_chat.shared.config import ServerConfig
from lan_chat.shared.exceptions import ChatServerError, ConfigurationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate tests from LAN_CHAT_* variables and stray config files."""
    for name in list(os.environ):
        if name.startswith("LAN_CHAT_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)


class TestMainFunction:
    """Test the main entry point function."""

    @patch('lan_chat.server.main.install_signal_handlers')
    @patch('lan_chat.server.main.ChatServer')
    @patch('lan_chat.server.main.load_server_config')
    @patch('lan_chat.server.main.configure_from_env')
    def test_main_success(self, mock_logging, mock_load_config, mock_chat_server, mock_signals):
        """Test successful main execution."""
        mock_config = ServerConfig()
        mock_load_config.return_value = mock_config
        mock_server_instance = Mock()
        mock_chat_server.return_value = mock_server_instance

        result = main([])

        assert result == EXIT_OK
        mock_logging.assert_called_once()
        mock_chat_server.assert_called_once_with(mock_config)
        mock_signals.assert_called_once_with(mock_server_instance)
        mock_server_instance.start.assert_called_once()

    @patch('lan_chat.server.main.setup_logging')
    def test_main_logging_setup_failure(self, mock_setup_logging):
        """Test main with logging setup failure."""
        mock_setup_logging.side_effect = Exception("Logging setup failed")

        assert main(["--log-level", "DEBUG"]) == EXIT_UNEXPECTED

    @patch('lan_chat.server.main.setup_logging')
    def test_main_uses_log_arguments(self, mock_setup_logging, tmp_path):
        """Test explicit log options reach setup_logging."""
        with patch('lan_chat.server.main.ChatServer') as mock_chat_server, \
                patch('lan_chat.server.main.install_signal_handlers'):
            mock_chat_server.return_value = Mock()
            main(["--log-level", "DEBUG", "--log-file", str(tmp_path / "server.log")])

        mock_setup_logging.assert_called_once_with(
            level="DEBUG", log_file=str(tmp_path / "server.log")
        )

    @patch('lan_chat.server.main.install_signal_handlers')
    @patch('lan_chat.server.main.ChatServer')
    @patch('lan_chat.server.main.configure_from_env')
    def test_main_keyboard_interrupt(self, mock_logging, mock_chat_server, mock_signals):
        """Test main with keyboard interrupt."""
        mock_server_instance = Mock()
        mock_server_instance.start.side_effect = KeyboardInterrupt()
        mock_chat_server.return_value = mock_server_instance

        assert main([]) == EXIT_OK

    @patch('lan_chat.server.main.configure_from_env')
    def test_main_configuration_error(self, mock_logging):
        """Test main with an invalid command line value."""
        assert main(["--port", "70000"]) == EXIT_CONFIG_ERROR

    @patch('lan_chat.server.main.install_signal_handlers')
    @patch('lan_chat.server.main.ChatServer')
    @patch('lan_chat.server.main.configure_from_env')
    def test_main_server_error(self, mock_logging, mock_chat_server, mock_signals):
        """Test main when the server fails to start."""
        mock_server_instance = Mock()
        mock_server_instance.start.side_effect = ChatServerError("Port 9901 is already in use")
        mock_chat_server.return_value = mock_server_instance

        assert main([]) == EXIT_SERVER_ERROR

    @patch('lan_chat.server.main.install_signal_handlers')
    @patch('lan_chat.server.main.ChatServer')
    @patch('lan_chat.server.main.configure_from_env')
    def test_main_unexpected_error(self, mock_logging, mock_chat_server, mock_signals):
        """Test main with an unexpected exception."""
        mock_chat_server.side_effect = RuntimeError("Unexpected error")

        assert main([]) == EXIT_UNEXPECTED

    def test_version_flag(self, capsys):
        """Test --version prints and exits."""
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])

        assert exc_info.value.code == 0
        assert "LAN Chat Server" in capsys.readouterr().out


class TestCommandLineArgs:
    """Test argument parsing and overrides."""

    def test_defaults_leave_config_untouched(self):
        """Test no flags means no overrides."""
        args = build_parser().parse_args([])
        config = apply_command_line_args(ServerConfig(), args)

        assert config == ServerConfig()

    def test_all_overrides(self, tmp_path):
        """Test every flag is applied."""
        history = str(tmp_path / "h.txt")
        args = build_parser().parse_args([
            "--host", "127.0.0.1",
            "--port", "9000",
            "--discovery-port", "9001",
            "--no-discovery",
            "--advertise-host", "192.168.1.10",
            "--history-file", history,
            "--max-auth-attempts", "5",
            "--send-timeout", "0.5",
        ])

        config = apply_command_line_args(ServerConfig(), args)

        assert config.host == "127.0.0.1"
        assert config.port == 9000
        assert config.discovery_port == 9001
        assert config.discovery_enabled is False
        assert config.advertise_host == "192.168.1.10"
        assert config.history_file == history
        assert config.max_auth_attempts == 5
        assert config.send_timeout == 0.5

    def test_override_validation(self):
        """Test overrides are validated."""
        args = build_parser().parse_args(["--port", "9902"])

        with pytest.raises(ConfigurationError, match="cannot be the same"):
            apply_command_line_args(ServerConfig(), args)

    def test_invalid_log_level_rejected(self):
        """Test the parser rejects unknown log levels."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--log-level", "LOUD"])


class TestLoadServerConfig:
    """Test configuration source precedence."""

    def test_defaults(self):
        """Test defaults without files or environment."""
        config = load_server_config(build_parser().parse_args([]))

        assert config.port == 9901
        assert config.discovery_port == 9902
        assert config.history_file == "chat_history.txt"

    def test_file_then_env_then_args(self, tmp_path, monkeypatch):
        """Test command line beats environment, which beats the file."""
        config_file = tmp_path / "server.json"
        config_file.write_text(json.dumps({
            "server": {"port": 7000, "discovery_port": 7001, "history_file": "file.txt"}
        }))
        monkeypatch.setenv("LAN_CHAT_DISCOVERY_PORT", "7101")
        monkeypatch.setenv("LAN_CHAT_HISTORY_FILE", "env.txt")

        args = build_parser().parse_args([
            "--config-file", str(config_file),
            "--history-file", "args.txt",
        ])
        config = load_server_config(args)

        assert config.port == 7000
        assert config.discovery_port == 7101
        assert config.history_file == "args.txt"

    def test_missing_config_file(self, tmp_path):
        """Test an explicit missing file is a configuration error."""
        args = build_parser().parse_args(["--config-file", str(tmp_path / "nope.json")])

        with pytest.raises(ConfigurationError, match="not found"):
            load_server_config(args)


class TestSignalHandlers:
    """Test signal handler installation."""

    def test_handlers_shut_server_down(self):
        """Test SIGINT triggers a graceful shutdown."""
        server = Mock()
        with patch('lan_chat.server.main.signal.signal') as mock_signal:
            install_signal_handlers(server)

        registered = {c.args[0]: c.args[1] for c in mock_signal.call_args_list}
        assert signal.SIGINT in registered

        registered[signal.SIGINT](signal.SIGINT, None)
        server.shutdown.assert_called_once()
