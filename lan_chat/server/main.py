"""
Server Main Entry Point

Entry point for the LAN chat server with configuration loading,
logging setup, and error handling.
"""

import argparse
import signal
import sys
from typing import List, Optional

from lan_chat import __version__
from lan_chat.shared.config import ConfigurationLoader, ServerConfig
from lan_chat.shared.logging_config import configure_from_env, setup_logging, get_logger
from lan_chat.shared.exceptions import ChatServerError, ConfigurationError
from lan_chat.server.chat_server import ChatServer


EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_CONFIG_ERROR = 2
EXIT_SERVER_ERROR = 3


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        prog="lan-chat-server",
        description="LAN chat server with UDP discovery",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    parser.add_argument("--host", help="Host address to bind to")
    parser.add_argument("--port", type=int, help="TCP port for chat connections")
    parser.add_argument("--discovery-port", type=int, help="UDP port for service discovery")
    parser.add_argument(
        "--no-discovery",
        action="store_true",
        help="Do not answer discovery requests"
    )
    parser.add_argument(
        "--advertise-host",
        help="Address sent in discovery replies (default: interface facing the requester)"
    )
    parser.add_argument("--history-file", help="File that stores public messages")
    parser.add_argument(
        "--max-auth-attempts",
        type=int,
        help="Rejected usernames before disconnecting, 0 for unlimited"
    )
    parser.add_argument(
        "--send-timeout",
        type=float,
        help="Seconds a write to one client may block before it is disconnected"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level"
    )
    parser.add_argument("--log-file", help="Log file path")
    parser.add_argument("--config-file", help="JSON or YAML configuration file")
    parser.add_argument(
        "--version",
        action="version",
        version=f"LAN Chat Server {__version__}"
    )

    return parser


def apply_command_line_args(config: ServerConfig, args: argparse.Namespace) -> ServerConfig:
    """
    Override configuration values given on the command line.

    Args:
        config: Base configuration to update
        args: Parsed arguments

    Returns:
        Updated configuration
    """
    overrides = {
        "host": args.host,
        "port": args.port,
        "discovery_port": args.discovery_port,
        "advertise_host": args.advertise_host,
        "history_file": args.history_file,
        "max_auth_attempts": args.max_auth_attempts,
        "send_timeout": args.send_timeout,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)

    if args.no_discovery:
        config.discovery_enabled = False

    config.validate()
    return config


def load_server_config(args: argparse.Namespace) -> ServerConfig:
    """
    Load server configuration.

    Priority order:
    1. Command line arguments
    2. Environment variables
    3. Configuration file
    4. Defaults

    Raises:
        ConfigurationError: If configuration is invalid
    """
    config = ConfigurationLoader.load_server_config(args.config_file)
    return apply_command_line_args(config, args)


def install_signal_handlers(server: ChatServer) -> None:
    """Shut the server down on SIGINT/SIGTERM."""
    logger = get_logger(__name__)

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, initiating shutdown...")
        server.shutdown()

    signal.signal(signal.SIGINT, signal_handler)
    # Windows has no SIGTERM delivery for console apps
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, signal_handler)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the chat server.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    args = build_parser().parse_args(argv)

    try:
        if args.log_level or args.log_file:
            setup_logging(level=args.log_level or "INFO", log_file=args.log_file)
        else:
            configure_from_env()
    except Exception as e:
        print(f"Failed to set up logging: {e}", file=sys.stderr)
        return EXIT_UNEXPECTED

    logger = get_logger(__name__)
    logger.info("Starting LAN Chat Server...")

    try:
        config = load_server_config(args)
        logger.info(f"Server configuration loaded: {config.host}:{config.port}")

        server = ChatServer(config)
        install_signal_handlers(server)
        server.start()

        return EXIT_OK

    except KeyboardInterrupt:
        logger.info("Server interrupted by user")
        return EXIT_OK

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    except ChatServerError as e:
        logger.error(f"Server error: {e}")
        return EXIT_SERVER_ERROR

    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        return EXIT_UNEXPECTED


if __name__ == "__main__":
    sys.exit(main())
