"""
Chat Client Main Entry Point

Main entry point for the console chat client.
"""

import argparse
import sys
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel

from lan_chat import __version__
from lan_chat.client.chat_client import ChatClient
from lan_chat.shared.config import ConfigurationLoader, ClientConfig
from lan_chat.shared.exceptions import ConfigurationError, NetworkError, ServiceDiscoveryError
from lan_chat.shared.logging_config import setup_logging


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        prog="lan-chat-client",
        description="LAN chat client",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument("--host", help="Server address; omit to use discovery")
    parser.add_argument("--port", type=int, help="Server TCP port")
    parser.add_argument("--username", help="Name sent as the first line")
    parser.add_argument("--discovery-port", type=int, help="UDP port for service discovery")
    parser.add_argument("--discovery-timeout", type=int, help="Seconds to wait for a discovery reply")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level"
    )
    parser.add_argument("--config-file", help="JSON or YAML configuration file")
    parser.add_argument("--version", action="version", version=f"LAN Chat Client {__version__}")
    return parser


def load_client_config(args: argparse.Namespace) -> ClientConfig:
    """Load client configuration, then apply command line overrides."""
    config = ConfigurationLoader.load_client_config(args.config_file)

    overrides = {
        "host": args.host,
        "port": args.port,
        "username": args.username,
        "discovery_port": args.discovery_port,
        "discovery_timeout": args.discovery_timeout,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)

    config.validate()
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the chat client.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level)
    console = Console()

    try:
        config = load_client_config(args)
    except ConfigurationError as e:
        console.print(f"[bold red]Configuration error: {e}[/bold red]")
        return 2

    console.print(Panel(
        "Type a message and press Enter to send it to everyone.\n"
        "/private <user> <message> sends a private message.\n"
        "/quit or an empty line leaves the chat.",
        title="LAN Chat",
        border_style="cyan"
    ))

    client = ChatClient(config, console=console)
    try:
        client.run()
    except ServiceDiscoveryError as e:
        console.print(f"[red]Server not found: {e}[/red]")
        return 1
    except NetworkError as e:
        console.print(f"[red]{e}[/red]")
        return 1
    except KeyboardInterrupt:
        client.close()
        console.print("\n[yellow]Goodbye.[/yellow]")

    return 0


if __name__ == "__main__":
    sys.exit(main())
