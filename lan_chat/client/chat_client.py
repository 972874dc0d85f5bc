"""
Chat Client

Console chat client: locates the server through discovery, connects, and
relays lines between the terminal and the server.
"""

import socket
import threading
import logging
from typing import Callable, Optional

from rich.console import Console
from rich.text import Text

from lan_chat.shared.config import ClientConfig
from lan_chat.shared.constants import LINE_TERMINATOR, QUIT_COMMAND
from lan_chat.shared.exceptions import NetworkError, SessionSendError
from lan_chat.shared.models import ConnectionStatus, ServerAddress
from lan_chat.discovery.service_discovery import DiscoveryConfig, ServerLocator


logger = logging.getLogger(__name__)

PRIVATE_PREFIX = "(Private from "


def style_for_line(line: str) -> str:
    """Pick a rich style for a line received from the server."""
    if line.startswith(PRIVATE_PREFIX):
        return "bold magenta"
    if line.startswith("["):
        return "white"
    return "cyan"


class ChatClient:
    """
    Line-based chat client.

    A background thread prints every line the server sends; the calling
    thread reads user input and sends it. Sending an empty line or
    ``/quit`` ends the session.
    """

    def __init__(self, config: ClientConfig, console: Optional[Console] = None) -> None:
        """
        Initialize the chat client.

        Args:
            config: Client configuration.
            console: Rich console used for output.
        """
        self.config = config
        self.console = console or Console()
        self.status = ConnectionStatus.DISCONNECTED
        self.server: Optional[ServerAddress] = None

        self._socket: Optional[socket.socket] = None
        self._reader = None
        self._receiver_thread: Optional[threading.Thread] = None
        self._send_lock = threading.Lock()
        self.disconnected_event = threading.Event()

    def resolve_server(self) -> ServerAddress:
        """
        Determine which server to connect to.

        Returns:
            The configured address, or the one found by discovery.

        Raises:
            ServiceDiscoveryError: If discovery finds no server.
        """
        if not self.config.needs_discovery:
            return ServerAddress(host=self.config.host, port=self.config.port)

        self.console.print("[cyan]Scanning for servers on the local network...[/cyan]")
        locator = ServerLocator(DiscoveryConfig(
            discovery_port=self.config.discovery_port,
            timeout=self.config.discovery_timeout
        ))
        server = locator.locate()
        self.console.print(f"[green]Server found: {server.server_endpoint}[/green]")
        return server

    def connect(self, server: ServerAddress) -> None:
        """
        Open the TCP connection.

        Raises:
            NetworkError: If the connection cannot be established.
        """
        self.status = ConnectionStatus.CONNECTING
        try:
            self._socket = socket.create_connection((server.host, server.port))
        except OSError as e:
            self.status = ConnectionStatus.ERROR
            raise NetworkError(
                f"Failed to connect to {server.server_endpoint}: {e}",
                operation="connect",
                address=server.server_endpoint
            ) from e

        self._reader = self._socket.makefile(
            'r', encoding=self.config.encoding, errors='replace', newline=LINE_TERMINATOR
        )
        self.server = server
        self.status = ConnectionStatus.CONNECTED
        self.disconnected_event.clear()
        logger.info(f"Connected to {server.server_endpoint}")

    def start_receiving(self) -> None:
        """Start printing server lines on a background thread."""
        self._receiver_thread = threading.Thread(
            target=self._receive_loop,
            name="ChatClientReceiver",
            daemon=True
        )
        self._receiver_thread.start()

    def send_line(self, text: str) -> None:
        """
        Send one line to the server.

        Raises:
            SessionSendError: If not connected or the write fails.
        """
        if self._socket is None or self.status is not ConnectionStatus.CONNECTED:
            raise SessionSendError("Not connected to server", operation="send")

        data = (text + LINE_TERMINATOR).encode(self.config.encoding)
        with self._send_lock:
            try:
                self._socket.sendall(data)
            except OSError as e:
                self.status = ConnectionStatus.ERROR
                raise SessionSendError(f"Failed to send data: {e}", operation="send") from e

    def display(self, line: str) -> None:
        """Print one server line."""
        self.console.print(Text(line, style=style_for_line(line)))

    def run(self, read_input: Callable[[], str] = input) -> None:
        """
        Connect and run the interactive loop until the user quits or the
        server goes away.

        Args:
            read_input: Source of user lines.
        """
        self.connect(self.resolve_server())
        self.start_receiving()

        try:
            if self.config.username:
                self.send_line(self.config.username)

            while not self.disconnected_event.is_set():
                try:
                    line = read_input()
                except EOFError:
                    break

                if self.disconnected_event.is_set():
                    break
                if line.strip() == QUIT_COMMAND or line == "":
                    # An empty line ends the session on the server
                    self.send_line("")
                    break
                self.send_line(line)
        except NetworkError as e:
            self.console.print(f"[red]{e}[/red]")
        finally:
            self.close()

    def close(self) -> None:
        """Close the connection."""
        self.status = ConnectionStatus.DISCONNECTED
        if self._socket is not None:
            try:
                self._socket.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            for resource in (self._reader, self._socket):
                if resource is None:
                    continue
                try:
                    resource.close()
                except OSError as e:
                    logger.debug(f"Error closing connection: {e}")
            self._socket = None
            self._reader = None

        if self._receiver_thread and self._receiver_thread is not threading.current_thread():
            self._receiver_thread.join(timeout=1.0)

    def _receive_loop(self) -> None:
        reader = self._reader
        try:
            for raw in iter(reader.readline, ""):
                self.display(raw.rstrip("\r\n"))
        except (OSError, ValueError) as e:
            # ValueError: reader closed by close() on the input thread
            logger.debug(f"Connection lost: {e}")
        finally:
            if self.status is ConnectionStatus.CONNECTED:
                self.console.print("[yellow]Disconnected from server.[/yellow]")
            self.disconnected_event.set()
