"""
Service Discovery

Implements UDP request/response discovery: the server answers
``DISCOVER_SERVER`` broadcasts with ``SERVER:<ip>:<port>``, and clients
locate a server without prior configuration.
"""

import socket
import time
import threading
import logging
from typing import Optional, Tuple
from dataclasses import dataclass

from lan_chat.shared.constants import (
    DEFAULT_DISCOVERY_PORT,
    DEFAULT_DISCOVERY_TIMEOUT,
    DEFAULT_ENCODING,
    DEFAULT_SOCKET_TIMEOUT,
    DISCOVERY_BUFFER_SIZE,
    DISCOVERY_REQUEST,
    FALLBACK_IP,
)
from lan_chat.shared.exceptions import (
    DiscoveryTimeoutError,
    InvalidDiscoveryResponseError,
    ServiceDiscoveryError,
)
from lan_chat.shared.models import ServerAddress


logger = logging.getLogger(__name__)


@dataclass
class DiscoveryConfig:
    """Configuration for service discovery."""
    discovery_port: int = DEFAULT_DISCOVERY_PORT
    request_token: str = DISCOVERY_REQUEST
    timeout: float = DEFAULT_DISCOVERY_TIMEOUT
    bind_address: str = ""
    broadcast_address: str = "<broadcast>"
    advertise_host: str = ""


def get_local_ip(peer_ip: Optional[str] = None) -> str:
    """
    Get the local IPv4 address used to reach a peer.

    Connecting a UDP socket sends nothing; it only selects the outgoing
    interface, whose address is then read back.

    Args:
        peer_ip: Address to route towards. Defaults to a public address.

    Returns:
        Local IP address as a string, 127.0.0.1 if none can be determined.
    """
    target = peer_ip or "8.8.8.8"
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.connect((target, 80))
            address = s.getsockname()[0]
    except OSError:
        return FALLBACK_IP

    if not address or address.startswith("0."):
        return FALLBACK_IP
    return address


class DiscoveryResponder:
    """
    Answers discovery requests with the chat server's TCP address.

    Runs on its own daemon thread. Socket errors stay inside the
    responder and never affect the TCP chat service.
    """

    def __init__(self, tcp_port: int, config: Optional[DiscoveryConfig] = None) -> None:
        """
        Initialize the responder.

        Args:
            tcp_port: Chat server port advertised in responses.
            config: Discovery configuration.
        """
        self.tcp_port = tcp_port
        self.config = config or DiscoveryConfig()
        self._socket: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._stats_lock = threading.Lock()
        self.total_requests = 0
        self.total_responses = 0

    def start(self) -> None:
        """
        Bind the UDP socket and start answering requests.

        Raises:
            ServiceDiscoveryError: If the discovery port cannot be bound.
        """
        if self.is_running():
            return

        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.config.bind_address, self.config.discovery_port))
            sock.settimeout(DEFAULT_SOCKET_TIMEOUT)
        except OSError as e:
            sock.close()
            raise ServiceDiscoveryError(
                f"Failed to bind discovery port {self.config.discovery_port}: {e}"
            ) from e

        self._socket = sock
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._serve_loop,
            name="DiscoveryResponder",
            daemon=True
        )
        self._thread.start()

        logger.info(f"Discovery responder listening on UDP port {self.get_bound_port()}")

    def stop(self) -> None:
        """Stop answering requests and release the socket."""
        self._stop_event.set()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=2.0)
        self._thread = None
        self._close_socket()

    def is_running(self) -> bool:
        """
        Check if the responder thread is active.

        Returns:
            True if running, False otherwise.
        """
        return self._thread is not None and self._thread.is_alive()

    def get_bound_port(self) -> int:
        """
        Get the UDP port the responder is bound to.

        Raises:
            ServiceDiscoveryError: If the responder has not been started.
        """
        if self._socket is None:
            raise ServiceDiscoveryError("Discovery responder is not started")
        return self._socket.getsockname()[1]

    def resolve_host(self, requester_ip: str) -> str:
        """Address advertised to a given requester."""
        return self.config.advertise_host or get_local_ip(requester_ip)

    def build_response(self, requester_ip: str) -> str:
        """Build the ``SERVER:<ip>:<port>`` reply for a requester."""
        return ServerAddress(host=self.resolve_host(requester_ip), port=self.tcp_port).format()

    def handle_request(self, data: bytes, address: Tuple[str, int]) -> Optional[str]:
        """
        Answer one datagram.

        Args:
            data: Datagram payload.
            address: Sender address.

        Returns:
            The response sent, or None if the datagram was ignored.
        """
        request = data.decode(DEFAULT_ENCODING, errors='replace').strip()
        if request != self.config.request_token:
            logger.debug(f"Ignoring discovery datagram from {address[0]}: {request[:40]!r}")
            return None

        with self._stats_lock:
            self.total_requests += 1
        response = self.build_response(address[0])
        try:
            self._socket.sendto(response.encode(DEFAULT_ENCODING), address)
        except (OSError, AttributeError) as e:
            logger.warning(f"Failed to answer discovery request from {address[0]}: {e}")
            return None

        with self._stats_lock:
            self.total_responses += 1
        logger.debug(f"Answered discovery request from {address[0]} with {response}")
        return response

    def _serve_loop(self) -> None:
        """Receive loop; the socket timeout lets the stop event be observed."""
        sock = self._socket
        while not self._stop_event.is_set():
            try:
                data, address = sock.recvfrom(DISCOVERY_BUFFER_SIZE)
            except socket.timeout:
                continue
            except OSError as e:
                if not self._stop_event.is_set():
                    logger.error(f"Discovery responder error: {e}")
                break

            try:
                self.handle_request(data, address)
            except Exception as e:
                logger.error(f"Unexpected error handling discovery request from {address}: {e}")

        logger.debug("Discovery responder stopped")

    def _close_socket(self) -> None:
        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None


class ServerLocator:
    """Client-side discovery: broadcasts a request and waits for a reply."""

    def __init__(self, config: Optional[DiscoveryConfig] = None) -> None:
        self.config = config or DiscoveryConfig()

    def locate(self, timeout: Optional[float] = None) -> ServerAddress:
        """
        Find a chat server on the local network.

        Args:
            timeout: Seconds to wait for a reply.

        Returns:
            Address from the first valid response.

        Raises:
            DiscoveryTimeoutError: If no valid response arrives in time.
            ServiceDiscoveryError: If the request cannot be sent.
        """
        if timeout is None:
            timeout = self.config.timeout

        request = self.config.request_token.encode(DEFAULT_ENCODING)
        destination = (self.config.broadcast_address, self.config.discovery_port)

        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            try:
                sock.sendto(request, destination)
            except OSError as e:
                raise ServiceDiscoveryError(f"Failed to send discovery request: {e}") from e

            end_time = time.monotonic() + timeout
            while True:
                remaining = end_time - time.monotonic()
                if remaining <= 0:
                    break
                sock.settimeout(remaining)
                try:
                    data, addr = sock.recvfrom(DISCOVERY_BUFFER_SIZE)
                except socket.timeout:
                    break
                except OSError as e:
                    raise ServiceDiscoveryError(f"Discovery receive failed: {e}") from e

                try:
                    server = ServerAddress.parse(data.decode(DEFAULT_ENCODING, errors='replace'))
                except InvalidDiscoveryResponseError as e:
                    logger.debug(f"Ignoring reply from {addr[0]}: {e}")
                    continue

                logger.info(f"Server found: {server.server_endpoint}")
                return server

        raise DiscoveryTimeoutError(f"No server answered within {timeout} seconds")
