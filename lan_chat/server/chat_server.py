"""
Chat Server Module

Main server class: binds the TCP listener, runs the accept loop, and
drives one session thread per connection through history replay,
authentication and the receive loop.
"""

import errno
import socket
import threading
from typing import Optional, Dict, Tuple, Any
from datetime import datetime

from lan_chat.shared.config import ServerConfig
from lan_chat.shared.constants import DEFAULT_SOCKET_TIMEOUT
from lan_chat.shared.exceptions import (
    AuthenticationError,
    ChatServerError,
    NetworkError,
    ServiceDiscoveryError,
)
from lan_chat.shared.logging_config import get_logger
from lan_chat.server.history import HistoryStore
from lan_chat.server.registry import Registry
from lan_chat.server.router import Router
from lan_chat.server.session import Session
from lan_chat.discovery.service_discovery import DiscoveryConfig, DiscoveryResponder


logger = get_logger(__name__)


class ChatServer:
    """
    Main chat server class.

    Owns the registry, router, history store and discovery responder.
    Each accepted connection is served on its own daemon thread; a
    failure in one session never reaches another.
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        """
        Initialize the chat server.

        Args:
            config: Server configuration. If None, loads from environment.
        """
        self.config = config or ServerConfig.from_env()
        self.server_socket: Optional[socket.socket] = None
        self.is_running = False
        self.shutdown_event = threading.Event()
        self.started_event = threading.Event()

        self.registry = Registry()
        self.history = HistoryStore(self.config.history_file, encoding=self.config.encoding)
        self.router = Router(self.registry, self.history)
        self.discovery: Optional[DiscoveryResponder] = None

        self._sessions_lock = threading.Lock()
        self._sessions: Dict[int, Session] = {}

        # Statistics
        self.start_time: Optional[datetime] = None
        self._stats_lock = threading.Lock()
        self.total_connections_accepted = 0
        self.total_sessions_authenticated = 0

        logger.info(f"ChatServer initialized with config: {self.config}")

    def start(self) -> None:
        """
        Start the chat server and serve until shutdown.

        Blocks in the accept loop on the calling thread.

        Raises:
            ChatServerError: If the server fails to start
        """
        if self.is_running:
            raise ChatServerError("Server is already running")

        try:
            self.config.validate()
            self.history.ensure_exists()
            self._create_server_socket()
            self._bind_and_listen()
        except Exception as e:
            logger.error(f"Failed to start server: {e}")
            self._close_server_socket()
            raise ChatServerError(f"Server startup failed: {e}") from e

        self.is_running = True
        self.start_time = datetime.now()
        self.shutdown_event.clear()

        logger.info(f"Chat server started on {self.config.host}:{self.get_server_port()}")

        self._start_discovery_service()
        self.started_event.set()

        self._run_server_loop()

    def wait_until_started(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the listener is accepting connections.

        Returns:
            True if the server started within the timeout
        """
        return self.started_event.wait(timeout)

    def shutdown(self) -> None:
        """
        Stop accepting connections and stop discovery.

        Established sessions are left to finish on their own threads.
        """
        if not self.is_running:
            return

        logger.info("Initiating server shutdown...")

        self.is_running = False
        self.shutdown_event.set()

        self._close_server_socket()

        if self.discovery:
            self.discovery.stop()

        logger.info("Server shutdown complete")

    def get_server_port(self) -> int:
        """
        Get the actual port the server is listening on.

        Raises:
            ChatServerError: If server socket is not initialized
        """
        if not self.server_socket:
            raise ChatServerError("Server socket not initialized")

        try:
            return self.server_socket.getsockname()[1]
        except OSError as e:
            raise ChatServerError(f"Failed to get server port: {e}") from e

    def get_discovery_port(self) -> Optional[int]:
        """Get the UDP port discovery is bound to, or None if it is not running."""
        if self.discovery is None or not self.discovery.is_running():
            return None
        return self.discovery.get_bound_port()

    def get_server_statistics(self) -> Dict[str, Any]:
        """
        Get server statistics.

        Returns:
            Dictionary containing server statistics
        """
        uptime = datetime.now() - self.start_time if self.start_time else None

        with self._sessions_lock:
            open_sessions = len(self._sessions)
        with self._stats_lock:
            accepted = self.total_connections_accepted
            authenticated = self.total_sessions_authenticated

        return {
            'server_info': {
                'host': self.config.host,
                'port': self.config.port,
                'is_running': self.is_running,
                'start_time': self.start_time,
                'uptime_seconds': uptime.total_seconds() if uptime else 0,
                'total_connections_accepted': accepted,
                'total_sessions_authenticated': authenticated,
                'open_sessions': open_sessions,
            },
            'registry': self.registry.get_statistics(),
            'router': self.router.get_statistics(),
            'discovery': {
                'running': self.discovery is not None and self.discovery.is_running(),
                'requests': self.discovery.total_requests if self.discovery else 0,
            },
        }

    def _create_server_socket(self) -> None:
        try:
            self.server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            self.server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self.server_socket.settimeout(self.config.socket_timeout or DEFAULT_SOCKET_TIMEOUT)
        except OSError as e:
            raise ChatServerError(f"Failed to create server socket: {e}") from e

    def _bind_and_listen(self) -> None:
        """
        Bind the server socket and start listening.

        Raises:
            ChatServerError: If binding or listening fails
        """
        try:
            self.server_socket.bind((self.config.host, self.config.port))
            self.server_socket.listen(self.config.listen_backlog)
        except OSError as e:
            if e.errno == errno.EADDRINUSE:
                raise ChatServerError(f"Port {self.config.port} is already in use") from e
            elif e.errno == errno.EACCES:
                raise ChatServerError(f"Permission denied to bind to port {self.config.port}") from e
            else:
                raise ChatServerError(f"Failed to bind to {self.config.host}:{self.config.port}: {e}") from e

        logger.info(f"Server listening on {self.config.host}:{self.get_server_port()}")

    def _run_server_loop(self) -> None:
        """Accept connections until shutdown."""
        logger.info("Server loop started, accepting connections...")

        try:
            while self.is_running and not self.shutdown_event.is_set():
                try:
                    client_socket, address = self.server_socket.accept()
                except socket.timeout:
                    # Timeout allows checking for shutdown signal
                    continue
                except OSError as e:
                    if self.is_running:
                        logger.error(f"Socket error in server loop: {e}")
                    break

                with self._stats_lock:
                    self.total_connections_accepted += 1
                logger.debug(f"New connection from {address}")
                self._handle_new_client(client_socket, address)
        finally:
            logger.info("Server loop ended")

    def _handle_new_client(self, client_socket: socket.socket, address: Tuple[str, int]) -> None:
        """
        Wrap a new connection in a session and start its thread.

        Args:
            client_socket: The client's socket
            address: Client's address tuple
        """
        try:
            client_socket.settimeout(None)
            session = Session(
                client_socket,
                address,
                encoding=self.config.encoding,
                send_timeout=self.config.send_timeout
            )
        except OSError as e:
            logger.error(f"Error setting up connection from {address}: {e}")
            try:
                client_socket.close()
            except OSError:
                pass
            return

        thread = threading.Thread(
            target=self._serve_session,
            args=(session,),
            name=f"Session-{address[0]}:{address[1]}",
            daemon=True
        )
        with self._sessions_lock:
            self._sessions[id(session)] = session
        thread.start()

    def _serve_session(self, session: Session) -> None:
        """
        Drive one session from history replay to close.

        Args:
            session: Session for an accepted connection
        """
        try:
            self.history.replay_to(session)
            session.authenticate(self.registry, max_attempts=self.config.max_auth_attempts)
            with self._stats_lock:
                self.total_sessions_authenticated += 1
            session.run(self.router.route)

        except AuthenticationError as e:
            logger.warning(f"Authentication failed: {e}")

        except NetworkError as e:
            logger.debug(f"Connection with {session.display_name} lost: {e}")

        except Exception as e:
            logger.error(f"Unexpected error in session {session.display_name}: {e}", exc_info=True)

        finally:
            self._cleanup_session(session)

    def _cleanup_session(self, session: Session) -> None:
        """Deregister and close a finished session."""
        if session.username is not None:
            if self.registry.unregister(session.username, session):
                logger.info(f"User {session.username} has left the chat")

        session.close()

        with self._sessions_lock:
            self._sessions.pop(id(session), None)

    def _start_discovery_service(self) -> None:
        """Start the discovery responder; failures leave the TCP service running."""
        if not self.config.discovery_enabled:
            logger.info("Service discovery disabled")
            return

        discovery_config = DiscoveryConfig(
            discovery_port=self.config.discovery_port,
            advertise_host=self.config.advertise_host
        )
        self.discovery = DiscoveryResponder(self.get_server_port(), discovery_config)

        try:
            self.discovery.start()
        except ServiceDiscoveryError as e:
            logger.error(f"Service discovery unavailable: {e}")

    def _close_server_socket(self) -> None:
        if self.server_socket:
            try:
                self.server_socket.close()
                logger.info("Server socket closed")
            except OSError as e:
                logger.error(f"Error closing server socket: {e}")
