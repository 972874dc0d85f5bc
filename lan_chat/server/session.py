"""
Session Module

Wraps one accepted client connection: line framing over the socket,
username authentication against the registry, the receive loop, and
serialized sends.
"""

import socket
import struct
import sys
import threading
import logging
from typing import Callable, Optional, Tuple, TYPE_CHECKING

from lan_chat.shared.constants import (
    AUTH_ATTEMPTS_EXCEEDED_REPLY,
    AUTH_SUCCESS_REPLY,
    DEFAULT_ENCODING,
    LINE_TERMINATOR,
    USERNAME_EMPTY_REPLY,
    USERNAME_PROMPT,
    USERNAME_TAKEN_REPLY,
)
from lan_chat.shared.exceptions import (
    AuthenticationError,
    NetworkError,
    SessionClosedError,
    SessionSendError,
)
from lan_chat.shared.models import SessionState

if TYPE_CHECKING:
    from lan_chat.server.registry import Registry


logger = logging.getLogger(__name__)

MessageCallback = Callable[["Session", str], object]


class Session:
    """
    One connection and its line-based protocol state.

    The session is driven by a single thread: that thread reads lines,
    authenticates and runs the receive loop. ``send`` may be called from
    any thread; writes are serialized so lines never interleave.

    With a send timeout, a peer that stops reading cannot hold the send
    lock indefinitely: the blocked write fails, the connection is shut
    down and the owning thread ends the session.
    """

    def __init__(
        self,
        client_socket: socket.socket,
        address: Tuple[str, int],
        encoding: str = DEFAULT_ENCODING,
        send_timeout: Optional[float] = None
    ):
        """
        Initialize a session for an accepted socket.

        Args:
            client_socket: The accepted client socket
            address: Peer address tuple (host, port)
            encoding: Text encoding used on the wire
            send_timeout: Seconds one write may block, None for no limit

        Raises:
            OSError: If the send timeout cannot be applied to the socket
        """
        if send_timeout:
            _set_send_timeout(client_socket, send_timeout)

        self.socket = client_socket
        self.address = address
        self.encoding = encoding
        self.username: Optional[str] = None
        self.state = SessionState.CONNECTING

        self._reader = client_socket.makefile(
            'r', encoding=encoding, errors='replace', newline=LINE_TERMINATOR
        )
        self._send_lock = threading.Lock()
        self._close_lock = threading.Lock()

    @property
    def peer(self) -> str:
        """Peer address as host:port."""
        return f"{self.address[0]}:{self.address[1]}"

    @property
    def display_name(self) -> str:
        return self.username or self.peer

    @property
    def is_closed(self) -> bool:
        return self.state is SessionState.CLOSED

    def read_line(self) -> Optional[str]:
        """
        Read one line from the peer.

        Returns:
            The line without its terminator, or None when the peer closed
            the connection.

        Raises:
            SessionClosedError: If the read fails
        """
        try:
            raw = self._reader.readline()
        except (OSError, ValueError) as e:
            raise SessionClosedError(
                f"Read from {self.display_name} failed: {e}",
                operation="read",
                address=self.peer
            ) from e

        if raw == "":
            return None
        return raw.rstrip("\r\n")

    def send(self, message: str) -> None:
        """
        Write one line and flush it.

        Args:
            message: Line content without terminator

        Raises:
            SessionSendError: If the session is closed or the write fails
        """
        with self._send_lock:
            self._write_line(message)

    def authenticate(self, registry: "Registry", max_attempts: int = 0) -> str:
        """
        Prompt for a username until an unused one is claimed.

        The name is claimed with the registry's atomic check-and-insert, so
        concurrent sessions asking for the same name cannot both succeed.

        Args:
            registry: Registry of active sessions
            max_attempts: Rejected names allowed before giving up, 0 for no limit

        Returns:
            The claimed username

        Raises:
            SessionClosedError: If the peer disconnects before a name is claimed
            AuthenticationError: If max_attempts rejected names were sent
        """
        self.state = SessionState.AUTHENTICATING
        failures = 0

        while True:
            self.send(USERNAME_PROMPT)
            line = self.read_line()
            if line is None:
                raise SessionClosedError(
                    f"{self.peer} disconnected during authentication",
                    operation="authenticate",
                    address=self.peer
                )

            username = line.strip()
            if not username:
                self.send(USERNAME_EMPTY_REPLY)
            elif self._claim(registry, username):
                logger.info(f"User {username} has joined the chat ({self.peer})")
                return username
            else:
                logger.debug(f"{self.peer} asked for taken username {username!r}")
                self.send(USERNAME_TAKEN_REPLY)

            failures += 1
            if max_attempts and failures >= max_attempts:
                self.send(AUTH_ATTEMPTS_EXCEEDED_REPLY)
                raise AuthenticationError(
                    f"{self.peer} failed to pick a username after {failures} attempts",
                    attempts=failures
                )

    def run(self, on_message: MessageCallback) -> None:
        """
        Receive lines until the session ends.

        Each non-empty line is handed to ``on_message``. The loop ends on an
        empty line, when the peer closes the connection, or on an I/O error
        of this session.

        Args:
            on_message: Callback invoked as on_message(session, line)
        """
        try:
            while True:
                line = self.read_line()
                if line is None:
                    logger.debug(f"{self.display_name} closed the connection")
                    break
                if line == "":
                    logger.debug(f"{self.display_name} ended the session")
                    break
                on_message(self, line)
        except NetworkError as e:
            logger.debug(f"Session {self.display_name} terminated: {e}")

    def close(self) -> None:
        """Release the connection. Safe to call more than once."""
        with self._close_lock:
            if self.state is SessionState.CLOSED:
                return
            self.state = SessionState.CLOSED

        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Peer may already be gone
            pass

        for resource in (self._reader, self.socket):
            try:
                resource.close()
            except OSError as e:
                logger.debug(f"Error closing {self.display_name}: {e}")

        logger.debug(f"Session {self.display_name} closed")

    def _claim(self, registry: "Registry", username: str) -> bool:
        # The confirmation must reach the peer before any relayed line
        with self._send_lock:
            if not registry.try_register(username, self):
                return False
            self.username = username
            self.state = SessionState.ACTIVE
            self._write_line(AUTH_SUCCESS_REPLY)
            return True

    def _write_line(self, message: str) -> None:
        if self.state is SessionState.CLOSED:
            raise SessionSendError(
                f"Session {self.display_name} is closed",
                operation="send",
                address=self.peer
            )

        data = (message + LINE_TERMINATOR).encode(self.encoding, errors='replace')
        try:
            self.socket.sendall(data)
        except OSError as e:
            # A partial line may be on the wire; nothing more can follow it
            self._abort()
            raise SessionSendError(
                f"Send to {self.display_name} failed: {e}",
                operation="send",
                address=self.peer
            ) from e

    def _abort(self) -> None:
        # Wakes the owning thread's read so it deregisters and closes
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass

    def __repr__(self) -> str:
        return f"Session(username={self.username!r}, peer={self.peer}, state={self.state.value})"


def _set_send_timeout(sock: socket.socket, timeout: float) -> None:
    """
    Bound blocking writes on a socket without affecting reads.

    Reads must stay unbounded since idle peers are normal. A write that
    exceeds the timeout fails with OSError.
    """
    if sys.platform == "win32":
        value = struct.pack("L", int(timeout * 1000))
    else:
        seconds = int(timeout)
        value = struct.pack("ll", seconds, int((timeout - seconds) * 1_000_000))
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_SNDTIMEO, value)
