"""
Pytest Configuration and Shared Fixtures

Provides common test fixtures and configuration for the test suite.
"""

import socket
import threading
import time
from typing import Callable, Generator, List, Optional, Tuple
from unittest.mock import Mock

import pytest

from lan_chat.shared.config import ServerConfig
from lan_chat.shared.constants import AUTH_SUCCESS_REPLY, USERNAME_PROMPT
from lan_chat.server.chat_server import ChatServer
from lan_chat.server.session import Session


class LinePeer:
    """Test-side end of a line-oriented connection."""

    def __init__(self, sock: socket.socket, timeout: float = 3.0):
        sock.settimeout(timeout)
        self.sock = sock
        self.reader = sock.makefile('r', encoding='utf-8', newline='\n')

    @classmethod
    def connect(cls, port: int, host: str = "127.0.0.1") -> "LinePeer":
        return cls(socket.create_connection((host, port), timeout=3.0))

    def send(self, line: str) -> None:
        self.sock.sendall((line + "\n").encode('utf-8'))

    def read(self) -> Optional[str]:
        """Read one line; None on EOF."""
        raw = self.reader.readline()
        if raw == "":
            return None
        return raw.rstrip("\r\n")

    def read_until(self, expected: str) -> List[str]:
        """Read lines up to ``expected`` and return the lines before it."""
        lines = []
        while True:
            line = self.read()
            if line is None:
                raise AssertionError(f"Connection closed before {expected!r}; got {lines}")
            if line == expected:
                return lines
            lines.append(line)

    def close_write(self) -> None:
        self.sock.shutdown(socket.SHUT_WR)

    def close(self) -> None:
        for resource in (self.reader, self.sock):
            try:
                resource.close()
            except OSError:
                pass


def wait_for(predicate: Callable[[], bool], timeout: float = 3.0, interval: float = 0.02) -> bool:
    """Poll until predicate() is true or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def session_pair() -> Generator[Tuple[Session, LinePeer], None, None]:
    """Provide a Session wired to a test peer over a socketpair."""
    server_sock, peer_sock = socket.socketpair()
    session = Session(server_sock, ("127.0.0.1", 50000))
    peer = LinePeer(peer_sock)
    yield session, peer
    session.close()
    peer.close()


@pytest.fixture
def make_session_pair():
    """Factory for additional Session/peer pairs, closed at teardown."""
    created = []

    def factory(port: int = 50000) -> Tuple[Session, LinePeer]:
        server_sock, peer_sock = socket.socketpair()
        session = Session(server_sock, ("127.0.0.1", port))
        peer = LinePeer(peer_sock)
        created.append((session, peer))
        return session, peer

    yield factory

    for session, peer in created:
        session.close()
        peer.close()


@pytest.fixture(name="wait_for")
def wait_for_fixture():
    """Expose wait_for to tests."""
    return wait_for


@pytest.fixture
def connect_peer():
    """Factory for test peers connected to a TCP port, closed at teardown."""
    peers = []

    def connect(port: int) -> LinePeer:
        peer = LinePeer.connect(port)
        peers.append(peer)
        return peer

    yield connect

    for peer in peers:
        peer.close()


@pytest.fixture
def mock_session_factory():
    """Factory for mock sessions with a username."""
    def factory(username: str) -> Mock:
        session = Mock(spec=Session)
        session.username = username
        session.display_name = username
        return session
    return factory


@pytest.fixture
def server_config(tmp_path) -> ServerConfig:
    """Provide a test server configuration."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Use 0 to get a random available port
        discovery_port=0,
        history_file=str(tmp_path / "chat_history.txt"),
    )


@pytest.fixture
def running_server(server_config) -> Generator[ChatServer, None, None]:
    """Start a ChatServer on a background thread."""
    server = ChatServer(server_config)
    thread = threading.Thread(target=server.start, daemon=True)
    thread.start()
    assert server.wait_until_started(timeout=5.0), "Server did not start"

    yield server

    server.shutdown()
    thread.join(timeout=3.0)


@pytest.fixture
def join_chat(running_server):
    """Connect to the running server and claim a username."""
    peers = []

    def join(username: str) -> Tuple[LinePeer, List[str]]:
        peer = LinePeer.connect(running_server.get_server_port())
        peers.append(peer)
        history = peer.read_until(USERNAME_PROMPT)
        peer.send(username)
        assert peer.read() == AUTH_SUCCESS_REPLY
        return peer, history

    yield join

    for peer in peers:
        peer.close()


@pytest.fixture
def available_port() -> int:
    """Get an available port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration between tests."""
    import logging
    root_logger = logging.getLogger()
    saved_level = root_logger.level
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    yield

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.setLevel(saved_level)
