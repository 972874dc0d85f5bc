"""
Integration tests for client-server communication flows.
"""

import io
import queue
import threading

import pytest
from rich.console import Console

from lan_chat.client.chat_client import ChatClient
from lan_chat.server.chat_server import ChatServer
from lan_chat.shared.config import ClientConfig, ServerConfig
from lan_chat.shared.constants import (
    AUTH_SUCCESS_REPLY,
    USERNAME_PROMPT,
    USERNAME_TAKEN_REPLY,
)


class TestChatFlows:
    """End-to-end chat scenarios over real sockets."""

    def test_public_message_reaches_all_including_sender(self, join_chat):
        """Test a public line is echoed to the sender and seen by others."""
        alice, _ = join_chat("alice")
        bob, _ = join_chat("bob")

        alice.send("hello everyone")

        assert alice.read() == "[alice]: hello everyone"
        assert bob.read() == "[alice]: hello everyone"

    def test_history_replayed_to_late_joiner(self, join_chat):
        """Test a new connection receives earlier public lines before the prompt."""
        alice, history = join_chat("alice")
        assert history == []

        alice.send("first")
        alice.send("second")
        assert alice.read() == "[alice]: first"
        assert alice.read() == "[alice]: second"

        _, history = join_chat("bob")

        assert history == ["[alice]: first", "[alice]: second"]

    def test_history_read_by_another_server(self, server_config, join_chat, connect_peer):
        """Test persisted lines are replayed by a second server on the same file."""
        alice, _ = join_chat("alice")
        alice.send("persisted")
        assert alice.read() == "[alice]: persisted"

        second = ChatServer(ServerConfig(
            host="127.0.0.1",
            port=0,
            discovery_enabled=False,
            history_file=server_config.history_file,
        ))
        thread = threading.Thread(target=second.start, daemon=True)
        thread.start()
        try:
            assert second.wait_until_started(timeout=5.0)
            peer = connect_peer(second.get_server_port())
            assert peer.read_until(USERNAME_PROMPT) == ["[alice]: persisted"]
        finally:
            second.shutdown()
            thread.join(timeout=3.0)

    def test_private_message_only_reaches_target(self, join_chat):
        """Test a private line is seen by the target alone."""
        alice, _ = join_chat("alice")
        bob, _ = join_chat("bob")
        carol, _ = join_chat("carol")

        alice.send("/private bob the password is swordfish")
        assert bob.read() == "(Private from alice): the password is swordfish"

        # The next line everyone else sees is the following public message
        alice.send("ping")
        assert alice.read() == "[alice]: ping"
        assert carol.read() == "[alice]: ping"
        assert bob.read() == "[alice]: ping"

    def test_private_messages_are_not_persisted(self, join_chat):
        """Test private lines never appear in replayed history."""
        alice, _ = join_chat("alice")
        bob, _ = join_chat("bob")

        alice.send("/private bob secret")
        assert bob.read() == "(Private from alice): secret"
        alice.send("public")
        assert alice.read() == "[alice]: public"

        _, history = join_chat("dave")

        assert history == ["[alice]: public"]

    def test_private_to_unknown_user(self, join_chat):
        """Test the sender is told when the target does not exist."""
        alice, _ = join_chat("alice")
        bob, _ = join_chat("bob")

        alice.send("/private ghost are you there")

        assert alice.read() == "User ghost was not found."
        alice.send("ping")
        assert bob.read() == "[alice]: ping"

    def test_private_to_departed_user(self, running_server, join_chat, wait_for):
        """Test a user who left can no longer receive private lines."""
        alice, _ = join_chat("alice")
        bob, _ = join_chat("bob")
        bob.send("")
        assert wait_for(lambda: "bob" not in running_server.registry)

        alice.send("/private bob hi")

        assert alice.read() == "User bob was not found."

    def test_malformed_private_command_is_dropped(self, join_chat):
        """Test an incomplete private command produces no output at all."""
        alice, _ = join_chat("alice")
        bob, _ = join_chat("bob")

        alice.send("/private bob")
        alice.send("after")

        assert alice.read() == "[alice]: after"
        assert bob.read() == "[alice]: after"

    def test_duplicate_username_rejected(self, running_server, join_chat, connect_peer):
        """Test a taken name is refused and another can be chosen."""
        join_chat("alice")
        peer = connect_peer(running_server.get_server_port())
        peer.read_until(USERNAME_PROMPT)

        peer.send("alice")
        assert peer.read() == USERNAME_TAKEN_REPLY
        assert peer.read() == USERNAME_PROMPT
        peer.send("alice2")

        assert peer.read() == AUTH_SUCCESS_REPLY

    def test_username_reusable_after_leaving(self, running_server, join_chat, wait_for):
        """Test a name is released when its session ends."""
        alice, _ = join_chat("alice")
        alice.close()
        assert wait_for(lambda: "alice" not in running_server.registry)

        join_chat("alice")

    def test_unauthenticated_connection_sees_no_live_messages(self, running_server, join_chat,
                                                              connect_peer):
        """Test broadcasts skip sessions that have not picked a name yet."""
        alice, _ = join_chat("alice")
        lurker = connect_peer(running_server.get_server_port())
        lurker.read_until(USERNAME_PROMPT)

        alice.send("not for lurkers")
        assert alice.read() == "[alice]: not for lurkers"

        lurker.send("lurker")
        assert lurker.read() == AUTH_SUCCESS_REPLY
        alice.send("welcome")
        assert lurker.read() == "[alice]: welcome"

    def test_many_clients_each_see_every_message(self, join_chat):
        """Test fan-out reaches every client for every sender."""
        peers = [join_chat(f"user{i}")[0] for i in range(5)]

        for i, peer in enumerate(peers):
            peer.send(f"msg from {i}")

        for peer in peers:
            received = [peer.read() for _ in range(5)]
            assert sorted(received) == sorted(f"[user{i}]: msg from {i}" for i in range(5))


class TestChatClientAgainstServer:
    """Drive the real client against the real server."""

    def test_client_session(self, running_server, join_chat, wait_for):
        """Test the client joins, sends, receives and quits."""
        bob, _ = join_chat("bob")
        output = io.StringIO()
        inputs = queue.Queue()
        client = ChatClient(
            ClientConfig(host="127.0.0.1", port=running_server.get_server_port(), username="alice"),
            console=Console(file=output, force_terminal=False, width=200)
        )
        thread = threading.Thread(target=client.run, args=(lambda: inputs.get(timeout=5),), daemon=True)
        thread.start()

        assert wait_for(lambda: "alice" in running_server.registry)
        inputs.put("hi bob")
        assert bob.read() == "[alice]: hi bob"

        bob.send("/private alice psst")
        assert wait_for(lambda: "(Private from bob): psst" in output.getvalue())

        inputs.put("/quit")
        thread.join(timeout=5.0)

        assert not thread.is_alive()
        assert wait_for(lambda: "alice" not in running_server.registry)
        text = output.getvalue()
        assert USERNAME_PROMPT in text
        assert AUTH_SUCCESS_REPLY in text
        assert "[alice]: hi bob" in text


class TestStalledClient:
    """A client that stops reading must not hold up anyone else."""

    LINE_COUNT = 300
    LINE = "x" * 65536

    @pytest.fixture
    def server_config(self, server_config):
        server_config.send_timeout = 0.5
        return server_config

    @staticmethod
    def _drain(peer, expected, received):
        try:
            while sum(1 for line in received if line.startswith("[bob]: ")) < expected:
                line = peer.read()
                if line is None:
                    return
                received.append(line)
        except OSError:
            return

    def test_non_reading_client_is_dropped(self, running_server, join_chat, wait_for):
        """Test broadcasts keep flowing when one recipient's buffers are full."""
        alice, _ = join_chat("alice")
        bob, _ = join_chat("bob")
        carol, _ = join_chat("carol")
        received = {"bob": [], "carol": []}
        readers = [
            threading.Thread(
                target=self._drain,
                args=(peer, self.LINE_COUNT, received[name]),
                daemon=True
            )
            for name, peer in (("bob", bob), ("carol", carol))
        ]
        for reader in readers:
            reader.start()

        for _ in range(self.LINE_COUNT):
            bob.send(self.LINE)
        for reader in readers:
            reader.join(timeout=30.0)

        assert len(received["carol"]) == self.LINE_COUNT
        assert len(received["bob"]) == self.LINE_COUNT
        assert wait_for(lambda: "alice" not in running_server.registry)

        carol.send("ping")
        assert carol.read() == "[carol]: ping"
        assert bob.read() == "[carol]: ping"
