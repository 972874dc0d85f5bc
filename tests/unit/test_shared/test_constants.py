"""
Tests for wire protocol constants.

These strings are seen by existing clients; changing them breaks
compatibility.
"""

from lan_chat.shared import constants


class TestProtocolConstants:
    """Test the exact protocol strings."""

    def test_discovery(self):
        assert constants.DISCOVERY_REQUEST == "DISCOVER_SERVER"
        assert constants.DISCOVERY_RESPONSE_PREFIX == "SERVER"
        assert constants.DISCOVERY_RESPONSE_SEPARATOR == ":"

    def test_server_replies(self):
        assert constants.USERNAME_PROMPT == "Please enter your username:"
        assert constants.USERNAME_EMPTY_REPLY == "Username cannot be empty. Try again."
        assert constants.USERNAME_TAKEN_REPLY == "This name is already in use. Try another one."
        assert constants.AUTH_SUCCESS_REPLY == "You have successfully connected to the chat."

    def test_message_formats(self):
        assert constants.PUBLIC_MESSAGE_FORMAT.format(sender="a", message="b") == "[a]: b"
        assert constants.PRIVATE_MESSAGE_FORMAT.format(sender="a", message="b") == "(Private from a): b"
        assert constants.USER_NOT_FOUND_FORMAT.format(target="x") == "User x was not found."

    def test_defaults(self):
        assert constants.DEFAULT_SERVER_PORT == 9901
        assert constants.DEFAULT_DISCOVERY_PORT == 9902
        assert constants.DEFAULT_HISTORY_FILE == "chat_history.txt"
        assert constants.LINE_TERMINATOR == "\n"
        assert constants.PRIVATE_COMMAND == "/private"
