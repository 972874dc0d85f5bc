"""
Data Models

Defines data classes and models used throughout the LAN chat application.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .constants import (
    DISCOVERY_RESPONSE_PREFIX,
    DISCOVERY_RESPONSE_SEPARATOR,
    PRIVATE_COMMAND,
    PUBLIC_MESSAGE_FORMAT,
    PRIVATE_MESSAGE_FORMAT,
)
from .exceptions import InvalidDiscoveryResponseError


class SessionState(Enum):
    """Lifecycle states of a server-side session."""
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    ACTIVE = "active"
    CLOSED = "closed"


class ConnectionStatus(Enum):
    """Enumeration of client connection statuses."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass
class PrivateCommand:
    """A parsed ``/private <target> <body>`` command."""
    target: str
    body: str

    @classmethod
    def is_private(cls, line: str) -> bool:
        """Check whether a line is addressed with the private marker."""
        parts = line.split(None, 1)
        return bool(parts) and parts[0] == PRIVATE_COMMAND

    @classmethod
    def parse(cls, line: str) -> Optional["PrivateCommand"]:
        """
        Parse a private command line.

        Args:
            line: Raw line received from a session.

        Returns:
            PrivateCommand, or None when the line is not a private command
            or is missing the target or body.
        """
        parts = line.split(None, 2)
        if len(parts) < 3 or parts[0] != PRIVATE_COMMAND:
            return None
        return cls(target=parts[1], body=parts[2])

    def format_for(self, sender: str) -> str:
        """Format the line delivered to the target."""
        return PRIVATE_MESSAGE_FORMAT.format(sender=sender, message=self.body)


def format_public_message(sender: str, message: str) -> str:
    """Format a public chat line as broadcast and persisted."""
    return PUBLIC_MESSAGE_FORMAT.format(sender=sender, message=message)


@dataclass
class ServerAddress:
    """Reachable address of a chat server, as advertised over discovery."""
    host: str
    port: int

    @property
    def server_endpoint(self) -> str:
        """Get server endpoint as host:port string."""
        return f"{self.host}:{self.port}"

    def format(self) -> str:
        """Encode as a discovery response payload."""
        sep = DISCOVERY_RESPONSE_SEPARATOR
        return f"{DISCOVERY_RESPONSE_PREFIX}{sep}{self.host}{sep}{self.port}"

    @classmethod
    def parse(cls, payload: str) -> "ServerAddress":
        """
        Decode a ``SERVER:<ip>:<port>`` discovery response.

        Raises:
            InvalidDiscoveryResponseError: If the payload is malformed.
        """
        parts = payload.strip().split(DISCOVERY_RESPONSE_SEPARATOR)
        if len(parts) != 3 or parts[0] != DISCOVERY_RESPONSE_PREFIX or not parts[1]:
            raise InvalidDiscoveryResponseError(
                f"Unexpected discovery response: {payload!r}",
                message_data=payload,
                expected_format="SERVER:<ip>:<port>"
            )
        try:
            port = int(parts[2])
        except ValueError:
            raise InvalidDiscoveryResponseError(
                f"Invalid port in discovery response: {payload!r}",
                message_data=payload,
                expected_format="SERVER:<ip>:<port>"
            )
        if not (1 <= port <= 65535):
            raise InvalidDiscoveryResponseError(
                f"Port out of range in discovery response: {payload!r}",
                message_data=payload
            )
        return cls(host=parts[1], port=port)
