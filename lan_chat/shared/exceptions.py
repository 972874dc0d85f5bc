"""
Custom Exceptions

Defines custom exception classes for the LAN chat application.
"""

from typing import Optional


class ChatAppError(Exception):
    """Base exception class for all chat application errors."""
    pass


class NetworkError(ChatAppError):
    """Raised when network-related errors occur."""

    def __init__(self, message: str, operation: Optional[str] = None, address: Optional[str] = None):
        super().__init__(message)
        self.operation = operation
        self.address = address


class SessionClosedError(NetworkError):
    """Raised when the peer of a session closes the connection."""
    pass


class SessionSendError(NetworkError):
    """Raised when writing a line to a session fails."""
    pass


class AuthenticationError(ChatAppError):
    """Raised when a session fails to claim a username."""

    def __init__(self, message: str, attempts: Optional[int] = None):
        super().__init__(message)
        self.attempts = attempts


class ConfigurationError(ChatAppError):
    """Raised when configuration-related errors occur."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.details = details


class ProtocolError(ChatAppError):
    """Raised when protocol-related errors occur."""

    def __init__(self, message: str, message_data: Optional[str] = None, expected_format: Optional[str] = None):
        super().__init__(message)
        self.message_data = message_data
        self.expected_format = expected_format


class InvalidDiscoveryResponseError(ProtocolError):
    """Raised when a discovery reply does not match SERVER:<ip>:<port>."""
    pass


class ServerError(ChatAppError):
    """Base class for server-related errors."""
    pass


class ChatServerError(ServerError):
    """Raised when chat server operations fail."""
    pass


class HistoryStoreError(ChatAppError):
    """Raised when the history file cannot be prepared."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class ServiceDiscoveryError(ChatAppError):
    """Raised when service discovery operations fail."""
    pass


class DiscoveryTimeoutError(ServiceDiscoveryError):
    """Raised when service discovery times out."""
    pass
