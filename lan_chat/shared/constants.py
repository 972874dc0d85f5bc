"""
Application Constants

Defines constants used throughout the LAN chat application.
"""

# Protocol constants
DISCOVERY_REQUEST = "DISCOVER_SERVER"
DISCOVERY_RESPONSE_PREFIX = "SERVER"
DISCOVERY_RESPONSE_SEPARATOR = ":"
LINE_TERMINATOR = "\n"
PRIVATE_COMMAND = "/private"
DEFAULT_ENCODING = "utf-8"

# Server replies
USERNAME_PROMPT = "Please enter your username:"
USERNAME_EMPTY_REPLY = "Username cannot be empty. Try again."
USERNAME_TAKEN_REPLY = "This name is already in use. Try another one."
AUTH_SUCCESS_REPLY = "You have successfully connected to the chat."
AUTH_ATTEMPTS_EXCEEDED_REPLY = "Too many failed attempts. Disconnecting."

# Message formats
PUBLIC_MESSAGE_FORMAT = "[{sender}]: {message}"
PRIVATE_MESSAGE_FORMAT = "(Private from {sender}): {message}"
USER_NOT_FOUND_FORMAT = "User {target} was not found."

# Default network settings
DEFAULT_SERVER_HOST = "0.0.0.0"
DEFAULT_SERVER_PORT = 9901
DEFAULT_DISCOVERY_PORT = 9902
FALLBACK_IP = "127.0.0.1"

# Persistence
DEFAULT_HISTORY_FILE = "chat_history.txt"

# Buffer and limit constants
DISCOVERY_BUFFER_SIZE = 1024
DEFAULT_LISTEN_BACKLOG = 100
DEFAULT_MAX_AUTH_ATTEMPTS = 0  # 0 means unbounded

# Timing constants
DEFAULT_DISCOVERY_TIMEOUT = 3
DEFAULT_SOCKET_TIMEOUT = 1.0
DEFAULT_SEND_TIMEOUT = 5.0  # longest a single line write may block

# Client commands
QUIT_COMMAND = "/quit"

# Log format constants
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
