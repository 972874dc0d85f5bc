"""
Chat Server Package

Session handling, registry, routing and history for the LAN chat server.
"""

from .chat_server import ChatServer

__all__ = ["ChatServer"]
