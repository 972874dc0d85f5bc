"""
Chat Client Package

Provides the console chat client.
"""

from .chat_client import ChatClient

__all__ = ["ChatClient"]
