"""
LAN Chat

Local-network text chat: a threaded TCP server with UDP discovery and a
console client.
"""

__version__ = "1.0.0"
