"""
Service Discovery Package

Provides UDP service discovery for the LAN chat application.
"""

from .service_discovery import DiscoveryConfig, DiscoveryResponder, ServerLocator

__all__ = ["DiscoveryConfig", "DiscoveryResponder", "ServerLocator"]
