"""
Router Module

Classifies each line from an authenticated session and delivers it as a
public broadcast or a private message.
"""

import threading
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, TYPE_CHECKING

from lan_chat.shared.constants import USER_NOT_FOUND_FORMAT
from lan_chat.shared.exceptions import NetworkError
from lan_chat.shared.models import PrivateCommand, format_public_message
from lan_chat.server.registry import Registry
from lan_chat.server.history import HistoryStore

if TYPE_CHECKING:
    from lan_chat.server.session import Session


logger = logging.getLogger(__name__)


class RouteKind(Enum):
    """How a line was handled."""
    PUBLIC = "public"
    PRIVATE = "private"
    NOT_FOUND = "not_found"
    DROPPED = "dropped"


@dataclass
class RouteResult:
    """Result of routing one line."""
    kind: RouteKind
    delivered_count: int = 0
    failed_count: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failed_count == 0


class Router:
    """
    Message router for public and private chat lines.

    Provides functionality to:
    - Deliver ``/private <target> <body>`` to a single registered session
    - Broadcast every other line to all registered sessions, sender included
    - Persist public lines to the history store

    A failed send to one target is logged and counted; it never stops
    delivery to the remaining targets.
    """

    def __init__(self, registry: Registry, history: Optional[HistoryStore] = None):
        """
        Initialize the router.

        Args:
            registry: Registry of active sessions
            history: Store for public messages; None disables persistence
        """
        self.registry = registry
        self.history = history

        # Statistics
        self._stats_lock = threading.Lock()
        self.total_public_messages = 0
        self.total_private_messages = 0
        self.total_not_found = 0
        self.total_dropped = 0
        self.total_failed_deliveries = 0
        self.start_time = datetime.now()

    def route(self, sender: "Session", line: str) -> RouteResult:
        """
        Handle one line received from a session.

        Args:
            sender: Authenticated session the line came from
            line: Raw line content

        Returns:
            RouteResult describing the delivery
        """
        if PrivateCommand.is_private(line):
            command = PrivateCommand.parse(line)
            if command is None:
                logger.debug(f"Dropped malformed private command from {sender.display_name}")
                result = RouteResult(kind=RouteKind.DROPPED)
            else:
                result = self._route_private(sender, command)
        else:
            result = self._route_public(sender, line)

        self._record(result)
        return result

    def broadcast(self, message: str) -> RouteResult:
        """
        Send a line to every registered session.

        Args:
            message: Line to deliver

        Returns:
            RouteResult with delivery counts
        """
        result = RouteResult(kind=RouteKind.PUBLIC)

        for target in self.registry.snapshot():
            try:
                target.send(message)
                result.delivered_count += 1
            except NetworkError as e:
                result.failed_count += 1
                result.errors.append(str(e))
                logger.warning(f"Broadcast to {target.display_name} failed: {e}")

        return result

    def get_statistics(self) -> Dict:
        """
        Get router statistics.

        Returns:
            Dictionary containing routing counters
        """
        with self._stats_lock:
            return {
                'uptime_seconds': (datetime.now() - self.start_time).total_seconds(),
                'total_public_messages': self.total_public_messages,
                'total_private_messages': self.total_private_messages,
                'total_not_found': self.total_not_found,
                'total_dropped': self.total_dropped,
                'total_failed_deliveries': self.total_failed_deliveries,
                'history_enabled': self.history is not None,
            }

    def _route_public(self, sender: "Session", line: str) -> RouteResult:
        message = format_public_message(sender.username, line)

        # Persist first so a session registering mid-broadcast replays it
        if self.history is not None:
            self.history.append(message)

        result = self.broadcast(message)
        logger.debug(
            f"Public message from {sender.username} delivered to "
            f"{result.delivered_count} sessions ({result.failed_count} failed)"
        )
        return result

    def _route_private(self, sender: "Session", command: PrivateCommand) -> RouteResult:
        target = self.registry.lookup(command.target)

        if target is not None:
            try:
                target.send(command.format_for(sender.username))
                logger.debug(f"Private message {sender.username} -> {command.target}")
                return RouteResult(kind=RouteKind.PRIVATE, delivered_count=1)
            except NetworkError as e:
                # Target disconnected between lookup and send
                logger.info(f"Private message to {command.target} failed: {e}")

        # Errors sending to the sender propagate and end the sender's session
        sender.send(USER_NOT_FOUND_FORMAT.format(target=command.target))
        return RouteResult(kind=RouteKind.NOT_FOUND)

    def _record(self, result: RouteResult) -> None:
        with self._stats_lock:
            if result.kind is RouteKind.PUBLIC:
                self.total_public_messages += 1
            elif result.kind is RouteKind.PRIVATE:
                self.total_private_messages += 1
            elif result.kind is RouteKind.NOT_FOUND:
                self.total_not_found += 1
            else:
                self.total_dropped += 1
            self.total_failed_deliveries += result.failed_count
