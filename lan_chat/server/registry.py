"""
Registry Module

Tracks authenticated sessions by unique username with thread-safe
operations.
"""

import threading
import logging
from datetime import datetime
from typing import Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from lan_chat.server.session import Session


logger = logging.getLogger(__name__)


class Registry:
    """
    Thread-safe mapping of usernames to active sessions.

    Provides functionality to:
    - Atomically claim a username for a session
    - Release a username when its session ends
    - Look up a session by username
    - Snapshot all sessions for broadcasting

    Usernames are case-sensitive. The underlying map is never handed out;
    ``snapshot`` returns a copy that callers iterate without the lock.
    """

    def __init__(self):
        """Initialize an empty registry."""
        self._lock = threading.Lock()
        self._sessions: Dict[str, "Session"] = {}

        # Statistics
        self.total_registered = 0
        self.total_unregistered = 0
        self.start_time = datetime.now()

    def try_register(self, username: str, session: "Session") -> bool:
        """
        Claim a username for a session.

        Args:
            username: Requested username
            session: Session claiming the name

        Returns:
            True if the name was free and is now owned by the session,
            False if another session already holds it
        """
        with self._lock:
            if username in self._sessions:
                return False
            self._sessions[username] = session
            self.total_registered += 1
            count = len(self._sessions)

        logger.info(f"Registered {username} (active: {count})")
        return True

    def unregister(self, username: str, session: Optional["Session"] = None) -> bool:
        """
        Release a username.

        Args:
            username: Username to release
            session: When given, the entry is removed only if it still
                belongs to this session

        Returns:
            True if an entry was removed, False otherwise
        """
        with self._lock:
            current = self._sessions.get(username)
            if current is None or (session is not None and current is not session):
                return False
            del self._sessions[username]
            self.total_unregistered += 1
            count = len(self._sessions)

        logger.info(f"Unregistered {username} (active: {count})")
        return True

    def lookup(self, username: str) -> Optional["Session"]:
        """
        Get the session registered under a username.

        Args:
            username: Username to search for

        Returns:
            Session if found, None otherwise
        """
        with self._lock:
            return self._sessions.get(username)

    def snapshot(self) -> List["Session"]:
        """
        Get all registered sessions.

        Returns:
            List copied under the lock, in registration order
        """
        with self._lock:
            return list(self._sessions.values())

    def usernames(self) -> List[str]:
        """Get registered usernames in registration order."""
        with self._lock:
            return list(self._sessions)

    def count(self) -> int:
        """Get the number of registered sessions."""
        with self._lock:
            return len(self._sessions)

    def __contains__(self, username: object) -> bool:
        with self._lock:
            return username in self._sessions

    def __len__(self) -> int:
        return self.count()

    def get_statistics(self) -> Dict:
        """
        Get registry statistics.

        Returns:
            Dictionary containing registry counters
        """
        with self._lock:
            return {
                'uptime_seconds': (datetime.now() - self.start_time).total_seconds(),
                'active_sessions': len(self._sessions),
                'usernames': list(self._sessions),
                'total_registered': self.total_registered,
                'total_unregistered': self.total_unregistered,
            }
