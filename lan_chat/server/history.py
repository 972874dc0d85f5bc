"""
History Store Module

Append-only file of public chat lines, replayed to each new connection.
"""

import os
import threading
import logging
from pathlib import Path
from typing import List, Union, TYPE_CHECKING

from lan_chat.shared.constants import DEFAULT_ENCODING, DEFAULT_HISTORY_FILE, LINE_TERMINATOR
from lan_chat.shared.exceptions import HistoryStoreError

if TYPE_CHECKING:
    from lan_chat.server.session import Session


logger = logging.getLogger(__name__)


class HistoryStore:
    """
    Durable, append-only log of public messages.

    Entries are newline-terminated lines in chronological order. Appends
    and reads are serialized with one lock so a reader never sees a
    partially written line. Persistence failures are logged and reported
    through return values; they never propagate into chat handling.
    """

    def __init__(self, path: Union[str, Path] = DEFAULT_HISTORY_FILE, encoding: str = DEFAULT_ENCODING):
        """
        Initialize the store.

        Args:
            path: Location of the history file
            encoding: Text encoding of the file
        """
        self.path = Path(path)
        self.encoding = encoding
        self._lock = threading.Lock()

    def ensure_exists(self) -> bool:
        """
        Create an empty history file if none exists.

        Returns:
            True if the file exists afterwards, False if it could not be created
        """
        with self._lock:
            if self.path.exists():
                return True
            try:
                if self.path.parent and not self.path.parent.exists():
                    self.path.parent.mkdir(parents=True)
                self.path.touch()
            except OSError as e:
                logger.error(f"Could not create history file {self.path}: {e}")
                return False

        logger.info(f"The message history file is created: {self.path}")
        return True

    def append(self, line: str) -> bool:
        """
        Persist one line.

        Args:
            line: Formatted public message, without terminator

        Returns:
            True if the line was written, False if persistence failed
        """
        try:
            with self._lock:
                with open(self.path, 'a', encoding=self.encoding) as f:
                    f.write(line + LINE_TERMINATOR)
                    f.flush()
                    os.fsync(f.fileno())
        except OSError as e:
            logger.error(f"Failed to save message to history {self.path}: {e}")
            return False
        return True

    def read_all(self) -> List[str]:
        """
        Read every persisted line in file order.

        Returns:
            List of lines; empty when the file does not exist

        Raises:
            HistoryStoreError: If the file exists but cannot be read
        """
        try:
            with self._lock:
                with open(self.path, 'r', encoding=self.encoding, errors='replace') as f:
                    return [line.rstrip("\r\n") for line in f]
        except FileNotFoundError:
            return []
        except OSError as e:
            raise HistoryStoreError(f"Failed to read history {self.path}: {e}", path=str(self.path)) from e

    def replay_to(self, session: "Session") -> int:
        """
        Send the full history to one session.

        Read failures are logged and treated as an empty history. Send
        failures propagate since they end the session.

        Args:
            session: Target session

        Returns:
            Number of lines sent
        """
        try:
            lines = self.read_all()
        except HistoryStoreError as e:
            logger.warning(f"Skipping history replay for {session.display_name}: {e}")
            return 0

        for line in lines:
            session.send(line)

        if lines:
            logger.debug(f"Replayed {len(lines)} history lines to {session.display_name}")
        return len(lines)
