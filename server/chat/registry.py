"""
Session registry module.

This module holds the server's directory of active sessions.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from common.errors import QueueFull, ConnectionClosed
from common.protocol_definitions import Message
from server.utils.logger import logger


@dataclass
class BroadcastResult:
    """Outcome of one broadcast: who got the message and who did not."""
    delivered: List[int] = field(default_factory=list)
    dropped: List[int] = field(default_factory=list)


class SessionRegistry:
    """
    Mapping of session id to active session.

    Every operation holds the lock for its whole duration and never awaits,
    so a broadcast sees either the state before or after a membership change.
    Deregistration may be called from any thread at any time.
    """

    def __init__(self):
        self.lock = threading.Lock()
        self._sessions: Dict[int, 'ClientSession'] = {}

    def register(self, session) -> None:
        """Add an active session."""
        with self.lock:
            if session.session_id in self._sessions:
                raise ValueError(f"session {session.session_id} is already registered")
            self._sessions[session.session_id] = session

    def deregister(self, session_id: int) -> bool:
        """Remove a session; returns False when it was not registered."""
        with self.lock:
            return self._sessions.pop(session_id, None) is not None

    def lookup(self, session_id: int):
        with self.lock:
            return self._sessions.get(session_id)

    def broadcast(self, message: Message, exclude_session_id: Optional[int] = None) -> BroadcastResult:
        """
        Queue message on every registered session except the excluded one.

        A recipient whose queue is full, or which started closing, is skipped
        and reported in ``dropped``; the others are unaffected.
        """
        result = BroadcastResult()
        with self.lock:
            for session_id, session in self._sessions.items():
                if exclude_session_id is not None and session_id == exclude_session_id:
                    continue
                try:
                    session.enqueue(message)
                    result.delivered.append(session_id)
                except QueueFull:
                    result.dropped.append(session_id)
                except ConnectionClosed:
                    logger.debug(f"Skipping session={session_id}, already closing")
        return result

    def __len__(self) -> int:
        with self.lock:
            return len(self._sessions)

    def __contains__(self, session_id: int) -> bool:
        with self.lock:
            return session_id in self._sessions
