"""
Registry of connected peer sessions.

The coordinator owns one PeerRegistry and passes it to whatever needs to
look peers up.  A single lock guards the map and is held only for the map
operation itself, never while a caller waits on a reply.
"""

import itertools
import logging
import socket
import threading

from .config import DEFAULT_DIRECTORY, MAX_FRAME_SIZE
from .errors import UnknownPeer
from .session import PeerSession

logger = logging.getLogger(__name__)


class PeerRegistry:
    """Thread-safe mapping of peer id -> PeerSession."""

    def __init__(
        self,
        default_directory: str = DEFAULT_DIRECTORY,
        max_frame_size: int = MAX_FRAME_SIZE,
    ):
        self.default_directory = default_directory
        self.max_frame_size = max_frame_size
        self._sessions: dict[int, PeerSession] = {}
        self._lock = threading.Lock()
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, peer_id: int) -> bool:
        with self._lock:
            return peer_id in self._sessions

    def register(self, sock: socket.socket, address: tuple, name: str) -> PeerSession:
        """Create a session for a freshly identified connection and track it.

        The caller starts the session's receive loop.
        """
        with self._lock:
            peer_id = next(self._ids)
            session = PeerSession(
                peer_id,
                sock,
                address,
                name,
                directory=self.default_directory,
                on_close=self._on_session_closed,
                max_frame_size=self.max_frame_size,
            )
            self._sessions[peer_id] = session
        logger.info("Peer connected: id %d, %s, %s", peer_id, session.host, name)
        return session

    def get(self, peer_id: int) -> PeerSession | None:
        with self._lock:
            return self._sessions.get(peer_id)

    def lookup(self, peer_id: int) -> PeerSession:
        """Return the session for *peer_id* or raise UnknownPeer."""
        session = self.get(peer_id)
        if session is None:
            raise UnknownPeer(peer_id)
        return session

    def remove(self, peer_id: int) -> bool:
        """Forget a peer. Returns False if it was not registered."""
        with self._lock:
            return self._sessions.pop(peer_id, None) is not None

    def snapshot(self) -> list[PeerSession]:
        """Sessions ordered by id, copied so callers can iterate freely."""
        with self._lock:
            return sorted(self._sessions.values(), key=lambda s: s.peer_id)

    def close_all(self) -> None:
        for session in self.snapshot():
            session.close()

    def _on_session_closed(self, session: PeerSession) -> None:
        if self.remove(session.peer_id):
            logger.debug("Peer %d removed from registry", session.peer_id)
