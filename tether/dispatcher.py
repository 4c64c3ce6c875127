"""
Coordinator-side command dispatch.

send() writes one command frame to a peer and blocks until that peer's
mailbox yields the reply, the timeout expires, or the peer goes away.  The
dispatcher never looks inside payloads; callers know whether a command
answers with one frame (send) or possibly several (send_collect).
"""

import logging

from .config import LISTING_LINGER, LIST_TIMEOUT
from .errors import FrameError, PeerDisconnected
from .registry import PeerRegistry
from .session import PeerSession

logger = logging.getLogger(__name__)


class CommandDispatcher:
    """Issues commands to peers tracked by a PeerRegistry."""

    def __init__(self, registry: PeerRegistry):
        self.registry = registry

    def send(self, peer_id: int, command: str, timeout: float = LIST_TIMEOUT) -> bytes:
        """Send *command* and return the single reply frame.

        Raises UnknownPeer, ReplyTimeout or PeerDisconnected.
        """
        session = self._issue(peer_id, command)
        return session.mailbox.get(timeout)

    def send_collect(
        self,
        peer_id: int,
        command: str,
        timeout: float = LIST_TIMEOUT,
        linger: float = LISTING_LINGER,
    ) -> list[bytes]:
        """Send *command* and return every reply frame, in arrival order."""
        session = self._issue(peer_id, command)
        return session.mailbox.drain(timeout, linger)

    def _issue(self, peer_id: int, command: str) -> PeerSession:
        session = self.registry.lookup(peer_id)
        if not session.connected:
            raise PeerDisconnected(f"Peer {peer_id} is disconnected")

        stale = session.mailbox.clear()
        if stale:
            logger.warning(
                "Peer %d: discarded %d late frame(s) from an earlier command",
                peer_id,
                len(stale),
            )

        try:
            session.send(command)
        except FrameError as e:
            session.close()
            raise PeerDisconnected(f"Could not send to peer {peer_id}: {e}") from e
        logger.debug("Peer %d: sent %r", peer_id, command)
        return session
