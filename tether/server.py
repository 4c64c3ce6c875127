"""
Coordinator TCP server: accepts peer connections and registers them.

Each accepted connection must identify itself with one frame holding its
display name within HANDSHAKE_TIMEOUT seconds.  It is then registered and
gets its own receive-loop thread.  Live sessions and unfinished handshakes
together may not exceed MAX_PEERS; connections beyond that are closed
immediately.
"""

import logging
import socket
import threading

from .config import HANDSHAKE_TIMEOUT, MAX_NAME_SIZE, MAX_PEERS, TCP_PORT
from .errors import FrameError
from .protocol import recv_msg
from .registry import PeerRegistry

logger = logging.getLogger(__name__)


class CoordinatorServer:
    """Listens for peers and feeds them into a PeerRegistry."""

    def __init__(
        self,
        registry: PeerRegistry,
        host: str = "0.0.0.0",
        port: int = TCP_PORT,
        max_peers: int = MAX_PEERS,
        handshake_timeout: float = HANDSHAKE_TIMEOUT,
    ):
        self.registry = registry
        self.host = host
        self.port = port
        self.max_peers = max_peers
        self.handshake_timeout = handshake_timeout
        self._running = False
        self._pending = 0
        self._pending_lock = threading.Lock()
        self._sock: socket.socket | None = None
        self._thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Bind, then accept connections in a daemon thread.

        Binding happens here so that errors (port in use) reach the caller.
        With port 0 the OS picks a port; self.port is updated to it.
        """
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
            sock.listen(socket.SOMAXCONN)
        except OSError:
            sock.close()
            raise
        sock.settimeout(1)  # so we can check self._running periodically
        self._sock = sock
        self.port = sock.getsockname()[1]
        self._running = True

        self._thread = threading.Thread(
            target=self._accept_loop, name="coordinator-accept", daemon=True
        )
        self._thread.start()
        logger.info("Coordinator listening on %s:%d", self.host, self.port)

    def stop(self) -> None:
        self._running = False
        if self._sock:
            self._sock.close()
        if self._thread is not None:
            self._thread.join(timeout=2)
        self.registry.close_all()

    # ------------------------------------------------------------------
    # Accept loop
    # ------------------------------------------------------------------

    def _accept_loop(self) -> None:
        while self._running:
            try:
                conn, addr = self._sock.accept()
            except socket.timeout:
                continue
            except OSError:
                break

            with self._pending_lock:
                full = len(self.registry) + self._pending >= self.max_peers
                if not full:
                    self._pending += 1
            if full:
                logger.warning("Rejecting %s: peer limit %d reached", addr[0], self.max_peers)
                conn.close()
                continue

            threading.Thread(
                target=self._handle_connection,
                args=(conn, addr),
                name=f"handshake-{addr[0]}:{addr[1]}",
                daemon=True,
            ).start()

    @property
    def pending(self) -> int:
        """Accepted connections that have not finished the handshake."""
        with self._pending_lock:
            return self._pending

    def _handle_connection(self, conn: socket.socket, addr: tuple) -> None:
        """Read the peer's display name, then register and start the session.

        The connection counts against max_peers from accept until it is
        registered or dropped.
        """
        try:
            conn.settimeout(self.handshake_timeout)
            try:
                name = recv_msg(conn, MAX_NAME_SIZE).strip() or f"{addr[0]}:{addr[1]}"
            except FrameError as e:
                logger.warning("Failed to receive a name from %s: %s", addr[0], e)
                conn.close()
                return
            conn.settimeout(None)

            session = self.registry.register(conn, addr, name)
        finally:
            with self._pending_lock:
                self._pending -= 1
        session.start()
