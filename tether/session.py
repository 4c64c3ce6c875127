"""
One peer connection on the coordinator side.

A PeerSession owns its socket and a background receive loop.  The loop is
the only writer to the session's mailbox: every frame it decodes is queued
there and any thread waiting on the mailbox is woken.  When the stream ends
or breaks, the loop closes the session, which releases all waiters with
PeerDisconnected and tells the registry to forget the peer.

Only one command may be outstanding per peer.  The mailbox does not know
which command a frame answers; it just hands frames out in arrival order.
"""

from __future__ import annotations

import logging
import socket
import threading
import time
from collections import deque
from datetime import datetime
from enum import Enum

from typing_extensions import Callable

from .config import DEFAULT_DIRECTORY, MAILBOX_CAPACITY, MAX_FRAME_SIZE
from .errors import ConnectionClosed, FrameError, PeerDisconnected, ReplyTimeout
from .protocol import recv_frame, send_frame

logger = logging.getLogger(__name__)


class SessionState(Enum):
    CONNECTED = "connected"
    CLOSED = "closed"


# ---------------------------------------------------------------------------
# Mailbox
# ---------------------------------------------------------------------------


class Mailbox:
    """FIFO of undelivered reply frames with blocking, timed retrieval.

    *lock* lets the owning session share one lock between the mailbox and
    its other per-peer state.  At most *capacity* frames are held; queued
    frames are never overwritten, so a full mailbox refuses new ones.
    """

    def __init__(
        self, lock: threading.Lock | None = None, capacity: int = MAILBOX_CAPACITY
    ):
        self._cond = threading.Condition(lock or threading.Lock())
        self._frames: deque[bytes] = deque()
        self._closed = False
        self.capacity = capacity

    def __len__(self) -> int:
        with self._cond:
            return len(self._frames)

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def put(self, payload: bytes) -> bool:
        """Queue *payload*. Returns False if it was dropped (closed or full)."""
        with self._cond:
            if self._closed or len(self._frames) >= self.capacity:
                return False
            self._frames.append(payload)
            self._cond.notify_all()
            return True

    def close(self) -> None:
        """Stop accepting frames and wake every waiter."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def clear(self) -> list[bytes]:
        """Discard and return everything currently queued."""
        with self._cond:
            stale = list(self._frames)
            self._frames.clear()
            return stale

    def get(self, timeout: float | None = None) -> bytes:
        """Take the oldest frame, waiting up to *timeout* seconds for one."""
        with self._cond:
            self._wait_for_frame(timeout)
            return self._frames.popleft()

    def drain(self, timeout: float | None = None, linger: float = 0.0) -> list[bytes]:
        """Wait for a first frame, then take every frame that follows it.

        After each frame, keep waiting up to *linger* seconds for another one
        so that a reply split across several frames comes back whole.
        """
        with self._cond:
            self._wait_for_frame(timeout)
            frames = []
            while True:
                while self._frames:
                    frames.append(self._frames.popleft())
                if linger <= 0 or self._closed:
                    break
                if not self._cond.wait_for(
                    lambda: self._frames or self._closed, timeout=linger
                ):
                    break
            return frames

    def _wait_for_frame(self, timeout: float | None) -> None:
        # Caller holds self._cond.
        deadline = None if timeout is None else time.monotonic() + timeout
        while not self._frames:
            if self._closed:
                raise PeerDisconnected("Peer disconnected while waiting for a reply")
            remaining = None
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise ReplyTimeout(f"No reply within {timeout} seconds")
            self._cond.wait(remaining)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class PeerSession:
    """A connected peer: socket, identity, directory hint and reply mailbox."""

    def __init__(
        self,
        peer_id: int,
        sock: socket.socket,
        address: tuple,
        name: str,
        directory: str = DEFAULT_DIRECTORY,
        on_close: Callable[["PeerSession"], None] | None = None,
        max_frame_size: int = MAX_FRAME_SIZE,
    ):
        self.peer_id = peer_id
        self.sock = sock
        self.address = address
        self.name = name
        self.connected_at = datetime.now()
        self.max_frame_size = max_frame_size

        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self.mailbox = Mailbox(self._lock)
        self._directory = directory
        self._state = SessionState.CONNECTED
        self._on_close = on_close
        self._thread: threading.Thread | None = None

    def __repr__(self) -> str:
        return f"<PeerSession id={self.peer_id} name={self.name!r} {self.state.value}>"

    # ------------------------------------------------------------------
    # Per-peer state
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def connected(self) -> bool:
        return self.state is SessionState.CONNECTED

    @property
    def current_directory(self) -> str:
        with self._lock:
            return self._directory

    @current_directory.setter
    def current_directory(self, path: str) -> None:
        with self._lock:
            self._directory = path

    @property
    def host(self) -> str:
        return self.address[0] if self.address else "?"

    # ------------------------------------------------------------------
    # I/O
    # ------------------------------------------------------------------

    def send(self, payload: bytes | str) -> None:
        """Write one frame to the peer. Raises FrameError on failure."""
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        with self._write_lock:
            send_frame(self.sock, payload)

    def start(self) -> threading.Thread:
        """Start the background receive loop."""
        self._thread = threading.Thread(
            target=self._receive_loop,
            name=f"peer-{self.peer_id}-recv",
            daemon=True,
        )
        self._thread.start()
        return self._thread

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def _receive_loop(self) -> None:
        try:
            while True:
                payload = recv_frame(self.sock, self.max_frame_size)
                logger.debug("Peer %d: received %d bytes", self.peer_id, len(payload))
                if not self.mailbox.put(payload) and not self.mailbox.closed:
                    logger.warning(
                        "Peer %d: mailbox full, dropped a %d-byte frame",
                        self.peer_id,
                        len(payload),
                    )
        except ConnectionClosed:
            logger.debug("Peer %d: connection closed", self.peer_id)
        except FrameError as e:
            if self.connected:
                logger.warning("Peer %d: %s", self.peer_id, e)
        finally:
            self.close()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> bool:
        """Tear the session down. Returns False if it was already closed."""
        with self._lock:
            if self._state is SessionState.CLOSED:
                return False
            self._state = SessionState.CLOSED

        self.mailbox.close()
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.sock.close()

        logger.info(
            "Peer disconnected: id %d, %s, %s", self.peer_id, self.host, self.name
        )
        if self._on_close is not None:
            self._on_close(self)
        return True
