"""
Frame helpers shared by the coordinator and the peer agent.

Every message on a connection uses a 4-byte big-endian length prefix so the
receiver knows exactly how many bytes to read:

    [ 4 bytes: length ][ N bytes: payload ]

Payloads are opaque here.  Commands and listings are UTF-8 text; archives
and screenshots are raw binary.
"""

import struct

from .config import BUFFER_SIZE, MAX_FRAME_SIZE
from .errors import ConnectionClosed, FrameError, FrameTooLarge

HEADER = struct.Struct("!I")
MAX_WIRE_LENGTH = 0xFFFFFFFF


# ---------------------------------------------------------------------------
# Frames (raw bytes)
# ---------------------------------------------------------------------------


def send_frame(sock, payload: bytes) -> None:
    """Send *payload* with a 4-byte length prefix.

    Raises FrameTooLarge if the payload cannot be described by the prefix,
    and FrameError if the socket stops accepting bytes.
    """
    if len(payload) > MAX_WIRE_LENGTH:
        raise FrameTooLarge(
            f"Outgoing frame too large: {len(payload)} bytes (max {MAX_WIRE_LENGTH})"
        )
    _send_all(sock, HEADER.pack(len(payload)))
    _send_all(sock, payload)


def recv_frame(sock, max_size: int = MAX_FRAME_SIZE) -> bytes:
    """Receive one length-prefixed frame.

    Raises ConnectionClosed if the stream ends before the length header is
    complete, FrameTooLarge if the declared length exceeds *max_size*, and
    FrameError if the payload is cut short or the socket fails.
    """
    raw_len = _recv_exactly(sock, HEADER.size)
    if raw_len is None:
        raise ConnectionClosed("Connection closed by remote side")
    (length,) = HEADER.unpack(raw_len)
    if length > max_size:
        raise FrameTooLarge(
            f"Incoming frame too large: {length} bytes (max {max_size})"
        )
    payload = _recv_exactly(sock, length)
    if payload is None:
        raise FrameError(f"Connection closed mid-frame ({length} bytes declared)")
    return payload


# ---------------------------------------------------------------------------
# Text messages (commands, identity, listings)
# ---------------------------------------------------------------------------


def send_msg(sock, text: str) -> None:
    """Send a UTF-8 string as one frame."""
    send_frame(sock, text.encode("utf-8"))


def recv_msg(sock, max_size: int = MAX_FRAME_SIZE) -> str:
    """Receive one frame and decode it as UTF-8 (undecodable bytes replaced)."""
    return recv_frame(sock, max_size).decode("utf-8", errors="replace")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _send_all(sock, data: bytes) -> None:
    """Write all of *data*, looping over short writes."""
    view = memoryview(data)
    while view:
        try:
            sent = sock.send(view)
        except OSError as e:
            raise FrameError(f"Send failed: {e}") from e
        if sent <= 0:
            raise FrameError("Send failed: connection accepted no bytes")
        view = view[sent:]


def _recv_exactly(sock, num_bytes: int) -> bytes | None:
    """Read exactly *num_bytes* from the socket. Returns None on disconnect."""
    data = bytearray()
    while len(data) < num_bytes:
        try:
            packet = sock.recv(min(BUFFER_SIZE, num_bytes - len(data)))
        except OSError as e:
            raise FrameError(f"Receive failed: {e}") from e
        if not packet:
            return None
        data.extend(packet)
    return bytes(data)
