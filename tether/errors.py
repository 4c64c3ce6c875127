"""
Exception taxonomy shared by the coordinator and the peer agent.

Framing errors are OSErrors: they mean the byte stream is unusable and the
session owning it must be torn down.  Dispatch errors are reported to the
operator; the session (if any) survives a ReplyTimeout.
"""


class FrameError(OSError):
    """A frame could not be written or read in full."""


class ConnectionClosed(FrameError):
    """The remote side closed the stream before a frame header arrived."""


class FrameTooLarge(FrameError):
    """A frame length exceeds the configured or wire limit."""


class DispatchError(Exception):
    """Base class for coordinator-side command failures."""


class UnknownPeer(DispatchError):
    def __init__(self, peer_id):
        super().__init__(f"No connected peer with id {peer_id}")
        self.peer_id = peer_id


class ReplyTimeout(DispatchError):
    """No reply arrived within the caller's window."""


class PeerDisconnected(DispatchError):
    """The peer went away while a caller was waiting on it."""


class EncodeError(ValueError):
    """An archive could not be built from the supplied files."""
