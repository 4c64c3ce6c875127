"""
Tether - remote command coordinator

A coordinator that drives many persistently-connected peer agents over a
length-prefixed TCP protocol, with a terminal dashboard for the operator.
"""

__version__ = "0.1.0"

from .archive import ArchiveEncoder, archive_path, build_archive, crc32
from .commands import Command, CommandKind, parse_command
from .config import MAX_FRAME_SIZE, TCP_PORT
from .dispatcher import CommandDispatcher
from .errors import (
    ConnectionClosed,
    DispatchError,
    EncodeError,
    FrameError,
    FrameTooLarge,
    PeerDisconnected,
    ReplyTimeout,
    UnknownPeer,
)
from .protocol import recv_frame, recv_msg, send_frame, send_msg
from .registry import PeerRegistry
from .server import CoordinatorServer
from .session import Mailbox, PeerSession, SessionState

__all__ = [
    "TCP_PORT",
    "MAX_FRAME_SIZE",
    "send_frame",
    "recv_frame",
    "send_msg",
    "recv_msg",
    "ArchiveEncoder",
    "build_archive",
    "archive_path",
    "crc32",
    "Command",
    "CommandKind",
    "parse_command",
    "Mailbox",
    "PeerSession",
    "SessionState",
    "PeerRegistry",
    "CommandDispatcher",
    "CoordinatorServer",
    "FrameError",
    "ConnectionClosed",
    "FrameTooLarge",
    "DispatchError",
    "UnknownPeer",
    "ReplyTimeout",
    "PeerDisconnected",
    "EncodeError",
]
