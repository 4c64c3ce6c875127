"""
Operator-level operations on a connected peer.

Each function issues one command through the CommandDispatcher, waits for
the reply and turns it into structured data.  Replies carry no success
flag, so binary results are recognized by their file signature; anything
else is the peer's error text and is raised as RuntimeError.

Dispatch errors (UnknownPeer, ReplyTimeout, PeerDisconnected) propagate
unchanged so the front end can word them.
"""

from dataclasses import dataclass

from .archive import LOCAL_HEADER_SIGNATURE
from .commands import Command, CommandKind
from .config import (
    DOWNLOAD_TIMEOUT,
    DOWNLOADS_DIR,
    LIST_TIMEOUT,
    LISTING_LINGER,
    SCREENSHOT_TIMEOUT,
    SCREENSHOTS_DIR,
)
from .dispatcher import CommandDispatcher
from .storage import save_artifact

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
LISTING_ERROR_PREFIX = "Failed to list directory:"


@dataclass
class SavedReply:
    path: str
    size: int


def format_size(size_bytes: int | float) -> str:
    """Human-readable file size."""
    for unit in ("B", "KB", "MB", "GB"):
        if size_bytes < 1024:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024
    return f"{size_bytes:.1f} TB"


def _text(payload: bytes) -> str:
    return payload.decode("utf-8", errors="replace")


# ======================================================================
# Core API — returns structured data (used by the shell and TUI)
# ======================================================================


def fetch_drives(
    dispatcher: CommandDispatcher, peer_id: int, timeout: float = LIST_TIMEOUT
) -> list[str]:
    """Drive roots reported by the peer."""
    reply = dispatcher.send(peer_id, Command(CommandKind.LIST_DRIVES).encode(), timeout)
    return [d for d in _text(reply).replace("\n", "\0").split("\0") if d]


def fetch_listing(
    dispatcher: CommandDispatcher,
    peer_id: int,
    directory: str,
    timeout: float = LIST_TIMEOUT,
    linger: float = LISTING_LINGER,
) -> list[str]:
    """Names in *directory* on the peer, in the order the peer sent them."""
    frames = dispatcher.send_collect(
        peer_id,
        Command(CommandKind.LIST_DIRECTORY, directory).encode(),
        timeout,
        linger,
    )
    text = "".join(_text(frame) for frame in frames)
    if text.startswith(LISTING_ERROR_PREFIX):
        raise RuntimeError(text.strip())
    return [line for line in text.split("\n") if line]


def do_download(
    dispatcher: CommandDispatcher,
    peer_id: int,
    path: str,
    root: str = DOWNLOADS_DIR,
    timeout: float = DOWNLOAD_TIMEOUT,
) -> SavedReply:
    """Fetch *path* from the peer as a ZIP and save it under *root*."""
    session = dispatcher.registry.lookup(peer_id)
    reply = dispatcher.send(
        peer_id, Command(CommandKind.DOWNLOAD, path).encode(), timeout
    )
    if not reply.startswith(LOCAL_HEADER_SIGNATURE):
        raise RuntimeError(_text(reply) or "Empty reply from peer")
    saved = save_artifact(root, session.name, "download", ".zip", reply)
    return SavedReply(saved, len(reply))


def do_screenshot(
    dispatcher: CommandDispatcher,
    peer_id: int,
    root: str = SCREENSHOTS_DIR,
    timeout: float = SCREENSHOT_TIMEOUT,
) -> SavedReply:
    """Capture the peer's screen and save the PNG under *root*."""
    session = dispatcher.registry.lookup(peer_id)
    reply = dispatcher.send(
        peer_id, Command(CommandKind.SCREENSHOT).encode(), timeout
    )
    if not reply.startswith(PNG_SIGNATURE):
        raise RuntimeError(_text(reply) or "Empty reply from peer")
    saved = save_artifact(root, session.name, "screenshot", ".png", reply)
    return SavedReply(saved, len(reply))
