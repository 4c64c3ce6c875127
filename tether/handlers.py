"""
Local providers used by the peer agent to answer commands.

Each function returns the reply payload(s) for one command.  Failures that
the operator should see are returned as text, not raised: the wire
protocol has no separate error channel.
"""

import logging
import os
import string

import mss
import mss.tools

from .archive import archive_path
from .config import LISTING_CHUNK_SIZE
from .errors import EncodeError

logger = logging.getLogger(__name__)

SCREENSHOT_FAILED = "Failed to capture screenshot."


def list_drives() -> bytes:
    """Drive roots as a NUL-separated, NUL-terminated multi-string."""
    if os.name == "nt":
        roots = [
            f"{letter}:\\"
            for letter in string.ascii_uppercase
            if os.path.exists(f"{letter}:\\")
        ]
    else:
        roots = _mount_points()
    return ("\0".join(roots) + "\0").encode("utf-8")


def list_directory(path: str, chunk_size: int = LISTING_CHUNK_SIZE) -> list[bytes]:
    """Names inside *path*, newline-joined and split into frames.

    Frames break only between names, so no name is ever split.
    """
    try:
        names = sorted(os.listdir(path))
    except OSError as e:
        return [f"Failed to list directory: {e}\n".encode("utf-8")]

    frames = []
    chunk = bytearray()
    for name in names:
        line = (name + "\n").encode("utf-8", errors="replace")
        if chunk and len(chunk) + len(line) > chunk_size:
            frames.append(bytes(chunk))
            chunk = bytearray()
        chunk += line
    if chunk or not frames:
        frames.append(bytes(chunk))
    return frames


def download(path: str) -> bytes:
    """A stored ZIP of *path*, or an error message."""
    try:
        return archive_path(path)
    except EncodeError as e:
        logger.warning("Download of %s failed: %s", path, e)
        return str(e).encode("utf-8")


def capture_screen() -> bytes:
    """PNG of the whole virtual screen, or an error message."""
    try:
        with mss.mss() as sct:
            shot = sct.grab(sct.monitors[0])
            return mss.tools.to_png(shot.rgb, shot.size)
    except Exception as e:
        logger.warning("Screen capture failed: %s", e)
        return SCREENSHOT_FAILED.encode("utf-8")


def _mount_points() -> list[str]:
    try:
        with open("/proc/mounts", encoding="utf-8") as f:
            points = [line.split()[1] for line in f if line.startswith("/dev/")]
    except OSError:
        points = []
    return sorted(set(points)) or [os.sep]
