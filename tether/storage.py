"""
Saving peer replies (archives, screenshots) on the coordinator's disk.

Files land in ``<root>/<peer name>/<stem><N><suffix>`` where N is the lowest
number not already taken.  Names are claimed with exclusive create, so two
saves for the same peer never overwrite each other.
"""

import os
import re

# Windows reserved device names that must never be used as filenames.
_WINDOWS_RESERVED = re.compile(
    r"^(CON|PRN|AUX|NUL|COM[1-9]|LPT[1-9])(\.|$)", re.IGNORECASE
)
_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def safe_component(name: str, fallback: str = "peer") -> str:
    """Turn an untrusted peer name into a single, harmless path component.

    - Replaces path separators and characters Windows forbids.
    - Rejects Windows reserved device names (CON, NUL, COM1 … LPT9).
    - Falls back to *fallback* if nothing usable is left.
    """
    name = _UNSAFE_CHARS.sub("_", name).strip(" .")
    if not name or _WINDOWS_RESERVED.match(name):
        return fallback
    return name


def save_artifact(root: str, peer_name: str, stem: str, suffix: str, data: bytes) -> str:
    """Write *data* under a fresh numbered filename. Returns the path."""
    folder = os.path.join(root, safe_component(peer_name))
    os.makedirs(folder, exist_ok=True)

    number = 1
    while True:
        path = os.path.join(folder, f"{stem}{number}{suffix}")
        try:
            with open(path, "xb") as f:
                f.write(data)
            return path
        except FileExistsError:
            number += 1
