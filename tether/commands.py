"""
Wire command vocabulary (coordinator -> peer).

Commands are plain, case-sensitive text.  Anything that does not match one
of the forms below is not a command and gets no reply.
"""

from dataclasses import dataclass
from enum import Enum

LIST_DRIVES = "list drives"
LIST_DIRECTORY_PREFIX = "list current directory "
DOWNLOAD_PREFIX = "current user download "
SCREENSHOT = "current user screenshot"


class CommandKind(Enum):
    LIST_DRIVES = "list_drives"
    LIST_DIRECTORY = "list_directory"
    DOWNLOAD = "download"
    SCREENSHOT = "screenshot"


@dataclass(frozen=True)
class Command:
    kind: CommandKind
    argument: str = ""

    def encode(self) -> str:
        """Render the command as it travels on the wire."""
        if self.kind is CommandKind.LIST_DRIVES:
            return LIST_DRIVES
        if self.kind is CommandKind.LIST_DIRECTORY:
            return LIST_DIRECTORY_PREFIX + self.argument
        if self.kind is CommandKind.DOWNLOAD:
            return DOWNLOAD_PREFIX + self.argument
        return SCREENSHOT


def parse_command(text: str) -> Command | None:
    """Match *text* against the known commands. Returns None if unrecognized."""
    if text == LIST_DRIVES:
        return Command(CommandKind.LIST_DRIVES)
    if text.startswith(LIST_DIRECTORY_PREFIX):
        path = text[len(LIST_DIRECTORY_PREFIX):]
        if path:
            return Command(CommandKind.LIST_DIRECTORY, path)
        return None
    if text.startswith(DOWNLOAD_PREFIX):
        path = text[len(DOWNLOAD_PREFIX):]
        if path:
            return Command(CommandKind.DOWNLOAD, path)
        return None
    if text.startswith(SCREENSHOT):
        return Command(CommandKind.SCREENSHOT)
    return None
