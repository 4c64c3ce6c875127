"""
Operator command interpreter shared by the CLI loop and the TUI.

The shell keeps track of the selected peer and turns one typed line into
either a local action (help, list users, select user, select directory) or
a call into client.py.  It returns the text to show; it never prints.
"""

from dataclasses import dataclass, field

from . import client
from .config import DOWNLOADS_DIR, SCREENSHOTS_DIR
from .dispatcher import CommandDispatcher
from .errors import PeerDisconnected, ReplyTimeout, UnknownPeer
from .registry import PeerRegistry
from .session import PeerSession

HELP_TEXT = """\
  Tether — Coordinator Commands
  ────────────────────────────────────────────────────────────────
  help                                   Show this help message
  clear                                  Clear the console
  list users | peers                     List connected peers
  select user <id>                       Select a peer
  current user list drives               List the selected peer's drives
  current user select directory <dir>    Set the directory to list
  current user list current directory    List the selected directory
  current user download <path>           Download a file or folder (ZIP)
  current user screenshot                Capture the peer's screen (PNG)
  quit / exit                            Shut down the coordinator
  ────────────────────────────────────────────────────────────────"""

SELECT_USER = "select user"
SELECT_DIRECTORY = "current user select directory "
DOWNLOAD = "current user download "


@dataclass
class ShellResult:
    lines: list[str] = field(default_factory=list)
    clear: bool = False
    quit: bool = False


class OperatorShell:
    def __init__(
        self,
        registry: PeerRegistry,
        dispatcher: CommandDispatcher | None = None,
        downloads_dir: str = DOWNLOADS_DIR,
        screenshots_dir: str = SCREENSHOTS_DIR,
    ):
        self.registry = registry
        self.dispatcher = dispatcher or CommandDispatcher(registry)
        self.downloads_dir = downloads_dir
        self.screenshots_dir = screenshots_dir
        self.selected_peer: int | None = None

    def execute(self, raw: str) -> ShellResult:
        command = raw.strip()
        result = ShellResult()
        out = result.lines

        if not command:
            return result

        if command in ("quit", "exit"):
            result.quit = True
        elif command == "help":
            out.append(HELP_TEXT)
        elif command == "clear":
            result.clear = True
        elif command in ("list users", "peers"):
            out.extend(self._list_users())
        elif command.startswith(SELECT_USER):
            out.append(self._select_user(command[len(SELECT_USER):].strip()))
        elif command.startswith("current user "):
            session = self._selected_session(out)
            if session is not None:
                self._run_peer_command(command, session, out)
        else:
            out.append("  Unknown command. Type 'help' for the list of commands.")
        return result

    # ------------------------------------------------------------------
    # Local commands
    # ------------------------------------------------------------------

    def _list_users(self) -> list[str]:
        sessions = self.registry.snapshot()
        if not sessions:
            return ["  No peers connected."]
        lines = [f"  {'ID':<6} {'Address':<22} Name", f"  {'-' * 6} {'-' * 22} {'-' * 20}"]
        for s in sessions:
            marker = "*" if s.peer_id == self.selected_peer else " "
            addr = f"{s.address[0]}:{s.address[1]}"
            lines.append(f" {marker}{s.peer_id:<6} {addr:<22} {s.name}")
        return lines

    def _select_user(self, arg: str) -> str:
        try:
            peer_id = int(arg)
        except ValueError:
            return "  Invalid format. Use: select user <id>"
        session = self.registry.get(peer_id)
        if session is None:
            return "  Peer not found."
        self.selected_peer = peer_id
        return f"  Selected peer: ID {peer_id} ({session.name})"

    def _selected_session(self, out: list[str]) -> PeerSession | None:
        if self.selected_peer is None:
            out.append("  No peer selected. Use: select user <id>")
            return None
        session = self.registry.get(self.selected_peer)
        if session is None:
            out.append("  The selected peer is no longer connected.")
            self.selected_peer = None
        return session

    # ------------------------------------------------------------------
    # Peer commands
    # ------------------------------------------------------------------

    def _run_peer_command(self, command: str, session: PeerSession, out: list[str]) -> None:
        peer_id = session.peer_id
        try:
            if command == "current user list drives":
                drives = client.fetch_drives(self.dispatcher, peer_id)
                out.extend(f"  {d}" for d in drives or ["(no drives reported)"])

            elif command == SELECT_DIRECTORY.rstrip() or command.startswith(SELECT_DIRECTORY):
                directory = command[len(SELECT_DIRECTORY):].strip()
                if not directory:
                    out.append("  Invalid directory.")
                    return
                session.current_directory = directory
                out.append(f"  Directory set to: {directory}")

            elif command == "current user list current directory":
                directory = session.current_directory
                names = client.fetch_listing(self.dispatcher, peer_id, directory)
                out.append(f"  {directory}")
                out.extend(f"    {n}" for n in names or ["(empty)"])

            elif command == DOWNLOAD.rstrip() or command.startswith(DOWNLOAD):
                path = command[len(DOWNLOAD):].strip()
                if not path:
                    out.append("  Invalid path.")
                    return
                saved = client.do_download(
                    self.dispatcher, peer_id, path, self.downloads_dir
                )
                out.append(
                    f"  Saved archive ({client.format_size(saved.size)}) -> {saved.path}"
                )

            elif command == "current user screenshot":
                saved = client.do_screenshot(self.dispatcher, peer_id, self.screenshots_dir)
                out.append(
                    f"  Saved screenshot ({client.format_size(saved.size)}) -> {saved.path}"
                )

            else:
                out.append("  Unknown command. Type 'help' for the list of commands.")

        except ReplyTimeout:
            out.append("  [!] Timed out waiting for a reply.")
        except PeerDisconnected:
            out.append("  [!] Peer disconnected.")
            self.selected_peer = None
        except UnknownPeer:
            out.append("  The selected peer is no longer connected.")
            self.selected_peer = None
        except RuntimeError as e:
            out.append(f"  [!] Peer reported: {e}")
        except OSError as e:
            out.append(f"  [!] Could not save reply: {e}")
