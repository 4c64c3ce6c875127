"""
Tether TUI — terminal dashboard for the coordinator.

Built with Textual.  Launched by default from `python -m tether.coordinator`.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime

from rich.markup import escape
from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, Vertical
from textual.widgets import (
    Button,
    Footer,
    Header,
    Input,
    Label,
    ListItem,
    ListView,
    RichLog,
    Static,
)
from textual.screen import ModalScreen

from .server import CoordinatorServer
from .shell import HELP_TEXT, OperatorShell

LEVEL_COLORS = {
    logging.DEBUG: "#718ca1",
    logging.INFO: "#5ec4ff",
    logging.WARNING: "#e0c97f",
    logging.ERROR: "#e74c3c",
    logging.CRITICAL: "#e74c3c",
}


# ==============================================================================
# Logging bridge
# ==============================================================================


class RichLogHandler(logging.Handler):
    """Forwards log records from any thread to the dashboard's log panel."""

    def __init__(self, app: TetherApp):
        super().__init__()
        self.app = app

    def emit(self, record: logging.LogRecord) -> None:
        color = LEVEL_COLORS.get(record.levelno, "#718ca1")
        message = f"[{color}]{record.levelname.lower()}[/]  {escape(self.format(record))}"
        try:
            self.app.call_from_thread(self.app.write_log, message)
        except RuntimeError:
            # Either we are on the app thread already, or the app is gone.
            if self.app.is_running:
                self.app.write_log(message)


# ==============================================================================
# Help Modal
# ==============================================================================


class HelpScreen(ModalScreen):
    """Full help overlay."""

    BINDINGS = [Binding("escape", "dismiss", "Close")]

    def compose(self) -> ComposeResult:
        with Container(id="help-dialog"):
            yield Label("TETHER  —  Help", id="help-title")
            yield Static(
                "[bold #5ec4ff]Keybindings[/]\n"
                "\n"
                "  [#e0c97f]F1[/]          Show this help\n"
                "  [#e0c97f]F2[/]          List drives of the selected peer\n"
                "  [#e0c97f]F5[/]          List the selected peer's current directory\n"
                "  [#e0c97f]F6[/]          Capture the selected peer's screen\n"
                "  [#e0c97f]Ctrl+L[/]      Clear the log\n"
                "  [#e0c97f]Ctrl+Q[/]      Quit\n"
                "\n"
                "[bold #5ec4ff]Command Input[/]\n"
                "\n" + escape(HELP_TEXT),
                id="help-content",
            )
            yield Button("Close  (Esc)", id="help-close-btn")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "help-close-btn":
            self.dismiss()


# ==============================================================================
# Main TUI App
# ==============================================================================


class TetherApp(App):
    """Tether coordinator — Terminal Dashboard."""

    TITLE = "TETHER"
    SUB_TITLE = "Coordinator"
    CSS_PATH = "styles/tether.tcss"
    ENABLE_COMMAND_PALETTE = False

    BINDINGS = [
        Binding("f1", "show_help", "Help", show=True),
        Binding("f2", "list_drives", "Drives", show=True),
        Binding("f5", "list_directory", "List dir", show=True),
        Binding("f6", "screenshot", "Screenshot", show=True),
        Binding("ctrl+l", "clear_log", "Clear", show=True),
        Binding("ctrl+q", "quit_app", "Quit", show=True),
    ]

    def __init__(self, server: CoordinatorServer, shell: OperatorShell):
        super().__init__()
        self.server = server
        self.shell = shell
        # One command in flight at a time: the mailbox cannot tell replies apart.
        self._command_lock = threading.Lock()
        self._peer_ids: list[int] = []

    # --------------------------------------------------------------------------
    # Layout
    # --------------------------------------------------------------------------

    def compose(self) -> ComposeResult:
        yield Header()

        with Horizontal(id="main-container"):
            with Vertical(id="sidebar"):
                yield Label("PEERS", id="sidebar-title")
                yield ListView(id="peer-list")

            with Vertical(id="main-panel"):
                with Container(id="selection-header"):
                    yield Label("Select a peer to send commands", id="selection-text")
                yield RichLog(id="log-view", highlight=True, markup=True, wrap=True)

                with Horizontal(id="action-bar"):
                    yield Button("Drives", id="btn-drives")
                    yield Button("List dir", id="btn-list")
                    yield Button("Screenshot", id="btn-screenshot")

        with Horizontal(id="command-bar"):
            yield Input(
                placeholder="Type a command (or press F1 for help)...",
                id="command-input",
            )

        yield Footer()

    # --------------------------------------------------------------------------
    # Startup
    # --------------------------------------------------------------------------

    def on_mount(self) -> None:
        try:
            self.server.start()
        except OSError as e:
            self.write_log(
                f"[#e74c3c]Could not listen on port {self.server.port}:[/] "
                f"{escape(str(e))}"
            )
            return

        self.write_log(
            f"Tether coordinator listening on [bold #5ec4ff]port {self.server.port}[/]"
        )
        self.write_log("Waiting for peers...")
        self.set_interval(1.0, self._poll_peers)
        self.query_one("#command-input", Input).focus()

    # --------------------------------------------------------------------------
    # Logging
    # --------------------------------------------------------------------------

    def write_log(self, message: str) -> None:
        log_view = self.query_one("#log-view", RichLog)
        ts = datetime.now().strftime("%H:%M:%S")
        log_view.write(f"[#41505e]{ts}[/]  {message}")

    def _write_lines(self, lines: list[str]) -> None:
        for line in lines:
            self.write_log(escape(line))

    # --------------------------------------------------------------------------
    # Peer list polling
    # --------------------------------------------------------------------------

    def _poll_peers(self) -> None:
        sessions = self.server.registry.snapshot()
        ids = [s.peer_id for s in sessions]
        if ids == self._peer_ids:
            return
        self._peer_ids = ids

        # Worker threads may clear the selection; read it once.
        selected = self.shell.selected_peer
        peer_list = self.query_one("#peer-list", ListView)
        peer_list.clear()
        for s in sessions:
            marker = "[#00ff9f]●[/]" if s.peer_id == selected else "○"
            label = Static(
                f"{marker} [bold #5ec4ff]{s.peer_id}[/] {escape(s.name)}\n"
                f"  [#718ca1]{s.address[0]}:{s.address[1]}[/]",
                classes="peer-entry",
            )
            item = ListItem(label)
            item.peer_id = s.peer_id  # type: ignore[attr-defined]
            peer_list.append(item)

        if selected is not None and selected not in ids:
            self.shell.selected_peer = None
            self._update_selection_header()

    def on_list_view_selected(self, event: ListView.Selected) -> None:
        peer_id = getattr(event.item, "peer_id", None)
        if peer_id is None:
            return
        result = self.shell.execute(f"select user {peer_id}")
        self._write_lines(result.lines)
        self._update_selection_header()
        self._peer_ids = []  # redraw markers

    def _update_selection_header(self) -> None:
        label = self.query_one("#selection-text", Label)
        selected = self.shell.selected_peer
        session = self.server.registry.get(selected) if selected is not None else None
        if session is None:
            label.update("Select a peer to send commands")
        else:
            label.update(
                f"PEER: [bold #5ec4ff]{escape(session.name)}[/]  "
                f"([#718ca1]{session.address[0]}[/])  "
                f"dir: [#e0c97f]{escape(session.current_directory)}[/]"
            )

    # --------------------------------------------------------------------------
    # Commands
    # --------------------------------------------------------------------------

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id != "command-input":
            return
        raw = event.value.strip()
        event.input.value = ""
        if not raw:
            return

        self.write_log(f"[bold]>[/] {escape(raw)}")
        if raw == "help":
            self.action_show_help()
        elif raw.startswith("current user "):
            self._run_peer_command(raw)
        else:
            self._apply(self.shell.execute(raw))

    def _apply(self, result) -> None:
        if result.clear:
            self.action_clear_log()
        self._write_lines(result.lines)
        if result.quit:
            self.action_quit_app()
        self._update_selection_header()
        self._peer_ids = []

    @work(thread=True)
    def _run_peer_command(self, raw: str) -> None:
        if not self._command_lock.acquire(blocking=False):
            self.call_from_thread(
                self.write_log,
                "[#e0c97f]Warning:[/] still waiting on the previous command.",
            )
            return
        try:
            result = self.shell.execute(raw)
        finally:
            self._command_lock.release()
        self.call_from_thread(self._apply, result)

    # --------------------------------------------------------------------------
    # Actions — keybindings and buttons
    # --------------------------------------------------------------------------

    def action_show_help(self) -> None:
        self.push_screen(HelpScreen())

    def action_list_drives(self) -> None:
        self._run_peer_command("current user list drives")

    def action_list_directory(self) -> None:
        self._run_peer_command("current user list current directory")

    def action_screenshot(self) -> None:
        self._run_peer_command("current user screenshot")

    def action_clear_log(self) -> None:
        self.query_one("#log-view", RichLog).clear()

    def action_quit_app(self) -> None:
        self.write_log("Shutting down...")
        self.exit()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        btn_id = event.button.id
        if btn_id == "btn-drives":
            self.action_list_drives()
        elif btn_id == "btn-list":
            self.action_list_directory()
        elif btn_id == "btn-screenshot":
            self.action_screenshot()


# ==============================================================================
# Entry point (called from coordinator.py)
# ==============================================================================


def run_tui(server: CoordinatorServer, shell: OperatorShell, level: int = logging.INFO) -> None:
    """Launch the Tether TUI with library logging routed into the log panel."""
    app = TetherApp(server, shell)
    handler = RichLogHandler(app)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(level)
    try:
        app.run()
    finally:
        root.removeHandler(handler)
        server.stop()
