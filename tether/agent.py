"""
Tether peer agent.

Connects to a coordinator, announces its display name, then answers
commands until the coordinator closes the connection.  Every command gets
exactly one reply, except directory listings (one or more frames) and
unrecognized text (none).

Usage:
    python -m tether.agent --host 192.168.1.10
    python -m tether.agent --host 192.168.1.10 --port 6000 --name lab-01
"""

import argparse
import logging
import socket
import sys
from dataclasses import dataclass

from typing_extensions import Callable

from . import handlers
from .commands import Command, CommandKind, parse_command
from .config import MAX_FRAME_SIZE, PEER_NAME, TCP_PORT
from .errors import ConnectionClosed, FrameError
from .protocol import recv_msg, send_frame, send_msg

logger = logging.getLogger(__name__)

TOO_LARGE_LABELS = {
    CommandKind.DOWNLOAD: "Archive",
    CommandKind.SCREENSHOT: "Screenshot",
}


@dataclass
class CommandHandlers:
    """Providers the agent delegates each command to."""

    list_drives: Callable[[], bytes] = handlers.list_drives
    list_directory: Callable[[str], list[bytes]] = handlers.list_directory
    download: Callable[[str], bytes] = handlers.download
    screenshot: Callable[[], bytes] = handlers.capture_screen


class PeerAgent:
    def __init__(
        self,
        host: str,
        port: int = TCP_PORT,
        name: str = PEER_NAME,
        command_handlers: CommandHandlers | None = None,
        max_frame_size: int = MAX_FRAME_SIZE,
    ):
        self.host = host
        self.port = port
        self.name = name
        self.handlers = command_handlers or CommandHandlers()
        self.max_frame_size = max_frame_size
        self.sock: socket.socket | None = None

    def connect(self, timeout: float = 10) -> None:
        """Open the connection and send the identity frame."""
        sock = socket.create_connection((self.host, self.port), timeout=timeout)
        sock.settimeout(None)
        try:
            send_msg(sock, self.name)
        except FrameError:
            sock.close()
            raise
        self.sock = sock
        logger.info("Connected to %s:%d as %s", self.host, self.port, self.name)

    def close(self) -> None:
        if self.sock is not None:
            self.sock.close()
            self.sock = None

    # ------------------------------------------------------------------
    # Command handling
    # ------------------------------------------------------------------

    def handle_command(self, text: str) -> list[bytes] | None:
        """Run one command. Returns the reply frames, or None for no reply."""
        command = parse_command(text)
        if command is None:
            logger.warning("Ignoring unrecognized command: %r", text)
            return None

        logger.info("Running %s %s", command.kind.value, command.argument)
        try:
            replies = self._run(command)
        except Exception as e:
            logger.exception("Handler for %s failed", command.kind.value)
            return [f"Command failed: {e}".encode("utf-8")]
        return [self._fit_frame(command, payload) for payload in replies]

    def _fit_frame(self, command: Command, payload: bytes) -> bytes:
        # A frame over the coordinator's cap would end the session.
        if len(payload) <= self.max_frame_size:
            return payload
        what = TOO_LARGE_LABELS.get(command.kind, "Reply")
        logger.warning(
            "%s for %s is %d bytes, over the %d-byte frame limit",
            what,
            command.kind.value,
            len(payload),
            self.max_frame_size,
        )
        message = f"{what} too large: {len(payload)} bytes (max {self.max_frame_size})"
        return message.encode("utf-8")

    def _run(self, command: Command) -> list[bytes]:
        if command.kind is CommandKind.LIST_DRIVES:
            return [self.handlers.list_drives()]
        if command.kind is CommandKind.LIST_DIRECTORY:
            return list(self.handlers.list_directory(command.argument))
        if command.kind is CommandKind.DOWNLOAD:
            return [self.handlers.download(command.argument)]
        return [self.handlers.screenshot()]

    def serve(self) -> None:
        """Answer commands until the coordinator disconnects."""
        try:
            while True:
                text = recv_msg(self.sock, self.max_frame_size)
                replies = self.handle_command(text)
                for payload in replies or ():
                    send_frame(self.sock, payload)
        except ConnectionClosed:
            logger.info("Coordinator closed the connection")
        except FrameError as e:
            logger.error("Connection error: %s", e)
        finally:
            self.close()

    def run(self) -> None:
        self.connect()
        self.serve()


def main() -> None:
    parser = argparse.ArgumentParser(description="Tether peer agent")
    parser.add_argument("--host", "-H", required=True, help="Coordinator address")
    parser.add_argument(
        "--port", "-p", type=int, default=TCP_PORT, help="Coordinator TCP port"
    )
    parser.add_argument(
        "--name", default=PEER_NAME, help="Display name reported to the coordinator"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )

    agent = PeerAgent(args.host, args.port, args.name)
    try:
        agent.run()
    except OSError as e:
        print(f"  [!] Connection failed: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n  Interrupted. Shutting down...")
        agent.close()


if __name__ == "__main__":
    main()
