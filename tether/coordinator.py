"""
Tether — coordinator entry point.

Starts the TCP server that peers connect to, then either a CLI loop or the
full TUI dashboard.

Usage:
    python -m tether.coordinator              # start TUI mode (default)
    python -m tether.coordinator --cli        # start CLI mode
    python -m tether.coordinator --port 6000  # use a custom TCP port
"""

import argparse
import logging
import os
import sys

from .config import DOWNLOADS_DIR, SCREENSHOTS_DIR, TCP_PORT
from .registry import PeerRegistry
from .server import CoordinatorServer
from .shell import OperatorShell


def _clear_screen() -> None:
    os.system("cls" if os.name == "nt" else "clear")


def run_cli(shell: OperatorShell) -> None:
    """Read operator commands from stdin until quit or EOF."""
    print("  Type 'help' for available commands.\n")
    try:
        while True:
            try:
                raw = input("tether> ")
            except EOFError:
                break

            result = shell.execute(raw)
            if result.clear:
                _clear_screen()
            for line in result.lines:
                print(line)
            if result.quit:
                print("  Shutting down...")
                break
    except KeyboardInterrupt:
        print("\n  Interrupted. Shutting down...")


def main() -> None:
    parser = argparse.ArgumentParser(description="Tether coordinator")
    parser.add_argument(
        "--host", default="0.0.0.0", help="Address to listen on (default: all)"
    )
    parser.add_argument(
        "--port", type=int, default=TCP_PORT, help="TCP port to listen on"
    )
    parser.add_argument(
        "--downloads", default=DOWNLOADS_DIR, help="Where downloaded archives go"
    )
    parser.add_argument(
        "--screenshots", default=SCREENSHOTS_DIR, help="Where screenshots go"
    )
    parser.add_argument(
        "--cli", action="store_true", help="Launch CLI mode instead of TUI dashboard"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args()

    level = logging.DEBUG if args.verbose else logging.INFO
    registry = PeerRegistry()
    server = CoordinatorServer(registry, host=args.host, port=args.port)
    shell = OperatorShell(
        registry, downloads_dir=args.downloads, screenshots_dir=args.screenshots
    )

    # ── TUI mode (default) ──
    if not args.cli:
        from .tui import run_tui

        run_tui(server, shell, level)
        return

    # ── CLI mode ──
    logging.basicConfig(level=level, format="  [%(levelname)s] %(message)s")
    try:
        server.start()
    except OSError as e:
        print(f"  [!] Could not listen on port {args.port}: {e}", file=sys.stderr)
        sys.exit(1)
    print(f"  Tether coordinator listening on port {server.port}")
    try:
        run_cli(shell)
    finally:
        server.stop()
    print("  Goodbye.")


if __name__ == "__main__":
    main()
