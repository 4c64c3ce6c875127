"""
Shared fixtures: loopback socket pairs, registered peer sessions and a
scripted fake peer.
"""

import socket
import threading
import time

import pytest

from tether.errors import FrameError
from tether.protocol import recv_msg, send_frame
from tether.registry import PeerRegistry


def make_socket_pair():
    """Return a connected (client, server) socket pair."""
    server_sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server_sock.bind(("127.0.0.1", 0))
    server_sock.listen(1)
    port = server_sock.getsockname()[1]

    client = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    client.connect(("127.0.0.1", port))
    server, _ = server_sock.accept()
    server_sock.close()
    return client, server


@pytest.fixture
def socket_pair():
    client, server = make_socket_pair()
    yield client, server
    client.close()
    server.close()


@pytest.fixture
def wait_until():
    def _wait(predicate, timeout=2.0, interval=0.01):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()

    return _wait


@pytest.fixture
def registry():
    reg = PeerRegistry()
    yield reg
    reg.close_all()


@pytest.fixture
def connected_peer(registry, socket_pair):
    """A registered session with a running receive loop.

    Returns (session, remote) where *remote* is the peer's end of the socket.
    """
    remote, local = socket_pair
    session = registry.register(local, ("127.0.0.1", 40000), "lab-01")
    session.start()
    return session, remote


@pytest.fixture
def serve_peer():
    """Run a fake peer on *remote*: responder(command) -> list of payloads."""
    threads = []

    def _serve(remote, responder):
        def loop():
            try:
                while True:
                    command = recv_msg(remote)
                    for payload in responder(command) or ():
                        send_frame(remote, payload)
            except FrameError:
                pass

        thread = threading.Thread(target=loop, daemon=True)
        thread.start()
        threads.append(thread)
        return thread

    yield _serve
    for thread in threads:
        thread.join(timeout=0.1)
