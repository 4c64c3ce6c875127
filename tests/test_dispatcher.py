"""
Tests for dispatcher.py — reply correlation, timeouts and disconnects.
"""

import threading
import time

import pytest

from tether import client
from tether.dispatcher import CommandDispatcher
from tether.errors import PeerDisconnected, ReplyTimeout, UnknownPeer
from tether.protocol import recv_msg, send_frame


def tagged_echo(command):
    return [f"reply to {command}".encode()]


class TestCorrelation:
    def test_back_to_back_commands_get_their_own_replies(
        self, registry, connected_peer, serve_peer
    ):
        session, remote = connected_peer
        serve_peer(remote, tagged_echo)
        dispatcher = CommandDispatcher(registry)

        first = dispatcher.send(session.peer_id, "list drives", timeout=2)
        second = dispatcher.send(session.peer_id, "current user screenshot", timeout=2)

        assert first == b"reply to list drives"
        assert second == b"reply to current user screenshot"

    def test_unknown_peer(self, registry):
        with pytest.raises(UnknownPeer):
            CommandDispatcher(registry).send(99, "list drives", timeout=1)

    def test_stale_reply_is_discarded(
        self, registry, connected_peer, serve_peer, wait_until
    ):
        session, remote = connected_peer
        send_frame(remote, b"late reply from an earlier command")
        assert wait_until(lambda: len(session.mailbox) == 1)

        serve_peer(remote, tagged_echo)
        reply = CommandDispatcher(registry).send(session.peer_id, "list drives", timeout=2)
        assert reply == b"reply to list drives"


class TestTimeout:
    def test_silent_peer_times_out_and_session_survives(
        self, registry, connected_peer, serve_peer
    ):
        session, remote = connected_peer
        dispatcher = CommandDispatcher(registry)

        start = time.monotonic()
        with pytest.raises(ReplyTimeout):
            dispatcher.send(session.peer_id, "list drives", timeout=0.3)
        elapsed = time.monotonic() - start
        assert 0.3 <= elapsed < 1.3

        # The peer swallowed the first command; it answers from now on.
        assert recv_msg(remote) == "list drives"
        assert session.connected
        serve_peer(remote, tagged_echo)
        assert dispatcher.send(session.peer_id, "list drives", timeout=2) == (
            b"reply to list drives"
        )


class TestDisconnect:
    def test_in_flight_caller_is_released(self, registry, connected_peer, wait_until):
        session, remote = connected_peer
        dispatcher = CommandDispatcher(registry)

        removals = []
        original_remove = registry.remove

        def counting_remove(peer_id):
            removed = original_remove(peer_id)
            removals.append(removed)
            return removed

        registry.remove = counting_remove

        stop_scan = threading.Event()

        def scanner():
            while not stop_scan.is_set():
                for s in registry.snapshot():
                    _ = s.connected

        scan_thread = threading.Thread(target=scanner)
        scan_thread.start()

        outcome = {}

        def caller():
            try:
                dispatcher.send(session.peer_id, "current user download C:\\big", timeout=5)
            except PeerDisconnected as e:
                outcome["error"] = e
                outcome["at"] = time.monotonic()

        t = threading.Thread(target=caller)
        t.start()
        assert recv_msg(remote) == "current user download C:\\big"
        dropped_at = time.monotonic()
        remote.close()
        t.join(3)
        stop_scan.set()
        scan_thread.join()

        assert "error" in outcome
        assert outcome["at"] - dropped_at < 2
        assert wait_until(lambda: session.peer_id not in registry)
        assert removals.count(True) == 1

        # Closing again (or a late scan) must not remove anything twice.
        assert session.close() is False
        assert registry.remove(session.peer_id) is False
        with pytest.raises(UnknownPeer):
            dispatcher.send(session.peer_id, "list drives", timeout=1)

    def test_send_to_closed_session(self, registry, connected_peer):
        session, _ = connected_peer
        dispatcher = CommandDispatcher(registry)
        session._on_close = None  # keep it registered to reach the send path
        session.close()
        with pytest.raises(PeerDisconnected):
            dispatcher.send(session.peer_id, "list drives", timeout=1)


class TestMultiFrameReplies:
    def test_listing_split_across_frames(self, registry, connected_peer, serve_peer):
        session, remote = connected_peer

        def two_frames(command):
            assert command == "list current directory C:\\Users"
            send_frame(remote, b"a.txt\nb.txt\n")
            time.sleep(0.05)
            return [b"c.txt\n"]

        serve_peer(remote, two_frames)
        dispatcher = CommandDispatcher(registry)
        frames = dispatcher.send_collect(
            session.peer_id, "list current directory C:\\Users", timeout=2, linger=0.5
        )
        assert frames == [b"a.txt\nb.txt\n", b"c.txt\n"]

    def test_client_joins_frames_in_order(self, registry, connected_peer, serve_peer):
        session, remote = connected_peer

        def two_frames(command):
            send_frame(remote, b"a.txt\nb.txt\n")
            return [b"c.txt\n"]

        serve_peer(remote, two_frames)
        names = client.fetch_listing(
            CommandDispatcher(registry), session.peer_id, "C:\\Users", linger=0.5
        )
        assert names == ["a.txt", "b.txt", "c.txt"]

    def test_listing_error_text(self, registry, connected_peer, serve_peer):
        session, remote = connected_peer
        serve_peer(remote, lambda c: [b"Failed to list directory: [Errno 2] nope\n"])
        with pytest.raises(RuntimeError, match="Failed to list directory"):
            client.fetch_listing(
                CommandDispatcher(registry), session.peer_id, "Z:\\", linger=0.1
            )
