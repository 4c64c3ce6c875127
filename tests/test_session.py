"""
Tests for session.py and registry.py — mailbox semantics, receive loop
lifecycle and concurrent registry access.
"""

import threading
import time

import pytest

from tether.errors import PeerDisconnected, ReplyTimeout, UnknownPeer
from tether.protocol import send_frame
from tether.registry import PeerRegistry
from tether.session import Mailbox, SessionState

from conftest import make_socket_pair


# ---------------------------------------------------------------------------
# Mailbox
# ---------------------------------------------------------------------------


class TestMailbox:
    def test_fifo_order(self):
        box = Mailbox()
        for payload in (b"one", b"two", b"three"):
            box.put(payload)
        assert [box.get(0.1) for _ in range(3)] == [b"one", b"two", b"three"]

    def test_get_times_out(self):
        box = Mailbox()
        start = time.monotonic()
        with pytest.raises(ReplyTimeout):
            box.get(0.2)
        elapsed = time.monotonic() - start
        assert 0.2 <= elapsed < 1.0

    def test_waiter_wakes_on_put(self):
        box = Mailbox()
        threading.Timer(0.05, box.put, args=(b"late",)).start()
        assert box.get(2.0) == b"late"

    def test_close_releases_waiter(self):
        box = Mailbox()
        outcome = {}

        def waiter():
            try:
                box.get(5.0)
            except PeerDisconnected:
                outcome["released"] = time.monotonic()

        t = threading.Thread(target=waiter)
        t.start()
        time.sleep(0.05)
        closed_at = time.monotonic()
        box.close()
        t.join(2.0)
        assert "released" in outcome
        assert outcome["released"] - closed_at < 1.0

    def test_queued_frames_survive_close(self):
        box = Mailbox()
        box.put(b"last words")
        box.close()
        assert box.get(0.1) == b"last words"
        with pytest.raises(PeerDisconnected):
            box.get(0.1)

    def test_put_after_close_is_dropped(self):
        box = Mailbox()
        box.close()
        box.put(b"ignored")
        assert len(box) == 0

    def test_shares_an_external_lock(self):
        lock = threading.Lock()
        box = Mailbox(lock)
        box.put(b"payload")
        with lock:
            assert box._frames[0] == b"payload"
        assert box.get(0.1) == b"payload"

    def test_full_mailbox_refuses_new_frames(self):
        box = Mailbox(capacity=2)
        assert box.put(b"one") and box.put(b"two")
        assert box.put(b"three") is False
        assert box.drain(0.1) == [b"one", b"two"]
        assert box.put(b"four") is True

    def test_drain_takes_everything_queued(self):
        box = Mailbox()
        box.put(b"a.txt\nb.txt\n")
        box.put(b"c.txt\n")
        assert box.drain(0.1) == [b"a.txt\nb.txt\n", b"c.txt\n"]
        assert len(box) == 0

    def test_drain_lingers_for_follow_up_frames(self):
        box = Mailbox()
        box.put(b"first\n")
        threading.Timer(0.05, box.put, args=(b"second\n",)).start()
        assert box.drain(1.0, linger=0.5) == [b"first\n", b"second\n"]

    def test_drain_without_linger_returns_immediately(self):
        box = Mailbox()
        box.put(b"only")
        threading.Timer(0.2, box.put, args=(b"later",)).start()
        assert box.drain(1.0) == [b"only"]

    def test_drain_times_out_when_empty(self):
        with pytest.raises(ReplyTimeout):
            Mailbox().drain(0.1, linger=0.1)

    def test_clear_returns_stale_frames(self):
        box = Mailbox()
        box.put(b"stale")
        assert box.clear() == [b"stale"]
        assert len(box) == 0


# ---------------------------------------------------------------------------
# PeerSession
# ---------------------------------------------------------------------------


class TestPeerSession:
    def test_receive_loop_fills_mailbox(self, connected_peer):
        session, remote = connected_peer
        send_frame(remote, b"C:\\\x00D:\\\x00\x00")
        assert session.mailbox.get(2.0) == b"C:\\\x00D:\\\x00\x00"

    def test_remote_close_ends_session(self, registry, connected_peer, wait_until):
        session, remote = connected_peer
        remote.close()
        assert wait_until(lambda: session.state is SessionState.CLOSED)
        assert wait_until(lambda: session.peer_id not in registry)
        with pytest.raises(PeerDisconnected):
            session.mailbox.get(0.1)

    def test_close_is_idempotent(self):
        calls = []
        client, server = make_socket_pair()
        try:
            reg = PeerRegistry()
            session = reg.register(server, ("127.0.0.1", 1), "x")
            session._on_close = lambda s: calls.append(s.peer_id)
            assert session.close() is True
            assert session.close() is False
            assert calls == [session.peer_id]
        finally:
            client.close()

    def test_current_directory_hint(self, connected_peer):
        session, _ = connected_peer
        session.current_directory = "D:\\Projects"
        assert session.current_directory == "D:\\Projects"


# ---------------------------------------------------------------------------
# PeerRegistry
# ---------------------------------------------------------------------------


class TestPeerRegistry:
    def _register(self, reg, name="peer"):
        client, server = make_socket_pair()
        self._sockets.append(client)
        return reg.register(server, ("127.0.0.1", 1), name)

    @pytest.fixture(autouse=True)
    def _cleanup(self):
        self._sockets = []
        yield
        for s in self._sockets:
            s.close()

    def test_ids_are_monotonic_and_never_reused(self):
        reg = PeerRegistry()
        first = self._register(reg)
        second = self._register(reg)
        assert (first.peer_id, second.peer_id) == (1, 2)
        first.close()
        third = self._register(reg)
        assert third.peer_id == 3
        reg.close_all()

    def test_lookup_unknown_peer(self):
        with pytest.raises(UnknownPeer):
            PeerRegistry().lookup(7)

    def test_snapshot_is_sorted_copy(self):
        reg = PeerRegistry()
        sessions = [self._register(reg, f"p{i}") for i in range(3)]
        snap = reg.snapshot()
        assert [s.peer_id for s in snap] == [s.peer_id for s in sessions]
        sessions[1].close()
        assert len(snap) == 3
        assert [s.name for s in reg.snapshot()] == ["p0", "p2"]
        reg.close_all()
        assert len(reg) == 0

    def test_concurrent_removal_happens_once(self):
        reg = PeerRegistry()
        session = self._register(reg)
        results = []
        barrier = threading.Barrier(8)

        def remover():
            barrier.wait()
            results.append(reg.remove(session.peer_id))

        threads = [threading.Thread(target=remover) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert results.count(True) == 1
        session.close()

    def test_scan_while_peers_come_and_go(self):
        reg = PeerRegistry()
        stop = threading.Event()
        errors = []

        def scanner():
            while not stop.is_set():
                try:
                    for s in reg.snapshot():
                        _ = s.name
                except Exception as e:  # pragma: no cover - failure path
                    errors.append(e)

        t = threading.Thread(target=scanner)
        t.start()
        for i in range(20):
            self._register(reg, f"p{i}").close()
        stop.set()
        t.join()
        assert errors == []
        assert len(reg) == 0
