"""
Tests for tether.workers module.
"""

import pytest

from tether.config import LinkConfig
from tether.events import InboundFrame, OutboundAck, Notice
from tether.exceptions import AcceptFailed, EndpointCreationFailed
from tether.memory import MemoryNetwork, MemoryTransport
from tether.role import Role
from tether.stats import StatsCollector
from tether.transport import Transport, Listener
from tether.workers import ListenerWorker, DialerWorker, DataPump

from conftest import FakeManager, RecordingSink, ScriptedStream


class BrokenTransport(Transport):
    """Cannot provision endpoints."""

    def listen(self, variant):
        raise EndpointCreationFailed(variant.name, "adapter off")

    def connector(self, address, variant):
        raise NotImplementedError


class FailingListener(Listener):
    def accept(self):
        raise AcceptFailed("adapter reset")

    def close(self):
        pass


class FailingAcceptTransport(BrokenTransport):
    """Endpoints that fail on the first accept."""

    def listen(self, variant):
        return FailingListener()


@pytest.fixture
def variant():
    return LinkConfig().variant("secure")


def make_pump(stream, config=None):
    fake = FakeManager(Role.CONNECTED)
    sink = RecordingSink()
    stats = StatsCollector()
    pump = DataPump(fake, stream, sink, stats, config or LinkConfig(pacing_delay=0.0))
    return pump, fake, sink, stats


class TestDataPump:
    """Tests for DataPump."""

    def test_two_lines_two_reads(self, wait_until):
        """'AB\\n' then 'CD\\n' give exactly two frames."""
        pump, fake, sink, _ = make_pump(ScriptedStream([b"AB\n", b"CD\n"]))
        pump.start()

        assert sink.wait_for(InboundFrame, count=2)
        pump.cancel()
        pump.join(timeout=2.0)

        assert sink.of_type(InboundFrame) == [InboundFrame(b"AB\n"), InboundFrame(b"CD\n")]
        assert fake.lost == []

    def test_partial_reads_join(self):
        """A line split across reads is one frame."""
        pump, _, sink, _ = make_pump(ScriptedStream([b"AB", b"C", b"D\n"]))
        pump.start()

        assert sink.wait_for(InboundFrame)
        pump.cancel()

        assert sink.of_type(InboundFrame) == [InboundFrame(b"ABCD\n")]

    def test_oversized_read_truncated(self):
        """A read above 2048 bytes is capped; later frames are intact."""
        stream = ScriptedStream([b"x" * 3000 + b"\n", b"OK\n"])
        pump, _, sink, stats = make_pump(stream)
        pump.start()

        assert sink.wait_for(InboundFrame, count=2)
        pump.cancel()

        frames = sink.of_type(InboundFrame)
        assert frames[0].data == b"x" * 2047 + b"\n"
        assert frames[1].data == b"OK\n"
        assert stats.get_stats()["truncated_reads"] == 1
        assert stats.get_stats()["frames_received"] == 2

    def test_read_error_reports_loss(self, wait_until):
        """A read error is reported once and ends the pump."""
        pump, fake, _, _ = make_pump(ScriptedStream(end="error"))
        pump.start()

        assert wait_until(lambda: len(fake.lost) == 1)
        pump.join(timeout=2.0)

        assert not pump.running
        assert fake.lost[0][0] is pump

    def test_eof_reports_loss(self, wait_until):
        """Peer close is a connection loss."""
        pump, fake, _, _ = make_pump(ScriptedStream([b"bye\n"], end="eof"))
        pump.start()

        assert wait_until(lambda: len(fake.lost) == 1)

    def test_cancel_exits_silently(self):
        """cancel() unblocks the read without reporting."""
        stream = ScriptedStream()
        pump, fake, sink, _ = make_pump(stream)
        pump.start()

        pump.cancel()
        pump.join(timeout=2.0)

        assert not pump.running
        assert stream.closed
        assert fake.lost == []
        assert sink.events == []

    def test_cancel_during_pacing(self):
        """A long pacing pause does not delay cancellation."""
        pump, fake, _, _ = make_pump(ScriptedStream(), LinkConfig(pacing_delay=30.0))
        pump.start()

        pump.cancel()
        pump.join(timeout=2.0)

        assert not pump.running
        assert fake.lost == []

    def test_write_acknowledged(self):
        """A successful write emits OutboundAck with the same bytes."""
        stream = ScriptedStream()
        pump, _, sink, stats = make_pump(stream)

        assert pump.write(b"ping\n")

        assert stream.writes == [b"ping\n"]
        assert sink.events == [OutboundAck(b"ping\n")]
        assert stats.get_stats()["bytes_sent"] == 5

    def test_write_failure_not_retried(self):
        """A failed write emits a notice and is not retried."""
        stream = ScriptedStream(fail_writes=True)
        pump, fake, sink, stats = make_pump(stream)
        pump.start()

        assert pump.write(b"ping\n") is False

        assert stream.writes == []
        assert sink.events == [Notice("Write failed")]
        assert stats.get_stats()["write_failures"] == 1
        assert pump.running
        assert fake.lost == []
        pump.cancel()

    def test_write_after_cancel_is_quiet(self):
        """Writes racing a cancel are dropped without a notice."""
        stream = ScriptedStream()
        pump, _, sink, _ = make_pump(stream)
        pump.cancel()

        assert pump.write(b"late\n") is False
        assert sink.events == []


class TestListenerWorker:
    """Tests for ListenerWorker."""

    def test_inert_when_listen_fails(self, variant):
        """No endpoint: start() is a no-op."""
        worker = ListenerWorker(FakeManager(), BrokenTransport(), variant)
        worker.start()

        assert worker.inert
        assert not worker.running
        worker.cancel()

    def test_accept_error_exits(self, variant):
        """An accept failure ends the loop without a handoff."""
        fake = FakeManager()
        worker = ListenerWorker(fake, FailingAcceptTransport(), variant)
        worker.start()
        worker.join(timeout=2.0)

        assert not worker.running
        assert fake.accepted == []

    def test_accepted_stream_handed_off(self, variant, wait_until):
        """Inbound streams go to the manager tagged with the variant."""
        network = MemoryNetwork()
        fake = FakeManager(Role.LISTENING)
        worker = ListenerWorker(fake, MemoryTransport(network, "here"), variant)
        worker.start()

        MemoryTransport(network, "there").dial("here", variant)

        assert wait_until(lambda: len(fake.accepted) == 1)
        listener, stream = fake.accepted[0]
        assert listener is worker
        assert stream.peer_name == "there"
        assert stream.variant == "secure"
        worker.cancel()
        worker.join(timeout=2.0)
        assert not worker.running

    def test_stops_once_connected(self, variant):
        """The loop does not accept once the role is CONNECTED."""
        network = MemoryNetwork()
        worker = ListenerWorker(FakeManager(Role.CONNECTED), MemoryTransport(network, "here"), variant)
        worker.start()
        worker.join(timeout=2.0)

        assert not worker.running
        worker.cancel()
        assert not network.is_listening("here", variant.service_id)

    def test_cancel_unblocks_accept(self, variant):
        """cancel() closes the endpoint and the thread exits."""
        network = MemoryNetwork()
        worker = ListenerWorker(FakeManager(), MemoryTransport(network, "here"), variant)
        worker.start()

        worker.cancel()
        worker.join(timeout=2.0)

        assert not worker.running
        assert not network.is_listening("here", variant.service_id)


class TestDialerWorker:
    """Tests for DialerWorker."""

    def test_success_hands_off(self, variant, wait_until):
        """A connected stream is handed to the manager."""
        network = MemoryNetwork()
        MemoryTransport(network, "there").listen(variant)
        fake = FakeManager(Role.CONNECTING)
        worker = DialerWorker(fake, MemoryTransport(network, "here"), "there", variant)
        worker.start()

        assert wait_until(lambda: len(fake.dialed) == 1)
        dialer, stream = fake.dialed[0]
        assert dialer is worker
        assert stream.peer_name == "there"
        assert stream.variant == "secure"
        assert fake.dial_failures == []

    def test_failure_reported(self, variant, wait_until):
        """An unreachable peer is reported as a dial failure."""
        fake = FakeManager(Role.CONNECTING)
        worker = DialerWorker(fake, MemoryTransport(MemoryNetwork(), "here"), "nobody", variant)
        worker.start()

        assert wait_until(lambda: len(fake.dial_failures) == 1)
        assert fake.dialed == []

    def test_cancel_aborts_attempt(self, variant):
        """A cancelled attempt neither succeeds nor reports."""
        network = MemoryNetwork()
        MemoryTransport(network, "there").listen(variant)
        fake = FakeManager(Role.CONNECTING)
        worker = DialerWorker(fake, MemoryTransport(network, "here", dial_delay=5.0), "there", variant)
        worker.start()

        worker.cancel()
        worker.join(timeout=2.0)

        assert not worker.running
        assert fake.dialed == []
        assert fake.dial_failures == []

    def test_cancel_before_start(self, variant):
        """A dialer cancelled before running never dials."""
        fake = FakeManager(Role.CONNECTING)
        worker = DialerWorker(fake, BrokenTransport(), "there", variant)
        worker.cancel()
        worker.start()
        worker.join(timeout=2.0)

        assert fake.dialed == []
        assert fake.dial_failures == []
