"""Tests for the connection-state aware buffered publisher."""

import threading

from fakes import FakeExchange

from amqp_log_stream.common.events import StreamEvent
from amqp_log_stream.domain.buffered_publisher import BufferedPublisher
from amqp_log_stream.logic.message_transformer import OutboundMessage
from amqp_log_stream.state.connection_state import ConnectionState


def _msg(i):
    return ("info", f"m{i}".encode())


class TestConnectedPublishing:
    def test_sends_in_order(self, exchange):
        publisher = BufferedPublisher()
        publisher.handle_ready(exchange)
        for i in range(20):
            publisher.send(*_msg(i))
        assert exchange.published == [_msg(i) for i in range(20)]
        assert publisher.pending == 0
        assert publisher.published == 20

    def test_initial_state_is_disconnected(self):
        assert BufferedPublisher().state is ConnectionState.DISCONNECTED


class TestBufferThenDrain:
    def test_disconnected_sends_are_buffered(self):
        publisher = BufferedPublisher()
        for i in range(3):
            publisher.send(*_msg(i))
        assert publisher.pending == 3
        assert publisher.pending_messages()[0] == OutboundMessage(*_msg(0))

    def test_drain_on_ready_precedes_later_sends(self, exchange):
        publisher = BufferedPublisher()
        for i in range(3):
            publisher.send(*_msg(i))
        publisher.handle_ready(exchange)
        publisher.send(*_msg(3))
        assert exchange.published == [_msg(i) for i in range(4)]
        assert publisher.pending == 0

    def test_connect_observer_sending_does_not_overtake_buffer(self, exchange):
        publisher = BufferedPublisher()
        publisher.send(*_msg(0))
        publisher.send(*_msg(1))
        publisher.subscribe(StreamEvent.CONNECT, lambda: publisher.send(*_msg(2)))
        publisher.handle_ready(exchange)
        assert exchange.published == [_msg(0), _msg(1), _msg(2)]


class TestBoundedStaleness:
    def test_only_newest_capacity_messages_survive(self, exchange):
        capacity, total = 5, 12
        publisher = BufferedPublisher(buffer_size=capacity)
        for i in range(total):
            publisher.send(*_msg(i))
        assert publisher.pending == capacity
        assert publisher.evicted == total - capacity

        publisher.handle_ready(exchange)
        assert exchange.published == [_msg(i) for i in range(total - capacity, total)]


class TestReconnect:
    def test_close_stops_publishing_even_with_stale_handle(self):
        stale = FakeExchange()
        publisher = BufferedPublisher()
        publisher.handle_ready(stale)
        publisher.send(*_msg(0))
        publisher.handle_close("connection reset")

        publisher.send(*_msg(1))
        assert stale.published == [_msg(0)]
        assert publisher.pending == 1
        assert publisher.state is ConnectionState.DISCONNECTED

        fresh = FakeExchange()
        publisher.handle_ready(fresh)
        publisher.send(*_msg(2))
        assert fresh.published == [_msg(1), _msg(2)]
        assert stale.published == [_msg(0)]

    def test_error_also_disconnects(self, exchange):
        errors = []
        publisher = BufferedPublisher()
        publisher.subscribe(StreamEvent.ERROR, errors.append)
        publisher.handle_ready(exchange)
        failure = ConnectionError("refused")
        publisher.handle_error(failure)
        publisher.send(*_msg(0))
        assert exchange.published == []
        assert publisher.pending == 1
        assert errors == [failure]

    def test_lifecycle_notifications(self, exchange):
        events = []
        publisher = BufferedPublisher()
        publisher.subscribe(StreamEvent.CONNECT, lambda: events.append("connect"))
        publisher.subscribe(StreamEvent.CLOSE, lambda: events.append("close"))
        publisher.handle_ready(exchange)
        publisher.handle_close()
        publisher.handle_ready(exchange)
        assert events == ["connect", "close", "connect"]

    def test_ready_while_connected_swaps_handle(self, exchange):
        publisher = BufferedPublisher()
        publisher.handle_ready(FakeExchange())
        publisher.handle_ready(exchange)
        publisher.send(*_msg(0))
        assert publisher.state is ConnectionState.CONNECTED
        assert exchange.published == [_msg(0)]

    def test_close_while_disconnected_still_notifies(self):
        events = []
        publisher = BufferedPublisher()
        publisher.subscribe(StreamEvent.CLOSE, lambda: events.append("close"))
        publisher.handle_close("already down")
        assert publisher.state is ConnectionState.DISCONNECTED
        assert events == ["close"]


class TestFlushAndFailures:
    def test_flush_while_disconnected_keeps_buffer(self):
        publisher = BufferedPublisher()
        publisher.send(*_msg(0))
        publisher.send(*_msg(1))
        publisher.flush()
        assert publisher.pending_messages() == [OutboundMessage(*_msg(0)), OutboundMessage(*_msg(1))]

    def test_publish_or_buffer_without_handle_buffers(self):
        publisher = BufferedPublisher()
        publisher.publish_or_buffer(*_msg(0))
        assert publisher.pending == 1

    def test_failed_publish_is_not_retried_or_raised(self):
        failing = FakeExchange(fail=True)
        publisher = BufferedPublisher()
        publisher.handle_ready(failing)
        publisher.send(*_msg(0))
        assert publisher.pending == 0
        assert publisher.published == 0


class TestConcurrency:
    def test_concurrent_sends_and_reconnect_lose_nothing(self, exchange):
        publisher = BufferedPublisher(buffer_size=1000)
        per_thread = 100

        def produce(tag):
            for i in range(per_thread):
                publisher.send(tag, str(i).encode())

        threads = [threading.Thread(target=produce, args=(f"t{n}",)) for n in range(4)]
        for t in threads:
            t.start()
        publisher.handle_ready(exchange)
        for t in threads:
            t.join()

        assert len(exchange.published) == 4 * per_thread
        for n in range(4):
            own = [int(p) for key, p in exchange.published if key == f"t{n}"]
            assert own == list(range(per_thread))
