"""
Contract tests for the listener registry

Covers: listener connect/disconnect, fan-out broadcast, pruning of closed
listeners, slow-listener drop, producer (fan-out sink) accounting.
"""

import asyncio

import pytest

from onair.broadcast.registry import FanoutSink, ListenerRegistry, ListenerSink
from onair.errors import TooManyListeners


class TestListenerRegistryConnections:
    """Tests for listener bookkeeping."""

    @pytest.fixture
    def registry(self):
        return ListenerRegistry(listener_buffer_bytes=1024, max_listeners=3)

    def test_connect_assigns_unique_ids(self, registry):
        """Test that every listener gets its own id and sink."""
        id_a, sink_a = registry.connect()
        id_b, sink_b = registry.connect()

        assert id_a != id_b
        assert sink_a is not sink_b
        assert isinstance(sink_a, ListenerSink)
        assert registry.listener_count == 2
        assert set(registry.listener_ids()) == {id_a, id_b}

    def test_connect_rejects_when_full(self, registry):
        """Test that connecting beyond max_listeners raises TooManyListeners."""
        for _ in range(3):
            registry.connect()

        with pytest.raises(TooManyListeners):
            registry.connect()
        assert registry.listener_count == 3

    def test_disconnect_closes_sink(self, registry):
        """Test that disconnect removes the listener and closes its sink."""
        listener_id, sink = registry.connect()

        registry.disconnect(listener_id)

        assert sink.closed
        assert registry.listener_count == 0

    def test_disconnect_unknown_id_is_noop(self, registry):
        """Test that disconnecting twice does not raise."""
        listener_id, _ = registry.connect()
        registry.disconnect(listener_id)
        registry.disconnect(listener_id)
        registry.disconnect("never-connected")
        assert registry.listener_count == 0

    def test_close_all(self, registry):
        """Test that close_all closes every listener."""
        sinks = [registry.connect()[1] for _ in range(3)]

        registry.close_all()

        assert registry.listener_count == 0
        assert all(sink.closed for sink in sinks)


class TestListenerRegistryBroadcast:
    """Tests for fan-out semantics."""

    @pytest.fixture
    def registry(self):
        return ListenerRegistry(listener_buffer_bytes=1024)

    def test_broadcast_reaches_every_listener(self, registry):
        """Test that each listener receives every chunk in order."""
        sinks = [registry.connect()[1] for _ in range(3)]

        registry.broadcast(b"one")
        registry.broadcast(b"two")

        for sink in sinks:
            assert list(sink._chunks) == [b"one", b"two"]

    def test_closed_listener_is_pruned_mid_stream(self, registry):
        """Test that a listener closing mid-stream is removed and the others keep receiving."""
        (_, sink_a), (id_b, sink_b), (_, sink_c) = [registry.connect() for _ in range(3)]

        registry.broadcast(b"chunk-1")
        sink_b.close()
        registry.broadcast(b"chunk-2")

        assert list(sink_a._chunks) == [b"chunk-1", b"chunk-2"]
        assert list(sink_c._chunks) == [b"chunk-1", b"chunk-2"]
        assert id_b not in registry.listener_ids()
        assert registry.listener_count == 2

    def test_empty_chunk_is_ignored(self, registry):
        """Test that an empty chunk is not delivered."""
        _, sink = registry.connect()
        registry.broadcast(b"")
        assert sink.buffered_bytes == 0

    def test_slow_listener_is_dropped(self):
        """Test that a listener whose buffer overflows is closed; others are unaffected."""
        registry = ListenerRegistry(listener_buffer_bytes=10)
        _, slow = registry.connect()
        _, fast = registry.connect()

        registry.broadcast(b"12345678")
        fast._chunks.clear()
        fast._buffered = 0
        registry.broadcast(b"12345678")

        assert slow.closed
        assert not fast.closed
        assert fast.buffered_bytes == 8

        registry.broadcast(b"x")
        assert registry.listener_count == 1


class TestListenerSink:
    """Tests for the per-listener buffer."""

    @pytest.mark.asyncio
    @pytest.mark.timeout(5)
    async def test_read_waits_for_data(self):
        """Test that read() blocks until a chunk is written."""
        sink = ListenerSink("l1", max_buffer_bytes=100)
        reader = asyncio.create_task(sink.read())
        await asyncio.sleep(0.01)
        assert not reader.done()

        sink.write(b"abc")

        assert await asyncio.wait_for(reader, 1.0) == b"abc"
        assert sink.buffered_bytes == 0

    @pytest.mark.asyncio
    @pytest.mark.timeout(5)
    async def test_read_returns_none_after_close(self):
        """Test that a pending read is released with None when the sink closes."""
        sink = ListenerSink("l1")
        reader = asyncio.create_task(sink.read())
        await asyncio.sleep(0.01)

        sink.close()

        assert await asyncio.wait_for(reader, 1.0) is None

    def test_write_after_close_is_ignored(self):
        """Test that writes to a closed sink are dropped silently."""
        sink = ListenerSink("l1")
        sink.close()
        sink.write(b"late")
        assert sink.buffered_bytes == 0


class TestFanoutSinks:
    """Tests for producer accounting."""

    def test_producer_count_tracks_open_fanouts(self):
        """Test that producer_count counts fan-out sinks until they close."""
        registry = ListenerRegistry()
        first = registry.fanout_sink()
        second = registry.fanout_sink()
        assert isinstance(first, FanoutSink)
        assert registry.producer_count == 2

        first.close()
        first.close()
        assert registry.producer_count == 1

        second.close()
        assert registry.producer_count == 0

    def test_closed_fanout_does_not_write(self):
        """Test that a closed fan-out sink no longer reaches listeners."""
        registry = ListenerRegistry()
        _, sink = registry.connect()
        fanout = registry.fanout_sink()

        fanout.write(b"live")
        fanout.close()
        fanout.write(b"stale")

        assert list(sink._chunks) == [b"live"]
