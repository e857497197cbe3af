# onair/broadcast/registry.py

import asyncio
import logging
import uuid
from collections import deque
from typing import Dict, Optional, Set, Tuple

from onair.errors import TooManyListeners

logger = logging.getLogger(__name__)

# Per-listener buffer before the listener is dropped as too slow
DEFAULT_LISTENER_BUFFER_BYTES = 65536

# Maximum number of connected listeners
DEFAULT_MAX_LISTENERS = 100


class ListenerSink:
    """
    Per-listener buffered destination.

    write() never blocks: chunks are queued for the connection handler,
    which drains them with read(). A write that would exceed the buffer
    limit drops the listener (the sink closes itself).
    """

    def __init__(self, listener_id: str, max_buffer_bytes: int = DEFAULT_LISTENER_BUFFER_BYTES):
        self.id = listener_id
        self.max_buffer_bytes = max_buffer_bytes
        self._chunks: deque = deque()
        self._buffered = 0
        self._closed = False
        self._ready = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def buffered_bytes(self) -> int:
        return self._buffered

    def write(self, chunk: bytes) -> None:
        if self._closed:
            return
        if self._buffered + len(chunk) > self.max_buffer_bytes:
            logger.info(
                f"Dropping slow listener {self.id}: buffer full "
                f"({self._buffered} + {len(chunk)} > {self.max_buffer_bytes} bytes)"
            )
            self.close()
            return
        self._chunks.append(chunk)
        self._buffered += len(chunk)
        self._ready.set()

    async def read(self) -> Optional[bytes]:
        """Next chunk for this listener, or None once the sink is closed."""
        while not self._chunks:
            if self._closed:
                return None
            self._ready.clear()
            await self._ready.wait()

        chunk = self._chunks.popleft()
        self._buffered -= len(chunk)
        return chunk

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._chunks.clear()
        self._buffered = 0
        self._ready.set()


class FanoutSink:
    """
    Producer-side connection to the registry.

    Every write is replicated to all live listeners. close() detaches the
    producer; later writes are ignored.
    """

    def __init__(self, registry: "ListenerRegistry", name: str):
        self._registry = registry
        self.name = name
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, chunk: bytes) -> None:
        if self._closed:
            return
        self._registry.broadcast(chunk)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._registry._release_fanout(self)

    def __repr__(self) -> str:
        return f"FanoutSink({self.name})"


class ListenerRegistry:
    """
    Owns the set of connected listeners and fans chunks out to them.

    All mutation happens on the event loop thread; no locking.
    """

    def __init__(
        self,
        listener_buffer_bytes: int = DEFAULT_LISTENER_BUFFER_BYTES,
        max_listeners: int = DEFAULT_MAX_LISTENERS,
    ):
        self.listener_buffer_bytes = listener_buffer_bytes
        self.max_listeners = max_listeners
        self._listeners: Dict[str, ListenerSink] = {}
        self._fanouts: Set[FanoutSink] = set()
        self._fanout_seq = 0

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    @property
    def producer_count(self) -> int:
        """Number of open fan-out sinks (producers currently wired in)."""
        return len(self._fanouts)

    def listener_ids(self):
        return list(self._listeners.keys())

    def connect(self) -> Tuple[str, ListenerSink]:
        """
        Register a new listener.

        Raises:
            TooManyListeners: If max_listeners are already connected
        """
        if len(self._listeners) >= self.max_listeners:
            logger.warning(f"Rejecting listener: maximum count ({self.max_listeners}) reached")
            raise TooManyListeners(f"{self.max_listeners} listeners already connected")

        listener_id = str(uuid.uuid4())
        sink = ListenerSink(listener_id, self.listener_buffer_bytes)
        self._listeners[listener_id] = sink
        logger.info(f"Listener connected: {listener_id} (total: {len(self._listeners)})")
        return listener_id, sink

    def disconnect(self, listener_id: str) -> None:
        sink = self._listeners.pop(listener_id, None)
        if sink is not None:
            sink.close()
            logger.info(f"Listener disconnected: {listener_id} (total: {len(self._listeners)})")

    def fanout_sink(self) -> FanoutSink:
        self._fanout_seq += 1
        fanout = FanoutSink(self, f"producer-{self._fanout_seq}")
        self._fanouts.add(fanout)
        logger.debug(f"{fanout!r} wired (producers: {len(self._fanouts)})")
        return fanout

    def _release_fanout(self, fanout: FanoutSink) -> None:
        self._fanouts.discard(fanout)
        logger.debug(f"{fanout!r} released (producers: {len(self._fanouts)})")

    def broadcast(self, chunk: bytes) -> None:
        """
        Write chunk to every open listener.

        Closed listeners are pruned before any write is attempted.
        """
        if not chunk:
            return

        for listener_id, sink in list(self._listeners.items()):
            if sink.closed:
                del self._listeners[listener_id]
                logger.debug(f"Pruned closed listener {listener_id}")
                continue
            sink.write(chunk)

    def close_all(self) -> None:
        for listener_id in list(self._listeners.keys()):
            self.disconnect(listener_id)
        logger.info("All listener connections closed")
