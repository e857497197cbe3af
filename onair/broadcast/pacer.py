"""
Real-time pacer for the broadcast pipeline.

A Pacer pulls bytes from one attached source and writes them to one sink at a
fixed byte rate, emulating real-time playback. Each tick releases at most
bytes_per_second / ticks_per_second bytes. Ticks use absolute time scheduling
and resync when behind, so the long-run rate does not drift.

Lifecycle:
    connect(sink)      wire the output (fan-out sink)
    attach(source)     start pumping
    pause()/resume()   stop/restart pulling between ticks
    detach()           future resolved with the source once the pump let go
    end()              force-terminate; closes source and sink connection
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_TICKS_PER_SECOND = 10

_pacer_ids = itertools.count(1)


class Pacer:
    """Rate-limited relay from one source to one sink."""

    def __init__(self, bytes_per_second: int, ticks_per_second: int = DEFAULT_TICKS_PER_SECOND):
        if bytes_per_second <= 0:
            raise ValueError(f"bytes_per_second must be > 0, got {bytes_per_second}")
        if ticks_per_second <= 0:
            raise ValueError(f"ticks_per_second must be > 0, got {ticks_per_second}")

        self.id = next(_pacer_ids)
        self.bytes_per_second = bytes_per_second
        self.ticks_per_second = ticks_per_second
        self.tick_budget = max(1, bytes_per_second // ticks_per_second)

        self.bytes_emitted = 0

        self._sink = None
        self._source = None
        self._pump_task: Optional[asyncio.Task] = None
        self._resumed = asyncio.Event()
        self._resumed.set()
        self._detach_future: Optional[asyncio.Future] = None
        self._done: asyncio.Future = asyncio.get_running_loop().create_future()
        self._ended = False

    def __repr__(self) -> str:
        return f"Pacer#{self.id}({self.bytes_per_second} B/s)"

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def paused(self) -> bool:
        return not self._resumed.is_set()

    @property
    def source(self):
        return self._source

    @property
    def done(self) -> asyncio.Future:
        """Resolved when the pacer ends; carries the error if the source failed."""
        return self._done

    def connect(self, sink) -> None:
        """Wire the output. The sink needs write(chunk) and close()."""
        if self._ended:
            raise RuntimeError(f"{self!r} has ended")
        self._sink = sink
        self._maybe_start()

    def attach(self, source) -> None:
        """Start pumping from source. Only one source at a time."""
        if self._ended:
            raise RuntimeError(f"{self!r} has ended")
        if self._source is not None:
            raise RuntimeError(f"{self!r} already has a source attached")
        self._source = source
        self._maybe_start()

    def pause(self) -> None:
        if not self._ended and self._resumed.is_set():
            self._resumed.clear()
            logger.debug(f"{self!r} paused")

    def resume(self) -> None:
        if not self._ended and not self._resumed.is_set():
            self._resumed.set()
            logger.debug(f"{self!r} resumed")

    def detach(self) -> asyncio.Future:
        """
        Ask the pump to release its source.

        The returned future resolves with the source once the pump has
        stopped touching it. It never resolves on pause alone.
        """
        if self._detach_future is not None:
            return self._detach_future

        self._detach_future = asyncio.get_running_loop().create_future()
        if self._pump_task is None or self._pump_task.done():
            # Nothing is pumping; the source (if any) is free already
            self._release_source()
        else:
            # Wake a paused pump so it can observe the request
            self._resumed.set()
        return self._detach_future

    def end(self) -> None:
        """Force-terminate. No-op if already ended."""
        if self._ended:
            return
        self._ended = True

        if self._pump_task is not None and not self._pump_task.done():
            if self._pump_task is not asyncio.current_task():
                self._pump_task.cancel()

        if self._detach_future is not None and not self._detach_future.done():
            self._detach_future.cancel()

        if self._source is not None:
            self._source.close()
            self._source = None

        if self._sink is not None:
            self._sink.close()
            self._sink = None

        self._resumed.set()
        if not self._done.done():
            self._done.set_result(None)
        logger.info(f"{self!r} ended after {self.bytes_emitted} bytes")

    async def wait_closed(self) -> None:
        await asyncio.shield(self._done)

    def _maybe_start(self) -> None:
        if self._sink is None or self._source is None:
            return
        if self._pump_task is not None and not self._pump_task.done():
            return
        self._detach_future = None
        self._pump_task = asyncio.get_running_loop().create_task(
            self._pump(), name=f"pacer-{self.id}"
        )

    def _release_source(self) -> None:
        source, self._source = self._source, None
        future = self._detach_future
        if future is not None and not future.done():
            future.set_result(source)
        logger.debug(f"{self!r} detached from {source!r}")

    def _detach_requested(self) -> bool:
        return self._detach_future is not None

    async def _pump(self) -> None:
        loop = asyncio.get_running_loop()
        source = self._source
        next_tick = loop.time()

        try:
            while True:
                if not self._resumed.is_set():
                    await self._resumed.wait()
                    # Fresh clock after a pause so no burst is released
                    next_tick = loop.time()

                if self._detach_requested():
                    self._release_source()
                    return

                chunk = await source.read(self.tick_budget)

                if self._detach_requested() or not self._resumed.is_set():
                    # Pulled but not emitted; the next reader gets it
                    source.push_back(chunk)
                    continue

                if not chunk:
                    logger.info(f"{self!r} source exhausted")
                    self.end()
                    return

                self._sink.write(chunk)
                self.bytes_emitted += len(chunk)

                next_tick += len(chunk) / self.bytes_per_second
                sleep_time = next_tick - loop.time()
                if sleep_time > 0:
                    await asyncio.sleep(sleep_time)
                else:
                    # Behind schedule; resync instead of bursting to catch up
                    next_tick = loop.time()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"{self!r} source failed: {e!r}")
            if not self._done.done():
                self._done.set_exception(e)
            self.end()
