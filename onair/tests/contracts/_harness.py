"""
Test doubles for OnAir contract tests.

- MemorySource: in-memory ByteSource, optionally gated or failing
- RecordingSink: sink that keeps every chunk
- FakeToolProcess: ToolProcess stand-in with pre-filled pipes
- wait_until: poll a condition on the running loop
"""

import asyncio
from typing import List, Optional
from unittest.mock import Mock

import pytest

from onair.audio.sources import ByteSource


class MemorySource(ByteSource):
    """
    In-memory source.

    If `gate` is given, every read waits for it to be set first, which lets a
    test hold a read in flight.
    """

    def __init__(self, data: bytes, gate: Optional[asyncio.Event] = None, fail_after: Optional[int] = None):
        super().__init__()
        self._data = bytearray(data)
        self._gate = gate
        self._fail_after = fail_after
        self.bytes_read = 0
        self.close_calls = 0

    async def _read(self, n: int) -> bytes:
        if self._gate is not None:
            await self._gate.wait()
        else:
            await asyncio.sleep(0)
        if self._fail_after is not None and self.bytes_read >= self._fail_after:
            raise OSError("source broke")
        chunk = bytes(self._data[:n])
        del self._data[:n]
        self.bytes_read += len(chunk)
        return chunk

    def _close(self) -> None:
        self.close_calls += 1


class RecordingSink:
    """Sink that records every chunk written to it."""

    def __init__(self):
        self.chunks: List[bytes] = []
        self.closed = False

    @property
    def data(self) -> bytes:
        return b"".join(self.chunks)

    def write(self, chunk: bytes) -> None:
        self.chunks.append(chunk)

    def close(self) -> None:
        self.closed = True


class FakeToolProcess:
    """Stands in for ToolProcess with pre-filled stdout/stderr."""

    def __init__(self, stdout: bytes = b"", stderr: bytes = b""):
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        if stdout:
            self.stdout.feed_data(stdout)
        if stderr:
            self.stderr.feed_data(stderr)
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self.stdin = Mock()
        self.closed = False

    async def close(self):
        self.closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()


def drain(sink) -> bytes:
    """Everything currently buffered in a ListenerSink."""
    data = bytearray()
    while sink._chunks:
        chunk = sink._chunks.popleft()
        sink._buffered -= len(chunk)
        data.extend(chunk)
    return bytes(data)


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.005):
    """Poll predicate() until true or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not reached in time")
        await asyncio.sleep(interval)
