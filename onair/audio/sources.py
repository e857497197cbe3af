"""
Readable byte sources feeding a Pacer.

A source is anything with `async read(n) -> bytes` (b"" at EOF),
`push_back(data)` and `close()`. push_back lets a Pacer hand back a chunk it
pulled but never emitted, so detaching a source loses no bytes.
"""

from __future__ import annotations

import asyncio
import logging
import os

logger = logging.getLogger(__name__)


class ByteSource:
    """Base class handling pushback and the closed flag."""

    def __init__(self) -> None:
        self._pushed = bytearray()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def read(self, n: int) -> bytes:
        if self._pushed:
            chunk = bytes(self._pushed[:n])
            del self._pushed[:n]
            return chunk
        if self._closed:
            return b""
        return await self._read(n)

    def push_back(self, data: bytes) -> None:
        """Return unconsumed bytes; the next read() yields them first."""
        if data:
            self._pushed[:0] = data

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._pushed.clear()
        self._close()

    async def _read(self, n: int) -> bytes:
        raise NotImplementedError

    def _close(self) -> None:
        pass


class FileSource(ByteSource):
    """Song file on disk. Reads run in a worker thread."""

    def __init__(self, path: str, fileobj) -> None:
        super().__init__()
        self.path = path
        self._file = fileobj

    @classmethod
    async def open(cls, path: str) -> "FileSource":
        """
        Open a file for streaming.

        Raises:
            FileNotFoundError: If the file does not exist
        """
        fileobj = await asyncio.to_thread(open, path, "rb")
        size = os.fstat(fileobj.fileno()).st_size
        logger.info(f"Opened source {path} ({size} bytes)")
        return cls(path, fileobj)

    async def _read(self, n: int) -> bytes:
        return await asyncio.to_thread(self._file.read, n)

    def _close(self) -> None:
        self._file.close()
        logger.debug(f"Closed source {self.path}")

    def __repr__(self) -> str:
        return f"FileSource({self.path!r})"
