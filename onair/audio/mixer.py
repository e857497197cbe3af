"""
Effect mixer.

Mixes the live song stream with an effect file through one sox process:

    current source --feeder--> sox stdin
    effect file   (read by sox from disk)
    sox stdout    --drainer--> MixedSource buffer --> Pacer

The feeder and drainer are independent asyncio tasks. Any failure of either
copy, a non-zero sox exit, or no output within the startup timeout becomes a
MixFailure raised by the next MixedSource.read().
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from onair.audio.sources import ByteSource
from onair.audio.sox_tool import SoxTool, ToolProcess
from onair.errors import MixFailure, ToolUnavailable

logger = logging.getLogger(__name__)

# Pipe copy granularity
COPY_CHUNK_BYTES = 16 * 1024

# Drainer stops pulling from sox while this much output is unread
MAX_BUFFERED_BYTES = 256 * 1024

DEFAULT_STARTUP_TIMEOUT_SEC = 5.0

# How long a failed exit waits for the rest of stderr
STDERR_GRACE_SEC = 1.0


class MixedSource(ByteSource):
    """Output of a running mix process, readable by a Pacer."""

    def __init__(
        self,
        proc: ToolProcess,
        input_source: ByteSource,
        startup_timeout_sec: float = DEFAULT_STARTUP_TIMEOUT_SEC,
    ) -> None:
        super().__init__()
        self._proc = proc
        self._input = input_source
        self._startup_timeout_sec = startup_timeout_sec

        self._buffer = bytearray()
        self._ready = asyncio.Event()
        self._space = asyncio.Event()
        self._space.set()
        self._eof = False
        self._failure: Optional[MixFailure] = None
        self._stderr_text = b""

        self._tasks: List[asyncio.Task] = []
        self._stderr_task: Optional[asyncio.Task] = None
        self._closing: Optional[asyncio.Task] = None

    @property
    def failure(self) -> Optional[MixFailure]:
        return self._failure

    def start(self) -> None:
        loop = asyncio.get_running_loop()
        self._stderr_task = loop.create_task(self._drain_stderr(), name=f"mix-stderr-{self._proc.pid}")
        self._tasks = [
            loop.create_task(self._feed(), name=f"mix-feed-{self._proc.pid}"),
            loop.create_task(self._drain(), name=f"mix-drain-{self._proc.pid}"),
            self._stderr_task,
        ]

    async def _read(self, n: int) -> bytes:
        while True:
            if self._failure is not None:
                raise self._failure
            if self._buffer:
                chunk = bytes(self._buffer[:n])
                del self._buffer[:n]
                if len(self._buffer) < MAX_BUFFERED_BYTES:
                    self._space.set()
                return chunk
            if self._eof or self._closed:
                return b""
            self._ready.clear()
            await self._ready.wait()

    async def _feed(self) -> None:
        """Copy the live source into sox's stdin, then close stdin."""
        stdin = self._proc.stdin
        try:
            while True:
                chunk = await self._input.read(COPY_CHUNK_BYTES)
                if not chunk:
                    break
                stdin.write(chunk)
                await stdin.drain()
            stdin.close()
            await stdin.wait_closed()
            logger.debug(f"Mix feeder finished (pid={self._proc.pid})")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._fail(MixFailure(f"Feeding mix process failed: {e!r}"))

    async def _drain(self) -> None:
        """Copy sox's stdout into the read buffer."""
        stdout = self._proc.stdout
        try:
            try:
                chunk = await asyncio.wait_for(
                    stdout.read(COPY_CHUNK_BYTES), timeout=self._startup_timeout_sec
                )
            except asyncio.TimeoutError:
                self._fail(
                    MixFailure(
                        f"Mix process produced no output within {self._startup_timeout_sec:.1f}s"
                    )
                )
                return

            while chunk:
                await self._space.wait()
                self._buffer.extend(chunk)
                if len(self._buffer) >= MAX_BUFFERED_BYTES:
                    self._space.clear()
                self._ready.set()
                chunk = await stdout.read(COPY_CHUNK_BYTES)

            returncode = await self._proc.process.wait()
            if returncode != 0:
                detail = await self._stderr_detail()
                self._fail(MixFailure(f"Mix process exited with {returncode}: {detail}"))
                return

            self._eof = True
            self._ready.set()
            logger.info(f"Mix process finished (pid={self._proc.pid})")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._fail(MixFailure(f"Draining mix process failed: {e!r}"))

    async def _stderr_detail(self) -> str:
        """Everything sox wrote to stderr, once the stderr drain has caught up."""
        if self._stderr_task is not None and not self._stderr_task.done():
            try:
                await asyncio.wait_for(asyncio.shield(self._stderr_task), STDERR_GRACE_SEC)
            except asyncio.TimeoutError:
                logger.debug(f"Mix stderr still open after exit (pid={self._proc.pid})")
        return self._stderr_text.decode("utf-8", errors="replace").strip()

    async def _drain_stderr(self) -> None:
        try:
            self._stderr_text = await self._proc.drain_stderr(tag=f"sox mix {self._proc.pid}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"Mix stderr drain stopped: {e!r}")

    def _fail(self, failure: MixFailure) -> None:
        if self._failure is not None or self._closed:
            return
        self._failure = failure
        logger.error(str(failure))
        self._ready.set()
        self._shutdown()

    def _shutdown(self) -> None:
        current = asyncio.current_task()
        for task in self._tasks:
            if task is not current and not task.done():
                task.cancel()
        self._input.close()
        if self._closing is None:
            self._closing = asyncio.get_running_loop().create_task(self._proc.close())

    def _close(self) -> None:
        self._buffer.clear()
        self._ready.set()
        self._space.set()
        self._shutdown()

    async def wait_closed(self) -> None:
        """Wait until the mix process has been reaped."""
        if self._closing is not None:
            await self._closing

    def __repr__(self) -> str:
        return f"MixedSource(pid={self._proc.pid})"


class Mixer:
    """Builds merged song+effect streams."""

    def __init__(
        self,
        tool: SoxTool,
        media_type: str = "mp3",
        song_volume: float = 0.99,
        fx_volume: float = 0.1,
        startup_timeout_sec: float = DEFAULT_STARTUP_TIMEOUT_SEC,
    ) -> None:
        self.tool = tool
        self.media_type = media_type
        self.song_volume = song_volume
        self.fx_volume = fx_volume
        self.startup_timeout_sec = startup_timeout_sec

    def mix_args(self, fx_path: str) -> List[str]:
        return [
            "-t", self.media_type,
            "-v", str(self.song_volume),
            "-m", "-",
            "-t", self.media_type,
            "-v", str(self.fx_volume),
            fx_path,
            "-t", self.media_type,
            "-",
        ]

    async def merge(self, fx_path: str, current_source: ByteSource) -> MixedSource:
        """
        Start mixing fx_path into current_source.

        The returned MixedSource owns current_source from now on.

        Raises:
            MixFailure: If the mix process cannot be spawned
        """
        try:
            proc = await self.tool.run(self.mix_args(fx_path))
        except ToolUnavailable as e:
            raise MixFailure(f"Cannot start mix process: {e}") from e

        merged = MixedSource(proc, current_source, self.startup_timeout_sec)
        merged.start()
        logger.info(f"Mixing {fx_path} into live stream (pid={proc.pid})")
        return merged
