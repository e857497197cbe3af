"""
External audio tool adapter.

Spawns the sox command line utility as an asyncio child process and exposes
its stdin/stdout/stderr pipes. One process per run() call. Spawn failures
raise ToolUnavailable; there is no retry.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence

from onair.errors import ToolUnavailable

logger = logging.getLogger(__name__)

DEFAULT_SOX_BIN = "sox"


class ToolProcess:
    """
    Owned handle on one running audio tool process.

    The caller consumes the three pipes; close() releases everything
    (stdin closed, child killed if still running, child reaped) and is safe
    to call more than once. Usable as an async context manager.
    """

    def __init__(self, process: asyncio.subprocess.Process, argv: List[str]):
        self.process = process
        self.argv = argv
        self._closed = False

    @property
    def stdin(self) -> asyncio.StreamWriter:
        return self.process.stdin

    @property
    def stdout(self) -> asyncio.StreamReader:
        return self.process.stdout

    @property
    def stderr(self) -> asyncio.StreamReader:
        return self.process.stderr

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    async def drain_stderr(self, tag: str = "sox") -> bytes:
        """
        Log stderr line by line until EOF.

        Returns everything that was read so failures can quote it.
        """
        collected = bytearray()
        while True:
            line = await self.stderr.readline()
            if not line:
                break
            collected.extend(line)
            text = line.decode("utf-8", errors="replace").rstrip()
            if text:
                logger.warning(f"[{tag}] {text}")
        return bytes(collected)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        if self.stdin is not None and not self.stdin.is_closing():
            self.stdin.close()

        if self.process.returncode is None:
            try:
                self.process.kill()
            except ProcessLookupError:
                pass
        await self.process.wait()
        logger.debug(f"Audio tool process {self.pid} reaped (returncode={self.process.returncode})")

    async def __aenter__(self) -> "ToolProcess":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class SoxTool:
    """Runs the external audio utility."""

    def __init__(self, binary: str = DEFAULT_SOX_BIN):
        self.binary = binary

    async def run(self, args: Sequence[str]) -> ToolProcess:
        """
        Spawn the tool with the given arguments.

        Args:
            args: Arguments passed after the binary name

        Returns:
            ToolProcess with all three pipes open

        Raises:
            ToolUnavailable: If the binary is missing or cannot be executed
        """
        argv = [self.binary, *args]
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ToolUnavailable(f"Cannot run {self.binary}: {e}") from e

        logger.debug(f"Spawned audio tool (pid={process.pid}): {' '.join(argv)}")
        return ToolProcess(process, argv)
