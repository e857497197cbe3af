"""
Contract tests for the external audio tool adapter

Covers: spawning with three pipes, ToolUnavailable on spawn failure,
stderr draining, idempotent close that reaps the child.
"""

import logging
import shutil

import pytest

from onair.audio.sox_tool import SoxTool, ToolProcess
from onair.errors import ToolUnavailable

requires_posix_tools = pytest.mark.skipif(
    not all(shutil.which(tool) for tool in ("cat", "sh", "sleep")),
    reason="needs cat, sh and sleep on PATH",
)


class TestSoxToolSpawn:
    """Tests for run()."""

    @pytest.mark.asyncio
    async def test_missing_binary_raises_tool_unavailable(self):
        """Test that a binary that cannot be executed raises ToolUnavailable."""
        tool = SoxTool("/nonexistent/onair-sox")

        with pytest.raises(ToolUnavailable) as exc_info:
            await tool.run(["--version"])

        assert isinstance(exc_info.value.__cause__, OSError)

    @requires_posix_tools
    @pytest.mark.asyncio
    @pytest.mark.timeout(5)
    async def test_pipes_are_wired(self):
        """Test that stdin reaches the child and its stdout comes back."""
        proc = await SoxTool("cat").run([])
        assert isinstance(proc, ToolProcess)
        assert proc.argv == ["cat"]

        proc.stdin.write(b"hello on air")
        await proc.stdin.drain()
        proc.stdin.close()

        assert await proc.stdout.read() == b"hello on air"
        assert await proc.process.wait() == 0
        await proc.close()
        assert proc.returncode == 0


class TestToolProcessLifecycle:
    """Tests for ToolProcess.close() and stderr draining."""

    @requires_posix_tools
    @pytest.mark.asyncio
    @pytest.mark.timeout(5)
    async def test_close_kills_running_child(self):
        """Test that close() kills a child that is still running and reaps it."""
        proc = await SoxTool("sleep").run(["10"])
        assert proc.returncode is None

        await proc.close()
        await proc.close()

        assert proc.returncode is not None

    @requires_posix_tools
    @pytest.mark.asyncio
    @pytest.mark.timeout(5)
    async def test_context_manager_closes(self):
        """Test that leaving the async context reaps the child."""
        async with await SoxTool("sleep").run(["10"]) as proc:
            pid = proc.pid
        assert pid > 0
        assert proc.returncode is not None

    @requires_posix_tools
    @pytest.mark.asyncio
    @pytest.mark.timeout(5)
    async def test_drain_stderr_logs_and_returns_output(self, caplog):
        """Test that stderr lines are logged as warnings and returned."""
        proc = await SoxTool("sh").run(["-c", "echo first >&2; echo second >&2"])

        with caplog.at_level(logging.WARNING, logger="onair.audio.sox_tool"):
            collected = await proc.drain_stderr(tag="probe")
        await proc.close()

        assert collected == b"first\nsecond\n"
        assert "[probe] first" in caplog.text
        assert "[probe] second" in caplog.text
