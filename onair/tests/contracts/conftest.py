"""
Shared pytest fixtures for contract tests.
"""
from unittest.mock import AsyncMock, Mock

import pytest

from onair.broadcast.orchestrator import PipelineOrchestrator
from onair.broadcast.registry import ListenerRegistry
from onair.tests.contracts._harness import MemorySource


@pytest.fixture
def registry():
    return ListenerRegistry(listener_buffer_bytes=1024 * 1024, max_listeners=10)


@pytest.fixture
def prober():
    prober = Mock()
    # 80 kbit/s -> 10000 bytes/s with the default divisor
    prober.probe = AsyncMock(return_value=80000)
    return prober


@pytest.fixture
def mixer():
    mixer = Mock()
    mixer.merge = AsyncMock(side_effect=lambda fx, source: MemorySource(b"M" * 2000))
    return mixer


@pytest.fixture
def song_sources():
    """Sources handed out by the orchestrator's open_source, in order."""
    return []


@pytest.fixture
def song_bytes():
    return b"S" * 50000


@pytest.fixture
def open_source(song_sources, song_bytes):
    async def _open(path):
        source = MemorySource(song_bytes)
        song_sources.append(source)
        return source
    return AsyncMock(side_effect=_open)


@pytest.fixture
async def orchestrator(registry, prober, mixer, open_source):
    orchestrator = PipelineOrchestrator(
        registry=registry,
        prober=prober,
        mixer=mixer,
        song_path="song.mp3",
        bit_rate_divisor=8,
        ticks_per_second=100,
        open_source=open_source,
    )
    yield orchestrator
    orchestrator.stop()
