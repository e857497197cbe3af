"""
Pipeline orchestrator for the live broadcast.

Owns the playback state (song, byte rate, active pacer, attached source) and
drives the state machine:

    IDLE --start()--> PLAYING --append_effect()--> SPLICING --> PLAYING
      ^                  |                            |
      +------stop()------+-------------stop()---------+

Effect splice, in order:
    1. build next_pacer and wire it to a fan-out sink (nothing feeds it yet)
    2. pause current_pacer
    3. detach the source from current_pacer (asynchronous confirmation)
    4. on confirmation: mix effect + detached source, attach the mix to
       next_pacer, make it active, end current_pacer
    5. back to PLAYING

Every start/stop bumps a generation counter. A splice continuation that
wakes up under a different generation is stale and reattaches nothing.
"""

from __future__ import annotations

import asyncio
import enum
import functools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from onair.audio.bitrate import BitrateProber
from onair.audio.mixer import Mixer
from onair.audio.sources import FileSource
from onair.broadcast.pacer import DEFAULT_TICKS_PER_SECOND, Pacer
from onair.broadcast.registry import ListenerRegistry
from onair.errors import MixFailure, NotPlaying, SpliceInProgress

logger = logging.getLogger(__name__)

DEFAULT_BIT_RATE_DIVISOR = 8


class OrchestratorState(enum.Enum):
    """Playback state machine."""
    IDLE = 1
    PLAYING = 2
    SPLICING = 3


@dataclass
class PlaybackState:
    """Mutable playback state. Reset, never replaced, on stop."""
    song_path: str
    bytes_per_second: int = 0
    pacer: Optional[Pacer] = None
    source: Any = None
    status: OrchestratorState = OrchestratorState.IDLE
    generation: int = 0
    pending_pacer: Optional[Pacer] = None
    detaching: Optional[asyncio.Future] = None
    splice_task: Optional[asyncio.Task] = None

    def reset(self) -> None:
        self.pacer = None
        self.source = None
        self.pending_pacer = None
        self.detaching = None
        self.splice_task = None
        self.status = OrchestratorState.IDLE


class PipelineOrchestrator:
    """Starts, stops and splices the broadcast."""

    def __init__(
        self,
        registry: ListenerRegistry,
        prober: BitrateProber,
        mixer: Mixer,
        song_path: str,
        bit_rate_divisor: int = DEFAULT_BIT_RATE_DIVISOR,
        ticks_per_second: int = DEFAULT_TICKS_PER_SECOND,
        open_source: Callable[[str], Awaitable[Any]] = FileSource.open,
    ):
        self._registry = registry
        self._prober = prober
        self._mixer = mixer
        self._bit_rate_divisor = bit_rate_divisor
        self._ticks_per_second = ticks_per_second
        self._open_source = open_source
        self._state = PlaybackState(song_path=song_path)

    @property
    def state(self) -> OrchestratorState:
        return self._state.status

    @property
    def playback(self) -> PlaybackState:
        return self._state

    @property
    def active_pacer(self) -> Optional[Pacer]:
        return self._state.pacer

    async def start(self) -> None:
        """
        Begin a fresh broadcast of the current song.

        Restarting while playing ends the running session first. Returns
        once source -> pacer -> fan-out is connected.

        Raises:
            FileNotFoundError: If the song file does not exist
        """
        self._end_playback("restart")
        generation = self._state.generation
        song = self._state.song_path
        logger.info(f"Starting broadcast with {song}")

        bits_per_second = await self._prober.probe(song)
        bytes_per_second = max(1, bits_per_second // self._bit_rate_divisor)
        source = await self._open_source(song)

        if generation != self._state.generation:
            # stop() or another start() ran while we were probing
            logger.info("Start superseded before connecting; discarding source")
            source.close()
            return

        pacer = Pacer(bytes_per_second, self._ticks_per_second)
        pacer.connect(self._registry.fanout_sink())
        pacer.attach(source)
        pacer.done.add_done_callback(functools.partial(self._on_pacer_done, pacer))

        self._state.bytes_per_second = bytes_per_second
        self._state.pacer = pacer
        self._state.source = source
        self._state.status = OrchestratorState.PLAYING
        logger.info(f"Broadcast playing via {pacer!r} ({bits_per_second} bps)")

    def stop(self) -> None:
        """Stop playback. Listeners stay connected. No-op when idle."""
        if self._state.pacer is None and self._state.pending_pacer is None:
            logger.debug("Stop requested with no active playback")
            return
        logger.info("Stopping broadcast")
        self._end_playback("stop")

    def append_effect(self, fx_path: str) -> asyncio.Task:
        """
        Splice an effect into the live stream.

        Steps 1-3 happen before returning; the rest runs in the returned task,
        which raises MixFailure if mixing fails (playback is then stopped).

        Raises:
            NotPlaying: If nothing is playing
            SpliceInProgress: If another effect is being spliced in
        """
        status = self._state.status
        if status is OrchestratorState.IDLE:
            raise NotPlaying(f"Cannot add effect {fx_path}: broadcast is not playing")
        if status is OrchestratorState.SPLICING:
            raise SpliceInProgress(f"Cannot add effect {fx_path}: another effect is being added")

        current = self._state.pacer
        generation = self._state.generation

        next_pacer = Pacer(self._state.bytes_per_second, self._ticks_per_second)
        next_pacer.connect(self._registry.fanout_sink())

        current.pause()
        detaching = current.detach()

        self._state.status = OrchestratorState.SPLICING
        self._state.pending_pacer = next_pacer
        self._state.detaching = detaching

        task = asyncio.get_running_loop().create_task(
            self._complete_splice(generation, fx_path, current, next_pacer, detaching),
            name=f"splice-{generation}",
        )
        task.add_done_callback(self._on_splice_done)
        self._state.splice_task = task
        logger.info(f"Splicing effect {fx_path}: {current!r} -> {next_pacer!r}")
        return task

    def snapshot(self) -> Dict[str, Any]:
        pacer = self._state.pacer
        return {
            "state": self._state.status.name,
            "song": self._state.song_path,
            "bytes_per_second": self._state.bytes_per_second,
            "pacer": pacer.id if pacer is not None else None,
            "listeners": self._registry.listener_count,
        }

    async def _complete_splice(
        self,
        generation: int,
        fx_path: str,
        current: Pacer,
        next_pacer: Pacer,
        detaching: asyncio.Future,
    ) -> None:
        source = None
        merged = None
        adopted = False
        try:
            source = await detaching
            if generation != self._state.generation:
                logger.info(f"Discarding stale detachment from {current!r}")
                return

            merged = await self._mixer.merge(fx_path, source)
            source = None  # owned by the mix from here on
            if generation != self._state.generation:
                logger.info(f"Discarding stale mix for {fx_path}")
                return

            next_pacer.attach(merged)
            next_pacer.done.add_done_callback(functools.partial(self._on_pacer_done, next_pacer))
            self._state.pacer = next_pacer
            self._state.source = merged
            self._state.pending_pacer = None
            self._state.detaching = None
            self._state.splice_task = None
            self._state.status = OrchestratorState.PLAYING
            adopted = True
            merged = None

            current.end()
            logger.info(f"Effect {fx_path} spliced in; {next_pacer!r} is live")
        except MixFailure as e:
            if generation == self._state.generation:
                logger.error(f"Effect splice failed, stopping broadcast: {e}")
                self._end_playback("mix failure")
            raise
        except Exception as e:
            if generation == self._state.generation:
                logger.error(f"Effect splice crashed, stopping broadcast: {e!r}")
                self._end_playback("splice error")
            raise
        finally:
            if source is not None:
                source.close()
            if merged is not None:
                merged.close()
            if not adopted:
                next_pacer.end()

    def _on_splice_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            logger.debug(f"{task.get_name()} cancelled")
            return
        exc = task.exception()
        if exc is not None and not isinstance(exc, MixFailure):
            logger.error(f"{task.get_name()} crashed: {exc!r}", exc_info=exc)

    def _on_pacer_done(self, pacer: Pacer, fut: asyncio.Future) -> None:
        if fut.cancelled():
            return
        exc = fut.exception()
        if pacer is not self._state.pacer:
            return
        if exc is not None:
            logger.error(f"Broadcast stopped: {pacer!r} failed: {exc}")
        else:
            logger.info(f"Broadcast finished: {pacer!r} reached end of stream")
        self._end_playback("pacer finished")

    def _end_playback(self, reason: str) -> None:
        state = self._state
        state.generation += 1

        task = state.splice_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

        detaching = state.detaching
        if detaching is not None and detaching.done() and not detaching.cancelled():
            # Detached but never handed to a mix
            detached = detaching.result()
            if detached is not None:
                detached.close()

        for pacer in (state.pending_pacer, state.pacer):
            if pacer is not None:
                pacer.end()

        if state.status is not OrchestratorState.IDLE:
            logger.info(f"Broadcast idle ({reason})")
        state.reset()
