"""
Command controller.

Translates operator command strings into orchestrator calls and hands out
listener sinks to the HTTP layer.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict

from onair.broadcast.orchestrator import PipelineOrchestrator
from onair.broadcast.registry import ListenerRegistry, ListenerSink
from onair.effects import EffectLibrary

logger = logging.getLogger(__name__)

OK_RESULT = {"result": "ok"}


@dataclass
class ListenerHandle:
    """A connected listener as seen by the HTTP layer."""
    id: str
    sink: ListenerSink
    on_close: Callable[[], None]


class Controller:
    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        registry: ListenerRegistry,
        effects: EffectLibrary,
    ):
        self.orchestrator = orchestrator
        self.registry = registry
        self.effects = effects

    async def handle_command(self, command: str) -> Dict[str, Any]:
        """
        Execute one operator command.

        "start"/"stop" control playback; any other token names an effect.

        Raises:
            EffectNotFound: If the effect name matches no file
            NotPlaying: If an effect is requested while idle
            SpliceInProgress: If an effect is already being added
        """
        cmd = command.strip().lower()
        logger.info(f"Command received: {cmd}")

        if "start" in cmd:
            await self.orchestrator.start()
            return dict(OK_RESULT)

        if "stop" in cmd:
            self.orchestrator.stop()
            return dict(OK_RESULT)

        fx_path = await self.effects.resolve(cmd)
        self.orchestrator.append_effect(fx_path)
        logger.info(f"Effect queued for splice: {fx_path}")
        return dict(OK_RESULT)

    def create_listener(self) -> ListenerHandle:
        """
        Register a listener.

        Raises:
            TooManyListeners: If the registry is full
        """
        listener_id, sink = self.registry.connect()

        def on_close() -> None:
            logger.info(f"Closing connection of {listener_id}")
            self.registry.disconnect(listener_id)

        return ListenerHandle(id=listener_id, sink=sink, on_close=on_close)

    def status(self) -> Dict[str, Any]:
        return self.orchestrator.snapshot()
