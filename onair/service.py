# onair/service.py

import asyncio
import logging
from typing import Any, Dict, Optional

from onair.audio.bitrate import BitrateProber
from onair.audio.mixer import Mixer
from onair.audio.sox_tool import SoxTool
from onair.broadcast.orchestrator import PipelineOrchestrator
from onair.broadcast.registry import ListenerRegistry
from onair.config import OnAirConfig
from onair.effects import EffectLibrary
from onair.http.controller import Controller
from onair.http.server import HTTPServer

logger = logging.getLogger(__name__)


class OnAirService:
    def __init__(self, config: OnAirConfig, tool: Optional[SoxTool] = None):
        """
        Wire the broadcast pipeline and its HTTP front end.

        Args:
            config: Loaded configuration
            tool: Audio tool adapter (default: SoxTool for config.sox_bin)
        """
        self.config = config
        self.tool = tool or SoxTool(config.sox_bin)

        self.registry = ListenerRegistry(
            listener_buffer_bytes=config.listener_buffer_bytes,
            max_listeners=config.max_listeners,
        )
        self.prober = BitrateProber(self.tool, config.fallback_bit_rate)
        self.mixer = Mixer(
            self.tool,
            media_type=config.audio_media_type,
            song_volume=config.song_volume,
            fx_volume=config.fx_volume,
            startup_timeout_sec=config.mix_startup_timeout_sec,
        )
        self.orchestrator = PipelineOrchestrator(
            registry=self.registry,
            prober=self.prober,
            mixer=self.mixer,
            song_path=config.song_path,
            bit_rate_divisor=config.bit_rate_divisor,
            ticks_per_second=config.pacer_ticks_per_second,
        )
        self.effects = EffectLibrary(config.fx_dir)
        self.controller = Controller(self.orchestrator, self.registry, self.effects)
        self.http_server = HTTPServer(
            host=config.host,
            port=config.port,
            controller=self.controller,
            public_dir=config.public_dir,
        )
        self.running = False

    async def start(self) -> None:
        logger.info("=== OnAir starting ===")
        await self.http_server.start()
        self.running = True
        logger.info(f"Server running (song={self.config.song_path}, fx_dir={self.config.fx_dir})")

    async def run_forever(self) -> None:
        """Serve until cancelled, then shut down."""
        if not self.running:
            await self.start()
        try:
            await self.http_server.serve_forever()
        except asyncio.CancelledError:
            logger.info("OnAir shutdown requested")
        finally:
            await self.stop()

    def get_state(self) -> Dict[str, Any]:
        return self.orchestrator.snapshot()

    async def stop(self) -> None:
        """
        Stop OnAir.

        1. Stop playback (pacers end, mix processes are killed)
        2. Close listener connections
        3. Close the HTTP server
        """
        if not self.running:
            return
        logger.info("Shutting down OnAir...")
        self.running = False
        self.orchestrator.stop()
        self.registry.close_all()
        await self.http_server.stop()
        logger.info("OnAir service stopped")
