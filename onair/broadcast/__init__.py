"""
OnAir broadcast subsystem.

This package provides the live pipeline:
- Pacer: real-time rate-limited relay
- ListenerRegistry: listener set and fan-out
- PipelineOrchestrator: start/stop/effect splice state machine
"""

from onair.broadcast.orchestrator import OrchestratorState, PipelineOrchestrator
from onair.broadcast.pacer import Pacer
from onair.broadcast.registry import FanoutSink, ListenerRegistry, ListenerSink

__all__ = [
    "FanoutSink",
    "ListenerRegistry",
    "ListenerSink",
    "OrchestratorState",
    "Pacer",
    "PipelineOrchestrator",
]
