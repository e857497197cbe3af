"""
Error taxonomy for OnAir.

Only probing failures are absorbed locally (see onair.audio.bitrate).
Everything else is raised to the caller; nothing in the core retries.
"""


class OnAirError(Exception):
    """Base class for all OnAir errors."""
    pass


class ToolUnavailable(OnAirError):
    """External audio command is missing or could not be spawned."""
    pass


class ProbeError(OnAirError):
    """Bit-rate inspection wrote to its error channel."""

    def __init__(self, content: bytes):
        self.content = content
        super().__init__(content.decode("utf-8", errors="replace").strip())


class EffectNotFound(OnAirError):
    """No file in the effects directory matches the requested name."""
    pass


class NotPlaying(OnAirError):
    """An effect was requested while nothing is playing."""
    pass


class SpliceInProgress(OnAirError):
    """An effect was requested while another one is being spliced in."""
    pass


class MixFailure(OnAirError):
    """The mixing process or one of its pipes failed."""
    pass


class TooManyListeners(OnAirError):
    """Listener registry is at capacity."""
    pass
