"""
OnAir audio subsystem.

This package wraps the external audio tool:
- SoxTool: spawns sox with piped stdin/stdout/stderr
- BitrateProber: discovers a file's bit rate
- Mixer: mixes an effect file into the live stream
- FileSource: song file reader feeding the pacer
"""

from onair.audio.bitrate import BitrateProber
from onair.audio.mixer import MixedSource, Mixer
from onair.audio.sources import ByteSource, FileSource
from onair.audio.sox_tool import SoxTool, ToolProcess

__all__ = [
    "BitrateProber",
    "ByteSource",
    "FileSource",
    "MixedSource",
    "Mixer",
    "SoxTool",
    "ToolProcess",
]
