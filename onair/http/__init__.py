"""
OnAir HTTP subsystem.

This package provides the HTTP server for streaming audio to listeners and
accepting operator commands.
"""

from onair.http.server import HTTPServer

__all__ = [
    "HTTPServer",
]
