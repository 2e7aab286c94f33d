"""
Output sinks for the jukebox.

Sinks receive encoded Opus frames from the playback loop and deliver them
to the voice channel (or discard them).
"""

from .base_sink import BaseSink
from .null_sink import NullSink
from .socket_sink import SocketFrameSink
from .factory import create_output_sink

__all__ = [
    "BaseSink",
    "NullSink",
    "SocketFrameSink",
    "create_output_sink",
]
