"""
Broadcast Core module for the jukebox.

This package contains the track queue, decode sessions, progress tracking,
Opus encoding and the playback controller.
"""

from jukebox.broadcast_core.errors import (
    EncodeFailed,
    JukeboxError,
    LookupFailed,
    NothingPlaying,
    SinkUnavailable,
    SpawnFailed,
    StreamReadFailed,
)
from jukebox.broadcast_core.track import Track
from jukebox.broadcast_core.track_queue import TrackQueue

__all__ = [
    "Track",
    "TrackQueue",
    "JukeboxError",
    "LookupFailed",
    "SpawnFailed",
    "StreamReadFailed",
    "EncodeFailed",
    "SinkUnavailable",
    "NothingPlaying",
]
