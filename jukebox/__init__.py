"""
Jukebox - queued audio playback engine.

Decodes queued tracks with ffmpeg, re-encodes the PCM into 20 ms Opus
frames and streams them to a real-time voice sink.
"""

__version__ = "0.3.0"
