"""
Track model for the jukebox playback engine.

Defines the immutable Track descriptor handed from the queue to the
playback controller, plus the duration helpers used to build it.
"""

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_THUMBNAIL = "https://example.com/default-thumbnail.png"


def format_duration(seconds: int) -> str:
    """
    Format a duration in whole seconds as MM:SS, or HH:MM:SS past one hour.

    Args:
        seconds: Duration in seconds (negative values are clamped to 0)

    Returns:
        Zero-padded display string, e.g. "01:05" or "01:02:05"
    """
    seconds = max(0, int(seconds))
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def parse_duration(text: str) -> int:
    """
    Parse a duration as reported by metadata tools.

    Accepts "MM:SS", "HH:MM:SS" or a plain (possibly fractional) number of
    seconds. Anything else parses to 0.

    Args:
        text: Raw duration string

    Returns:
        Duration in whole seconds
    """
    text = (text or "").strip()
    if not text:
        return 0

    parts = text.split(":")
    try:
        if len(parts) == 1:
            return max(0, int(float(parts[0])))
        if len(parts) == 2:
            minutes, secs = int(parts[0]), int(float(parts[1]))
            return minutes * 60 + secs
        if len(parts) == 3:
            hours, minutes, secs = int(parts[0]), int(parts[1]), int(float(parts[2]))
            return hours * 3600 + minutes * 60 + secs
    except ValueError:
        pass

    logger.warning(f"[LOOKUP] Unexpected duration format: {text!r}")
    return 0


@dataclass(frozen=True)
class Track:
    """
    Immutable metadata and playable stream reference for one queued item.

    Attributes:
        title: Display title
        stream_url: URL or path ffmpeg reads from (resolved separately)
        duration_seconds: Total duration in whole seconds (0 if unknown)
        thumbnail: Thumbnail URL
        original_url: The request reference the track was resolved from;
            restart re-resolves from this rather than reusing stream_url
    """
    title: str
    stream_url: str
    duration_seconds: int = 0
    thumbnail: str = DEFAULT_THUMBNAIL
    original_url: str = ""

    @property
    def duration(self) -> str:
        """Display form of duration_seconds."""
        return format_duration(self.duration_seconds)

    def describe(self) -> str:
        return f"{self.title} ({self.duration})"
