"""
Track Queue for the jukebox playback engine.

FIFO of pending Tracks plus the "current" slot that the playback loop
drains from. Both live under one lock because popping must be atomic with
the "is current empty" check.
"""

import logging
import threading
from collections import deque
from typing import List, Optional, Tuple

from jukebox.broadcast_core.track import Track

logger = logging.getLogger(__name__)


class TrackQueue:
    """
    Thread-safe pending sequence plus current slot.

    A track is either pending, current, or absent, never two at once.
    No operation blocks on anything but the internal lock, and none fails.
    """

    def __init__(self):
        """Initialize an empty queue with no current track."""
        self._pending: deque[Track] = deque()
        self._current: Optional[Track] = None
        self._lock = threading.Lock()

    def enqueue(self, track: Track) -> int:
        """
        Append a track to the tail of the pending sequence.

        Args:
            track: Track to add

        Returns:
            Number of pending tracks after the append
        """
        with self._lock:
            self._pending.append(track)
            size = len(self._pending)
        logger.debug(f"[QUEUE] Enqueued: {track.title} (pending={size})")
        return size

    def peek_or_pop_current(self) -> Optional[Track]:
        """
        Return the current track, promoting the head of the queue if needed.

        Idempotent while a track is mid-playback: if a current track exists it
        is returned unchanged.

        Returns:
            The current Track, or None if both current slot and queue are empty
        """
        with self._lock:
            if self._current is None and self._pending:
                self._current = self._pending.popleft()
                logger.debug(f"[QUEUE] Promoted to current: {self._current.title}")
            return self._current

    def current(self) -> Optional[Track]:
        """Return the current track without touching the pending sequence."""
        with self._lock:
            return self._current

    def finish_current(self, track: Track) -> bool:
        """
        Clear the current slot if it still holds the given track.

        Identity check guards against clearing a track that replaced this one
        (restart) or that was promoted after a stop.

        Args:
            track: Track whose playback just ended

        Returns:
            True if the slot was cleared
        """
        with self._lock:
            if self._current is track:
                self._current = None
                return True
            return False

    def replace_current(self, track: Track) -> Optional[Track]:
        """
        Install a freshly resolved track in the current slot.

        Args:
            track: Replacement track

        Returns:
            The track previously in the current slot (may be None)
        """
        with self._lock:
            previous = self._current
            self._current = track
        logger.debug(f"[QUEUE] Current replaced: {track.title}")
        return previous

    def clear(self) -> int:
        """
        Empty both the pending sequence and the current slot.

        Returns:
            Number of tracks dropped (pending plus current)
        """
        with self._lock:
            dropped = len(self._pending) + (1 if self._current is not None else 0)
            self._pending.clear()
            self._current = None
        logger.debug(f"[QUEUE] Cleared ({dropped} track(s) dropped)")
        return dropped

    def has_pending(self) -> bool:
        with self._lock:
            return bool(self._pending)

    def size(self) -> int:
        """Number of pending tracks (the current track is not counted)."""
        with self._lock:
            return len(self._pending)

    def empty(self) -> bool:
        """True if there is no current track and nothing pending."""
        with self._lock:
            return self._current is None and not self._pending

    def snapshot(self) -> Tuple[Optional[Track], List[Track]]:
        """
        Consistent copy of the current track and the pending sequence.

        Returns:
            (current, pending) where pending is in play order
        """
        with self._lock:
            return self._current, list(self._pending)
