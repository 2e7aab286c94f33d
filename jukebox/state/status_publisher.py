"""
Now-playing status listeners.

Both are callables with the controller's status signature:
    (elapsed, total, paused, title, thumbnail)
"""

import logging
from typing import Any, Dict, Optional, Tuple

import httpx

from jukebox.broadcast_core.track import format_duration

logger = logging.getLogger(__name__)


def format_status_line(elapsed: float, total: int, paused: bool, title: str) -> str:
    """e.g. 'Now playing: Song [01:05] / [03:20] (playing)'"""
    state = "paused" if paused else "playing"
    return f"Now playing: {title} [{format_duration(int(elapsed))}] / [{format_duration(total)}] ({state})"


class LoggingStatusListener:
    """
    Writes the now-playing line to the log.

    INFO when the title or pause state changes, DEBUG on every other tick.
    """

    def __init__(self, log: Optional[logging.Logger] = None):
        self._log = log or logger
        self._last: Optional[Tuple[str, bool]] = None

    def __call__(self, elapsed: float, total: int, paused: bool, title: str, thumbnail: str) -> None:
        line = format_status_line(elapsed, total, paused, title)
        key = (title, paused)
        if key != self._last:
            self._last = key
            self._log.info(f"[STATUS] {line}")
        else:
            self._log.debug(f"[STATUS] {line}")


class HttpStatusPublisher:
    """
    POSTs the now-playing status as JSON to an HTTP endpoint.

    Fire-and-forget: failures are logged and dropped, the next tick sends a
    fresh status anyway.
    """

    def __init__(self, url: str, timeout: float = 0.5):
        """
        Args:
            url: Endpoint receiving the status POST
            timeout: Per-request timeout in seconds (stays well under the refresh interval)
        """
        self.url = url
        self.timeout = timeout
        self._failures = 0

        # Suppress httpx INFO level logging (one request per status tick)
        logging.getLogger("httpx").setLevel(logging.WARNING)

        logger.info(f"[STATUS] HttpStatusPublisher initialized (url={url})")

    @staticmethod
    def build_payload(elapsed: float, total: int, paused: bool, title: str, thumbnail: str) -> Dict[str, Any]:
        return {
            "elapsed": round(elapsed, 2),
            "total": total,
            "paused": paused,
            "title": title,
            "thumbnail": thumbnail,
            "elapsed_display": format_duration(int(elapsed)),
            "total_display": format_duration(total),
        }

    def __call__(self, elapsed: float, total: int, paused: bool, title: str, thumbnail: str) -> None:
        self.publish(elapsed, total, paused, title, thumbnail)

    def publish(self, elapsed: float, total: int, paused: bool, title: str, thumbnail: str) -> bool:
        """
        Returns:
            True if the endpoint accepted the status
        """
        payload = self.build_payload(elapsed, total, paused, title, thumbnail)
        try:
            response = httpx.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            self._failures += 1
            # Log the first failure and every 60th after that
            if self._failures == 1 or self._failures % 60 == 0:
                logger.warning(f"[STATUS] Failed to publish status ({self._failures} failures): {e}")
            return False

        if self._failures:
            logger.info(f"[STATUS] Status endpoint reachable again after {self._failures} failures")
            self._failures = 0
        return True
