"""
Real-time frame pacing for output sinks.

Keeps a monotonic timeline advanced by one frame duration per frame and
sleeps until each frame is due. A gap longer than the resync threshold
(track change, pause) restarts the timeline instead of bursting to catch up.
"""

import time
from typing import Callable, Optional


class FramePacer:

    def __init__(
        self,
        frame_duration: float = 0.02,
        resync_threshold: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.frame_duration = frame_duration
        self.resync_threshold = resync_threshold
        self._clock = clock
        self._sleep = sleep
        self._next_frame_time: Optional[float] = None

    def wait(self) -> float:
        """
        Block until the next frame is due.

        Returns:
            Seconds slept (0 if the frame was already late)
        """
        now = self._clock()
        if self._next_frame_time is None or now - self._next_frame_time > self.resync_threshold:
            self._next_frame_time = now

        delay = self._next_frame_time - now
        if delay > 0:
            self._sleep(delay)
        else:
            delay = 0.0

        self._next_frame_time += self.frame_duration
        return delay

    def reset(self) -> None:
        self._next_frame_time = None
