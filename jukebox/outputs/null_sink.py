import logging

from jukebox.broadcast_core.errors import SinkUnavailable
from jukebox.outputs.base_sink import BaseSink
from jukebox.outputs.frame_pacer import FramePacer

logger = logging.getLogger(__name__)


class NullSink(BaseSink):
    """
    A sink that discards all audio. Useful for tests and dry runs.

    With paced=True it still sleeps out each frame's duration, so tracks
    take their real length to play.
    """

    def __init__(self, paced: bool = False, frame_duration: float = 0.02):
        super().__init__()
        self._connected = False
        self._pacer = FramePacer(frame_duration) if paced else None
        self.frames_written = 0
        self.bytes_written = 0

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self) -> None:
        if not self._connected:
            logger.debug("[SINK] Null sink connected")
        self._connected = True

    def write(self, frame: bytes) -> None:
        if not self._connected:
            raise SinkUnavailable("null sink is not connected")
        if self._pacer is not None:
            self._pacer.wait()
        self.frames_written += 1
        self.bytes_written += len(frame)

    def set_speaking(self, speaking: bool) -> None:
        super().set_speaking(speaking)
        if not speaking and self._pacer is not None:
            self._pacer.reset()

    def disconnect(self) -> None:
        if self._connected:
            logger.debug(f"[SINK] Null sink disconnected ({self.frames_written} frames discarded)")
        self._connected = False
        self._speaking = False
