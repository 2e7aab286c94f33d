from abc import ABC, abstractmethod


class BaseSink(ABC):
    """
    Abstract base class for all output sinks.

    A sink receives encoded 20 ms Opus frames from the playback loop, one
    write() per frame. Sinks own real-time pacing: write() returns once the
    frame is due, which keeps the decoder backpressured at playback speed.

    write() on a disconnected sink raises SinkUnavailable. connect(),
    set_speaking() and disconnect() never raise for a sink that is already
    gone.
    """

    def __init__(self):
        self._speaking = False

    @property
    @abstractmethod
    def connected(self) -> bool:
        ...

    @property
    def speaking(self) -> bool:
        return self._speaking

    @abstractmethod
    def connect(self) -> None:
        """
        Open the output.

        Raises:
            SinkUnavailable: If the output cannot be reached
        """
        ...

    @abstractmethod
    def write(self, frame: bytes) -> None:
        """
        Write one encoded frame to the output sink.

        Args:
            frame: One Opus packet

        Raises:
            SinkUnavailable: If the sink is not connected
        """
        ...

    def set_speaking(self, speaking: bool) -> None:
        """Signal start/end of an audio burst to the receiver."""
        self._speaking = speaking

    @abstractmethod
    def disconnect(self) -> None:
        """
        Close the output sink and release resources.
        """
        ...

    def close(self) -> None:
        self.disconnect()
