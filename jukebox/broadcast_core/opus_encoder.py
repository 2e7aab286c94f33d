"""
Opus frame encoder.

Wraps a PyAV libopus encoder configured for 48 kHz stereo s16 input. Each
call to encode() takes one 20 ms block (960 sample frames, 3840 bytes) of
interleaved little-endian PCM and returns the Opus packet it produced.

Block size is a caller invariant: the encoder does not pad or split, and a
wrongly sized block surfaces as EncodeFailed from the codec.
"""

import logging
from typing import Optional

import av
from av.error import FFmpegError
import numpy as np

from jukebox.broadcast_core.errors import EncodeFailed

logger = logging.getLogger(__name__)

OPUS_SAMPLE_RATE = 48000
OPUS_CHANNELS = 2
OPUS_FRAME_SAMPLES = 960  # 20 ms at 48 kHz
BYTES_PER_SAMPLE = 2
OPUS_FRAME_BYTES = OPUS_FRAME_SAMPLES * OPUS_CHANNELS * BYTES_PER_SAMPLE  # 3840


def pcm_from_bytes(pcm: bytes, channels: int = OPUS_CHANNELS) -> np.ndarray:
    """
    View interleaved s16le bytes as an int16 array shaped (N, channels).

    A trailing odd byte or incomplete sample frame is dropped.
    """
    usable = len(pcm) - (len(pcm) % (BYTES_PER_SAMPLE * channels))
    samples = np.frombuffer(pcm[:usable], dtype="<i2")
    return samples.reshape(-1, channels)


class OpusFrameEncoder:
    """
    Scoped libopus encoder: create per decode session, close when it ends.

    Holds no cross-call state besides the codec configuration.
    """

    def __init__(
        self,
        sample_rate: int = OPUS_SAMPLE_RATE,
        channels: int = OPUS_CHANNELS,
        bitrate: Optional[int] = 96000,
    ):
        """
        Open the libopus codec.

        Args:
            sample_rate: Input/output sample rate (Opus requires 48000 here)
            channels: 1 or 2
            bitrate: Target bitrate in bits/s, or None for the codec default

        Raises:
            EncodeFailed: If the codec cannot be opened
        """
        self.sample_rate = sample_rate
        self.channels = channels
        self._layout = "stereo" if channels == 2 else "mono"
        self._frames_encoded = 0

        try:
            codec = av.AudioCodecContext.create("libopus", "w")
            codec.sample_rate = sample_rate
            codec.layout = self._layout
            codec.format = "s16"
            if bitrate:
                codec.bit_rate = bitrate
            with av.logging.Capture() as logs:
                codec.open()
            for log in logs:
                logger.debug(f"[ENCODER] libopus: {log}")
        except (FFmpegError, ValueError) as e:
            raise EncodeFailed(f"error creating opus encoder: {e}") from e

        self._codec: Optional[av.AudioCodecContext] = codec
        logger.debug(f"[ENCODER] Opus encoder opened ({sample_rate}Hz, {channels}ch, bitrate={bitrate})")

    @property
    def closed(self) -> bool:
        return self._codec is None

    @property
    def frames_encoded(self) -> int:
        return self._frames_encoded

    def encode(self, pcm: bytes) -> bytes:
        """
        Encode one block of interleaved s16le PCM into one Opus packet.

        Args:
            pcm: Raw PCM; must hold exactly 960 sample frames for correct timing

        Returns:
            The compressed frame (b"" if the codec produced nothing yet)

        Raises:
            EncodeFailed: On codec fault, malformed block, or closed encoder
        """
        if self._codec is None:
            raise EncodeFailed("encoder is closed")

        samples = pcm_from_bytes(pcm, self.channels)
        if samples.shape[0] == 0:
            raise EncodeFailed("empty PCM block")

        try:
            frame = av.AudioFrame(format="s16", layout=self._layout, samples=samples.shape[0])
            frame.sample_rate = self.sample_rate
            frame.planes[0].update(samples.tobytes())
            packets = self._codec.encode(frame)
        except (FFmpegError, ValueError) as e:
            raise EncodeFailed(f"error encoding to opus: {e}") from e

        # The codec may hold a frame back; an empty result is not an error
        data = b"".join(bytes(packet) for packet in packets)

        self._frames_encoded += 1
        return data

    def close(self) -> None:
        """Dispose the codec. Safe to call multiple times."""
        if self._codec is None:
            return
        self._codec = None
        logger.debug(f"[ENCODER] Opus encoder closed ({self._frames_encoded} frames)")

    def __enter__(self) -> "OpusFrameEncoder":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
