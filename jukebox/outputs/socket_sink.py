"""
Unix-socket frame sink.

Connects to a voice gateway listening on a Unix domain socket and streams
Opus frames to it at real-time pace.

Wire format, one record per frame:
    2-byte big-endian payload length, then the payload (one Opus packet)
A zero-length record is a control record followed by one byte:
    0x01 speaking started, 0x00 speaking stopped
"""

import logging
import socket
import struct
import threading
import time
from typing import Optional

from jukebox.broadcast_core.errors import SinkUnavailable
from jukebox.outputs.base_sink import BaseSink
from jukebox.outputs.frame_pacer import FramePacer

logger = logging.getLogger(__name__)

MAX_FRAME_BYTES = 0xFFFF
SPEAKING_ON = b"\x01"
SPEAKING_OFF = b"\x00"


def encode_record(payload: bytes) -> bytes:
    """Length-prefix one Opus packet."""
    if not payload:
        raise ValueError("empty payload is reserved for control records")
    if len(payload) > MAX_FRAME_BYTES:
        raise ValueError(f"frame too large: {len(payload)} bytes")
    return struct.pack(">H", len(payload)) + payload


def encode_speaking(speaking: bool) -> bytes:
    return struct.pack(">H", 0) + (SPEAKING_ON if speaking else SPEAKING_OFF)


class SocketFrameSink(BaseSink):
    """
    Frame sink writing length-prefixed Opus packets to a Unix socket.

    Uses a blocking socket with a send timeout: a gateway that stops reading
    surfaces as SinkUnavailable instead of silently dropping audio.
    """

    def __init__(
        self,
        socket_path: str,
        frame_duration: float = 0.02,
        send_timeout: float = 5.0,
        paced: bool = True,
    ):
        """
        Initialize the sink (does not connect).

        Args:
            socket_path: Path to the gateway's Unix domain socket
            frame_duration: Seconds of audio per frame (pacing interval)
            send_timeout: Seconds a single send may block
            paced: Sleep out each frame's duration before sending it
        """
        super().__init__()
        self.socket_path = socket_path
        self.send_timeout = send_timeout
        self._pacer = FramePacer(frame_duration) if paced else None
        self._socket: Optional[socket.socket] = None
        self._lock = threading.Lock()
        self._connection_start_time: Optional[float] = None
        self._frames_sent = 0

        logger.info(f"[SINK] SocketFrameSink initialized (socket={socket_path})")

    @property
    def connected(self) -> bool:
        with self._lock:
            return self._socket is not None

    @property
    def frames_sent(self) -> int:
        return self._frames_sent

    def connect(self) -> None:
        with self._lock:
            if self._socket is not None:
                return

            sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            try:
                sock.connect(self.socket_path)
            except FileNotFoundError:
                sock.close()
                raise SinkUnavailable(f"voice socket not found: {self.socket_path}")
            except OSError as e:
                sock.close()
                raise SinkUnavailable(f"cannot connect to voice socket {self.socket_path}: {e}") from e

            sock.settimeout(self.send_timeout)
            self._socket = sock
            self._connection_start_time = time.time()

        if self._pacer is not None:
            self._pacer.reset()
        logger.info(f"[SINK] Connected to voice socket: {self.socket_path}")

    def write(self, frame: bytes) -> None:
        if self._pacer is not None:
            self._pacer.wait()
        self._send(encode_record(frame))
        self._frames_sent += 1

    def set_speaking(self, speaking: bool) -> None:
        super().set_speaking(speaking)
        if self._pacer is not None and not speaking:
            self._pacer.reset()
        try:
            self._send(encode_speaking(speaking))
        except SinkUnavailable as e:
            logger.debug(f"[SINK] Could not send speaking={speaking}: {e}")

    def disconnect(self) -> None:
        with self._lock:
            sock = self._socket
            self._socket = None
        if sock is None:
            return

        try:
            # Unblocks a send in progress on the playback thread
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        sock.close()

        duration = time.time() - self._connection_start_time if self._connection_start_time else 0.0
        self._connection_start_time = None
        self._speaking = False
        logger.info(
            f"[SINK] Disconnected from voice socket "
            f"({self._frames_sent} frames sent, connection duration: {duration:.1f}s)"
        )

    def _send(self, data: bytes) -> None:
        with self._lock:
            sock = self._socket
        if sock is None:
            raise SinkUnavailable("voice socket is not connected")

        try:
            sock.sendall(data)
        except OSError as e:
            # Covers BrokenPipeError, ConnectionResetError and send timeouts
            logger.warning(f"[SINK] Voice socket error: {e}")
            with self._lock:
                if self._socket is sock:
                    self._socket = None
            try:
                sock.close()
            except OSError:
                pass
            raise SinkUnavailable(f"voice socket write failed: {e}") from e
