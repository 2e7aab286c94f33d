"""
Test doubles (fakes, stubs, mocks) for jukebox contract tests.

These provide minimal implementations that satisfy the playback interfaces
without real dependencies (ffmpeg, yt-dlp, libopus, sockets, network).
"""

import dataclasses
import queue
import threading
import time
from typing import Callable, Dict, List, Optional, Set, Tuple

import numpy as np

from jukebox.broadcast_core.errors import (
    EncodeFailed,
    LookupFailed,
    SinkUnavailable,
    SpawnFailed,
    StreamReadFailed,
)
from jukebox.broadcast_core.track import Track
from jukebox.outputs.base_sink import BaseSink


# Canonical PCM format constants
FRAME_SAMPLES = 960
SAMPLE_RATE = 48000
CHANNELS = 2
FRAME_BYTES = FRAME_SAMPLES * CHANNELS * 2  # 3840
BYTES_PER_SECOND = SAMPLE_RATE * CHANNELS * 2  # 192000


def create_pcm_block(fill: int = 0, frames: float = 1.0) -> bytes:
    """
    Interleaved s16le stereo PCM where every sample equals `fill`.

    For 0 <= fill < 256 the first byte of the block is `fill`, which the
    stub encoder uses as a per-track marker.
    """
    samples = int(FRAME_SAMPLES * frames)
    return np.full((samples, CHANNELS), fill, dtype=np.int16).tobytes()


def format_out_time(seconds: float) -> str:
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = seconds - hours * 3600 - minutes * 60
    return f"out_time={hours:02d}:{minutes:02d}:{secs:09.6f}"


def make_track(title: str, stream_url: Optional[str] = None, duration_seconds: int = 180) -> Track:
    return Track(
        title=title,
        stream_url=stream_url or title.lower(),
        duration_seconds=duration_seconds,
        thumbnail=f"https://img.example/{title.lower()}.jpg",
        original_url=f"https://video.example/{title.lower()}",
    )


def wait_for(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.005) -> bool:
    """Poll `predicate` until it is true or `timeout` expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class FakeStatusStream:
    """Blocking line source standing in for ffmpeg's stderr."""

    def __init__(self, lines=()):
        self._lines: "queue.Queue[Optional[bytes]]" = queue.Queue()
        self._closed = False
        self._lock = threading.Lock()
        for line in lines:
            self.push(line)

    def push(self, line: str) -> None:
        with self._lock:
            if self._closed:
                return
            self._lines.put(line.encode("utf-8") + b"\n")

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._lines.put(None)

    def readline(self) -> bytes:
        item = self._lines.get()
        if item is None:
            # Keep returning EOF for any further reads
            self._lines.put(None)
            return b""
        return item


class FakeDecodeSession:
    """
    Fake decode session.

    Serves either a fixed PCM buffer or (endless=True) an unbounded stream of
    `fill` blocks until cancelled. After each block an out_time line for the
    bytes served so far is pushed to stderr.
    wait() and close() report `returncode` as the decoder exit status.
    """

    def __init__(
        self,
        stream_ref: str,
        start_offset: float = 0.0,
        pcm: bytes = b"",
        endless: bool = False,
        fill: int = 0,
        emit_progress: bool = True,
        read_error_after: Optional[int] = None,
        on_eof: Optional[Callable[[], None]] = None,
        block_delay: float = 0.0,
        returncode: int = 0,
        on_block: Optional[Callable[[int], None]] = None,
    ):
        self.stream_ref = stream_ref
        self.start_offset = start_offset
        self.stderr = FakeStatusStream()
        self._pcm = pcm
        self._pos = 0
        self.endless = endless
        self.fill = fill
        self.emit_progress = emit_progress
        self.read_error_after = read_error_after
        self.on_eof = on_eof
        self.block_delay = block_delay if block_delay else (0.002 if endless else 0.0)
        self.returncode = returncode
        self.on_block = on_block
        self._cancelled = threading.Event()
        self._eof_fired = False
        self.blocks_read = 0
        self.bytes_read = 0
        self.kill_count = 0
        self.closed = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def read_block(self, size: int) -> bytes:
        if self.read_error_after is not None and self.blocks_read >= self.read_error_after:
            raise StreamReadFailed("simulated read error")
        if self._cancelled.is_set():
            return b""

        if self.block_delay:
            time.sleep(self.block_delay)

        if self.endless:
            block = b"" if self._cancelled.is_set() else create_pcm_block(self.fill)[:size]
        else:
            block = self._pcm[self._pos:self._pos + size]
            self._pos += len(block)

        if not block:
            self._finish()
            return b""

        self.blocks_read += 1
        self.bytes_read += len(block)
        if self.emit_progress:
            self.stderr.push(format_out_time(self.bytes_read / BYTES_PER_SECOND))
        if self.on_block is not None:
            self.on_block(self.blocks_read)
        return block

    def _finish(self) -> None:
        if self.on_eof is not None and not self._eof_fired and not self._cancelled.is_set():
            self._eof_fired = True
            self.on_eof()
        self.stderr.close()

    def cancel(self) -> None:
        self._cancelled.set()
        self.kill()

    def kill(self) -> None:
        self.kill_count += 1
        self.stderr.close()

    def wait(self, timeout: float = 2.0) -> Optional[int]:
        return self.returncode

    def close(self, timeout: float = 2.0) -> Optional[int]:
        self.closed = True
        self.stderr.close()
        return self.returncode


class FakeSessionFactory:
    """
    Decode session factory with per-stream scripts.

    script("a", plan1, plan2) makes the first session for "a" use plan1, the
    second plan2, and any later ones plan2 again.
    hold("a") parks the next call for "a" (after it is recorded) until
    released.
    """

    def __init__(self):
        self.plans: Dict[str, List[dict]] = {}
        self.default_plan = {"pcm": create_pcm_block(0, frames=1)}
        self.fail_refs: Set[str] = set()
        self.calls: List[Tuple[str, float]] = []
        self.sessions: List[FakeDecodeSession] = []
        self._holds: Dict[str, Tuple[threading.Event, threading.Event]] = {}
        self._cond = threading.Condition()

    def script(self, stream_ref: str, *plans: dict) -> None:
        self.plans.setdefault(stream_ref, []).extend(plans)

    def hold(self, stream_ref: str) -> Tuple[threading.Event, threading.Event]:
        """Returns (entered, release) events for the next call for `stream_ref`."""
        entered, release = threading.Event(), threading.Event()
        with self._cond:
            self._holds[stream_ref] = (entered, release)
        return entered, release

    def __call__(self, stream_ref: str, offset: float) -> FakeDecodeSession:
        with self._cond:
            self.calls.append((stream_ref, offset))
            self._cond.notify_all()
            hold = self._holds.pop(stream_ref, None)
        if hold is not None:
            entered, release = hold
            entered.set()
            release.wait(timeout=5.0)

        with self._cond:
            if stream_ref in self.fail_refs:
                self._cond.notify_all()
                raise SpawnFailed(f"simulated spawn failure for {stream_ref}")

            plans = self.plans.get(stream_ref)
            if plans:
                plan = plans.pop(0) if len(plans) > 1 else plans[0]
            else:
                plan = self.default_plan
            session = FakeDecodeSession(stream_ref, offset, **plan)
            self.sessions.append(session)
            self._cond.notify_all()
            return session

    def wait_for_sessions(self, count: int, timeout: float = 2.0) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: len(self.sessions) >= count, timeout=timeout)

    def refs(self) -> List[str]:
        return [ref for ref, _ in self.calls]


class StubFrameEncoder:
    """
    Stub frame encoder: each block becomes 4 copies of its first byte.
    """

    def __init__(self, fail_at: Optional[int] = None):
        self.fail_at = fail_at
        self.encoded: List[int] = []
        self.closed = False

    def encode(self, pcm: bytes) -> bytes:
        if self.closed:
            raise EncodeFailed("encoder is closed")
        if self.fail_at is not None and len(self.encoded) >= self.fail_at:
            raise EncodeFailed("simulated encode failure")
        self.encoded.append(len(pcm))
        return bytes([pcm[0]]) * 4

    def close(self) -> None:
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class StubEncoderFactory:
    """Creates StubFrameEncoders; fail_at maps encoder index -> failing encode index."""

    def __init__(self, fail_at: Optional[Dict[int, int]] = None):
        self.fail_at = fail_at or {}
        self.encoders: List[StubFrameEncoder] = []

    def __call__(self) -> StubFrameEncoder:
        encoder = StubFrameEncoder(fail_at=self.fail_at.get(len(self.encoders)))
        self.encoders.append(encoder)
        return encoder


class RecordingSink(BaseSink):
    """Sink that records frames and speaking toggles without real I/O."""

    def __init__(self, fail_after: Optional[int] = None, refuse_connect: bool = False):
        super().__init__()
        self.fail_after = fail_after
        self.refuse_connect = refuse_connect
        self._connected = False
        self._lock = threading.Lock()
        self.frames: List[bytes] = []
        self.speaking_events: List[bool] = []
        self.connect_count = 0
        self.disconnect_count = 0

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self) -> None:
        if self.refuse_connect:
            raise SinkUnavailable("simulated connect failure")
        self._connected = True
        self.connect_count += 1

    def write(self, frame: bytes) -> None:
        if not self._connected:
            raise SinkUnavailable("recording sink is not connected")
        with self._lock:
            if self.fail_after is not None and len(self.frames) >= self.fail_after:
                self._connected = False
                raise SinkUnavailable("simulated sink loss")
            self.frames.append(frame)

    def set_speaking(self, speaking: bool) -> None:
        super().set_speaking(speaking)
        self.speaking_events.append(speaking)

    def disconnect(self) -> None:
        self._connected = False
        self.disconnect_count += 1

    def frame_count(self) -> int:
        with self._lock:
            return len(self.frames)

    def markers(self) -> List[int]:
        with self._lock:
            return [frame[0] for frame in self.frames]


class FakeResolver:
    """Resolver backed by a dict; unknown or failing URLs raise LookupFailed."""

    def __init__(self):
        self.tracks: Dict[str, Track] = {}
        self.fail_urls: Set[str] = set()
        self.calls: List[str] = []

    def add(self, url: str, track: Track) -> Track:
        self.tracks[url] = dataclasses.replace(track, original_url=url)
        return self.tracks[url]

    def resolve(self, url: str) -> Track:
        self.calls.append(url)
        if url in self.fail_urls or url not in self.tracks:
            raise LookupFailed(f"simulated lookup failure for {url}")
        # A fresh object per lookup, like a real resolver
        return dataclasses.replace(self.tracks[url])
