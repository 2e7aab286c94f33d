"""
Progress Tracker for ffmpeg decode sessions.

Reads ffmpeg's `-progress` key=value stream and turns `out_time=` lines into
elapsed-seconds samples. The status stream shares stderr with ffmpeg's own
log output, so anything that does not parse is skipped.
"""

import logging
import queue
import threading
from typing import BinaryIO, Iterator, Optional

logger = logging.getLogger(__name__)

OUT_TIME_PREFIX = "out_time="

# Put on the progress channel when the status stream closes
_CLOSED = None


def parse_out_time(line: str) -> Optional[float]:
    """
    Parse one `out_time=HH:MM:SS[.fraction]` status line.

    Args:
        line: A single status line, with or without trailing newline

    Returns:
        Elapsed seconds (hours*3600 + minutes*60 + seconds), or None if the
        line is not a well-formed, non-negative out_time line
    """
    line = line.strip()
    if not line.startswith(OUT_TIME_PREFIX):
        return None

    value = line[len(OUT_TIME_PREFIX):]
    # ffmpeg reports a small negative time before the first packet
    if value.startswith("-"):
        return None

    parts = value.split(":")
    if len(parts) != 3:
        return None

    try:
        hours = float(parts[0])
        minutes = float(parts[1])
        seconds = float(parts[2])
    except ValueError:
        # out_time=N/A before the first packet is decoded
        return None

    elapsed = hours * 3600 + minutes * 60 + seconds
    if elapsed < 0:
        return None
    return elapsed


class ProgressTracker:
    """
    Single-producer parser for one decode session's status stream.

    Emits one float per out_time line on the progress channel. When the
    stream ends (EOF or read error) the progress channel is closed with a
    sentinel and the completion channel receives None or the error, exactly
    once. Cadence follows ffmpeg's own update rate; consumers must not assume
    evenly spaced samples.
    """

    def __init__(self, status_stream: BinaryIO, name: str = "ProgressTracker"):
        """
        Initialize the tracker (does not start reading).

        Args:
            status_stream: Binary stream carrying ffmpeg's progress output
            name: Thread name, for diagnostics
        """
        self._stream = status_stream
        self._name = name
        self.progress: "queue.Queue[Optional[float]]" = queue.Queue()
        self.done: "queue.Queue[Optional[Exception]]" = queue.Queue(maxsize=1)
        self._thread: Optional[threading.Thread] = None
        self._samples = 0

    @property
    def samples(self) -> int:
        """Number of progress values emitted so far."""
        return self._samples

    def start(self) -> "ProgressTracker":
        """Start the reader thread. Returns self for chaining."""
        if self._thread is not None:
            return self
        self._thread = threading.Thread(target=self._run, daemon=True, name=self._name)
        self._thread.start()
        return self

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the reader thread to exit.

        Returns:
            True if the thread has exited (or was never started)
        """
        if self._thread is None:
            return True
        self._thread.join(timeout=timeout)
        return not self._thread.is_alive()

    def iter_progress(self) -> Iterator[float]:
        """Yield progress samples until the channel is closed."""
        while True:
            value = self.progress.get()
            if value is _CLOSED:
                return
            yield value

    def wait_done(self, timeout: Optional[float] = None) -> Optional[Exception]:
        """
        Block until the tracker reports completion.

        Returns:
            None on clean EOF, or the read error

        Raises:
            queue.Empty: If timeout expires first
        """
        return self.done.get(timeout=timeout)

    def _run(self) -> None:
        error: Optional[Exception] = None
        try:
            for raw in iter(self._stream.readline, b""):
                line = raw.decode("utf-8", errors="ignore") if isinstance(raw, bytes) else str(raw)
                elapsed = parse_out_time(line)
                if elapsed is None:
                    continue
                self._samples += 1
                self.progress.put(elapsed)
        except (OSError, ValueError) as e:
            # ValueError: stream closed underneath us during teardown
            logger.debug(f"[PROGRESS] Status stream read error: {e}")
            error = e
        finally:
            self.progress.put(_CLOSED)
            self.done.put(error)
            logger.debug(f"[PROGRESS] Status stream closed ({self._samples} samples)")
