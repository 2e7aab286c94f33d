import logging
import os
import signal
import subprocess
import threading
from typing import List, Optional, Sequence

from jukebox.broadcast_core.errors import SpawnFailed, StreamReadFailed

logger = logging.getLogger(__name__)


def build_ffmpeg_cmd(
    stream_ref: str,
    start_offset: float,
    ffmpeg_path: str = "ffmpeg",
    input_options: Sequence[str] = (),
    sample_rate: int = 48000,
    channels: int = 2,
) -> List[str]:
    """
    Build the ffmpeg argv for one decode session.

    Input seek comes before -i so ffmpeg seeks the demuxer instead of
    decoding and discarding up to the offset.
    """
    return [
        ffmpeg_path,
        "-hide_banner",
        "-nostdin",
        "-loglevel", "error",
        *input_options,
        "-ss", f"{max(0.0, start_offset):.2f}",
        "-i", stream_ref,
        "-vn",
        "-f", "s16le",
        "-ac", str(channels),
        "-ar", str(sample_rate),
        "-progress", "pipe:2",
        "pipe:1",
    ]


class FFmpegDecodeSession:
    """
    One lifetime of an ffmpeg process turning a stream reference into PCM.

    - stdout carries 16-bit signed little-endian interleaved PCM
    - stderr carries the `-progress` status stream (plus ffmpeg errors)

    The session owns its cancellation token. Other threads call cancel();
    only the owning thread reads the pipes and calls close().
    """

    def __init__(
        self,
        stream_ref: str,
        start_offset: float = 0.0,
        ffmpeg_path: str = "ffmpeg",
        input_options: Sequence[str] = (),
        sample_rate: int = 48000,
        channels: int = 2,
    ):
        """
        Initialize a decode session (does not spawn ffmpeg).

        Args:
            stream_ref: URL or path to decode
            start_offset: Seek offset in seconds (2-decimal precision on the wire)
            ffmpeg_path: ffmpeg executable
            input_options: Extra input flags placed before -i
            sample_rate: Output sample rate
            channels: Output channel count
        """
        self.stream_ref = stream_ref
        self.start_offset = start_offset
        self.cmd = build_ffmpeg_cmd(
            stream_ref, start_offset,
            ffmpeg_path=ffmpeg_path,
            input_options=input_options,
            sample_rate=sample_rate,
            channels=channels,
        )
        self.proc: Optional[subprocess.Popen] = None
        self._cancelled = threading.Event()
        self._kill_lock = threading.Lock()

    @classmethod
    def start_session(cls, stream_ref: str, start_offset: float = 0.0, **kwargs) -> "FFmpegDecodeSession":
        """Create and start a session in one call."""
        session = cls(stream_ref, start_offset, **kwargs)
        session.start()
        return session

    def start(self) -> "FFmpegDecodeSession":
        """
        Spawn the ffmpeg process.

        Returns:
            self, with proc/stdout/stderr available

        Raises:
            SpawnFailed: If the process cannot be launched
        """
        if self.proc is not None:
            raise SpawnFailed("decode session already started")

        logger.info(f"[DECODER] Starting ffmpeg at {self.start_offset:.2f}s: {self.stream_ref}")
        logger.debug(f"[DECODER] Command: {' '.join(self.cmd)}")
        try:
            # Own process group: isolates ffmpeg from Ctrl-C sent to the parent
            # and lets kill() take down any helper processes with it
            self.proc = subprocess.Popen(
                self.cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                preexec_fn=os.setsid,
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            logger.error(f"[DECODER] Failed to start ffmpeg: {e}")
            raise SpawnFailed(f"error starting ffmpeg: {e}") from e

        logger.debug(f"[DECODER] ffmpeg started (pid={self.proc.pid})")
        return self

    @property
    def stderr(self):
        """Progress status reader."""
        return self.proc.stderr if self.proc else None

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def read_block(self, size: int) -> bytes:
        """
        Read up to `size` bytes of PCM.

        Loops over short pipe reads so a full block is returned whenever the
        stream has one; a shorter result only happens at end-of-stream.

        Args:
            size: Block size in bytes

        Returns:
            PCM bytes; b"" at end-of-stream

        Raises:
            StreamReadFailed: On an I/O error other than end-of-stream
        """
        if self.proc is None or self.proc.stdout is None:
            raise StreamReadFailed("decode session not started")

        buffer = bytearray()
        try:
            while len(buffer) < size:
                chunk = self.proc.stdout.read(size - len(buffer))
                if not chunk:
                    break
                buffer.extend(chunk)
        except (OSError, ValueError) as e:
            if self.cancelled:
                # Pipe torn down by cancel(); same as end-of-stream
                return bytes(buffer)
            raise StreamReadFailed(f"error reading ffmpeg output: {e}") from e
        return bytes(buffer)

    def cancel(self) -> None:
        """
        Signal cancellation and kill the process. Safe from any thread.
        """
        self._cancelled.set()
        self.kill()

    def kill(self) -> None:
        """
        Send an immediate kill to the ffmpeg process group.

        Idempotent. "Already exited" is not an error, and any other failure
        is logged and swallowed.
        """
        with self._kill_lock:
            proc = self.proc
            if proc is None:
                return

            if proc.poll() is not None:
                logger.debug(f"[DECODER] ffmpeg already exited (pid={proc.pid}, rc={proc.returncode})")
                return

            try:
                pgid = os.getpgid(proc.pid)
                os.killpg(pgid, signal.SIGKILL)
                logger.info(f"[DECODER] ffmpeg killed (pid={proc.pid}, pgid={pgid})")
            except ProcessLookupError:
                # Exited between poll() and killpg()
                logger.debug(f"[DECODER] ffmpeg already exited (pid={proc.pid})")
            except Exception as e:
                logger.warning(f"[DECODER] Error killing ffmpeg process group (pid={proc.pid}): {e}")
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
                except Exception as e2:
                    logger.warning(f"[DECODER] Fallback kill failed (pid={proc.pid}): {e2}")

    def wait(self, timeout: float = 2.0) -> Optional[int]:
        """
        Reap the process, killing it if still running after `timeout`.

        Returns:
            ffmpeg's exit code, or None if it was never started or refuses to die
        """
        proc = self.proc
        if proc is None:
            return None

        try:
            return proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.warning(f"[DECODER] ffmpeg did not exit, killing: {self.stream_ref}")
            self.kill()
            try:
                return proc.wait(timeout=1)
            except subprocess.TimeoutExpired:
                logger.error(f"[DECODER] ffmpeg did not exit after kill (pid={proc.pid})")
                return None

    def close(self, timeout: float = 2.0) -> Optional[int]:
        """
        Reap the process and close its pipes.

        Safe to call multiple times. Callers reading stderr on another thread
        should let that reader hit EOF before closing.

        Returns:
            ffmpeg's exit code, or None if it was never started
        """
        proc = self.proc
        if proc is None:
            return None

        self.wait(timeout=timeout)

        for pipe in (proc.stdout, proc.stderr):
            if pipe is None:
                continue
            try:
                pipe.close()
            except OSError:
                pass

        return proc.returncode
