"""
Playback controller for the jukebox.

Drives the queue through decode sessions: one playback loop thread pops the
current track, runs ffmpeg at the resume offset, pumps 20 ms PCM blocks through
the Opus encoder into the output sink, and decides what to do when the
session ends (advance, resume after pause, restart, or stop).

Threads per active loop:
- playback loop (owns the decode session, the encoder and the pump)
- progress tracker + progress consumer (one pair per decode session)
- status monitor (periodic status refresh and the optional stall watchdog)

Lock domains: TrackQueue, PlaybackState and the loop flag here. No code path
holds two of them at once.
"""

import enum
import logging
import queue
import threading
from typing import Callable, List, Optional, Tuple

from jukebox.broadcast_core.errors import (
    EncodeFailed,
    NothingPlaying,
    SinkUnavailable,
    SpawnFailed,
    StreamReadFailed,
)
from jukebox.broadcast_core.ffmpeg_decoder import FFmpegDecodeSession
from jukebox.broadcast_core.opus_encoder import OpusFrameEncoder
from jukebox.broadcast_core.progress_tracker import ProgressTracker
from jukebox.broadcast_core.track import Track
from jukebox.broadcast_core.track_queue import TrackQueue
from jukebox.config import JukeboxConfig
from jukebox.outputs.base_sink import BaseSink
from jukebox.state.playback_state import PlaybackState, SessionOutcome

logger = logging.getLogger(__name__)

# (elapsed, total, paused, title, thumbnail)
StatusListener = Callable[[float, int, bool, str, str], None]
# (track or None, error)
ErrorListener = Callable[[Optional[Track], Exception], None]

TEARDOWN_JOIN_TIMEOUT = 2.0


class PlayerState(enum.Enum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    DRAINING = "draining"      # decode session ending, outcome not yet applied
    RESTARTING = "restarting"


class PlaybackController:
    """
    Playback state machine over a TrackQueue and a PlaybackState.

    At most one playback loop runs at a time ("currently playing" flag). The
    loop exits when the queue is drained; ensure_playing() starts a new one.
    """

    def __init__(
        self,
        config: JukeboxConfig,
        track_queue: TrackQueue,
        state: PlaybackState,
        sink: BaseSink,
        session_factory: Optional[Callable[[str, float], FFmpegDecodeSession]] = None,
        encoder_factory: Optional[Callable[[], OpusFrameEncoder]] = None,
    ):
        """
        Initialize the controller (no threads start until ensure_playing()).

        Args:
            config: Jukebox configuration
            track_queue: Queue the loop drains
            state: Shared playback state
            sink: Output sink for encoded frames
            session_factory: (stream_ref, offset) -> started decode session;
                defaults to an ffmpeg session built from config
            encoder_factory: () -> frame encoder; defaults to libopus from config
        """
        self._config = config
        self._queue = track_queue
        self._state = state
        self._sink = sink
        self._session_factory = session_factory or self._start_ffmpeg_session
        self._encoder_factory = encoder_factory or self._open_opus_encoder

        self._status_listeners: List[StatusListener] = []
        self._error_listeners: List[ErrorListener] = []

        self._loop_lock = threading.Lock()
        self._loop_active = False
        self._loop_thread: Optional[threading.Thread] = None
        self._phase = PlayerState.IDLE
        self._idle = threading.Event()
        self._idle.set()
        self._shutdown = threading.Event()

    # -- factories ----------------------------------------------------------

    def _start_ffmpeg_session(self, stream_ref: str, offset: float) -> FFmpegDecodeSession:
        return FFmpegDecodeSession.start_session(
            stream_ref,
            offset,
            ffmpeg_path=self._config.ffmpeg_path,
            input_options=self._config.input_options(),
            sample_rate=self._config.sample_rate,
            channels=self._config.channels,
        )

    def _open_opus_encoder(self) -> OpusFrameEncoder:
        return OpusFrameEncoder(
            sample_rate=self._config.sample_rate,
            channels=self._config.channels,
            bitrate=self._config.opus_bitrate,
        )

    # -- listeners --------------------------------------------------------

    def add_status_listener(self, listener: StatusListener) -> None:
        self._status_listeners.append(listener)

    def add_error_listener(self, listener: ErrorListener) -> None:
        self._error_listeners.append(listener)

    # -- loop lifecycle -----------------------------------------------------

    def ensure_playing(self) -> bool:
        """
        Start the playback loop unless one is already active.

        Returns:
            True if a new loop was started
        """
        if self._shutdown.is_set():
            return False

        with self._loop_lock:
            if self._loop_active:
                return False
            self._loop_active = True
            self._phase = PlayerState.PLAYING
            self._idle.clear()
            thread = threading.Thread(target=self._playback_loop, daemon=True, name="PlaybackLoop")
            self._loop_thread = thread

        thread.start()
        return True

    def is_looping(self) -> bool:
        with self._loop_lock:
            return self._loop_active

    def state(self) -> PlayerState:
        with self._loop_lock:
            phase = self._phase
        if phase is PlayerState.PLAYING and self._state.is_paused():
            return PlayerState.PAUSED
        return phase

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until no playback loop is active.

        Returns:
            True if idle within timeout
        """
        return self._idle.wait(timeout=timeout)

    def shutdown(self, timeout: float = 5.0) -> None:
        """Stop playback and wait for the loop thread to exit."""
        logger.info("[PLAYBACK] Shutting down")
        self._shutdown.set()
        self.stop()
        thread = self._loop_thread
        if thread is not None and thread.is_alive():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning(f"[PLAYBACK] Playback loop did not stop within {timeout:.1f}s")

    def _set_phase(self, phase: PlayerState) -> None:
        with self._loop_lock:
            self._phase = phase

    # -- control ----------------------------------------------------------

    def pause(self) -> bool:
        """
        Pause frame forwarding.

        Returns:
            False if already paused
        """
        if not self._state.pause():
            return False
        logger.info("[PLAYBACK] Paused")
        return True

    def resume(self) -> bool:
        """
        Resume frame forwarding.

        Returns:
            False if not paused
        """
        if not self._state.resume():
            return False
        logger.info("[PLAYBACK] Resumed")
        return True

    def skip(self) -> bool:
        """
        Abandon the current track (paused or not) and advance.

        Returns:
            False if there is no current track
        """
        current = self._queue.current()
        if current is None:
            return False
        session = self._state.request_skip()
        if session is not None:
            session.cancel()
        logger.info(f"[PLAYBACK] Skipping: {current.title}")
        return True

    def stop(self) -> int:
        """
        Clear the queue and current track, cancel decoding, disconnect the sink.

        Returns:
            Number of tracks dropped
        """
        dropped = self._queue.clear()
        session = self._state.request_stop()
        if session is not None:
            session.cancel()
        self._sink.disconnect()
        logger.info(f"[PLAYBACK] Stopped ({dropped} track(s) dropped)")
        return dropped

    def restart(self, track: Track) -> None:
        """
        Replace the current track with `track` and play it from 0.

        Args:
            track: Freshly resolved descriptor for the current track

        Raises:
            NothingPlaying: If there is no current track
        """
        if self._queue.current() is None:
            raise NothingPlaying("nothing is playing")
        self._queue.replace_current(track)
        session = self._state.request_restart()
        if session is not None:
            session.cancel()
        logger.info(f"[PLAYBACK] Restarting: {track.title}")
        # Loop may have drained between the check and the swap
        self.ensure_playing()

    # -- playback loop ------------------------------------------------------

    def _playback_loop(self) -> None:
        logger.info("[PLAYBACK] Playback loop started")
        self._state.reset()
        aborted = False

        monitor_stop = threading.Event()
        monitor = threading.Thread(
            target=self._status_monitor, args=(monitor_stop,), daemon=True, name="StatusMonitor"
        )
        monitor.start()

        try:
            if not self._sink.connected:
                self._sink.connect()
            while not self._shutdown.is_set():
                track = self._queue.peek_or_pop_current()
                if track is None:
                    break
                self._play_track(track)
        except SinkUnavailable as e:
            aborted = True
            logger.error(f"[PLAYBACK] Output sink unavailable, aborting playback loop: {e}")
            self._abandon_current(e)
        except Exception as e:
            aborted = True
            logger.error(f"[PLAYBACK] Playback loop failed: {e}", exc_info=True)
            self._abandon_current(e)
        finally:
            monitor_stop.set()
            monitor.join(timeout=TEARDOWN_JOIN_TIMEOUT)
            with self._loop_lock:
                self._loop_active = False
                self._phase = PlayerState.IDLE
            logger.info("[PLAYBACK] Playback loop stopped")

        # A track enqueued while this loop was exiting found the flag still
        # set and did not start a loop; pick it up here.
        restarted = False
        if not aborted and not self._shutdown.is_set() and self._queue.has_pending():
            restarted = self.ensure_playing()
        if not restarted:
            with self._loop_lock:
                if not self._loop_active:
                    self._idle.set()

    def _abandon_current(self, error: Exception) -> None:
        current = self._queue.current()
        if current is not None:
            self._queue.finish_current(current)
        self._state.reset()
        self._report_error(current, error)

    def _play_track(self, track: Track) -> None:
        """
        Play the current track until it ends, is skipped, stopped or restarted.

        Runs one decode session per pass; a pass that ends while paused (or
        is restarted) starts another.
        """
        logger.info(f"[PLAYBACK] Now playing: {track.describe()}")

        while True:
            offset = self._state.resume_offset()
            self._set_phase(PlayerState.PLAYING)

            try:
                session = self._session_factory(track.stream_url, offset)
            except SpawnFailed as e:
                logger.error(f"[PLAYBACK] Could not start decoder for {track.title}: {e}")
                self._state.reset()
                self._queue.finish_current(track)
                self._report_error(track, e)
                return

            if not self._state.attach_session(session, offset):
                logger.debug(f"[PLAYBACK] Control request arrived while the decoder was starting: {track.title}")
            frames, exit_code = self._run_session(session, track)

            self._set_phase(PlayerState.DRAINING)
            decoder_failed = exit_code not in (None, 0) and not session.cancelled
            if decoder_failed:
                logger.warning(f"[PLAYBACK] Decoder exited with code {exit_code}: {track.title}")
            outcome = self._state.end_session(session, decoder_failed=decoder_failed)
            logger.debug(f"[PLAYBACK] Decode session ended: {outcome.value} ({frames} frames)")

            if outcome is SessionOutcome.PAUSED:
                logger.info(f"[PLAYBACK] Decoder ended while paused, holding {track.title}")
                self._set_phase(PlayerState.PAUSED)
                outcome = self._state.settle_pause()

            if outcome is SessionOutcome.RESUMED:
                logger.info(f"[PLAYBACK] Resuming {track.title} at {self._state.resume_offset():.2f}s")
                continue

            if outcome is SessionOutcome.RESTARTED:
                self._set_phase(PlayerState.RESTARTING)
                replacement = self._queue.current()
                if replacement is None:
                    # Stopped while restarting
                    return
                track = replacement
                logger.info(f"[PLAYBACK] Restarted: {track.describe()}")
                continue

            if outcome is SessionOutcome.STOPPED:
                return

            if outcome is SessionOutcome.SKIPPED:
                logger.info(f"[PLAYBACK] Skipped: {track.title}")
            else:
                logger.info(f"[PLAYBACK] Finished: {track.title} ({self._queue.size()} pending)")
            self._state.reset()
            self._queue.finish_current(track)
            return

    def _run_session(self, session, track: Track) -> Tuple[int, Optional[int]]:
        """
        Pump one decode session to its end and tear it down.

        Returns:
            (frames delivered to the sink, decoder exit code); the exit code
            is only collected when the pump reached end-of-stream, else None

        Raises:
            SinkUnavailable: If the sink went away (not caused by stop)
        """
        tracker = ProgressTracker(session.stderr, name="ProgressTracker").start()
        consumer = threading.Thread(
            target=self._consume_progress, args=(tracker, session), daemon=True, name="ProgressConsumer"
        )
        consumer.start()

        self._sink.set_speaking(True)
        try:
            frames, reached_eof = self._pump(session, track)
            # Reap before teardown kills it, so a decoder that died on its own keeps its exit code
            exit_code = session.wait() if reached_eof else None
            return frames, exit_code
        finally:
            # Order matters: the status reader must hit EOF before its pipe is closed
            session.kill()
            session.wait()
            tracker.join(timeout=TEARDOWN_JOIN_TIMEOUT)
            consumer.join(timeout=TEARDOWN_JOIN_TIMEOUT)
            session.close()
            self._sink.set_speaking(False)

    def _pump(self, session, track: Track) -> Tuple[int, bool]:
        """
        Move PCM blocks from the decoder through the encoder into the sink.

        Returns:
            (frames delivered, True if the decoder reached end-of-stream)
        """
        frame_bytes = self._config.frame_bytes
        frames = 0
        reached_eof = False

        try:
            encoder = self._encoder_factory()
        except EncodeFailed as e:
            logger.error(f"[PLAYBACK] {e}")
            return 0, False

        with encoder:
            while True:
                if not self._state.wait_while_paused():
                    break

                try:
                    block = session.read_block(frame_bytes)
                except StreamReadFailed as e:
                    logger.warning(f"[PLAYBACK] {track.title}: {e}")
                    break
                if not block:
                    reached_eof = True
                    break
                if len(block) < frame_bytes:
                    # Final partial block: pad with silence so the frame duration holds
                    block += bytes(frame_bytes - len(block))

                try:
                    packet = encoder.encode(block)
                except EncodeFailed as e:
                    logger.error(f"[PLAYBACK] {track.title}: {e}")
                    break

                if self._state.interrupted():
                    break
                if not packet:
                    continue

                try:
                    self._sink.write(packet)
                except SinkUnavailable:
                    if self._state.interrupted():
                        # stop() disconnected the sink under us
                        break
                    raise
                frames += 1

                if frames % 1000 == 0:
                    logger.debug(f"[PLAYBACK] {frames} frames sent ({track.title})")

        return frames, reached_eof

    def _consume_progress(self, tracker: ProgressTracker, session) -> None:
        for position in tracker.iter_progress():
            self._state.update_position(session, position)
        try:
            error = tracker.wait_done(timeout=1.0)
        except queue.Empty:
            return
        if error is not None:
            logger.debug(f"[PROGRESS] Status stream ended with error: {error}")

    # -- status -----------------------------------------------------------

    def _status_monitor(self, stop_event: threading.Event) -> None:
        interval = self._config.status_interval_sec
        while not stop_event.wait(interval):
            self._check_decode_stall()
            self.refresh_status()

    def refresh_status(self) -> bool:
        """
        Publish (elapsed, total, paused, title, thumbnail) to status listeners.

        Returns:
            False if there is no current track (nothing published)
        """
        track = self._queue.current()
        if track is None:
            return False

        snapshot = self._state.snapshot()
        for listener in list(self._status_listeners):
            try:
                listener(snapshot.elapsed, track.duration_seconds, snapshot.paused, track.title, track.thumbnail)
            except Exception as e:
                logger.error(f"[STATUS] Error in status listener: {e}")
        return True

    def _check_decode_stall(self) -> None:
        timeout = self._config.decode_stall_timeout_sec
        if timeout <= 0:
            return

        session = self._state.active_session()
        if session is None or self._state.is_paused():
            return

        silent_for = self._state.seconds_since_progress()
        if silent_for < timeout:
            return

        logger.warning(f"[PLAYBACK] Decoder made no progress for {silent_for:.1f}s, killing session")
        session.cancel()

    def _report_error(self, track: Optional[Track], error: Exception) -> None:
        for listener in list(self._error_listeners):
            try:
                listener(track, error)
            except Exception as e:
                logger.error(f"[PLAYBACK] Error in error listener: {e}")
