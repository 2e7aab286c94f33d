"""
Playback State for the jukebox playback engine.

Position, pause, skip and active-session bookkeeping for the current track,
guarded by its own lock. The queue and the "currently playing" flag live in
other lock domains; nothing here ever takes their locks.
"""

import enum
import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class Cancellable(Protocol):
    """What the state cell needs from a decode session: a cancel signal."""

    def cancel(self) -> None:
        ...


class SessionOutcome(enum.Enum):
    """Why a decode session ended, as seen by the playback loop."""
    FINISHED = "finished"      # EOF, read/encode failure, watchdog
    SKIPPED = "skipped"
    STOPPED = "stopped"
    RESTARTED = "restarted"
    PAUSED = "paused"          # ended while paused, track not done
    RESUMED = "resumed"        # track continues from resume_offset()


@dataclass(frozen=True)
class PlaybackSnapshot:
    """Point-in-time copy of the playback state."""
    position: float
    baseline: float
    paused: bool
    skip_requested: bool
    has_session: bool

    @property
    def elapsed(self) -> float:
        """Elapsed seconds into the current track."""
        return self.baseline + self.position


class PlaybackState:
    """
    Mutable playback bookkeeping shared between the playback loop, the
    progress consumer, the status monitor and control callers.

    position: seconds reported by the active decode session (restarts at 0
        for each session because ffmpeg counts from its seek point)
    baseline: seek offset the active session started at; elapsed time in
        the track is baseline + position
    paused: frame forwarding halted; the pump waits on the condition
    skip_requested: edge-triggered, consumed by end_session()
    """

    def __init__(self, clock=time.monotonic):
        """
        Initialize zeroed state.

        Args:
            clock: Monotonic time source (overridable for tests)
        """
        self._lock = threading.Lock()
        self._wake = threading.Condition(self._lock)
        self._clock = clock

        self._position = 0.0
        self._baseline = 0.0
        self._paused = False
        self._skip_requested = False
        self._stop_requested = False
        self._restart_requested = False
        self._held_by_pause = False
        self._session: Optional[Cancellable] = None
        self._last_progress_at = clock()

    # -- playback loop side -------------------------------------------------

    def resume_offset(self) -> float:
        """
        Seek offset for the next decode session of the current track.

        Zero for a fresh track, since position and baseline are reset
        whenever a track ends, is skipped or is restarted.
        """
        with self._lock:
            if self._position > 0:
                return self._baseline + self._position
            return self._baseline

    def attach_session(self, session: Cancellable, offset: float) -> bool:
        """
        Record the newly started decode session.

        The session's position counts from its seek point, so the offset
        becomes the new baseline and position restarts at 0. If a stop or
        restart arrived while the session was spawning, the offset is stale:
        the session stays detached and baseline stays at 0.

        Returns:
            False if the session was left detached
        """
        with self._lock:
            self._position = 0.0
            self._held_by_pause = False
            self._last_progress_at = self._clock()
            if self._stop_requested or self._restart_requested:
                self._baseline = 0.0
                return False
            if self._session is not None and self._session is not session:
                logger.warning("[PLAYBACK] Attaching a decode session while another is active")
            self._session = session
            self._baseline = offset
            return True

    def update_position(self, session: Cancellable, position: float) -> bool:
        """
        Overwrite position with a progress sample from `session`.

        Samples from a session that is no longer active are dropped.

        Returns:
            True if the sample was applied
        """
        with self._lock:
            if session is not self._session:
                return False
            self._position = position
            self._last_progress_at = self._clock()
            return True

    def wait_while_paused(self, timeout: Optional[float] = None) -> bool:
        """
        Block while paused, waking on resume or on skip/stop/restart.

        A wait that actually blocks marks the active session as held back by
        a pause (see end_session).

        Args:
            timeout: Optional upper bound in seconds

        Returns:
            True if frame forwarding may continue, False if interrupted
            (or still paused when the timeout expired)
        """
        with self._wake:
            if self._paused:
                self._held_by_pause = True
            self._wake.wait_for(lambda: not self._paused or self._interrupted_locked(), timeout=timeout)
            return not self._paused and not self._interrupted_locked()

    def interrupted(self) -> bool:
        """True if skip, stop or restart is pending."""
        with self._lock:
            return self._interrupted_locked()

    def end_session(self, session: Cancellable, decoder_failed: bool = False) -> SessionOutcome:
        """
        Detach `session` and consume any pending control request.

        Args:
            session: The session that just ended
            decoder_failed: The decoder exited with an error on its own (not
                cancelled). After a pause held the session back, that is
                treated as the decoder dying during the pause and the track
                continues from resume_offset() (RESUMED).

        Returns:
            What the playback loop should do next with the current track
        """
        with self._lock:
            if self._session is session:
                self._session = None
            outcome = self._take_outcome_locked()
            if outcome is SessionOutcome.FINISHED and decoder_failed and self._held_by_pause:
                outcome = SessionOutcome.RESUMED
            self._held_by_pause = False
            return outcome

    def settle_pause(self) -> SessionOutcome:
        """
        Wait out a pause that outlived its decode session.

        Returns:
            RESUMED, or the control request that interrupted the wait
        """
        with self._wake:
            self._wake.wait_for(lambda: not self._paused or self._interrupted_locked())
            if not self._interrupted_locked():
                return SessionOutcome.RESUMED
            return self._take_outcome_locked()

    def reset(self) -> None:
        """Zero every field (track finished, skipped, or loop start)."""
        with self._wake:
            self._reset_locked()
            self._stop_requested = False
            self._restart_requested = False
            self._wake.notify_all()

    # -- control side -----------------------------------------------------

    def pause(self) -> bool:
        """
        Halt frame forwarding.

        Returns:
            False if already paused
        """
        with self._lock:
            if self._paused:
                return False
            self._paused = True
            return True

    def resume(self) -> bool:
        """
        Resume frame forwarding and wake the pump.

        Returns:
            False if not paused
        """
        with self._wake:
            if not self._paused:
                return False
            self._paused = False
            # The decoder was held back while paused; don't count it as a stall
            self._last_progress_at = self._clock()
            self._wake.notify_all()
            return True

    def request_skip(self) -> Optional[Cancellable]:
        """
        Flag a skip and return the session to cancel (if any).
        """
        with self._wake:
            self._skip_requested = True
            self._wake.notify_all()
            return self._session

    def request_stop(self) -> Optional[Cancellable]:
        """
        Reset every field, detach and return the session to cancel, and flag
        the stop.
        """
        with self._wake:
            session = self._session
            self._session = None
            self._reset_locked()
            self._stop_requested = True
            self._wake.notify_all()
            return session

    def request_restart(self) -> Optional[Cancellable]:
        """
        Reset position, baseline, pause and skip, detach and return the
        session to cancel, and flag the restart. Progress from the detached
        session is ignored from here on.
        """
        with self._wake:
            session = self._session
            self._session = None
            self._position = 0.0
            self._baseline = 0.0
            self._paused = False
            self._skip_requested = False
            self._restart_requested = True
            self._wake.notify_all()
            return session

    # -- readers ----------------------------------------------------------

    def active_session(self) -> Optional[Cancellable]:
        with self._lock:
            return self._session

    def is_paused(self) -> bool:
        with self._lock:
            return self._paused

    def seconds_since_progress(self) -> float:
        with self._lock:
            return self._clock() - self._last_progress_at

    def snapshot(self) -> PlaybackSnapshot:
        with self._lock:
            return PlaybackSnapshot(
                position=self._position,
                baseline=self._baseline,
                paused=self._paused,
                skip_requested=self._skip_requested,
                has_session=self._session is not None,
            )

    # -- internals (lock held) -----------------------------------------------

    def _interrupted_locked(self) -> bool:
        return self._skip_requested or self._stop_requested or self._restart_requested

    def _reset_locked(self) -> None:
        self._position = 0.0
        self._baseline = 0.0
        self._paused = False
        self._skip_requested = False
        self._last_progress_at = self._clock()
        self._held_by_pause = False

    def _take_outcome_locked(self) -> SessionOutcome:
        if self._stop_requested:
            self._stop_requested = False
            self._restart_requested = False
            self._skip_requested = False
            return SessionOutcome.STOPPED
        if self._restart_requested:
            self._restart_requested = False
            self._skip_requested = False
            return SessionOutcome.RESTARTED
        if self._skip_requested:
            self._skip_requested = False
            return SessionOutcome.SKIPPED
        if self._paused:
            return SessionOutcome.PAUSED
        return SessionOutcome.FINISHED
