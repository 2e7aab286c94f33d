"""
PlaybackSession: the jukebox's control surface.

Wires config, queue, playback state, controller, resolver and sink together
and exposes the user-facing commands. Lookups run on the caller's thread
before any queue or playback lock is touched.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple

from jukebox.broadcast_core.errors import NothingPlaying, SpawnFailed
from jukebox.broadcast_core.playback_controller import PlaybackController, PlayerState
from jukebox.broadcast_core.track import Track, format_duration
from jukebox.broadcast_core.track_queue import TrackQueue
from jukebox.config import JukeboxConfig
from jukebox.music_logic.resolver import TrackResolver, create_resolver
from jukebox.outputs import BaseSink, create_output_sink
from jukebox.state.playback_state import PlaybackState
from jukebox.state.status_publisher import HttpStatusPublisher, LoggingStatusListener

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NowPlaying:
    """Snapshot of the current track and how far into it playback is."""
    track: Track
    elapsed: float
    paused: bool
    state: PlayerState

    def describe(self) -> str:
        marker = "paused" if self.paused else "playing"
        return (
            f"{self.track.title} [{format_duration(int(self.elapsed))}] / "
            f"[{self.track.duration}] ({marker})"
        )


class PlaybackSession:
    """
    One jukebox instance: a queue, a playback loop and an output sink.
    """

    def __init__(
        self,
        config: JukeboxConfig,
        resolver: Optional[TrackResolver] = None,
        sink: Optional[BaseSink] = None,
        status_listeners: Optional[Iterable[Callable]] = None,
        session_factory: Optional[Callable] = None,
        encoder_factory: Optional[Callable] = None,
    ):
        """
        Initialize the session (nothing plays until play()).

        Args:
            config: Jukebox configuration
            resolver: Track resolver; defaults to yt-dlp/ffprobe from config
            sink: Output sink; defaults to create_output_sink(config)
            status_listeners: Status callables; defaults to the log line plus
                an HTTP publisher when status_url is set
            session_factory: Decode session factory passed to the controller
            encoder_factory: Frame encoder factory passed to the controller
        """
        self.config = config
        self.queue = TrackQueue()
        self.state = PlaybackState()
        self.resolver = resolver or create_resolver(config)
        self.sink = sink or create_output_sink(config)
        self.controller = PlaybackController(
            config,
            self.queue,
            self.state,
            self.sink,
            session_factory=session_factory,
            encoder_factory=encoder_factory,
        )

        if status_listeners is None:
            status_listeners = [LoggingStatusListener()]
            if config.status_url:
                status_listeners.append(HttpStatusPublisher(config.status_url))
        for listener in status_listeners:
            self.controller.add_status_listener(listener)

        self.errors: List[Tuple[Optional[Track], Exception]] = []
        self.controller.add_error_listener(self._on_playback_error)

    def _on_playback_error(self, track: Optional[Track], error: Exception) -> None:
        self.errors.append((track, error))
        if isinstance(error, SpawnFailed) and track is not None:
            logger.error(f"Dropped {track.title}: decoder could not start ({error})")
        else:
            logger.error(f"Playback stopped: {error}")

    def play(self, url: str) -> Track:
        """
        Resolve `url`, queue it, and make sure the playback loop is running.

        Returns:
            The queued Track

        Raises:
            LookupFailed: If the URL cannot be resolved (nothing is queued)
            SinkUnavailable: If the output sink cannot be connected
        """
        track = self.resolver.resolve(url)

        if not self.sink.connected:
            self.sink.connect()

        pending = self.queue.enqueue(track)
        started = self.controller.ensure_playing()
        if started:
            logger.info(f"Queued {track.describe()}, starting playback")
        else:
            logger.info(f"Queued {track.describe()} (position {pending} in queue)")
        return track

    def pause(self) -> bool:
        """
        Raises:
            NothingPlaying: If there is no current track
        """
        if self.queue.current() is None:
            raise NothingPlaying("nothing is playing")
        return self.controller.pause()

    def resume(self) -> bool:
        return self.controller.resume()

    def skip(self) -> Track:
        """
        Skip the current track.

        Returns:
            The skipped track

        Raises:
            NothingPlaying: If there is no current track
        """
        current = self.queue.current()
        if current is None or not self.controller.skip():
            raise NothingPlaying("nothing is playing")
        return current

    def stop(self) -> int:
        """Clear everything and disconnect. Returns the number of tracks dropped."""
        return self.controller.stop()

    def restart(self) -> Track:
        """
        Re-resolve the current track and play it from the beginning.

        Stream URLs expire, so the track is looked up again from the URL it
        was originally requested with. On lookup failure playback carries on
        untouched.

        Returns:
            The freshly resolved track

        Raises:
            NothingPlaying: If there is no current track
            LookupFailed: If the re-lookup fails
        """
        current = self.queue.current()
        if current is None:
            raise NothingPlaying("nothing is playing")

        fresh = self.resolver.resolve(current.original_url or current.stream_url)
        self.controller.restart(fresh)
        return fresh

    def now_playing(self) -> Optional[NowPlaying]:
        current = self.queue.current()
        if current is None:
            return None
        snapshot = self.state.snapshot()
        return NowPlaying(
            track=current,
            elapsed=snapshot.elapsed,
            paused=snapshot.paused,
            state=self.controller.state(),
        )

    def list_queue(self) -> Tuple[Optional[Track], List[Track]]:
        """(current, pending in play order)"""
        return self.queue.snapshot()

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        return self.controller.wait_until_idle(timeout)

    def shutdown(self, timeout: float = 5.0) -> None:
        self.controller.shutdown(timeout=timeout)
