"""
Contract tests for PlaybackSession, the user-facing command surface.
"""

import pytest

from jukebox.app.session import PlaybackSession
from jukebox.broadcast_core.errors import LookupFailed, NothingPlaying, SinkUnavailable, SpawnFailed
from jukebox.broadcast_core.playback_controller import PlayerState
from jukebox.config import JukeboxConfig
from jukebox.state.status_publisher import HttpStatusPublisher, LoggingStatusListener
from jukebox.tests.contracts.test_doubles import (
    FakeSessionFactory,
    RecordingSink,
    StubEncoderFactory,
    create_pcm_block,
    make_track,
    wait_for,
)


@pytest.fixture
def resolver(fake_resolver):
    fake_resolver.add("https://video.example/a", make_track("A", "a"))
    fake_resolver.add("https://video.example/b", make_track("B", "b"))
    return fake_resolver


@pytest.fixture
def session_factory():
    factory = FakeSessionFactory()
    factory.script("a", {"endless": True, "fill": 1})
    factory.script("b", {"pcm": create_pcm_block(2, frames=2)})
    return factory


@pytest.fixture
def session(resolver, recording_sink, session_factory):
    session = PlaybackSession(
        JukeboxConfig(status_interval_sec=0.05),
        resolver=resolver,
        sink=recording_sink,
        status_listeners=[],
        session_factory=session_factory,
        encoder_factory=StubEncoderFactory(),
    )
    yield session
    session.shutdown(timeout=2.0)


class TestPlay:

    def test_play_resolves_queues_and_starts(self, session, recording_sink, session_factory):
        track = session.play("https://video.example/a")

        assert track.title == "A"
        assert recording_sink.connect_count == 1, "play() connects the sink before queueing"
        assert session_factory.wait_for_sessions(1)
        assert wait_for(lambda: session.now_playing() is not None)
        assert session.now_playing().track.title == "A"

    def test_second_play_queues_behind_current(self, session, session_factory):
        session.play("https://video.example/a")
        assert session_factory.wait_for_sessions(1)
        session.play("https://video.example/b")

        current, pending = session.list_queue()
        assert current.title == "A"
        assert [t.title for t in pending] == ["B"]

    def test_lookup_failure_queues_nothing(self, session, recording_sink):
        with pytest.raises(LookupFailed):
            session.play("https://video.example/missing")
        assert session.list_queue() == (None, [])
        assert recording_sink.connect_count == 0

    def test_sink_refusal_queues_nothing(self, resolver, session_factory):
        sink = RecordingSink(refuse_connect=True)
        session = PlaybackSession(
            JukeboxConfig(),
            resolver=resolver,
            sink=sink,
            status_listeners=[],
            session_factory=session_factory,
            encoder_factory=StubEncoderFactory(),
        )
        try:
            with pytest.raises(SinkUnavailable):
                session.play("https://video.example/a")
            assert session.list_queue() == (None, [])
        finally:
            session.shutdown(timeout=2.0)

    def test_spawn_failure_is_recorded(self, session, session_factory):
        session_factory.fail_refs.add("a")
        session.play("https://video.example/a")

        assert wait_for(lambda: session.errors)
        track, error = session.errors[0]
        assert track.title == "A"
        assert isinstance(error, SpawnFailed)
        assert session.wait_until_idle(timeout=2.0)


class TestControls:

    def test_pause_and_resume(self, session, session_factory):
        session.play("https://video.example/a")
        assert session_factory.wait_for_sessions(1)

        assert session.pause()
        assert not session.pause()
        now = session.now_playing()
        assert now.paused
        assert now.state is PlayerState.PAUSED
        assert "(paused)" in now.describe()

        assert session.resume()
        assert not session.now_playing().paused

    def test_controls_without_current_track(self, session):
        with pytest.raises(NothingPlaying):
            session.pause()
        with pytest.raises(NothingPlaying):
            session.skip()
        with pytest.raises(NothingPlaying):
            session.restart()
        assert not session.resume()
        assert session.now_playing() is None

    def test_skip_returns_skipped_track(self, session, session_factory, recording_sink):
        session.play("https://video.example/a")
        session.play("https://video.example/b")
        assert session_factory.wait_for_sessions(1)

        skipped = session.skip()

        assert skipped.title == "A"
        assert session.wait_until_idle(timeout=2.0)
        assert session_factory.refs() == ["a", "b"]
        assert recording_sink.markers()[-2:] == [2, 2]

    def test_stop_clears_everything(self, session, session_factory, recording_sink):
        session.play("https://video.example/a")
        session.play("https://video.example/b")
        assert session_factory.wait_for_sessions(1)

        assert session.stop() == 2
        assert session.wait_until_idle(timeout=2.0)
        assert session.list_queue() == (None, [])
        assert not recording_sink.connected

    def test_restart_re_resolves_original_url(self, session, resolver, session_factory):
        session.play("https://video.example/a")
        assert session_factory.wait_for_sessions(1)

        fresh = session.restart()

        assert resolver.calls == ["https://video.example/a", "https://video.example/a"]
        assert fresh.original_url == "https://video.example/a"
        assert session_factory.wait_for_sessions(2)
        assert session_factory.calls[1] == ("a", 0.0)
        assert session.list_queue()[0] is fresh

    def test_failed_re_resolve_leaves_playback_untouched(self, session, resolver, session_factory):
        session.play("https://video.example/a")
        assert session_factory.wait_for_sessions(1)
        resolver.fail_urls.add("https://video.example/a")

        with pytest.raises(LookupFailed):
            session.restart()

        assert len(session_factory.sessions) == 1
        assert not session_factory.sessions[0].cancelled
        assert session.now_playing().track.title == "A"


class TestDefaults:

    def test_default_listeners(self, resolver, recording_sink):
        session = PlaybackSession(
            JukeboxConfig(status_url="http://status.local/np"),
            resolver=resolver,
            sink=recording_sink,
        )
        listeners = session.controller._status_listeners
        assert any(isinstance(listener, LoggingStatusListener) for listener in listeners)
        assert any(isinstance(listener, HttpStatusPublisher) for listener in listeners)
        session.shutdown(timeout=1.0)
