"""
Shared pytest fixtures for jukebox contract tests.

Contract tests use test doubles (fakes, stubs, mocks) to avoid real
dependencies. No ffmpeg, network or environment variables are used.
"""

import pytest

from jukebox.broadcast_core.playback_controller import PlaybackController
from jukebox.broadcast_core.track_queue import TrackQueue
from jukebox.config import JukeboxConfig
from jukebox.state.playback_state import PlaybackState
from jukebox.tests.contracts.test_doubles import (
    FakeResolver,
    FakeSessionFactory,
    RecordingSink,
    StubEncoderFactory,
)


@pytest.fixture
def config():
    """Defaults with a fast status tick."""
    return JukeboxConfig(status_interval_sec=0.05)


@pytest.fixture
def track_queue():
    return TrackQueue()


@pytest.fixture
def playback_state():
    return PlaybackState()


@pytest.fixture
def recording_sink():
    return RecordingSink()


@pytest.fixture
def session_factory():
    return FakeSessionFactory()


@pytest.fixture
def encoder_factory():
    return StubEncoderFactory()


@pytest.fixture
def fake_resolver():
    return FakeResolver()


@pytest.fixture
def make_controller(track_queue, playback_state, recording_sink, session_factory, encoder_factory):
    """
    Build PlaybackControllers over the shared fakes; every controller built
    is shut down after the test.
    """
    controllers = []

    def build(config=None, sink=None, encoders=None):
        controller = PlaybackController(
            config or JukeboxConfig(status_interval_sec=0.05),
            track_queue,
            playback_state,
            sink or recording_sink,
            session_factory=session_factory,
            encoder_factory=encoders or encoder_factory,
        )
        controller.errors = []
        controller.add_error_listener(lambda track, error: controller.errors.append((track, error)))
        controllers.append(controller)
        return controller

    yield build

    for controller in controllers:
        controller.shutdown(timeout=2.0)


@pytest.fixture
def controller(make_controller, config):
    return make_controller(config)
