"""
Error taxonomy for the playback pipeline.

LookupFailed and SpawnFailed abort a single track and are surfaced to the
requester. StreamReadFailed and EncodeFailed end the current decode session
and are only logged. SinkUnavailable aborts the whole playback loop.
"""


class JukeboxError(Exception):
    """Base class for all playback pipeline errors."""


class LookupFailed(JukeboxError):
    """Metadata resolution for a request URL failed."""


class SpawnFailed(JukeboxError):
    """The external decode process could not be launched."""


class StreamReadFailed(JukeboxError):
    """I/O error while reading decoder output (not end-of-stream)."""


class EncodeFailed(JukeboxError):
    """The frame encoder rejected a PCM block."""


class SinkUnavailable(JukeboxError):
    """The output sink is missing or its connection is gone."""


class NothingPlaying(JukeboxError):
    """A control operation needs a current track but none is active."""
