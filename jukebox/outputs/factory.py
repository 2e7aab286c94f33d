from jukebox.config import JukeboxConfig
from jukebox.outputs.base_sink import BaseSink
from jukebox.outputs.null_sink import NullSink
from jukebox.outputs.socket_sink import SocketFrameSink


def create_output_sink(config: JukeboxConfig) -> BaseSink:
    """
    Create an output sink based on configuration.

    sink_mode:
        "null"        discard frames as fast as they are produced
        "paced-null"  discard frames at real-time pace
        "socket"      stream frames to the voice gateway at sink_socket_path

    Returns:
        BaseSink instance configured according to config
    """
    if config.sink_mode == "socket":
        return SocketFrameSink(config.sink_socket_path, frame_duration=config.frame_duration)

    if config.sink_mode == "paced-null":
        return NullSink(paced=True, frame_duration=config.frame_duration)

    # Default: discard audio, playback logic still runs
    return NullSink()
