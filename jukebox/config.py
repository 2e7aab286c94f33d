"""
Configuration management for the jukebox playback engine.

Reads configuration from a .env file and environment variables with sensible defaults.
"""

import logging
import os
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv


# Default .env file location
DEFAULT_ENV_FILE = Path("/etc/jukebox/jukebox.env")

VALID_SINK_MODES = ("null", "paced-null", "socket")

logger = logging.getLogger(__name__)


def _load_env_file():
    """Load environment variables from .env file if it exists."""
    env_file = os.getenv("JUKEBOX_ENV_FILE", str(DEFAULT_ENV_FILE))
    env_path = Path(env_file)

    if env_path.exists():
        load_dotenv(env_path, override=False)  # Don't override existing env vars


def _get_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Invalid {name}: {raw} (must be an integer)")


def _get_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"Invalid {name}: {raw} (must be a number)")


def _get_optional(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return value.strip()


@dataclass
class JukeboxConfig:
    """Jukebox configuration loaded from .env file and environment variables."""

    # External tools
    ffmpeg_path: str = "ffmpeg"
    ffmpeg_input_options: str = ""  # extra ffmpeg input flags, e.g. "-reconnect 1"
    ytdlp_path: str = "yt-dlp"
    ffprobe_path: str = "ffprobe"
    lookup_timeout_sec: float = 30.0

    # Encoding
    opus_bitrate: int = 96000

    # Output sink
    sink_mode: str = "null"
    sink_socket_path: str = "/run/jukebox/voice.sock"

    # Status refresh
    status_interval_sec: float = 1.0
    status_url: Optional[str] = None

    # Watchdog (0 disables)
    decode_stall_timeout_sec: float = 0.0

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # Audio format constants (canonical format - not configurable)
    sample_rate: int = 48000
    channels: int = 2
    frame_size: int = 960  # samples per frame (20 ms at 48 kHz)
    bytes_per_sample: int = 2  # s16le = 2 bytes per sample

    @property
    def frame_bytes(self) -> int:
        """Calculate frame size in bytes."""
        return self.frame_size * self.channels * self.bytes_per_sample  # 3840 bytes

    @property
    def frame_duration(self) -> float:
        """Wall-clock duration of one frame in seconds."""
        return self.frame_size / self.sample_rate  # 0.020

    def input_options(self) -> List[str]:
        """ffmpeg_input_options split into argv tokens."""
        return shlex.split(self.ffmpeg_input_options) if self.ffmpeg_input_options else []

    @classmethod
    def load_config(cls) -> "JukeboxConfig":
        """
        Load configuration from environment variables.

        Returns:
            JukeboxConfig instance with loaded values

        Raises:
            ValueError: If configuration is invalid
        """
        # Load .env file first (if it exists)
        _load_env_file()

        config = cls(
            ffmpeg_path=os.getenv("JUKEBOX_FFMPEG_PATH", "ffmpeg"),
            ffmpeg_input_options=os.getenv("JUKEBOX_FFMPEG_INPUT_OPTIONS", ""),
            ytdlp_path=os.getenv("JUKEBOX_YTDLP_PATH", "yt-dlp"),
            ffprobe_path=os.getenv("JUKEBOX_FFPROBE_PATH", "ffprobe"),
            lookup_timeout_sec=_get_float("JUKEBOX_LOOKUP_TIMEOUT_SEC", "30"),
            opus_bitrate=_get_int("JUKEBOX_OPUS_BITRATE", "96000"),
            sink_mode=os.getenv("JUKEBOX_SINK_MODE", "null").lower(),
            sink_socket_path=os.getenv("JUKEBOX_SINK_SOCKET_PATH", "/run/jukebox/voice.sock"),
            status_interval_sec=_get_float("JUKEBOX_STATUS_INTERVAL_SEC", "1.0"),
            status_url=_get_optional("JUKEBOX_STATUS_URL"),
            decode_stall_timeout_sec=_get_float("JUKEBOX_DECODE_STALL_TIMEOUT_SEC", "0"),
            log_level=os.getenv("JUKEBOX_LOG_LEVEL", "INFO"),
            log_file=_get_optional("JUKEBOX_LOG_FILE"),
        )

        # Validate configuration
        config.validate()

        return config

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ValueError: If configuration is invalid
        """
        if not self.ffmpeg_path:
            raise ValueError("JUKEBOX_FFMPEG_PATH cannot be empty")

        try:
            self.input_options()
        except ValueError as e:
            raise ValueError(f"Invalid JUKEBOX_FFMPEG_INPUT_OPTIONS: {e}")

        if self.lookup_timeout_sec <= 0:
            raise ValueError(f"Invalid lookup timeout: {self.lookup_timeout_sec} (must be > 0)")

        # libopus accepts 6 kb/s .. 510 kb/s
        if self.opus_bitrate < 6000 or self.opus_bitrate > 510000:
            raise ValueError(f"Invalid Opus bitrate: {self.opus_bitrate} (must be 6000-510000)")

        if self.sink_mode not in VALID_SINK_MODES:
            raise ValueError(
                f"Invalid JUKEBOX_SINK_MODE: {self.sink_mode} "
                f"(must be one of: {', '.join(VALID_SINK_MODES)})"
            )

        if self.sink_mode == "socket" and not self.sink_socket_path:
            raise ValueError("JUKEBOX_SINK_SOCKET_PATH is required when JUKEBOX_SINK_MODE is 'socket'")

        if self.status_interval_sec <= 0:
            raise ValueError(f"Invalid status interval: {self.status_interval_sec} (must be > 0)")

        if self.status_url is not None and not self.status_url.startswith(("http://", "https://")):
            raise ValueError(f"Invalid JUKEBOX_STATUS_URL: {self.status_url} (must be http(s))")

        if self.decode_stall_timeout_sec < 0:
            raise ValueError(
                f"Invalid decode stall timeout: {self.decode_stall_timeout_sec} (must be >= 0)"
            )

        # Validate log level
        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level.upper() not in valid_log_levels:
            raise ValueError(
                f"Invalid log level: {self.log_level} "
                f"(must be one of: {', '.join(valid_log_levels)})"
            )


def load_config() -> JukeboxConfig:
    """
    Load and validate jukebox configuration from environment variables.

    Returns:
        JukeboxConfig instance with loaded and validated values

    Raises:
        ValueError: If configuration is invalid
    """
    try:
        return JukeboxConfig.load_config()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        raise
