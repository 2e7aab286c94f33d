"""
Track resolution: request reference -> Track.

Resolvers shell out to external tools (yt-dlp for remote pages, ffprobe for
local files). They block for the duration of the lookup and must never be
called while holding a queue or playback lock.
"""

import json
import logging
import subprocess
from pathlib import Path
from typing import List, Protocol

from jukebox.broadcast_core.errors import LookupFailed
from jukebox.broadcast_core.track import DEFAULT_THUMBNAIL, Track, format_duration, parse_duration

logger = logging.getLogger(__name__)


class TrackResolver(Protocol):
    """Anything that turns a request URL (or path) into a Track."""

    def resolve(self, url: str) -> Track:
        """
        Raises:
            LookupFailed: If the reference cannot be resolved
        """
        ...


def _sanitize_thumbnail(thumbnail: str) -> str:
    if not thumbnail.startswith("http"):
        logger.info(f"[LOOKUP] Invalid thumbnail URL: {thumbnail!r}, using default")
        return DEFAULT_THUMBNAIL
    return thumbnail


class YtDlpResolver:
    """
    Resolve web pages to a direct best-audio stream URL via the yt-dlp CLI.
    """

    def __init__(self, ytdlp_path: str = "yt-dlp", timeout: float = 30.0):
        self.ytdlp_path = ytdlp_path
        self.timeout = timeout

    def build_cmd(self, url: str) -> List[str]:
        return [
            self.ytdlp_path,
            "-f", "bestaudio",
            "--no-playlist",
            "--no-warnings",
            "--print", "title",
            "--print", "urls",
            "--print", "thumbnail",
            "--print", "duration_string",
            url,
        ]

    def resolve(self, url: str) -> Track:
        logger.info(f"[LOOKUP] Resolving with yt-dlp: {url}")
        try:
            result = subprocess.run(
                self.build_cmd(url),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise LookupFailed(f"yt-dlp not found: {self.ytdlp_path}") from e
        except subprocess.TimeoutExpired as e:
            raise LookupFailed(f"yt-dlp timed out after {self.timeout:.0f}s: {url}") from e
        except OSError as e:
            raise LookupFailed(f"yt-dlp could not be started: {e}") from e

        if result.returncode != 0:
            stderr = result.stderr.strip()
            logger.error(f"[LOOKUP] yt-dlp failed (rc={result.returncode}): {stderr}")
            raise LookupFailed(f"yt-dlp error: {stderr or f'exit code {result.returncode}'}")

        logger.debug(f"[LOOKUP] yt-dlp stdout: {result.stdout!r}")
        lines = [line.strip() for line in result.stdout.strip().splitlines() if line.strip()]
        if len(lines) < 4:
            raise LookupFailed(f"could not fetch all track information for {url}")

        # title, stream url(s), thumbnail, duration; a format can print more
        # than one url line, so thumbnail and duration are taken from the end
        title = lines[0]
        stream_url = lines[1]
        thumbnail = _sanitize_thumbnail(lines[-2])
        duration_seconds = parse_duration(lines[-1])

        track = Track(
            title=title,
            stream_url=stream_url,
            duration_seconds=duration_seconds,
            thumbnail=thumbnail,
            original_url=url,
        )
        logger.info(f"[LOOKUP] Resolved: {title} ({format_duration(duration_seconds)})")
        return track


class FFprobeResolver:
    """
    Resolve local audio files with ffprobe (title tag or file stem, duration).
    """

    def __init__(self, ffprobe_path: str = "ffprobe", timeout: float = 10.0):
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout

    def build_cmd(self, path: str) -> List[str]:
        return [
            self.ffprobe_path,
            "-v", "error",
            "-show_entries", "format=duration:format_tags=title",
            "-of", "json",
            path,
        ]

    def resolve(self, url: str) -> Track:
        path = Path(url).expanduser()
        if not path.is_file():
            raise LookupFailed(f"file not found: {url}")

        logger.info(f"[LOOKUP] Probing local file: {path}")
        try:
            result = subprocess.run(
                self.build_cmd(str(path)),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise LookupFailed(f"ffprobe not found: {self.ffprobe_path}") from e
        except subprocess.TimeoutExpired as e:
            raise LookupFailed(f"ffprobe timed out: {path}") from e
        except OSError as e:
            raise LookupFailed(f"ffprobe could not be started: {e}") from e

        if result.returncode != 0:
            raise LookupFailed(f"ffprobe error: {result.stderr.strip() or f'exit code {result.returncode}'}")

        try:
            format_info = json.loads(result.stdout or "{}").get("format", {})
        except json.JSONDecodeError as e:
            raise LookupFailed(f"unreadable ffprobe output for {path}: {e}") from e

        title = format_info.get("tags", {}).get("title") or path.stem
        duration_seconds = parse_duration(str(format_info.get("duration", "")))

        return Track(
            title=title,
            stream_url=str(path.resolve()),
            duration_seconds=duration_seconds,
            thumbnail=DEFAULT_THUMBNAIL,
            original_url=url,
        )


class AutoResolver:
    """Local paths go to ffprobe, everything else to yt-dlp."""

    def __init__(self, ytdlp: YtDlpResolver, ffprobe: FFprobeResolver):
        self.ytdlp = ytdlp
        self.ffprobe = ffprobe

    def resolve(self, url: str) -> Track:
        if "://" not in url and Path(url).expanduser().is_file():
            return self.ffprobe.resolve(url)
        return self.ytdlp.resolve(url)


def create_resolver(config) -> AutoResolver:
    """Build the default resolver chain from JukeboxConfig."""
    return AutoResolver(
        YtDlpResolver(config.ytdlp_path, timeout=config.lookup_timeout_sec),
        FFprobeResolver(config.ffprobe_path, timeout=config.lookup_timeout_sec),
    )
