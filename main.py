#!/usr/bin/env python3
"""
Main entry point for the jukebox.

Resolves the given URLs, queues them, and plays them through the configured
output sink until the queue is drained.

The application can run in two modes:
- Headless mode (default): timestamped logs, exits once the queue is empty
- Interactive mode: colored console output and line commands on stdin

Example:
    ```bash
    # Play two tracks back to back, then exit
    python3 main.py https://example.com/watch?v=a https://example.com/watch?v=b

    # Interactive mode
    python3 main.py -i https://example.com/watch?v=a
    ```
"""

import argparse
import logging
import signal
import sys
import threading

from jukebox.app.logging_setup import Colors, setup_logging
from jukebox.app.session import PlaybackSession
from jukebox.broadcast_core.errors import JukeboxError, LookupFailed, NothingPlaying, SinkUnavailable
from jukebox.config import load_config

logger = logging.getLogger("jukebox")

HELP_TEXT = (
    "Commands: play <url> | pause | resume | next | restart | stop | queue | np | help | quit"
)


def print_queue(session: PlaybackSession) -> None:
    current, pending = session.list_queue()
    if current is None and not pending:
        print("Queue is empty.", flush=True)
        return
    if current is not None:
        print(f"{Colors.GREEN}▶{Colors.RESET} {current.describe()}", flush=True)
    for index, track in enumerate(pending, start=1):
        print(f"  {index}. {track.describe()}", flush=True)


def handle_command(session: PlaybackSession, line: str) -> bool:
    """
    Run one console command.

    Returns:
        False if the user asked to quit
    """
    parts = line.strip().split(maxsplit=1)
    if not parts:
        return True
    command = parts[0].lower()
    argument = parts[1] if len(parts) > 1 else ""

    try:
        if command in ("quit", "exit", "q"):
            return False
        elif command == "play":
            if not argument:
                print("Usage: play <url>", flush=True)
            else:
                session.play(argument)
        elif command == "pause":
            if not session.pause():
                print("Already paused.", flush=True)
        elif command == "resume":
            if not session.resume():
                print("Not paused.", flush=True)
        elif command in ("next", "skip"):
            session.skip()
        elif command == "restart":
            track = session.restart()
            print(f"Restarting {track.title}", flush=True)
        elif command == "stop":
            session.stop()
        elif command == "queue":
            print_queue(session)
        elif command == "np":
            now = session.now_playing()
            print(now.describe() if now else "Nothing is playing.", flush=True)
        elif command == "help":
            print(HELP_TEXT, flush=True)
        else:
            print(f"Unknown command: {command}. {HELP_TEXT}", flush=True)
    except NothingPlaying:
        print("Nothing is playing.", flush=True)
    except LookupFailed as e:
        print(f"{Colors.RED}✗ Lookup failed: {e}{Colors.RESET}", flush=True)
    except SinkUnavailable as e:
        print(f"{Colors.RED}✗ Output unavailable: {e}{Colors.RESET}", flush=True)
    return True


def read_commands(session: PlaybackSession, exit_requested: threading.Event) -> None:
    """Read line commands from stdin until EOF or quit (runs in a daemon thread)."""
    for line in sys.stdin:
        if not handle_command(session, line):
            break
        if exit_requested.is_set():
            return
    exit_requested.set()


def main() -> int:
    parser = argparse.ArgumentParser(description='Jukebox - queue and play audio streams')
    parser.add_argument('urls', nargs='*', metavar='URL', help='Track URLs or local file paths to queue')
    parser.add_argument(
        '--interactive', '-i',
        action='store_true',
        help='Read commands from stdin (pause, resume, next, restart, stop, queue, np, quit)'
    )
    parser.add_argument('--log-file', help='Rotating log file (overrides JUKEBOX_LOG_FILE)')
    parser.add_argument('--log-level', help='Log level (overrides JUKEBOX_LOG_LEVEL)')
    args = parser.parse_args()

    if not args.urls and not args.interactive:
        parser.error("at least one URL is required unless --interactive is given")

    try:
        config = load_config()
        if args.log_level:
            config.log_level = args.log_level
            config.validate()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    setup_logging(
        level=config.log_level,
        log_file=args.log_file or config.log_file,
        interactive=args.interactive,
    )

    logger.info("=" * 60)
    logger.info("Jukebox - Starting up")
    logger.info(f"Sink: {config.sink_mode}, Opus bitrate: {config.opus_bitrate}")
    logger.info("=" * 60)

    try:
        session = PlaybackSession(config)
    except JukeboxError as e:
        logger.error(f"Failed to initialize jukebox: {e}", exc_info=True)
        return 1

    exit_requested = threading.Event()

    def request_exit(signum, frame):
        logger.info(f"Received signal {signal.Signals(signum).name}, shutting down")
        exit_requested.set()

    signal.signal(signal.SIGTERM, request_exit)
    signal.signal(signal.SIGINT, request_exit)

    queued = 0
    for url in args.urls:
        try:
            session.play(url)
            queued += 1
        except LookupFailed as e:
            logger.error(f"Could not queue {url}: {e}")
        except SinkUnavailable as e:
            logger.error(f"Output sink unavailable: {e}")
            return 1

    if args.interactive:
        print(HELP_TEXT, flush=True)
        threading.Thread(target=read_commands, args=(session, exit_requested), daemon=True).start()
    elif queued == 0:
        logger.error("Nothing could be queued")
        return 1

    try:
        while not exit_requested.is_set():
            if args.interactive:
                exit_requested.wait(timeout=0.5)
            elif session.wait_until_idle(timeout=0.5):
                logger.info("Queue finished")
                break
    finally:
        session.shutdown()
        logger.info("Jukebox stopped")

    return 0


if __name__ == "__main__":
    sys.exit(main())
