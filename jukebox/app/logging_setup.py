"""
Logging setup for the jukebox.

Console output is colored in interactive mode and timestamped otherwise;
an optional log file rotates at 10MB keeping 5 backups.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class Colors:
    """ANSI color codes for interactive console output."""
    RESET = '\033[0m'
    BOLD = '\033[1m'
    DIM = '\033[2m'
    RED = '\033[31m'
    GREEN = '\033[32m'
    YELLOW = '\033[33m'
    CYAN = '\033[36m'
    WHITE = '\033[37m'


class ColoredFormatter(logging.Formatter):
    """
    Message-only console formatter with per-level colors.

    "Now playing:" lines are highlighted so the current track stands out
    between control feedback.
    """

    COLORS = {
        'DEBUG': Colors.DIM + Colors.WHITE,
        'INFO': Colors.CYAN,
        'WARNING': Colors.YELLOW,
        'ERROR': Colors.RED,
        'CRITICAL': Colors.BOLD + Colors.RED,
    }

    def __init__(self, fmt: str = '%(message)s'):
        super().__init__(fmt=fmt)

    def format(self, record):
        msg = record.getMessage()
        levelname = record.levelname

        if levelname == 'INFO' and 'Now playing:' in msg:
            title = msg.split('Now playing:', 1)[1].strip()
            return f"{Colors.GREEN}▶ {Colors.RESET}{Colors.BOLD}{title}{Colors.RESET}"
        if levelname == 'WARNING':
            return f"{Colors.YELLOW}⚠ {msg}{Colors.RESET}"
        if levelname in ('ERROR', 'CRITICAL'):
            return f"{self.COLORS[levelname]}✗ {msg}{Colors.RESET}"
        if levelname == 'DEBUG':
            return f"{self.COLORS['DEBUG']}{msg}{Colors.RESET}"
        return msg


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    interactive: bool = False,
) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level name
        log_file: Optional path to a rotating log file (standard format)
        interactive: Colored message-only console output instead of timestamps
    """
    handlers = []

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(file_handler)

    console_handler = logging.StreamHandler(sys.stderr if interactive else sys.stdout)
    if interactive:
        console_handler.setFormatter(ColoredFormatter())
    else:
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handlers.append(console_handler)

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=handlers,
        force=True,
    )

    # One request per status tick otherwise
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
