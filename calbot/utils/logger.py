"""
Process-wide logging for the bot.

Both entry points (webhook app and polling runner) call `setup_logging()`
once; records go to stderr and to a size-rotated file.
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from calbot.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 5

# Libraries that log every update or request at INFO
QUIET_LOGGERS = ("aiogram.event", "googleapiclient.discovery_cache", "urllib3")


def _level_of(name: str) -> int:
    level = logging.getLevelName(name.upper())
    if not isinstance(level, int):
        raise ValueError(f"Invalid LOG_LEVEL: {name}")
    return level


def _file_handler(path: Path) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(
        filename=path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
    )


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """
    Attach console and rotating-file handlers to the root logger.

    `level` and `log_file` default to LOG_LEVEL and LOG_FILE_PATH. A root
    logger that already has handlers only gets its level updated.
    """
    numeric = _level_of(level or settings.LOG_LEVEL)

    root = logging.getLogger()
    root.setLevel(numeric)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, numeric))

    if root.handlers:
        return

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in (logging.StreamHandler(), _file_handler(Path(log_file or settings.LOG_FILE_PATH))):
        handler.setLevel(numeric)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    root.info("Logging initialized (level=%s)", logging.getLevelName(numeric))
