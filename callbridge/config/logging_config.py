"""
Logging setup for the call bridge.

Every module logs through the "call_bridge" logger. configure_logging attaches
a stdout handler and, unless disabled, a size-rotated file handler, and keeps
the chattier client libraries (websockets frame dumps, openai and httpx request
lines) at WARNING so per-frame audio traffic does not flood the call logs.

Environment:
    LOG_LEVEL   level name for the bridge logger (default INFO)
    LOG_FILE    path of the rotated log file; empty disables file logging
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from callbridge.config.constants import LOGGER_NAME

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_LOG_FILE = Path("logs") / "call_bridge.log"
MAX_LOG_BYTES = 10 * 1024 * 1024
BACKUP_COUNT = 5

# Libraries that log every frame or request at DEBUG/INFO
NOISY_LOGGERS = ("websockets", "openai", "httpx", "httpcore")


def _resolve_level(level: Optional[str]) -> int:
    name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def _file_handler(path: Path, formatter: logging.Formatter) -> Optional[logging.Handler]:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(path, maxBytes=MAX_LOG_BYTES, backupCount=BACKUP_COUNT)
    except OSError as e:
        sys.stderr.write(f"call_bridge: file logging disabled ({e})\n")
        return None
    handler.setFormatter(formatter)
    return handler


def configure_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure and return the bridge logger.

    Safe to call more than once; earlier handlers are replaced.

    Args:
        level: Level name; defaults to LOG_LEVEL, unknown names mean INFO
        log_file: Rotated log file path; defaults to LOG_FILE or
            logs/call_bridge.log, an empty string turns file logging off
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(_resolve_level(level))
    logger.propagate = False

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file is None:
        log_file = os.getenv("LOG_FILE", str(DEFAULT_LOG_FILE))
    if log_file:
        file_handler = _file_handler(Path(log_file), formatter)
        if file_handler:
            logger.addHandler(file_handler)

    library_level = logging.DEBUG if logger.level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    logger.debug(f"Logging configured at {logging.getLevelName(logger.level)}")
    return logger
