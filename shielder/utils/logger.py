"""
Logging for the shielder client.

All loggers live under the "shielder" namespace, one per subsystem
(shielder.sync, shielder.actions, shielder.tee, ...). Handlers are attached
to the namespace logger only, so embedding applications keep control of
the root logger.

Modules call get_logger at import time, which installs a default console
handler. Entry points call setup_logging afterwards to pick the level and
an optional log file; every call replaces the previous handlers.

Never log seeds, nullifiers or witnesses.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, TextIO, Union

import colorlog

NAMESPACE = "shielder"

CONSOLE_FORMAT = "%(log_color)s%(asctime)s [%(name)s] %(levelname)-8s%(reset)s %(message)s"
FILE_FORMAT = "%(asctime)s [%(name)s] %(levelname)-8s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


def _namespace_logger() -> logging.Logger:
    return logging.getLogger(NAMESPACE)


def parse_level(level: Union[int, str]) -> int:
    """Accept logging levels as ints or names ("debug", "INFO", ...)."""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    (Re)configure the shielder logger tree.

    Args:
        level: Threshold for console and file output
        log_file: Also append plain-text records to this file
        stream: Console stream, stderr by default

    Returns:
        The namespace logger
    """
    level = parse_level(level)
    logger = _namespace_logger()
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(level)

    console = colorlog.StreamHandler(stream or sys.stderr)
    console.setFormatter(
        colorlog.ColoredFormatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT, log_colors=LOG_COLORS)
    )
    logger.addHandler(console)

    if log_file is not None:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Subsystem logger, e.g. get_logger("sync") -> "shielder.sync"."""
    if not _namespace_logger().handlers:
        setup_logging()
    return logging.getLogger(f"{NAMESPACE}.{name}")
