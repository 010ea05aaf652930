"""Console + rotating file logging for the CLI and the long-running scheduler."""

import logging
import sys
from logging.handlers import RotatingFileHandler

from .config import LOGS_DIR

COMBINED_LOG = "autotube.log"
ERROR_LOG = "error.log"
MAX_BYTES = 5 * 1024 * 1024

_logger = None


def _file_handler(name: str, level: int, backups: int) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        LOGS_DIR / name, maxBytes=MAX_BYTES, backupCount=backups, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)-8s [%(threadName)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    return handler


def get_logger() -> logging.Logger:
    """The shared "autotube" logger, configured on first use."""
    global _logger
    if _logger is not None:
        return _logger

    _logger = logging.getLogger("autotube")
    _logger.setLevel(logging.DEBUG)
    if _logger.handlers:
        return _logger

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.INFO)
    console.setFormatter(logging.Formatter("  %(message)s"))
    _logger.addHandler(console)

    # Scheduler threads log here too; the thread name tells runs apart
    try:
        LOGS_DIR.mkdir(parents=True, exist_ok=True)
        _logger.addHandler(_file_handler(COMBINED_LOG, logging.DEBUG, backups=5))
        _logger.addHandler(_file_handler(ERROR_LOG, logging.ERROR, backups=3))
    except OSError as e:
        _logger.warning("File logging disabled: %s", e)

    return _logger


def set_verbose(verbose: bool = True):
    """Switch console handler to DEBUG level."""
    logger = get_logger()
    for handler in logger.handlers:
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
            handler.setLevel(logging.DEBUG if verbose else logging.INFO)


def log(msg: str):
    """INFO-level shortcut."""
    get_logger().info(msg)
