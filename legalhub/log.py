"""Logger factory for the workflow engine.

Messages are written as ``key=value`` pairs after a short verb
("Committed action=APPROVED role=BUM no=LHD_..."), so the line prefix uses
the same shape and a whole line can be grepped or parsed field by field.
"""

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s level=%(levelname)s logger=%(name)s %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


def _level(name: Optional[str]) -> int:
    level = logging.getLevelName((name or "INFO").upper())
    # getLevelName returns "Level X" for names it does not know
    return level if isinstance(level, int) else logging.INFO


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Get a logger writing ``key=value`` lines to stdout.

    Args:
        name: Logger name, usually the calling module's ``__name__``
        level: Level name (DEBUG, INFO, WARNING, ERROR); unknown names mean INFO

    Returns:
        logging.Logger: The configured logger; repeated calls reuse its handler
    """
    logger = logging.getLogger(name)
    log_level = _level(level)
    logger.setLevel(log_level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(log_level)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(handler)

    return logger


__all__ = ["LOG_FORMAT", "get_logger"]
