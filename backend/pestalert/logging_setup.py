# backend/pestalert/logging_setup.py
"""
One "pestalert" logger tree for the whole engine; modules take children of it
(logger.getChild("dispatcher")). Output goes to stderr and, unless
PESTALERT_LOG_DIR is set to an empty string, to a size-rotated file.

    PESTALERT_LOG_DIR    directory for pestalert.log (default "logs")
    PESTALERT_LOG_LEVEL  DEBUG / INFO / WARNING / ... (default INFO)
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

LOGGER_NAME = "pestalert"
LOG_FORMAT = "%(asctime)s - [%(levelname)s] - %(name)s - %(message)s"
LOG_FILE = "pestalert.log"
MAX_LOG_BYTES = 5_000_000
LOG_BACKUPS = 3


def _file_handler(log_dir: str) -> RotatingFileHandler:
    os.makedirs(log_dir, exist_ok=True)
    return RotatingFileHandler(
        os.path.join(log_dir, LOG_FILE),
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUPS,
        encoding="utf-8",
    )


def setup_logger(name: str = LOGGER_NAME, log_dir: Optional[str] = None,
                 level: Optional[str] = None) -> logging.Logger:
    """
    Configure `name` once. A second call only adjusts the level, so importing
    modules in any order never stacks duplicate handlers.
    """
    logger = logging.getLogger(name)
    logger.setLevel((level or os.getenv("PESTALERT_LOG_LEVEL", "INFO")).upper())
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT)
    handlers = [logging.StreamHandler()]
    log_dir = os.getenv("PESTALERT_LOG_DIR", "logs") if log_dir is None else log_dir
    if log_dir:
        handlers.append(_file_handler(log_dir))
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.propagate = False
    return logger


logger = setup_logger()
