"""
logging_cfg.py
--------------
Central logging setup for the monitor.

Console handler (INFO+) is always attached; a rotating file handler
(DEBUG+) is added once a data directory is known, see enable_file_logging().
"""

import logging
import logging.handlers
from pathlib import Path

LOGGER_NAME = "dht_monitor"
LOG_FILE_NAME = "monitor.log"


def _build_logger():
    """Create and configure the package logger only once."""
    logger = logging.getLogger(LOGGER_NAME)
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter(
        "[%(levelname)s] %(asctime)s - %(name)s - %(message)s",
        datefmt="%H:%M:%S"
    ))
    logger.addHandler(console_handler)

    logger.propagate = False
    return logger


def enable_file_logging(data_dir):
    """Attach a rotating file handler under data_dir (idempotent)."""
    logger = _build_logger()
    log_file = Path(data_dir) / LOG_FILE_NAME
    for h in logger.handlers:
        if isinstance(h, logging.handlers.RotatingFileHandler) and Path(h.baseFilename) == log_file.resolve():
            return h

    log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=3 * 1024 * 1024,    # 3 MB
        backupCount=5,
        encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(funcName)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))
    logger.addHandler(file_handler)
    return file_handler


def get_logger(module_name: str):
    """
    Return a logger bound to a module.

    Usage:
        from .logging_cfg import get_logger
        log = get_logger(__name__)
    """
    logger = _build_logger()
    if module_name.startswith(LOGGER_NAME + "."):
        module_name = module_name[len(LOGGER_NAME) + 1:]
    return logger.getChild(module_name)
