# MIT License
# blfcap/core/log.py - logger setup shared by the CLI and library code
from __future__ import annotations

import logging
from typing import Optional

LOGGER_NAME = "blfcap"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def setup_logger(name: str = LOGGER_NAME, level: int = logging.INFO,
                 log_file: Optional[str] = None) -> logging.Logger:
    """Raises OSError when log_file cannot be opened; the logger is left untouched then."""
    logger = logging.getLogger(name)

    if not logger.handlers:
        formatter = logging.Formatter(LOG_FORMAT)

        handlers = []
        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)

        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        handlers.insert(0, console_handler)

        for handler in handlers:
            handler.setLevel(level)
            logger.addHandler(handler)
    else:
        for handler in logger.handlers:
            handler.setLevel(level)

    logger.setLevel(level)
    return logger
