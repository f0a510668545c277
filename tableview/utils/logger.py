import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Optional

from ..config import settings


def setup_logger(name: str, log_file: Optional[str] = None, level: Optional[str] = None):
    """Configure logger with console and file handlers"""

    logger = logging.getLogger(name)
    # Modules call this at import time; configure each logger once
    if logger.handlers:
        return logger

    log_settings = settings.logging
    logger.setLevel(level or log_settings.LOG_LEVEL)

    formatter = logging.Formatter(log_settings.LOG_FORMAT)

    if log_settings.ENABLE_CONSOLE_LOGGING:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file and log_settings.ENABLE_FILE_LOGGING:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=log_settings.MAX_LOG_FILE_SIZE,
            backupCount=log_settings.MAX_LOG_FILE_COUNT,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
