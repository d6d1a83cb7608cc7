"""Logging setup shared by every pipeline component."""

import logging
import os
from pathlib import Path


def setup_logger(
    name: str = "signalcheck",
    log_file: str = "output/signalcheck.log",
    level: str = "",
) -> logging.Logger:
    """
    Configure and return the pipeline logger (file + console).

    Args:
        name (str): Logger name.
        log_file (str): Path of the log file; its directory is created on demand.
        level (str): Level name. Falls back to ``$LOG_LEVEL`` and then ``INFO``.

    Returns:
        logging.Logger: The configured logger instance.
    """
    logger = logging.getLogger(name)

    # Scheduler threads and repeated imports must not stack handlers
    if logger.hasHandlers():
        return logger

    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(threadName)s | %(module)s.%(funcName)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    log_path = Path(os.getenv("SIGNALCHECK_LOG_FILE", log_file))
    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


logger = setup_logger()
