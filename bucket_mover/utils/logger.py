"""
Logging Configuration and Utilities

Everything the package logs goes through the ``bucket_mover`` logger:
coloured or JSON console output, plus an optional rotating file. The SDKs
underneath (boto3, google-auth, urllib3) log every request and credential
refresh at DEBUG/INFO, so their loggers get a separate, quieter level.

Author: Bucket Mover Project
License: MIT
"""

import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Iterable
from pythonjsonlogger import jsonlogger

ROOT_LOGGER_NAME = "bucket_mover"

THIRD_PARTY_LOGGERS = (
    "boto3",
    "botocore",
    "s3transfer",
    "urllib3",
    "google.auth",
    "google.api_core",
    "google.cloud.storage",
    "google.resumable_media",
    "apscheduler",
)

CONSOLE_FORMAT = "[%(asctime)s] %(levelname)s - %(name)s - %(message)s"
FILE_FORMAT = "[%(asctime)s] %(levelname)s - %(name)s - %(module)s:%(funcName)s:%(lineno)d - %(message)s"
JSON_CONSOLE_FIELDS = "%(asctime)s %(name)s %(levelname)s %(message)s"
JSON_FILE_FIELDS = "%(asctime)s %(name)s %(levelname)s %(module)s %(funcName)s %(lineno)d %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ColoredFormatter(logging.Formatter):
    """Colours the level name for terminal output."""

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        levelname = record.levelname
        color = self.COLORS.get(levelname)
        if color is None:
            return super().format(record)
        record.levelname = f"{color}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            # Other handlers see the same record
            record.levelname = levelname


def _level(name) -> int:
    level = logging.getLevelName(str(name).upper())
    if not isinstance(level, int):
        raise ValueError(f"unknown log level: {name}")
    return level


def _console_formatter(json_format: bool) -> logging.Formatter:
    if json_format:
        return jsonlogger.JsonFormatter(JSON_CONSOLE_FIELDS)
    if sys.stdout.isatty():
        return ColoredFormatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT)
    return logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT)


def _file_formatter(json_format: bool) -> logging.Formatter:
    if json_format:
        return jsonlogger.JsonFormatter(JSON_FILE_FIELDS)
    return logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT)


def quiet_libraries(level="WARNING", names: Iterable[str] = THIRD_PARTY_LOGGERS) -> None:
    """
    Set the level of SDK and HTTP client loggers.

    Args:
        level: Level name applied to every logger in ``names``
        names: Logger names to adjust
    """
    numeric = _level(level)
    for name in names:
        logging.getLogger(name).setLevel(numeric)


def setup_logging(
    log_level: str = "INFO",
    log_to_file: bool = False,
    log_file_path: str = "logs/bucket_mover.log",
    log_rotation_size: int = 10485760,  # 10MB
    log_retention_count: int = 5,
    json_format: bool = False,
    library_log_level: str = "WARNING"
) -> logging.Logger:
    """
    Configure the package logger.

    Safe to call more than once: the entry point calls it with defaults
    before the configuration is loaded and again afterwards.

    Args:
        log_level: Level for the package's own loggers
        log_to_file: Also write to a rotating file
        log_file_path: Path to log file
        log_rotation_size: Max log file size before rotation (bytes)
        log_retention_count: Number of backup log files to keep
        json_format: Use JSON records on every handler
        library_log_level: Level for boto3, google and urllib3 loggers

    Returns:
        The ``bucket_mover`` logger
    """
    level = _level(log_level)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(_console_formatter(json_format))
    logger.addHandler(console_handler)

    if log_to_file:
        Path(log_file_path).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file_path,
            maxBytes=log_rotation_size,
            backupCount=log_retention_count,
            encoding='utf-8'
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(_file_formatter(json_format))
        logger.addHandler(file_handler)

    logger.propagate = False
    quiet_libraries(library_log_level)

    logger.info(f"Logging initialized at {logging.getLevelName(level)} level")
    if log_to_file:
        logger.info(f"File logging enabled: {log_file_path}")

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger nested under the package logger.

    Module names inside the package are already prefixed and are used as is.
    """
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
