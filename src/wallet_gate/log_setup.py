"""Loguru sink configuration for the host application."""

import sys
from typing import Optional

from loguru import logger

from .config import Config

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> | <level>{message}</level>"
)


def configure_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """
    Replace loguru's default handler with the wallet gate sinks.

    Args:
        level: Console log level (defaults to Config.LOG_LEVEL)
        log_file: Optional file path for a rotating DEBUG log
            (defaults to Config.LOG_FILE; empty disables the file sink)
    """
    logger.remove()  # Remove default handler

    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level=(level or Config.LOG_LEVEL).upper(),
    )

    file_path = log_file if log_file is not None else Config.LOG_FILE
    if file_path:
        logger.add(
            file_path,
            rotation="10 MB",
            retention="7 days",
            compression="zip",
            level="DEBUG",
        )
