"""Loguru sink configuration for processes embedding compound-rag."""

import sys

from loguru import logger

from .config import Config

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> | <level>{message}</level>"
)


def configure_logging(level: str | None = None, log_file: str | None = None) -> None:
    """
    Replace loguru's default handler with the compound-rag sinks.

    Library modules only emit through ``logger``; the hosting process calls
    this once at startup.

    Args:
        level: Console log level (defaults to Config.LOG_LEVEL)
        log_file: Optional path for a rotating DEBUG-level file sink
    """
    logger.remove()  # Remove default handler

    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level=(level or Config.LOG_LEVEL).upper(),
    )

    if log_file:
        logger.add(
            log_file,
            rotation="10 MB",
            retention="7 days",
            compression="zip",
            level="DEBUG",
        )
