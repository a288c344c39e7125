"""Loguru setup and per-device log context."""

import sys
from contextlib import AbstractContextManager

from loguru import logger

# Service log levels (debug=5 ... panic=0) to loguru levels
LOG_LEVELS = {
    0: "CRITICAL",
    1: "CRITICAL",
    2: "ERROR",
    3: "WARNING",
    4: "INFO",
    5: "DEBUG",
}

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[device_id]}</cyan> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {extra[device_id]} | {name}:{function}:{line} | {message}"


def device_logging(device_id: str) -> AbstractContextManager:
    """
    Tag every record logged inside the block with the device id.

    Tasks created inside the block inherit the tag.

    Example:
        with device_logging("5a1ea73df3e4ad01"):
            logger.info("Linking device")
    """
    return logger.contextualize(device_id=device_id)


def loguru_level(level: int) -> str:
    """Map a service log level to a loguru level name, clamping out-of-range values."""
    return LOG_LEVELS[min(max(level, 0), 5)]


def configure_logging(level: int = 4, log_file: str | None = None) -> None:
    """
    Replace loguru's sinks with the service's stderr sink and optional rotating file.

    Args:
        level: Service log level (debug=5, info=4, warning=3, error=2, fatal=1, panic=0)
        log_file: Optional path of a rotating log file
    """
    loguru_name = loguru_level(level)

    logger.remove()
    # Records outside any device block
    logger.configure(extra={"device_id": "-"})

    logger.add(sink=sys.stderr, format=CONSOLE_FORMAT, level=loguru_name, colorize=True)

    if log_file:
        logger.add(
            sink=log_file,
            format=FILE_FORMAT,
            level=loguru_name,
            rotation="100 MB",
            retention="30 days",
            compression="zip",
        )
