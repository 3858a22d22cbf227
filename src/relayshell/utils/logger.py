"""
Logging setup built on loguru.

Modules obtain a bound logger with ``get_logger(__name__)``; the CLI calls
``configure_logging`` once before running a flow.
"""

import sys
import traceback

from loguru import logger

from relayshell.models.enums import LogLevel

_LEVEL_MAP = {
    LogLevel.FULL: "TRACE",
    LogLevel.DEBUG: "DEBUG",
    LogLevel.INFO: "INFO",
    LogLevel.WARNING: "WARNING",
}

_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)


def configure_logging(level: LogLevel | str = LogLevel.INFO) -> None:
    """
    Replace loguru's default sink with a stderr sink at the given level.

    Args:
        level: LogLevel member or its string value.
    """
    level = LogLevel(level)
    logger.remove()
    logger.configure(extra={"name": "relayshell"})
    logger.add(
        sys.stderr,
        level=_LEVEL_MAP[level],
        format=_FORMAT,
        backtrace=level == LogLevel.FULL,
        diagnose=False,
    )


def get_logger(name: str):
    """Return the shared loguru logger bound to a module name."""
    return logger.bind(name=name)


def format_traceback(exc: BaseException) -> str:
    """Format an exception with its traceback for debug logging."""
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
