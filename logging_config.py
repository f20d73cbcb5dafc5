"""
Centralized loguru setup for the Poster Maker.

Call setup_logging() once at process start (the FastAPI service and the CLIs do);
library modules simply import `from loguru import logger` and log.
"""

import sys

from loguru import logger

import config

_logging_initialized = False


def _build_format_string(record: dict) -> str:
    """Build format string; location is shown only for warnings and above."""
    format_parts = ["<level>{level: <7}</level>", "{time:HH:mm:ss}"]
    if record["level"].no >= logger.level("WARNING").no:
        format_parts.append("<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan>")
    format_parts.append("<level>{message}</level>{exception}")
    return " | ".join(format_parts) + "\n"


def setup_logging(level: str | None = None, log_file: str | None = None) -> None:
    """
    Configure loguru sinks.

    Args:
        level: Minimum level for all sinks (defaults to LOG_LEVEL)
        log_file: Optional path of a rotating log file (defaults to LOG_FILE)
    """
    global _logging_initialized

    if _logging_initialized:
        return

    level = (level or config.LOG_LEVEL).upper()
    log_file = log_file or config.LOG_FILE

    # Remove any existing handlers
    logger.remove()

    logger.add(
        sys.stderr,
        level=level,
        format=_build_format_string,
        colorize=True,
        backtrace=True,
        diagnose=False,
    )

    if log_file:
        logger.add(
            log_file,
            level=level,
            rotation="10 MB",
            retention=5,
            encoding="utf-8",
            enqueue=True,
        )

    _logging_initialized = True
