"""
Loguru sinks for almanac.

Library code logs through ``from loguru import logger`` and never configures
sinks itself; entry points (the CLI, ``serve``) call :func:`setup_logging`
once at startup.
"""

import os
import sys

from loguru import logger

CONSOLE_FORMAT = "<level>[{level.name}]</level> {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{line} | {message}"


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    rotation: str = "10 MB",
    retention: str = "7 days",
) -> list[int]:
    """
    Replace all loguru sinks with a stderr sink and an optional rotating file.

    Args:
        level: Minimum level name, case-insensitive.
        log_file: Path of the rotating log file; None logs to stderr only.
        rotation: Size or interval at which the file rotates.
        retention: How long rotated files are kept.

    Returns:
        The loguru handler ids that were added.
    """
    level = level.upper()
    logger.remove()
    handlers = [logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT)]
    if log_file:
        handlers.append(logger.add(log_file, level=level, format=FILE_FORMAT, rotation=rotation, retention=retention))
    return handlers


def setup_logging_from_config(config) -> list[int]:
    """Apply a Config's ``logging`` section (``level``, ``file``).

    A relative ``logging.file`` is placed under ``paths.log_dir``.
    """
    log_file = config.get("logging.file")
    if log_file:
        log_file = os.path.expanduser(str(log_file))
        log_dir = config.get("paths.log_dir")
        if log_dir and not os.path.isabs(log_file):
            log_file = os.path.join(os.path.expanduser(str(log_dir)), log_file)
    return setup_logging(level=str(config.get("logging.level") or "WARNING"), log_file=log_file)
