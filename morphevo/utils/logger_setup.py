"""
Logging setup for morphevo

loguru configuration with colored console output and a rotating log file.
"""

from datetime import datetime, timezone
import os
import sys

from loguru import logger
from tqdm import tqdm


def setup_logger(
    log_dir: str = "logs",
    level: str = "INFO",
    rotation: str = "50 MB",
    retention: str = "30 days",
    enable_colors: bool = True,
    file_level: str | None = None,
) -> str:
    """
    Set up colored console logging plus a log file.

    Args:
        log_dir: Directory for log files
        level: Console logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        rotation: Log rotation policy (e.g., "50 MB", "1 day")
        retention: Log retention policy (e.g., "30 days", "1 month")
        enable_colors: Whether to enable colored console output
        file_level: Level of the file sink; defaults to ``level``

    Returns:
        Path to the main log file
    """
    os.makedirs(log_dir, exist_ok=True)

    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    log_file = os.path.join(log_dir, f"training_{timestamp}.log")

    # Remove any existing handlers to avoid duplicates
    logger.remove()

    colorize = enable_colors and sys.stdout.isatty()
    if colorize:
        console_format = (
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<blue>{function}</blue>:<yellow>{line}</yellow> | "
            "<level>{message}</level>"
        )
    else:
        console_format = (
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{name}:{function}:{line} | "
            "{message}"
        )

    # route console output through tqdm so progress bars stay intact
    logger.add(
        lambda msg: tqdm.write(msg, end=""),
        level=level,
        format=console_format,
        colorize=colorize,
        backtrace=True,
        diagnose=False,
    )

    logger.add(
        log_file,
        level=file_level or level,
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}",
        rotation=rotation,
        retention=retention,
        compression="zip",
        encoding="utf-8",
        backtrace=True,
        diagnose=False,
    )

    logger.debug("Logger initialized: console level {}, file {}", level, log_file)
    return log_file
