"""
TimeTracker Logging Configuration

Provides centralized logging setup for TimeTracker.
Supports file rotation and environment variable configuration.
"""

import logging
import os
import sys
import tempfile
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

PRIMARY_LOG_FILENAME = "timetracker.log"


def get_log_level(default: str = "INFO") -> int:
    """
    Get log level from environment variable, falling back to ``default``.

    Environment variable: TIMETRACKER_LOG_LEVEL
    Valid values: DEBUG, INFO, WARNING, ERROR, CRITICAL
    """
    level_name = os.getenv("TIMETRACKER_LOG_LEVEL", default).upper()

    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }

    return level_map.get(level_name, logging.INFO)


def _can_write_files(directory: Path) -> bool:
    try:
        directory.mkdir(parents=True, exist_ok=True)
        probe = directory / f".write_probe_{os.getpid()}"
        probe.write_text("ok", encoding="utf-8")
        probe.unlink(missing_ok=True)
        return True
    except OSError:
        return False


def get_log_directory(data_dir: Optional[Path] = None) -> Path:
    """
    Get the log directory path.

    Order: TIMETRACKER_LOG_DIR, then ``<data_dir>/logs``, then a directory
    under the system temp dir for restricted environments.
    """
    candidates = []
    log_dir_str = os.getenv("TIMETRACKER_LOG_DIR")
    if log_dir_str:
        candidates.append(Path(log_dir_str).expanduser())
    if data_dir is not None:
        candidates.append(Path(data_dir) / "logs")
    candidates.append(Path(tempfile.gettempdir()) / "timetracker-logs")

    for candidate in candidates:
        if _can_write_files(candidate):
            return candidate

    # Callers fall back to stderr-only logging if this is not writable either.
    return candidates[-1]


def setup_logger(
    name: str = "timetracker",
    log_file: Optional[str] = PRIMARY_LOG_FILENAME,
    data_dir: Optional[Path] = None,
    level: str = "INFO",
    max_bytes: int = 5 * 1024 * 1024,  # 5MB
    backup_count: int = 3,
    console_output: bool = False,
) -> logging.Logger:
    """
    Set up a logger with file rotation and optional console output.

    Args:
        name: Logger name, normally the package root so module loggers inherit it
        log_file: Log filename inside the log directory, or None for no file
        data_dir: Data directory used to place the default log directory
        level: Level used when TIMETRACKER_LOG_LEVEL is unset
        max_bytes: Maximum size of each log file before rotation
        backup_count: Number of rotated files kept
        console_output: Whether to also output warnings and above to stderr

    Returns:
        logging.Logger: Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(get_log_level(level))

    if logger.handlers:
        # Already configured; only refresh the level.
        return logger

    logger.propagate = False

    formatter = logging.Formatter(
        fmt="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if log_file:
        try:
            log_path = get_log_directory(data_dir) / log_file
            file_handler = RotatingFileHandler(
                log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            # Don't let logging setup break the application
            print(f"Warning: Failed to set up file logging: {e}", file=sys.stderr)

    if console_output or not logger.handlers:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger
