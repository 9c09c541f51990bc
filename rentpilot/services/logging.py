"""Logging setup for the API server and the rent generation job.

Both entry points write the same lines to stdout and to a log file. The level
comes from Settings.log_level (LOG_LEVEL in the environment or .env); use
WARNING in production to keep only settlement anomalies such as unknown
references, dropped overpayments and signature failures.
"""

import logging
import sys
from pathlib import Path

LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Held at WARNING unless DEBUG is requested. httpx logs every gateway URL,
# transaction reference included, at INFO.
QUIET_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore")


def get_log_level(name: str | None = None) -> int:
    """Translate a level name such as "info" or "WARNING" into a logging constant.

    Unknown or empty names fall back to INFO.
    """
    level = logging.getLevelName((name or "INFO").strip().upper())
    return level if isinstance(level, int) else logging.INFO


def setup_server_logging(log_file: str = "logs/server.log", level: str | None = None) -> int:
    """Send every logger to stdout and to log_file at one level.

    Safe to call more than once: existing root handlers are replaced.

    Args:
        log_file: Path to the log file; parent directories are created
        level: Level name, usually Settings.log_level

    Returns:
        The numeric level that was applied
    """
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    log_level = get_log_level(level)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    for handler in (logging.StreamHandler(sys.stdout), logging.FileHandler(log_path)):
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    quiet_level = logging.DEBUG if log_level <= logging.DEBUG else logging.WARNING
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)
    return log_level


__all__ = ["get_log_level", "setup_server_logging"]
