"""Logging configuration shared by the CLI and the scheduler."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 5


def setup_logging(level: str = "INFO", log_dir: str | None = None) -> None:
    """Log to stdout, and to rotating files under `log_dir` when given."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        combined = RotatingFileHandler(
            path / "combined.log", maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS,
            encoding="utf-8",
        )
        errors = RotatingFileHandler(
            path / "error.log", maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS,
            encoding="utf-8",
        )
        errors.setLevel(logging.ERROR)
        handlers.extend([combined, errors])

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    # APScheduler logs every job run at INFO
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
