import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .config import Settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Libraries that flood the log below WARNING unless we are debugging
NOISY_LOGGERS = ("nio", "elastic_transport", "uvicorn.access")


def log_file_for(file_path: str, component: Optional[str] = None) -> Path:
    """Log file of one process; the indexer and the web server never share one."""
    path = Path(file_path)
    if component:
        path = path.with_name(f"{path.stem}-{component}{path.suffix}")
    return path


def setup_logging(settings: Settings, component: Optional[str] = None) -> Path:
    """Send all records to the console and to a rotating per-process log file.

    Returns the path of the log file in use.
    """
    level = logging.getLevelName(settings.logging.level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {settings.logging.level!r}")

    log_path = log_file_for(settings.logging.file_path, component)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=settings.logging.max_size_mb * 1024 * 1024,
        backupCount=settings.logging.backup_count,
    )
    file_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove any existing handlers and add our new ones
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

    library_level = logging.NOTSET if level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    return log_path


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the specified name"""
    return logging.getLogger(name)
