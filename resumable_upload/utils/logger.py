"""
Logging configuration with rotating file handler.

Broker and client share one format. Console output is on by default; ``upload.log`` and
``error.log`` are written only when file logging is enabled in settings.
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from resumable_upload.config import settings
from resumable_upload.core.config import LoggingConfig

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _rotating_handler(
    path: Path,
    level: int,
    formatter: logging.Formatter,
    config: LoggingConfig
) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        path,
        maxBytes=config.max_file_size,
        backupCount=config.backup_count,
        encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logger(
    name: str,
    level: Optional[int] = None,
    config: Optional[LoggingConfig] = None
) -> logging.Logger:
    """
    Attach handlers to the named logger once.

    Args:
        name: Logger name (usually __name__)
        level: Logging level, defaults to the configured level
        config: Logging settings; ``file_path`` is the directory for the log files

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    config = config or settings.get_logging_config()
    level = getattr(logging, config.level.value, logging.INFO) if level is None else level
    logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

    if config.enable_console:
        stream = logging.StreamHandler(sys.stdout)
        stream.setLevel(level)
        stream.setFormatter(formatter)
        logger.addHandler(stream)

    if config.enable_file:
        log_dir = Path(config.file_path or "logs")
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.addHandler(_rotating_handler(log_dir / "upload.log", level, formatter, config))
        # Errors are duplicated into their own file
        logger.addHandler(_rotating_handler(log_dir / "error.log", logging.ERROR, formatter, config))

    return logger


app_logger = setup_logger("resumable-upload")


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a configured logger; ``None`` gives the package logger."""
    if name is None:
        return app_logger
    return setup_logger(name)
