"""
Logging setup shared by the curator's packages.

Each package logger ("curation", "backend", "tuning") gets a console handler
and its own rotating file under the configured logs directory. Level and
directory come from the Config the caller passes; the import-time settings
are only the fallback.
"""

import logging
import logging.handlers
from pathlib import Path
from typing import Iterable, List, Optional

from .config import Config, config

PACKAGE_LOGGERS = ("curation", "backend", "tuning")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MAX_LOG_BYTES = 10 * 1024 * 1024  # 10MB
LOG_BACKUPS = 5


def _file_handler(logs_dir: Path, logger_name: str) -> logging.Handler:
    logs_dir.mkdir(parents=True, exist_ok=True)
    return logging.handlers.RotatingFileHandler(
        logs_dir / f"{logger_name}.log",
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUPS,
        encoding="utf-8",
    )


def configure_logger(logger_name: str, settings: Optional[Config] = None) -> logging.Logger:
    """
    Attach console and file handlers to one package logger.

    Calling it again for a configured logger only refreshes the level, so
    repeated CLI runs in one process never duplicate output.
    """
    settings = settings or config
    level = settings.log_level.upper()

    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in (logging.StreamHandler(), _file_handler(settings.logs_dir, logger_name)):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def setup_logging(
    settings: Optional[Config] = None,
    logger_names: Iterable[str] = PACKAGE_LOGGERS,
) -> List[logging.Logger]:
    """
    Configure every package logger from one set of settings.

    Args:
        settings: Config carrying log_level and logs_dir (defaults to the global one)
        logger_names: Package loggers to configure

    Returns:
        The configured loggers, in the order given
    """
    return [configure_logger(name, settings) for name in logger_names]
