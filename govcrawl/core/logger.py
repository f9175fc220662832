"""Logging setup for the govcrawl CLI.

Package modules log through ``logging.getLogger(__name__)`` and pass crawl
context (url, level, identifier, ...) in ``extra``. configure_logging()
installs handlers on the ``govcrawl`` logger that print those fields after
the message:

    2026-10-18 09:12:00,123 | DEBUG | govcrawl.services.crawler | Page crawled | url=https://x.kr/a
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

DEFAULT_LOG_FILE = Path(".cache/govcrawl.log")

# Rotating file handler limits (100MB max file size, 5 backup files)
MAX_LOG_SIZE_BYTES = 100 * 1024 * 1024
BACKUP_COUNT = 5

# httpx logs every robots.txt request at INFO
QUIET_LOGGERS = ("httpx", "httpcore")

_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class ContextFormatter(logging.Formatter):
    """Formatter that appends ``extra`` fields as ``key=value`` pairs."""

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        context = [
            f"{key}={value}"
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS
        ]
        if not context:
            return line
        return f"{line} | {' '.join(context)}"


def configure_logging(
    log_level: str = "INFO",
    log_file: Path | None = None,
    name: str = "govcrawl",
) -> logging.Logger:
    """Configure console and rotating file handlers for the package logger.

    The console shows records at log_level and above; the file always keeps
    DEBUG so a failed crawl can be inspected afterwards. Calling again
    replaces the handlers.

    Args:
        log_level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Log file path, defaults to .cache/govcrawl.log. Parent
            directories are created.
        name: Logger to configure

    Returns:
        The configured logger

    Raises:
        ValueError: If log_level is not a valid logging level name.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    formatter = ContextFormatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    log_file = log_file or DEFAULT_LOG_FILE
    log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=MAX_LOG_SIZE_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    for quiet in QUIET_LOGGERS:
        logging.getLogger(quiet).setLevel(max(level, logging.WARNING))

    return logger
