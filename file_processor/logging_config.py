"""
Logging configuration for the file processor.

One call at startup: console output, an optional rotating log file, and
watchdog's own chatter pinned to WARNING.

Modules log through logging.getLogger(__name__). Key/value context goes in
extra={"fields": {...}} and is rendered after the message:

    logger.info("Processed file", extra={"fields": {"file": "a.txt"}})
    # 2025-01-31 10:00:00,000 [INFO] file_processor.processor: Processed file file=a.txt
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Rotating file handler limits
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUP_COUNT = 5


class FieldsFormatter(logging.Formatter):
    """Formatter that appends the record's `fields` mapping as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        fields = getattr(record, "fields", None)
        if not fields:
            return message

        pairs = " ".join(f"{key}={value}" for key, value in fields.items())
        # Keep tracebacks last
        first, sep, rest = message.partition("\n")
        return f"{first} {pairs}{sep}{rest}"


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None) -> logging.Logger:
    """
    Configure the root logger.

    Args:
        level: Minimum level name (DEBUG, INFO, ...)
        log_file: Optional path of a rotating log file

    Returns:
        The package logger
    """
    formatter = FieldsFormatter(LOG_FORMAT)
    handlers = []

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    handlers.append(console)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUP_COUNT,
            encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    # Suppress verbose watchdog library logging
    logging.getLogger("watchdog.observers.inotify_buffer").setLevel(logging.WARNING)
    logging.getLogger("watchdog.observers").setLevel(logging.WARNING)

    return logging.getLogger("file_processor")
