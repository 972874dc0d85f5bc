"""
Logging Configuration

Provides centralized logging configuration for the LAN chat application.
"""

import copy
import json
import logging
import logging.handlers
import os
import sys
from enum import Enum
from typing import Optional

from .constants import LOG_FORMAT, LOG_DATE_FORMAT


class LogLevel(Enum):
    """Enumeration of logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ColoredFormatter(logging.Formatter):
    """Custom formatter that adds colors to log levels."""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'        # Reset
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record with colors."""
        # Other handlers share the record
        record = copy.copy(record)
        level_color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        record.levelname = f"{level_color}{record.levelname}{self.COLORS['RESET']}"

        return super().format(record)


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    RESERVED_ATTRS = frozenset((
        'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
        'filename', 'module', 'lineno', 'funcName', 'created',
        'msecs', 'relativeCreated', 'thread', 'threadName',
        'processName', 'process', 'exc_info', 'exc_text',
        'stack_info', 'taskName', 'message'
    ))

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        log_entry = {
            'timestamp': self.formatTime(record, self.datefmt or LOG_DATE_FORMAT),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
            'thread_name': record.threadName,
        }

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        if record.stack_info:
            log_entry['stack_info'] = record.stack_info

        # Fields passed through ``extra=``
        for key, value in record.__dict__.items():
            if key not in self.RESERVED_ATTRS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str, ensure_ascii=False)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    enable_colors: bool = True,
    json_format: bool = False,
    max_file_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5
) -> logging.Logger:
    """
    Set up logging configuration for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Path to log file. If None, logs only to console.
        enable_colors: Whether to enable colored output for console logging.
        json_format: Whether to use JSON format for structured logging.
        max_file_size: Maximum size of log file before rotation.
        backup_count: Number of backup files to keep.

    Returns:
        Configured root logger.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger()
    logger.setLevel(numeric_level)
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)

    if json_format:
        console_formatter: logging.Formatter = JsonFormatter()
    elif enable_colors and sys.stdout.isatty():
        console_formatter = ColoredFormatter(LOG_FORMAT, LOG_DATE_FORMAT)
    else:
        console_formatter = logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT)

    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_file_size,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(numeric_level)

        if json_format:
            file_formatter: logging.Formatter = JsonFormatter()
        else:
            file_formatter = logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT)

        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger instance with the specified name.

    Args:
        name: Logger name (typically __name__). Defaults to the package logger.

    Returns:
        Logger instance.
    """
    return logging.getLogger(name or "lan_chat")


def configure_from_env() -> logging.Logger:
    """
    Configure logging from environment variables.

    Environment variables:
        LAN_CHAT_LOG_LEVEL: Logging level (default: INFO)
        LAN_CHAT_LOG_FILE: Log file path (optional)
        LAN_CHAT_LOG_COLORS: Enable colors (default: true)
        LAN_CHAT_LOG_JSON: Use JSON format (default: false)
        LAN_CHAT_LOG_MAX_SIZE: Max file size in bytes (default: 10MB)
        LAN_CHAT_LOG_BACKUP_COUNT: Number of backup files (default: 5)

    Returns:
        Configured root logger.
    """
    return setup_logging(
        level=os.getenv("LAN_CHAT_LOG_LEVEL", "INFO"),
        log_file=os.getenv("LAN_CHAT_LOG_FILE"),
        enable_colors=os.getenv("LAN_CHAT_LOG_COLORS", "true").lower() == "true",
        json_format=os.getenv("LAN_CHAT_LOG_JSON", "false").lower() == "true",
        max_file_size=int(os.getenv("LAN_CHAT_LOG_MAX_SIZE", str(10 * 1024 * 1024))),
        backup_count=int(os.getenv("LAN_CHAT_LOG_BACKUP_COUNT", "5")),
    )
