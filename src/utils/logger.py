"""Logging utility with support for LOG prefix and structured logging."""

import logging
import sys
from datetime import datetime
from typing import Optional
from enum import Enum


LOGGER_NAME = "journal_reminders"


class LogLevel(Enum):
    """Log levels for the application."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ColoredFormatter(logging.Formatter):
    """Formatter that adds colors, a timestamp and the LOG prefix."""

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m',
        'BOLD': '\033[1m',
    }

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def _color(self, name: str) -> str:
        return self.COLORS[name] if self.use_colors else ""

    def format(self, record: logging.LogRecord) -> str:
        log_prefix = f"{self._color('BOLD')}[LOG]{self._color('RESET')}"
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")

        if record.levelname == 'INFO':
            # INFO messages are clean without level prefix
            return f"{log_prefix} {timestamp} {record.getMessage()}"

        level_color = self._color(record.levelname) if record.levelname in self.COLORS else ""
        return (
            f"{log_prefix} {timestamp} {level_color}[{record.levelname}]{self._color('RESET')} "
            f"{record.getMessage()}"
        )


class AppLogger:
    """Application logger with LOG prefix support."""

    _instance: Optional['AppLogger'] = None
    _logger: Optional[logging.Logger] = None

    def __new__(cls):
        """Singleton pattern to ensure single logger instance."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        """Initialize the logger if not already initialized."""
        if self._logger is None:
            self._setup_logger()

    def _setup_logger(self, level: str = "INFO"):
        """Set up the logger with custom formatter."""
        self._logger = logging.getLogger(LOGGER_NAME)
        self._logger.setLevel(getattr(logging, level))
        self._logger.handlers.clear()

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(getattr(logging, level))
        console_handler.setFormatter(ColoredFormatter(use_colors=sys.stdout.isatty()))
        self._logger.addHandler(console_handler)

        # Keep propagation on so pytest's caplog can see records
        self._logger.propagate = True

    def set_level(self, level: str):
        """Set the logging level."""
        if self._logger:
            self._logger.setLevel(getattr(logging, level.upper()))
            for handler in self._logger.handlers:
                handler.setLevel(getattr(logging, level.upper()))

    def log(self, message: str, level: LogLevel = LogLevel.INFO):
        """Log a message with the specified level."""
        if self._logger:
            log_func = getattr(self._logger, level.value.lower())
            log_func(message)

    def debug(self, message: str):
        """Log a debug message."""
        self.log(message, LogLevel.DEBUG)

    def info(self, message: str):
        """Log an info message."""
        self.log(message, LogLevel.INFO)

    def warning(self, message: str):
        """Log a warning message."""
        self.log(message, LogLevel.WARNING)

    def error(self, message: str):
        """Log an error message."""
        self.log(message, LogLevel.ERROR)

    def critical(self, message: str):
        """Log a critical message."""
        self.log(message, LogLevel.CRITICAL)


# Global logger instance
logger = AppLogger()


def setup_logging(level: str = "INFO"):
    """Set up logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logger.set_level(level)
    logger.debug("Logger initialized")


# Convenience functions
def log_info(message: str):
    """Log an info message."""
    logger.info(message)


def log_debug(message: str):
    """Log a debug message."""
    logger.debug(message)


def log_warning(message: str):
    """Log a warning message."""
    logger.warning(message)


def log_error(message: str):
    """Log an error message."""
    logger.error(message)


def log_critical(message: str):
    """Log a critical message."""
    logger.critical(message)
