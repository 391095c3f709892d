"""
Logging configuration for SQL Insight
"""

import sys
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional
from logging.handlers import TimedRotatingFileHandler
from datetime import datetime

from sqlinsight.core.constants import APP_NAME, LOG_FILE

FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(filename)s:%(lineno)d | %(message)s"
FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for console output"""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m',      # Reset
    }

    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None,
                 use_colors: bool = True):
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors and self._supports_color()

    @staticmethod
    def _supports_color() -> bool:
        """Check if terminal supports colors"""
        if sys.platform == 'win32':
            return True
        return hasattr(sys.stdout, 'isatty') and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_colors:
            return super().format(record)
        # Other handlers share the record; restore the plain level name
        levelname = record.levelname
        color = self.COLORS.get(levelname, self.COLORS['RESET'])
        record.levelname = f"{color}{levelname}{self.COLORS['RESET']}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


class SQLInsightLogger:
    """Application logger with file and console handlers"""

    _instance: Optional['SQLInsightLogger'] = None
    _initialized: bool = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self.logger = logging.getLogger(APP_NAME)
        self.logger.setLevel(logging.DEBUG)
        self._handlers: dict[str, logging.Handler] = {}
        self._initialized = True

    def setup(
        self,
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        file_enabled: bool = True,
        retention_days: int = 7,
        console_colors: bool = True,
    ) -> logging.Logger:
        """
        Configure logging with file and console handlers

        Args:
            level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for the rotating application log
            file_enabled: Enable file logging
            retention_days: Number of days to keep daily rotated logs
            console_colors: Use colored output in console

        Returns:
            Configured logger instance
        """
        for handler in self._handlers.values():
            self.logger.removeHandler(handler)
            handler.close()
        self._handlers.clear()

        log_level = getattr(logging, level.upper(), logging.INFO)
        # Logger stays at DEBUG so per-item log files get everything
        self.logger.setLevel(logging.DEBUG)

        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(log_level)
        console_format = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
        console_handler.setFormatter(ColoredFormatter(
            fmt=console_format,
            datefmt="%H:%M:%S",
            use_colors=console_colors
        ))
        self.logger.addHandler(console_handler)
        self._handlers['console'] = console_handler

        if file_enabled and log_dir:
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)

            file_handler = TimedRotatingFileHandler(
                log_dir / LOG_FILE,
                when='midnight',
                interval=1,
                backupCount=max(1, int(retention_days)),
                encoding='utf-8'
            )
            file_handler.suffix = "%Y-%m-%d"
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=FILE_DATEFMT))
            self.logger.addHandler(file_handler)
            self._handlers['file'] = file_handler

        return self.logger

    def get_logger(self, name: Optional[str] = None) -> logging.Logger:
        """Get a child logger with optional name"""
        if name:
            return self.logger.getChild(name)
        return self.logger


# Module-level functions for convenience

_app_logger: Optional[SQLInsightLogger] = None


def setup_logging(
    level: str = "INFO",
    log_dir: Optional[Path] = None,
    file_enabled: bool = True,
    retention_days: int = 7,
) -> logging.Logger:
    """
    Setup application logging

    This should be called once at application startup.
    """
    global _app_logger
    _app_logger = SQLInsightLogger()
    return _app_logger.setup(
        level=level,
        log_dir=log_dir,
        file_enabled=file_enabled,
        retention_days=retention_days,
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger instance

    Args:
        name: Optional name for child logger (e.g., 'database', 'ai', 'batch')

    Returns:
        Logger instance

    Example:
        >>> logger = get_logger('database')
        >>> logger.info('Connected to server')
    """
    global _app_logger
    if _app_logger is None:
        # Loggers created at import time; handlers are attached by setup_logging
        _app_logger = SQLInsightLogger()

    return _app_logger.get_logger(name)


def log_exception(logger: logging.Logger, exc: Exception, message: str = "") -> None:
    """
    Log an exception with full traceback

    Args:
        logger: Logger instance
        exc: Exception to log
        message: Additional context message
    """
    if message:
        logger.error(f"{message}: {exc}", exc_info=exc)
    else:
        logger.error(f"Exception occurred: {exc}", exc_info=exc)


@contextmanager
def item_log(path: Path) -> Iterator[logging.Handler]:
    """
    Tee the application logger into a dedicated file while the block runs.

    Used to give every batch item its own log next to its artifacts.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding='utf-8', errors='replace')
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=FILE_DATEFMT))

    root = get_logger()
    root.addHandler(handler)
    try:
        yield handler
    finally:
        root.removeHandler(handler)
        handler.close()


class LogContext:
    """
    Context manager for logging operation timing

    Example:
        >>> with LogContext(logger, "Collecting schema"):
        ...     collect_schema()
        # Logs: "Collecting schema... started"
        # Logs: "Collecting schema... completed in 1.23s"
    """

    def __init__(self, logger: logging.Logger, operation: str, level: int = logging.INFO):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.start_time: Optional[datetime] = None

    def __enter__(self):
        self.start_time = datetime.now()
        self.logger.log(self.level, f"{self.operation}... started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = (datetime.now() - self.start_time).total_seconds()

        if exc_type is not None:
            self.logger.error(f"{self.operation}... failed after {duration:.2f}s: {exc_val}")
        else:
            self.logger.log(self.level, f"{self.operation}... completed in {duration:.2f}s")

        return False  # Don't suppress exceptions
