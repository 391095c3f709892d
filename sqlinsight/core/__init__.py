"""
Core module - Configuration, constants, exceptions, and logging

Provides:
- Settings/Config management
- Custom exceptions
- Logging
"""

from sqlinsight.core.config import Settings, get_settings, set_settings
from sqlinsight.core.constants import *
from sqlinsight.core.exceptions import *
from sqlinsight.core.logger import (
    setup_logging,
    get_logger,
    log_exception,
    item_log,
    LogContext,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "set_settings",
    # Logging
    "setup_logging",
    "get_logger",
    "log_exception",
    "item_log",
    "LogContext",
]
