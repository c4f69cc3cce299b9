"""Utility functions and notification system for SnapAudit."""

import sys
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Union


class NotificationManager:
    """Simple notification manager for console and file logging."""

    def __init__(self, config):
        """Initialize notification manager.

        Args:
            config: Configuration object
        """
        self.config = config
        self.logger = self._setup_logger()
        self.use_unicode = self._check_unicode_support()

    def _check_unicode_support(self) -> bool:
        """Check if the terminal supports Unicode characters."""
        try:
            "✅".encode(sys.stdout.encoding or 'utf-8')
            return True
        except (UnicodeEncodeError, LookupError):
            return False

    def _setup_logger(self) -> logging.Logger:
        """Setup logging configuration."""
        logger = logging.getLogger('snapaudit')

        # Clear existing handlers
        logger.handlers.clear()

        level = getattr(logging, str(self.config.get('notifications.level', 'INFO')).upper(), logging.INFO)
        logger.setLevel(level)

        if self.config.get('notifications.console', True):
            console_handler = logging.StreamHandler(sys.stdout)

            # Set encoding for Windows compatibility
            if hasattr(console_handler.stream, 'reconfigure'):
                try:
                    console_handler.stream.reconfigure(encoding='utf-8', errors='replace')
                except (AttributeError, OSError, ValueError):
                    pass

            console_formatter = logging.Formatter(
                '%(asctime)s - %(levelname)s - %(message)s'
            )
            console_handler.setFormatter(console_formatter)
            logger.addHandler(console_handler)

        log_file = self.config.get('notifications.file')
        if log_file:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            file_handler.setFormatter(file_formatter)
            logger.addHandler(file_handler)

        return logger

    def _format_message(self, message: str, prefix: str) -> str:
        """Format message with appropriate prefix based on Unicode support."""
        if self.use_unicode:
            return f"{prefix} {message}"
        else:
            ascii_prefixes = {
                "✅": "[SUCCESS]",
                "❌": "[FAILED]",
                "⚠️": "[WARNING]",
            }
            ascii_prefix = ascii_prefixes.get(prefix, prefix)
            return f"{ascii_prefix} {message}"

    def debug(self, message: str) -> None:
        """Log debug message."""
        self.logger.debug(message)

    def info(self, message: str) -> None:
        """Log info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log warning message."""
        self.logger.warning(self._format_message(message, "⚠️"))

    def error(self, message: str) -> None:
        """Log error message."""
        self.logger.error(message)

    def success(self, message: str) -> None:
        """Log success message."""
        self.logger.info(self._format_message(message, "✅"))

    def failure(self, message: str) -> None:
        """Log failure message."""
        self.logger.error(self._format_message(message, "❌"))


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_size_mb(size_mb: float) -> str:
    """Format a size given in MB in human readable format.

    Args:
        size_mb: Size in megabytes

    Returns:
        Formatted size string
    """
    for unit in ['MB', 'GB', 'TB']:
        if abs(size_mb) < 1024.0:
            return f"{size_mb:.2f} {unit}"
        size_mb /= 1024.0
    return f"{size_mb:.2f} PB"


def ensure_directory(path: Union[str, Path]) -> Path:
    """Ensure directory exists, create if it doesn't.

    Args:
        path: Directory path

    Returns:
        Path object
    """
    path_obj = Path(path)
    path_obj.mkdir(parents=True, exist_ok=True)
    return path_obj
