"""
Logging configuration for the Gateway Payments SDK.

This module provides centralized logging configuration and utilities
for consistent logging across all SDK components. Every handler installed
here carries a SecretRedactor so merchant secrets and signed tokens never
reach log output.
"""

import logging
import logging.handlers
import os
import re
import sys
from pathlib import Path


class SecretRedactor(logging.Filter):
    SECRET_PATTERNS = [
        # HTTP signature authentication
        re.compile(r"(signature=\")[^\"]+", re.IGNORECASE),
        re.compile(r"(digest: SHA-256=)[a-zA-Z0-9+/=]+", re.IGNORECASE),
        re.compile(r"(merchant_secret_key[=:]\s*)[^&\s,]+", re.IGNORECASE),
        re.compile(r"(merchantsecretKey[=:]\s*)[^&\s,]+", re.IGNORECASE),
        # Signed tokens (capture contexts and transient card tokens)
        re.compile(r"(eyJ)[a-zA-Z0-9\-_]+\.[a-zA-Z0-9\-_]+\.[a-zA-Z0-9\-_]*"),
        re.compile(r"(transientTokenJwt[\"']?\s*[=:]\s*[\"']?)[^\"'&\s,]+", re.IGNORECASE),
        # Generic patterns
        re.compile(r"(key=)[a-zA-Z0-9\-_\.]+", re.IGNORECASE),
        re.compile(r"(secret=)[^&\s]+", re.IGNORECASE),
        re.compile(r"(token=)[^&\s]+", re.IGNORECASE),
        re.compile(r"(password=)[^&\s]+", re.IGNORECASE),
        re.compile(r"(Bearer )[a-zA-Z0-9\-_\.]+", re.IGNORECASE),
        re.compile(r"(Authorization: )[a-zA-Z0-9\-_\.]+", re.IGNORECASE),
    ]

    @classmethod
    def redact(cls, text: str) -> str:
        for pattern in cls.SECRET_PATTERNS:
            text = pattern.sub(lambda m: m.group(1) + "***REDACTED***", text)
        return text

    @classmethod
    def _redact_arg(cls, arg):
        # Numeric args stay untouched so %d and %.2f placeholders still format
        return cls.redact(arg) if isinstance(arg, str) else arg

    def filter(self, record):
        """Redact sensitive data from log messages and arguments."""
        record.msg = self.redact(str(record.msg))
        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._redact_arg(v) for k, v in record.args.items()}
            else:
                record.args = tuple(self._redact_arg(arg) for arg in record.args)
        return True


class ColoredFormatter(logging.Formatter):
    """Custom formatter that adds colors to log messages."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",  # Reset
    }

    def format(self, record):
        """Format the log record with colors."""
        if record.levelname in self.COLORS:
            record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{self.COLORS['RESET']}"
        return super().format(record)


def _validate_log_file_path(log_file: str) -> bool:
    """Reject empty paths, paths with null bytes and paths pointing at directories."""
    if not log_file or "\0" in log_file:
        return False
    path = Path(log_file)
    if path.exists() and path.is_dir():
        return False
    return True


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    log_format: str | None = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    use_colors: bool = True,
    include_timestamp: bool = True,
    clear_handlers: bool = False,
) -> None:
    """Set up logging configuration for the Gateway Payments SDK."""
    if not isinstance(max_bytes, int) or max_bytes <= 0:
        max_bytes = 10 * 1024 * 1024
    if not isinstance(backup_count, int) or backup_count < 0:
        backup_count = 5

    valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    level = level.upper()
    if level not in valid_levels:
        logging.warning("Invalid log level %s, defaulting to INFO", level)
        level = "INFO"

    log_level = getattr(logging, level)

    if log_format is None:
        if include_timestamp:
            log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        else:
            log_format = "%(name)s - %(levelname)s - %(message)s"

    env_use_colors = os.environ.get("GatewayPayments_LogColors", "true").lower() == "true"
    use_colors = use_colors and env_use_colors and sys.stderr.isatty()

    console_formatter = ColoredFormatter(log_format) if use_colors else logging.Formatter(log_format)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    if clear_handlers:
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(console_formatter)
    console_handler.addFilter(SecretRedactor())
    root_logger.addHandler(console_handler)

    if log_file:
        if not _validate_log_file_path(log_file):
            logging.error("Invalid log file path: %s", log_file)
            raise ValueError(f"Invalid log file path: {log_file}")

        try:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
            )
        except OSError as e:
            logging.error("Failed to create rotating file handler for %s: %s", log_file, e)
            raise
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(log_format))
        file_handler.addFilter(SecretRedactor())
        root_logger.addHandler(file_handler)

    logging.getLogger(__name__).debug("Logging configured at %s level", level)


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the SDK namespace."""
    if not name.startswith("gateway_payments"):
        name = f"gateway_payments.{name}"
    return logging.getLogger(name)
