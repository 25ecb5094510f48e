"""
Unified logging configuration
One logger setup, levels, format, correlation-id for try-on operations
Secrets are sanitized in log output
"""

import logging
import os
import re
import sys

from tryon.utils.correlation import get_correlation_id

# Values of these environment variables never reach the logs
SECRET_ENV_KEYS = [
    'PIAPI_API_KEY',
    'API_KEY',
    'SECRET',
    'PASSWORD',
    'TOKEN',
]


def mask(value: str, visible: int = 4) -> str:
    """Keep only the last characters of a secret visible"""
    if not value:
        return ""
    if len(value) <= visible:
        return "*" * len(value)
    return "*" * 4 + value[-visible:]


class CorrelationIdFilter(logging.Filter):
    """Filter that adds the correlation-id to log records"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "-"
        return True


def setup_logging(level: int = logging.INFO, include_correlation_id: bool = True) -> None:
    """
    Configure unified logging

    Args:
        level: Logging level
        include_correlation_id: Whether the format includes the correlation-id
    """
    if include_correlation_id:
        log_format = '%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] - %(message)s'
    else:
        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Drop existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(SanitizingFormatter(log_format))

    if include_correlation_id:
        console_handler.addFilter(CorrelationIdFilter())

    root_logger.addHandler(console_handler)

    # Levels for third-party libraries
    logging.getLogger('aiohttp').setLevel(logging.WARNING)
    logging.getLogger('asyncio').setLevel(logging.WARNING)
    logging.getLogger('filelock').setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with a unified name

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger
    """
    return logging.getLogger(name)


def sanitize_log_message(message: str) -> str:
    """
    Mask secret values in log messages.

    Args:
        message: Original message

    Returns:
        Message with secrets masked
    """
    result = message
    for key in SECRET_ENV_KEYS:
        value = os.getenv(key, '')
        if value and value in result:
            result = result.replace(value, mask(value))

    # Patterns like "api_key=xxx", "x-api-key: xxx", "Bearer xxx"
    patterns = [
        (r'(x-api-key|api_key|token|secret|password)(["\']?\s*[:=]\s*["\']?)([^\s,;\)"\']+)',
         lambda m: f"{m.group(1)}{m.group(2)}{mask(m.group(3))}"),
        (r'(Bearer|Token)\s+([A-Za-z0-9_.-]+)',
         lambda m: f"{m.group(1)} {mask(m.group(2))}"),
    ]

    for pattern, replacement in patterns:
        result = re.sub(pattern, replacement, result, flags=re.IGNORECASE)

    return result


class SanitizingFormatter(logging.Formatter):
    """Formatter that masks secrets automatically"""

    def format(self, record: logging.LogRecord) -> str:
        sanitized_msg = sanitize_log_message(record.getMessage())

        # Copy so other handlers still see the original record
        record_copy = logging.makeLogRecord(record.__dict__)
        record_copy.msg = sanitized_msg
        record_copy.args = ()

        return super().format(record_copy)
