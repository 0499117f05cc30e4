"""
Logging configuration for the CDC change monitor.

This module provides:
- Plain text or structured (JSON) operational logs
- The JSON change stream logger, one object per line
- Optional rotating file output
- Per-message log correlation IDs
- Environment-specific log levels for third-party libraries
"""

import os
import sys
import logging
import logging.handlers
from datetime import datetime, timezone
from typing import Optional
from pathlib import Path
from contextvars import ContextVar
from pythonjsonlogger import jsonlogger

from ..config import LoggingConfig, Environment

CHANGE_LOGGER_NAME = 'cdc_monitor.changes'

logger = logging.getLogger('cdc_monitor')

# Context variable for log correlation
correlation_id: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)


def utc_timestamp() -> str:
    """Current UTC time as an ISO-8601 string with a trailing Z."""
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


class StructuredFormatter(jsonlogger.JsonFormatter):
    """JSON formatter for operational logs with service fields."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record['timestamp'] = utc_timestamp()
        log_record['level'] = record.levelname

        if correlation_id.get():
            log_record['correlation_id'] = correlation_id.get()

        log_record['service'] = os.getenv('SERVICE_NAME', 'cdc-consumer')
        log_record['version'] = os.getenv('APP_VERSION', '1.0.0')
        log_record['environment'] = os.getenv('ENVIRONMENT', 'development')


class ChangeLogFormatter(jsonlogger.JsonFormatter):
    """Renders change entries: the event name plus the fields passed as extra."""

    def __init__(self, *args, **kwargs):
        kwargs.setdefault('fmt', '%(message)s')
        super().__init__(*args, **kwargs)


class CorrelationFilter(logging.Filter):
    """Expose the current correlation ID to plain-text formats."""

    def filter(self, record):
        record.correlation_id = correlation_id.get() or '-'
        return True


class LogContextManager:
    """Context manager for log correlation."""

    def __init__(self, corr_id: Optional[str] = None):
        self.corr_id = corr_id or correlation_id.get()
        self.token_corr = None

    def __enter__(self):
        self.token_corr = correlation_id.set(self.corr_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        correlation_id.reset(self.token_corr)


def setup_logging(config: LoggingConfig, environment: Environment) -> None:
    """
    Set up logging for the whole process.

    Args:
        config: Logging configuration
        environment: Deployment environment
    """
    level = getattr(logging, config.level, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level)

    if config.structured:
        formatter = StructuredFormatter(
            fmt='%(timestamp)s %(level)s %(name)s %(message)s',
            datefmt='%Y-%m-%dT%H:%M:%SZ'
        )
    else:
        formatter = logging.Formatter(
            fmt=config.format,
            datefmt=config.date_format
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    if not config.structured:
        console_handler.addFilter(CorrelationFilter())
    root_logger.addHandler(console_handler)

    if config.log_to_file and config.log_file_path:
        log_path = Path(config.log_file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            filename=str(log_path),
            maxBytes=config.max_file_size,
            backupCount=config.backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        if not config.structured:
            file_handler.addFilter(CorrelationFilter())
        root_logger.addHandler(file_handler)

    # Environment-specific adjustments
    if environment == Environment.PRODUCTION:
        logging.getLogger('confluent_kafka').setLevel(logging.WARNING)
        logging.getLogger('aiohttp.access').setLevel(logging.WARNING)

    setup_change_logger()


def setup_change_logger(stream=None) -> logging.Logger:
    """
    Configure the change stream logger.

    Change entries are always JSON, always at INFO, and never propagate to the
    root handlers so the stream stays one object per line.
    """
    change_logger = logging.getLogger(CHANGE_LOGGER_NAME)
    change_logger.handlers.clear()
    change_logger.setLevel(logging.INFO)
    change_logger.propagate = False

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(ChangeLogFormatter())
    change_logger.addHandler(handler)

    return change_logger
