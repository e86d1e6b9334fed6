"""
Structured logging utilities for the sync health monitor.
Provides JSON and text formatting, category-filtered log files and
per-task correlation ids so log lines from one recovery session can be
grouped together.
"""

import contextvars
import json
import logging
import logging.handlers
import os
import sys
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional


class LogCategory(Enum):
    """Log categories for classification."""
    SYNC = "sync"
    RECOVERY = "recovery"
    HEALTH = "health"
    PERFORMANCE = "performance"
    ALERT = "alert"
    ERROR = "error"


@dataclass
class LogConfig:
    """Configuration for the logging system."""
    level: str = "INFO"
    format_type: str = "json"
    log_dir: Path = field(default_factory=lambda: Path("logs"))
    log_to_file: bool = False
    max_file_size: int = 50_000_000  # 50MB
    backup_count: int = 5
    enable_recovery_log: bool = True
    console_output: bool = True
    structured_metadata: bool = True
    correlation_id_enabled: bool = True


_correlation_id: contextvars.ContextVar = contextvars.ContextVar("correlation_id", default=None)
_log_config: Optional[LogConfig] = None


def setup_logging(config: Optional[LogConfig] = None) -> None:
    """
    Setup logging for the application.

    Args:
        config: LogConfig object, defaults to JSON console output at INFO
    """
    global _log_config

    config = config or LogConfig()

    if config.format_type == "json":
        formatter: logging.Formatter = JsonFormatter(config)
    else:
        formatter = TextFormatter()

    level = getattr(logging, config.level.upper(), logging.INFO)
    handlers = []

    if config.console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    if config.log_to_file:
        config.log_dir.mkdir(parents=True, exist_ok=True)

        main_handler = logging.handlers.RotatingFileHandler(
            config.log_dir / "sync_health.log",
            maxBytes=config.max_file_size,
            backupCount=config.backup_count
        )
        main_handler.setLevel(level)
        main_handler.setFormatter(formatter)
        handlers.append(main_handler)

        if config.enable_recovery_log:
            recovery_handler = logging.handlers.RotatingFileHandler(
                config.log_dir / "recovery.log",
                maxBytes=config.max_file_size,
                backupCount=config.backup_count
            )
            recovery_handler.setLevel(level)
            recovery_handler.setFormatter(formatter)
            recovery_handler.addFilter(CategoryFilter(LogCategory.RECOVERY))
            handlers.append(recovery_handler)

        error_handler = logging.handlers.RotatingFileHandler(
            config.log_dir / "errors.log",
            maxBytes=config.max_file_size,
            backupCount=config.backup_count
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)
        handlers.append(error_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    _log_config = config


def configure_from_settings(settings: Any) -> LogConfig:
    """Build a LogConfig from application settings and apply it."""
    config = LogConfig(
        level=settings.log_level,
        format_type=settings.log_format,
        log_dir=Path(settings.get_log_dir()),
        log_to_file=settings.log_to_file,
    )
    setup_logging(config)
    return config


class CategoryFilter(logging.Filter):
    """Filter logs by category."""

    def __init__(self, category: LogCategory):
        super().__init__()
        self.category = category.value

    def filter(self, record):
        return getattr(record, 'category', None) == self.category


class JsonFormatter(logging.Formatter):
    """JSON formatter with structured metadata."""

    def __init__(self, config: Optional[LogConfig] = None):
        super().__init__()
        self.config = config or LogConfig()

    def format(self, record):
        log_entry: Dict[str, Any] = {
            'timestamp': datetime.utcnow().isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'process_id': os.getpid()
        }

        if self.config.correlation_id_enabled:
            correlation_id = _correlation_id.get()
            if correlation_id:
                log_entry['correlation_id'] = correlation_id

        if self.config.structured_metadata:
            if hasattr(record, 'category'):
                log_entry['category'] = record.category

            if hasattr(record, 'extra_fields'):
                log_entry.update(record.extra_fields)

        if record.exc_info:
            log_entry['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': str(record.exc_info[1]),
                'traceback': self.formatException(record.exc_info)
            }

        if record.pathname:
            log_entry['source'] = {
                'file': record.pathname,
                'line': record.lineno,
                'function': record.funcName
            }

        return json.dumps(log_entry, default=str)


class TextFormatter(logging.Formatter):
    """Text formatter with category and correlation prefixes."""

    def __init__(self):
        super().__init__(
            fmt='%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    def format(self, record):
        formatted = super().format(record)

        if hasattr(record, 'category'):
            formatted = f"[{record.category}] {formatted}"

        correlation_id = _correlation_id.get()
        if correlation_id:
            formatted = f"[{correlation_id[:8]}] {formatted}"

        return formatted


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger
    """
    return logging.getLogger(name)


def category_extra(category: LogCategory, **fields: Any) -> Dict[str, Any]:
    """Build the ``extra`` mapping for a categorised log call."""
    extra: Dict[str, Any] = {'category': category.value}
    if fields:
        extra['extra_fields'] = fields
    return extra


def set_correlation_id(correlation_id: Optional[str]) -> contextvars.Token:
    """Set correlation ID for the current task."""
    return _correlation_id.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    """Get correlation ID for the current task."""
    return _correlation_id.get()


def clear_correlation_id(token: Optional[contextvars.Token] = None) -> None:
    """Clear correlation ID for the current task."""
    if token is not None:
        _correlation_id.reset(token)
    else:
        _correlation_id.set(None)
