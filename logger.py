from __future__ import annotations

import os
import logging
import logging.handlers
import traceback
import json
import datetime as _dt
from typing import Any, Optional


def _project_root() -> str:
    """Returns the service root directory."""
    return os.path.dirname(os.path.abspath(__file__))


def get_log_dir() -> str:
    """Returns the logs directory, honouring ASSISTANT_LOG_DIR."""
    logs = os.getenv('ASSISTANT_LOG_DIR') or os.path.join(_project_root(), 'logs')
    try:
        os.makedirs(logs, exist_ok=True)
    except OSError:
        pass
    return logs


def get_logger(name: str = 'assistant', level: Optional[int] = None) -> logging.Logger:
    """Get a configured logger with rotation and proper formatting.

    Args:
        name: Logger name (default: 'assistant')
        level: Log level override (default: DEBUG if DEBUG env var, else INFO)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid duplicate handlers if logger already configured
    if logger.handlers:
        return logger

    if level is None:
        level = logging.DEBUG if os.getenv('DEBUG') else logging.INFO
    logger.setLevel(level)

    if name == 'assistant':
        # httpx logs every backend request at INFO
        logging.getLogger('httpx').setLevel(logging.WARNING)

    formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%dT%H:%M:%SZ'
    )

    log_path = os.path.join(get_log_dir(), 'assistant.log')
    try:
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=5*1024*1024,
            backupCount=3,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError:
        # Read-only deployments still get console output below
        logger.addHandler(logging.NullHandler())

    if os.getenv('DEBUG'):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def log_event(event: str, message: str, level: int = logging.INFO) -> None:
    """Log an event with the specified level.

    Args:
        event: Event identifier (e.g., 'FEEDBACK_READY', 'AXIS_FAILED')
        message: Log message
        level: Log level (default: INFO)
    """
    try:
        logger = get_logger()
        logger.log(level, f"[{event}] {message}")
    except Exception:
        # Logging must never break the editor flow
        pass


def log_exception(event: str, exc: BaseException, level: int = logging.ERROR) -> None:
    """Log an exception with full traceback.

    Args:
        event: Event identifier
        exc: Exception instance
        level: Log level (default: ERROR)
    """
    try:
        logger = get_logger()
        tb = ''.join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        logger.log(level, f"[{event}] Exception: {exc}\n{tb}")
    except Exception:
        pass


def log_json(event: str, message: str, **kwargs: Any) -> None:
    """Log structured JSON data for analytics.

    Args:
        event: Event identifier
        message: Log message
        **kwargs: Additional structured data to include
    """
    try:
        logger = get_logger()
        data = {
            "timestamp": _dt.datetime.utcnow().isoformat() + "Z",
            "event": event,
            "message": message,
            **kwargs
        }
        logger.info(json.dumps(data, default=str))
    except Exception:
        pass


def log_performance(event: str, duration_ms: float, **context: Any) -> None:
    """Log performance timing data.

    Args:
        event: Event identifier
        duration_ms: Duration in milliseconds
        **context: Additional context data
    """
    try:
        logger = get_logger()
        data = {
            "timestamp": _dt.datetime.utcnow().isoformat() + "Z",
            "event": event,
            "type": "performance",
            "duration_ms": round(duration_ms, 2),
            **context
        }
        logger.info(json.dumps(data, default=str))
    except Exception:
        pass
