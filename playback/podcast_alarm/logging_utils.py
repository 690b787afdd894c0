"""
Logging utilities for structured logging
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_RESERVED_ATTRS = frozenset((
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'taskName', 'message'
))


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON"""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Add extra fields from record
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, ensure_ascii=False, default=str)


class AlarmLogFilter(logging.Filter):
    """Filter for alarm specific logging"""

    def filter(self, record: logging.LogRecord) -> bool:
        # Suppress zeroconf browser teardown noise (non-fatal)
        if record.levelno == logging.ERROR and "zeroconf" in record.name.lower():
            if "_async_cancel" in record.getMessage():
                return False

        if hasattr(record, 'speaker_id'):
            record.speaker_context = {"speaker_id": record.speaker_id}

        if hasattr(record, 'phase'):
            record.phase_context = {"phase": record.phase}

        return True


def setup_logging(log_level: str = "INFO", log_format: str = "text",
                  log_file: Optional[str] = None) -> None:
    """
    Setup structured logging for the alarm service.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ("json" or "text")
        log_file: Optional log file path
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.handlers.clear()

    if log_format.lower() == "json":
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(AlarmLogFilter())
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(AlarmLogFilter())
        root_logger.addHandler(file_handler)

    # Third-party chatter
    for noisy in ('zeroconf', 'soco', 'requests', 'urllib3', 'apscheduler'):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_phase_start(logger: logging.Logger, phase: str, **kwargs) -> None:
    """
    Log the start of a trigger phase.

    Args:
        logger: Logger instance
        phase: Phase name
        **kwargs: Additional context
    """
    logger.info(
        f"Starting phase: {phase}",
        extra={"phase": phase, "phase_action": "start", **kwargs}
    )


def log_phase_end(logger: logging.Logger, phase: str,
                  duration_ms: Optional[int] = None, success: bool = True,
                  **kwargs) -> None:
    """
    Log the end of a trigger phase.

    Args:
        logger: Logger instance
        phase: Phase name
        duration_ms: Phase duration in milliseconds
        success: Whether phase was successful
        **kwargs: Additional context
    """
    logger.info(
        f"Completed phase: {phase} (success: {success})",
        extra={
            "phase": phase,
            "phase_action": "end",
            "duration_ms": duration_ms,
            "success": success,
            **kwargs
        }
    )


def log_speaker_state_change(logger: logging.Logger, speaker_id: str,
                             old_state: str, new_state: str, **kwargs) -> None:
    """Log session state transitions for a coordinator speaker."""
    logger.info(
        f"Session state change: {old_state} -> {new_state}",
        extra={
            "speaker_id": speaker_id,
            "event_type": "state_change",
            "old_state": old_state,
            "new_state": new_state,
            **kwargs
        }
    )


def log_error(logger: logging.Logger, error: Exception,
              context: Optional[Dict[str, Any]] = None) -> None:
    """
    Log errors with context.

    Args:
        logger: Logger instance
        error: Exception that occurred
        context: Additional context
    """
    logger.error(
        f"Error occurred: {error}",
        extra={
            "event_type": "error",
            "error_type": type(error).__name__,
            "error_message": str(error),
            "context": context or {}
        },
        exc_info=error
    )


def log_metrics(logger: logging.Logger, metrics: Dict[str, Any]) -> None:
    logger.info(
        f"Trigger metrics: branch={metrics.get('branch')} total={metrics.get('total_duration_ms')}ms",
        extra={"event_type": "metrics", "metrics": metrics}
    )
