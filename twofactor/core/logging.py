"""
Structured logging for the two-factor core.

Every line is one JSON object. Security events carry their fields under
``context`` so log shippers can index them without parsing the message.
"""

import json
import logging
import os
import sys
from typing import Any, Dict, Optional

LOG_LEVEL = os.getenv("TWO_FACTOR_LOG_LEVEL", "INFO").upper()


class JsonLineFormatter(logging.Formatter):
    """Render a record as a single JSON line"""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
        }
        context = getattr(record, "context", None)
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class SecurityLogger:
    """Logger for two-factor security events"""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self._setup_logger()

    def _setup_logger(self):
        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(JsonLineFormatter())
            self.logger.addHandler(handler)
            self.logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

    def _log(self, level: int, message: str, context: Optional[dict]):
        self.logger.log(level, message, extra={"context": context or {}})

    def info(self, message: str, context: Optional[dict] = None):
        self._log(logging.INFO, message, context)

    def warning(self, message: str, context: Optional[dict] = None):
        self._log(logging.WARNING, message, context)

    def error(self, message: str, context: Optional[dict] = None):
        self._log(logging.ERROR, message, context)

    def debug(self, message: str, context: Optional[dict] = None):
        self._log(logging.DEBUG, message, context)

    def security_event(self, event_type: str, account_id: str, high_severity: bool = False, **fields):
        """Log an account activity event with its fields as context."""
        context = {"event_type": event_type, "account_id": account_id}
        context.update(fields)
        level = logging.WARNING if high_severity else logging.INFO
        self._log(level, f"Security event: {event_type}", context)


def get_logger(name: str) -> SecurityLogger:
    """Get logger instance for the specified module"""
    return SecurityLogger(name)
