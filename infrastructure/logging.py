"""Structured JSON logging for the gateway service."""
import json
import logging
import os
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Dict

# Attributes every LogRecord carries; anything else came in through `extra`.
_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def get_log_level() -> int:
    level = logging.getLevelName(os.getenv("APP__LOG_LEVEL", "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


class StructuredLogger:
    """Logger that outputs one JSON object per line, with keyword fields as context."""

    def __init__(self, service_name: str, level: int = logging.INFO):
        self.service_name = service_name
        self.logger = logging.getLogger(service_name)
        self.logger.setLevel(level)
        self.logger.propagate = False

        self.logger.handlers.clear()
        self.logger.addHandler(self._setup_handler(sys.stdout))

    def _setup_handler(self, stream) -> logging.Handler:
        handler = logging.StreamHandler(stream)
        handler.setFormatter(JsonFormatter(self.service_name))
        return handler

    def debug(self, message: str, **fields: Any) -> None:
        self.logger.debug(message, extra=fields)

    def info(self, message: str, **fields: Any) -> None:
        self.logger.info(message, extra=fields)

    def warning(self, message: str, **fields: Any) -> None:
        self.logger.warning(message, extra=fields)

    def error(self, message: str, exc_info: bool = False, **fields: Any) -> None:
        self.logger.error(message, exc_info=exc_info, extra=fields)


class JsonFormatter(logging.Formatter):
    def __init__(self, service_name: str):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_entry[key] = value

        if record.exc_info:
            log_entry["exception"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(log_entry, default=str)


_loggers: Dict[str, StructuredLogger] = {}


def get_logger(service_name: str, level: int | None = None) -> StructuredLogger:
    """Return the shared structured logger for a service, creating it on first use."""
    if service_name not in _loggers:
        _loggers[service_name] = StructuredLogger(
            service_name=service_name,
            level=level if level is not None else get_log_level(),
        )
    return _loggers[service_name]
