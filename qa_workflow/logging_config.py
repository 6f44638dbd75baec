"""
Logging configuration.

- Development: human-readable colored format
- Production: JSON format (log aggregator compatible)
- Log level: controlled via LOG_LEVEL env variable
"""
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from qa_workflow.config import settings

# Extra fields the controller attaches to its records
_EXTRA_FIELDS = (
    "event_type",
    "item_type",
    "item_id",
    "node_id",
    "user_id",
    "status",
)


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production / log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        for key in _EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val
        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Human-readable colored formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",      # cyan
        "INFO": "\033[32m",       # green
        "WARNING": "\033[33m",    # yellow
        "ERROR": "\033[31m",      # red
        "CRITICAL": "\033[35m",   # magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.now().strftime("%H:%M:%S")
        event = getattr(record, "event_type", None)
        event_str = f" [{event}]" if event else ""
        base = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}:{event_str} {record.getMessage()}"
        if record.exc_info and record.exc_info[0] is not None:
            base += "\n" + self.formatException(record.exc_info)
        return base


def configure_logging(level: Optional[str] = None, json_format: Optional[bool] = None) -> None:
    """
    Set up logging for the QA workflow service.

    Reads LOG_LEVEL from settings (default: INFO in production, DEBUG otherwise).
    Development  → ReadableFormatter on stderr
    Production   → JSONFormatter on stderr
    """
    if json_format is None:
        json_format = settings.is_production

    level_name = level or settings.log_level or ("INFO" if json_format else "DEBUG")
    numeric_level = getattr(logging, level_name.upper(), logging.INFO)

    formatter = JSONFormatter() if json_format else ReadableFormatter()

    # Single stream handler on the root logger
    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.setLevel(numeric_level)
    root.addHandler(handler)
    root.setLevel(numeric_level)

    # Quieten noisy libraries
    for noisy in ("sqlalchemy.engine", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging configured: level=%s format=%s",
        level_name, "JSON" if json_format else "readable"
    )
