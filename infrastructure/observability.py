"""Structured logging - JSON formatter and one-time setup"""
import json
import logging
from datetime import datetime, timezone


_EXTRA_KEYS = (
    "booking_id", "facility_id", "user_id", "waitlist_id",
    "error_code", "notification_type", "tick", "path",
)


class JSONFormatter(logging.Formatter):
    """Format logs as one JSON object per line"""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _EXTRA_KEYS:
            val = record.__dict__.get(key)
            if val is not None:
                log[key] = val
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False)


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Configure the root logger once"""
    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s - %(message)s",
        ))
    root = logging.getLogger()
    for existing in list(root.handlers):
        if getattr(existing, "_booking_core", False):
            root.removeHandler(existing)
    handler._booking_core = True
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
