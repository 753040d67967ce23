"""
Logging setup.

The service logs through the standard library. ``setup_logging`` is called
once at start-up and installs either a human-readable formatter or, with
``LOG_JSON=true``, a minimal one-object-per-line JSON formatter.
"""
import json
import logging
from typing import Optional


class JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter"""

    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "level": record.levelname,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_record)


def _get_formatter(log_json: bool) -> logging.Formatter:
    if log_json:
        return JsonFormatter()
    return logging.Formatter("[%(asctime)s] %(levelname)s in %(name)s: %(message)s")


def setup_logging(level: str = "INFO", log_json: bool = False, logger: Optional[logging.Logger] = None) -> logging.Logger:
    """Configure the given logger (root by default) with a single stream handler"""
    target = logger or logging.getLogger()
    target.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Idempotent across reloads
    for handler in list(target.handlers):
        if getattr(handler, "_cs_core_handler", False):
            target.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(_get_formatter(log_json))
    handler._cs_core_handler = True
    target.addHandler(handler)
    return target
