"""
Structured Logging Configuration Module

Every manager logs through ``log_action``: a message plus who acted
(``user_id``), what was done (``action``), on what (``resource``, e.g.
``client:42``) and any extra payload such as amounts or rejection reasons.
``setup_logging`` renders those entries as one JSON object per line, or as
plain text for the seed command and local runs.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


ROOT_LOGGER = "crediario"

# LogRecord attributes filled in by log_action
ACTION_FIELDS = ("user_id", "action", "resource", "extra")


def action_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """The action fields present on a record"""
    fields = {}
    for name in ACTION_FIELDS:
        value = getattr(record, name, None)
        if value is not None:
            fields[name] = value
    return fields


class JSONFormatter(logging.Formatter):
    """One JSON object per entry, without empty fields"""

    def format(self, record):
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(action_fields(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ActionTextFormatter(logging.Formatter):
    """Plain lines; action and resource appended in brackets when present"""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record):
        line = super().format(record)
        fields = action_fields(record)
        tags = " ".join(str(fields[k]) for k in ("action", "resource") if k in fields)
        return f"{line} [{tags}]" if tags else line


def setup_logging(level: str = "INFO", logger_name: str = ROOT_LOGGER,
                  log_format: str = "json", log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the application logger; calling it again replaces the handler.

    Args:
        level: Log level name
        logger_name: Logger to configure, ``crediario`` by default
        log_format: "json" or "text"
        log_file: Write here instead of stderr
    """
    logger = logging.getLogger(logger_name)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.FileHandler(log_file) if log_file else logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if log_format == "json" else ActionTextFormatter())

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False
    return logger


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               user_id: Optional[str] = None, action: Optional[str] = None,
               resource: Optional[str] = None, extra: Optional[dict] = None):
    """
    Log a domain action with its structured fields.

    Args:
        logger: Area logger, e.g. ``crediario.ledger``
        level: Level name (info, warning, ...)
        message: Human-readable summary
        user_id: Acting user
        action: Operation name, e.g. ``record_payment``
        resource: ``<kind>:<id>`` of the affected record
        extra: Additional payload
    """
    fields = {"user_id": user_id, "action": action, "resource": resource, "extra": extra}
    logger.log(getattr(logging, level.upper()), message,
               extra={k: v for k, v in fields.items() if v})
