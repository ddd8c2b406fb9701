"""
Structured logging configuration.

LOG_FORMAT selects the output:
    json      one JSON object per line (production default)
    readable  colored single-line output (development default)
    auto      json unless DEBUG or TESTING

Workflow services log transitions with
``extra={"workflow_id", "action", "actor_id", "from_status", "to_status"}``.
RequestContextFilter adds the request id and the JWT user to every record
emitted while a request is active, so a transition line can be joined with
its access-log line.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Record attributes copied into structured output when present
WORKFLOW_FIELDS = ("workflow_id", "action", "actor_id", "from_status", "to_status", "auto_approved")
REQUEST_FIELDS = ("request_id", "user_id", "method", "path", "status", "duration_ms")


class RequestContextFilter(logging.Filter):
    """Attach request_id / user_id from flask.g to records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            if getattr(record, "request_id", None) is None:
                record.request_id = getattr(g, "request_id", None)
            if getattr(record, "user_id", None) is None:
                record.user_id = getattr(g, "jwt_user_id", None)
        return True


def _collect(record, fields):
    out = {}
    for key in fields:
        val = getattr(record, key, None)
        if val is not None:
            out[key] = val
    return out


class JSONFormatter(logging.Formatter):
    """JSON log formatter for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update(_collect(record, REQUEST_FIELDS))
        workflow = _collect(record, WORKFLOW_FIELDS)
        if workflow:
            entry["workflow"] = workflow
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Colored one-line formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"

        tags = [f"{k}={v}" for k, v in _collect(record, WORKFLOW_FIELDS).items()]
        rid = getattr(record, "request_id", None)
        if rid:
            tags.append(f"rid={rid}")
        if tags:
            line += f" [{' '.join(tags)}]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _use_json(app) -> bool:
    fmt = (app.config.get("LOG_FORMAT") or "auto").lower()
    if fmt in ("json", "readable"):
        return fmt == "json"
    return not (app.debug or app.testing)


def configure_logging(app):
    """Install a single stderr handler on the root logger.

    Level comes from LOG_LEVEL; without it DEBUG in development and INFO
    elsewhere.
    """
    as_json = _use_json(app)
    level_name = (app.config.get("LOG_LEVEL") or ("DEBUG" if app.debug else "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if as_json else ReadableFormatter())
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine", "alembic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)
    app.logger.debug("Logging configured: level=%s format=%s", level_name, "json" if as_json else "readable")
