"""
Logging setup for QaHub.

One stderr handler on the root logger; module loggers
(``logging.getLogger(__name__)``) propagate to it.

    LOG_LEVEL   DEBUG in development, INFO in production, WARNING under tests
    LOG_FORMAT  "json" (one object per line) or "text"; json outside dev/tests

Inside a request every record is stamped with ``request_id``, ``user_id`` and
``tenant_id`` taken from ``flask.g`` so API logs can be joined per request.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from flask import g, has_app_context, has_request_context

# Attributes lifted from the record (``extra={...}`` or the context filter)
CONTEXT_FIELDS = ("request_id", "user_id", "tenant_id")
REQUEST_FIELDS = ("method", "path", "status", "duration_ms", "remote_addr")

QUIET_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine", "flask_limiter")


class RequestContextFilter(logging.Filter):
    def filter(self, record):
        if has_request_context() and has_app_context():
            for name in CONTEXT_FIELDS:
                if getattr(record, name, None) is None:
                    setattr(record, name, getattr(g, name, None))
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record):
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for name in CONTEXT_FIELDS + REQUEST_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    def __init__(self):
        super().__init__("%(asctime)s %(levelname)-7s %(name)s%(ctx)s: %(message)s", "%H:%M:%S")

    def format(self, record):
        request_id = getattr(record, "request_id", None)
        record.ctx = f" [{request_id}]" if request_id else ""
        return super().format(record)


def _defaults(app):
    if app.config.get("TESTING"):
        return "WARNING", "text"
    if app.config.get("DEBUG"):
        return "DEBUG", "text"
    return "INFO", "json"


def configure_logging(app):
    """Install the root handler according to LOG_LEVEL / LOG_FORMAT."""
    default_level, default_format = _defaults(app)
    level_name = (app.config.get("LOG_LEVEL") or default_level).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO
    fmt = (app.config.get("LOG_FORMAT") or default_format).lower()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if fmt == "json" else TextFormatter())
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    # create_app runs once per test session and per worker; never stack handlers
    root.handlers = [handler]
    root.setLevel(level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
    app.logger.setLevel(level)

    logging.getLogger(__name__).info("Logging ready level=%s format=%s", level_name, fmt)
