"""
Logging for the Exam Prep Tracker API.

Production emits one JSON object per line; development gets plain text.
Every record logged while a request is in flight carries that request's id
and, once the bearer token has been resolved, the caller's user id. The id
is taken from an incoming X-Request-ID header when a proxy supplies one and
echoed back on the response.
"""

from __future__ import annotations

import json
import logging
import time
import uuid

from flask import Flask, g, has_request_context, request

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s [%(request_id)s user=%(user_id)s]: %(message)s"

# Orchestrator probes; logging them would drown the access log.
QUIET_PATHS = frozenset({"/ready", "/live"})

MAX_REQUEST_ID = 32


class RequestContextFilter(logging.Filter):
    """Stamp request_id and user_id onto every record ("-" outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            record.request_id = g.get("request_id", "-")
            record.user_id = g.get("user_id", "-")
        else:
            record.request_id = getattr(record, "request_id", "-")
            record.user_id = getattr(record, "user_id", "-")
        return True


class JSONFormatter(logging.Formatter):
    """Emit log records as single-line JSON."""

    EXTRA_KEYS = ("request_id", "user_id", "method", "path", "status", "duration_ms")

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in self.EXTRA_KEYS:
            value = getattr(record, key, None)
            if value not in (None, "-"):
                entry[key] = value
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def access_log_level(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


def init_logging(app: Flask) -> None:
    """Configure logging based on app config."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler()
    handler.addFilter(RequestContextFilter())
    if app.config.get("LOG_FORMAT", "text") == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(handler)

    # Quiet noisy libraries
    logging.getLogger("werkzeug").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)

    @app.before_request
    def _attach_request_id():
        incoming = request.headers.get("X-Request-ID", "").strip()
        g.request_id = incoming[:MAX_REQUEST_ID] if incoming else uuid.uuid4().hex[:12]
        g.request_start = time.time()

    @app.after_request
    def _log_request(response):
        response.headers["X-Request-ID"] = g.get("request_id", "-")
        if request.path in QUIET_PATHS:
            return response
        duration_ms = (time.time() - g.get("request_start", time.time())) * 1000
        app.logger.log(
            access_log_level(response.status_code),
            "%s %s %s %.0fms",
            request.method,
            request.path,
            response.status_code,
            duration_ms,
            extra={
                "method": request.method,
                "path": request.path,
                "status": response.status_code,
                "duration_ms": round(duration_ms, 1),
            },
        )
        return response
