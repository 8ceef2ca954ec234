"""
Structured logging configuration.

- JSON lines when LOG_FORMAT=json (production), readable text otherwise
- Every record carries the request id and the logged-in user id
- One access line per request; requests slower than LOG_SLOW_REQUEST_MS
  are logged at WARNING
"""

from __future__ import annotations

import json
import logging
import time
import uuid

from flask import Flask, g, has_request_context, request

# LogRecord attributes that are not caller-supplied `extra` fields
_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def _session_user_id() -> str:
    # Only report a user Flask-Login has already loaded; never trigger a load here
    user = g.get("_login_user")
    return getattr(user, "id", None) or "-"


class RequestContextFilter(logging.Filter):
    """Attach request_id and user_id ("-" outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            record.request_id = getattr(record, "request_id", g.get("request_id", "-"))
            record.user_id = getattr(record, "user_id", _session_user_id())
        else:
            record.request_id = getattr(record, "request_id", "-")
            record.user_id = getattr(record, "user_id", "-")
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line; extra= fields are merged in."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED and not key.startswith("_"):
                entry[key] = value
        entry.setdefault("request_id", "-")
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class AppLogHandler(logging.StreamHandler):
    """The stderr handler init_logging owns; replaced, never duplicated, on re-init."""


def init_logging(app: Flask) -> None:
    """Install the root handler and the request hooks for this app."""
    log_level = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    slow_ms = float(app.config.get("LOG_SLOW_REQUEST_MS", 1000))

    handler = AppLogHandler()
    handler.addFilter(RequestContextFilter())
    if app.config.get("LOG_FORMAT", "text") == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s [%(request_id)s user=%(user_id)s]: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))

    root = logging.getLogger()
    for existing in [h for h in root.handlers if isinstance(h, AppLogHandler)]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, log_level, logging.INFO))

    for noisy in ("werkzeug", "httpx", "openai", "anthropic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    access_log = logging.getLogger("access")

    @app.before_request
    def _start_request():
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        g.request_start = time.perf_counter()

    @app.after_request
    def _log_request(response):
        elapsed_ms = (time.perf_counter() - g.get("request_start", time.perf_counter())) * 1000
        response.headers["X-Request-ID"] = g.get("request_id", "-")
        level = logging.WARNING if elapsed_ms >= slow_ms else logging.INFO
        access_log.log(
            level,
            "%s %s %s %.0fms",
            request.method,
            request.path,
            response.status_code,
            elapsed_ms,
            extra={"duration_ms": round(elapsed_ms, 1), "status": response.status_code},
        )
        return response
