"""
Audit logging — records security-relevant events (registration, logins).

Events go to a dedicated "audit" logger so deployments can route them
separately from access logs.
"""

from __future__ import annotations

import logging

from flask import has_request_context, request

logger = logging.getLogger("audit")


def log_event(action: str, user_id: str | None = None, detail: str = "") -> None:
    """Emit a structured audit log line with the client address."""
    ip, ua = "", ""
    if has_request_context():
        ip = request.remote_addr or ""
        ua = request.headers.get("User-Agent", "")
    logger.info("audit: %s user_id=%s detail=%s ip=%s ua=%s", action, user_id, detail, ip, ua)
