"""
Campus Study Buddy — Flask Web Application

JSON API for study-partner matchmaking: study-buddy requests, shared notes,
weekly timetables, peer connections, direct messages and an AI assistant.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from flask import Flask, Response, jsonify
from werkzeug.exceptions import HTTPException

from auth import auth_bp, login_manager
from blueprints import register_blueprints
from extensions import limiter
from storage import Storage, init_storage
from uploads import UploadError
from validation import ValidationError

logger = logging.getLogger(__name__)


def create_app(test_config: dict[str, Any] | None = None, storage: Storage | None = None) -> Flask:
    """Build the app. Each call gets its own store unless one is injected."""
    app = Flask(__name__)

    # Load config
    from config import config_by_name
    if test_config is not None:
        app.config.from_object(config_by_name["testing"])
        app.config.update(test_config)
    else:
        env = os.environ.get("FLASK_ENV", "development")
        cfg = config_by_name.get(env, config_by_name["development"])
        app.config.from_object(cfg)
        if hasattr(cfg, "validate"):
            cfg.validate()

    app.secret_key = app.config["SECRET_KEY"]
    Path(app.config["UPLOAD_DIR"]).mkdir(parents=True, exist_ok=True)

    # Structured logging
    from logging_config import init_logging
    init_logging(app)

    init_storage(app, storage)

    # Rate limiter (disabled in testing)
    limiter.init_app(app)
    if app.config.get("TESTING"):
        limiter.enabled = False

    app.register_blueprint(auth_bp)
    login_manager.init_app(app)
    register_blueprints(app)

    _register_error_handlers(app)

    @app.after_request
    def set_security_headers(response: Response) -> Response:
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        if not app.debug and not app.testing:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    return app


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ValidationError)
    def handle_validation_error(exc: ValidationError):
        return jsonify({"error": exc.message}), 400

    @app.errorhandler(UploadError)
    def handle_upload_error(exc: UploadError):
        return jsonify({"error": str(exc)}), 400

    @app.errorhandler(413)
    def handle_too_large(exc):
        return jsonify({"error": "File too large"}), 413

    @app.errorhandler(429)
    def handle_rate_limited(exc):
        return jsonify({"error": "Too many requests. Please slow down."}), 429

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return jsonify({"error": exc.description or exc.name}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        logger.exception("Unhandled error: %s", exc)
        return jsonify({"error": "Internal server error"}), 500


if __name__ == "__main__":
    create_app().run(debug=True, port=5001)
