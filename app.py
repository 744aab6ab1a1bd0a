"""
Exam Prep Tracker: Flask REST API

JSON backend for exam preparation: books, daily goals, monthly plans, study
sessions, syllabus trees, UPSC resources, newspaper analysis and study groups.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from typing import Any

from flask import Flask, Response, request
from werkzeug.exceptions import HTTPException

import database
from auth import login_manager
from blueprints import register_blueprints
from extensions import init_extensions
from helpers import ApiError, error_response

logger = logging.getLogger(__name__)


def create_app(test_config: dict[str, Any] | None = None) -> Flask:
    app = Flask(__name__)

    # Load config
    from config import TestingConfig, config_by_name
    if test_config is not None:
        app.config.from_object(TestingConfig)
        app.config.update(test_config)
    else:
        env = os.environ.get("FLASK_ENV", "development")
        cfg = config_by_name.get(env, config_by_name["development"])
        app.config.from_object(cfg)
        if hasattr(cfg, "validate"):
            cfg.validate()

    app.secret_key = app.config["SECRET_KEY"]
    app.json.sort_keys = False

    # Structured logging
    from logging_config import init_logging
    init_logging(app)

    # Register database teardown
    database.init_app(app)

    # Rate limiter and CORS (limiter disabled in testing)
    init_extensions(app)

    # Bearer-token login manager and all API blueprints
    login_manager.init_app(app)
    register_blueprints(app)

    _register_error_handlers(app)

    @app.after_request
    def set_security_headers(response: Response) -> Response:
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        if not app.debug:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    # Background jobs (expired permission sweep)
    if app.config.get("SCHEDULER_ENABLED") and not app.config.get("TESTING"):
        from scheduler import init_scheduler
        init_scheduler(app)

    return app


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ApiError)
    def handle_api_error(exc: ApiError):
        return error_response(exc.message, exc.status_code)

    @app.errorhandler(404)
    def handle_not_found(exc):
        return error_response(f"Route {request.path} not found", 404)

    @app.errorhandler(405)
    def handle_method_not_allowed(exc):
        return error_response(f"Method {request.method} not allowed on {request.path}", 405)

    @app.errorhandler(429)
    def handle_rate_limited(exc):
        return error_response("Too many requests from this IP, please try again later.", 429)

    @app.errorhandler(sqlite3.IntegrityError)
    def handle_integrity_error(exc):
        logger.warning("Integrity error on %s %s: %s", request.method, request.path, exc)
        return error_response("Duplicate field value entered", 400)

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return error_response(exc.description or exc.name, exc.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return error_response("Server Error", 500)


if __name__ == "__main__":
    create_app().run(debug=True, port=int(os.environ.get("PORT", 5000)))
