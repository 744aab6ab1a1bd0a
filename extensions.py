"""
Shared Flask extension instances (rate limiter, CORS).

Created unbound here and attached to the app in create_app() so blueprints
can import them without a circular dependency on app.py.
"""

from __future__ import annotations

from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)
cors = CORS()


def init_extensions(app) -> None:
    """Bind the limiter and CORS to *app* using its config."""
    origins = [o.strip() for o in app.config.get("CORS_ORIGIN", "").split(",") if o.strip()]
    cors.init_app(app, resources={r"/api/*": {"origins": origins or "*"}}, supports_credentials=True)

    if "RATELIMIT_DEFAULT" not in app.config:
        window = app.config.get("RATE_LIMIT_WINDOW", 15)
        max_requests = app.config.get("RATE_LIMIT_MAX_REQUESTS", 1000)
        app.config["RATELIMIT_DEFAULT"] = f"{max_requests} per {window} minutes"
    limiter.init_app(app)
    if app.config.get("TESTING"):
        limiter.enabled = False
