"""Core routes: API health, readiness and liveness checks."""

from __future__ import annotations

import logging
import sqlite3
import time
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify

from database import get_db

logger = logging.getLogger(__name__)

bp = Blueprint("core", __name__)

_start_time = time.time()


@bp.route("/api/health")
def health():
    return jsonify({
        "success": True,
        "message": "Exam Prep Tracker API is running",
        "version": current_app.config.get("APP_VERSION", "1.0.0"),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": current_app.config.get("ENVIRONMENT", "development"),
        "uptimeSeconds": int(time.time() - _start_time),
    })


@bp.route("/ready")
def ready():
    try:
        get_db().execute("SELECT 1").fetchone()
        return jsonify({"status": "ready"}), 200
    except sqlite3.Error as exc:
        logger.error("Readiness check failed: %s", exc, exc_info=True)
        return jsonify({"status": "not_ready"}), 503


@bp.route("/live")
def live():
    return jsonify({"status": "alive"}), 200
