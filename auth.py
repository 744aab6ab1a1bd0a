"""
User authentication: JWT bearer tokens resolved through Flask-Login.

Provides the /api/auth blueprint (register, login, profile, password and
progress counters). Uses werkzeug.security for password hashing via
UserStore and PyJWT for HS256 tokens.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime, timedelta, timezone

import jwt
from flask import Blueprint, current_app, g, request
from flask_login import LoginManager, UserMixin, login_required

from audit import log_event
from db_stores import UserStore
from extensions import limiter
from helpers import (
    BadRequest,
    Unauthorized,
    current_user_id,
    error_response,
    json_body,
    success_response,
)

logger = logging.getLogger(__name__)

LOCKOUT_THRESHOLD = 5
LOCKOUT_MINUTES = 15

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days", "": "seconds"}

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")
login_manager = LoginManager()


class User(UserMixin):
    """Wraps a DB user row for Flask-Login."""

    def __init__(self, id: int, name: str, email: str):
        self.id = id
        self.name = name
        self.email = email

    @staticmethod
    def get(user_id: int):
        row = UserStore.get(user_id)
        if row and row["is_active"]:
            return User(row["id"], row["name"], row["email"])
        return None


# ── Tokens ──────────────────────────────────────────────────

def parse_duration(value: str) -> timedelta:
    """Turn "30d", "12h", "45m" or a bare number of seconds into a timedelta."""
    match = _DURATION_RE.match(str(value or ""))
    if not match:
        return timedelta(days=30)
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit]: int(amount)})


def generate_token(user_id: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "id": user_id,
        "iat": now,
        "exp": now + parse_duration(current_app.config.get("JWT_EXPIRE", "30d")),
    }
    return jwt.encode(
        payload,
        current_app.config["JWT_SECRET"],
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )


def decode_token(token: str) -> dict:
    """Decode and verify a token; raises Unauthorized with the reason."""
    algorithm = current_app.config.get("JWT_ALGORITHM", "HS256")
    try:
        return jwt.decode(token, current_app.config["JWT_SECRET"], algorithms=[algorithm])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("Invalid token")


@login_manager.request_loader
def load_user_from_request(req):
    header = req.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        g.auth_error = "Not authorized, no token"
        return None
    token = header[len("Bearer "):].strip()
    if not token:
        g.auth_error = "Not authorized, no token"
        return None
    try:
        payload = decode_token(token)
    except Unauthorized as e:
        g.auth_error = e.message
        return None
    try:
        user_id = int(payload.get("id"))
    except (TypeError, ValueError):
        g.auth_error = "Invalid token"
        return None
    user = User.get(user_id)
    if user is None:
        g.auth_error = "Not authorized, user not found"
    else:
        g.user_id = user.id
    return user


@login_manager.unauthorized_handler
def unauthorized():
    return error_response(g.get("auth_error", "Not authorized, no token"), 401)


def _auth_payload(user_id: int, message: str, status: int = 200):
    user = UserStore.to_api(UserStore.get(user_id))
    return success_response({"user": user, "token": generate_token(user_id)}, message, status)


# ── Routes ──────────────────────────────────────────────────

@auth_bp.route("/register", methods=["POST"])
@limiter.limit("5 per hour")
def register():
    data = json_body()
    email = str(data.get("email") or "").strip().lower()
    if email and UserStore.get_by_email(email):
        return error_response("User already exists with this email", 400)

    user_id = UserStore.create(data)
    log_event("register", user_id, f"email={email}")
    return _auth_payload(user_id, "Registration successful", 201)


@auth_bp.route("/login", methods=["POST"])
@limiter.limit("10 per 15 minutes")
def login():
    data = json_body()
    email = str(data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    if not email or not password:
        raise BadRequest("Please provide email and password")

    row = UserStore.get_by_email(email)
    if not row or not row["is_active"]:
        return error_response("Invalid credentials", 401)

    # Check account lockout
    if row["locked_until"]:
        try:
            remaining = (datetime.fromisoformat(row["locked_until"]) - datetime.now()).total_seconds()
        except (ValueError, TypeError):
            remaining = 0
        if remaining > 0:
            mins = math.ceil(remaining / 60)
            log_event("login_locked", row["id"], f"email={email}")
            return error_response(f"Account temporarily locked. Try again in {mins} minute(s).", 401)

    if not UserStore.check_password(row, str(password)):
        attempts = row["login_attempts"] + 1
        locked_until = ""
        if attempts >= LOCKOUT_THRESHOLD:
            locked_until = (datetime.now() + timedelta(minutes=LOCKOUT_MINUTES)).isoformat()
        UserStore.record_login_failure(row["id"], attempts, locked_until)
        log_event("login_failed", row["id"], f"email={email} attempts={attempts}")
        return error_response("Invalid credentials", 401)

    # Success: reset lockout fields
    UserStore.reset_login(row["id"])
    log_event("login_success", row["id"])
    return _auth_payload(row["id"], "Login successful")


@auth_bp.route("/me")
@login_required
def me():
    uid = current_user_id()
    UserStore.touch(uid)
    return success_response({"user": UserStore.to_api(UserStore.get(uid), full=True)})


@auth_bp.route("/profile", methods=["PUT"])
@login_required
def update_profile():
    user = UserStore.update_profile(current_user_id(), json_body())
    return success_response({"user": user}, "Profile updated successfully")


@auth_bp.route("/password", methods=["PUT"])
@login_required
def change_password():
    data = json_body()
    current_password = data.get("currentPassword")
    new_password = data.get("newPassword")
    if not current_password or not new_password:
        raise BadRequest("Please provide current and new password")

    uid = current_user_id()
    if not UserStore.check_password(UserStore.get(uid), str(current_password)):
        log_event("password_change_failed", uid)
        raise BadRequest("Current password is incorrect")

    UserStore.set_password(uid, new_password)
    log_event("password_change", uid)
    return success_response({"token": generate_token(uid)}, "Password changed successfully")


@auth_bp.route("/progress", methods=["PUT"])
@login_required
def update_progress():
    data = json_body()
    value = data.get("value", 1)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        try:
            value = float(value)
        except (TypeError, ValueError):
            raise BadRequest("Progress value must be a number")
    stats = UserStore.update_progress(current_user_id(), data.get("action"), value)
    return success_response({"progressStats": stats}, "Progress stats updated")
