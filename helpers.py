"""
Shared helpers used across blueprints and stores.

Response envelopes, API exceptions, request parsing, pagination and the
small value coercions every resource needs.
"""

from __future__ import annotations

import json
import re
from datetime import date, datetime, timezone
from typing import Any

from flask import jsonify, request
from flask_login import current_user


# ── Errors ──────────────────────────────────────────────────

class ApiError(Exception):
    """An error that maps directly onto an HTTP status and envelope message."""

    status_code = 400

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class BadRequest(ApiError):
    status_code = 400


class Unauthorized(ApiError):
    status_code = 401


class Forbidden(ApiError):
    status_code = 403


class NotFound(ApiError):
    status_code = 404


class ValidationError(ApiError):
    """One or more field validation failures, reported together."""

    status_code = 400

    def __init__(self, messages: list[str] | str):
        if isinstance(messages, str):
            messages = [messages]
        self.messages = list(messages)
        super().__init__(", ".join(self.messages))


# ── Envelopes ───────────────────────────────────────────────

_MISSING = object()


def success_response(data: Any = _MISSING, message: str | None = None, status: int = 200, **extra: Any):
    """Standard success envelope: {success, message?, data?, ...extra}."""
    body: dict[str, Any] = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not _MISSING:
        body["data"] = data
    body.update(extra)
    return jsonify(body), status


def error_response(message: str, status: int = 400):
    return jsonify({"success": False, "message": message}), status


# ── Request access ──────────────────────────────────────────

def current_user_id() -> int:
    """Return the authenticated user's ID (routes are guarded by login_required)."""
    return int(current_user.id)


def json_body() -> dict[str, Any]:
    """Request JSON as a dict; empty or non-object bodies become {}."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def arg_int(name: str, default: int | None = None) -> int | None:
    raw = request.args.get(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


# ── Pagination ──────────────────────────────────────────────

def paginate_args(default_limit: int = 20, max_limit: int = 100) -> tuple[int, int]:
    """Extract page/limit from request.args. Returns (page, limit)."""
    try:
        page = max(1, int(request.args.get("page", 1)))
    except (ValueError, TypeError):
        page = 1
    try:
        limit = min(max_limit, max(1, int(request.args.get("limit", default_limit))))
    except (ValueError, TypeError):
        limit = default_limit
    return page, limit


def page_count(total: int, limit: int) -> int:
    return (total + limit - 1) // limit if limit else 0


# ── Value coercion ──────────────────────────────────────────

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")


def now_iso() -> str:
    return datetime.now().isoformat()


def parse_datetime(value: Any) -> datetime | None:
    """Parse an ISO date/datetime string into a naive local datetime."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def parse_date(value: Any) -> str | None:
    """Normalise a date or datetime string to YYYY-MM-DD."""
    if value in (None, ""):
        return None
    text = str(value).strip()
    if DATE_RE.match(text) and len(text) == 10:
        try:
            return date.fromisoformat(text).isoformat()
        except ValueError:
            return None
    parsed = parse_datetime(text)
    return parsed.date().isoformat() if parsed else None


def iso_or_none(value: Any) -> str | None:
    parsed = parse_datetime(value)
    return parsed.isoformat() if parsed else None


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def loads_list(raw: Any) -> list:
    """Decode a JSON TEXT column holding a list."""
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return []
    return value if isinstance(value, list) else []


def loads_dict(raw: Any) -> dict:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return {}
    return value if isinstance(value, dict) else {}


def string_list(value: Any) -> list[str]:
    """Accept a list or a comma separated string; drop blanks, trim items."""
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple)):
        return []
    return [str(v).strip() for v in value if str(v).strip()]


def contains_ci(needle: str, *haystacks: Any) -> bool:
    """Case-insensitive substring match over strings and lists of strings."""
    needle = needle.lower()
    for hay in haystacks:
        if isinstance(hay, (list, tuple)):
            if any(needle in str(h).lower() for h in hay):
                return True
        elif hay and needle in str(hay).lower():
            return True
    return False


def like_pattern(text: str) -> str:
    """Escape LIKE wildcards and wrap in %...% (use with ESCAPE '\\')."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"
