"""
Domain rules shared by the stores: allowed values, field validation and the
derived values (progress, statuses, scores) computed on every save.

Everything here is pure (no database or request access) so it can be
unit tested directly.
"""

from __future__ import annotations

import calendar
import copy
import re
from datetime import date, datetime, timedelta
from typing import Any

from helpers import ValidationError


# ── Allowed values ──────────────────────────────────────────

EXAM_TYPES = ("UPSC", "SSC", "Banking", "Railway", "State PSC", "Defense", "Teaching", "Other")
PRIORITIES = ("High", "Medium", "Low")

TARGET_TYPES = ("pages", "chapters", "topics", "hours")
PLAN_STATUSES = ("Not Started", "In Progress", "Completed", "Paused")

SESSION_TYPES = ("Reading", "Practice", "Revision", "Test", "Notes")
MOODS = ("Excellent", "Good", "Average", "Poor", "Very Poor")

SYLLABUS_STATUSES = ("not_started", "in_progress", "completed", "needs_revision")
SYLLABUS_PRIORITIES = ("low", "medium", "high")
SYLLABUS_LEVELS = {1: "subject", 2: "unit", 3: "topic", 4: "subtopic"}

RESOURCE_CATEGORIES = ("Book", "NCERT", "Magazine", "Website", "Document", "Notes")
RESOURCE_PRIORITIES = ("Must Read", "Recommended", "Optional", "Reference")
RESOURCE_STATUSES = ("Not Started", "In Progress", "Completed", "On Hold")
EXAM_RELEVANCE = ("Prelims", "Mains", "Interview", "Optional")
TEMPLATE_CATEGORIES = ("UPSC-General", "UPSC-Optional", "State-PCS", "Banking", "SSC")

NEWS_SOURCES = ("The Hindu", "Indian Express", "PIB", "Livemint", "Economic Times", "Other")
NEWS_CATEGORIES = (
    "Polity & Governance", "Economy", "International Relations",
    "Environment & Ecology", "Science & Technology", "Social Issues",
    "Internal Security", "History & Culture", "Geography", "Agriculture",
    "Disaster Management", "Ethics", "Miscellaneous",
)

GROUP_PRIVACY = ("public", "private", "invite-only")
MEMBER_ROLES = ("admin", "moderator", "member")

ACTIVITY_TYPES = (
    "study_session_completed", "daily_goal_completed", "book_chapter_completed",
    "book_finished", "syllabus_topic_completed", "study_streak_achieved",
    "mock_test_completed", "score_improved", "rank_achieved", "milestone_reached",
    "member_joined", "member_left", "group_challenge_completed",
    "leaderboard_position_changed", "badge_earned", "level_up", "personal_record",
    "consistency_achievement", "permission_granted", "data_shared",
    "help_provided", "motivation_given",
)
VISIBILITIES = ("public", "group", "friends", "private")
REACTIONS = ("like", "love", "celebrate", "support", "motivate")
ACTIVITY_PRIORITIES = ("low", "normal", "high", "milestone")

PERMISSION_STATUSES = ("pending", "active", "revoked", "expired")
RENEWAL_PERIODS = ("1week", "1month", "3months", "6months")

PERMISSION_CATEGORIES: dict[str, tuple[str, ...]] = {
    "studyTime": ("dailyHours", "weeklyTrends", "studyStreak", "sessionHistory"),
    "goals": ("dailyGoals", "monthlyPlans", "completionRate", "targetProgress"),
    "books": ("bookList", "readingProgress", "chaptersCompleted", "readingSpeed"),
    "syllabus": ("topicsCompleted", "subjectProgress", "overallCompletion", "weakAreas"),
    "sessions": ("sessionDuration", "focusTime", "breakPatterns", "studyMethods"),
    "performance": ("testScores", "mockResults", "improvementTrends", "rankings"),
    "profile": ("name", "examTypes", "targetDate", "profilePicture"),
}

EMAIL_RE = re.compile(r"^\S+@\S+\.\S+$")


# ── Validation ──────────────────────────────────────────────

class Checker:
    """Collects field errors so a request reports all of them at once."""

    def __init__(self) -> None:
        self.errors: list[str] = []

    def fail(self, message: str) -> None:
        self.errors.append(message)

    def required(self, value: Any, message: str) -> bool:
        if value is None or (isinstance(value, str) and not value.strip()):
            self.errors.append(message)
            return False
        return True

    def max_length(self, value: Any, limit: int, message: str) -> None:
        if isinstance(value, str) and len(value) > limit:
            self.errors.append(message)

    def choice(self, value: Any, options: tuple, field: str) -> None:
        if value is not None and value not in options:
            self.errors.append(f"`{value}` is not a valid value for {field}")

    def choices(self, values: Any, options: tuple, field: str) -> None:
        for value in values or []:
            self.choice(value, options, field)

    def number(self, value: Any, message: str, *, minimum: float | None = None,
               maximum: float | None = None, integer: bool = True) -> float | int | None:
        """Coerce *value* to a number within bounds; records *message* on failure."""
        if value is None or value == "":
            return None
        try:
            num = int(value) if integer else float(value)
        except (TypeError, ValueError):
            self.errors.append(message)
            return None
        if integer and isinstance(value, float) and not value.is_integer():
            self.errors.append(message)
            return None
        if (minimum is not None and num < minimum) or (maximum is not None and num > maximum):
            self.errors.append(message)
            return None
        return num

    def check(self) -> None:
        if self.errors:
            raise ValidationError(self.errors)


# ── Progress helpers ────────────────────────────────────────

def percentage(part: float, whole: float) -> int:
    """round(part / whole * 100), 0 when whole is 0."""
    if not whole:
        return 0
    return int(round(part / whole * 100))


def clamp(value: int, upper: int) -> int:
    return max(0, min(value, upper))


def monthly_plan_status(completed: int, target: int, current: str = "Not Started",
                        progress_changed: bool = True) -> str:
    """Derive a plan status from its progress.

    A Paused plan with partial progress stays paused until its progress moves.
    """
    if completed <= 0:
        return "Not Started"
    if completed >= target:
        return "Completed"
    if current == "Paused" and not progress_changed:
        return "Paused"
    return "In Progress"


def session_duration(start: datetime, end: datetime) -> int:
    """Whole minutes between start and end."""
    return int(round((end - start).total_seconds() / 60))


# ── Syllabus ────────────────────────────────────────────────

def rollup_status(child_statuses: list[str]) -> str | None:
    """Status a parent takes from its active children; None when there are none."""
    if not child_statuses:
        return None
    completed = sum(1 for s in child_statuses if s == "completed")
    ratio = completed / len(child_statuses)
    if ratio == 1:
        return "completed"
    if ratio > 0:
        return "in_progress"
    return "not_started"


_PRIORITY_SCORE = {"high": 3, "medium": 2, "low": 1}
_STATUS_SCORE = {"needs_revision": 3, "not_started": 2, "in_progress": 1}


def days_since(stamp: str | None, now: datetime, default: float = 30) -> float:
    """Fractional days elapsed since *stamp*; *default* when never stamped."""
    if not stamp:
        return default
    try:
        then = datetime.fromisoformat(stamp)
    except ValueError:
        return default
    return max(0.0, (now - then).total_seconds() / 86400)


def recommendation_score(priority: str, status: str, days_since_studied: float) -> float:
    return (
        _PRIORITY_SCORE.get(priority, 1)
        + _STATUS_SCORE.get(status, 1)
        + min(days_since_studied / 7, 3)
    )


# ── UPSC resources ──────────────────────────────────────────

def resource_rollup(chapters: list[dict], status: str, started_at: str | None,
                    completed_at: str | None, now: str) -> dict[str, Any]:
    """Status, timestamps and hours a resource takes from its chapters.

    Resources without chapters keep their manual status.
    """
    result: dict[str, Any] = {
        "status": status,
        "started_at": started_at,
        "completed_at": completed_at,
        "actual_hours": None,
    }
    if not chapters:
        return result
    done = sum(1 for c in chapters if c.get("completed"))
    if done == 0:
        result["status"] = "Not Started"
    elif done == len(chapters):
        result["status"] = "Completed"
        result["completed_at"] = completed_at or now
    else:
        result["status"] = "In Progress"
        result["started_at"] = started_at or now
    result["actual_hours"] = sum(int(c.get("timeSpent") or 0) for c in chapters) / 60
    return result


def resource_completion(chapters: list[dict], status: str) -> float:
    if chapters:
        done = sum(1 for c in chapters if c.get("completed"))
        return done / len(chapters) * 100
    return 100 if status == "Completed" else 0


# ── Newspaper analysis ──────────────────────────────────────

def analysis_completion_status(article_count: int, time_spent: int) -> str:
    if article_count > 0:
        return "Completed"
    if time_spent > 0:
        return "In Progress"
    return "Not Started"


def revision_urgency(age_days: float) -> str | None:
    """Due under a week old, Overdue at 1-2 weeks, Critical up to 30 days."""
    if age_days < 0 or age_days >= 30:
        return None
    if age_days < 7:
        return "Due"
    if age_days < 14:
        return "Overdue"
    return "Critical"


def month_bounds(year: int, month: int) -> tuple[str, str]:
    last = calendar.monthrange(year, month)[1]
    return date(year, month, 1).isoformat(), date(year, month, last).isoformat()


# ── Group activity ──────────────────────────────────────────

ACTIVITY_POINTS = {
    "study_session_completed": 10,
    "daily_goal_completed": 15,
    "book_chapter_completed": 20,
    "book_finished": 50,
    "syllabus_topic_completed": 25,
    "study_streak_achieved": 30,
    "mock_test_completed": 40,
    "badge_earned": 100,
    "milestone_reached": 75,
    "member_joined": 5,
    "permission_granted": 5,
    "help_provided": 20,
}

_PRIORITY_MULTIPLIER = {"low": 1, "normal": 1.2, "high": 1.5, "milestone": 2}


def activity_points(activity_type: str) -> int:
    return ACTIVITY_POINTS.get(activity_type, 10)


def activity_score(points: int, reactions: int, comments: int,
                   priority: str = "normal", highlight: bool = False) -> int:
    score = (points + reactions * 2 + comments * 5) * _PRIORITY_MULTIPLIER.get(priority, 1)
    if highlight:
        score *= 1.5
    return int(round(score))


def display_text(activity_type: str, user_name: str | None, title: str,
                 description: str, metadata: dict) -> str:
    name = user_name or "Someone"
    meta = metadata or {}
    if activity_type == "study_session_completed":
        return f"{name} completed a {meta.get('duration')}min study session on {meta.get('subject')}"
    if activity_type == "daily_goal_completed":
        return f'{name} completed their daily goal: "{title}"'
    if activity_type == "book_chapter_completed":
        return f'{name} finished chapter "{meta.get("chapterName")}" in {meta.get("bookTitle")}'
    if activity_type == "book_finished":
        return f'{name} completed reading "{meta.get("bookTitle")}"'
    if activity_type == "study_streak_achieved":
        return f"{name} achieved a {meta.get('streakCount')}-day study streak!"
    if activity_type == "mock_test_completed":
        return f"{name} scored {meta.get('score')}/{meta.get('maxScore')} in {meta.get('testType')}"
    if activity_type == "badge_earned":
        return f'{name} earned the "{meta.get("badgeType")}" badge!'
    if activity_type == "milestone_reached":
        return f"{name} reached a new milestone: {title}"
    if activity_type == "member_joined":
        return f"{name} joined the group! Welcome!"
    if activity_type == "leaderboard_position_changed":
        return f"{name} moved to position #{meta.get('position')} on the leaderboard!"
    return description or f"{name} achieved something great!"


def leaderboard_start(period: str, now: datetime) -> datetime:
    """Start of the leaderboard window; weeks start on Sunday."""
    today = datetime(now.year, now.month, now.day)
    if period == "day":
        return today
    if period == "week":
        return today - timedelta(days=(today.weekday() + 1) % 7)
    if period == "month":
        return today.replace(day=1)
    return today - timedelta(days=7)


# ── Permission matrix ───────────────────────────────────────

def default_permission_matrix() -> dict[str, dict[str, Any]]:
    """Everything off except the basic profile card."""
    matrix = {}
    for category, details in PERMISSION_CATEGORIES.items():
        enabled = category == "profile"
        matrix[category] = {
            "enabled": enabled,
            "details": {d: enabled for d in details},
        }
    return matrix


def merge_permissions(base: dict | None, updates: dict | None) -> dict[str, dict[str, Any]]:
    """Overlay user-supplied categories onto *base*, ignoring unknown keys."""
    matrix = copy.deepcopy(base) if base else default_permission_matrix()
    for category, spec in (updates or {}).items():
        if category not in PERMISSION_CATEGORIES or not isinstance(spec, dict):
            continue
        entry = matrix.setdefault(category, {"enabled": False, "details": {}})
        if "enabled" in spec:
            entry["enabled"] = bool(spec["enabled"])
        for detail, flag in (spec.get("details") or {}).items():
            if detail in PERMISSION_CATEGORIES[category]:
                entry["details"][detail] = bool(flag)
    return matrix


def enabled_categories(matrix: dict) -> list[str]:
    return [c for c, spec in matrix.items() if spec.get("enabled")]


def matrix_allows(matrix: dict, category: str, detail: str | None = None) -> bool:
    entry = matrix.get(category)
    if not entry or not entry.get("enabled"):
        return False
    if detail:
        return entry.get("details", {}).get(detail) is True
    return True


def grant(matrix: dict, category: str, detail: str | None = None) -> bool:
    """Enable a category (all details when *detail* is None)."""
    if category not in matrix:
        return False
    entry = matrix[category]
    entry["enabled"] = True
    if detail is None:
        for key in entry["details"]:
            entry["details"][key] = True
    elif detail in entry["details"]:
        entry["details"][detail] = True
    return True


def revoke(matrix: dict, category: str, detail: str | None = None) -> bool:
    """Disable one detail, or the whole category; the category switches off
    once no detail remains enabled."""
    if category not in matrix:
        return False
    entry = matrix[category]
    if detail:
        entry["details"][detail] = False
        if not any(v is True for v in entry["details"].values()):
            entry["enabled"] = False
    else:
        entry["enabled"] = False
        for key in entry["details"]:
            entry["details"][key] = False
    return True


def add_months(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def renewal_end(start: datetime, period: str) -> datetime:
    if period == "1week":
        return start + timedelta(days=7)
    if period == "3months":
        return add_months(start, 3)
    if period == "6months":
        return add_months(start, 6)
    return add_months(start, 1)


def permission_lifecycle(status: str, is_permanent: bool, end_date: str | None,
                         renewal_period: str, now: datetime) -> tuple[str, str | None]:
    """Apply the save-time expiry rules; returns (status, end_date)."""
    if status == "active" and not is_permanent and end_date:
        try:
            if now > datetime.fromisoformat(end_date):
                status = "expired"
        except ValueError:
            pass
    if is_permanent:
        end_date = None
    elif not end_date and status == "active":
        end_date = renewal_end(now, renewal_period).isoformat()
    return status, end_date


def permission_is_valid(status: str, is_permanent: bool, end_date: str | None, now: datetime) -> bool:
    if status != "active":
        return False
    if not is_permanent and end_date:
        try:
            return now <= datetime.fromisoformat(end_date)
        except ValueError:
            return False
    return True
