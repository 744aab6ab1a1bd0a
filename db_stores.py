"""
DB-backed store classes for the personal study records.

Users, books, daily goals, monthly plans and study sessions. Each store
validates input with models.Checker, applies the save-time rules from
models.py and returns camelCase dicts ready for the JSON envelope.
"""

from __future__ import annotations

import json
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any

from werkzeug.security import check_password_hash, generate_password_hash

from database import get_db
from helpers import BadRequest, Forbidden, NotFound, now_iso, parse_date, parse_datetime, loads_list
from models import (
    EMAIL_RE,
    EXAM_TYPES,
    MOODS,
    PLAN_STATUSES,
    PRIORITIES,
    SESSION_TYPES,
    TARGET_TYPES,
    Checker,
    clamp,
    monthly_plan_status,
    percentage,
    session_duration,
)


def _pick(data: dict, key: str, current: dict | None, default: Any = None) -> Any:
    """Value from the request when present, else the stored value, else *default*."""
    if data.get(key) is not None:
        return data[key]
    if current is not None and current.get(key) is not None:
        return current[key]
    return default


# ── Users ─────────────────────────────────────────────────────────────


class UserStore:
    """Accounts, study preferences and progress counters."""

    @staticmethod
    def get(user_id: int) -> dict | None:
        db = get_db()
        row = db.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return dict(row) if row else None

    @staticmethod
    def get_by_email(email: str) -> dict | None:
        db = get_db()
        row = db.execute("SELECT * FROM users WHERE email = ?", (email.strip().lower(),)).fetchone()
        return dict(row) if row else None

    @staticmethod
    def name_of(user_id: int) -> str:
        db = get_db()
        row = db.execute("SELECT name FROM users WHERE id = ?", (user_id,)).fetchone()
        return row["name"] if row else ""

    @staticmethod
    def validate_password(password: Any, checker: Checker) -> None:
        if checker.required(password, "Please provide a password"):
            if len(str(password)) < 6:
                checker.fail("Password must be at least 6 characters")

    @staticmethod
    def _validate_profile(data: dict, current: dict | None, checker: Checker) -> dict:
        name = _pick(data, "name", current)
        if checker.required(name, "Please provide a name"):
            name = str(name).strip()
            checker.max_length(name, 50, "Name cannot be more than 50 characters")

        exam_types = _pick(data, "examTypes", current, [])
        if not isinstance(exam_types, list) or not exam_types:
            checker.fail("Please select at least one exam type")
            exam_types = []
        else:
            checker.choices(exam_types, EXAM_TYPES, "examTypes")

        exam_date = _pick(data, "examDate", current)
        if checker.required(exam_date, "Please provide exam date"):
            parsed = parse_datetime(exam_date)
            if parsed is None:
                checker.fail("Please provide exam date")
            else:
                exam_date = parsed.isoformat()

        target_score = data.get("targetScore", current.get("targetScore") if current else None)
        if target_score is not None:
            target_score = checker.number(target_score, "Target score must be between 0 and 100",
                                          minimum=0, maximum=100)

        prefs = dict(current["studyPreferences"]) if current else {
            "dailyStudyHours": 6, "preferredSubjects": [], "studyTimeSlots": [], "breakDuration": 15,
        }
        incoming = data.get("studyPreferences")
        if isinstance(incoming, dict):
            prefs.update({k: v for k, v in incoming.items() if k in prefs})
        hours = checker.number(prefs["dailyStudyHours"], "Daily study hours must be between 1 and 16",
                               minimum=1, maximum=16)
        brk = checker.number(prefs["breakDuration"], "Break duration must be between 5 and 60 minutes",
                             minimum=5, maximum=60)
        prefs["dailyStudyHours"] = hours if hours is not None else 6
        prefs["breakDuration"] = brk if brk is not None else 15

        notify = dict(current["notifications"]) if current else {
            "email": True, "dailyReminder": True, "weeklyReport": True, "goalDeadline": True,
        }
        incoming = data.get("notifications")
        if isinstance(incoming, dict):
            notify.update({k: bool(v) for k, v in incoming.items() if k in notify})

        return {
            "name": name,
            "exam_types": json.dumps(exam_types),
            "exam_date": exam_date or "",
            "target_score": target_score,
            "daily_study_hours": prefs["dailyStudyHours"],
            "preferred_subjects": json.dumps(list(prefs.get("preferredSubjects") or [])),
            "study_time_slots": json.dumps(list(prefs.get("studyTimeSlots") or [])),
            "break_duration": prefs["breakDuration"],
            "notify_email": int(notify["email"]),
            "notify_daily_reminder": int(notify["dailyReminder"]),
            "notify_weekly_report": int(notify["weeklyReport"]),
            "notify_goal_deadline": int(notify["goalDeadline"]),
            "profile_picture": _pick(data, "profilePicture", current, ""),
        }

    @staticmethod
    def create(data: dict) -> int:
        checker = Checker()
        email = data.get("email")
        if checker.required(email, "Please provide an email"):
            email = str(email).strip().lower()
            if not EMAIL_RE.match(email):
                checker.fail("Please provide a valid email")
        UserStore.validate_password(data.get("password"), checker)
        fields = UserStore._validate_profile(data, None, checker)
        checker.check()

        now = now_iso()
        fields.update({
            "email": email,
            "password_hash": generate_password_hash(str(data["password"])),
            "last_active_at": now,
            "created_at": now,
            "updated_at": now,
        })
        cols = ", ".join(fields)
        marks = ", ".join("?" for _ in fields)
        db = get_db()
        cur = db.execute(f"INSERT INTO users ({cols}) VALUES ({marks})", tuple(fields.values()))
        db.commit()
        return cur.lastrowid

    @staticmethod
    def update_profile(user_id: int, data: dict) -> dict:
        current = UserStore.to_api(UserStore.get(user_id), full=True)
        checker = Checker()
        fields = UserStore._validate_profile(data, current, checker)
        checker.check()
        fields["updated_at"] = now_iso()
        assignments = ", ".join(f"{col} = ?" for col in fields)
        db = get_db()
        db.execute(f"UPDATE users SET {assignments} WHERE id = ?", (*fields.values(), user_id))
        db.commit()
        return UserStore.to_api(UserStore.get(user_id), full=True)

    @staticmethod
    def check_password(row: dict, password: str) -> bool:
        return bool(row.get("password_hash")) and check_password_hash(row["password_hash"], password)

    @staticmethod
    def set_password(user_id: int, password: str) -> None:
        checker = Checker()
        UserStore.validate_password(password, checker)
        checker.check()
        db = get_db()
        db.execute(
            "UPDATE users SET password_hash = ?, updated_at = ? WHERE id = ?",
            (generate_password_hash(password), now_iso(), user_id),
        )
        db.commit()

    @staticmethod
    def touch(user_id: int) -> None:
        db = get_db()
        db.execute("UPDATE users SET last_active_at = ? WHERE id = ?", (now_iso(), user_id))
        db.commit()

    @staticmethod
    def record_login_failure(user_id: int, attempts: int, locked_until: str = "") -> None:
        db = get_db()
        db.execute(
            "UPDATE users SET login_attempts = ?, locked_until = ? WHERE id = ?",
            (attempts, locked_until, user_id),
        )
        db.commit()

    @staticmethod
    def reset_login(user_id: int) -> None:
        db = get_db()
        db.execute(
            "UPDATE users SET login_attempts = 0, locked_until = '', last_active_at = ? WHERE id = ?",
            (now_iso(), user_id),
        )
        db.commit()

    @staticmethod
    def update_progress(user_id: int, action: str, value: float = 1) -> dict:
        """Apply a progress counter action and return the new progressStats."""
        row = UserStore.get(user_id)
        if action == "addStudyHours":
            sql, params = "total_study_hours = total_study_hours + ?", (value,)
        elif action == "completeGoal":
            sql, params = "total_goals_completed = total_goals_completed + ?", (int(value),)
        elif action == "completeBook":
            sql, params = "total_books_read = total_books_read + ?", (int(value),)
        elif action == "updateStreak":
            streak = int(value)
            sql, params = "current_streak = ?, longest_streak = ?", (streak, max(streak, row["longest_streak"]))
        elif action == "resetStreak":
            sql, params = "current_streak = 0", ()
        else:
            raise BadRequest("Invalid action")
        now = now_iso()
        db = get_db()
        db.execute(
            f"UPDATE users SET {sql}, last_study_date = ?, updated_at = ? WHERE id = ?",
            (*params, now, now, user_id),
        )
        db.commit()
        return UserStore.to_api(UserStore.get(user_id))["progressStats"]

    @staticmethod
    def add_study_hours(user_id: int, hours: float) -> None:
        now = now_iso()
        db = get_db()
        db.execute(
            "UPDATE users SET total_study_hours = total_study_hours + ?, last_study_date = ? WHERE id = ?",
            (hours, now, user_id),
        )
        db.commit()

    @staticmethod
    def to_api(row: dict, full: bool = False) -> dict:
        user = {
            "id": row["id"],
            "name": row["name"],
            "email": row["email"],
            "examTypes": loads_list(row["exam_types"]),
            "examDate": row["exam_date"],
            "profilePicture": row["profile_picture"],
            "studyPreferences": {
                "dailyStudyHours": row["daily_study_hours"],
                "preferredSubjects": loads_list(row["preferred_subjects"]),
                "studyTimeSlots": loads_list(row["study_time_slots"]),
                "breakDuration": row["break_duration"],
            },
            "progressStats": {
                "totalStudyHours": row["total_study_hours"],
                "currentStreak": row["current_streak"],
                "longestStreak": row["longest_streak"],
                "totalGoalsCompleted": row["total_goals_completed"],
                "totalBooksRead": row["total_books_read"],
                "lastStudyDate": row["last_study_date"] or None,
            },
            "notifications": {
                "email": bool(row["notify_email"]),
                "dailyReminder": bool(row["notify_daily_reminder"]),
                "weeklyReport": bool(row["notify_weekly_report"]),
                "goalDeadline": bool(row["notify_goal_deadline"]),
            },
        }
        if full:
            user.update({
                "targetScore": row["target_score"],
                "isActive": bool(row["is_active"]),
                "createdAt": row["created_at"],
                "lastActiveAt": row["last_active_at"] or None,
            })
        return user


# ── Books ─────────────────────────────────────────────────────────────


class BookStore:
    """Textbooks with chapter progress."""

    @staticmethod
    def _clean(data: dict, current: dict | None = None) -> dict:
        checker = Checker()
        title = _pick(data, "title", current)
        if checker.required(title, "Please provide book title"):
            title = str(title).strip()
            checker.max_length(title, 100, "Title cannot be more than 100 characters")
        subject = _pick(data, "subject", current)
        if checker.required(subject, "Please provide subject"):
            subject = str(subject).strip()
            checker.max_length(subject, 50, "Subject cannot be more than 50 characters")
        total = _pick(data, "totalChapters", current)
        if checker.required(total, "Please provide total chapters"):
            total = checker.number(total, "Total chapters must be at least 1", minimum=1)
        completed = checker.number(_pick(data, "completedChapters", current, 0),
                                   "Completed chapters cannot be negative", minimum=0)
        notes = _pick(data, "notes", current, "")
        checker.max_length(notes, 500, "Notes cannot be more than 500 characters")
        priority = _pick(data, "priority", current, "Medium")
        checker.choice(priority, PRIORITIES, "priority")
        checker.check()
        return {
            "title": title,
            "subject": subject,
            "total_chapters": total,
            "completed_chapters": clamp(completed or 0, total),
            "notes": notes,
            "priority": priority,
        }

    @staticmethod
    def _owned(book_id: int, user_id: int, verb: str) -> dict:
        db = get_db()
        row = db.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
        if not row:
            raise NotFound("Book not found")
        if row["user_id"] != user_id:
            raise Forbidden(f"Not authorized to {verb} this book")
        return dict(row)

    @staticmethod
    def list_for_user(user_id: int) -> list[dict]:
        db = get_db()
        rows = db.execute(
            "SELECT * FROM books WHERE user_id = ? ORDER BY created_at DESC, id DESC", (user_id,)
        ).fetchall()
        return [BookStore.to_api(r) for r in rows]

    @staticmethod
    def get(book_id: int, user_id: int) -> dict:
        return BookStore.to_api(BookStore._owned(book_id, user_id, "access"))

    @staticmethod
    def owned_ids(user_id: int, book_ids: list[int]) -> set[int]:
        if not book_ids:
            return set()
        marks = ", ".join("?" for _ in book_ids)
        db = get_db()
        rows = db.execute(
            f"SELECT id FROM books WHERE user_id = ? AND id IN ({marks})", (user_id, *book_ids)
        ).fetchall()
        return {r["id"] for r in rows}

    @staticmethod
    def create(user_id: int, data: dict) -> dict:
        fields = BookStore._clean(data)
        now = now_iso()
        db = get_db()
        cur = db.execute(
            "INSERT INTO books (user_id, title, subject, total_chapters, completed_chapters, notes, "
            "priority, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (user_id, fields["title"], fields["subject"], fields["total_chapters"],
             fields["completed_chapters"], fields["notes"], fields["priority"], now, now),
        )
        db.commit()
        return BookStore.get(cur.lastrowid, user_id)

    @staticmethod
    def update(book_id: int, user_id: int, data: dict) -> dict:
        current = BookStore.to_api(BookStore._owned(book_id, user_id, "update"))
        fields = BookStore._clean(data, current)
        db = get_db()
        db.execute(
            "UPDATE books SET title = ?, subject = ?, total_chapters = ?, completed_chapters = ?, "
            "notes = ?, priority = ?, updated_at = ? WHERE id = ?",
            (fields["title"], fields["subject"], fields["total_chapters"], fields["completed_chapters"],
             fields["notes"], fields["priority"], now_iso(), book_id),
        )
        db.commit()
        return BookStore.get(book_id, user_id)

    @staticmethod
    def update_progress(book_id: int, user_id: int, completed: Any) -> dict:
        return BookStore.update(book_id, user_id, {"completedChapters": completed})

    @staticmethod
    def delete(book_id: int, user_id: int) -> None:
        BookStore._owned(book_id, user_id, "delete")
        db = get_db()
        db.execute("DELETE FROM books WHERE id = ?", (book_id,))
        db.commit()

    @staticmethod
    def to_api(row: dict) -> dict:
        return {
            "id": row["id"],
            "user": row["user_id"],
            "title": row["title"],
            "subject": row["subject"],
            "totalChapters": row["total_chapters"],
            "completedChapters": row["completed_chapters"],
            "notes": row["notes"],
            "priority": row["priority"],
            "progressPercentage": percentage(row["completed_chapters"], row["total_chapters"]),
            "createdAt": row["created_at"],
            "updatedAt": row["updated_at"],
        }


# ── Daily goals ───────────────────────────────────────────────────────


class DailyGoalStore:
    """One goal per user per day, holding an ordered task list."""

    @staticmethod
    def _clean_task(data: dict, checker: Checker) -> dict:
        task = data.get("task")
        if checker.required(task, "Please provide task description"):
            task = str(task).strip()
            checker.max_length(task, 200, "Task description cannot be more than 200 characters")
        priority = data.get("priority") or "Medium"
        checker.choice(priority, PRIORITIES, "priority")
        estimated = checker.number(data.get("estimatedTime", 30), "Estimated time must be at least 1 minute",
                                   minimum=1)
        return {
            "task": task,
            "completed": int(bool(data.get("completed", False))),
            "priority": priority,
            "estimated_time": estimated if estimated is not None else 30,
        }

    @staticmethod
    def _insert_tasks(goal_id: int, tasks: list[dict], start: int = 0) -> list[int]:
        db = get_db()
        now = now_iso()
        ids = []
        for offset, task in enumerate(tasks):
            cur = db.execute(
                "INSERT INTO daily_goal_tasks (goal_id, task, completed, priority, estimated_time, "
                "position, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (goal_id, task["task"], task["completed"], task["priority"], task["estimated_time"],
                 start + offset, now),
            )
            ids.append(cur.lastrowid)
        return ids

    @staticmethod
    def _owned(goal_id: int, user_id: int, verb: str = "update") -> dict:
        db = get_db()
        row = db.execute("SELECT * FROM daily_goals WHERE id = ?", (goal_id,)).fetchone()
        if not row:
            raise NotFound("Daily goal not found")
        if row["user_id"] != user_id:
            raise Forbidden(f"Not authorized to {verb} this goal")
        return dict(row)

    @staticmethod
    def _touch(goal_id: int) -> None:
        get_db().execute("UPDATE daily_goals SET updated_at = ? WHERE id = ?", (now_iso(), goal_id))

    @staticmethod
    def find_by_date(user_id: int, day: str) -> dict | None:
        db = get_db()
        row = db.execute(
            "SELECT * FROM daily_goals WHERE user_id = ? AND date = ?", (user_id, day)
        ).fetchone()
        return DailyGoalStore.to_api(dict(row)) if row else None

    @staticmethod
    def get(goal_id: int) -> dict:
        db = get_db()
        row = db.execute("SELECT * FROM daily_goals WHERE id = ?", (goal_id,)).fetchone()
        return DailyGoalStore.to_api(dict(row))

    @staticmethod
    def _ensure(user_id: int, day: str) -> int:
        db = get_db()
        row = db.execute(
            "SELECT id FROM daily_goals WHERE user_id = ? AND date = ?", (user_id, day)
        ).fetchone()
        if row:
            return row["id"]
        now = now_iso()
        cur = db.execute(
            "INSERT INTO daily_goals (user_id, date, created_at, updated_at) VALUES (?, ?, ?, ?)",
            (user_id, day, now, now),
        )
        return cur.lastrowid

    @staticmethod
    def upsert(user_id: int, data: dict) -> dict:
        """Create the goal for a date, or replace the provided parts of it."""
        day = parse_date(data.get("date"))
        if not day:
            raise BadRequest("Please provide a date")

        checker = Checker()
        tasks = data.get("tasks")
        cleaned = None
        if tasks is not None:
            if not isinstance(tasks, list):
                checker.fail("Tasks must be a list")
            else:
                cleaned = [DailyGoalStore._clean_task(t if isinstance(t, dict) else {"task": t}, checker)
                           for t in tasks]
        notes = data.get("notes")
        if notes is not None:
            checker.max_length(notes, 500, "Notes cannot be more than 500 characters")
        study_time = data.get("totalStudyTime")
        if study_time is not None:
            study_time = checker.number(study_time, "Study time cannot be negative", minimum=0)
        checker.check()

        db = get_db()
        goal_id = DailyGoalStore._ensure(user_id, day)
        if cleaned is not None:
            db.execute("DELETE FROM daily_goal_tasks WHERE goal_id = ?", (goal_id,))
            DailyGoalStore._insert_tasks(goal_id, cleaned)
        if notes is not None:
            db.execute("UPDATE daily_goals SET notes = ? WHERE id = ?", (notes, goal_id))
        if study_time is not None:
            db.execute("UPDATE daily_goals SET total_study_time = ? WHERE id = ?", (study_time, goal_id))
        DailyGoalStore._touch(goal_id)
        db.commit()
        return DailyGoalStore.get(goal_id)

    @staticmethod
    def delete(goal_id: int, user_id: int) -> None:
        DailyGoalStore._owned(goal_id, user_id, "delete")
        db = get_db()
        db.execute("DELETE FROM daily_goal_tasks WHERE goal_id = ?", (goal_id,))
        db.execute("DELETE FROM daily_goals WHERE id = ?", (goal_id,))
        db.commit()

    @staticmethod
    def set_task_completed(goal_id: int, task_id: int, user_id: int, completed: Any) -> dict:
        DailyGoalStore._owned(goal_id, user_id)
        db = get_db()
        cur = db.execute(
            "UPDATE daily_goal_tasks SET completed = ? WHERE id = ? AND goal_id = ?",
            (int(bool(completed)), task_id, goal_id),
        )
        if cur.rowcount == 0:
            raise NotFound("Task not found")
        DailyGoalStore._touch(goal_id)
        db.commit()
        return DailyGoalStore.get(goal_id)

    @staticmethod
    def add_task(goal_id: int, user_id: int, data: dict) -> dict:
        DailyGoalStore._owned(goal_id, user_id)
        checker = Checker()
        task = DailyGoalStore._clean_task({**data, "completed": False}, checker)
        checker.check()
        db = get_db()
        position = db.execute(
            "SELECT COUNT(*) AS n FROM daily_goal_tasks WHERE goal_id = ?", (goal_id,)
        ).fetchone()["n"]
        DailyGoalStore._insert_tasks(goal_id, [task], start=position)
        DailyGoalStore._touch(goal_id)
        db.commit()
        return DailyGoalStore.get(goal_id)

    @staticmethod
    def remove_task(goal_id: int, task_id: int, user_id: int) -> dict:
        DailyGoalStore._owned(goal_id, user_id)
        db = get_db()
        db.execute("DELETE FROM daily_goal_tasks WHERE id = ? AND goal_id = ?", (task_id, goal_id))
        DailyGoalStore._touch(goal_id)
        db.commit()
        return DailyGoalStore.get(goal_id)

    # Flat task view used by the simple checklist endpoints

    @staticmethod
    def flat_tasks(user_id: int, day: str) -> list[dict]:
        db = get_db()
        rows = db.execute(
            "SELECT t.*, g.date AS goal_date FROM daily_goal_tasks t "
            "JOIN daily_goals g ON t.goal_id = g.id "
            "WHERE g.user_id = ? AND g.date = ? ORDER BY t.position, t.id",
            (user_id, day),
        ).fetchall()
        return [DailyGoalStore.flat_task(dict(r)) for r in rows]

    @staticmethod
    def _owned_task(task_id: int, user_id: int) -> dict:
        db = get_db()
        row = db.execute(
            "SELECT t.*, g.date AS goal_date FROM daily_goal_tasks t "
            "JOIN daily_goals g ON t.goal_id = g.id WHERE t.id = ? AND g.user_id = ?",
            (task_id, user_id),
        ).fetchone()
        if not row:
            raise NotFound("Task not found")
        return dict(row)

    @staticmethod
    def add_flat_task(user_id: int, task: Any, day: Any) -> dict:
        goal_day = parse_date(day)
        if not task or not goal_day:
            raise BadRequest("Please provide task and date")
        checker = Checker()
        cleaned = DailyGoalStore._clean_task({"task": task}, checker)
        checker.check()
        db = get_db()
        goal_id = DailyGoalStore._ensure(user_id, goal_day)
        position = db.execute(
            "SELECT COUNT(*) AS n FROM daily_goal_tasks WHERE goal_id = ?", (goal_id,)
        ).fetchone()["n"]
        task_id = DailyGoalStore._insert_tasks(goal_id, [cleaned], start=position)[0]
        DailyGoalStore._touch(goal_id)
        db.commit()
        return DailyGoalStore.flat_task(DailyGoalStore._owned_task(task_id, user_id))

    @staticmethod
    def toggle_flat_task(task_id: int, user_id: int) -> dict:
        row = DailyGoalStore._owned_task(task_id, user_id)
        db = get_db()
        db.execute("UPDATE daily_goal_tasks SET completed = ? WHERE id = ?", (int(not row["completed"]), task_id))
        DailyGoalStore._touch(row["goal_id"])
        db.commit()
        return DailyGoalStore.flat_task(DailyGoalStore._owned_task(task_id, user_id))

    @staticmethod
    def delete_flat_task(task_id: int, user_id: int) -> None:
        row = DailyGoalStore._owned_task(task_id, user_id)
        db = get_db()
        db.execute("DELETE FROM daily_goal_tasks WHERE id = ?", (task_id,))
        DailyGoalStore._touch(row["goal_id"])
        db.commit()

    @staticmethod
    def flat_task(row: dict) -> dict:
        return {
            "id": row["id"],
            "task": row["task"],
            "completed": bool(row["completed"]),
            "date": row["goal_date"],
            "createdAt": row["created_at"],
        }

    @staticmethod
    def to_api(row: dict) -> dict:
        db = get_db()
        tasks = db.execute(
            "SELECT * FROM daily_goal_tasks WHERE goal_id = ? ORDER BY position, id", (row["id"],)
        ).fetchall()
        task_list = [
            {
                "id": t["id"],
                "task": t["task"],
                "completed": bool(t["completed"]),
                "priority": t["priority"],
                "estimatedTime": t["estimated_time"],
                "createdAt": t["created_at"],
            }
            for t in tasks
        ]
        done = sum(1 for t in task_list if t["completed"])
        return {
            "id": row["id"],
            "user": row["user_id"],
            "date": row["date"],
            "tasks": task_list,
            "notes": row["notes"],
            "totalStudyTime": row["total_study_time"],
            "completionPercentage": percentage(done, len(task_list)),
            "createdAt": row["created_at"],
            "updatedAt": row["updated_at"],
        }


# ── Monthly plans ─────────────────────────────────────────────────────


class MonthlyPlanStore:
    """Monthly targets per subject with derived status."""

    @staticmethod
    def _clean(data: dict, current: dict | None = None) -> dict:
        checker = Checker()
        month = _pick(data, "month", current)
        if checker.required(month, "Please provide month"):
            month = checker.number(month, "Month must be between 1-12", minimum=1, maximum=12)
        year = _pick(data, "year", current)
        if checker.required(year, "Please provide year"):
            year = checker.number(year, "Year must be valid", minimum=2020)
        subject = _pick(data, "subject", current)
        if checker.required(subject, "Please provide subject"):
            subject = str(subject).strip()
            checker.max_length(subject, 50, "Subject cannot be more than 50 characters")
        target_type = _pick(data, "targetType", current, "chapters")
        if checker.required(target_type, "Please specify target type"):
            checker.choice(target_type, TARGET_TYPES, "targetType")
        target = _pick(data, "targetAmount", current)
        if checker.required(target, "Please provide target amount"):
            target = checker.number(target, "Target amount must be at least 1", minimum=1)
        completed = checker.number(_pick(data, "completedAmount", current, 0),
                                   "Completed amount cannot be negative", minimum=0)
        deadline = _pick(data, "deadline", current)
        if checker.required(deadline, "Please provide deadline"):
            parsed = parse_datetime(deadline)
            if parsed is None:
                checker.fail("Please provide deadline")
            else:
                deadline = parsed.isoformat()
        description = _pick(data, "description", current, "")
        checker.max_length(description, 300, "Description cannot be more than 300 characters")
        priority = _pick(data, "priority", current, "Medium")
        checker.choice(priority, PRIORITIES, "priority")
        status = _pick(data, "status", current, "Not Started")
        checker.choice(status, PLAN_STATUSES, "status")
        checker.check()

        completed = clamp(completed or 0, target)
        progress_changed = current is None or completed != current.get("completedAmount")
        return {
            "month": month,
            "year": year,
            "subject": subject,
            "target_type": target_type,
            "target_amount": target,
            "completed_amount": completed,
            "deadline": deadline,
            "description": description,
            "priority": priority,
            "status": monthly_plan_status(completed, target, status, progress_changed),
        }

    @staticmethod
    def _owned(plan_id: int, user_id: int, verb: str) -> dict:
        db = get_db()
        row = db.execute("SELECT * FROM monthly_plans WHERE id = ?", (plan_id,)).fetchone()
        if not row:
            raise NotFound("Monthly plan not found")
        if row["user_id"] != user_id:
            raise Forbidden(f"Not authorized to {verb} this plan")
        return dict(row)

    @staticmethod
    def list_for_user(user_id: int, month: int | None = None, year: int | None = None) -> list[dict]:
        sql = "SELECT * FROM monthly_plans WHERE user_id = ?"
        params: list[Any] = [user_id]
        if month and year:
            sql += " AND month = ? AND year = ?"
            params += [month, year]
        db = get_db()
        rows = db.execute(sql + " ORDER BY created_at DESC, id DESC", params).fetchall()
        return [MonthlyPlanStore.to_api(r) for r in rows]

    @staticmethod
    def get(plan_id: int, user_id: int) -> dict:
        return MonthlyPlanStore.to_api(MonthlyPlanStore._owned(plan_id, user_id, "access"))

    @staticmethod
    def create(user_id: int, data: dict) -> dict:
        fields = MonthlyPlanStore._clean(data)
        now = now_iso()
        fields.update({"user_id": user_id, "created_at": now, "updated_at": now})
        cols = ", ".join(fields)
        marks = ", ".join("?" for _ in fields)
        db = get_db()
        cur = db.execute(f"INSERT INTO monthly_plans ({cols}) VALUES ({marks})", tuple(fields.values()))
        db.commit()
        return MonthlyPlanStore.get(cur.lastrowid, user_id)

    @staticmethod
    def update(plan_id: int, user_id: int, data: dict) -> dict:
        current = MonthlyPlanStore.to_api(MonthlyPlanStore._owned(plan_id, user_id, "update"))
        fields = MonthlyPlanStore._clean(data, current)
        fields["updated_at"] = now_iso()
        assignments = ", ".join(f"{col} = ?" for col in fields)
        db = get_db()
        db.execute(f"UPDATE monthly_plans SET {assignments} WHERE id = ?", (*fields.values(), plan_id))
        db.commit()
        return MonthlyPlanStore.get(plan_id, user_id)

    @staticmethod
    def delete(plan_id: int, user_id: int) -> None:
        MonthlyPlanStore._owned(plan_id, user_id, "delete")
        db = get_db()
        db.execute("DELETE FROM monthly_plans WHERE id = ?", (plan_id,))
        db.commit()

    @staticmethod
    def stats(user_id: int, month: int, year: int) -> dict:
        plans = MonthlyPlanStore.list_for_user(user_id, month, year)
        by_status = defaultdict(int)
        for plan in plans:
            by_status[plan["status"]] += 1
        overall = (
            int(round(sum(p["progressPercentage"] for p in plans) / len(plans))) if plans else 0
        )
        return {
            "totalPlans": len(plans),
            "completedPlans": by_status["Completed"],
            "inProgressPlans": by_status["In Progress"],
            "notStartedPlans": by_status["Not Started"],
            "pausedPlans": by_status["Paused"],
            "overallProgress": overall,
        }

    @staticmethod
    def to_api(row: dict) -> dict:
        return {
            "id": row["id"],
            "user": row["user_id"],
            "month": row["month"],
            "year": row["year"],
            "subject": row["subject"],
            "targetType": row["target_type"],
            "targetAmount": row["target_amount"],
            "completedAmount": row["completed_amount"],
            "deadline": row["deadline"],
            "description": row["description"],
            "priority": row["priority"],
            "status": row["status"],
            "progressPercentage": percentage(row["completed_amount"], row["target_amount"]),
            "createdAt": row["created_at"],
            "updatedAt": row["updated_at"],
        }


# ── Study sessions ────────────────────────────────────────────────────


class StudySessionStore:
    """Timed study sessions; lookups are always scoped to the owner."""

    @staticmethod
    def _clean(data: dict, current: dict | None = None) -> dict:
        checker = Checker()
        subject = _pick(data, "subject", current)
        if checker.required(subject, "Please provide subject"):
            subject = str(subject).strip()
            checker.max_length(subject, 50, "Subject cannot be more than 50 characters")
        topic = _pick(data, "topic", current, "")
        checker.max_length(topic, 100, "Topic cannot be more than 100 characters")
        start = end = None
        raw_start = _pick(data, "startTime", current)
        if checker.required(raw_start, "Please provide start time"):
            start = parse_datetime(raw_start)
            if start is None:
                checker.fail("Please provide start time")
        raw_end = _pick(data, "endTime", current)
        if checker.required(raw_end, "Please provide end time"):
            end = parse_datetime(raw_end)
            if end is None:
                checker.fail("Please provide end time")
        if start and end and end <= start:
            checker.fail("End time must be after start time")
        session_type = _pick(data, "sessionType", current, "Reading")
        checker.choice(session_type, SESSION_TYPES, "sessionType")
        productivity = checker.number(_pick(data, "productivity", current, 3),
                                      "Productivity must be between 1 and 5", minimum=1, maximum=5)
        notes = _pick(data, "notes", current, "")
        checker.max_length(notes, 500, "Notes cannot be more than 500 characters")
        breaks = checker.number(_pick(data, "breaksTaken", current, 0),
                                "Breaks taken cannot be negative", minimum=0)
        mood = _pick(data, "mood", current, "Good")
        checker.choice(mood, MOODS, "mood")
        checker.check()
        return {
            "subject": subject,
            "topic": topic,
            "start_time": start.isoformat(),
            "end_time": end.isoformat(),
            "duration": session_duration(start, end),
            "session_type": session_type,
            "productivity": productivity if productivity is not None else 3,
            "notes": notes,
            "breaks_taken": breaks or 0,
            "completed": int(bool(_pick(data, "completed", current, True))),
            "mood": mood,
        }

    @staticmethod
    def _owned(session_id: int, user_id: int) -> dict:
        db = get_db()
        row = db.execute(
            "SELECT * FROM study_sessions WHERE id = ? AND user_id = ?", (session_id, user_id)
        ).fetchone()
        if not row:
            raise NotFound("Study session not found")
        return dict(row)

    @staticmethod
    def create(user_id: int, data: dict) -> dict:
        fields = StudySessionStore._clean(data)
        now = now_iso()
        fields.update({"user_id": user_id, "created_at": now, "updated_at": now})
        cols = ", ".join(fields)
        marks = ", ".join("?" for _ in fields)
        db = get_db()
        cur = db.execute(f"INSERT INTO study_sessions ({cols}) VALUES ({marks})", tuple(fields.values()))
        db.commit()
        UserStore.add_study_hours(user_id, round(fields["duration"] / 60, 2))
        return StudySessionStore.get(cur.lastrowid, user_id)

    @staticmethod
    def get(session_id: int, user_id: int) -> dict:
        return StudySessionStore.to_api(StudySessionStore._owned(session_id, user_id))

    @staticmethod
    def update(session_id: int, user_id: int, data: dict) -> dict:
        current = StudySessionStore.to_api(StudySessionStore._owned(session_id, user_id))
        fields = StudySessionStore._clean(data, current)
        fields["updated_at"] = now_iso()
        assignments = ", ".join(f"{col} = ?" for col in fields)
        db = get_db()
        db.execute(f"UPDATE study_sessions SET {assignments} WHERE id = ?", (*fields.values(), session_id))
        db.commit()
        return StudySessionStore.get(session_id, user_id)

    @staticmethod
    def delete(session_id: int, user_id: int) -> None:
        StudySessionStore._owned(session_id, user_id)
        db = get_db()
        db.execute("DELETE FROM study_sessions WHERE id = ?", (session_id,))
        db.commit()

    @staticmethod
    def page(user_id: int, page: int, limit: int, subject: str | None = None,
             start_date: str | None = None, end_date: str | None = None) -> tuple[list[dict], int]:
        where = ["user_id = ?"]
        params: list[Any] = [user_id]
        if subject:
            where.append("subject = ?")
            params.append(subject)
        start = parse_datetime(start_date)
        if start:
            where.append("start_time >= ?")
            params.append(start.isoformat())
        end = parse_datetime(end_date)
        if end:
            where.append("start_time <= ?")
            params.append(end.isoformat())
        clause = " AND ".join(where)
        db = get_db()
        total = db.execute(f"SELECT COUNT(*) AS n FROM study_sessions WHERE {clause}", params).fetchone()["n"]
        rows = db.execute(
            f"SELECT * FROM study_sessions WHERE {clause} ORDER BY start_time DESC, id DESC LIMIT ? OFFSET ?",
            (*params, limit, (page - 1) * limit),
        ).fetchall()
        return [StudySessionStore.to_api(r) for r in rows], total

    @staticmethod
    def analytics(user_id: int, period: str = "7d") -> dict:
        days = {"7d": 7, "30d": 30, "90d": 90}.get(period, 7)
        since = (datetime.now() - timedelta(days=days)).isoformat()
        db = get_db()
        rows = db.execute(
            "SELECT * FROM study_sessions WHERE user_id = ? AND start_time >= ? ORDER BY start_time",
            (user_id, since),
        ).fetchall()

        total_minutes = sum(r["duration"] for r in rows)
        subjects: dict[str, int] = defaultdict(int)
        types: dict[str, int] = defaultdict(int)
        daily: dict[str, int] = defaultdict(int)
        for r in rows:
            subjects[r["subject"]] += r["duration"]
            types[r["session_type"]] += r["duration"]
            daily[r["start_time"][:10]] += r["duration"]
        avg = round(sum(r["productivity"] for r in rows) / len(rows), 2) if rows else 0
        return {
            "period": period,
            "totalSessions": len(rows),
            "totalHours": round(total_minutes / 60, 2),
            "averageProductivity": avg,
            "subjectBreakdown": dict(subjects),
            "sessionTypeBreakdown": dict(types),
            "dailyStudy": dict(daily),
        }

    @staticmethod
    def to_api(row: dict) -> dict:
        return {
            "id": row["id"],
            "user": row["user_id"],
            "subject": row["subject"],
            "topic": row["topic"],
            "startTime": row["start_time"],
            "endTime": row["end_time"],
            "duration": row["duration"],
            "sessionType": row["session_type"],
            "productivity": row["productivity"],
            "notes": row["notes"],
            "breaksTaken": row["breaks_taken"],
            "completed": bool(row["completed"]),
            "mood": row["mood"],
            "createdAt": row["created_at"],
            "updatedAt": row["updated_at"],
        }
