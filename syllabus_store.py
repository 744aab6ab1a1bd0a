"""
Syllabus tree store.

Items form a subject -> unit -> topic -> subtopic hierarchy through
parent_id. Saving an item rolls its siblings' completion up into the
parent, and from there up to the root.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from datetime import datetime
from typing import Any

from database import get_db
from db_stores import BookStore
from helpers import (
    BadRequest,
    NotFound,
    contains_ci,
    iso_or_none,
    loads_list,
    now_iso,
    string_list,
)
from models import (
    SYLLABUS_LEVELS,
    SYLLABUS_PRIORITIES,
    SYLLABUS_STATUSES,
    Checker,
    days_since,
    recommendation_score,
    rollup_status,
)

logger = logging.getLogger(__name__)

UPDATABLE = {
    "title": "title",
    "description": "description",
    "subject": "subject",
    "unit": "unit",
    "topic": "topic",
    "subtopic": "subtopic",
    "priority": "priority",
    "estimatedHours": "estimated_hours",
    "actualHours": "actual_hours",
    "notes": "notes",
    "dueDate": "due_date",
    "tags": "tags",
    "order": "sort_order",
}

HOURS_MESSAGES = {
    "estimatedHours": "Estimated hours must be a non-negative number",
    "actualHours": "Actual hours must be a non-negative number",
}


def _completed_at(status: str, existing: str | None) -> str | None:
    """completedAt is stamped on entering completed and cleared on leaving it."""
    if status == "completed":
        return existing or now_iso()
    return None


class SyllabusStore:

    @staticmethod
    def _row(item_id: int, user_id: int | None = None) -> dict | None:
        db = get_db()
        if user_id is None:
            row = db.execute("SELECT * FROM syllabus_items WHERE id = ?", (item_id,)).fetchone()
        else:
            row = db.execute(
                "SELECT * FROM syllabus_items WHERE id = ? AND user_id = ?", (item_id, user_id)
            ).fetchone()
        return dict(row) if row else None

    @staticmethod
    def _owned(item_id: int, user_id: int) -> dict:
        row = SyllabusStore._row(item_id, user_id)
        if not row:
            raise NotFound("Syllabus item not found")
        return row

    @staticmethod
    def _validate(fields: dict, checker: Checker) -> None:
        checker.required(fields.get("title"), "Please provide title")
        checker.required(fields.get("subject"), "Please provide subject")
        checker.choice(fields.get("status"), SYLLABUS_STATUSES, "status")
        checker.choice(fields.get("priority"), SYLLABUS_PRIORITIES, "priority")

    # ── Status propagation ──

    @staticmethod
    def propagate_from(parent_id: int | None) -> None:
        """Recompute *parent_id* from its active children, then its ancestors.

        A parent without active children keeps its current status.
        """
        db = get_db()
        while parent_id:
            parent = SyllabusStore._row(parent_id)
            if not parent:
                break
            statuses = [
                r["status"] for r in db.execute(
                    "SELECT status FROM syllabus_items WHERE parent_id = ? AND is_active = 1",
                    (parent_id,),
                ).fetchall()
            ]
            status = rollup_status(statuses)
            if status is None:
                break
            db.execute(
                "UPDATE syllabus_items SET status = ?, completed_at = ?, updated_at = ? WHERE id = ?",
                (status, _completed_at(status, parent["completed_at"]), now_iso(), parent_id),
            )
            parent_id = parent["parent_id"]
        db.commit()

    # ── Queries ──

    @staticmethod
    def tree(user_id: int, subject: str | None = None, status: str | None = None,
             priority: str | None = None, search: str | None = None) -> list[dict]:
        db = get_db()
        sql = "SELECT * FROM syllabus_items WHERE user_id = ? AND is_active = 1"
        params: list[Any] = [user_id]
        if status:
            sql += " AND status = ?"
            params.append(status)
        if priority:
            sql += " AND priority = ?"
            params.append(priority)
        rows = [dict(r) for r in db.execute(
            sql + " ORDER BY level, sort_order, created_at, id", params
        ).fetchall()]

        if subject:
            rows = [r for r in rows if contains_ci(subject, r["subject"])]
        if search:
            rows = [
                r for r in rows
                if contains_ci(search, r["title"], r["description"], r["subject"],
                               r["unit"], r["topic"], r["subtopic"])
            ]

        nodes = {r["id"]: {**SyllabusStore.to_api(r), "children": []} for r in rows}
        roots = []
        for r in rows:
            node = nodes[r["id"]]
            if r["parent_id"]:
                parent = nodes.get(r["parent_id"])
                if parent is not None:
                    parent["children"].append(node)
            else:
                roots.append(node)
        return roots

    @staticmethod
    def get_with_children(item_id: int, user_id: int) -> dict:
        item = SyllabusStore.to_api(SyllabusStore._owned(item_id, user_id))
        db = get_db()
        children = db.execute(
            "SELECT * FROM syllabus_items WHERE parent_id = ? AND is_active = 1 "
            "ORDER BY sort_order, created_at, id",
            (item_id,),
        ).fetchall()
        item["children"] = [SyllabusStore.to_api(c) for c in children]
        return item

    @staticmethod
    def stats(user_id: int, subject: str | None = None) -> dict:
        db = get_db()
        rows = [dict(r) for r in db.execute(
            "SELECT * FROM syllabus_items WHERE user_id = ? AND is_active = 1", (user_id,)
        ).fetchall()]

        scoped = [r for r in rows if contains_ci(subject, r["subject"])] if subject else rows
        completed = sum(1 for r in scoped if r["status"] == "completed")
        overall = {
            "total": len(scoped),
            "notStarted": sum(1 for r in scoped if r["status"] == "not_started"),
            "inProgress": sum(1 for r in scoped if r["status"] == "in_progress"),
            "completed": completed,
            "needsRevision": sum(1 for r in scoped if r["status"] == "needs_revision"),
            "totalEstimatedHours": sum(r["estimated_hours"] for r in scoped),
            "totalActualHours": sum(r["actual_hours"] for r in scoped),
            "highPriority": sum(1 for r in scoped if r["priority"] == "high"),
            "completionPercentage": int(round(completed / len(scoped) * 100)) if scoped else 0,
        }

        grouped: dict[str, list[dict]] = defaultdict(list)
        for r in rows:
            grouped[r["subject"]].append(r)
        subjects = []
        for name, items in grouped.items():
            done = sum(1 for r in items if r["status"] == "completed")
            subjects.append({
                "subject": name,
                "total": len(items),
                "completed": done,
                "inProgress": sum(1 for r in items if r["status"] == "in_progress"),
                "needsRevision": sum(1 for r in items if r["status"] == "needs_revision"),
                "totalHours": sum(r["actual_hours"] for r in items),
                "completionPercentage": done / len(items) * 100,
            })
        subjects.sort(key=lambda s: s["completionPercentage"], reverse=True)
        return {"overall": overall, "subjects": subjects}

    @staticmethod
    def recommendations(user_id: int, limit: int = 10) -> list[dict]:
        db = get_db()
        rows = db.execute(
            "SELECT * FROM syllabus_items WHERE user_id = ? AND is_active = 1 "
            "AND status IN ('not_started', 'in_progress', 'needs_revision')",
            (user_id,),
        ).fetchall()
        now = datetime.now()
        scored = []
        for r in rows:
            days = days_since(r["last_studied_date"], now)
            item = SyllabusStore.to_api(dict(r))
            item["daysSinceStudied"] = days
            item["recommendationScore"] = recommendation_score(r["priority"], r["status"], days)
            scored.append(item)
        scored.sort(key=lambda i: (-i["recommendationScore"], i["dueDate"] or ""))
        return scored[:limit]

    # ── Mutations ──

    @staticmethod
    def create(user_id: int, data: dict) -> dict:
        parent_id = data.get("parentId")
        if parent_id:
            try:
                parent = SyllabusStore._row(int(parent_id), user_id)
            except (TypeError, ValueError):
                parent = None
            if not parent or not parent["is_active"]:
                raise BadRequest("Parent syllabus item not found")
            parent_id = parent["id"]
        else:
            parent_id = None

        checker = Checker()
        level = checker.number(data.get("level", 1), "Level must be between 1 and 4", minimum=1, maximum=4)
        fields = {
            "title": str(data.get("title") or "").strip(),
            "subject": str(data.get("subject") or "").strip(),
            "priority": data.get("priority") or "medium",
            "status": "not_started",
        }
        SyllabusStore._validate(fields, checker)
        estimated = checker.number(data.get("estimatedHours") or 0, HOURS_MESSAGES["estimatedHours"],
                                   minimum=0, integer=False)
        order = checker.number(data.get("order") or 0, "Order must be a number")
        checker.check()

        now = now_iso()
        db = get_db()
        cur = db.execute(
            "INSERT INTO syllabus_items (user_id, title, description, subject, unit, topic, subtopic, "
            "level, parent_id, status, priority, estimated_hours, due_date, tags, sort_order, "
            "created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                user_id, fields["title"], data.get("description") or "", fields["subject"],
                data.get("unit") or "", data.get("topic") or "", data.get("subtopic") or "",
                level or 1, parent_id, "not_started", fields["priority"], estimated or 0,
                iso_or_none(data.get("dueDate")), json.dumps(string_list(data.get("tags"))),
                order or 0, now, now,
            ),
        )
        db.commit()
        SyllabusStore.propagate_from(parent_id)
        return SyllabusStore.to_api(SyllabusStore._row(cur.lastrowid))

    @staticmethod
    def update(item_id: int, user_id: int, data: dict) -> dict:
        row = SyllabusStore._owned(item_id, user_id)
        changes: dict[str, Any] = {}
        checker = Checker()

        for key, column in UPDATABLE.items():
            if key not in data:
                continue
            value = data[key]
            if key == "tags":
                value = json.dumps(string_list(value))
            elif key == "dueDate":
                value = iso_or_none(value)
            elif key in ("estimatedHours", "actualHours"):
                value = checker.number(value, HOURS_MESSAGES[key], minimum=0, integer=False) or 0
            elif key == "order":
                value = checker.number(value, "Order must be a number") or 0
            elif value is None:
                value = ""
            changes[column] = value

        status = data.get("status")
        if status is not None:
            changes["status"] = status
            if status in ("in_progress", "completed"):
                changes["last_studied_date"] = now_iso()
            if status == "needs_revision" and row["status"] != "needs_revision":
                changes["revision_count"] = row["revision_count"] + 1

        merged = {**row, **changes}
        SyllabusStore._validate(merged, checker)
        checker.check()

        changes["completed_at"] = _completed_at(merged["status"], row["completed_at"])
        changes["updated_at"] = now_iso()
        assignments = ", ".join(f"{col} = ?" for col in changes)
        db = get_db()
        db.execute(f"UPDATE syllabus_items SET {assignments} WHERE id = ?", (*changes.values(), item_id))
        db.commit()
        SyllabusStore.propagate_from(row["parent_id"])
        return SyllabusStore.to_api(SyllabusStore._row(item_id))

    @staticmethod
    def delete(item_id: int, user_id: int) -> None:
        """Soft-delete the item and its direct children, then recompute its parent."""
        row = SyllabusStore._owned(item_id, user_id)
        db = get_db()
        db.execute(
            "UPDATE syllabus_items SET is_active = 0, updated_at = ? WHERE id = ? OR parent_id = ?",
            (now_iso(), item_id, item_id),
        )
        db.commit()
        SyllabusStore.propagate_from(row["parent_id"])

    @staticmethod
    def bulk_update(user_id: int, items: Any, action: str | None, action_data: Any) -> int:
        if not isinstance(items, list) or not items:
            raise BadRequest("Items array is required")
        action_data = action_data if isinstance(action_data, dict) else {}
        now = now_iso()

        if action == "mark_completed":
            sql = "status = 'completed', last_studied_date = ?, completed_at = COALESCE(completed_at, ?)"
            params: tuple = (now, now)
        elif action == "mark_in_progress":
            sql, params = "status = 'in_progress', last_studied_date = ?, completed_at = NULL", (now,)
        elif action == "set_priority":
            priority = action_data.get("priority")
            if not priority:
                raise BadRequest("Priority is required for set_priority action")
            if priority not in SYLLABUS_PRIORITIES:
                raise BadRequest(f"`{priority}` is not a valid value for priority")
            sql, params = "priority = ?", (priority,)
        elif action == "add_hours":
            hours = action_data.get("hours")
            if not isinstance(hours, (int, float)) or isinstance(hours, bool) or hours <= 0:
                raise BadRequest("Valid hours value is required for add_hours action")
            sql, params = "actual_hours = actual_hours + ?, last_studied_date = ?", (hours, now)
        else:
            raise BadRequest("Invalid action")

        ids = []
        for raw in items:
            try:
                ids.append(int(raw))
            except (TypeError, ValueError):
                continue
        if not ids:
            return 0

        marks = ", ".join("?" for _ in ids)
        db = get_db()
        cur = db.execute(
            f"UPDATE syllabus_items SET {sql}, updated_at = ? WHERE user_id = ? AND id IN ({marks})",
            (*params, now, user_id, *ids),
        )
        modified = cur.rowcount
        db.commit()

        touched = db.execute(
            f"SELECT DISTINCT parent_id FROM syllabus_items WHERE user_id = ? AND id IN ({marks})",
            (user_id, *ids),
        ).fetchall()
        for r in touched:
            SyllabusStore.propagate_from(r["parent_id"])
        logger.info("bulk syllabus %s: %d items for user %s", action, modified, user_id)
        return modified

    @staticmethod
    def link_books(item_id: int, user_id: int, book_ids: Any) -> dict:
        SyllabusStore._owned(item_id, user_id)
        try:
            wanted = [int(b) for b in (book_ids or [])]
        except (TypeError, ValueError):
            raise BadRequest("Some books not found or do not belong to user") from None
        if len(BookStore.owned_ids(user_id, wanted)) != len(set(wanted)):
            raise BadRequest("Some books not found or do not belong to user")
        db = get_db()
        db.execute(
            "UPDATE syllabus_items SET linked_books = ?, updated_at = ? WHERE id = ?",
            (json.dumps(wanted), now_iso(), item_id),
        )
        db.commit()
        return SyllabusStore.to_api(SyllabusStore._row(item_id))

    @staticmethod
    def to_api(row: dict) -> dict:
        return {
            "id": row["id"],
            "user": row["user_id"],
            "title": row["title"],
            "description": row["description"],
            "subject": row["subject"],
            "unit": row["unit"],
            "topic": row["topic"],
            "subtopic": row["subtopic"],
            "level": row["level"],
            "levelName": SYLLABUS_LEVELS.get(row["level"]),
            "parentId": row["parent_id"],
            "status": row["status"],
            "priority": row["priority"],
            "estimatedHours": row["estimated_hours"],
            "actualHours": row["actual_hours"],
            "notes": row["notes"],
            "lastStudiedDate": row["last_studied_date"],
            "revisionCount": row["revision_count"],
            "dueDate": row["due_date"],
            "tags": loads_list(row["tags"]),
            "linkedBooks": loads_list(row["linked_books"]),
            "linkedSessions": loads_list(row["linked_sessions"]),
            "order": row["sort_order"],
            "isActive": bool(row["is_active"]),
            "completedAt": row["completed_at"],
            "createdAt": row["created_at"],
            "updatedAt": row["updated_at"],
        }
