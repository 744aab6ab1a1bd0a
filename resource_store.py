"""
UPSC reading resource store.

Resources carry an ordered chapter list; chapter completion drives the
resource status and its actual hours. Template resources (is_template = 1)
are owned by the system account and cloned into a user's list on import.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from typing import Any

from database import get_db
from helpers import BadRequest, NotFound, contains_ci, iso_or_none, loads_list, now_iso, string_list
from models import (
    EXAM_RELEVANCE,
    RESOURCE_CATEGORIES,
    RESOURCE_PRIORITIES,
    RESOURCE_STATUSES,
    TEMPLATE_CATEGORIES,
    Checker,
    resource_completion,
    resource_rollup,
)

logger = logging.getLogger(__name__)

# request key -> column, for fields a user may change directly
UPDATABLE = {
    "category": "category",
    "subject": "subject",
    "title": "title",
    "author": "author",
    "publisher": "publisher",
    "edition": "edition",
    "priority": "priority",
    "examRelevance": "exam_relevance",
    "tags": "tags",
    "description": "description",
    "url": "url",
    "totalPages": "total_pages",
    "estimatedHours": "estimated_hours",
    "actualHours": "actual_hours",
    "status": "status",
    "rating": "rating",
    "review": "review",
    "lastReadAt": "last_read_at",
}

_JSON_COLUMNS = {"exam_relevance", "tags"}


def _chapter_to_api(row: dict) -> dict:
    return {
        "id": row["id"],
        "name": row["name"],
        "pageRange": row["page_range"],
        "completed": bool(row["completed"]),
        "notes": row["notes"],
        "completedAt": row["completed_at"],
        "timeSpent": row["time_spent"],
        "order": row["sort_order"],
    }


class ResourceStore:

    @staticmethod
    def _validate(fields: dict, checker: Checker) -> None:
        if checker.required(fields.get("category"), "Please provide category"):
            checker.choice(fields["category"], RESOURCE_CATEGORIES, "category")
        checker.required(fields.get("subject"), "Please provide subject")
        checker.required(fields.get("title"), "Please provide title")
        checker.choice(fields.get("priority"), RESOURCE_PRIORITIES, "priority")
        checker.choice(fields.get("status"), RESOURCE_STATUSES, "status")
        checker.choices(loads_list(fields.get("exam_relevance")), EXAM_RELEVANCE, "examRelevance")
        if fields.get("template_category") is not None:
            checker.choice(fields["template_category"], TEMPLATE_CATEGORIES, "templateCategory")
        if fields.get("rating") is not None:
            checker.number(fields["rating"], "Rating must be between 1 and 5", minimum=1, maximum=5)
        for key in ("total_pages", "estimated_hours", "actual_hours"):
            if fields.get(key) is not None:
                checker.number(fields[key], f"{key.replace('_', ' ').capitalize()} cannot be negative",
                               minimum=0, integer=False)

    @staticmethod
    def _clean_chapters(chapters: Any, checker: Checker) -> list[dict]:
        if chapters is None:
            return []
        if not isinstance(chapters, list):
            checker.fail("Chapters must be a list")
            return []
        cleaned = []
        for index, ch in enumerate(chapters):
            ch = ch if isinstance(ch, dict) else {"name": ch}
            if not checker.required(ch.get("name"), "Please provide chapter name"):
                continue
            completed = bool(ch.get("completed", False))
            cleaned.append({
                "name": str(ch["name"]).strip(),
                "page_range": ch.get("pageRange") or "",
                "completed": int(completed),
                "notes": ch.get("notes") or "",
                "completed_at": iso_or_none(ch.get("completedAt")) or (now_iso() if completed else None),
                "time_spent": checker.number(ch.get("timeSpent") or 0, "Time spent cannot be negative",
                                             minimum=0) or 0,
                "sort_order": checker.number(ch.get("order", index), "Chapter order must be a number") or 0,
            })
        return cleaned

    @staticmethod
    def _replace_chapters(resource_id: int, chapters: list[dict]) -> None:
        db = get_db()
        db.execute("DELETE FROM resource_chapters WHERE resource_id = ?", (resource_id,))
        for ch in chapters:
            db.execute(
                "INSERT INTO resource_chapters (resource_id, name, page_range, completed, notes, "
                "completed_at, time_spent, sort_order) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (resource_id, ch["name"], ch["page_range"], ch["completed"], ch["notes"],
                 ch["completed_at"], ch["time_spent"], ch["sort_order"]),
            )

    @staticmethod
    def _chapters(resource_id: int) -> list[dict]:
        db = get_db()
        rows = db.execute(
            "SELECT * FROM resource_chapters WHERE resource_id = ? ORDER BY sort_order, id", (resource_id,)
        ).fetchall()
        return [_chapter_to_api(dict(r)) for r in rows]

    @staticmethod
    def _apply_rollup(resource_id: int) -> None:
        """Re-derive status, timestamps and hours from the chapter list."""
        db = get_db()
        row = db.execute("SELECT * FROM upsc_resources WHERE id = ?", (resource_id,)).fetchone()
        rollup = resource_rollup(
            ResourceStore._chapters(resource_id), row["status"], row["started_at"], row["completed_at"], now_iso()
        )
        actual = rollup["actual_hours"] if rollup["actual_hours"] is not None else row["actual_hours"]
        db.execute(
            "UPDATE upsc_resources SET status = ?, started_at = ?, completed_at = ?, actual_hours = ?, "
            "updated_at = ? WHERE id = ?",
            (rollup["status"], rollup["started_at"], rollup["completed_at"], actual, now_iso(), resource_id),
        )

    @staticmethod
    def _owned(resource_id: int, user_id: int) -> dict:
        db = get_db()
        row = db.execute(
            "SELECT * FROM upsc_resources WHERE id = ? AND user_id = ? AND is_active = 1 AND is_template = 0",
            (resource_id, user_id),
        ).fetchone()
        if not row:
            raise NotFound("UPSC resource not found")
        return dict(row)

    @staticmethod
    def _insert(owner_id: int, data: dict) -> int:
        checker = Checker()
        fields = {
            "category": data.get("category"),
            "subject": str(data.get("subject") or "").strip(),
            "title": str(data.get("title") or "").strip(),
            "author": data.get("author") or "",
            "publisher": data.get("publisher") or "",
            "edition": data.get("edition") or "",
            "isbn": data.get("isbn") or "",
            "priority": data.get("priority") or "Recommended",
            "exam_relevance": json.dumps(string_list(data.get("examRelevance"))),
            "tags": json.dumps(string_list(data.get("tags"))),
            "description": data.get("description") or "",
            "url": data.get("url") or "",
            "total_pages": data.get("totalPages"),
            "estimated_hours": data.get("estimatedHours") or 0,
            "status": "Not Started",
        }
        ResourceStore._validate(fields, checker)
        chapters = ResourceStore._clean_chapters(data.get("chapters"), checker)
        checker.check()

        now = now_iso()
        fields.update({"user_id": owner_id, "created_at": now, "updated_at": now})
        cols = ", ".join(fields)
        marks = ", ".join("?" for _ in fields)
        db = get_db()
        cur = db.execute(f"INSERT INTO upsc_resources ({cols}) VALUES ({marks})", tuple(fields.values()))
        resource_id = cur.lastrowid
        ResourceStore._replace_chapters(resource_id, chapters)
        ResourceStore._apply_rollup(resource_id)
        return resource_id

    # ── Queries ──

    @staticmethod
    def list_for_user(user_id: int, category: str | None = None, subject: str | None = None,
                      status: str | None = None, priority: str | None = None,
                      search: str | None = None) -> list[dict]:
        sql = "SELECT * FROM upsc_resources WHERE user_id = ? AND is_active = 1 AND is_template = 0"
        params: list[Any] = [user_id]
        for column, value in (("category", category), ("status", status), ("priority", priority)):
            if value:
                sql += f" AND {column} = ?"
                params.append(value)
        db = get_db()
        rows = [dict(r) for r in db.execute(
            sql + " ORDER BY subject, priority, created_at, id", params
        ).fetchall()]
        if subject:
            rows = [r for r in rows if contains_ci(subject, r["subject"])]
        if search:
            rows = [
                r for r in rows
                if contains_ci(search, r["title"], r["author"], r["description"], loads_list(r["tags"]))
            ]
        return [ResourceStore.to_api(r) for r in rows]

    @staticmethod
    def get(resource_id: int, user_id: int) -> dict:
        return ResourceStore.to_api(ResourceStore._owned(resource_id, user_id))

    @staticmethod
    def subject_stats(user_id: int) -> list[dict]:
        db = get_db()
        rows = db.execute(
            "SELECT subject, status, actual_hours, estimated_hours FROM upsc_resources "
            "WHERE user_id = ? AND is_active = 1 AND is_template = 0",
            (user_id,),
        ).fetchall()
        grouped: dict[str, dict] = defaultdict(lambda: {
            "total": 0, "completed": 0, "inProgress": 0, "notStarted": 0, "totalHours": 0, "estimatedHours": 0,
        })
        for r in rows:
            entry = grouped[r["subject"]]
            entry["total"] += 1
            entry["completed"] += r["status"] == "Completed"
            entry["inProgress"] += r["status"] == "In Progress"
            entry["notStarted"] += r["status"] == "Not Started"
            entry["totalHours"] += r["actual_hours"]
            entry["estimatedHours"] += r["estimated_hours"]
        stats = [
            {"subject": subject, **entry, "completionPercentage": entry["completed"] / entry["total"] * 100}
            for subject, entry in grouped.items()
        ]
        stats.sort(key=lambda s: (-s["completionPercentage"], s["subject"]))
        return stats

    @staticmethod
    def templates(template_category: str | None = None) -> dict[str, list[dict]]:
        sql = "SELECT * FROM upsc_resources WHERE is_template = 1 AND is_active = 1"
        params: list[Any] = []
        if template_category:
            sql += " AND template_category = ?"
            params.append(template_category)
        db = get_db()
        rows = db.execute(sql + " ORDER BY template_category, subject, priority, id", params).fetchall()
        grouped: dict[str, list[dict]] = {}
        for r in rows:
            grouped.setdefault(r["template_category"], []).append({
                "id": r["id"],
                "templateCategory": r["template_category"],
                "subject": r["subject"],
                "title": r["title"],
                "author": r["author"],
                "description": r["description"],
                "examRelevance": loads_list(r["exam_relevance"]),
                "priority": r["priority"],
            })
        return grouped

    # ── Mutations ──

    @staticmethod
    def create(user_id: int, data: dict) -> dict:
        resource_id = ResourceStore._insert(user_id, data)
        get_db().commit()
        return ResourceStore.get(resource_id, user_id)

    @staticmethod
    def update(resource_id: int, user_id: int, data: dict) -> dict:
        row = ResourceStore._owned(resource_id, user_id)
        changes: dict[str, Any] = {}
        for key, column in UPDATABLE.items():
            if data.get(key) is None:
                continue
            value = data[key]
            if column in _JSON_COLUMNS:
                value = json.dumps(string_list(value))
            elif column == "last_read_at":
                value = iso_or_none(value)
            changes[column] = value

        checker = Checker()
        ResourceStore._validate({**row, **changes}, checker)
        chapters = None
        if data.get("chapters") is not None:
            chapters = ResourceStore._clean_chapters(data["chapters"], checker)
        checker.check()

        db = get_db()
        if changes:
            assignments = ", ".join(f"{col} = ?" for col in changes)
            db.execute(f"UPDATE upsc_resources SET {assignments} WHERE id = ?", (*changes.values(), resource_id))
        if chapters is not None:
            ResourceStore._replace_chapters(resource_id, chapters)
        ResourceStore._apply_rollup(resource_id)
        db.commit()
        return ResourceStore.get(resource_id, user_id)

    @staticmethod
    def update_chapter(resource_id: int, user_id: int, data: dict) -> dict:
        ResourceStore._owned(resource_id, user_id)
        db = get_db()
        try:
            chapter_id = int(data.get("chapterId"))
        except (TypeError, ValueError):
            raise NotFound("Chapter not found") from None
        chapter = db.execute(
            "SELECT * FROM resource_chapters WHERE id = ? AND resource_id = ?", (chapter_id, resource_id)
        ).fetchone()
        if not chapter:
            raise NotFound("Chapter not found")

        completed = data.get("completed")
        if completed is not None:
            db.execute(
                "UPDATE resource_chapters SET completed = ?, completed_at = ? WHERE id = ?",
                (int(bool(completed)), now_iso() if completed else None, chapter_id),
            )
        time_spent = data.get("timeSpent")
        if time_spent is not None:
            checker = Checker()
            minutes = checker.number(time_spent, "Time spent cannot be negative", minimum=0)
            checker.check()
            db.execute(
                "UPDATE resource_chapters SET time_spent = time_spent + ? WHERE id = ?", (minutes, chapter_id)
            )
        if data.get("notes") is not None:
            db.execute("UPDATE resource_chapters SET notes = ? WHERE id = ?", (data["notes"], chapter_id))

        db.execute("UPDATE upsc_resources SET last_read_at = ? WHERE id = ?", (now_iso(), resource_id))
        ResourceStore._apply_rollup(resource_id)
        db.commit()
        return ResourceStore.get(resource_id, user_id)

    @staticmethod
    def delete(resource_id: int, user_id: int) -> None:
        ResourceStore._owned(resource_id, user_id)
        db = get_db()
        db.execute(
            "UPDATE upsc_resources SET is_active = 0, updated_at = ? WHERE id = ?", (now_iso(), resource_id)
        )
        db.commit()

    @staticmethod
    def import_templates(user_id: int, template_category: str | None) -> list[dict]:
        if not template_category:
            raise BadRequest("Template category is required")
        db = get_db()
        templates = db.execute(
            "SELECT * FROM upsc_resources WHERE is_template = 1 AND template_category = ? AND is_active = 1 "
            "ORDER BY id",
            (template_category,),
        ).fetchall()
        if not templates:
            raise NotFound("No templates found for this category")

        created = []
        for tpl in templates:
            source = ResourceStore.to_api(dict(tpl))
            clone = {
                key: source[key] for key in (
                    "category", "subject", "title", "author", "publisher", "edition", "priority",
                    "examRelevance", "tags", "description", "url", "totalPages", "estimatedHours",
                )
            }
            clone["chapters"] = [
                {"name": ch["name"], "pageRange": ch["pageRange"], "order": ch["order"]}
                for ch in source["chapters"]
            ]
            created.append(ResourceStore._insert(user_id, clone))
        db.commit()
        logger.info("imported %d %s templates for user %s", len(created), template_category, user_id)
        return [ResourceStore.get(rid, user_id) for rid in created]

    @staticmethod
    def bulk_update(user_id: int, resource_ids: Any, action: str | None, action_data: dict | None) -> int:
        if not isinstance(resource_ids, list) or not resource_ids:
            raise BadRequest("Resource IDs array is required")
        action_data = action_data or {}
        if action == "set_priority":
            priority = action_data.get("priority")
            if not priority:
                raise BadRequest("Priority is required for set_priority action")
            if priority not in RESOURCE_PRIORITIES:
                raise BadRequest(f"`{priority}` is not a valid value for priority")
        elif action == "add_tags":
            if not isinstance(action_data.get("tags"), list):
                raise BadRequest("Tags array is required for add_tags action")
        elif action != "mark_completed":
            raise BadRequest("Invalid action")

        ids = []
        for raw in resource_ids:
            try:
                ids.append(int(raw))
            except (TypeError, ValueError):
                continue
        if not ids:
            return 0

        marks = ", ".join("?" for _ in ids)
        db = get_db()
        rows = db.execute(
            f"SELECT * FROM upsc_resources WHERE user_id = ? AND is_active = 1 AND is_template = 0 "
            f"AND id IN ({marks})",
            (user_id, *ids),
        ).fetchall()

        now = now_iso()
        modified = 0
        for r in rows:
            if action == "set_priority":
                if r["priority"] == action_data["priority"]:
                    continue
                db.execute("UPDATE upsc_resources SET priority = ?, updated_at = ? WHERE id = ?",
                           (action_data["priority"], now, r["id"]))
            elif action == "mark_completed":
                db.execute("UPDATE upsc_resources SET status = 'Completed', completed_at = ?, updated_at = ? "
                           "WHERE id = ?", (now, now, r["id"]))
            else:
                tags = loads_list(r["tags"])
                added = [t for t in string_list(action_data["tags"]) if t not in tags]
                if not added:
                    continue
                db.execute("UPDATE upsc_resources SET tags = ?, updated_at = ? WHERE id = ?",
                           (json.dumps(tags + added), now, r["id"]))
            modified += 1
        db.commit()
        return modified

    @staticmethod
    def to_api(row: dict) -> dict:
        chapters = ResourceStore._chapters(row["id"])
        return {
            "id": row["id"],
            "user": row["user_id"],
            "category": row["category"],
            "subject": row["subject"],
            "title": row["title"],
            "author": row["author"],
            "publisher": row["publisher"],
            "edition": row["edition"],
            "isbn": row["isbn"],
            "chapters": chapters,
            "priority": row["priority"],
            "examRelevance": loads_list(row["exam_relevance"]),
            "tags": loads_list(row["tags"]),
            "description": row["description"],
            "url": row["url"],
            "totalPages": row["total_pages"],
            "estimatedHours": row["estimated_hours"],
            "actualHours": row["actual_hours"],
            "startedAt": row["started_at"],
            "completedAt": row["completed_at"],
            "lastReadAt": row["last_read_at"],
            "rating": row["rating"],
            "review": row["review"],
            "isTemplate": bool(row["is_template"]),
            "templateCategory": row["template_category"],
            "status": row["status"],
            "isActive": bool(row["is_active"]),
            "completionPercentage": resource_completion(chapters, row["status"]),
            "createdAt": row["created_at"],
            "updatedAt": row["updated_at"],
        }
