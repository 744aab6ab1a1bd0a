"""
Study groups, their membership roster and the group activity feed.

Membership rows are never deleted: leaving a group flips ``is_active`` and
rejoining reactivates the same row. ``total_members`` is recomputed from the
roster on every membership change.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from datetime import datetime
from typing import Any

from database import get_db
from helpers import (
    BadRequest,
    Forbidden,
    NotFound,
    like_pattern,
    loads_dict,
    loads_list,
    now_iso,
    page_count,
    parse_date,
    string_list,
)
from models import (
    ACTIVITY_PRIORITIES,
    ACTIVITY_TYPES,
    EXAM_TYPES,
    GROUP_PRIVACY,
    REACTIONS,
    VISIBILITIES,
    Checker,
    activity_points,
    activity_score,
    display_text,
    leaderboard_start,
)

logger = logging.getLogger(__name__)

_SORTS = {
    "members": "total_members DESC, created_at DESC",
    "activity": "last_activity DESC",
    "newest": "created_at DESC",
    "oldest": "created_at ASC",
}


def _brief_user(user_id: int, cache: dict[int, dict] | None = None) -> dict | None:
    if cache is not None and user_id in cache:
        return cache[user_id]
    db = get_db()
    row = db.execute("SELECT id, name, profile_picture FROM users WHERE id = ?", (user_id,)).fetchone()
    brief = {"id": row["id"], "name": row["name"], "profilePicture": row["profile_picture"]} if row else None
    if cache is not None:
        cache[user_id] = brief
    return brief


class StudyGroupStore:

    @staticmethod
    def _settings(data: Any, current: dict | None, checker: Checker) -> dict:
        settings = data if isinstance(data, dict) else {}
        base = current or {
            "allow_member_invites": 1,
            "require_approval": 0,
            "max_members": 50,
            "allow_data_sharing": 1,
            "allow_leaderboard": 1,
        }
        fields = dict(base)
        for key, column in (("allowMemberInvites", "allow_member_invites"),
                            ("requireApproval", "require_approval"),
                            ("allowDataSharing", "allow_data_sharing"),
                            ("allowLeaderboard", "allow_leaderboard")):
            if key in settings and settings[key] is not None:
                fields[column] = int(bool(settings[key]))
        if settings.get("maxMembers") is not None:
            fields["max_members"] = checker.number(
                settings["maxMembers"], "Max members must be between 2 and 100", minimum=2, maximum=100
            ) or base["max_members"]
        return fields

    @staticmethod
    def _validate(name: Any, description: Any, exam_types: list, privacy: Any, checker: Checker) -> None:
        checker.max_length(name, 100, "Group name cannot exceed 100 characters")
        checker.max_length(description, 500, "Description cannot exceed 500 characters")
        checker.choices(exam_types, EXAM_TYPES, "examTypes")
        checker.choice(privacy, GROUP_PRIVACY, "privacy")

    @staticmethod
    def _row(group_id: int) -> dict:
        db = get_db()
        row = db.execute("SELECT * FROM study_groups WHERE id = ? AND is_active = 1", (group_id,)).fetchone()
        if not row:
            raise NotFound("Study group not found")
        return dict(row)

    @staticmethod
    def member(group_id: int, user_id: int) -> dict | None:
        """The active membership row for *user_id*, if any."""
        db = get_db()
        row = db.execute(
            "SELECT * FROM group_members WHERE group_id = ? AND user_id = ? AND is_active = 1",
            (group_id, user_id),
        ).fetchone()
        return dict(row) if row else None

    @staticmethod
    def is_member(group_id: int, user_id: int) -> bool:
        return StudyGroupStore.member(group_id, user_id) is not None

    @staticmethod
    def can_moderate(group_id: int, user_id: int) -> bool:
        member = StudyGroupStore.member(group_id, user_id)
        return bool(member) and member["role"] in ("admin", "moderator")

    @staticmethod
    def readable(group_id: int, user_id: int) -> dict:
        """Group row if it is public or *user_id* belongs to it."""
        group = StudyGroupStore._row(group_id)
        if group["privacy"] != "public" and not StudyGroupStore.is_member(group_id, user_id):
            raise Forbidden("Access denied")
        return group

    @staticmethod
    def _refresh_members(group_id: int) -> None:
        db = get_db()
        count = db.execute(
            "SELECT COUNT(*) AS n FROM group_members WHERE group_id = ? AND is_active = 1", (group_id,)
        ).fetchone()["n"]
        now = now_iso()
        db.execute(
            "UPDATE study_groups SET total_members = ?, last_activity = ?, updated_at = ? WHERE id = ?",
            (count, now, now, group_id),
        )

    @staticmethod
    def add_member(group_id: int, user_id: int, role: str = "member") -> None:
        """Add *user_id*, reactivating a previous membership if there is one."""
        db = get_db()
        now = now_iso()
        existing = db.execute(
            "SELECT id FROM group_members WHERE group_id = ? AND user_id = ?", (group_id, user_id)
        ).fetchone()
        if existing:
            db.execute(
                "UPDATE group_members SET is_active = 1, role = ?, joined_at = ? WHERE id = ?",
                (role, now, existing["id"]),
            )
        else:
            db.execute(
                "INSERT INTO group_members (group_id, user_id, role, joined_at, is_active) VALUES (?, ?, ?, ?, 1)",
                (group_id, user_id, role, now),
            )
        StudyGroupStore._refresh_members(group_id)

    @staticmethod
    def remove_member(group_id: int, user_id: int) -> None:
        db = get_db()
        db.execute(
            "UPDATE group_members SET is_active = 0 WHERE group_id = ? AND user_id = ?", (group_id, user_id)
        )
        StudyGroupStore._refresh_members(group_id)

    # ── Queries ──

    @staticmethod
    def public_page(page: int, limit: int, exam_type: str | None = None, search: str | None = None,
                    sort_by: str = "members") -> tuple[list[dict], dict]:
        where = "privacy = 'public' AND is_active = 1"
        params: list[Any] = []
        if exam_type:
            where += " AND exam_types LIKE ? ESCAPE '\\'"
            params.append(like_pattern(json.dumps(exam_type)))
        if search:
            pattern = like_pattern(search)
            where += (" AND (name LIKE ? ESCAPE '\\' OR description LIKE ? ESCAPE '\\'"
                      " OR tags LIKE ? ESCAPE '\\')")
            params.extend([pattern, pattern, pattern])
        order = _SORTS.get(sort_by, _SORTS["members"])
        db = get_db()
        total = db.execute(f"SELECT COUNT(*) AS n FROM study_groups WHERE {where}", params).fetchone()["n"]
        rows = db.execute(
            f"SELECT * FROM study_groups WHERE {where} ORDER BY {order}, id DESC LIMIT ? OFFSET ?",
            (*params, limit, (page - 1) * limit),
        ).fetchall()
        pagination = {
            "currentPage": page,
            "totalPages": page_count(total, limit),
            "totalGroups": total,
            "hasNext": page * limit < total,
            "hasPrev": page > 1,
        }
        cache: dict[int, dict] = {}
        return [StudyGroupStore.to_api(dict(r), cache) for r in rows], pagination

    @staticmethod
    def for_user(user_id: int) -> list[dict]:
        db = get_db()
        rows = db.execute(
            "SELECT g.* FROM study_groups g JOIN group_members m ON m.group_id = g.id "
            "WHERE m.user_id = ? AND m.is_active = 1 AND g.is_active = 1 "
            "ORDER BY g.last_activity DESC, g.id DESC",
            (user_id,),
        ).fetchall()
        cache: dict[int, dict] = {}
        return [StudyGroupStore.to_api(dict(r), cache) for r in rows]

    @staticmethod
    def detail(group_id: int, user_id: int) -> dict:
        group = StudyGroupStore._row(group_id)
        member = StudyGroupStore.member(group_id, user_id)
        if group["privacy"] != "public" and not member and group["admin_id"] != user_id:
            raise Forbidden("Access denied to this group")
        return {
            "group": StudyGroupStore.to_api(group),
            "recentActivities": GroupActivityStore.feed(group_id, 1, 10),
            "leaderboard": GroupActivityStore.leaderboard(group_id, "week"),
            "userRole": member["role"] if member else None,
        }

    # ── Mutations ──

    @staticmethod
    def create(user_id: int, data: dict) -> dict:
        name = str(data.get("name") or "").strip()
        exam_types = data.get("examTypes")
        target_date = parse_date(data.get("targetDate"))
        if not name or not exam_types or not isinstance(exam_types, list) or not target_date:
            raise BadRequest("Name, exam types, and target date are required")
        description = str(data.get("description") or "").strip()
        privacy = data.get("privacy") or "public"
        checker = Checker()
        StudyGroupStore._validate(name, description, exam_types, privacy, checker)
        settings = StudyGroupStore._settings(data.get("settings"), None, checker)
        checker.check()

        db = get_db()
        now = now_iso()
        cur = db.execute(
            "INSERT INTO study_groups (name, description, exam_types, target_date, admin_id, privacy, "
            "allow_member_invites, require_approval, max_members, allow_data_sharing, allow_leaderboard, "
            "total_members, last_activity, tags, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?, ?, ?)",
            (
                name, description, json.dumps(exam_types), target_date, user_id, privacy,
                settings["allow_member_invites"], settings["require_approval"], settings["max_members"],
                settings["allow_data_sharing"], settings["allow_leaderboard"], now,
                json.dumps(string_list(data.get("tags"))), now, now,
            ),
        )
        group_id = cur.lastrowid
        StudyGroupStore.add_member(group_id, user_id, "admin")
        creator = _brief_user(user_id) or {}
        GroupActivityStore.record(group_id, user_id, "member_joined", {
            "title": "Group Created",
            "description": f'{creator.get("name")} created the group "{name}"',
        })
        db.commit()
        logger.info("Study group %s created by user %s", group_id, user_id)
        return StudyGroupStore.to_api(StudyGroupStore._row(group_id))

    @staticmethod
    def update(group_id: int, user_id: int, data: dict) -> dict:
        group = StudyGroupStore._row(group_id)
        if not StudyGroupStore.can_moderate(group_id, user_id):
            raise Forbidden("Access denied. Only admins and moderators can update this group")

        name = str(data["name"]).strip() if data.get("name") else group["name"]
        description = data["description"] if data.get("description") is not None else group["description"]
        exam_types = data["examTypes"] if data.get("examTypes") else loads_list(group["exam_types"])
        target_date = parse_date(data.get("targetDate")) or group["target_date"]
        privacy = data.get("privacy") or group["privacy"]
        tags = string_list(data["tags"]) if data.get("tags") is not None else loads_list(group["tags"])
        checker = Checker()
        StudyGroupStore._validate(name, description, exam_types, privacy, checker)
        settings = StudyGroupStore._settings(data.get("settings"), {
            key: group[key] for key in ("allow_member_invites", "require_approval", "max_members",
                                        "allow_data_sharing", "allow_leaderboard")
        }, checker)
        checker.check()

        db = get_db()
        now = now_iso()
        db.execute(
            "UPDATE study_groups SET name = ?, description = ?, exam_types = ?, target_date = ?, privacy = ?, "
            "allow_member_invites = ?, require_approval = ?, max_members = ?, allow_data_sharing = ?, "
            "allow_leaderboard = ?, tags = ?, last_activity = ?, updated_at = ? WHERE id = ?",
            (
                name, description, json.dumps(exam_types), target_date, privacy,
                settings["allow_member_invites"], settings["require_approval"], settings["max_members"],
                settings["allow_data_sharing"], settings["allow_leaderboard"], json.dumps(tags),
                now, now, group_id,
            ),
        )
        db.commit()
        return StudyGroupStore.to_api(StudyGroupStore._row(group_id))

    @staticmethod
    def delete(group_id: int, user_id: int) -> None:
        group = StudyGroupStore._row(group_id)
        if group["admin_id"] != user_id:
            raise Forbidden("Only group admin can delete the group")
        db = get_db()
        db.execute("UPDATE study_groups SET is_active = 0, updated_at = ? WHERE id = ?", (now_iso(), group_id))
        db.commit()

    @staticmethod
    def join(group_id: int, user_id: int) -> None:
        group = StudyGroupStore._row(group_id)
        if StudyGroupStore.is_member(group_id, user_id):
            raise BadRequest("You are already a member of this group")
        if group["total_members"] >= group["max_members"]:
            raise BadRequest("Group is at maximum capacity")
        if group["privacy"] == "private":
            raise Forbidden("This is a private group. You need an invitation to join")
        StudyGroupStore.add_member(group_id, user_id)
        member = _brief_user(user_id) or {}
        GroupActivityStore.record(group_id, user_id, "member_joined", {
            "title": "New Member",
            "description": f'{member.get("name")} joined the group',
        })
        get_db().commit()

    @staticmethod
    def leave(group_id: int, user_id: int) -> None:
        group = StudyGroupStore._row(group_id)
        if not StudyGroupStore.is_member(group_id, user_id):
            raise BadRequest("You are not a member of this group")
        if group["admin_id"] == user_id:
            raise BadRequest("Group admin cannot leave. Transfer admin rights first or delete the group")
        StudyGroupStore.remove_member(group_id, user_id)
        member = _brief_user(user_id) or {}
        GroupActivityStore.record(group_id, user_id, "member_left", {
            "title": "Member Left",
            "description": f'{member.get("name")} left the group',
        })
        get_db().commit()

    @staticmethod
    def to_api(row: dict, cache: dict[int, dict] | None = None) -> dict:
        cache = {} if cache is None else cache
        db = get_db()
        members = db.execute(
            "SELECT * FROM group_members WHERE group_id = ? ORDER BY joined_at, id", (row["id"],)
        ).fetchall()
        return {
            "id": row["id"],
            "name": row["name"],
            "description": row["description"],
            "examTypes": loads_list(row["exam_types"]),
            "targetDate": row["target_date"],
            "admin": _brief_user(row["admin_id"], cache),
            "members": [
                {
                    "user": _brief_user(m["user_id"], cache),
                    "joinedAt": m["joined_at"],
                    "role": m["role"],
                    "isActive": bool(m["is_active"]),
                }
                for m in members
            ],
            "privacy": row["privacy"],
            "settings": {
                "allowMemberInvites": bool(row["allow_member_invites"]),
                "requireApproval": bool(row["require_approval"]),
                "maxMembers": row["max_members"],
                "allowDataSharing": bool(row["allow_data_sharing"]),
                "allowLeaderboard": bool(row["allow_leaderboard"]),
            },
            "stats": {
                "totalMembers": row["total_members"],
                "averageStudyHours": row["average_study_hours"],
                "groupStreak": row["group_streak"],
                "lastActivity": row["last_activity"] or None,
            },
            "memberCount": sum(1 for m in members if m["is_active"]),
            "tags": loads_list(row["tags"]),
            "isActive": bool(row["is_active"]),
            "createdAt": row["created_at"],
            "updatedAt": row["updated_at"],
        }


class GroupActivityStore:

    @staticmethod
    def record(group_id: int, user_id: int, activity_type: str, data: dict | None = None,
               visibility: str = "group", priority: str = "normal", tags: list | None = None,
               is_highlight: bool = False) -> int:
        """Insert an activity with points from the points table; does not commit."""
        checker = Checker()
        checker.choice(activity_type, ACTIVITY_TYPES, "activityType")
        checker.choice(visibility, VISIBILITIES, "visibility")
        checker.choice(priority, ACTIVITY_PRIORITIES, "priority")
        checker.check()
        data = data or {}
        now = now_iso()
        db = get_db()
        cur = db.execute(
            "INSERT INTO group_activities (group_id, user_id, activity_type, title, description, value, "
            "metadata, visibility, points, tags, priority, is_highlight, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                group_id, user_id, activity_type, data.get("title") or "", data.get("description") or "",
                data.get("value"), json.dumps(data.get("metadata") or {}), visibility,
                activity_points(activity_type), json.dumps(string_list(tags)), priority,
                int(is_highlight), now, now,
            ),
        )
        return cur.lastrowid

    @staticmethod
    def _activity(group_id: int, activity_id: int) -> dict:
        db = get_db()
        row = db.execute(
            "SELECT * FROM group_activities WHERE id = ? AND group_id = ?", (activity_id, group_id)
        ).fetchone()
        if not row:
            raise NotFound("Activity not found")
        return dict(row)

    @staticmethod
    def feed(group_id: int, page: int = 1, limit: int = 20) -> list[dict]:
        db = get_db()
        rows = db.execute(
            "SELECT * FROM group_activities WHERE group_id = ? AND visibility IN ('public', 'group') "
            "ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
            (group_id, limit, (page - 1) * limit),
        ).fetchall()
        cache: dict[int, dict] = {}
        return [GroupActivityStore.to_api(dict(r), cache) for r in rows]

    @staticmethod
    def leaderboard(group_id: int, period: str = "week", now: datetime | None = None) -> list[dict]:
        start = leaderboard_start(period, now or datetime.now())
        db = get_db()
        rows = db.execute(
            "SELECT a.user_id, SUM(a.points) AS total_points, COUNT(*) AS activity_count, "
            "MAX(a.created_at) AS last_activity, u.name, u.profile_picture "
            "FROM group_activities a JOIN users u ON u.id = a.user_id "
            "WHERE a.group_id = ? AND a.created_at >= ? "
            "GROUP BY a.user_id, u.name, u.profile_picture",
            (group_id, start.isoformat()),
        ).fetchall()
        board = [
            {
                "userId": r["user_id"],
                "name": r["name"],
                "profilePicture": r["profile_picture"],
                "totalPoints": r["total_points"],
                "activityCount": r["activity_count"],
                "lastActivity": r["last_activity"],
            }
            for r in rows
        ]
        board.sort(key=lambda e: e["lastActivity"], reverse=True)
        board.sort(key=lambda e: e["totalPoints"], reverse=True)
        return board

    @staticmethod
    def stats(group_id: int, user_id: int | None = None) -> list[dict]:
        sql = ("SELECT activity_type, COUNT(*) AS count, SUM(points) AS total_points, AVG(points) AS avg_points "
               "FROM group_activities WHERE group_id = ?")
        params: list[Any] = [group_id]
        if user_id:
            sql += " AND user_id = ?"
            params.append(user_id)
        db = get_db()
        rows = db.execute(sql + " GROUP BY activity_type ORDER BY count DESC, activity_type", params).fetchall()
        return [
            {
                "activityType": r["activity_type"],
                "count": r["count"],
                "totalPoints": r["total_points"],
                "avgPoints": float(r["avg_points"]),
            }
            for r in rows
        ]

    @staticmethod
    def react(group_id: int, activity_id: int, user_id: int, reaction: Any) -> dict:
        """Set the user's single reaction, replacing any earlier one."""
        GroupActivityStore._activity(group_id, activity_id)
        reaction = reaction or "like"
        checker = Checker()
        checker.choice(reaction, REACTIONS, "reaction")
        checker.check()
        db = get_db()
        db.execute("DELETE FROM activity_reactions WHERE activity_id = ? AND user_id = ?", (activity_id, user_id))
        db.execute(
            "INSERT INTO activity_reactions (activity_id, user_id, reaction, reacted_at) VALUES (?, ?, ?, ?)",
            (activity_id, user_id, reaction, now_iso()),
        )
        db.commit()
        return GroupActivityStore.to_api(GroupActivityStore._activity(group_id, activity_id))

    @staticmethod
    def unreact(group_id: int, activity_id: int, user_id: int) -> dict:
        GroupActivityStore._activity(group_id, activity_id)
        db = get_db()
        db.execute("DELETE FROM activity_reactions WHERE activity_id = ? AND user_id = ?", (activity_id, user_id))
        db.commit()
        return GroupActivityStore.to_api(GroupActivityStore._activity(group_id, activity_id))

    @staticmethod
    def comment(group_id: int, activity_id: int, user_id: int, text: Any) -> dict:
        GroupActivityStore._activity(group_id, activity_id)
        checker = Checker()
        if checker.required(text, "Please provide a comment"):
            text = str(text).strip()
            checker.max_length(text, 500, "Comment cannot exceed 500 characters")
        checker.check()
        db = get_db()
        db.execute(
            "INSERT INTO activity_comments (activity_id, user_id, comment, commented_at) VALUES (?, ?, ?, ?)",
            (activity_id, user_id, text, now_iso()),
        )
        db.commit()
        return GroupActivityStore.to_api(GroupActivityStore._activity(group_id, activity_id))

    @staticmethod
    def to_api(row: dict, cache: dict[int, dict] | None = None) -> dict:
        cache = {} if cache is None else cache
        db = get_db()
        reactions = db.execute(
            "SELECT * FROM activity_reactions WHERE activity_id = ? ORDER BY reacted_at, id", (row["id"],)
        ).fetchall()
        comments = db.execute(
            "SELECT * FROM activity_comments WHERE activity_id = ? ORDER BY commented_at, id", (row["id"],)
        ).fetchall()
        user = _brief_user(row["user_id"], cache)
        metadata = loads_dict(row["metadata"])
        counts: dict[str, int] = defaultdict(int)
        for r in reactions:
            counts[r["reaction"]] += 1
        return {
            "id": row["id"],
            "group": row["group_id"],
            "user": user,
            "activityType": row["activity_type"],
            "data": {
                "title": row["title"],
                "description": row["description"],
                "value": row["value"],
                "metadata": metadata,
            },
            "visibility": row["visibility"],
            "points": row["points"],
            "reactions": [
                {"user": _brief_user(r["user_id"], cache), "reaction": r["reaction"], "reactedAt": r["reacted_at"]}
                for r in reactions
            ],
            "reactionSummary": dict(counts),
            "comments": [
                {
                    "id": c["id"],
                    "user": _brief_user(c["user_id"], cache),
                    "comment": c["comment"],
                    "commentedAt": c["commented_at"],
                }
                for c in comments
            ],
            "reactionCount": len(reactions),
            "commentCount": len(comments),
            "tags": loads_list(row["tags"]),
            "priority": row["priority"],
            "isHighlight": bool(row["is_highlight"]),
            "activityScore": activity_score(row["points"], len(reactions), len(comments),
                                            row["priority"], bool(row["is_highlight"])),
            "displayText": display_text(row["activity_type"], user["name"] if user else None,
                                        row["title"], row["description"], metadata),
            "createdAt": row["created_at"],
        }
