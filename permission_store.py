"""
Data-sharing permissions between members of a study group.

A permission row is keyed by (group, owner, viewer): the viewer asks, the
owner approves or denies, and either side can revoke later. The capability
matrix lives in a JSON column; see ``models.merge_permissions``.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

from flask import has_request_context, request

from audit import log_event
from database import get_db
from group_store import GroupActivityStore, StudyGroupStore, _brief_user
from helpers import BadRequest, Forbidden, NotFound, iso_or_none, loads_dict, now_iso, to_bool
from models import (
    PERMISSION_CATEGORIES,
    RENEWAL_PERIODS,
    Checker,
    enabled_categories,
    matrix_allows,
    merge_permissions,
    permission_is_valid,
    permission_lifecycle,
)

logger = logging.getLogger(__name__)

DEFAULT_NOTIFICATIONS = {"notifyOnView": True, "notifyOnExpiry": True, "emailNotifications": False}
VIEW_HISTORY_LIMIT = 100


class GroupPermissionStore:

    @staticmethod
    def _row(permission_id: int, message: str = "Permission not found") -> dict:
        db = get_db()
        row = db.execute("SELECT * FROM group_permissions WHERE id = ?", (permission_id,)).fetchone()
        if not row:
            raise NotFound(message)
        return dict(row)

    @staticmethod
    def _save(permission_id: int, fields: dict) -> None:
        """Write *fields* after applying the expiry and end-date rules."""
        current = GroupPermissionStore._row(permission_id)
        merged = {**current, **fields}
        status, end_date = permission_lifecycle(
            merged["status"], bool(merged["is_permanent"]), merged["end_date"],
            merged["renewal_period"], datetime.now(),
        )
        fields = {**fields, "status": status, "end_date": end_date, "updated_at": now_iso()}
        assignments = ", ".join(f"{col} = ?" for col in fields)
        get_db().execute(
            f"UPDATE group_permissions SET {assignments} WHERE id = ?", (*fields.values(), permission_id)
        )

    @staticmethod
    def _is_valid(row: dict) -> bool:
        return permission_is_valid(row["status"], bool(row["is_permanent"]), row["end_date"], datetime.now())

    @staticmethod
    def has_permission(row: dict, category: str, detail: str | None = None) -> bool:
        if not GroupPermissionStore._is_valid(row):
            return False
        return matrix_allows(loads_dict(row["permissions"]), category, detail)

    # ── Queries ──

    @staticmethod
    def pending(user_id: int, kind: str = "received") -> list[dict]:
        column = "owner_id" if kind == "received" else "viewer_id"
        db = get_db()
        rows = db.execute(
            f"SELECT * FROM group_permissions WHERE status = 'pending' AND {column} = ? "
            "ORDER BY created_at DESC, id DESC",
            (user_id,),
        ).fetchall()
        return [GroupPermissionStore.to_api(dict(r), with_group=True) for r in rows]

    @staticmethod
    def in_group(group_id: int, user_id: int, other_id: int | None = None) -> list[dict]:
        StudyGroupStore._row(group_id)
        if not StudyGroupStore.is_member(group_id, user_id):
            raise Forbidden("Access denied. You must be a member of this group")
        sql = "SELECT * FROM group_permissions WHERE group_id = ? AND status = 'active'"
        params: list[Any] = [group_id]
        if other_id:
            sql += " AND ((owner_id = ? AND viewer_id = ?) OR (owner_id = ? AND viewer_id = ?))"
            params.extend([other_id, user_id, user_id, other_id])
        else:
            sql += " AND (owner_id = ? OR viewer_id = ?)"
            params.extend([user_id, user_id])
        db = get_db()
        rows = db.execute(sql + " ORDER BY created_at DESC, id DESC", params).fetchall()
        return [GroupPermissionStore.to_api(dict(r)) for r in rows]

    @staticmethod
    def can_view(group_id: int, owner_id: Any, viewer_id: int, category: Any, detail: str | None = None) -> bool:
        if not owner_id or not category:
            raise BadRequest("Owner ID and data type are required")
        db = get_db()
        row = db.execute(
            "SELECT * FROM group_permissions WHERE group_id = ? AND owner_id = ? AND viewer_id = ? "
            "AND status = 'active'",
            (group_id, owner_id, viewer_id),
        ).fetchone()
        return bool(row) and GroupPermissionStore.has_permission(dict(row), category, detail)

    @staticmethod
    def history(permission_id: int, user_id: int) -> dict:
        row = GroupPermissionStore._row(permission_id)
        if user_id not in (row["owner_id"], row["viewer_id"]):
            raise Forbidden("Access denied")
        db = get_db()
        views = db.execute(
            "SELECT * FROM permission_views WHERE permission_id = ? ORDER BY viewed_at, id", (permission_id,)
        ).fetchall()
        return {
            "id": row["id"],
            "status": row["status"],
            "createdAt": row["created_at"],
            "viewHistory": [
                {"viewedAt": v["viewed_at"], "dataType": v["data_type"], "details": v["details"]}
                for v in views
            ],
            "totalViews": row["total_views"],
            "lastViewedAt": row["last_viewed_at"],
        }

    # ── Mutations ──

    @staticmethod
    def request_access(group_id: int, viewer_id: int, data: dict) -> dict:
        owner_id = data.get("ownerId")
        permissions = data.get("permissions")
        if not owner_id or not permissions:
            raise BadRequest("Owner ID and permissions are required")
        try:
            owner_id = int(owner_id)
        except (TypeError, ValueError):
            raise BadRequest("Owner ID and permissions are required")

        StudyGroupStore._row(group_id)
        if not StudyGroupStore.is_member(group_id, viewer_id) or not StudyGroupStore.is_member(group_id, owner_id):
            raise Forbidden("Both users must be members of the group")
        if owner_id == viewer_id:
            raise BadRequest("Cannot request permission from yourself")

        db = get_db()
        existing = db.execute(
            "SELECT * FROM group_permissions WHERE group_id = ? AND owner_id = ? AND viewer_id = ?",
            (group_id, owner_id, viewer_id),
        ).fetchone()
        if existing and existing["status"] == "active":
            raise BadRequest("Permission already granted")
        if existing and existing["status"] == "pending":
            raise BadRequest("Permission request already pending")

        renewal = data.get("duration") or "1month"
        request_message = str(data.get("requestMessage") or "").strip()
        checker = Checker()
        checker.choice(renewal, RENEWAL_PERIODS, "duration")
        checker.max_length(request_message, 200, "Request message cannot exceed 200 characters")
        checker.check()

        matrix = merge_permissions(None, permissions if isinstance(permissions, dict) else {})
        ip = (request.remote_addr or "") if has_request_context() else ""
        agent = request.headers.get("User-Agent", "")[:256] if has_request_context() else ""
        fields = {
            "permissions": json.dumps(matrix),
            "is_permanent": int(to_bool(data.get("isPermanent"))),
            "renewal_period": renewal,
            "request_message": request_message,
            "status": "pending",
            "requested_by": viewer_id,
            "ip_address": ip,
            "user_agent": agent,
        }
        if existing:
            permission_id = existing["id"]
            fields.update({"end_date": None, "approved_at": None, "revoked_at": None, "response_message": ""})
            GroupPermissionStore._save(permission_id, fields)
        else:
            now = now_iso()
            cur = db.execute(
                "INSERT INTO group_permissions (group_id, owner_id, viewer_id, permissions, start_date, "
                "is_permanent, renewal_period, status, request_message, notifications, requested_by, "
                "ip_address, user_agent, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    group_id, owner_id, viewer_id, fields["permissions"], now, fields["is_permanent"],
                    renewal, "pending", request_message, json.dumps(DEFAULT_NOTIFICATIONS), viewer_id,
                    ip, agent, now, now,
                ),
            )
            permission_id = cur.lastrowid

        viewer = _brief_user(viewer_id) or {}
        GroupActivityStore.record(group_id, viewer_id, "permission_granted", {
            "title": "Permission Requested",
            "description": f'{viewer.get("name")} requested permission to view data',
            "metadata": {"sharedWith": [{"user": owner_id, "permissions": list(permissions)}]},
        }, visibility="private")
        db.commit()
        return GroupPermissionStore.to_api(GroupPermissionStore._row(permission_id))

    @staticmethod
    def respond(group_id: int, permission_id: int, owner_id: int, data: dict) -> dict:
        action = data.get("action")
        if action not in ("approve", "deny"):
            raise BadRequest('Action must be either "approve" or "deny"')
        row = GroupPermissionStore._row(permission_id, "Permission request not found")
        if row["group_id"] != group_id:
            raise NotFound("Permission request not found")
        if row["owner_id"] != owner_id:
            raise Forbidden("Access denied. You can only respond to your own permission requests")
        if row["status"] != "pending":
            raise BadRequest("This permission request has already been processed")

        response_message = str(data.get("responseMessage") or "").strip()
        checker = Checker()
        checker.max_length(response_message, 200, "Response message cannot exceed 200 characters")
        checker.check()

        fields: dict[str, Any] = {}
        if response_message:
            fields["response_message"] = response_message
        if action == "approve":
            matrix = loads_dict(row["permissions"])
            if isinstance(data.get("updatedPermissions"), dict):
                matrix = merge_permissions(matrix, data["updatedPermissions"])
            fields.update({
                "permissions": json.dumps(matrix),
                "status": "active",
                "approved_at": now_iso(),
                "start_date": now_iso(),
            })
            GroupPermissionStore._save(permission_id, fields)
            viewer = _brief_user(row["viewer_id"]) or {}
            owner = _brief_user(owner_id) or {}
            GroupActivityStore.record(row["group_id"], owner_id, "data_shared", {
                "title": "Permission Granted",
                "description": f'{owner.get("name")} shared data with {viewer.get("name")}',
                "metadata": {"sharedWith": [{"user": row["viewer_id"],
                                             "permissions": enabled_categories(matrix)}]},
            })
        else:
            fields["status"] = "revoked"
            GroupPermissionStore._save(permission_id, fields)
        get_db().commit()
        log_event(f"permission_{action}", owner_id, f"permission={permission_id}")
        return GroupPermissionStore.to_api(GroupPermissionStore._row(permission_id))

    @staticmethod
    def update(permission_id: int, owner_id: int, data: dict) -> dict:
        row = GroupPermissionStore._row(permission_id)
        if row["owner_id"] != owner_id:
            raise Forbidden("Access denied. You can only modify your own permissions")
        if row["status"] != "active":
            raise BadRequest("Can only modify active permissions")

        fields: dict[str, Any] = {}
        if isinstance(data.get("permissions"), dict):
            fields["permissions"] = json.dumps(
                merge_permissions(loads_dict(row["permissions"]), data["permissions"])
            )
        duration = data.get("duration")
        if isinstance(duration, dict):
            checker = Checker()
            if duration.get("renewalPeriod") is not None:
                checker.choice(duration["renewalPeriod"], RENEWAL_PERIODS, "renewalPeriod")
                fields["renewal_period"] = duration["renewalPeriod"]
            checker.check()
            if "startDate" in duration:
                fields["start_date"] = iso_or_none(duration["startDate"]) or row["start_date"]
            if "endDate" in duration:
                fields["end_date"] = iso_or_none(duration["endDate"])
            if "isPermanent" in duration:
                fields["is_permanent"] = int(to_bool(duration["isPermanent"]))
            if "autoRenew" in duration:
                fields["auto_renew"] = int(to_bool(duration["autoRenew"]))
        if isinstance(data.get("notifications"), dict):
            notifications = {**DEFAULT_NOTIFICATIONS, **loads_dict(row["notifications"])}
            for key in DEFAULT_NOTIFICATIONS:
                if key in data["notifications"]:
                    notifications[key] = to_bool(data["notifications"][key])
            fields["notifications"] = json.dumps(notifications)

        GroupPermissionStore._save(permission_id, fields)
        get_db().commit()
        return GroupPermissionStore.to_api(GroupPermissionStore._row(permission_id))

    @staticmethod
    def revoke(permission_id: int, user_id: int, reason: Any = None) -> None:
        row = GroupPermissionStore._row(permission_id)
        if user_id not in (row["owner_id"], row["viewer_id"]):
            raise Forbidden("Access denied. Only owner or viewer can revoke this permission")
        fields: dict[str, Any] = {"status": "revoked", "revoked_at": now_iso()}
        if reason:
            fields["response_message"] = str(reason).strip()[:200]
        GroupPermissionStore._save(permission_id, fields)
        get_db().commit()
        log_event("permission_revoke", user_id, f"permission={permission_id}")

    @staticmethod
    def log_view(permission_id: int, viewer_id: int, data_type: Any, details: Any = None) -> None:
        row = GroupPermissionStore._row(permission_id)
        if row["viewer_id"] != viewer_id:
            raise Forbidden("Access denied")
        if not GroupPermissionStore._is_valid(row):
            raise Forbidden("Permission has expired or been revoked")
        if data_type not in PERMISSION_CATEGORIES or not GroupPermissionStore.has_permission(row, data_type):
            raise Forbidden(f"No permission to view {data_type} data")

        db = get_db()
        now = now_iso()
        db.execute(
            "INSERT INTO permission_views (permission_id, viewed_at, data_type, details) VALUES (?, ?, ?, ?)",
            (permission_id, now, data_type, None if details is None else str(details)),
        )
        # keep the newest entries only
        db.execute(
            "DELETE FROM permission_views WHERE permission_id = ? AND id NOT IN ("
            "SELECT id FROM permission_views WHERE permission_id = ? ORDER BY id DESC LIMIT ?)",
            (permission_id, permission_id, VIEW_HISTORY_LIMIT),
        )
        db.execute(
            "UPDATE group_permissions SET last_viewed_at = ?, total_views = total_views + 1, updated_at = ? "
            "WHERE id = ?",
            (now, now, permission_id),
        )
        db.commit()

    @staticmethod
    def cleanup_expired(db, now: datetime | None = None) -> int:
        """Mark lapsed non-permanent grants as expired on *db*; returns the count."""
        cur = db.execute(
            "UPDATE group_permissions SET status = 'expired', updated_at = ? "
            "WHERE status = 'active' AND is_permanent = 0 AND end_date IS NOT NULL AND end_date < ?",
            (now_iso(), (now or datetime.now()).isoformat()),
        )
        db.commit()
        return cur.rowcount

    @staticmethod
    def to_api(row: dict, with_group: bool = False) -> dict:
        permission = {
            "id": row["id"],
            "group": row["group_id"],
            "owner": _brief_user(row["owner_id"]),
            "viewer": _brief_user(row["viewer_id"]),
            "permissions": loads_dict(row["permissions"]),
            "duration": {
                "startDate": row["start_date"],
                "endDate": row["end_date"],
                "isPermanent": bool(row["is_permanent"]),
                "autoRenew": bool(row["auto_renew"]),
                "renewalPeriod": row["renewal_period"],
            },
            "status": row["status"],
            "requestMessage": row["request_message"],
            "responseMessage": row["response_message"],
            "notifications": {**DEFAULT_NOTIFICATIONS, **loads_dict(row["notifications"])},
            "metadata": {
                "requestedBy": row["requested_by"],
                "approvedAt": row["approved_at"],
                "revokedAt": row["revoked_at"],
                "lastViewedAt": row["last_viewed_at"],
                "totalViews": row["total_views"],
            },
            "isValid": GroupPermissionStore._is_valid(row),
            "createdAt": row["created_at"],
            "updatedAt": row["updated_at"],
        }
        if with_group:
            db = get_db()
            group = db.execute("SELECT id, name FROM study_groups WHERE id = ?", (row["group_id"],)).fetchone()
            permission["group"] = {"id": group["id"], "name": group["name"]} if group else row["group_id"]
        return permission
