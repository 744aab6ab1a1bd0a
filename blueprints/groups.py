"""Study group routes: directory, membership, activity feed and data-sharing permissions."""

from __future__ import annotations

from flask import Blueprint, request
from flask_login import login_required

from group_store import GroupActivityStore, StudyGroupStore
from helpers import arg_int, current_user_id, json_body, paginate_args, success_response
from permission_store import GroupPermissionStore

bp = Blueprint("groups", __name__)

RESPONSE_OUTCOMES = {"approve": "approved", "deny": "denied"}


# ── Groups ──────────────────────────────────────────────────

@bp.route("/api/groups")
def public_groups():
    page, limit = paginate_args(default_limit=10)
    groups, pagination = StudyGroupStore.public_page(
        page, limit,
        exam_type=request.args.get("examType"),
        search=request.args.get("search"),
        sort_by=request.args.get("sortBy", "members"),
    )
    return success_response({"groups": groups, "pagination": pagination})


@bp.route("/api/groups/my-groups")
@login_required
def my_groups():
    return success_response({"groups": StudyGroupStore.for_user(current_user_id())})


@bp.route("/api/groups", methods=["POST"])
@login_required
def create_group():
    group = StudyGroupStore.create(current_user_id(), json_body())
    return success_response({"group": group}, "Study group created successfully", 201)


@bp.route("/api/groups/<int:group_id>")
@login_required
def get_group(group_id):
    return success_response(StudyGroupStore.detail(group_id, current_user_id()))


@bp.route("/api/groups/<int:group_id>", methods=["PUT"])
@login_required
def update_group(group_id):
    group = StudyGroupStore.update(group_id, current_user_id(), json_body())
    return success_response({"group": group}, "Study group updated successfully")


@bp.route("/api/groups/<int:group_id>", methods=["DELETE"])
@login_required
def delete_group(group_id):
    StudyGroupStore.delete(group_id, current_user_id())
    return success_response(message="Study group deleted successfully")


@bp.route("/api/groups/<int:group_id>/join", methods=["POST"])
@login_required
def join_group(group_id):
    StudyGroupStore.join(group_id, current_user_id())
    return success_response({"groupId": group_id}, "Successfully joined the study group")


@bp.route("/api/groups/<int:group_id>/leave", methods=["POST"])
@login_required
def leave_group(group_id):
    StudyGroupStore.leave(group_id, current_user_id())
    return success_response(message="Successfully left the study group")


# ── Activity feed ───────────────────────────────────────────

@bp.route("/api/groups/<int:group_id>/leaderboard")
@login_required
def leaderboard(group_id):
    StudyGroupStore.readable(group_id, current_user_id())
    period = request.args.get("period", "week")
    return success_response({"leaderboard": GroupActivityStore.leaderboard(group_id, period), "period": period})


@bp.route("/api/groups/<int:group_id>/activities")
@login_required
def activities(group_id):
    StudyGroupStore.readable(group_id, current_user_id())
    page, limit = paginate_args(default_limit=20)
    return success_response({"activities": GroupActivityStore.feed(group_id, page, limit)})


@bp.route("/api/groups/<int:group_id>/activity-stats")
@login_required
def activity_stats(group_id):
    StudyGroupStore.readable(group_id, current_user_id())
    return success_response({"stats": GroupActivityStore.stats(group_id, arg_int("userId"))})


@bp.route("/api/groups/<int:group_id>/activities/<int:activity_id>/reactions", methods=["POST"])
@login_required
def add_reaction(group_id, activity_id):
    uid = current_user_id()
    StudyGroupStore.readable(group_id, uid)
    activity = GroupActivityStore.react(group_id, activity_id, uid, json_body().get("reaction"))
    return success_response({"activity": activity}, "Reaction added")


@bp.route("/api/groups/<int:group_id>/activities/<int:activity_id>/reactions", methods=["DELETE"])
@login_required
def remove_reaction(group_id, activity_id):
    uid = current_user_id()
    StudyGroupStore.readable(group_id, uid)
    activity = GroupActivityStore.unreact(group_id, activity_id, uid)
    return success_response({"activity": activity}, "Reaction removed")


@bp.route("/api/groups/<int:group_id>/activities/<int:activity_id>/comments", methods=["POST"])
@login_required
def add_comment(group_id, activity_id):
    uid = current_user_id()
    StudyGroupStore.readable(group_id, uid)
    activity = GroupActivityStore.comment(group_id, activity_id, uid, json_body().get("comment"))
    return success_response({"activity": activity}, "Comment added", 201)


# ── Permissions ─────────────────────────────────────────────

@bp.route("/api/groups/permissions/pending")
@login_required
def pending_permissions():
    kind = request.args.get("type", "received")
    return success_response({"permissions": GroupPermissionStore.pending(current_user_id(), kind), "type": kind})


@bp.route("/api/groups/<int:group_id>/permissions")
@login_required
def group_permissions(group_id):
    permissions = GroupPermissionStore.in_group(group_id, current_user_id(), arg_int("userId"))
    return success_response({"permissions": permissions})


@bp.route("/api/groups/<int:group_id>/permissions/check")
@login_required
def check_permission(group_id):
    can_view = GroupPermissionStore.can_view(
        group_id, arg_int("ownerId"), current_user_id(),
        request.args.get("dataType"), request.args.get("detail"),
    )
    return success_response({"canView": can_view})


@bp.route("/api/groups/<int:group_id>/permissions/request", methods=["POST"])
@login_required
def request_permission(group_id):
    permission = GroupPermissionStore.request_access(group_id, current_user_id(), json_body())
    return success_response({"permission": permission}, "Permission request sent successfully", 201)


@bp.route("/api/groups/<int:group_id>/permissions/<int:permission_id>/respond", methods=["PUT"])
@login_required
def respond_permission(group_id, permission_id):
    data = json_body()
    permission = GroupPermissionStore.respond(group_id, permission_id, current_user_id(), data)
    outcome = RESPONSE_OUTCOMES[data["action"]]
    return success_response({"permission": permission}, f"Permission request {outcome} successfully")


@bp.route("/api/groups/permissions/<int:permission_id>", methods=["PUT"])
@login_required
def update_permission(permission_id):
    permission = GroupPermissionStore.update(permission_id, current_user_id(), json_body())
    return success_response({"permission": permission}, "Permission updated successfully")


@bp.route("/api/groups/permissions/<int:permission_id>", methods=["DELETE"])
@login_required
def revoke_permission(permission_id):
    GroupPermissionStore.revoke(permission_id, current_user_id(), json_body().get("reason"))
    return success_response(message="Permission revoked successfully")


@bp.route("/api/groups/permissions/<int:permission_id>/view", methods=["POST"])
@login_required
def log_view(permission_id):
    data = json_body()
    GroupPermissionStore.log_view(permission_id, current_user_id(), data.get("dataType"), data.get("details"))
    return success_response(message="View logged successfully")


@bp.route("/api/groups/permissions/<int:permission_id>/history")
@login_required
def permission_history(permission_id):
    return success_response({"permission": GroupPermissionStore.history(permission_id, current_user_id())})
