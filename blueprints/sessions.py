"""Study session logging and analytics routes."""

from __future__ import annotations

from flask import Blueprint, request
from flask_login import login_required

from db_stores import StudySessionStore
from helpers import current_user_id, json_body, page_count, paginate_args, success_response

bp = Blueprint("sessions", __name__)


@bp.route("/api/sessions", methods=["POST"])
@login_required
def create_session():
    session = StudySessionStore.create(current_user_id(), json_body())
    return success_response(session, "Study session created successfully", 201)


@bp.route("/api/sessions")
@login_required
def list_sessions():
    page, limit = paginate_args(default_limit=10)
    sessions, total = StudySessionStore.page(
        current_user_id(), page, limit,
        subject=request.args.get("subject"),
        start_date=request.args.get("startDate"),
        end_date=request.args.get("endDate"),
    )
    return success_response(sessions, pagination={
        "current": page,
        "pages": page_count(total, limit),
        "total": total,
    })


@bp.route("/api/sessions/analytics")
@login_required
def analytics():
    period = request.args.get("period", "7d")
    return success_response(StudySessionStore.analytics(current_user_id(), period))


@bp.route("/api/sessions/<int:session_id>")
@login_required
def get_session(session_id):
    return success_response(StudySessionStore.get(session_id, current_user_id()))


@bp.route("/api/sessions/<int:session_id>", methods=["PUT"])
@login_required
def update_session(session_id):
    session = StudySessionStore.update(session_id, current_user_id(), json_body())
    return success_response(session, "Study session updated successfully")


@bp.route("/api/sessions/<int:session_id>", methods=["DELETE"])
@login_required
def delete_session(session_id):
    StudySessionStore.delete(session_id, current_user_id())
    return success_response(message="Study session deleted successfully")
