"""Daily goal, checklist task and monthly plan routes."""

from __future__ import annotations

from flask import Blueprint, request
from flask_login import login_required

from db_stores import DailyGoalStore, MonthlyPlanStore
from helpers import (
    BadRequest,
    arg_int,
    current_user_id,
    error_response,
    json_body,
    parse_date,
    success_response,
)

bp = Blueprint("goals", __name__)


def _date_arg() -> str:
    day = request.args.get("date", "")
    if len(day) != 10 or not parse_date(day):
        raise BadRequest("Please provide a date in YYYY-MM-DD format")
    return day


# ── Daily goals ─────────────────────────────────────────────

@bp.route("/api/goals/daily")
@login_required
def get_daily_goal():
    goal = DailyGoalStore.find_by_date(current_user_id(), _date_arg())
    return success_response(goal)


@bp.route("/api/goals/daily", methods=["POST"])
@login_required
def upsert_daily_goal():
    return success_response(DailyGoalStore.upsert(current_user_id(), json_body()), status=201)


@bp.route("/api/goals/daily/<int:goal_id>", methods=["DELETE"])
@login_required
def delete_daily_goal(goal_id):
    DailyGoalStore.delete(goal_id, current_user_id())
    return success_response(message="Daily goal deleted successfully")


@bp.route("/api/goals/daily/<int:goal_id>/tasks/<int:task_id>", methods=["PATCH"])
@login_required
def update_task(goal_id, task_id):
    completed = json_body().get("completed")
    return success_response(DailyGoalStore.set_task_completed(goal_id, task_id, current_user_id(), completed))


@bp.route("/api/goals/daily/<int:goal_id>/tasks", methods=["POST"])
@login_required
def add_task(goal_id):
    return success_response(DailyGoalStore.add_task(goal_id, current_user_id(), json_body()))


@bp.route("/api/goals/daily/<int:goal_id>/tasks/<int:task_id>", methods=["DELETE"])
@login_required
def remove_task(goal_id, task_id):
    return success_response(DailyGoalStore.remove_task(goal_id, task_id, current_user_id()))


# ── Checklist tasks ─────────────────────────────────────────

@bp.route("/api/daily-goals")
@login_required
def list_checklist():
    return success_response(DailyGoalStore.flat_tasks(current_user_id(), _date_arg()))


@bp.route("/api/daily-goals", methods=["POST"])
@login_required
def create_checklist_task():
    data = json_body()
    task = DailyGoalStore.add_flat_task(current_user_id(), data.get("task"), data.get("date"))
    return success_response(task, status=201)


@bp.route("/api/daily-goals/<int:task_id>/toggle", methods=["PATCH"])
@login_required
def toggle_checklist_task(task_id):
    return success_response(DailyGoalStore.toggle_flat_task(task_id, current_user_id()))


@bp.route("/api/daily-goals/<int:task_id>", methods=["DELETE"])
@login_required
def delete_checklist_task(task_id):
    DailyGoalStore.delete_flat_task(task_id, current_user_id())
    return success_response(message="Task deleted successfully")


# ── Monthly plans ───────────────────────────────────────────

@bp.route("/api/goals/monthly")
@login_required
def list_monthly_plans():
    plans = MonthlyPlanStore.list_for_user(current_user_id(), arg_int("month"), arg_int("year"))
    return success_response(plans, count=len(plans))


@bp.route("/api/goals/monthly/stats")
@login_required
def monthly_stats():
    month, year = arg_int("month"), arg_int("year")
    if not month or not year:
        raise BadRequest("Please provide month and year")
    return success_response(MonthlyPlanStore.stats(current_user_id(), month, year))


@bp.route("/api/goals/monthly/calendar-sync", methods=["POST"])
@login_required
def calendar_sync():
    return error_response("Google Calendar integration coming soon", 501)


@bp.route("/api/goals/monthly", methods=["POST"])
@login_required
def create_monthly_plan():
    return success_response(MonthlyPlanStore.create(current_user_id(), json_body()), status=201)


@bp.route("/api/goals/monthly/<int:plan_id>")
@login_required
def get_monthly_plan(plan_id):
    return success_response(MonthlyPlanStore.get(plan_id, current_user_id()))


@bp.route("/api/goals/monthly/<int:plan_id>", methods=["PUT"])
@login_required
def update_monthly_plan(plan_id):
    return success_response(MonthlyPlanStore.update(plan_id, current_user_id(), json_body()))


@bp.route("/api/goals/monthly/<int:plan_id>/progress", methods=["PATCH"])
@login_required
def update_monthly_progress(plan_id):
    completed = json_body().get("completedAmount")
    return success_response(MonthlyPlanStore.update(plan_id, current_user_id(), {"completedAmount": completed}))


@bp.route("/api/goals/monthly/<int:plan_id>", methods=["DELETE"])
@login_required
def delete_monthly_plan(plan_id):
    MonthlyPlanStore.delete(plan_id, current_user_id())
    return success_response(message="Monthly plan deleted successfully")
