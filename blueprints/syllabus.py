"""Syllabus tree routes: CRUD, stats, recommendations and bulk actions."""

from __future__ import annotations

from flask import Blueprint, request
from flask_login import login_required

from helpers import arg_int, current_user_id, json_body, success_response
from syllabus_store import SyllabusStore

bp = Blueprint("syllabus", __name__)


@bp.route("/api/syllabus")
@login_required
def get_tree():
    tree = SyllabusStore.tree(
        current_user_id(),
        subject=request.args.get("subject"),
        status=request.args.get("status"),
        priority=request.args.get("priority"),
        search=request.args.get("search"),
    )
    return success_response(tree)


@bp.route("/api/syllabus/stats")
@login_required
def stats():
    return success_response(SyllabusStore.stats(current_user_id(), request.args.get("subject")))


@bp.route("/api/syllabus/recommendations")
@login_required
def recommendations():
    limit = max(1, arg_int("limit", 10))
    return success_response(SyllabusStore.recommendations(current_user_id(), limit))


@bp.route("/api/syllabus/<int:item_id>")
@login_required
def get_item(item_id):
    return success_response(SyllabusStore.get_with_children(item_id, current_user_id()))


@bp.route("/api/syllabus", methods=["POST"])
@login_required
def create_item():
    item = SyllabusStore.create(current_user_id(), json_body())
    return success_response(item, "Syllabus item created successfully", 201)


@bp.route("/api/syllabus/bulk/update", methods=["PUT"])
@login_required
def bulk_update():
    data = json_body()
    modified = SyllabusStore.bulk_update(
        current_user_id(), data.get("items"), data.get("action"), data.get("actionData")
    )
    return success_response({"modifiedCount": modified}, f"{modified} items updated successfully")


@bp.route("/api/syllabus/<int:item_id>", methods=["PUT"])
@login_required
def update_item(item_id):
    item = SyllabusStore.update(item_id, current_user_id(), json_body())
    return success_response(item, "Syllabus item updated successfully")


@bp.route("/api/syllabus/<int:item_id>", methods=["DELETE"])
@login_required
def delete_item(item_id):
    SyllabusStore.delete(item_id, current_user_id())
    return success_response(message="Syllabus item deleted successfully")


@bp.route("/api/syllabus/<int:item_id>/link-books", methods=["PUT"])
@login_required
def link_books(item_id):
    item = SyllabusStore.link_books(item_id, current_user_id(), json_body().get("bookIds"))
    return success_response(item, "Books linked successfully")
