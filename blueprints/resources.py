"""UPSC reading resource routes, including template import and bulk actions."""

from __future__ import annotations

from flask import Blueprint, request
from flask_login import login_required

from helpers import current_user_id, json_body, success_response
from resource_store import ResourceStore

bp = Blueprint("resources", __name__)


@bp.route("/api/upsc-resources")
@login_required
def list_resources():
    resources = ResourceStore.list_for_user(
        current_user_id(),
        category=request.args.get("category"),
        subject=request.args.get("subject"),
        status=request.args.get("status"),
        priority=request.args.get("priority"),
        search=request.args.get("search"),
    )
    return success_response(resources)


@bp.route("/api/upsc-resources/stats")
@login_required
def stats():
    return success_response(ResourceStore.subject_stats(current_user_id()))


@bp.route("/api/upsc-resources/templates")
@login_required
def templates():
    return success_response(ResourceStore.templates(request.args.get("templateCategory")))


@bp.route("/api/upsc-resources/import-template", methods=["POST"])
@login_required
def import_template():
    created = ResourceStore.import_templates(current_user_id(), json_body().get("templateCategory"))
    return success_response(created, f"{len(created)} resources imported successfully")


@bp.route("/api/upsc-resources/bulk-update", methods=["PUT"])
@login_required
def bulk_update():
    data = json_body()
    modified = ResourceStore.bulk_update(
        current_user_id(), data.get("resourceIds"), data.get("action"), data.get("actionData")
    )
    return success_response({"modifiedCount": modified}, f"{modified} resources updated successfully")


@bp.route("/api/upsc-resources", methods=["POST"])
@login_required
def create_resource():
    resource = ResourceStore.create(current_user_id(), json_body())
    return success_response(resource, "UPSC resource created successfully", 201)


@bp.route("/api/upsc-resources/<int:resource_id>")
@login_required
def get_resource(resource_id):
    return success_response(ResourceStore.get(resource_id, current_user_id()))


@bp.route("/api/upsc-resources/<int:resource_id>", methods=["PUT"])
@login_required
def update_resource(resource_id):
    resource = ResourceStore.update(resource_id, current_user_id(), json_body())
    return success_response(resource, "UPSC resource updated successfully")


@bp.route("/api/upsc-resources/<int:resource_id>/chapters", methods=["PUT"])
@login_required
def update_chapter(resource_id):
    resource = ResourceStore.update_chapter(resource_id, current_user_id(), json_body())
    return success_response(resource, "Chapter updated successfully")


@bp.route("/api/upsc-resources/<int:resource_id>", methods=["DELETE"])
@login_required
def delete_resource(resource_id):
    ResourceStore.delete(resource_id, current_user_id())
    return success_response(message="UPSC resource deleted successfully")
