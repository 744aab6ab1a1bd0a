"""Newspaper analysis routes: daily clippings, revision queues and monthly reports."""

from __future__ import annotations

from flask import Blueprint, request
from flask_login import login_required

from helpers import BadRequest, arg_int, current_user_id, error_response, json_body, success_response
from newspaper_store import NewspaperStore

bp = Blueprint("newspaper", __name__)


def _check_month(month: int) -> None:
    if not 1 <= month <= 12:
        raise BadRequest("Month must be between 1 and 12")


@bp.route("/api/newspaper-analysis")
@login_required
def list_analyses():
    analyses = NewspaperStore.list_for_user(
        current_user_id(),
        source=request.args.get("source"),
        category=request.args.get("category"),
        priority=request.args.get("priority"),
        start_date=request.args.get("startDate"),
        end_date=request.args.get("endDate"),
        search=request.args.get("search"),
    )
    return success_response(analyses)


@bp.route("/api/newspaper-analysis/timeline")
@login_required
def timeline():
    return success_response(NewspaperStore.timeline(current_user_id(), arg_int("days", 30)))


@bp.route("/api/newspaper-analysis/trends")
@login_required
def trends():
    return success_response(NewspaperStore.category_trends(current_user_id(), arg_int("days", 30)))


@bp.route("/api/newspaper-analysis/reminders")
@login_required
def reminders():
    return success_response(NewspaperStore.revision_reminders(current_user_id()))


@bp.route("/api/newspaper-analysis/bookmarks")
@login_required
def bookmarks():
    articles = NewspaperStore.bookmarks(current_user_id(), request.args.get("category"), arg_int("days", 30))
    return success_response(articles)


@bp.route("/api/newspaper-analysis/search")
@login_required
def search():
    query = request.args.get("query")
    results = NewspaperStore.search(
        current_user_id(), query,
        category=request.args.get("category"),
        priority=request.args.get("priority"),
        exam_relevance=request.args.get("examRelevance"),
        start_date=request.args.get("startDate"),
        end_date=request.args.get("endDate"),
    )
    return success_response(results, query=query)


@bp.route("/api/newspaper-analysis/stats/<int:year>/<int:month>")
@login_required
def monthly_stats(year, month):
    _check_month(month)
    return success_response(NewspaperStore.monthly_stats(current_user_id(), year, month))


@bp.route("/api/newspaper-analysis/compilation/<int:year>/<int:month>")
@login_required
def compilation(year, month):
    _check_month(month)
    if request.args.get("format", "json") == "pdf":
        return error_response("PDF generation not implemented yet", 501)
    return success_response(NewspaperStore.monthly_compilation(current_user_id(), year, month))


@bp.route("/api/newspaper-analysis/date/<day>")
@login_required
def by_date(day):
    return success_response(NewspaperStore.by_date(current_user_id(), day))


@bp.route("/api/newspaper-analysis/<int:analysis_id>")
@login_required
def get_analysis(analysis_id):
    return success_response(NewspaperStore.get(analysis_id, current_user_id()))


@bp.route("/api/newspaper-analysis", methods=["POST"])
@login_required
def upsert_analysis():
    analysis, created = NewspaperStore.upsert(current_user_id(), json_body())
    if created:
        return success_response(analysis, "Newspaper analysis created successfully", 201)
    return success_response(analysis, "Newspaper analysis updated successfully")


@bp.route("/api/newspaper-analysis/<int:analysis_id>/articles", methods=["POST"])
@login_required
def add_article(analysis_id):
    analysis = NewspaperStore.add_article(analysis_id, current_user_id(), json_body())
    return success_response(analysis, "Article added successfully")


@bp.route("/api/newspaper-analysis/<int:analysis_id>/articles/<int:article_id>", methods=["PUT"])
@login_required
def update_article(analysis_id, article_id):
    analysis = NewspaperStore.update_article(analysis_id, article_id, current_user_id(), json_body())
    return success_response(analysis, "Article updated successfully")


@bp.route("/api/newspaper-analysis/<int:analysis_id>/articles/<int:article_id>/bookmark", methods=["PUT"])
@login_required
def toggle_bookmark(analysis_id, article_id):
    analysis, bookmarked = NewspaperStore.toggle_bookmark(analysis_id, article_id, current_user_id())
    return success_response(analysis, "Article bookmarked" if bookmarked else "Bookmark removed")


@bp.route("/api/newspaper-analysis/<int:analysis_id>/articles/<int:article_id>", methods=["DELETE"])
@login_required
def delete_article(analysis_id, article_id):
    analysis = NewspaperStore.delete_article(analysis_id, article_id, current_user_id())
    return success_response(analysis, "Article deleted successfully")
