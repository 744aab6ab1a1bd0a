"""Book tracking routes."""

from __future__ import annotations

from flask import Blueprint
from flask_login import login_required

from db_stores import BookStore
from helpers import current_user_id, json_body, success_response

bp = Blueprint("books", __name__)


@bp.route("/api/books")
@login_required
def list_books():
    books = BookStore.list_for_user(current_user_id())
    return success_response(books, count=len(books))


@bp.route("/api/books/<int:book_id>")
@login_required
def get_book(book_id):
    return success_response(BookStore.get(book_id, current_user_id()))


@bp.route("/api/books", methods=["POST"])
@login_required
def create_book():
    return success_response(BookStore.create(current_user_id(), json_body()), status=201)


@bp.route("/api/books/<int:book_id>", methods=["PUT"])
@login_required
def update_book(book_id):
    return success_response(BookStore.update(book_id, current_user_id(), json_body()))


@bp.route("/api/books/<int:book_id>", methods=["DELETE"])
@login_required
def delete_book(book_id):
    BookStore.delete(book_id, current_user_id())
    return success_response(message="Book deleted successfully")


@bp.route("/api/books/<int:book_id>/progress", methods=["PATCH"])
@login_required
def update_progress(book_id):
    data = json_body()
    return success_response(BookStore.update_progress(book_id, current_user_id(), data.get("completedChapters")))
