"""Tests for /api/books: CRUD, progress clamping and ownership."""

BOOK = {"title": "Indian Polity", "subject": "Polity", "totalChapters": 10, "completedChapters": 3}


def _create(client, **overrides):
    resp = client.post("/api/books", json={**BOOK, **overrides})
    assert resp.status_code == 201
    return resp.get_json()["data"]


class TestBookCrud:
    def test_create_and_fetch_round_trip(self, auth_client):
        book = _create(auth_client)
        fetched = auth_client.get(f"/api/books/{book['id']}").get_json()["data"]
        assert fetched["title"] == "Indian Polity"
        assert fetched["subject"] == "Polity"
        assert fetched["totalChapters"] == 10
        assert fetched["completedChapters"] == 3
        assert fetched["progressPercentage"] == 30
        assert fetched["priority"] == "Medium"

    def test_list_newest_first_with_count(self, auth_client):
        _create(auth_client, title="First")
        _create(auth_client, title="Second")
        body = auth_client.get("/api/books").get_json()
        assert body["count"] == 2
        assert [b["title"] for b in body["data"]] == ["Second", "First"]

    def test_list_only_own_books(self, auth_client, other_client):
        _create(other_client)
        assert auth_client.get("/api/books").get_json()["count"] == 0

    def test_validation_messages(self, auth_client):
        resp = auth_client.post("/api/books", json={"totalChapters": 0})
        assert resp.status_code == 400
        message = resp.get_json()["message"]
        assert "Please provide book title" in message
        assert "Please provide subject" in message
        assert "Total chapters must be at least 1" in message

    def test_title_length_limit(self, auth_client):
        resp = auth_client.post("/api/books", json={**BOOK, "title": "x" * 101})
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Title cannot be more than 100 characters"

    def test_update(self, auth_client):
        book = _create(auth_client)
        resp = auth_client.put(f"/api/books/{book['id']}", json={"priority": "High", "notes": "Revise ch 4"})
        data = resp.get_json()["data"]
        assert data["priority"] == "High"
        assert data["notes"] == "Revise ch 4"
        assert data["title"] == "Indian Polity"

    def test_delete(self, auth_client):
        book = _create(auth_client)
        resp = auth_client.delete(f"/api/books/{book['id']}")
        assert resp.get_json()["message"] == "Book deleted successfully"
        assert auth_client.get(f"/api/books/{book['id']}").status_code == 404


class TestBookProgress:
    def test_completed_clamped_to_total(self, auth_client):
        book = _create(auth_client)
        resp = auth_client.patch(f"/api/books/{book['id']}/progress", json={"completedChapters": 25})
        data = resp.get_json()["data"]
        assert data["completedChapters"] == 10
        assert data["progressPercentage"] == 100

    def test_create_clamps_too(self, auth_client):
        book = _create(auth_client, completedChapters=12)
        assert book["completedChapters"] == 10

    def test_negative_progress_rejected(self, auth_client):
        book = _create(auth_client)
        resp = auth_client.patch(f"/api/books/{book['id']}/progress", json={"completedChapters": -1})
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Completed chapters cannot be negative"


class TestBookOwnership:
    def test_foreign_book_access(self, auth_client, other_client):
        book = _create(other_client)
        resp = auth_client.get(f"/api/books/{book['id']}")
        assert resp.status_code == 403
        assert resp.get_json()["message"] == "Not authorized to access this book"

    def test_foreign_book_update(self, auth_client, other_client):
        book = _create(other_client)
        resp = auth_client.put(f"/api/books/{book['id']}", json={"title": "Mine now"})
        assert resp.status_code == 403
        assert resp.get_json()["message"] == "Not authorized to update this book"

    def test_foreign_book_delete(self, auth_client, other_client):
        book = _create(other_client)
        resp = auth_client.delete(f"/api/books/{book['id']}")
        assert resp.status_code == 403
        assert resp.get_json()["message"] == "Not authorized to delete this book"

    def test_missing_book(self, auth_client):
        resp = auth_client.get("/api/books/9999")
        assert resp.status_code == 404
        assert resp.get_json()["message"] == "Book not found"

    def test_requires_token(self, client):
        assert client.get("/api/books").status_code == 401
