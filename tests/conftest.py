"""
Test fixtures for the Exam Prep Tracker API.

Provides app, client, auth_client, other_client and db fixtures with
file-based SQLite. Two users are seeded: user 1 (the main test student) and
user 2 (used for ownership and study group tests).
"""

from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path

import pytest
from werkzeug.security import generate_password_hash

sys.path.insert(0, str(Path(__file__).parent.parent))

PASSWORD = "testpass123"

SEED_USERS = [
    (1, "Test Student", "test@example.com"),
    (2, "Other Student", "other@example.com"),
]


@pytest.fixture
def app(tmp_path):
    """Create app with file-based SQLite for testing."""
    from app import create_app

    db_file = str(tmp_path / "test.db")
    app = create_app({
        "TESTING": True,
        "DATABASE": db_file,
        "SECRET_KEY": "test-secret-key",
        "JWT_SECRET": "test-jwt-secret",
    })

    with app.app_context():
        from database import get_db, init_db, run_migrations

        init_db()
        run_migrations()
        app._db_initialized = True

        db = get_db()
        now = datetime.now().isoformat()
        password_hash = generate_password_hash(PASSWORD)
        for uid, name, email in SEED_USERS:
            db.execute(
                "INSERT INTO users (id, name, email, password_hash, exam_types, exam_date, "
                "created_at, updated_at) VALUES (?, ?, ?, ?, '[\"UPSC\"]', '2027-06-01T00:00:00', ?, ?)",
                (uid, name, email, password_hash, now, now),
            )
        db.commit()

    yield app


def _bearer_client(app, user_id: int):
    from auth import generate_token

    with app.app_context():
        token = generate_token(user_id)
    client = app.test_client()
    client.environ_base["HTTP_AUTHORIZATION"] = f"Bearer {token}"
    return client


@pytest.fixture
def client(app):
    """Unauthenticated test client."""
    return app.test_client()


@pytest.fixture
def auth_client(app):
    """Test client carrying a bearer token for user 1."""
    return _bearer_client(app, 1)


@pytest.fixture
def other_client(app):
    """Test client carrying a bearer token for user 2."""
    return _bearer_client(app, 2)


@pytest.fixture
def db(app):
    """Raw connection to the test database, independent of any request."""
    from database import connect

    conn = connect(app.config["DATABASE"])
    yield conn
    conn.close()
