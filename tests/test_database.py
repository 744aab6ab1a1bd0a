"""Tests for database.py: schema creation, pragmas, constraints and migrations."""

import sqlite3

import pytest

import database
from database import MIGRATIONS, SCHEMA, apply_migrations, get_db


class TestSchema:
    """Verify all tables are created correctly."""

    def test_tables_exist(self, db):
        tables = {r["name"] for r in db.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()}
        expected = {
            "schema_version", "users", "audit_log", "books", "daily_goals", "daily_goal_tasks",
            "monthly_plans", "study_sessions", "syllabus_items", "upsc_resources", "resource_chapters",
            "newspaper_analyses", "newspaper_articles", "study_groups", "group_members",
            "group_permissions", "permission_views", "group_activities", "activity_reactions",
            "activity_comments",
        }
        assert expected <= tables

    def test_wal_mode(self, db):
        assert db.execute("PRAGMA journal_mode").fetchone()[0] == "wal"

    def test_foreign_keys_enabled(self, db):
        assert db.execute("PRAGMA foreign_keys").fetchone()[0] == 1

    def test_seed_users_exist(self, db):
        rows = db.execute("SELECT id, name FROM users ORDER BY id").fetchall()
        assert [(r["id"], r["name"]) for r in rows] == [(1, "Test Student"), (2, "Other Student")]

    def test_request_connection_is_shared(self, app):
        with app.app_context():
            assert get_db() is get_db()


class TestConstraints:
    def test_email_unique(self, db):
        with pytest.raises(sqlite3.IntegrityError):
            db.execute(
                "INSERT INTO users (name, email, password_hash, created_at, updated_at) "
                "VALUES ('Dup', 'test@example.com', 'x', '2026-01-01', '2026-01-01')"
            )

    def test_one_goal_per_user_per_day(self, db):
        db.execute("INSERT INTO daily_goals (user_id, date, created_at, updated_at) "
                   "VALUES (1, '2026-03-14', '', '')")
        with pytest.raises(sqlite3.IntegrityError):
            db.execute("INSERT INTO daily_goals (user_id, date, created_at, updated_at) "
                       "VALUES (1, '2026-03-14', '', '')")

    def test_goal_delete_cascades_to_tasks(self, db):
        cur = db.execute("INSERT INTO daily_goals (user_id, date, created_at, updated_at) "
                         "VALUES (1, '2026-03-15', '', '')")
        db.execute("INSERT INTO daily_goal_tasks (goal_id, task, created_at) VALUES (?, 'Read', '')",
                   (cur.lastrowid,))
        db.execute("DELETE FROM daily_goals WHERE id = ?", (cur.lastrowid,))
        assert db.execute("SELECT COUNT(*) FROM daily_goal_tasks").fetchone()[0] == 0

    def test_unknown_user_rejected(self, db):
        with pytest.raises(sqlite3.IntegrityError):
            db.execute("INSERT INTO books (user_id, title, subject, total_chapters, created_at, updated_at) "
                       "VALUES (999, 'Ghost', 'None', 1, '', '')")


class TestMigrations:
    def test_all_versions_recorded(self, db):
        versions = [r["version"] for r in db.execute("SELECT version FROM schema_version ORDER BY version")]
        assert versions == [v for v, _ in MIGRATIONS]

    def test_rerun_is_noop(self, app, db):
        assert apply_migrations(db, app.config["DATABASE"]) == []

    def test_fresh_database(self, tmp_path):
        path = str(tmp_path / "fresh.db")
        conn = database.connect(path)
        try:
            conn.executescript(SCHEMA)
            assert apply_migrations(conn, path) == [v for v, _ in MIGRATIONS]
            indexes = {r["name"] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='index'")}
            assert "idx_sessions_user_start" in indexes
            assert "idx_permissions_status" in indexes
        finally:
            conn.close()
