"""Tests for the PostgreSQL compatibility layer (no server needed)."""

from __future__ import annotations

import pytest

from database import SCHEMA
from pg_compat import PgRow, is_postgres_url, split_statements, translate_schema, translate_sql


class TestPgRow:
    def test_getitem_by_key_and_index(self):
        row = PgRow(["id", "title"], (7, "Indian Polity"))
        assert row["id"] == 7
        assert row[1] == "Indian Polity"

    def test_missing_key(self):
        row = PgRow(["id"], (1,))
        with pytest.raises(KeyError):
            row["title"]

    def test_dict_conversion(self):
        row = PgRow(["id", "subject"], (3, "Economy"))
        assert row.keys() == ["id", "subject"]
        assert dict(row) == {"id": 3, "subject": "Economy"}
        assert len(row) == 2


class TestTranslateSQL:
    def test_placeholders(self):
        assert translate_sql("SELECT * FROM books WHERE id = ? AND user_id = ?") == \
            "SELECT * FROM books WHERE id = %s AND user_id = %s"

    def test_insert_or_ignore(self):
        result = translate_sql("INSERT OR IGNORE INTO schema_version (version) VALUES (?)")
        assert result.startswith("INSERT INTO schema_version")
        assert result.endswith("ON CONFLICT DO NOTHING")

    def test_like_becomes_ilike(self):
        result = translate_sql("SELECT * FROM study_groups WHERE name LIKE ? ESCAPE '\\'")
        assert "name ILIKE %s" in result

    def test_not_like(self):
        result = translate_sql("SELECT * FROM study_groups WHERE name NOT LIKE ?")
        assert "NOT ILIKE" in result
        assert "IILIKE" not in result

    def test_plain_statement_unchanged(self):
        sql = "UPDATE books SET priority = 'High'"
        assert translate_sql(sql) == sql


class TestTranslateSchema:
    def test_autoincrement(self):
        ddl = "CREATE TABLE t (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT)"
        assert translate_schema(ddl) == "CREATE TABLE t (id SERIAL PRIMARY KEY, name TEXT)"

    def test_pragma_stripped(self):
        assert "PRAGMA" not in translate_schema("PRAGMA foreign_keys=ON;\nCREATE TABLE t (id INTEGER);")

    def test_full_schema_has_no_sqlite_only_syntax(self):
        translated = translate_schema(SCHEMA)
        assert "AUTOINCREMENT" not in translated
        assert "SERIAL PRIMARY KEY" in translated


class TestSplitStatements:
    def test_splits_and_drops_comments(self):
        script = """
            -- books
            CREATE TABLE a (id INTEGER);
            CREATE INDEX idx_a ON a(id);

        """
        assert split_statements(script) == ["CREATE TABLE a (id INTEGER)", "CREATE INDEX idx_a ON a(id)"]


@pytest.mark.parametrize("url,expected", [
    ("postgresql://u:p@localhost/exam", True),
    ("postgres://u:p@localhost/exam", True),
    ("/var/data/exam_prep.db", False),
    ("sqlite:///exam_prep.db", False),
])
def test_is_postgres_url(url, expected):
    assert is_postgres_url(url) is expected
