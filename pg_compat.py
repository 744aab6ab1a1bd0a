"""PostgreSQL compatibility layer: wraps psycopg2 to match the sqlite3 API.

The stores are written against sqlite3. When DATABASE_URL starts with
postgresql://, get_db() hands out a PgConnection instead, which rewrites
statements on the way through:

  - ``?`` placeholders become ``%s``
  - ``INSERT OR IGNORE`` becomes ``INSERT ... ON CONFLICT DO NOTHING``
  - ``LIKE`` becomes ``ILIKE`` (SQLite LIKE is case-insensitive for ASCII)
  - ``INTEGER PRIMARY KEY AUTOINCREMENT`` becomes ``SERIAL PRIMARY KEY``
  - ``lastrowid`` is captured through ``RETURNING id``

Integrity errors are re-raised as sqlite3.IntegrityError so callers only
need to handle one exception type.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from typing import Any

logger = logging.getLogger(__name__)

_STATEMENT_RULES: list[tuple[re.Pattern, str]] = [
    (re.compile(r"\bINSERT\s+OR\s+IGNORE\s+INTO\b", re.IGNORECASE), "INSERT INTO"),
    (re.compile(r"\bNOT\s+LIKE\b", re.IGNORECASE), "NOT ILIKE"),
    (re.compile(r"(?<!NOT )\bLIKE\b", re.IGNORECASE), "ILIKE"),
]

_DDL_RULES: list[tuple[re.Pattern, str]] = [
    (re.compile(r"(\w+)\s+INTEGER\s+PRIMARY\s+KEY\s+AUTOINCREMENT", re.IGNORECASE), r"\1 SERIAL PRIMARY KEY"),
    (re.compile(r"PRAGMA\s+\w+\s*=\s*\w+\s*;?", re.IGNORECASE), ""),
]

_IGNORABLE_DDL_ERRORS = ("already exists", "duplicate column")


def translate_sql(sql: str) -> str:
    """Rewrite one SQLite statement for PostgreSQL."""
    ignore = bool(re.search(r"\bINSERT\s+OR\s+IGNORE\b", sql, re.IGNORECASE))
    translated = sql.replace("?", "%s")
    for pattern, repl in _STATEMENT_RULES:
        translated = pattern.sub(repl, translated)
    if ignore and "ON CONFLICT" not in translated.upper():
        translated = translated.rstrip().rstrip(";") + " ON CONFLICT DO NOTHING"
    return translated


def translate_schema(sql: str) -> str:
    """Rewrite SQLite DDL for PostgreSQL."""
    translated = sql
    for pattern, repl in _DDL_RULES:
        translated = pattern.sub(repl, translated)
    return translated


def split_statements(script: str) -> list[str]:
    """Split a DDL script on semicolons, dropping comments and blanks."""
    lines = [line for line in script.splitlines() if not line.strip().startswith("--")]
    return [s.strip() for s in "\n".join(lines).split(";") if s.strip()]


class PgRow:
    """Dict-like row that mimics sqlite3.Row."""

    __slots__ = ("_columns", "_values")

    def __init__(self, columns: list[str], values: tuple):
        self._columns = list(columns)
        self._values = tuple(values)

    def __getitem__(self, key: str | int) -> Any:
        if isinstance(key, int):
            return self._values[key]
        try:
            return self._values[self._columns.index(key)]
        except ValueError:
            raise KeyError(key) from None

    def __iter__(self):
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def keys(self) -> list[str]:
        return list(self._columns)

    def __repr__(self) -> str:
        return f"PgRow({dict(zip(self._columns, self._values))})"


class PgCursor:
    """Wraps a psycopg2 cursor to match the sqlite3.Cursor interface."""

    def __init__(self, cursor):
        self._cursor = cursor
        self.lastrowid: int | None = None

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount

    @property
    def description(self):
        return self._cursor.description

    def execute(self, sql: str, params: tuple | list = ()) -> "PgCursor":
        import psycopg2

        translated = translate_sql(sql)
        wants_id = (
            translated.lstrip().upper().startswith("INSERT")
            and "RETURNING" not in translated.upper()
        )
        if wants_id:
            translated += " RETURNING id"
        try:
            self._cursor.execute(translated, tuple(params))
        except psycopg2.IntegrityError as exc:
            raise sqlite3.IntegrityError(str(exc)) from exc
        if wants_id:
            row = self._cursor.fetchone()
            self.lastrowid = row[0] if row else None
        return self

    def _columns(self) -> list[str]:
        return [desc[0] for desc in self._cursor.description or []]

    def fetchone(self) -> PgRow | None:
        row = self._cursor.fetchone()
        if row is None:
            return None
        return PgRow(self._columns(), row)

    def fetchall(self) -> list[PgRow]:
        if not self._cursor.description:
            return []
        columns = self._columns()
        return [PgRow(columns, row) for row in self._cursor.fetchall()]

    def close(self) -> None:
        self._cursor.close()


class PgConnection:
    """Wraps a psycopg2 connection to match the sqlite3.Connection interface."""

    def __init__(self, conn):
        self._conn = conn
        self._conn.autocommit = False

    def execute(self, sql: str, params: tuple | list = ()) -> PgCursor:
        return PgCursor(self._conn.cursor()).execute(sql, params)

    def executescript(self, script: str) -> None:
        """Run a multi-statement DDL script, skipping objects that already exist."""
        import psycopg2

        cursor = self._conn.cursor()
        try:
            for stmt in split_statements(translate_schema(script)):
                try:
                    cursor.execute("SAVEPOINT ddl")
                    cursor.execute(stmt)
                    cursor.execute("RELEASE SAVEPOINT ddl")
                except psycopg2.Error as exc:
                    if not any(p in str(exc).lower() for p in _IGNORABLE_DDL_ERRORS):
                        raise
                    cursor.execute("ROLLBACK TO SAVEPOINT ddl")
                    logger.debug("Skipping DDL statement: %s", exc)
        finally:
            cursor.close()
        self._conn.commit()

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        self._conn.close()


def connect_pg(database_url: str) -> PgConnection:
    """Create a PostgreSQL connection with a sqlite3-compatible interface."""
    try:
        import psycopg2
    except ImportError:
        raise ImportError(
            "psycopg2 is required for PostgreSQL support. "
            "Install it with: pip install 'exam-prep-tracker[postgres]'"
        )
    return PgConnection(psycopg2.connect(database_url))


def is_postgres_url(url: str) -> bool:
    """Check if a database URL is a PostgreSQL URL."""
    return url.startswith(("postgresql://", "postgres://"))
