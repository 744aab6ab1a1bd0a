"""
SQLite database layer for the exam prep tracker.

Uses raw sqlite3 with WAL mode and parameterized queries.
A schema_version table handles migrations.

Embedded collections (daily goal tasks, resource chapters, newspaper
articles, group members, activity reactions/comments, permission views)
live in child tables; list-valued fields are stored as JSON TEXT.
"""

from __future__ import annotations

import fcntl
import sqlite3
from datetime import datetime
from pathlib import Path

from flask import current_app, g

DEFAULT_DB_PATH = str(Path(__file__).parent / "exam_prep.db")


SCHEMA = """
-- Migration tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL,
    applied_at TEXT NOT NULL
);

-- Users
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL DEFAULT '',
    exam_types TEXT NOT NULL DEFAULT '[]',
    exam_date TEXT NOT NULL DEFAULT '',
    target_score INTEGER,
    daily_study_hours INTEGER NOT NULL DEFAULT 6,
    preferred_subjects TEXT NOT NULL DEFAULT '[]',
    study_time_slots TEXT NOT NULL DEFAULT '[]',
    break_duration INTEGER NOT NULL DEFAULT 15,
    total_study_hours REAL NOT NULL DEFAULT 0,
    current_streak INTEGER NOT NULL DEFAULT 0,
    longest_streak INTEGER NOT NULL DEFAULT 0,
    total_goals_completed INTEGER NOT NULL DEFAULT 0,
    total_books_read INTEGER NOT NULL DEFAULT 0,
    last_study_date TEXT NOT NULL DEFAULT '',
    notify_email INTEGER NOT NULL DEFAULT 1,
    notify_daily_reminder INTEGER NOT NULL DEFAULT 1,
    notify_weekly_report INTEGER NOT NULL DEFAULT 1,
    notify_goal_deadline INTEGER NOT NULL DEFAULT 1,
    profile_picture TEXT NOT NULL DEFAULT '',
    is_active INTEGER NOT NULL DEFAULT 1,
    last_active_at TEXT NOT NULL DEFAULT '',
    login_attempts INTEGER NOT NULL DEFAULT 0,
    locked_until TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT '',
    updated_at TEXT NOT NULL DEFAULT ''
);

-- Security audit trail
CREATE TABLE IF NOT EXISTS audit_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER,
    action TEXT NOT NULL,
    detail TEXT NOT NULL DEFAULT '',
    ip_address TEXT NOT NULL DEFAULT '',
    user_agent TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL
);

-- Books
CREATE TABLE IF NOT EXISTS books (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    subject TEXT NOT NULL,
    total_chapters INTEGER NOT NULL,
    completed_chapters INTEGER NOT NULL DEFAULT 0,
    notes TEXT NOT NULL DEFAULT '',
    priority TEXT NOT NULL DEFAULT 'Medium',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Daily goals (one per user per date) and their tasks
CREATE TABLE IF NOT EXISTS daily_goals (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    date TEXT NOT NULL,
    notes TEXT NOT NULL DEFAULT '',
    total_study_time INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE(user_id, date)
);

CREATE TABLE IF NOT EXISTS daily_goal_tasks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    goal_id INTEGER NOT NULL REFERENCES daily_goals(id) ON DELETE CASCADE,
    task TEXT NOT NULL,
    completed INTEGER NOT NULL DEFAULT 0,
    priority TEXT NOT NULL DEFAULT 'Medium',
    estimated_time INTEGER NOT NULL DEFAULT 30,
    position INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

-- Monthly plans
CREATE TABLE IF NOT EXISTS monthly_plans (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    month INTEGER NOT NULL,
    year INTEGER NOT NULL,
    subject TEXT NOT NULL,
    target_type TEXT NOT NULL,
    target_amount INTEGER NOT NULL,
    completed_amount INTEGER NOT NULL DEFAULT 0,
    deadline TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    priority TEXT NOT NULL DEFAULT 'Medium',
    status TEXT NOT NULL DEFAULT 'Not Started',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Study sessions
CREATE TABLE IF NOT EXISTS study_sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    subject TEXT NOT NULL,
    topic TEXT NOT NULL,
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    duration INTEGER NOT NULL DEFAULT 0,
    session_type TEXT NOT NULL,
    productivity INTEGER NOT NULL DEFAULT 3,
    notes TEXT NOT NULL DEFAULT '',
    breaks_taken INTEGER NOT NULL DEFAULT 0,
    completed INTEGER NOT NULL DEFAULT 1,
    mood TEXT NOT NULL DEFAULT 'Good',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Syllabus tree (subject -> unit -> topic -> subtopic)
CREATE TABLE IF NOT EXISTS syllabus_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    subject TEXT NOT NULL,
    unit TEXT NOT NULL DEFAULT '',
    topic TEXT NOT NULL DEFAULT '',
    subtopic TEXT NOT NULL DEFAULT '',
    level INTEGER NOT NULL DEFAULT 1,
    parent_id INTEGER REFERENCES syllabus_items(id),
    status TEXT NOT NULL DEFAULT 'not_started',
    priority TEXT NOT NULL DEFAULT 'medium',
    estimated_hours REAL NOT NULL DEFAULT 0,
    actual_hours REAL NOT NULL DEFAULT 0,
    notes TEXT NOT NULL DEFAULT '',
    last_studied_date TEXT,
    revision_count INTEGER NOT NULL DEFAULT 0,
    due_date TEXT,
    tags TEXT NOT NULL DEFAULT '[]',
    linked_books TEXT NOT NULL DEFAULT '[]',
    linked_sessions TEXT NOT NULL DEFAULT '[]',
    sort_order INTEGER NOT NULL DEFAULT 0,
    is_active INTEGER NOT NULL DEFAULT 1,
    completed_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- UPSC reading resources (templates have is_template = 1)
CREATE TABLE IF NOT EXISTS upsc_resources (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER REFERENCES users(id) ON DELETE CASCADE,
    category TEXT NOT NULL,
    subject TEXT NOT NULL,
    title TEXT NOT NULL,
    author TEXT NOT NULL DEFAULT '',
    publisher TEXT NOT NULL DEFAULT '',
    edition TEXT NOT NULL DEFAULT '',
    isbn TEXT NOT NULL DEFAULT '',
    priority TEXT NOT NULL DEFAULT 'Recommended',
    exam_relevance TEXT NOT NULL DEFAULT '[]',
    tags TEXT NOT NULL DEFAULT '[]',
    description TEXT NOT NULL DEFAULT '',
    url TEXT NOT NULL DEFAULT '',
    total_pages INTEGER,
    estimated_hours REAL NOT NULL DEFAULT 0,
    actual_hours REAL NOT NULL DEFAULT 0,
    started_at TEXT,
    completed_at TEXT,
    last_read_at TEXT,
    rating INTEGER,
    review TEXT NOT NULL DEFAULT '',
    is_template INTEGER NOT NULL DEFAULT 0,
    template_category TEXT,
    status TEXT NOT NULL DEFAULT 'Not Started',
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS resource_chapters (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    resource_id INTEGER NOT NULL REFERENCES upsc_resources(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    page_range TEXT NOT NULL DEFAULT '',
    completed INTEGER NOT NULL DEFAULT 0,
    notes TEXT NOT NULL DEFAULT '',
    completed_at TEXT,
    time_spent INTEGER NOT NULL DEFAULT 0,
    sort_order INTEGER NOT NULL DEFAULT 0
);

-- Newspaper analysis (one per user, date and source) and its articles
CREATE TABLE IF NOT EXISTS newspaper_analyses (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    date TEXT NOT NULL,
    source TEXT NOT NULL,
    total_time_spent INTEGER NOT NULL DEFAULT 0,
    overall_notes TEXT NOT NULL DEFAULT '',
    important_events TEXT NOT NULL DEFAULT '[]',
    monthly_theme TEXT NOT NULL DEFAULT '',
    is_archived INTEGER NOT NULL DEFAULT 0,
    completion_status TEXT NOT NULL DEFAULT 'Not Started',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE(user_id, date, source)
);

CREATE TABLE IF NOT EXISTS newspaper_articles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    analysis_id INTEGER NOT NULL REFERENCES newspaper_analyses(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    summary TEXT NOT NULL DEFAULT '',
    key_points TEXT NOT NULL DEFAULT '[]',
    category TEXT NOT NULL,
    sub_category TEXT NOT NULL DEFAULT '',
    tags TEXT NOT NULL DEFAULT '[]',
    exam_relevance TEXT NOT NULL DEFAULT '[]',
    priority TEXT NOT NULL DEFAULT 'Medium',
    url TEXT NOT NULL DEFAULT '',
    page_number INTEGER,
    linked_topics TEXT NOT NULL DEFAULT '[]',
    notes TEXT NOT NULL DEFAULT '',
    is_bookmarked INTEGER NOT NULL DEFAULT 0,
    last_revised_at TEXT,
    revision_count INTEGER NOT NULL DEFAULT 0,
    sort_order INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

-- Study groups and membership
CREATE TABLE IF NOT EXISTS study_groups (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    exam_types TEXT NOT NULL DEFAULT '[]',
    target_date TEXT NOT NULL,
    admin_id INTEGER NOT NULL REFERENCES users(id),
    privacy TEXT NOT NULL DEFAULT 'public',
    allow_member_invites INTEGER NOT NULL DEFAULT 1,
    require_approval INTEGER NOT NULL DEFAULT 0,
    max_members INTEGER NOT NULL DEFAULT 50,
    allow_data_sharing INTEGER NOT NULL DEFAULT 1,
    allow_leaderboard INTEGER NOT NULL DEFAULT 1,
    total_members INTEGER NOT NULL DEFAULT 0,
    average_study_hours REAL NOT NULL DEFAULT 0,
    group_streak INTEGER NOT NULL DEFAULT 0,
    last_activity TEXT NOT NULL DEFAULT '',
    tags TEXT NOT NULL DEFAULT '[]',
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS group_members (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    group_id INTEGER NOT NULL REFERENCES study_groups(id) ON DELETE CASCADE,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    role TEXT NOT NULL DEFAULT 'member',
    joined_at TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    UNIQUE(group_id, user_id)
);

-- Data-sharing capability matrix between two members of a group
CREATE TABLE IF NOT EXISTS group_permissions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    group_id INTEGER NOT NULL REFERENCES study_groups(id) ON DELETE CASCADE,
    owner_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    viewer_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    permissions TEXT NOT NULL DEFAULT '{}',
    start_date TEXT NOT NULL,
    end_date TEXT,
    is_permanent INTEGER NOT NULL DEFAULT 0,
    auto_renew INTEGER NOT NULL DEFAULT 0,
    renewal_period TEXT NOT NULL DEFAULT '1month',
    status TEXT NOT NULL DEFAULT 'pending',
    request_message TEXT NOT NULL DEFAULT '',
    response_message TEXT NOT NULL DEFAULT '',
    notifications TEXT NOT NULL DEFAULT '{}',
    requested_by INTEGER,
    approved_at TEXT,
    revoked_at TEXT,
    last_viewed_at TEXT,
    total_views INTEGER NOT NULL DEFAULT 0,
    ip_address TEXT NOT NULL DEFAULT '',
    user_agent TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE(group_id, owner_id, viewer_id)
);

CREATE TABLE IF NOT EXISTS permission_views (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    permission_id INTEGER NOT NULL REFERENCES group_permissions(id) ON DELETE CASCADE,
    viewed_at TEXT NOT NULL,
    data_type TEXT NOT NULL,
    details TEXT
);

-- Group activity feed
CREATE TABLE IF NOT EXISTS group_activities (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    group_id INTEGER NOT NULL REFERENCES study_groups(id) ON DELETE CASCADE,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    activity_type TEXT NOT NULL,
    title TEXT NOT NULL DEFAULT '',
    description TEXT NOT NULL DEFAULT '',
    value REAL,
    metadata TEXT NOT NULL DEFAULT '{}',
    visibility TEXT NOT NULL DEFAULT 'group',
    points INTEGER NOT NULL DEFAULT 0,
    tags TEXT NOT NULL DEFAULT '[]',
    priority TEXT NOT NULL DEFAULT 'normal',
    is_highlight INTEGER NOT NULL DEFAULT 0,
    achievement_data TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS activity_reactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    activity_id INTEGER NOT NULL REFERENCES group_activities(id) ON DELETE CASCADE,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    reaction TEXT NOT NULL DEFAULT 'like',
    reacted_at TEXT NOT NULL,
    UNIQUE(activity_id, user_id)
);

CREATE TABLE IF NOT EXISTS activity_comments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    activity_id INTEGER NOT NULL REFERENCES group_activities(id) ON DELETE CASCADE,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    comment TEXT NOT NULL,
    commented_at TEXT NOT NULL
);
"""


# ── Versioned migrations ────────────────────────────────────
# Each entry runs once; the version number is recorded in schema_version.

MIGRATIONS: list[tuple[int, str]] = [
    (1, """
        CREATE INDEX IF NOT EXISTS idx_books_user ON books(user_id, created_at);
        CREATE INDEX IF NOT EXISTS idx_tasks_goal ON daily_goal_tasks(goal_id, position);
        CREATE INDEX IF NOT EXISTS idx_plans_user_month ON monthly_plans(user_id, year, month);
        CREATE INDEX IF NOT EXISTS idx_sessions_user_start ON study_sessions(user_id, start_time);
    """),
    (2, """
        CREATE INDEX IF NOT EXISTS idx_syllabus_user ON syllabus_items(user_id, is_active);
        CREATE INDEX IF NOT EXISTS idx_syllabus_parent ON syllabus_items(parent_id, is_active);
        CREATE INDEX IF NOT EXISTS idx_resources_user ON upsc_resources(user_id, is_active);
        CREATE INDEX IF NOT EXISTS idx_resources_template ON upsc_resources(is_template, template_category);
        CREATE INDEX IF NOT EXISTS idx_chapters_resource ON resource_chapters(resource_id, sort_order);
    """),
    (3, """
        CREATE INDEX IF NOT EXISTS idx_analyses_user_date ON newspaper_analyses(user_id, date);
        CREATE INDEX IF NOT EXISTS idx_articles_analysis ON newspaper_articles(analysis_id, sort_order);
    """),
    (4, """
        CREATE INDEX IF NOT EXISTS idx_members_user ON group_members(user_id, is_active);
        CREATE INDEX IF NOT EXISTS idx_activities_group ON group_activities(group_id, created_at);
        CREATE INDEX IF NOT EXISTS idx_activities_user ON group_activities(user_id, created_at);
        CREATE INDEX IF NOT EXISTS idx_permissions_status ON group_permissions(status, end_date);
        CREATE INDEX IF NOT EXISTS idx_permission_views ON permission_views(permission_id, viewed_at);
    """),
]


def _is_postgres(db_url: str) -> bool:
    from pg_compat import is_postgres_url
    return is_postgres_url(db_url)


def connect(db_url: str):
    """Open a connection outside the request cycle (scripts, scheduler)."""
    if _is_postgres(db_url):
        from pg_compat import connect_pg
        return connect_pg(db_url)
    conn = sqlite3.connect(db_url)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def get_db():
    """Return a DB connection from Flask g, creating if needed.

    Supports both SQLite (default) and PostgreSQL (when DATABASE starts
    with postgresql:// or postgres://).
    """
    if "db" not in g:
        g.db = connect(current_app.config.get("DATABASE", DEFAULT_DB_PATH))
    return g.db


def close_db(e=None) -> None:
    """Teardown handler, closes the DB connection."""
    db = g.pop("db", None)
    if db is not None:
        db.close()


def init_db() -> None:
    """Execute schema DDL to create all tables."""
    db = get_db()
    db.executescript(SCHEMA)
    db.commit()


def apply_migrations(db, db_url: str) -> list[int]:
    """Apply unapplied MIGRATIONS on *db*; returns the versions applied.

    Uses file-based locking to prevent race conditions when multiple
    Gunicorn workers start simultaneously.
    """
    lock_file = None
    if not _is_postgres(db_url):
        lock_path = Path(db_url).with_suffix(".migration.lock")
        try:
            lock_file = open(lock_path, "w")
            fcntl.flock(lock_file, fcntl.LOCK_EX)
        except OSError:
            lock_file = None

    applied_now: list[int] = []
    try:
        applied = {
            row["version"]
            for row in db.execute("SELECT version FROM schema_version").fetchall()
        }
        for version, sql in MIGRATIONS:
            if version in applied:
                continue
            try:
                db.executescript(sql)
            except sqlite3.OperationalError as e:
                err_msg = str(e).lower()
                if "duplicate column" not in err_msg and "already exists" not in err_msg:
                    raise
            db.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (version, datetime.now().isoformat()),
            )
            db.commit()
            applied_now.append(version)
    finally:
        if lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_UN)
            lock_file.close()
    return applied_now


def run_migrations() -> list[int]:
    """Apply pending migrations on the request-scoped connection."""
    return apply_migrations(get_db(), current_app.config.get("DATABASE", DEFAULT_DB_PATH))


def init_app(app) -> None:
    """Register teardown and auto-init on first request."""
    app.teardown_appcontext(close_db)

    @app.before_request
    def _ensure_db():
        if not getattr(app, "_db_initialized", False):
            init_db()
            run_migrations()
            app._db_initialized = True
