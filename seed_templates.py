"""
Seed UPSC Templates: standalone script and pytest helper.

Inserts the curated UPSC-General reading list as template resources owned by
a system user. Users clone them through POST /api/upsc-resources/import-template.
Safe to run repeatedly: templates already present (same category and title)
are skipped.

Usage:
    python seed_templates.py              # Seed into the configured database
    python seed_templates.py path/to.db   # Seed into a specific SQLite file
"""

from __future__ import annotations

import json
import sys
from datetime import datetime

SYSTEM_USER = {"name": "Exam Prep Templates", "email": "templates@system.local"}

UPSC_GENERAL = [
    {"category": "NCERT", "subject": "History", "title": "Themes in Indian History Part I",
     "author": "NCERT", "priority": "Must Read", "examRelevance": ["Prelims", "Mains"],
     "estimatedHours": 12,
     "chapters": ["Bricks, Beads and Bones", "Kings, Farmers and Towns", "Kinship, Caste and Class",
                  "Thinkers, Beliefs and Buildings"]},
    {"category": "Book", "subject": "History", "title": "India's Struggle for Independence",
     "author": "Bipan Chandra", "publisher": "Penguin", "priority": "Must Read",
     "examRelevance": ["Prelims", "Mains"], "estimatedHours": 30,
     "chapters": ["The Revolt of 1857", "Foundation of the Indian National Congress",
                  "The Swadeshi Movement", "Gandhiji's Early Career", "The Quit India Movement"]},
    {"category": "Book", "subject": "Polity", "title": "Indian Polity",
     "author": "M. Laxmikanth", "publisher": "McGraw Hill", "priority": "Must Read",
     "examRelevance": ["Prelims", "Mains"], "estimatedHours": 40,
     "chapters": ["Historical Background", "Making of the Constitution", "Preamble",
                  "Fundamental Rights", "Directive Principles of State Policy", "Parliament"]},
    {"category": "NCERT", "subject": "Geography", "title": "Fundamentals of Physical Geography",
     "author": "NCERT", "priority": "Must Read", "examRelevance": ["Prelims", "Mains"],
     "estimatedHours": 10,
     "chapters": ["Geography as a Discipline", "The Origin and Evolution of the Earth",
                  "Interior of the Earth", "Landforms and their Evolution", "Composition of Atmosphere"]},
    {"category": "Book", "subject": "Economy", "title": "Indian Economy",
     "author": "Ramesh Singh", "publisher": "McGraw Hill", "priority": "Recommended",
     "examRelevance": ["Prelims", "Mains"], "estimatedHours": 35,
     "chapters": ["Introduction", "Growth, Development and Happiness", "Planning in India",
                  "Inflation and Business Cycle", "Banking in India"]},
    {"category": "Book", "subject": "Ethics", "title": "Lexicon for Ethics, Integrity and Aptitude",
     "author": "Chronicle", "priority": "Recommended", "examRelevance": ["Mains"],
     "estimatedHours": 15,
     "chapters": ["Ethics and Human Interface", "Attitude", "Aptitude and Foundational Values",
                  "Emotional Intelligence"]},
    {"category": "Magazine", "subject": "Current Affairs", "title": "Yojana",
     "publisher": "Publications Division", "priority": "Optional",
     "examRelevance": ["Mains", "Interview"], "estimatedHours": 4, "chapters": []},
]


def _system_user(db, now: str) -> int:
    row = db.execute("SELECT id FROM users WHERE email = ?", (SYSTEM_USER["email"],)).fetchone()
    if row:
        return row["id"]
    cur = db.execute(
        "INSERT INTO users (name, email, password_hash, is_active, created_at, updated_at) "
        "VALUES (?, ?, '', 0, ?, ?)",
        (SYSTEM_USER["name"], SYSTEM_USER["email"], now, now),
    )
    return cur.lastrowid


def seed(db, template_category: str = "UPSC-General", templates: list[dict] | None = None) -> dict:
    """Seed template resources into *db*. Returns summary dict."""
    now = datetime.now().isoformat()
    owner_id = _system_user(db, now)
    created = skipped = 0

    for tpl in templates if templates is not None else UPSC_GENERAL:
        exists = db.execute(
            "SELECT id FROM upsc_resources WHERE is_template = 1 AND template_category = ? AND title = ?",
            (template_category, tpl["title"]),
        ).fetchone()
        if exists:
            skipped += 1
            continue
        cur = db.execute(
            "INSERT INTO upsc_resources (user_id, category, subject, title, author, publisher, priority, "
            "exam_relevance, tags, estimated_hours, is_template, template_category, status, "
            "created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, '[]', ?, 1, ?, 'Not Started', ?, ?)",
            (owner_id, tpl["category"], tpl["subject"], tpl["title"], tpl.get("author", ""),
             tpl.get("publisher", ""), tpl["priority"], json.dumps(tpl.get("examRelevance", [])),
             tpl.get("estimatedHours", 0), template_category, now, now),
        )
        for order, name in enumerate(tpl.get("chapters", [])):
            db.execute(
                "INSERT INTO resource_chapters (resource_id, name, sort_order) VALUES (?, ?, ?)",
                (cur.lastrowid, name, order),
            )
        created += 1

    db.commit()
    return {"ownerId": owner_id, "templateCategory": template_category, "created": created, "skipped": skipped}


if __name__ == "__main__":
    if len(sys.argv) > 1:
        import database

        conn = database.connect(sys.argv[1])
        conn.executescript(database.SCHEMA)
        database.apply_migrations(conn, sys.argv[1])
        result = seed(conn)
        conn.close()
    else:
        from app import create_app
        from database import get_db, init_db, run_migrations

        app = create_app()
        with app.app_context():
            init_db()
            run_migrations()
            result = seed(get_db())
    print(f"[Seed] Done: {result}")
