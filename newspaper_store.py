"""
Newspaper analysis store.

One analysis per user, date and source, holding the day's clipped articles.
The aggregation helpers (timeline, trends, reminders, compilation) work on
the flattened article list in Python.
"""

from __future__ import annotations

import json
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any

from database import get_db
from helpers import (
    BadRequest,
    NotFound,
    contains_ci,
    iso_or_none,
    loads_list,
    now_iso,
    parse_date,
    string_list,
)
from models import (
    EXAM_RELEVANCE,
    NEWS_CATEGORIES,
    NEWS_SOURCES,
    PRIORITIES,
    Checker,
    analysis_completion_status,
    month_bounds,
    revision_urgency,
)

ARTICLE_FIELDS = {
    "title": "title",
    "summary": "summary",
    "keyPoints": "key_points",
    "category": "category",
    "subCategory": "sub_category",
    "tags": "tags",
    "examRelevance": "exam_relevance",
    "priority": "priority",
    "url": "url",
    "pageNumber": "page_number",
    "linkedTopics": "linked_topics",
    "notes": "notes",
    "isBookmarked": "is_bookmarked",
    "lastRevisedAt": "last_revised_at",
}

_LIST_COLUMNS = {"key_points", "tags", "exam_relevance", "linked_topics"}
_PRIORITY_RANK = {"High": 0, "Medium": 1, "Low": 2}
_URGENCY_RANK = {"Critical": 0, "Overdue": 1, "Due": 2}


def _article_to_api(row: dict) -> dict:
    return {
        "id": row["id"],
        "title": row["title"],
        "summary": row["summary"],
        "keyPoints": loads_list(row["key_points"]),
        "category": row["category"],
        "subCategory": row["sub_category"],
        "tags": loads_list(row["tags"]),
        "examRelevance": loads_list(row["exam_relevance"]),
        "priority": row["priority"],
        "url": row["url"],
        "pageNumber": row["page_number"],
        "linkedTopics": loads_list(row["linked_topics"]),
        "notes": row["notes"],
        "isBookmarked": bool(row["is_bookmarked"]),
        "lastRevisedAt": row["last_revised_at"],
        "revisionCount": row["revision_count"],
        "order": row["sort_order"],
        "createdAt": row["created_at"],
    }


def _clean_article(data: dict, checker: Checker, current: dict | None = None) -> dict:
    """Column values for an article; *current* holds the stored columns on update."""
    fields: dict[str, Any] = dict(current or {})
    for key, column in ARTICLE_FIELDS.items():
        if key not in data or data[key] is None:
            continue
        value = data[key]
        if column in _LIST_COLUMNS:
            value = json.dumps(string_list(value))
        elif column == "is_bookmarked":
            value = int(bool(value))
        elif column == "last_revised_at":
            value = iso_or_none(value)
        elif column == "page_number":
            value = checker.number(value, "Page number must be a positive number", minimum=1)
        fields[column] = value

    fields.setdefault("priority", "Medium")
    if checker.required(fields.get("title"), "Please provide article title"):
        fields["title"] = str(fields["title"]).strip()
    if checker.required(fields.get("category"), "Please provide article category"):
        checker.choice(fields["category"], NEWS_CATEGORIES, "category")
    checker.choice(fields["priority"], PRIORITIES, "priority")
    checker.choices(loads_list(fields.get("exam_relevance")), EXAM_RELEVANCE, "examRelevance")
    return fields


class NewspaperStore:

    @staticmethod
    def _owned(analysis_id: int, user_id: int) -> dict:
        db = get_db()
        row = db.execute(
            "SELECT * FROM newspaper_analyses WHERE id = ? AND user_id = ?", (analysis_id, user_id)
        ).fetchone()
        if not row:
            raise NotFound("Newspaper analysis not found")
        return dict(row)

    @staticmethod
    def _article(analysis_id: int, article_id: int) -> dict:
        db = get_db()
        row = db.execute(
            "SELECT * FROM newspaper_articles WHERE id = ? AND analysis_id = ?", (article_id, analysis_id)
        ).fetchone()
        if not row:
            raise NotFound("Article not found")
        return dict(row)

    @staticmethod
    def _insert_article(analysis_id: int, fields: dict, order: int) -> int:
        db = get_db()
        cur = db.execute(
            "INSERT INTO newspaper_articles (analysis_id, title, summary, key_points, category, sub_category, "
            "tags, exam_relevance, priority, url, page_number, linked_topics, notes, is_bookmarked, "
            "last_revised_at, revision_count, sort_order, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                analysis_id, fields["title"], fields.get("summary") or "", fields.get("key_points") or "[]",
                fields["category"], fields.get("sub_category") or "", fields.get("tags") or "[]",
                fields.get("exam_relevance") or "[]", fields["priority"], fields.get("url") or "",
                fields.get("page_number"), fields.get("linked_topics") or "[]", fields.get("notes") or "",
                fields.get("is_bookmarked") or 0, fields.get("last_revised_at"), 0, order, now_iso(),
            ),
        )
        return cur.lastrowid

    @staticmethod
    def _refresh(analysis_id: int) -> None:
        """Re-derive the completion status after a change."""
        db = get_db()
        row = db.execute("SELECT total_time_spent FROM newspaper_analyses WHERE id = ?", (analysis_id,)).fetchone()
        count = db.execute(
            "SELECT COUNT(*) AS n FROM newspaper_articles WHERE analysis_id = ?", (analysis_id,)
        ).fetchone()["n"]
        db.execute(
            "UPDATE newspaper_analyses SET completion_status = ?, updated_at = ? WHERE id = ?",
            (analysis_completion_status(count, row["total_time_spent"]), now_iso(), analysis_id),
        )

    @staticmethod
    def _rows(user_id: int, archived: bool | None = False, since: str | None = None,
              until: str | None = None, source: str | None = None) -> list[dict]:
        sql = "SELECT * FROM newspaper_analyses WHERE user_id = ?"
        params: list[Any] = [user_id]
        if archived is not None:
            sql += " AND is_archived = ?"
            params.append(int(archived))
        if since:
            sql += " AND date >= ?"
            params.append(since)
        if until:
            sql += " AND date <= ?"
            params.append(until)
        if source:
            sql += " AND source = ?"
            params.append(source)
        db = get_db()
        return [dict(r) for r in db.execute(sql + " ORDER BY date DESC, id DESC", params).fetchall()]

    @staticmethod
    def _flat_articles(analyses: list[dict]) -> list[tuple[dict, dict]]:
        """(analysis row, article dict) pairs for the given analyses."""
        if not analyses:
            return []
        by_id = {a["id"]: a for a in analyses}
        marks = ", ".join("?" for _ in by_id)
        db = get_db()
        rows = db.execute(
            f"SELECT * FROM newspaper_articles WHERE analysis_id IN ({marks}) ORDER BY sort_order, id",
            tuple(by_id),
        ).fetchall()
        pairs = [(by_id[r["analysis_id"]], _article_to_api(dict(r))) for r in rows]
        pairs.sort(key=lambda p: p[0]["date"], reverse=True)
        return pairs

    # ── Queries ──

    @staticmethod
    def list_for_user(user_id: int, source: str | None = None, category: str | None = None,
                      priority: str | None = None, start_date: str | None = None,
                      end_date: str | None = None, search: str | None = None) -> list[dict]:
        analyses = [
            NewspaperStore.to_api(r)
            for r in NewspaperStore._rows(user_id, False, parse_date(start_date), parse_date(end_date), source)[:100]
        ]
        if not (category or priority or search):
            return analyses

        def matches(article: dict) -> bool:
            if category and article["category"] != category:
                return False
            if priority and article["priority"] != priority:
                return False
            if search and not contains_ci(search, article["title"], article["summary"], article["tags"]):
                return False
            return True

        return [a for a in analyses if any(matches(art) for art in a["articles"])]

    @staticmethod
    def get(analysis_id: int, user_id: int) -> dict:
        return NewspaperStore.to_api(NewspaperStore._owned(analysis_id, user_id))

    @staticmethod
    def by_date(user_id: int, day: str) -> list[dict]:
        target = parse_date(day)
        if not target:
            raise BadRequest("Please provide a date in YYYY-MM-DD format")
        rows = NewspaperStore._rows(user_id, False, target, target)
        rows.sort(key=lambda r: r["source"])
        return [NewspaperStore.to_api(r) for r in rows]

    @staticmethod
    def timeline(user_id: int, days: int = 30) -> list[dict]:
        since = (date.today() - timedelta(days=days)).isoformat()
        db = get_db()
        grouped: dict[str, dict] = {}
        for row in NewspaperStore._rows(user_id, None, since):
            entry = grouped.setdefault(row["date"], {"date": row["date"], "articleCount": 0,
                                                     "timeSpent": 0, "sources": []})
            entry["articleCount"] += db.execute(
                "SELECT COUNT(*) AS n FROM newspaper_articles WHERE analysis_id = ?", (row["id"],)
            ).fetchone()["n"]
            entry["timeSpent"] += row["total_time_spent"]
            if row["source"] not in entry["sources"]:
                entry["sources"].append(row["source"])
        return sorted(grouped.values(), key=lambda e: e["date"])

    @staticmethod
    def category_trends(user_id: int, days: int = 30) -> list[dict]:
        since = (date.today() - timedelta(days=days)).isoformat()
        weekly: dict[str, dict[int, dict]] = defaultdict(dict)
        for analysis, article in NewspaperStore._flat_articles(NewspaperStore._rows(user_id, None, since)):
            week = int(date.fromisoformat(analysis["date"]).strftime("%U"))
            bucket = weekly[article["category"]].setdefault(
                week, {"week": week, "count": 0, "highPriorityCount": 0}
            )
            bucket["count"] += 1
            bucket["highPriorityCount"] += article["priority"] == "High"
        trends = [
            {
                "category": category,
                "weeklyData": sorted(weeks.values(), key=lambda w: w["week"]),
                "totalCount": sum(w["count"] for w in weeks.values()),
            }
            for category, weeks in weekly.items()
        ]
        trends.sort(key=lambda t: t["totalCount"], reverse=True)
        return trends

    @staticmethod
    def revision_reminders(user_id: int) -> list[dict]:
        today = date.today()
        since = (today - timedelta(days=30)).isoformat()
        reminders = []
        for analysis, article in NewspaperStore._flat_articles(NewspaperStore._rows(user_id, None, since)):
            if article["priority"] != "High" and not article["isBookmarked"]:
                continue
            urgency = revision_urgency((today - date.fromisoformat(analysis["date"])).days)
            if urgency is None:
                continue
            reminders.append({
                "analysisId": analysis["id"],
                "articleId": article["id"],
                "date": analysis["date"],
                "source": analysis["source"],
                "title": article["title"],
                "category": article["category"],
                "priority": article["priority"],
                "lastRevisedAt": article["lastRevisedAt"],
                "revisionCount": article["revisionCount"],
                "revisionUrgency": urgency,
            })
        reminders.sort(key=lambda r: r["date"], reverse=True)
        reminders.sort(key=lambda r: _URGENCY_RANK[r["revisionUrgency"]])
        return reminders

    @staticmethod
    def bookmarks(user_id: int, category: str | None = None, days: int = 30) -> list[dict]:
        since = (date.today() - timedelta(days=days)).isoformat()
        results = []
        for analysis, article in NewspaperStore._flat_articles(NewspaperStore._rows(user_id, False, since)):
            if not article["isBookmarked"] or (category and article["category"] != category):
                continue
            results.append({
                "analysisId": analysis["id"],
                "articleId": article["id"],
                "date": analysis["date"],
                "source": analysis["source"],
                "title": article["title"],
                "summary": article["summary"],
                "category": article["category"],
                "priority": article["priority"],
                "examRelevance": article["examRelevance"],
                "tags": article["tags"],
                "notes": article["notes"],
            })
        return results

    @staticmethod
    def search(user_id: int, query: str | None, category: str | None = None, priority: str | None = None,
               exam_relevance: str | None = None, start_date: str | None = None,
               end_date: str | None = None) -> list[dict]:
        if not query:
            raise BadRequest("Search query is required")
        rows = NewspaperStore._rows(user_id, False, parse_date(start_date), parse_date(end_date))
        results = []
        for analysis, article in NewspaperStore._flat_articles(rows):
            if not contains_ci(query, article["title"], article["summary"], article["keyPoints"], article["tags"]):
                continue
            if category and article["category"] != category:
                continue
            if priority and article["priority"] != priority:
                continue
            if exam_relevance and exam_relevance not in article["examRelevance"]:
                continue
            results.append({
                "analysisId": analysis["id"],
                "articleId": article["id"],
                "date": analysis["date"],
                "source": analysis["source"],
                "title": article["title"],
                "summary": article["summary"],
                "keyPoints": article["keyPoints"],
                "category": article["category"],
                "priority": article["priority"],
                "examRelevance": article["examRelevance"],
                "tags": article["tags"],
                "notes": article["notes"],
                "isBookmarked": article["isBookmarked"],
            })
            if len(results) == 100:
                break
        return results

    @staticmethod
    def monthly_stats(user_id: int, year: int, month: int) -> dict:
        first, last = month_bounds(year, month)
        rows = NewspaperStore._rows(user_id, None, first, last)
        pairs = NewspaperStore._flat_articles(rows)

        categories: dict[str, dict] = {}
        for analysis, article in pairs:
            entry = categories.setdefault(article["category"], {
                "category": article["category"], "count": 0, "highPriority": 0,
                "prelimsRelevant": 0, "mainsRelevant": 0, "totalTimeSpent": 0,
            })
            entry["count"] += 1
            entry["highPriority"] += article["priority"] == "High"
            entry["prelimsRelevant"] += "Prelims" in article["examRelevance"]
            entry["mainsRelevant"] += "Mains" in article["examRelevance"]
            entry["totalTimeSpent"] += analysis["total_time_spent"]
        category_stats = sorted(categories.values(), key=lambda c: c["count"], reverse=True)

        sources: list[str] = []
        for r in rows:
            if r["source"] not in sources:
                sources.append(r["source"])
        summary = {
            "totalDays": len(rows),
            "totalArticles": len(pairs),
            "totalTimeSpent": sum(r["total_time_spent"] for r in rows),
            "avgArticlesPerDay": len(pairs) / len(rows) if rows else 0,
            "sources": sources,
        }
        return {"categoryStats": category_stats, "summary": summary}

    @staticmethod
    def monthly_compilation(user_id: int, year: int, month: int) -> dict:
        first, last = month_bounds(year, month)
        grouped: dict[str, list[dict]] = defaultdict(list)
        for analysis, article in NewspaperStore._flat_articles(NewspaperStore._rows(user_id, None, first, last)):
            grouped[article["category"]].append({
                "date": analysis["date"],
                "source": analysis["source"],
                "title": article["title"],
                "summary": article["summary"],
                "keyPoints": article["keyPoints"],
                "priority": article["priority"],
                "examRelevance": article["examRelevance"],
                "tags": article["tags"],
            })
        categories = []
        for category, articles in grouped.items():
            articles.sort(key=lambda a: a["date"], reverse=True)
            articles.sort(key=lambda a: _PRIORITY_RANK.get(a["priority"], 3))
            categories.append({"category": category, "articles": articles, "count": len(articles)})
        categories.sort(key=lambda c: c["count"], reverse=True)
        return {
            "month": month,
            "year": year,
            "categories": categories,
            "generatedAt": datetime.now().isoformat(),
        }

    # ── Mutations ──

    @staticmethod
    def upsert(user_id: int, data: dict) -> tuple[dict, bool]:
        """Create or update the analysis for (date, source); returns (analysis, created)."""
        checker = Checker()
        day = parse_date(data.get("date"))
        if not day:
            checker.fail("Please provide date")
        source = data.get("source")
        if checker.required(source, "Please provide source"):
            checker.choice(source, NEWS_SOURCES, "source")
        articles = data.get("articles")
        cleaned = None
        if articles is not None:
            if not isinstance(articles, list):
                checker.fail("Articles must be a list")
            else:
                cleaned = [_clean_article(a if isinstance(a, dict) else {}, checker) for a in articles]
        time_spent = data.get("totalTimeSpent")
        if time_spent is not None:
            time_spent = checker.number(time_spent, "Time spent cannot be negative", minimum=0)
        checker.check()

        db = get_db()
        existing = db.execute(
            "SELECT id FROM newspaper_analyses WHERE user_id = ? AND date = ? AND source = ?",
            (user_id, day, source),
        ).fetchone()
        now = now_iso()
        if existing:
            analysis_id = existing["id"]
            changes: dict[str, Any] = {}
            if time_spent is not None:
                changes["total_time_spent"] = time_spent
            if data.get("overallNotes") is not None:
                changes["overall_notes"] = data["overallNotes"]
            if data.get("importantEvents"):
                changes["important_events"] = json.dumps(string_list(data["importantEvents"]))
            if data.get("monthlyTheme") is not None:
                changes["monthly_theme"] = data["monthlyTheme"]
            if changes:
                assignments = ", ".join(f"{col} = ?" for col in changes)
                db.execute(f"UPDATE newspaper_analyses SET {assignments} WHERE id = ?",
                           (*changes.values(), analysis_id))
            if cleaned:
                db.execute("DELETE FROM newspaper_articles WHERE analysis_id = ?", (analysis_id,))
        else:
            cur = db.execute(
                "INSERT INTO newspaper_analyses (user_id, date, source, total_time_spent, overall_notes, "
                "important_events, monthly_theme, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (user_id, day, source, time_spent or 0, data.get("overallNotes") or "",
                 json.dumps(string_list(data.get("importantEvents"))), data.get("monthlyTheme") or "", now, now),
            )
            analysis_id = cur.lastrowid

        if cleaned and (not existing or articles):
            for order, fields in enumerate(cleaned):
                NewspaperStore._insert_article(analysis_id, fields, order)
        NewspaperStore._refresh(analysis_id)
        db.commit()
        return NewspaperStore.get(analysis_id, user_id), existing is None

    @staticmethod
    def add_article(analysis_id: int, user_id: int, data: dict) -> dict:
        NewspaperStore._owned(analysis_id, user_id)
        checker = Checker()
        fields = _clean_article(data, checker)
        checker.check()
        db = get_db()
        order = db.execute(
            "SELECT COUNT(*) AS n FROM newspaper_articles WHERE analysis_id = ?", (analysis_id,)
        ).fetchone()["n"]
        NewspaperStore._insert_article(analysis_id, fields, order)
        NewspaperStore._refresh(analysis_id)
        db.commit()
        return NewspaperStore.get(analysis_id, user_id)

    @staticmethod
    def update_article(analysis_id: int, article_id: int, user_id: int, data: dict) -> dict:
        NewspaperStore._owned(analysis_id, user_id)
        current = NewspaperStore._article(analysis_id, article_id)
        checker = Checker()
        fields = _clean_article(data, checker, current)
        checker.check()
        if data.get("lastRevisedAt"):
            fields["revision_count"] = current["revision_count"] + 1
        columns = [c for c in (*ARTICLE_FIELDS.values(), "revision_count") if c in fields]
        assignments = ", ".join(f"{col} = ?" for col in columns)
        db = get_db()
        db.execute(
            f"UPDATE newspaper_articles SET {assignments} WHERE id = ?",
            (*(fields[c] for c in columns), article_id),
        )
        NewspaperStore._refresh(analysis_id)
        db.commit()
        return NewspaperStore.get(analysis_id, user_id)

    @staticmethod
    def toggle_bookmark(analysis_id: int, article_id: int, user_id: int) -> tuple[dict, bool]:
        NewspaperStore._owned(analysis_id, user_id)
        article = NewspaperStore._article(analysis_id, article_id)
        bookmarked = not article["is_bookmarked"]
        db = get_db()
        db.execute("UPDATE newspaper_articles SET is_bookmarked = ? WHERE id = ?", (int(bookmarked), article_id))
        NewspaperStore._refresh(analysis_id)
        db.commit()
        return NewspaperStore.get(analysis_id, user_id), bookmarked

    @staticmethod
    def delete_article(analysis_id: int, article_id: int, user_id: int) -> dict:
        NewspaperStore._owned(analysis_id, user_id)
        NewspaperStore._article(analysis_id, article_id)
        db = get_db()
        db.execute("DELETE FROM newspaper_articles WHERE id = ?", (article_id,))
        NewspaperStore._refresh(analysis_id)
        db.commit()
        return NewspaperStore.get(analysis_id, user_id)

    @staticmethod
    def to_api(row: dict) -> dict:
        db = get_db()
        articles = db.execute(
            "SELECT * FROM newspaper_articles WHERE analysis_id = ? ORDER BY sort_order, id", (row["id"],)
        ).fetchall()
        article_list = [_article_to_api(dict(a)) for a in articles]
        category_stats: dict[str, int] = defaultdict(int)
        for article in article_list:
            category_stats[article["category"]] += 1
        return {
            "id": row["id"],
            "user": row["user_id"],
            "date": row["date"],
            "source": row["source"],
            "articles": article_list,
            "totalTimeSpent": row["total_time_spent"],
            "overallNotes": row["overall_notes"],
            "importantEvents": loads_list(row["important_events"]),
            "monthlyTheme": row["monthly_theme"],
            "isArchived": bool(row["is_archived"]),
            "completionStatus": row["completion_status"],
            "categoryStats": dict(category_stats),
            "createdAt": row["created_at"],
            "updatedAt": row["updated_at"],
        }
