"""Tests for /api/sessions: logging, pagination, analytics and owner scoping."""

from datetime import datetime, timedelta


def _session(client, start, minutes=90, **overrides):
    payload = {
        "subject": "History",
        "topic": "Revolt of 1857",
        "startTime": start.isoformat(),
        "endTime": (start + timedelta(minutes=minutes)).isoformat(),
    }
    payload.update(overrides)
    resp = client.post("/api/sessions", json=payload)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["data"]


class TestCreateSession:
    def test_duration_and_defaults(self, auth_client):
        session = _session(auth_client, datetime(2026, 3, 14, 9, 0))
        assert session["duration"] == 90
        assert session["sessionType"] == "Reading"
        assert session["productivity"] == 3
        assert session["mood"] == "Good"
        assert session["completed"] is True

    def test_adds_hours_to_user(self, auth_client):
        _session(auth_client, datetime(2026, 3, 14, 9, 0), minutes=90)
        _session(auth_client, datetime(2026, 3, 15, 9, 0), minutes=45)
        stats = auth_client.get("/api/auth/me").get_json()["data"]["user"]["progressStats"]
        assert stats["totalStudyHours"] == 2.25
        assert stats["lastStudyDate"]

    def test_end_before_start_rejected(self, auth_client):
        start = datetime(2026, 3, 14, 9, 0)
        resp = auth_client.post("/api/sessions", json={
            "subject": "History",
            "startTime": start.isoformat(),
            "endTime": (start - timedelta(minutes=5)).isoformat(),
        })
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "End time must be after start time"

    def test_invalid_enum_and_range(self, auth_client):
        start = datetime(2026, 3, 14, 9, 0)
        resp = auth_client.post("/api/sessions", json={
            "subject": "History",
            "startTime": start.isoformat(),
            "endTime": (start + timedelta(hours=1)).isoformat(),
            "sessionType": "Napping",
            "productivity": 9,
        })
        assert resp.status_code == 400
        message = resp.get_json()["message"]
        assert "Productivity must be between 1 and 5" in message
        assert "sessionType" in message


class TestSessionQueries:
    def test_pagination(self, auth_client):
        for day in range(1, 13):
            _session(auth_client, datetime(2026, 3, day, 9, 0))
        body = auth_client.get("/api/sessions").get_json()
        assert len(body["data"]) == 10
        assert body["pagination"] == {"current": 1, "pages": 2, "total": 12}
        assert body["data"][0]["startTime"].startswith("2026-03-12")
        second = auth_client.get("/api/sessions?page=2").get_json()
        assert len(second["data"]) == 2

    def test_filters(self, auth_client):
        _session(auth_client, datetime(2026, 3, 1, 9, 0))
        _session(auth_client, datetime(2026, 3, 10, 9, 0), subject="Geography")
        by_subject = auth_client.get("/api/sessions?subject=Geography").get_json()
        assert by_subject["pagination"]["total"] == 1
        by_range = auth_client.get("/api/sessions?startDate=2026-03-05&endDate=2026-03-31").get_json()
        assert [s["subject"] for s in by_range["data"]] == ["Geography"]

    def test_analytics(self, auth_client):
        now = datetime.now().replace(microsecond=0)
        _session(auth_client, now - timedelta(days=1), minutes=60, productivity=4)
        _session(auth_client, now - timedelta(days=2), minutes=30, subject="Polity",
                 sessionType="Revision", productivity=2)
        _session(auth_client, now - timedelta(days=20), minutes=120)
        data = auth_client.get("/api/sessions/analytics").get_json()["data"]
        assert data["period"] == "7d"
        assert data["totalSessions"] == 2
        assert data["totalHours"] == 1.5
        assert data["averageProductivity"] == 3
        assert data["subjectBreakdown"] == {"History": 60, "Polity": 30}
        assert data["sessionTypeBreakdown"] == {"Reading": 60, "Revision": 30}
        month = auth_client.get("/api/sessions/analytics?period=30d").get_json()["data"]
        assert month["totalSessions"] == 3


class TestSessionOwnership:
    def test_update_recomputes_duration(self, auth_client):
        session = _session(auth_client, datetime(2026, 3, 14, 9, 0))
        resp = auth_client.put(f"/api/sessions/{session['id']}", json={"endTime": "2026-03-14T11:00:00"})
        assert resp.get_json()["message"] == "Study session updated successfully"
        assert resp.get_json()["data"]["duration"] == 120

    def test_foreign_session_is_not_found(self, auth_client, other_client):
        session = _session(other_client, datetime(2026, 3, 14, 9, 0))
        resp = auth_client.get(f"/api/sessions/{session['id']}")
        assert resp.status_code == 404
        assert resp.get_json()["message"] == "Study session not found"
        assert auth_client.delete(f"/api/sessions/{session['id']}").status_code == 404

    def test_delete(self, auth_client):
        session = _session(auth_client, datetime(2026, 3, 14, 9, 0))
        resp = auth_client.delete(f"/api/sessions/{session['id']}")
        assert resp.get_json()["message"] == "Study session deleted successfully"
        assert auth_client.get("/api/sessions").get_json()["pagination"]["total"] == 0
