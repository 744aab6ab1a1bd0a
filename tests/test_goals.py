"""Tests for daily goals, the flat checklist API and monthly plans."""

import pytest

DAY = "2026-03-14"


def _goal(client, **overrides):
    payload = {
        "date": DAY,
        "tasks": [{"task": "Read chapter 3", "priority": "High"}, {"task": "Solve 20 MCQs"}],
        "notes": "Focus on polity",
    }
    payload.update(overrides)
    resp = client.post("/api/goals/daily", json=payload)
    assert resp.status_code == 201
    return resp.get_json()["data"]


class TestDailyGoals:
    def test_get_requires_valid_date(self, auth_client):
        for query in ("", "?date=14-03-2026", "?date=2026-3-1"):
            resp = auth_client.get(f"/api/goals/daily{query}")
            assert resp.status_code == 400
            assert resp.get_json()["message"] == "Please provide a date in YYYY-MM-DD format"

    def test_get_missing_goal_is_null(self, auth_client):
        body = auth_client.get(f"/api/goals/daily?date={DAY}").get_json()
        assert body["success"] is True
        assert body["data"] is None

    def test_upsert_creates_goal(self, auth_client):
        goal = _goal(auth_client)
        assert goal["date"] == DAY
        assert [t["task"] for t in goal["tasks"]] == ["Read chapter 3", "Solve 20 MCQs"]
        assert goal["tasks"][1]["priority"] == "Medium"
        assert goal["tasks"][1]["estimatedTime"] == 30
        assert goal["completionPercentage"] == 0

    def test_upsert_same_date_replaces(self, auth_client):
        first = _goal(auth_client)
        second = _goal(auth_client, tasks=[{"task": "Only task"}])
        assert second["id"] == first["id"]
        assert [t["task"] for t in second["tasks"]] == ["Only task"]
        assert second["notes"] == "Focus on polity"

    def test_upsert_keeps_tasks_when_omitted(self, auth_client):
        _goal(auth_client)
        resp = auth_client.post("/api/goals/daily", json={"date": DAY, "totalStudyTime": 120})
        goal = resp.get_json()["data"]
        assert len(goal["tasks"]) == 2
        assert goal["totalStudyTime"] == 120

    def test_task_validation(self, auth_client):
        resp = auth_client.post("/api/goals/daily", json={"date": DAY, "tasks": [{"task": "x" * 201}]})
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Task description cannot be more than 200 characters"

    def test_complete_task_updates_percentage(self, auth_client):
        goal = _goal(auth_client)
        task_id = goal["tasks"][0]["id"]
        resp = auth_client.patch(f"/api/goals/daily/{goal['id']}/tasks/{task_id}", json={"completed": True})
        data = resp.get_json()["data"]
        assert data["tasks"][0]["completed"] is True
        assert data["completionPercentage"] == 50

    def test_add_and_remove_task(self, auth_client):
        goal = _goal(auth_client)
        added = auth_client.post(f"/api/goals/daily/{goal['id']}/tasks",
                                 json={"task": "Revise notes", "estimatedTime": 45}).get_json()["data"]
        assert added["tasks"][-1]["task"] == "Revise notes"
        assert added["tasks"][-1]["estimatedTime"] == 45
        removed = auth_client.delete(
            f"/api/goals/daily/{goal['id']}/tasks/{added['tasks'][-1]['id']}"
        ).get_json()["data"]
        assert len(removed["tasks"]) == 2

    def test_unknown_task(self, auth_client):
        goal = _goal(auth_client)
        resp = auth_client.patch(f"/api/goals/daily/{goal['id']}/tasks/9999", json={"completed": True})
        assert resp.status_code == 404

    def test_foreign_goal_forbidden(self, auth_client, other_client):
        goal = _goal(other_client)
        resp = auth_client.delete(f"/api/goals/daily/{goal['id']}")
        assert resp.status_code == 403
        assert resp.get_json()["message"] == "Not authorized to delete this goal"

    def test_delete_goal(self, auth_client):
        goal = _goal(auth_client)
        assert auth_client.delete(f"/api/goals/daily/{goal['id']}").status_code == 200
        assert auth_client.get(f"/api/goals/daily?date={DAY}").get_json()["data"] is None


class TestChecklist:
    def test_create_and_list(self, auth_client):
        resp = auth_client.post("/api/daily-goals", json={"task": "Newspaper", "date": DAY})
        assert resp.status_code == 201
        task = resp.get_json()["data"]
        assert task["task"] == "Newspaper"
        assert task["completed"] is False
        assert task["date"] == DAY
        listed = auth_client.get(f"/api/daily-goals?date={DAY}").get_json()["data"]
        assert [t["id"] for t in listed] == [task["id"]]

    def test_checklist_shares_goal_tasks(self, auth_client):
        _goal(auth_client)
        listed = auth_client.get(f"/api/daily-goals?date={DAY}").get_json()["data"]
        assert len(listed) == 2

    def test_double_toggle_restores(self, auth_client):
        task = auth_client.post("/api/daily-goals", json={"task": "Essay", "date": DAY}).get_json()["data"]
        once = auth_client.patch(f"/api/daily-goals/{task['id']}/toggle").get_json()["data"]
        twice = auth_client.patch(f"/api/daily-goals/{task['id']}/toggle").get_json()["data"]
        assert once["completed"] is True
        assert twice["completed"] is False

    def test_requires_task_and_date(self, auth_client):
        resp = auth_client.post("/api/daily-goals", json={"task": "No date"})
        assert resp.status_code == 400

    def test_delete(self, auth_client):
        task = auth_client.post("/api/daily-goals", json={"task": "Essay", "date": DAY}).get_json()["data"]
        resp = auth_client.delete(f"/api/daily-goals/{task['id']}")
        assert resp.get_json()["message"] == "Task deleted successfully"
        assert auth_client.get(f"/api/daily-goals?date={DAY}").get_json()["data"] == []

    def test_foreign_task_not_found(self, auth_client, other_client):
        task = other_client.post("/api/daily-goals", json={"task": "Mine", "date": DAY}).get_json()["data"]
        assert auth_client.patch(f"/api/daily-goals/{task['id']}/toggle").status_code == 404


PLAN = {
    "month": 3, "year": 2026, "subject": "Economy", "targetType": "chapters",
    "targetAmount": 10, "deadline": "2026-03-31",
}


def _plan(client, **overrides):
    resp = client.post("/api/goals/monthly", json={**PLAN, **overrides})
    assert resp.status_code == 201
    return resp.get_json()["data"]


class TestMonthlyPlans:
    def test_create_defaults(self, auth_client):
        plan = _plan(auth_client)
        assert plan["status"] == "Not Started"
        assert plan["priority"] == "Medium"
        assert plan["progressPercentage"] == 0

    @pytest.mark.parametrize("amount,status,pct", [
        (0, "Not Started", 0),
        (4, "In Progress", 40),
        (10, "Completed", 100),
        (15, "Completed", 100),
    ])
    def test_progress_derives_status(self, auth_client, amount, status, pct):
        plan = _plan(auth_client)
        data = auth_client.patch(f"/api/goals/monthly/{plan['id']}/progress",
                                 json={"completedAmount": amount}).get_json()["data"]
        assert data["status"] == status
        assert data["progressPercentage"] == pct
        assert data["completedAmount"] == min(amount, 10)

    def test_paused_kept_until_progress_changes(self, auth_client):
        plan = _plan(auth_client, completedAmount=4)
        paused = auth_client.put(f"/api/goals/monthly/{plan['id']}", json={"status": "Paused"}).get_json()["data"]
        assert paused["status"] == "Paused"
        renamed = auth_client.put(f"/api/goals/monthly/{plan['id']}",
                                  json={"description": "slow month"}).get_json()["data"]
        assert renamed["status"] == "Paused"
        moved = auth_client.patch(f"/api/goals/monthly/{plan['id']}/progress",
                                  json={"completedAmount": 5}).get_json()["data"]
        assert moved["status"] == "In Progress"

    def test_validation(self, auth_client):
        resp = auth_client.post("/api/goals/monthly", json={**PLAN, "month": 13, "targetType": "pages",
                                                             "year": 2019})
        assert resp.status_code == 400
        message = resp.get_json()["message"]
        assert "Month must be between 1-12" in message
        assert "Year must be valid" in message

    def test_list_filters_by_month_and_year(self, auth_client):
        _plan(auth_client)
        _plan(auth_client, month=4)
        body = auth_client.get("/api/goals/monthly?month=3&year=2026").get_json()
        assert body["count"] == 1
        assert auth_client.get("/api/goals/monthly").get_json()["count"] == 2

    def test_stats(self, auth_client):
        _plan(auth_client)
        _plan(auth_client, completedAmount=10)
        _plan(auth_client, completedAmount=5)
        stats = auth_client.get("/api/goals/monthly/stats?month=3&year=2026").get_json()["data"]
        assert stats == {
            "totalPlans": 3,
            "completedPlans": 1,
            "inProgressPlans": 1,
            "notStartedPlans": 1,
            "pausedPlans": 0,
            "overallProgress": 50,
        }

    def test_stats_requires_month_and_year(self, auth_client):
        resp = auth_client.get("/api/goals/monthly/stats?month=3")
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Please provide month and year"

    def test_calendar_sync_not_implemented(self, auth_client):
        resp = auth_client.post("/api/goals/monthly/calendar-sync")
        assert resp.status_code == 501
        assert resp.get_json()["message"] == "Google Calendar integration coming soon"

    def test_foreign_plan_forbidden(self, auth_client, other_client):
        plan = _plan(other_client)
        resp = auth_client.get(f"/api/goals/monthly/{plan['id']}")
        assert resp.status_code == 403
        assert resp.get_json()["message"] == "Not authorized to access this plan"

    def test_delete(self, auth_client):
        plan = _plan(auth_client)
        resp = auth_client.delete(f"/api/goals/monthly/{plan['id']}")
        assert resp.get_json()["message"] == "Monthly plan deleted successfully"
        assert auth_client.get(f"/api/goals/monthly/{plan['id']}").status_code == 404
