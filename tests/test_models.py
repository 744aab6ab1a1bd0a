"""Tests for pure domain rules: validation, progress, roll-ups, scores and the permission matrix."""

from datetime import datetime, timedelta

import pytest

from helpers import ValidationError
from models import (
    Checker,
    activity_score,
    add_months,
    analysis_completion_status,
    clamp,
    days_since,
    default_permission_matrix,
    display_text,
    grant,
    leaderboard_start,
    matrix_allows,
    merge_permissions,
    month_bounds,
    monthly_plan_status,
    percentage,
    permission_is_valid,
    permission_lifecycle,
    recommendation_score,
    renewal_end,
    resource_completion,
    resource_rollup,
    revision_urgency,
    revoke,
    rollup_status,
    session_duration,
)

NOW = datetime(2026, 3, 14, 12, 0)


class TestChecker:
    def test_collects_all_errors(self):
        checker = Checker()
        checker.required(None, "Please provide title")
        checker.required("   ", "Please provide subject")
        checker.max_length("x" * 11, 10, "Too long")
        checker.choice("Urgent", ("High", "Low"), "priority")
        with pytest.raises(ValidationError) as exc:
            checker.check()
        assert exc.value.message == "Please provide title, Please provide subject, Too long, " \
                                    "`Urgent` is not a valid value for priority"

    def test_zero_counts_as_present(self):
        checker = Checker()
        assert checker.required(0, "Please provide amount") is True
        checker.check()

    @pytest.mark.parametrize("value,kwargs,expected", [
        ("7", {}, 7),
        (2.5, {"integer": False}, 2.5),
        (2.5, {}, None),
        ("abc", {}, None),
        (0, {"minimum": 1}, None),
        (6, {"maximum": 5}, None),
        (None, {}, None),
    ])
    def test_number(self, value, kwargs, expected):
        checker = Checker()
        assert checker.number(value, "bad", **kwargs) == expected
        assert checker.errors == ([] if expected is not None or value is None else ["bad"])

    def test_choices_checks_each_value(self):
        checker = Checker()
        checker.choices(["Prelims", "Finals", "Viva"], ("Prelims", "Mains"), "examRelevance")
        assert len(checker.errors) == 2


class TestProgress:
    @pytest.mark.parametrize("part,whole,expected", [(3, 10, 30), (1, 3, 33), (2, 3, 67), (5, 0, 0)])
    def test_percentage(self, part, whole, expected):
        assert percentage(part, whole) == expected

    def test_clamp(self):
        assert clamp(12, 10) == 10
        assert clamp(-1, 10) == 0
        assert clamp(4, 10) == 4

    @pytest.mark.parametrize("completed,target,current,changed,expected", [
        (0, 10, "In Progress", True, "Not Started"),
        (10, 10, "Paused", False, "Completed"),
        (4, 10, "Paused", False, "Paused"),
        (4, 10, "Paused", True, "In Progress"),
        (4, 10, "Not Started", True, "In Progress"),
    ])
    def test_monthly_plan_status(self, completed, target, current, changed, expected):
        assert monthly_plan_status(completed, target, current, changed) == expected

    def test_session_duration_rounds_to_minutes(self):
        assert session_duration(NOW, NOW + timedelta(minutes=44, seconds=40)) == 45


class TestSyllabusRules:
    @pytest.mark.parametrize("children,expected", [
        ([], None),
        (["completed", "completed"], "completed"),
        (["completed", "not_started"], "in_progress"),
        (["in_progress", "not_started"], "not_started"),
    ])
    def test_rollup_status(self, children, expected):
        assert rollup_status(children) == expected

    def test_days_since(self):
        assert days_since(None, NOW) == 30
        assert days_since("garbage", NOW) == 30
        assert days_since((NOW - timedelta(hours=36)).isoformat(), NOW) == 1.5
        assert days_since((NOW + timedelta(days=1)).isoformat(), NOW) == 0

    def test_recommendation_score(self):
        assert recommendation_score("high", "needs_revision", 30) == 3 + 3 + 3
        assert recommendation_score("low", "in_progress", 7) == 1 + 1 + 1
        assert recommendation_score("unknown", "unknown", 0) == 2


class TestResourceRules:
    def test_rollup_without_chapters_keeps_status(self):
        result = resource_rollup([], "Completed", None, None, "now")
        assert result["status"] == "Completed"
        assert result["actual_hours"] is None

    def test_rollup_partial(self):
        chapters = [{"completed": True, "timeSpent": 45}, {"completed": False, "timeSpent": 15}]
        result = resource_rollup(chapters, "Not Started", None, None, "now")
        assert result["status"] == "In Progress"
        assert result["started_at"] == "now"
        assert result["actual_hours"] == 1

    def test_rollup_complete_keeps_first_completion(self):
        chapters = [{"completed": True, "timeSpent": 0}]
        result = resource_rollup(chapters, "In Progress", "s", "earlier", "now")
        assert result["status"] == "Completed"
        assert result["completed_at"] == "earlier"

    def test_completion(self):
        assert resource_completion([{"completed": True}, {"completed": False}], "In Progress") == 50
        assert resource_completion([], "Completed") == 100
        assert resource_completion([], "In Progress") == 0


class TestNewspaperRules:
    @pytest.mark.parametrize("count,time_spent,expected", [
        (2, 0, "Completed"), (0, 10, "In Progress"), (0, 0, "Not Started"),
    ])
    def test_completion_status(self, count, time_spent, expected):
        assert analysis_completion_status(count, time_spent) == expected

    @pytest.mark.parametrize("age,expected", [
        (-1, None), (0, "Due"), (6, "Due"), (7, "Overdue"), (13, "Overdue"), (14, "Critical"), (30, None),
    ])
    def test_revision_urgency(self, age, expected):
        assert revision_urgency(age) == expected

    def test_month_bounds(self):
        assert month_bounds(2028, 2) == ("2028-02-01", "2028-02-29")
        assert month_bounds(2026, 12) == ("2026-12-01", "2026-12-31")


class TestActivityRules:
    def test_activity_score(self):
        assert activity_score(10, 0, 0, "low") == 10
        assert activity_score(10, 1, 1, "normal") == 20
        assert activity_score(10, 0, 0, "milestone", highlight=True) == 30

    def test_display_text(self):
        text = display_text("study_session_completed", "Asha", "", "", {"duration": 90, "subject": "Polity"})
        assert text == "Asha completed a 90min study session on Polity"
        assert display_text("member_joined", None, "", "", {}) == "Someone joined the group! Welcome!"
        assert display_text("help_provided", "Asha", "", "Explained GST", {}) == "Explained GST"

    @pytest.mark.parametrize("period,expected", [
        ("day", datetime(2026, 3, 14)),
        ("week", datetime(2026, 3, 8)),
        ("month", datetime(2026, 3, 1)),
        ("fortnight", datetime(2026, 3, 7)),
    ])
    def test_leaderboard_start(self, period, expected):
        # 2026-03-14 is a Saturday
        assert leaderboard_start(period, NOW) == expected


class TestPermissionMatrix:
    def test_default_only_profile(self):
        matrix = default_permission_matrix()
        assert matrix["profile"]["enabled"] is True
        assert all(matrix["profile"]["details"].values())
        assert not any(spec["enabled"] for name, spec in matrix.items() if name != "profile")

    def test_merge_ignores_unknown_keys(self):
        matrix = merge_permissions(None, {
            "books": {"enabled": True, "details": {"bookList": True, "secretDiary": True}},
            "finances": {"enabled": True},
        })
        assert "finances" not in matrix
        assert "secretDiary" not in matrix["books"]["details"]
        assert matrix_allows(matrix, "books", "bookList")
        assert not matrix_allows(matrix, "books", "readingSpeed")

    def test_grant_and_revoke(self):
        matrix = default_permission_matrix()
        assert grant(matrix, "goals")
        assert all(matrix["goals"]["details"].values())
        revoke(matrix, "goals", "dailyGoals")
        assert matrix["goals"]["enabled"] is True
        for detail in ("monthlyPlans", "completionRate", "targetProgress"):
            revoke(matrix, "goals", detail)
        assert matrix["goals"]["enabled"] is False
        assert grant(matrix, "nonsense") is False


class TestPermissionLifecycle:
    def test_add_months_clamps_day(self):
        assert add_months(datetime(2026, 1, 31), 1) == datetime(2026, 2, 28)
        assert add_months(datetime(2026, 11, 15), 3) == datetime(2027, 2, 15)

    @pytest.mark.parametrize("period,expected", [
        ("1week", datetime(2026, 3, 21, 12)),
        ("1month", datetime(2026, 4, 14, 12)),
        ("3months", datetime(2026, 6, 14, 12)),
        ("6months", datetime(2026, 9, 14, 12)),
    ])
    def test_renewal_end(self, period, expected):
        assert renewal_end(NOW, period) == expected

    def test_active_gets_end_date(self):
        status, end = permission_lifecycle("active", False, None, "1week", NOW)
        assert status == "active"
        assert end == datetime(2026, 3, 21, 12).isoformat()

    def test_past_end_date_expires(self):
        status, _ = permission_lifecycle("active", False, "2026-03-01T00:00:00", "1month", NOW)
        assert status == "expired"

    def test_permanent_clears_end_date(self):
        assert permission_lifecycle("active", True, "2026-03-01T00:00:00", "1month", NOW) == ("active", None)

    def test_validity(self):
        assert permission_is_valid("active", True, None, NOW)
        assert permission_is_valid("active", False, "2026-04-01T00:00:00", NOW)
        assert not permission_is_valid("active", False, "2026-03-01T00:00:00", NOW)
        assert not permission_is_valid("pending", True, None, NOW)
