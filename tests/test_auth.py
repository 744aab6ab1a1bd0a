"""Tests for auth.py: register, login, lockout, bearer tokens, profile and progress."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

PASSWORD = "testpass123"

REGISTER = {
    "name": "New Aspirant",
    "email": "New@Test.com",
    "password": "secret1",
    "examTypes": ["UPSC", "SSC"],
    "examDate": "2027-05-28",
}


def _post(client, url, payload):
    return client.post(url, json=payload)


class TestRegister:
    def test_register_success(self, client):
        resp = _post(client, "/api/auth/register", REGISTER)
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["success"] is True
        assert body["message"] == "Registration successful"
        user = body["data"]["user"]
        assert user["email"] == "new@test.com"
        assert user["examTypes"] == ["UPSC", "SSC"]
        assert user["studyPreferences"]["dailyStudyHours"] == 6
        assert user["notifications"]["email"] is True
        assert "password" not in user and "passwordHash" not in user
        assert body["data"]["token"]

    def test_register_duplicate_email(self, client):
        _post(client, "/api/auth/register", REGISTER)
        resp = _post(client, "/api/auth/register", REGISTER)
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "User already exists with this email"

    def test_register_collects_validation_errors(self, client):
        resp = _post(client, "/api/auth/register", {"email": "bad-email", "password": "123"})
        assert resp.status_code == 400
        message = resp.get_json()["message"]
        assert "Please provide a valid email" in message
        assert "Password must be at least 6 characters" in message
        assert "Please provide a name" in message
        assert "Please select at least one exam type" in message

    def test_register_rejects_unknown_exam_type(self, client):
        resp = _post(client, "/api/auth/register", {**REGISTER, "examTypes": ["GRE"]})
        assert resp.status_code == 400

    def test_registered_token_authenticates(self, client):
        token = _post(client, "/api/auth/register", REGISTER).get_json()["data"]["token"]
        resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.get_json()["data"]["user"]["name"] == "New Aspirant"


class TestLogin:
    def test_login_success(self, client):
        resp = _post(client, "/api/auth/login", {"email": "test@example.com", "password": PASSWORD})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["message"] == "Login successful"
        assert body["data"]["user"]["id"] == 1
        assert body["data"]["token"]

    def test_login_missing_fields(self, client):
        resp = _post(client, "/api/auth/login", {"email": "test@example.com"})
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Please provide email and password"

    def test_login_wrong_password(self, client):
        resp = _post(client, "/api/auth/login", {"email": "test@example.com", "password": "wrong"})
        assert resp.status_code == 401
        assert resp.get_json()["message"] == "Invalid credentials"

    def test_login_unknown_email(self, client):
        resp = _post(client, "/api/auth/login", {"email": "nobody@example.com", "password": "x"})
        assert resp.status_code == 401
        assert resp.get_json()["message"] == "Invalid credentials"

    def test_lockout_after_five_failures(self, client, db):
        for _ in range(5):
            _post(client, "/api/auth/login", {"email": "test@example.com", "password": "wrong"})
        resp = _post(client, "/api/auth/login", {"email": "test@example.com", "password": PASSWORD})
        assert resp.status_code == 401
        assert "Account temporarily locked" in resp.get_json()["message"]
        row = db.execute("SELECT login_attempts, locked_until FROM users WHERE id = 1").fetchone()
        assert row["login_attempts"] == 5
        assert row["locked_until"]

    def test_expired_lock_allows_login_and_resets(self, client, db):
        past = (datetime.now() - timedelta(minutes=1)).isoformat()
        db.execute("UPDATE users SET login_attempts = 5, locked_until = ? WHERE id = 1", (past,))
        db.commit()
        resp = _post(client, "/api/auth/login", {"email": "test@example.com", "password": PASSWORD})
        assert resp.status_code == 200
        row = db.execute("SELECT login_attempts, locked_until FROM users WHERE id = 1").fetchone()
        assert row["login_attempts"] == 0
        assert row["locked_until"] == ""

    def test_login_writes_audit_entry(self, client, db):
        _post(client, "/api/auth/login", {"email": "test@example.com", "password": PASSWORD})
        row = db.execute("SELECT * FROM audit_log WHERE action = 'login_success'").fetchone()
        assert row is not None
        assert row["user_id"] == 1


class TestBearerTokens:
    def test_missing_token(self, client):
        resp = client.get("/api/auth/me")
        assert resp.status_code == 401
        assert resp.get_json() == {"success": False, "message": "Not authorized, no token"}

    def test_garbage_token(self, client):
        resp = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401
        assert resp.get_json()["message"] == "Invalid token"

    def test_wrong_signature(self, client):
        token = jwt.encode({"id": 1}, "some-other-secret", algorithm="HS256")
        resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.get_json()["message"] == "Invalid token"

    def test_expired_token(self, app, client):
        past = datetime.now(timezone.utc) - timedelta(days=1)
        token = jwt.encode({"id": 1, "iat": past - timedelta(days=1), "exp": past},
                           app.config["JWT_SECRET"], algorithm="HS256")
        resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.get_json()["message"] == "Token expired"

    def test_token_for_deleted_user(self, app, client):
        token = jwt.encode({"id": 999}, app.config["JWT_SECRET"], algorithm="HS256")
        resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.get_json()["message"] == "Not authorized, user not found"

    def test_token_for_inactive_user(self, client, auth_client, db):
        db.execute("UPDATE users SET is_active = 0 WHERE id = 1")
        db.commit()
        resp = auth_client.get("/api/auth/me")
        assert resp.status_code == 401
        assert resp.get_json()["message"] == "Not authorized, user not found"

    @pytest.mark.parametrize("value,expected", [
        ("30d", timedelta(days=30)),
        ("12h", timedelta(hours=12)),
        ("45m", timedelta(minutes=45)),
        ("90", timedelta(seconds=90)),
        ("soon", timedelta(days=30)),
    ])
    def test_parse_duration(self, value, expected):
        from auth import parse_duration
        assert parse_duration(value) == expected


class TestProfile:
    def test_me_returns_full_user(self, auth_client):
        resp = auth_client.get("/api/auth/me")
        user = resp.get_json()["data"]["user"]
        assert user["email"] == "test@example.com"
        assert user["isActive"] is True
        assert "createdAt" in user

    def test_update_profile_merges_nested(self, auth_client):
        resp = auth_client.put("/api/auth/profile", json={
            "name": "Renamed",
            "studyPreferences": {"dailyStudyHours": 8},
            "notifications": {"weeklyReport": False},
        })
        assert resp.status_code == 200
        user = resp.get_json()["data"]["user"]
        assert user["name"] == "Renamed"
        assert user["studyPreferences"]["dailyStudyHours"] == 8
        assert user["studyPreferences"]["breakDuration"] == 15
        assert user["notifications"]["weeklyReport"] is False
        assert user["notifications"]["email"] is True
        assert user["examTypes"] == ["UPSC"]

    def test_update_profile_validates_hours(self, auth_client):
        resp = auth_client.put("/api/auth/profile", json={"studyPreferences": {"dailyStudyHours": 20}})
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Daily study hours must be between 1 and 16"


class TestPassword:
    def test_change_password(self, auth_client, client):
        resp = auth_client.put("/api/auth/password", json={
            "currentPassword": PASSWORD, "newPassword": "brandnew1",
        })
        assert resp.status_code == 200
        assert resp.get_json()["data"]["token"]
        login = _post(client, "/api/auth/login", {"email": "test@example.com", "password": "brandnew1"})
        assert login.status_code == 200

    def test_change_password_wrong_current(self, auth_client):
        resp = auth_client.put("/api/auth/password", json={
            "currentPassword": "nope", "newPassword": "brandnew1",
        })
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Current password is incorrect"

    def test_change_password_missing(self, auth_client):
        resp = auth_client.put("/api/auth/password", json={"currentPassword": PASSWORD})
        assert resp.status_code == 400

    def test_change_password_too_short(self, auth_client):
        resp = auth_client.put("/api/auth/password", json={
            "currentPassword": PASSWORD, "newPassword": "abc",
        })
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Password must be at least 6 characters"


class TestProgress:
    def test_add_study_hours(self, auth_client):
        resp = auth_client.put("/api/auth/progress", json={"action": "addStudyHours", "value": 2.5})
        stats = resp.get_json()["data"]["progressStats"]
        assert stats["totalStudyHours"] == 2.5
        assert stats["lastStudyDate"]

    def test_streak_tracks_longest(self, auth_client):
        auth_client.put("/api/auth/progress", json={"action": "updateStreak", "value": 7})
        auth_client.put("/api/auth/progress", json={"action": "updateStreak", "value": 3})
        stats = auth_client.put("/api/auth/progress", json={"action": "resetStreak"}).get_json()["data"]["progressStats"]
        assert stats["currentStreak"] == 0
        assert stats["longestStreak"] == 7

    def test_complete_goal_defaults_to_one(self, auth_client):
        resp = auth_client.put("/api/auth/progress", json={"action": "completeGoal"})
        assert resp.get_json()["data"]["progressStats"]["totalGoalsCompleted"] == 1

    def test_invalid_action(self, auth_client):
        resp = auth_client.put("/api/auth/progress", json={"action": "levelUp"})
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Invalid action"
