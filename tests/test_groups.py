"""Tests for study groups: directory, membership, activity feed and reactions."""

import pytest

GROUP = {"name": "UPSC 2027 Warriors", "examTypes": ["UPSC"], "targetDate": "2027-06-01",
         "description": "Daily accountability", "tags": ["prelims"]}


def _group(client, **overrides):
    resp = client.post("/api/groups", json={**GROUP, **overrides})
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["data"]["group"]


class TestGroupDirectory:
    def test_public_listing_needs_no_token(self, auth_client, client):
        _group(auth_client)
        _group(auth_client, name="Secret circle", privacy="private")
        body = client.get("/api/groups").get_json()["data"]
        assert [g["name"] for g in body["groups"]] == ["UPSC 2027 Warriors"]
        assert body["pagination"] == {
            "currentPage": 1, "totalPages": 1, "totalGroups": 1, "hasNext": False, "hasPrev": False,
        }

    def test_filters(self, auth_client, client):
        _group(auth_client)
        _group(auth_client, name="Bank PO prep", examTypes=["Banking"], description="", tags=[])
        by_exam = client.get("/api/groups?examType=Banking").get_json()["data"]["groups"]
        assert [g["name"] for g in by_exam] == ["Bank PO prep"]
        by_search = client.get("/api/groups?search=accountability").get_json()["data"]["groups"]
        assert [g["name"] for g in by_search] == ["UPSC 2027 Warriors"]

    def test_sort_by_members(self, auth_client, other_client, client):
        small = _group(auth_client, name="Small")
        big = _group(auth_client, name="Big")
        other_client.post(f"/api/groups/{big['id']}/join")
        groups = client.get("/api/groups?sortBy=members").get_json()["data"]["groups"]
        assert [g["id"] for g in groups] == [big["id"], small["id"]]
        newest = client.get("/api/groups?sortBy=oldest").get_json()["data"]["groups"]
        assert [g["id"] for g in newest] == [small["id"], big["id"]]

    def test_my_groups(self, auth_client, other_client):
        mine = _group(auth_client)
        _group(other_client, name="Not mine")
        groups = auth_client.get("/api/groups/my-groups").get_json()["data"]["groups"]
        assert [g["id"] for g in groups] == [mine["id"]]


class TestGroupLifecycle:
    def test_create_makes_creator_admin(self, auth_client):
        group = _group(auth_client)
        assert group["admin"]["id"] == 1
        assert group["memberCount"] == 1
        assert group["stats"]["totalMembers"] == 1
        assert group["members"][0]["role"] == "admin"
        assert group["settings"]["maxMembers"] == 50

    def test_create_requires_core_fields(self, auth_client):
        resp = auth_client.post("/api/groups", json={"name": "No exams"})
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Name, exam types, and target date are required"

    def test_create_validates(self, auth_client):
        resp = auth_client.post("/api/groups", json={**GROUP, "name": "x" * 101, "privacy": "secret",
                                                     "settings": {"maxMembers": 500}})
        assert resp.status_code == 400
        message = resp.get_json()["message"]
        assert "Group name cannot exceed 100 characters" in message
        assert "`secret` is not a valid value for privacy" in message
        assert "Max members must be between 2 and 100" in message

    def test_detail(self, auth_client, other_client):
        group = _group(auth_client)
        data = other_client.get(f"/api/groups/{group['id']}").get_json()["data"]
        assert data["group"]["name"] == GROUP["name"]
        assert data["userRole"] is None
        assert data["recentActivities"][0]["activityType"] == "member_joined"
        assert data["leaderboard"][0]["userId"] == 1

    def test_private_detail_forbidden(self, auth_client, other_client):
        group = _group(auth_client, privacy="private")
        resp = other_client.get(f"/api/groups/{group['id']}")
        assert resp.status_code == 403
        assert resp.get_json()["message"] == "Access denied to this group"

    def test_update_by_admin(self, auth_client):
        group = _group(auth_client)
        resp = auth_client.put(f"/api/groups/{group['id']}", json={
            "description": "New rules", "settings": {"requireApproval": True},
        })
        data = resp.get_json()["data"]["group"]
        assert data["description"] == "New rules"
        assert data["settings"]["requireApproval"] is True
        assert data["name"] == GROUP["name"]

    def test_update_by_member_forbidden(self, auth_client, other_client):
        group = _group(auth_client)
        other_client.post(f"/api/groups/{group['id']}/join")
        resp = other_client.put(f"/api/groups/{group['id']}", json={"name": "Hijacked"})
        assert resp.status_code == 403

    def test_delete_only_by_admin(self, auth_client, other_client, client):
        group = _group(auth_client)
        resp = other_client.delete(f"/api/groups/{group['id']}")
        assert resp.status_code == 403
        assert resp.get_json()["message"] == "Only group admin can delete the group"
        assert auth_client.delete(f"/api/groups/{group['id']}").status_code == 200
        assert auth_client.get(f"/api/groups/{group['id']}").status_code == 404
        assert client.get("/api/groups").get_json()["data"]["groups"] == []


class TestMembership:
    def test_join_and_leave(self, auth_client, other_client):
        group = _group(auth_client)
        resp = other_client.post(f"/api/groups/{group['id']}/join")
        assert resp.get_json()["message"] == "Successfully joined the study group"
        detail = other_client.get(f"/api/groups/{group['id']}").get_json()["data"]
        assert detail["userRole"] == "member"
        assert detail["group"]["stats"]["totalMembers"] == 2

        resp = other_client.post(f"/api/groups/{group['id']}/leave")
        assert resp.get_json()["message"] == "Successfully left the study group"
        detail = auth_client.get(f"/api/groups/{group['id']}").get_json()["data"]
        assert detail["group"]["stats"]["totalMembers"] == 1
        assert detail["recentActivities"][0]["activityType"] == "member_left"

    def test_rejoin_reuses_membership(self, auth_client, other_client, db):
        group = _group(auth_client)
        other_client.post(f"/api/groups/{group['id']}/join")
        other_client.post(f"/api/groups/{group['id']}/leave")
        other_client.post(f"/api/groups/{group['id']}/join")
        rows = db.execute("SELECT is_active FROM group_members WHERE group_id = ? AND user_id = 2",
                          (group["id"],)).fetchall()
        assert [r["is_active"] for r in rows] == [1]

    def test_join_twice(self, auth_client, other_client):
        group = _group(auth_client)
        other_client.post(f"/api/groups/{group['id']}/join")
        resp = other_client.post(f"/api/groups/{group['id']}/join")
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "You are already a member of this group"

    def test_join_private(self, auth_client, other_client):
        group = _group(auth_client, privacy="private")
        resp = other_client.post(f"/api/groups/{group['id']}/join")
        assert resp.status_code == 403

    def test_join_full_group(self, auth_client, other_client, db):
        group = _group(auth_client, settings={"maxMembers": 2})
        db.execute("UPDATE study_groups SET total_members = 2 WHERE id = ?", (group["id"],))
        db.commit()
        resp = other_client.post(f"/api/groups/{group['id']}/join")
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Group is at maximum capacity"

    def test_admin_cannot_leave(self, auth_client):
        group = _group(auth_client)
        resp = auth_client.post(f"/api/groups/{group['id']}/leave")
        assert resp.status_code == 400
        assert resp.get_json()["message"].startswith("Group admin cannot leave")

    def test_non_member_cannot_leave(self, auth_client, other_client):
        group = _group(auth_client)
        resp = other_client.post(f"/api/groups/{group['id']}/leave")
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "You are not a member of this group"

    def test_missing_group(self, auth_client):
        resp = auth_client.post("/api/groups/9999/join")
        assert resp.status_code == 404
        assert resp.get_json()["message"] == "Study group not found"


class TestActivityFeed:
    def test_leaderboard_points(self, auth_client, other_client):
        group = _group(auth_client)
        other_client.post(f"/api/groups/{group['id']}/join")
        body = auth_client.get(f"/api/groups/{group['id']}/leaderboard?period=month").get_json()["data"]
        assert body["period"] == "month"
        assert {e["userId"]: e["totalPoints"] for e in body["leaderboard"]} == {1: 5, 2: 5}

    def test_private_feed_forbidden(self, auth_client, other_client):
        group = _group(auth_client, privacy="private")
        resp = other_client.get(f"/api/groups/{group['id']}/activities")
        assert resp.status_code == 403

    def test_activity_stats(self, auth_client, other_client):
        group = _group(auth_client)
        other_client.post(f"/api/groups/{group['id']}/join")
        other_client.post(f"/api/groups/{group['id']}/leave")
        stats = auth_client.get(f"/api/groups/{group['id']}/activity-stats").get_json()["data"]["stats"]
        by_type = {s["activityType"]: s for s in stats}
        assert by_type["member_joined"]["count"] == 2
        assert by_type["member_left"]["totalPoints"] == 10
        mine = auth_client.get(f"/api/groups/{group['id']}/activity-stats?userId=1").get_json()["data"]["stats"]
        assert [s["activityType"] for s in mine] == ["member_joined"]

    def test_reactions_replace_and_remove(self, auth_client, other_client):
        group = _group(auth_client)
        activity_id = auth_client.get(f"/api/groups/{group['id']}/activities").get_json()["data"]["activities"][0]["id"]
        url = f"/api/groups/{group['id']}/activities/{activity_id}/reactions"
        other_client.post(url, json={"reaction": "like"})
        resp = other_client.post(url, json={"reaction": "celebrate"})
        assert resp.get_json()["message"] == "Reaction added"
        activity = resp.get_json()["data"]["activity"]
        assert activity["reactionSummary"] == {"celebrate": 1}
        assert activity["reactionCount"] == 1
        assert activity["activityScore"] == 8

        removed = other_client.delete(url).get_json()
        assert removed["message"] == "Reaction removed"
        assert removed["data"]["activity"]["reactionCount"] == 0

    def test_invalid_reaction(self, auth_client):
        group = _group(auth_client)
        activity_id = auth_client.get(f"/api/groups/{group['id']}/activities").get_json()["data"]["activities"][0]["id"]
        resp = auth_client.post(f"/api/groups/{group['id']}/activities/{activity_id}/reactions",
                                json={"reaction": "angry"})
        assert resp.status_code == 400

    @pytest.mark.parametrize("comment,status", [("Well done!", 201), ("", 400), ("x" * 501, 400)])
    def test_comments(self, auth_client, comment, status):
        group = _group(auth_client)
        activity_id = auth_client.get(f"/api/groups/{group['id']}/activities").get_json()["data"]["activities"][0]["id"]
        resp = auth_client.post(f"/api/groups/{group['id']}/activities/{activity_id}/comments",
                                json={"comment": comment})
        assert resp.status_code == status
        if status == 201:
            activity = resp.get_json()["data"]["activity"]
            assert activity["comments"][0]["comment"] == "Well done!"
            assert activity["activityScore"] == 12

    def test_unknown_activity(self, auth_client):
        group = _group(auth_client)
        resp = auth_client.post(f"/api/groups/{group['id']}/activities/9999/comments", json={"comment": "hi"})
        assert resp.status_code == 404
        assert resp.get_json()["message"] == "Activity not found"
