"""HTTP surface: status codes, error mapping and an end-to-end tagging flow."""

import pytest
from fastapi.testclient import TestClient

from streetwatch import main


@pytest.fixture
def client(engine, monkeypatch):
    monkeypatch.setattr(main, "get_engine", lambda: engine)
    return TestClient(main.app)


def _as(user_id):
    return {"X-User-Id": user_id}


def _approval_for(body, user_id, role):
    return next(a for a in body["approvals"] if a["approver_id"] == user_id and a["approval_type"] == role)


class TestHealth:
    def test_healthz(self, client):
        assert client.get("/healthz").json() == {"status": "ok"}

    def test_readyz(self, client):
        assert client.get("/readyz").json() == {"status": "ready", "db": "ok"}

    def test_workflow_states(self, client):
        states = client.get("/workflow/states").json()["states"]
        assert states["tag_request"] == ["pending", "approved", "denied"]


class TestContentFlow:
    def test_tag_approve_publish(self, client, users):
        created = client.post(
            "/content",
            json={"kind": "film", "title": "Night Session", "tags": {"roles": {"rider": [users["alice"], users["bob"]]}}},
            headers=_as(users["owner"]),
        )
        assert created.status_code == 201
        film = created.json()
        assert film["published"] is False
        assert {(p["user_id"], p["role"]) for p in film["participants"]} == {(users["alice"], "rider"), (users["bob"], "rider")}

        # Hidden from strangers while approvals are pending.
        assert client.get(f"/content/{film['id']}").status_code == 404
        assert client.get(f"/content/{film['id']}", headers=_as(users["carol"])).status_code == 404
        assert client.get(f"/content/{film['id']}", headers=_as(users["alice"])).status_code == 200

        pending = client.get("/approvals", params={"status": "pending"}, headers=_as(users["alice"])).json()
        assert [a["content_id"] for a in pending] == [film["id"]]

        for name in ("alice", "bob"):
            approval = _approval_for(film, users[name], "rider")
            r = client.post(f"/approvals/{approval['id']}/approve", headers=_as(users[name]))
            assert r.status_code == 200
            assert r.json()["status"] == "approved"

        public = client.get(f"/content/{film['id']}")
        assert public.status_code == 200
        assert public.json()["published"] is True
        assert client.get("/content").json()["total"] == 1

        inbox = client.get("/notifications", headers=_as(users["owner"])).json()
        assert sorted(n["action"] for n in inbox) == ["content_published", "tag_approved", "tag_approved"]
        counts = client.get("/notifications/counts", headers=_as(users["owner"])).json()
        assert counts["unread_notifications_count"] == 3

        assert client.post("/notifications/mark-as-read", headers=_as(users["owner"])).json() == {"marked": 3}
        assert client.get("/notifications/counts", headers=_as(users["owner"])).json()["total_activity_count"] == 0

    def test_edit_tags(self, client, users):
        film = client.post(
            "/content",
            json={"kind": "film", "title": "Edit", "tags": {"editor_user_id": users["alice"]}},
            headers=_as(users["owner"]),
        ).json()

        r = client.patch(
            f"/content/{film['id']}",
            json={"title": "Edit v2", "tags": {"editor_user_id": None, "roles": {"filmer": [users["bob"]]}}},
            headers=_as(users["owner"]),
        )

        assert r.status_code == 200
        body = r.json()
        assert body["title"] == "Edit v2"
        assert [(a["approver_id"], a["approval_type"]) for a in body["approvals"]] == [(users["bob"], "filmer")]

    def test_reconcile_endpoint(self, client, users):
        film = client.post("/content", json={"kind": "photo", "title": "Still"}, headers=_as(users["owner"])).json()

        r = client.post(f"/content/{film['id']}/reconcile", headers=_as(users["owner"]))

        assert r.status_code == 200
        assert r.json() == {"content_id": film["id"], "created": [], "deleted": [], "conflicts": 0, "ok": True}

    def test_reject_with_and_without_body(self, client, users):
        film = client.post(
            "/content",
            json={"kind": "film", "title": "Credits", "tags": {"roles": {"rider": [users["alice"]]}, "company_user_id": users["bob"]}},
            headers=_as(users["owner"]),
        ).json()

        rider = _approval_for(film, users["alice"], "rider")
        company = _approval_for(film, users["bob"], "company")

        r = client.post(f"/approvals/{rider['id']}/reject", json={"rejection_reason": "wrong credit"}, headers=_as(users["alice"]))
        assert r.json()["rejection_reason"] == "wrong credit"

        r = client.post(f"/approvals/{company['id']}/reject", headers=_as(users["bob"]))
        assert r.json()["rejection_reason"] == "No reason provided"

        r = client.post(f"/approvals/{rider['id']}/reset", headers=_as(users["alice"]))
        assert r.json()["status"] == "pending"
        assert r.json()["rejection_reason"] is None


class TestTagRequestFlow:
    def test_request_and_approve(self, client, users):
        film = client.post("/content", json={"kind": "film", "title": "Open"}, headers=_as(users["owner"])).json()

        r = client.post(
            f"/content/{film['id']}/tag-requests",
            json={"role": "filmer", "message": "that was me"},
            headers=_as(users["alice"]),
        )
        assert r.status_code == 201
        request = r.json()

        listed = client.get(f"/content/{film['id']}/tag-requests", headers=_as(users["owner"])).json()
        assert [t["id"] for t in listed] == [request["id"]]

        r = client.post(f"/tag-requests/{request['id']}/approve", headers=_as(users["owner"]))
        assert r.json()["status"] == "approved"

        body = client.get(f"/content/{film['id']}").json()
        assert _approval_for(body, users["alice"], "filmer")["status"] == "approved"
        assert body["published"] is True

        actions = [n["action"] for n in client.get("/notifications", headers=_as(users["alice"])).json()]
        assert "tag_request_approved" in actions


class TestErrors:
    def test_missing_or_unknown_actor(self, client, users):
        assert client.post("/content", json={"kind": "film", "title": "x"}).status_code == 401
        assert client.post("/content", json={"kind": "film", "title": "x"}, headers=_as("nobody")).status_code == 401
        assert client.get("/content", headers=_as("nobody")).status_code == 401

    def test_not_found(self, client, users):
        r = client.post("/approvals/missing/approve", headers=_as(users["alice"]))

        assert r.status_code == 404
        assert r.json()["detail"]["error"] == "not_found"

    def test_forbidden(self, client, users):
        film = client.post(
            "/content",
            json={"kind": "film", "title": "Mine", "tags": {"roles": {"rider": [users["alice"]]}}},
            headers=_as(users["owner"]),
        ).json()
        approval = _approval_for(film, users["alice"], "rider")

        assert client.post(f"/approvals/{approval['id']}/approve", headers=_as(users["bob"])).status_code == 403
        assert client.patch(f"/content/{film['id']}", json={"title": "Theirs"}, headers=_as(users["alice"])).status_code == 403

    def test_conflicts(self, client, users):
        film = client.post(
            "/content",
            json={"kind": "film", "title": "Crowded", "tags": {"roles": {"rider": [users["alice"]]}}},
            headers=_as(users["owner"]),
        ).json()

        r = client.post(f"/content/{film['id']}/tag-requests", json={"role": "rider"}, headers=_as(users["alice"]))
        assert r.status_code == 409
        assert r.json()["detail"]["error"] == "duplicate_tag"

        request = client.post(f"/content/{film['id']}/tag-requests", json={"role": "filmer"}, headers=_as(users["bob"])).json()
        client.post(f"/tag-requests/{request['id']}/deny", headers=_as(users["owner"]))
        r = client.post(f"/tag-requests/{request['id']}/approve", headers=_as(users["owner"]))
        assert r.status_code == 409
        assert r.json()["detail"]["error"] == "invalid_transition"

    def test_invalid_role(self, client, users):
        photo = client.post("/content", json={"kind": "photo", "title": "Still"}, headers=_as(users["owner"])).json()

        r = client.post(f"/content/{photo['id']}/tag-requests", json={"role": "editor"}, headers=_as(users["alice"]))
        assert r.status_code == 422
        assert r.json()["detail"]["error"] == "invalid_role"

        r = client.post(
            "/content",
            json={"kind": "photo", "title": "Bad", "tags": {"editor_user_id": users["alice"]}},
            headers=_as(users["owner"]),
        )
        assert r.status_code == 422
