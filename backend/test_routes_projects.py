"""
backend/test_routes_projects.py

Integration tests for the project/comment HTTP API.

Tests:
1. Endpoints require a bearer token
2. Create / list / fetch / save / delete with owner-or-admin enforcement
3. Comments: add (blank rejected), list with unread count, delete, acknowledge
4. Store failures map to 500 without leaking details

Run:
    pytest backend/test_routes_projects.py -v
"""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from backend.auth_context import create_access_token
from backend.main import app
from backend.store import DocumentStore, StoreError, get_store


@pytest.fixture
def store():
    return DocumentStore("sqlite://")


@pytest.fixture
def client(store):
    store.set_record("users/boss", {"role": "admin", "email": "boss@example.com"})
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth(uid: str, email: str = "") -> dict:
    return {"Authorization": f"Bearer {create_access_token(uid, email or f'{uid}@example.com')}"}


OWNER = auth("owner")
STRANGER = auth("stranger")
ADMIN = auth("boss")


def create(client, headers=OWNER, **overrides) -> dict:
    body = {
        "title": "Spring campaign",
        "planning": {"name": "Kim", "effort": "1.5"},
        "design": {"name": "Park", "effort": 2},
        "development": {"name": "Lee", "effort": "10"},
    }
    body.update(overrides)
    response = client.post("/api/projects", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestAuth:
    def test_requires_token(self, client):
        response = client.get("/api/projects")
        assert response.status_code in [401, 403]

    def test_invalid_token(self, client):
        response = client.get("/api/projects", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_expired_token(self, client):
        token = create_access_token("owner", minutes=-5)
        response = client.get("/api/projects", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Token expired"

    def test_capabilities(self, client):
        assert client.get("/auth/capabilities", headers=ADMIN).json()["is_admin"] is True
        data = client.get("/auth/capabilities", headers=OWNER).json()
        assert data["uid"] == "owner"
        assert data["is_admin"] is False

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}


class TestProjects:
    def test_create_defaults_and_total(self, client):
        project = create(client)
        assert project["owner_id"] == "owner"
        assert project["status"] == "InProgress"
        assert project["total_effort"] == 3.5
        assert project["development"]["effort"] == 10.0
        assert project["created_at"]

    def test_blank_title_rejected(self, client):
        response = client.post("/api/projects", json={"title": "   "}, headers=OWNER)
        assert response.status_code == 422

    def test_overflowing_progress_clamps(self, client):
        project = create(client, progress="1e999")
        assert project["progress"] == 100

    def test_non_numeric_progress_rejected(self, client):
        response = client.post("/api/projects", json={"title": "X", "progress": "nan"}, headers=OWNER)
        assert response.status_code == 422

    def test_invalid_effort_rejected(self, client):
        response = client.post(
            "/api/projects",
            json={"title": "X", "planning": {"effort": "lots"}},
            headers=OWNER,
        )
        assert response.status_code == 400

    def test_list_is_scoped_to_viewer(self, client):
        create(client, title="Mine")
        create(client, headers=STRANGER, title="Theirs")

        data = client.get("/api/projects", headers=OWNER).json()
        assert [p["title"] for p in data["items"]] == ["Mine"]
        assert data["total"] == 1

    def test_only_admin_lists_other_owner(self, client):
        create(client, title="Mine")
        assert client.get("/api/projects?owner_id=owner", headers=STRANGER).status_code == 403
        data = client.get("/api/projects?owner_id=owner", headers=ADMIN).json()
        assert [p["title"] for p in data["items"]] == ["Mine"]

    def test_fetch_and_not_found(self, client):
        project = create(client)
        response = client.get(f"/api/projects/owner/{project['id']}", headers=STRANGER)
        assert response.status_code == 200
        assert response.json()["title"] == "Spring campaign"
        assert client.get("/api/projects/owner/missing", headers=OWNER).status_code == 404

    def test_owner_saves_draft(self, client):
        project = create(client)
        response = client.put(
            f"/api/projects/owner/{project['id']}",
            json={
                "title": "Spring campaign (final)",
                "status": "Closed",
                "progress": 130,
                "channel": "TF Team",
                "planning": {"name": "Kim", "effort": ""},
                "design": {"name": "Park", "effort": "0"},
                "publishing": {"name": "Choi", "effort": "2.345"},
                "links": {"plan_link": "https://example.com/plan"},
            },
            headers=OWNER,
        )
        assert response.status_code == 200, response.text
        data = response.json()
        assert data["status"] == "Closed"
        assert data["progress"] == 100
        assert data["total_effort"] == 2.35
        assert data["planning"]["effort"] is None
        assert data["design"]["effort"] == 0.0
        assert data["links"]["plan_link"] == "https://example.com/plan"
        assert data["created_at"] == project["created_at"]
        assert data["updated_at"]

    def test_stranger_cannot_save(self, client):
        project = create(client)
        response = client.put(f"/api/projects/owner/{project['id']}", json={"title": "Hijack"}, headers=STRANGER)
        assert response.status_code == 403

    def test_admin_can_save(self, client):
        project = create(client)
        response = client.put(f"/api/projects/owner/{project['id']}", json={"title": "Fixed"}, headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["title"] == "Fixed"

    def test_save_missing_project(self, client):
        response = client.put("/api/projects/owner/missing", json={"title": "X"}, headers=OWNER)
        assert response.status_code == 404

    def test_delete_enforcement(self, client):
        project = create(client)
        url = f"/api/projects/owner/{project['id']}"
        assert client.delete(url, headers=STRANGER).status_code == 403
        assert client.delete(url, headers=OWNER).status_code == 204
        assert client.get(url, headers=OWNER).status_code == 404
        assert client.delete(url, headers=OWNER).status_code == 404

    def test_store_failure_is_500(self, client, store):
        with patch.object(store, "query_ordered", side_effect=StoreError("boom")):
            response = client.get("/api/projects", headers=OWNER)
        assert response.status_code == 500
        assert response.json()["detail"] == "Database error"


class TestComments:
    def test_add_and_list(self, client):
        project = create(client)
        url = f"/api/projects/owner/{project['id']}/comments"

        response = client.post(url, json={"content": "Looks good"}, headers=STRANGER)
        assert response.status_code == 201
        comment = response.json()
        assert comment["author_id"] == "stranger"
        assert comment["admin_check"] is False

        data = client.get(url, headers=OWNER).json()
        assert [c["content"] for c in data["items"]] == ["Looks good"]
        assert data["unread"] == 1

    def test_blank_comment_rejected(self, client, store):
        project = create(client)
        url = f"/api/projects/owner/{project['id']}/comments"
        assert client.post(url, json={"content": "   "}, headers=OWNER).status_code == 422
        assert client.get(url, headers=OWNER).json()["items"] == []

    def test_comment_on_missing_project(self, client):
        response = client.post("/api/projects/owner/missing/comments", json={"content": "hi"}, headers=OWNER)
        assert response.status_code == 404

    def test_delete_author_or_admin_only(self, client):
        project = create(client)
        url = f"/api/projects/owner/{project['id']}/comments"
        first = client.post(url, json={"content": "one"}, headers=OWNER).json()
        second = client.post(url, json={"content": "two"}, headers=OWNER).json()

        assert client.delete(f"{url}/{first['id']}", headers=STRANGER).status_code == 403
        assert client.delete(f"{url}/{first['id']}", headers=OWNER).status_code == 204
        assert client.delete(f"{url}/{second['id']}", headers=ADMIN).status_code == 204
        assert client.delete(f"{url}/{second['id']}", headers=ADMIN).status_code == 404
        assert client.get(url, headers=OWNER).json()["items"] == []

    def test_acknowledge(self, client):
        project = create(client)
        url = f"/api/projects/owner/{project['id']}/comments"
        comment = client.post(url, json={"content": "please review"}, headers=OWNER).json()
        ack_url = f"{url}/{comment['id']}/acknowledge"

        assert client.post(ack_url, headers=OWNER).status_code == 403

        first = client.post(ack_url, headers=ADMIN)
        assert first.status_code == 200
        assert first.json()["admin_check"] is True

        again = client.post(ack_url, headers=ADMIN)
        assert again.status_code == 200
        assert again.json()["admin_check"] is True
        assert client.get(url, headers=ADMIN).json()["unread"] == 0

        assert client.post(f"{url}/missing/acknowledge", headers=ADMIN).status_code == 404
