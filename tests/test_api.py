"""API tests using FastAPI's TestClient against the in-memory database."""
import pytest
from fastapi.testclient import TestClient

from trackwise_core.api.main import app
from trackwise_core.database import get_db


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def headers(user):
    return {"X-User-Id": str(user.id)}


@pytest.fixture
def project_id(client, headers):
    response = client.post("/api/v1/projects/", json={"key": "api", "name": "API Project"}, headers=headers)
    assert response.status_code == 201
    return response.json()["id"]


def create_item(client, headers, project_id, type_, parent_id=None, **fields):
    body = {"title": f"{type_} item", "type": type_, "project_id": project_id, "parent_id": parent_id}
    body.update(fields)
    response = client.post("/api/v1/work-items/", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestServerInfo:
    """Test informational endpoints."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_root(self, client):
        assert client.get("/").json()["name"] == "Trackwise Core API"


class TestAuthentication:
    """Test the acting-user header."""

    def test_missing_header(self, client, user):
        response = client.post("/api/v1/projects/", json={"key": "NOPE", "name": "No"})
        assert response.status_code == 401

    def test_unknown_user(self, client, user):
        response = client.post("/api/v1/projects/", json={"key": "NOPE", "name": "No"}, headers={"X-User-Id": "999"})
        assert response.status_code == 401

    def test_reads_need_no_header(self, client, project_id):
        assert client.get(f"/api/v1/projects/{project_id}").status_code == 200


class TestWorkItemEndpoints:
    """Test the work item endpoints end to end."""

    def test_create_and_fetch_by_external_id(self, client, headers, project_id):
        created = create_item(client, headers, project_id, "EPIC")
        assert created["external_id"] == "API-1"

        response = client.get("/api/v1/work-items/api-1")
        assert response.status_code == 200
        body = response.json()
        assert body["id"] == created["id"]
        assert body["children"] is None

    def test_hierarchy_error_payload(self, client, headers, project_id):
        story = create_item(client, headers, project_id, "STORY")
        response = client.post(
            "/api/v1/work-items/",
            json={"title": "Bad", "type": "EPIC", "project_id": project_id, "parent_id": story["id"]},
            headers=headers,
        )
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_hierarchy"

    def test_update_records_history(self, client, headers, project_id):
        story = create_item(client, headers, project_id, "STORY")

        response = client.patch(f"/api/v1/work-items/{story['id']}", json={"status": "DONE"}, headers=headers)
        assert response.status_code == 200
        assert response.json()["completed_at"] is not None

        history = client.get(f"/api/v1/work-items/{story['external_id']}/history").json()
        assert [(h["field"], h["old_value"], h["new_value"]) for h in history] == [("status", "TODO", "DONE")]

        transitions = client.get(f"/api/v1/work-items/{story['id']}/transitions").json()
        assert transitions["current_status"] == "DONE"
        assert set(transitions["allowed_transitions"]) == {"TODO", "IN_PROGRESS"}

    def test_update_rejects_unknown_fields(self, client, headers, project_id):
        epic = create_item(client, headers, project_id, "EPIC")
        response = client.patch(f"/api/v1/work-items/{epic['id']}", json={"project_id": 5}, headers=headers)
        assert response.status_code == 422

    def test_move_cycle_payload(self, client, headers, project_id):
        epic = create_item(client, headers, project_id, "EPIC")
        feature = create_item(client, headers, project_id, "FEATURE", parent_id=epic["id"])
        story = create_item(client, headers, project_id, "STORY", parent_id=feature["id"])
        task = create_item(client, headers, project_id, "TASK", parent_id=story["id"])

        response = client.post(
            f"/api/v1/work-items/{story['external_id']}/move", json={"parent_id": task["id"]}, headers=headers
        )
        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "cycle_detected"
        assert body["path"][0] == story["id"]

        expanded = client.get(f"/api/v1/work-items/{story['id']}?expand=children,history").json()
        assert [c["id"] for c in expanded["children"]] == [task["id"]]
        assert expanded["history"] == []

    def test_delete_detaches_children(self, client, headers, project_id):
        story = create_item(client, headers, project_id, "STORY")
        task = create_item(client, headers, project_id, "TASK", parent_id=story["id"])

        assert client.delete(f"/api/v1/work-items/{story['id']}", headers=headers).status_code == 204
        assert client.get(f"/api/v1/work-items/{story['id']}").status_code == 404
        assert client.get(f"/api/v1/work-items/{task['id']}").json()["parent_id"] is None

    def test_list_pagination(self, client, headers, project_id):
        for _ in range(3):
            create_item(client, headers, project_id, "EPIC")
        body = client.get(f"/api/v1/work-items/?project_id={project_id}&page=1&page_size=2").json()
        assert body["total"] == 3
        assert body["total_pages"] == 2
        assert [i["external_id"] for i in body["items"]] == ["API-3", "API-2"]

    def test_unknown_expansion(self, client, headers, project_id):
        epic = create_item(client, headers, project_id, "EPIC")
        response = client.get(f"/api/v1/work-items/{epic['id']}?expand=owners")
        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_comments_and_attachments(self, client, headers, project_id):
        epic = create_item(client, headers, project_id, "EPIC")

        response = client.post(f"/api/v1/work-items/{epic['id']}/comments", json={"content": "Hi"}, headers=headers)
        assert response.status_code == 201
        comment_id = response.json()["id"]

        response = client.post(
            f"/api/v1/work-items/{epic['id']}/attachments",
            json={"file_name": "a.png", "file_size": 5, "file_type": "image/png", "file_path": "/a.png"},
            headers=headers,
        )
        assert response.status_code == 201

        expanded = client.get(f"/api/v1/work-items/{epic['id']}?expand=comments,attachments").json()
        assert [c["content"] for c in expanded["comments"]] == ["Hi"]
        assert [a["file_name"] for a in expanded["attachments"]] == ["a.png"]

        assert client.delete(f"/api/v1/work-items/comments/{comment_id}", headers=headers).status_code == 204
        assert client.get(f"/api/v1/work-items/{epic['id']}/comments").json() == []


class TestProjectEndpoints:
    """Test project endpoints."""

    def test_duplicate_key_conflict(self, client, headers, project_id):
        response = client.post("/api/v1/projects/", json={"key": "API", "name": "Again"}, headers=headers)
        assert response.status_code == 409
        assert response.json()["error"] == "duplicate_identifier"

    def test_get_by_key_and_list(self, client, project_id):
        assert client.get("/api/v1/projects/by-key/api").json()["id"] == project_id
        body = client.get("/api/v1/projects/").json()
        assert body["total"] == 1
        assert body["items"][0]["key"] == "API"

    def test_missing_project(self, client):
        assert client.get("/api/v1/projects/999").status_code == 404
