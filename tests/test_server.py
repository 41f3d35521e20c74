"""Tests for the HTTP backend."""

import os
import sys

import pytest
from fastapi.testclient import TestClient

from codesensei.events import EventLog
from codesensei.server import create_app
from codesensei.session_client import SessionClient


@pytest.fixture
def app(tmp_path, config_store, fake_agent):
    return create_app(
        config_store=config_store,
        projects_dir=tmp_path / "projects",
        events=EventLog(),
        client_factory=lambda config: SessionClient.from_config(config, transport=fake_agent.transport()),
    )


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def project_id(client):
    response = client.post("/projects", json={"name": "todo", "description": "A todo app"})
    return response.json()["id"]


class TestHealthEndpoint:
    """Test /health endpoint."""

    def test_health(self, client, tmp_path):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["backend"] == "healthy"
        assert data["projects_dir"] == str(tmp_path / "projects")


class TestProjectEndpoints:
    """Test project endpoints."""

    def test_create_and_list(self, client):
        created = client.post("/projects", json={"name": "todo"})

        assert created.status_code == 201
        listed = client.get("/projects").json()
        assert [p["id"] for p in listed] == [created.json()["id"]]

    def test_create_requires_name(self, client):
        assert client.post("/projects", json={"name": ""}).status_code == 422

    def test_delete(self, client, project_id):
        assert client.delete(f"/projects/{project_id}").status_code == 204
        assert client.get("/projects").json() == []

    def test_documents(self, client, project_id):
        url = f"/projects/{project_id}/documents/chat"
        assert client.get(url).json() == {"content": ""}

        assert client.put(url, json={"content": "[]"}).status_code == 204

        assert client.get(url).json() == {"content": "[]"}

    def test_requirement_document(self, client, project_id):
        response = client.get(f"/projects/{project_id}/documents/requirement")

        assert "# todo Requirements" in response.json()["content"]

    def test_unknown_document_kind(self, client, project_id):
        assert client.get(f"/projects/{project_id}/documents/notes").status_code == 422

    def test_project_not_found(self, client):
        response = client.get("/projects/nope/documents/chat")

        assert response.status_code == 404
        assert response.json()["error_code"] == "PROJECT_NOT_FOUND"


class TestSourceEndpoints:
    """Test source file endpoints."""

    def test_write_read_and_tree(self, client, project_id):
        write = client.put(
            f"/projects/{project_id}/source",
            json={"path": "app/main.py", "content": "print(1)"},
        )
        assert write.status_code == 204

        read = client.get(f"/projects/{project_id}/source", params={"path": "app/main.py"})
        assert read.json() == {"content": "print(1)"}

        tree = client.get(f"/projects/{project_id}/files").json()
        assert tree[0]["name"] == "app"
        assert tree[0]["children"][0]["relative_path"] == "app/main.py"

    def test_files_of_missing_project(self, client):
        response = client.get("/projects/nope/files")

        assert response.status_code == 200
        assert response.json() == []

    @pytest.mark.skipif(sys.platform != "linux", reason="needs a filesystem that accepts non-UTF-8 names")
    def test_files_with_undecodable_name(self, client, tmp_workspace):
        (tmp_workspace / "ok.txt").write_text("x")
        with open(os.path.join(os.fsencode(tmp_workspace), b"bad\xff.txt"), "wb") as f:
            f.write(b"x")
        created = client.post("/projects", json={"name": "legacy", "root_path": str(tmp_workspace)})

        response = client.get(f"/projects/{created.json()['id']}/files")

        assert response.status_code == 200
        assert [n["name"] for n in response.json()] == ["bad\ufffd.txt", "ok.txt"]

    def test_move_onto_existing(self, client, project_id):
        base = f"/projects/{project_id}"
        client.put(f"{base}/source", json={"path": "a/f.txt", "content": "x"})
        client.post(f"{base}/folders", json={"path": "b"})

        response = client.post(f"{base}/move", json={"source": "a", "target": "b"})

        assert response.status_code == 409
        assert client.get(f"{base}/source", params={"path": "a/f.txt"}).json() == {"content": "x"}

    def test_read_missing_file(self, client, project_id):
        response = client.get(f"/projects/{project_id}/source", params={"path": "missing.py"})

        assert response.status_code == 404

    def test_traversal_rejected(self, client, project_id):
        response = client.put(
            f"/projects/{project_id}/source",
            json={"path": "../escape.py", "content": "x"},
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_PATH"

    def test_folder_rename_move_delete(self, client, project_id):
        base = f"/projects/{project_id}"
        assert client.post(f"{base}/folders", json={"path": "pkg"}).status_code == 204
        client.put(f"{base}/source", json={"path": "a.py", "content": "x"})

        assert client.post(f"{base}/rename", json={"old_path": "a.py", "new_path": "b.py"}).status_code == 204
        assert client.post(f"{base}/move", json={"source": "b.py", "target": "pkg/b.py"}).status_code == 204
        assert client.get(f"{base}/source", params={"path": "pkg/b.py"}).json() == {"content": "x"}

        assert client.delete(f"{base}/source", params={"path": "pkg"}).status_code == 204
        assert client.get(f"{base}/files").json() == []


class TestAgentEndpoints:
    """Test agent saga endpoints."""

    def test_update_requirement(self, client, project_id):
        response = client.post(
            f"/projects/{project_id}/requirement",
            json={"user_input": "Add a login page"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["document_content"] == "# Requirements\n\n- Login page"
        document = client.get(f"/projects/{project_id}/documents/requirement").json()
        assert document["content"] == "# Requirements\n\n- Login page"

    def test_empty_user_input(self, client, project_id):
        response = client.post(f"/projects/{project_id}/requirement", json={"user_input": ""})

        assert response.status_code == 422

    def test_agent_failure(self, client, project_id, fake_agent):
        fake_agent.fail("message", 500, "model overloaded")

        response = client.post(f"/projects/{project_id}/generate", json={"user_input": "Build it"})

        assert response.status_code == 502
        data = response.json()
        assert data["error_code"] == "AGENT_TASK_FAILED"
        assert "model overloaded" in data["detail"]

    def test_saga_on_missing_project(self, client):
        response = client.post("/projects/nope/generate", json={"user_input": "Build it"})

        assert response.status_code == 404

    def test_generate_async_and_poll(self, client, project_id, fake_agent):
        response = client.post(f"/projects/{project_id}/generate/async", json={"user_input": "Build it"})
        session_id = response.json()["session_id"]
        fake_agent.complete_pending()

        messages = client.get(f"/sessions/{session_id}/messages", params={"limit": 1})

        assert messages.status_code == 200
        assert len(messages.json()) == 1
        assert messages.json()[0]["info"]["role"] == "assistant"

    def test_requirement_async(self, client, project_id, fake_agent):
        response = client.post(f"/projects/{project_id}/requirement/async", json={"user_input": "x"})

        assert response.status_code == 200
        assert response.json()["session_id"] in fake_agent.sessions

    def test_messages_of_unknown_session(self, client):
        response = client.get("/sessions/ses_missing/messages")

        assert response.status_code == 502
        assert response.json()["error_code"] == "AGENT_SERVER_ERROR"

    def test_events_recorded(self, client, project_id):
        client.post(f"/projects/{project_id}/requirement", json={"user_input": "x"})

        events = client.get("/events").json()
        names = [e["name"] for e in events]
        assert "requirement-updated" in names

        last = events[-1]["seq"]
        assert client.get("/events", params={"after": last}).json() == []


class TestConfigEndpoints:
    """Test configuration endpoints."""

    def test_get_default(self, client):
        data = client.get("/config").json()

        assert data["server_url"] == "http://localhost:4096"
        assert data["username"] == "opencode"

    def test_put(self, client, config_store):
        payload = {"server_url": "http://remote:4096", "username": "me", "password": "pw"}

        response = client.put("/config", json=payload)

        assert response.status_code == 200
        assert config_store.load().server_url == "http://remote:4096"

    def test_connection_test(self, client):
        response = client.post("/config/test", json={"server_url": "http://remote:4096", "password": "pw"})

        assert response.status_code == 200
        assert response.json()["version"] == "0.9.1"

    def test_connection_test_failure(self, client, fake_agent):
        fake_agent.fail("health", 401, "unauthorized")

        response = client.post("/config/test", json={"server_url": "http://remote:4096"})

        assert response.status_code == 502
        assert "Connection failed" in response.json()["detail"]

    def test_providers(self, client):
        providers = client.get("/providers").json()

        assert providers[0]["id"] == "openai"
