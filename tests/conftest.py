"""Pytest configuration and fixtures for CodeSensei tests."""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest

from codesensei.config import ConfigStore
from codesensei.projects import ProjectStore
from codesensei.session_client import SessionClient

AGENT_URL = "http://agent.test"


class FakeAgentServer:
    """In-memory stand-in for the OpenCode server, served via httpx.MockTransport."""

    def __init__(self) -> None:
        self.sessions: dict[str, list[dict]] = {}
        self.requests: list[httpx.Request] = []
        self.deleted: list[str] = []
        self.pending: list[str] = []
        self.failures: dict[str, tuple[int, str]] = {}
        self.reply_parts: list[dict] = [{"type": "text", "text": "# Requirements\n\n- Login page"}]
        self.version = "0.9.1"
        self._counter = 0

    def fail(self, route: str, status_code: int, body: str) -> None:
        """Make a route answer with an error status."""
        self.failures[route] = (status_code, body)

    def complete_pending(self) -> None:
        """Finish every prompt submitted through prompt_async."""
        for session_id in self.pending:
            self.sessions[session_id].append(self._message("assistant", self.reply_parts))
        self.pending.clear()

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def client(self, password: str | None = "secret") -> SessionClient:
        return SessionClient(f"{AGENT_URL}/", "opencode", password, transport=self.transport())

    def _message(self, role: str, parts: list[dict]) -> dict:
        self._counter += 1
        return {
            "info": {"id": f"msg_{self._counter}", "role": role, "created": 1700000000 + self._counter},
            "parts": parts,
        }

    def _route(self, request: httpx.Request) -> str:
        path = request.url.path
        segments = path.strip("/").split("/")
        if path == "/global/health":
            return "health"
        if path == "/provider":
            return "provider"
        if path == "/config/providers":
            return "config_providers"
        if path == "/session" and request.method == "POST":
            return "create_session"
        if len(segments) == 3 and segments[2] == "message":
            return "message" if request.method == "POST" else "messages"
        if len(segments) == 3 and segments[2] == "prompt_async":
            return "prompt_async"
        if len(segments) == 2 and request.method == "DELETE":
            return "delete"
        return "unknown"

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self._route(request)

        if route in self.failures:
            status_code, body = self.failures[route]
            return httpx.Response(status_code, text=body)

        if route == "health":
            return httpx.Response(200, json={"healthy": True, "version": self.version})

        if route == "provider":
            return httpx.Response(200, json={
                "all": [{"id": "anthropic", "name": "Anthropic", "models": ["claude-a", "claude-b"]}],
                "default": {"anthropic": "claude-a"},
            })

        if route == "config_providers":
            return httpx.Response(200, json={
                "providers": [
                    {"id": "openai", "name": "OpenAI", "models": {"gpt-4o": {"name": "GPT-4o"}}},
                ],
            })

        if route == "create_session":
            body = json.loads(request.content)
            self._counter += 1
            session_id = f"ses_{self._counter}"
            self.sessions[session_id] = []
            return httpx.Response(200, json={
                "id": session_id,
                "title": body["title"],
                "created_at": "2024-01-01T00:00:00Z",
                "providerId": body.get("providerId"),
                "modelId": body.get("modelId"),
            })

        session_id = request.url.path.strip("/").split("/")[1] if route != "unknown" else ""
        if route in ("message", "prompt_async", "messages", "delete") and session_id not in self.sessions:
            return httpx.Response(404, text=f"session not found: {session_id}")

        if route == "message":
            body = json.loads(request.content)
            self.sessions[session_id].append(self._message("user", body["parts"]))
            reply = self._message("assistant", self.reply_parts)
            self.sessions[session_id].append(reply)
            return httpx.Response(200, json=reply)

        if route == "prompt_async":
            body = json.loads(request.content)
            self.sessions[session_id].append(self._message("user", body["parts"]))
            self.pending.append(session_id)
            return httpx.Response(204)

        if route == "messages":
            messages = self.sessions[session_id]
            limit = request.url.params.get("limit")
            if limit is not None:
                messages = messages[-int(limit):]
            return httpx.Response(200, json=messages)

        if route == "delete":
            del self.sessions[session_id]
            self.deleted.append(session_id)
            return httpx.Response(200, json=True)

        return httpx.Response(404, text="not found")


@pytest.fixture
def tmp_workspace(tmp_path: Path) -> Path:
    """Create a temporary workspace directory for tests."""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return workspace


@pytest.fixture
def sample_tree(tmp_workspace: Path) -> Path:
    """A small project tree with skip-set dirs, dotfiles, and binaries."""
    (tmp_workspace / "main.py").write_text("print('hello')\n")
    (tmp_workspace / "README.md").write_text("# Sample\n")
    (tmp_workspace / ".env").write_text("KEY=value\n")
    (tmp_workspace / ".gitignore").write_text("build/\n")
    (tmp_workspace / ".secret").write_text("hidden\n")
    (tmp_workspace / "app.exe").write_bytes(b"MZ\x00\x00")
    (tmp_workspace / "libfoo.so").write_bytes(b"\x7fELF")

    src = tmp_workspace / "src"
    src.mkdir()
    (src / "app.py").write_text("def run():\n    pass\n")
    (src / "util.py").write_text("X = 1\n")

    for skipped in ("node_modules", ".git", "build", "__pycache__"):
        d = tmp_workspace / skipped
        d.mkdir()
        (d / "junk.txt").write_text("junk\n")

    return tmp_workspace


@pytest.fixture
def fake_agent() -> FakeAgentServer:
    """Stateful fake agent server."""
    return FakeAgentServer()


@pytest.fixture
def config_store(tmp_path: Path) -> ConfigStore:
    """Config store backed by a temporary file."""
    return ConfigStore(config_path=tmp_path / "config" / "opencode-config.json")


@pytest.fixture
def project_store(tmp_path: Path) -> ProjectStore:
    """Project store in a temporary projects directory."""
    return ProjectStore(tmp_path / "projects")
