"""HTTP backend exposing projects and agent sagas to the UI shell."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from codesensei import __version__
from codesensei.config import ConfigStore, default_projects_dir
from codesensei.events import EventLog
from codesensei.projects import InvalidPathError, ProjectNotFoundError, ProjectStore
from codesensei.sagas import AgentOrchestrator, AgentTaskError, check_connection
from codesensei.schemas import (
    AgentEvent,
    AgentResponse,
    AgentTaskRequest,
    AsyncTaskResponse,
    BackendHealth,
    ConnectionTestRequest,
    ConnectionTestResponse,
    DocumentBody,
    DocumentKind,
    ErrorResponse,
    FileNode,
    FolderCreateRequest,
    Message,
    MoveRequest,
    Project,
    ProjectCreateRequest,
    Provider,
    RemoteConfig,
    RenameRequest,
    SourceFileWrite,
)
from codesensei.session_client import SessionClient, SessionClientError

logger = logging.getLogger(__name__)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


def create_app(
    config_store: ConfigStore | None = None,
    projects_dir: Path | str | None = None,
    events: EventLog | None = None,
    client_factory: Callable[[RemoteConfig], SessionClient] = SessionClient.from_config,
) -> FastAPI:
    """Build the backend application.

    Args:
        config_store: Remote configuration store (defaults to the per-user file)
        projects_dir: Directory holding the projects (defaults to the per-user dir)
        events: Event log the sagas notify (a fresh one by default)
        client_factory: Builds the agent server client from a configuration

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="CodeSensei Backend",
        description="Local projects and agent sagas for the CodeSensei desktop app",
        version=__version__,
    )

    app.state.config_store = config_store or ConfigStore()
    app.state.projects = ProjectStore(projects_dir or default_projects_dir())
    app.state.events = events or EventLog()
    app.state.client_factory = client_factory

    _register_routes(app)
    _register_error_handlers(app)
    return app


def _orchestrator(app: FastAPI) -> AgentOrchestrator:
    # Built per request so configuration changes apply immediately
    config = app.state.config_store.load()
    return AgentOrchestrator(
        projects=app.state.projects,
        client=app.state.client_factory(config),
        config=config,
        notifier=app.state.events,
    )


def _register_routes(app: FastAPI) -> None:
    projects: ProjectStore = app.state.projects

    # --- Health ---

    @app.get("/health", response_model=BackendHealth)
    async def health() -> BackendHealth:
        """Backend liveness."""
        return BackendHealth(version=__version__, projects_dir=str(projects.projects_dir))

    # --- Projects ---

    @app.get("/projects", response_model=list[Project])
    def list_projects() -> list[Project]:
        return projects.list_projects()

    @app.post("/projects", response_model=Project, status_code=201)
    def create_project(request: ProjectCreateRequest) -> Project:
        return projects.create_project(
            name=request.name,
            description=request.description,
            root_path=request.root_path,
        )

    @app.delete("/projects/{project_id}", status_code=204)
    def delete_project(project_id: str) -> None:
        projects.delete_project(project_id)

    @app.get("/projects/{project_id}/documents/{kind}", response_model=DocumentBody)
    def read_document(project_id: str, kind: DocumentKind) -> DocumentBody:
        return DocumentBody(content=projects.read_document(project_id, kind))

    @app.put("/projects/{project_id}/documents/{kind}", status_code=204)
    def write_document(project_id: str, kind: DocumentKind, body: DocumentBody) -> None:
        projects.write_document(project_id, kind, body.content)

    # --- Source Files ---

    @app.get("/projects/{project_id}/files", response_model=list[FileNode])
    def project_files(project_id: str) -> list[FileNode]:
        """Bounded tree of the project's content root."""
        return projects.list_files(project_id)

    @app.get("/projects/{project_id}/source", response_model=DocumentBody)
    def read_source(project_id: str, path: str = Query(..., min_length=1)) -> DocumentBody:
        try:
            return DocumentBody(content=projects.read_source(project_id, path))
        except FileNotFoundError:
            raise HTTPException(status_code=404, detail=f"File not found: {path}")

    @app.put("/projects/{project_id}/source", status_code=204)
    def write_source(project_id: str, request: SourceFileWrite) -> None:
        projects.write_source(project_id, request.path, request.content)

    @app.delete("/projects/{project_id}/source", status_code=204)
    def delete_source(project_id: str, path: str = Query(..., min_length=1)) -> None:
        try:
            projects.delete_entry(project_id, path)
        except FileNotFoundError:
            raise HTTPException(status_code=404, detail=f"File not found: {path}")

    @app.post("/projects/{project_id}/folders", status_code=204)
    def create_folder(project_id: str, request: FolderCreateRequest) -> None:
        projects.create_folder(project_id, request.path)

    @app.post("/projects/{project_id}/rename", status_code=204)
    def rename_entry(project_id: str, request: RenameRequest) -> None:
        projects.rename_entry(project_id, request.old_path, request.new_path)

    @app.post("/projects/{project_id}/move", status_code=204)
    def move_entry(project_id: str, request: MoveRequest) -> None:
        try:
            projects.move_entry(project_id, request.source, request.target)
        except FileExistsError as e:
            raise HTTPException(status_code=409, detail=str(e))

    # --- Agent Sagas ---

    @app.post("/projects/{project_id}/requirement", response_model=AgentResponse)
    def update_requirement(project_id: str, request: AgentTaskRequest) -> AgentResponse:
        """Rewrite the requirement document with the agent (blocks until done)."""
        return _orchestrator(app).update_requirement(project_id, request.user_input)

    @app.post("/projects/{project_id}/requirement/async", response_model=AsyncTaskResponse)
    def update_requirement_async(project_id: str, request: AgentTaskRequest) -> AsyncTaskResponse:
        session_id = _orchestrator(app).update_requirement_async(project_id, request.user_input)
        return AsyncTaskResponse(session_id=session_id)

    @app.post("/projects/{project_id}/generate", response_model=AgentResponse)
    def generate_code(project_id: str, request: AgentTaskRequest) -> AgentResponse:
        """Create or modify project files with the agent (blocks until done)."""
        return _orchestrator(app).generate_code(project_id, request.user_input)

    @app.post("/projects/{project_id}/generate/async", response_model=AsyncTaskResponse)
    def generate_code_async(project_id: str, request: AgentTaskRequest) -> AsyncTaskResponse:
        session_id = _orchestrator(app).generate_code_async(project_id, request.user_input)
        return AsyncTaskResponse(session_id=session_id)

    @app.get("/sessions/{session_id}/messages", response_model=list[Message])
    def session_messages(session_id: str, limit: int | None = Query(default=None, ge=1)) -> list[Message]:
        """Poll the messages of a session started asynchronously."""
        return _orchestrator(app).get_session_messages(session_id, limit)

    # --- Configuration ---

    @app.get("/config", response_model=RemoteConfig)
    def get_config() -> RemoteConfig:
        return app.state.config_store.load()

    @app.put("/config", response_model=RemoteConfig)
    def save_config(config: RemoteConfig) -> RemoteConfig:
        app.state.config_store.save(config)
        return config

    @app.post("/config/test", response_model=ConnectionTestResponse)
    def test_connection(request: ConnectionTestRequest) -> ConnectionTestResponse:
        """Probe a server with the given credentials without saving them."""
        client = app.state.client_factory(
            RemoteConfig(
                server_url=request.server_url,
                username=request.username,
                password=request.password,
            )
        )
        health = check_connection(client, app.state.events)
        return ConnectionTestResponse(
            version=health.version,
            message=f"Connected. Agent server version: {health.version}",
        )

    @app.get("/providers", response_model=list[Provider])
    def providers() -> list[Provider]:
        config = app.state.config_store.load()
        return app.state.client_factory(config).available_providers()

    # --- Events ---

    @app.get("/events", response_model=list[AgentEvent])
    async def events(after: int = Query(default=0, ge=0)) -> list[AgentEvent]:
        """Notifications emitted after sequence number ``after``."""
        return app.state.events.since(after)


def _error(status_code: int, detail: str, error_code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(detail=detail, error_code=error_code).model_dump(),
    )


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ProjectNotFoundError)
    async def project_not_found_handler(request: Request, exc: ProjectNotFoundError) -> JSONResponse:
        return _error(404, str(exc), "PROJECT_NOT_FOUND")

    @app.exception_handler(InvalidPathError)
    async def invalid_path_handler(request: Request, exc: InvalidPathError) -> JSONResponse:
        return _error(400, str(exc), "INVALID_PATH")

    @app.exception_handler(AgentTaskError)
    async def agent_task_handler(request: Request, exc: AgentTaskError) -> JSONResponse:
        logger.error(f"Agent task failed: {exc}")
        return _error(502, str(exc), "AGENT_TASK_FAILED")

    @app.exception_handler(SessionClientError)
    async def session_client_handler(request: Request, exc: SessionClientError) -> JSONResponse:
        logger.error(f"Agent server error: {exc}")
        return _error(502, str(exc), "AGENT_SERVER_ERROR")

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return _error(500, str(exc), "INTERNAL_ERROR")
