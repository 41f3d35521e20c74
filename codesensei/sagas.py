"""Agent sagas: requirement updates and code generation.

Each saga is a fixed sequence (load local state, health check, create session,
send prompt, persist or hand back the session id, delete the session). There is
no rollback beyond best-effort session deletion and no retry; any failed step
aborts the rest of the sequence with one AgentTaskError.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from codesensei.events import (
    AGENT_TASK_STARTED,
    FILES_OPERATION_COMPLETED,
    REQUIREMENT_UPDATED,
    Notifier,
    notify,
    progress,
)
from codesensei.projects import ProjectStore
from codesensei.prompts import (
    CODE_SESSION_TITLE,
    REQUIREMENT_SESSION_TITLE,
    build_code_prompt,
    build_requirement_prompt,
)
from codesensei.schemas import AgentResponse, HealthStatus, Message, RemoteConfig, Session
from codesensei.session_client import SessionClient, SessionClientError

logger = logging.getLogger(__name__)

CONNECTION_TEST_START = "opencode-test-start"
CONNECTION_TEST_SUCCESS = "opencode-test-success"
CONNECTION_TEST_ERROR = "opencode-test-error"


class AgentTaskError(Exception):
    """Raised when a saga step fails; the message is shown to the user."""

    pass


class EmptyResponseError(AgentTaskError):
    """Raised when the agent returns no text where content is required."""

    pass


def check_connection(client: SessionClient, notifier: Notifier | None = None) -> HealthStatus:
    """Probe the agent server, emitting test start/success/error events."""
    notify(notifier, CONNECTION_TEST_START, {"server_url": client.base_url})
    try:
        health = client.health_check()
    except SessionClientError as e:
        notify(notifier, CONNECTION_TEST_ERROR, {"error": str(e)})
        raise AgentTaskError(f"Connection failed: {e}") from e

    notify(notifier, CONNECTION_TEST_SUCCESS, {"version": health.version})
    return health


class AgentOrchestrator:
    """Runs the agent sagas against one project store and one agent server."""

    def __init__(
        self,
        projects: ProjectStore,
        client: SessionClient,
        config: RemoteConfig,
        notifier: Notifier | None = None,
    ):
        self.projects = projects
        self.client = client
        self.config = config
        self.notifier = notifier

    # --- Saga steps ---

    def _check_health(self) -> HealthStatus:
        try:
            health = self.client.health_check()
        except SessionClientError as e:
            raise AgentTaskError(f"Cannot connect to agent server: {e}") from e
        logger.info(f"Agent server version: {health.version}")
        return health

    @contextmanager
    def _session(self, title: str, keep: bool = False) -> Iterator[Session]:
        """Create a session and delete it on failure (and on success unless ``keep``)."""
        try:
            session = self.client.create_session(
                title,
                self.config.default_provider,
                self.config.default_model,
            )
        except SessionClientError as e:
            raise AgentTaskError(f"Failed to create session: {e}") from e

        try:
            yield session
        except Exception:
            logger.warning(f"Saga failed, deleting session {session.id}")
            self.client.delete_session(session.id)
            raise

        if not keep:
            self.client.delete_session(session.id)

    def _send(self, session_id: str, prompt: str) -> Message:
        try:
            return self.client.send_message(session_id, prompt)
        except SessionClientError as e:
            raise AgentTaskError(f"Failed to send message: {e}") from e

    def _send_async(self, session_id: str, prompt: str) -> None:
        try:
            self.client.send_message_async(session_id, prompt)
        except SessionClientError as e:
            raise AgentTaskError(f"Failed to send message: {e}") from e

    # --- Requirement update ---

    def update_requirement(self, project_id: str, user_input: str) -> AgentResponse:
        """Have the agent write the requirement document and save its reply.

        Args:
            project_id: Project whose requirement document is updated
            user_input: What the user wants changed

        Returns:
            AgentResponse with the saved path and the new document content
        """
        logger.info(f"Updating requirement for project {project_id}")
        project = self.projects.get_project(project_id)
        current = self.projects.read_requirement(project)

        progress(self.notifier, "start", "Updating requirement document", project_id=project_id)
        self._check_health()
        prompt = build_requirement_prompt(user_input, current)

        with self._session(REQUIREMENT_SESSION_TITLE) as session:
            progress(self.notifier, "processing", "Generating requirement document...", project_id=project_id)
            reply = self._send(session.id, prompt)

            text = reply.content
            if not text:
                raise EmptyResponseError("The agent returned an empty response")

            logger.info(f"Received requirement document ({len(text)} chars)")
            path = self.projects.write_requirement(project, text)

        notify(self.notifier, REQUIREMENT_UPDATED, {"project_id": project_id, "file_path": str(path)})
        progress(self.notifier, "done", "Requirement document updated", project_id=project_id)

        return AgentResponse(
            success=True,
            message="Requirement document updated",
            file_modified=str(path),
            document_content=text,
        )

    def update_requirement_async(self, project_id: str, user_input: str) -> str:
        """Submit a requirement update and return the session id to poll.

        Nothing is written locally; the caller reads the reply via
        ``get_session_messages`` and saves it.
        """
        logger.info(f"Updating requirement for project {project_id} (async)")
        project = self.projects.get_project(project_id)
        current = self.projects.read_requirement(project)

        progress(self.notifier, "start", "Updating requirement document", project_id=project_id)
        self._check_health()
        prompt = build_requirement_prompt(user_input, current)

        with self._session(REQUIREMENT_SESSION_TITLE, keep=True) as session:
            self._send_async(session.id, prompt)

        notify(self.notifier, AGENT_TASK_STARTED, {"project_id": project_id, "session_id": session.id})
        return session.id

    # --- Code generation ---

    def _code_prompt(self, project_id: str, user_input: str) -> str:
        project = self.projects.get_project(project_id)
        root = self.projects.workspace_root(project)
        requirement = self.projects.read_requirement(project)
        return build_code_prompt(str(root), user_input, requirement)

    def generate_code(self, project_id: str, user_input: str) -> AgentResponse:
        """Have the agent create or modify project files and return its summary.

        An empty reply is not an error here: the files on disk are the result,
        the text is only a change summary.
        """
        logger.info(f"Generating code for project {project_id}")
        prompt = self._code_prompt(project_id, user_input)

        progress(self.notifier, "start", "Starting code generation", project_id=project_id)
        self._check_health()
        progress(self.notifier, "analyzing", "Analyzing project structure and requirements...", project_id=project_id)

        with self._session(CODE_SESSION_TITLE) as session:
            progress(self.notifier, "working", "Creating/modifying files...", project_id=project_id)
            reply = self._send(session.id, prompt)
            text = reply.content

        notify(self.notifier, FILES_OPERATION_COMPLETED, {"project_id": project_id, "message": text})
        progress(self.notifier, "done", "Code generation finished", project_id=project_id)

        return AgentResponse(success=True, message=text)

    def generate_code_async(self, project_id: str, user_input: str) -> str:
        """Submit a code-generation prompt and return the session id to poll."""
        logger.info(f"Generating code for project {project_id} (async)")
        prompt = self._code_prompt(project_id, user_input)

        progress(self.notifier, "start", "Starting code generation", project_id=project_id)
        self._check_health()
        progress(self.notifier, "analyzing", "Analyzing project structure and requirements...", project_id=project_id)

        with self._session(CODE_SESSION_TITLE, keep=True) as session:
            self._send_async(session.id, prompt)

        notify(self.notifier, AGENT_TASK_STARTED, {"project_id": project_id, "session_id": session.id})
        return session.id

    # --- Polling ---

    def get_session_messages(self, session_id: str, limit: int | None = None) -> list[Message]:
        """Messages of a session started by an async saga."""
        return self.client.get_messages(session_id, limit)
