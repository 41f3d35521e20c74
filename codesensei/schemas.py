"""Pydantic schemas for CodeSensei data contracts."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


# --- Workspace Tree ---


class FileNode(BaseModel):
    """One filesystem entry relative to a scan root."""

    name: str
    relative_path: str
    is_file: bool
    children: list[FileNode] | None = None
    depth_limited: bool = False


# --- Remote Configuration ---


class RemoteConfig(BaseModel):
    """Connection settings for the remote agent server."""

    server_url: str = "http://localhost:4096"
    username: str = "opencode"
    password: str | None = None
    default_provider: str | None = None
    default_model: str | None = None


# --- Agent Protocol ---


class HealthStatus(BaseModel):
    """Response of the remote health probe."""

    healthy: bool
    version: str


class StringList(BaseModel):
    """Provider model catalog given as a plain list of model ids."""

    kind: Literal["list"] = "list"
    names: list[str] = Field(default_factory=list)

    def model_ids(self) -> list[str]:
        return list(self.names)


class KeyedModelMap(BaseModel):
    """Provider model catalog given as an object keyed by model id."""

    kind: Literal["map"] = "map"
    entries: dict[str, Any] = Field(default_factory=dict)

    def model_ids(self) -> list[str]:
        return list(self.entries)


ModelCatalog = Annotated[Union[StringList, KeyedModelMap], Field(discriminator="kind")]


class Provider(BaseModel):
    """An AI model provider known to the agent server."""

    id: str
    name: str = ""
    display_name: str = ""
    homepage: str = ""
    models: ModelCatalog = Field(default_factory=StringList)

    @field_validator("models", mode="before")
    @classmethod
    def _resolve_model_catalog(cls, value: Any) -> Any:
        """Resolve the loosely typed ``models`` field into a tagged variant."""
        if value is None:
            return {"kind": "list", "names": []}
        if isinstance(value, (StringList, KeyedModelMap)):
            return value
        if isinstance(value, list):
            names = [
                item.get("id", "") if isinstance(item, dict) else str(item)
                for item in value
            ]
            return {"kind": "list", "names": [n for n in names if n]}
        if isinstance(value, dict):
            # Already tagged (e.g. re-validating our own dump)
            if value.get("kind") in ("list", "map") and set(value) <= {"kind", "names", "entries"}:
                return value
            return {"kind": "map", "entries": value}
        raise ValueError(f"Unsupported models value: {type(value).__name__}")

    def model_ids(self) -> list[str]:
        return self.models.model_ids()


class ProviderListResponse(BaseModel):
    """Body of ``GET /provider``."""

    all: list[Provider] = Field(default_factory=list)
    default: Any = None


class ConfigProvidersResponse(BaseModel):
    """Body of ``GET /config/providers``."""

    providers: list[Provider] = Field(default_factory=list)


class Session(BaseModel):
    """Server-side conversation context; ``id`` is opaque and server assigned."""

    model_config = ConfigDict(protected_namespaces=())

    id: str
    title: str = ""
    created_at: str = ""
    provider_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("provider_id", "providerId"),
    )
    model_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("model_id", "modelId"),
    )


class SessionCreateRequest(BaseModel):
    """Body of ``POST /session``."""

    model_config = ConfigDict(protected_namespaces=())

    title: str
    provider_id: str | None = Field(default=None, serialization_alias="providerId")
    model_id: str | None = Field(default=None, serialization_alias="modelId")


class MessagePart(BaseModel):
    """One part of a message: displayable text or internal reasoning."""

    type: str = "text"
    text: str | None = None
    reasoning: str | None = None


class MessageInfo(BaseModel):
    """Message metadata."""

    id: str
    role: str = ""
    created: str | int = ""
    status: str | None = None


class Message(BaseModel):
    """A single turn in a session."""

    info: MessageInfo
    parts: list[MessagePart] = Field(default_factory=list)

    @property
    def content(self) -> str:
        """Non-empty text parts joined by newline; reasoning is excluded."""
        return "\n".join(part.text for part in self.parts if part.text)


class PromptRequest(BaseModel):
    """Body of the message and prompt_async endpoints."""

    parts: list[MessagePart]
    agent: str | None = None
    model: str | None = None


# --- Projects ---


class Project(BaseModel):
    """Project metadata stored as ``project.json``."""

    id: str
    name: str
    description: str = ""
    language: str = "Python"
    created_at: int
    updated_at: int
    root_path: str | None = None


class DocumentKind(str, Enum):
    """Per-project documents managed by the project store."""

    REQUIREMENT = "requirement"
    CHAT = "chat"
    TASKS = "tasks"

    @property
    def filename(self) -> str:
        return {
            DocumentKind.REQUIREMENT: "requirement.md",
            DocumentKind.CHAT: "chat.json",
            DocumentKind.TASKS: "tasks.json",
        }[self]


# --- Saga Results ---


class AgentResponse(BaseModel):
    """Outward-facing result envelope of a synchronous saga."""

    success: bool
    message: str
    file_modified: str | None = None
    document_content: str | None = None
    error: str | None = None


class AgentEvent(BaseModel):
    """A notification emitted for the UI."""

    seq: int
    name: str
    payload: dict[str, Any] = Field(default_factory=dict)
    emitted_at: float


# --- HTTP Backend Requests/Responses ---


class ProjectCreateRequest(BaseModel):
    """Request to create a project."""

    name: str = Field(..., min_length=1)
    description: str = ""
    root_path: str | None = None


class DocumentBody(BaseModel):
    """Full content of a project document."""

    content: str


class SourceFileWrite(BaseModel):
    """Request to create or overwrite a source file."""

    path: str = Field(..., min_length=1)
    content: str = ""


class FolderCreateRequest(BaseModel):
    """Request to create a folder under the content root."""

    path: str = Field(..., min_length=1)


class RenameRequest(BaseModel):
    """Request to rename an entry under the content root."""

    old_path: str = Field(..., min_length=1)
    new_path: str = Field(..., min_length=1)


class MoveRequest(BaseModel):
    """Request to move an entry under the content root."""

    source: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)


class AgentTaskRequest(BaseModel):
    """Request to run a requirement or code-generation saga."""

    user_input: str = Field(..., min_length=1, description="What the user wants the agent to do")


class AsyncTaskResponse(BaseModel):
    """Session id to poll after an asynchronous saga."""

    session_id: str


class ConnectionTestRequest(BaseModel):
    """Credentials to probe without saving them."""

    server_url: str
    username: str = "opencode"
    password: str | None = None


class ConnectionTestResponse(BaseModel):
    """Result of a successful connection test."""

    version: str
    message: str


class ErrorResponse(BaseModel):
    """Error response for failed requests."""

    detail: str
    error_code: str | None = None


class BackendHealth(BaseModel):
    """Liveness of the local backend."""

    backend: Literal["healthy", "unhealthy"] = "healthy"
    version: str
    projects_dir: str
