"""HTTP client for the remote OpenCode agent server."""

from __future__ import annotations

import base64
import logging
from typing import Any, TypeVar

import httpx
from pydantic import TypeAdapter, ValidationError

from codesensei.schemas import (
    ConfigProvidersResponse,
    HealthStatus,
    Message,
    MessagePart,
    PromptRequest,
    Provider,
    ProviderListResponse,
    RemoteConfig,
    Session,
    SessionCreateRequest,
)

logger = logging.getLogger(__name__)

# Timeouts; a synchronous send blocks for the whole remote generation
SEND_TIMEOUT = 120.0  # seconds
CONNECT_TIMEOUT = 10.0  # seconds

T = TypeVar("T")

_MESSAGE_LIST = TypeAdapter(list[Message])


class SessionClientError(Exception):
    """Base class for agent server failures."""

    pass


class ServerUnreachableError(SessionClientError):
    """Raised on connection, timeout, or other transport failures."""

    pass


class ProtocolError(SessionClientError):
    """Raised when the server answers with a non-2xx status."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Server returned error ({status_code}): {body}")


class ResponseParseError(SessionClientError):
    """Raised when a response body does not match the expected schema."""

    def __init__(self, what: str, cause: Exception, raw: str):
        self.raw = raw
        super().__init__(f"Failed to parse {what}: {cause}\nResponse body: {raw}")


def build_auth_header(username: str, password: str | None) -> str | None:
    """Build an HTTP Basic ``Authorization`` value, or None without a password."""
    if password is None:
        return None
    token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def extract_text(message: Message) -> str:
    """Displayable content of a message (text parts joined by newline)."""
    return message.content


class SessionClient:
    """Synchronous client for the agent session protocol.

    Holds no per-call state: the auth header is fixed at construction and
    every call opens its own connection, so one instance can be shared by
    concurrent sagas.
    """

    def __init__(
        self,
        server_url: str,
        username: str = "opencode",
        password: str | None = None,
        timeout: float = SEND_TIMEOUT,
        connect_timeout: float = CONNECT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            server_url: Base URL of the agent server (trailing slash is stripped)
            username: Basic auth user name
            password: Basic auth password; no auth header is sent without it
            timeout: Overall request timeout in seconds
            connect_timeout: Connection timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self._base_url = server_url.strip().rstrip("/")
        self._auth_header = build_auth_header(username, password)
        self._timeout = httpx.Timeout(timeout, connect=connect_timeout)
        self._transport = transport

    @classmethod
    def from_config(cls, config: RemoteConfig, **kwargs: Any) -> SessionClient:
        """Build a client from the stored remote configuration."""
        return cls(
            server_url=config.server_url,
            username=config.username,
            password=config.password,
            **kwargs,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def auth_header(self) -> str | None:
        return self._auth_header

    # --- Transport helpers ---

    def _headers(self) -> dict[str, str]:
        if self._auth_header is None:
            return {}
        return {"Authorization": self._auth_header}

    def _send(
        self,
        method: str,
        path: str,
        action: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Send one request; transport failures become ServerUnreachableError."""
        url = f"{self._base_url}{path}"
        try:
            with httpx.Client(
                timeout=self._timeout,
                headers=self._headers(),
                transport=self._transport,
            ) as client:
                return client.request(method, url, json=json, params=params)

        except httpx.TimeoutException as e:
            logger.error(f"{action} timed out: {e}")
            raise ServerUnreachableError(f"{action} failed: request to {url} timed out ({e})") from e

        except httpx.HTTPError as e:
            logger.error(f"{action} failed: {e}")
            raise ServerUnreachableError(f"{action} failed: {e}") from e

    def _request(
        self,
        method: str,
        path: str,
        action: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Send one request and require a 2xx status."""
        response = self._send(method, path, action, json=json, params=params)
        if not response.is_success:
            logger.error(f"{action}: server returned {response.status_code}")
            raise ProtocolError(response.status_code, response.text)
        return response

    @staticmethod
    def _decode(response: httpx.Response, adapter: TypeAdapter[T], what: str) -> T:
        """Validate a JSON body, keeping the raw text on failure."""
        raw = response.text
        try:
            return adapter.validate_json(raw)
        except ValidationError as e:
            logger.error(f"Failed to parse {what}, raw response:\n{raw}")
            raise ResponseParseError(what, e, raw) from e

    # --- Protocol operations ---

    def health_check(self) -> HealthStatus:
        """Probe the server and return its version."""
        try:
            response = self._request("GET", "/global/health", "Health check")
        except ServerUnreachableError as e:
            raise ServerUnreachableError(
                f"Cannot connect to agent server at {self._base_url}: {e}\n"
                "Check that the server is running and the address is correct"
            ) from e
        return self._decode(response, TypeAdapter(HealthStatus), "health response")

    def get_providers(self) -> list[Provider]:
        """List providers (basic listing)."""
        response = self._request("GET", "/provider", "Get providers")
        return self._decode(response, TypeAdapter(ProviderListResponse), "providers").all

    def get_config_providers(self) -> list[Provider]:
        """List configured providers including their model catalogs."""
        response = self._request("GET", "/config/providers", "Get config providers")
        return self._decode(response, TypeAdapter(ConfigProvidersResponse), "config providers").providers

    def available_providers(self) -> list[Provider]:
        """Configured providers, falling back to the basic listing on failure."""
        try:
            return self.get_config_providers()
        except SessionClientError as e:
            logger.info(f"Config providers unavailable, falling back to /provider: {e}")
            return self.get_providers()

    def create_session(
        self,
        title: str,
        provider_id: str | None = None,
        model_id: str | None = None,
    ) -> Session:
        """Create a session; the server assigns its id."""
        body = SessionCreateRequest(title=title, provider_id=provider_id, model_id=model_id)
        response = self._request(
            "POST",
            "/session",
            "Create session",
            json=body.model_dump(by_alias=True, exclude_none=True),
        )
        session = self._decode(response, TypeAdapter(Session), "session response")
        logger.info(f"Created session {session.id} ({title})")
        return session

    @staticmethod
    def _prompt_body(text: str, agent: str | None, model: str | None) -> dict[str, Any]:
        body = PromptRequest(
            parts=[MessagePart(type="text", text=text)],
            agent=agent,
            model=model,
        )
        return body.model_dump(exclude_none=True)

    def send_message(
        self,
        session_id: str,
        text: str,
        agent: str | None = None,
        model: str | None = None,
    ) -> Message:
        """Send a prompt and block until the agent has finished its reply."""
        response = self._request(
            "POST",
            f"/session/{session_id}/message",
            "Send message",
            json=self._prompt_body(text, agent, model),
        )
        return self._decode(response, TypeAdapter(Message), "message response")

    def send_message_async(
        self,
        session_id: str,
        text: str,
        agent: str | None = None,
        model: str | None = None,
    ) -> None:
        """Submit a prompt and return once the server has accepted it."""
        self._request(
            "POST",
            f"/session/{session_id}/prompt_async",
            "Send async message",
            json=self._prompt_body(text, agent, model),
        )
        logger.info(f"Prompt accepted for session {session_id}")

    def get_messages(self, session_id: str, limit: int | None = None) -> list[Message]:
        """List the messages of a session, used to poll after an async send."""
        params = {"limit": limit} if limit is not None else None
        response = self._request(
            "GET",
            f"/session/{session_id}/message",
            "Get messages",
            params=params,
        )
        return self._decode(response, _MESSAGE_LIST, "message list")

    def delete_session(self, session_id: str) -> bool:
        """Delete a session. Best effort: failures are logged, never raised."""
        try:
            response = self._send("DELETE", f"/session/{session_id}", "Delete session")
        except ServerUnreachableError as e:
            logger.warning(f"Failed to delete session {session_id}: {e}")
            return False

        if not response.is_success:
            logger.warning(f"Delete session {session_id} returned {response.status_code}: {response.text}")
            return False
        return True
