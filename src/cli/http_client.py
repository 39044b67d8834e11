"""HTTP client implementation of TaurusClient.

Thin wrapper around httpx that talks to the chat backend REST API.
Every call carries the bearer token; when none is configured the call
fails with AuthenticationMissingError before anything is sent. Error
responses, transport failures, and undecodable bodies all raise
TaurusClientError so the engine has a single failure type to handle.
"""

import logging
import mimetypes
from collections.abc import Callable, Sequence
from contextlib import ExitStack
from pathlib import Path
from typing import Any, TypeVar

import httpx

from src.cli.protocol import (
    AIAgent,
    AIModel,
    AttachedFile,
    AuthenticationMissingError,
    AuthInitResult,
    Session,
    TaurusClientError,
    UploadResult,
)
from src.utils.redaction import redact_for_logging, scrub_bearer

logger = logging.getLogger(__name__)

T = TypeVar("T")


class HttpClient:
    """TaurusClient implementation that talks to the backend over HTTP."""

    def __init__(
        self,
        base_url: str = "http://localhost:5000",
        token: str = "",
        timeout: float = 30.0,
    ):
        """Initialize with backend base URL and bearer token.

        Args:
            base_url: The backend's HTTP base URL.
            token: Bearer token from the identity provider. May be empty.
            timeout: Per-request timeout in seconds.
        """
        self._base_url = base_url
        self._token = token.strip()
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    @property
    def has_token(self) -> bool:
        return bool(self._token)

    async def __aenter__(self):
        """Open httpx async client."""
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers=headers,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Close httpx async client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _raise_for_status(self, resp: httpx.Response) -> None:
        """Raise TaurusClientError on non-2xx responses.

        Args:
            resp: httpx.Response to check.

        Raises:
            TaurusClientError: On non-2xx status codes.
        """
        if resp.status_code >= 400:
            detail: Any = None
            try:
                body = resp.json()
                if isinstance(body, dict):
                    detail = body.get("error") or body.get("message") or body.get("detail")
            except ValueError:
                pass
            raise TaurusClientError(
                message=str(detail or resp.text or f"HTTP {resp.status_code}"),
                status_code=resp.status_code,
            )

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send one authenticated request and check its status.

        Args:
            method: HTTP method.
            path: Path relative to the base URL.
            **kwargs: Passed through to httpx.

        Returns:
            The successful response.

        Raises:
            AuthenticationMissingError: If no token is configured.
            TaurusClientError: On transport failure or non-2xx status.
        """
        if not self._token:
            raise AuthenticationMissingError()
        if self._client is None:
            raise TaurusClientError("HTTP client is not open")
        if "json" in kwargs and logger.isEnabledFor(logging.DEBUG):
            payload = kwargs["json"]
            if isinstance(payload, dict):
                payload = redact_for_logging(payload)
            logger.debug("%s %s body=%s", method, path, payload)
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed (transport): %s", method, path, scrub_bearer(str(exc)))
            raise TaurusClientError(f"Network error: {exc}") from exc
        self._raise_for_status(resp)
        return resp

    @staticmethod
    def _json(resp: httpx.Response) -> Any:
        """Decode a JSON body, mapping parse failures to TaurusClientError."""
        try:
            return resp.json()
        except ValueError as exc:
            raise TaurusClientError(
                f"Invalid JSON from {resp.request.url.path}", resp.status_code
            ) from exc

    @staticmethod
    def _parse(build: Callable[[Any], T], record: Any, what: str) -> T:
        """Build a model from one decoded record.

        Missing fields, wrong types, and unparseable timestamps raise
        TaurusClientError like any other bad response.
        """
        try:
            return build(record)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("Malformed %s in response: %r", what, exc)
            raise TaurusClientError(f"Malformed {what} in response: {exc}") from exc

    # --- Sessions ---

    async def list_sessions(self) -> list[Session]:
        """List sessions via GET /api/chat.

        Returns:
            Sessions in backend order.
        """
        resp = await self._request("GET", "/api/chat")
        data = self._json(resp)
        sessions = data.get("data", []) if isinstance(data, dict) else data
        return [self._parse(Session.from_api, s, "session") for s in sessions or []]

    async def get_session(self, session_id: str) -> Session:
        """Fetch a session with its messages via GET /api/chat/{id}.

        Args:
            session_id: The session to fetch.

        Returns:
            Session snapshot including the full message sequence.
        """
        resp = await self._request("GET", f"/api/chat/{session_id}")
        data = self._json(resp)
        if not isinstance(data, dict):
            raise TaurusClientError(f"Unexpected session payload for {session_id}")
        return self._parse(Session.from_api, data, "session")

    async def create_session(
        self, session_id: str, user_id: str | None, title: str
    ) -> Session:
        """Create a session via POST /api/chat.

        Args:
            session_id: Client-assigned session id.
            user_id: Owner id, or None when unknown.
            title: Initial title.

        Returns:
            The session as echoed by the backend.
        """
        resp = await self._request(
            "POST",
            "/api/chat",
            json={"id": session_id, "userId": user_id, "title": title},
        )
        data = self._json(resp) if resp.content else {}
        if not isinstance(data, dict):
            data = {}
        # Backend may echo a partial record; fill from the request.
        data.setdefault("id", session_id)
        data.setdefault("userId", user_id)
        data.setdefault("title", title)
        return self._parse(Session.from_api, data, "session")

    async def delete_session(self, session_id: str) -> None:
        """Delete a session via DELETE /api/chat/{id}.

        Args:
            session_id: The session to delete.
        """
        await self._request("DELETE", f"/api/chat/{session_id}")

    async def send_message(
        self,
        session_id: str,
        content: str,
        model_id: str,
        agent_id: str | None = None,
    ) -> None:
        """Submit a user message via POST /api/chat/{id}/messages.

        The assistant reply is produced asynchronously; callers poll
        get_session() for it.

        Args:
            session_id: Target session.
            content: Message text.
            model_id: Requested generation model.
            agent_id: Optional specialized handler.
        """
        body: dict[str, Any] = {"content": content, "aiModelId": model_id}
        if agent_id:
            body["aiAgentId"] = agent_id
        await self._request("POST", f"/api/chat/{session_id}/messages", json=body)

    # --- Catalog ---

    async def list_models(self) -> list[AIModel]:
        """List generation models via GET /api/models."""
        resp = await self._request("GET", "/api/models")
        data = self._json(resp)
        models = data.get("models", []) if isinstance(data, dict) else data
        return [self._parse(AIModel.from_api, m, "model") for m in models or []]

    async def list_agents(self) -> list[AIAgent]:
        """List specialized agents via GET /api/agents."""
        resp = await self._request("GET", "/api/agents")
        data = self._json(resp)
        agents = data.get("agents", []) if isinstance(data, dict) else data
        return [self._parse(AIAgent.from_api, a, "agent") for a in agents or []]

    # --- Provider authorization ---

    async def get_auth_status(self, provider: str) -> bool:
        """Check provider authorization via GET /api/{provider}/auth/status."""
        resp = await self._request("GET", f"/api/{provider}/auth/status")
        data = self._json(resp)
        return bool(data.get("authorized", False)) if isinstance(data, dict) else False

    async def start_auth(self, provider: str) -> AuthInitResult:
        """Initiate provider authorization via GET /api/{provider}/auth."""
        resp = await self._request("GET", f"/api/{provider}/auth")
        data = self._json(resp)
        record = data if isinstance(data, dict) else {}
        return self._parse(AuthInitResult.from_api, record, "auth result")

    async def disconnect_provider(self, provider: str) -> None:
        """Revoke provider authorization via POST /api/{provider}/disconnect."""
        await self._request("POST", f"/api/{provider}/disconnect")

    # --- Files ---

    async def upload_files(
        self, session_id: str, paths: Sequence[Path]
    ) -> UploadResult:
        """Upload files via multipart POST /api/files/upload.

        Args:
            session_id: Session the files attach to.
            paths: Local files to send in one batch.

        Returns:
            UploadResult with processed descriptors and per-file errors.
        """
        with ExitStack() as stack:
            files = []
            for path in paths:
                mime = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
                handle = stack.enter_context(open(path, "rb"))
                files.append(("files", (path.name, handle, mime)))
            resp = await self._request(
                "POST",
                "/api/files/upload",
                data={"sessionId": session_id},
                files=files,
            )
        data = self._json(resp)
        record = data if isinstance(data, dict) else {}
        return self._parse(UploadResult.from_api, record, "upload result")

    async def remove_file(self, session_id: str, file_id: str) -> None:
        """Remove an attached file via DELETE /api/files/remove."""
        await self._request(
            "DELETE",
            "/api/files/remove",
            json={"sessionId": session_id, "fileId": file_id},
        )

    async def list_session_files(self, session_id: str) -> list[AttachedFile]:
        """List attached files via GET /api/files/session/{id}."""
        resp = await self._request("GET", f"/api/files/session/{session_id}")
        data = self._json(resp)
        files = data.get("files", []) if isinstance(data, dict) else data
        return [self._parse(AttachedFile.from_api, f, "file") for f in files or []]
