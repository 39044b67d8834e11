"""TaurusClient protocol and chat data models.

Defines the abstract interface the engine talks to. HttpClient is the
production implementation; tests substitute an in-memory fake. The
engine calls protocol methods without knowing which backend is active.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

SENTINEL_MESSAGE_ID = "temp-typing"


def parse_timestamp(value: Any) -> datetime:
    """Parse an API timestamp into an aware UTC datetime.

    Accepts ISO8601 strings (with or without a trailing ``Z``) and
    datetime objects. Naive values are treated as UTC. Missing values
    map to the epoch so they sort before anything real.

    Args:
        value: Raw timestamp from API JSON.

    Returns:
        Timezone-aware datetime.
    """
    if isinstance(value, datetime):
        parsed = value
    elif not value:
        return datetime.fromtimestamp(0, UTC)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


class MessageRole(str, Enum):
    """Author of a chat message."""

    USER = "user"
    ASSISTANT = "assistant"

    @classmethod
    def from_api(cls, raw: str) -> "MessageRole":
        """Map an API role label to a MessageRole.

        The backend labels assistant output ``"ai"``.
        """
        if raw in ("ai", "assistant"):
            return cls.ASSISTANT
        return cls.USER


@dataclass
class Message:
    """A single chat message.

    Assistant messages must carry a created_at strictly later than the
    user message that triggered them; the response poller relies on it.
    """

    id: str
    role: MessageRole
    content: str
    model_id: str
    created_at: datetime
    agent_id: str | None = None

    @property
    def is_sentinel(self) -> bool:
        """True for the transient "typing" placeholder."""
        return self.id == SENTINEL_MESSAGE_ID

    @classmethod
    def sentinel(cls, model_id: str) -> "Message":
        """Build the never-persisted "response pending" placeholder."""
        return cls(
            id=SENTINEL_MESSAGE_ID,
            role=MessageRole.ASSISTANT,
            content="...",
            model_id=model_id,
            created_at=utc_now(),
        )

    @classmethod
    def from_api(cls, data: dict) -> "Message":
        """Construct from API JSON, tolerating extra fields."""
        return cls(
            id=str(data["id"]),
            role=MessageRole.from_api(data.get("role", "user")),
            content=data.get("content", ""),
            model_id=data.get("aiModelId") or "",
            created_at=parse_timestamp(data.get("createdAt")),
            agent_id=data.get("aiAgentId"),
        )

    def to_dict(self) -> dict:
        """Serialize for JSON output."""
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "modelId": self.model_id,
            "agentId": self.agent_id,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass
class Session:
    """One conversation thread with its ordered message history."""

    id: str
    owner_id: str
    title: str
    created_at: datetime
    messages: list[Message] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict) -> "Session":
        """Construct from API JSON, tolerating extra fields."""
        return cls(
            id=str(data["id"]),
            owner_id=data.get("userId") or "",
            title=data.get("title") or "",
            created_at=parse_timestamp(data.get("createdAt")),
            messages=[Message.from_api(m) for m in data.get("messages") or []],
        )

    def to_dict(self) -> dict:
        """Serialize for JSON output."""
        return {
            "id": self.id,
            "ownerId": self.owner_id,
            "title": self.title,
            "createdAt": self.created_at.isoformat(),
            "messages": [m.to_dict() for m in self.messages],
        }


class FileKind(str, Enum):
    """Backend classification of an uploaded file."""

    TEXT = "text"
    DOCUMENT = "document"
    SPREADSHEET = "spreadsheet"
    IMAGE = "image"
    PDF = "pdf"
    UNKNOWN = "unknown"

    @classmethod
    def from_api(cls, raw: str | None) -> "FileKind":
        try:
            return cls(raw)
        except ValueError:
            return cls.UNKNOWN


@dataclass
class AttachedFile:
    """Backend-assigned descriptor of a file attached to a session."""

    id: str
    original_name: str
    mime_type: str
    size_bytes: int
    kind: FileKind
    has_full_content: bool = False
    processing_error: str | None = None

    @classmethod
    def from_api(cls, data: dict) -> "AttachedFile":
        """Construct from API JSON, tolerating extra fields."""
        return cls(
            id=str(data["id"]),
            original_name=data.get("originalName", ""),
            mime_type=data.get("mimeType", "application/octet-stream"),
            size_bytes=int(data.get("size") or 0),
            kind=FileKind.from_api(data.get("type")),
            has_full_content=bool(data.get("hasFullContent", False)),
            processing_error=data.get("processingError"),
        )


@dataclass
class UploadResult:
    """Outcome of a multipart upload batch."""

    success: bool
    files: list[AttachedFile] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict) -> "UploadResult":
        """Construct from API JSON, tolerating extra fields."""
        return cls(
            success=bool(data.get("success", False)),
            files=[AttachedFile.from_api(f) for f in data.get("files") or []],
            errors=[str(e) for e in data.get("errors") or []],
        )


@dataclass
class AIModel:
    """Generation model offered by the backend."""

    id: str
    name: str
    provider: str
    model_id: str
    description: str | None = None

    @classmethod
    def from_api(cls, data: dict) -> "AIModel":
        """Construct from API JSON, tolerating extra fields."""
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            provider=data.get("provider", ""),
            model_id=data.get("modelId", ""),
            description=data.get("description"),
        )


@dataclass
class AIAgent:
    """Specialized handler offered by the backend."""

    id: str
    name: str
    type: str
    description: str | None = None

    @classmethod
    def from_api(cls, data: dict) -> "AIAgent":
        """Construct from API JSON, tolerating extra fields."""
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            type=data.get("type", ""),
            description=data.get("description"),
        )


@dataclass
class AuthInitResult:
    """Response of a provider authorization-initiation request."""

    success: bool
    auth_required: bool
    auth_url: str | None = None

    @classmethod
    def from_api(cls, data: dict) -> "AuthInitResult":
        """Construct from API JSON, tolerating extra fields."""
        return cls(
            success=bool(data.get("success", False)),
            auth_required=bool(data.get("authRequired", False)),
            auth_url=data.get("authUrl") or None,
        )


class TaurusClientError(Exception):
    """Transport-neutral error raised by TaurusClient implementations.

    HttpClient raises this on HTTP errors, transport failures, and
    undecodable bodies. A status_code of None means the request never
    produced an HTTP response. Engine operations catch this and convert
    it to a user-facing notice.
    """

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    @property
    def is_network_error(self) -> bool:
        return self.status_code is None


class AuthenticationMissingError(TaurusClientError):
    """No bearer token is configured; raised before any request is sent."""

    def __init__(self, message: str = "User not authenticated."):
        super().__init__(message, status_code=401)


class TaurusClient(Protocol):
    """Protocol defining the backend surface the engine consumes."""

    @property
    def has_token(self) -> bool:
        """Whether a bearer token is configured."""
        ...

    async def __aenter__(self) -> "TaurusClient":
        ...

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        ...

    async def list_sessions(self) -> list[Session]:
        """Fetch every session of the current user."""
        ...

    async def get_session(self, session_id: str) -> Session:
        """Fetch one session including its full message sequence."""
        ...

    async def create_session(
        self, session_id: str, user_id: str | None, title: str
    ) -> Session:
        """Create a session under a client-assigned id."""
        ...

    async def delete_session(self, session_id: str) -> None:
        ...

    async def send_message(
        self,
        session_id: str,
        content: str,
        model_id: str,
        agent_id: str | None = None,
    ) -> None:
        """Submit a user message; the response is computed out-of-band."""
        ...

    async def list_models(self) -> list[AIModel]:
        ...

    async def list_agents(self) -> list[AIAgent]:
        ...

    async def get_auth_status(self, provider: str) -> bool:
        """Return whether the user has authorized the provider."""
        ...

    async def start_auth(self, provider: str) -> AuthInitResult:
        ...

    async def disconnect_provider(self, provider: str) -> None:
        ...

    async def upload_files(
        self, session_id: str, paths: Sequence[Path]
    ) -> UploadResult:
        ...

    async def remove_file(self, session_id: str, file_id: str) -> None:
        ...

    async def list_session_files(self, session_id: str) -> list[AttachedFile]:
        ...
