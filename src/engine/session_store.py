"""Authoritative in-memory cache of chat sessions.

SessionStore owns the session list and the active session's message
sequence. Other components never mutate sessions directly; they call
the store's operations, which apply each state transition in one place.

The full session list is fetched once on initial load. Every later
change (create, delete, message append, polled snapshot) is applied
incrementally.

Selection is guarded against out-of-order completion: every call to
select_session() records the id the caller now wants, and a fetch that
resolves after a newer selection was requested is discarded.
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from src.cli.protocol import (
    Message,
    Session,
    TaurusClient,
    TaurusClientError,
    utc_now,
)
from src.engine.notices import NoticeBoard

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TITLE = "New Chat"


@dataclass
class DeleteResult:
    """Outcome of delete_session().

    Attributes:
        deleted: Backend confirmed the deletion and the session is gone locally.
        was_active: The deleted session was active; the caller should
            navigate away from it.
    """

    deleted: bool
    was_active: bool = False


class SessionStore:
    """Session list plus active-session pointer.

    Attributes:
        user_id: Owner id sent when creating sessions.
    """

    def __init__(
        self,
        client: TaurusClient,
        notices: NoticeBoard,
        user_id: str | None = None,
    ) -> None:
        self._client = client
        self._notices = notices
        self.user_id = user_id
        self._sessions: list[Session] = []
        self._active_id: str | None = None
        self._desired_id: str | None = None
        self._loaded = False
        # Placeholder session ids awaiting backend confirmation, with the
        # messages appended to them in the meantime.
        self._pending: dict[str, list[Message]] = {}
        self._removal_listeners: list[Callable[[str], None]] = []

    # --- Queries ---

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def active_id(self) -> str | None:
        return self._active_id

    @property
    def active_session(self) -> Session | None:
        if self._active_id is None:
            return None
        return self.get(self._active_id)

    def list_sessions(self) -> list[Session]:
        """Return sessions most-recent-first. The list is a copy."""
        return list(self._sessions)

    def get(self, session_id: str) -> Session | None:
        for session in self._sessions:
            if session.id == session_id:
                return session
        return None

    def is_pending(self, session_id: str) -> bool:
        """True while a placeholder's backend creation is in flight."""
        return session_id in self._pending

    def add_removal_listener(self, callback: Callable[[str], None]) -> None:
        """Register a callback invoked with the id of each deleted session."""
        self._removal_listeners.append(callback)

    # --- Loading and selection ---

    async def load(self, force: bool = False) -> bool:
        """Fetch the full session list.

        Only the first call hits the backend unless ``force`` is set.
        Sessions already resident (e.g. created before the list arrived)
        are kept.

        Returns:
            True when the list is loaded.
        """
        if self._loaded and not force:
            return True
        try:
            fetched = await self._client.list_sessions()
        except TaurusClientError as exc:
            logger.warning("Failed to fetch sessions: %s", exc.message)
            self._notices.error(f"Failed to fetch chats: {exc.message}")
            return False

        fetched.sort(key=lambda s: s.created_at, reverse=True)
        fetched_ids = {s.id for s in fetched}
        local_only = [s for s in self._sessions if s.id not in fetched_ids]
        resident = {s.id: s for s in self._sessions}
        # A resident copy may carry newer messages than the list payload.
        merged = [resident.get(s.id, s) for s in fetched]
        self._sessions = local_only + merged
        self._loaded = True
        logger.info("Loaded %d sessions", len(fetched))
        return True

    async def select_session(self, session_id: str) -> Session | None:
        """Make a session active, fetching it when not resident.

        A resident session activates without awaiting anything. Otherwise
        the full session is fetched; if another selection was requested
        while the fetch was in flight, the fetched result is dropped.

        Args:
            session_id: Session to activate.

        Returns:
            The active session, or None when the fetch failed or was
            superseded.
        """
        self._desired_id = session_id
        resident = self.get(session_id)
        if resident is not None:
            self._active_id = session_id
            return resident

        try:
            fetched = await self._client.get_session(session_id)
        except TaurusClientError as exc:
            logger.warning("Failed to fetch session %s: %s", session_id, exc.message)
            if self._desired_id == session_id:
                self._notices.error(f"Failed to load chat: {exc.message}")
            return None

        if self._desired_id != session_id:
            logger.debug(
                "Discarding stale fetch of %s (now selecting %s)",
                session_id, self._desired_id,
            )
            return None

        # Keep whichever copy became resident while the fetch was in flight.
        session = self.get(session_id)
        if session is None:
            session = fetched
            self._sessions.insert(0, session)
        self._active_id = session_id
        return session

    def deselect(self) -> None:
        """Clear the active session (e.g. navigating to an empty chat)."""
        self._desired_id = None
        self._active_id = None

    # --- Mutations ---

    async def create_session(
        self, title: str = DEFAULT_SESSION_TITLE, session_id: str | None = None
    ) -> Session:
        """Create a session on the backend and activate it.

        The id is assigned client-side. While the backend call is in
        flight the id is a placeholder: messages appended to it are
        buffered and replayed once creation succeeds.

        Args:
            title: Initial session title.
            session_id: Explicit id; a fresh UUID4 when None.

        Returns:
            The created, now-active session.

        Raises:
            TaurusClientError: When the backend rejects the creation. No
                local state is changed in that case.
        """
        session_id = session_id or str(uuid.uuid4())
        self._pending[session_id] = []
        try:
            created = await self._client.create_session(session_id, self.user_id, title)
        except TaurusClientError:
            self._pending.pop(session_id, None)
            raise

        buffered = self._pending.pop(session_id, [])
        if created.id != session_id:
            logger.warning(
                "Backend assigned id %s to session created as %s", created.id, session_id
            )
        session = Session(
            id=created.id,
            owner_id=created.owner_id or (self.user_id or ""),
            title=created.title or title,
            # Epoch means the backend omitted createdAt.
            created_at=created.created_at if created.created_at.timestamp() > 0 else utc_now(),
            messages=list(created.messages),
        )
        session.messages.extend(buffered)
        self._sessions.insert(0, session)
        self._desired_id = session.id
        self._active_id = session.id
        logger.info("Created session %s", session.id)
        return session

    def append_message(self, session_id: str, message: Message) -> bool:
        """Append a message to a session's sequence.

        Messages for a placeholder whose creation is still in flight are
        buffered until creation resolves.

        Returns:
            True if the message was appended or buffered.
        """
        if session_id in self._pending:
            self._pending[session_id].append(message)
            return True
        session = self.get(session_id)
        if session is None:
            logger.warning("append_message: unknown session %s", session_id)
            return False
        if message.is_sentinel:
            session.messages = [m for m in session.messages if not m.is_sentinel]
        session.messages.append(message)
        return True

    def remove_message(self, session_id: str, message_id: str) -> bool:
        """Remove a message by id. Returns True if something was removed."""
        session = self.get(session_id)
        if session is None:
            return False
        before = len(session.messages)
        session.messages = [m for m in session.messages if m.id != message_id]
        return len(session.messages) != before

    def replace_messages(
        self, session_id: str, messages: list[Message], title: str | None = None
    ) -> bool:
        """Replace a session's whole message sequence with a snapshot.

        Applied to the session named by ``session_id`` regardless of which
        session is active. Unknown (e.g. deleted) sessions are ignored.
        """
        session = self.get(session_id)
        if session is None:
            logger.debug("replace_messages: session %s no longer resident", session_id)
            return False
        session.messages = list(messages)
        if title:
            session.title = title
        return True

    def update_title(self, session_id: str, title: str) -> bool:
        session = self.get(session_id)
        if session is None:
            return False
        session.title = title
        return True

    async def delete_session(self, session_id: str) -> DeleteResult:
        """Delete a session on the backend, then drop it locally.

        Nothing changes locally unless the backend confirms. Removal
        listeners (poll cancellation, attachment cleanup) run after the
        local removal.

        Returns:
            DeleteResult; ``was_active`` tells the caller to navigate away.
        """
        try:
            await self._client.delete_session(session_id)
        except TaurusClientError as exc:
            logger.warning("Failed to delete session %s: %s", session_id, exc.message)
            self._notices.error(f"Failed to delete chat: {exc.message}")
            return DeleteResult(deleted=False)

        self._sessions = [s for s in self._sessions if s.id != session_id]
        was_active = self._active_id == session_id
        if was_active:
            self._active_id = None
        if self._desired_id == session_id:
            self._desired_id = None
        for listener in self._removal_listeners:
            listener(session_id)
        self._notices.success("Chat deleted successfully")
        logger.info("Deleted session %s", session_id)
        return DeleteResult(deleted=True, was_active=was_active)
