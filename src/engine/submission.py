"""Message submission pipeline.

One submission walks:

    IDLE -> ENSURING_SESSION -> SUBMITTING -> POLLING -> SETTLED

1. Ensure a session exists, creating one titled after the message when
   nothing is active. Concurrent submissions share one in-flight creation.
2. Append the user message optimistically.
3. POST the message. A failure settles with ERROR and leaves the user
   message visible; retrying is up to the caller.
4. Append the transient "typing" sentinel.
5. Poll the session for a reply newer than the user message.
6. On success replace the session's messages with the snapshot (which
   drops the sentinel). On timeout or error remove the sentinel and
   post a notice. A cancelled poll changes nothing.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from enum import Enum

from src.cli.protocol import (
    SENTINEL_MESSAGE_ID,
    Message,
    MessageRole,
    TaurusClient,
    TaurusClientError,
    utc_now,
)
from src.engine.notices import NoticeBoard
from src.engine.poller import PollHandle, PollOutcome, ResponsePoller
from src.engine.session_store import DEFAULT_SESSION_TITLE, SessionStore

logger = logging.getLogger(__name__)

TITLE_LENGTH = 30

# Prompt cards offered on an empty conversation: (title, subtitle).
SUGGESTIONS: tuple[tuple[str, str], ...] = (
    ("What are the advantages", "of using Next.js?"),
    ("Write code to", "demonstrate dijkstra's algorithm"),
    ("Help me write an essay", "about silicon valley"),
    ("What is the weather", "in San Francisco?"),
)


class SubmissionState(str, Enum):
    """Where the most recent submission currently is."""

    IDLE = "idle"
    ENSURING_SESSION = "ensuring_session"
    SUBMITTING = "submitting"
    POLLING = "polling"
    SETTLED = "settled"


class SubmissionOutcome(str, Enum):
    """How a submission settled."""

    SUCCESS = "success"
    TIMEOUT = "timeout"
    ERROR = "error"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


@dataclass
class SubmissionResult:
    """Result of MessageSubmissionPipeline.submit().

    Attributes:
        outcome: How the submission settled.
        session_id: Session the message went to (None if none was ensured).
        user_message: The optimistic user message, once appended.
        response: Assistant reply (SUCCESS only).
        error: Failure description (ERROR/TIMEOUT).
    """

    outcome: SubmissionOutcome
    session_id: str | None = None
    user_message: Message | None = None
    response: Message | None = None
    error: str | None = None


def derive_title(content: str) -> str:
    """Session title for a conversation that starts with ``content``."""
    return content[:TITLE_LENGTH]


class MessageSubmissionPipeline:
    """Drives submissions for one client context."""

    def __init__(
        self,
        client: TaurusClient,
        store: SessionStore,
        poller: ResponsePoller,
        notices: NoticeBoard,
    ) -> None:
        self._client = client
        self._store = store
        self._poller = poller
        self._notices = notices
        self._state = SubmissionState.IDLE
        self._polls: dict[str, PollHandle] = {}
        self._ensuring: asyncio.Task | None = None
        store.add_removal_listener(self.cancel)

    @property
    def state(self) -> SubmissionState:
        return self._state

    @property
    def processing(self) -> bool:
        """True while any reply is still being awaited."""
        return any(not handle.done for handle in self._polls.values())

    def is_polling(self, session_id: str) -> bool:
        handle = self._polls.get(session_id)
        return handle is not None and not handle.done

    async def _ensure_session(self, content: str) -> str:
        """Return the active session id, creating a session when needed.

        Raises:
            TaurusClientError: When session creation fails.
        """
        active = self._store.active_id
        if active is not None:
            return active
        if self._ensuring is None or self._ensuring.done():
            self._ensuring = asyncio.create_task(
                self._store.create_session(derive_title(content))
            )
        session = await asyncio.shield(self._ensuring)
        return session.id

    async def submit(
        self,
        content: str,
        model_id: str,
        agent_id: str | None = None,
    ) -> SubmissionResult:
        """Submit a user message and wait for the assistant reply.

        Args:
            content: Message text. Blank content is rejected.
            model_id: Requested generation model. Required.
            agent_id: Optional specialized handler.

        Returns:
            SubmissionResult describing how the submission settled.
        """
        if not content.strip() or not model_id:
            return SubmissionResult(outcome=SubmissionOutcome.REJECTED)

        self._state = SubmissionState.ENSURING_SESSION
        try:
            session_id = await self._ensure_session(content)
        except TaurusClientError as exc:
            logger.warning("Could not create session for submission: %s", exc.message)
            self._notices.error(f"Failed to send message: {exc.message}")
            self._state = SubmissionState.SETTLED
            return SubmissionResult(outcome=SubmissionOutcome.ERROR, error=exc.message)

        user_message = Message(
            id=str(uuid.uuid4()),
            role=MessageRole.USER,
            content=content,
            model_id=model_id,
            agent_id=agent_id,
            created_at=utc_now(),
        )
        self._store.append_message(session_id, user_message)

        self._state = SubmissionState.SUBMITTING
        try:
            await self._client.send_message(session_id, content, model_id, agent_id)
        except TaurusClientError as exc:
            logger.warning("Failed to send message to %s: %s", session_id, exc.message)
            self._notices.error(f"Failed to send message: {exc.message}")
            self._state = SubmissionState.SETTLED
            return SubmissionResult(
                outcome=SubmissionOutcome.ERROR,
                session_id=session_id,
                user_message=user_message,
                error=exc.message,
            )

        session = self._store.get(session_id)
        if session is not None and session.title in ("", DEFAULT_SESSION_TITLE):
            self._store.update_title(session_id, derive_title(content))

        self._store.append_message(session_id, Message.sentinel(model_id))

        self._state = SubmissionState.POLLING
        previous = self._polls.get(session_id)
        if previous is not None:
            previous.cancel()
        handle = self._poller.start(session_id, since=user_message.created_at)
        self._polls[session_id] = handle
        try:
            poll = await handle.wait()
        except asyncio.CancelledError:
            # A cancelled waiter takes its poll down with it.
            handle.cancel()
            raise
        finally:
            # An unsettled handle stays registered so aclose() can await it.
            if self._polls.get(session_id) is handle and handle.done:
                del self._polls[session_id]

        self._state = SubmissionState.SETTLED
        result = SubmissionResult(
            outcome=SubmissionOutcome.CANCELLED,
            session_id=session_id,
            user_message=user_message,
        )
        if poll.outcome is PollOutcome.SUCCESS:
            snapshot = poll.snapshot
            # The backend never renames a chat, so a default title there is stale.
            title = snapshot.title if snapshot.title != DEFAULT_SESSION_TITLE else None
            self._store.replace_messages(session_id, snapshot.messages, title=title or None)
            result.outcome = SubmissionOutcome.SUCCESS
            result.response = poll.response
        elif poll.outcome is PollOutcome.TIMEOUT:
            self._store.remove_message(session_id, SENTINEL_MESSAGE_ID)
            self._notices.error("AI response is taking longer than expected")
            result.outcome = SubmissionOutcome.TIMEOUT
            result.error = f"No response after {poll.attempts} attempts"
        elif poll.outcome is PollOutcome.ERROR:
            self._store.remove_message(session_id, SENTINEL_MESSAGE_ID)
            self._notices.error(f"Failed to fetch AI response: {poll.error}")
            result.outcome = SubmissionOutcome.ERROR
            result.error = poll.error
        else:
            logger.debug("Poll for %s cancelled; leaving state untouched", session_id)
        return result

    async def submit_suggestion(
        self, index: int, model_id: str | None
    ) -> SubmissionResult:
        """Submit one of the SUGGESTIONS cards.

        Args:
            index: Position in SUGGESTIONS.
            model_id: Model to use, normally the catalog's first model.
                None (no models loaded) makes this a no-op.
        """
        if not model_id:
            return SubmissionResult(outcome=SubmissionOutcome.REJECTED)
        title, subtitle = SUGGESTIONS[index]
        return await self.submit(f"{title} {subtitle}", model_id)

    def cancel(self, session_id: str | None = None) -> None:
        """Cancel outstanding polls for one session, or all of them."""
        if session_id is None:
            handles = list(self._polls.values())
        else:
            handles = [h for sid, h in self._polls.items() if sid == session_id]
        for handle in handles:
            handle.cancel()

    async def aclose(self) -> None:
        """Cancel every poll and wait until none can fire again."""
        handles = list(self._polls.values())
        self.cancel()
        for handle in handles:
            await handle.wait()
        if self._ensuring is not None and not self._ensuring.done():
            self._ensuring.cancel()
