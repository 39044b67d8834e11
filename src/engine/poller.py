"""Bounded, cancellable response polling.

The backend computes assistant replies out-of-band, so after a message
is submitted the client re-fetches the session snapshot on a fixed
interval until an assistant message newer than the user's message
shows up, the attempt budget runs out, or a fetch fails.

Example:
    poller = ResponsePoller(client.get_session, max_attempts=30, interval_ms=2000)
    handle = poller.start("sess-1", since=user_message.created_at)
    result = await handle.wait()
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from src.cli.protocol import Message, MessageRole, Session, TaurusClientError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 30
DEFAULT_INTERVAL_MS = 2000


class PollOutcome(str, Enum):
    """How a poll loop settled."""

    SUCCESS = "success"
    TIMEOUT = "timeout"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass
class PollResult:
    """Terminal state of one poll loop.

    Attributes:
        outcome: How the loop settled.
        session_id: Session the loop was started for.
        attempts: Snapshot fetches performed.
        snapshot: Session snapshot containing the reply (SUCCESS only).
        response: First assistant message newer than ``since`` (SUCCESS only).
        error: Failure description (ERROR only).
    """

    outcome: PollOutcome
    session_id: str
    attempts: int
    snapshot: Session | None = None
    response: Message | None = None
    error: str | None = None


def find_response(session: Session, since: datetime) -> Message | None:
    """Return the first assistant message created strictly after ``since``.

    Sentinel placeholders never count; they only exist client-side.
    """
    for message in session.messages:
        if (
            message.role is MessageRole.ASSISTANT
            and not message.is_sentinel
            and message.created_at > since
        ):
            return message
    return None


class PollHandle:
    """Explicit handle over a running poll loop.

    Cancelling the handle cancels the underlying task, including any
    pending interval sleep, so no further fetch is issued afterwards.
    """

    def __init__(self, session_id: str, task: "asyncio.Task[PollResult]") -> None:
        self.session_id = session_id
        self._task = task

    @property
    def done(self) -> bool:
        return self._task.done()

    @property
    def cancelled(self) -> bool:
        return self._task.cancelled()

    def cancel(self) -> None:
        """Stop the loop. Idempotent."""
        if not self._task.done():
            logger.debug("Cancelling poll for session %s", self.session_id)
            self._task.cancel()

    async def wait(self) -> PollResult:
        """Wait for the loop to settle.

        Returns:
            The loop's PollResult, or a CANCELLED result when the handle
            was cancelled before the loop settled.
        """
        try:
            return await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if self._task.cancelled():
                return PollResult(
                    outcome=PollOutcome.CANCELLED,
                    session_id=self.session_id,
                    attempts=0,
                )
            raise


class ResponsePoller:
    """Repeatedly fetch a session until its reply arrives.

    The poller never touches client state; it only reports a PollResult.
    Applying the result is the caller's job.
    """

    def __init__(
        self,
        fetch_session: Callable[[str], Awaitable[Session]],
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the poller.

        Args:
            fetch_session: Coroutine returning a full session snapshot.
            max_attempts: Snapshot fetches before giving up.
            interval_ms: Delay before each fetch, in milliseconds.
            sleep: Awaitable delay, replaceable in tests.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if interval_ms < 0:
            raise ValueError("interval_ms must be >= 0")
        self._fetch_session = fetch_session
        self.max_attempts = max_attempts
        self.interval_ms = interval_ms
        self._sleep = sleep

    async def poll(self, session_id: str, since: datetime) -> PollResult:
        """Run the loop to completion.

        Each attempt waits ``interval_ms`` and then fetches one snapshot.
        A failed fetch ends the loop immediately with ERROR.

        Args:
            session_id: Session to watch.
            since: Creation time of the triggering user message.

        Returns:
            PollResult with outcome SUCCESS, TIMEOUT, or ERROR.
        """
        interval = self.interval_ms / 1000
        for attempt in range(1, self.max_attempts + 1):
            await self._sleep(interval)
            try:
                snapshot = await self._fetch_session(session_id)
            except TaurusClientError as exc:
                logger.warning(
                    "Poll attempt %d for session %s failed: %s",
                    attempt, session_id, exc.message,
                )
                return PollResult(
                    outcome=PollOutcome.ERROR,
                    session_id=session_id,
                    attempts=attempt,
                    error=exc.message,
                )
            response = find_response(snapshot, since)
            if response is not None:
                logger.debug(
                    "Reply for session %s found on attempt %d", session_id, attempt
                )
                return PollResult(
                    outcome=PollOutcome.SUCCESS,
                    session_id=session_id,
                    attempts=attempt,
                    snapshot=snapshot,
                    response=response,
                )

        logger.info(
            "No reply for session %s after %d attempts", session_id, self.max_attempts
        )
        return PollResult(
            outcome=PollOutcome.TIMEOUT,
            session_id=session_id,
            attempts=self.max_attempts,
        )

    def start(self, session_id: str, since: datetime) -> PollHandle:
        """Schedule the loop as a task and return its handle."""
        task = asyncio.create_task(
            self.poll(session_id, since), name=f"poll:{session_id}"
        )
        return PollHandle(session_id, task)
