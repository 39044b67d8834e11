"""ChatEngine — one client context wired to one backend client.

Builds the shared NoticeBoard and every engine component around a
single TaurusClient, runs the start-up sequence, and tears everything
down so no poll can fire after close.

Example:
    async with ChatEngine(client, hints=HintStore(path)) as engine:
        await engine.startup(redirect_url=url)
        result = await engine.submissions.submit("hi", model_id="m1")
"""

import asyncio
import logging
from collections.abc import Callable

from src.cli.protocol import TaurusClient
from src.engine.attachments import FileAttachmentPipeline
from src.engine.catalog import ModelCatalog
from src.engine.hints import HintStore
from src.engine.notices import NoticeBoard
from src.engine.poller import DEFAULT_INTERVAL_MS, DEFAULT_MAX_ATTEMPTS, ResponsePoller
from src.engine.providers import ProviderConnectionStore
from src.engine.session_store import SessionStore
from src.engine.submission import MessageSubmissionPipeline

logger = logging.getLogger(__name__)


class ChatEngine:
    """Composition root for the session synchronization engine.

    Attributes:
        notices: Board every component posts user-facing messages to.
        sessions: Session list and active session.
        catalog: Model and agent listings.
        submissions: Message submission pipeline.
        providers: Provider authorization state.
        attachments: Per-session attached files.
    """

    def __init__(
        self,
        client: TaurusClient,
        hints: HintStore | None = None,
        user_id: str | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        navigate: Callable[[str], object] | None = None,
    ) -> None:
        self.client = client
        self.notices = NoticeBoard()
        self.sessions = SessionStore(client, self.notices, user_id=user_id)
        self.catalog = ModelCatalog(client, self.notices)
        self.poller = ResponsePoller(
            client.get_session, max_attempts=max_attempts, interval_ms=interval_ms
        )
        self.submissions = MessageSubmissionPipeline(
            client, self.sessions, self.poller, self.notices
        )
        self.providers = ProviderConnectionStore(
            client, hints or HintStore(), self.notices, navigate=navigate
        )
        self.attachments = FileAttachmentPipeline(client, self.notices)
        self.sessions.add_removal_listener(self.attachments.forget)
        self._started = False
        self._closed = False

    async def __aenter__(self) -> "ChatEngine":
        await self.client.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def startup(
        self,
        redirect_url: str | None = None,
        load_sessions: bool = True,
        probe_providers: bool = True,
        load_catalog: bool = True,
    ) -> str | None:
        """Run the load sequence once.

        Redirect parameters are consumed first so a just-completed
        authorization shows up before the probes answer. The remaining
        loads run concurrently.

        Args:
            redirect_url: Address the client was entered at, if any.

        Returns:
            ``redirect_url`` with callback parameters stripped.
        """
        cleaned = None
        if redirect_url:
            cleaned = self.providers.consume_redirect(redirect_url)
        if self._started:
            return cleaned
        self._started = True
        if not self.client.has_token:
            self.notices.error("User not authenticated.")
            return cleaned

        jobs = []
        if load_sessions:
            jobs.append(self.sessions.load())
        if load_catalog:
            jobs.append(self.catalog.load_models())
            jobs.append(self.catalog.load_agents())
        if probe_providers:
            jobs.append(self.providers.probe_all())
        await asyncio.gather(*jobs)
        return cleaned

    async def aclose(self) -> None:
        """Cancel outstanding polls, then close the client."""
        if self._closed:
            return
        self._closed = True
        await self.submissions.aclose()
        await self.client.__aexit__(None, None, None)
        logger.debug("Chat engine closed")
