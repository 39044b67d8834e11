"""Model and agent catalogs with hardcoded fallbacks.

The backend lists the generation models and specialized agents a user
may pick. When either listing fails the client keeps working with a
minimal built-in list and tells the user.
"""

import logging

from src.cli.protocol import AIAgent, AIModel, TaurusClient, TaurusClientError
from src.engine.notices import NoticeBoard

logger = logging.getLogger(__name__)

FALLBACK_MODELS: tuple[AIModel, ...] = (
    AIModel(id="1", name="Claude 3.5 Sonnet", provider="Anthropic", model_id="claude-3.5-sonnet"),
    AIModel(id="2", name="Claude 3 Opus", provider="Anthropic", model_id="claude-3-opus"),
)

FALLBACK_AGENTS: tuple[AIAgent, ...] = (
    AIAgent(
        id="1",
        name="YouTube Analyzer",
        type="youtube",
        description="Analyzes YouTube video content and answers questions",
    ),
    AIAgent(
        id="2",
        name="Financial Analyst",
        type="financial",
        description="Analyzes stocks and financial data",
    ),
)


class ModelCatalog:
    """Cached model and agent listings."""

    def __init__(self, client: TaurusClient, notices: NoticeBoard) -> None:
        self._client = client
        self._notices = notices
        self.models: list[AIModel] = []
        self.agents: list[AIAgent] = []
        self.using_fallback_models = False
        self.using_fallback_agents = False

    async def load_models(self) -> list[AIModel]:
        """Fetch models, falling back to FALLBACK_MODELS on any failure."""
        try:
            models = await self._client.list_models()
        except TaurusClientError as exc:
            logger.error("Error loading AI models, using fallback: %s", exc.message)
            self._notices.error("Failed to load AI models")
            models = []
        self.using_fallback_models = not models
        self.models = models or list(FALLBACK_MODELS)
        return self.models

    async def load_agents(self) -> list[AIAgent]:
        """Fetch agents, falling back to FALLBACK_AGENTS on any failure."""
        try:
            agents = await self._client.list_agents()
        except TaurusClientError as exc:
            logger.error("Error loading AI agents, using fallback: %s", exc.message)
            self._notices.error("Failed to load AI agents")
            agents = []
        self.using_fallback_agents = not agents
        self.agents = agents or list(FALLBACK_AGENTS)
        return self.agents

    @property
    def default_model(self) -> AIModel | None:
        """First listed model, the one suggestion cards submit with."""
        return self.models[0] if self.models else None

    def find_model(self, identifier: str) -> AIModel | None:
        """Look a model up by catalog id or provider model id."""
        for model in self.models:
            if identifier in (model.id, model.model_id):
                return model
        return None
