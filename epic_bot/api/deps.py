"""
API dependencies for dependency injection.
"""

from typing import Optional

from epic_bot.api.slack_client import SlackClient
from epic_bot.core.config import Settings, SlackSettings, settings
from epic_bot.generation.client import AnthropicClient
from epic_bot.generation.gateway import GenerationGateway
from epic_bot.repositories.cache_repo import AnswerCache, InMemoryCacheRepository
from epic_bot.repositories.epic_repo import FileEpicRepository
from epic_bot.repositories.session_repo import InMemorySessionRepository
from epic_bot.services.conversation_engine import ConversationEngine
from epic_bot.tracker.client import GitHubClient
from epic_bot.tracker.gateway import TrackerGateway


class ServiceContainer:
    """
    Container for all application services.
    Provides singleton instances of services.
    """

    _instance: Optional["ServiceContainer"] = None

    def __init__(self, config: Optional[Settings] = None) -> None:
        self.settings = config or settings
        self._initialized = False

    @classmethod
    def get_instance(cls) -> "ServiceContainer":
        """Get the singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def initialize(self) -> None:
        """Initialize all services."""
        if self._initialized:
            return

        # Outbound clients
        self._slack_client = SlackClient(self.settings.slack)
        self._anthropic_client = AnthropicClient(self.settings.anthropic)
        self._github_client = GitHubClient(self.settings.github)

        # Repositories
        self._session_repository = InMemorySessionRepository()
        self._epic_repository = FileEpicRepository(self.settings.storage.epics_dir)
        self._answer_cache = AnswerCache(InMemoryCacheRepository())

        # Gateways
        self._generation_gateway = GenerationGateway(
            client=self._anthropic_client,
            config=self.settings.anthropic,
            excerpt_chars=self.settings.github.readme_excerpt_chars,
        )
        self._tracker_gateway = TrackerGateway(
            client=self._github_client,
            config=self.settings.github,
            epic_repo=self._epic_repository,
        )

        self._engine = ConversationEngine(
            chat=self._slack_client,
            generation=self._generation_gateway,
            tracker=self._tracker_gateway,
            epic_repo=self._epic_repository,
            sessions=self._session_repository,
            answer_cache=self._answer_cache,
            config=self.settings.session,
        )

        self._initialized = True

    @property
    def engine(self) -> ConversationEngine:
        """Get the conversation engine."""
        self.initialize()
        return self._engine

    @property
    def slack_client(self) -> SlackClient:
        """Get the Slack client."""
        self.initialize()
        return self._slack_client

    async def shutdown(self) -> None:
        """Close outbound HTTP clients."""
        if not self._initialized:
            return
        await self._slack_client.close()
        await self._anthropic_client.close()
        await self._github_client.close()


# Singleton container instance
container = ServiceContainer.get_instance()


# Dependency functions for FastAPI
def get_engine() -> ConversationEngine:
    """Get the conversation engine instance."""
    return container.engine


def get_slack_client() -> SlackClient:
    """Get the Slack client instance."""
    return container.slack_client


def get_slack_settings() -> SlackSettings:
    """Get the Slack settings used for request verification."""
    return container.settings.slack


def get_app_settings() -> Settings:
    return container.settings
