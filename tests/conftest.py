"""
Pytest configuration and fixtures.
"""

import itertools
from pathlib import Path
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from epic_bot.api.deps import get_engine, get_slack_client, get_slack_settings
from epic_bot.core.config import SessionSettings, SlackSettings
from epic_bot.domain.epic import Epic
from epic_bot.domain.story import Story, StoryDraft
from epic_bot.generation.gateway import GenerationGateway
from epic_bot.main import app
from epic_bot.repositories.cache_repo import AnswerCache
from epic_bot.repositories.epic_repo import FileEpicRepository
from epic_bot.repositories.session_repo import InMemorySessionRepository
from epic_bot.services.conversation_engine import ConversationEngine
from epic_bot.tracker.gateway import TrackerGateway
from epic_bot.tracker.models import ItemRef, PublishResult

SIGNING_SECRET = "test-signing-secret"

GENERATED_TEXT = """Here are your stories:

1. Student login
   As a student, I want to log in with my school account
   so that I can see my courses
   - Login succeeds with valid credentials
   - Error shown for invalid credentials

2. Course overview
   As a student, I want to see my enrolled courses so that I can find materials
   - Courses are listed alphabetically
"""

REVIEW_TEXT = """✅ Good:
- Stories are small

⚠️ Issues:
1. story-002 needs a criterion for students with no courses
2. Missing a story for logging out
"""


def make_stories(count: int = 2) -> list[Story]:
    """Fresh story objects; the engine mutates what it is given."""
    return [
        Story(
            id=f"story-{n:03d}",
            title=f"Story {n}",
            story=f"As a student, I want feature {n} so that I benefit",
            acceptance_criteria=[f"Criterion {n}"],
        )
        for n in range(1, count + 1)
    ]


def replies(chat: AsyncMock) -> list[str]:
    """Texts posted through chat.post_message, in order."""
    return [call.args[1] for call in chat.post_message.await_args_list]


@pytest.fixture
def chat() -> AsyncMock:
    """Chat port whose post_message returns increasing message ids."""
    counter = itertools.count(1)
    mock = AsyncMock()
    mock.post_message = AsyncMock(
        side_effect=lambda channel, text, thread_ts=None: f"1700000000.{next(counter):06d}"
    )
    mock.post_ephemeral = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def generation() -> AsyncMock:
    mock = AsyncMock(spec=GenerationGateway)
    mock.generate_stories.side_effect = lambda context: make_stories(2)
    mock.refine_stories.side_effect = lambda context, stories, feedback: make_stories(3)
    mock.review_epic.return_value = REVIEW_TEXT
    mock.refine_one_story.return_value = StoryDraft(
        title="Refined story",
        story="As a student, I want a refined feature so that it is clearer",
        acceptance_criteria=["Refined criterion"],
    )
    return mock


@pytest.fixture
def tracker() -> AsyncMock:
    mock = AsyncMock(spec=TrackerGateway)
    mock.fetch_readme.return_value = None

    async def create(epic: Epic) -> PublishResult:
        epic.link(7, "https://github.com/acme/app/milestone/7")
        children = []
        for offset, story in enumerate(epic.stories):
            story.link(100 + offset, f"https://github.com/acme/app/issues/{100 + offset}")
            children.append(ItemRef(number=100 + offset, title=story.title))
        return PublishResult(grouping=ItemRef(number=7, title=epic.title), children=children)

    async def update(epic: Epic) -> PublishResult:
        children = [ItemRef(number=s.github_issue_number or 0, title=s.title) for s in epic.stories]
        return PublishResult(grouping=ItemRef(number=epic.github_milestone_number, title=epic.title), children=children)

    async def update_one(story: Story) -> ItemRef:
        return ItemRef(number=story.github_issue_number, title=story.title)

    mock.create.side_effect = create
    mock.update.side_effect = update
    mock.update_one.side_effect = update_one
    mock.close.return_value = 3
    return mock


@pytest.fixture
def epic_repo(tmp_path: Path) -> FileEpicRepository:
    return FileEpicRepository(tmp_path / "epics")


@pytest.fixture
def answer_cache() -> AnswerCache:
    return AnswerCache()


@pytest.fixture
def engine(
    chat: AsyncMock,
    generation: AsyncMock,
    tracker: AsyncMock,
    epic_repo: FileEpicRepository,
    answer_cache: AnswerCache,
) -> ConversationEngine:
    return ConversationEngine(
        chat=chat,
        generation=generation,
        tracker=tracker,
        epic_repo=epic_repo,
        sessions=InMemorySessionRepository(),
        answer_cache=answer_cache,
        config=SessionSettings(retention_seconds=3600, sweep_interval_seconds=600, max_refinements=2),
    )


@pytest.fixture
def slack_settings() -> SlackSettings:
    return SlackSettings(bot_token="xoxb-test", signing_secret=SIGNING_SECRET)


@pytest.fixture
async def async_client(
    engine: ConversationEngine,
    chat: AsyncMock,
    slack_settings: SlackSettings,
) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing, wired to the fixture engine."""
    app.dependency_overrides[get_engine] = lambda: engine
    app.dependency_overrides[get_slack_client] = lambda: chat
    app.dependency_overrides[get_slack_settings] = lambda: slack_settings
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
