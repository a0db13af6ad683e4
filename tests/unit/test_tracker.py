"""
Tests for the Tracker Gateway and the milestone/issue field conversions.
"""

import base64
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from epic_bot.core.config import GitHubSettings
from epic_bot.core.exceptions import TrackerError, TrackerLinkError
from epic_bot.domain.epic import Epic
from epic_bot.repositories.epic_repo import FileEpicRepository
from epic_bot.tracker.client import GitHubClient
from epic_bot.tracker.formatting import (
    format_issue_body,
    format_milestone_description,
    parse_issue_to_story,
    parse_milestone_description,
    split_milestone_title,
)
from epic_bot.tracker.gateway import TrackerGateway
from epic_bot.tracker.models import TrackerGrouping, TrackerIssue

from tests.conftest import make_stories


@pytest.fixture
def github() -> AsyncMock:
    mock = AsyncMock(spec=GitHubClient)
    mock.create_milestone.return_value = {"number": 7, "html_url": "https://github.com/acme/app/milestone/7"}
    numbers = iter(range(100, 200))

    async def create_issue(title, body, labels, milestone=None):
        number = next(numbers)
        return {"number": number, "html_url": f"https://github.com/acme/app/issues/{number}"}

    mock.create_issue.side_effect = create_issue
    mock.update_issue.return_value = {}
    mock.update_milestone.return_value = {"html_url": "https://github.com/acme/app/milestone/7"}
    return mock


@pytest.fixture
def gateway(github: AsyncMock, tmp_path: Path) -> TrackerGateway:
    return TrackerGateway(
        client=github,
        config=GitHubSettings(token="t", owner="acme", repo="app"),
        epic_repo=FileEpicRepository(tmp_path),
    )


def new_epic(count: int = 2) -> Epic:
    return Epic(
        id="epic-2025-01-01T00-00-00",
        title="Dashboard",
        users="students",
        problem="grades are hidden",
        tech_stack="React",
        stories=make_stories(count),
    )


class TestCreate:
    """Tests for first-time publishing."""

    @pytest.mark.asyncio
    async def test_creates_milestone_then_issues_in_order(self, gateway: TrackerGateway, github: AsyncMock) -> None:
        epic = new_epic()

        result = await gateway.create(epic)

        assert github.create_milestone.await_args.kwargs["title"] == "epic-2025-01-01T00-00-00: Dashboard"
        titles = [call.kwargs["title"] for call in github.create_issue.await_args_list]
        assert titles == ["story-001: Story 1", "story-002: Story 2"]
        assert all(call.kwargs["milestone"] == 7 for call in github.create_issue.await_args_list)
        assert github.create_issue.await_args.kwargs["labels"] == ["user-story", "epic-bot"]
        assert result.grouping.number == 7
        assert [child.number for child in result.children] == [100, 101]
        assert [s.github_issue_number for s in epic.stories] == [100, 101]

    @pytest.mark.asyncio
    async def test_links_are_persisted_as_they_arrive(
        self, gateway: TrackerGateway, github: AsyncMock
    ) -> None:
        epic = new_epic()
        github.create_issue.side_effect = [{"number": 100, "html_url": None}, TrackerError("HTTP 502")]

        with pytest.raises(TrackerError):
            await gateway.create(epic)

        stored = await gateway.epic_repo.get(epic.id)
        assert stored.github_milestone_number == 7
        assert stored.stories[0].github_issue_number == 100
        assert stored.stories[1].github_issue_number is None

    @pytest.mark.asyncio
    async def test_resume_skips_linked_items(self, gateway: TrackerGateway, github: AsyncMock) -> None:
        epic = new_epic()
        epic.link(7, None)
        epic.stories[0].link(50, None)

        result = await gateway.create(epic)

        github.create_milestone.assert_not_awaited()
        assert github.create_issue.await_count == 1
        assert [child.number for child in result.children] == [50, 100]
        assert epic.stories[1].github_issue_number == 100


class TestUpdate:
    """Tests for updating a published epic."""

    @pytest.mark.asyncio
    async def test_update_requires_milestone(self, gateway: TrackerGateway) -> None:
        with pytest.raises(TrackerLinkError):
            await gateway.update(new_epic())

    @pytest.mark.asyncio
    async def test_update_patches_linked_and_creates_new(self, gateway: TrackerGateway, github: AsyncMock) -> None:
        epic = new_epic(3)
        epic.link(7, None)
        epic.stories[0].link(50, None)
        epic.stories[1].link(51, None)

        result = await gateway.update(epic)

        assert [call.args[0] for call in github.update_issue.await_args_list] == [50, 51]
        github.create_issue.assert_awaited_once()
        assert epic.stories[2].github_issue_number == 100
        github.update_milestone.assert_awaited_once()
        assert result.grouping.url == "https://github.com/acme/app/milestone/7"

    @pytest.mark.asyncio
    async def test_update_one_requires_issue(self, gateway: TrackerGateway) -> None:
        with pytest.raises(TrackerLinkError):
            await gateway.update_one(make_stories(1)[0])

    @pytest.mark.asyncio
    async def test_update_one_patches_title_and_body(self, gateway: TrackerGateway, github: AsyncMock) -> None:
        story = make_stories(1)[0]
        story.link(42, "https://github.com/acme/app/issues/42")

        ref = await gateway.update_one(story)

        github.update_issue.assert_awaited_once_with(
            42, title="story-001: Story 1", body=format_issue_body(story)
        )
        assert ref.number == 42
        assert ref.url == "https://github.com/acme/app/issues/42"


class TestClose:
    """Tests for closing an epic."""

    @pytest.mark.asyncio
    async def test_closes_open_issues_then_milestone(self, gateway: TrackerGateway, github: AsyncMock) -> None:
        github.list_milestone_issues.return_value = [
            {"number": 100, "state": "open"},
            {"number": 101, "state": "closed"},
            {"number": 102, "state": "open"},
        ]

        closed = await gateway.close(7)

        assert closed == 2
        assert [call.args[0] for call in github.update_issue.await_args_list] == [100, 102]
        github.update_milestone.assert_awaited_once_with(7, state="closed")


class TestReadingBack:
    """Tests for listing, fetching and rebuilding epics."""

    @pytest.mark.asyncio
    async def test_list_open_groupings(self, gateway: TrackerGateway, github: AsyncMock) -> None:
        github.list_milestones.return_value = [{"number": 7, "title": "epic-1: Dashboard", "open_issues": 2}]

        summaries = await gateway.list_open_groupings()

        assert summaries[0].number == 7
        assert summaries[0].open_issues == 2

    @pytest.mark.asyncio
    async def test_fetch_readme_decodes_content(self, gateway: TrackerGateway, github: AsyncMock) -> None:
        github.get_readme.return_value = {"content": base64.b64encode("# Acme".encode()).decode()}

        assert await gateway.fetch_readme() == "# Acme"

    @pytest.mark.asyncio
    async def test_fetch_readme_missing_is_none(self, gateway: TrackerGateway, github: AsyncMock) -> None:
        github.get_readme.side_effect = TrackerError("HTTP 404: Not Found")

        assert await gateway.fetch_readme() is None

    @pytest.mark.asyncio
    async def test_fetch_grouping_with_children(self, gateway: TrackerGateway, github: AsyncMock) -> None:
        github.get_milestone.return_value = {"number": 7, "title": "epic-1: Dashboard", "html_url": "u"}
        github.list_milestone_issues.return_value = [
            {"number": 100, "title": "story-001: A", "state": "open"},
            {"number": 101, "title": "story-002: B", "state": "closed"},
        ]

        grouping = await gateway.fetch_grouping_with_children(7)

        assert grouping.url == "u"
        assert [issue.number for issue in grouping.open_children] == [100]

    def test_epic_from_grouping(self, gateway: TrackerGateway) -> None:
        grouping = TrackerGrouping(
            number=7,
            title="epic-2025-01-01T00-00-00: Dashboard",
            description=format_milestone_description("students", "grades are hidden", "React"),
            url="https://github.com/acme/app/milestone/7",
            children=[
                TrackerIssue(number=101, title="story-002: Second", body="As a student, I want B\n\n## Acceptance Criteria\n- [ ] b"),
                TrackerIssue(number=100, title="story-001: First", body="As a student, I want A\n\n## Acceptance Criteria\n- [ ] a"),
            ],
        )

        epic = gateway.epic_from_grouping(grouping, created_by="U1")

        assert epic.id == "epic-2025-01-01T00-00-00"
        assert epic.title == "Dashboard"
        assert epic.users == "students"
        assert epic.tech_stack == "React"
        assert epic.github_milestone_number == 7
        assert [s.id for s in epic.stories] == ["story-001", "story-002"]
        assert epic.stories[0].acceptance_criteria == ["a"]


class TestFormatting:
    """Tests for milestone and issue field conversion."""

    def test_metadata_comment_is_preferred(self) -> None:
        description = format_milestone_description("students", "multi\nline problem", "React")

        assert parse_milestone_description(description) == {
            "users": "students",
            "problem": "multi\nline problem",
            "tech_stack": "React",
        }

    def test_legacy_description(self) -> None:
        description = (
            "## Overview\nGrades are hidden\n\n**Users:** students\n**Tech Stack:** React\n\n---\n*Created*"
        )

        assert parse_milestone_description(description) == {
            "users": "students",
            "problem": "Grades are hidden",
            "tech_stack": "React",
        }

    def test_empty_description(self) -> None:
        assert parse_milestone_description(None) == {"users": "", "problem": "", "tech_stack": ""}

    def test_issue_round_trip(self) -> None:
        story = make_stories(1)[0]
        body = format_issue_body(story)

        parsed = parse_issue_to_story({"number": 100, "title": "story-001: Story 1", "body": body})

        assert parsed.id == "story-001"
        assert parsed.story == story.story
        assert parsed.acceptance_criteria == story.acceptance_criteria
        assert parsed.github_issue_number == 100

    def test_issue_without_story_id_uses_number(self) -> None:
        parsed = parse_issue_to_story({"number": 12, "title": "Hand-written issue", "body": None})

        assert parsed.id == "story-012"
        assert parsed.title == "Hand-written issue"
        assert parsed.acceptance_criteria == []

    def test_split_milestone_title(self) -> None:
        assert split_milestone_title("epic-2025-01-01T00-00-00: Dashboard") == (
            "epic-2025-01-01T00-00-00",
            "Dashboard",
        )
        assert split_milestone_title("Sprint 4") == (None, "Sprint 4")
