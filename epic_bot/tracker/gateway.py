"""
Tracker Gateway: publishes epics as GitHub milestones with one issue per story.
"""

import base64
import binascii
from typing import Any, Optional

from epic_bot.core.config import GitHubSettings
from epic_bot.core.exceptions import EpicBotError, TrackerLinkError
from epic_bot.core.logging import get_logger
from epic_bot.domain.epic import Epic, generate_epic_id
from epic_bot.domain.story import Story
from epic_bot.repositories.epic_repo import FileEpicRepository
from epic_bot.tracker.client import GitHubClient
from epic_bot.tracker.formatting import (
    format_issue_body,
    format_issue_title,
    format_milestone_description,
    parse_issue_to_story,
    parse_milestone_description,
    split_milestone_title,
    story_sort_key,
)
from epic_bot.tracker.models import (
    GroupingSummary,
    ItemRef,
    PublishResult,
    TrackerGrouping,
    TrackerIssue,
)

logger = get_logger(__name__)


class TrackerGateway:
    """
    Create, update and close epics on the issue tracker.

    Identifiers returned by the tracker are written back onto the epic and
    saved to the epic store as soon as they are known, so a publish that
    fails halfway can be resumed without creating duplicates.
    """

    def __init__(
        self,
        client: GitHubClient,
        config: GitHubSettings,
        epic_repo: Optional[FileEpicRepository] = None,
    ) -> None:
        self.client = client
        self.config = config
        self.epic_repo = epic_repo

    async def _persist(self, epic: Epic) -> None:
        if self.epic_repo is not None:
            await self.epic_repo.save(epic)

    def _description(self, epic: Epic) -> str:
        return format_milestone_description(epic.users, epic.problem, epic.tech_stack)

    async def _create_child(self, epic: Epic, story: Story) -> ItemRef:
        data = await self.client.create_issue(
            title=format_issue_title(story),
            body=format_issue_body(story),
            labels=list(self.config.story_labels),
            milestone=epic.github_milestone_number,
        )
        story.link(data["number"], data.get("html_url"))
        await self._persist(epic)
        logger.info("Story issue created", story_id=story.id, issue=data["number"])
        return ItemRef(number=data["number"], title=story.title, url=data.get("html_url"))

    async def create(self, epic: Epic) -> PublishResult:
        """
        Publish an epic: milestone first, then one issue per story in order.

        Stories that are already linked (from an earlier, interrupted
        attempt) are not created again.
        """
        if not epic.is_published:
            data = await self.client.create_milestone(
                title=epic.tracker_title,
                description=self._description(epic),
            )
            epic.link(data["number"], data.get("html_url"))
            await self._persist(epic)
            logger.info("Milestone created", epic_id=epic.id, milestone=data["number"])
        else:
            logger.info("Resuming publish", epic_id=epic.id, milestone=epic.github_milestone_number)

        children: list[ItemRef] = []
        for story in epic.stories:
            if story.is_published:
                children.append(
                    ItemRef(number=story.github_issue_number, title=story.title, url=story.github_issue_url)
                )
                continue
            children.append(await self._create_child(epic, story))

        return PublishResult(
            grouping=ItemRef(
                number=epic.github_milestone_number,
                title=epic.title,
                url=epic.github_milestone_url,
            ),
            children=children,
        )

    async def update(self, epic: Epic) -> PublishResult:
        """
        Push the current epic over its existing milestone and issues.

        Stories without an issue yet are created inside the milestone.

        Raises:
            TrackerLinkError: If the epic was never published
        """
        if not epic.is_published:
            raise TrackerLinkError(
                "Epic does not have a GitHub milestone number. Cannot update issues.",
                item_id=epic.id,
            )

        children: list[ItemRef] = []
        for story in epic.stories:
            if story.is_published:
                children.append(await self.update_one(story))
            else:
                children.append(await self._create_child(epic, story))

        data = await self.client.update_milestone(
            epic.github_milestone_number,
            title=epic.tracker_title,
            description=self._description(epic),
        )
        logger.info("Milestone updated", epic_id=epic.id, milestone=epic.github_milestone_number)
        return PublishResult(
            grouping=ItemRef(
                number=epic.github_milestone_number,
                title=epic.title,
                url=(data or {}).get("html_url", epic.github_milestone_url),
            ),
            children=children,
        )

    async def update_one(self, story: Story) -> ItemRef:
        """
        Push one story over its existing issue.

        Raises:
            TrackerLinkError: If the story was never published
        """
        if not story.is_published:
            raise TrackerLinkError(
                "Story does not have a GitHub issue number. Cannot update.",
                item_id=story.id,
            )
        data = await self.client.update_issue(
            story.github_issue_number,
            title=format_issue_title(story),
            body=format_issue_body(story),
        )
        logger.info("Story issue updated", story_id=story.id, issue=story.github_issue_number)
        return ItemRef(
            number=story.github_issue_number,
            title=story.title,
            url=(data or {}).get("html_url", story.github_issue_url),
        )

    async def close(self, milestone_number: int) -> int:
        """
        Close every open issue of a milestone, then the milestone itself.

        Returns:
            Number of issues that were open
        """
        issues = await self.client.list_milestone_issues(milestone_number, state="all")
        open_issues = [issue for issue in issues if issue.get("state") == "open"]

        for issue in open_issues:
            await self.client.update_issue(issue["number"], state="closed")
            logger.debug("Story issue closed", issue=issue["number"])

        await self.client.update_milestone(milestone_number, state="closed")
        logger.info("Milestone closed", milestone=milestone_number, issues_closed=len(open_issues))
        return len(open_issues)

    async def list_open_groupings(self) -> list[GroupingSummary]:
        milestones = await self.client.list_milestones(state="open")
        return [
            GroupingSummary(
                number=m["number"],
                title=m.get("title", ""),
                description=m.get("description"),
                open_issues=m.get("open_issues", 0),
                closed_issues=m.get("closed_issues", 0),
            )
            for m in milestones or []
        ]

    async def fetch_grouping_with_children(self, milestone_number: int) -> TrackerGrouping:
        milestone = await self.client.get_milestone(milestone_number)
        issues = await self.client.list_milestone_issues(milestone_number, state="all")
        return TrackerGrouping(
            number=milestone["number"],
            title=milestone.get("title", ""),
            state=milestone.get("state", "open"),
            description=milestone.get("description"),
            url=milestone.get("html_url"),
            children=[_issue_record(issue) for issue in issues],
        )

    def epic_from_grouping(self, grouping: TrackerGrouping, created_by: str = "") -> Epic:
        """
        Rebuild an Epic document from tracker fields alone.

        The epic id and title come from the milestone title when it follows
        the ``epic-...: Title`` convention; otherwise a new id is assigned.
        """
        epic_id, title = split_milestone_title(grouping.title)
        metadata = parse_milestone_description(grouping.description)
        stories = sorted(
            (
                parse_issue_to_story(
                    {
                        "number": child.number,
                        "title": child.title,
                        "body": child.body,
                        "html_url": child.url,
                    }
                )
                for child in grouping.children
            ),
            key=story_sort_key,
        )
        epic = Epic(
            id=epic_id or generate_epic_id(),
            title=title,
            created_by=created_by,
            stories=stories,
            **metadata,
        )
        epic.link(grouping.number, grouping.url)
        logger.info("Epic rebuilt from tracker", epic_id=epic.id, stories=len(stories))
        return epic

    async def fetch_readme(self) -> Optional[str]:
        """README text of the repository, or None when it cannot be read."""
        try:
            data = await self.client.get_readme()
            content = base64.b64decode(data["content"]).decode("utf-8")
        except (EpicBotError, KeyError, TypeError, binascii.Error, UnicodeDecodeError) as e:
            logger.info("README not available", error=str(e))
            return None
        logger.debug("README fetched", chars=len(content))
        return content

    async def close_client(self) -> None:
        await self.client.close()


def _issue_record(issue: dict[str, Any]) -> TrackerIssue:
    return TrackerIssue(
        number=issue["number"],
        title=issue.get("title", ""),
        state=issue.get("state", "open"),
        body=issue.get("body"),
        url=issue.get("html_url"),
    )
