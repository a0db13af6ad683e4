"""
Story domain model.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from epic_bot.core.constants import STORY_ID_FORMAT


def story_id_for(number: int) -> str:
    """Format a story sequence number as a stable id (story-001)."""
    return STORY_ID_FORMAT.format(number=number)


class StoryDraft(BaseModel):
    """Title, narrative and criteria of one story without identity."""

    title: str = Field(default="")
    story: str = Field(default="", description="As a ... I want ... so that ...")
    acceptance_criteria: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """True when neither a narrative nor any criteria were recovered."""
        return not self.story.strip() and not self.acceptance_criteria


class Story(StoryDraft):
    """One unit of work, optionally linked to a tracker issue."""

    id: str = Field(..., description="Stable identifier, story-NNN")
    github_issue_number: Optional[int] = Field(default=None)
    github_issue_url: Optional[str] = Field(default=None)

    @property
    def is_published(self) -> bool:
        """Check if the story has a tracker issue."""
        return self.github_issue_number is not None

    def apply_draft(self, draft: StoryDraft) -> None:
        """
        Overwrite the editable fields in place.

        The id and tracker linkage are left untouched so a later update can
        still target the same issue.
        """
        self.title = draft.title or self.title
        self.story = draft.story
        self.acceptance_criteria = list(draft.acceptance_criteria)

    def link(self, issue_number: int, issue_url: Optional[str]) -> None:
        """Record the tracker issue created for this story."""
        self.github_issue_number = issue_number
        self.github_issue_url = issue_url
