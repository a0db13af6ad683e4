"""
Session domain model: one in-flight conversation.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from epic_bot.core.constants import AnswerSlot, ConversationState
from epic_bot.domain.epic import Epic
from epic_bot.domain.story import Story


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Answers(BaseModel):
    """Answers to the three intake questions."""

    users: Optional[str] = None
    problem: Optional[str] = None
    tech_stack: Optional[str] = None

    def get(self, slot: AnswerSlot) -> Optional[str]:
        return getattr(self, slot.value)

    def set(self, slot: AnswerSlot, value: str) -> None:
        setattr(self, slot.value, value)

    @property
    def is_complete(self) -> bool:
        return all(self.get(slot) is not None for slot in AnswerSlot)


class ReviewIssue(BaseModel):
    """One numbered finding extracted from a review."""

    number: int
    text: str


class Session(BaseModel):
    """Conversation state for one chat thread."""

    id: str = Field(..., description="Chat thread identifier")
    state: ConversationState = Field(default=ConversationState.Q1)
    description: str = Field(default="")
    user_id: str = Field(default="")
    channel_id: str = Field(default="")

    answers: Answers = Field(default_factory=Answers)
    stories: list[Story] = Field(default_factory=list)
    epic: Optional[Epic] = Field(default=None)

    current_story_index: Optional[int] = Field(default=None)
    review_issues: list[ReviewIssue] = Field(default_factory=list)
    refinement_count: int = Field(default=0)
    modified_story_indices: Optional[set[int]] = Field(default=None)
    pending_feedback: Optional[str] = Field(default=None)
    repo_context: Optional[str] = Field(default=None)

    is_existing_epic: bool = Field(default=False)
    has_been_reviewed: bool = Field(default=False)

    # Deletion flow target
    delete_milestone_number: Optional[int] = Field(default=None)
    delete_milestone_title: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow)
    last_activity: datetime = Field(default_factory=utcnow)

    def touch(self, now: Optional[datetime] = None) -> None:
        """Refresh last activity; never moves backwards."""
        now = now or utcnow()
        if now > self.last_activity:
            self.last_activity = now

    @property
    def focused_story(self) -> Optional[Story]:
        if self.current_story_index is None:
            return None
        if 0 <= self.current_story_index < len(self.stories):
            return self.stories[self.current_story_index]
        return None

    @property
    def is_published(self) -> bool:
        return self.epic is not None and self.epic.is_published
