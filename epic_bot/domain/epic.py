"""
Epic domain model: the persisted unit of work.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from epic_bot.core.constants import EPIC_ID_PREFIX
from epic_bot.domain.story import Story


def generate_epic_id(now: Optional[datetime] = None) -> str:
    """Build an epic id from a timestamp, e.g. epic-2025-10-19T03-14-22."""
    now = now or datetime.now(timezone.utc)
    return f"{EPIC_ID_PREFIX}{now.strftime('%Y-%m-%dT%H-%M-%S')}"


class Epic(BaseModel):
    """Epic document with metadata and an ordered list of stories."""

    id: str = Field(..., description="epic-<timestamp>, immutable once assigned")
    title: str = Field(default="")
    created_by: str = Field(default="")
    created_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    users: str = Field(default="")
    problem: str = Field(default="")
    tech_stack: str = Field(default="")
    stories: list[Story] = Field(default_factory=list)

    github_milestone_number: Optional[int] = Field(default=None)
    github_milestone_url: Optional[str] = Field(default=None)

    @property
    def is_published(self) -> bool:
        """Check if the epic has a tracker milestone."""
        return self.github_milestone_number is not None

    @property
    def tracker_title(self) -> str:
        """Title used for the tracker grouping."""
        return f"{self.id}: {self.title}"

    def link(self, milestone_number: int, milestone_url: Optional[str]) -> None:
        """Record the tracker milestone created for this epic."""
        self.github_milestone_number = milestone_number
        self.github_milestone_url = milestone_url

    def to_document(self) -> dict[str, Any]:
        """Serialize to the persisted JSON layout."""
        return self.model_dump(mode="json", exclude_none=True)

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "Epic":
        """Load from the persisted JSON layout."""
        return cls.model_validate(data)
