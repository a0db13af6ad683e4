"""
Tracker-side records returned by the Tracker Gateway.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ItemRef(BaseModel):
    """Reference to a milestone or issue."""

    number: int
    title: str
    url: Optional[str] = None


class PublishResult(BaseModel):
    """Outcome of publishing or updating an epic."""

    grouping: ItemRef
    children: list[ItemRef] = Field(default_factory=list)


class GroupingSummary(BaseModel):
    """Open milestone as shown in the review picker."""

    number: int
    title: str
    description: Optional[str] = None
    open_issues: int = 0
    closed_issues: int = 0


class TrackerIssue(BaseModel):
    number: int
    title: str
    state: str = "open"
    body: Optional[str] = None
    url: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.state == "open"


class TrackerGrouping(BaseModel):
    """Milestone with its child issues."""

    number: int
    title: str
    state: str = "open"
    description: Optional[str] = None
    url: Optional[str] = None
    children: list[TrackerIssue] = Field(default_factory=list)

    @property
    def open_children(self) -> list[TrackerIssue]:
        return [child for child in self.children if child.is_open]
