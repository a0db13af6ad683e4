"""
Issue tracker backend: GitHub client, field formatting and the Tracker Gateway.
"""

from epic_bot.tracker.client import GitHubClient
from epic_bot.tracker.gateway import TrackerGateway
from epic_bot.tracker.models import (
    GroupingSummary,
    ItemRef,
    PublishResult,
    TrackerGrouping,
    TrackerIssue,
)

__all__ = [
    "GitHubClient",
    "GroupingSummary",
    "ItemRef",
    "PublishResult",
    "TrackerGateway",
    "TrackerGrouping",
    "TrackerIssue",
]
