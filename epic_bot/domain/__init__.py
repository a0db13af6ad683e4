"""
Domain models: stories, epics and conversation sessions.
"""

from epic_bot.domain.epic import Epic
from epic_bot.domain.session import Answers, ReviewIssue, Session
from epic_bot.domain.story import Story, StoryDraft

__all__ = ["Answers", "Epic", "ReviewIssue", "Session", "Story", "StoryDraft"]
