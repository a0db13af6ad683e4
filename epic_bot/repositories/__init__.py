"""
Repository implementations for data access.
"""

from epic_bot.repositories.base import BaseRepository
from epic_bot.repositories.cache_repo import AnswerCache, InMemoryCacheRepository
from epic_bot.repositories.epic_repo import FileEpicRepository
from epic_bot.repositories.session_repo import InMemorySessionRepository

__all__ = [
    "AnswerCache",
    "BaseRepository",
    "FileEpicRepository",
    "InMemoryCacheRepository",
    "InMemorySessionRepository",
]
