"""
Session registry: the single source of truth for active conversations.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from epic_bot.core.exceptions import SessionConflictError
from epic_bot.core.logging import get_logger
from epic_bot.domain.session import Session
from epic_bot.repositories.base import BaseRepository

logger = get_logger(__name__)


class InMemorySessionRepository(BaseRepository[Session]):
    """
    In-memory session registry keyed by chat thread id.

    Every mutation is a single dict operation, so removal of a session is
    atomic with respect to other coroutines.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    async def create(self, entity: Session, overwrite: bool = False) -> Session:
        """
        Register a new session.

        Raises:
            SessionConflictError: If the id is taken and overwrite is False
        """
        if entity.id in self._sessions and not overwrite:
            raise SessionConflictError(entity.id)
        if entity.id in self._sessions:
            logger.warning("Session overwritten", session_id=entity.id)
        self._sessions[entity.id] = entity
        logger.debug("Session created", session_id=entity.id, state=entity.state.value)
        return entity

    async def get(self, id: str) -> Optional[Session]:
        """Get a session by ID."""
        return self._sessions.get(id)

    async def save(self, entity: Session) -> Session:
        """Save a session."""
        self._sessions[entity.id] = entity
        return entity

    async def delete(self, id: str) -> bool:
        """Delete a session by ID."""
        if self._sessions.pop(id, None) is not None:
            logger.debug("Session deleted", session_id=id)
            return True
        return False

    async def list(
        self,
        filters: Optional[dict[str, Any]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Session]:
        """List sessions with optional filters."""
        sessions = list(self._sessions.values())

        if filters:
            if "state" in filters:
                sessions = [s for s in sessions if s.state == filters["state"]]
            if "user_id" in filters:
                sessions = [s for s in sessions if s.user_id == filters["user_id"]]

        sessions.sort(key=lambda s: s.created_at, reverse=True)

        return sessions[offset : offset + limit]

    async def exists(self, id: str) -> bool:
        """Check if a session exists."""
        return id in self._sessions

    async def find_stale(self, cutoff: datetime) -> list[str]:
        """Ids of sessions whose last activity is older than cutoff."""
        return [
            session_id
            for session_id, session in self._sessions.items()
            if session.last_activity < cutoff
        ]

    def __len__(self) -> int:
        return len(self._sessions)
