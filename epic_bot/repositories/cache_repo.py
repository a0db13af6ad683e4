"""
Cache repository for remembering previous intake answers.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from epic_bot.core.constants import ANSWERS_CACHE_KEY
from epic_bot.core.logging import get_logger
from epic_bot.domain.session import Answers

logger = get_logger(__name__)


class InMemoryCacheRepository:
    """
    In-memory key-value cache with optional expiry.
    """

    def __init__(self, default_ttl_seconds: Optional[int] = None) -> None:
        """
        Initialize the cache.

        Args:
            default_ttl_seconds: Default TTL for cache entries, None keeps
                entries until overwritten
        """
        self._cache: dict[str, dict[str, Any]] = {}
        self.default_ttl = default_ttl_seconds

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    async def get(self, key: str) -> Optional[Any]:
        """Get a value from cache."""
        if key not in self._cache:
            return None

        entry = self._cache[key]
        if entry["expires_at"] is not None and entry["expires_at"] < self._now():
            del self._cache[key]
            return None

        return entry["value"]

    async def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: Optional[int] = None,
    ) -> None:
        """Set a value in cache."""
        ttl = ttl_seconds or self.default_ttl
        expires_at = self._now() + timedelta(seconds=ttl) if ttl else None

        self._cache[key] = {
            "value": value,
            "expires_at": expires_at,
            "created_at": self._now(),
        }

        logger.debug("Cache set", key=key, ttl=ttl)

    async def delete(self, key: str) -> bool:
        """Delete a key from cache."""
        return self._cache.pop(key, None) is not None

    async def exists(self, key: str) -> bool:
        """Check if a key exists in cache."""
        return await self.get(key) is not None

    async def clear(self) -> None:
        """Clear all cache entries."""
        self._cache.clear()
        logger.info("Cache cleared")


class AnswerCache:
    """
    Per-user memory of the last complete set of intake answers.
    """

    def __init__(self, cache: Optional[InMemoryCacheRepository] = None) -> None:
        self.cache = cache or InMemoryCacheRepository()

    async def get_answers(self, user_id: str) -> Optional[Answers]:
        """Get the cached answers for a user, if any."""
        data = await self.cache.get(ANSWERS_CACHE_KEY.format(user_id=user_id))
        if data is None:
            return None
        return Answers.model_validate(data)

    async def remember(self, user_id: str, answers: Answers) -> None:
        """Store a user's answers, replacing previous ones."""
        await self.cache.set(
            ANSWERS_CACHE_KEY.format(user_id=user_id),
            answers.model_dump(),
        )
        logger.debug("Answers cached", user_id=user_id)
