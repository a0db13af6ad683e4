"""Periodic eviction of idle conversations.

Runs for the lifetime of the web app; sessions idle for longer than the
retention window are dropped from the registry.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from epic_bot.core.logging import get_logger

if TYPE_CHECKING:
    from epic_bot.services.conversation_engine import ConversationEngine

logger = get_logger(__name__)


async def run_session_sweep(engine: ConversationEngine) -> int:
    """Run one sweep.

    Returns:
        Number of sessions removed
    """
    removed = await engine.sweep_stale_sessions()
    if removed > 0:
        logger.info("Session sweep completed", removed=removed)
    else:
        logger.debug("Session sweep completed, nothing to remove")
    return removed


async def schedule_periodic_sweep(engine: ConversationEngine, interval_seconds: int = 600) -> None:
    """Sweep at a fixed interval until cancelled.

    Args:
        engine: Conversation engine owning the registry
        interval_seconds: Seconds between sweeps
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await run_session_sweep(engine)
        except Exception as e:
            logger.error("Periodic session sweep failed", error=str(e))


def start_sweep_background_task(engine: ConversationEngine, interval_seconds: int = 600) -> asyncio.Task:
    """Start the sweep as a background coroutine.

    Returns:
        The asyncio Task object
    """
    return asyncio.create_task(schedule_periodic_sweep(engine, interval_seconds))
