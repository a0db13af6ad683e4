"""
Health check endpoints.
"""

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends

from epic_bot import __version__
from epic_bot.api.deps import get_app_settings, get_engine
from epic_bot.core.config import Settings
from epic_bot.core.logging import get_logger
from epic_bot.services.conversation_engine import ConversationEngine

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(config: Settings = Depends(get_app_settings)) -> dict[str, Any]:
    """
    Basic health check endpoint.
    Returns application status.
    """
    return {
        "status": "healthy",
        "app": config.app_name,
        "version": __version__,
        "environment": config.app_env,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health/ready")
async def readiness_check(
    config: Settings = Depends(get_app_settings),
    engine: ConversationEngine = Depends(get_engine),
) -> dict[str, Any]:
    """
    Readiness check endpoint.
    Reports whether credentials are configured and how many conversations are active.
    """
    missing = config.missing_required()
    checks = {
        "app": True,
        "credentials": not missing,
    }

    all_healthy = all(checks.values())

    return {
        "status": "ready" if all_healthy else "not_ready",
        "checks": checks,
        "missing": missing,
        "active_sessions": await engine.active_session_count(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """
    Liveness check endpoint.
    Simple check that the application is running.
    """
    return {"status": "alive"}
