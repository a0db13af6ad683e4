"""
API v1 routers.
"""

from epic_bot.api.v1 import health, slack

__all__ = ["health", "slack"]
