"""
Slack Web API client used to deliver replies.
"""

from typing import Any, Optional

import httpx

from epic_bot.core.config import SlackSettings
from epic_bot.core.exceptions import ChatError, ExternalServiceError
from epic_bot.core.http_client import BaseHTTPClient
from epic_bot.core.logging import get_logger

logger = get_logger(__name__)


class SlackClient(BaseHTTPClient):
    """
    Minimal Slack Web API client.

    Slack reports most failures with HTTP 200 and ``"ok": false``; those are
    raised as ChatError just like transport failures.
    """

    def __init__(
        self,
        config: SlackSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(base_url=config.api_url, timeout=config.timeout, transport=transport)
        self.config = config

    @property
    def service_name(self) -> str:
        return "slack"

    def _default_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.bot_token}",
            "Content-Type": "application/json; charset=utf-8",
        }

    def _error(self, message: str, details: dict[str, Any]) -> ExternalServiceError:
        return ChatError(message, details=details)

    async def _call(self, method: str, payload: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        data = await self._post(f"/{method}", data=payload or {})
        if not data or not data.get("ok"):
            error = (data or {}).get("error", "unknown_error")
            logger.error("Slack API call rejected", method=method, error=error)
            raise ChatError(error, details={"method": method})
        return data

    async def post_message(self, channel: str, text: str, thread_ts: Optional[str] = None) -> str:
        """
        Post a message, in a thread when thread_ts is given.

        Returns:
            The ts of the posted message
        """
        payload: dict[str, Any] = {"channel": channel, "text": text}
        if thread_ts:
            payload["thread_ts"] = thread_ts
        data = await self._call("chat.postMessage", payload)
        return data["ts"]

    async def post_ephemeral(self, channel: str, user: str, text: str) -> None:
        await self._call("chat.postEphemeral", {"channel": channel, "user": user, "text": text})

    async def post_blocks(
        self,
        channel: str,
        text: str,
        blocks: list[dict[str, Any]],
        thread_ts: Optional[str] = None,
    ) -> str:
        """Post a Block Kit message; text is the notification fallback."""
        payload: dict[str, Any] = {"channel": channel, "text": text, "blocks": blocks}
        if thread_ts:
            payload["thread_ts"] = thread_ts
        data = await self._call("chat.postMessage", payload)
        return data["ts"]

    async def auth_test(self) -> dict[str, Any]:
        """Verify the bot token; returns team and bot identity."""
        return await self._call("auth.test")
