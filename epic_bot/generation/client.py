"""
Anthropic Messages API client.
"""

from typing import Any, Optional

import httpx

from epic_bot.core.config import AnthropicSettings
from epic_bot.core.exceptions import ExternalServiceError, GenerationError
from epic_bot.core.http_client import BaseHTTPClient
from epic_bot.core.logging import get_logger

logger = get_logger(__name__)


class AnthropicClient(BaseHTTPClient):
    """
    Thin client over POST /v1/messages.

    Only single-turn, text-only user prompts are needed; the reply text is the
    first content block.
    """

    def __init__(
        self,
        config: AnthropicSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(base_url=config.api_url, timeout=config.timeout, transport=transport)
        self.config = config

    @property
    def service_name(self) -> str:
        return "anthropic"

    def _default_headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.config.api_key,
            "anthropic-version": self.config.api_version,
            "content-type": "application/json",
        }

    def _error(self, message: str, details: dict[str, Any]) -> ExternalServiceError:
        return GenerationError(message, details=details)

    async def complete(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        """
        Send one user prompt and return the generated text.

        Raises:
            GenerationError: On transport failure or a reply without text
        """
        payload = {
            "model": self.config.model,
            "max_tokens": max_tokens or self.config.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        logger.debug("Calling text model", model=self.config.model, prompt_chars=len(prompt))
        data = await self._post("/v1/messages", data=payload)

        try:
            text = data["content"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise GenerationError(
                "Response did not contain a text block",
                details={"stop_reason": data.get("stop_reason") if isinstance(data, dict) else None},
            ) from e

        usage = data.get("usage") or {}
        logger.info(
            "Text model responded",
            response_chars=len(text),
            input_tokens=usage.get("input_tokens"),
            output_tokens=usage.get("output_tokens"),
        )
        return text
