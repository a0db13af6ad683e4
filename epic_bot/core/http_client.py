"""
Base HTTP client for the external services (text model, tracker, chat).
Provides connection handling, retries and error translation.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from epic_bot.core.exceptions import ExternalServiceError
from epic_bot.core.logging import get_logger

logger = get_logger(__name__)


def is_transient(exc: BaseException) -> bool:
    """Transport failures, rate limiting and server errors are worth retrying."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, httpx.TransportError)


class BaseHTTPClient(ABC):
    """
    Abstract base class for outbound API clients.
    Provides common HTTP client functionality and error handling.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: Base URL of the API
            timeout: Request timeout in seconds
            transport: Optional transport override, used by tests
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    @abstractmethod
    def service_name(self) -> str:
        """Return the service identifier used in logs."""
        ...

    @abstractmethod
    def _default_headers(self) -> dict[str, str]:
        """Headers sent with every request."""
        ...

    @abstractmethod
    def _error(self, message: str, details: dict[str, Any]) -> ExternalServiceError:
        """Build the service-specific error."""
        ...

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                headers=self._default_headers(),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception(is_transient),
        reraise=True,
    )
    async def _send(
        self,
        method: str,
        endpoint: str,
        json: Optional[Any] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        client = await self._get_client()
        response = await client.request(method=method, url=endpoint, json=json, params=params)
        response.raise_for_status()
        return response

    async def _request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Any] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        """
        Make an HTTP request to the service.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint
            data: JSON request body
            params: Query parameters

        Returns:
            Decoded JSON response, None for an empty body

        Raises:
            ExternalServiceError: If the request fails after retries
        """
        try:
            response = await self._send(method, endpoint, json=data, params=params)
        except httpx.HTTPStatusError as e:
            logger.error(
                "External request failed",
                service=self.service_name,
                endpoint=endpoint,
                status_code=e.response.status_code,
                response_text=e.response.text[:500],
            )
            raise self._error(
                f"HTTP {e.response.status_code}: {e.response.text[:500]}",
                {"endpoint": endpoint, "status_code": e.response.status_code},
            ) from e
        except httpx.RequestError as e:
            logger.error(
                "External request error",
                service=self.service_name,
                endpoint=endpoint,
                error=str(e),
            )
            raise self._error(f"Request failed: {e}", {"endpoint": endpoint}) from e

        if not response.content:
            return None
        return response.json()

    async def _get(self, endpoint: str, params: Optional[dict[str, Any]] = None) -> Any:
        """Make a GET request."""
        return await self._request("GET", endpoint, params=params)

    async def _post(self, endpoint: str, data: Optional[Any] = None) -> Any:
        """Make a POST request."""
        return await self._request("POST", endpoint, data=data)

    async def _patch(self, endpoint: str, data: Optional[Any] = None) -> Any:
        """Make a PATCH request."""
        return await self._request("PATCH", endpoint, data=data)

    async def __aenter__(self) -> "BaseHTTPClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
