"""
Infrastructure layer: base async HTTP gateway with retry logic.
"""
import logging
from typing import Any, Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from arborinsight.config import settings
from arborinsight.domain.exceptions import UpstreamError


logger = logging.getLogger(__name__)


class ExternalAPIClient:
    """
    Base client for third-party HTTP providers.

    Transport errors and 5xx responses are retried with exponential backoff up
    to ``max_attempts`` (1 means a single failure surfaces immediately).
    4xx responses are never retried. Every failure leaves as UpstreamError:
    the provider status is mirrored when there is one, timeouts map to 504
    and other transport errors to 502.
    """

    service_name = "external service"

    def __init__(
        self,
        base_url: str,
        timeout: float,
        headers: Optional[Dict[str, str]] = None,
        max_attempts: Optional[int] = None,
    ):
        """Initialize the HTTP client with configuration."""
        self.base_url = base_url.rstrip("/")
        self.max_attempts = max_attempts or settings.max_retry_attempts
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"accept": "application/json", **(headers or {})},
            timeout=timeout,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    def _retrying(self, attempts: int) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(
                multiplier=settings.retry_backoff_multiplier,
                min=settings.retry_min_wait,
                max=settings.retry_max_wait,
            ),
            retry=retry_if_exception_type((httpx.HTTPStatusError, httpx.RequestError)),
            reraise=True,
        )

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        retry: bool = True,
        **kwargs
    ) -> Any:
        """
        Make an HTTP request with retry logic.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint path
            retry: False for non-idempotent calls, which are sent exactly once
            **kwargs: Additional arguments for the request

        Returns:
            Decoded JSON response body

        Raises:
            UpstreamError: If the request fails after retries
        """
        try:
            attempts = self.max_attempts if retry else 1
            async for attempt in self._retrying(attempts):
                with attempt:
                    return await self._send(method, endpoint, **kwargs)
        except httpx.HTTPStatusError as e:
            logger.error(
                f"{self.service_name} returned {e.response.status_code} for {endpoint}"
            )
            raise UpstreamError(
                f"{self.service_name} request failed: {e.response.status_code}",
                status_code=e.response.status_code,
                detail=_response_detail(e.response),
            )
        except httpx.TimeoutException as e:
            logger.error(f"{self.service_name} timed out on {endpoint}: {e}")
            raise UpstreamError(f"{self.service_name} timed out", status_code=504)
        except httpx.RequestError as e:
            logger.error(f"{self.service_name} unreachable on {endpoint}: {e}")
            raise UpstreamError(f"{self.service_name} request error: {str(e)}", status_code=502)

    async def _send(self, method: str, endpoint: str, **kwargs) -> Any:
        response = await self.client.request(method, endpoint, **kwargs)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            # Retry on server errors (5xx)
            if e.response.status_code >= 500:
                logger.warning(
                    f"{self.service_name} returned {e.response.status_code}, may retry"
                )
                raise
            # Don't retry on client errors (4xx)
            raise UpstreamError(
                f"{self.service_name} request failed: {e.response.status_code}",
                status_code=e.response.status_code,
                detail=_response_detail(e.response),
            )
        if response.status_code == 204 or not response.content:
            return None
        return response.json()


def _response_detail(response: httpx.Response) -> Any:
    """Provider error body, decoded when it is JSON."""
    try:
        return response.json()
    except ValueError:
        return response.text or None
