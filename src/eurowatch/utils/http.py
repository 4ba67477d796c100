"""HTTP client with rate limiting and retry logic."""

import asyncio
from typing import Any, Optional

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..config import HttpConfig
from ..exceptions import FetchError, SittingNotFound
from .logging import get_logger


def _is_transient(exc: BaseException) -> bool:
    """Transport failures and 5xx responses are worth another attempt."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


class RateLimitedClient:
    """HTTP client with a politeness delay and automatic retries.

    A 404 is never retried and surfaces as ``SittingNotFound``; any other
    failure that survives the retry policy surfaces as ``FetchError``.
    """

    def __init__(
        self,
        config: Optional[HttpConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the HTTP client.

        Args:
            config: HTTP configuration. Uses defaults if not provided.
            transport: Optional transport, used by tests to mock the network.
        """
        self.config = config or HttpConfig()
        self.logger = get_logger()
        self._transport = transport
        self._last_request_time: float = 0
        self._lock = asyncio.Lock()
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout),
                follow_redirects=True,
                headers={"User-Agent": self.config.user_agent},
                transport=self._transport,
            )
        return self._client

    async def _rate_limit(self) -> None:
        """Enforce the politeness delay between requests."""
        async with self._lock:
            loop = asyncio.get_running_loop()
            elapsed = loop.time() - self._last_request_time

            if elapsed < self.config.rate_limit_delay:
                await asyncio.sleep(self.config.rate_limit_delay - elapsed)

            self._last_request_time = loop.time()

    def _create_retry_decorator(self):
        """Create a retry decorator with current config."""
        return retry(
            stop=stop_after_attempt(self.config.max_retries),
            wait=wait_exponential(
                multiplier=self.config.retry_backoff,
                max=self.config.retry_max_wait,
            ),
            retry=retry_if_exception(_is_transient),
            reraise=True,
            before_sleep=lambda retry_state: self.logger.warning(
                f"Retrying request (attempt {retry_state.attempt_number}): "
                f"{retry_state.outcome.exception() if retry_state.outcome else 'unknown'}"
            ),
        )

    async def get(self, url: str, params: Optional[dict[str, Any]] = None) -> httpx.Response:
        """Perform a GET request with rate limiting and retries.

        Args:
            url: URL to fetch
            params: Optional query parameters

        Returns:
            HTTP response

        Raises:
            SittingNotFound: The server answered 404
            FetchError: Any other failure after retries are exhausted
        """
        retry_decorator = self._create_retry_decorator()

        @retry_decorator
        async def _do_get() -> httpx.Response:
            await self._rate_limit()
            client = await self._get_client()
            response = await client.get(url, params=params)
            response.raise_for_status()
            return response

        try:
            return await _do_get()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise SittingNotFound(url) from e
            raise FetchError(f"HTTP {e.response.status_code} for {url}") from e
        except httpx.HTTPError as e:
            raise FetchError(f"Request to {url} failed: {e}") from e

    async def get_text(self, url: str, params: Optional[dict[str, Any]] = None) -> str:
        """Fetch URL and return text content."""
        response = await self.get(url, params=params)
        return response.text

    async def get_json(self, url: str, params: Optional[dict[str, Any]] = None) -> dict:
        """Fetch URL and return JSON content."""
        response = await self.get(url, params=params)
        return response.json()

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "RateLimitedClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
