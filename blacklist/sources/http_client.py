"""
HTTP infrastructure for feed downloads and remote lookups.

Provides:
- APIKeyRotator: Round-robin rotation for comma-separated API keys
- RetryConfig: Exponential backoff configuration
- HTTPClient: Async HTTP client with automatic retry and key rotation
- fetch_lines / fetch_zipped_lines: line readers for plain and ZIP feeds

Feeds are downloaded whole (the largest are tens of MB compressed) and then
iterated line by line, so a transport failure surfaces before any entry of
the feed has been emitted.
"""

import asyncio
import io
import logging
import random
import zipfile
from collections.abc import AsyncIterator, Iterator
from dataclasses import dataclass, field
from typing import Any

import httpx

logger = logging.getLogger(__name__)

USER_AGENT = "blacklist-cache/0.1 (+feed mirror)"


@dataclass
class APIKeyRotator:
    """
    Round-robin API key rotation from a comma-separated setting.

    Example:
        rotator = APIKeyRotator.from_env_var("key1,key2")
        key = await rotator.get_key()
    """

    keys: list[str]
    _current_index: int = field(default=0, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @classmethod
    def from_env_var(cls, value: str | None) -> "APIKeyRotator | None":
        """Create a rotator from comma-separated keys, or None if there are none."""
        if not value:
            return None
        keys = [k.strip() for k in value.split(",") if k.strip()]
        if not keys:
            return None
        return cls(keys=keys)

    async def get_key(self) -> str:
        """Get the next API key in round-robin rotation."""
        async with self._lock:
            key = self.keys[self._current_index]
            self._current_index = (self._current_index + 1) % len(self.keys)
            return key

    @property
    def key_count(self) -> int:
        return len(self.keys)


@dataclass
class RetryConfig:
    """
    Exponential backoff configuration for HTTP retries.

    Formula: min(max_backoff, base_delay * 2^attempt) * (1 + random(0, jitter_factor))
    """

    max_retries: int = 3
    max_backoff_seconds: float = 60.0
    base_delay: float = 1.0
    jitter_factor: float = 0.1

    def calculate_backoff(self, attempt: int) -> float:
        """Backoff in seconds for a 0-indexed retry attempt, jitter applied."""
        delay = min(self.base_delay * (2**attempt), self.max_backoff_seconds)
        return delay + delay * self.jitter_factor * random.random()

    def is_retryable_status(self, status_code: int) -> bool:
        """429 and the transient 5xx codes are retried."""
        return status_code in {429, 500, 502, 503, 504}


class HTTPClientError(Exception):
    """Base exception for HTTP client errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class RateLimitError(HTTPClientError):
    """Raised when rate limit is hit and all retries exhausted."""

    pass


_RETRYABLE_EXCEPTIONS = (httpx.TimeoutException, httpx.ConnectError, httpx.ReadError)


class HTTPClient:
    """
    Async HTTP client with retry logic and API key rotation.

    Example:
        async with HTTPClient(RetryConfig(max_retries=3)) as client:
            response = await client.get("https://example.com/list.txt")
    """

    def __init__(
        self,
        retry_config: RetryConfig | None = None,
        timeout: float = 30.0,
    ):
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "HTTPClient":
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Perform GET request with retry logic."""
        return await self._request_with_retry("GET", url, params=params, headers=headers)

    async def post(
        self,
        url: str,
        json_body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        api_key_rotator: APIKeyRotator | None = None,
        api_key_param: str | None = None,
    ) -> httpx.Response:
        """
        Perform POST request with retry logic.

        Args:
            url: Request URL
            json_body: JSON body to send
            params: Query parameters
            headers: Request headers
            api_key_rotator: Optional key rotator for authentication
            api_key_param: Query parameter name for the API key

        Raises:
            HTTPClientError: On non-retryable errors or after retries exhausted
            RateLimitError: When rate limited and retries exhausted
        """
        return await self._request_with_retry(
            "POST",
            url,
            params=params,
            headers=headers,
            json_body=json_body,
            api_key_rotator=api_key_rotator,
            api_key_param=api_key_param,
        )

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
        api_key_rotator: APIKeyRotator | None = None,
        api_key_param: str | None = None,
    ) -> httpx.Response:
        """
        Execute HTTP request with retry logic.

        Rotates API keys on each attempt if a rotator is provided.
        """
        if not self._client:
            raise RuntimeError("HTTPClient must be used as async context manager")

        attempts = self.retry_config.max_retries + 1
        last_status_code: int | None = None

        for attempt in range(attempts):
            request_params = dict(params) if params else {}
            if api_key_rotator and api_key_param:
                request_params[api_key_param] = await api_key_rotator.get_key()

            try:
                response = await self._client.request(
                    method,
                    url,
                    params=request_params or None,
                    headers=headers,
                    json=json_body,
                )
            except _RETRYABLE_EXCEPTIONS as e:
                if attempt < self.retry_config.max_retries:
                    backoff = self.retry_config.calculate_backoff(attempt)
                    logger.warning(
                        f"Retryable error {type(e).__name__} for {url}, "
                        f"attempt {attempt + 1}/{attempts}, backing off {backoff:.2f}s"
                    )
                    await asyncio.sleep(backoff)
                    continue
                raise HTTPClientError(
                    f"Request failed after {attempt + 1} attempts: {e}",
                    status_code=last_status_code,
                ) from e

            if self.retry_config.is_retryable_status(response.status_code):
                last_status_code = response.status_code
                if attempt < self.retry_config.max_retries:
                    backoff = self.retry_config.calculate_backoff(attempt)
                    logger.warning(
                        f"Retryable status {response.status_code} from {url}, "
                        f"attempt {attempt + 1}/{attempts}, backing off {backoff:.2f}s"
                    )
                    await asyncio.sleep(backoff)
                    continue

                error_cls = RateLimitError if response.status_code == 429 else HTTPClientError
                raise error_cls(
                    f"Request failed with status {response.status_code} after {attempt + 1} attempts",
                    status_code=response.status_code,
                    response_body=response.text,
                )

            if response.status_code >= 400:
                raise HTTPClientError(
                    f"Request failed with status {response.status_code}",
                    status_code=response.status_code,
                    response_body=response.text,
                )

            return response

        # Only reachable with a negative max_retries
        raise HTTPClientError(f"Request to {url} was never attempted")


def _iter_text_lines(data: bytes) -> Iterator[str]:
    text = data.decode("utf-8", errors="replace")
    yield from text.splitlines()


def unzip_first_member(data: bytes) -> bytes:
    """
    Return the contents of the first file in a ZIP archive.

    Blacklist feeds are commonly distributed as a ZIP holding one file.
    """
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            members = [info for info in archive.infolist() if not info.is_dir()]
            if not members:
                raise HTTPClientError("ZIP archive contains no files")
            return archive.read(members[0])
    except zipfile.BadZipFile as e:
        raise HTTPClientError(f"Response is not a valid ZIP archive: {e}") from e


async def fetch_lines(client: HTTPClient, url: str) -> AsyncIterator[str]:
    """Download a plain-text feed and yield its lines."""
    response = await client.get(url)
    for line in _iter_text_lines(response.content):
        yield line


async def fetch_zipped_lines(client: HTTPClient, url: str) -> AsyncIterator[str]:
    """Download a ZIP-wrapped feed and yield the lines of its first file."""
    response = await client.get(url)
    for line in _iter_text_lines(unzip_first_member(response.content)):
        yield line
