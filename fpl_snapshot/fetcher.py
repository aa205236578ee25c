"""
Resilient HTTP fetcher for upstream JSON and HTML sources.

Supports three strategies:
- direct: a single request, failing immediately on a bad status
- retry: a fixed number of attempts with a constant backoff between them
- relay: an ordered chain of relay endpoints wrapping the target URL
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import quote

import aiohttp
from aiolimiter import AsyncLimiter

from .config import Config


# =============================================================================
# Exceptions
# =============================================================================

class FetchFailure(Exception):
    """Raised when an upstream request (or every recovery option) fails."""
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        relay: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.url = url
        self.relay = relay


# =============================================================================
# Fetcher
# =============================================================================

Decoder = Callable[[aiohttp.ClientResponse], Awaitable[Any]]


async def _decode_json(response: aiohttp.ClientResponse) -> Any:
    # Relays frequently serve JSON as text/plain
    return await response.json(content_type=None)


async def _decode_text(response: aiohttp.ClientResponse) -> str:
    return await response.text()


class Fetcher:
    """
    Async fetcher with retry and relay fallback.

    Usage:
        async with Fetcher(config) as fetcher:
            data = await fetcher.fetch_json(url)
            html = await fetcher.fetch_text(url, mode="direct")
    """

    USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"

    def __init__(
        self,
        config: Config,
        mode: Optional[str] = None,
        relays: Optional[list[str]] = None,
        max_attempts: Optional[int] = None,
        backoff: Optional[float] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize the fetcher.

        Args:
            config: Application configuration.
            mode: Default strategy ('direct', 'retry' or 'relay').
            relays: Ordered relay templates; '{url}' is replaced by the encoded target.
            max_attempts: Attempts per URL in retry mode.
            backoff: Seconds to wait between retry attempts.
            session: Pre-built HTTP session. Not closed by the fetcher.
        """
        self.config = config
        self.logger = logging.getLogger("fpl_snapshot.fetcher")
        self.mode = mode or config.fetch_mode
        self.relays = list(relays) if relays is not None else list(config.relay_endpoints)
        self.max_attempts = max_attempts if max_attempts is not None else config.max_retries
        self.backoff = backoff if backoff is not None else config.retry_backoff

        self._session = session
        self._owns_session = session is None
        self._rate_limiter = AsyncLimiter(config.requests_per_second, 1.0)

    # -------------------------------------------------------------------------
    # Context Manager
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> "Fetcher":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def connect(self) -> None:
        """Create the HTTP session if one was not injected."""
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.config.request_timeout)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers={
                    "User-Agent": self.USER_AGENT,
                    "Accept": "application/json, text/html, */*",
                    "Accept-Language": "en-US,en;q=0.9",
                },
            )
            self._owns_session = True
            self.logger.debug("HTTP session created")

    async def close(self) -> None:
        """Close the HTTP session if this fetcher created it."""
        if self._session is not None and self._owns_session:
            await self._session.close()
            self.logger.debug("HTTP session closed")
        if self._owns_session:
            self._session = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def fetch_json(self, url: str, mode: Optional[str] = None) -> Any:
        """Fetch a URL and decode the body as JSON."""
        return await self._fetch(url, _decode_json, mode or self.mode)

    async def fetch_text(self, url: str, mode: Optional[str] = None) -> str:
        """Fetch a URL and return the raw body text."""
        return await self._fetch(url, _decode_text, mode or self.mode)

    # -------------------------------------------------------------------------
    # Strategies
    # -------------------------------------------------------------------------

    async def _fetch(self, url: str, decode: Decoder, mode: str) -> Any:
        if self._session is None:
            await self.connect()

        if mode == "direct":
            return await self._attempt(url, decode)
        if mode == "retry":
            return await self._fetch_with_retry(url, decode)
        if mode == "relay":
            return await self._fetch_with_relays(url, decode)

        raise ValueError(f"Unknown fetch mode: {mode}")

    async def _fetch_with_retry(self, url: str, decode: Decoder) -> Any:
        last_error: Optional[FetchFailure] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                self.logger.debug(f"Fetching: {url} (attempt {attempt})")
                return await self._attempt(url, decode)
            except FetchFailure as e:
                last_error = e
                self.logger.warning(f"Attempt {attempt}/{self.max_attempts} failed for {url}: {e}")

            if attempt < self.max_attempts:
                await asyncio.sleep(self.backoff)

        raise FetchFailure(
            f"Request failed after {self.max_attempts} attempts: {last_error}",
            status_code=last_error.status_code if last_error else None,
            url=url,
        )

    async def _fetch_with_relays(self, url: str, decode: Decoder) -> Any:
        last_error: Optional[FetchFailure] = None

        for relay in self.relays:
            relay_url = self.relay_url(relay, url)
            try:
                return await self._attempt(relay_url, decode)
            except FetchFailure as e:
                last_error = FetchFailure(
                    f"Relay {relay} failed: {e}",
                    status_code=e.status_code,
                    url=url,
                    relay=relay,
                )
                self.logger.warning(str(last_error))

        if last_error is None:
            raise FetchFailure("No relay endpoints configured", url=url)
        raise last_error

    @staticmethod
    def relay_url(template: str, url: str) -> str:
        """Wrap a target URL in a relay endpoint template."""
        encoded = quote(url, safe="")
        if "{url}" in template:
            return template.replace("{url}", encoded)
        return template + encoded

    # -------------------------------------------------------------------------
    # Single Attempt
    # -------------------------------------------------------------------------

    async def _attempt(self, url: str, decode: Decoder) -> Any:
        """Issue one rate-limited GET and decode the response."""
        async with self._rate_limiter:
            try:
                async with self._session.get(url) as response:
                    if response.status < 200 or response.status >= 300:
                        raise FetchFailure(
                            f"HTTP {response.status} from {url}",
                            status_code=response.status,
                            url=url,
                        )
                    try:
                        return await decode(response)
                    except ValueError as e:
                        raise FetchFailure(f"Could not decode response from {url}: {e}", url=url)

            except aiohttp.ClientError as e:
                raise FetchFailure(f"{type(e).__name__}: {e}", url=url) from e

            except asyncio.TimeoutError as e:
                raise FetchFailure(f"Request timed out: {url}", url=url) from e
