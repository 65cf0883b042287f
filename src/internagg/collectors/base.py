"""Abstract base class for external internship listing sources.

This module defines the ListingSource abstract base class that every provider
adapter implements, together with the error hierarchy the resilience layer
understands. Each adapter searches in three steps, stopping at the first that
produces listings:

1. The provider's hosted search API (only when an API key is configured)
2. The provider's public search page, parsed with BeautifulSoup
3. A small set of synthetic placeholder listings tagged with the source

Example usage:
    class MySource(ListingSource):
        name = "my_source"
        priority = 10
        BASE_URL = "https://example.com"

        async def _search_api(self, query, filters):
            ...

        def _search_page_request(self, query, filters):
            return f"{self.BASE_URL}/jobs", {"q": query}

        def parse_search_page(self, html, query, filters):
            ...
"""

import asyncio
import hashlib
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional

import httpx

from ..models.listing import ListingFilters, Location, RawListing, Stipend
from .cache import ResponseCache

logger = logging.getLogger(__name__)


class SourceError(Exception):
    """Base exception for source errors.

    Attributes:
        source: Name of the source that raised the error
        message: Error description
    """

    def __init__(self, source: str, message: str):
        self.source = source
        self.message = message
        super().__init__(f"[{source}] {message}")


class SourceTimeoutError(SourceError):
    """Raised when a request to a source times out."""

    def __init__(self, source: str, message: str = "Request timed out"):
        super().__init__(source, message)


class SourceNetworkError(SourceError):
    """Raised when a source cannot be reached (DNS, refused connection, ...)."""


class RateLimitError(SourceError):
    """Raised when a source rate limit is exceeded."""

    def __init__(self, source: str, retry_after: Optional[int] = None):
        self.retry_after = retry_after
        message = "Rate limit exceeded"
        if retry_after:
            message += f" (retry after {retry_after}s)"
        super().__init__(source, message)


class AuthError(SourceError):
    """Raised on 401/403 responses."""

    def __init__(self, source: str, status_code: int):
        self.status_code = status_code
        super().__init__(source, f"Authentication/permission error (HTTP {status_code})")


class BlockedError(SourceError):
    """Raised when an anti-bot or CAPTCHA page is served instead of results."""

    def __init__(self, source: str):
        super().__init__(source, "Anti-bot challenge detected - cannot proceed")


class CircuitOpenError(SourceError):
    """Raised instead of calling a source whose circuit breaker is open."""

    def __init__(self, source: str, retry_in: float):
        self.retry_in = retry_in
        super().__init__(source, f"Circuit open, skipping call (retry in {retry_in:.0f}s)")


class ErrorKind(str, Enum):
    """Failure classes used for structured logging."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    AUTH = "auth"
    PARSE = "parse"
    CIRCUIT_OPEN = "circuit_open"
    GENERIC = "generic"


def classify_error(error: BaseException) -> ErrorKind:
    """Map an exception raised by an outbound call to an ErrorKind."""
    if isinstance(error, CircuitOpenError):
        return ErrorKind.CIRCUIT_OPEN
    if isinstance(error, (SourceTimeoutError, httpx.TimeoutException, asyncio.TimeoutError)):
        return ErrorKind.TIMEOUT
    if isinstance(error, RateLimitError):
        return ErrorKind.RATE_LIMIT
    if isinstance(error, (AuthError, BlockedError)):
        return ErrorKind.AUTH
    if isinstance(error, (SourceNetworkError, httpx.TransportError, ConnectionError)):
        return ErrorKind.NETWORK
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status == 429:
            return ErrorKind.RATE_LIMIT
        if status in (401, 403):
            return ErrorKind.AUTH
    if isinstance(error, (ValueError, KeyError)):
        return ErrorKind.PARSE
    return ErrorKind.GENERIC


class ListingSource(ABC):
    """Abstract base class for external listing sources.

    Attributes:
        name: Unique identifier, also stored as the listing ``source``
        priority: Lower values are queried first by the aggregator
        BASE_URL: Provider site root, used for page scraping and links
        FALLBACK_POSTINGS: Templates for the synthetic last-resort listings,
            as (title, company, description, city, duration, stipend) tuples
            where title and description may contain ``{query}``
    """

    name: str
    priority: int
    BASE_URL: str
    DEFAULT_CURRENCY = "INR"
    FALLBACK_POSTINGS: tuple[tuple[str, str, str, str, str, int], ...] = ()

    # Markers of anti-bot interstitials served with a 200 status
    BLOCK_PAGE_INDICATORS = (
        "g-recaptcha-response",
        "please verify you are human",
        "captcha-container",
        "challenge-form",
        "cf-challenge",
    )

    def __init__(
        self,
        cache: Optional[ResponseCache] = None,
        api_key: Optional[str] = None,
        timeout: float = 15.0,
        user_agent: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the source.

        Args:
            cache: Shared response cache (a private one is created if None)
            api_key: RapidAPI key; the hosted API step is skipped without it
            timeout: Timeout in seconds for every request (default 15.0)
            user_agent: Custom User-Agent string
            client: Pre-built HTTP client, mostly for tests
        """
        self.cache = cache if cache is not None else ResponseCache()
        self.api_key = api_key
        self.timeout = timeout
        self.user_agent = user_agent or (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/120.0.0.0 Safari/537.36"
        )
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={
                    "User-Agent": self.user_agent,
                    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                    "Accept-Language": "en-US,en;q=0.5",
                    "Connection": "keep-alive",
                },
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    async def _request(self, url: str, method: str = "GET", **kwargs: Any) -> httpx.Response:
        """Make a single HTTP request and translate failures to SourceErrors.

        Retries are not done here; the resilience executor owns them.

        Raises:
            SourceTimeoutError: On connect/read timeouts
            SourceNetworkError: On other transport failures
            RateLimitError: On HTTP 429
            AuthError: On HTTP 401/403
            SourceError: On any other HTTP error status
        """
        client = await self._get_client()
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise SourceTimeoutError(self.name, f"Request timed out: {url}") from e
        except httpx.TransportError as e:
            raise SourceNetworkError(self.name, f"Network error: {e}") from e

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                self.name, int(retry_after) if retry_after and retry_after.isdigit() else None
            )
        if response.status_code in (401, 403):
            raise AuthError(self.name, response.status_code)
        if response.status_code >= 400:
            raise SourceError(self.name, f"HTTP error: {response.status_code}")
        return response

    def _is_block_page(self, html: str) -> bool:
        """Check whether a page is an anti-bot challenge instead of results."""
        content = html.lower()
        return any(indicator in content for indicator in self.BLOCK_PAGE_INDICATORS)

    def listing_id(self, *parts: Optional[str]) -> str:
        """Deterministic id from identifying fields, prefixed with the source."""
        content = "|".join((p or "").strip().lower() for p in parts)
        return f"{self.name}_{hashlib.sha1(content.encode()).hexdigest()[:16]}"

    def _cache_key(self, strategy: str, query: str, filters: ListingFilters) -> str:
        return f"{self.name}:{strategy}:{query.lower()}:{filters.cache_token()}"

    async def search(
        self, query: str, filters: Optional[ListingFilters] = None
    ) -> list[RawListing]:
        """Search the provider for internships matching query.

        Args:
            query: Free-text search terms (e.g. "data science")
            filters: Optional location/category/remote hints

        Returns:
            Normalized listings; never empty (synthetic listings as last resort)

        Raises:
            SourceError: If the public search page cannot be fetched at all
        """
        filters = filters or ListingFilters()

        if self.api_key:
            try:
                results = await self._cached_search("api", query, filters, self._search_api)
            except (SourceError, httpx.HTTPError, ValueError) as e:
                logger.warning(f"{self.name} API search failed, falling back to page: {e}")
                results = []
            if results:
                return results

        results = await self._cached_search("scrape", query, filters, self._scrape)
        if results:
            return results

        logger.info(f"{self.name}: no listings extracted for '{query}', using placeholders")
        return self.fallback_listings(query, filters)

    async def _cached_search(self, strategy, query, filters, fetch) -> list[RawListing]:
        key = self._cache_key(strategy, query, filters)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        results = await fetch(query, filters)
        if results:
            await self.cache.set(key, results)
        return results

    async def _scrape(self, query: str, filters: ListingFilters) -> list[RawListing]:
        url, params = self._search_page_request(query, filters)
        response = await self._request(url, params=params)
        html = response.text
        if self._is_block_page(html):
            raise BlockedError(self.name)
        listings = self.parse_search_page(html, query, filters)
        logger.info(f"{self.name}: extracted {len(listings)} listings from search page")
        return listings

    @abstractmethod
    async def _search_api(self, query: str, filters: ListingFilters) -> list[RawListing]:
        """Query the provider's hosted search API."""

    @abstractmethod
    def _search_page_request(
        self, query: str, filters: ListingFilters
    ) -> tuple[str, dict[str, str]]:
        """Return (url, query params) of the provider's public search page."""

    @abstractmethod
    def parse_search_page(
        self, html: str, query: str, filters: ListingFilters
    ) -> list[RawListing]:
        """Extract listings from a search results page.

        Malformed cards are skipped; this never raises for a single bad item.
        """

    def fallback_listings(self, query: str, filters: ListingFilters) -> list[RawListing]:
        """Synthesize placeholder listings so a run never comes back empty.

        Ids are derived from the template and query, so repeated runs refresh
        the same placeholder rows instead of piling up new ones.
        """
        listings = []
        for index, (title, company, description, city, duration, amount) in enumerate(
            self.FALLBACK_POSTINGS, start=1
        ):
            listings.append(
                RawListing(
                    source=self.name,
                    id=self.listing_id("fallback", query, str(index)),
                    title=title.format(query=query.title()),
                    company=company,
                    description=description.format(query=query),
                    location=Location(city=filters.location or city, country="India"),
                    duration=duration,
                    stipend=Stipend(amount=amount, currency=self.DEFAULT_CURRENCY),
                    apply_url=self.fallback_url,
                )
            )
        return listings

    @property
    def fallback_url(self) -> str:
        return self.BASE_URL

    def is_available(self) -> bool:
        """Scraping needs no credentials, so sources are always available."""
        return True

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ListingSource":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
