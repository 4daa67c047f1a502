"""
Async HTTP client for the external book catalog.
Wraps the search and work-detail endpoints with timeouts, retries and throttling,
and reports failures as result objects instead of raising.
"""

import asyncio
from typing import Any, Optional

import httpx
from asyncio_throttle import Throttler
import structlog

from .models import SearchAttempt, WorkDetail, WorkLookup, parse_search_docs
from utilities.config import config

logger = structlog.get_logger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class CatalogRequestError(Exception):
    """A catalog call failed at the transport level or with a non-2xx status."""


class OpenLibraryClient:
    """
    Client for the catalog's search.json and work detail endpoints.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        rate_limit_per_second: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize the catalog client.

        Args:
            base_url: Catalog base URL, without trailing slash
            timeout: Per-request timeout in seconds
            max_retries: Retries after the first attempt for transient failures
            retry_delay: Base delay for exponential backoff between retries
            rate_limit_per_second: Maximum outbound requests per second
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = (base_url or config.catalog_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else config.request_timeout
        self.max_retries = max_retries if max_retries is not None else config.retry_attempts
        self.retry_delay = retry_delay if retry_delay is not None else config.retry_delay
        self.throttler = Throttler(rate_limit=rate_limit_per_second or config.rate_limit_per_second)

        client_config = {
            "timeout": self.timeout,
            "headers": config.get_headers(),
            "follow_redirects": True,
            "limits": httpx.Limits(max_keepalive_connections=10, max_connections=20),
        }
        if transport is not None:
            client_config["transport"] = transport
        self.http = httpx.AsyncClient(**client_config)

    async def close(self) -> None:
        await self.http.aclose()

    async def search(self, query: str, limit: int, strategy: str = "plain") -> SearchAttempt:
        """
        Run one catalog search.

        Args:
            query: Query string exactly as it should be sent
            limit: Maximum number of documents to request
            strategy: Label recorded on the attempt

        Returns:
            SearchAttempt; unsuccessful when the call failed for any reason
        """
        url = f"{self.base_url}/search.json"
        try:
            payload = await self._get_json(url, params={"q": query, "limit": limit})
        except CatalogRequestError as e:
            return SearchAttempt(
                strategy=strategy, query=query, limit=limit, success=False, error=str(e)
            )

        return SearchAttempt(
            strategy=strategy,
            query=query,
            limit=limit,
            success=True,
            entries=parse_search_docs(payload)
        )

    async def get_work(self, key: str) -> WorkLookup:
        """
        Fetch a work record by its catalog key, e.g. "/works/OL45883W".

        Returns:
            WorkLookup; unsuccessful when the call failed for any reason
        """
        url = f"{self.base_url}{key}.json"
        try:
            payload = await self._get_json(url)
        except CatalogRequestError as e:
            return WorkLookup(key=key, success=False, error=str(e))

        return WorkLookup(key=key, success=True, detail=WorkDetail.from_payload(payload))

    async def _get_json(self, url: str, params: Optional[dict] = None) -> Any:
        """
        GET a URL with retry logic and exponential backoff, returning decoded JSON.

        Raises:
            CatalogRequestError: after the final failed attempt
        """
        last_error = None

        for attempt in range(self.max_retries + 1):
            try:
                async with self.throttler:
                    response = await self.http.get(url, params=params)
                response.raise_for_status()
                return response.json()

            except httpx.HTTPStatusError as e:
                last_error = f"HTTP {e.response.status_code}"
                if e.response.status_code not in RETRYABLE_STATUS_CODES:
                    break

            except httpx.HTTPError as e:
                last_error = f"{type(e).__name__}: {e}"

            except ValueError as e:
                # Body was not valid JSON; retrying will not help
                last_error = f"Invalid JSON: {e}"
                break

            if attempt < self.max_retries:
                delay = self.retry_delay * (2 ** attempt)
                logger.warning(
                    "Retrying catalog request",
                    url=url,
                    attempt=attempt + 1,
                    max_attempts=self.max_retries + 1,
                    delay_seconds=delay,
                    error=last_error
                )
                await asyncio.sleep(delay)

        logger.debug("Catalog request failed", url=url, error=last_error)
        raise CatalogRequestError(last_error or "request failed")
