"""
Book search aggregation over the external catalog.

A search issues an English-hinted query and, when that fails or returns too
few documents, a plain query. Successful responses are concatenated (hinted
first), deduplicated by work key, truncated, normalized, and enriched with a
per-work detail lookup.
"""

import asyncio
import time
from typing import Callable, List, Optional

import structlog

from .client import OpenLibraryClient
from .exceptions import InvalidQueryError, UpstreamUnavailableError
from .language import best_author, best_title, is_likely_english
from .models import CatalogEntry, NormalizedBookResult, SearchAttempt, SearchEvent
from utilities.config import config
from utilities.logger import SearchLogger

logger = structlog.get_logger(__name__)

ENGLISH_LANGUAGE_HINT = "language:eng"
PRIMARY_LIMIT = 5
FALLBACK_LIMIT = 8
FALLBACK_THRESHOLD = 3
MAX_RESULTS = 10
MAX_SUBJECTS = 5

SearchObserver = Callable[[SearchEvent], None]


def needs_fallback(primary: SearchAttempt) -> bool:
    """The plain query runs exactly when the hinted query failed or was thin."""
    return not primary.success or primary.result_count < FALLBACK_THRESHOLD


def dedupe_entries(entries: List[CatalogEntry]) -> List[CatalogEntry]:
    """Stable deduplication by key; the first occurrence wins."""
    seen = set()
    unique = []
    for entry in entries:
        if entry.key in seen:
            continue
        seen.add(entry.key)
        unique.append(entry)
    return unique


def cover_image_url(cover_image_id: Optional[int], covers_base_url: Optional[str] = None) -> Optional[str]:
    if cover_image_id is None:
        return None
    base = (covers_base_url or config.covers_base_url).rstrip("/")
    return f"{base}/b/id/{cover_image_id}-M.jpg"


def normalize_entry(entry: CatalogEntry, covers_base_url: Optional[str] = None) -> NormalizedBookResult:
    """
    Build the result for one candidate, before detail enrichment.

    Args:
        entry: Deduplicated catalog entry
        covers_base_url: Base URL for cover images

    Returns:
        NormalizedBookResult with description unset
    """
    return NormalizedBookResult(
        external_id=entry.key,
        title=best_title(entry),
        author_or_director=best_author(entry),
        cover_image_url=cover_image_url(entry.cover_image_id, covers_base_url),
        release_year=entry.first_publish_year,
        description=None,
        page_count=entry.number_of_pages_median,
        isbn=entry.isbn_list[0] if entry.isbn_list else None,
        publisher=entry.publisher_list[0] if entry.publisher_list else None,
        language=", ".join(entry.language_list) if entry.language_list else None,
        subjects=", ".join(entry.subject_list[:MAX_SUBJECTS]) if entry.subject_list else None,
        average_rating=entry.ratings_average,
        rating_count=entry.ratings_count,
        first_sentence=entry.first_sentence[0] if entry.first_sentence else None
    )


class BookSearchAggregator:
    """
    Produces up to ten deduplicated, enriched, English-preferring book results.
    Stateless between calls; one instance can serve concurrent requests.
    """

    def __init__(self, catalog: OpenLibraryClient, covers_base_url: Optional[str] = None):
        """
        Args:
            catalog: Catalog client used for search and detail calls
            covers_base_url: Base URL for cover images
        """
        self.catalog = catalog
        self.covers_base_url = covers_base_url or config.covers_base_url

    async def search(self, query: Optional[str], observer: Optional[SearchObserver] = None) -> List[NormalizedBookResult]:
        """
        Search the catalog for books.

        Args:
            query: Free-text query
            observer: Optional callable notified of every catalog call

        Returns:
            Between 0 and 10 results in first-seen order

        Raises:
            InvalidQueryError: If the query is empty or whitespace-only
            UpstreamUnavailableError: If every catalog search call failed
        """
        if query is None or not query.strip():
            raise InvalidQueryError("Query parameter required")

        start = time.monotonic()
        search_logger = SearchLogger("book_search").bind_context(query=query)
        search_logger.log_search_start()

        attempts = await self._run_queries(query, search_logger, observer)
        successful = [attempt for attempt in attempts if attempt.success]

        if not successful:
            search_logger.log_search_failed("all catalog search calls failed")
            raise UpstreamUnavailableError("Search service unavailable")

        candidates = []
        for attempt in successful:
            candidates.extend(attempt.entries)
        candidates = dedupe_entries(candidates)[:MAX_RESULTS]

        results = [normalize_entry(entry, self.covers_base_url) for entry in candidates]
        await asyncio.gather(*[
            self._enrich(results, index, search_logger, observer)
            for index in range(len(results))
        ])

        search_logger.log_search_complete(len(results), time.monotonic() - start)
        return results

    async def _run_queries(
        self,
        query: str,
        search_logger: SearchLogger,
        observer: Optional[SearchObserver]
    ) -> List[SearchAttempt]:
        """Issue the hinted query, then the plain one if needed."""
        primary = await self.catalog.search(
            f"{query} {ENGLISH_LANGUAGE_HINT}", limit=PRIMARY_LIMIT, strategy="english"
        )
        self._record_attempt(primary, search_logger, observer)
        attempts = [primary]

        if needs_fallback(primary):
            fallback = await self.catalog.search(query, limit=FALLBACK_LIMIT, strategy="plain")
            self._record_attempt(fallback, search_logger, observer)
            attempts.append(fallback)

        return attempts

    async def _enrich(
        self,
        results: List[NormalizedBookResult],
        index: int,
        search_logger: SearchLogger,
        observer: Optional[SearchObserver]
    ) -> None:
        """
        Add description and English title from the work record, in place by index.
        Failures leave the result as normalized.
        """
        result = results[index]
        key = result.external_id
        if not key:
            return

        try:
            lookup = await self.catalog.get_work(key)
        except Exception as e:
            search_logger.log_detail_failure(key, str(e))
            _notify(observer, SearchEvent(stage="detail_lookup", success=False, details={"key": key}))
            return

        _notify(observer, SearchEvent(stage="detail_lookup", success=lookup.success, details={"key": key}))
        if not lookup.success or lookup.detail is None:
            search_logger.log_detail_failure(key, lookup.error or "no detail payload")
            return

        updates = {}
        if lookup.detail.description:
            updates["description"] = lookup.detail.description
        if is_likely_english(lookup.detail.title) and lookup.detail.title != result.title:
            updates["title"] = lookup.detail.title

        if updates:
            results[index] = result.model_copy(update=updates)

    def _record_attempt(
        self,
        attempt: SearchAttempt,
        search_logger: SearchLogger,
        observer: Optional[SearchObserver]
    ) -> None:
        search_logger.log_catalog_call(
            attempt.strategy, attempt.success, attempt.result_count, attempt.error
        )
        _notify(observer, SearchEvent(
            stage="catalog_search",
            success=attempt.success,
            details={
                "strategy": attempt.strategy,
                "query": attempt.query,
                "limit": attempt.limit,
                "result_count": attempt.result_count,
            }
        ))


def _notify(observer: Optional[SearchObserver], event: SearchEvent) -> None:
    if observer is None:
        return
    try:
        observer(event)
    except Exception as e:
        logger.warning("Search observer raised", stage=event.stage, error=str(e))
