"""
Unit tests for the book search aggregator.
The catalog client is mocked; each test scripts the search and detail responses.
"""

import pytest
from structlog.testing import capture_logs

from catalog.exceptions import InvalidQueryError, UpstreamUnavailableError
from catalog.search import (
    BookSearchAggregator, cover_image_url, dedupe_entries, needs_fallback, normalize_entry
)
from catalog.models import CatalogEntry


def docs(*keys):
    return [{"key": key, "title": f"Book {key}", "author_name": ["Some Author"]} for key in keys]


@pytest.fixture
def aggregator(mock_catalog):
    return BookSearchAggregator(mock_catalog, covers_base_url="https://covers.test")


class TestSearchQueries:
    """Which catalog calls a search issues."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "   ", "\t\n", None])
    async def test_blank_query_rejected_without_calls(self, aggregator, mock_catalog, query):
        with pytest.raises(InvalidQueryError):
            await aggregator.search(query)

        mock_catalog.search.assert_not_called()
        mock_catalog.get_work.assert_not_called()

    @pytest.mark.asyncio
    async def test_primary_query_carries_language_hint(self, aggregator, mock_catalog, make_attempt):
        mock_catalog.search.return_value = make_attempt(docs("/works/A", "/works/B", "/works/C"))

        await aggregator.search("dune")

        mock_catalog.search.assert_called_once_with("dune language:eng", limit=5, strategy="english")

    @pytest.mark.asyncio
    async def test_no_fallback_with_three_primary_results(self, aggregator, mock_catalog, make_attempt):
        mock_catalog.search.return_value = make_attempt(docs("/works/A", "/works/B", "/works/C"))

        results = await aggregator.search("dune")

        assert mock_catalog.search.call_count == 1
        assert [r.external_id for r in results] == ["/works/A", "/works/B", "/works/C"]

    @pytest.mark.asyncio
    async def test_fallback_when_primary_is_thin(self, aggregator, mock_catalog, make_attempt):
        mock_catalog.search.side_effect = [
            make_attempt(docs("/works/A", "/works/B")),
            make_attempt(docs("/works/C"), strategy="plain", limit=8),
        ]

        results = await aggregator.search("dune")

        assert mock_catalog.search.call_count == 2
        mock_catalog.search.assert_called_with("dune", limit=8, strategy="plain")
        assert [r.external_id for r in results] == ["/works/A", "/works/B", "/works/C"]

    @pytest.mark.asyncio
    async def test_fallback_when_primary_fails(self, aggregator, mock_catalog, make_attempt):
        mock_catalog.search.side_effect = [
            make_attempt([], success=False),
            make_attempt(docs("/works/X"), strategy="plain", limit=8),
        ]

        results = await aggregator.search("dune")

        assert [r.external_id for r in results] == ["/works/X"]

    @pytest.mark.asyncio
    async def test_primary_results_kept_when_fallback_fails(self, aggregator, mock_catalog, make_attempt):
        mock_catalog.search.side_effect = [
            make_attempt(docs("/works/A")),
            make_attempt([], strategy="plain", success=False),
        ]

        results = await aggregator.search("dune")

        assert [r.external_id for r in results] == ["/works/A"]

    @pytest.mark.asyncio
    async def test_total_failure_raises_without_detail_calls(self, aggregator, mock_catalog, make_attempt):
        mock_catalog.search.side_effect = [
            make_attempt([], success=False),
            make_attempt([], strategy="plain", success=False),
        ]

        with pytest.raises(UpstreamUnavailableError):
            await aggregator.search("dune")

        mock_catalog.get_work.assert_not_called()

    @pytest.mark.asyncio
    async def test_zero_results_is_success(self, aggregator, mock_catalog, make_attempt):
        mock_catalog.search.side_effect = [make_attempt([]), make_attempt([], strategy="plain")]

        assert await aggregator.search("qwxzv") == []


class TestMergeAndDedupe:
    """Merging, deduplication and truncation of candidates."""

    @pytest.mark.asyncio
    async def test_primary_version_wins_duplicates(self, aggregator, mock_catalog, make_attempt):
        mock_catalog.search.side_effect = [
            make_attempt([{"key": "OL1", "title": "Primary Title"}]),
            make_attempt([{"key": "OL1", "title": "Fallback Title"}, {"key": "OL2", "title": "Other"}],
                         strategy="plain"),
        ]

        results = await aggregator.search("x")

        assert [r.external_id for r in results] == ["OL1", "OL2"]
        assert results[0].title == "Primary Title"

    @pytest.mark.asyncio
    async def test_results_capped_at_ten_and_unique(self, aggregator, mock_catalog, make_attempt):
        primary = docs("/works/0", "/works/1")
        fallback = docs(*[f"/works/{i}" for i in range(14)])
        mock_catalog.search.side_effect = [make_attempt(primary), make_attempt(fallback, strategy="plain")]

        results = await aggregator.search("x")

        ids = [r.external_id for r in results]
        assert len(ids) == 10
        assert len(set(ids)) == 10
        assert ids == [f"/works/{i}" for i in range(10)]
        assert mock_catalog.get_work.call_count == 10

    def test_dedupe_is_stable(self):
        entries = [CatalogEntry(key=k, title=t) for k, t in [("a", "1"), ("b", "2"), ("a", "3"), ("c", "4")]]
        assert [(e.key, e.title) for e in dedupe_entries(entries)] == [("a", "1"), ("b", "2"), ("c", "4")]

    def test_missing_keys_collapse_to_one(self):
        entries = [CatalogEntry(title="first"), CatalogEntry(title="second")]
        assert [e.title for e in dedupe_entries(entries)] == ["first"]

    def test_needs_fallback(self, make_attempt):
        assert needs_fallback(make_attempt([], success=False)) is True
        assert needs_fallback(make_attempt(docs("a", "b"))) is True
        assert needs_fallback(make_attempt(docs("a", "b", "c"))) is False


class TestNormalization:
    """Per-candidate field mapping."""

    def test_normalize_entry(self, gatsby_doc):
        result = normalize_entry(CatalogEntry.from_doc(gatsby_doc), "https://covers.test")

        assert result.external_id == "/works/OL1"
        assert result.title == "The Great Gatsby"
        assert result.author_or_director == "F. Scott Fitzgerald"
        assert result.cover_image_url == "https://covers.test/b/id/10590366-M.jpg"
        assert result.release_year == 1925
        assert result.description is None
        assert result.page_count == 180
        assert result.isbn == "9780743273565"
        assert result.publisher == "Scribner"
        assert result.language == "eng, spa"
        assert result.subjects == "Fiction, Classics, Jazz Age, Wealth, Long Island"
        assert result.average_rating == 3.9
        assert result.rating_count == 512
        assert result.first_sentence == "In my younger and more vulnerable years..."

    def test_sparse_entry(self):
        result = normalize_entry(CatalogEntry(key="/works/OL5"), "https://covers.test")

        assert result.external_id == "/works/OL5"
        assert result.title is None
        assert result.author_or_director is None
        assert result.cover_image_url is None
        assert result.isbn is None
        assert result.subjects is None
        assert result.language is None

    def test_cover_url(self):
        assert cover_image_url(None, "https://covers.test") is None
        assert cover_image_url(7, "https://covers.test/") == "https://covers.test/b/id/7-M.jpg"


class TestEnrichment:
    """Detail lookups add description and title, and never break the search."""

    @pytest.mark.asyncio
    async def test_description_and_english_title_applied(self, aggregator, mock_catalog, make_attempt, make_lookup):
        mock_catalog.search.return_value = make_attempt([
            {"key": "/works/OL7", "title": "三国演义"},
            {"key": "/works/OL8", "title": "Dune"},
            {"key": "/works/OL9", "title": "Emma"},
        ])
        lookups = {
            "/works/OL7": make_lookup("/works/OL7", title="Romance of the Three Kingdoms", description="Epic."),
            "/works/OL8": make_lookup("/works/OL8", title="砂丘", description="Spice."),
            "/works/OL9": make_lookup("/works/OL9"),
        }
        mock_catalog.get_work.side_effect = lambda key: lookups[key]

        results = await aggregator.search("classics")

        assert results[0].title == "Romance of the Three Kingdoms"
        assert results[0].description == "Epic."
        # non-English detail title does not override
        assert results[1].title == "Dune"
        assert results[1].description == "Spice."
        assert results[2].title == "Emma"
        assert results[2].description is None

    @pytest.mark.asyncio
    async def test_detail_exception_isolated(self, aggregator, mock_catalog, make_attempt, make_lookup, gatsby_doc):
        second = dict(gatsby_doc, key="/works/OL2", title="Tender Is the Night")
        mock_catalog.search.return_value = make_attempt([
            dict(gatsby_doc),
            second,
            {"key": "/works/OL3", "title": "This Side of Paradise"},
        ])

        def get_work(key):
            if key == "/works/OL2":
                raise RuntimeError("connection reset")
            return make_lookup(key, description=f"About {key}")

        mock_catalog.get_work.side_effect = get_work

        results = await aggregator.search("fitzgerald")

        assert len(results) == 3
        assert results[0].description == "About /works/OL1"
        assert results[1].description is None
        assert results[1].title == "Tender Is the Night"
        assert results[1].author_or_director == "F. Scott Fitzgerald"
        assert results[1].cover_image_url == "https://covers.test/b/id/10590366-M.jpg"
        assert results[2].description == "About /works/OL3"

    @pytest.mark.asyncio
    async def test_failed_lookup_leaves_result_unchanged(self, aggregator, mock_catalog, make_attempt, make_lookup):
        mock_catalog.search.return_value = make_attempt(docs("/works/A", "/works/B", "/works/C"))
        mock_catalog.get_work.side_effect = lambda key: make_lookup(key, success=False)

        results = await aggregator.search("x")

        assert [r.title for r in results] == ["Book /works/A", "Book /works/B", "Book /works/C"]
        assert all(r.description is None for r in results)

    @pytest.mark.asyncio
    async def test_no_lookup_for_missing_key(self, aggregator, mock_catalog, make_attempt):
        mock_catalog.search.side_effect = [
            make_attempt([{"title": "Keyless"}]),
            make_attempt([], strategy="plain"),
        ]

        results = await aggregator.search("x")

        assert results[0].title == "Keyless"
        mock_catalog.get_work.assert_not_called()


class TestSearchBehaviour:
    """End-to-end behaviour of a search."""

    @pytest.mark.asyncio
    async def test_gatsby_scenario(self, aggregator, mock_catalog, make_attempt):
        gatsby = {"key": "/works/OL1", "title": "The Great Gatsby", "author_name": ["F. Scott Fitzgerald"]}
        mock_catalog.search.side_effect = [
            make_attempt([gatsby]),
            make_attempt([gatsby, {"key": "/works/OL2", "title": "Gatsby's Girl"}], strategy="plain"),
        ]

        results = await aggregator.search("gatsby")

        assert [r.external_id for r in results] == ["/works/OL1", "/works/OL2"]
        assert results[0].title == "The Great Gatsby"
        assert results[0].author_or_director == "F. Scott Fitzgerald"
        called_keys = sorted(call.args[0] for call in mock_catalog.get_work.call_args_list)
        assert called_keys == ["/works/OL1", "/works/OL2"]

    @pytest.mark.asyncio
    async def test_repeated_searches_are_identical(self, aggregator, mock_catalog, make_attempt, make_lookup, gatsby_doc):
        mock_catalog.search.side_effect = lambda query, limit, strategy: make_attempt(
            [gatsby_doc], strategy=strategy, limit=limit, query=query
        )
        mock_catalog.get_work.side_effect = lambda key: make_lookup(key, description="Same every time.")

        first = await aggregator.search("gatsby")
        second = await aggregator.search("gatsby")

        assert [r.model_dump() for r in first] == [r.model_dump() for r in second]

    @pytest.mark.asyncio
    async def test_observer_receives_events(self, aggregator, mock_catalog, make_attempt):
        mock_catalog.search.side_effect = [
            make_attempt(docs("/works/A")),
            make_attempt([], strategy="plain", success=False),
        ]
        events = []

        await aggregator.search("x", observer=events.append)

        stages = [(e.stage, e.success) for e in events]
        assert stages == [
            ("catalog_search", True),
            ("catalog_search", False),
            ("detail_lookup", True),
        ]
        assert events[0].details["strategy"] == "english"
        assert events[1].details["strategy"] == "plain"

    @pytest.mark.asyncio
    async def test_failing_observer_does_not_break_search(self, aggregator, mock_catalog, make_attempt):
        mock_catalog.search.return_value = make_attempt(docs("/works/A", "/works/B", "/works/C"))

        def observer(event):
            raise ValueError("observer bug")

        results = await aggregator.search("x", observer=observer)

        assert len(results) == 3

    @pytest.mark.asyncio
    async def test_search_logs_carry_query(self, aggregator, mock_catalog, make_attempt):
        mock_catalog.search.return_value = make_attempt(docs("/works/A", "/works/B", "/works/C"))

        with capture_logs() as logs:
            results = await aggregator.search("dune")

        assert len(results) == 3
        events = {entry["event"]: entry for entry in logs}
        assert events["Book search started"]["query"] == "dune"
        assert events["Catalog search call"]["strategy"] == "english"
        assert events["Book search completed"]["result_count"] == 3
