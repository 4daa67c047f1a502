"""
Pytest configuration and shared fixtures.
"""

import pytest
from unittest.mock import AsyncMock

from catalog.client import OpenLibraryClient
from catalog.models import CatalogEntry, SearchAttempt, WorkDetail, WorkLookup


def _make_attempt(docs, strategy="english", success=True, limit=5, query="q"):
    return SearchAttempt(
        strategy=strategy,
        query=query,
        limit=limit,
        success=success,
        entries=[CatalogEntry.from_doc(doc) for doc in docs] if success else [],
        error=None if success else "ConnectError: connection refused"
    )


def _make_lookup(key, title=None, description=None, success=True):
    if not success:
        return WorkLookup(key=key, success=False, error="HTTP 404")
    return WorkLookup(key=key, success=True, detail=WorkDetail(title=title, description=description))


@pytest.fixture
def make_attempt():
    """Factory for SearchAttempt objects built from raw catalog documents."""
    return _make_attempt


@pytest.fixture
def make_lookup():
    """Factory for WorkLookup objects."""
    return _make_lookup


@pytest.fixture
def gatsby_doc():
    """A catalog document as returned by search.json."""
    return {
        "key": "/works/OL1",
        "title": "The Great Gatsby",
        "author_name": ["F. Scott Fitzgerald"],
        "cover_i": 10590366,
        "first_publish_year": 1925,
        "number_of_pages_median": 180,
        "isbn": ["9780743273565", "0743273567"],
        "publisher": ["Scribner", "Penguin"],
        "language": ["eng", "spa"],
        "subject": ["Fiction", "Classics", "Jazz Age", "Wealth", "Long Island", "New York"],
        "ratings_average": 3.9,
        "ratings_count": 512,
        "first_sentence": ["In my younger and more vulnerable years..."]
    }


@pytest.fixture
def mock_catalog():
    """Create a mock catalog client; detail lookups succeed with no extra data by default."""
    catalog = AsyncMock(spec=OpenLibraryClient)
    catalog.get_work.side_effect = lambda key: _make_lookup(key)
    return catalog


@pytest.fixture
def sample_user():
    """Public view of a stored user."""
    return {"id": "65f1c0ffee0000000000abcd", "name": "Demo User", "email": "demo@example.com"}


@pytest.fixture
def sample_item_doc(sample_user):
    """A stored item document."""
    from bson import ObjectId
    from datetime import datetime

    return {
        "_id": ObjectId("65f1c0ffee0000000000beef"),
        "user_id": sample_user["id"],
        "title": "The Great Gatsby",
        "item_type": "book",
        "status": "want_to_read",
        "rating": None,
        "notes": None,
        "external_id": "/works/OL1",
        "cover_image_url": None,
        "author_or_director": "F. Scott Fitzgerald",
        "genre": "Classic Literature",
        "release_year": 1925,
        "description": None,
        "created_at": datetime(2025, 6, 9, 12, 0, 0),
        "updated_at": datetime(2025, 6, 10, 8, 30, 0)
    }
