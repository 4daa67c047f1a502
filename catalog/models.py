"""
Pydantic models for catalog payloads and normalized search results.
Raw catalog documents are parsed leniently: any field with an unexpected shape
is treated as absent rather than rejected.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, validator


def _optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _optional_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _optional_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def _string_list(value: Any) -> List[str]:
    """Keep the string members of a list; a bare string becomes a one-item list."""
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [item for item in value if isinstance(item, str)]
    return []


class CatalogEntry(BaseModel):
    """
    One document from a catalog search response.
    Field aliases match the catalog's wire names.
    """
    key: Optional[str] = Field(None, description="Catalog work key, used for deduplication")
    title: Optional[str] = Field(None, description="Primary title")
    alternate_titles: List[str] = Field(default_factory=list, alias="alternative_title")
    title_suggestions: List[str] = Field(default_factory=list, alias="title_suggest")
    author_names: List[str] = Field(default_factory=list, alias="author_name")
    cover_image_id: Optional[int] = Field(None, alias="cover_i")
    first_publish_year: Optional[int] = Field(None)
    number_of_pages_median: Optional[int] = Field(None)
    isbn_list: List[str] = Field(default_factory=list, alias="isbn")
    publisher_list: List[str] = Field(default_factory=list, alias="publisher")
    language_list: List[str] = Field(default_factory=list, alias="language")
    subject_list: List[str] = Field(default_factory=list, alias="subject")
    ratings_average: Optional[float] = Field(None)
    ratings_count: Optional[int] = Field(None)
    first_sentence: List[str] = Field(default_factory=list)

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
        "frozen": True,
    }

    @validator('key', 'title', pre=True)
    def coerce_strings(cls, v):
        return _optional_str(v)

    @validator('title_suggestions', pre=True)
    def coerce_title_suggestions(cls, v):
        """Suggestions are only considered when the catalog sends a list."""
        if not isinstance(v, list):
            return []
        return _string_list(v)

    @validator('alternate_titles', 'author_names', 'isbn_list', 'publisher_list',
               'language_list', 'subject_list', 'first_sentence', pre=True)
    def coerce_lists(cls, v):
        return _string_list(v)

    @validator('cover_image_id', 'first_publish_year', 'number_of_pages_median',
               'ratings_count', pre=True)
    def coerce_ints(cls, v):
        return _optional_int(v)

    @validator('ratings_average', pre=True)
    def coerce_floats(cls, v):
        return _optional_float(v)

    @classmethod
    def from_doc(cls, doc: Any) -> Optional["CatalogEntry"]:
        """Build an entry from a raw document, or None when it is not an object."""
        if not isinstance(doc, dict):
            return None
        return cls.model_validate(doc)


def parse_search_docs(payload: Any) -> List[CatalogEntry]:
    """
    Extract catalog entries from a search response body.

    Args:
        payload: Decoded JSON body of a search call

    Returns:
        Entries in response order; a missing or malformed docs array yields []
    """
    if not isinstance(payload, dict):
        return []
    docs = payload.get("docs")
    if not isinstance(docs, list):
        return []
    entries = []
    for doc in docs:
        entry = CatalogEntry.from_doc(doc)
        if entry is not None:
            entries.append(entry)
    return entries


class WorkDetail(BaseModel):
    """Subset of a catalog work record used for enrichment."""
    title: Optional[str] = Field(None, description="Work title")
    description: Optional[str] = Field(None, description="Work description")

    model_config = {"extra": "ignore"}

    @validator('title', pre=True)
    def coerce_title(cls, v):
        return _optional_str(v)

    @validator('description', pre=True)
    def unwrap_description(cls, v):
        """Descriptions arrive either as a plain string or as {"value": "..."}."""
        if isinstance(v, dict):
            return _optional_str(v.get("value"))
        return _optional_str(v)

    @classmethod
    def from_payload(cls, payload: Any) -> "WorkDetail":
        if not isinstance(payload, dict):
            return cls()
        return cls.model_validate(payload)


class SearchAttempt(BaseModel):
    """Outcome of one catalog search call."""
    strategy: str = Field(..., description="Query strategy: 'english' or 'plain'")
    query: str = Field(..., description="Query string sent to the catalog")
    limit: int = Field(..., description="Requested result limit")
    success: bool = Field(..., description="Whether the call returned a 2xx response")
    entries: List[CatalogEntry] = Field(default_factory=list)
    error: Optional[str] = Field(None, description="Failure reason when unsuccessful")

    @property
    def result_count(self) -> int:
        return len(self.entries)


class WorkLookup(BaseModel):
    """Outcome of one work-detail call."""
    key: str
    success: bool
    detail: Optional[WorkDetail] = None
    error: Optional[str] = None


class SearchEvent(BaseModel):
    """Notification passed to an optional search observer."""
    stage: str = Field(..., description="catalog_search or detail_lookup")
    success: bool
    details: Dict[str, Any] = Field(default_factory=dict)


class NormalizedBookResult(BaseModel):
    """
    A search result shaped to be passed directly as item creation input.
    """
    external_id: Optional[str] = Field(None, description="Catalog work key")
    title: Optional[str] = Field(None, description="Best English-looking title")
    author_or_director: Optional[str] = Field(None, description="Best English-looking author")
    cover_image_url: Optional[str] = Field(None, description="Medium cover image URL")
    release_year: Optional[int] = Field(None, description="First publish year")
    description: Optional[str] = Field(None, description="Work description from the detail lookup")
    page_count: Optional[int] = None
    isbn: Optional[str] = None
    publisher: Optional[str] = None
    language: Optional[str] = None
    subjects: Optional[str] = None
    average_rating: Optional[float] = None
    rating_count: Optional[int] = None
    first_sentence: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "external_id": "/works/OL468431W",
                "title": "The Great Gatsby",
                "author_or_director": "F. Scott Fitzgerald",
                "cover_image_url": "https://covers.openlibrary.org/b/id/10590366-M.jpg",
                "release_year": 1920,
                "description": "The story of the mysteriously wealthy Jay Gatsby...",
                "page_count": 180,
                "isbn": "9780743273565",
                "publisher": "Scribner",
                "language": "eng",
                "subjects": "Fiction, Classic Literature",
                "average_rating": 3.9,
                "rating_count": 512,
                "first_sentence": "In my younger and more vulnerable years..."
            }
        }
    }
