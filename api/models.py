"""
API models and schemas for the FastAPI application.
"""

import re
from datetime import datetime
from typing import List, Optional
from enum import Enum

from pydantic import BaseModel, Field, validator

from catalog.models import NormalizedBookResult

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class ItemType(str, Enum):
    """Item type enumeration."""
    BOOK = "book"


class ItemStatus(str, Enum):
    """Reading status enumeration."""
    WANT_TO_READ = "want_to_read"
    CURRENTLY_READING = "currently_reading"
    COMPLETED = "completed"


class ItemSort(str, Enum):
    """Sort options for item listings."""
    UPDATED_AT = "updated_at"
    CREATED_AT = "created_at"
    RATING = "rating"
    TITLE = "title"


# Users

class UserCreate(BaseModel):
    """Registration payload."""
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Login email")
    password: str = Field(..., description="Plain-text password")
    password_confirmation: Optional[str] = Field(None, description="Must match password when given")

    @validator('email')
    def normalize_email(cls, v):
        """Store emails lowercased and trimmed."""
        return v.strip().lower()

    def validation_errors(self) -> List[str]:
        """Return human-readable validation messages, empty when valid."""
        errors = []
        if not self.name.strip():
            errors.append("Name can't be blank")
        if not self.email:
            errors.append("Email can't be blank")
        elif not EMAIL_PATTERN.match(self.email):
            errors.append("Email is invalid")
        if not self.password:
            errors.append("Password can't be blank")
        if self.password_confirmation is not None and self.password_confirmation != self.password:
            errors.append("Password confirmation doesn't match Password")
        return errors


class LoginRequest(BaseModel):
    """Login payload."""
    email: str = Field("", description="Login email")
    password: str = Field("", description="Plain-text password")


class UserResponse(BaseModel):
    """Public user representation."""
    id: str = Field(..., description="User identifier")
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Login email")


class AuthResponse(BaseModel):
    """Token issued on register or login."""
    token: str = Field(..., description="Bearer token")
    user: UserResponse


class CurrentUserResponse(BaseModel):
    user: UserResponse


# Items

class ItemBase(BaseModel):
    """Fields shared by item create and update payloads."""
    rating: Optional[int] = Field(None, ge=1, le=5, description="Rating (1-5)")
    notes: Optional[str] = Field(None, description="Personal notes")
    external_id: Optional[str] = Field(None, description="Catalog work key")
    cover_image_url: Optional[str] = Field(None, description="Cover image URL")
    author_or_director: Optional[str] = Field(None, description="Author")
    genre: Optional[str] = Field(None, description="Genre")
    release_year: Optional[int] = Field(None, description="Publication year")
    description: Optional[str] = Field(None, description="Book description")


class ItemCreate(ItemBase):
    """Item creation payload; a NormalizedBookResult can be passed as-is."""
    title: str = Field(..., min_length=1, description="Book title")
    item_type: ItemType = Field(ItemType.BOOK, description="Item type")
    status: ItemStatus = Field(ItemStatus.WANT_TO_READ, description="Reading status")

    @validator('title')
    def validate_title(cls, v):
        if not v.strip():
            raise ValueError("Title can't be blank")
        return v


class ItemUpdate(ItemBase):
    """Partial item update payload."""
    title: Optional[str] = Field(None, description="Book title")
    item_type: Optional[ItemType] = Field(None, description="Item type")
    status: Optional[ItemStatus] = Field(None, description="Reading status")

    @validator('title')
    def validate_title(cls, v):
        if v is not None and not v.strip():
            raise ValueError("Title can't be blank")
        return v


class ItemResponse(ItemBase):
    """Item response model for API."""
    id: str = Field(..., description="Item identifier")
    user_id: str = Field(..., description="Owner identifier")
    title: str = Field(..., description="Book title")
    item_type: ItemType = Field(..., description="Item type")
    status: ItemStatus = Field(..., description="Reading status")
    created_at: Optional[str] = Field(None, description="Creation timestamp")
    updated_at: Optional[str] = Field(None, description="Last update timestamp")


class ItemEnvelope(BaseModel):
    item: ItemResponse


class ItemQueryParams(BaseModel):
    """Query parameters for item listing."""
    query: Optional[str] = Field(None, description="Search title and author")
    status: Optional[ItemStatus] = Field(None, description="Filter by status")
    rating: Optional[int] = Field(None, ge=1, le=5, description="Filter by rating")
    genre: Optional[str] = Field(None, description="Filter by genre")
    year_from: Optional[int] = Field(None, description="Earliest release year")
    year_to: Optional[int] = Field(None, description="Latest release year")
    sort: ItemSort = Field(ItemSort.UPDATED_AT, description="Sort field")
    page: int = Field(1, ge=1, description="Page number")
    per_page: int = Field(20, ge=1, description="Items per page, capped at 100")
    include_count: bool = Field(False, description="Include total count")

    @validator('per_page')
    def cap_per_page(cls, v):
        return min(v, 100)

    @validator('year_to')
    def validate_year_range(cls, v, values):
        """Validate that year_to is not before year_from."""
        if v is not None and values.get('year_from') is not None:
            if v < values['year_from']:
                raise ValueError('year_to must not be before year_from')
        return v


class DashboardStats(BaseModel):
    """Collection statistics for a user."""
    total: int = 0
    want_to_read: int = 0
    currently_reading: int = 0
    completed: int = 0
    rated_count: int = 0
    average_rating: Optional[float] = None


class Pagination(BaseModel):
    page: int
    per_page: int
    total: Optional[int] = None


class ItemListResponse(BaseModel):
    """Response model for item list with pagination and stats."""
    items: List[ItemResponse] = Field(..., description="Page of items")
    stats: DashboardStats = Field(..., description="Collection statistics")
    pagination: Pagination = Field(..., description="Pagination info")


# Search

class BookSearchResponse(BaseModel):
    results: List[NormalizedBookResult] = Field(..., description="Normalized catalog results")


# Shared

class ErrorResponse(BaseModel):
    """Error response model."""
    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Additional error details")
    status_code: int = Field(..., description="HTTP status code")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
    database_status: str = Field(..., description="Database connection status")
