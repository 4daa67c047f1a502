"""
FastAPI main application for the Reading List API.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, Optional

import structlog
from fastapi import Body, FastAPI, HTTPException, Depends, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorClient

from api.auth import create_access_token, get_current_user, hash_password, verify_password
from api.config import config as api_config
from api.database import APIDatabaseService, EmailTakenError, user_from_doc
from api.models import (
    AuthResponse, BookSearchResponse, CurrentUserResponse, ErrorResponse,
    HealthResponse, ItemCreate, ItemEnvelope, ItemListResponse, ItemQueryParams,
    ItemResponse, ItemUpdate, LoginRequest, UserCreate, UserResponse
)
from catalog.client import OpenLibraryClient
from catalog.exceptions import InvalidQueryError, UpstreamUnavailableError
from catalog.search import BookSearchAggregator
from utilities.config import config
from utilities.logger import setup_logging

logger = structlog.get_logger(__name__)

# Global services, created in the lifespan handler
db_service: Optional[APIDatabaseService] = None
search_service: Optional[BookSearchAggregator] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global db_service, search_service

    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )
    logger.info("Starting Reading List API")

    try:
        client = AsyncIOMotorClient(config.mongodb_url)
        database = client[config.mongodb_database]

        await database.command("ping")
        logger.info("Database connection established")

        db_service = APIDatabaseService(database)
        await db_service.create_indexes()

    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        raise

    catalog_client = OpenLibraryClient(
        base_url=config.catalog_base_url,
        timeout=config.request_timeout,
        max_retries=config.retry_attempts
    )
    search_service = BookSearchAggregator(catalog_client, covers_base_url=config.covers_base_url)

    yield

    logger.info("Shutting down Reading List API")
    await catalog_client.close()
    client.close()


app = FastAPI(
    title=api_config.api_title,
    description=api_config.api_description + """

    ## Features

    * **Accounts**: Register and log in to receive a bearer token
    * **Reading list**: Track books as want to read, currently reading or completed, with rating and notes
    * **Book search**: Search the external catalog with English-preferring metadata

    ## Authentication

    Every endpoint except registration, login and health requires a token:

    ```
    Authorization: Bearer your_token_here
    ```
    """,
    version=api_config.api_version,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=api_config.cors_origins,
    allow_credentials=api_config.cors_allow_credentials,
    allow_methods=api_config.cors_allow_methods,
    allow_headers=api_config.cors_allow_headers,
)


@app.middleware("http")
async def bind_request_context(request: Request, call_next):
    """Start every request with a fresh logging context."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(method=request.method, path=request.url.path)
    return await call_next(request)


# Exception handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=exc.detail,
            status_code=exc.status_code
        ).model_dump(),
        headers=exc.headers
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc: RequestValidationError):
    """Flatten request validation errors into a single message."""
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=ErrorResponse(
            error=", ".join(messages) or "Invalid request",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY
        ).model_dump()
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc: Exception):
    """Handle general exceptions."""
    logger.error("Unhandled exception", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="Internal server error",
            detail=str(exc) if api_config.debug else None,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        ).model_dump()
    )


def require_db() -> APIDatabaseService:
    if not db_service:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database service not available"
        )
    return db_service


# Health check endpoint (no authentication required)
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    try:
        db_status = "unavailable"
        if db_service:
            health_info = await db_service.health_check()
            db_status = health_info.get("status", "unknown")

        return HealthResponse(
            status="healthy" if db_status == "healthy" else "degraded",
            timestamp=datetime.utcnow(),
            version=api_config.api_version,
            database_status=db_status
        )
    except Exception as e:
        logger.error("Health check failed", error=str(e))
        return HealthResponse(
            status="unhealthy",
            timestamp=datetime.utcnow(),
            version=api_config.api_version,
            database_status="unhealthy"
        )


# Auth endpoints
@app.post("/api/auth/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED, tags=["Auth"])
async def register(user: UserCreate = Body(..., embed=True)):
    """
    Create an account and return a token.

    Body: `{"user": {"name", "email", "password", "password_confirmation"}}`
    """
    errors = user.validation_errors()
    if errors:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=", ".join(errors)
        )

    database = require_db()
    try:
        created = await database.create_user(user, hash_password(user.password))
    except EmailTakenError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Email has already been taken"
        )

    return AuthResponse(token=create_access_token(created["id"]), user=UserResponse(**created))


@app.post("/api/auth/login", response_model=AuthResponse, tags=["Auth"])
async def login(credentials: LoginRequest):
    """Exchange email and password for a token."""
    database = require_db()
    user_doc = await database.get_user_by_email(credentials.email)

    if not user_doc or not verify_password(user_doc.get("password_digest", ""), credentials.password):
        logger.info("Failed login attempt", email=credentials.email.strip().lower())
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password"
        )

    user = user_from_doc(user_doc)
    return AuthResponse(token=create_access_token(user["id"]), user=UserResponse(**user))


@app.get("/api/auth/me", response_model=CurrentUserResponse, tags=["Auth"])
async def me(current_user: Dict = Depends(get_current_user)):
    """Return the authenticated user."""
    return CurrentUserResponse(user=UserResponse(**current_user))


# Search endpoint
@app.get("/api/search/books", response_model=BookSearchResponse, tags=["Search"])
async def search_books(
    q: Optional[str] = None,
    current_user: Dict = Depends(get_current_user)
):
    """
    Search the external catalog for books.

    - **q**: Free-text query (required)

    An empty result list is a successful search; a 503 means the catalog could
    not be reached.
    """
    if q is None or not q.strip():
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Query parameter required"
        )

    if not search_service:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Search service not available"
        )

    try:
        results = await search_service.search(q)
    except InvalidQueryError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except UpstreamUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return BookSearchResponse(results=results)


# Items endpoints
@app.get("/api/items", response_model=ItemListResponse, tags=["Items"])
async def list_items(
    query: str = None,
    item_status: Optional[str] = Query(None, alias="status"),
    rating: int = None,
    genre: str = None,
    year_from: int = None,
    year_to: int = None,
    sort: str = "updated_at",
    page: int = 1,
    per_page: int = 20,
    include_count: bool = False,
    current_user: Dict = Depends(get_current_user)
):
    """
    Get the user's items with filtering, sorting, and pagination.

    - **query**: Case-insensitive match on title or author
    - **status**: want_to_read, currently_reading or completed
    - **rating**: Filter by rating (1-5)
    - **genre**: Filter by genre
    - **year_from** / **year_to**: Release year range
    - **sort**: updated_at (default), created_at, rating, title
    - **page**: Page number (starts from 1)
    - **per_page**: Items per page (max 100)
    - **include_count**: Include the total number of matching items
    """
    status_value = item_status
    if status_value in ("", "all"):
        status_value = None

    try:
        query_params = ItemQueryParams(
            query=query,
            status=status_value,
            rating=rating,
            genre=genre,
            year_from=year_from,
            year_to=year_to,
            sort=sort,
            page=page,
            per_page=per_page,
            include_count=include_count
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    database = require_db()
    try:
        return await database.list_items(current_user["id"], query_params)
    except Exception as e:
        logger.error("Failed to list items", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve items"
        )


@app.get("/api/items/{item_id}", response_model=ItemResponse, tags=["Items"])
async def get_item(item_id: str, current_user: Dict = Depends(get_current_user)):
    """Get a single item by ID."""
    item = await require_db().get_item(current_user["id"], item_id)
    if not item:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Item not found"
        )
    return item


@app.post("/api/items", response_model=ItemEnvelope, status_code=status.HTTP_201_CREATED, tags=["Items"])
async def create_item(
    item: ItemCreate = Body(..., embed=True),
    current_user: Dict = Depends(get_current_user)
):
    """
    Add a book to the user's collection.

    Body: `{"item": {...}}`. A book search result can be sent unchanged plus a status.
    """
    database = require_db()

    if item.external_id:
        existing = await database.find_item_by_external_id(current_user["id"], item.external_id)
        if existing:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="This book is already in your collection"
            )

    created = await database.create_item(current_user["id"], item)
    return ItemEnvelope(item=created)


@app.put("/api/items/{item_id}", response_model=ItemResponse, tags=["Items"])
async def update_item(
    item_id: str,
    item: ItemUpdate = Body(..., embed=True),
    current_user: Dict = Depends(get_current_user)
):
    """Update fields of one of the user's items."""
    updated = await require_db().update_item(current_user["id"], item_id, item)
    if not updated:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Item not found"
        )
    return updated


@app.delete("/api/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Items"])
async def delete_item(item_id: str, current_user: Dict = Depends(get_current_user)):
    """Remove one of the user's items."""
    deleted = await require_db().delete_item(current_user["id"], item_id)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Item not found"
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=api_config.host,
        port=api_config.port,
        reload=True,
        log_level="info"
    )
