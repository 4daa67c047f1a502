"""
Database service layer for the FastAPI application.
Users and their reading-list items live in MongoDB; every item query is scoped
to the owning user.
"""

import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, TEXT
from pymongo.errors import DuplicateKeyError

from api.models import (
    DashboardStats, ItemCreate, ItemListResponse, ItemQueryParams,
    ItemResponse, ItemSort, ItemStatus, ItemUpdate, Pagination, UserCreate
)

logger = structlog.get_logger(__name__)


class EmailTakenError(Exception):
    """Raised when registering an email that already has an account."""


def _object_id(value: str) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def _isoformat(value: Any) -> Optional[str]:
    if value is None:
        return None
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def build_item_filter(user_id: str, query_params: ItemQueryParams) -> Dict[str, Any]:
    """
    Build the MongoDB filter for an item listing.

    Args:
        user_id: Owner of the items
        query_params: Listing filters

    Returns:
        Filter document, always restricted to the user
    """
    filter_query: Dict[str, Any] = {"user_id": user_id}

    if query_params.query:
        pattern = {"$regex": re.escape(query_params.query.strip()), "$options": "i"}
        filter_query["$or"] = [{"title": pattern}, {"author_or_director": pattern}]

    if query_params.status is not None:
        filter_query["status"] = query_params.status.value

    if query_params.rating is not None:
        filter_query["rating"] = query_params.rating

    if query_params.genre:
        filter_query["genre"] = {"$regex": f"^{re.escape(query_params.genre.strip())}$", "$options": "i"}

    if query_params.year_from is not None or query_params.year_to is not None:
        year_filter = {}
        if query_params.year_from is not None:
            year_filter["$gte"] = query_params.year_from
        if query_params.year_to is not None:
            year_filter["$lte"] = query_params.year_to
        filter_query["release_year"] = year_filter

    return filter_query


def build_item_sort(sort: ItemSort) -> List[Tuple[str, int]]:
    """Sort specification for an item listing, with a stable tie-breaker."""
    if sort == ItemSort.CREATED_AT:
        return [("created_at", DESCENDING), ("_id", DESCENDING)]
    if sort == ItemSort.RATING:
        return [("rating", DESCENDING), ("updated_at", DESCENDING), ("_id", DESCENDING)]
    if sort == ItemSort.TITLE:
        return [("title", ASCENDING), ("_id", ASCENDING)]
    return [("updated_at", DESCENDING), ("_id", DESCENDING)]


def item_from_doc(item_doc: Dict[str, Any]) -> ItemResponse:
    """Convert a stored item document to its response model."""
    item_doc = dict(item_doc)
    item_doc["id"] = str(item_doc.pop("_id"))
    item_doc["created_at"] = _isoformat(item_doc.get("created_at"))
    item_doc["updated_at"] = _isoformat(item_doc.get("updated_at"))
    return ItemResponse(**item_doc)


def user_from_doc(user_doc: Dict[str, Any]) -> Dict[str, Any]:
    """Public view of a stored user; the password digest is dropped."""
    return {
        "id": str(user_doc["_id"]),
        "name": user_doc.get("name", ""),
        "email": user_doc.get("email", ""),
    }


class APIDatabaseService:
    """Database service for API operations."""

    def __init__(self, database: AsyncIOMotorDatabase):
        self.database = database
        self.users_collection = database.users
        self.items_collection = database.items

    async def create_indexes(self) -> None:
        """
        Create indexes for the common query patterns.
        Optimized for per-user listings, duplicate checks and title/author search.
        """
        try:
            await self.users_collection.create_index("email", unique=True)

            await self.items_collection.create_index("user_id")
            await self.items_collection.create_index([("user_id", ASCENDING), ("status", ASCENDING)])
            await self.items_collection.create_index([("user_id", ASCENDING), ("updated_at", DESCENDING)])
            await self.items_collection.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
            await self.items_collection.create_index(
                [("user_id", ASCENDING), ("rating", ASCENDING)],
                partialFilterExpression={"rating": {"$type": "int"}}
            )
            await self.items_collection.create_index("external_id")
            await self.items_collection.create_index(
                [("title", TEXT), ("author_or_director", TEXT)], default_language="english"
            )

            logger.info("Successfully created MongoDB indexes")

        except Exception as e:
            logger.error("Failed to create indexes", error=str(e))
            raise

    # Users

    async def create_user(self, user: UserCreate, password_digest: str) -> Dict[str, Any]:
        """
        Insert a new user.

        Args:
            user: Validated registration payload
            password_digest: Hashed password

        Returns:
            Public user dict

        Raises:
            EmailTakenError: If the email is already registered
        """
        now = datetime.utcnow()
        user_doc = {
            "name": user.name.strip(),
            "email": user.email,
            "password_digest": password_digest,
            "created_at": now,
            "updated_at": now,
        }
        try:
            result = await self.users_collection.insert_one(user_doc)
        except DuplicateKeyError:
            logger.info("Registration with existing email", email=user.email)
            raise EmailTakenError(user.email)

        user_doc["_id"] = result.inserted_id
        logger.info("User created", user_id=str(result.inserted_id))
        return user_from_doc(user_doc)

    async def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """
        Get a stored user by email, including the password digest.

        Returns:
            Raw user document or None
        """
        if not email:
            return None
        return await self.users_collection.find_one({"email": email.strip().lower()})

    async def get_user_by_id(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Get the public view of a user by id, or None."""
        object_id = _object_id(user_id)
        if object_id is None:
            return None
        user_doc = await self.users_collection.find_one({"_id": object_id})
        return user_from_doc(user_doc) if user_doc else None

    # Items

    async def list_items(self, user_id: str, query_params: ItemQueryParams) -> ItemListResponse:
        """
        Get a user's items with filtering, sorting, and pagination.

        Args:
            user_id: Owner of the items
            query_params: Query parameters for filtering and pagination

        Returns:
            ItemListResponse with the page, collection stats and pagination info
        """
        try:
            filter_query = build_item_filter(user_id, query_params)
            sort_query = build_item_sort(query_params.sort)
            skip = (query_params.page - 1) * query_params.per_page

            cursor = (
                self.items_collection.find(filter_query)
                .sort(sort_query)
                .skip(skip)
                .limit(query_params.per_page)
            )
            item_docs = await cursor.to_list(length=query_params.per_page)

            total = None
            if query_params.include_count:
                total = await self.items_collection.count_documents(filter_query)

            return ItemListResponse(
                items=[item_from_doc(doc) for doc in item_docs],
                stats=await self.get_dashboard_stats(user_id),
                pagination=Pagination(
                    page=query_params.page,
                    per_page=query_params.per_page,
                    total=total
                )
            )

        except Exception as e:
            logger.error("Failed to list items", error=str(e), query_params=query_params.model_dump())
            raise

    async def get_dashboard_stats(self, user_id: str) -> DashboardStats:
        """Aggregate status counts and rating average over a user's collection."""
        pipeline = [
            {"$match": {"user_id": user_id}},
            {"$group": {
                "_id": "$status",
                "count": {"$sum": 1},
                "rated": {"$sum": {"$cond": [{"$ne": [{"$ifNull": ["$rating", None]}, None]}, 1, 0]}},
                "rating_sum": {"$sum": {"$ifNull": ["$rating", 0]}},
            }},
        ]
        cursor = self.items_collection.aggregate(pipeline)
        groups = await cursor.to_list(length=None)

        stats = DashboardStats()
        rating_sum = 0
        for group in groups:
            stats.total += group["count"]
            stats.rated_count += group["rated"]
            rating_sum += group["rating_sum"]
            if group["_id"] in {status.value for status in ItemStatus}:
                setattr(stats, group["_id"], group["count"])

        if stats.rated_count:
            stats.average_rating = round(rating_sum / stats.rated_count, 2)
        return stats

    async def get_item(self, user_id: str, item_id: str) -> Optional[ItemResponse]:
        """
        Get one of a user's items.

        Returns:
            ItemResponse, or None if missing, owned by someone else, or the id is invalid
        """
        object_id = _object_id(item_id)
        if object_id is None:
            return None
        item_doc = await self.items_collection.find_one({"_id": object_id, "user_id": user_id})
        return item_from_doc(item_doc) if item_doc else None

    async def find_item_by_external_id(self, user_id: str, external_id: str) -> Optional[ItemResponse]:
        """Duplicate check used before adding a catalog book."""
        if not external_id:
            return None
        item_doc = await self.items_collection.find_one({"user_id": user_id, "external_id": external_id})
        return item_from_doc(item_doc) if item_doc else None

    async def create_item(self, user_id: str, item: ItemCreate) -> ItemResponse:
        """Insert a new item for a user."""
        now = datetime.utcnow()
        item_doc = item.model_dump(mode="json")
        item_doc.update({"user_id": user_id, "created_at": now, "updated_at": now})

        try:
            result = await self.items_collection.insert_one(item_doc)
        except Exception as e:
            logger.error("Failed to create item", user_id=user_id, title=item.title, error=str(e))
            raise

        item_doc["_id"] = result.inserted_id
        logger.info("Item created", item_id=str(result.inserted_id), title=item.title)
        return item_from_doc(item_doc)

    async def update_item(self, user_id: str, item_id: str, update: ItemUpdate) -> Optional[ItemResponse]:
        """
        Apply a partial update to one of a user's items.

        Returns:
            The updated item, or None if not found
        """
        object_id = _object_id(item_id)
        if object_id is None:
            return None

        update_data = update.model_dump(mode="json", exclude_unset=True)
        # Required fields can be changed but not cleared
        for field in ("title", "item_type", "status"):
            if field in update_data and update_data[field] is None:
                del update_data[field]
        update_data["updated_at"] = datetime.utcnow()

        try:
            result = await self.items_collection.update_one(
                {"_id": object_id, "user_id": user_id},
                {"$set": update_data}
            )
        except Exception as e:
            logger.error("Failed to update item", item_id=item_id, error=str(e))
            raise

        if result.matched_count == 0:
            logger.warning("Item not found for update", item_id=item_id)
            return None

        return await self.get_item(user_id, item_id)

    async def delete_item(self, user_id: str, item_id: str) -> bool:
        """
        Delete one of a user's items.

        Returns:
            True if deleted, False if not found
        """
        object_id = _object_id(item_id)
        if object_id is None:
            return False

        result = await self.items_collection.delete_one({"_id": object_id, "user_id": user_id})
        if result.deleted_count > 0:
            logger.debug("Successfully deleted item", item_id=item_id)
            return True

        logger.warning("Item not found for deletion", item_id=item_id)
        return False

    async def health_check(self) -> Dict:
        """
        Perform database health check.

        Returns:
            Dictionary with health status
        """
        try:
            await self.database.command("ping")

            users_count = await self.users_collection.estimated_document_count()
            items_count = await self.items_collection.estimated_document_count()

            return {
                "status": "healthy",
                "users_count": users_count,
                "items_count": items_count
            }
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e)
            }
