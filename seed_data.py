"""
Seed the database with a demo user and sample books.
Safe to run repeatedly: existing records are left untouched.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from motor.motor_asyncio import AsyncIOMotorClient

from api.auth import hash_password
from api.database import APIDatabaseService, EmailTakenError, user_from_doc
from api.models import ItemCreate, ItemStatus, UserCreate
from utilities.config import config
from utilities.logger import setup_logging, get_logger

DEMO_USER = UserCreate(
    name="Demo User",
    email="demo@example.com",
    password="password123"
)

SAMPLE_BOOKS = [
    ItemCreate(
        title="The Great Gatsby",
        status=ItemStatus.WANT_TO_READ,
        author_or_director="F. Scott Fitzgerald",
        genre="Classic Literature",
        release_year=1925
    ),
    ItemCreate(
        title="To Kill a Mockingbird",
        status=ItemStatus.COMPLETED,
        rating=5,
        author_or_director="Harper Lee",
        genre="Fiction",
        release_year=1960,
        notes="Amazing book about justice and moral growth"
    ),
]


async def seed(db_service: APIDatabaseService) -> dict:
    """
    Create the demo user and any missing sample books.

    Returns:
        Dictionary with the demo user id and the number of books created
    """
    logger = get_logger(__name__)

    try:
        user = await db_service.create_user(DEMO_USER, hash_password(DEMO_USER.password))
        logger.info("Demo user created", user_id=user["id"])
    except EmailTakenError:
        user = user_from_doc(await db_service.get_user_by_email(DEMO_USER.email))
        logger.info("Demo user already exists", user_id=user["id"])

    created = 0
    for book in SAMPLE_BOOKS:
        existing = await db_service.items_collection.find_one(
            {"user_id": user["id"], "title": book.title}
        )
        if existing:
            continue
        await db_service.create_item(user["id"], book)
        created += 1

    return {"user_id": user["id"], "books_created": created}


async def main():
    """Connect, seed and report."""
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )
    logger = get_logger(__name__)

    client = AsyncIOMotorClient(config.mongodb_url)
    try:
        db_service = APIDatabaseService(client[config.mongodb_database])
        await db_service.create_indexes()
        result = await seed(db_service)

        users = await db_service.users_collection.count_documents({})
        items = await db_service.items_collection.count_documents({})
        logger.info("Seeding complete", users=users, items=items, **result)

    except Exception as e:
        logger.error("Seeding failed", error=str(e))
        sys.exit(1)

    finally:
        client.close()


if __name__ == "__main__":
    asyncio.run(main())
