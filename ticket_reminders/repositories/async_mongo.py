"""Async MongoDB Client using Motor for async operations"""
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase, AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING

from ..config.settings import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Global async client instance
_async_client: Optional[AsyncIOMotorClient] = None
_async_database: Optional[AsyncIOMotorDatabase] = None


def get_async_client() -> AsyncIOMotorClient:
    """Get or create async MongoDB client using Motor"""
    global _async_client
    if _async_client is None:
        logger.info(f"Creating async MongoDB client for: {settings.mongo_uri}")
        _async_client = AsyncIOMotorClient(
            settings.mongo_uri,
            tz_aware=True,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
            socketTimeoutMS=30000,
        )
    return _async_client


def get_async_database() -> AsyncIOMotorDatabase:
    """Get the async application database"""
    global _async_database
    if _async_database is None:
        client = get_async_client()
        _async_database = client[settings.mongo_db]
        logger.info(f"Using async database: {settings.mongo_db}")
    return _async_database


def get_async_collection(name: str) -> AsyncIOMotorCollection:
    """Get a collection from the async database"""
    return get_async_database()[name]


async def close_async_connection() -> None:
    """Close async MongoDB connection"""
    global _async_client, _async_database
    if _async_client is not None:
        _async_client.close()
        _async_client = None
        _async_database = None
        logger.info("Async MongoDB connection closed")


async def create_indexes() -> None:
    """Create indexes used by the scheduler queries"""
    db = get_async_database()
    logger.info("Creating MongoDB indexes...")

    tickets = db["tickets"]
    await tickets.create_index("ticket_id", unique=True)
    await tickets.create_index([("status", ASCENDING), ("agency_date", ASCENDING)])
    await tickets.create_index("reminder_log.entry_id")
    await tickets.create_index("reminder_log.message_id", sparse=True)
    await tickets.create_index([("reminder_log.sent_at", DESCENDING)])

    rules = db["notification_rules"]
    await rules.create_index([("active", ASCENDING), ("kind", ASCENDING)])

    # scheduler_locks is keyed by _id (lock name); no extra index needed

    logger.info("MongoDB indexes created successfully")


async def async_health_check() -> dict:
    """Check async MongoDB health"""
    try:
        client = get_async_client()
        await client.admin.command("ping")
        return {
            "status": "healthy",
            "database": settings.mongo_db,
            "connection": "ok",
            "type": "async"
        }
    except Exception as e:
        logger.error(f"Async MongoDB health check failed: {e}")
        return {
            "status": "unhealthy",
            "database": settings.mongo_db,
            "error": str(e),
            "type": "async"
        }
