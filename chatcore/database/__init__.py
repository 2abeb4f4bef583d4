import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from .mongodb import init_mongodb, close_mongo_connection
from .store import ChatStore, MongoChatStore, guarded

logger = logging.getLogger(__name__)


async def init_databases() -> AsyncIOMotorDatabase:
    """Initialize MongoDB and its indexes"""
    try:
        db = await init_mongodb()
        logger.info("MongoDB initialization completed")
        return db
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise


async def close_databases():
    """Close all database connections"""
    try:
        await close_mongo_connection()
        logger.info("All database connections closed")
    except Exception as e:
        logger.error(f"Error closing database connections: {e}")


async def check_database_health(store: Optional[ChatStore], timeout: float) -> dict:
    """Check health of the store connection"""
    mongo_status = False
    if store is not None:
        try:
            mongo_status = await guarded("ping", store.ping(), timeout)
        except Exception as e:
            logger.warning(f"MongoDB health check failed: {e}")

    return {
        "mongodb": mongo_status,
        "overall": mongo_status
    }

__all__ = [
    "init_databases",
    "close_databases",
    "check_database_health",
    "ChatStore",
    "MongoChatStore",
    "guarded",
]
