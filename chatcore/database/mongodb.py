import logging
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, IndexModel
from chatcore.core.config import settings

# MongoDB client and database
client: Optional[AsyncIOMotorClient] = None
database: Optional[AsyncIOMotorDatabase] = None

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"
CHATS_COLLECTION = "chats"
MESSAGES_COLLECTION = "messages"

CHAT_INDEXES = [
    # 1:1 채팅방 중복 생성 방지 (directKey가 없는 기존 문서는 제외)
    IndexModel(
        [("directKey", ASCENDING)],
        name="unique_direct_chat",
        unique=True,
        partialFilterExpression={"isGroupChat": False, "directKey": {"$type": "string"}},
    ),
    IndexModel([("users", ASCENDING), ("updatedAt", DESCENDING)], name="member_chats_by_activity"),
]

MESSAGE_INDEXES = [
    IndexModel([("chat", ASCENDING), ("createdAt", ASCENDING), ("_id", ASCENDING)], name="chat_history"),
    IndexModel([("chat", ASCENDING), ("recipientId", ASCENDING), ("isRead", ASCENDING)], name="unread_by_recipient"),
]


async def connect_to_mongo():
    """Create database connection"""
    global client, database
    try:
        client = AsyncIOMotorClient(
            settings.mongo_url,
            maxPoolSize=10,
            minPoolSize=1,
            maxIdleTimeMS=30000,
            waitQueueTimeoutMS=5000,
            serverSelectionTimeoutMS=int(settings.store_timeout_seconds * 1000),
        )
        database = client[settings.mongo_db_name]
        logger.info("Connected to MongoDB")
    except Exception as e:
        logger.error(f"Failed to connect to MongoDB: {e}")
        raise


async def ensure_indexes(db: AsyncIOMotorDatabase):
    """채팅/메시지 컬렉션 인덱스 생성"""
    await db[CHATS_COLLECTION].create_indexes(CHAT_INDEXES)
    await db[MESSAGES_COLLECTION].create_indexes(MESSAGE_INDEXES)
    logger.info("MongoDB indexes ensured")


async def init_mongodb() -> AsyncIOMotorDatabase:
    """Initialize MongoDB connection and indexes"""
    try:
        await connect_to_mongo()
        await ensure_indexes(database)
        logger.info("MongoDB initialized successfully")
        return database
    except Exception as e:
        logger.error(f"Failed to initialize MongoDB: {e}")
        raise


async def close_mongo_connection():
    """Close MongoDB connection"""
    global client, database
    if client:
        client.close()
        client = None
        database = None
        logger.info("MongoDB connection closed")
