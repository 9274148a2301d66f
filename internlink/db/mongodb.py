"""
MongoDB Connection Utility

MongoDB stores the application documents:
- One document per (student, posting) pair, `_id` is the application id
- Inline resume blob (base64) with filename and MIME type
- `last_updated` version stamp used for compare-and-swap updates

WHY MongoDB for these?
- The application is a self-contained document read and written whole
- Single-document writes are atomic, which is all optimistic versioning needs
- No joins needed: posting title and company name are snapshotted at submit
"""
import logging

from pymongo import ASCENDING, AsyncMongoClient
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.asynchronous.database import AsyncDatabase

from internlink.core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

# Global client (connection pooling handled internally by pymongo)
_client: AsyncMongoClient = None
_db: AsyncDatabase = None


def get_mongo_client() -> AsyncMongoClient:
    """Get or create MongoDB client (singleton pattern)"""
    global _client
    if _client is None:
        _client = AsyncMongoClient(settings.mongodb_uri, tz_aware=True)
    return _client


def get_mongo_db() -> AsyncDatabase:
    """Get the application database"""
    global _db
    if _db is None:
        client = get_mongo_client()
        _db = client[settings.mongodb_db]
    return _db


def get_applications_collection() -> AsyncCollection:
    return get_mongo_db()[settings.mongodb_applications_collection]


async def test_mongo_connection() -> bool:
    """
    Test if MongoDB is reachable.
    Returns True if connection successful, False otherwise.
    """
    try:
        client = get_mongo_client()
        # ping command checks connection
        await client.admin.command('ping')
        return True
    except Exception as e:
        logger.error("MongoDB connection failed: %s", e)
        return False


async def init_mongo_indexes(collection: AsyncCollection = None):
    """
    Create indexes for the applications collection.
    Call this once during app startup.
    """
    collection = collection if collection is not None else get_applications_collection()

    # One application per (student, posting): backs resubmit-in-place
    await collection.create_index(
        [("student_id", ASCENDING), ("posting_id", ASCENDING)],
        unique=True,
        name="uniq_student_posting",
    )

    # List subscriptions query by these, ordered by submission
    await collection.create_index([("posting_id", ASCENDING), ("applied_date", ASCENDING)])
    await collection.create_index([("company_name", ASCENDING), ("applied_date", ASCENDING)])
    await collection.create_index([("student_id", ASCENDING), ("applied_date", ASCENDING)])

    logger.info("MongoDB indexes created on %s", collection.name)


async def close_mongo_client():
    global _client, _db
    if _client is not None:
        await _client.close()
    _client = None
    _db = None
