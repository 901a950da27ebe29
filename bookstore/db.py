# bookstore/db.py
import os
import logging
from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv

load_dotenv()

MONGO_URI = os.getenv("MONGO_URI", "mongodb://127.0.0.1:27017")
MONGO_DB = os.getenv("MONGO_DB", "plp_bookstore")
MONGO_COLLECTION = os.getenv("MONGO_COLLECTION", "books")

logger = logging.getLogger("db")
logger.setLevel(logging.INFO)

_client = None
_db = None


def get_client():
    """Initialize and return the MongoDB AsyncIOMotorClient singleton."""
    global _client, _db
    if _client is None:
        _client = AsyncIOMotorClient(MONGO_URI)
        _db = _client[MONGO_DB]
    return _client


def get_db():
    """Return the MongoDB database instance, initializing if needed."""
    global _db
    if _db is None:
        get_client()
    return _db


def get_books_collection():
    """Return the configured books collection handle."""
    return get_db()[MONGO_COLLECTION]


async def ensure_collection(db, name=MONGO_COLLECTION):
    """
    Create a collection unless it already exists.

    MongoDB's create_collection raises CollectionInvalid when the name is
    taken, so the existing names are checked first. Inserting into a missing
    collection creates it implicitly; this call only makes the step explicit.

    Args:
        db: Motor database handle
        name (str): Collection name. Defaults to MONGO_COLLECTION.

    Returns:
        bool: True if the collection was created, False if it already existed
    """
    existing = await db.list_collection_names()
    if name in existing:
        return False
    await db.create_collection(name)
    logger.info(f"Created collection {name}")
    return True
