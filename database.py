# snapcaption_backend/database.py
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, TEXT
from config import MONGO_URI, MONGO_DB_NAME, logger


# --- Async MongoDB Setup ---
def get_async_database():
    """Initializes and returns the asynchronous MongoDB client database."""
    try:
        client = AsyncIOMotorClient(MONGO_URI)
        db = client[MONGO_DB_NAME]
        logger.info("Async MongoDB client created.")
        return db
    except Exception as e:
        logger.error(f"Failed to create Async MongoDB client: {e}")
        raise


# --- Database Collections (Async, initialized immediately on import) ---
db = get_async_database()
users_collection = db["users"]
posts_collection = db["posts"]


async def create_indexes():
    """Creates the search and uniqueness indexes used by the API."""
    try:
        await posts_collection.create_index(
            [("caption", TEXT), ("tags", TEXT)], name="caption_tags_text"
        )
        await posts_collection.create_index([("user", ASCENDING), ("createdAt", ASCENDING)])
        await users_collection.create_index("username", unique=True)
        logger.info("MongoDB indexes ensured.")
    except Exception as e:
        logger.warning(f"Failed to create MongoDB indexes: {e}")
