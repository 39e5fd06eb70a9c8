# accounts_api/db/database.py
import motor.motor_asyncio
import logging
from typing import Optional, Dict, Any
from datetime import datetime, timezone

from pymongo.errors import OperationFailure

from accounts_api.core.config import MONGODB_URL, DB_NAME, MONGODB_TLS, PROJECT_NAME

logger = logging.getLogger(f"{PROJECT_NAME}.db")

_client: Optional[motor.motor_asyncio.AsyncIOMotorClient] = None
_db: Optional[motor.motor_asyncio.AsyncIOMotorDatabase] = None

async def connect_to_mongo() -> bool:
    """
    Establishes connection to the MongoDB database.
    Reads configuration from accounts_api.core.config.

    Returns:
        bool: True if connection successful, False otherwise.
    """
    global _client, _db

    if _db is not None:
        logger.info("Database connection already established.")
        return True

    if not MONGODB_URL:
        logger.error("FATAL ERROR: MONGODB_URL is not configured in accounts_api.core.config.")
        return False

    logger.info(f"Attempting to connect to MongoDB database: '{DB_NAME}'...")
    try:
        _client = motor.motor_asyncio.AsyncIOMotorClient(
            MONGODB_URL,
            tls=MONGODB_TLS,
            serverSelectionTimeoutMS=10000,
            maxPoolSize=10,
            tz_aware=True,
            uuidRepresentation='standard'
        )
        await _client.admin.command('ping')
        logger.info("MongoDB server ping successful.")

        _db = _client[DB_NAME]
        logger.info(f"Successfully connected to MongoDB database: '{DB_NAME}'")
        return True

    except Exception as e:
        logger.error(f"ERROR: Could not connect to MongoDB: {e}", exc_info=True)
        _client = None
        _db = None
        return False

async def close_mongo_connection():
    """Closes the MongoDB connection and resets state."""
    global _client, _db
    if _client:
        logger.info("Closing MongoDB connection...")
        _client.close()
        logger.info("MongoDB connection closed.")
        _client = None
        _db = None
    else:
        logger.info("No active MongoDB connection to close.")

def get_database() -> Optional[motor.motor_asyncio.AsyncIOMotorDatabase]:
    """
    Returns the database instance.
    Relies on connect_to_mongo() being called successfully at app startup.
    """
    if _db is None:
        logger.warning("Warning: Database instance is not initialized! Check connection.")
    return _db

async def ensure_user_indexes(db_instance: motor.motor_asyncio.AsyncIOMotorDatabase) -> None:
    """
    Creates the unique indexes the registration flow relies on. The index
    names are part of the contract: duplicate-key errors are classified by them.
    """
    from . import crud

    users = db_instance.get_collection(crud.USER_COLLECTION)
    for field, index_name in ((crud.USERNAME_FIELD, crud.USERNAME_INDEX), (crud.EMAIL_FIELD, crud.EMAIL_INDEX)):
        try:
            await users.create_index(field, name=index_name, unique=True)
            logger.info(f"Index '{index_name}' on {crud.USER_COLLECTION}.{field} ensured (unique).")
        except OperationFailure as e:
            logger.error(f"Database OperationFailure while creating index '{index_name}': {e}", exc_info=True)

async def check_database_health() -> Dict[str, Any]:
    """
    Performs a health check on the database connection and returns detailed status information.

    Returns:
        Dict containing status, connection details, collection info, errors, timestamp.
    """
    from . import crud

    expected_collections = [crud.USER_COLLECTION]

    health_info = {
        "status": "OK",
        "connected": False,
        "collections": [],
        "expected_collections": expected_collections,
        "missing_collections": [],
        "error": None,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }

    try:
        db_instance = get_database()
        if db_instance is None:
            health_info.update({
                "status": "ERROR",
                "error": "Database instance not initialized (connection likely failed on startup)"
            })
            return health_info

        await db_instance.client.admin.command('ping')
        health_info["connected"] = True

        collections = await db_instance.list_collection_names()
        health_info["collections"] = collections

        missing = [col for col in expected_collections if col not in collections]
        if missing:
            health_info["missing_collections"] = missing
            health_info["status"] = "WARNING"
            logger.warning(f"Database health check WARNING: Missing expected collections: {missing}")

        return health_info

    except Exception as e:
        logger.error(f"Database health check failed: {e}", exc_info=True)
        health_info.update({
            "status": "ERROR",
            "connected": False,
            "error": str(e)
        })
        return health_info
