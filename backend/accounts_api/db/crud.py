# accounts_api/db/crud.py

# --- Core Imports ---
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError
from pymongo.results import UpdateResult
from typing import List, Optional, Dict, Any
from datetime import datetime, timezone
import logging
import re

# --- Database Access ---
from .database import get_database

from accounts_api.core.exceptions import DuplicateKeyFieldError

# --- Logging Setup ---
logger = logging.getLogger(__name__)

# --- MongoDB Collection & Index Names ---
USER_COLLECTION = "users"
USERNAME_FIELD = "username"
EMAIL_FIELD = "email"
USERNAME_INDEX = "username_1"
EMAIL_INDEX = "email_1"

_INDEX_FIELDS = {USERNAME_INDEX: USERNAME_FIELD, EMAIL_INDEX: EMAIL_FIELD}

# --- Helper Functions ---

def _get_collection(collection_name: str) -> AsyncIOMotorCollection:
    db = get_database()
    if db is None:
        logger.error("Database connection is not available (db object is None). Cannot get collection.")
        raise RuntimeError("Database connection not available")
    return db[collection_name]

def duplicate_key_index(error: DuplicateKeyError) -> Optional[str]:
    """
    Name of the unique index a DuplicateKeyError was raised for.

    The server message reads "E11000 duplicate key error collection: db.users
    index: username_1 dup key: {...}"; the word after "index:" is the name.
    Falls back to the keyPattern in the error details.
    """
    details = error.details or {}
    errmsg = details.get("errmsg") or str(error)
    parts = errmsg.split()
    if "index:" in parts:
        position = parts.index("index:") + 1
        if position < len(parts):
            return parts[position]
    key_pattern = details.get("keyPattern")
    if key_pattern:
        return "_".join(f"{field}_{direction}" for field, direction in key_pattern.items())
    return None

def _raise_duplicate(error: DuplicateKeyError, user_id: Any) -> None:
    index_name = duplicate_key_index(error)
    logger.warning(f"DuplicateKeyError on index '{index_name}' for user {user_id}")
    raise DuplicateKeyFieldError(index_name, _INDEX_FIELDS.get(index_name)) from error

def username_search_filter(search: str) -> Dict[str, Any]:
    """Case-insensitive substring match on username; empty search matches everything."""
    if not search:
        return {}
    return {USERNAME_FIELD: {"$regex": re.escape(search), "$options": "i"}}

# --- User CRUD Functions ---

async def get_user_by_id(user_id: str) -> Optional[Dict[str, Any]]:
    """Get a single user document by its id."""
    collection = _get_collection(USER_COLLECTION)
    logger.debug(f"Getting user by ID: {user_id}")
    return await collection.find_one({"_id": user_id})

async def get_user_by_username(username: str) -> Optional[Dict[str, Any]]:
    collection = _get_collection(USER_COLLECTION)
    return await collection.find_one({USERNAME_FIELD: username})

async def find_users(search: str = "", skip: int = 0, limit: int = 25) -> List[Dict[str, Any]]:
    """Page of users sorted by username ascending."""
    collection = _get_collection(USER_COLLECTION)
    query = username_search_filter(search)
    logger.info(f"Getting users search='{search}' skip={skip} limit={limit}")
    cursor = collection.find(query).sort(USERNAME_FIELD, ASCENDING).skip(skip).limit(limit)
    return await cursor.to_list(length=limit)

async def get_users_by_ids(user_ids: List[str], projection: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    collection = _get_collection(USER_COLLECTION)
    if not user_ids:
        return []
    logger.info(f"Getting {len(user_ids)} users by id list")
    cursor = collection.find({"_id": {"$in": user_ids}}, projection)
    return await cursor.to_list(length=len(user_ids))

async def find_users_by_field(field: str, value: Any, limit: int = 2) -> List[Dict[str, Any]]:
    """
    Users whose `field` equals `value`. Dotted paths are allowed. The default
    limit of 2 is enough for callers that only need to know "exactly one".
    """
    collection = _get_collection(USER_COLLECTION)
    cursor = collection.find({field: value}).limit(limit)
    return await cursor.to_list(length=limit)

async def insert_user(user_doc: Dict[str, Any]) -> Dict[str, Any]:
    """Inserts a new user document. Raises DuplicateKeyFieldError on unique index violations."""
    collection = _get_collection(USER_COLLECTION)
    logger.info(f"Inserting user: {user_doc.get('_id')}")
    try:
        await collection.insert_one(user_doc)
    except DuplicateKeyError as e:
        _raise_duplicate(e, user_doc.get("_id"))
    return user_doc

async def save_user(user_doc: Dict[str, Any]) -> Dict[str, Any]:
    """Replaces the stored document with `user_doc` (matched by _id)."""
    collection = _get_collection(USER_COLLECTION)
    logger.info(f"Saving user: {user_doc.get('_id')}")
    try:
        await collection.replace_one({"_id": user_doc["_id"]}, user_doc)
    except DuplicateKeyError as e:
        _raise_duplicate(e, user_doc.get("_id"))
    return user_doc

async def update_user_fields(user_id: str, fields: Dict[str, Any]) -> UpdateResult:
    """Partial update ($set) of a single user."""
    collection = _get_collection(USER_COLLECTION)
    update_data = dict(fields)
    for key in ("_id", "id", "created_at"):
        update_data.pop(key, None)
    update_data["updated_at"] = datetime.now(timezone.utc)
    logger.info(f"Updating user {user_id} fields: {sorted(update_data)}")
    try:
        return await collection.update_one({"_id": user_id}, {"$set": update_data})
    except DuplicateKeyError as e:
        _raise_duplicate(e, user_id)

async def delete_user(user_id: str) -> int:
    """Hard-deletes a user. Returns the deleted count (0 when the id did not exist)."""
    collection = _get_collection(USER_COLLECTION)
    logger.info(f"Deleting user {user_id}")
    result = await collection.delete_one({"_id": user_id})
    return result.deleted_count

# --- Role / Subrole Bulk Functions ---

async def set_subroles_for_role(role: str, subroles: List[str]) -> int:
    """Replaces the subroles of every user holding `role`."""
    collection = _get_collection(USER_COLLECTION)
    result = await collection.update_many({"role": role}, {"$set": {"subroles": list(subroles)}})
    logger.info(f"Set subroles {subroles} on {result.modified_count} users with role '{role}'")
    return result.modified_count

async def pull_subrole(subrole: str) -> int:
    """Removes one subrole label from every user that carries it."""
    collection = _get_collection(USER_COLLECTION)
    result = await collection.update_many({"subroles": subrole}, {"$pull": {"subroles": subrole}})
    logger.info(f"Removed subrole '{subrole}' from {result.modified_count} users")
    return result.modified_count

async def set_user_role(user_id: str, role: str, subroles: List[str]) -> UpdateResult:
    collection = _get_collection(USER_COLLECTION)
    return await collection.update_one(
        {"_id": user_id},
        {"$set": {"role": role, "subroles": list(subroles), "updated_at": datetime.now(timezone.utc)}}
    )
