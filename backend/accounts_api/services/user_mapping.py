# accounts_api/services/user_mapping.py
"""
Mapping between request bodies, stored user documents and public views.

- `map_user` builds a new document from a create/register body.
- `map_over_user` copies the explicitly sent fields of an update body onto an
  existing document.
- `sanitize_user` produces the public view with every secret removed.
"""

import copy
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel

from accounts_api.models.user import UserPublic

# Secret fields. Never part of a public view.
SECRET_FIELDS = ("password",)
SECRET_SUBFIELDS = {"verification": "token", "reset_password": "token"}

# Projection used when reading users in bulk for display
SANITIZED_PROJECTION = {
    "_id": 1,
    "created_at": 1,
    "display_name": 1,
    "email": 1,
    "first_name": 1,
    "last_name": 1,
    "profile_image_url": 1,
    "role": 1,
    "subroles": 1,
    "updated_at": 1,
    "username": 1,
    "verified": 1,
}


def new_user_id() -> str:
    return str(uuid.uuid4())

def map_user(body: BaseModel, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Builds a new user document from the fields the body declares.
    Empty values are skipped, so model defaults stay in charge.
    """
    now = now or datetime.now(timezone.utc)
    user_doc = {key: value for key, value in body.model_dump().items() if value}
    user_doc["_id"] = new_user_id()
    user_doc.setdefault("subroles", [])
    user_doc.setdefault("verified", False)
    user_doc["created_at"] = now
    user_doc["updated_at"] = now
    return user_doc

def map_over_user(updates: BaseModel, user_doc: Dict[str, Any]) -> Dict[str, Any]:
    """Copies every field the client actually sent (except the id) onto the document."""
    for key, value in updates.model_dump(exclude_unset=True, exclude={"id"}).items():
        user_doc[key] = value
    return user_doc

def sanitize_user(user_doc: Dict[str, Any]) -> UserPublic:
    """Returns the public view of a user document; the input is left untouched."""
    sanitized = copy.deepcopy(dict(user_doc))
    for field in SECRET_FIELDS:
        sanitized.pop(field, None)
    for field, subfield in SECRET_SUBFIELDS.items():
        if isinstance(sanitized.get(field), dict):
            sanitized[field].pop(subfield, None)
        elif field in sanitized and sanitized[field] is not None:
            sanitized.pop(field)
    if "_id" in sanitized:
        sanitized["_id"] = str(sanitized["_id"])
    elif "id" in sanitized:
        sanitized["_id"] = str(sanitized.pop("id"))
    return UserPublic.model_validate(sanitized)
