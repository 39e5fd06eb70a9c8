# accounts_api/core/auth_helpers.py
"""
Password, token and link helpers shared by the user and auth services.

Hashing runs in a worker thread so the event loop is never blocked by the
key-derivation function.
"""

import asyncio
import hashlib
import logging
import re
import secrets
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

from werkzeug.security import generate_password_hash, check_password_hash

from .config import settings

logger = logging.getLogger(__name__)


async def hash_password(password: str) -> str:
    """Returns a salted hash of the given cleartext password."""
    return await asyncio.to_thread(generate_password_hash, password)

async def verify_password(password_hash: Optional[str], candidate: Optional[str]) -> bool:
    """Checks a cleartext candidate against a stored hash. Missing values never match."""
    if not password_hash or not candidate:
        return False
    return await asyncio.to_thread(check_password_hash, password_hash, candidate)

def generate_unique_token() -> str:
    return secrets.token_urlsafe(32)

def token_expiry(now: Optional[datetime] = None) -> datetime:
    """Expiry timestamp for a freshly issued verification or reset token."""
    now = now or datetime.now(timezone.utc)
    return now + timedelta(seconds=settings.EMAIL_VERIFICATION_TTL_SECONDS)

def is_expired(expires: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """
    True when the expiry is in the past. A token without an expiry is treated
    as already used. Naive datetimes (as returned by pymongo without tz_aware)
    are read as UTC.
    """
    if expires is None:
        return True
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return now > expires

@lru_cache(maxsize=8)
def _strength_pattern(pattern: str) -> re.Pattern:
    return re.compile(pattern)

def is_strong_password(password: Optional[str]) -> bool:
    if not password:
        return False
    return _strength_pattern(settings.PASSWORD_STRENGTH_RE).search(password) is not None

def generate_url() -> str:
    """Base URL of the front-end application, without trailing slash."""
    return settings.APP_BASE_URL.rstrip('/')

def generate_profile_image_url(email: Optional[str]) -> Optional[str]:
    """Identicon avatar URL keyed on the md5 of the lower-cased email."""
    if not email:
        return None
    digest = hashlib.md5(email.lower().encode('utf-8')).hexdigest()
    return f"https://{settings.AVATAR_PROVIDER}/avatar/{digest}?d=identicon"
