# accounts_api/core/security.py
"""
Security module for issuing and validating access tokens.

Provides functionality for:
- Creating signed JWT access tokens for a user id.
- JWT token validation (signature, expiry, required claims).
- FastAPI dependency returning the validated token payload.
- Custom exceptions for specific security errors.

Example Usage in Endpoints:
    ```python
    from fastapi import APIRouter, Depends
    from typing import Dict, Any
    from accounts_api.core.security import get_current_user_payload

    router = APIRouter()

    @router.get("/protected-resource")
    async def get_protected_resource(
        payload: Dict[str, Any] = Depends(get_current_user_payload)
    ):
        user_id = payload.get("sub")
        return {"message": f"Hello user {user_id}"}
    ```
"""

import logging
from typing import Dict, Any, Optional
from datetime import datetime, timedelta, timezone

from jose import jwt, exceptions as jose_exceptions

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from .config import settings

logger = logging.getLogger(__name__)

# --- Custom Exceptions ---
class SecurityError(Exception):
    """Base class for security-related exceptions."""
    pass

class TokenValidationError(SecurityError):
    """Raised when token validation fails (expiry, signature, claims, etc.)."""
    pass

# --- Token Creation ---

def create_access_token(subject: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Creates a signed access token whose 'sub' claim is the user id.

    Args:
        subject: The user id to embed.
        expires_delta: Lifetime of the token. Defaults to ACCESS_TOKEN_EXPIRE_MINUTES.

    Returns:
        The encoded JWT string.
    """
    now = datetime.now(timezone.utc)
    expires = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    claims = {
        "sub": str(subject),
        "iss": settings.PROJECT_NAME,
        "iat": int(now.timestamp()),
        "exp": int(expires.timestamp()),
    }
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

# --- JWT Validation Function ---

def validate_token(token: str) -> Dict[str, Any]:
    """
    Decodes and validates a JWT access token.

    Returns:
        The decoded token payload (dictionary) if validation is successful.

    Raises:
        TokenValidationError: If the signature, expiry or claims are invalid.
    """
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            issuer=settings.PROJECT_NAME,
        )
    except jose_exceptions.ExpiredSignatureError:
        raise TokenValidationError("Token validation failed: Expired signature.")
    except jose_exceptions.JWTClaimsError as e:
        raise TokenValidationError(f"Token validation failed: Invalid claims - {e}")
    except jose_exceptions.JWTError as e:
        raise TokenValidationError(f"Token validation failed: Invalid token - {e}")

    if not payload.get("sub"):
        raise TokenValidationError("Token validation failed: 'sub' claim missing.")
    return payload


# --- FastAPI Dependency for Authentication ---

# auto_error=False so a missing token is reported by our own dependency
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/signin", auto_error=False)

async def get_current_user_payload(
    token: Optional[str] = Depends(oauth2_scheme)
) -> Dict[str, Any]:
    """
    FastAPI dependency validating the bearer token and returning its payload.

    Raises:
        HTTPException(401): If the token is missing, invalid or expired.
        HTTPException(500): If an unexpected internal error occurs.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid authentication credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if token is None:
        logger.warning("Authentication attempt failed: No token provided.")
        raise credentials_exception

    try:
        return validate_token(token)
    except TokenValidationError as e:
        logger.warning(f"Authentication failed: {e}")
        raise credentials_exception from e
    except Exception as e:
        logger.error(f"Unexpected error during authentication dependency: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An internal error occurred during authentication.",
        ) from e
