import logging
from functools import lru_cache
from typing import Annotated, Any, Dict

from fastapi import Depends, HTTPException, status

from accounts_api.core.config import settings
from accounts_api.core.security import get_current_user_payload
from accounts_api.db import crud
from accounts_api.services.auth_service import AuthService
from accounts_api.services.mail import Mailer
from accounts_api.services.role_service import RoleService
from accounts_api.services.user_service import UserService

logger = logging.getLogger(__name__)

# Build order matters: RoleService first, then the services that receive it.

@lru_cache()
def get_role_service() -> RoleService:
    return RoleService(settings.ROLE_SUBROLES, default_role=settings.DEFAULT_ROLE_NAME)

@lru_cache()
def get_user_service() -> UserService:
    return UserService(role_service=get_role_service(), admin_role=settings.ADMIN_ROLE_NAME)

@lru_cache()
def get_mailer() -> Mailer:
    return Mailer.from_settings()

@lru_cache()
def get_auth_service() -> AuthService:
    return AuthService(role_service=get_role_service(), mailer=get_mailer())

def require_registration_enabled() -> None:
    """Route dependency; resolved before the request body is validated."""
    if not settings.ALLOW_REGISTRATION:
        logger.warning("Registration is disabled but someone tried to signup")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Registration is disabled")

async def get_current_user(
    payload: Annotated[Dict[str, Any], Depends(get_current_user_payload)]
) -> Dict[str, Any]:
    """Loads the stored user behind the bearer token. This is the acting principal."""
    user_id = payload.get("sub")
    try:
        user = await crud.get_user_by_id(user_id)
    except Exception as e:
        logger.error(f"Error loading authenticated user {user_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An internal error occurred during authentication.",
        )
    if user is None:
        logger.warning(f"Token subject {user_id} does not match any user.")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user

CurrentUser = Annotated[Dict[str, Any], Depends(get_current_user)]
UserServiceDep = Annotated[UserService, Depends(get_user_service)]
AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
RoleServiceDep = Annotated[RoleService, Depends(get_role_service)]
