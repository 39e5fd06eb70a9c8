# accounts_api/api/v1/endpoints/users.py

import logging
from typing import List

from fastapi import APIRouter, HTTPException, status, Query, Response

from accounts_api.api.deps import CurrentUser, UserServiceDep
from accounts_api.core.exceptions import (
    ForbiddenError,
    MalformedRequestError,
    NotFoundError,
    ValidationFailedError,
)
from accounts_api.models.user import UserAdminUpdate, UserCreate, UserPublic, UserUpdate

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/users",
    tags=["Users"]
)

_FORBIDDEN = HTTPException(status_code=status.HTTP_403_FORBIDDEN)

def _internal_error(operation: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {operation} due to a server error."
    )

# --- GET /users/me ---
@router.get(
    "/me",
    response_model=UserPublic,
    status_code=status.HTTP_200_OK,
    summary="Get the authenticated user's own profile",
)
async def read_self(current_user: CurrentUser, user_service: UserServiceDep):
    return user_service.read_self(current_user)

# --- GET /users ---
@router.get(
    "",
    response_model=List[UserPublic],
    status_code=status.HTTP_200_OK,
    summary="List users sorted by username",
    description="Pages of 25 users. `search` matches usernames case-insensitively.",
)
async def list_users(
    current_user: CurrentUser,
    user_service: UserServiceDep,
    page: int = Query(1, ge=1, description="1-based page number"),
    search: str = Query("", description="Username search text"),
):
    logger.info(f"User {current_user.get('_id')} listing users (page={page}, search='{search}').")
    try:
        return await user_service.list_users(page=page, search=search)
    except Exception as e:
        logger.error(f"Error user.crud#list: {e}", exc_info=True)
        raise _internal_error("list users")

# --- GET /users/list/{user_list} ---
@router.get(
    "/list/{user_list}",
    response_model=List[UserPublic],
    # Fields outside the projection are left out rather than defaulted
    response_model_exclude_unset=True,
    status_code=status.HTTP_200_OK,
    summary="Get several users by a comma-separated id list",
)
async def read_list(user_list: str, current_user: CurrentUser, user_service: UserServiceDep):
    try:
        return await user_service.read_list(user_list)
    except Exception as e:
        logger.error(f"Error user.crud#readList: {e}", exc_info=True)
        raise _internal_error("read users")

# --- POST /users ---
@router.post(
    "",
    response_model=UserPublic,
    status_code=status.HTTP_201_CREATED,
    summary="Create a user (Admin Only)",
    responses={
        400: {"description": "Validation error (including duplicate username/email)"},
        403: {"description": "User does not have admin privileges"},
    }
)
async def create_user(user_in: UserCreate, current_user: CurrentUser, user_service: UserServiceDep):
    try:
        return await user_service.create(current_user, user_in)
    except ValidationFailedError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.errors)
    except ForbiddenError:
        logger.warning(f"User {current_user.get('_id')} denied attempt to create a user.")
        raise _FORBIDDEN
    except Exception as e:
        logger.error(f"Error user.crud#create: {e}", exc_info=True)
        raise _internal_error("create user")

# --- PUT /users ---
@router.put(
    "",
    response_model=UserPublic,
    status_code=status.HTTP_200_OK,
    summary="Update a user",
    description="The body carries the target `_id`; only profile fields are copied.",
    responses={
        400: {"description": "Missing _id or validation error"},
        404: {"description": "User not found"},
    }
)
async def update_user(updates: UserUpdate, current_user: CurrentUser, user_service: UserServiceDep):
    try:
        return await user_service.update(current_user, updates)
    except MalformedRequestError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ValidationFailedError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.errors)
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    except Exception as e:
        logger.error(f"Error user.crud#update: {e}", exc_info=True)
        raise _internal_error("update user")

# --- PUT /users/admin ---
@router.put(
    "/admin",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Update any user field, including role and password (Admin Only)",
    responses={403: {"description": "User is not an administrator"}}
)
async def admin_update_user(updates: UserAdminUpdate, current_user: CurrentUser, user_service: UserServiceDep):
    try:
        await user_service.admin_update(current_user, updates)
    except ForbiddenError:
        logger.warning(f"User {current_user.get('_id')} (role: {current_user.get('role')}) denied admin update.")
        raise _FORBIDDEN
    except MalformedRequestError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Error in user.crud#adminUpdate: {e}", exc_info=True)
        raise _internal_error("update user")
    return Response(status_code=status.HTTP_204_NO_CONTENT)

# --- GET /users/{user_id} ---
@router.get(
    "/{user_id}",
    response_model=UserPublic,
    status_code=status.HTTP_200_OK,
    summary="Get a user by id (self or admin)",
    responses={
        403: {"description": "Not the same user and not an administrator"},
        404: {"description": "User not found"},
    }
)
async def read_user(user_id: str, current_user: CurrentUser, user_service: UserServiceDep):
    try:
        return await user_service.read(current_user, user_id)
    except MalformedRequestError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ForbiddenError:
        logger.warning(f"User {current_user.get('_id')} denied access to user {user_id}.")
        raise _FORBIDDEN
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    except Exception as e:
        logger.error(f"Error user.crud#read: {e}", exc_info=True)
        raise _internal_error("read user")

# --- DELETE /users/{user_id} ---
@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a user (Admin Only)",
    responses={403: {"description": "User does not have admin privileges"}}
)
async def delete_user(user_id: str, current_user: CurrentUser, user_service: UserServiceDep):
    try:
        await user_service.delete(current_user, user_id)
    except ForbiddenError:
        logger.warning(f"User {current_user.get('_id')} denied attempt to delete user {user_id}.")
        raise _FORBIDDEN
    except Exception as e:
        logger.error(f"Error user.crud#deleteUser: {e}", exc_info=True)
        raise _internal_error("delete user")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
