# accounts_api/api/v1/endpoints/roles.py

import logging
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, status, Response

from accounts_api.api.deps import CurrentUser, RoleServiceDep, UserServiceDep
from accounts_api.models.user import RoleSubrolesUpdate, SubroleRemoval, UserRoleAssignment
from accounts_api.services.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/roles",
    tags=["Roles"]
)

def _require_admin(current_user: Dict[str, Any], user_service: UserService, action: str) -> None:
    if not user_service.is_authorized(current_user, action):
        logger.warning(f"User {current_user.get('_id')} denied role action '{action}'.")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)

# --- PUT /roles/{role_name}/subroles ---
@router.put(
    "/{role_name}/subroles",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Replace a role's subroles and propagate them to its users (Admin Only)",
    description=(
        "User documents are updated in the background; the response does not wait for them. "
        "The role map itself lives in this process only: it is reset to ROLE_SUBROLES on restart "
        "and is not shared between workers."
    ),
)
async def set_role_subroles(
    role_name: str,
    body: RoleSubrolesUpdate,
    current_user: CurrentUser,
    user_service: UserServiceDep,
    role_service: RoleServiceDep,
):
    _require_admin(current_user, user_service, "set_subroles")
    subroles = role_service.set_subroles(role_name, body.subroles)
    user_service.flush_subroles(role_name, subroles)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

# --- DELETE /roles/subroles ---
@router.delete(
    "/subroles",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Retire subrole labels from every role and user (Admin Only)",
    description=(
        "Users are updated in the background. The role map change applies to this process only "
        "and is reset to ROLE_SUBROLES on restart."
    ),
)
async def remove_subroles(
    body: SubroleRemoval,
    current_user: CurrentUser,
    user_service: UserServiceDep,
    role_service: RoleServiceDep,
):
    _require_admin(current_user, user_service, "remove_subroles")
    labels = role_service.retire_subroles(body.subroles)
    user_service.remove_subroles(labels)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

# --- PUT /roles/users/{user_id} ---
@router.put(
    "/users/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Assign a role to one user (Admin Only)",
)
async def assign_user_role(
    user_id: str,
    body: UserRoleAssignment,
    current_user: CurrentUser,
    user_service: UserServiceDep,
    role_service: RoleServiceDep,
):
    _require_admin(current_user, user_service, "assign_role")
    try:
        subroles = await role_service.determine_subroles(body.role)
        await user_service.update_user_roles(user_id, body.role, subroles)
    except Exception as e:
        logger.error(f"Error assigning role '{body.role}' to user {user_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to assign role."
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
