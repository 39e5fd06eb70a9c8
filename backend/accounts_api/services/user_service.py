# accounts_api/services/user_service.py
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Set

from pymongo.results import UpdateResult

from accounts_api.core.auth_helpers import hash_password, generate_profile_image_url
from accounts_api.core.config import ADMIN_ROLE_NAME
from accounts_api.core.exceptions import (
    DuplicateKeyFieldError,
    ForbiddenError,
    MalformedRequestError,
    NotFoundError,
    ValidationFailedError,
)
from accounts_api.db import crud
from accounts_api.models.user import UserAdminUpdate, UserCreate, UserPublic, UserUpdate
from accounts_api.services.role_service import RoleService
from accounts_api.services.user_mapping import (
    SANITIZED_PROJECTION,
    map_over_user,
    map_user,
    sanitize_user,
)

logger = logging.getLogger(__name__)

PAGE_LIMIT = 25


def _validation_errors(error: DuplicateKeyFieldError) -> Dict[str, str]:
    field = error.field or error.index_name or "unknown"
    return {field: f"{field} already exists"}


class UserService:
    """
    User CRUD and role maintenance.

    Every method that acts on behalf of someone takes the acting user's stored
    document as `principal`. Authorization is a subrole check against the admin
    role name, except admin_update which compares the role itself.
    """

    def __init__(self, role_service: RoleService, admin_role: str = ADMIN_ROLE_NAME):
        self.role_service = role_service
        self.admin_role = admin_role
        self._background_tasks: Set[asyncio.Task] = set()

    # --- Authorization ---

    @staticmethod
    def is_self(principal: Dict[str, Any], user_id: Optional[str]) -> bool:
        return user_id is not None and str(principal.get("_id")) == str(user_id)

    def is_authorized(self, principal: Dict[str, Any], action: str) -> bool:
        """Same rule for every action for now: the admin subrole grants it."""
        return self.admin_role in (principal.get("subroles") or [])

    # --- CRUD ---

    async def read(self, principal: Dict[str, Any], user_id: Optional[str]) -> UserPublic:
        if not user_id:
            raise MalformedRequestError("Malformed request")
        if not (self.is_self(principal, user_id) or self.is_authorized(principal, "read")):
            raise ForbiddenError()

        found_user = await crud.get_user_by_id(user_id)
        if found_user is None:
            raise NotFoundError(f"User {user_id} not found")
        return sanitize_user(found_user)

    def read_self(self, principal: Dict[str, Any]) -> UserPublic:
        return sanitize_user(principal)

    async def list_users(self, page: int = 1, search: str = "") -> List[UserPublic]:
        skip = (max(page, 1) - 1) * PAGE_LIMIT
        found_users = await crud.find_users(search=search or "", skip=skip, limit=PAGE_LIMIT)
        return [sanitize_user(user) for user in found_users]

    async def read_list(self, user_list: str) -> List[UserPublic]:
        """Sanitized users for a comma-separated list of ids."""
        user_ids = [user_id.strip() for user_id in (user_list or "").split(",") if user_id.strip()]
        found_users = await crud.get_users_by_ids(user_ids, SANITIZED_PROJECTION)
        return [sanitize_user(user) for user in found_users]

    async def create(self, principal: Dict[str, Any], body: UserCreate) -> UserPublic:
        if not self.is_authorized(principal, "create"):
            raise ForbiddenError()

        new_user = map_user(body)
        new_user["profile_image_url"] = generate_profile_image_url(new_user.get("email"))
        new_user["role"] = new_user.get("role") or self.role_service.default_role
        new_user["subroles"] = await self.role_service.determine_subroles(new_user["role"])
        if new_user.get("password"):
            new_user["password"] = await hash_password(new_user["password"])

        try:
            saved_user = await crud.insert_user(new_user)
        except DuplicateKeyFieldError as e:
            raise ValidationFailedError(_validation_errors(e)) from e

        logger.info(f"User created: {saved_user.get('username')}")
        return sanitize_user(saved_user)

    async def update(self, principal: Dict[str, Any], updates: UserUpdate) -> UserPublic:
        if not updates.id:
            raise MalformedRequestError("Missing user._id")

        found_user = await crud.get_user_by_id(updates.id)
        if found_user is None:
            raise NotFoundError(f"User {updates.id} not found")

        map_over_user(updates, found_user)
        if "email" in updates.model_fields_set:
            found_user["profile_image_url"] = generate_profile_image_url(found_user.get("email"))
        found_user["updated_at"] = datetime.now(timezone.utc)

        try:
            saved_user = await crud.save_user(found_user)
        except DuplicateKeyFieldError as e:
            raise ValidationFailedError(_validation_errors(e)) from e

        logger.info(f"User {updates.id} updated by {principal.get('_id')}")
        return sanitize_user(saved_user)

    async def admin_update(self, principal: Dict[str, Any], updates: UserAdminUpdate) -> None:
        if principal.get("role") != self.admin_role:
            raise ForbiddenError()
        if not updates.id:
            raise MalformedRequestError("Missing user._id")

        fields = updates.model_dump(exclude_unset=True, exclude={"id"})
        if fields.get("role"):
            fields["subroles"] = await self.role_service.determine_subroles(fields["role"])
        if fields.get("password"):
            fields["password"] = await hash_password(fields["password"])
        if fields.get("email"):
            fields["profile_image_url"] = generate_profile_image_url(fields["email"])

        await crud.update_user_fields(updates.id, fields)
        logger.info(f"Admin {principal.get('_id')} updated user {updates.id}")

    async def delete(self, principal: Dict[str, Any], user_id: str) -> None:
        if not self.is_authorized(principal, "delete"):
            raise ForbiddenError()
        deleted = await crud.delete_user(user_id)
        logger.info(f"Delete requested for user {user_id} by {principal.get('_id')} (deleted={deleted})")

    # --- Role / Subrole maintenance ---

    def flush_subroles(self, parent_role: str, subroles: Iterable[str]) -> None:
        """
        Replaces the subroles of every user with `parent_role` in the background.
        Failures are only logged; nothing is returned to the caller.
        """
        logger.info("Updating user subroles")
        self._spawn(
            crud.set_subroles_for_role(parent_role, list(subroles)),
            f"updating subroles for users with role '{parent_role}'",
        )

    def remove_subroles(self, subroles: Iterable[str]) -> None:
        """Pulls each label from every user's subroles, one background update per label."""
        subroles = list(subroles)
        logger.info(f"Removing subroles {subroles}")
        for subrole in subroles:
            self._spawn(crud.pull_subrole(subrole), f"removing subrole '{subrole}'")

    async def update_user_roles(self, user_id: str, target_role: str, subroles: List[str]) -> UpdateResult:
        return await crud.set_user_role(user_id, target_role, subroles)

    async def drain(self) -> None:
        """Waits for background subrole updates still in flight."""
        if self._background_tasks:
            logger.info(f"Waiting for {len(self._background_tasks)} background subrole updates")
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    def _spawn(self, coro: Awaitable[Any], description: str) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(lambda done: self._on_task_done(done, description))
        return task

    def _on_task_done(self, task: asyncio.Task, description: str) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            logger.warning(f"Background task cancelled: {description}")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Error {description}: {error}", exc_info=error)
