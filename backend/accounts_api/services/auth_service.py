# accounts_api/services/auth_service.py
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from accounts_api.core.auth_helpers import (
    generate_profile_image_url,
    generate_unique_token,
    hash_password,
    is_expired,
    is_strong_password,
    token_expiry,
    verify_password,
)
from accounts_api.core.config import settings
from accounts_api.core.exceptions import (
    ExpiredTokenError,
    IncorrectPasswordError,
    InvalidTokenError,
    MailDeliveryError,
    MalformedRequestError,
    NotFoundError,
    RegistrationDisabledError,
    WeakPasswordError,
)
from accounts_api.core.security import create_access_token
from accounts_api.db import crud
from accounts_api.models.user import (
    PasswordChange,
    PasswordReset,
    RegistrationResponse,
    TokenResponse,
    UserPublic,
    UserRegister,
)
from accounts_api.services.mail import Mailer
from accounts_api.services.role_service import RoleService
from accounts_api.services.user_mapping import map_user, sanitize_user

logger = logging.getLogger(__name__)

INCORRECT_CREDENTIALS = "Incorrect Username/Password"
VERIFICATION_NOT_SENT = "Verification email not sent"


def _invalid_password_message() -> str:
    return f"Invalid password: {settings.INVALID_PASSWORD_MESSAGE}"


class AuthService:
    """Registration, sign-in, password and email-verification flows."""

    def __init__(self, role_service: RoleService, mailer: Mailer):
        self.role_service = role_service
        self.mailer = mailer

    async def register(self, body: UserRegister) -> RegistrationResponse:
        """
        Registers a new user with the default role.

        Raises:
            RegistrationDisabledError: registration is switched off.
            WeakPasswordError: the password fails the strength policy. Nothing is written.
            DuplicateKeyFieldError: username or email already taken.
        """
        if not settings.ALLOW_REGISTRATION:
            logger.warning("Registration is disabled but someone tried to signup")
            raise RegistrationDisabledError("Registration is disabled")
        if not is_strong_password(body.password):
            raise WeakPasswordError(_invalid_password_message())

        new_user = map_user(body)
        new_user["profile_image_url"] = generate_profile_image_url(new_user.get("email"))
        # Whatever the body said, new accounts start with the default role
        new_user["role"] = self.role_service.default_role
        new_user["subroles"] = await self.role_service.determine_subroles(new_user["role"])
        new_user["password"] = await hash_password(body.password)
        new_user["verification"] = {
            "token": generate_unique_token(),
            "expires": token_expiry(),
        }

        saved_user = await crud.insert_user(new_user)
        logger.info(f"User created: {saved_user.get('username')}")

        if settings.REQUIRE_EMAIL_VERIFICATION:
            try:
                await self.mailer.send_verification_email(saved_user)
            except MailDeliveryError as e:
                logger.error(f"Error sending verification email to user {saved_user.get('_id')}: {e}")
                return RegistrationResponse(user=sanitize_user(saved_user), message=VERIFICATION_NOT_SENT)
        return RegistrationResponse(user=sanitize_user(saved_user))

    async def authenticate(self, username: str, password: str) -> TokenResponse:
        user = await crud.get_user_by_username(username)
        if user is None or not await verify_password(user.get("password"), password):
            logger.info(f"Failed sign-in for username '{username}'")
            raise IncorrectPasswordError(INCORRECT_CREDENTIALS)
        return TokenResponse(
            access_token=create_access_token(user["_id"]),
            user=sanitize_user(user),
        )

    async def change_password(self, principal: Dict[str, Any], body: PasswordChange) -> UserPublic:
        if not await verify_password(principal.get("password"), body.old_password):
            logger.info(f"Incorrect password for username '{principal.get('username')}'")
            raise IncorrectPasswordError(INCORRECT_CREDENTIALS)
        if not is_strong_password(body.new_password):
            raise WeakPasswordError(_invalid_password_message())

        principal["password"] = await hash_password(body.new_password)
        principal["updated_at"] = datetime.now(timezone.utc)
        saved_user = await crud.save_user(principal)
        return sanitize_user(saved_user)

    async def verify_email(self, token: Optional[str]) -> None:
        found_users = await crud.find_users_by_field("verification.token", token, limit=1) if token else []
        if not found_users:
            raise InvalidTokenError("Token invalid")

        user = found_users[0]
        verification = user.get("verification") or {}
        if is_expired(verification.get("expires")):
            raise ExpiredTokenError("Token has expired")

        # Clearing the expiry makes the token unusable a second time
        verification["expires"] = None
        user["verification"] = verification
        user["verified"] = True
        user["updated_at"] = datetime.now(timezone.utc)
        await crud.save_user(user)
        logger.info(f"Email verified for user {user.get('_id')}")

    async def request_verification_email(self, principal: Dict[str, Any]) -> None:
        principal["verification"] = {
            "token": generate_unique_token(),
            "expires": token_expiry(),
        }
        saved_user = await crud.save_user(principal)
        await self.mailer.send_verification_email(saved_user)

    async def request_password_reset_email(self, email: Optional[str]) -> None:
        if not email:
            raise MalformedRequestError("Missing email")

        found_users = await crud.find_users_by_field("email", email)
        # Email is unique, so anything but one match means it is not registered
        if len(found_users) != 1:
            raise NotFoundError("Email not found")

        user = found_users[0]
        user["reset_password"] = {
            "token": generate_unique_token(),
            "expires": token_expiry(),
        }
        saved_user = await crud.save_user(user)
        await self.mailer.send_password_reset_email(saved_user)

    async def reset_password(self, body: PasswordReset) -> None:
        if not body.password:
            raise MalformedRequestError("Missing password")
        if not body.token:
            raise MalformedRequestError("Missing token")
        if not is_strong_password(body.password):
            raise WeakPasswordError("Password invalid")

        found_users = await crud.find_users_by_field("reset_password.token", body.token)
        if len(found_users) != 1:
            raise InvalidTokenError("Token invalid")

        user = found_users[0]
        if is_expired((user.get("reset_password") or {}).get("expires")):
            raise ExpiredTokenError("Token has expired")

        user["password"] = await hash_password(body.password)
        user.pop("reset_password", None)
        user["verified"] = True
        user["updated_at"] = datetime.now(timezone.utc)
        await crud.save_user(user)
        logger.info(f"Password reset for user {user.get('_id')}")
