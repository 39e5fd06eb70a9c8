# tests/functional/services/test_auth_service.py
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

from pytest_mock import MockerFixture

from accounts_api.core.exceptions import (
    ExpiredTokenError,
    IncorrectPasswordError,
    InvalidTokenError,
    NotFoundError,
)
from accounts_api.models.user import PasswordReset
from accounts_api.services.auth_service import AuthService
from accounts_api.services.role_service import RoleService

pytestmark = pytest.mark.asyncio


@pytest.fixture
def mailer() -> MagicMock:
    mock_mailer = MagicMock()
    mock_mailer.send_verification_email = AsyncMock()
    mock_mailer.send_password_reset_email = AsyncMock()
    return mock_mailer

@pytest.fixture
def auth_service(mailer: MagicMock) -> AuthService:
    role_service = RoleService({"admin": ["admin", "user"], "user": ["user"]}, default_role="user")
    return AuthService(role_service=role_service, mailer=mailer)


async def test_authenticate_unknown_user(auth_service: AuthService, mocker: MockerFixture):
    mocker.patch("accounts_api.db.crud.get_user_by_username", new_callable=AsyncMock, return_value=None)

    with pytest.raises(IncorrectPasswordError):
        await auth_service.authenticate("ghost", "whatever")


async def test_verification_token_works_only_once(auth_service: AuthService, make_user, mocker: MockerFixture):
    user = make_user(verification={
        "token": "tok",
        "expires": datetime.now(timezone.utc) + timedelta(hours=1),
    })
    mocker.patch("accounts_api.db.crud.find_users_by_field", new_callable=AsyncMock, return_value=[user])
    mocker.patch("accounts_api.db.crud.save_user", new_callable=AsyncMock, side_effect=lambda doc: doc)

    await auth_service.verify_email("tok")
    assert user["verified"] is True

    with pytest.raises(ExpiredTokenError):
        await auth_service.verify_email("tok")


async def test_verify_email_without_token_does_not_query(auth_service: AuthService, mocker: MockerFixture):
    mock_find = mocker.patch("accounts_api.db.crud.find_users_by_field", new_callable=AsyncMock)

    with pytest.raises(InvalidTokenError):
        await auth_service.verify_email(None)
    mock_find.assert_not_awaited()


async def test_password_reset_email_requires_exactly_one_match(auth_service: AuthService, make_user, mocker: MockerFixture):
    mocker.patch(
        "accounts_api.db.crud.find_users_by_field",
        new_callable=AsyncMock,
        return_value=[make_user(), make_user(_id="user-2")],
    )

    with pytest.raises(NotFoundError):
        await auth_service.request_password_reset_email("jdoe@example.com")


async def test_reset_password_with_several_matches_is_invalid(auth_service: AuthService, make_user, mocker: MockerFixture):
    mocker.patch(
        "accounts_api.db.crud.find_users_by_field",
        new_callable=AsyncMock,
        return_value=[make_user(), make_user(_id="user-2")],
    )

    with pytest.raises(InvalidTokenError):
        await auth_service.reset_password(PasswordReset(password="Br4nd!NewPass", token="tok"))


async def test_request_verification_email_refreshes_token(auth_service: AuthService, mailer: MagicMock, make_user, mocker: MockerFixture):
    user = make_user(verification={"token": "old", "expires": None})
    mocker.patch("accounts_api.db.crud.save_user", new_callable=AsyncMock, side_effect=lambda doc: doc)

    await auth_service.request_verification_email(user)

    assert user["verification"]["token"] != "old"
    assert user["verification"]["expires"] > datetime.now(timezone.utc)
    mailer.send_verification_email.assert_awaited_once_with(user)
