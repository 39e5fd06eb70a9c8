# tests/functional/services/test_user_service.py
import pytest
import logging
from unittest.mock import AsyncMock

from pytest_mock import MockerFixture

from accounts_api.core.exceptions import (
    ForbiddenError,
    MalformedRequestError,
    NotFoundError,
)
from accounts_api.models.user import UserAdminUpdate, UserUpdate
from accounts_api.services.role_service import RoleService
from accounts_api.services.user_service import PAGE_LIMIT, UserService

pytestmark = pytest.mark.asyncio


@pytest.fixture
def user_service() -> UserService:
    role_service = RoleService({"admin": ["admin", "user"], "user": ["user"]}, default_role="user")
    return UserService(role_service=role_service, admin_role="admin")


async def test_read_checks_id_before_permissions(user_service: UserService, regular_user):
    with pytest.raises(MalformedRequestError):
        await user_service.read(regular_user, None)


async def test_read_returns_looked_up_user_for_admin(user_service: UserService, admin_user, make_user, mocker: MockerFixture):
    target = make_user(_id="user-9", username="target")
    mocker.patch("accounts_api.db.crud.get_user_by_id", new_callable=AsyncMock, return_value=target)

    result = await user_service.read(admin_user, "user-9")

    assert result.id == "user-9"
    assert result.username == "target"


async def test_read_missing_user(user_service: UserService, regular_user, mocker: MockerFixture):
    mocker.patch("accounts_api.db.crud.get_user_by_id", new_callable=AsyncMock, return_value=None)

    with pytest.raises(NotFoundError):
        await user_service.read(regular_user, "user-1")


async def test_list_users_pages(user_service: UserService, mocker: MockerFixture):
    mock_find = mocker.patch("accounts_api.db.crud.find_users", new_callable=AsyncMock, return_value=[])

    await user_service.list_users(page=3, search="jd")

    mock_find.assert_awaited_once_with(search="jd", skip=2 * PAGE_LIMIT, limit=PAGE_LIMIT)


async def test_read_list_strips_blank_ids(user_service: UserService, mocker: MockerFixture):
    mock_get = mocker.patch("accounts_api.db.crud.get_users_by_ids", new_callable=AsyncMock, return_value=[])

    await user_service.read_list("a, b,,")

    assert mock_get.call_args.args[0] == ["a", "b"]


async def test_update_recomputes_profile_image_when_email_changes(
    user_service: UserService, regular_user, mocker: MockerFixture
):
    mocker.patch("accounts_api.db.crud.get_user_by_id", new_callable=AsyncMock, return_value=dict(regular_user))
    mock_save = mocker.patch("accounts_api.db.crud.save_user", new_callable=AsyncMock, side_effect=lambda doc: doc)

    await user_service.update(regular_user, UserUpdate(_id="user-1", email="new@example.com"))

    saved = mock_save.call_args.args[0]
    assert saved["email"] == "new@example.com"
    assert saved["profile_image_url"].startswith("https://gravatar.com/avatar/")


async def test_admin_update_requires_admin_role_not_subrole(user_service: UserService, make_user):
    # Holds the admin subrole but not the admin role
    principal = make_user(role="manager", subroles=["admin"])

    with pytest.raises(ForbiddenError):
        await user_service.admin_update(principal, UserAdminUpdate(_id="user-1", verified=True))


async def test_admin_update_unknown_role_keeps_its_label(user_service: UserService, admin_user, mocker: MockerFixture):
    mock_update = mocker.patch("accounts_api.db.crud.update_user_fields", new_callable=AsyncMock)

    await user_service.admin_update(admin_user, UserAdminUpdate(_id="user-1", role="auditor"))

    assert mock_update.call_args.args[1] == {"role": "auditor", "subroles": ["auditor"]}


async def test_flush_subroles_updates_users_with_role(user_service: UserService, mocker: MockerFixture):
    mock_update_many = AsyncMock()
    collection = mocker.MagicMock()
    collection.update_many = mock_update_many
    mocker.patch("accounts_api.db.crud._get_collection", return_value=collection)

    user_service.flush_subroles("editor", ["content", "review"])
    await user_service.drain()

    mock_update_many.assert_awaited_once_with(
        {"role": "editor"}, {"$set": {"subroles": ["content", "review"]}}
    )


async def test_remove_subroles_issues_one_update_per_label(user_service: UserService, mocker: MockerFixture):
    mock_pull = mocker.patch("accounts_api.db.crud.pull_subrole", new_callable=AsyncMock, return_value=1)

    user_service.remove_subroles(["content", "review"])
    await user_service.drain()

    assert [call.args[0] for call in mock_pull.await_args_list] == ["content", "review"]


async def test_background_failure_is_logged_not_raised(user_service: UserService, mocker: MockerFixture, caplog):
    mocker.patch(
        "accounts_api.db.crud.set_subroles_for_role",
        new_callable=AsyncMock,
        side_effect=RuntimeError("Database connection not available"),
    )

    with caplog.at_level(logging.ERROR, logger="accounts_api.services.user_service"):
        user_service.flush_subroles("editor", ["content"])
        await user_service.drain()

    assert "Database connection not available" in caplog.text
