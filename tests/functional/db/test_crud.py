# tests/functional/db/test_crud.py
import pytest
from unittest.mock import AsyncMock, MagicMock

from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError
from pytest_mock import MockerFixture

from accounts_api.core.exceptions import DuplicateKeyFieldError
from accounts_api.db import crud

pytestmark = pytest.mark.asyncio


@pytest.fixture
def collection(mocker: MockerFixture) -> MagicMock:
    mock_collection = MagicMock()
    mock_collection.find_one = AsyncMock()
    mock_collection.insert_one = AsyncMock()
    mock_collection.replace_one = AsyncMock()
    mock_collection.update_one = AsyncMock()
    mock_collection.update_many = AsyncMock()
    mock_collection.delete_one = AsyncMock()
    mocker.patch("accounts_api.db.crud._get_collection", return_value=mock_collection)
    return mock_collection

def _cursor(results):
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.skip.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.to_list = AsyncMock(return_value=results)
    return cursor


async def test_find_users_sorts_and_pages(collection: MagicMock):
    cursor = _cursor([{"_id": "user-1"}])
    collection.find.return_value = cursor

    result = await crud.find_users(search="j.d", skip=25, limit=25)

    assert result == [{"_id": "user-1"}]
    collection.find.assert_called_once_with({"username": {"$regex": r"j\.d", "$options": "i"}})
    cursor.sort.assert_called_once_with("username", ASCENDING)
    cursor.skip.assert_called_once_with(25)
    cursor.limit.assert_called_once_with(25)


async def test_find_users_without_search_matches_all(collection: MagicMock):
    collection.find.return_value = _cursor([])

    await crud.find_users()

    collection.find.assert_called_once_with({})


async def test_get_users_by_ids_uses_in_query(collection: MagicMock):
    collection.find.return_value = _cursor([])
    projection = {"username": 1}

    await crud.get_users_by_ids(["a", "b"], projection)

    collection.find.assert_called_once_with({"_id": {"$in": ["a", "b"]}}, projection)


async def test_insert_duplicate_username_names_the_index(collection: MagicMock):
    collection.insert_one.side_effect = DuplicateKeyError(
        "E11000 duplicate key error collection: accounts.users index: username_1 dup key: { username: \"jdoe\" }",
        11000,
        {"errmsg": "E11000 duplicate key error collection: accounts.users index: username_1 dup key: { username: \"jdoe\" }"},
    )

    with pytest.raises(DuplicateKeyFieldError) as exc_info:
        await crud.insert_user({"_id": "user-1", "username": "jdoe"})

    assert exc_info.value.index_name == crud.USERNAME_INDEX
    assert exc_info.value.field == "username"


async def test_duplicate_key_index_falls_back_to_key_pattern():
    error = DuplicateKeyError("duplicate", 11000, {"errmsg": "duplicate", "keyPattern": {"email": 1}})

    assert crud.duplicate_key_index(error) == crud.EMAIL_INDEX


async def test_update_user_fields_stamps_updated_at(collection: MagicMock):
    await crud.update_user_fields(
        "user-1", {"_id": "ignored", "id": "ignored", "created_at": "ignored", "verified": True}
    )

    query, update = collection.update_one.call_args.args
    assert query == {"_id": "user-1"}
    assert update["$set"]["verified"] is True
    assert not {"_id", "id", "created_at"} & set(update["$set"])
    assert "updated_at" in update["$set"]


async def test_pull_subrole(collection: MagicMock):
    collection.update_many.return_value = MagicMock(modified_count=3)

    modified = await crud.pull_subrole("review")

    assert modified == 3
    collection.update_many.assert_awaited_once_with({"subroles": "review"}, {"$pull": {"subroles": "review"}})


async def test_delete_missing_user_is_not_an_error(collection: MagicMock):
    collection.delete_one.return_value = MagicMock(deleted_count=0)

    assert await crud.delete_user("ghost") == 0


async def test_get_collection_without_database(mocker: MockerFixture):
    mocker.patch("accounts_api.db.crud.get_database", return_value=None)

    with pytest.raises(RuntimeError):
        await crud.get_user_by_id("user-1")
