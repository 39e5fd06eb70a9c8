# tests/conftest.py
import pytest
import pytest_asyncio
import logging
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Callable, Dict

from asgi_lifespan import LifespanManager
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport
from pytest_mock import MockerFixture
from werkzeug.security import generate_password_hash

from accounts_api.api.deps import (
    get_auth_service,
    get_current_user,
    get_mailer,
    get_role_service,
    get_user_service,
)

logger = logging.getLogger(__name__)

STRONG_PASSWORD = "Str0ng!Passw0rd"

# --- User documents as stored in the "users" collection ---

def make_user_doc(**overrides: Any) -> Dict[str, Any]:
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    doc = {
        "_id": "user-1",
        "username": "jdoe",
        "email": "jdoe@example.com",
        "first_name": "John",
        "last_name": "Doe",
        "role": "user",
        "subroles": ["user"],
        "verified": False,
        "password": "stored-hash",
        "created_at": now,
        "updated_at": now,
    }
    doc.update(overrides)
    return doc

@pytest.fixture
def make_user() -> Callable[..., Dict[str, Any]]:
    return make_user_doc

@pytest.fixture
def regular_user() -> Dict[str, Any]:
    return make_user_doc(password=generate_password_hash(STRONG_PASSWORD))

@pytest.fixture
def admin_user() -> Dict[str, Any]:
    return make_user_doc(
        _id="admin-1",
        username="root",
        email="root@example.com",
        role="admin",
        subroles=["admin", "user"],
        verified=True,
    )

# --- App fixtures ---

@pytest_asyncio.fixture(scope="function")
async def app(mocker: MockerFixture) -> AsyncGenerator[FastAPI, None]:
    """FastAPI app with the database lifecycle mocked out."""
    logger.info("Mocking DB connect/disconnect for app fixture...")
    mocker.patch("accounts_api.main.connect_to_mongo", return_value=True)
    mocker.patch("accounts_api.main.close_mongo_connection", return_value=None)
    # No database instance means startup skips index creation
    mocker.patch("accounts_api.main.get_database", return_value=None)

    from accounts_api.main import app as fastapi_app

    async with LifespanManager(fastapi_app, startup_timeout=15, shutdown_timeout=15):
        yield fastapi_app

    fastapi_app.dependency_overrides.clear()
    # Service singletons hold role state that endpoint tests may change
    for factory in (get_role_service, get_user_service, get_mailer, get_auth_service):
        factory.cache_clear()

@pytest.fixture
def login_as(app: FastAPI) -> Callable[[Dict[str, Any]], None]:
    """Makes the given stored user document the authenticated principal."""
    def _login(user_doc: Dict[str, Any]) -> None:
        async def override_get_current_user() -> Dict[str, Any]:
            return user_doc
        app.dependency_overrides[get_current_user] = override_get_current_user
    return _login

@pytest_asyncio.fixture(scope="function")
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as async_client:
        yield async_client
