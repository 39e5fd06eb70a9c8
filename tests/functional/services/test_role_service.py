# tests/functional/services/test_role_service.py
import pytest

from accounts_api.services.role_service import RoleService


@pytest.fixture
def role_service() -> RoleService:
    return RoleService({"admin": ["admin", "user"], "user": ["user"]}, default_role="user")


@pytest.mark.asyncio
async def test_determine_subroles(role_service: RoleService):
    assert await role_service.determine_subroles("admin") == ["admin", "user"]
    assert await role_service.determine_subroles("auditor") == ["auditor"]
    assert await role_service.determine_subroles(None) == []


def test_set_subroles_deduplicates(role_service: RoleService):
    assert role_service.set_subroles("editor", ["content", "review", "content"]) == ["content", "review"]
    assert "editor" in role_service.roles


@pytest.mark.asyncio
async def test_retire_subroles_removes_label_from_every_role(role_service: RoleService):
    role_service.retire_subroles(["user"])

    assert await role_service.determine_subroles("admin") == ["admin"]
    assert await role_service.determine_subroles("user") == []
